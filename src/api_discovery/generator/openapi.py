"""OpenAPI 3.0.3 synthesizer: turns observed traffic into an API document.

Observations are processed strictly in the order given: operationIds,
parameter order and response order all depend on it.
"""

import logging
import re
from datetime import datetime, timezone
from http import HTTPStatus
from typing import Any

from pydantic import BaseModel, model_validator

from api_discovery.analyzer.patterns import (
    PLACEHOLDER_TYPES,
    AnalysisResult,
    analyze,
    infer_parameter_types,
    operation_tags,
    resource_name,
    template_path,
    template_segments,
)
from api_discovery.parser.base import Observation

logger = logging.getLogger(__name__)

OPENAPI_VERSION = "3.0.3"
DEFAULT_TITLE = "Discovered API"
DEFAULT_VERSION = "0.1.0"
DEFAULT_DESCRIPTION = "API discovered automatically from observed HTTP traffic."
EMPTY_DESCRIPTION = "No API endpoints discovered yet. Capture some traffic to generate a specification."
DEFAULT_SERVER = "https://example.com"

METHOD_PREFIXES = {
    "GET": "get",
    "POST": "create",
    "PUT": "update",
    "PATCH": "patch",
    "DELETE": "delete",
}

METHOD_SUMMARIES = {
    "GET": "Retrieve",
    "POST": "Create",
    "PUT": "Update",
    "PATCH": "Partially update",
    "DELETE": "Delete",
}

BODY_METHODS = ("post", "put", "patch")

AUTH_HEADER_MARKERS = ("authorization", "api-key", "token")

BEARER_SCHEME = "bearerAuth"

ERROR_SCHEMA = "Error"

# Responses that never carry a body.
NO_CONTENT_STATUSES = (204, 304)


class SynthesisOptions(BaseModel):
    """Overrides for the info block and document extensions."""

    title: str | None = None
    version: str | None = None
    description: str | None = None
    source_url: str | None = None
    include_metadata: bool = False
    generated_at: datetime | None = None

    @model_validator(mode="before")
    @classmethod
    def _drop_none(cls, data):
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v is not None}
        return data


class ParameterDescriptor(BaseModel):
    """A path or query parameter of one operation."""

    name: str
    location: str  # path / query
    required: bool
    param_type: str  # string / integer / number / boolean
    any_of: list[str] = []
    examples: list[str] = []
    format: str | None = None
    description: str = ""

    def to_openapi(self) -> dict:
        schema: dict[str, Any] = {"type": self.param_type}
        if self.format:
            schema["format"] = self.format
        if self.any_of:
            schema["anyOf"] = [{"type": t} for t in self.any_of]

        result: dict[str, Any] = {
            "name": self.name,
            "in": self.location,
            "required": self.required,
            "description": self.description,
            "schema": schema,
        }
        if self.any_of and self.examples:
            result["examples"] = {f"example{i}": {"value": v} for i, v in enumerate(self.examples, start=1)}
        elif self.examples:
            result["example"] = self.examples[0]
        return result


class OperationRecord(BaseModel):
    """One synthesized (template, method) operation."""

    operation_id: str
    tags: list[str]
    summary: str
    description: str
    parameters: list[ParameterDescriptor] = []
    request_body: str | None = None  # schema name
    responses: dict[str, dict] = {}
    security: list[dict[str, list[str]]] = []

    def to_openapi(self) -> dict:
        result: dict[str, Any] = {
            "operationId": self.operation_id,
            "tags": list(self.tags),
            "summary": self.summary,
            "description": self.description,
            "parameters": [p.to_openapi() for p in self.parameters],
        }
        if self.request_body:
            result["requestBody"] = {
                "required": True,
                "content": {"application/json": {"schema": _ref(self.request_body)}},
            }
        result["responses"] = {status: _copy_response(r) for status, r in self.responses.items()}
        result["security"] = [{name: list(scopes) for name, scopes in req.items()} for req in self.security]
        return result


class SpecificationDocument(BaseModel):
    """The synthesized API description."""

    openapi: str = OPENAPI_VERSION
    info: dict[str, str]
    servers: list[dict[str, str]]
    paths: dict[str, dict[str, OperationRecord]] = {}
    schemas: dict[str, dict] = {}
    security_schemes: dict[str, dict] = {}
    tags: list[dict[str, str]] = []
    extensions: dict[str, Any] = {}

    def operations(self):
        for template, methods in self.paths.items():
            for method, operation in methods.items():
                yield template, method, operation

    def to_dict(self) -> dict:
        """Render the OpenAPI mapping, key order preserved."""
        return {
            "openapi": self.openapi,
            "info": dict(self.info),
            "servers": [dict(s) for s in self.servers],
            "paths": {
                template: {method: op.to_openapi() for method, op in methods.items()}
                for template, methods in self.paths.items()
            },
            "components": {
                "schemas": {name: _copy_schema(s) for name, s in self.schemas.items()},
                "securitySchemes": {name: dict(s) for name, s in self.security_schemes.items()},
            },
            "tags": [dict(t) for t in self.tags],
            **self.extensions,
        }


class SynthesisContext:
    """Uniqueness state for a single ``synthesize`` call.

    Created fresh for every call so that repeated synthesis over the same
    snapshot yields the same document.
    """

    def __init__(self):
        self.operation_ids: set[str] = set()
        self.schemas: dict[str, dict] = {}
        self.schema_owners: dict[str, tuple] = {}
        self.resource_schemas: dict[str, tuple[str, str]] = {}
        self.error_schema_name: str | None = None
        self.query_samples: dict[tuple[str, str], dict[str, list[str]]] = {}
        self.tags: dict[str, None] = {}
        self.uses_bearer = False

    def unique_operation_id(self, base: str) -> str:
        """Return ``base``, or ``base`` with the lowest free numeric suffix."""
        operation_id = base
        counter = 1
        while operation_id in self.operation_ids:
            operation_id = f"{base}{counter}"
            counter += 1
        self.operation_ids.add(operation_id)
        return operation_id

    def resource_schema(self, resource: str) -> tuple[str, str]:
        """Register the placeholder and Input schemas for a resource.

        Returns (schema name, input schema name).
        """
        if resource not in self.resource_schemas:
            name = self._claim(schema_name(resource), ("resource", resource))
            input_name = self._claim(f"{name}Input", ("input", resource))
            self.schemas[name] = {
                "type": "object",
                "properties": {
                    "id": {"type": "string", "example": "123"},
                    "name": {"type": "string", "example": f"Example {resource}"},
                },
            }
            self.schemas[input_name] = {
                "type": "object",
                "properties": {
                    "name": {"type": "string", "example": f"Example {resource}"},
                },
                "required": ["name"],
            }
            self.resource_schemas[resource] = (name, input_name)
        return self.resource_schemas[resource]

    def error_schema(self) -> str:
        if self.error_schema_name is None:
            name = self._claim(ERROR_SCHEMA, ("error",))
            self.schemas[name] = {
                "type": "object",
                "properties": {
                    "error": {"type": "string", "example": "Error message"},
                    "code": {"type": "string", "example": "ERROR_CODE"},
                    "details": {"type": "object"},
                },
            }
            self.error_schema_name = name
        return self.error_schema_name

    def _claim(self, name: str, owner: tuple) -> str:
        candidate = name
        counter = 1
        while self.schema_owners.get(candidate, owner) != owner:
            candidate = f"{name}{counter}"
            counter += 1
        self.schema_owners[candidate] = owner
        return candidate


# -- naming -------------------------------------------------------------------


def schema_name(resource: str) -> str:
    """CamelCase a resource segment into a component-safe name."""
    parts = [p for p in re.split(r"[^0-9A-Za-z]+", resource) if p]
    if not parts:
        return "Item"
    return "".join(p[0].upper() + p[1:] for p in parts)


def operation_id_base(method: str, template: str) -> str:
    prefix = METHOD_PREFIXES.get(method.upper(), method.lower())
    return f"{prefix}{schema_name(resource_name(template))}"


def operation_summary(method: str, template: str) -> str:
    resource = resource_name(template)
    verb = METHOD_SUMMARIES.get(method.upper())
    if verb is None:
        return f"{method.upper()} {resource}"
    return f"{verb} {resource}"


def status_description(status: int | None) -> str:
    if status is None:
        return "Response not observed"
    try:
        return HTTPStatus(status).phrase
    except ValueError:
        return "Response"


# -- synthesis ----------------------------------------------------------------


def synthesize(
    observations: list[Observation],
    options: SynthesisOptions | dict | None = None,
    analysis: AnalysisResult | None = None,
) -> SpecificationDocument:
    """Synthesize an OpenAPI document from an ordered observation snapshot."""
    if options is None:
        options = SynthesisOptions()
    elif isinstance(options, dict):
        options = SynthesisOptions.model_validate(options)

    if not observations:
        return SpecificationDocument(
            info=_info(options, empty=True),
            servers=[{"url": DEFAULT_SERVER}],
            extensions=_extensions(options, [], AnalysisResult()),
        )

    if analysis is None:
        analysis = analyze(observations)

    context = SynthesisContext()
    paths: dict[str, dict[str, OperationRecord]] = {}

    for index, obs in enumerate(observations):
        path = obs.path
        if path is None:
            logger.warning("Skipping malformed URL in observation %d: %r", index, obs.url)
            continue
        template = template_path(path)
        method = obs.method.lower()
        methods = paths.setdefault(template, {})
        record = methods.get(method)
        if record is None:
            record = _new_operation(path, template, method, context)
            methods[method] = record
        _merge_observation(record, template, method, obs, context)

    security_schemes = {}
    if context.uses_bearer:
        security_schemes[BEARER_SCHEME] = {"type": "http", "scheme": "bearer", "bearerFormat": "JWT"}

    return SpecificationDocument(
        info=_info(options),
        servers=_servers(observations),
        paths=paths,
        schemas=context.schemas,
        security_schemes=security_schemes,
        tags=[{"name": tag, "description": f"Operations for {tag} resources"} for tag in context.tags],
        extensions=_extensions(options, observations, analysis),
    )


def _info(options: SynthesisOptions, empty: bool = False) -> dict[str, str]:
    return {
        "title": options.title or DEFAULT_TITLE,
        "version": options.version or DEFAULT_VERSION,
        "description": options.description or (EMPTY_DESCRIPTION if empty else DEFAULT_DESCRIPTION),
    }


def _servers(observations: list[Observation]) -> list[dict[str, str]]:
    origins: dict[str, None] = {}
    for obs in observations:
        origin = obs.origin
        if origin is not None:
            origins[origin] = None
    if not origins:
        return [{"url": DEFAULT_SERVER}]
    return [{"url": origin} for origin in origins]


def _extensions(options: SynthesisOptions, observations: list[Observation], analysis: AnalysisResult) -> dict:
    extensions: dict[str, Any] = {}
    if options.source_url:
        extensions["x-source-url"] = options.source_url
    if options.include_metadata:
        generated_at = options.generated_at or datetime.now(timezone.utc)
        extensions["x-discovery-metadata"] = {
            "totalObservations": len(observations),
            "uniqueHosts": list(analysis.statistics.unique_hosts),
            "resourceTypes": {e.key: e.count for e in analysis.patterns.resource_types},
            "discoveryDate": generated_at.isoformat(),
        }
    return extensions


def _new_operation(path: str, template: str, method: str, context: SynthesisContext) -> OperationRecord:
    tags = operation_tags(template)
    for tag in tags:
        context.tags[tag] = None

    resource = resource_name(template)
    request_body = None
    if method in BODY_METHODS:
        _, request_body = context.resource_schema(resource)

    return OperationRecord(
        operation_id=context.unique_operation_id(operation_id_base(method, template)),
        tags=tags,
        summary=operation_summary(method, template),
        description=f"{method.upper()} operation for {resource} at {template}. Discovered from observed traffic.",
        parameters=_path_parameters(path),
        request_body=request_body,
    )


def _path_parameters(path: str) -> list[ParameterDescriptor]:
    params = []
    previous = "resource"
    for segment, kind in template_segments(path):
        if not segment:
            continue
        if kind is None:
            previous = segment
            continue
        name = segment[1:-1]
        schema = PLACEHOLDER_TYPES[kind]
        params.append(
            ParameterDescriptor(
                name=name,
                location="path",
                required=True,
                param_type=schema["type"],
                format=schema.get("format"),
                description=f"Identifier for {previous}",
            )
        )
    return params


def _merge_observation(
    record: OperationRecord,
    template: str,
    method: str,
    obs: Observation,
    context: SynthesisContext,
) -> None:
    _merge_query_parameters(record, template, method, obs, context)
    _merge_response(record, template, obs, context)

    if not record.security and _has_auth_header(obs):
        record.security = [{BEARER_SCHEME: []}]
        context.uses_bearer = True


def _merge_query_parameters(
    record: OperationRecord,
    template: str,
    method: str,
    obs: Observation,
    context: SynthesisContext,
) -> None:
    samples = context.query_samples.setdefault((template, method), {})
    for name, value in obs.query_params.items():
        values = samples.setdefault(name, [])
        values.append(value)
        inferred = infer_parameter_types(values)
        if "anyOf" in inferred:
            examples = inferred["examples"]
        else:
            examples = [inferred["example"]]
        descriptor = ParameterDescriptor(
            name=name,
            location="query",
            required=False,
            param_type=inferred["type"],
            any_of=[t["type"] for t in inferred.get("anyOf", [])],
            examples=examples,
            description=f"Query parameter: {name}",
        )
        for i, existing in enumerate(record.parameters):
            if existing.location == "query" and existing.name == name:
                record.parameters[i] = descriptor
                break
        else:
            record.parameters.append(descriptor)


def _merge_response(record: OperationRecord, template: str, obs: Observation, context: SynthesisContext) -> None:
    status = obs.status
    key = "default" if status is None else str(status)
    is_error = status is not None and status >= 400

    response = record.responses.get(key)
    if response is None:
        response = {"description": status_description(status)}
        record.responses[key] = response

    if status not in NO_CONTENT_STATUSES:
        if is_error:
            schema = context.error_schema()
        else:
            schema, _ = context.resource_schema(resource_name(template))
        content_type = obs.content_type if obs.content_type != "unknown" else "application/json"
        content = response.setdefault("content", {})
        if content_type not in content:
            content[content_type] = {"schema": _ref(schema)}

    if is_error:
        bucket = "4xx" if status < 500 else "5xx"
        if bucket not in record.responses:
            record.responses[bucket] = {
                "description": "Client error" if bucket == "4xx" else "Server error",
                "content": {"application/json": {"schema": _ref(context.error_schema())}},
            }


def _has_auth_header(obs: Observation) -> bool:
    return any(marker in name.lower() for name in obs.headers for marker in AUTH_HEADER_MARKERS)


def _ref(schema: str) -> dict:
    return {"$ref": f"#/components/schemas/{schema}"}


def _copy_response(response: dict) -> dict:
    result = {"description": response["description"]}
    if "content" in response:
        result["content"] = {
            ct: {"schema": dict(media["schema"])} for ct, media in response["content"].items()
        }
    return result


def _copy_schema(schema: dict) -> dict:
    result = {}
    for key, value in schema.items():
        if isinstance(value, dict):
            result[key] = _copy_schema(value)
        elif isinstance(value, list):
            result[key] = list(value)
        else:
            result[key] = value
    return result
