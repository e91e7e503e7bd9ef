"""Structural checks for synthesized OpenAPI documents."""

import re

import yaml

REF_PREFIX = "#/components/schemas/"

REQUIRED_KEYS = ("openapi", "info", "servers", "paths", "components", "tags")

_PATH_PARAM = re.compile(r"\{([^}/]+)\}")


def collect_refs(node) -> list[str]:
    """Return every ``$ref`` value found anywhere under ``node``."""
    refs = []
    if isinstance(node, dict):
        for key, value in node.items():
            if key == "$ref" and isinstance(value, str):
                refs.append(value)
            else:
                refs.extend(collect_refs(value))
    elif isinstance(node, list):
        for item in node:
            refs.extend(collect_refs(item))
    return refs


def validate_refs(doc: dict) -> list[str]:
    """Check that every schema reference in ``paths`` resolves."""
    schemas = doc.get("components", {}).get("schemas", {})
    errors = []
    for ref in collect_refs(doc.get("paths", {})):
        if not ref.startswith(REF_PREFIX) or ref[len(REF_PREFIX):] not in schemas:
            errors.append(f"Unresolved $ref: {ref}")
    return errors


def validate_operation_ids(doc: dict) -> list[str]:
    seen: set[str] = set()
    errors = []
    for template, methods in doc.get("paths", {}).items():
        for method, operation in methods.items():
            operation_id = operation.get("operationId")
            if operation_id in seen:
                errors.append(f"Duplicate operationId {operation_id!r} at {method.upper()} {template}")
            seen.add(operation_id)
    return errors


def validate_path_parameters(doc: dict) -> list[str]:
    """Every ``{name}`` in a template must be declared as a required path parameter."""
    errors = []
    for template, methods in doc.get("paths", {}).items():
        names = _PATH_PARAM.findall(template)
        for method, operation in methods.items():
            declared = {
                p.get("name") for p in operation.get("parameters", []) if p.get("in") == "path" and p.get("required")
            }
            for name in names:
                if name not in declared:
                    errors.append(f"Path parameter {name!r} not declared at {method.upper()} {template}")
    return errors


def validate_security(doc: dict) -> list[str]:
    schemes = doc.get("components", {}).get("securitySchemes", {})
    errors = []
    for template, methods in doc.get("paths", {}).items():
        for method, operation in methods.items():
            for requirement in operation.get("security", []):
                for name in requirement:
                    if name not in schemes:
                        errors.append(f"Unknown security scheme {name!r} at {method.upper()} {template}")
    return errors


def validate_structure(doc: dict) -> list[str]:
    """Check the section types the other checks walk through."""
    errors = []
    components = doc.get("components")
    if not isinstance(components, dict):
        errors.append("'components' is not a mapping")
    else:
        for key in ("schemas", "securitySchemes"):
            if key in components and not isinstance(components[key], dict):
                errors.append(f"'components.{key}' is not a mapping")

    paths = doc.get("paths")
    if not isinstance(paths, dict):
        errors.append("'paths' is not a mapping")
        return errors
    for template, methods in paths.items():
        if not isinstance(template, str):
            errors.append(f"Path key {template!r} is not a string")
            continue
        if not isinstance(methods, dict):
            errors.append(f"Path item {template} is not a mapping")
            continue
        for method, operation in methods.items():
            if not isinstance(method, str):
                errors.append(f"Method key {method!r} at {template} is not a string")
                continue
            where = f"{method.upper()} {template}"
            if not isinstance(operation, dict):
                errors.append(f"Operation {where} is not a mapping")
                continue
            for key in ("parameters", "security"):
                items = operation.get(key, [])
                if not isinstance(items, list) or not all(isinstance(item, dict) for item in items):
                    errors.append(f"'{key}' at {where} is not a list of mappings")
    return errors


def validate_document(doc: dict) -> list[str]:
    """Run all checks on an OpenAPI mapping. Returns a list of error messages."""
    if not isinstance(doc, dict):
        return ["Document is not a mapping"]
    errors = [f"Missing top-level key: {key}" for key in REQUIRED_KEYS if key not in doc]
    if errors:
        return errors
    errors = validate_structure(doc)
    if errors:
        return errors
    errors.extend(validate_refs(doc))
    errors.extend(validate_operation_ids(doc))
    errors.extend(validate_path_parameters(doc))
    errors.extend(validate_security(doc))
    return errors


def load_document(text: str) -> dict:
    """Parse a JSON or YAML document (JSON is a YAML subset)."""
    return yaml.safe_load(text)
