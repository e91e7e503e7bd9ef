"""Pattern analyzer: path templating, resource grouping and traffic statistics.

The templating rule here is the single source of truth; the synthesizer
calls ``template_path`` rather than re-implementing it.
"""

import re
from collections import Counter
from datetime import datetime

from pydantic import BaseModel

from api_discovery.parser.base import Observation

# Checked in this order for every segment.
PLACEHOLDER_RULES: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"^\d+$"), "id"),
    (re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE), "uuid"),
    (re.compile(r"^[0-9a-f]{24}$"), "objectId"),
]

PLACEHOLDER_TYPES = {
    "id": {"type": "integer"},
    "uuid": {"type": "string", "format": "uuid"},
    "objectId": {"type": "string"},
}

RESOURCE_TYPES: list[tuple[str, re.Pattern[str]]] = [
    (name, re.compile(pattern, re.IGNORECASE))
    for name, pattern in [
        ("users", r"/users?/"),
        ("posts", r"/posts?/"),
        ("articles", r"/articles?/"),
        ("products", r"/products?/"),
        ("orders", r"/orders?/"),
        ("comments", r"/comments?/"),
        ("files", r"/files?/"),
        ("images", r"/images?/"),
        ("videos", r"/videos?/"),
        ("categories", r"/categor(y|ies)/"),
        ("tags", r"/tags?/"),
        ("search", r"/search"),
        ("auth", r"/auth"),
        ("login", r"/login"),
        ("logout", r"/logout"),
        ("register", r"/register"),
        ("profile", r"/profile"),
        ("settings", r"/settings"),
        ("admin", r"/admin"),
        ("api", r"/api/"),
        ("rest", r"/rest/"),
        ("versioned", r"/v\d+/"),
        ("graphql", r"/graphql"),
    ]
]

UNKNOWN_RESOURCE = "unknown"

# Strings that JavaScript's Number() accepts once surrounding whitespace is trimmed.
_NUMBER = re.compile(
    r"^[-+]?(\d+\.?\d*|\.\d+)([eE][-+]?\d+)?$"
    r"|^[-+]?Infinity$"
    r"|^0([xX][0-9a-fA-F]+|[oO][0-7]+|[bB][01]+)$",
    re.ASCII,
)

MAX_EXAMPLES = 3


class FrequencyEntry(BaseModel):
    key: str
    count: int


class ResourceGroup(BaseModel):
    """Observations sharing a host and a two-segment path prefix."""

    key: str
    base_url: str
    hostname: str
    templates: list[str]
    methods: list[str]
    status_codes: list[int | None]
    observation_count: int


class PatternSummary(BaseModel):
    common_paths: list[FrequencyEntry] = []
    common_query_params: list[FrequencyEntry] = []
    common_headers: list[FrequencyEntry] = []
    resource_types: list[FrequencyEntry] = []
    parameter_values: dict[str, list[FrequencyEntry]] = {}


class Statistics(BaseModel):
    total_observations: int = 0
    unique_hosts: list[str] = []
    methods: list[FrequencyEntry] = []
    status_codes: list[FrequencyEntry] = []
    content_types: list[FrequencyEntry] = []
    query_params: list[FrequencyEntry] = []
    headers: list[FrequencyEntry] = []
    average_response_size: float = 0.0
    earliest: datetime | None = None
    latest: datetime | None = None


class AnalysisResult(BaseModel):
    groups: list[ResourceGroup] = []
    patterns: PatternSummary = PatternSummary()
    statistics: Statistics = Statistics()


# -- templating ---------------------------------------------------------------


def classify_segment(segment: str) -> str | None:
    """Return the placeholder name for an identifier segment, or None."""
    for pattern, name in PLACEHOLDER_RULES:
        if pattern.match(segment):
            return name
    return None


def template_segments(path: str) -> list[tuple[str, str | None]]:
    """Split a literal path into template segments paired with their placeholder kind.

    Literal segments carry ``None``. A placeholder name that already occurs
    earlier in the same template is renamed after the preceding literal
    segment (``/users/{id}/posts/{postsId}``) so that path parameter names stay
    unique. Braces in literal segments are percent-encoded so they can never
    read as a placeholder.
    """
    used: set[str] = set()
    previous_literal = ""
    result: list[tuple[str, str | None]] = []
    for segment in path.split("/"):
        kind = classify_segment(segment) if segment else None
        if kind is None:
            result.append((segment.replace("{", "%7B").replace("}", "%7D"), None))
            if segment:
                previous_literal = segment
            continue
        name = kind
        if name in used:
            name = _context_name(previous_literal, kind, used)
        used.add(name)
        result.append(("{" + name + "}", kind))
    return result


def template_path(path: str) -> str:
    """Replace identifier segments of a literal path with typed placeholders."""
    return "/".join(segment for segment, _ in template_segments(path)) or "/"


def template_parameters(path: str) -> list[tuple[str, str]]:
    """(name, kind) for every placeholder ``template_path`` puts into ``path``."""
    return [(segment[1:-1], kind) for segment, kind in template_segments(path) if kind is not None]


def _context_name(previous_literal: str, kind: str, used: set[str]) -> str:
    stem = re.sub(r"[^0-9A-Za-z]+", "", previous_literal)
    base = f"{stem}{kind[0].upper()}{kind[1:]}" if stem else kind
    name = base
    counter = 2 if name == kind else 1
    while name in used:
        name = f"{base}{counter}"
        counter += 1
    return name


def is_placeholder(segment: str) -> bool:
    return segment.startswith("{") and segment.endswith("}")


def resource_name(template: str) -> str:
    """Last literal segment of a template; a placeholder only if it is the only segment."""
    segments = [s for s in template.split("/") if s]
    if not segments:
        return "item"
    literals = [s for s in segments if not is_placeholder(s)]
    if literals:
        return literals[-1]
    return segments[-1].strip("{}") if len(segments) == 1 else "item"


def operation_tags(template: str) -> list[str]:
    """First literal segment, plus the second for templates deeper than two segments."""
    segments = [s for s in template.split("/") if s]
    literals = [s for s in segments if not is_placeholder(s)]
    tags = literals[:1]
    if len(segments) > 2 and len(literals) > 1:
        tags.append(literals[1])
    return tags


# -- grouping -----------------------------------------------------------------


def group_key(observation: Observation) -> str | None:
    parts = observation.parsed_url
    if parts is None:
        return None
    segments = [s for s in parts.path.split("/") if s]
    return "/".join([parts.hostname, *segments[:2]])


def base_url(observation: Observation) -> str | None:
    parts = observation.parsed_url
    if parts is None:
        return None
    return f"{parts.scheme}://{parts.hostname}"


def detect_resource_type(observation: Observation) -> str:
    """First matching entry of RESOURCE_TYPES against the full URL."""
    for name, pattern in RESOURCE_TYPES:
        if pattern.search(observation.url):
            return name
    return UNKNOWN_RESOURCE


def group_observations(observations: list[Observation]) -> list[ResourceGroup]:
    groups: dict[str, dict] = {}
    for obs in observations:
        key = group_key(obs)
        if key is None:
            continue
        group = groups.setdefault(
            key,
            {
                "key": key,
                "base_url": base_url(obs),
                "hostname": obs.hostname,
                "templates": {},
                "methods": {},
                "status_codes": {},
                "observation_count": 0,
            },
        )
        # dicts as ordered sets
        group["templates"][template_path(obs.path)] = None
        group["methods"][obs.method] = None
        group["status_codes"][obs.status] = None
        group["observation_count"] += 1

    result = [
        ResourceGroup(
            **{
                **g,
                "templates": list(g["templates"]),
                "methods": list(g["methods"]),
                "status_codes": list(g["status_codes"]),
            }
        )
        for g in groups.values()
    ]
    return sorted(result, key=lambda g: g.observation_count, reverse=True)


# -- statistics ---------------------------------------------------------------


def frequency_table(counter: Counter) -> list[FrequencyEntry]:
    """Entries sorted by count descending; ties keep first-seen order."""
    return [FrequencyEntry(key=str(k), count=v) for k, v in sorted(counter.items(), key=lambda kv: -kv[1])]


def extract_patterns(observations: list[Observation]) -> PatternSummary:
    paths: Counter = Counter()
    params: Counter = Counter()
    headers: Counter = Counter()
    resources: Counter = Counter()
    values: dict[str, Counter] = {}

    for obs in observations:
        if obs.path is not None:
            paths[template_path(obs.path)] += 1
        for name, value in obs.query_params.items():
            params[name] += 1
            values.setdefault(name, Counter())[value] += 1
        for name in obs.headers:
            headers[name] += 1
        resources[detect_resource_type(obs)] += 1

    return PatternSummary(
        common_paths=frequency_table(paths),
        common_query_params=frequency_table(params),
        common_headers=frequency_table(headers),
        resource_types=frequency_table(resources),
        parameter_values={name: frequency_table(c) for name, c in values.items()},
    )


def generate_statistics(observations: list[Observation]) -> Statistics:
    hosts: dict[str, None] = {}
    methods: Counter = Counter()
    statuses: Counter = Counter()
    content_types: Counter = Counter()
    params: Counter = Counter()
    headers: Counter = Counter()
    total_size = 0
    earliest = latest = None

    for obs in observations:
        if obs.hostname:
            hosts[obs.hostname] = None
        methods[obs.method] += 1
        statuses["none" if obs.status is None else obs.status] += 1
        if obs.content_type != "unknown":
            content_types[obs.content_type] += 1
        for name in obs.query_params:
            params[name] += 1
        for name in obs.headers:
            headers[name] += 1
        total_size += obs.response_size
        if obs.timestamp is not None:
            if earliest is None or _before(obs.timestamp, earliest):
                earliest = obs.timestamp
            if latest is None or _before(latest, obs.timestamp):
                latest = obs.timestamp

    return Statistics(
        total_observations=len(observations),
        unique_hosts=list(hosts),
        methods=frequency_table(methods),
        status_codes=frequency_table(statuses),
        content_types=frequency_table(content_types),
        query_params=frequency_table(params),
        headers=frequency_table(headers),
        average_response_size=total_size / len(observations) if observations else 0.0,
        earliest=earliest,
        latest=latest,
    )


def _before(a: datetime, b: datetime) -> bool:
    # Naive and aware timestamps can't be compared directly.
    if (a.tzinfo is None) != (b.tzinfo is None):
        return a.replace(tzinfo=None) < b.replace(tzinfo=None)
    return a < b


def analyze(observations: list[Observation]) -> AnalysisResult:
    """Group observations, extract common patterns and compute statistics."""
    if not observations:
        return AnalysisResult()
    return AnalysisResult(
        groups=group_observations(observations),
        patterns=extract_patterns(observations),
        statistics=generate_statistics(observations),
    )


# -- parameter types ----------------------------------------------------------


def infer_parameter_type(value: str) -> str:
    """Classify one sample value as boolean, number or string."""
    if value in ("true", "false"):
        return "boolean"
    if value == "":
        return "string"
    # A whitespace-only value coerces to 0.
    text = value.strip()
    if not text or _NUMBER.match(text):
        return "number"
    return "string"


def infer_parameter_types(samples: list[str]) -> dict:
    """Infer a schema fragment from sample values of one logical parameter.

    Disagreeing samples fall back to ``string`` with an ``anyOf`` of every
    type seen and up to three distinct example values.
    """
    if not samples:
        return {"type": "string"}

    types: dict[str, None] = {}
    unique_values: dict[str, None] = {}
    for sample in samples:
        unique_values[sample] = None
        types[infer_parameter_type(sample)] = None

    if len(types) == 1:
        return {"type": next(iter(types)), "example": next(iter(unique_values))}

    return {
        "type": "string",
        "anyOf": [{"type": t} for t in types],
        "examples": list(unique_values)[:MAX_EXAMPLES],
    }
