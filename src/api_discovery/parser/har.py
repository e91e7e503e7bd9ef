"""HAR 1.2 archive parser.

Parses browser-exported HTTP Archive files into Observation models.
"""

from pathlib import Path

from .base import Observation, ObservationLoadError
from .records import build_observations, read_json


def parse_har(file_path: Path) -> list[Observation]:
    """Parse a HAR file into a list of Observation, in entry order."""
    data = read_json(file_path)
    log = data.get("log") if isinstance(data, dict) else None
    if not isinstance(log, dict):
        raise ObservationLoadError(f"{file_path}: missing HAR 'log' object")

    entries = log.get("entries") or []
    if not isinstance(entries, list):
        raise ObservationLoadError(f"{file_path}: HAR 'entries' is not a list")

    records = [_entry_to_record(entry) for entry in entries if isinstance(entry, dict)]
    return build_observations(records)


def _entry_to_record(entry: dict) -> dict:
    request = _mapping(entry.get("request"))
    response = _mapping(entry.get("response"))
    content = _mapping(response.get("content"))

    record = {
        "url": request.get("url"),
        "method": request.get("method", "GET"),
        "status": response.get("status"),
        "contentType": content.get("mimeType") or _header(response.get("headers"), "content-type"),
        "timestamp": entry.get("startedDateTime"),
        "responseSize": _response_size(response, content),
        "headers": _pairs_to_dict(request.get("headers")),
    }
    query = _pairs_to_dict(request.get("queryString"))
    if query:
        record["queryParams"] = query
    return record


def _mapping(value) -> dict:
    return value if isinstance(value, dict) else {}


def _pairs(value) -> list[dict]:
    if not isinstance(value, list):
        return []
    return [p for p in value if isinstance(p, dict) and isinstance(p.get("name"), str)]


def _pairs_to_dict(pairs) -> dict[str, str]:
    return {p["name"]: p.get("value", "") for p in _pairs(pairs)}


def _header(headers, name: str) -> str | None:
    for h in _pairs(headers):
        if h["name"].lower() == name:
            return h.get("value")
    return None


def _response_size(response: dict, content: dict) -> int:
    # HAR uses -1 for "unknown".
    for value in (content.get("size"), response.get("bodySize")):
        if isinstance(value, int) and value >= 0:
            return value
    return 0
