"""Capture-side filters: API request detection and header redaction."""

from .base import Observation

API_URL_MARKERS = ("/api/", "/rest/", "/graphql", "/v1/", "/v2/", "/v3/", ".json")

SENSITIVE_HEADERS = (
    "authorization",
    "cookie",
    "set-cookie",
    "x-api-key",
    "x-csrf-token",
    "x-auth-token",
    "x-access-token",
    "x-refresh-token",
    "x-session-id",
)

REDACTED = "[REDACTED]"


def is_api_request(observation: Observation) -> bool:
    """Return True when the URL looks like an API call or the response is JSON."""
    url = observation.url.lower()
    if any(marker in url for marker in API_URL_MARKERS):
        return True
    return observation.content_type in ("application/json", "text/json")


def redact_headers(headers: dict[str, str]) -> dict[str, str]:
    """Replace sensitive header values, keeping the names for auth inference."""
    return {
        name: REDACTED if name.lower() in SENSITIVE_HEADERS else value
        for name, value in headers.items()
    }


def prepare(observations: list[Observation], api_only: bool = False, redact: bool = True) -> list[Observation]:
    """Apply the capture filters to a loaded snapshot, preserving order."""
    result = []
    for obs in observations:
        if api_only and not is_api_request(obs):
            continue
        if redact and obs.headers:
            obs = obs.model_copy(update={"headers": redact_headers(obs.headers)})
        result.append(obs)
    return result
