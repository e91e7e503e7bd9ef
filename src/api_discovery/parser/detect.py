"""Auto-detect observation file format and load with the matching parser."""

import json
from pathlib import Path

from .base import Observation
from .har import parse_har
from .records import parse_observations

FORMATS = ("har", "observations")


def detect_format(file_path: Path) -> str:
    """Detect the format of an observation file.

    Returns: 'har' or 'observations'.
    """
    if file_path.suffix.lower() == ".har":
        return "har"

    try:
        data = json.loads(file_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError, UnicodeDecodeError):
        # Let the native parser report the real error.
        return "observations"

    if isinstance(data, dict) and isinstance(data.get("log"), dict) and "entries" in data["log"]:
        return "har"
    return "observations"


def load_observations(file_path: Path, fmt: str = "auto") -> list[Observation]:
    """Load observations from a file, detecting the format when ``fmt`` is 'auto'.

    Raises ObservationLoadError when the file cannot be read or decoded.
    """
    if fmt == "auto":
        fmt = detect_format(file_path)
    if fmt not in FORMATS:
        raise ValueError(f"Unknown observation format: {fmt!r}")

    if fmt == "har":
        return parse_har(file_path)
    return parse_observations(file_path)
