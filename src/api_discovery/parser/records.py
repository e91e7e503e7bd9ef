"""Native observation dump parser.

Reads the JSON records written by the capture layer: either a bare list of
records or an object holding them under ``endpoints`` / ``observations``.
"""

import json
import logging
from pathlib import Path

from pydantic import ValidationError

from .base import Observation, ObservationLoadError

logger = logging.getLogger(__name__)

RECORD_KEYS = ("endpoints", "observations")


def parse_observations(file_path: Path) -> list[Observation]:
    """Parse a native observation dump into a list of Observation."""
    data = read_json(file_path)

    if isinstance(data, dict):
        for key in RECORD_KEYS:
            if isinstance(data.get(key), list):
                data = data[key]
                break
        else:
            raise ObservationLoadError(f"{file_path}: no observation list found")

    if not isinstance(data, list):
        raise ObservationLoadError(f"{file_path}: expected a list of observations")

    return build_observations(data)


def build_observations(records: list) -> list[Observation]:
    """Validate raw records, skipping the ones that cannot form an Observation.

    Input order is preserved; synthesis depends on it.
    """
    observations = []
    for index, record in enumerate(records):
        if not isinstance(record, dict) or "url" not in record:
            logger.warning("Skipping record %d: not an observation", index)
            continue
        try:
            observations.append(Observation.model_validate(record))
        except ValidationError as e:
            logger.warning("Skipping record %d: %s", index, e.errors()[0]["msg"])
    return observations


def read_json(file_path: Path):
    try:
        text = file_path.read_text(encoding="utf-8")
    except OSError as e:
        raise ObservationLoadError(f"{file_path}: {e.strerror or e}") from e
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise ObservationLoadError(f"{file_path}: invalid JSON ({e.msg}, line {e.lineno})") from e
