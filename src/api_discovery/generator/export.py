"""Serialization of synthesized documents to JSON and YAML."""

import json
import re
from datetime import datetime, timezone

import yaml

from api_discovery.generator.openapi import SpecificationDocument


class _NoAliasDumper(yaml.SafeDumper):
    """SafeDumper that never emits &anchors / *aliases."""

    def ignore_aliases(self, data):
        return True


def _as_dict(doc: SpecificationDocument | dict) -> dict:
    return doc.to_dict() if isinstance(doc, SpecificationDocument) else doc


def to_json(doc: SpecificationDocument | dict, indent: int = 2) -> str:
    return json.dumps(_as_dict(doc), indent=indent, ensure_ascii=False)


def to_yaml(doc: SpecificationDocument | dict) -> str:
    return yaml.dump(
        _as_dict(doc),
        Dumper=_NoAliasDumper,
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
    )


def render(doc: SpecificationDocument | dict, fmt: str) -> str:
    """Render a document as 'yaml' or 'json'."""
    if fmt == "json":
        return to_json(doc)
    return to_yaml(doc)


def sanitize_filename(value: str) -> str:
    value = re.sub(r"[^a-z0-9]", "-", value, flags=re.IGNORECASE)
    value = re.sub(r"-+", "-", value).strip("-")
    return value.lower()


def export_filename(prefix: str, extension: str, hostname: str = "api", now: datetime | None = None) -> str:
    """Build ``<prefix>-<hostname>-<YYYY-MM-DD-HH-MM-SS>.<extension>``."""
    now = now or datetime.now(timezone.utc)
    stamp = now.strftime("%Y-%m-%d-%H-%M-%S")
    return f"{prefix}-{sanitize_filename(hostname) or 'api'}-{stamp}.{extension}"
