from __future__ import annotations

import json
from pathlib import Path

import yaml

from .models import MetadataDocument


class MetadataLoadError(Exception):
    """Raised when a metadata document is missing or malformed."""


def load_metadata(path: Path | str | None) -> MetadataDocument | None:
    """Load the listing metadata document, or return None when no path is given.

    JSON is the documented format; .yaml/.yml files are read with PyYAML.
    """
    if path is None:
        return None
    path = Path(path)

    if not path.is_file():
        raise MetadataLoadError(f"Metadata file does not exist: {path}")
    try:
        text = path.read_text(encoding="utf-8-sig")
    except OSError as e:
        raise MetadataLoadError(f"Could not read metadata file {path}: {e}") from e
    except UnicodeDecodeError as e:
        raise MetadataLoadError(f"Metadata file {path} is not valid UTF-8: {e}") from e

    if path.suffix in (".yaml", ".yml"):
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise MetadataLoadError(f"Invalid YAML in {path}: {e}") from e
    else:
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise MetadataLoadError(
                f"Invalid JSON in {path}: {e.msg} (line {e.lineno} column {e.colno})"
            ) from e

    if not isinstance(data, dict):
        raise MetadataLoadError(f"{path}: expected an object at top level, got {type(data).__name__}")

    return MetadataDocument.from_mapping(data)
