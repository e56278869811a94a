"""Extractor for unpacked .app bundle directories."""
from __future__ import annotations

from pathlib import Path
from typing import Any

from ..core.models import ExtractedArtifacts
from .plist import (
    ENTITLEMENTS,
    INFO_PLIST,
    MAX_MANIFEST_BYTES,
    PRIVACY_MANIFEST,
    ExtractionError,
    ManifestMissing,
    ManifestUnparseable,
    PlistDecodeError,
    decode_plist,
)


class BundleExtractor:
    """Reads Info.plist and the optional auxiliary manifests from a .app directory."""

    name = "bundle"

    def extract(self, bundle_path: Path) -> ExtractedArtifacts:
        if not bundle_path.is_dir():
            raise ExtractionError(f"Could not open app bundle: {bundle_path} is not a directory")

        info_path = bundle_path / INFO_PLIST
        if not info_path.is_file():
            raise ManifestMissing(f"{INFO_PLIST} not found in app bundle {bundle_path}")

        try:
            size = info_path.stat().st_size
            if size > MAX_MANIFEST_BYTES:
                raise ManifestUnparseable(f"Could not parse {INFO_PLIST}: entry is {size} bytes")
            data = info_path.read_bytes()
        except OSError as e:
            raise ExtractionError(f"Could not read {info_path}: {e}") from e

        try:
            info_plist = decode_plist(data, INFO_PLIST)
        except PlistDecodeError as e:
            raise ManifestUnparseable(f"Could not parse {e}") from e

        artifacts = ExtractedArtifacts(info_plist=info_plist, app_bundle=str(bundle_path))

        privacy_path = bundle_path / PRIVACY_MANIFEST
        if privacy_path.is_file():
            artifacts.privacy_manifest_found = True
            artifacts.privacy_manifest = _load_optional(privacy_path, "privacy manifest", artifacts.warnings)

        entitlements_path = bundle_path / ENTITLEMENTS
        if entitlements_path.is_file():
            artifacts.entitlements = _load_optional(entitlements_path, "entitlements", artifacts.warnings)

        return artifacts


def _load_optional(path: Path, label: str, warnings: list[str]) -> dict[str, Any] | None:
    """Decode an auxiliary manifest. Failures become warnings, never errors."""
    try:
        return decode_plist(path.read_bytes(), path.name)
    except (OSError, PlistDecodeError) as e:
        warnings.append(f"Could not parse {label}: {e}")
        return None
