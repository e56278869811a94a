"""Extractor for .ipa archives.

Only the central directory is walked up front; entry data is streamed on
demand, so large archives are never held in memory. Only manifests at the
root of the primary Payload/<Name>.app component count. Entries inside
PlugIns/, Watch/, Frameworks/ or resource bundles never match.
"""
from __future__ import annotations

import re
import shutil
import zipfile
from pathlib import Path, PurePosixPath
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

_COMPONENT = r"^(?P<component>Payload/[^/]+\.app)/"
_INFO_RE = re.compile(_COMPONENT + re.escape(INFO_PLIST) + "$")
_PRIVACY_RE = re.compile(_COMPONENT + re.escape(PRIVACY_MANIFEST) + "$")
_ENTITLEMENTS_RE = re.compile(_COMPONENT + re.escape(ENTITLEMENTS) + "$")

_READ_ERRORS = (zipfile.BadZipFile, OSError, RuntimeError, NotImplementedError, EOFError)


class ArchiveExtractor:
    """Locates and decodes the primary app's manifests inside an .ipa."""

    name = "archive"

    def extract(self, archive_path: Path) -> ExtractedArtifacts:
        try:
            zf = zipfile.ZipFile(archive_path, "r")
        except (zipfile.BadZipFile, OSError) as e:
            raise ExtractionError(f"Could not open IPA file: {e}") from e

        with zf:
            info_entry, privacy_entry, entitlements_entry = _scan_entries(zf)
            if info_entry is None:
                raise ManifestMissing(f"Main app {INFO_PLIST} not found in IPA file")

            component = _INFO_RE.match(info_entry.filename).group("component")

            try:
                data = _read_entry(zf, info_entry)
            except _READ_ERRORS as e:
                raise ExtractionError(f"Error reading IPA file: {e}") from e
            try:
                info_plist = decode_plist(data, INFO_PLIST)
            except PlistDecodeError as e:
                raise ManifestUnparseable(f"Could not parse {e}") from e

            artifacts = ExtractedArtifacts(info_plist=info_plist, app_bundle=component)

            if privacy_entry is not None:
                artifacts.privacy_manifest_found = True
                artifacts.privacy_manifest = _load_optional(zf, privacy_entry, "privacy manifest", artifacts.warnings)
            if entitlements_entry is not None:
                artifacts.entitlements = _load_optional(zf, entitlements_entry, "entitlements", artifacts.warnings)

        return artifacts


def _scan_entries(
    zf: zipfile.ZipFile,
) -> tuple[zipfile.ZipInfo | None, zipfile.ZipInfo | None, zipfile.ZipInfo | None]:
    """Walk entries in archive order. Return (info, privacy, entitlements) for the primary app.

    Stops as soon as all three are known for the primary component.
    """
    info: zipfile.ZipInfo | None = None
    privacy: dict[str, zipfile.ZipInfo] = {}
    entitlements: dict[str, zipfile.ZipInfo] = {}

    for entry in zf.infolist():
        name = entry.filename
        if entry.is_dir():
            continue
        if info is None:
            m = _INFO_RE.match(name)
            if m:
                info = entry
        m = _PRIVACY_RE.match(name)
        if m:
            privacy.setdefault(m.group("component"), entry)
        m = _ENTITLEMENTS_RE.match(name)
        if m:
            entitlements.setdefault(m.group("component"), entry)

        if info is not None:
            component = _INFO_RE.match(info.filename).group("component")
            if component in privacy and component in entitlements:
                break

    if info is None:
        return None, None, None
    component = _INFO_RE.match(info.filename).group("component")
    return info, privacy.get(component), entitlements.get(component)


def _read_entry(zf: zipfile.ZipFile, entry: zipfile.ZipInfo) -> bytes:
    if entry.file_size > MAX_MANIFEST_BYTES:
        raise ManifestUnparseable(f"Could not parse {entry.filename}: entry is {entry.file_size} bytes")
    with zf.open(entry, "r") as f:
        return f.read(MAX_MANIFEST_BYTES + 1)


def _load_optional(
    zf: zipfile.ZipFile, entry: zipfile.ZipInfo, label: str, warnings: list[str],
) -> dict[str, Any] | None:
    try:
        return decode_plist(_read_entry(zf, entry), entry.filename)
    except (*_READ_ERRORS, ExtractionError, PlistDecodeError) as e:
        warnings.append(f"Could not parse {label}: {e}")
        return None


def materialize_component(archive_path: Path, component: str, dest_dir: Path) -> Path:
    """Extract one Payload/<Name>.app component into dest_dir and return its path.

    Entries that would escape dest_dir are skipped.
    """
    prefix = component.rstrip("/") + "/"
    dest_root = dest_dir.resolve()
    try:
        with zipfile.ZipFile(archive_path, "r") as zf:
            for entry in zf.infolist():
                name = entry.filename
                if not name.startswith(prefix):
                    continue
                parts = PurePosixPath(name).parts
                if name.startswith("/") or ".." in parts:
                    continue
                target = dest_root.joinpath(*parts)
                if entry.is_dir():
                    target.mkdir(parents=True, exist_ok=True)
                    continue
                target.parent.mkdir(parents=True, exist_ok=True)
                with zf.open(entry, "r") as src, open(target, "wb") as dst:
                    shutil.copyfileobj(src, dst)
    except _READ_ERRORS as e:
        raise ExtractionError(f"Could not extract {component}: {e}") from e
    return dest_root.joinpath(*PurePosixPath(component).parts)
