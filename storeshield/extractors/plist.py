"""Property-list decoding shared by the bundle and archive extractors."""
from __future__ import annotations

import plistlib
from typing import Any
from xml.parsers.expat import ExpatError

INFO_PLIST = "Info.plist"
PRIVACY_MANIFEST = "PrivacyInfo.xcprivacy"
ENTITLEMENTS = "archived-expanded-entitlements.xcent"

# Manifests larger than this are not a real Info.plist
MAX_MANIFEST_BYTES = 8 * 1024 * 1024


class ExtractionError(Exception):
    """Raised when the package cannot be opened or its manifest cannot be read."""


class ManifestMissing(ExtractionError):
    """Raised when the primary Info.plist is absent."""


class ManifestUnparseable(ExtractionError):
    """Raised when the primary Info.plist exists but cannot be decoded."""


class PlistDecodeError(ValueError):
    pass


def decode_plist(data: bytes, name: str) -> dict[str, Any]:
    """Decode a binary or XML property list into an ordered dict.

    Keys are kept in document order and unknown keys pass through untouched.
    """
    try:
        value = plistlib.loads(data)
    except (plistlib.InvalidFileException, ExpatError, ValueError, TypeError, OverflowError) as e:
        raise PlistDecodeError(f"{name}: {e}") from e

    if not isinstance(value, dict):
        raise PlistDecodeError(f"{name}: expected a dictionary at top level, got {type(value).__name__}")
    return value
