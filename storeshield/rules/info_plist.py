from __future__ import annotations

import re
from typing import Any

from ..core.models import Finding, Severity, ValidationContext

REQUIRED_KEYS = [
    "CFBundleIdentifier",
    "CFBundleName",
    "CFBundleDisplayName",
    "CFBundleVersion",
    "CFBundleShortVersionString",
    "LSRequiresIPhoneOS",
]

_BUNDLE_ID_RE = re.compile(r"[a-zA-Z0-9.-]+")
_VERSION_RE = re.compile(r"\d+(\.\d+)*")
_URL_SCHEME_RE = re.compile(r"[a-zA-Z][a-zA-Z0-9+.-]*")

_MAX_BUNDLE_ID_LENGTH = 255
_MAX_DISPLAY_NAME_LENGTH = 30

_MINIMUM_SUPPORTED_OS = (12, 0)
_RECOMMENDED_MINIMUM_OS = "14.0"
_LATEST_SDK = (18, 0)

VALID_DEVICE_CAPABILITIES = {
    "accelerometer", "arm64", "armv7", "auto-focus-camera", "bluetooth-le",
    "camera-flash", "front-facing-camera", "gamekit", "gps", "gyroscope",
    "location-services", "magnetometer", "metal", "microphone", "nfc",
    "opengles-1", "opengles-2", "opengles-3", "peer-peer", "still-camera",
    "telephony", "video-camera", "wifi",
}


class InfoPlistRule:
    """Required Info.plist keys, identifier and version formats, device capabilities."""

    name = "info-plist-validation"
    description = "Validates Info.plist configuration and required keys"

    def evaluate(self, context: ValidationContext) -> list[Finding]:
        plist = context.info_plist
        findings: list[Finding] = []

        for key in REQUIRED_KEYS:
            if _is_missing(plist.get(key)):
                findings.append(self._finding(
                    Severity.CRITICAL,
                    f"Missing required key: {key}",
                    f"Info.plist is missing the required {key} key",
                    f"Add {key} to your Info.plist file",
                ))

        bundle_id = plist.get("CFBundleIdentifier")
        if not _is_missing(bundle_id):
            findings.extend(self._check_bundle_id(bundle_id))

        findings.extend(self._check_versions(plist))
        findings.extend(self._check_minimum_os(plist))

        display_name = plist.get("CFBundleDisplayName")
        if isinstance(display_name, str) and len(display_name) > _MAX_DISPLAY_NAME_LENGTH:
            findings.append(self._finding(
                Severity.HIGH,
                "App display name too long",
                f"Display name exceeds {_MAX_DISPLAY_NAME_LENGTH} characters: {len(display_name)}",
                f"Shorten the app display name to {_MAX_DISPLAY_NAME_LENGTH} characters or less",
            ))

        for scheme in url_schemes(plist):
            if not isinstance(scheme, str) or not _URL_SCHEME_RE.fullmatch(scheme):
                findings.append(self._finding(
                    Severity.MEDIUM,
                    "Invalid URL scheme format",
                    f"URL scheme contains invalid characters: {scheme}",
                    "URL schemes must start with a letter and contain only letters, numbers, +, -, and .",
                ))

        if plist.get("UIFileSharingEnabled") is True:
            findings.append(self._finding(
                Severity.MEDIUM,
                "File sharing enabled",
                "UIFileSharingEnabled is set to true",
                "Consider if file sharing is necessary for production app",
            ))

        if "DTXcode" in plist:
            findings.append(self._finding(
                Severity.INFO,
                "Development metadata present",
                "Info.plist contains development-time metadata",
                "This is normal for development builds",
            ))

        findings.extend(self._check_capabilities(plist.get("UIRequiredDeviceCapabilities")))
        return findings

    def _check_bundle_id(self, bundle_id: Any) -> list[Finding]:
        findings: list[Finding] = []
        if not isinstance(bundle_id, str) or not _BUNDLE_ID_RE.fullmatch(bundle_id):
            findings.append(self._finding(
                Severity.HIGH,
                "Invalid bundle identifier format",
                f"Bundle ID contains invalid characters: {bundle_id}",
                "Use reverse-DNS notation with only letters, numbers, dots, and hyphens",
            ))
        if not isinstance(bundle_id, str):
            return findings

        if len(bundle_id) > _MAX_BUNDLE_ID_LENGTH:
            findings.append(self._finding(
                Severity.HIGH,
                "Bundle identifier too long",
                f"Bundle ID exceeds {_MAX_BUNDLE_ID_LENGTH} characters: {len(bundle_id)}",
                f"Shorten your bundle identifier to {_MAX_BUNDLE_ID_LENGTH} characters or less",
            ))
        if ".." in bundle_id:
            findings.append(self._finding(
                Severity.HIGH,
                "Invalid bundle identifier format",
                "Bundle ID contains consecutive dots",
                "Remove consecutive dots from bundle identifier",
            ))
        return findings

    def _check_versions(self, plist) -> list[Finding]:
        findings: list[Finding] = []
        marketing = plist.get("CFBundleShortVersionString")
        if not _is_missing(marketing) and not _VERSION_RE.fullmatch(str(marketing)):
            findings.append(self._finding(
                Severity.HIGH,
                "Invalid marketing version format",
                f"Version should follow semantic versioning: {marketing}",
                "Use format like 1.0.0 or 2.1",
            ))

        build = plist.get("CFBundleVersion")
        if not _is_missing(build) and not _VERSION_RE.fullmatch(str(build)):
            findings.append(self._finding(
                Severity.HIGH,
                "Invalid build number format",
                f"Build number should be numeric: {build}",
                "Use numeric build numbers like 1, 42, or 1.0",
            ))
        return findings

    def _check_minimum_os(self, plist) -> list[Finding]:
        raw = plist.get("MinimumOSVersion") or plist.get("LSMinimumSystemVersion")
        if raw is None:
            return []
        version = parse_version(raw)
        if version is None:
            return [self._finding(
                Severity.MEDIUM,
                "Unparseable minimum iOS version",
                f"MinimumOSVersion is not a dotted number: {raw}",
                "Set MinimumOSVersion to a value like 15.0",
            )]

        if version < _MINIMUM_SUPPORTED_OS:
            return [self._finding(
                Severity.MEDIUM,
                "Very low minimum iOS version",
                f"Minimum iOS version {raw} is below recommended {_format_version(_MINIMUM_SUPPORTED_OS)}",
                f"Consider raising minimum iOS version to {_RECOMMENDED_MINIMUM_OS} for better security and features",
            )]
        if version > _LATEST_SDK:
            return [self._finding(
                Severity.HIGH,
                "Minimum iOS version too high",
                f"Minimum iOS version {raw} exceeds latest SDK {_format_version(_LATEST_SDK)}",
                "Lower the minimum iOS version to a supported version",
            )]
        return []

    def _check_capabilities(self, capabilities: Any) -> list[Finding]:
        if capabilities is None:
            return []
        # Either an array of names or a dict of name -> required flag
        names = list(capabilities.keys()) if isinstance(capabilities, dict) else capabilities
        if not isinstance(names, list):
            return [self._finding(
                Severity.MEDIUM,
                "Malformed device capabilities",
                f"UIRequiredDeviceCapabilities must be an array or dictionary, got {type(capabilities).__name__}",
                "Declare UIRequiredDeviceCapabilities as an array of capability names",
            )]

        findings: list[Finding] = []
        for capability in names:
            if capability not in VALID_DEVICE_CAPABILITIES:
                findings.append(self._finding(
                    Severity.MEDIUM,
                    "Unknown device capability",
                    f"Unknown capability: {capability}",
                    "Remove unknown capabilities or verify they are valid",
                ))
        return findings

    def _finding(self, severity: Severity, message: str, details: str, fix: str) -> Finding:
        return Finding(rule=self.name, severity=severity, message=message, details=details, fix=fix)


def _is_missing(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def parse_version(value: Any) -> tuple[int, ...] | None:
    """Parse "14.0" / "15" / 16.2 into a comparable tuple padded to two parts."""
    text = str(value).strip()
    if not _VERSION_RE.fullmatch(text):
        return None
    parts = tuple(int(p) for p in text.split("."))
    return parts + (0,) * (2 - len(parts)) if len(parts) < 2 else parts


def _format_version(version: tuple[int, ...]) -> str:
    return ".".join(str(p) for p in version)


def url_schemes(plist) -> list[Any]:
    """Flatten CFBundleURLTypes[*].CFBundleURLSchemes, tolerating malformed entries."""
    schemes: list[Any] = []
    url_types = plist.get("CFBundleURLTypes")
    if not isinstance(url_types, list):
        return schemes
    for url_type in url_types:
        if not isinstance(url_type, dict):
            continue
        entries = url_type.get("CFBundleURLSchemes")
        if isinstance(entries, list):
            schemes.extend(entries)
    return schemes
