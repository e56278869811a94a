from __future__ import annotations

import re
from typing import Any

from ..core.models import Finding, Severity, ValidationContext
from .constants import PRIVACY_MANIFEST_DOCS, PRIVACY_PERMISSION_KEYS

_MIN_DESCRIPTION_LENGTH = 30

_GENERIC_PHRASES = [
    "for easy authentication",
    "to access camera",
    "to access location",
    "app needs this",
    "required for functionality",
]

# Leftovers from templates or unexpanded build variables
_PLACEHOLDER_RE = re.compile(r"\b(TODO|FIXME|TBD|XXX|lorem ipsum)\b|\$\(|\{\{|<insert", re.IGNORECASE)

_ALWAYS_DEPRECATED = "NSLocationAlwaysUsageDescription"
_ALWAYS_AND_WHEN_IN_USE = "NSLocationAlwaysAndWhenInUseUsageDescription"
_WHEN_IN_USE = "NSLocationWhenInUseUsageDescription"


class PrivacyComplianceRule:
    """Privacy manifest presence, permission purpose strings, and location key pairing."""

    name = "privacy-compliance"
    description = "Validates privacy compliance requirements"

    def evaluate(self, context: ValidationContext) -> list[Finding]:
        plist = context.info_plist
        findings: list[Finding] = []

        manifest_finding = self._check_privacy_manifest(context)
        if manifest_finding:
            findings.append(manifest_finding)

        findings.extend(self._check_permission_descriptions(plist))
        findings.extend(self._check_location_keys(plist))

        manifest = context.artifacts.privacy_manifest
        if manifest is not None:
            findings.extend(self._check_manifest_contents(manifest))
        return findings

    def _check_privacy_manifest(self, context: ValidationContext) -> Finding | None:
        artifacts = context.artifacts
        if artifacts.privacy_manifest is not None:
            return None
        if artifacts.privacy_manifest_found:
            return Finding(
                rule=self.name,
                severity=Severity.LOW,
                message="Privacy manifest could not be parsed",
                details="PrivacyInfo.xcprivacy is present but is not a valid property list",
                fix="Open PrivacyInfo.xcprivacy in Xcode and re-save it as a valid property list",
            )

        requested = [key for key in PRIVACY_PERMISSION_KEYS if key in context.info_plist]
        if not requested:
            return Finding(
                rule=self.name,
                severity=Severity.INFO,
                message="Privacy manifest not found, but may not be required",
                details="Your app may not use privacy-impacting APIs that require a manifest",
                fix=f"Review if your app uses required reason APIs: {PRIVACY_MANIFEST_DOCS}",
            )

        return Finding(
            rule=self.name,
            severity=Severity.HIGH,
            message="Privacy manifest (PrivacyInfo.xcprivacy) not found",
            details=f"Required for apps using privacy-impacting APIs; declared permissions: {', '.join(requested)}",
            fix="Add PrivacyInfo.xcprivacy to your app bundle root directory",
        )

    def _check_permission_descriptions(self, plist) -> list[Finding]:
        findings: list[Finding] = []
        for key in PRIVACY_PERMISSION_KEYS:
            if key not in plist:
                continue
            description = plist[key]

            if not isinstance(description, str) or not description.strip():
                findings.append(Finding(
                    rule=self.name,
                    severity=Severity.MEDIUM,
                    message=f"{key} description is empty",
                    details=f"Current value: {description!r}",
                    fix="Provide a clear explanation of why this permission is needed",
                ))
                continue

            if len(description) < _MIN_DESCRIPTION_LENGTH:
                findings.append(Finding(
                    rule=self.name,
                    severity=Severity.MEDIUM,
                    message=f"{key} description too short",
                    details=f'Current: "{description}" ({len(description)} characters)',
                    fix=(
                        "Provide a clear, detailed explanation of why this permission is needed "
                        f"(minimum {_MIN_DESCRIPTION_LENGTH} characters)"
                    ),
                ))

            lowered = description.lower()
            if any(phrase in lowered for phrase in _GENERIC_PHRASES):
                findings.append(Finding(
                    rule=self.name,
                    severity=Severity.LOW,
                    message=f"{key} has generic description",
                    details=f'Consider providing more specific explanation: "{description}"',
                    fix="Explain specifically how your app uses this permission",
                ))

            if _PLACEHOLDER_RE.search(description):
                findings.append(Finding(
                    rule=self.name,
                    severity=Severity.MEDIUM,
                    message=f"{key} contains placeholder text",
                    details=f'Current: "{description}"',
                    fix="Replace the placeholder with the final user-facing explanation",
                ))
        return findings

    def _check_location_keys(self, plist) -> list[Finding]:
        findings: list[Finding] = []
        has_when_in_use = _WHEN_IN_USE in plist

        if _ALWAYS_DEPRECATED in plist and not has_when_in_use:
            findings.append(Finding(
                rule=self.name,
                severity=Severity.HIGH,
                message=f"Deprecated {_ALWAYS_DEPRECATED} without {_WHEN_IN_USE}",
                details="Apps requesting always-on location must also declare the when-in-use purpose string",
                fix=f"Add {_WHEN_IN_USE} and {_ALWAYS_AND_WHEN_IN_USE} to Info.plist",
            ))

        if _ALWAYS_AND_WHEN_IN_USE in plist and not has_when_in_use:
            findings.append(Finding(
                rule=self.name,
                severity=Severity.HIGH,
                message=f"{_ALWAYS_AND_WHEN_IN_USE} declared without {_WHEN_IN_USE}",
                details="The system will not prompt for location access without the when-in-use purpose string",
                fix=f"Add {_WHEN_IN_USE} to Info.plist",
            ))

        if _ALWAYS_AND_WHEN_IN_USE in plist and has_when_in_use:
            findings.append(Finding(
                rule=self.name,
                severity=Severity.MEDIUM,
                message="App requests both always and when-in-use location access",
                details="Consider if always access is truly necessary for core functionality",
                fix="Use most restrictive location permission possible",
            ))
        return findings

    def _check_manifest_contents(self, manifest: dict[str, Any]) -> list[Finding]:
        findings: list[Finding] = []

        if manifest.get("NSPrivacyTracking") is True and not manifest.get("NSPrivacyTrackingDomains"):
            findings.append(Finding(
                rule=self.name,
                severity=Severity.MEDIUM,
                message="Privacy manifest declares tracking without tracking domains",
                details="NSPrivacyTracking is true but NSPrivacyTrackingDomains is empty or missing",
                fix="List every domain used for tracking in NSPrivacyTrackingDomains",
            ))

        api_types = manifest.get("NSPrivacyAccessedAPITypes") or []
        if isinstance(api_types, list):
            for entry in api_types:
                if not isinstance(entry, dict):
                    continue
                api = entry.get("NSPrivacyAccessedAPIType", "<unnamed>")
                if not entry.get("NSPrivacyAccessedAPITypeReasons"):
                    findings.append(Finding(
                        rule=self.name,
                        severity=Severity.MEDIUM,
                        message=f"Required reason API {api} has no declared reason",
                        details="Each NSPrivacyAccessedAPITypes entry needs NSPrivacyAccessedAPITypeReasons",
                        fix=f"Add an approved reason code for {api}: {PRIVACY_MANIFEST_DOCS}",
                    ))
        return findings
