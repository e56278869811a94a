from __future__ import annotations

from urllib.parse import urlparse

from ..core.models import Finding, MetadataDocument, Severity, ValidationContext
from .constants import APP_NAME_MAX_LENGTH, DESCRIPTION_MIN_LENGTH, KEYWORDS_MAX_LENGTH


class MetadataRule:
    """App Store listing checks. Needs a metadata document; without one it only reports that."""

    name = "metadata"
    description = "Validates App Store metadata requirements"

    def evaluate(self, context: ValidationContext) -> list[Finding]:
        metadata = context.metadata
        if metadata is None:
            return [Finding(
                rule=self.name,
                severity=Severity.INFO,
                message="No metadata file provided for validation",
                details="Provide metadata.json for comprehensive validation",
                fix="Create metadata.json with app description, keywords, etc.",
            )]

        findings: list[Finding] = []

        app_name = metadata.app_name
        if isinstance(app_name, str) and len(app_name) > APP_NAME_MAX_LENGTH:
            findings.append(Finding(
                rule=self.name,
                severity=Severity.HIGH,
                message=f"App name exceeds {APP_NAME_MAX_LENGTH} character limit",
                details=f"Current length: {len(app_name)}",
                fix=f"Shorten app name to {APP_NAME_MAX_LENGTH} characters or less",
            ))

        description = metadata.description
        if isinstance(description, str) and len(description) < DESCRIPTION_MIN_LENGTH:
            findings.append(Finding(
                rule=self.name,
                severity=Severity.LOW,
                message="App description is very short",
                details=f"Current length: {len(description)}",
                fix="Provide a more detailed app description",
            ))

        findings.extend(self._check_keywords(metadata))
        findings.extend(self._check_urls(metadata))
        return findings

    def _check_keywords(self, metadata: MetadataDocument) -> list[Finding]:
        keywords = metadata.keywords
        if keywords is None:
            return []
        if not isinstance(keywords, list) or not all(isinstance(k, str) for k in keywords):
            return [Finding(
                rule=self.name,
                severity=Severity.MEDIUM,
                message="Keywords must be a list of strings",
                details=f"Got: {keywords!r}",
                fix='Provide keywords as a JSON array, e.g. ["photo", "editor"]',
            )]

        keyword_string = ",".join(keywords)
        if len(keyword_string) > KEYWORDS_MAX_LENGTH:
            return [Finding(
                rule=self.name,
                severity=Severity.MEDIUM,
                message=f"Keywords exceed {KEYWORDS_MAX_LENGTH} character limit",
                details=f"Current length: {len(keyword_string)}",
                fix=f"Reduce keywords to fit within {KEYWORDS_MAX_LENGTH} characters",
            )]
        return []

    def _check_urls(self, metadata: MetadataDocument) -> list[Finding]:
        findings: list[Finding] = []
        for field_name, value in (("privacyPolicyUrl", metadata.privacy_policy_url), ("supportUrl", metadata.support_url)):
            if value is None:
                continue
            if not _is_web_url(value):
                findings.append(Finding(
                    rule=self.name,
                    severity=Severity.LOW,
                    message=f"{field_name} is not a valid web URL",
                    details=f"Current value: {value!r}",
                    fix="Use an absolute http:// or https:// URL",
                ))
        return findings


def _is_web_url(value) -> bool:
    if not isinstance(value, str):
        return False
    parsed = urlparse(value.strip())
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)
