"""Account deletion reminders for apps that appear to have user accounts.

Detection is heuristic, so findings here are advisory: a reminder and a
checklist rather than hard failures.
"""
from __future__ import annotations

from ..core.models import Finding, FixType, MetadataDocument, Severity, ValidationContext
from .info_plist import url_schemes

_SOCIAL_SCHEMES = ["fb", "google", "twitter", "linkedin", "apple"]
_ACCOUNT_TERMS = ["login", "account", "register", "signup", "sign up", "profile"]
_DELETION_TERMS = ["delete", "deletion", "remove account", "close account"]

_ICLOUD_ENTITLEMENT_PREFIXES = ("com.apple.developer.icloud", "com.apple.developer.ubiquity")
_SIGN_IN_WITH_APPLE = "com.apple.developer.applesignin"

_CHECKLIST = "\n".join([
    "- Account deletion option is easily discoverable in app settings",
    "- Deletion removes all personal data and user-generated content",
    "- Process completes within 30 days of request",
    "- Users receive confirmation of deletion",
    "- Option to download data before deletion (if required by law)",
])


class AccountDeletionRule:
    name = "account-deletion"
    description = "Validates account deletion requirements for apps with user accounts"

    def evaluate(self, context: ValidationContext) -> list[Finding]:
        findings: list[Finding] = []
        metadata = context.metadata
        indicators = detect_account_indicators(context)

        if indicators:
            findings.append(Finding(
                rule=self.name,
                severity=Severity.INFO,
                message="App appears to use accounts - ensure account deletion is implemented",
                details=f"Indicators: {', '.join(indicators)}",
                fix="Implement in-app account deletion or provide deletion instructions accessible within the app",
                fix_type=FixType.MANUAL,
            ))
            if metadata is not None:
                findings.append(self._deletion_mention(metadata))
            findings.append(Finding(
                rule=self.name,
                severity=Severity.INFO,
                message="Account deletion implementation checklist",
                details="Verify the following account deletion requirements are met",
                fix=_CHECKLIST,
                fix_type=FixType.MANUAL,
            ))

        if metadata is not None:
            findings.append(self._contact_url(metadata))
        return findings

    def _deletion_mention(self, metadata: MetadataDocument) -> Finding:
        description = _text(metadata.description)
        if any(term in description for term in _DELETION_TERMS):
            return Finding(
                rule=self.name,
                severity=Severity.INFO,
                message="App metadata mentions account deletion",
                details="App appears to address account deletion requirements",
                fix="Ensure the deletion process is easily accessible within the app",
                fix_type=FixType.MANUAL,
            )
        return Finding(
            rule=self.name,
            severity=Severity.LOW,
            message="No account deletion mentioned in app metadata",
            details="Consider adding information about account deletion in app description",
            fix="Update app description to mention account deletion capabilities",
        )

    def _contact_url(self, metadata: MetadataDocument) -> Finding:
        if metadata.privacy_policy_url or metadata.support_url:
            return Finding(
                rule=self.name,
                severity=Severity.INFO,
                message="Privacy policy or support URL provided",
                details="Users can contact for account deletion if not available in-app",
                fix="Ensure support contacts can handle account deletion requests",
                fix_type=FixType.MANUAL,
            )
        return Finding(
            rule=self.name,
            severity=Severity.MEDIUM,
            message="No privacy policy or support URL provided",
            details="Users need a way to reach you about their data and account deletion",
            fix="Add privacyPolicyUrl or supportUrl to the app metadata",
        )


def detect_account_indicators(context: ValidationContext) -> list[str]:
    plist = context.info_plist
    indicators: list[str] = []

    if "NSUserTrackingUsageDescription" in plist:
        indicators.append("User tracking permission")
    if "NSContactsUsageDescription" in plist:
        indicators.append("Contacts access")

    for scheme in url_schemes(plist):
        if isinstance(scheme, str) and any(social in scheme.lower() for social in _SOCIAL_SCHEMES):
            indicators.append(f"Social login URL scheme: {scheme}")

    metadata = context.metadata
    if metadata is not None:
        haystacks = [_text(metadata.app_name), _text(metadata.description)]
        if isinstance(metadata.keywords, list):
            haystacks.extend(_text(k) for k in metadata.keywords)
        for term in _ACCOUNT_TERMS:
            if any(term in h for h in haystacks):
                indicators.append(f"Account-related term in metadata: {term}")
                break

    entitlements = context.artifacts.entitlements or {}
    if any(key.startswith(_ICLOUD_ENTITLEMENT_PREFIXES) for key in entitlements):
        indicators.append("iCloud integration")
    if _SIGN_IN_WITH_APPLE in entitlements:
        indicators.append("Sign in with Apple")

    return indicators


def _text(value) -> str:
    return value.lower() if isinstance(value, str) else ""
