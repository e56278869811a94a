"""Single-purpose Info.plist checks: background modes, assets, localization,
status bar configuration and export compliance."""
from __future__ import annotations

from ..core.models import Finding, FixType, Severity, ValidationContext

# "background-fetch" and "background-processing" are legacy spellings still seen in the wild
_SENSITIVE_BACKGROUND_MODES = [
    "audio",
    "location",
    "voip",
    "fetch",
    "processing",
    "background-fetch",
    "background-processing",
]

_ICON_KEYS = ("CFBundleIcons", "CFBundleIconFiles", "CFBundleIconName")
_LAUNCH_KEYS = ("UILaunchStoryboardName", "UILaunchImages", "UILaunchScreen")


class PermissionsRule:
    name = "permissions"
    description = "Validates app permissions and usage descriptions"

    def evaluate(self, context: ValidationContext) -> list[Finding]:
        modes = context.info_plist.get("UIBackgroundModes")
        if not isinstance(modes, list):
            return []

        findings: list[Finding] = []
        for mode in _SENSITIVE_BACKGROUND_MODES:
            if mode in modes:
                findings.append(Finding(
                    rule=self.name,
                    severity=Severity.MEDIUM,
                    message=f"App uses sensitive background mode: {mode}",
                    details="Ensure this is essential for core functionality",
                    fix="Provide clear justification for background processing in App Review notes",
                ))
        return findings


class AssetsRule:
    name = "assets"
    description = "Validates app icons and required assets"

    def evaluate(self, context: ValidationContext) -> list[Finding]:
        plist = context.info_plist
        findings: list[Finding] = []

        if not any(plist.get(key) for key in _ICON_KEYS):
            findings.append(Finding(
                rule=self.name,
                severity=Severity.INFO,
                message="App icon configuration reminder",
                details="Ensure your app has properly configured icons before App Store submission",
                fix=(
                    "Verify the app icon appears correctly on device and configure CFBundleIcons, "
                    "CFBundleIconName or CFBundleIconFiles in Info.plist if needed"
                ),
                fix_type=FixType.MANUAL,
            ))

        if not any(key in plist for key in _LAUNCH_KEYS):
            findings.append(Finding(
                rule=self.name,
                severity=Severity.MEDIUM,
                message="No launch screen configuration found",
                details="Launch screen is required for modern iOS apps",
                fix="Add LaunchScreen.storyboard (UILaunchStoryboardName) or a UILaunchScreen dictionary",
            ))
        return findings


class LocalizationRule:
    name = "localization"
    description = "Validates localization and internationalization"

    def evaluate(self, context: ValidationContext) -> list[Finding]:
        languages = context.info_plist.get("CFBundleLocalizations")
        if not isinstance(languages, list) or len(languages) <= 1:
            return []
        return [Finding(
            rule=self.name,
            severity=Severity.INFO,
            message=f"App supports {len(languages)} languages",
            details=f"Languages: {', '.join(str(lang) for lang in languages)}",
            fix="Ensure all localizations are complete and accurate",
            fix_type=FixType.MANUAL,
        )]


class PerformanceRule:
    name = "performance"
    description = "Validates performance-related configurations"

    def evaluate(self, context: ValidationContext) -> list[Finding]:
        if context.info_plist.get("UIViewControllerBasedStatusBarAppearance") is not False:
            return []
        return [Finding(
            rule=self.name,
            severity=Severity.LOW,
            message="Using deprecated status bar configuration",
            details="UIViewControllerBasedStatusBarAppearance is set to false",
            fix="Use view controller-based status bar appearance",
        )]


class ContentPolicyRule:
    name = "content-policy"
    description = "Validates content policy compliance"

    def evaluate(self, context: ValidationContext) -> list[Finding]:
        plist = context.info_plist
        if "ITSAppUsesNonExemptEncryption" not in plist:
            return [Finding(
                rule=self.name,
                severity=Severity.MEDIUM,
                message="Export compliance not declared",
                details="ITSAppUsesNonExemptEncryption not set",
                fix="Declare export compliance status in Info.plist",
            )]

        if plist["ITSAppUsesNonExemptEncryption"] is True and "ITSEncryptionExportComplianceCode" not in plist:
            return [Finding(
                rule=self.name,
                severity=Severity.LOW,
                message="Non-exempt encryption declared without export compliance code",
                details="ITSAppUsesNonExemptEncryption is true but ITSEncryptionExportComplianceCode is not set",
                fix="Add the compliance code issued for your encryption documentation",
            )]
        return []
