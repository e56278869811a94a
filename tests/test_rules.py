"""Built-in rule behavior against hand-built contexts (no extraction involved)."""
import random
import string
from pathlib import Path

import pytest

from storeshield.core.models import (
    BuildContext,
    ExtractedArtifacts,
    FixType,
    MetadataDocument,
    PackageKind,
    PackageReference,
    Severity,
    ValidationContext,
)
from storeshield.rules import (
    AccountDeletionRule,
    AssetsRule,
    ContentPolicyRule,
    InfoPlistRule,
    LocalizationRule,
    MetadataRule,
    PerformanceRule,
    PermissionsRule,
    PrivacyComplianceRule,
)
from storeshield.rules.info_plist import parse_version

from conftest import VALID_INFO


def _context(info=None, metadata=None, privacy=None, privacy_found=None, entitlements=None, build=None):
    artifacts = ExtractedArtifacts(
        info_plist=dict(VALID_INFO if info is None else info),
        app_bundle="/builds/TestApp.app",
        privacy_manifest=privacy,
        privacy_manifest_found=privacy is not None if privacy_found is None else privacy_found,
        entitlements=entitlements,
    )
    package = PackageReference(path=Path("/builds/TestApp.app"), kind=PackageKind.BUNDLE)
    meta = MetadataDocument.from_mapping(metadata) if metadata is not None else None
    return ValidationContext.build(package, artifacts, meta, build or BuildContext())


def _messages(findings):
    return [f.message for f in findings]


# --- info-plist-validation ---

def test_valid_manifest_has_no_findings():
    assert InfoPlistRule().evaluate(_context()) == []


@pytest.mark.parametrize("key", [
    "CFBundleIdentifier", "CFBundleName", "CFBundleDisplayName",
    "CFBundleVersion", "CFBundleShortVersionString", "LSRequiresIPhoneOS",
])
def test_each_missing_required_key_is_critical(key):
    info = dict(VALID_INFO)
    del info[key]
    findings = InfoPlistRule().evaluate(_context(info))
    assert [(f.severity, f.message) for f in findings] == [(Severity.CRITICAL, f"Missing required key: {key}")]


def test_blank_required_value_counts_as_missing():
    findings = InfoPlistRule().evaluate(_context(dict(VALID_INFO, CFBundleName="   ")))
    assert _messages(findings) == ["Missing required key: CFBundleName"]


def test_bundle_identifier_property():
    rng = random.Random(1234)
    alphabet = string.ascii_letters + string.digits + ".-_/@!"
    for _ in range(300):
        bundle_id = "".join(rng.choice(alphabet) for _ in range(rng.randint(1, 40)))
        findings = InfoPlistRule().evaluate(_context(dict(VALID_INFO, CFBundleIdentifier=bundle_id)))
        flagged = "Invalid bundle identifier format" in _messages(findings)
        bad_chars = any(c not in string.ascii_letters + string.digits + ".-" for c in bundle_id)
        assert flagged == (bad_chars or ".." in bundle_id), bundle_id


@pytest.mark.parametrize("bundle_id", [
    "com.example.app\n",
    "com.example.app ",
    " com.example.app",
    "com.example .app",
    "com.example.app\t",
])
def test_bundle_identifier_with_whitespace_is_invalid(bundle_id):
    findings = InfoPlistRule().evaluate(_context(dict(VALID_INFO, CFBundleIdentifier=bundle_id)))
    assert [(f.severity, f.message) for f in findings] == [(Severity.HIGH, "Invalid bundle identifier format")]


def test_bundle_identifier_too_long():
    findings = InfoPlistRule().evaluate(_context(dict(VALID_INFO, CFBundleIdentifier="a" * 256)))
    assert _messages(findings) == ["Bundle identifier too long"]
    assert findings[0].severity is Severity.HIGH


@pytest.mark.parametrize("key,value,message", [
    ("CFBundleShortVersionString", "1.0-beta", "Invalid marketing version format"),
    ("CFBundleVersion", "build42", "Invalid build number format"),
    ("CFBundleShortVersionString", "1.0.0\n", "Invalid marketing version format"),
    ("CFBundleShortVersionString", "1.0.0 ", "Invalid marketing version format"),
    ("CFBundleVersion", "42\n", "Invalid build number format"),
])
def test_version_formats(key, value, message):
    findings = InfoPlistRule().evaluate(_context(dict(VALID_INFO, **{key: value})))
    assert _messages(findings) == [message]


@pytest.mark.parametrize("version,severity", [
    ("11.4", Severity.MEDIUM),
    ("12.0", None),
    ("17", None),
    ("19.0", Severity.HIGH),
    ("fifteen", Severity.MEDIUM),
])
def test_minimum_os_version(version, severity):
    findings = InfoPlistRule().evaluate(_context(dict(VALID_INFO, MinimumOSVersion=version)))
    assert [f.severity for f in findings] == ([severity] if severity else [])


def test_parse_version_pads():
    assert parse_version("15") == (15, 0)
    assert parse_version(16.2) == (16, 2)
    assert parse_version("1.2.3") == (1, 2, 3)
    assert parse_version("x") is None


def test_display_name_too_long():
    findings = InfoPlistRule().evaluate(_context(dict(VALID_INFO, CFBundleDisplayName="D" * 31)))
    assert _messages(findings) == ["App display name too long"]


def test_misc_info_plist_checks():
    info = dict(
        VALID_INFO,
        CFBundleURLTypes=[{"CFBundleURLSchemes": ["good-scheme", "1bad"]}, "not a dict"],
        UIFileSharingEnabled=True,
        DTXcode="1500",
        UIRequiredDeviceCapabilities=["arm64", "telekinesis"],
    )
    findings = InfoPlistRule().evaluate(_context(info))
    assert [(f.severity, f.message) for f in findings] == [
        (Severity.MEDIUM, "Invalid URL scheme format"),
        (Severity.MEDIUM, "File sharing enabled"),
        (Severity.INFO, "Development metadata present"),
        (Severity.MEDIUM, "Unknown device capability"),
    ]


def test_capabilities_as_dictionary():
    info = dict(VALID_INFO, UIRequiredDeviceCapabilities={"metal": True, "warp-drive": False})
    findings = InfoPlistRule().evaluate(_context(info))
    assert [f.details for f in findings] == ["Unknown capability: warp-drive"]


# --- privacy-compliance ---

_GOOD_CAMERA = "Used to scan receipts you choose to attach to an expense report"


def test_missing_privacy_manifest_with_permissions_is_high():
    findings = PrivacyComplianceRule().evaluate(_context(dict(VALID_INFO, NSCameraUsageDescription=_GOOD_CAMERA)))
    assert [(f.severity, f.message) for f in findings] == [
        (Severity.HIGH, "Privacy manifest (PrivacyInfo.xcprivacy) not found"),
    ]
    assert "NSCameraUsageDescription" in findings[0].details


def test_missing_privacy_manifest_without_permissions_is_info():
    findings = PrivacyComplianceRule().evaluate(_context())
    assert [f.severity for f in findings] == [Severity.INFO]


def test_present_privacy_manifest_is_quiet():
    info = dict(VALID_INFO, NSCameraUsageDescription=_GOOD_CAMERA)
    assert PrivacyComplianceRule().evaluate(_context(info, privacy={"NSPrivacyTracking": False})) == []


def test_unparseable_privacy_manifest_is_low():
    findings = PrivacyComplianceRule().evaluate(_context(privacy_found=True))
    assert [(f.severity, f.message) for f in findings] == [(Severity.LOW, "Privacy manifest could not be parsed")]


def test_permission_description_quality():
    info = dict(
        VALID_INFO,
        NSCameraUsageDescription="Camera",
        NSMicrophoneUsageDescription="",
        NSPhotoLibraryUsageDescription="This app needs this to pick photos for your profile picture",
        NSContactsUsageDescription="TODO: write a real explanation for contacts access here",
    )
    findings = PrivacyComplianceRule().evaluate(_context(info, privacy={}))
    assert sorted(_messages(findings)) == sorted([
        "NSCameraUsageDescription description too short",
        "NSMicrophoneUsageDescription description is empty",
        "NSPhotoLibraryUsageDescription has generic description",
        "NSContactsUsageDescription contains placeholder text",
    ])


def test_deprecated_always_location_without_when_in_use():
    info = dict(VALID_INFO, NSLocationAlwaysUsageDescription=_GOOD_CAMERA)
    findings = PrivacyComplianceRule().evaluate(_context(info, privacy={}))
    assert [f.severity for f in findings] == [Severity.HIGH]


def test_always_and_when_in_use_pairing():
    alone = dict(VALID_INFO, NSLocationAlwaysAndWhenInUseUsageDescription=_GOOD_CAMERA)
    both = dict(alone, NSLocationWhenInUseUsageDescription=_GOOD_CAMERA)
    assert [f.severity for f in PrivacyComplianceRule().evaluate(_context(alone, privacy={}))] == [Severity.HIGH]
    assert [f.severity for f in PrivacyComplianceRule().evaluate(_context(both, privacy={}))] == [Severity.MEDIUM]


def test_privacy_manifest_contents():
    manifest = {
        "NSPrivacyTracking": True,
        "NSPrivacyTrackingDomains": [],
        "NSPrivacyAccessedAPITypes": [
            {"NSPrivacyAccessedAPIType": "NSPrivacyAccessedAPICategoryUserDefaults",
             "NSPrivacyAccessedAPITypeReasons": ["CA92.1"]},
            {"NSPrivacyAccessedAPIType": "NSPrivacyAccessedAPICategoryFileTimestamp"},
        ],
    }
    findings = PrivacyComplianceRule().evaluate(_context(privacy=manifest))
    assert _messages(findings) == [
        "Privacy manifest declares tracking without tracking domains",
        "Required reason API NSPrivacyAccessedAPICategoryFileTimestamp has no declared reason",
    ]


# --- account-deletion ---

def test_no_account_indicators_and_no_metadata():
    assert AccountDeletionRule().evaluate(_context()) == []


def test_account_indicators_produce_reminders_not_failures():
    info = dict(VALID_INFO, CFBundleURLTypes=[{"CFBundleURLSchemes": ["fb123456"]}])
    findings = AccountDeletionRule().evaluate(_context(info, entitlements={"com.apple.developer.applesignin": ["Default"]}))
    assert all(f.severity is Severity.INFO for f in findings)
    assert findings[0].fix_type is FixType.MANUAL
    assert "Social login URL scheme: fb123456" in findings[0].details
    assert "Sign in with Apple" in findings[0].details
    assert _messages(findings)[-1] == "Account deletion implementation checklist"


def test_account_metadata_without_deletion_or_urls():
    metadata = {"appName": "Budget", "description": "Log in to your account to sync budgets."}
    findings = AccountDeletionRule().evaluate(_context(metadata=metadata))
    assert [(f.severity, f.message) for f in findings] == [
        (Severity.INFO, "App appears to use accounts - ensure account deletion is implemented"),
        (Severity.LOW, "No account deletion mentioned in app metadata"),
        (Severity.INFO, "Account deletion implementation checklist"),
        (Severity.MEDIUM, "No privacy policy or support URL provided"),
    ]


def test_account_metadata_with_deletion_and_urls():
    metadata = {
        "description": "Create an account to sync. You can delete your account at any time in Settings.",
        "supportUrl": "https://example.com/support",
    }
    findings = AccountDeletionRule().evaluate(_context(metadata=metadata))
    assert "App metadata mentions account deletion" in _messages(findings)
    assert _messages(findings)[-1] == "Privacy policy or support URL provided"
    assert not [f for f in findings if f.severity.rank >= Severity.LOW.rank]


# --- simple Info.plist rules ---

def test_sensitive_background_modes():
    info = dict(VALID_INFO, UIBackgroundModes=["remote-notification", "audio", "location"])
    findings = PermissionsRule().evaluate(_context(info))
    assert _messages(findings) == [
        "App uses sensitive background mode: audio",
        "App uses sensitive background mode: location",
    ]


def test_assets_reminders():
    findings = AssetsRule().evaluate(_context())
    assert [(f.severity, f.fix_type) for f in findings] == [
        (Severity.INFO, FixType.MANUAL),
        (Severity.MEDIUM, FixType.FIX),
    ]
    info = dict(VALID_INFO, CFBundleIconName="AppIcon", UILaunchScreen={})
    assert AssetsRule().evaluate(_context(info)) == []


def test_localization_counts_languages():
    assert LocalizationRule().evaluate(_context(dict(VALID_INFO, CFBundleLocalizations=["en"]))) == []
    findings = LocalizationRule().evaluate(_context(dict(VALID_INFO, CFBundleLocalizations=["en", "de", "ja"])))
    assert _messages(findings) == ["App supports 3 languages"]


def test_performance_status_bar():
    assert PerformanceRule().evaluate(_context()) == []
    findings = PerformanceRule().evaluate(_context(dict(VALID_INFO, UIViewControllerBasedStatusBarAppearance=False)))
    assert [f.severity for f in findings] == [Severity.LOW]


@pytest.mark.parametrize("extra,expected", [
    ({}, [Severity.MEDIUM]),
    ({"ITSAppUsesNonExemptEncryption": False}, []),
    ({"ITSAppUsesNonExemptEncryption": True}, [Severity.LOW]),
    ({"ITSAppUsesNonExemptEncryption": True, "ITSEncryptionExportComplianceCode": "abc"}, []),
])
def test_export_compliance(extra, expected):
    findings = ContentPolicyRule().evaluate(_context(dict(VALID_INFO, **extra)))
    assert [f.severity for f in findings] == expected


# --- metadata ---

def test_no_metadata_is_info():
    findings = MetadataRule().evaluate(_context())
    assert [(f.severity, f.message) for f in findings] == [
        (Severity.INFO, "No metadata file provided for validation"),
    ]


def test_forty_character_app_name_is_high():
    findings = MetadataRule().evaluate(_context(metadata={"appName": "X" * 40}))
    assert len(findings) == 1
    assert findings[0].severity is Severity.HIGH
    assert "exceeds 30 character limit" in findings[0].message


def test_metadata_field_checks():
    metadata = {
        "appName": "Fine",
        "description": "Too short.",
        "keywords": ["k" * 60, "w" * 60],
        "privacyPolicyUrl": "ftp://example.com/privacy",
        "supportUrl": "https://example.com/help",
    }
    findings = MetadataRule().evaluate(_context(metadata=metadata))
    assert [(f.severity, f.message) for f in findings] == [
        (Severity.LOW, "App description is very short"),
        (Severity.MEDIUM, "Keywords exceed 100 character limit"),
        (Severity.LOW, "privacyPolicyUrl is not a valid web URL"),
    ]


def test_keywords_must_be_strings():
    findings = MetadataRule().evaluate(_context(metadata={"keywords": "photo,editor"}))
    assert _messages(findings) == ["Keywords must be a list of strings"]


def test_unknown_metadata_fields_are_kept():
    ctx = _context(metadata={"appName": "Fine", "promotionalText": "New!"})
    assert ctx.metadata.raw["promotionalText"] == "New!"
    assert MetadataRule().evaluate(ctx) == []
