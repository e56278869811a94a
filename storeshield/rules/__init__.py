from .account_deletion import AccountDeletionRule
from .code_signing import CodeSigningRule
from .info_plist import InfoPlistRule
from .metadata import MetadataRule
from .privacy import PrivacyComplianceRule
from .simple import AssetsRule, ContentPolicyRule, LocalizationRule, PerformanceRule, PermissionsRule

# Registration order is execution order
BUILTIN_RULES = [
    InfoPlistRule,
    PrivacyComplianceRule,
    AccountDeletionRule,
    PermissionsRule,
    AssetsRule,
    CodeSigningRule,
    LocalizationRule,
    PerformanceRule,
    ContentPolicyRule,
    MetadataRule,
]

__all__ = [cls.__name__ for cls in BUILTIN_RULES] + ["BUILTIN_RULES"]
