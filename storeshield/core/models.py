from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Callable, Mapping, Protocol, runtime_checkable


class Severity(str, Enum):
    """Finding severity. Declaration order is the display order."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    @classmethod
    def parse(cls, value: str | Severity) -> Severity:
        """Case-insensitive lookup; raises ValueError for unknown levels."""
        if isinstance(value, Severity):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            valid = ", ".join(s.value for s in cls)
            raise ValueError(f"unknown severity '{value}' (valid: {valid})") from None


_SEVERITY_RANK = {
    Severity.INFO: 0,
    Severity.LOW: 1,
    Severity.MEDIUM: 2,
    Severity.HIGH: 3,
    Severity.CRITICAL: 4,
}


class FixType(str, Enum):
    FIX = "fix"
    MANUAL = "manual"


class PackageKind(str, Enum):
    BUNDLE = "bundle"
    ARCHIVE = "archive"


@dataclass(frozen=True)
class PackageReference:
    path: Path
    kind: PackageKind


@dataclass(frozen=True)
class Finding:
    rule: str
    severity: Severity
    message: str
    details: str | None = None
    fix: str | None = None
    fix_type: FixType = FixType.FIX

    def __post_init__(self) -> None:
        if not isinstance(self.severity, Severity):
            raise TypeError(f"severity must be a Severity, got {self.severity!r}")

    def to_dict(self) -> dict:
        return {
            "rule": self.rule,
            "severity": self.severity.value,
            "message": self.message,
            "details": self.details,
            "fix": self.fix,
            "fixType": self.fix_type.value,
        }


@dataclass
class ExtractedArtifacts:
    info_plist: dict[str, Any]
    app_bundle: str
    privacy_manifest: dict[str, Any] | None = None
    privacy_manifest_found: bool = False
    entitlements: dict[str, Any] | None = None
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class MetadataDocument:
    """Listing metadata. Only the recognized fields are lifted; the rest stay in raw."""

    app_name: Any = None
    description: Any = None
    keywords: Any = None
    category: Any = None
    privacy_policy_url: Any = None
    support_url: Any = None
    raw: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> MetadataDocument:
        return cls(
            app_name=data.get("appName"),
            description=data.get("description"),
            keywords=data.get("keywords"),
            category=data.get("category"),
            privacy_policy_url=data.get("privacyPolicyUrl"),
            support_url=data.get("supportUrl"),
            raw=MappingProxyType(dict(data)),
        )


@dataclass(frozen=True)
class BuildContext:
    build_type: str = "auto-detect"
    uses_fastlane: bool | None = None
    existing_app_store: bool = False


@dataclass(frozen=True)
class ValidationContext:
    """Read-only view handed to every rule during a run."""

    package: PackageReference
    info_plist: Mapping[str, Any]
    artifacts: ExtractedArtifacts
    metadata: MetadataDocument | None = None
    build_context: BuildContext = field(default_factory=BuildContext)

    @classmethod
    def build(
        cls,
        package: PackageReference,
        artifacts: ExtractedArtifacts,
        metadata: MetadataDocument | None = None,
        build_context: BuildContext | None = None,
    ) -> ValidationContext:
        return cls(
            package=package,
            info_plist=MappingProxyType(artifacts.info_plist),
            artifacts=artifacts,
            metadata=metadata,
            build_context=build_context or BuildContext(),
        )


@runtime_checkable
class Rule(Protocol):
    name: str
    description: str

    def evaluate(self, context: ValidationContext) -> list[Finding]: ...


@dataclass(frozen=True)
class RuleInfo:
    name: str
    description: str


# (level, message); levels: "debug", "info", "warning"
DiagnosticSink = Callable[[str, str], None]
