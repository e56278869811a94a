from __future__ import annotations

import traceback
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from ..extractors.archive import ArchiveExtractor
from ..extractors.bundle import BundleExtractor
from ..extractors.plist import ExtractionError
from .config import ValidatorConfig
from .metadata import MetadataLoadError, load_metadata
from .models import (
    DiagnosticSink,
    ExtractedArtifacts,
    Finding,
    MetadataDocument,
    PackageKind,
    PackageReference,
    RuleInfo,
    Severity,
    ValidationContext,
)
from .registry import CustomRuleLoadError, RuleRegistry, default_registry, load_custom_rule

SYSTEM_RULE = "SYSTEM"
METADATA_RULE = "METADATA_LOADING"

BUNDLE_SUFFIX = ".app"
ARCHIVE_SUFFIX = ".ipa"


class InvalidInput(Exception):
    """Raised when the package path does not exist or is neither a .app directory nor an .ipa file."""


class EngineState(str, Enum):
    CREATED = "created"
    INPUT_VALIDATED = "input_validated"
    EXTRACTED = "extracted"
    METADATA_LOADED = "metadata_loaded"
    RULES_EXECUTED = "rules_executed"
    REPORTED = "reported"
    FAILED = "failed"


_TRANSITIONS = {
    EngineState.CREATED: {EngineState.INPUT_VALIDATED, EngineState.FAILED},
    EngineState.INPUT_VALIDATED: {EngineState.EXTRACTED, EngineState.FAILED},
    EngineState.EXTRACTED: {EngineState.METADATA_LOADED, EngineState.FAILED},
    EngineState.METADATA_LOADED: {EngineState.RULES_EXECUTED},
    EngineState.RULES_EXECUTED: {EngineState.REPORTED},
    EngineState.FAILED: {EngineState.REPORTED},
    EngineState.REPORTED: set(),
}


@dataclass
class ValidationReport:
    """Everything a single run produced. Rendering lives in core.report."""
    package_path: str
    findings: list[Finding]
    rules_run: list[RuleInfo] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    failed: bool = False


def _silent(level: str, message: str) -> None:
    pass


def resolve_package(path: Path | str) -> PackageReference:
    path = Path(path)
    if not path.exists():
        raise InvalidInput(f"Build path does not exist: {path}")

    if path.is_dir() and path.name.endswith(BUNDLE_SUFFIX):
        return PackageReference(path=path, kind=PackageKind.BUNDLE)
    if path.is_file() and path.name.endswith(ARCHIVE_SUFFIX):
        return PackageReference(path=path, kind=PackageKind.ARCHIVE)

    raise InvalidInput(f"Build path must be either a {BUNDLE_SUFFIX} directory or {ARCHIVE_SUFFIX} file")


class Validator:
    """Runs the extraction and rule pipeline for one package at a time.

    Each validate() call is an independent single-pass run; the instance only
    keeps the rule registry and configuration between runs.
    """

    def __init__(
        self,
        config: ValidatorConfig | None = None,
        include: list[str] | None = None,
        exclude: list[str] | None = None,
        registry: RuleRegistry | None = None,
        log: DiagnosticSink | None = None,
    ) -> None:
        self.config = config or ValidatorConfig()
        self._log = log or _silent
        self.startup_warnings: list[str] = []

        base = registry if registry is not None else default_registry()
        for custom_path in self.config.custom_rules:
            try:
                rule = load_custom_rule(custom_path)
            except CustomRuleLoadError as e:
                self._warn(f"Could not load custom rule {custom_path}: {e}", self.startup_warnings)
                continue
            base.register(rule)
            self._log("info", f"Loaded custom rule: {rule.name} ({custom_path})")

        self.available = base
        self.registry = base.filter(
            include=include,
            exclude=exclude,
            ignore=[*self.config.ignore, *self.config.disabled_rules()],
        )
        self.state = EngineState.CREATED

    def validate(self, package_path: Path | str, metadata_path: Path | str | None = None) -> ValidationReport:
        """Validate one package. Never raises; fatal problems become a Critical SYSTEM finding."""
        self.state = EngineState.CREATED
        findings: list[Finding] = []
        warnings = list(self.startup_warnings)
        report = ValidationReport(package_path=str(package_path), findings=findings, warnings=warnings)

        self._log("info", f"Starting validation for: {package_path}")
        self._log("debug", f"Active rules: {', '.join(self.registry.names())}")

        try:
            package = resolve_package(package_path)
            self._advance(EngineState.INPUT_VALIDATED)

            artifacts = self._extract(package)
            for w in artifacts.warnings:
                self._warn(w, warnings)
            self._advance(EngineState.EXTRACTED)
        except (InvalidInput, ExtractionError) as e:
            self._advance(EngineState.FAILED)
            findings.append(Finding(
                rule=SYSTEM_RULE,
                severity=Severity.CRITICAL,
                message=f"Validation failed: {e}",
                details="".join(traceback.format_exception(type(e), e, e.__traceback__)),
            ))
            self._log("warning", f"Validation failed: {e}")
            report.failed = True
            self._advance(EngineState.REPORTED)
            return report

        metadata = self._load_metadata(metadata_path, findings)
        self._advance(EngineState.METADATA_LOADED)

        context = ValidationContext.build(package, artifacts, metadata, self.config.context)
        self._run_rules(context, findings, report.rules_run)
        self._advance(EngineState.RULES_EXECUTED)

        self._advance(EngineState.REPORTED)
        return report

    def _extract(self, package: PackageReference) -> ExtractedArtifacts:
        self._log("debug", "Parsing build artifacts...")
        if package.kind is PackageKind.ARCHIVE:
            artifacts = ArchiveExtractor().extract(package.path)
        else:
            artifacts = BundleExtractor().extract(package.path)
        self._log("debug", f"Parsed manifest for {artifacts.app_bundle}")
        return artifacts

    def _load_metadata(self, metadata_path: Path | str | None, findings: list[Finding]) -> MetadataDocument | None:
        if metadata_path is None:
            return None
        self._log("debug", f"Loading metadata from: {metadata_path}")
        try:
            return load_metadata(metadata_path)
        except MetadataLoadError as e:
            findings.append(Finding(
                rule=METADATA_RULE,
                severity=Severity.MEDIUM,
                message=f"Failed to load metadata: {e}",
                details=f"Path: {metadata_path}",
            ))
            return None

    def _run_rules(self, context: ValidationContext, findings: list[Finding], rules_run: list[RuleInfo]) -> None:
        self._log("debug", f"Running {len(self.registry)} validation rules...")
        for rule in self.registry:
            rules_run.append(RuleInfo(name=rule.name, description=getattr(rule, "description", "")))
            try:
                results = list(rule.evaluate(context))
                for r in results:
                    if not isinstance(r, Finding):
                        raise TypeError(f"rule returned {type(r).__name__}, expected Finding")
            except Exception as e:
                findings.append(Finding(
                    rule=rule.name,
                    severity=Severity.MEDIUM,
                    message=f"Rule execution failed: {e}",
                    details="".join(traceback.format_exception(type(e), e, e.__traceback__)),
                    fix="Check rule implementation or file a bug report",
                ))
                self._log("warning", f"Rule {rule.name} failed: {e}")
                continue
            findings.extend(results)
            self._log("debug", f"Rule {rule.name} completed with {len(results)} results")

    def _advance(self, state: EngineState) -> None:
        if state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"invalid engine transition {self.state.value} -> {state.value}")
        self.state = state

    def _warn(self, message: str, sink: list[str]) -> None:
        sink.append(message)
        self._log("warning", message)
