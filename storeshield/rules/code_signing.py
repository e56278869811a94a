"""Code signature verification through the host's codesign tool.

Only meaningful on macOS. Debug builds, Fastlane-managed projects and hosts
without codesign are skipped with an Info finding rather than an error.
"""
from __future__ import annotations

import re
import shutil
import subprocess
import sys
import tempfile
from pathlib import Path

from ..core.models import Finding, PackageKind, Severity, ValidationContext
from ..extractors.archive import materialize_component
from ..extractors.plist import ExtractionError

_CODESIGN_TIMEOUT = 10
_FASTLANE_SEARCH_DEPTH = 6

_DEBUG_PATH_RE = re.compile(r"(^|[/\\])debug([-/\\]|$)|-iphonesimulator", re.IGNORECASE)

_UNSIGNED_MARKERS = ("code object is not signed",)
_INVALID_MARKERS = (
    "invalid signature",
    "a sealed resource is missing or invalid",
    "code failed to satisfy specified code requirement",
    "invalid info.plist (plist or signature have been modified)",
)
_ACCESS_MARKERS = ("no such file or directory", "permission denied", "operation not permitted")


class CodeSigningRule:
    name = "code-signing"
    description = "Validates code signing and provisioning profiles"

    def evaluate(self, context: ValidationContext) -> list[Finding]:
        package_path = context.package.path

        if context.build_context.build_type == "development" or _DEBUG_PATH_RE.search(str(package_path)):
            return [self._skipped("debug build detected", "Debug builds are not signed for distribution")]

        if context.build_context.uses_fastlane is None:
            fastfile = find_fastfile(package_path)
            if fastfile is not None:
                return [self._skipped(
                    "Fastlane project detected",
                    f"Signing is managed by Fastlane ({fastfile}); verify the exported build instead",
                )]

        if not codesign_available():
            return [self._skipped(
                "codesign is not available on this host",
                "Code signature verification requires macOS with Xcode command line tools",
            )]

        if context.package.kind is PackageKind.ARCHIVE:
            with tempfile.TemporaryDirectory(prefix="storeshield-") as tmp:
                try:
                    app_path = materialize_component(package_path, context.artifacts.app_bundle, Path(tmp))
                except ExtractionError as e:
                    return [Finding(
                        rule=self.name,
                        severity=Severity.MEDIUM,
                        message="Could not verify code signature",
                        details=str(e),
                        fix="Manually verify code signing before submission",
                    )]
                return self._verify(app_path, context)

        return self._verify(package_path, context)

    def _verify(self, app_path: Path, context: ValidationContext) -> list[Finding]:
        returncode, output, error = run_codesign(app_path)
        if error is not None:
            severity = Severity.MEDIUM if isinstance(error, OSError) else Severity.LOW
            return [Finding(
                rule=self.name,
                severity=severity,
                message="Could not verify code signature",
                details=str(error),
                fix="Manually verify code signing before submission",
            )]
        if returncode == 0:
            return []

        lowered = output.lower()
        if any(marker in lowered for marker in _UNSIGNED_MARKERS):
            automated = context.build_context.uses_fastlane is True
            return [Finding(
                rule=self.name,
                severity=Severity.INFO if automated else Severity.HIGH,
                message="App is not code signed",
                details=output.strip()[:500],
                fix=(
                    "Signing is expected to be applied by your automation at export time"
                    if automated else
                    "Sign the app with a distribution certificate before submission"
                ),
            )]
        if any(marker in lowered for marker in _ACCESS_MARKERS):
            return [Finding(
                rule=self.name,
                severity=Severity.MEDIUM,
                message="Could not verify code signature",
                details=output.strip()[:500],
                fix="Check that the build is readable and complete",
            )]
        if any(marker in lowered for marker in _INVALID_MARKERS):
            return [Finding(
                rule=self.name,
                severity=Severity.CRITICAL,
                message="Invalid code signature detected",
                details=output.strip()[:500],
                fix="Re-sign the app with valid certificates",
            )]
        return [Finding(
            rule=self.name,
            severity=Severity.LOW,
            message="Code signature verification reported an error",
            details=output.strip()[:500] or f"codesign exited with status {returncode}",
            fix="Run codesign --verify --deep --strict manually and review the output",
        )]

    def _skipped(self, reason: str, details: str) -> Finding:
        return Finding(
            rule=self.name,
            severity=Severity.INFO,
            message=f"Code signing check skipped: {reason}",
            details=details,
        )


def codesign_available() -> bool:
    return sys.platform == "darwin" and shutil.which("codesign") is not None


def run_codesign(app_path: Path) -> tuple[int, str, Exception | None]:
    """Run codesign --verify. Returns (returncode, combined output, error)."""
    try:
        result = subprocess.run(
            ["codesign", "--verify", "--deep", "--strict", "--verbose=2", str(app_path)],
            capture_output=True, text=True, timeout=_CODESIGN_TIMEOUT,
        )
    except subprocess.TimeoutExpired as e:
        return -1, "", e
    except OSError as e:
        return -1, "", e
    return result.returncode, (result.stderr or "") + (result.stdout or ""), None


def find_fastfile(start: Path) -> Path | None:
    """Walk up from the build path looking for a fastlane/Fastfile."""
    current = start.resolve()
    for _ in range(_FASTLANE_SEARCH_DEPTH):
        current = current.parent
        for candidate in (current / "fastlane" / "Fastfile", current / "Fastfile"):
            if candidate.is_file():
                return candidate
        if current.parent == current:
            break
    return None
