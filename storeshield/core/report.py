"""Summaries and output encodings for a ValidationReport."""
from __future__ import annotations

import io
import json
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable

from rich.console import Console
from rich.text import Text

from .engine import ValidationReport
from .models import Finding, FixType, RuleInfo, Severity

FORMATS = ("console", "json", "junit")

_SUITE_NAME = "AppStoreValidation"

_SEVERITY_STYLE = {
    Severity.CRITICAL: "bold red",
    Severity.HIGH: "bright_red",
    Severity.MEDIUM: "yellow",
    Severity.LOW: "blue",
    Severity.INFO: "bright_black",
}


@dataclass
class Summary:
    total: int
    counts: dict[Severity, int]
    rules_run: list[RuleInfo] = field(default_factory=list)
    passed_rules: list[RuleInfo] = field(default_factory=list)
    build_path: str | None = None

    def to_dict(self) -> dict:
        data: dict = {"total": self.total}
        data.update({sev.value: self.counts[sev] for sev in Severity})
        data["buildPath"] = self.build_path
        data["rulesRun"] = [r.name for r in self.rules_run]
        data["passedRules"] = [{"name": r.name, "description": r.description} for r in self.passed_rules]
        return data


def summarize(
    findings: Iterable[Finding],
    rules_run: Iterable[RuleInfo] = (),
    build_path: str | None = None,
) -> Summary:
    """Count findings per severity. A rule passed iff it ran and produced no findings."""
    findings = list(findings)
    rules_run = list(rules_run)
    counts = {sev: 0 for sev in Severity}
    for f in findings:
        counts[f.severity] += 1

    reporting = {f.rule for f in findings}
    passed = [r for r in rules_run if r.name not in reporting]
    return Summary(
        total=len(findings),
        counts=counts,
        rules_run=rules_run,
        passed_rules=passed,
        build_path=build_path,
    )


def summarize_report(report: ValidationReport) -> Summary:
    return summarize(report.findings, report.rules_run, report.package_path)


def exit_code(findings: Iterable[Finding], fail_on: Severity | str) -> int:
    """1 if any finding is at or above the fail threshold, else 0."""
    threshold = Severity.parse(fail_on).rank
    return 1 if any(f.severity.rank >= threshold for f in findings) else 0


def render(report: ValidationReport, fmt: str = "console", color: bool = False) -> str:
    summary = summarize_report(report)
    if fmt == "json":
        return render_json(report.findings, summary)
    if fmt == "junit":
        return render_junit(report.findings, summary)
    if fmt == "console":
        return render_text(report.findings, summary, color=color)
    raise ValueError(f"unknown output format '{fmt}' (valid: {', '.join(FORMATS)})")


def render_json(findings: list[Finding], summary: Summary, generated_at: datetime | None = None) -> str:
    generated_at = generated_at or datetime.now(timezone.utc)
    output = {
        "summary": summary.to_dict(),
        "results": [f.to_dict() for f in findings],
        "generatedAt": generated_at.isoformat(),
    }
    return json.dumps(output, indent=2, default=str)


def render_junit(findings: list[Finding], summary: Summary) -> str:
    """One testcase per finding; only Critical and High carry a <failure>."""
    failures = summary.counts[Severity.CRITICAL] + summary.counts[Severity.HIGH]
    suite = ET.Element("testsuite", {
        "name": _SUITE_NAME,
        "tests": str(len(findings)),
        "failures": str(failures),
        "time": "0",
    })
    for f in findings:
        case = ET.SubElement(suite, "testcase", {
            "name": f.rule,
            "classname": _SUITE_NAME,
            "time": "0",
        })
        if _is_failure(f):
            failure = ET.SubElement(case, "failure", {
                "message": f.message,
                "type": f.severity.value.upper(),
            })
            failure.text = f.details or ""
        else:
            out = ET.SubElement(case, "system-out")
            out.text = f"[{f.severity.value.upper()}] {f.message}"

    ET.indent(suite, space="  ")
    body = ET.tostring(suite, encoding="unicode")
    return f'<?xml version="1.0" encoding="UTF-8"?>\n{body}\n'


def _is_failure(finding: Finding) -> bool:
    return finding.severity in (Severity.CRITICAL, Severity.HIGH)


def render_text(findings: list[Finding], summary: Summary, color: bool = False) -> str:
    text = Text()
    text.append("App Store Submission Validation Report\n", style="bold blue")
    text.append("=" * 50 + "\n\n", style="bright_black")

    text.append("Summary:\n", style="bold")
    text.append(f"  Total Issues: {summary.total}\n")
    for sev in Severity:
        text.append(f"  {sev.value.capitalize()}:", style=_SEVERITY_STYLE[sev])
        text.append(f" {summary.counts[sev]}\n")
    text.append("\n")

    if summary.passed_rules:
        text.append("PASSED VALIDATIONS:\n", style="bold green")
        text.append("-" * 30 + "\n", style="green")
        for rule in summary.passed_rules:
            text.append(f"  ok {rule.name}: {rule.description}\n", style="green")
        text.append("\n")

    if not findings:
        text.append(
            "All validations passed! Your app looks ready for App Store submission.\n",
            style="bold green",
        )
        return _finish(text, color)

    for sev in Severity:
        group = [f for f in findings if f.severity is sev]
        if not group:
            continue
        style = _SEVERITY_STYLE[sev]
        text.append(f"{sev.value.upper()} ISSUES ({len(group)}):\n", style=style)
        text.append("-" * 30 + "\n", style=style)
        for f in group:
            text.append("\n> ", style=style)
            text.append(f"{f.message}\n")
            text.append(f"  Rule: {f.rule}\n")
            if f.details:
                text.append(f"  Details: {f.details}\n")
            if f.fix:
                prefix = "(Manually test)" if f.fix_type is FixType.MANUAL else "Fix:"
                text.append(f"  {prefix} {f.fix}\n", style="green")
        text.append("\n")

    if summary.counts[Severity.CRITICAL]:
        text.append("CRITICAL ISSUES DETECTED - App will likely be rejected!\n", style="bold red")
    elif summary.counts[Severity.HIGH]:
        text.append("High-risk issues found - Review recommended before submission\n", style="bold yellow")
    else:
        text.append("No critical issues found - App appears ready for submission\n", style="bold green")

    return _finish(text, color)


def _finish(text: Text, color: bool) -> str:
    if not color:
        return text.plain
    console = Console(file=io.StringIO(), force_terminal=True, color_system="standard", width=120)
    console.print(text, end="", soft_wrap=True)
    return console.file.getvalue()
