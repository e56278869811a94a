import json
import xml.etree.ElementTree as ET
from datetime import datetime, timezone

import pytest

from storeshield.core.engine import ValidationReport, Validator
from storeshield.core.models import Finding, FixType, RuleInfo, Severity
from storeshield.core.report import exit_code, render, render_json, summarize, summarize_report


def _finding(severity, rule="info-plist-validation", message=None, **kwargs):
    return Finding(rule=rule, severity=severity, message=message or f"{severity.value} problem", **kwargs)


_RULES = [
    RuleInfo("info-plist-validation", "Validates Info.plist configuration and required keys"),
    RuleInfo("assets", "Validates app icons and required assets"),
    RuleInfo("localization", "Validates localization and internationalization"),
]


# --- summary ---

def test_summary_counts_and_passed_rules():
    findings = [
        _finding(Severity.CRITICAL),
        _finding(Severity.MEDIUM, rule="assets"),
        _finding(Severity.MEDIUM, rule="assets"),
    ]
    summary = summarize(findings, _RULES, "/builds/TestApp.app")
    assert summary.total == 3
    assert summary.counts[Severity.CRITICAL] == 1
    assert summary.counts[Severity.MEDIUM] == 2
    assert summary.counts[Severity.INFO] == 0
    assert [r.name for r in summary.passed_rules] == ["localization"]


def test_rule_not_run_is_not_passed():
    assert summarize([], _RULES[:1]).passed_rules == _RULES[:1]


# --- exit code ---

@pytest.mark.parametrize("severities,fail_on,expected", [
    ([], "info", 0),
    ([Severity.HIGH], "high", 1),
    ([Severity.HIGH], "critical", 0),
    ([Severity.CRITICAL], "high", 1),
    ([Severity.LOW, Severity.INFO], "medium", 0),
    ([Severity.INFO], "info", 1),
    ([Severity.MEDIUM], Severity.MEDIUM, 1),
])
def test_exit_code_threshold(severities, fail_on, expected):
    assert exit_code([_finding(s) for s in severities], fail_on) == expected


# --- json ---

def test_json_zero_issue_run(make_bundle):
    report = Validator(include=["localization", "performance"]).validate(make_bundle())
    doc = json.loads(render(report, "json"))
    assert doc["results"] == []
    assert doc["summary"]["total"] == 0
    assert doc["summary"]["rulesRun"] == ["localization", "performance"]
    assert "generatedAt" in doc


def test_json_finding_shape():
    finding = _finding(Severity.HIGH, details="d", fix="f", fix_type=FixType.MANUAL)
    summary = summarize([finding], _RULES)
    doc = json.loads(render_json([finding], summary, generated_at=datetime(2025, 1, 1, tzinfo=timezone.utc)))
    assert doc["results"] == [{
        "rule": "info-plist-validation",
        "severity": "high",
        "message": "high problem",
        "details": "d",
        "fix": "f",
        "fixType": "manual",
    }]
    assert doc["summary"]["high"] == 1
    assert doc["generatedAt"] == "2025-01-01T00:00:00+00:00"


# --- junit ---

def test_junit_only_critical_and_high_fail():
    findings = [_finding(s) for s in Severity]
    report = ValidationReport(package_path="/builds/TestApp.app", findings=findings, rules_run=_RULES)
    xml = render(report, "junit")
    assert xml.startswith('<?xml version="1.0" encoding="UTF-8"?>')

    suite = ET.fromstring(xml.split("\n", 1)[1])
    assert suite.tag == "testsuite"
    assert suite.get("name") == "AppStoreValidation"
    assert suite.get("tests") == "5"
    assert suite.get("failures") == "2"

    cases = suite.findall("testcase")
    assert len(cases) == 5
    failures = [c.find("failure") for c in cases]
    assert [f.get("type") if f is not None else None for f in failures] == ["CRITICAL", "HIGH", None, None, None]
    assert cases[2].find("system-out").text == "[MEDIUM] medium problem"


def test_junit_escapes_markup():
    finding = _finding(Severity.HIGH, message='Bad <key> & "quotes"')
    report = ValidationReport(package_path="x.app", findings=[finding])
    suite = ET.fromstring(render(report, "junit").split("\n", 1)[1])
    assert suite.find("testcase/failure").get("message") == 'Bad <key> & "quotes"'


# --- console ---

def test_text_groups_by_severity_in_order():
    findings = [
        _finding(Severity.LOW, message="low one"),
        _finding(Severity.CRITICAL, message="critical one", fix="do it"),
        _finding(Severity.INFO, message="info one", fix="look", fix_type=FixType.MANUAL),
    ]
    report = ValidationReport(package_path="TestApp.app", findings=findings, rules_run=_RULES)
    text = render(report, "console")

    assert text.index("CRITICAL ISSUES (1):") < text.index("LOW ISSUES (1):") < text.index("INFO ISSUES (1):")
    assert "HIGH ISSUES" not in text
    assert "Fix: do it" in text
    assert "(Manually test) look" in text
    assert "CRITICAL ISSUES DETECTED" in text
    assert "PASSED VALIDATIONS:" in text
    assert "\x1b[" not in text


def test_text_all_clear():
    report = ValidationReport(package_path="TestApp.app", findings=[], rules_run=_RULES)
    text = render(report, "console")
    assert "Total Issues: 0" in text
    assert "All validations passed!" in text


def test_text_color_uses_ansi():
    report = ValidationReport(package_path="TestApp.app", findings=[_finding(Severity.HIGH)])
    assert "\x1b[" in render(report, "console", color=True)


def test_unknown_format():
    with pytest.raises(ValueError, match="unknown output format"):
        render(ValidationReport(package_path="x", findings=[]), "html")


def test_summarize_report_carries_build_path():
    report = ValidationReport(package_path="/b/TestApp.app", findings=[])
    assert summarize_report(report).to_dict()["buildPath"] == "/b/TestApp.app"
