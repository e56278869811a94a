from __future__ import annotations

import copy
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .models import BuildContext, Severity

CONFIG_ENV_VAR = "STORESHIELD_CONFIG"
_SEARCH_NAMES = ["storeshield.yaml", ".storeshield.yaml", "storeshield.yml"]

_RULE_LEVELS = {"error", "warn", "info", "off"}
_OUTPUT_FORMATS = {"console", "json", "junit"}
_BUILD_TYPES = {"auto-detect", "development", "staging", "production"}
_SECTIONS = ("rules", "output", "context")

DEFAULT_RULE_LEVELS = {
    "info-plist-validation": "error",
    "privacy-compliance": "error",
    "account-deletion": "warn",
    "permissions": "warn",
    "assets": "error",
    "code-signing": "warn",
    "localization": "info",
    "performance": "warn",
    "content-policy": "warn",
    "metadata": "info",
}

DEFAULT_CONFIG: dict[str, Any] = {
    "rules": dict(DEFAULT_RULE_LEVELS),
    "ignore": [],
    "customRules": [],
    "output": {"format": "console", "verbose": False, "color": True},
    "failOn": "high",
    "context": {"buildType": "auto-detect", "usesFastlane": "auto-detect", "existingAppStore": False},
}


class ConfigError(Exception):
    """Raised when a configuration file is malformed."""


@dataclass
class OutputOptions:
    format: str = "console"
    verbose: bool = False
    color: bool = True


@dataclass
class ValidatorConfig:
    rules: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_RULE_LEVELS))
    ignore: list[str] = field(default_factory=list)
    custom_rules: list[str] = field(default_factory=list)
    output: OutputOptions = field(default_factory=OutputOptions)
    fail_on: Severity = Severity.HIGH
    context: BuildContext = field(default_factory=BuildContext)
    source: Path | None = None

    def disabled_rules(self) -> list[str]:
        return [name for name, level in self.rules.items() if level == "off"]


class ConfigLocator:
    """Finds the configuration file: explicit path, then $STORESHIELD_CONFIG, then the working directory."""

    def __init__(self, config_path: Path | None = None, cwd: Path | None = None) -> None:
        self._explicit_path = config_path
        self._cwd = cwd or Path.cwd()

    def searched_locations(self) -> list[str]:
        locations: list[str] = []
        if self._explicit_path:
            locations.append(str(self._explicit_path))
        env_path = os.environ.get(CONFIG_ENV_VAR)
        if env_path:
            locations.append(f"${CONFIG_ENV_VAR} ({env_path})")
        locations.extend(str(self._cwd / name) for name in _SEARCH_NAMES)
        return locations

    def resolve(self) -> Path | None:
        if self._explicit_path:
            if not self._explicit_path.exists():
                raise ConfigError(f"config file not found: {self._explicit_path}")
            return self._explicit_path

        env_path = os.environ.get(CONFIG_ENV_VAR)
        if env_path:
            p = Path(env_path)
            if p.exists():
                return p

        for name in _SEARCH_NAMES:
            p = self._cwd / name
            if p.exists():
                return p

        return None


def load_config(
    config_path: Path | None = None,
    overrides: dict[str, Any] | None = None,
    cwd: Path | None = None,
) -> ValidatorConfig:
    """Build the effective configuration: defaults < config file < overrides."""
    path = ConfigLocator(config_path, cwd=cwd).resolve()
    user_config = _read_config_file(path) if path else {}

    merged = merge_config(DEFAULT_CONFIG, user_config)
    if overrides:
        merged = merge_config(merged, overrides, concat_lists=False)

    config = _to_config(merged)
    config.source = path
    return config


def merge_config(base: dict[str, Any], update: dict[str, Any], concat_lists: bool = True) -> dict[str, Any]:
    """Merge a user config over base.

    Nested mappings merge key by key. ``ignore`` and ``customRules`` are
    concatenated when concat_lists is set, otherwise replaced.
    """
    merged = copy.deepcopy(base)
    for key, value in update.items():
        if value is None:
            continue
        if key in _SECTIONS and isinstance(value, dict):
            section = merged.setdefault(key, {})
            # A non-mapping section is left in place for _to_config to report
            if isinstance(section, dict):
                section.update(value)
        elif key in ("ignore", "customRules") and concat_lists:
            merged[key] = [*merged.get(key, []), *_as_list(key, value)]
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _read_config_file(path: Path) -> dict[str, Any]:
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"{path}: could not read config file: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"{path}: invalid YAML: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: expected a YAML mapping at top level")
    return data


def _as_list(key: str, value: Any) -> list[str]:
    if isinstance(value, str):
        return [value]
    if not isinstance(value, list):
        raise ConfigError(f"'{key}' must be a list, got {type(value).__name__}")
    return [str(v) for v in value]


def _to_config(merged: dict[str, Any]) -> ValidatorConfig:
    errors: list[str] = []

    rules = merged.get("rules") or {}
    if not isinstance(rules, dict):
        errors.append(f"'rules' must be a mapping, got {type(rules).__name__}")
        rules = {}
    rule_levels: dict[str, str] = {}
    for name, level in rules.items():
        level_str = "off" if level is False else str(level).strip().lower()
        if level_str not in _RULE_LEVELS:
            errors.append(f"rules.{name}: unknown level '{level}' (valid: {sorted(_RULE_LEVELS)})")
            continue
        rule_levels[str(name)] = level_str

    output = merged.get("output") or {}
    if not isinstance(output, dict):
        errors.append(f"'output' must be a mapping, got {type(output).__name__}")
        output = {}
    fmt = str(output.get("format", "console")).strip().lower()
    if fmt not in _OUTPUT_FORMATS:
        errors.append(f"output.format: unknown format '{fmt}' (valid: {sorted(_OUTPUT_FORMATS)})")
        fmt = "console"

    try:
        fail_on = Severity.parse(merged.get("failOn", "high"))
    except ValueError as e:
        errors.append(f"failOn: {e}")
        fail_on = Severity.HIGH

    context = merged.get("context") or {}
    if not isinstance(context, dict):
        errors.append(f"'context' must be a mapping, got {type(context).__name__}")
        context = {}
    build_type = str(context.get("buildType", "auto-detect")).strip().lower()
    if build_type not in _BUILD_TYPES:
        errors.append(f"context.buildType: unknown build type '{build_type}' (valid: {sorted(_BUILD_TYPES)})")
        build_type = "auto-detect"

    try:
        ignore = _as_list("ignore", merged.get("ignore") or [])
        custom_rules = _as_list("customRules", merged.get("customRules") or [])
    except ConfigError as e:
        errors.append(str(e))
        ignore, custom_rules = [], []

    if errors:
        joined = "\n  ".join(errors)
        raise ConfigError(f"configuration validation failed:\n  {joined}")

    return ValidatorConfig(
        rules=rule_levels,
        ignore=ignore,
        custom_rules=custom_rules,
        output=OutputOptions(
            format=fmt,
            verbose=bool(output.get("verbose", False)),
            color=bool(output.get("color", True)),
        ),
        fail_on=fail_on,
        context=BuildContext(
            build_type=build_type,
            uses_fastlane=_normalize_auto(context.get("usesFastlane", "auto-detect")),
            existing_app_store=bool(context.get("existingAppStore", False)),
        ),
    )


def _normalize_auto(value: Any) -> bool | None:
    """Map "auto-detect" to None and string booleans to bools."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "1", "yes"):
            return True
        if lowered in ("false", "0", "no"):
            return False
    return None


def default_config_yaml() -> str:
    """Starter config written by ``storeshield init``."""
    header = (
        "# storeshield configuration\n"
        "# rules: error | warn | info | off\n"
        "# failOn: critical | high | medium | low | info\n"
    )
    return header + yaml.safe_dump(DEFAULT_CONFIG, sort_keys=False, default_flow_style=False)
