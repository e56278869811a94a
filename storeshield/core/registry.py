from __future__ import annotations

import importlib.util
import inspect
import sys
import uuid
from pathlib import Path
from typing import Iterable, Iterator

from .models import Rule


class CustomRuleLoadError(Exception):
    """Raised when an external rule module cannot be loaded or has the wrong shape."""


class RuleRegistry:
    """Ordered name -> rule map.

    Registering a name twice replaces the earlier rule in place.
    """

    def __init__(self, rules: Iterable[Rule] = ()) -> None:
        self._rules: dict[str, Rule] = {}
        for rule in rules:
            self.register(rule)

    def register(self, rule: Rule) -> None:
        self._rules[rule.name] = rule

    def filter(
        self,
        include: Iterable[str] | None = None,
        exclude: Iterable[str] | None = None,
        ignore: Iterable[str] = (),
    ) -> RuleRegistry:
        """Return a new registry: drop ignored, keep only included (if any), drop excluded."""
        ignored = set(ignore)
        rules = {name: rule for name, rule in self._rules.items() if name not in ignored}

        if include is not None:
            wanted = set(include)
            rules = {name: rule for name, rule in rules.items() if name in wanted}

        if exclude is not None:
            excluded = set(exclude)
            rules = {name: rule for name, rule in rules.items() if name not in excluded}

        return RuleRegistry(rules.values())

    def names(self) -> list[str]:
        return list(self._rules)

    def get(self, name: str) -> Rule | None:
        return self._rules.get(name)

    def __iter__(self) -> Iterator[Rule]:
        return iter(list(self._rules.values()))

    def __len__(self) -> int:
        return len(self._rules)

    def __contains__(self, name: object) -> bool:
        return name in self._rules


def default_registry() -> RuleRegistry:
    from ..rules import BUILTIN_RULES

    return RuleRegistry(rule_cls() for rule_cls in BUILTIN_RULES)


def load_custom_rule(path: Path | str) -> Rule:
    """Import a Python file and instantiate the single rule class it defines.

    The module must define exactly one class exposing ``name``,
    ``description`` and a callable ``evaluate``. It is constructed with no
    arguments.
    """
    path = Path(path).resolve()
    if not path.is_file():
        raise CustomRuleLoadError(f"{path}: file not found")

    module_name = f"storeshield_custom_{path.stem}_{uuid.uuid4().hex[:8]}"
    spec = importlib.util.spec_from_file_location(module_name, path)
    if spec is None or spec.loader is None:
        raise CustomRuleLoadError(f"{path}: not an importable Python module")

    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    try:
        spec.loader.exec_module(module)
    except Exception as e:
        sys.modules.pop(module_name, None)
        raise CustomRuleLoadError(f"{path}: import failed: {e}") from e

    candidates = [
        obj for _, obj in inspect.getmembers(module, inspect.isclass)
        if obj.__module__ == module_name and _has_rule_shape(obj)
    ]
    if len(candidates) != 1:
        names = ", ".join(c.__name__ for c in candidates) or "none"
        raise CustomRuleLoadError(f"{path}: expected exactly one rule class, found {len(candidates)} ({names})")

    try:
        rule = candidates[0]()
    except Exception as e:
        raise CustomRuleLoadError(f"{path}: could not instantiate {candidates[0].__name__}: {e}") from e

    errors = _shape_errors(rule)
    if errors:
        raise CustomRuleLoadError(f"{path}: {'; '.join(errors)}")
    return rule


def _has_rule_shape(obj: object) -> bool:
    return hasattr(obj, "evaluate") and callable(getattr(obj, "evaluate"))


def _shape_errors(rule: object) -> list[str]:
    errors: list[str] = []
    name = getattr(rule, "name", None)
    if not isinstance(name, str) or not name.strip():
        errors.append("'name' must be a non-empty string")
    if not isinstance(getattr(rule, "description", None), str):
        errors.append("'description' must be a string")
    if not callable(getattr(rule, "evaluate", None)):
        errors.append("'evaluate' must be callable")
    return errors
