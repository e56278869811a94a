import json
import plistlib
import zipfile
from pathlib import Path

import pytest

VALID_INFO = {
    "CFBundleIdentifier": "com.example.testapp",
    "CFBundleName": "TestApp",
    "CFBundleDisplayName": "Test App",
    "CFBundleVersion": "1",
    "CFBundleShortVersionString": "1.0.0",
    "LSRequiresIPhoneOS": True,
}


def write_bundle(root: Path, info: dict | None, name: str = "TestApp.app", extra: dict | None = None,
                 fmt=plistlib.FMT_XML) -> Path:
    """Create <root>/<name> with an Info.plist and any extra files (bytes or dict -> plist)."""
    bundle = root / name
    bundle.mkdir(parents=True)
    if info is not None:
        (bundle / "Info.plist").write_bytes(plistlib.dumps(info, fmt=fmt))
    for rel, content in (extra or {}).items():
        target = bundle / rel
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(plistlib.dumps(content) if isinstance(content, dict) else content)
    return bundle


def write_ipa(path: Path, entries: list[tuple[str, dict | bytes]]) -> Path:
    """Create an .ipa with entries written in the given order."""
    with zipfile.ZipFile(path, "w") as zf:
        for name, content in entries:
            zf.writestr(name, plistlib.dumps(content) if isinstance(content, dict) else content)
    return path


@pytest.fixture
def make_bundle(tmp_path):
    def factory(info=None, **kwargs):
        return write_bundle(tmp_path, dict(VALID_INFO) if info is None else info, **kwargs)
    return factory


@pytest.fixture
def make_ipa(tmp_path):
    def factory(entries, name="TestApp.ipa"):
        return write_ipa(tmp_path / name, entries)
    return factory


@pytest.fixture
def make_metadata(tmp_path):
    def factory(data, name="metadata.json"):
        path = tmp_path / name
        path.write_text(json.dumps(data) if not isinstance(data, str) else data)
        return path
    return factory


@pytest.fixture(autouse=True)
def no_codesign(monkeypatch):
    """Keep code-signing deterministic across hosts; tests that need codesign patch it back in."""
    monkeypatch.setattr("storeshield.rules.code_signing.codesign_available", lambda: False)
    monkeypatch.delenv("STORESHIELD_CONFIG", raising=False)
