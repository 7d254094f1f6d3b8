"""Tests for the language registry."""

import pytest

from cloudcode_exec.core.exceptions import UnsupportedLanguageError
from cloudcode_exec.languages import (
    EnvironmentKind,
    Language,
    PackageManager,
    resolve_language,
    supported_languages,
)


@pytest.mark.parametrize(
    "selector, expected",
    [
        ("python", Language.PYTHON),
        ("PY", Language.PYTHON),
        (" python3 ", Language.PYTHON),
        ("js", Language.JAVASCRIPT),
        ("Node", Language.JAVASCRIPT),
        ("ts", Language.TYPESCRIPT),
        ("shell", Language.BASH),
        (Language.BASH, Language.BASH),
    ],
)
def test_resolve_language_aliases(selector, expected):
    assert resolve_language(selector).language is expected


@pytest.mark.parametrize("selector", ["cobol", "", None])
def test_unsupported_language(selector):
    with pytest.raises(UnsupportedLanguageError):
        resolve_language(selector)


def test_supported_languages_listing():
    listing = supported_languages()
    ids = [entry["id"] for entry in listing]

    assert ids == ["python", "javascript", "typescript", "bash"]
    for entry in listing:
        assert set(entry) == {"id", "name", "extension", "command"}
    python = listing[0]
    assert python["extension"] == ".py"
    assert python["command"] == "python {file}"


def test_environment_and_package_manager():
    assert resolve_language("python").environment is EnvironmentKind.INTERPRETED_VENV
    assert resolve_language("python").package_manager is PackageManager.PIP
    assert resolve_language("typescript").environment is EnvironmentKind.PACKAGE_DIR
    assert resolve_language("bash").environment is None
    assert resolve_language("bash").package_manager is None


def test_build_command_substitutes_placeholders():
    assert resolve_language("python").build_command("/p/a.py", python="/v/bin/python") == [
        "/v/bin/python",
        "/p/a.py",
    ]
    assert resolve_language("js").build_command("/p/a.js", node="/usr/bin/node") == ["/usr/bin/node", "/p/a.js"]
    assert resolve_language("ts").build_command("/p/a.ts") == ["npx", "ts-node", "/p/a.ts"]


def test_version_separator():
    assert resolve_language("python").version_separator == "=="
    assert resolve_language("javascript").version_separator == "@"
