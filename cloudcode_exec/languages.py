"""
Supported languages and how each one is run, isolated and extended.
"""

from dataclasses import dataclass
from enum import Enum

from .core.exceptions import UnsupportedLanguageError


class Language(str, Enum):
    PYTHON = "python"
    JAVASCRIPT = "javascript"
    TYPESCRIPT = "typescript"
    BASH = "bash"


class EnvironmentKind(str, Enum):
    """Kind of per-project isolated environment a language needs."""

    INTERPRETED_VENV = "InterpretedVenv"
    PACKAGE_DIR = "PackageDir"


class PackageManager(str, Enum):
    PIP = "pip"
    NPM = "npm"


@dataclass(frozen=True)
class LanguageSpec:
    """Declarative description of one runnable language.

    ``command`` is an argv template; ``{python}`` and ``{node}`` are replaced
    by the resolved interpreters and ``{file}`` by the scratch file path.
    """

    language: Language
    name: str
    extension: str
    command: tuple[str, ...]
    environment: EnvironmentKind | None = None
    package_manager: PackageManager | None = None
    aliases: tuple[str, ...] = ()

    @property
    def id(self) -> str:
        return self.language.value

    @property
    def display_command(self) -> str:
        parts = [part.strip("{}") if part in ("{python}", "{node}") else part for part in self.command]
        return " ".join(parts)

    @property
    def version_separator(self) -> str:
        return "@" if self.package_manager is PackageManager.NPM else "=="

    def build_command(self, file_path: str, python: str = "python3", node: str = "node") -> list[str]:
        values = {"{file}": file_path, "{python}": python, "{node}": node}
        return [values.get(part, part) for part in self.command]

    def to_dict(self) -> dict[str, str]:
        return {
            "id": self.id,
            "name": self.name,
            "extension": self.extension,
            "command": self.display_command,
        }


LANGUAGE_SPECS: dict[Language, LanguageSpec] = {
    Language.PYTHON: LanguageSpec(
        language=Language.PYTHON,
        name="Python",
        extension=".py",
        command=("{python}", "{file}"),
        environment=EnvironmentKind.INTERPRETED_VENV,
        package_manager=PackageManager.PIP,
        aliases=("py", "python3"),
    ),
    Language.JAVASCRIPT: LanguageSpec(
        language=Language.JAVASCRIPT,
        name="JavaScript",
        extension=".js",
        command=("{node}", "{file}"),
        environment=EnvironmentKind.PACKAGE_DIR,
        package_manager=PackageManager.NPM,
        aliases=("js", "node", "nodejs"),
    ),
    Language.TYPESCRIPT: LanguageSpec(
        language=Language.TYPESCRIPT,
        name="TypeScript",
        extension=".ts",
        command=("npx", "ts-node", "{file}"),
        environment=EnvironmentKind.PACKAGE_DIR,
        package_manager=PackageManager.NPM,
        aliases=("ts",),
    ),
    Language.BASH: LanguageSpec(
        language=Language.BASH,
        name="Bash",
        extension=".sh",
        command=("bash", "{file}"),
        aliases=("sh", "shell"),
    ),
}


def _build_lookup() -> dict[str, Language]:
    lookup: dict[str, Language] = {}
    for language, spec in LANGUAGE_SPECS.items():
        lookup[language.value] = language
        lookup[spec.name.lower()] = language
        for alias in spec.aliases:
            lookup[alias] = language
    return lookup


_LOOKUP = _build_lookup()


def resolve_language(value: "str | Language") -> LanguageSpec:
    """
    Resolve a language selector to its spec.

    Args:
        value: Language member, id, display name or alias (case-insensitive)

    Returns:
        The matching LanguageSpec

    Raises:
        UnsupportedLanguageError: If nothing matches
    """
    if isinstance(value, Language):
        return LANGUAGE_SPECS[value]
    key = str(value or "").strip().lower()
    language = _LOOKUP.get(key)
    if language is None:
        raise UnsupportedLanguageError(str(value))
    return LANGUAGE_SPECS[language]


def supported_languages() -> list[dict[str, str]]:
    """Public listing of runnable languages."""
    return [spec.to_dict() for spec in LANGUAGE_SPECS.values()]
