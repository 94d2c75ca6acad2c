"""Exception hierarchy shared by the scanner components."""

from __future__ import annotations


class LunaError(Exception):
    """Base class for every error raised by LUNA."""


class ManifestError(LunaError):
    """``package.json`` exists but cannot be read or decoded."""


class ParseError(LunaError):
    """A source file could not be turned into a syntax tree."""


class DependencyTreeError(LunaError):
    """The dependency tree could not be produced."""


class RegistryError(DependencyTreeError):
    """A registry request failed on every attempt."""

    def __init__(self, url: str, attempts: int) -> None:
        super().__init__(f"Unable to fetch {url} (after {attempts} attempts)")
        self.url = url
        self.attempts = attempts


class LocalDependencyError(DependencyTreeError):
    """The local dependency listing produced no output."""
