"""
Pattern Server Errors

Exceptions raised by the resource catalog and the protocol dispatcher.

Resource reads and prompt lookups let these propagate to the MCP client.
Tool calls never raise them past the dispatcher; they are converted into
structured error envelopes there.
"""

from typing import Iterable, List, Optional


class PatternServerError(Exception):
    """Base class for all pattern server errors."""


class NotFoundError(PatternServerError, LookupError):
    """
    Unknown resource, tool, prompt, category or assembly name.

    Carries the list of valid names so callers can suggest alternatives.
    """

    def __init__(self, kind: str, name: str, available: Optional[Iterable[str]] = None):
        self.kind = kind
        self.name = name
        self.available: List[str] = list(available or [])
        message = f"{kind.capitalize()} '{name}' not found"
        if self.available:
            plural = kind[:-1] + "ies" if kind.endswith("y") else kind + "s"
            message += f". Available {plural}: {', '.join(self.available)}"
        super().__init__(message)


class InvalidURIError(PatternServerError, ValueError):
    """Resource identifier does not match <scheme>://resource/<name>."""

    def __init__(self, uri: str):
        self.uri = uri
        super().__init__(f"Invalid resource URI: {uri}")


class InvalidArgumentsError(PatternServerError, ValueError):
    """Tool or prompt arguments failed validation."""

    def __init__(self, target: str, message: str):
        self.target = target
        super().__init__(f"Invalid arguments for '{target}': {message}")


class ConfigError(PatternServerError):
    """Server profile could not be loaded."""


class ManifestError(ConfigError):
    """Resource manifest is malformed."""


class PartialLoadWarning(UserWarning):
    """A resource group failed to load; the rest of the catalog is served."""
