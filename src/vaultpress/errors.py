from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .issues import IssueReport


class VaultPressError(Exception):
    """Base class for unrecoverable processor failures."""


class ConfigurationError(VaultPressError, ValueError):
    """Invalid configuration or an unusable input/output location."""


class PluginDependencyError(VaultPressError):
    """Plugin dependency graph cannot be ordered (cycle)."""


class PluginInitializationError(VaultPressError):
    """A plugin marked as required could not be initialized."""

    def __init__(self, capability: str, message: str) -> None:
        super().__init__(f"Required plugin '{capability}' unavailable: {message}")
        self.capability = capability


class ProcessingError(VaultPressError):
    """A required stage failed. Carries the issues collected so far."""

    def __init__(self, message: str, report: "IssueReport | None" = None) -> None:
        super().__init__(message)
        self.report = report
