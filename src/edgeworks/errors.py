"""Exceptions surfaced to whoever is synthesizing the app."""

from __future__ import annotations


class EdgeworksError(ValueError):
    """Base class for user-visible component errors."""


class ConfigurationError(EdgeworksError):
    """Raised when component arguments are missing, conflicting or unsupported."""


class BuildOutputError(EdgeworksError):
    """Raised when a framework build output is missing or malformed."""


class BuildCommandError(EdgeworksError):
    """Raised when the site build command cannot be resolved or fails."""
