"""Exceptions raised by the catalog, favorites and matching services."""

from __future__ import annotations


class ReelMatesError(Exception):
    """Base class for recoverable service errors."""


class ProviderError(ReelMatesError):
    """The external catalog could not be fetched or returned a malformed page."""


class PersistenceError(ReelMatesError):
    """A read or write against the backing store failed."""


class ConfigurationError(ReelMatesError):
    """A category has no curated mapping or configuration is inconsistent."""


class PreconditionError(ReelMatesError):
    """An operation needs a signed-in user and none is available."""
