from __future__ import annotations


class SoBossError(Exception):
    pass


class ConfigurationError(SoBossError):
    """
    Bad configuration detected before any device I/O: unknown speaker
    identifiers, unsupported command values, malformed config sections.
    """


class DeviceOperationError(SoBossError):
    """A probe or speaker call failed."""

