"""Errors raised while exporting runtime metadata. Every one of them is fatal for the run."""


class MetadataExportError(Exception):
    """Base class for all export failures."""


class SourceUnavailable(MetadataExportError):
    """The metadata tree could not be fetched, read or decoded."""


class TypeResolutionFailure(MetadataExportError):
    """An argument type handle could not be resolved to a display name."""

    def __init__(self, type_handle, reason: str = "unknown type id"):
        self.type_handle = type_handle
        super().__init__(f"Cannot resolve type {type_handle!r}: {reason}")


class SinkFailure(MetadataExportError):
    """The generated SQL could not be written."""
