"""Exceptions raised by the export sinks."""


class ExportError(Exception):
    """Base exception for export operations."""

    pass


class ConfigError(ExportError):
    """Malformed destination path or sink parameters."""

    pass


class CredentialError(ExportError):
    """Role assumption or credential retrieval failed."""

    pass


class WriteError(ExportError):
    """Error writing a header, row or part to the output stream."""

    pass


class FinalizeError(ExportError):
    """Error completing or closing the remote object."""

    pass
