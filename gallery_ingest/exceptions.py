"""
Custom exception hierarchy for the ingestion pipeline.

Fatal errors (configuration, scanning, catalog) propagate to the CLI.
Per-item errors are caught by the batch scheduler and counted.
"""


class GalleryIngestError(Exception):
    """Base exception for all ingestion errors."""
    pass


class ConfigurationError(GalleryIngestError):
    """Raised when required settings are missing or invalid."""
    pass


class ScanError(GalleryIngestError):
    """Raised when the source tree cannot be fully traversed."""
    pass


class MetadataExtractionError(GalleryIngestError):
    """Raised when metadata cannot be extracted from a file."""
    pass


class DerivativeError(GalleryIngestError):
    """Raised when an image cannot be decoded into a thumbnail or placeholder."""
    pass


class CatalogError(GalleryIngestError):
    """Raised when catalog operations fail."""
    pass


class RemoteSyncError(GalleryIngestError):
    """Raised when a remote transfer fails."""
    pass


class IdentityCollisionError(GalleryIngestError):
    """Raised when a second file in the same run resolves to an identity already ingested."""
    pass
