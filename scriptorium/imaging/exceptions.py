class ImageDerivationError(Exception):
    """Raised when a derived image cannot be produced for a page. Not retried."""
