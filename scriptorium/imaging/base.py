from abc import ABC, abstractmethod

from scriptorium.results.models import Page


class BaseImageDeriver(ABC):
    """Contract for the external image cropping/resizing service."""

    @abstractmethod
    def derive(self, page: Page) -> str:
        """Produce the derived image for a page and return its asset URL.

        Raises:
            ImageDerivationError: if the page cannot be derived.
            TransientProviderError: if the service is temporarily unavailable.
        """
