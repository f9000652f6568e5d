import httpx

from scriptorium.completion.exceptions import TransientProviderError
from scriptorium.imaging.base import BaseImageDeriver
from scriptorium.imaging.exceptions import ImageDerivationError
from scriptorium.results.models import Page


class HttpImageDeriver(BaseImageDeriver):
    """Calls the image service, which crops, stores the asset and returns its URL."""

    def __init__(
        self,
        *,
        service_url: str,
        timeout_seconds: int,
        client: httpx.Client | None = None,
    ) -> None:
        self._service_url = service_url
        self._client = client or httpx.Client(timeout=timeout_seconds)

    def derive(self, page: Page) -> str:
        source_url = page.photo_original or page.photo
        if not source_url:
            raise ImageDerivationError("No image URL")
        if not page.crop:
            raise ImageDerivationError("No crop data")

        try:
            response = self._client.post(
                self._service_url,
                json={
                    "page_id": page.id,
                    "book_id": page.book_id,
                    "source_url": source_url,
                    "crop": page.crop,
                },
            )
        except httpx.TransportError as exc:
            raise TransientProviderError(f"Image service network error: {exc}") from exc

        if response.status_code == 429 or response.status_code >= 500:
            raise TransientProviderError(
                f"Image service unavailable: HTTP {response.status_code}"
            )
        if response.status_code >= 400:
            raise ImageDerivationError(
                f"Image service rejected page: HTTP {response.status_code}"
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise ImageDerivationError("Image service returned invalid JSON") from exc
        asset_url = body.get("url") if isinstance(body, dict) else None
        if not asset_url:
            raise ImageDerivationError("Image service returned no URL")
        return str(asset_url)
