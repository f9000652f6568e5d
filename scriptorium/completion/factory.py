from scriptorium.completion.base import BaseBatchClient, BaseCompletionClient
from scriptorium.completion.example_client_adapter import (
    ExampleBatchClient,
    ExampleCompletionClient,
)
from scriptorium.completion.openai_batch_adapter import OpenAIBatchAdapter
from scriptorium.completion.openai_client_adapter import OpenAICompletionAdapter
from scriptorium.config.settings import Settings

SUPPORTED_PROVIDERS = ("example", "openai", "openai_compatible")


class CompletionClientFactory:
    """Creates the configured synchronous and batch completion clients."""

    @classmethod
    def create(cls, settings: Settings) -> BaseCompletionClient:
        provider = cls._provider(settings)
        if provider == "example":
            return ExampleCompletionClient()
        return OpenAICompletionAdapter(
            api_key=settings.completion_api_key,
            timeout_seconds=settings.completion_timeout_seconds,
            base_url=cls._resolve_base_url(provider, settings),
        )

    @classmethod
    def create_batch(cls, settings: Settings) -> BaseBatchClient:
        provider = cls._provider(settings)
        if provider == "example":
            return ExampleBatchClient()
        return OpenAIBatchAdapter(
            api_key=settings.completion_api_key,
            timeout_seconds=settings.completion_timeout_seconds,
            base_url=cls._resolve_base_url(provider, settings),
        )

    @classmethod
    def _provider(cls, settings: Settings) -> str:
        provider = settings.completion_provider.lower()
        if provider not in SUPPORTED_PROVIDERS:
            raise ValueError(
                f"Unknown completion provider '{provider}'. "
                f"Choose from: {list(SUPPORTED_PROVIDERS)}"
            )
        return provider

    @classmethod
    def _resolve_base_url(cls, provider: str, settings: Settings) -> str | None:
        if provider == "openai":
            return None
        url = settings.completion_base_url.strip()
        if not url:
            raise ValueError(
                "completion_base_url is required for completion_provider=openai_compatible"
            )
        return url
