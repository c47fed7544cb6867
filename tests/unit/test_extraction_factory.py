"""Unit tests for extraction provider factory.

Tests cover:
- Provider registry lookups
- Factory function provider creation
- Error handling for unknown providers
"""

import logging
from collections.abc import Iterator

import pytest

from invoice_scanner.extraction.base import ExtractionProvider
from invoice_scanner.extraction.factory import ProviderRegistry, create_extraction_service
from invoice_scanner.extraction.ollama_provider import OllamaExtractionProvider
from invoice_scanner.extraction.openai_provider import OpenAIExtractionProvider
from invoice_scanner.extraction.schema import InvoiceData
from invoice_scanner.shared.config import Settings


@pytest.fixture
def restore_registry() -> Iterator[None]:
    """Undo providers registered by a test."""
    original = dict(ProviderRegistry._providers)
    yield
    ProviderRegistry._providers.clear()
    ProviderRegistry._providers.update(original)


def test_registry_default_providers() -> None:
    assert ProviderRegistry.list_providers() == ["openai", "ollama"]


def test_registry_lookup() -> None:
    assert ProviderRegistry.get_provider_class("openai") is OpenAIExtractionProvider
    assert ProviderRegistry.get_provider_class("ollama") is OllamaExtractionProvider


def test_registry_unknown_provider_lists_available() -> None:
    with pytest.raises(ValueError, match="Unknown extraction provider") as exc_info:
        ProviderRegistry.get_provider_class("nonexistent")

    assert "openai, ollama" in str(exc_info.value)


def test_registry_register_new_provider(restore_registry: None) -> None:
    class StaticProvider(ExtractionProvider):
        def extract_invoice_fields(self, ocr_text: str) -> InvoiceData:
            return InvoiceData(notes=ocr_text)

        def is_available(self) -> bool:
            return True

        @property
        def provider_name(self) -> str:
            return "static"

    ProviderRegistry.register("static", StaticProvider)

    provider = create_extraction_service(Settings.model_construct(extraction_provider="static"))

    assert isinstance(provider, StaticProvider)
    assert provider.extract_invoice_fields("hello").notes == "hello"


def test_create_openai_provider(
    monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
) -> None:
    """Should warn, not fail, when the provider is not configured."""
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)

    with caplog.at_level(logging.WARNING):
        provider = create_extraction_service(Settings(extraction_provider="openai"))

    assert isinstance(provider, OpenAIExtractionProvider)
    assert "not fully available" in caplog.text
