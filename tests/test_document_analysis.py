"""
Tests for the document analysis adapters.

The Azure SDK client is replaced with mocks; the Mistral OCR endpoint is
mocked with respx.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
import respx
from azure.core.exceptions import HttpResponseError

from invoice_parser.core.config import settings
from invoice_parser.core.errors import ConfigurationError, MalformedResponseError, ServiceError
from invoice_parser.services import document_analysis
from invoice_parser.services.document_analysis import (
    AzureDocumentAnalyzer,
    MistralOcrAnalyzer,
    create_document_analyzer,
)


def mock_azure_client(result=None, submit_error=None):
    """Patchable stand-in for the async DocumentIntelligenceClient class"""
    poller = MagicMock()
    poller.result = AsyncMock(return_value=result)

    client = MagicMock()
    client.begin_analyze_document = AsyncMock(return_value=poller, side_effect=submit_error)

    client_cls = MagicMock()
    client_cls.return_value.__aenter__ = AsyncMock(return_value=client)
    client_cls.return_value.__aexit__ = AsyncMock(return_value=False)
    return client_cls, client


class TestAzureDocumentAnalyzer:
    def test_returns_terminal_result_tree(self, azure_tree):
        result = MagicMock()
        result.as_dict.return_value = azure_tree
        client_cls, client = mock_azure_client(result=result)

        analyzer = AzureDocumentAnalyzer("https://di.example.com", "key")
        with patch.object(document_analysis, "DocumentIntelligenceClient", client_cls):
            raw = asyncio.run(analyzer.analyze(b"%PDF-1.4", "application/pdf"))

        assert raw.provider == "azure"
        assert raw.analyze_result == azure_tree

        args, kwargs = client.begin_analyze_document.call_args
        assert args[0] == "prebuilt-invoice"
        assert kwargs["body"] == b"%PDF-1.4"
        assert kwargs["content_type"] == "application/pdf"

    def test_service_error_carries_provider_body(self):
        response = MagicMock(status_code=400, reason="Bad Request")
        error = HttpResponseError(message="InvalidRequest: corrupt document", response=response)
        client_cls, client = mock_azure_client(submit_error=error)

        analyzer = AzureDocumentAnalyzer("https://di.example.com", "key")
        with patch.object(document_analysis, "DocumentIntelligenceClient", client_cls):
            with pytest.raises(ServiceError) as exc_info:
                asyncio.run(analyzer.analyze(b"junk"))

        assert exc_info.value.status_code == 400
        assert exc_info.value.error_body is not None
        # Not retried
        assert client.begin_analyze_document.await_count == 1

    def test_missing_analyze_result_is_malformed(self):
        client_cls, _ = mock_azure_client(result=None)

        analyzer = AzureDocumentAnalyzer("https://di.example.com", "key")
        with patch.object(document_analysis, "DocumentIntelligenceClient", client_cls):
            with pytest.raises(MalformedResponseError):
                asyncio.run(analyzer.analyze(b"%PDF-1.4"))


class TestMistralOcrAnalyzer:
    def test_posts_data_url_and_returns_pages(self):
        analyzer = MistralOcrAnalyzer(api_key="k", base_url="https://llm.example.com/v1")

        with respx.mock:
            route = respx.post("https://llm.example.com/v1/ocr").mock(
                return_value=httpx.Response(200, json={"pages": [{"index": 0, "markdown": "# Vendor"}]})
            )
            raw = asyncio.run(analyzer.analyze(b"%PDF-1.4", "application/pdf"))

        assert raw.provider == "mistral"
        assert raw.ocr_response["pages"][0]["markdown"] == "# Vendor"
        sent = route.calls.last.request
        assert b"data:application/pdf;base64," in sent.content
        assert sent.headers["Authorization"] == "Bearer k"

    def test_http_error_is_service_error(self):
        analyzer = MistralOcrAnalyzer(api_key="k", base_url="https://llm.example.com/v1")

        with respx.mock:
            respx.post("https://llm.example.com/v1/ocr").mock(
                return_value=httpx.Response(401, json={"message": "Unauthorized"})
            )
            with pytest.raises(ServiceError) as exc_info:
                asyncio.run(analyzer.analyze(b"%PDF-1.4"))

        assert exc_info.value.status_code == 401
        assert "Unauthorized" in exc_info.value.error_body

    def test_response_without_pages_is_malformed(self):
        analyzer = MistralOcrAnalyzer(api_key="k", base_url="https://llm.example.com/v1")

        with respx.mock:
            respx.post("https://llm.example.com/v1/ocr").mock(return_value=httpx.Response(200, json={"model": "x"}))
            with pytest.raises(MalformedResponseError):
                asyncio.run(analyzer.analyze(b"%PDF-1.4"))


def test_factory_requires_azure_credentials():
    original_endpoint = settings.az_di_endpoint
    original_key = settings.az_di_api_key
    settings.az_di_endpoint = None
    settings.az_di_api_key = None

    try:
        with pytest.raises(ConfigurationError):
            create_document_analyzer("azure")
    finally:
        settings.az_di_endpoint = original_endpoint
        settings.az_di_api_key = original_key


def test_factory_builds_configured_analyzer():
    original_endpoint = settings.az_di_endpoint
    original_key = settings.az_di_api_key
    settings.az_di_endpoint = "https://di.example.com"
    settings.az_di_api_key = "secret"

    try:
        analyzer = create_document_analyzer("azure")
        assert isinstance(analyzer, AzureDocumentAnalyzer)
        assert analyzer.model_id == settings.az_di_model_id
    finally:
        settings.az_di_endpoint = original_endpoint
        settings.az_di_api_key = original_key
