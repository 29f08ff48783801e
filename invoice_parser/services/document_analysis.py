import base64
import httpx
from loguru import logger
from azure.ai.documentintelligence.aio import DocumentIntelligenceClient
from azure.core.credentials import AzureKeyCredential
from azure.core.exceptions import HttpResponseError
from .invoice_types import AzureAnalysisResult, MistralOcrResult
from ..core.config import settings
from ..core.errors import ConfigurationError, MalformedResponseError, ServiceError


def _short(url: str) -> str:
    return url[:50] + "..." if len(url) > 50 else url


class AzureDocumentAnalyzer:
    """
    Runs a document through an Azure Document Intelligence model.

    The service answers the submit call with an operation handle; the SDK
    poller keeps polling until the operation is terminal. That wait can be
    long and there is no built-in cancellation: a caller that gives up simply
    abandons the poll and the remote job finishes or expires on its own.
    """

    provider = "azure"

    def __init__(self, endpoint: str, api_key: str, model_id: str = "prebuilt-invoice"):
        self.endpoint = endpoint
        self.api_key = api_key
        self.model_id = model_id

    async def analyze(self, document_bytes: bytes, mime_type: str = "application/octet-stream") -> AzureAnalysisResult:
        logger.info(
            "Submitting document to Azure Document Intelligence",
            endpoint=_short(self.endpoint),
            model_id=self.model_id,
            size_bytes=len(document_bytes),
            mime_type=mime_type,
        )

        async with DocumentIntelligenceClient(
            endpoint=self.endpoint,
            credential=AzureKeyCredential(self.api_key)
        ) as client:
            try:
                poller = await client.begin_analyze_document(
                    self.model_id,
                    body=document_bytes,
                    content_type=mime_type
                )
                result = await poller.result()
            except HttpResponseError as e:
                error_body = e.error if e.error is not None else e.message
                logger.error(f"Azure DI analysis failed: {e.message}")
                raise ServiceError(
                    f"Document analysis failed: {e.message}",
                    status_code=e.status_code,
                    error_body=error_body,
                ) from e

        if result is None:
            raise MalformedResponseError("Analyze result not found in response body")

        analyze_result = result.as_dict() if hasattr(result, "as_dict") else dict(result)
        logger.info(
            "Azure DI analysis complete",
            documents=len(analyze_result.get("documents") or []),
            pages=len(analyze_result.get("pages") or []),
        )
        return AzureAnalysisResult(analyze_result=analyze_result)


class MistralOcrAnalyzer:
    """Mistral OCR: one synchronous request, markdown per page."""

    provider = "mistral"

    def __init__(self, api_key: str, base_url: str = "https://api.mistral.ai/v1",
                 model: str = "mistral-ocr-latest", timeout: float = 120.0):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout

    async def analyze(self, document_bytes: bytes, mime_type: str = "application/pdf") -> MistralOcrResult:
        data_url = f"data:{mime_type};base64,{base64.b64encode(document_bytes).decode('ascii')}"
        if mime_type.startswith("image/"):
            document = {"type": "image_url", "image_url": data_url}
        else:
            document = {"type": "document_url", "document_url": data_url}

        payload = {"model": self.model, "document": document, "include_image_base64": False}
        headers = {"Authorization": f"Bearer {self.api_key}"}

        logger.info("Submitting document to Mistral OCR", model=self.model, size_bytes=len(document_bytes))
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            r = await client.post(f"{self.base_url}/ocr", json=payload, headers=headers)

        if r.is_error:
            logger.error(f"Mistral OCR failed with HTTP {r.status_code}")
            raise ServiceError(
                f"Mistral OCR request failed with HTTP {r.status_code}",
                status_code=r.status_code,
                error_body=r.text,
            )

        try:
            body = r.json()
        except ValueError as e:
            raise MalformedResponseError("Mistral OCR response is not JSON") from e

        if not isinstance(body, dict) or "pages" not in body:
            raise MalformedResponseError("Mistral OCR response has no pages")

        return MistralOcrResult(ocr_response=body)


def create_document_analyzer(provider: str | None = None):
    """
    Factory for the configured document analysis service.

    Raises ConfigurationError when the selected provider has no credentials.
    """
    provider = provider or settings.ocr_provider

    if provider == "azure":
        if not (settings.az_di_endpoint and settings.az_di_api_key):
            raise ConfigurationError(
                "Azure Document Intelligence not configured. "
                "Set AZ_DI_ENDPOINT and AZ_DI_API_KEY."
            )
        return AzureDocumentAnalyzer(
            endpoint=settings.az_di_endpoint,
            api_key=settings.az_di_api_key,
            model_id=settings.az_di_model_id,
        )

    if provider == "mistral":
        if not settings.llm_api_key:
            raise ConfigurationError("Mistral OCR not configured. Set LLM_API_KEY.")
        return MistralOcrAnalyzer(
            api_key=settings.llm_api_key,
            base_url=settings.llm_base_url,
            model=settings.mistral_ocr_model,
        )

    raise ConfigurationError(f"Unknown OCR provider: {provider}")
