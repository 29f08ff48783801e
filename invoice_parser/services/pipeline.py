from loguru import logger
from .document_analysis import create_document_analyzer
from .field_extractor import extract_ocr_result
from .noise_filter import NoiseFilter, create_noise_filter
from ..models.invoice import OCRResult


async def process_document(
    document_bytes: bytes,
    mime_type: str = "application/pdf",
    analyzer=None,
    noise_filter: NoiseFilter = None,
) -> OCRResult:
    """
    Runs one document through analysis, field extraction and noise filtering.

    Analysis and extraction failures propagate as a single exception; no
    partial item list is ever returned. Classification failures are handled
    by the noise filter's error policy.
    """
    analyzer = analyzer or create_document_analyzer()
    noise_filter = noise_filter or create_noise_filter()

    raw = await analyzer.analyze(document_bytes, mime_type)
    result = extract_ocr_result(raw)

    extracted = len(result.invoice_items)
    result.invoice_items = await noise_filter.filter(result.invoice_items)

    logger.info(
        "Document processed",
        provider=raw.provider,
        extracted_items=extracted,
        kept_items=len(result.invoice_items),
    )
    return result
