"""
Projections from raw provider analysis trees onto the canonical item model.

Each provider gets its own set of extraction functions; extract_ocr_result
dispatches on the provider tag so nothing downstream ever sees a raw tree
(apart from OCRResult.raw_output, which is kept for audit only).
"""

import re
from datetime import datetime
from typing import Any
from loguru import logger
from .invoice_types import AzureAnalysisResult, MistralOcrResult, RawAnalysisResult
from ..core.errors import NoDocumentDataError
from ..models.invoice import DistributorAddress, DistributorInfo, InvoiceItem, OCRResult


# ---------- Azure Document Intelligence ----------

def _documents(analyze_result: dict[str, Any]) -> list[dict[str, Any]]:
    # An empty OCR result confuses everything downstream more than a failure
    documents = analyze_result.get("documents")
    if not documents:
        raise NoDocumentDataError()
    return documents


def _number(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value


def _page_index(element: dict[str, Any]) -> int:
    regions = element.get("boundingRegions") or []
    if not regions:
        return 0
    page_number = regions[0].get("pageNumber")
    if not isinstance(page_number, int):
        return 0
    return max(page_number - 1, 0)


def extract_invoice_date(analyze_result: dict[str, Any]) -> str:
    """
    Returns the invoice date as YYYY-MM-DD, or an empty string if not found.

    Raises NoDocumentDataError when the result has no documents.
    """
    fields = _documents(analyze_result)[0].get("fields")
    if not fields:
        return ""
    value = (fields.get("InvoiceDate") or {}).get("valueDate")
    if value is None:
        return ""
    return value.isoformat() if hasattr(value, "isoformat") else str(value)


def extract_distributor_info(analyze_result: dict[str, Any]) -> DistributorInfo:
    """
    Reads vendor name and address off the first document.

    A missing address yields an empty address block; the vendor name alone
    is still worth returning.
    """
    fields = _documents(analyze_result)[0].get("fields") or {}
    name = (fields.get("VendorName") or {}).get("valueString") or ""
    parsed_address = (fields.get("VendorAddress") or {}).get("valueAddress")

    if not parsed_address:
        return DistributorInfo(name=name, address=DistributorAddress())

    return DistributorInfo(
        name=name,
        address=DistributorAddress(
            street_address=parsed_address.get("streetAddress") or "",
            city=parsed_address.get("city") or "",
            state=parsed_address.get("state") or "",
            zip_code=parsed_address.get("postalCode") or "",
        ),
    )


def _extract_item(element: dict[str, Any]) -> InvoiceItem:
    data = element["valueObject"]

    def field(name: str) -> dict[str, Any]:
        value = data.get(name)
        return value if isinstance(value, dict) else {}

    return InvoiceItem(
        item_id=field("ProductCode").get("valueString"),
        item_description=field("Description").get("valueString"),
        quantity=_number(field("Quantity").get("valueNumber")),
        unit_price=_number((field("UnitPrice").get("valueCurrency") or {}).get("amount")),
        total=_number((field("Amount").get("valueCurrency") or {}).get("amount")),
        page_index=_page_index(element),
    )


def extract_invoice_items(analyze_result: dict[str, Any]) -> list[InvoiceItem]:
    """Flattens the Items array of every document into canonical items."""
    items: list[InvoiceItem] = []
    for document in _documents(analyze_result):
        items_field = (document.get("fields") or {}).get("Items")
        if not items_field or items_field.get("type") != "array":
            continue
        for element in items_field.get("valueArray") or []:
            # OCR noise is expected here; skip anything that is not an object
            if not isinstance(element, dict) or element.get("type") != "object":
                continue
            if not isinstance(element.get("valueObject"), dict):
                continue
            items.append(_extract_item(element))
    return items


def extract_azure_result(raw: AzureAnalysisResult) -> OCRResult:
    tree = raw.analyze_result
    result = OCRResult(
        invoice_items=extract_invoice_items(tree),
        distributor_info=extract_distributor_info(tree),
        invoice_date=extract_invoice_date(tree),
        raw_output=tree,
    )
    logger.info(
        "Extracted invoice fields",
        provider="azure",
        items=len(result.invoice_items),
        distributor=result.distributor_info.name,
        invoice_date=result.invoice_date,
    )
    return result


# ---------- Mistral OCR (markdown pages) ----------

HEADER_CELLS = {"ITEM", "QUANTITY"}
ADDRESS_PATTERN = re.compile(r"(\d+\s+[^,\n]+),\s*([^,\n]+),\s*([A-Z]{2})\s*(\d{5})")
HEADING_PATTERN = re.compile(r"^#\s+(.+)$", re.MULTILINE)
PRICE_PATTERN = re.compile(r"[-+]?(?:\d+(?:\.\d*)?|\.\d+)")
DATE_PATTERNS = [
    (re.compile(r"Date:\s*(\d{1,2}/\d{1,2}/\d{4})"), "%m/%d/%Y"),
    (re.compile(r"(\d{4}/\d{1,2}/\d{1,2})"), "%Y/%m/%d"),
    (re.compile(r"(\d{1,2}/\d{1,2}/\d{4})"), "%m/%d/%Y"),
    (re.compile(r"(\d{4}-\d{1,2}-\d{1,2})"), "%Y-%m-%d"),
]


def _pages(ocr_response: dict[str, Any]) -> list[dict[str, Any]]:
    pages = ocr_response.get("pages")
    if not pages:
        raise NoDocumentDataError()
    return pages


def parse_quantity(text: str | None) -> float | None:
    if not text:
        return None
    match = re.search(r"(\d+(?:\.\d+)?)", text)
    return float(match.group(1)) if match else None


def parse_price(text: str | None) -> float | None:
    if not text:
        return None
    match = PRICE_PATTERN.match(text.replace("$", "").replace(",", "").strip())
    return float(match.group(0)) if match else None


def extract_markdown_items(ocr_response: dict[str, Any]) -> list[InvoiceItem]:
    """
    Reads line items from markdown table rows.

    Columns are expected in the order item id, quantity, description,
    unit price, total. Header and separator rows are skipped, as are rows
    whose unit price is not numeric.
    """
    items: list[InvoiceItem] = []
    for page_index, page in enumerate(_pages(ocr_response)):
        for line in (page.get("markdown") or "").split("\n"):
            if "|" not in line or "---" in line:
                continue
            cells = [cell.strip() for cell in line.split("|") if cell.strip()]
            if len(cells) < 5 or HEADER_CELLS.intersection(cells):
                continue
            item_id, quantity, description, unit_price, total = cells[:5]
            if parse_price(unit_price) is None:
                continue
            items.append(InvoiceItem(
                item_id=item_id or None,
                item_description=description or None,
                quantity=parse_quantity(quantity),
                unit_price=parse_price(unit_price),
                total=parse_price(total),
                page_index=page_index,
            ))
    return items


def extract_markdown_distributor_info(ocr_response: dict[str, Any]) -> DistributorInfo:
    name = ""
    address = DistributorAddress()
    for page in _pages(ocr_response):
        markdown = page.get("markdown") or ""
        heading = HEADING_PATTERN.search(markdown)
        if heading and not name:
            name = heading.group(1).strip()
        match = ADDRESS_PATTERN.search(markdown)
        if match:
            address = DistributorAddress(
                street_address=match.group(1).strip(),
                city=match.group(2).strip(),
                state=match.group(3),
                zip_code=match.group(4),
            )
    return DistributorInfo(name=name, address=address)


def extract_markdown_invoice_date(ocr_response: dict[str, Any]) -> str:
    for page in _pages(ocr_response):
        markdown = page.get("markdown") or ""
        for pattern, fmt in DATE_PATTERNS:
            match = pattern.search(markdown)
            if not match:
                continue
            try:
                return datetime.strptime(match.group(1), fmt).date().isoformat()
            except ValueError:
                continue
    return ""


def extract_mistral_result(raw: MistralOcrResult) -> OCRResult:
    tree = raw.ocr_response
    result = OCRResult(
        invoice_items=extract_markdown_items(tree),
        distributor_info=extract_markdown_distributor_info(tree),
        invoice_date=extract_markdown_invoice_date(tree),
        raw_output=tree,
    )
    logger.info(
        "Extracted invoice fields",
        provider="mistral",
        items=len(result.invoice_items),
        distributor=result.distributor_info.name,
        invoice_date=result.invoice_date,
    )
    return result


def extract_ocr_result(raw: RawAnalysisResult) -> OCRResult:
    if isinstance(raw, AzureAnalysisResult):
        return extract_azure_result(raw)
    if isinstance(raw, MistralOcrResult):
        return extract_mistral_result(raw)
    raise TypeError(f"Unsupported analysis result: {type(raw).__name__}")
