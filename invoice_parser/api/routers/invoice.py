from fastapi import APIRouter, Depends, UploadFile, File, HTTPException, Request
from fastapi.responses import JSONResponse
from loguru import logger
from ..deps import CompareRequest, get_document_analyzer, get_noise_filter
from ...core.errors import MalformedResponseError, ServiceError
from ...services.comparator import compare_items
from ...services.pipeline import process_document

router = APIRouter(prefix="/invoices", tags=["invoices"])


@router.post("/parse")
async def parse_invoice(
    request: Request,
    file: UploadFile = File(None),
    include_raw: bool = False,
    analyzer=Depends(get_document_analyzer),
    noise_filter=Depends(get_noise_filter),
):
    """
    Extract invoice line items, distributor and date from a scanned invoice.

    Accepts either:
    - multipart/form-data (file upload via form)
    - application/pdf, image/* or application/octet-stream (raw binary body)

    Non-inventory lines (fees, taxes, surcharges) are removed before the
    items are returned. The provider's raw analysis tree is only included
    when include_raw=true.
    """
    if file:
        content = await file.read()
        mime_type = file.content_type or "application/octet-stream"
    else:
        content = await request.body()
        mime_type = request.headers.get("content-type") or "application/octet-stream"
    if not content:
        raise HTTPException(status_code=422, detail="No file provided (either multipart or raw body)")

    try:
        result = await process_document(content, mime_type, analyzer=analyzer, noise_filter=noise_filter)
    except ServiceError as e:
        logger.error(f"Analysis service error: {e}")
        raise HTTPException(status_code=502, detail=str(e))
    except MalformedResponseError as e:
        logger.error(f"Malformed analysis result: {e}")
        raise HTTPException(status_code=422, detail=str(e))

    exclude = None if include_raw else {"raw_output"}
    return JSONResponse(result.model_dump(mode="json", by_alias=True, exclude=exclude))


@router.post("/compare")
async def compare(req: CompareRequest):
    """
    Reconcile parsed items (actual) against expected items.

    Always answers with a complete report; discrepancies are data, not errors.
    """
    report = compare_items(req.actual, req.expected)
    body = report.model_dump(mode="json", by_alias=True)
    body["passed"] = report.passed
    return body
