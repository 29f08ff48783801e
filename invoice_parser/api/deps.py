from fastapi import HTTPException
from pydantic import Field
from ..core.errors import ConfigurationError
from ..models.invoice import CamelModel, InvoiceItem
from ..services.document_analysis import create_document_analyzer
from ..services.noise_filter import create_noise_filter


class CompareRequest(CamelModel):
    actual: list[InvoiceItem] = Field(default_factory=list)
    expected: list[InvoiceItem] = Field(default_factory=list)


def get_document_analyzer():
    try:
        return create_document_analyzer()
    except ConfigurationError as e:
        raise HTTPException(status_code=503, detail=str(e))


def get_noise_filter():
    return create_noise_filter()
