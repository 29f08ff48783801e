from typing import Any
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Snake-case attributes, camelCase on the wire and in fixtures"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class InvoiceItem(CamelModel):
    """One physical line on a scanned invoice page.

    Numeric fields stay None when the source could not be parsed. Zero is a
    real price (free gift items), so it is never used as a placeholder.
    """
    item_id: str | None = None
    item_description: str | None = None
    quantity: float | None = None
    unit_price: float | None = None
    total: float | None = None
    page_index: int = Field(default=0, ge=0)


class DistributorAddress(CamelModel):
    street_address: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""
    country: str = "US"


class DistributorInfo(CamelModel):
    name: str = ""
    address: DistributorAddress = Field(default_factory=DistributorAddress)


class OCRResult(CamelModel):
    invoice_items: list[InvoiceItem] = Field(default_factory=list)
    distributor_info: DistributorInfo = Field(default_factory=DistributorInfo)
    invoice_date: str = ""  # YYYY-MM-DD, empty when not detected
    raw_output: dict[str, Any] = Field(default_factory=dict)
