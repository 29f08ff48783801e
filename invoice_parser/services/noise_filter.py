"""
Removes non-inventory lines (fees, taxes, surcharges) from extracted items.

OCR happily picks up delivery fees, fuel surcharges and tax lines as if they
were products. A language model classifies the items and answers with the
ones to drop; everything else passes through in its original order.

Classification is a best-effort improvement. With the default fail-open
policy any error from the classification service is logged and the original
items are returned, so the extraction result is never blocked by it.
"""

import json
from typing import Literal, Protocol
import httpx
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field
from ..core.errors import MalformedResponseError, ServiceError
from ..models.invoice import CamelModel, InvoiceItem


SYSTEM_PROMPT = """
You are an AI assistant tasked with analyzing invoice items for a restaurant business.
Your primary job is to identify and remove non-inventory related food items.
These are typically entries that do not represent physical products that would be tracked in an inventory system.
You can use fields like 'itemId' (product code) and 'itemDescription' to make your decision.

The input is an array of InvoiceItem objects with this structure:
{
  itemId: string,         // The product code, though it may be empty
  itemDescription: string, // Description of the item
  quantity: number,       // Quantity ordered
  unitPrice: number,      // Price per unit
  pageIndex: number       // Page where the item appears
}

Your task is to return ONLY the entries that should be REMOVED from the inventory system.

IMPORTANT: Be very conservative in what you flag for removal. If in doubt, DO NOT include the item in your response.

Items that should ALWAYS be KEPT (do not include these in your response):
- All food products (including specialty items)
- All beverages (alcoholic and non-alcoholic)
- All kitchen and dining supplies
- Gift items, gift baskets, or special occasion items
- Seasonal or promotional products
- Any ingredient that could possibly be used in cooking or drinks

Examples of items that should be flagged for removal (include ONLY these in your response):
- Explicit service charges (labeled as "Service Fee", "Service Charge", etc.)
- Shipping or delivery fees
- Explicit handling charges
- Fuel surcharges or travel expenses
- Administrative or processing fees
- Credit card fees
- Account fees or membership dues
- Late payment penalties
- Tax-only line items

When examining item descriptions and item IDs:
1. Focus specifically on the exact wording of the item description and the content of the itemId.
2. Look for explicit terms like "fee", "charge", "surcharge", "tax", etc. in the itemDescription.
3. If the itemId looks like it's not just a product code (random alphanumeric string), treat it as an itemDescription and evaluate it by the rules above.
4. Do not remove an item based solely on price or quantity.

Provide your response as a valid JSON object with an 'itemsToRemove' array containing ONLY the invoice items that should be removed from the inventory.
Each item should maintain its original structure (itemId, itemDescription, quantity, unitPrice, pageIndex).
"""


class ClassifierItem(CamelModel):
    """Five-field item shape exchanged with the classifier.

    Structured output cannot express a nullable item id, so None travels as "".
    Strict schemas need every property required and no extra keys, so none
    of the fields carry a default.
    """
    model_config = ConfigDict(extra="forbid")

    item_id: str
    item_description: str | None
    quantity: float | None
    unit_price: float | None
    page_index: int

    @classmethod
    def from_invoice_item(cls, item: InvoiceItem) -> "ClassifierItem":
        return cls(
            item_id=item.item_id if item.item_id is not None else "",
            item_description=item.item_description,
            quantity=item.quantity,
            unit_price=item.unit_price,
            page_index=item.page_index,
        )

    def match_key(self) -> tuple:
        item_id = None if self.item_id == "" else self.item_id
        return (self.item_description, item_id, self.quantity, self.unit_price, self.page_index)


class ClassifierResponse(CamelModel):
    model_config = ConfigDict(extra="forbid")

    items_to_remove: list[ClassifierItem]


def _match_key(item: InvoiceItem) -> tuple:
    return (item.item_description, item.item_id, item.quantity, item.unit_price, item.page_index)


class FilterErrorPolicy(BaseModel):
    """What the filter does when the classification call fails"""
    mode: Literal["fail_open", "fail_closed", "retry"] = "fail_open"
    retries: int = Field(default=0, ge=0)  # extra attempts in retry mode, then fail open

    @classmethod
    def fail_open(cls) -> "FilterErrorPolicy":
        return cls(mode="fail_open")

    @classmethod
    def fail_closed(cls) -> "FilterErrorPolicy":
        return cls(mode="fail_closed")

    @classmethod
    def retry(cls, retries: int) -> "FilterErrorPolicy":
        return cls(mode="retry", retries=retries)

    @property
    def attempts(self) -> int:
        return 1 + self.retries if self.mode == "retry" else 1


class NoiseFilterConfig(BaseModel):
    model: str = "mistral-medium-latest"
    temperature: float = 0.0
    system_prompt: str = SYSTEM_PROMPT
    base_url: str = "https://api.mistral.ai/v1"
    api_key: str | None = None
    timeout: float = 60.0
    on_error: FilterErrorPolicy = Field(default_factory=FilterErrorPolicy)


class ClassificationBackend(Protocol):
    async def find_items_to_remove(self, items: list[ClassifierItem]) -> list[ClassifierItem]:
        ...


class ChatCompletionsBackend:
    """Schema-constrained chat completion against an OpenAI-compatible endpoint"""

    def __init__(self, config: NoiseFilterConfig):
        self.config = config

    def build_payload(self, items: list[ClassifierItem]) -> dict:
        return {
            "model": self.config.model,
            "temperature": self.config.temperature,
            "messages": [
                {"role": "system", "content": self.config.system_prompt},
                {"role": "user", "content": json.dumps([i.model_dump(by_alias=True) for i in items])},
            ],
            "response_format": {
                "type": "json_schema",
                "json_schema": {
                    "name": "InvoiceData",
                    "schema": ClassifierResponse.model_json_schema(by_alias=True),
                    "strict": True,
                },
            },
        }

    async def find_items_to_remove(self, items: list[ClassifierItem]) -> list[ClassifierItem]:
        url = f"{self.config.base_url.rstrip('/')}/chat/completions"
        headers = {"Authorization": f"Bearer {self.config.api_key}"}

        async with httpx.AsyncClient(timeout=self.config.timeout) as client:
            r = await client.post(url, json=self.build_payload(items), headers=headers)

        if r.is_error:
            raise ServiceError(
                f"Classification request failed with HTTP {r.status_code}",
                status_code=r.status_code,
                error_body=r.text,
            )

        body = r.json()
        try:
            content = body["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise MalformedResponseError("Parsed response is missing") from e
        if not content:
            raise MalformedResponseError("Parsed response is missing")

        return ClassifierResponse.model_validate_json(content).items_to_remove


class NoiseFilter:
    def __init__(self, config: NoiseFilterConfig = None, backend: ClassificationBackend = None):
        self.config = config or NoiseFilterConfig()
        if backend is None and self.config.api_key:
            backend = ChatCompletionsBackend(self.config)
        self.backend = backend

    async def filter(self, items: list[InvoiceItem]) -> list[InvoiceItem]:
        """
        Returns the items the classifier did not flag, in their original order.

        A removal candidate matches an item only when all five fields are
        equal (description, item id, quantity, unit price, page index); the
        classifier is expected to echo items verbatim.
        """
        if self.backend is None:
            logger.warning(
                "Noise filter not configured - returning items unfiltered. "
                "Set LLM_API_KEY to enable classification."
            )
            return items
        if not items:
            return items

        candidates = await self._items_to_remove(items)
        if candidates is None:
            return items

        to_remove = {c.match_key() for c in candidates}
        kept = [item for item in items if _match_key(item) not in to_remove]

        logger.info(
            "Noise filter applied",
            input_items=len(items),
            flagged=len(candidates),
            removed=len(items) - len(kept),
        )
        return kept

    async def _items_to_remove(self, items: list[InvoiceItem]) -> list[ClassifierItem] | None:
        """Runs the classification under the error policy; None means fail open."""
        request = [ClassifierItem.from_invoice_item(item) for item in items]
        policy = self.config.on_error

        for attempt in range(1, policy.attempts + 1):
            try:
                return await self.backend.find_items_to_remove(request)
            except Exception as e:
                logger.error(
                    "Error classifying invoice items: {error}",
                    error=str(e),
                    attempt=attempt,
                    attempts=policy.attempts,
                    policy=policy.mode,
                )
                if policy.mode == "fail_closed":
                    if isinstance(e, ServiceError):
                        raise
                    raise ServiceError(f"Invoice item classification failed: {e}") from e

        logger.warning("Classification unavailable - returning items unfiltered")
        return None


def create_noise_filter(
    model: str = None,
    temperature: float = None,
    on_error: FilterErrorPolicy = None,
    backend: ClassificationBackend = None,
) -> NoiseFilter:
    """
    Factory function to create a noise filter with optional overrides.

    Uses environment variables as defaults.
    """
    from ..core.config import settings

    if on_error is None:
        on_error = FilterErrorPolicy(
            mode=settings.noise_filter_on_error,
            retries=settings.noise_filter_retries if settings.noise_filter_on_error == "retry" else 0,
        )

    config = NoiseFilterConfig(
        model=model if model is not None else settings.llm_deployment,
        temperature=temperature if temperature is not None else settings.llm_temperature,
        base_url=settings.llm_base_url,
        api_key=settings.llm_api_key,
        timeout=settings.llm_timeout_seconds,
        on_error=on_error,
    )
    return NoiseFilter(config, backend=backend)
