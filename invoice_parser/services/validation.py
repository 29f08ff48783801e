"""
Basic integrity checks on parsed items.

These catch data mistakes (non-positive quantity, blank ids or descriptions)
independently of any comparison against expected results.
"""

from loguru import logger
from pydantic import BaseModel
from ..models.invoice import InvoiceItem


class ValidationIssue(BaseModel):
    index: int
    item: InvoiceItem
    issues: list[str]


def check_item(item: InvoiceItem) -> list[str]:
    issues = []
    if item.quantity is not None and item.quantity <= 0:
        issues.append(f"Invalid quantity: {item.quantity} (should be > 0)")
    if not item.item_id or item.item_id.strip() == "":
        issues.append("Missing or empty itemId")
    if not item.item_description or item.item_description.strip() == "":
        issues.append("Missing or empty itemDescription")
    return issues


def validate_parse_results(items: list[InvoiceItem]) -> list[ValidationIssue]:
    found = []
    for index, item in enumerate(items):
        issues = check_item(item)
        if issues:
            found.append(ValidationIssue(index=index, item=item, issues=issues))
            logger.warning(
                "Item {index} has validation issues",
                index=index,
                description=item.item_description,
                item_id=item.item_id,
                quantity=item.quantity,
                unit_price=item.unit_price,
                issues=issues,
            )

    if found:
        logger.info("Validation summary: {count} items have validation issues", count=len(found))
    else:
        logger.info("All items passed validation")
    return found
