"""
Pytest configuration and shared fixtures.

This file registers custom pytest markers and command-line options, and
provides Azure-shaped analysis trees for the extraction tests.
"""

import pytest


def pytest_addoption(parser):
    """Add custom command-line options"""
    parser.addoption(
        "--run-integration",
        action="store_true",
        default=False,
        help="Run integration tests against real Azure resources"
    )


def pytest_configure(config):
    """Register custom markers"""
    config.addinivalue_line(
        "markers",
        "integration: mark test as integration test requiring real Azure resources"
    )


def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless --run-integration is specified"""
    if config.getoption("--run-integration"):
        return

    skip_integration = pytest.mark.skip(reason="need --run-integration option to run")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_integration)


def azure_item(description=None, product_code=None, quantity=None, unit_price=None, amount=None, page_number=None):
    """One element of an Azure prebuilt-invoice Items array"""
    value = {}
    if description is not None:
        value["Description"] = {"type": "string", "valueString": description}
    if product_code is not None:
        value["ProductCode"] = {"type": "string", "valueString": product_code}
    if quantity is not None:
        value["Quantity"] = {"type": "number", "valueNumber": quantity}
    if unit_price is not None:
        value["UnitPrice"] = {"type": "currency", "valueCurrency": {"amount": unit_price, "currencyCode": "USD"}}
    if amount is not None:
        value["Amount"] = {"type": "currency", "valueCurrency": {"amount": amount, "currencyCode": "USD"}}

    element = {"type": "object", "valueObject": value}
    if page_number is not None:
        element["boundingRegions"] = [{"pageNumber": page_number, "polygon": [0, 0, 1, 0, 1, 1, 0, 1]}]
    return element


@pytest.fixture
def azure_tree():
    return {
        "apiVersion": "2024-11-30",
        "modelId": "prebuilt-invoice",
        "documents": [
            {
                "docType": "invoice",
                "fields": {
                    "InvoiceDate": {"type": "date", "valueDate": "2025-03-14", "content": "03/14/2025"},
                    "VendorName": {"type": "string", "valueString": "New Southern Food Inc."},
                    "VendorAddress": {
                        "type": "address",
                        "valueAddress": {
                            "streetAddress": "1200 Market St",
                            "city": "Houston",
                            "state": "TX",
                            "postalCode": "77002",
                        },
                    },
                    "Items": {
                        "type": "array",
                        "valueArray": [
                            azure_item("Jasmine Rice 50lb", "R100", 2, 31.5, 63.0, page_number=1),
                            azure_item("Soy Sauce 1gal", "S200", 4, 12.25, 49.0, page_number=2),
                            azure_item("FUEL SURCHARGE", None, 1, 5.0, 5.0, page_number=2),
                        ],
                    },
                },
            }
        ],
    }
