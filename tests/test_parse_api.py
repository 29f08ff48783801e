from fastapi.testclient import TestClient
from invoice_parser.api.deps import get_document_analyzer, get_noise_filter
from invoice_parser.api.main import app
from invoice_parser.core.config import settings
from invoice_parser.core.errors import ServiceError
from invoice_parser.services.invoice_types import AzureAnalysisResult
from invoice_parser.services.noise_filter import NoiseFilter, NoiseFilterConfig
import io

client = TestClient(app)


class StubAnalyzer:
    def __init__(self, tree=None, error=None):
        self.tree = tree
        self.error = error

    async def analyze(self, document_bytes, mime_type):
        if self.error:
            raise self.error
        return AzureAnalysisResult(analyze_result=self.tree)


def use_analyzer(analyzer):
    app.dependency_overrides[get_document_analyzer] = lambda: analyzer
    # No LLM key: the filter passes items through
    app.dependency_overrides[get_noise_filter] = lambda: NoiseFilter(NoiseFilterConfig(api_key=None))


def test_health():
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"


def test_parse_multipart_upload(azure_tree):
    use_analyzer(StubAnalyzer(azure_tree))
    try:
        files = {"file": ("invoice.pdf", io.BytesIO(b"%PDF-1.4 invoice"), "application/pdf")}
        r = client.post("/invoices/parse", files=files)
        assert r.status_code == 200

        body = r.json()
        # Contract: camelCase keys present
        for k in ["invoiceItems", "distributorInfo", "invoiceDate"]:
            assert k in body
        assert "rawOutput" not in body
        assert body["invoiceDate"] == "2025-03-14"
        assert body["distributorInfo"]["address"]["zipCode"] == "77002"
        first = body["invoiceItems"][0]
        assert first["itemId"] == "R100"
        assert first["unitPrice"] == 31.5
        assert first["pageIndex"] == 0
    finally:
        app.dependency_overrides.clear()


def test_parse_raw_body_with_raw_output(azure_tree):
    use_analyzer(StubAnalyzer(azure_tree))
    try:
        r = client.post(
            "/invoices/parse?include_raw=true",
            content=b"%PDF-1.4 invoice",
            headers={"Content-Type": "application/pdf"},
        )
        assert r.status_code == 200
        assert r.json()["rawOutput"]["modelId"] == "prebuilt-invoice"
    finally:
        app.dependency_overrides.clear()


def test_parse_missing_file_returns_422(azure_tree):
    use_analyzer(StubAnalyzer(azure_tree))
    try:
        r = client.post("/invoices/parse")
        assert r.status_code == 422
    finally:
        app.dependency_overrides.clear()


def test_parse_no_documents_returns_422():
    use_analyzer(StubAnalyzer({"documents": []}))
    try:
        files = {"file": ("blank.pdf", io.BytesIO(b"%PDF-1.4"), "application/pdf")}
        r = client.post("/invoices/parse", files=files)
        assert r.status_code == 422
        assert "No document data" in r.json()["detail"]
    finally:
        app.dependency_overrides.clear()


def test_parse_service_error_returns_502():
    use_analyzer(StubAnalyzer(error=ServiceError("Document analysis failed: Unauthorized", status_code=401)))
    try:
        files = {"file": ("invoice.pdf", io.BytesIO(b"%PDF-1.4"), "application/pdf")}
        r = client.post("/invoices/parse", files=files)
        assert r.status_code == 502
    finally:
        app.dependency_overrides.clear()


def test_parse_unconfigured_analyzer_returns_503():
    original_provider = settings.ocr_provider
    original_endpoint = settings.az_di_endpoint
    original_key = settings.az_di_api_key
    settings.ocr_provider = "azure"
    settings.az_di_endpoint = None
    settings.az_di_api_key = None

    try:
        files = {"file": ("invoice.pdf", io.BytesIO(b"%PDF-1.4"), "application/pdf")}
        r = client.post("/invoices/parse", files=files)
        assert r.status_code == 503
    finally:
        settings.ocr_provider = original_provider
        settings.az_di_endpoint = original_endpoint
        settings.az_di_api_key = original_key


def test_compare_endpoint_reports_differences():
    payload = {
        "actual": [
            {"itemId": "R100", "itemDescription": "Jasmine Rice", "quantity": 2, "unitPrice": 31.5, "pageIndex": 0},
            {"itemId": "FEE", "itemDescription": "Delivery Fee", "quantity": 1, "unitPrice": 10, "pageIndex": 0},
        ],
        "expected": [
            {"itemId": "R100", "itemDescription": "Jasmine Rice", "quantity": 3, "unitPrice": 31.5, "pageIndex": 0},
            {"itemId": "S200", "itemDescription": "Soy Sauce", "quantity": 4, "unitPrice": 12.25, "pageIndex": 0},
        ],
    }
    r = client.post("/invoices/compare", json=payload)
    assert r.status_code == 200

    data = r.json()
    assert data["passed"] is False
    assert data["mismatch_count"] == 1
    assert data["missing_count"] == 1
    assert data["extra_count"] == 1
    mismatch = next(d for d in data["details"] if d["kind"] == "mismatch")
    assert mismatch["differences"][0]["field"] == "quantity"


def test_compare_endpoint_identical_sets_pass():
    items = [{"itemId": "R100", "itemDescription": "Jasmine Rice", "quantity": 2, "unitPrice": 31.5, "pageIndex": 0}]
    r = client.post("/invoices/compare", json={"actual": items, "expected": items})
    assert r.status_code == 200
    assert r.json()["passed"] is True
