"""
Tests for material_search/main.py - FastAPI endpoints

Covers:
- Search endpoints and collection-scoped variants
- Envelope status codes: 400 validation, 503 unavailable, 500 configuration
- Availability, classification, statistics and health endpoints
- Request id propagation and error format
"""

import pytest
from fastapi.testclient import TestClient

from material_search.main import create_app
from material_search.search import UnifiedSearchService

from conftest import InMemoryVectorStore, index_documents


@pytest.fixture
def client(search_service):
    with TestClient(create_app(search_service)) as test_client:
        yield test_client


class TestSearchEndpoints:

    def test_root(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert response.json()["service"] == "Raw Materials Search"

    def test_search_by_code(self, client):
        response = client.post("/search", json={"query": "RM000123"})

        assert response.status_code == 200
        payload = response.json()
        assert payload["success"] is True
        assert payload["totalResults"] == 1
        assert payload["results"][0]["document"]["material_code"] == "RM000123"
        assert payload["results"][0]["availability"] == "in_stock"
        assert "X-Request-ID" in response.headers

    def test_search_accepts_top_k_alias(self, client):
        response = client.post("/search", json={"query": "moisturizing", "topK": 1})

        assert response.status_code == 200
        assert len(response.json()["results"]) == 1

    def test_in_stock_endpoint_overrides_collection(self, client):
        response = client.post("/search/in-stock", json={"query": "moisturizing", "collection": "all_fda"})

        payload = response.json()
        assert payload["routing"]["collections"] == ["in_stock"]
        assert {r["availability"] for r in payload["results"]} == {"in_stock"}

    def test_all_fda_endpoint(self, client):
        response = client.post("/search/all-fda", json={"query": "RM000123"})

        payload = response.json()
        assert payload["routing"]["collections"] == ["all_fda"]
        assert payload["results"][0]["availability"] == "fda_only"

    def test_empty_query_is_400(self, client):
        response = client.post("/search", json={"query": "   "})

        assert response.status_code == 400
        payload = response.json()
        assert payload["success"] is False
        assert payload["error_type"] == "validation_error"
        assert payload["formatted"]

    def test_out_of_range_top_k_is_rejected(self, client):
        response = client.post("/search", json={"query": "RM000123", "topK": 500})

        assert response.status_code == 422

    def test_no_strategy_available_is_503(self, client, document_store, vector_store, failing_errors):
        document_store.fail_with = failing_errors["document"]
        vector_store.fail_with = failing_errors["vector"]

        response = client.post("/search", json={"query": "moisturizing"})

        assert response.status_code == 503
        assert response.json()["error_type"] == "search_unavailable"

    def test_dimension_mismatch_is_500(self, catalog, document_store, embedding_provider, embedding_service):
        vector_store = InMemoryVectorStore(dimension=embedding_provider.dimensions + 1)
        index_documents(vector_store, embedding_provider, catalog)
        service = UnifiedSearchService(
            document_store=document_store, vector_store=vector_store, embeddings=embedding_service
        )

        with TestClient(create_app(service)) as client:
            response = client.post("/search", json={"query": "moisturizing"})

        assert response.status_code == 500
        assert response.json()["error_type"] == "configuration_error"

    def test_unencodable_query_returns_envelope(self, client):
        response = client.post(
            "/search",
            content='{"query": "moisturizing \\udcff"}',
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 400
        payload = response.json()
        assert payload["success"] is False
        assert payload["error_type"] == "validation_error"
        assert payload["formatted"]
        assert payload["query"] == "moisturizing ?"

    def test_partial_failure_is_200_with_warning(self, client, vector_store, failing_errors):
        vector_store.fail_with = failing_errors["vector"]

        response = client.post("/search", json={"query": "moisturizing"})

        assert response.status_code == 200
        assert "semantic search failed" in response.json()["warning"]


class TestOtherEndpoints:

    def test_availability(self, client):
        response = client.get("/availability", params={"query": "RM000123"})

        assert response.status_code == 200
        payload = response.json()
        assert payload["available"] is True
        assert payload["in_stock_match"]["document"]["material_code"] == "RM000123"

    def test_availability_dimension_mismatch_is_configuration_error(
            self, catalog, document_store, embedding_provider, embedding_service):
        vector_store = InMemoryVectorStore(dimension=embedding_provider.dimensions + 1)
        index_documents(vector_store, embedding_provider, catalog)
        service = UnifiedSearchService(
            document_store=document_store, vector_store=vector_store, embeddings=embedding_service
        )

        with TestClient(create_app(service)) as client:
            response = client.get("/availability", params={"query": "moisturizing"})

        assert response.status_code == 500
        payload = response.json()
        assert payload["error"] == "CONFIGURATION_ERROR"
        assert "expected" in payload["details"]["error"]

    def test_availability_requires_query(self, client):
        assert client.get("/availability").status_code == 422

    def test_classify(self, client):
        response = client.post("/classify", json={"query": "หาสารที่ช่วยความชุ่มชื้น 5 ตัว"})

        assert response.status_code == 200
        payload = response.json()
        assert payload["classification"]["query_type"] == "property_search"
        assert payload["classification"]["language"] == "thai"
        assert payload["routing"]["search_mode"] == "prioritize_stock"

    def test_classify_empty_query(self, client):
        response = client.post("/classify", json={"query": ""})

        assert response.status_code == 400
        assert response.json()["error"] == "VALIDATION_ERROR"

    def test_stats(self, client):
        response = client.get("/stats")

        assert response.status_code == 200
        counts = {s["collection"]: s["document_count"] for s in response.json()}
        assert counts == {"in_stock": 3, "all_fda": 4}

    def test_health(self, client):
        response = client.get("/health")

        payload = response.json()
        assert payload["status"] == "healthy"
        assert payload["components"] == {
            "mongodb": "healthy",
            "pinecone": "configured",
            "embeddings": "configured",
        }
        assert payload["embedding_provider"] == "fake"

    def test_health_degraded_when_mongodb_is_down(self, client, document_store, failing_errors):
        document_store.fail_with = failing_errors["document"]

        payload = client.get("/health").json()

        assert payload["status"] == "degraded"
        assert payload["components"]["mongodb"] == "unhealthy"

    def test_shutdown_closes_stores(self, search_service, document_store, vector_store):
        with TestClient(create_app(search_service)):
            pass

        assert document_store.closed
        assert vector_store.closed


class TestUninitializedService:

    def test_missing_service_is_503(self):
        client = TestClient(create_app())

        response = client.post("/search", json={"query": "RM000123"})

        assert response.status_code == 503
        assert response.json()["error"] == "HTTP_ERROR"
