"""FastAPI application for the raw materials search service.

This module provides:
- App construction with an injectable search service
- Search, availability, classification and statistics endpoints
- Error handling and request logging middleware
- CORS configuration for chat and UI clients
"""

import time
import uuid
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from material_search.exceptions import (
    DimensionMismatchError,
    EmbeddingDimensionError,
    SearchUnavailableError,
    SearchValidationError,
)
from material_search.models import (
    AvailabilityCheck,
    ClassifyResponse,
    CollectionScope,
    CollectionStats,
    ErrorResponse,
    HealthResponse,
    SearchRequest,
    SearchResponse,
)
from material_search.search import UnifiedSearchService, build_search_service
from material_search.utils import (
    ConfigurationError,
    get_current_timestamp,
    initialize_app,
    sanitize_for_logging,
)


SERVICE_NAME = "Raw Materials Search"
SERVICE_VERSION = "1.0.0"

ERROR_STATUS_CODES = {
    "validation_error": 400,
    "search_unavailable": 503,
    "configuration_error": 500,
}


def _error_content(request: Request, error: str, message: str, details: Optional[dict] = None) -> dict:
    return ErrorResponse(
        error=error,
        message=message,
        details=details,
        request_id=getattr(request.state, 'request_id', None)
    ).model_dump(mode="json")


def get_search_service(request: Request) -> UnifiedSearchService:
    service = getattr(request.app.state, "search_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Search service not initialized")
    return service


def _envelope(response: SearchResponse) -> JSONResponse:
    status_code = 200 if response.success else ERROR_STATUS_CODES.get(response.error_type, 500)
    return JSONResponse(status_code=status_code, content=response.model_dump(mode="json", by_alias=True))


def create_app(service: Optional[UnifiedSearchService] = None) -> FastAPI:
    """
    Build the FastAPI app.

    Args:
        service: Pre-built search service; when omitted it is built from
            environment configuration at startup

    Returns:
        FastAPI: Configured application
    """
    app = FastAPI(
        title=SERVICE_NAME,
        description="Unified search over in-stock and FDA-registered cosmetic raw materials",
        version=SERVICE_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json"
    )
    app.state.search_service = service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://localhost:3000",  # React development server
            "http://localhost:8080",
        ],
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def logging_and_timing_middleware(request: Request, call_next):
        """Log requests and responses with timing information."""
        start_time = time.time()
        request_id = str(uuid.uuid4())[:8]
        request.state.request_id = request_id

        logger.info(
            "Incoming request",
            method=request.method,
            path=request.url.path,
            request_id=request_id,
            client_ip=request.client.host if request.client else "unknown"
        )

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "Request failed",
                method=request.method,
                path=request.url.path,
                error=str(e),
                error_type=type(e).__name__,
                processing_time_ms=(time.time() - start_time) * 1000,
                request_id=request_id
            )
            raise

        logger.info(
            "Request completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            processing_time_ms=(time.time() - start_time) * 1000,
            request_id=request_id
        )
        response.headers["X-Request-ID"] = request_id
        return response

    @app.exception_handler(ConfigurationError)
    async def configuration_error_handler(request: Request, exc: ConfigurationError):
        """Handle configuration errors."""
        return JSONResponse(
            status_code=500,
            content=_error_content(request, "CONFIGURATION_ERROR", "System configuration error",
                                   {"error": str(exc)})
        )

    @app.exception_handler(DimensionMismatchError)
    @app.exception_handler(EmbeddingDimensionError)
    async def dimension_error_handler(request: Request, exc: Exception):
        """Handle embedding/index dimension mismatches as configuration errors."""
        logger.error("Embedding dimension mismatch", error=str(exc))
        return JSONResponse(
            status_code=500,
            content=_error_content(request, "CONFIGURATION_ERROR", "Embedding and index dimensions differ",
                                   {"error": str(exc)})
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        """Handle HTTP exceptions with consistent error format."""
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_content(request, "HTTP_ERROR", str(exc.detail), {"status_code": exc.status_code})
        )

    @app.exception_handler(ValueError)
    async def validation_error_handler(request: Request, exc: ValueError):
        """Handle validation errors."""
        return JSONResponse(
            status_code=400,
            content=_error_content(request, "VALIDATION_ERROR", str(exc))
        )

    @app.exception_handler(SearchUnavailableError)
    async def unavailable_error_handler(request: Request, exc: SearchUnavailableError):
        """Handle searches where no strategy could run."""
        return JSONResponse(
            status_code=503,
            content=_error_content(request, "SEARCH_UNAVAILABLE", str(exc), {"failures": exc.failures})
        )

    @app.on_event("startup")
    async def startup_event():
        """Build the search service once, unless one was injected."""
        if app.state.search_service is not None:
            logger.info("Using injected search service")
            return

        config = initialize_app()
        app.state.search_service = build_search_service(config)
        logger.info("Search service ready", version=SERVICE_VERSION)

    @app.on_event("shutdown")
    async def shutdown_event():
        service = app.state.search_service
        if service is None:
            return
        if service.document_store is not None:
            await service.document_store.close()
        if service.vector_store is not None:
            service.vector_store.close()
        logger.info("Search service stopped")

    @app.get("/")
    async def root():
        """Root endpoint with basic service information."""
        return {
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION,
            "status": "running",
            "timestamp": get_current_timestamp(),
            "endpoints": {
                "search": "/search",
                "search_in_stock": "/search/in-stock",
                "search_all_fda": "/search/all-fda",
                "availability": "/availability",
                "classify": "/classify",
                "stats": "/stats",
                "health": "/health",
                "docs": "/docs"
            }
        }

    @app.get("/health", response_model=HealthResponse)
    async def health(request: Request) -> HealthResponse:
        """Report which backing components are configured and reachable."""
        service = get_search_service(request)
        components = {}

        if service.document_store is None:
            components["mongodb"] = "not_configured"
        else:
            components["mongodb"] = "healthy" if await service.document_store.ping() else "unhealthy"

        components["pinecone"] = "configured" if service.vector_store is not None else "not_configured"
        components["embeddings"] = "configured" if service.embeddings is not None else "not_configured"

        healthy = components["mongodb"] != "unhealthy" and (
            components["mongodb"] == "healthy" or service.semantic_available
        )
        return HealthResponse(
            status="healthy" if healthy else "degraded",
            components=components,
            embedding_provider=service.embeddings.provider() if service.embeddings else None,
            embedding_dimensions=service.embeddings.dimensions() if service.embeddings else None,
        )

    @app.post("/search", response_model=SearchResponse)
    async def search(search_request: SearchRequest, request: Request):
        """
        Unified search across the routed collections.

        Always returns the envelope; failures carry success=false with
        400 (validation), 503 (no strategy available) or 500 (configuration).
        """
        service = get_search_service(request)
        logger.info(
            "Processing search request",
            query=sanitize_for_logging(search_request.query, 100),
            collection=search_request.collection.value if search_request.collection else None,
            request_id=getattr(request.state, 'request_id', None)
        )
        return _envelope(await service.search(search_request))

    @app.post("/search/in-stock", response_model=SearchResponse)
    async def search_in_stock(search_request: SearchRequest, request: Request):
        """Search only materials currently in stock."""
        service = get_search_service(request)
        scoped = search_request.model_copy(update={"collection": CollectionScope.IN_STOCK})
        return _envelope(await service.search(scoped))

    @app.post("/search/all-fda", response_model=SearchResponse)
    async def search_all_fda(search_request: SearchRequest, request: Request):
        """Search the complete FDA-registered catalog."""
        service = get_search_service(request)
        scoped = search_request.model_copy(update={"collection": CollectionScope.ALL_FDA})
        return _envelope(await service.search(scoped))

    @app.get("/availability", response_model=AvailabilityCheck)
    async def availability(request: Request, query: str = Query(..., min_length=1)) -> AvailabilityCheck:
        """Check whether a material is in stock, with FDA alternatives when it is not."""
        service = get_search_service(request)
        return await service.check_availability(query)

    @app.post("/classify", response_model=ClassifyResponse)
    async def classify(search_request: SearchRequest, request: Request) -> ClassifyResponse:
        """Classify and route a query without searching."""
        service = get_search_service(request)
        if not search_request.query.strip():
            raise SearchValidationError("Query must not be empty")
        return ClassifyResponse(
            classification=service.classifier.classify(search_request.query),
            routing=service.router.route(search_request.query, search_request.collection),
        )

    @app.get("/stats", response_model=List[CollectionStats])
    async def stats(request: Request):
        """Document and vector counts per collection."""
        service = get_search_service(request)
        return await service.get_collection_stats()

    return app


app = create_app()
