"""
Benetrip Flights API - Main Application Entry Point
"""
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse, Response
from typing import Optional
import httpx
import time
import logging

# Prometheus metrics
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST, REGISTRY

from benetrip.config import Settings, get_settings

# Define Prometheus metrics
REQUEST_COUNT = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'status']
)

REQUEST_LATENCY = Histogram(
    'http_request_duration_seconds',
    'HTTP request latency in seconds',
    ['method', 'endpoint']
)
from benetrip.routers import flights, health
from benetrip.services.calendar_service import CalendarService
from benetrip.services.flight_service import FlightSearchService
from benetrip.services.providers import (
    InvalidRequest,
    NetworkError,
    ProviderError,
    SearchApiProvider,
    SearchPoller,
    SearchTimeout,
    TravelpayoutsProvider,
)
from benetrip.utils.cache import TTLCache

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def build_services(app: FastAPI, client: httpx.AsyncClient, config: Settings):
    """Wire providers, poller, cache and services onto app.state"""
    cache = TTLCache(default_ttl=config.CACHE_TTL_RESULTS)

    travelpayouts = TravelpayoutsProvider(
        client,
        token=config.AVIASALES_TOKEN,
        marker=config.AVIASALES_MARKER,
        base_url=config.AVIASALES_BASE_URL,
        timeout=config.HTTP_TIMEOUT_SECONDS,
        results_timeout=config.RESULTS_TIMEOUT_SECONDS,
        retry_attempts=config.NETWORK_RETRY_ATTEMPTS,
        retry_backoff=config.NETWORK_RETRY_BACKOFF,
    )
    searchapi = SearchApiProvider(
        client,
        api_key=config.SEARCHAPI_KEY,
        base_url=config.SEARCHAPI_URL,
        retry_attempts=config.NETWORK_RETRY_ATTEMPTS,
        retry_backoff=config.NETWORK_RETRY_BACKOFF,
    )
    poller = SearchPoller(
        travelpayouts,
        max_attempts=config.FLIGHT_SEARCH_MAX_ATTEMPTS,
        delay=config.FLIGHT_SEARCH_POLL_DELAY,
    )

    app.state.cache = cache
    app.state.providers = [travelpayouts, searchapi]
    app.state.flight_service = FlightSearchService(
        travelpayouts,
        poller,
        cache,
        host=config.AVIASALES_HOST,
        locale=config.AVIASALES_LOCALE,
    )
    app.state.calendar_service = CalendarService(searchapi, cache)


def create_app(
    config: Optional[Settings] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> FastAPI:
    """
    Build the application. Tests pass their own settings and an
    ``httpx.AsyncClient`` backed by a mock transport.
    """
    config = config or settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Application lifespan manager - handles startup and shutdown events
        """
        # Startup
        logger.info("Starting Benetrip Flights API...")

        client = http_client or httpx.AsyncClient(
            timeout=config.HTTP_TIMEOUT_SECONDS,
            headers={"User-Agent": "Benetrip/1.0"},
        )
        build_services(app, client, config)

        for provider in app.state.providers:
            if not provider.is_configured:
                logger.warning(f"{provider.name} provider is not configured - its endpoints will answer 500")

        logger.info("Benetrip Flights API ready to serve requests!")

        yield

        # Shutdown
        logger.info("Shutting down Benetrip Flights API...")

        if http_client is None:
            await client.aclose()
        app.state.cache.clear()

        logger.info("Cleanup completed")

    app = FastAPI(
        title="Benetrip Flights API",
        description="""
        ## Flight Search Proxy

        Signed Travelpayouts flight searches, result polling, booking links
        and a six-month cheapest-period finder.
        """,
        version="1.0.0",
        docs_url="/docs" if config.DEBUG else None,
        redoc_url="/redoc" if config.DEBUG else None,
        openapi_url="/openapi.json" if config.DEBUG else None,
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )

    # CORS Middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Request timing middleware with Prometheus metrics
    @app.middleware("http")
    async def add_process_time_header(request: Request, call_next):
        start_time = time.time()
        response = await call_next(request)
        process_time = time.time() - start_time

        # Record metrics (skip /metrics endpoint to avoid recursion)
        if request.url.path != "/metrics":
            endpoint = request.url.path
            method = request.method
            status_code = response.status_code

            REQUEST_COUNT.labels(method=method, endpoint=endpoint, status=status_code).inc()
            REQUEST_LATENCY.labels(method=method, endpoint=endpoint).observe(process_time)

        response.headers["X-Process-Time"] = str(process_time)
        return response

    register_exception_handlers(app)

    # Include routers
    app.include_router(health.router, tags=["Health"])
    app.include_router(flights.router, prefix="/flights", tags=["Flights"])

    @app.get("/", include_in_schema=False)
    async def root():
        """Root endpoint - API information"""
        return {
            "name": "Benetrip Flights API",
            "version": "1.0.0",
            "status": "running",
            "docs": "/docs" if config.DEBUG else "disabled",
        }

    @app.get("/metrics", include_in_schema=False)
    async def metrics():
        """Prometheus metrics endpoint"""
        return Response(
            content=generate_latest(REGISTRY),
            media_type=CONTENT_TYPE_LATEST
        )

    return app


def register_exception_handlers(app: FastAPI):
    """Map the flight search error taxonomy onto HTTP responses"""

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return ORJSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "error": "Invalid request",
                "errors": [
                    f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in exc.errors()
                ],
            },
        )

    @app.exception_handler(InvalidRequest)
    async def invalid_request_handler(request: Request, exc: InvalidRequest):
        return ORJSONResponse(
            status_code=exc.status_code,
            content={"error": "Invalid request", "message": exc.message, "errors": exc.errors},
        )

    @app.exception_handler(ProviderError)
    async def provider_error_handler(request: Request, exc: ProviderError):
        logger.error(f"Provider error on {request.url.path}: {exc}")
        return ORJSONResponse(
            status_code=exc.status_code,
            content={
                "error": "Flight provider error",
                "provider": exc.provider_name,
                "status": exc.status_code,
                "message": exc.message,
                "detail": exc.body,
            },
        )

    @app.exception_handler(NetworkError)
    async def network_error_handler(request: Request, exc: NetworkError):
        logger.error(f"No response from provider on {request.url.path}: {exc}")
        return ORJSONResponse(
            status_code=exc.status_code,
            content={
                "error": "No response from flight provider",
                "provider": exc.provider_name,
                "message": exc.message,
            },
        )

    @app.exception_handler(SearchTimeout)
    async def search_timeout_handler(request: Request, exc: SearchTimeout):
        return ORJSONResponse(
            status_code=exc.status_code,
            content={
                "status": "timedOut",
                "search_id": exc.search_id,
                "attempts": exc.attempts,
                "data": exc.payload,
                "retry": f"/flights/search/{exc.search_id}/wait",
            },
        )


# Create FastAPI application
app = create_app()
