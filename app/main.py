from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging
import time

from app.api.routes import router as api_router
from app.api.admin_routes import router as admin_router
from app.utils.startup import system_initializer

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

SERVICE_NAME = "ai-relay-billing"
SERVICE_VERSION = "1.0.0"

# Paths whose requests are logged with timing
LOGGED_PREFIXES = ("/api/billing", "/api/payments", "/api/webhooks")

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup and shutdown events for the FastAPI application.
    """
    logger.info("Starting AI Relay billing service...")
    await system_initializer.initialize()

    yield

    logger.info("Shutting down AI Relay billing service...")

def create_app() -> FastAPI:
    app = FastAPI(
        title="AI Relay Billing",
        description="AI API relay platform: plans, Stripe payments and upstream account health",
        version=SERVICE_VERSION,
        lifespan=lifespan
    )

    # CORS Middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_payment_requests(request: Request, call_next):
        """
        Log billing, payment and webhook requests with their response time.
        """
        if not request.url.path.startswith(LOGGED_PREFIXES):
            return await call_next(request)

        start_time = time.perf_counter()
        client_ip = request.client.host if request.client else "unknown"
        if request.headers.get("X-Forwarded-For"):
            client_ip = request.headers.get("X-Forwarded-For").split(",")[0].strip()

        logger.info(f"Request: {request.method} {request.url.path} from {client_ip}")
        response = await call_next(request)
        process_time = time.perf_counter() - start_time
        logger.info(f"Response: {response.status_code} {request.url.path} in {process_time:.3f}s")

        return response

    # Include routers
    app.include_router(api_router)
    app.include_router(admin_router)

    @app.get("/health")
    async def health_check():
        """Application health check"""
        return {
            "status": "healthy",
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION
        }

    return app

# Create the app instance
app = create_app()
