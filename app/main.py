"""
FastAPI Application Entry Point
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from app.api.v1.routes import api_router
from app.core.config import get_llm_provider_settings, get_settings
from app.core.tenant_middleware import TenantMiddleware
from app.domain.services.call_outcomes import OutcomeSchemaSentinel
from app.infrastructure.llm.factory import LLMFactory

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan - startup and shutdown events.

    Startup:
    - Validates Twilio, Supabase and completion provider configuration
    - Creates the outcome schema sentinel (log-once migration warning)
    - Initializes the AskBob completion provider

    Shutdown:
    - Closes the completion provider client
    """
    # ========================
    # STARTUP
    # ========================
    logger.info("Starting AskBob Call Service...")

    settings = get_settings()
    environment = settings.environment
    strict_validation = environment == "production"

    try:
        from app.core.validation import validate_providers_on_startup
        validate_providers_on_startup(strict=strict_validation)
    except RuntimeError as e:
        if strict_validation:
            logger.error(f"Startup failed: {e}")
            raise
        else:
            logger.warning(f"Configuration warnings (non-fatal in {environment}): {e}")

    app.state.outcome_sentinel = OutcomeSchemaSentinel()

    app.state.llm_provider = None
    provider_name, provider_config = get_llm_provider_settings(settings)
    try:
        app.state.llm_provider = await LLMFactory.create_initialized(provider_name, provider_config)
        logger.info(f"Completion provider initialized: {provider_name}")
    except (ValueError, RuntimeError) as e:
        if strict_validation:
            logger.error(f"Startup failed: {e}")
            raise
        logger.warning(f"Completion provider not initialized ({environment}): {e}")

    logger.info("AskBob Call Service started successfully")

    yield  # Application is running

    # ========================
    # SHUTDOWN
    # ========================
    logger.info("Shutting down AskBob Call Service...")

    provider = getattr(app.state, "llm_provider", None)
    if provider is not None:
        try:
            await provider.cleanup()
        except Exception as e:
            logger.error(f"Error during shutdown: {e}")

    logger.info("AskBob Call Service shutdown complete")


app = FastAPI(
    title="AskBob Call Service",
    description="Twilio call reconciliation and AI-assisted call actions",
    version="1.0.0",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# MULTI-TENANT: Enabled
app.add_middleware(TenantMiddleware)

# Include API routes
app.include_router(api_router, prefix="/api/v1")


@app.get("/")
async def root():
    return {"message": "AskBob Call Service API", "status": "running"}


@app.get("/health")
async def health_check():
    """
    Health check endpoint.

    Reports whether the completion provider is ready.
    """
    provider = getattr(app.state, "llm_provider", None)
    return {
        "status": "healthy",
        "llm_provider": provider.name if provider is not None else None,
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
