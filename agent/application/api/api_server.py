from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import structlog

from application.api.route.workflow import router as workflow_router
from domain.models.errors import ConfigurationError
from infrastructure.config.settings import get_settings
from infrastructure.observability.logging import metrics, setup_logging

logger = structlog.get_logger(__name__)

app = FastAPI(title="Workflow Agent API")

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(workflow_router)


@app.on_event("startup")
async def startup_event():
    """Configure logging from settings"""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    logger.info("Workflow agent started", model=settings.claude_model, tools_enabled=settings.tools_enabled)


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError) -> JSONResponse:
    logger.error("Service misconfigured", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=503, content={"detail": str(exc)})


@app.get("/health")
async def health():
    return {"status": "ok", "metrics": metrics.get_metrics_summary()}
