"""
Polaris - chat automation assistant
Main FastAPI application: message pipeline, chat events and approval links.
"""
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse

from .audit import install_audit_handler
from .auth import require_api_token
from .config import settings
from .confirmation import ConfirmationService, GmailSendExecutor, critical_error_page
from .core import Pipeline
from .guardian import AccessGate, PolicyStore
from .integration import CalendarPort, GoogleCalendarIntegration, GoogleMailIntegration, MailPort
from .models import ChatEvent, QueryRequest, QueryResponse
from .prediction import PredictionClient
from .router.handler_registry import HandlerRegistry
from .router.manifest import ConfigStore
from .router.router import IntentRouter
from .specialists import (
    CalendarSpecialist,
    ChatSpecialist,
    GmailSpecialist,
    HelpSpecialist,
    SheetSpecialist,
    VersionSpecialist,
)
from .storage import PendingActionStore, SQLiteTableStore, TTLCache

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[
        logging.FileHandler(settings.log_file) if settings.log_file else logging.StreamHandler(),
        logging.StreamHandler()
    ]
)
logger = logging.getLogger(__name__)

ADDED_TO_SPACE_TEXT = '👋 Polaris ready. Try: "add milk to HomeErrands" or "list HomeErrands"'

# Global service instances
table_store: Optional[SQLiteTableStore] = None
config_store: Optional[ConfigStore] = None
prediction_client: Optional[PredictionClient] = None
mail_integration: Optional[MailPort] = None
calendar_integration: Optional[CalendarPort] = None
pending_store: Optional[PendingActionStore] = None
pipeline: Optional[Pipeline] = None
confirmation_service: Optional[ConfirmationService] = None


def build_registry(
    tables,
    configs: ConfigStore,
    prediction,
    mail: MailPort,
    calendar: CalendarPort,
    pending: PendingActionStore,
) -> HandlerRegistry:
    """Register every specialist under its target name."""
    registry = HandlerRegistry()
    registry.register("cmd_Help", HelpSpecialist(configs))
    registry.register("cmd_GetVersion", VersionSpecialist(settings.app_version))
    registry.register("cmd_GeneralChat", ChatSpecialist(configs, prediction))
    registry.register("cmd_HandleSheetData", SheetSpecialist(tables, configs))
    registry.register("cmd_HandleCalendar", CalendarSpecialist(configs, prediction, calendar, settings.timezone))
    registry.register(
        "cmd_HandleGmail",
        GmailSpecialist(
            configs,
            prediction,
            mail,
            pending,
            public_base_url=settings.public_base_url,
            pending_ttl_seconds=settings.pending_action_ttl_seconds,
        ),
    )
    return registry


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup/shutdown."""
    global table_store, config_store, prediction_client, mail_integration, calendar_integration
    global pending_store, pipeline, confirmation_service

    # Startup
    logger.info("Starting Polaris...")

    table_store = SQLiteTableStore(db_path=settings.db_path)
    install_audit_handler(table_store)

    config_store = ConfigStore(table_store, TTLCache(), ttl_seconds=settings.cache_ttl_seconds)
    prediction_client = PredictionClient(
        config_store,
        endpoint=settings.prediction_url,
        timeout_seconds=settings.prediction_timeout_seconds,
        max_tokens=settings.prediction_max_tokens,
        temperature=settings.prediction_temperature,
    )

    mail_integration = GoogleMailIntegration()
    calendar_integration = GoogleCalendarIntegration()
    if not settings.google_access_token:
        logger.warning("GOOGLE_ACCESS_TOKEN not set - mail and calendar features will not work")
    if not settings.api_token:
        logger.warning("POLARIS_API_TOKEN not set - /query and /chat/events will reject every caller")

    # Initialize pending action store
    try:
        pending_store = PendingActionStore(db_path=settings.db_path)
        purged = pending_store.purge(retention_hours=settings.pending_retention_hours)
        if purged > 0:
            logger.info(f"Purged {purged} finished pending actions on startup")
    except Exception as exc:
        logger.error(f"Failed to initialize pending action store: {exc}", exc_info=True)
        pending_store = None

    router = IntentRouter(config_store, prediction_client)
    gate = AccessGate(PolicyStore(table_store), break_glass_admins=settings.break_glass_admins)
    registry = build_registry(
        table_store, config_store, prediction_client, mail_integration, calendar_integration, pending_store
    )
    pipeline = Pipeline(router, gate, registry)
    logger.info(f"Pipeline ready with handlers: {registry.names()}")

    if pending_store:
        confirmation_service = ConfirmationService(
            pending_store, {"handle_gmail": GmailSendExecutor(mail_integration)}
        )

    yield

    # Shutdown
    logger.info("Shutting down Polaris...")
    if prediction_client:
        await prediction_client.close()
    if mail_integration:
        await mail_integration.close()
    if calendar_integration:
        await calendar_integration.close()


# Create FastAPI app
app = FastAPI(
    title="Polaris",
    description="Chat automation assistant with table-driven handlers",
    version=settings.app_version,
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _host_reply(message: Dict[str, Any]) -> Dict[str, Any]:
    """Wrap a chat reply (text or cardsV2) for the chat surface."""
    return {"actionResponse": {"type": "NEW_MESSAGE", "message": message}}


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "Polaris",
        "version": settings.app_version,
        "status": "running"
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    mail_healthy = await mail_integration.health_check() if mail_integration else False
    calendar_healthy = await calendar_integration.health_check() if calendar_integration else False
    return {
        "status": "healthy" if pipeline and mail_healthy and calendar_healthy else "degraded",
        "pipeline": "ready" if pipeline else "unavailable",
        "mail": "connected" if mail_healthy else "disconnected",
        "calendar": "connected" if calendar_healthy else "disconnected",
    }


@app.post("/query", response_model=QueryResponse, dependencies=[Depends(require_api_token)])
async def query(request: QueryRequest):
    """
    Run one message through the pipeline.

    Always answers 200 with a printable reply once the pipeline is up;
    failures are expressed in the reply text.
    """
    if not pipeline:
        raise HTTPException(status_code=503, detail="Pipeline not available")

    outcome = await pipeline.run(request.text, request.user_id, space_id=request.space_id)
    return QueryResponse(reply=outcome.message)


@app.post("/chat/events", dependencies=[Depends(require_api_token)])
async def chat_events(event: ChatEvent):
    """Handle an event posted by the chat surface."""
    if event.type == "ADDED_TO_SPACE":
        return _host_reply({"text": ADDED_TO_SPACE_TEXT})

    if event.type == "REMOVED_FROM_SPACE":
        logger.info(
            "Removed from space",
            extra={"evt": "removed_from_space", "details": {"space": event.space.name if event.space else None}},
        )
        return {}

    if event.type != "MESSAGE":
        logger.info(f"Ignoring chat event type {event.type}")
        return {}

    if not pipeline:
        raise HTTPException(status_code=503, detail="Pipeline not available")

    text = (event.message.text if event.message else "") or ""
    user_id = ""
    if event.user:
        user_id = event.user.email or event.user.name or ""
    space_id = event.space.name if event.space else None

    outcome = await pipeline.run(text, user_id, space_id=space_id)
    if outcome.card:
        return _host_reply({"cardsV2": [outcome.card]})
    return _host_reply({"text": outcome.message})


@app.get("/confirm", response_class=HTMLResponse)
async def confirm(id: Optional[str] = None, action: Optional[str] = None):
    """
    Approval link target.

    ``action`` is carried for future routing; the pending record itself
    names the handler whose executor runs.
    """
    if not confirmation_service:
        raise HTTPException(status_code=503, detail="Confirmation service not available")

    try:
        page = await confirmation_service.confirm(id or "")
    except Exception as exc:
        logger.exception(
            f"Confirmation failed: {exc}",
            extra={"evt": "confirm_exception", "details": {"err": str(exc), "id": id, "action": action}},
        )
        page = critical_error_page()

    return HTMLResponse(content=page.to_html(), status_code=200)
