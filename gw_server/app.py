import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from gw_common.exceptions import ConfigurationError, GatewayError
from gw_common.repository import ConversationStore
from gw_persistence.memory_store import InMemoryConversationStore
from gw_persistence.sqlite_store import SQLiteConversationStore
from gw_scheduler.loader import load_schedule, load_triggers
from gw_scheduler.scheduler import CronScheduler
from gw_upstream.completion import AnthropicCompletionService, render_prompt
from gw_upstream.github import WorkflowClient
from gw_upstream.jobs import create_job
from gw_upstream.telegram import TelegramTransport
from gw_upstream.transcription import WhisperTranscriber

from .auth import (
    API_KEY_HEADER,
    GITHUB_SECRET_HEADER,
    TELEGRAM_SECRET_HEADER,
    create_api_key_dependency,
    secret_matches,
)
from .config import GatewayConfig
from .notifications import NotificationDispatcher
from .status import get_job_status, get_swarm_status
from .tools import ToolDispatcher
from .webhooks import GitHubEventHandler, TelegramUpdateHandler

logger = logging.getLogger(__name__)

# Global instances (initialized at startup)
config: GatewayConfig | None = None
store: ConversationStore | None = None
completion: AnthropicCompletionService | None = None
transcriber: WhisperTranscriber | None = None
dispatcher: NotificationDispatcher | None = None
scheduler: CronScheduler | None = None


def create_store(db_path: str | None) -> ConversationStore:
    """
    Create the conversation store.

    Returns:
        A SQLite-backed store when `db_path` is set, otherwise an in-memory
        store whose history is lost on restart
    """
    if db_path:
        return SQLiteConversationStore(db_path)
    return InMemoryConversationStore()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for FastAPI app.

    Handles startup and shutdown events:
    - Startup: Read configuration, open the conversation store, build the
      upstream clients and start the cron scheduler
    - Shutdown: Stop the scheduler and close the store
    """
    global config, store, completion, transcriber, dispatcher, scheduler

    config = GatewayConfig.from_env()

    store = create_store(config.db_path)
    if isinstance(store, SQLiteConversationStore):
        await store.initialize()

    completion = AnthropicCompletionService(
        api_key=config.anthropic_api_key,
        model=config.model,
        system_prompt=render_prompt(config.chat_prompt),
    )
    transcriber = WhisperTranscriber(config.openai_api_key)
    dispatcher = NotificationDispatcher(TelegramTransport(config.telegram_bot_token))

    client = WorkflowClient.from_config(config)

    async def scheduled_job(description: str) -> dict[str, str]:
        return await asyncio.to_thread(create_job, client, description)

    try:
        entries = load_schedule(config.crons_file)
    except ConfigurationError as e:
        logger.error(f"Failed to load schedule: {e}")
        entries = []

    logger.info("--- Cron Jobs ---")
    scheduler = CronScheduler(
        entries, create_job=scheduled_job, project_root=config.project_root
    )
    await scheduler.start()

    yield

    await scheduler.stop()
    if store:
        await store.close()


# Routes that authenticate with their own shared secrets
WEBHOOK_PATHS = ("/telegram/webhook", "/github/webhook")

app = FastAPI(lifespan=lifespan)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    """
    Render HTTP errors as {"error": detail}.

    Unknown paths and methods outside the two webhooks answer 401 unless
    the caller sent a valid API key.
    """
    if exc.status_code in (404, 405) and request.url.path not in WEBHOOK_PATHS:
        if not has_valid_api_key(request):
            return JSONResponse(status_code=401, content={"error": "Unauthorized"})
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log the failure and answer without leaking details to the caller."""
    logger.error(f"Unhandled error on {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


def get_config() -> GatewayConfig:
    """
    Get the global configuration instance.

    Raises:
        RuntimeError: If configuration is not initialized
    """
    if config is None:
        raise RuntimeError("Configuration not initialized")
    return config


def get_store() -> ConversationStore:
    """
    Get the global conversation store instance.

    Raises:
        RuntimeError: If the store is not initialized
    """
    if store is None:
        raise RuntimeError("Conversation store not initialized")
    return store


def get_completion() -> AnthropicCompletionService:
    if completion is None:
        raise RuntimeError("Completion service not initialized")
    return completion


def get_transcriber() -> WhisperTranscriber:
    if transcriber is None:
        raise RuntimeError("Transcriber not initialized")
    return transcriber


def get_dispatcher() -> NotificationDispatcher:
    if dispatcher is None:
        raise RuntimeError("Notification dispatcher not initialized")
    return dispatcher


def get_workflow_client(cfg: GatewayConfig = Depends(get_config)) -> WorkflowClient:
    return WorkflowClient.from_config(cfg)


def get_tools(client: WorkflowClient = Depends(get_workflow_client)) -> ToolDispatcher:
    return ToolDispatcher(client)


def get_telegram_handler(
    cfg: GatewayConfig = Depends(get_config),
    conversations: ConversationStore = Depends(get_store),
    service: AnthropicCompletionService = Depends(get_completion),
    tools: ToolDispatcher = Depends(get_tools),
    notifier: NotificationDispatcher = Depends(get_dispatcher),
    voice: WhisperTranscriber = Depends(get_transcriber),
) -> TelegramUpdateHandler:
    return TelegramUpdateHandler(cfg, conversations, service, tools, notifier, voice)


def get_github_handler(
    cfg: GatewayConfig = Depends(get_config),
    conversations: ConversationStore = Depends(get_store),
    service: AnthropicCompletionService = Depends(get_completion),
    notifier: NotificationDispatcher = Depends(get_dispatcher),
) -> GitHubEventHandler:
    return GitHubEventHandler(cfg, conversations, service, notifier)


async def read_json_object(request: Request) -> dict[str, Any]:
    """
    Decode the request body as a JSON object.

    Raises:
        HTTPException: 400 if the body is not valid JSON or not an object
    """
    try:
        body = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON body")
    if not isinstance(body, dict):
        raise HTTPException(status_code=400, detail="Invalid JSON body")
    return body


def has_valid_api_key(request: Request) -> bool:
    """Check the x-api-key header outside of dependency injection."""
    provider = request.app.dependency_overrides.get(get_config, get_config)
    try:
        cfg = provider()
    except RuntimeError:
        return False
    return secret_matches(cfg.api_key, request.headers.get(API_KEY_HEADER))


# Create authentication dependency
require_api_key = create_api_key_dependency(get_config)

# First-party routes; the two inbound webhooks carry their own secrets
api = APIRouter(dependencies=[Depends(require_api_key)])


@api.get("/ping")
async def ping() -> dict[str, str]:
    return {"message": "Pong!"}


@api.post("/webhook")
async def create_job_route(
    request: Request,
    client: WorkflowClient = Depends(get_workflow_client),
) -> dict[str, str]:
    """
    Create a job from a task description.

    Returns:
        Dictionary with job_id and branch

    Raises:
        HTTPException: 400 if the `job` field is missing
        HTTPException: 500 if the repository calls fail
    """
    body = await read_json_object(request)
    job = body.get("job")
    if not job or not isinstance(job, str):
        raise HTTPException(status_code=400, detail="Missing job field")

    try:
        return await asyncio.to_thread(create_job, client, job)
    except GatewayError as e:
        logger.error(f"Failed to create job: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to create job")


@api.get("/jobs/status")
async def job_status_route(
    job_id: str | None = None,
    client: WorkflowClient = Depends(get_workflow_client),
) -> dict[str, Any]:
    """Active jobs, optionally restricted to one job ID."""
    try:
        view = await get_job_status(client, job_id or None)
    except GatewayError as e:
        logger.error(f"Failed to get job status: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to get job status")
    return view.to_dict()


@api.get("/swarm/status")
async def swarm_status_route(
    page: int = 1,
    client: WorkflowClient = Depends(get_workflow_client),
) -> dict[str, Any]:
    """One page of all workflow runs with repository-wide counts."""
    try:
        view = await get_swarm_status(client, page=max(page, 1))
    except GatewayError as e:
        logger.error(f"Failed to get swarm status: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to get swarm status")
    return view.to_dict()


@api.get("/swarm/config")
async def swarm_config_route(
    cfg: GatewayConfig = Depends(get_config),
) -> dict[str, list[dict[str, Any]]]:
    """Schedule and trigger definitions as currently stored on disk."""
    try:
        crons = [entry.to_dict() for entry in load_schedule(cfg.crons_file)]
    except ConfigurationError as e:
        logger.error(f"Failed to load schedule: {e}")
        crons = []
    try:
        triggers = [entry.to_dict() for entry in load_triggers(cfg.triggers_file)]
    except ConfigurationError as e:
        logger.error(f"Failed to load triggers: {e}")
        triggers = []
    return {"crons": crons, "triggers": triggers}


@api.post("/swarm/runs/{run_id}/cancel")
async def cancel_run_route(
    run_id: int,
    client: WorkflowClient = Depends(get_workflow_client),
) -> dict[str, bool]:
    try:
        return await asyncio.to_thread(client.cancel, run_id)
    except GatewayError as e:
        logger.error(f"Failed to cancel run {run_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to cancel run")


@api.post("/swarm/runs/{run_id}/rerun")
async def rerun_route(
    run_id: int,
    request: Request,
    client: WorkflowClient = Depends(get_workflow_client),
) -> dict[str, bool]:
    """Re-run a workflow run; `{"failed_only": true}` re-runs failed jobs only."""
    failed_only = False
    if await request.body():
        body = await read_json_object(request)
        failed_only = bool(body.get("failed_only", False))

    try:
        return await asyncio.to_thread(client.rerun, run_id, failed_only)
    except GatewayError as e:
        logger.error(f"Failed to rerun run {run_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to rerun run")


@api.post("/telegram/register")
async def register_telegram_route(
    request: Request,
    cfg: GatewayConfig = Depends(get_config),
    notifier: NotificationDispatcher = Depends(get_dispatcher),
) -> dict[str, Any]:
    """
    Point a bot's webhook at this gateway and start using that bot.

    The new token replaces the configured one for the rest of the process
    lifetime; it is not persisted.
    """
    body = await read_json_object(request)
    bot_token = body.get("bot_token")
    webhook_url = body.get("webhook_url")
    if not bot_token or not webhook_url:
        raise HTTPException(status_code=400, detail="Missing bot_token or webhook_url")

    transport = TelegramTransport(bot_token)
    try:
        result = await asyncio.to_thread(
            transport.set_webhook, webhook_url, cfg.telegram_webhook_secret
        )
    except GatewayError as e:
        logger.error(f"Failed to register webhook: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to register webhook")

    cfg.telegram_bot_token = bot_token
    notifier.transport.bot_token = bot_token
    logger.info("Telegram webhook registered")
    return {"success": True, "result": result}


app.include_router(api)


@app.post("/telegram/webhook")
async def telegram_webhook_route(
    request: Request,
    x_telegram_bot_api_secret_token: str | None = Header(default=None),
    cfg: GatewayConfig = Depends(get_config),
    handler: TelegramUpdateHandler = Depends(get_telegram_handler),
) -> dict[str, Any]:
    """
    Receive chat updates.

    Every outcome, including a wrong secret, is answered with 200 so the
    chat provider does not retry.
    """
    if cfg.telegram_webhook_secret and not secret_matches(
        cfg.telegram_webhook_secret, x_telegram_bot_api_secret_token
    ):
        logger.warning(f"Rejected update with bad {TELEGRAM_SECRET_HEADER} header")
        return {"ok": True}

    update = await read_json_object(request)
    return await handler.handle(update)


@app.post("/github/webhook")
async def github_webhook_route(
    request: Request,
    x_github_webhook_secret_token: str | None = Header(default=None),
    x_github_event: str | None = Header(default=None),
    cfg: GatewayConfig = Depends(get_config),
    handler: GitHubEventHandler = Depends(get_github_handler),
) -> dict[str, Any]:
    """
    Receive CI events.

    Raises:
        HTTPException: 401 if the secret header does not match
        HTTPException: 400 if the body is not a JSON object
    """
    if cfg.gh_webhook_secret and not secret_matches(
        cfg.gh_webhook_secret, x_github_webhook_secret_token
    ):
        logger.warning(f"Rejected event with bad {GITHUB_SECRET_HEADER} header")
        raise HTTPException(status_code=401, detail="Unauthorized")

    payload = await read_json_object(request)
    return await handler.handle(x_github_event, payload)
