# services/slack_gateway/main.py
"""FastAPI gateway for the `/ai구매` Slack slash command.

* **POST /slack/commands**      slash command: verify signature, ack, then
  parse → users.info → Sheets append → follow-up message in the background.
* **POST /slack/interactions**  interactive payloads, acknowledged with 200.
* **GET  /**                    static liveness string.
* **GET  /health**              JSON liveness check.

❗ DTO-models live in `services.slack_gateway.schemas`; orchestration lives in
`services.slack_gateway.handler`.
"""
from __future__ import annotations

import logging
import signal
from pathlib import Path
from typing import Any
from urllib.parse import parse_qs

import ngrok
import uvicorn
from fastapi import BackgroundTasks, Depends, FastAPI, HTTPException, Request, Response, status
from fastapi.concurrency import asynccontextmanager
from fastapi.responses import PlainTextResponse
from pydantic import ValidationError

from libs.config import Settings, get_settings
from libs.models import InboundCommand
from libs.sentry import init_sentry
from libs.signature import (
    SIGNATURE_HEADER,
    TIMESTAMP_HEADER,
    InvalidSignature,
    verify_slack_signature,
)
from services.slack_gateway.handler import PurchaseCommandHandler, build_command_handler
from services.slack_gateway.metrics import start_metrics_server
from services.slack_gateway.schemas import HealthResponse, SlackAckResponse

__version__ = "0.1.0"

HEALTH_TEXT = "AI Purchase Tracker Slack App is running!"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------#
# Logging                                                                    #
# ---------------------------------------------------------------------------#
def configure_logging(settings: Settings) -> None:
    """Console logging plus an optional file under `LOG_DIR`; safe to call twice."""
    logging.basicConfig(level=settings.log_level.upper(), format=LOG_FORMAT)
    if settings.log_dir is None:
        return
    log_path = (Path(settings.log_dir) / "slack_gateway.log").resolve()
    root = logging.getLogger()
    for handler in root.handlers:
        if isinstance(handler, logging.FileHandler) and Path(handler.baseFilename) == log_path:
            return
    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(file_handler)


# ---------------------------------------------------------------------------#
# Lifespan: clients are built once per process                               #
# ---------------------------------------------------------------------------#
@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    configure_logging(settings)
    init_sentry(release=f"slack-gateway@{__version__}", env=settings.env)
    start_metrics_server(settings.metrics_port)
    if getattr(app.state, "command_handler", None) is None:
        app.state.command_handler = build_command_handler(settings)
    logger.info("AI Purchase Tracker Slack App is ready!")
    yield
    logger.info("Slack gateway shutting down…")


app = FastAPI(title="AI Purchase Tracker Slack Gateway", version=__version__, lifespan=lifespan)


# ---------------------------------------------------------------------------#
# Dependencies                                                               #
# ---------------------------------------------------------------------------#
def get_command_handler(request: Request) -> PurchaseCommandHandler:
    return request.app.state.command_handler


def parse_slack_form(body: bytes) -> dict[str, str]:
    """``application/x-www-form-urlencoded`` body → flat dict (first value wins)."""
    parsed = parse_qs(body.decode("utf-8"), keep_blank_values=True)
    return {key: values[0] for key, values in parsed.items()}


async def signed_command(
    request: Request,
    settings: Settings = Depends(get_settings),
) -> InboundCommand:
    """Verify the Slack signature over the raw body, then build the command."""
    body = await request.body()
    signature = request.headers.get(SIGNATURE_HEADER)
    try:
        timestamp = verify_slack_signature(
            body,
            request.headers.get(TIMESTAMP_HEADER),
            signature,
            settings.slack_signing_secret,
        )
    except InvalidSignature as exc:
        logger.warning("Rejected Slack request: %s", exc)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    try:
        return InboundCommand.from_form(
            parse_slack_form(body), signature=signature or "", timestamp=timestamp
        )
    except (ValidationError, UnicodeDecodeError) as exc:
        logger.warning("Malformed slash command payload", exc_info=True)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid payload") from exc


# ---------------------------------------------------------------------------#
# Routes                                                                     #
# ---------------------------------------------------------------------------#
@app.post("/slack/commands", response_model=SlackAckResponse)
async def slack_commands(
    background_tasks: BackgroundTasks,
    command: InboundCommand = Depends(signed_command),
    handler: PurchaseCommandHandler = Depends(get_command_handler),
) -> SlackAckResponse:
    """Ack within Slack's 3-second budget; the real work runs after the response."""
    logger.info("Slack request received: %s from %s", command.command_name, command.user_id)
    ack = handler.acknowledge(command)
    background_tasks.add_task(handler.process, command)
    return SlackAckResponse(**ack)


@app.post("/slack/interactions")
async def slack_interactions() -> Response:
    return Response(status_code=status.HTTP_200_OK)


@app.get("/", response_class=PlainTextResponse)
async def index() -> str:
    return HEALTH_TEXT


@app.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:  # noqa: D401
    return HealthResponse(status="ok")


# ---------------------------------------------------------------------------#
# ngrok helpers                                                              #
# ---------------------------------------------------------------------------#
_NGROK_URL: str | None = None


def _start_ngrok(settings: Settings) -> None:  # pragma: no cover
    """Opens an ngrok tunnel so Slack can reach a gateway running locally."""
    global _NGROK_URL

    if not settings.enable_ngrok:
        return
    if not settings.ngrok_authtoken:
        logger.info("NGROK_AUTHTOKEN is not set – tunnel skipped.")
        return

    ngrok_cfg: dict[str, Any] = {"authtoken": settings.ngrok_authtoken}
    if settings.ngrok_domain:
        ngrok_cfg["domain"] = settings.ngrok_domain

    local_url = f"http://127.0.0.1:{settings.port}"
    try:
        listener = ngrok.connect(local_url, **ngrok_cfg)  # type: ignore[arg-type]
        _NGROK_URL = listener.url()
        logger.info("🌐  ngrok tunnel: %s  ➜  %s (Slack URL: %s/slack/commands)",
                    _NGROK_URL, local_url, _NGROK_URL)
    except Exception:
        logger.exception("Could not open ngrok tunnel")


def _stop_ngrok() -> None:  # pragma: no cover
    global _NGROK_URL
    if _NGROK_URL:
        logger.info("Closing ngrok tunnel…")
        try:
            ngrok.disconnect(_NGROK_URL)
        except Exception:
            logger.warning("ngrok tunnel did not close cleanly", exc_info=True)
        _NGROK_URL = None


def _graceful_exit(*_sig: object) -> None:  # noqa: D401
    """SIGTERM/SIGINT: close the tunnel, then leave the process cleanly."""
    logger.info("SIGTERM/SIGINT caught, shutting down…")
    _stop_ngrok()
    raise SystemExit(0)


# ---------------------------------------------------------------------------#
# Entrypoint                                                                 #
# ---------------------------------------------------------------------------#
if __name__ == "__main__":  # pragma: no cover
    settings = get_settings()
    configure_logging(settings)
    _start_ngrok(settings)

    # uvicorn restores these handlers and re-raises the signal after its own shutdown
    signal.signal(signal.SIGTERM, _graceful_exit)
    signal.signal(signal.SIGINT, _graceful_exit)

    try:
        uvicorn.run(
            "services.slack_gateway.main:app",
            host=settings.api_host,
            port=settings.port,
            lifespan="on",
        )
    finally:
        _stop_ngrok()
