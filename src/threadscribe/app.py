"""FastAPI entry points: Slack events, slash command, and a config check.

Endpoints:
- POST /slack/events   - Events API (url_verification, app_mention)
- POST /slack/commands - /ocr slash command
- GET  /debug          - Which required credentials are configured
"""

import json
import re
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from urllib.parse import parse_qsl

import httpx
from fastapi import BackgroundTasks, FastAPI, Request
from fastapi.responses import JSONResponse
from slack_sdk.signature import SignatureVerifier

from threadscribe.config import get_settings
from threadscribe.processor import ThreadProcessor
from threadscribe.utils.errors import ConfigurationError
from threadscribe.utils.logging import get_logger, setup_logging
from threadscribe.utils.store import get_store

logger = get_logger(__name__)

THREAD_TS_RE = re.compile(r"(\d+\.\d+)")
PERMALINK_TS_RE = re.compile(r"/p(\d{10})(\d{6})")
FORCE_RE = re.compile(r"\bforce\b", re.IGNORECASE)
MENTION_RE = re.compile(r"<@([A-Z0-9]+)(?:\|[^>]*)?>")

COMMAND_USAGE = (
    "Please use `/ocr` in a thread, or provide a thread timestamp: "
    "`/ocr 1234567890.123456`\n\n"
    "Tip: You can get a thread's timestamp by copying the link to the thread message."
)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Configure logging on startup, release the store on shutdown."""
    settings = get_settings()
    setup_logging(log_level=settings.log_level, json_format=settings.log_json)
    missing = settings.missing_credentials()
    if missing:
        logger.warning("credentials_missing", missing=missing)
    logger.info("threadscribe_started", env=settings.app_env)
    yield
    await get_store().disconnect()
    logger.info("threadscribe_stopped")


app = FastAPI(title="threadscribe", version="0.1.0", lifespan=lifespan)


def build_processor(mention: str = "@ocr") -> ThreadProcessor:
    """Create a processor wired to the live Slack, store and model clients."""
    return ThreadProcessor(mention=mention)


async def run_thread_job(
    channel: str,
    thread_ts: str,
    force: bool = False,
    mention: str = "@ocr",
    response_url: str | None = None,
) -> None:
    """Run a job after the HTTP response has gone out.

    Failures are already reported in the thread's status message; this only
    logs them and, for slash commands, tells the invoking user.
    """
    try:
        await build_processor(mention).process(channel, thread_ts, force=force)
    except Exception as e:
        logger.error("background_job_failed", channel=channel, thread_ts=thread_ts, error=str(e))
        if response_url:
            await _notify_response_url(response_url, "Failed to process thread. Please try again.")


async def _notify_response_url(response_url: str, text: str) -> None:
    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            response = await client.post(
                response_url,
                json={"response_type": "ephemeral", "text": text},
            )
            response.raise_for_status()
    except httpx.HTTPError as e:
        logger.warning("response_url_post_failed", error=str(e))


def _check_request(request: Request, raw_body: bytes) -> JSONResponse | None:
    """Return an error response unless config is complete and the signature valid."""
    settings = get_settings()
    try:
        settings.require_credentials()
    except ConfigurationError as e:
        logger.error("configuration_missing", missing=e.details.get("missing"))
        return JSONResponse(status_code=500, content={"error": "Server configuration error"})

    verifier = SignatureVerifier(settings.slack_signing_secret)
    if not verifier.is_valid(
        body=raw_body,
        timestamp=request.headers.get("x-slack-request-timestamp", ""),
        signature=request.headers.get("x-slack-signature", ""),
    ):
        logger.warning("invalid_slack_signature")
        return JSONResponse(status_code=401, content={"error": "Invalid signature"})

    return None


def parse_thread_ts(text: str) -> str | None:
    """Find a thread timestamp in command text, either bare or inside a permalink."""
    permalink = PERMALINK_TS_RE.search(text)
    if permalink:
        return f"{permalink.group(1)}.{permalink.group(2)}"
    match = THREAD_TS_RE.search(text)
    return match.group(1) if match else None


def wants_force(text: str | None) -> bool:
    return bool(text and FORCE_RE.search(text))


@app.post("/slack/events")
async def slack_events(request: Request, background_tasks: BackgroundTasks) -> JSONResponse:
    """Handle Slack Events API callbacks."""
    raw_body = await request.body()
    error = _check_request(request, raw_body)
    if error is not None:
        return error

    try:
        payload = json.loads(raw_body)
    except json.JSONDecodeError:
        return JSONResponse(status_code=400, content={"error": "Invalid JSON"})

    payload_type = payload.get("type")

    if payload_type == "url_verification":
        return JSONResponse(content={"challenge": payload.get("challenge")})

    if payload_type != "event_callback":
        return JSONResponse(status_code=400, content={"error": "Unknown payload type"})

    event = payload.get("event") or {}
    event_id = payload.get("event_id", "")

    settings = get_settings()
    if event_id and not await get_store().claim(f"slack:event:{event_id}", settings.event_dedup_ttl):
        logger.info("duplicate_event_ignored", event_id=event_id)
        return JSONResponse(content={"ok": True})

    if event.get("type") == "app_mention":
        channel = event.get("channel", "")
        thread_ts = event.get("thread_ts") or event.get("ts", "")
        text = event.get("text", "")
        mention_match = MENTION_RE.search(text)
        mention = f"<@{mention_match.group(1)}>" if mention_match else "@ocr"

        logger.info(
            "app_mention_received",
            event_id=event_id,
            channel=channel,
            thread_ts=thread_ts,
        )
        background_tasks.add_task(
            run_thread_job, channel, thread_ts, wants_force(text), mention
        )

    return JSONResponse(content={"ok": True})


@app.post("/slack/commands")
async def slack_command(request: Request, background_tasks: BackgroundTasks) -> JSONResponse:
    """Handle the /ocr slash command."""
    raw_body = await request.body()
    error = _check_request(request, raw_body)
    if error is not None:
        return error

    payload = dict(parse_qsl(raw_body.decode("utf-8"), keep_blank_values=True))
    text = payload.get("text", "")
    channel = payload.get("channel_id", "")

    thread_ts = parse_thread_ts(text)
    if not thread_ts:
        return JSONResponse(content={"response_type": "ephemeral", "text": COMMAND_USAGE})

    logger.info("slash_command_received", channel=channel, thread_ts=thread_ts)
    background_tasks.add_task(
        run_thread_job,
        channel,
        thread_ts,
        wants_force(text),
        payload.get("command") or "/ocr",
        payload.get("response_url"),
    )

    return JSONResponse(
        content={
            "response_type": "ephemeral",
            "text": "Processing images in thread... This may take a moment.",
        }
    )


@app.get("/debug")
async def debug(request: Request) -> dict:
    """Report which credentials are present, never their values."""
    presence = get_settings().credential_presence()
    return {
        "ok": True,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "env": {
            "hasSlackToken": presence["SLACK_BOT_TOKEN"],
            "hasSigningSecret": presence["SLACK_SIGNING_SECRET"],
            "hasStoreToken": presence["STORE_TOKEN"],
        },
        "headers": {
            "content-type": request.headers.get("content-type"),
            "user-agent": request.headers.get("user-agent"),
        },
    }
