"""HTTP server: health, stats, topics, subscriptions, publish and direct sms."""

from dotenv import load_dotenv
load_dotenv()

import os
import time
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import APIRouter, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.middleware.base import BaseHTTPMiddleware

from notifyhub import (
    LoggingConfirmationChannel,
    LoggingTransport,
    NotificationPublisher,
    NotifyError,
    Settings,
    StaticOptOutOracle,
)
from notifyhub.protocol import (
    HealthResponse,
    TopicDeletedResponse,
    UnsubscribedResponse,
    ERROR_BAD_REQUEST,
    ERROR_UNAUTHORIZED,
    error_body,
    iso_ts,
    stats_response,
    status_for,
    subscriptions_list_response,
    topics_list_response,
)


def build_publisher(settings: Settings) -> NotificationPublisher:
    """Wire the default adapters; region and account only reach the transport."""
    opted_out = [n.strip() for n in os.environ.get("NOTIFY_OPTED_OUT", "").split(",") if n.strip()]
    return NotificationPublisher.from_settings(
        settings,
        LoggingTransport(settings.region, settings.account),
        opt_out_oracle=StaticOptOutOracle(opted_out),
        confirmation_channel=LoggingConfirmationChannel(),
    )


settings = Settings.from_env()
publisher = build_publisher(settings)
_start_time: float = time.time()


# X-API-Key is compulsory: API_KEY must be set in env (or .env)
def _get_expected_api_key() -> str | None:
    return (os.environ.get("API_KEY") or "").strip() or None


def _unauthorized(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": {"code": ERROR_UNAUTHORIZED, "message": message}, "ts": iso_ts()},
    )


class XAPIKeyMiddleware(BaseHTTPMiddleware):
    """Require X-API-Key header; API_KEY env must be set."""
    async def dispatch(self, request: Request, call_next):
        expected = _get_expected_api_key()
        if not expected:
            return _unauthorized(503, "X-API-Key required (API_KEY env not set)")
        key = (request.headers.get("X-API-Key") or "").strip()
        if key != expected:
            return _unauthorized(401, "invalid or missing X-API-Key")
        return await call_next(request)


@asynccontextmanager
async def lifespan(app: FastAPI):
    global _start_time
    _start_time = time.time()
    yield
    publisher.close()


app = FastAPI(title="Notification Hub API", lifespan=lifespan)
app.add_middleware(XAPIKeyMiddleware)

router = APIRouter(prefix="/api/v1")


@app.exception_handler(NotifyError)
async def notify_error_handler(request: Request, exc: NotifyError) -> JSONResponse:
    return JSONResponse(content=error_body(exc), status_code=status_for(exc))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        content={"error": {"code": ERROR_BAD_REQUEST, "message": str(exc.errors())}, "ts": iso_ts()},
        status_code=400,
    )


# ---- Health ----

@router.get("/health")
def health() -> JSONResponse:
    """GET /health → { uptime_sec, topics, subscriptions }."""
    body = HealthResponse(
        uptime_sec=time.time() - _start_time,
        topics=publisher.registry.topic_count(),
        subscriptions=publisher.subscriptions.subscription_count(),
    ).to_dict()
    return JSONResponse(content=body, status_code=200)


# ---- Stats ----

@router.get("/stats")
def stats() -> JSONResponse:
    """GET /stats → { metrics: { counters, gauges } }."""
    publisher.metrics.set_gauge("topics", publisher.registry.topic_count())
    publisher.metrics.set_gauge("subscriptions", publisher.subscriptions.subscription_count())
    return JSONResponse(content=stats_response(publisher.metrics.snapshot()), status_code=200)


# ---- Topics ----

class TopicCreateBody(BaseModel):
    name: str


@router.post("/topics")
def create_topic(body: TopicCreateBody) -> JSONResponse:
    """POST /topics { name } → 201 with the new topic, or 200 with the existing one of that name."""
    topic, created = publisher.registry.get_or_create(body.name)
    return JSONResponse(content=topic.to_dict(), status_code=201 if created else 200)


@router.get("/topics")
def list_topics() -> JSONResponse:
    """GET /topics → { topics: [ { topic_id, name, created_at } ] }."""
    body = topics_list_response([t.to_dict() for t in publisher.list_topics()])
    return JSONResponse(content=body, status_code=200)


@router.delete("/topics/{topic_id}")
def delete_topic(topic_id: str) -> JSONResponse:
    """DELETE /topics/{topic_id} → 200, cascading to its subscriptions; 404 if unknown."""
    publisher.delete_topic(topic_id)
    return JSONResponse(content=TopicDeletedResponse(topic_id=topic_id).to_dict(), status_code=200)


# ---- Subscriptions ----

class SubscribeBody(BaseModel):
    kind: str
    address: str


class TokenBody(BaseModel):
    token: str


@router.post("/topics/{topic_id}/subscriptions")
def subscribe(topic_id: str, body: SubscribeBody) -> JSONResponse:
    """Subscribe an email, sms or push endpoint; email and push stay pending until confirmed."""
    subscription = publisher.subscribe(topic_id, body.kind, body.address)
    return JSONResponse(content=subscription.to_dict(), status_code=201)


@router.get("/topics/{topic_id}/subscriptions")
def list_subscriptions(topic_id: str) -> JSONResponse:
    subscriptions = [s.to_dict() for s in publisher.list_subscriptions(topic_id)]
    return JSONResponse(content=subscriptions_list_response(topic_id, subscriptions), status_code=200)


@router.post("/subscriptions/{subscription_id}/confirm")
def confirm_subscription(subscription_id: str, body: TokenBody) -> JSONResponse:
    subscription = publisher.confirm_subscription(subscription_id, body.token)
    return JSONResponse(content=subscription.to_dict(), status_code=200)


@router.post("/subscriptions/{subscription_id}/reject")
def reject_subscription(subscription_id: str, body: TokenBody) -> JSONResponse:
    subscription = publisher.reject_subscription(subscription_id, body.token)
    return JSONResponse(content=subscription.to_dict(), status_code=200)


@router.delete("/subscriptions/{subscription_id}")
def unsubscribe(subscription_id: str) -> JSONResponse:
    """Idempotent: 200 whether or not the subscription still existed."""
    publisher.unsubscribe(subscription_id)
    return JSONResponse(
        content=UnsubscribedResponse(subscription_id=subscription_id).to_dict(),
        status_code=200,
    )


# ---- Publish ----

class PublishBody(BaseModel):
    message: str
    subject: Optional[str] = None
    attributes: Dict[str, Any] = {}
    dedup_id: Optional[str] = None


class SmsBody(BaseModel):
    phone_number: str
    message: str
    attributes: Dict[str, Any] = {}


@router.post("/topics/{topic_id}/publish")
def publish(topic_id: str, body: PublishBody) -> JSONResponse:
    """Fan out to confirmed subscribers; the receipt lists every target's outcome."""
    receipt = publisher.publish_to_topic(
        topic_id,
        body.message,
        attributes=body.attributes,
        subject=body.subject,
        dedup_id=body.dedup_id,
    )
    return JSONResponse(content=receipt.to_dict(), status_code=200)


@router.post("/sms")
def send_sms(body: SmsBody) -> JSONResponse:
    """Direct sms to one phone number; opted-out numbers come back as opted_out, not sent."""
    receipt = publisher.send_sms(body.phone_number, body.message, attributes=body.attributes)
    return JSONResponse(content=receipt.to_dict(), status_code=200)


app.include_router(router)
