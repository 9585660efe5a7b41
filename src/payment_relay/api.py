"""FastAPI application exposing the relay to the storefront."""

import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

import httpx
import sentry_sdk
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from .config import RelayConfig, load_config
from .database import DatabaseManager
from .errors import PaymentRelayError, ValidationError
from .gateway import GatewayClient
from .schemas import (
    CancelRequest,
    CreatePaymentRequest,
    PaymentDetailQuery,
    RefundRequest,
    parse_request,
)
from .services import PaymentService
from .signing import get_signing_scheme

logger = logging.getLogger(__name__)

SUPPORTED_GATEWAYS = frozenset(["iyzico"])


def init_error_reporting(config: RelayConfig) -> None:
    """Start Sentry when a DSN is configured."""
    if not config.sentry_dsn:
        return
    sentry_sdk.init(dsn=config.sentry_dsn, traces_sample_rate=1.0)
    logger.info("Sentry error reporting enabled")


async def _read_json(request: Request) -> dict:
    try:
        return await request.json()
    except ValueError as e:
        raise ValidationError("request body must be valid JSON") from e


def get_service(request: Request) -> PaymentService:
    return request.app.state.service


def create_app(
    config: Optional[RelayConfig] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """Build the application.

    Configuration is resolved here, so missing credentials or an unknown
    signing scheme stop the process before it serves anything.

    Args:
        config: Relay configuration. Loaded from the environment when omitted.
        transport: Optional httpx transport for the gateway client.

    Raises:
        ConfigurationError: If the configuration is incomplete.
    """
    config = config or load_config()
    scheme = get_signing_scheme(config.signing_scheme)
    init_error_reporting(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        database = DatabaseManager(config.database_url)
        await database.initialize()
        gateway = GatewayClient(
            config.credentials,
            scheme=scheme,
            timeout_seconds=config.request_timeout,
            transport=transport,
        )
        app.state.service = PaymentService(gateway, database, config)
        logger.info("Payment relay started")
        try:
            yield
        finally:
            await gateway.close()
            await database.shutdown()
            logger.info("Payment relay stopped")

    app = FastAPI(title="Payment Relay", version="0.1.0", lifespan=lifespan)
    app.state.config = config

    limiter = Limiter(key_func=get_remote_address, default_limits=[config.rate_limit])
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.cors_origins),
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(
            f"{request.method} {request.url.path} {response.status_code} {elapsed_ms:.1f}ms"
        )
        return response

    @app.exception_handler(PaymentRelayError)
    async def relay_error_handler(request: Request, exc: PaymentRelayError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        else:
            logger.info(f"{request.method} {request.url.path} rejected: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.error(
            f"{request.method} {request.url.path} raised an unexpected error: {exc}",
            exc_info=exc,
        )
        return JSONResponse(
            status_code=500,
            content={"error": PaymentRelayError.error, "detail": "unexpected server error"},
        )

    @app.get("/health")
    @limiter.exempt
    async def health():
        return {"status": "healthy", "service": "payment-relay"}

    @app.post("/payment")
    async def create_payment(request: Request):
        body = parse_request(CreatePaymentRequest, await _read_json(request))
        summary = await get_service(request).create_payment(body)
        return summary.model_dump()

    @app.get("/payment")
    async def get_payment(request: Request):
        query = parse_request(PaymentDetailQuery, dict(request.query_params))
        return await get_service(request).get_payment_detail(query)

    @app.post("/payment/refund")
    async def refund_payment(request: Request):
        body = parse_request(RefundRequest, await _read_json(request))
        return await get_service(request).refund_payment(body)

    @app.post("/payment/cancel")
    async def cancel_payment(request: Request):
        body = parse_request(CancelRequest, await _read_json(request))
        return await get_service(request).cancel_payment(body)

    # Gateway callbacks arrive from a few shared IPs and must never be throttled
    @app.post("/webhook/{gateway}")
    @limiter.exempt
    async def receive_webhook(gateway: str, request: Request):
        if gateway.lower() not in SUPPORTED_GATEWAYS:
            raise ValidationError("Gateway not supported")
        payload = await _read_json(request)
        if not isinstance(payload, dict):
            raise ValidationError("webhook body must be a JSON object")
        signature = request.headers.get(config.webhook_signature_header)
        outcome = await get_service(request).handle_webhook(payload, signature)
        return {
            "status": "ok",
            "conversationId": outcome.conversation_id,
            "applied": outcome.applied,
        }

    return app
