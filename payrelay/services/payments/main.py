"""Public HTTP entrypoint for the payment relay.

Resolves the tenant for every request, delegates to `PaymentService`, and
renders `RelayError`s as `{success, error, errorKind}` bodies.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from time import perf_counter
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from payrelay.common.config import settings
from payrelay.common.errors import ErrorKind, RelayError
from payrelay.common.logging import configure_logging, logger, trace_id_ctx
from payrelay.common.metrics import http_request_duration_seconds, http_requests_total, metrics_response
from payrelay.common.startup import log_startup_config
from payrelay.common.tracing import instrument_app, setup_tracing
from payrelay.services.payments.context import ServiceContext, build_context
from payrelay.services.payments.schemas import OrderCreateRequest, OrderCreateResponse, OrderView, PaymentVerifyRequest
from payrelay.services.payments.service import PaymentService
from payrelay.services.tenants.registry import resolve_tenant_id

VERSION = "1.0.0"

configure_logging()
setup_tracing(settings.service_name)
log_startup_config(settings)


def create_app(context: ServiceContext | None = None) -> FastAPI:
    """Build the FastAPI app around one shared `ServiceContext`."""

    context = context or build_context(settings)
    service = PaymentService(context)

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        """Drain pending side effects and close clients on shutdown."""

        if not context.gateway.configured:
            logger.warning("gateway_credentials_missing key_id_set=%s", bool(context.gateway.key_id))
        yield
        await context.aclose()

    app = FastAPI(title="PayRelay", version=VERSION, lifespan=lifespan)
    app.state.context = context
    app.state.service = service
    instrument_app(app)

    @app.middleware("http")
    async def metrics_middleware(request: Request, call_next):
        """Record request count and latency, and bind a trace id."""

        start = perf_counter()
        route = request.url.path
        method = request.method
        status_code = 500
        trace_id_ctx.set(request.headers.get("x-correlation-id") or str(uuid4()))
        try:
            response = await call_next(request)
            status_code = response.status_code
            route_obj = request.scope.get("route")
            if route_obj is not None and getattr(route_obj, "path", None):
                route = route_obj.path
            return response
        finally:
            elapsed = max(0.0, perf_counter() - start)
            http_request_duration_seconds.labels(
                service=settings.service_name,
                route=route,
                method=method,
            ).observe(elapsed)
            http_requests_total.labels(
                service=settings.service_name,
                route=route,
                method=method,
                status_code=str(status_code),
            ).inc()

    @app.exception_handler(RelayError)
    async def relay_error_handler(_: Request, exc: RelayError):
        logger.warning("request_failed kind=%s error=%s", exc.kind.value, exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_body())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(_: Request, exc: RequestValidationError):
        fields = sorted({".".join(str(part) for part in err.get("loc", ())[1:]) for err in exc.errors()})
        message = f"Invalid request fields: {', '.join(fields)}" if fields else "Invalid request body"
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": message, "errorKind": ErrorKind.INVALID_REQUEST.value},
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(_: Request, exc: Exception):
        logger.exception("unhandled_error error=%s", exc)
        return JSONResponse(status_code=500, content={"success": False, "error": "Internal server error"})

    @app.get("/")
    def index():
        """Service descriptor."""

        return {
            "name": "PayRelay",
            "version": VERSION,
            "status": "running",
            "endpoints": {
                "health": "GET /health",
                "createOrder": "POST /orders",
                "verifyPayment": "POST /payments/verify",
                "webhook": "POST /payments/gateway-webhook",
            },
        }

    @app.post("/orders", response_model=OrderCreateResponse)
    @app.post("/api/payment/create-order", response_model=OrderCreateResponse, include_in_schema=False)
    async def create_order(req: OrderCreateRequest, request: Request):
        """Create a gateway order for the resolved tenant."""

        tenant = service.tenant_for(
            resolve_tenant_id(request.headers, request.query_params, {"metadata": req.metadata, "appId": req.app_id})
        )
        order = await service.create_order(req, tenant)
        return OrderCreateResponse(
            order=OrderView(
                id=order.external_order_id,
                amount=order.amount,
                currency=order.currency,
                receipt=order.receipt,
                status=order.status,
            )
        )

    @app.post("/payments/verify")
    @app.post("/api/payment/verify", include_in_schema=False)
    async def verify_payment(req: PaymentVerifyRequest, request: Request):
        """Verify a checkout signature; side effects run after the response."""

        tenant = service.tenant_for(
            resolve_tenant_id(request.headers, request.query_params, {"metadata": req.metadata, "appId": req.app_id})
        )
        result = await service.verify_payment(req, tenant)
        return JSONResponse(status_code=result.status_code, content=result.to_body())

    @app.post("/payments/gateway-webhook")
    @app.post("/api/payment/webhook", include_in_schema=False)
    async def gateway_webhook(request: Request):
        """Gateway callback; the signature covers the raw body bytes."""

        raw_body = await request.body()
        signature = request.headers.get(settings.webhook_signature_header)
        return await service.handle_webhook(raw_body, signature)

    @app.get("/metrics")
    def metrics():
        """Prometheus scrape endpoint."""

        return metrics_response()

    @app.get("/health")
    def health():
        """Liveness probe; touches no collaborators."""

        return {"ok": True, "version": VERSION, "timestamp": datetime.now(timezone.utc).isoformat()}

    return app


app = create_app()
