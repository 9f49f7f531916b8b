import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from servicedesk.api.v1.catalog import router as catalog_router
from servicedesk.api.v1.service_requests import router as service_requests_router
from servicedesk.core.config import get_settings
from servicedesk.services.recurring_jobs import start_notification_outbox_worker
from servicedesk.utils.alerting import alert_tracker
from servicedesk.utils.rate_limit import check_request, get_client_ip, ip_in_allowlist

settings = get_settings()
_notification_outbox_task = None

logger = logging.getLogger(__name__)

GENERIC_ERROR = "Internal server error"

app = FastAPI(
    title="Service Desk API",
    version="1.0.0",
    docs_url="/docs" if settings.docs_enabled else None,
    openapi_url="/openapi.json" if settings.openapi_enabled else None,
)


@app.on_event("startup")
async def _startup_jobs():
    global _notification_outbox_task
    problems = settings.validate_required_config()
    if problems:
        if settings.is_production:
            for problem in problems:
                logger.error("Configuration problem: %s", problem)
            raise RuntimeError("Configuration validation failed in production environment")
        for problem in problems:
            logger.warning("Configuration problem: %s", problem)

    if _notification_outbox_task is None and settings.enable_recurring_jobs and settings.enable_notification_outbox:
        _notification_outbox_task = start_notification_outbox_worker()


@app.on_event("shutdown")
async def _shutdown_jobs():
    global _notification_outbox_task
    if _notification_outbox_task is not None:
        _notification_outbox_task.cancel()
        _notification_outbox_task = None


if settings.cors_allow_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
    )

app.include_router(service_requests_router, prefix="/api/v1", tags=["service-requests"])
app.include_router(catalog_router, prefix="/api/v1", tags=["catalog"])


@app.exception_handler(StarletteHTTPException)
async def _http_exception_handler(request: Request, exc: StarletteHTTPException):
    # Hide internal details for 5xx unless explicitly enabled.
    if exc.status_code >= 500 and not settings.expose_error_details:
        return JSONResponse(status_code=exc.status_code, content={"detail": GENERIC_ERROR})
    content = {"detail": exc.detail}
    fields = getattr(exc, "fields", None)
    if fields:
        content["fields"] = fields
    return JSONResponse(status_code=exc.status_code, content=content, headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def _request_validation_handler(request: Request, exc: RequestValidationError):
    fields = []
    for error in exc.errors():
        loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        if loc:
            fields.append(".".join(loc))
    return JSONResponse(
        status_code=400,
        content={
            "detail": "Validation failed",
            "fields": fields,
            "errors": [{"field": ".".join(str(p) for p in e.get("loc", ())), "message": e.get("msg")} for e in exc.errors()],
        },
    )


@app.exception_handler(Exception)
async def _unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled exception")
    if settings.expose_error_details:
        return JSONResponse(status_code=500, content={"detail": str(exc)})
    return JSONResponse(status_code=500, content={"detail": GENERIC_ERROR})


def _is_admin_path(path: str) -> bool:
    return path.startswith("/api/v1/") and "/admin" in path


@app.middleware("http")
async def api_rate_limit_middleware(request: Request, call_next):
    blocked = check_request(request)
    if blocked is not None:
        alert_tracker.record("RATE_LIMIT_BLOCKED", {"path": request.url.path, "bucket": blocked.name})
        return JSONResponse(status_code=429, content={"detail": "Too Many Requests"})
    return await call_next(request)


@app.middleware("http")
async def admin_ip_allowlist_middleware(request: Request, call_next):
    allowlist = settings.admin_ip_allowlist
    if not allowlist:
        return await call_next(request)

    if _is_admin_path(request.url.path):
        ip = get_client_ip(request) or ""
        if not ip_in_allowlist(ip, allowlist):
            return JSONResponse(status_code=403, content={"detail": "Admin IP not allowed"})
    return await call_next(request)


@app.middleware("http")
async def security_headers_middleware(request: Request, call_next):
    response = await call_next(request)
    if not settings.security_headers_enabled:
        return response

    headers = response.headers
    if "X-Content-Type-Options" not in headers:
        headers["X-Content-Type-Options"] = "nosniff"
    if "X-Frame-Options" not in headers:
        headers["X-Frame-Options"] = "DENY"
    if "Referrer-Policy" not in headers:
        headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    if "Strict-Transport-Security" not in headers:
        headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
    return response


@app.get("/health")
async def health_check():
    return {"status": "ok"}
