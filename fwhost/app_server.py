import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

import psutil
import uvicorn
from fastapi import (
    Depends,
    FastAPI,
    File as UploadFileField,
    Form,
    HTTPException,
    Request,
    UploadFile,
)
from fastapi.responses import (
    HTMLResponse,
    JSONResponse,
    RedirectResponse,
    Response,
    StreamingResponse,
)
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.background import BackgroundTask

from fwhost import admin, pages, upload
from fwhost.config import Settings
from fwhost.database import create_tables, get_session, make_engine, make_sessionmaker
from fwhost.errors import ServiceError, service_error_handler
from fwhost.outcome import Outcome
from fwhost.storage import CAB_CONTENT_TYPE, make_storage, object_name

logger = logging.getLogger(__name__)

# --- Prometheus metrics ---
REQUEST_COUNT = Counter(
    "fwhost_requests_total", "Total HTTP requests", ["method", "endpoint", "status"]
)

REQUEST_LATENCY = Histogram(
    "fwhost_request_latency_seconds",
    "Latency of requests (seconds)",
    ["endpoint"],
    buckets=(0.05, 0.1, 0.2, 0.5, 1, 2, 5),
)

UPLOADS = Counter("fwhost_uploads_total", "Firmware uploads by result", ["result"])
ADMIN_ACTIONS = Counter(
    "fwhost_admin_actions_total", "Admin actions by result", ["action", "result"]
)

CPU = Gauge("fwhost_cpu_percent", "CPU percent")
MEM = Gauge("fwhost_mem_bytes", "Resident memory bytes")


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _result_label(outcome: Outcome) -> str:
    return "accepted" if outcome.passed else "rejected"


def _respond(request: Request, outcome: Outcome) -> Response:
    """Send the outcome as JSON when asked for, otherwise redirect to /result."""
    if "application/json" in request.headers.get("accept", ""):
        return JSONResponse(status_code=200, content=outcome.as_dict())
    return RedirectResponse(url=f"/result?{outcome.to_query()}", status_code=303)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    if settings is None:
        settings = Settings()
    configure_logging(settings.LOG_LEVEL)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await create_tables(app.state.engine)
        await app.state.storage.prepare()
        logger.info(
            "%s ready, storage=%s", settings.SERVER_NAME, settings.STORAGE_BACKEND
        )
        yield
        await app.state.engine.dispose()

    app = FastAPI(
        title="Firmware Upload",
        description="Vendor firmware cabinet uploads with token-based vendor accounts.",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.engine = make_engine(settings.DATABASE_URL)
    app.state.sessionmaker = make_sessionmaker(app.state.engine)
    app.state.storage = make_storage(settings)
    app.add_exception_handler(ServiceError, service_error_handler)

    # --- Middleware: logging & metrics ---
    @app.middleware("http")
    async def metrics_middleware(request: Request, call_next):
        start = time.time()
        response = await call_next(request)
        duration = time.time() - start

        route = request.scope.get("route")
        endpoint = route.path if route is not None else request.url.path
        REQUEST_COUNT.labels(
            method=request.method, endpoint=endpoint, status=str(response.status_code)
        ).inc()
        REQUEST_LATENCY.labels(endpoint=endpoint).observe(duration)

        logger.info(
            "%s %s %s - %.4fs",
            request.method, request.url.path, response.status_code, duration,
        )
        return response

    # --- Health (lightweight) ---
    @app.get("/healthz")
    @app.head("/healthz")
    async def health_check():
        return {"status": "ok", "app": settings.SERVER_NAME}

    # --- Readiness (deep check: DB + storage) ---
    async def _check_db() -> bool:
        try:
            async with app.state.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except Exception:
            logger.warning("database readiness check failed", exc_info=True)
            return False

    @app.get("/readyz")
    async def readiness_check():
        db_ok = await _check_db()
        storage_ok = await app.state.storage.ping()
        ok = db_ok and storage_ok
        return JSONResponse(
            status_code=200 if ok else 503,
            content={
                "status": "ok" if ok else "fail",
                "db": db_ok,
                "storage": storage_ok,
                "app": settings.SERVER_NAME,
            },
        )

    # --- Prometheus metrics endpoint (update CPU/MEM on scrape) ---
    @app.get("/metrics")
    def metrics():
        CPU.set(psutil.cpu_percent())
        MEM.set(psutil.Process().memory_info().rss)
        data = generate_latest()
        return Response(content=data, media_type=CONTENT_TYPE_LATEST)

    # --- Upload firmware ---
    @app.post("/upload")
    async def upload_firmware(
        request: Request,
        auth: str = Form(""),
        contact: str = Form(""),
        file: UploadFile = UploadFileField(...),
        session: AsyncSession = Depends(get_session),
    ):
        payload = await upload.read_upload(file, settings.MAX_UPLOAD_SIZE)
        addr = request.client.host if request.client else ""
        outcome = await upload.accept_upload(
            session,
            app.state.storage,
            settings,
            token=auth,
            contact=contact,
            addr=addr,
            filename=file.filename,
            payload=payload,
        )
        UPLOADS.labels(result=_result_label(outcome)).inc()
        return _respond(request, outcome)

    # --- Provision vendors ---
    @app.post("/admin")
    async def admin_action(
        request: Request,
        action: str = Form(...),
        auth: str = Form(""),
        guid: str = Form(..., min_length=1),
        name: str = Form(""),
        contact: str = Form(""),
        session: AsyncSession = Depends(get_session),
    ):
        outcome = await admin.apply_action(
            session,
            app.state.storage,
            settings,
            action=action,
            master=auth,
            guid=guid,
            name=name,
            contact=contact,
        )
        ADMIN_ACTIONS.labels(action=action, result=_result_label(outcome)).inc()
        return _respond(request, outcome)

    # --- Pages ---
    @app.get("/result", response_class=HTMLResponse)
    async def result_page(request: Request):
        return pages.render_result(request.query_params)

    @app.get("/", response_class=HTMLResponse)
    @app.get("/history", response_class=HTMLResponse)
    async def history_page(session: AsyncSession = Depends(get_session)):
        rows = await pages.load_history(session)
        return pages.render_history(rows)

    # --- Download stored firmware ---
    @app.get("/downloads/{checksum}.cab")
    async def download_firmware(
        checksum: str, session: AsyncSession = Depends(get_session)
    ):
        if not await upload.checksum_known(session, checksum):
            raise HTTPException(status_code=404, detail="firmware not found")

        stored = await app.state.storage.open(object_name(checksum))
        headers = {
            "Content-Disposition": f'attachment; filename="{object_name(checksum)}"',
            "ETag": checksum,
        }
        return StreamingResponse(
            stored.body(),
            media_type=CAB_CONTENT_TYPE,
            headers=headers,
            background=BackgroundTask(stored.cleanup),
        )

    return app


# --- Run (HTTP only) ---
if __name__ == "__main__":
    uvicorn.run(
        "fwhost.app_server:create_app",
        factory=True,
        host="0.0.0.0",
        port=8000,
        log_level="info",
    )
