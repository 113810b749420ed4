import logging
import time
from pathlib import Path
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import ALLOWED_ORIGINS, LOG_LEVEL, MIGRATIONS_DIR, UPLOADS_DIR
from .database import SessionLocal
from .routes import include_modular_routers

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(title="RealSingles API")
include_modular_routers(app)

UPLOADS_DIR.mkdir(parents=True, exist_ok=True)
app.mount("/uploads", StaticFiles(directory=str(UPLOADS_DIR)), name="uploads")

# Credentialed CORS needs explicit origins, not "*".
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error_response(status_code: int, msg: str, headers: dict[str, str] | None = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "msg": msg}, headers=headers)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return _error_response(exc.status_code, str(exc.detail), getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        msg = f"{location}: {first.get('msg')}" if location else str(first.get("msg"))
    else:
        msg = "Invalid request"
    return _error_response(400, msg)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"[api] unhandled error on {request.method} {request.url.path}")
    return _error_response(500, "Internal server error")


def _migrations_dir() -> Path:
    """MIGRATIONS_DIR wins, then the container path, then api/migrations in a checkout."""
    candidates = [Path(MIGRATIONS_DIR)] if MIGRATIONS_DIR else []
    candidates += [Path("/app/migrations"), Path(__file__).resolve().parents[1] / "migrations"]
    for candidate in candidates:
        if candidate.is_dir():
            return candidate
    checked = ", ".join(str(c) for c in candidates)
    raise FileNotFoundError(f"Migrations directory not found. Checked: {checked}")


def run_migrations() -> None:
    """Apply every .sql file in name order. Files are written to be re-runnable."""
    migrations_dir = _migrations_dir()
    scripts = sorted(p for p in migrations_dir.glob("*.sql") if p.is_file())
    with SessionLocal() as db:
        for script in scripts:
            db.execute(text(script.read_text(encoding="utf-8")))
            logger.info(f"[startup] applied migration {script.name}")
        db.commit()


def wait_for_db(max_attempts: int = 20, delay_seconds: float = 1.5) -> None:
    for attempt in range(1, max_attempts + 1):
        try:
            with SessionLocal() as db:
                db.execute(text("SELECT 1"))
            return
        except OperationalError:
            if attempt == max_attempts:
                logger.error(f"[startup] database unreachable after {max_attempts} attempts")
                raise
            logger.warning(f"[startup] database not ready (attempt {attempt}/{max_attempts}), retrying in {delay_seconds}s")
            time.sleep(delay_seconds)


@app.on_event("startup")
def on_startup() -> None:
    wait_for_db()
    run_migrations()


@app.get("/health")
def health() -> dict[str, Any]:
    return {"status": "ok"}

