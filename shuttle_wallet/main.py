"""FastAPI application entry point."""
import os

# Force UTC before any module caches timezone information
os.environ['TZ'] = 'UTC'

import time
import sys

if hasattr(time, "tzset"):
    time.tzset()

# Ensure console streams can emit Unicode (Thai text, emoji) on Windows
for stream in (sys.stdout, sys.stderr):
    if hasattr(stream, "reconfigure"):
        stream.reconfigure(encoding="utf-8", errors="backslashreplace")

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from contextlib import asynccontextmanager
from typing import Optional

from shuttle_wallet.config import get_settings
from shuttle_wallet.version import APP_VERSION
from shuttle_wallet.database import init_models
from shuttle_wallet.routers import health, reports, transactions, users
from shuttle_wallet.services.ledger_store import LedgerStore
from shuttle_wallet.services.notification_service import LineNotificationDispatcher
from shuttle_wallet.services.settlement_service import SettlementService
from shuttle_wallet.services.transaction_log import TransactionLog
from shuttle_wallet.services.user_directory import UserDirectory
from shuttle_wallet.store import DocumentStore
from shuttle_wallet.tasks.weekly_settlement import drain_notifications
from shuttle_wallet.utils import lock_client as default_lock_client
from shuttle_wallet.utils.exceptions import (
    InconsistentLedgerError,
    InvalidArgumentError,
    LedgerError,
    NotFoundError,
    StoreUnavailableError,
)
from shuttle_wallet.utils.lock_client import LockClient

# Create logs directory if it doesn't exist
logs_dir = Path("logs")
logs_dir.mkdir(exist_ok=True)

log_file = logs_dir / "shuttle_wallet.log"
sql_log_file = logs_dir / "shuttle_wallet_sql.log"

# General logs: 1MB max size, keep 5 backup files
rotating_handler = RotatingFileHandler(
    log_file,
    maxBytes=1024 * 1024,
    backupCount=5,
    encoding='utf-8',
)
rotating_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))

# SQL logs: 1MB max size, keep 5 backup files
sql_rotating_handler = RotatingFileHandler(
    sql_log_file,
    maxBytes=1024 * 1024,
    backupCount=5,
    encoding='utf-8',
)
sql_rotating_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))

# Force=True overrides any existing configuration (e.g., from uvicorn)
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(),
        rotating_handler,
    ],
    force=True,
)

logger = logging.getLogger(__name__)

uvicorn_access_logger = logging.getLogger("uvicorn.access")
uvicorn_access_logger.setLevel(logging.INFO)
if rotating_handler not in uvicorn_access_logger.handlers:
    uvicorn_access_logger.addHandler(rotating_handler)

# SQLAlchemy engine output goes to its own file only
sqlalchemy_logger = logging.getLogger("sqlalchemy.engine.Engine")
sqlalchemy_logger.handlers.clear()
sqlalchemy_logger.addHandler(sql_rotating_handler)
sqlalchemy_logger.setLevel(logging.INFO)
sqlalchemy_logger.propagate = False


class SQLTransactionFilter(logging.Filter):
    def filter(self, record):
        if record.levelno == logging.INFO and hasattr(record, 'getMessage'):
            message = record.getMessage()

            if any(keyword in message for keyword in ['ROLLBACK', 'BEGIN', 'COMMIT', 'generated in']):
                return False

            # Collapse multi-line statements to one line
            if any([kw in message for kw in ['SELECT', 'DELETE', 'INSERT', 'UPDATE']]):
                record.msg = ' '.join(message.split())
                record.args = ()

        return True


sqlalchemy_logger.addFilter(SQLTransactionFilter())

settings = get_settings()

ERROR_STATUS_CODES = [
    (NotFoundError, 404),
    (InvalidArgumentError, 400),
    (InconsistentLedgerError, 409),
    (StoreUnavailableError, 503),
]


def status_code_for(exc: LedgerError) -> int:
    for error_type, status_code in ERROR_STATUS_CODES:
        if isinstance(exc, error_type):
            return status_code
    return 500


def create_app(
    store: Optional[DocumentStore] = None,
    lock_client: Optional[LockClient] = None,
    dispatcher: Optional[LineNotificationDispatcher] = None,
    create_tables: bool = True,
) -> FastAPI:
    """Build the API; tests pass their own store, lock client and dispatcher."""

    @asynccontextmanager
    async def lifespan(app_instance: FastAPI):
        """Manage application startup and shutdown tasks."""
        logger.info("=" * 60)
        logger.info("Shuttle Wallet API Starting")
        logger.info(f"Environment: {settings.environment}")
        logger.info(f"Database: {settings.database_url.split('@')[-1] if '@' in settings.database_url else 'SQLite'}")
        logger.info(f"Redis: {'Enabled' if settings.redis_url else 'In-Memory Fallback'}")
        logger.info("=" * 60)

        if create_tables:
            await init_models()

        app_store = store or DocumentStore()
        app_locks = lock_client or default_lock_client
        app_dispatcher = dispatcher or LineNotificationDispatcher(app_store.settings)

        directory = UserDirectory(app_store)
        transaction_log = TransactionLog(app_store)

        app_instance.state.store = app_store
        app_instance.state.lock_client = app_locks
        app_instance.state.user_directory = directory
        app_instance.state.transaction_log = transaction_log
        app_instance.state.ledger_store = LedgerStore(app_store, directory, app_locks, transaction_log)
        app_instance.state.settlement_service = SettlementService(
            app_store, transaction_log, lock_client=app_locks
        )
        app_instance.state.dispatcher = app_dispatcher

        directory.add_error_observer(
            lambda exc: logger.error(f"User directory is serving a stale snapshot: {exc}")
        )
        await directory.subscribe()

        try:
            yield
        finally:
            logger.info("Shutting down...")
            await directory.teardown()
            await drain_notifications()
            try:
                await app_dispatcher.close()
                logger.info("LINE dispatcher session closed")
            except Exception as e:
                logger.error(f"Error closing LINE dispatcher: {e}")

            logger.info("Shuttle Wallet API Shutting Down... Goodbye!")

    app_instance = FastAPI(
        title="Shuttle Wallet API",
        description="Badminton club wallet ledger and weekly settlement",
        version=APP_VERSION,
        lifespan=lifespan,
    )

    @app_instance.exception_handler(LedgerError)
    async def ledger_exception_handler(request: Request, exc: LedgerError):
        status_code = status_code_for(exc)
        if status_code >= 500:
            logger.error(f"{type(exc).__name__} on {request.url.path}: {exc}")
        else:
            logger.warning(f"{type(exc).__name__} on {request.url.path}: {exc}")
        return JSONResponse(
            status_code=status_code,
            content={"detail": str(exc), "error": type(exc).__name__},
        )

    @app_instance.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Handle Pydantic validation errors with user-friendly messages."""
        logger.warning(f"Validation error on {request.url.path}: {exc.errors()}")

        errors = []
        for error in exc.errors():
            loc = error.get("loc", [])
            field_path = " -> ".join(str(x) for x in loc[1:]) if len(loc) > 1 else "unknown field"
            errors.append({
                "field": field_path,
                "message": error.get("msg", "Validation error"),
                "type": error.get("type", "unknown"),
            })

        return JSONResponse(
            status_code=422,
            content={"detail": "Request validation failed", "errors": errors},
        )

    @app_instance.middleware("http")
    async def log_requests(request: Request, call_next):
        start_time = time.time()
        response = await call_next(request)
        process_time = time.time() - start_time
        logger.info(
            f"{request.method} {request.url.path} | Status: {response.status_code} | Time: {process_time:.3f}s"
        )
        return response

    app_instance.include_router(health.router, tags=["health"])
    app_instance.include_router(users.router, prefix="/users", tags=["users"])
    app_instance.include_router(transactions.router, prefix="/transactions", tags=["transactions"])
    app_instance.include_router(reports.router, prefix="/reports", tags=["reports"])

    return app_instance


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("shuttle_wallet.main:app", host="0.0.0.0", port=int(os.environ.get("PORT", 8000)), reload=False)
