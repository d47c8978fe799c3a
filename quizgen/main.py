import logging
import threading
from collections import defaultdict, deque
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Deque

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from quizgen.core.config import get_settings
from quizgen.core.exceptions import QuizGenError
from quizgen.core.logging import configure_logging
from quizgen.db.base import Base
from quizgen.db.session import engine
from quizgen.routers import callbacks, quizzes
from quizgen.services.jobs.registry import JobSweeper, get_job_registry

logger = logging.getLogger(__name__)


def _timestamp() -> float:
    return datetime.now(timezone.utc).timestamp()


class RateLimiter:
    def __init__(self, limit_per_minute: int, clock: Callable[[], float] = _timestamp) -> None:
        self.limit_per_minute = limit_per_minute
        self._clock = clock
        self._hits: dict[str, Deque[float]] = defaultdict(deque)
        self._last_prune = clock()
        self._lock = threading.Lock()

    def hit(self, key: str) -> bool:
        now = self._clock()
        window_start = now - 60
        with self._lock:
            if now - self._last_prune >= 60:
                self._prune(window_start)
                self._last_prune = now
            bucket = self._hits[key]
            while bucket and bucket[0] < window_start:
                bucket.popleft()
            if len(bucket) >= self.limit_per_minute:
                return False
            bucket.append(now)
            return True

    def _prune(self, window_start: float) -> None:
        stale = [key for key, bucket in self._hits.items() if not bucket or bucket[-1] < window_start]
        for key in stale:
            del self._hits[key]


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging()
    app = FastAPI(title=settings.app_name, debug=settings.debug)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    limiter = RateLimiter(settings.rate_limit_per_minute)

    @app.middleware("http")
    async def rate_limit_middleware(request: Request, call_next):
        key = request.client.host if request.client else "unknown"
        if not limiter.hit(key):
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={"error_code": "RATE_LIMITED", "message": "Rate limit exceeded", "details": {}},
            )
        return await call_next(request)

    @app.exception_handler(QuizGenError)
    async def quizgen_error_handler(request: Request, exc: QuizGenError) -> JSONResponse:
        log = logger.error if exc.status_code >= 500 else logger.warning
        log("request_failed", extra={"path": request.url.path, "error_code": exc.error_code, "status_code": exc.status_code})
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("unexpected_error", extra={"path": request.url.path})
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error_code": "INTERNAL_SERVER_ERROR", "message": "An unexpected error occurred", "details": {}},
        )

    app.include_router(quizzes.router)
    app.include_router(callbacks.router)

    sweeper = JobSweeper(get_job_registry(), settings.job_sweep_interval_seconds)

    @app.on_event("startup")
    def startup() -> None:
        if settings.auto_create_tables:
            Base.metadata.create_all(bind=engine)
        sweeper.start()

    @app.on_event("shutdown")
    def shutdown() -> None:
        sweeper.stop()

    @app.get("/health")
    def health() -> dict:
        return {"status": "ok", "active_jobs": len(get_job_registry())}

    return app


app = create_app()
