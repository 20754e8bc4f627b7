"""Vaani: real-time translation and cultural-learning service."""
import time
from collections import defaultdict, deque
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from log import get_logger

logger = get_logger("vaani.backend")

from auth import init_db, cleanup_expired_sessions
from persistence import bridge
from routes import router

# Recent request durations per endpoint
LATENCY_WINDOW = 200
_latencies: dict = defaultdict(lambda: deque(maxlen=LATENCY_WINDOW))


def get_latency_stats() -> dict:
    stats = {}
    for endpoint, samples in _latencies.items():
        ordered = sorted(samples)
        if not ordered:
            continue
        stats[endpoint] = {
            "count": len(ordered),
            "p50_ms": ordered[len(ordered) // 2],
            "p95_ms": ordered[min(len(ordered) - 1, int(len(ordered) * 0.95))],
        }
    return stats


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    expired = cleanup_expired_sessions()
    for session_id in expired:
        bridge.forget(session_id)
    if expired:
        logger.info("Expired sessions removed", extra={"count": len(expired)})
    bridge.start()
    yield
    await bridge.stop()


app = FastAPI(title="Vaani", lifespan=lifespan)


@app.middleware("http")
async def record_latency(request: Request, call_next):
    start = time.time()
    response = await call_next(request)
    duration_ms = round((time.time() - start) * 1000)
    if request.url.path.startswith("/api/") and not request.url.path.endswith("/stream"):
        _latencies[request.url.path].append(duration_ms)
        logger.debug("Request served", extra={
            "endpoint": request.url.path, "status_code": response.status_code, "duration_ms": duration_ms,
        })
    return response


app.include_router(router)


@app.get("/api/stats", tags=["System"], summary="Request latency by endpoint")
async def latency_stats():
    return get_latency_stats()
