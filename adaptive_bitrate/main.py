"""FastAPI service entrypoint for the adaptive bitrate controller.

REST API for status, state, metrics and configuration, plus a WebSocket
endpoint streaming controller state snapshots.
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from adaptive_bitrate.config import QualityName, get_settings
from adaptive_bitrate.di_container import cleanup_container, get_container
from adaptive_bitrate.logging_config import setup_logging
from adaptive_bitrate.stats_source import SimulatedStatsSource

# Initialize logging
setup_logging()
logger = logging.getLogger(__name__)

# Global startup timestamp
_startup_time = 0.0


class ConfigureRequest(BaseModel):
    """Controller limits; out-of-range values are clamped, not rejected."""

    min_bitrate_bps: int = Field(ge=0)
    max_bitrate_bps: int = Field(ge=0)
    latency_ms: int = Field(ge=0)


class SimulationRequest(BaseModel):
    """Simulated link quality."""

    quality: QualityName


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager (startup/shutdown).

    Args:
        app: FastAPI application instance

    Yields:
        Control during application lifetime
    """
    global _startup_time

    logger.info("=" * 60)
    logger.info("Starting adaptive bitrate service...")
    _startup_time = time.time()

    container = get_container()
    settings = container.get_settings()

    logger.info(f"Environment: {settings.env}")
    logger.info(f"Host: {settings.host}:{settings.port}")

    controller = container.get_controller()
    container.get_streaming_server()

    if settings.autostart:
        await controller.start()
    else:
        logger.info("Autostart disabled; POST /api/start to begin control")

    logger.info("Adaptive bitrate service ready!")
    logger.info("=" * 60)

    yield

    logger.info("Shutting down adaptive bitrate service...")
    await cleanup_container()
    logger.info("Adaptive bitrate service stopped")


app = FastAPI(
    title="Adaptive Bitrate Controller API",
    version="1.0.0",
    description="Closed-loop encoder bitrate control from transport telemetry",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# REST API Endpoints


@app.get("/api/status")
async def get_status() -> dict[str, Any]:
    """Get service and controller status.

    Returns:
        Dictionary with status information
    """
    container = get_container()
    controller = container.get_controller()
    streaming_server = container.get_streaming_server()

    return {
        "uptime_sec": time.time() - _startup_time,
        "active_connections": streaming_server.get_active_connections(),
        "summary": controller.get_status_summary(),
        "timestamp": time.time(),
        **controller.get_status(),
    }


@app.get("/api/state")
async def get_state() -> dict[str, Any]:
    """Get the latest controller state snapshot."""
    return get_container().get_controller().state().to_json()


@app.get("/api/metrics")
async def get_metrics() -> dict[str, Any]:
    """Get control loop metrics (tick latency, failures, memory)."""
    return get_container().get_metrics().get_snapshot()


@app.post("/api/configure")
async def configure(request: ConfigureRequest) -> dict[str, int]:
    """Update controller limits; returns the clamped values in effect."""
    config = get_container().get_controller().configure(
        request.min_bitrate_bps, request.max_bitrate_bps, request.latency_ms
    )
    return config.to_dict()


@app.post("/api/start")
async def start_controller() -> dict[str, bool]:
    controller = get_container().get_controller()
    await controller.start()
    return {"running": controller.is_running()}


@app.post("/api/stop")
async def stop_controller() -> dict[str, bool]:
    controller = get_container().get_controller()
    await controller.stop()
    return {"running": controller.is_running()}


@app.post("/api/simulation")
async def set_simulation(request: SimulationRequest) -> dict[str, str]:
    """Change the simulated link quality."""
    source = get_container().get_stats_source()
    if not isinstance(source, SimulatedStatsSource):
        raise HTTPException(status_code=409, detail="Stats source is not simulated")
    source.update_quality(request.quality)
    return {"quality": source.quality.value}


# WebSocket Endpoint


@app.websocket("/ws/state")
async def websocket_state(websocket: WebSocket) -> None:
    """WebSocket endpoint streaming controller state.

    Args:
        websocket: WebSocket connection
    """
    streaming_server = get_container().get_streaming_server()
    await streaming_server.handle_connection(websocket)


# Health check endpoint


@app.get("/health")
async def health_check() -> dict[str, str]:
    return {"status": "healthy", "service": "adaptive-bitrate"}


def run() -> None:
    """Run the service with uvicorn using the configured host/port."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "adaptive_bitrate.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
