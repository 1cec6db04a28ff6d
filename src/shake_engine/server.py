"""HTTP / WebSocket front end for the shake service.

Lets a phone (or any sensor-streaming client) push accelerometer
samples over a WebSocket or REST and receive trigger events back.

Features:
- Sample ingest over WebSocket (/ws) and REST batches (/api/samples)
- Trigger broadcast to every connected client
- Service start/stop with the persisted enabled flag
- Sensitivity control and manual flashlight toggle
- Prometheus metrics endpoint

Usage:
    shake-engine serve
    # or
    uvicorn shake_engine.server:app --host 0.0.0.0 --port 8766
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel

from shake_engine import __version__
from shake_engine.config import ConfigError
from shake_engine.detector import Sample
from shake_engine.service import ServiceFeedback, ShakeService

logger = logging.getLogger("shake_engine.server")


# --- State ---

class ServerState:
    def __init__(self):
        self.clients: set[WebSocket] = set()
        self.service: Optional[ShakeService] = None
        self.last_trigger: Optional[dict] = None
        self.total_triggers = 0


state = ServerState()


def get_service() -> ShakeService:
    if state.service is None:
        state.service = ShakeService()
    return state.service


@asynccontextmanager
async def lifespan(app: FastAPI):
    service = get_service()
    if service.store.get().service_enabled:
        service.start()
    logger.info("ShakeEngine server ready (service %s)", "running" if service.running else "stopped")
    yield
    logger.info("ShakeEngine server shutting down")
    service.shutdown_flashlight()


app = FastAPI(title="ShakeEngine", version=__version__, lifespan=lifespan)


# --- Models ---

class SampleIn(BaseModel):
    timestamp_ms: int
    x: float
    y: float
    z: float

    def to_sample(self) -> Sample:
        return Sample(timestamp_ms=self.timestamp_ms, x=self.x, y=self.y, z=self.z)


class SampleBatch(BaseModel):
    samples: list[SampleIn]


class SensitivityUpdate(BaseModel):
    sensitivity: float


# --- API endpoints ---

@app.get("/api/status")
async def api_status():
    return {
        **get_service().status(),
        "clients": len(state.clients),
        "total_triggers": state.total_triggers,
        "last_trigger": state.last_trigger,
    }


@app.get("/api/config")
async def api_config():
    service = get_service()
    return {
        "detector": service.detector.config.to_dict(),
        "sensitivity": service.store.get().sensitivity,
    }


@app.put("/api/config")
async def update_config(update: SensitivityUpdate):
    service = get_service()
    try:
        service.apply_sensitivity(update.sensitivity)
    except ConfigError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return {"status": "updated", "threshold_g": service.detector.config.shake_threshold_g}


@app.post("/api/service/start")
async def start_service():
    service = get_service()
    service.start()
    return {"running": service.running}


@app.post("/api/service/stop")
async def stop_service():
    service = get_service()
    service.stop()
    return {"running": service.running}


@app.post("/api/flashlight/toggle")
async def toggle_flashlight():
    service = get_service()
    ok = service.toggle()
    if not ok:
        raise HTTPException(status_code=503, detail="Flashlight not available or toggle failed")
    return {"flashlight_on": service.flashlight.is_on}


@app.post("/api/samples")
async def ingest_samples(batch: SampleBatch):
    service = get_service()
    if not service.running:
        raise HTTPException(status_code=409, detail="Service is not running")

    triggers = []
    for item in batch.samples:
        feedback = service.handle_sample(item.to_sample())
        if feedback:
            message = _record_trigger(feedback)
            triggers.append(message)
            await broadcast(message)

    return {"accepted": len(batch.samples), "triggers": triggers}


# --- Prometheus metrics ---

@app.get("/metrics")
async def metrics():
    service = get_service()
    service.metrics.set_connections(len(state.clients))
    return PlainTextResponse(
        service.metrics.render(),
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )


# --- WebSocket: sample stream in, triggers out ---

@app.websocket("/ws")
async def websocket_endpoint(ws: WebSocket):
    await ws.accept()
    state.clients.add(ws)
    logger.info("Client connected (%d total)", len(state.clients))
    service = get_service()

    try:
        await ws.send_json({
            "type": "connected",
            "running": service.running,
            "threshold_g": service.detector.config.shake_threshold_g,
        })

        while True:
            try:
                msg = await asyncio.wait_for(ws.receive_text(), timeout=30)
            except asyncio.TimeoutError:
                await ws.send_json({"type": "ping"})
                continue

            try:
                data = json.loads(msg)
            except ValueError:
                await ws.send_json({"type": "error", "detail": "invalid JSON"})
                continue
            if not isinstance(data, dict):
                await ws.send_json({"type": "error", "detail": "expected a JSON object"})
                continue

            kind = data.get("type")
            if kind == "ping":
                await ws.send_json({"type": "pong", "server_time": time.time()})
            elif kind in ("sample", "samples"):
                error = await _ingest(service, [data] if kind == "sample" else data.get("samples", []))
                if error:
                    await ws.send_json({"type": "error", "detail": error})
            elif kind == "status":
                await ws.send_json({"type": "status", **service.status()})
            else:
                await ws.send_json({"type": "error", "detail": f"unknown message type: {kind}"})
    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.error("WebSocket error: %s", e)
    finally:
        state.clients.discard(ws)
        logger.info("Client disconnected (%d total)", len(state.clients))


async def _ingest(service: ShakeService, items) -> Optional[str]:
    """Feed WebSocket samples to the service. Returns an error detail, if any."""
    if not service.running:
        return "Service is not running"
    if not isinstance(items, list):
        return "samples must be a list"
    for item in items:
        sample = _parse_sample(item)
        if sample is None:
            continue
        feedback = service.handle_sample(sample)
        if feedback:
            await broadcast(_record_trigger(feedback))
    return None


def _parse_sample(item) -> Optional[Sample]:
    """Accept either ``{timestamp_ms, x, y, z}`` or ``[t, x, y, z]``."""
    try:
        if isinstance(item, dict):
            return Sample(int(item["timestamp_ms"]), float(item["x"]), float(item["y"]), float(item["z"]))
        t, x, y, z = item
        return Sample(int(t), float(x), float(y), float(z))
    except (KeyError, TypeError, ValueError, OverflowError):
        logger.debug("Ignoring malformed sample message: %r", item)
        return None


def _record_trigger(feedback: ServiceFeedback) -> dict:
    message = feedback.to_dict()
    state.total_triggers += 1
    state.last_trigger = message
    return message


async def broadcast(message: dict):
    """Send message to all connected clients."""
    if not state.clients:
        return
    dead = set()
    payload = json.dumps(message)
    for ws in state.clients:
        try:
            await ws.send_text(payload)
        except Exception:
            dead.add(ws)
    state.clients -= dead


def main():
    import argparse
    import uvicorn

    parser = argparse.ArgumentParser(description="ShakeEngine server")
    parser.add_argument("--host", default="0.0.0.0", help="Bind address")
    parser.add_argument("--port", type=int, default=8766, help="Port")
    parser.add_argument("--log-level", default="info")
    args = parser.parse_args()

    uvicorn.run(app, host=args.host, port=args.port, log_level=args.log_level)


if __name__ == "__main__":
    main()
