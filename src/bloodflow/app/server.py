from __future__ import annotations

import argparse
import asyncio
import json
import logging
from collections import deque
from dataclasses import asdict, dataclass
from time import perf_counter
from typing import Any, Dict, Mapping, Optional, Set

import uvicorn
from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse

from ..sim.core.config import SimulationConfig, _finite_float
from ..sim.core.world import World

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QueuedSnapshot:
    tick: int
    payload: str


class SimulationController:
    """Drives a :class:`World` on a timer and streams snapshots to WebSocket clients.

    Every mutation of the world (step, reset, reseed, parameter changes,
    disturbances) runs under ``_lock`` so nothing lands in the middle of a tick.
    """

    def __init__(self, config: SimulationConfig, broadcast_interval: int = 1, max_queued: int = 120):
        self.config = config
        self.world = World(config)
        self.broadcast_interval = max(1, broadcast_interval)
        self.running = False
        self.speed_multiplier = 1.0
        self.clients: Set[WebSocket] = set()
        self._client_last_sent: Dict[WebSocket, int] = {}
        self._snapshot_queue: deque[QueuedSnapshot] = deque(maxlen=max(1, max_queued))
        self._lock = asyncio.Lock()
        self._queue_lock = asyncio.Lock()
        self._broadcast_task: asyncio.Task | None = None
        self._last_step_at: float | None = None

    @property
    def tick(self) -> int:
        return self.world.tick

    async def start(self) -> None:
        if self._broadcast_task is None:
            self._broadcast_task = asyncio.create_task(self._loop())
        self.running = True

    async def stop(self) -> None:
        self.running = False

    async def reset(self) -> None:
        async with self._lock:
            self.world.reset()
        await self._restart_stream()

    async def reseed(self, targets: Optional[Mapping[str, Any]]) -> None:
        async with self._lock:
            self.world.reseed(targets)
        await self._restart_stream()

    async def update_params(self, values: Mapping[str, Any]) -> Dict[str, Any]:
        async with self._lock:
            params = self.world.set_params(**values)
        return asdict(params)

    async def disturb(self, x: float, y: float, radius: Optional[float] = None) -> int:
        async with self._lock:
            return self.world.apply_disturbance((x, y), radius)

    async def _restart_stream(self) -> None:
        async with self._queue_lock:
            self._snapshot_queue.clear()
        for client in self._client_last_sent:
            self._client_last_sent[client] = -1
        await self._broadcast_snapshot()

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.time_step / self.speed_multiplier)
            if not self.running:
                self._last_step_at = None
                continue
            now = perf_counter()
            dt = None if self._last_step_at is None else now - self._last_step_at
            self._last_step_at = now
            async with self._lock:
                metrics = self.world.step(dt)
            if metrics.overflow_reset:
                logger.info("overflow reset at tick %d; notifying %d clients", metrics.tick, len(self.clients))
            if self.tick % self.broadcast_interval == 0:
                await self._broadcast_snapshot()

    async def acknowledge(self, tick: int) -> None:
        async with self._queue_lock:
            while self._snapshot_queue and self._snapshot_queue[0].tick <= tick:
                self._snapshot_queue.popleft()

    def _serialize_snapshot(self) -> QueuedSnapshot:
        snapshot = self.world.snapshot()
        payload = {
            "type": "snapshot",
            "tick": snapshot.tick,
            "payload": {
                "tick": snapshot.tick,
                "metrics": asdict(snapshot.metrics),
                "agents": snapshot.agents,
                "vessel": asdict(snapshot.vessel),
                "metadata": asdict(snapshot.metadata),
                "lost_notice_ticks": snapshot.lost_notice_ticks,
            },
        }
        return QueuedSnapshot(tick=snapshot.tick, payload=json.dumps(payload))

    async def _send_pending_snapshots(self, client: WebSocket) -> None:
        last_sent = self._client_last_sent.get(client, -1)
        async with self._queue_lock:
            pending = [item for item in self._snapshot_queue if item.tick > last_sent]
        for item in pending:
            await client.send_text(item.payload)
            last_sent = item.tick
        self._client_last_sent[client] = last_sent

    async def _broadcast_snapshot(self) -> None:
        queued = self._serialize_snapshot()
        async with self._queue_lock:
            # Bounded by maxlen, so a stream nobody reads stops growing.
            self._snapshot_queue.append(queued)
        stale: Set[WebSocket] = set()
        for client in self.clients:
            try:
                await self._send_pending_snapshots(client)
            except WebSocketDisconnect:
                stale.add(client)
        for client in stale:
            self.clients.discard(client)
            self._client_last_sent.pop(client, None)
        await self._drop_delivered()

    async def _drop_delivered(self) -> None:
        """Forget snapshots every connected client has already been sent."""
        if not self._client_last_sent:
            return
        delivered = min(self._client_last_sent.values())
        async with self._queue_lock:
            while self._snapshot_queue and self._snapshot_queue[0].tick <= delivered:
                self._snapshot_queue.popleft()


app = FastAPI(title="Blood Flow Simulation")
controller = SimulationController(SimulationConfig())


@app.on_event("startup")
async def _startup() -> None:
    await controller.start()


@app.get("/api/status")
async def status() -> JSONResponse:
    snapshot = controller.world.snapshot()
    return JSONResponse(
        {
            "running": controller.running,
            "tick": controller.tick,
            "population": len(controller.world.agents),
            "lost_notice_ticks": snapshot.lost_notice_ticks,
            "params": asdict(controller.world.params),
            "targets": dict(controller.world.state.targets),
            "metrics": asdict(snapshot.metrics),
        }
    )


@app.post("/api/control/start")
async def start_simulation() -> JSONResponse:
    controller.running = True
    return JSONResponse({"running": True})


@app.post("/api/control/stop")
async def stop_simulation() -> JSONResponse:
    controller.running = False
    return JSONResponse({"running": False})


@app.post("/api/control/reset")
async def reset_simulation() -> JSONResponse:
    await controller.reset()
    return JSONResponse({"running": controller.running, "tick": controller.tick})


@app.post("/api/control/reseed")
async def reseed_simulation(payload: dict) -> JSONResponse:
    try:
        await controller.reseed(payload.get("targets"))
    except KeyError as exc:
        return JSONResponse({"error": str(exc)}, status_code=400)
    return JSONResponse({"tick": controller.tick, "targets": dict(controller.world.state.targets)})


def _number(payload: Mapping[str, Any], key: str, fallback: Optional[float]) -> Optional[float]:
    """Read a finite number from a request body, falling back when it is missing or malformed."""
    if payload.get(key) is None:
        return fallback
    number = _finite_float(payload[key])
    if number is None:
        logger.warning("request field %s=%r is not a finite number; using %r", key, payload[key], fallback)
        return fallback
    return number


@app.post("/api/control/speed")
async def set_speed(payload: dict) -> JSONResponse:
    speed = _number(payload, "multiplier", controller.speed_multiplier)
    controller.speed_multiplier = max(0.1, min(5.0, speed))
    return JSONResponse({"multiplier": controller.speed_multiplier})


@app.post("/api/params")
async def set_params(payload: dict) -> JSONResponse:
    params = await controller.update_params(payload)
    return JSONResponse(params)


@app.post("/api/disturb")
async def disturb(payload: dict) -> JSONResponse:
    vessel = controller.world.vessel
    touched = await controller.disturb(
        _number(payload, "x", (vessel.x0 + vessel.x1) * 0.5),
        _number(payload, "y", vessel.y0),
        _number(payload, "radius", None),
    )
    return JSONResponse({"touched": touched})


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket) -> None:
    await websocket.accept()
    controller.clients.add(websocket)
    controller._client_last_sent[websocket] = -1
    await controller._send_pending_snapshots(websocket)
    try:
        while True:
            message = await websocket.receive_text()
            try:
                payload = json.loads(message)
            except json.JSONDecodeError:
                continue
            if payload.get("type") == "ack":
                tick = payload.get("tick")
                if isinstance(tick, int):
                    await controller.acknowledge(tick)
    except WebSocketDisconnect:
        controller.clients.discard(websocket)
        controller._client_last_sent.pop(websocket, None)


def main() -> None:
    parser = argparse.ArgumentParser(description="Serve the blood-flow simulation over HTTP and WebSocket")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--verbose", action="store_true", help="Log at DEBUG level.")
    args = parser.parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run("bloodflow.app.server:app", host=args.host, port=args.port)


if __name__ == "__main__":
    main()


__all__ = ["app", "controller", "main"]
