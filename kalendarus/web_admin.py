from __future__ import annotations

import threading
from typing import Any

import uvicorn
from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from kalendarus import __version__
from kalendarus.config_manager import ConfigManager
from kalendarus.models import AppConfig
from kalendarus.processor import Processor


class EventView(BaseModel):
    uid: str
    summary: str = ""
    location: str = ""
    description: str = ""
    start_time: str | None = None
    start_time_local: str | None = None
    end_time_local: str | None = None
    modified_time: str | None = None
    notificators: dict[str, bool] = Field(default_factory=dict)


class TriggerResponse(BaseModel):
    message: str


def _event_view(uid: str, item: dict[str, Any]) -> EventView:
    fields = {key: item.get(key) for key in EventView.model_fields if key != "uid"}
    fields["notificators"] = fields.get("notificators") or {}
    return EventView(uid=uid, **fields)


def create_app(processor: Processor, config: AppConfig, config_manager: ConfigManager | None = None) -> FastAPI:
    app = FastAPI(title="Kalendarus Admin", version=__version__)
    app.state.processor = processor
    app.state.config = config
    app.state.config_manager = config_manager or ConfigManager()

    @app.get("/healthz")
    def healthz() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/api/config")
    def get_config() -> dict[str, Any]:
        return app.state.config_manager.masked(app.state.config)

    @app.get("/api/status")
    def get_status() -> dict[str, Any]:
        return app.state.processor.status()

    @app.get("/api/events", response_model=list[EventView])
    def list_events() -> list[EventView]:
        snapshot = app.state.processor.snapshot()
        views = [_event_view(uid, item) for uid, item in snapshot.items()]
        views.sort(key=lambda view: (view.start_time or "", view.uid))
        return views

    @app.get("/api/events/{uid}", response_model=EventView)
    def get_event(uid: str) -> EventView:
        snapshot = app.state.processor.snapshot()
        item = snapshot.get(uid)
        if item is None:
            raise HTTPException(status_code=404, detail="event not found")
        return _event_view(uid, item)

    @app.post("/api/pull", response_model=TriggerResponse)
    def trigger_pull() -> TriggerResponse:
        app.state.processor.trigger_pull()
        return TriggerResponse(message="pull triggered")

    @app.post("/api/notify", response_model=TriggerResponse)
    def trigger_notify() -> TriggerResponse:
        app.state.processor.trigger_notify()
        return TriggerResponse(message="notify triggered")

    return app


def serve_in_background(app: FastAPI, host: str, port: int) -> uvicorn.Server:
    """Start uvicorn on a daemon thread; set ``should_exit`` on the result to stop it."""
    server = uvicorn.Server(uvicorn.Config(app, host=host, port=port, log_level="warning"))
    thread = threading.Thread(target=server.run, name="kalendarus-web", daemon=True)
    thread.start()
    return server
