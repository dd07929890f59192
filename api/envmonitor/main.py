
import json
import logging
from typing import List, Optional

import redis
from fastapi import FastAPI, Response, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse

from .config import get_settings
from .errors import ThresholdSyncError
from .models import (
    AlertsOut,
    PollingIn,
    Preferences,
    PreferencesUpdate,
    RangeIn,
    Sample,
    StatusOut,
    Thresholds,
)
from .notifiers import AudioCueNotifier, NotifierHub, SystemNotifier
from .poller import CycleResult
from .preferences import PreferenceStore
from .repos.mongo_repo import MongoRepo
from .repos.redis_repo import RedisRepo
from .service import MonitorService
from .thingspeak import ThingSpeakClient
from .thresholds import ThresholdStore
from .ws_manager import WSManager

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler()],
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Environmental Telemetry Monitor")

# --- deps
ws_manager = WSManager()
mongo = MongoRepo(settings.mongo_uri, settings.mongo_db, config_id=settings.threshold_config_id)
redis_repo = RedisRepo(settings.redis_url)
preferences = PreferenceStore(redis_repo)
notifiers = NotifierHub([AudioCueNotifier(ws_manager), SystemNotifier(ws_manager)], preferences)


# --- called after every committed poll cycle
async def _on_cycle(result: CycleResult):
    incidents = [i.model_dump(mode="json") for i in result.incidents]
    try:
        if result.sample is not None:
            redis_repo.set_latest(settings.channel_id, result.sample.model_dump(mode="json"))
        for alert in incidents:
            redis_repo.publish_alert(alert)
    except redis.RedisError as ex:
        logger.warning("redis fan-out failed: %s", ex)
    for alert in incidents:
        await ws_manager.broadcast_json({"type": "alert", "data": alert})
    # broadcast live telemetry to dashboards
    current = result.sample.model_dump(mode="json") if result.sample else None
    await ws_manager.broadcast_json({"type": "telemetry", "data": current})


service = MonitorService(
    feed=ThingSpeakClient(
        settings.channel_id,
        settings.read_key,
        base_url=settings.thingspeak_url,
        timeout=settings.http_timeout,
    ),
    thresholds=ThresholdStore(mongo, redis_repo, settings.default_thresholds),
    preferences=preferences,
    notifiers=notifiers,
    poll_interval=settings.poll_interval,
    time_range=settings.default_range,
    on_cycle=_on_cycle,
)


# --- startup/shutdown
@app.on_event("startup")
async def on_startup():
    if not settings.channel_id:
        raise RuntimeError("THINGSPEAK_CHANNEL_ID is not set in environment.")
    if settings.auto_start_session:
        await service.start_session()


@app.on_event("shutdown")
async def on_shutdown():
    await service.close()


# --- REST APIs ---
@app.get("/health")
def health():
    return {"status": "ok"}


# session start/end is driven by the auth layer in front of this service
@app.post("/session", response_model=StatusOut)
async def start_session():
    return await service.start_session()


@app.delete("/session", status_code=204)
async def end_session():
    await service.end_session()
    return Response(status_code=204)


@app.get("/status", response_model=StatusOut)
async def get_status():
    return service.status()


@app.post("/refresh", response_model=StatusOut)
async def refresh():
    return await service.refresh()


@app.put("/polling", response_model=StatusOut)
async def set_polling(body: PollingIn):
    return await service.set_auto_refresh(body.enabled)


@app.get("/telemetry/current", response_model=Optional[Sample])
async def get_current():
    return service.current_sample()


@app.get("/telemetry/history", response_model=List[Sample])
async def get_history():
    return service.history()


@app.put("/telemetry/range", response_model=StatusOut)
async def set_range(body: RangeIn):
    return await service.select_range(body.range)


@app.get("/alerts", response_model=AlertsOut)
async def list_alerts():
    return service.alerts()


@app.post("/alerts/{alert_id}/ack", status_code=204)
async def acknowledge_alert(alert_id: str):
    # unknown or already acknowledged ids are not an error
    service.acknowledge(alert_id)
    return Response(status_code=204)


@app.get("/thresholds", response_model=Thresholds)
def get_thresholds():
    return service.thresholds()


@app.put("/thresholds", response_model=Thresholds)
def put_thresholds(body: Thresholds):
    try:
        return service.update_thresholds(body)
    except ThresholdSyncError as ex:
        return JSONResponse(
            status_code=502,
            content={
                "detail": str(ex),
                "applied": ex.applied.model_dump() if ex.applied else None,
            },
        )


@app.get("/preferences", response_model=Preferences)
def get_preferences():
    return service.preferences()


@app.put("/preferences", response_model=Preferences)
def put_preferences(body: PreferencesUpdate):
    return service.update_preferences(body)


# --- WebSockets for live UI ---
@app.websocket("/ws/telemetry")
async def ws_telemetry(ws: WebSocket):
    await ws_manager.connect(ws)
    try:
        while True:
            # the only client message is the notification permission grant
            raw = await ws.receive_text()
            try:
                msg = json.loads(raw)
            except ValueError:
                continue
            if isinstance(msg, dict) and msg.get("type") == "notification_permission":
                ws_manager.set_permission(ws, bool(msg.get("granted")))
    except WebSocketDisconnect:
        ws_manager.disconnect(ws)
