from fastapi import FastAPI, APIRouter, HTTPException, Query, WebSocket, WebSocketDisconnect
from dotenv import load_dotenv
from starlette.middleware.cors import CORSMiddleware
import asyncio
import logging
from dataclasses import dataclass, replace
from pathlib import Path
from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime

from common.config import MonitorConfig
from detention.alert_engine import AlertEngine
from detention.models import utcnow
from detention.rates import flat_rate
from detention.thresholds import ConfigError, THRESHOLD_TABLE
from notifications import AlertNotifier, ConnectionManager, DetentionMonitor, ExpoPushClient
from notifications.models import EventType, alerts_cleared_event, driver_event, stop_event
from notifications.scheduler import next_cleanup_at
from stop_service import StopService
from stores import AlertFilter, NotFoundError, StopConflictError, StoreSet, load_stores

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

# Set up logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    config: MonitorConfig
    stores: StoreSet
    stops: StopService
    engine: AlertEngine
    hub: ConnectionManager
    notifier: AlertNotifier
    monitor: DetentionMonitor


def build_runtime(config: MonitorConfig) -> Runtime:
    stores = load_stores(config.mode)
    rate_fn = flat_rate(config.rate_per_minute)
    engine = AlertEngine(stores.alerts, rate_fn=rate_fn, completed_window=config.completed_window)
    hub = ConnectionManager()
    expo_client = ExpoPushClient(config.expo_access_token) if config.mode == "prod" else None
    notifier = AlertNotifier(hub, stores.push_tokens, expo_client)
    return Runtime(
        config=config,
        stores=stores,
        stops=StopService(stores.fleet, rate_fn=rate_fn, completed_window=config.completed_window),
        engine=engine,
        hub=hub,
        notifier=notifier,
        monitor=DetentionMonitor(engine, stores.fleet, stores.alerts, notifier),
    )


# Stores connect on first use instead of during module import
_runtime: Optional[Runtime] = None


def get_runtime() -> Runtime:
    """Get or create the Runtime instance."""
    global _runtime
    if _runtime is None:
        _runtime = build_runtime(MonitorConfig.from_env())
    return _runtime


def reset_runtime(config: Optional[MonitorConfig] = None) -> Runtime:
    global _runtime
    _runtime = build_runtime(config or MonitorConfig.from_env())
    return _runtime


# Create the main app
app = FastAPI()

# Create routers
api_router = APIRouter(prefix="/api")

# ==================== Models ====================

class DriverCreateRequest(BaseModel):
    name: str = Field(..., min_length=1)
    truck_number: str = Field(..., min_length=1)
    dispatcher: str = ""

class DriverUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    truck_number: Optional[str] = Field(None, min_length=1)
    dispatcher: Optional[str] = None

class LocationRequest(BaseModel):
    location: str = Field(..., min_length=1)
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    stop_type: Optional[str] = None  # regular, multi-stop, rail, no-billing, drop-hook
    arrived_at: Optional[datetime] = None

class AppointmentRequest(BaseModel):
    appointment_time: datetime
    stop_type: Optional[str] = None

class DepartureRequest(BaseModel):
    departure_time: Optional[datetime] = None

class SettingsUpdateRequest(BaseModel):
    warning_threshold_hours: Optional[int] = Field(None, ge=0)
    critical_threshold_hours: Optional[int] = Field(None, ge=0)

class PushTokenRequest(BaseModel):
    push_token: str
    dispatcher: Optional[str] = None


# ==================== API Routes ====================

@api_router.get("/")
def root():
    return {"message": "Dockwatch API", "version": "1.0"}

@api_router.get("/health")
def health_check():
    return {"status": "healthy", "timestamp": utcnow().isoformat()}

@api_router.get("/thresholds")
def get_thresholds():
    """Detention thresholds per stop type, in minutes."""
    return {
        stop_type.value: {
            "label": stop_type.label,
            "detention_after_minutes": t.detention_after_minutes,
            "warning_lead_minutes": t.warning_lead_minutes,
        }
        for stop_type, t in THRESHOLD_TABLE.items()
    }

@api_router.get("/drivers")
def list_drivers(dispatcher: Optional[str] = None):
    """All active drivers with their current status."""
    views = get_runtime().stops.driver_views(dispatcher=dispatcher)
    return [view.to_dict() for view in views]

@api_router.get("/drivers/{driver_id}")
def get_driver(driver_id: str):
    try:
        return get_runtime().stops.driver_view(driver_id).to_dict()
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

@api_router.post("/drivers", status_code=201)
def add_driver(request: DriverCreateRequest):
    runtime = get_runtime()
    driver = runtime.stops.add_driver(request.name, request.truck_number, request.dispatcher)
    runtime.notifier.broadcast(driver_event(EventType.DRIVER_ADDED, driver))
    return driver.to_dict()

@api_router.patch("/drivers/{driver_id}")
def update_driver(driver_id: str, request: DriverUpdateRequest):
    runtime = get_runtime()
    try:
        driver = runtime.stops.update_driver(
            driver_id,
            name=request.name,
            truck_number=request.truck_number,
            dispatcher=request.dispatcher,
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    runtime.notifier.broadcast(driver_event(EventType.DRIVER_UPDATED, driver))
    return driver.to_dict()

@api_router.delete("/drivers/{driver_id}")
def deactivate_driver(driver_id: str):
    """Drivers are never deleted, only deactivated."""
    runtime = get_runtime()
    try:
        driver = runtime.stops.deactivate_driver(driver_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    runtime.notifier.broadcast(driver_event(EventType.DRIVER_DEACTIVATED, driver))
    return driver.to_dict()

@api_router.patch("/drivers/{driver_id}/location")
def update_location(driver_id: str, request: LocationRequest):
    runtime = get_runtime()
    try:
        stop = runtime.stops.update_location(
            driver_id,
            request.location,
            latitude=request.latitude,
            longitude=request.longitude,
            stop_type=request.stop_type,
            arrived_at=request.arrived_at,
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except StopConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ConfigError as e:
        raise HTTPException(status_code=400, detail=str(e))
    runtime.notifier.broadcast(stop_event(EventType.LOCATION_UPDATE, stop))
    return stop.to_dict()

@api_router.post("/drivers/{driver_id}/appointment")
def set_appointment(driver_id: str, request: AppointmentRequest):
    runtime = get_runtime()
    try:
        stop = runtime.stops.set_appointment(driver_id, request.appointment_time, request.stop_type)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ConfigError as e:
        raise HTTPException(status_code=400, detail=str(e))
    runtime.notifier.broadcast(stop_event(EventType.APPOINTMENT_UPDATE, stop))
    return stop.to_dict()

@api_router.post("/drivers/{driver_id}/departure")
def record_departure(driver_id: str, request: DepartureRequest):
    runtime = get_runtime()
    try:
        stop = runtime.stops.record_departure(driver_id, request.departure_time)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    runtime.notifier.broadcast(stop_event(EventType.DEPARTURE_UPDATE, stop))
    return stop.to_dict()

@api_router.post("/drivers/{driver_id}/reset")
def reset_driver(driver_id: str):
    """Clear appointment and departure, back to a regular stop."""
    runtime = get_runtime()
    try:
        stop = runtime.stops.reset_driver(driver_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except StopConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    runtime.notifier.broadcast(stop_event(EventType.DRIVER_RESET, stop))
    return stop.to_dict()

@api_router.get("/dispatchers")
def list_dispatchers():
    return get_runtime().stops.dispatchers()

# ==================== Alert Endpoints ====================

@api_router.get("/alerts")
def list_alerts(dispatcher: Optional[str] = None, unread_only: bool = False):
    runtime = get_runtime()
    driver_ids = runtime.stops.driver_ids_for_dispatcher(dispatcher) if dispatcher else None
    alerts = runtime.stores.alerts.list_alerts(AlertFilter(driver_ids=driver_ids, unread_only=unread_only))
    return [alert.to_dict() for alert in alerts]

@api_router.post("/alerts/mark-all-read")
def mark_all_alerts_read(dispatcher: Optional[str] = Query(None)):
    runtime = get_runtime()
    driver_ids = runtime.stops.driver_ids_for_dispatcher(dispatcher) if dispatcher else None
    count = runtime.stores.alerts.mark_all_read(driver_ids)
    return {"success": True, "count": count}

@api_router.post("/alerts/check")
def check_alerts():
    """Run an evaluation pass now (manual refresh)."""
    result = get_runtime().monitor.run_tick()
    return {
        "evaluated": result.evaluated,
        "created": [alert.to_dict() for alert in result.created],
        "failed": result.failed,
    }

@api_router.post("/alerts/{alert_id}/read")
def mark_alert_read(alert_id: str):
    if not get_runtime().stores.alerts.mark_read(alert_id):
        raise HTTPException(status_code=404, detail=f"Alert {alert_id} not found")
    return {"success": True}

@api_router.delete("/alerts/clear-history")
def clear_alert_history():
    """Clear read alert history (preserves unread alerts)."""
    runtime = get_runtime()
    count = runtime.stores.alerts.clear_history()
    runtime.notifier.broadcast(alerts_cleared_event(count, "read"))
    return {"success": True, "count": count, "message": "Read alert history cleared"}

@api_router.post("/alerts/clear-all")
def clear_all_alerts():
    runtime = get_runtime()
    count = runtime.monitor.clear_alerts()
    runtime.notifier.broadcast(alerts_cleared_event(count))
    return {"success": True, "count": count, "message": "All alert history cleared"}

# ==================== Settings / Notifications ====================

@api_router.get("/settings")
def get_settings():
    return get_runtime().stores.fleet.get_settings().to_dict()

@api_router.patch("/settings")
def update_settings(request: SettingsUpdateRequest):
    fleet = get_runtime().stores.fleet
    updated = replace(fleet.get_settings(), **request.model_dump(exclude_none=True))
    return fleet.update_settings(updated).to_dict()

@api_router.post("/notifications/register")
def register_push_token(request: PushTokenRequest):
    """Register or update a dispatcher device's push token."""
    if not request.push_token.startswith("ExponentPushToken["):
        raise HTTPException(status_code=400, detail="Invalid Expo push token format")
    get_runtime().stores.push_tokens.register_push_token(request.push_token, request.dispatcher)
    return {
        'success': True,
        'message': 'Push token registered successfully',
        'token': request.push_token[:20] + '...',
    }

# ==================== Real-time ====================

@app.websocket("/api/ws")
async def websocket_endpoint(websocket: WebSocket):
    hub = get_runtime().hub
    await hub.connect(websocket)
    try:
        while True:
            # Clients only listen; drain anything they send
            await websocket.receive_text()
    except WebSocketDisconnect:
        hub.disconnect(websocket)


async def monitor_loop(runtime: Runtime):
    """Evaluate open stops every poll interval."""
    while True:
        try:
            await asyncio.to_thread(runtime.monitor.run_tick)
        except Exception as e:
            logger.error(f"[MONITOR] Tick error: {e}")
        await asyncio.sleep(runtime.config.poll_interval_seconds)


async def cleanup_loop(runtime: Runtime):
    """Clear alert history once a day at the configured local hour."""
    config = runtime.config
    while True:
        now = utcnow()
        run_at = next_cleanup_at(now, config.cleanup_hour, config.cleanup_zone)
        logger.info(f"[MONITOR] Next alert cleanup at {run_at.isoformat()}")
        await asyncio.sleep((run_at - now).total_seconds())
        await asyncio.to_thread(runtime.monitor.run_cleanup)


# Add CORS middleware first, before including router
app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router)

_background_tasks = []

@app.on_event("startup")
async def start_monitor():
    runtime = get_runtime()
    runtime.hub.bind_loop(asyncio.get_running_loop())
    _background_tasks.append(asyncio.create_task(monitor_loop(runtime)))
    _background_tasks.append(asyncio.create_task(cleanup_loop(runtime)))
    logger.info(f"[MONITOR] Started ({runtime.config.mode} mode, every {runtime.config.poll_interval_seconds}s)")

@app.on_event("shutdown")
async def stop_monitor():
    for task in _background_tasks:
        task.cancel()
    _background_tasks.clear()
    if _runtime is not None:
        _runtime.notifier.close()
