from __future__ import annotations
from typing import List
from fastapi import APIRouter, Depends, HTTPException, status
from .errors import UnknownIDError
from .models import ErrorResponse, HealthResponse, SensorState
from .tracker import SensorTracker


router = APIRouter()
tracker: SensorTracker | None = None


def set_tracker(t: SensorTracker | None) -> None:
    global tracker
    tracker = t


def get_tracker() -> SensorTracker:
    if tracker is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="sensor tracker not running",
        )
    return tracker


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Returns agent status and the number of tracked sensors",
    tags=["Health"]
)
def health(t: SensorTracker = Depends(get_tracker)) -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(status="ok", sensors=len(t.registry))


@router.get(
    "/sensors",
    response_model=List[str],
    summary="List tracked sensors",
    description="Returns the ids of all sensors the agent has seen, sorted",
    tags=["Sensors"]
)
def list_sensors(t: SensorTracker = Depends(get_tracker)) -> List[str]:
    return t.sensor_list()


@router.get(
    "/sensors/{sensor_id}",
    response_model=SensorState,
    summary="Get a sensor",
    description="Returns the last known value of a sensor and whether the sink has registered or disabled it",
    responses={
        404: {"model": ErrorResponse, "description": "Sensor not tracked"}
    },
    tags=["Sensors"]
)
def get_sensor(sensor_id: str, t: SensorTracker = Depends(get_tracker)) -> SensorState:
    try:
        return t.sensor_value(sensor_id)
    except UnknownIDError:
        raise HTTPException(status_code=404, detail="sensor not found")
