from __future__ import annotations
import re
from dataclasses import fields
from enum import Enum
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field, field_validator


class SensorType(str, Enum):
    SENSOR = "sensor"
    BINARY_SENSOR = "binary_sensor"


class DeviceClass(str, Enum):
    """Subset of the sink's sensor device classes used by the producers."""
    BATTERY = "battery"
    BATTERY_CHARGING = "battery_charging"
    CONNECTIVITY = "connectivity"
    DATA_RATE = "data_rate"
    DATA_SIZE = "data_size"
    DURATION = "duration"
    ENERGY = "energy"
    FREQUENCY = "frequency"
    POWER = "power"
    SIGNAL_STRENGTH = "signal_strength"
    TEMPERATURE = "temperature"
    TIMESTAMP = "timestamp"
    VOLTAGE = "voltage"


class StateClass(str, Enum):
    MEASUREMENT = "measurement"
    TOTAL = "total"
    TOTAL_INCREASING = "total_increasing"


class EntityCategory(str, Enum):
    CONFIG = "config"
    DIAGNOSTIC = "diagnostic"


class SensorMetadata(BaseModel):
    """Registration bookkeeping for a sensor, owned by the registry."""
    registered: bool = Field(default=False, description="Sink has accepted a registration for this sensor")
    disabled: bool = Field(default=False, description="Sink reported the sensor as disabled")


class SensorState(BaseModel):
    """Last known value of a sensor plus its registration metadata."""
    id: str = Field(description="Unique sensor id, e.g. battery_level")
    name: str = Field(description="Human-readable sensor name")
    state: Any = Field(default=None, description="Current value")
    icon: str = Field(default="", description="Icon name, e.g. mdi:battery")
    attributes: Optional[Dict[str, Any]] = Field(default=None)
    sensor_type: SensorType = Field(default=SensorType.SENSOR)
    device_class: Optional[DeviceClass] = Field(default=None)
    state_class: Optional[StateClass] = Field(default=None)
    category: Optional[EntityCategory] = Field(default=None)
    units: str = Field(default="", description="Unit of measurement")
    metadata: SensorMetadata = Field(default_factory=SensorMetadata)

    @classmethod
    def from_update(cls, update: Any) -> "SensorState":
        return cls(**{f.name: getattr(update, f.name) for f in fields(update)})

    def merge(self, update: Any) -> None:
        """Copy every field of the update onto this state, leaving metadata alone."""
        for f in fields(update):
            setattr(self, f.name, getattr(update, f.name))

    @property
    def reported_state(self) -> Any:
        if self.state is None:
            return "Unknown"
        return self.state


class SensorError(BaseModel):
    # the sink sends both numeric and string codes
    code: Any = None
    message: Any = None


class SensorStatus(BaseModel):
    """Per-sensor entry of a sink response, keyed by sensor id."""
    success: bool = False
    error: Optional[SensorError] = None
    is_disabled: Any = None


class ResponseOutcome(BaseModel):
    """
    Metadata changes decoded from one sink response.

    A field left as None means the response said nothing about it and the
    existing metadata must be kept.
    """
    registered: Optional[bool] = None
    disabled: Optional[bool] = None
    success: Optional[bool] = None
    error: Optional[SensorError] = None


_HOST_PORT = re.compile(r"^(\[[0-9A-Fa-f:]+\]|[A-Za-z0-9]([A-Za-z0-9.-]*[A-Za-z0-9])?):(\d{1,5})$")


class HostInfo(BaseModel):
    """Server details supplied by the registration collaborator."""
    server: str = Field(description="host:port of the sink")
    token: str = Field(description="Long-lived access token")
    use_tls: bool = Field(default=False)

    @field_validator("server")
    @classmethod
    def _valid_host_port(cls, v: str) -> str:
        v = v.strip()
        m = _HOST_PORT.match(v)
        if not m or not 0 < int(m.group(3)) < 65536:
            raise ValueError("you need to specify a valid hostname:port combination")
        return v

    @field_validator("token")
    @classmethod
    def _non_empty_token(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("token must not be empty")
        return v.strip()

    @property
    def base_url(self) -> str:
        scheme = "https" if self.use_tls else "http"
        return f"{scheme}://{self.server}"


class DeviceInfo(BaseModel):
    """Identity this host presents to the sink at registration."""
    device_id: str
    device_name: str
    app_id: str
    app_name: str
    app_version: str
    manufacturer: str = "Unknown"
    model: str = "Unknown"
    os_name: str
    os_version: str
    supports_encryption: bool = True
    app_data: Dict[str, Any] = Field(default_factory=lambda: {"push_websocket_channel": False})


class RegistrationResponse(BaseModel):
    webhook_id: str
    secret: Optional[str] = None
    cloudhook_url: Optional[str] = None
    remote_ui_url: Optional[str] = None

    @field_validator("webhook_id")
    @classmethod
    def _non_empty_webhook(cls, v: str) -> str:
        if not v:
            raise ValueError("webhook_id must not be empty")
        return v


class Credentials(BaseModel):
    """Connection details produced once by registration, read-only afterwards."""
    server: str
    use_tls: bool = False
    token: str
    webhook_id: str
    secret: Optional[str] = None
    cloudhook_url: Optional[str] = None
    remote_ui_url: Optional[str] = None

    @property
    def api_url(self) -> str:
        if self.cloudhook_url:
            return self.cloudhook_url
        if self.remote_ui_url:
            return f"{self.remote_ui_url.rstrip('/')}/api/webhook/{self.webhook_id}"
        scheme = "https" if self.use_tls else "http"
        return f"{scheme}://{self.server}/api/webhook/{self.webhook_id}"


class HealthResponse(BaseModel):
    status: str = Field(description="Always 'ok' while the agent is running")
    sensors: int = Field(description="Number of tracked sensors")


class ErrorResponse(BaseModel):
    detail: str
