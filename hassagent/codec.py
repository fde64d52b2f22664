"""
Wire format for reports sent to the sink.

Requests are JSON envelopes:

    {"type": "register_sensor", "data": {...}}
    {"type": "update_sensor_states", "data": [{...}]}
    {"type": "encrypted", "encrypted_data": "<token>", "encrypted": true}

where the encrypted token is the plain envelope serialized to JSON and
encrypted with a key derived from the secret handed out at registration.

Responses are JSON objects inspected by key presence:

    {"success": true, "<sensor id>": {"success": false,
                                      "error": {"code": ..., "message": ...},
                                      "is_disabled": true}}
"""
from __future__ import annotations
import base64
import json
import logging
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from pydantic import ValidationError

from .errors import MalformedResponseError, MissingSecretError
from .models import ResponseOutcome, SensorState, SensorStatus

logger = logging.getLogger(__name__)


class RequestType(str, Enum):
    UPDATE_SENSOR_STATES = "update_sensor_states"
    REGISTER_SENSOR = "register_sensor"
    ENCRYPTED = "encrypted"


class Request(Protocol):
    def request_type(self) -> RequestType:
        ...

    def request_data(self) -> Any:
        ...


class SensorRequest:
    """Report for one sensor; registers it until the sink has accepted it."""

    def __init__(self, state: SensorState) -> None:
        self.state = state

    def request_type(self) -> RequestType:
        if self.state.metadata.registered:
            return RequestType.UPDATE_SENSOR_STATES
        return RequestType.REGISTER_SENSOR

    def request_data(self) -> Any:
        if self.request_type() is RequestType.REGISTER_SENSOR:
            return _registration_data(self.state)
        return _update_data(self.state)


class EncryptedRequest:
    def __init__(self, inner: Request) -> None:
        self.inner = inner

    def request_type(self) -> RequestType:
        return RequestType.ENCRYPTED

    def request_data(self) -> Any:
        return self.inner.request_data()


def _drop_empty(d: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in d.items() if v is not None and v != ""}


def _registration_data(s: SensorState) -> Dict[str, Any]:
    data = _drop_empty({
        "type": s.sensor_type.value,
        "unique_id": s.id,
        "name": s.name,
        "state": s.reported_state,
        "attributes": s.attributes,
        "icon": s.icon,
        "unit_of_measurement": s.units,
        "device_class": s.device_class.value if s.device_class else None,
        "state_class": s.state_class.value if s.state_class else None,
        "entity_category": s.category.value if s.category else None,
    })
    if s.metadata.disabled:
        data["disabled"] = True
    return data


def _update_data(s: SensorState) -> List[Dict[str, Any]]:
    return [_drop_empty({
        "type": s.sensor_type.value,
        "unique_id": s.id,
        "state": s.reported_state,
        "attributes": s.attributes,
        "icon": s.icon,
    })]


def _dumps(obj: Any) -> str:
    return json.dumps(obj, separators=(",", ":"), default=str)


def _fernet(secret: str) -> Fernet:
    digest = hashes.Hash(hashes.SHA256())
    digest.update(secret.encode("utf-8"))
    return Fernet(base64.urlsafe_b64encode(digest.finalize()))


def encrypt(plaintext: str, secret: str) -> str:
    return _fernet(secret).encrypt(plaintext.encode("utf-8")).decode("ascii")


def decrypt(token: str, secret: str) -> str:
    try:
        return _fernet(secret).decrypt(token.encode("ascii")).decode("utf-8")
    except (InvalidToken, UnicodeError) as e:
        raise MalformedResponseError("could not decrypt response") from e


def marshal(request: Request, secret: Optional[str] = None) -> bytes:
    """Serialize a request, encrypting it when its type is ENCRYPTED."""
    rtype = request.request_type()
    if rtype is RequestType.ENCRYPTED:
        if not secret:
            raise MissingSecretError("encrypted request requested but no secret is configured")
        inner = getattr(request, "inner", None)
        inner_type = inner.request_type().value if inner is not None else rtype.value
        record = _dumps({"type": inner_type, "data": request.request_data()})
        envelope: Dict[str, Any] = {
            "type": rtype.value,
            "encrypted_data": encrypt(record, secret),
            "encrypted": True,
        }
    else:
        envelope = {"type": rtype.value, "data": request.request_data()}
    return _dumps(envelope).encode("utf-8")


def _parse_object(text: str) -> Dict[str, Any]:
    try:
        payload = json.loads(text)
    except ValueError as e:
        raise MalformedResponseError(f"could not parse response: {e}") from e
    if not isinstance(payload, dict):
        raise MalformedResponseError("response is not a JSON object")
    return payload


def decode_response(body: bytes, sensor_id: str, secret: Optional[str] = None) -> ResponseOutcome:
    """
    Decode a sink response into the metadata changes it implies for one sensor.

    Raises MalformedResponseError for an empty body, "{}" or anything that is
    not a JSON object. The caller must then leave the sensor untouched.
    """
    text = body.decode("utf-8", errors="replace").strip() if body else ""
    if not text:
        raise MalformedResponseError("no response, likely a problem with the request data")
    payload = _parse_object(text)
    if payload.get("encrypted") is True and "encrypted_data" in payload:
        if not secret:
            raise MissingSecretError("response is encrypted but no secret is configured")
        payload = _parse_object(decrypt(str(payload["encrypted_data"]), secret))
    if not payload:
        raise MalformedResponseError("no response, likely a problem with the request data")

    outcome = ResponseOutcome()
    success = payload.get("success")
    if isinstance(success, bool):
        outcome.success = success
        if success:
            outcome.registered = True

    entry = payload.get(sensor_id)
    if isinstance(entry, dict):
        # presence of the key is what counts, whatever its value
        outcome.disabled = "is_disabled" in entry
        try:
            status = SensorStatus.model_validate(entry)
        except ValidationError as e:
            logger.debug(f"Ignoring unreadable status for sensor {sensor_id}: {e}")
        else:
            outcome.success = status.success
            outcome.error = status.error
    return outcome
