"""
One-shot registration of this device with the sink.

    IDLE -> AWAITING_HOST_INFO -> REQUESTING -> COMPLETE
                 |                    |
                 +------> FAILED <----+

The host-info provider stands in for whatever asks the operator for the
server and token (CLI flags, a terminal prompt). Nothing is retried: a
failure is raised to the caller and the Registration object is spent.
"""
from __future__ import annotations
import getpass
import logging
import os
import platform
import socket
import uuid
from enum import Enum
from typing import Callable, Optional

import requests
from pydantic import ValidationError

from .config import APP_ID, APP_NAME, APP_VERSION, REQUEST_TIMEOUT
from .errors import AgentError, NoHostInfoError, RegistrationFailedError
from .models import Credentials, DeviceInfo, HostInfo, RegistrationResponse
from .preferences import (
    PREF_API_URL, PREF_CLOUDHOOK_URL, PREF_DEVICE_ID, PREF_DEVICE_NAME, PREF_HOST,
    PREF_REGISTERED, PREF_REMOTE_UI_URL, PREF_SECRET, PREF_TOKEN, PREF_USE_TLS,
    PREF_VERSION, PREF_WEBHOOK_ID, Preferences,
)

logger = logging.getLogger(__name__)

REGISTRATION_PATH = "/api/mobile_app/registrations"
DEFAULT_SERVER = "localhost:8123"

HostInfoProvider = Callable[[], Optional[HostInfo]]


class RegistrationState(str, Enum):
    IDLE = "idle"
    AWAITING_HOST_INFO = "awaiting_host_info"
    REQUESTING = "requesting"
    COMPLETE = "complete"
    FAILED = "failed"


def static_host_info(server: Optional[str], token: Optional[str], use_tls: bool = False) -> HostInfoProvider:
    """Provider for values given up front, e.g. on the command line."""
    def provider() -> Optional[HostInfo]:
        if not server or not token:
            return None
        return HostInfo(server=server, token=token, use_tls=use_tls)
    return provider


def prompt_host_info(
    input_fn: Callable[[str], str] = input,
    secret_fn: Callable[[str], str] = getpass.getpass,
) -> HostInfoProvider:
    """Provider that asks on the terminal. An empty token or Ctrl-D cancels."""
    def provider() -> Optional[HostInfo]:
        try:
            server = input_fn(f"Server (host:port) [{DEFAULT_SERVER}]: ").strip() or DEFAULT_SERVER
            token = secret_fn("Long-lived access token: ").strip()
            tls = input_fn("Use TLS? [y/N]: ").strip().lower() in ("y", "yes")
        except (EOFError, KeyboardInterrupt):
            return None
        if not token:
            return None
        return HostInfo(server=server, token=token, use_tls=tls)
    return provider


def _read_dmi(name: str) -> str:
    path = os.path.join("/sys/class/dmi/id", name)
    try:
        with open(path, "r", encoding="utf-8") as f:
            return f.read().strip() or "Unknown"
    except OSError:
        return "Unknown"


def device_info(prefs: Preferences) -> DeviceInfo:
    """Identity of this host. The device id is generated once and then reused."""
    device_id = prefs.get(PREF_DEVICE_ID) or uuid.uuid4().hex
    return DeviceInfo(
        device_id=device_id,
        device_name=socket.gethostname(),
        app_id=APP_ID,
        app_name=APP_NAME,
        app_version=APP_VERSION,
        manufacturer=_read_dmi("sys_vendor"),
        model=_read_dmi("product_name"),
        os_name=platform.system(),
        os_version=platform.release(),
    )


class Registration:
    def __init__(
        self,
        prefs: Preferences,
        provider: HostInfoProvider,
        session: Optional[requests.Session] = None,
        timeout: float = REQUEST_TIMEOUT,
        log: Optional[logging.Logger] = None,
    ) -> None:
        self.prefs = prefs
        self.provider = provider
        self.session = session or requests.Session()
        self.timeout = timeout
        self.state = RegistrationState.IDLE
        self._log = log or logger

    def run(self) -> Credentials:
        if self.state is not RegistrationState.IDLE:
            raise RegistrationFailedError(
                f"registration already ran ({self.state.value}); start a new one to register again"
            )
        try:
            device = self._identify()
            self.state = RegistrationState.AWAITING_HOST_INFO
            host = self._host_info()
            self.state = RegistrationState.REQUESTING
            response = self._request(host, device)
            creds = Credentials(
                server=host.server,
                use_tls=host.use_tls,
                token=host.token,
                webhook_id=response.webhook_id,
                secret=response.secret,
                cloudhook_url=response.cloudhook_url,
                remote_ui_url=response.remote_ui_url,
            )
            self._save(creds)
        except AgentError:
            self.state = RegistrationState.FAILED
            raise
        self.state = RegistrationState.COMPLETE
        self._log.info(f"Device {device.device_name} registered with {host.server}")
        return creds

    def _identify(self) -> DeviceInfo:
        device = device_info(self.prefs)
        self.prefs.set_many({
            PREF_DEVICE_ID: device.device_id,
            PREF_DEVICE_NAME: device.device_name,
        })
        return device

    def _host_info(self) -> HostInfo:
        try:
            host = self.provider()
        except ValidationError as e:
            raise NoHostInfoError(f"invalid registration details: {e}") from e
        if host is None:
            raise NoHostInfoError("no server or token supplied, registration cancelled")
        self._log.debug(f"Registering with server {host.server}")
        return host

    def _request(self, host: HostInfo, device: DeviceInfo) -> RegistrationResponse:
        url = f"{host.base_url}{REGISTRATION_PATH}"
        headers = {
            "Authorization": f"Bearer {host.token}",
            "Content-Type": "application/json",
        }
        try:
            response = self.session.post(
                url, json=device.model_dump(), headers=headers, timeout=self.timeout
            )
        except requests.exceptions.RequestException as e:
            raise RegistrationFailedError(f"could not reach {url}: {e}") from e

        if not 200 <= response.status_code < 300:
            raise RegistrationFailedError(
                f"registration rejected with {response.status_code}: {response.text[:200]}"
            )
        try:
            return RegistrationResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise RegistrationFailedError(f"unexpected registration response: {e}") from e

    def _save(self, creds: Credentials) -> None:
        values = {
            PREF_HOST: creds.server,
            PREF_USE_TLS: creds.use_tls,
            PREF_TOKEN: creds.token,
            PREF_VERSION: APP_VERSION,
            PREF_WEBHOOK_ID: creds.webhook_id,
            PREF_API_URL: creds.api_url,
            PREF_REGISTERED: True,
        }
        if creds.secret:
            values[PREF_SECRET] = creds.secret
        if creds.cloudhook_url:
            values[PREF_CLOUDHOOK_URL] = creds.cloudhook_url
        if creds.remote_ui_url:
            values[PREF_REMOTE_UI_URL] = creds.remote_ui_url
        self.prefs.set_many(values)


def register(
    prefs: Preferences,
    provider: HostInfoProvider,
    force: bool = False,
    session: Optional[requests.Session] = None,
) -> Credentials:
    """Register unless already registered; force re-runs the flow."""
    if prefs.registered and not force:
        logger.info("Agent is already registered, skipping registration (use --force to redo it)")
        return prefs.credentials()
    return Registration(prefs, provider, session=session).run()
