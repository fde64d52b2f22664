from __future__ import annotations
import json
import logging
import os
import threading
from typing import Any, Dict, Optional
from urllib.parse import urlparse

from .config import CONFIG_DIR, PREFERENCES_FILE
from .errors import ConfigError
from .models import Credentials

logger = logging.getLogger(__name__)

PREF_HOST = "Host"
PREF_USE_TLS = "UseTLS"
PREF_TOKEN = "Token"
PREF_VERSION = "Version"
PREF_DEVICE_ID = "DeviceID"
PREF_DEVICE_NAME = "DeviceName"
PREF_WEBHOOK_ID = "WebhookID"
PREF_SECRET = "Secret"
PREF_CLOUDHOOK_URL = "CloudhookURL"
PREF_REMOTE_UI_URL = "RemoteUIURL"
PREF_API_URL = "APIURL"
PREF_REGISTERED = "Registered"


class Preferences:
    """
    Key/value preferences persisted as a single JSON file.

    Every set() rewrites the file so a crash never loses a completed
    registration.
    """

    def __init__(self, path: Optional[str] = None) -> None:
        self.path = path or PREFERENCES_FILE
        self._lock = threading.Lock()
        self._data: Dict[str, Any] = self._load()

    def _load(self) -> Dict[str, Any]:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigError(f"could not read preferences from {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"preferences file {self.path} does not hold an object")
        logger.debug(f"Loaded preferences from {self.path}")
        return data

    def _save(self) -> None:
        tmp = f"{self.path}.tmp"
        try:
            os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(self._data, f, indent=2)
            os.replace(tmp, self.path)
        except OSError as e:
            raise ConfigError(f"could not save preferences to {self.path}: {e}") from e

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self.set_many({key: value})

    def set_many(self, values: Dict[str, Any]) -> None:
        with self._lock:
            self._data.update(values)
            self._save()

    def storage_path(self, name: str) -> str:
        """Path for an auxiliary file (e.g. the log) next to the preferences."""
        directory = os.path.dirname(self.path) or CONFIG_DIR
        os.makedirs(directory, exist_ok=True)
        return os.path.join(directory, name)

    @property
    def registered(self) -> bool:
        return bool(self.get(PREF_REGISTERED, False))

    def validate(self) -> None:
        """Check that the preferences hold what the tracker needs to report."""
        api_url = self.get(PREF_API_URL)
        if not api_url:
            raise ConfigError("no API URL configured, register the agent first")
        parsed = urlparse(api_url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ConfigError(f"invalid API URL {api_url!r}")
        if not self.get(PREF_WEBHOOK_ID):
            raise ConfigError("no webhook id configured, register the agent first")

    def credentials(self) -> Credentials:
        self.validate()
        return Credentials(
            server=self.get(PREF_HOST, ""),
            use_tls=bool(self.get(PREF_USE_TLS, False)),
            token=self.get(PREF_TOKEN, ""),
            webhook_id=self.get(PREF_WEBHOOK_ID),
            secret=self.get(PREF_SECRET) or None,
            cloudhook_url=self.get(PREF_CLOUDHOOK_URL) or None,
            remote_ui_url=self.get(PREF_REMOTE_UI_URL) or None,
        )
