from __future__ import annotations


class AgentError(Exception):
    """Base class for all agent errors."""


class DuplicateIDError(AgentError):
    """A sensor with this id is already tracked."""

    def __init__(self, sensor_id: str) -> None:
        super().__init__(f"sensor {sensor_id} already exists")
        self.sensor_id = sensor_id


class UnknownIDError(AgentError):
    """No sensor with this id is tracked."""

    def __init__(self, sensor_id: str) -> None:
        super().__init__(f"sensor {sensor_id} not found")
        self.sensor_id = sensor_id


class MissingSecretError(AgentError):
    """Encryption was requested but no secret is configured."""


class TransportError(AgentError):
    """The HTTP request failed or returned a non-2xx status."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class MalformedResponseError(AgentError):
    """The sink returned an empty or unparsable body."""


class NoHostInfoError(AgentError):
    """The registration collaborator did not supply a server and token."""


class RegistrationFailedError(AgentError):
    """The registration request failed or returned incomplete credentials."""


class ConfigError(AgentError):
    """Stored preferences are missing or invalid."""
