from __future__ import annotations
import logging
from typing import Optional

import requests

from .codec import EncryptedRequest, Request, marshal
from .config import ENCRYPT, REQUEST_TIMEOUT
from .errors import TransportError
from .models import Credentials

logger = logging.getLogger(__name__)


class APIClient:
    """
    Sends marshaled reports to the sink's webhook.

    One POST per call, no retries. Anything other than a 2xx answer is a
    TransportError and the caller drops the report.
    """

    def __init__(
        self,
        api_url: str,
        secret: Optional[str] = None,
        encrypt: bool = False,
        timeout: float = REQUEST_TIMEOUT,
        session: Optional[requests.Session] = None,
        log: Optional[logging.Logger] = None,
    ) -> None:
        self.api_url = api_url
        self.secret = secret
        self.encrypt = encrypt
        self.timeout = timeout
        self.session = session or requests.Session()
        self.headers = {"Content-Type": "application/json"}
        self._log = log or logger

    @classmethod
    def from_credentials(cls, creds: Credentials, **kwargs) -> "APIClient":
        kwargs.setdefault("encrypt", ENCRYPT or bool(creds.secret))
        return cls(creds.api_url, secret=creds.secret, **kwargs)

    def execute(self, body: bytes) -> bytes:
        """POST an already marshaled body and return the raw response body."""
        try:
            response = self.session.post(
                self.api_url, data=body, headers=self.headers, timeout=self.timeout
            )
        except requests.exceptions.Timeout as e:
            raise TransportError(f"request to {self.api_url} timed out: {e}") from e
        except requests.exceptions.RequestException as e:
            raise TransportError(f"network error posting to {self.api_url}: {e}") from e

        if not 200 <= response.status_code < 300:
            raise TransportError(
                f"sink returned {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )
        self._log.debug(f"Sink replied {response.status_code} ({len(response.content)} bytes)")
        return response.content

    def send(self, request: Request) -> bytes:
        """Marshal a request (encrypting it if configured) and execute it."""
        if self.encrypt:
            request = EncryptedRequest(request)
        return self.execute(marshal(request, self.secret))

    def close(self) -> None:
        self.session.close()
