# hassagent/sensors/users.py
from __future__ import annotations
from typing import Iterable

import psutil

from ..models import StateClass
from .interface import SensorProducer, SensorUpdate


class UsersProducer(SensorProducer):
    """Number of logged in users, with their names as an attribute."""

    def __init__(self) -> None:
        self.id = "users"

    def poll(self) -> Iterable[SensorUpdate]:
        names = sorted({u.name for u in psutil.users()})
        return [
            SensorUpdate(
                id="current_users",
                name="Current Users",
                state=len(names),
                icon="mdi:account",
                state_class=StateClass.MEASUREMENT,
                units="users",
                attributes={"Data Source": "psutil", "Usernames": names},
            )
        ]
