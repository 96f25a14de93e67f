# © 2025 alarm-calendar-sync contributors.
# Released under the MIT License; see the project metadata in pyproject.toml.

"""
Alarm and user store interfaces, with in-memory implementations
"""
import copy
import logging
import uuid
from threading import Lock
from typing import Dict, List, Optional, Protocol

from models import Alarm, User
from utils.timezone import utc_now

logger = logging.getLogger(__name__)


class AlarmStore(Protocol):
    def find_by_user(self, user_id: uuid.UUID) -> List[Alarm]: ...

    def create(self, alarm: Alarm) -> Alarm: ...

    def update(self, alarm: Alarm) -> Alarm: ...


class UserStore(Protocol):
    def find_by_id(self, user_id: uuid.UUID) -> Optional[User]: ...


class InMemoryAlarmStore:
    """Thread-safe alarm store; hands out copies so callers cannot mutate stored state"""

    def __init__(self, alarms: Optional[List[Alarm]] = None):
        self._alarms: Dict[uuid.UUID, Alarm] = {}
        self._lock = Lock()
        for alarm in alarms or []:
            self._alarms[alarm.id] = copy.copy(alarm)

    def find_by_user(self, user_id: uuid.UUID) -> List[Alarm]:
        with self._lock:
            alarms = [copy.copy(a) for a in self._alarms.values() if a.user_id == user_id]
        return sorted(alarms, key=lambda a: a.time)

    def create(self, alarm: Alarm) -> Alarm:
        with self._lock:
            if alarm.id in self._alarms:
                raise ValueError(f"Alarm {alarm.id} already exists")
            self._alarms[alarm.id] = copy.copy(alarm)
        logger.debug(f"Created alarm {alarm.id} '{alarm.name}'")
        return copy.copy(alarm)

    def update(self, alarm: Alarm) -> Alarm:
        with self._lock:
            if alarm.id not in self._alarms:
                raise KeyError(f"Alarm {alarm.id} does not exist")
            alarm.updated_at = utc_now()
            self._alarms[alarm.id] = copy.copy(alarm)
        logger.debug(f"Updated alarm {alarm.id} '{alarm.name}'")
        return copy.copy(alarm)

    def all(self) -> List[Alarm]:
        with self._lock:
            return [copy.copy(a) for a in self._alarms.values()]


class InMemoryUserStore:
    def __init__(self, users: Optional[List[User]] = None):
        self._users: Dict[uuid.UUID, User] = {u.id: u for u in users or []}

    def add(self, user: User):
        self._users[user.id] = user

    def find_by_id(self, user_id: uuid.UUID) -> Optional[User]:
        return self._users.get(user_id)
