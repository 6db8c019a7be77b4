"""
Tagged results and the request state holder.

Aggregators and services hand back ``Ok`` or ``Err`` instead of raising, so
the HTTP layer decides how an error reaches the user. ``StateHolder`` keeps
the last known outcome of a one-shot job (Idle, Loading, Success, Error).
"""
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Generic, TypeVar, Union

import structlog

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    ALREADY_EXISTS = "already_exists"
    INVALID_INPUT = "invalid_input"
    REMOTE_FAILURE = "remote_failure"


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    kind: ErrorKind
    message: str

    @property
    def ok(self) -> bool:
        return False


Result = Union[Ok[T], Err]


def not_found(message: str) -> Err:
    return Err(ErrorKind.NOT_FOUND, message)


def already_exists(message: str) -> Err:
    return Err(ErrorKind.ALREADY_EXISTS, message)


def invalid_input(message: str) -> Err:
    return Err(ErrorKind.INVALID_INPUT, message)


def remote_failure(message: str) -> Err:
    return Err(ErrorKind.REMOTE_FAILURE, message)


# Request state

class Phase(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class RequestState:
    phase: Phase = Phase.IDLE
    value: Any = None
    message: str = ""

    def as_dict(self) -> dict:
        return {"phase": self.phase.value, "value": self.value, "message": self.message}


class StateHolder:
    """Holds the last known result of one async query.

    ``run`` moves Idle/Success/Error -> Loading -> Success(value) or
    Error(message). A second ``run`` while Loading is rejected.
    """

    def __init__(self, name: str):
        self.name = name
        self._state = RequestState()
        self._lock = threading.Lock()

    @property
    def state(self) -> RequestState:
        return self._state

    def run(self, fn: Callable[[], Result]) -> RequestState:
        with self._lock:
            if self._state.phase == Phase.LOADING:
                return RequestState(Phase.ERROR, message=f"{self.name} already running")
            self._state = RequestState(Phase.LOADING)
        try:
            result = fn()
        except Exception as e:
            logger.exception("state_holder.failed", holder=self.name)
            self._state = RequestState(Phase.ERROR, message=str(e) or "Something went wrong. Please try again.")
            return self._state
        if isinstance(result, Err):
            self._state = RequestState(Phase.ERROR, message=result.message)
        else:
            self._state = RequestState(Phase.SUCCESS, value=result.value)
        return self._state

    def reset(self) -> None:
        self._state = RequestState()
