from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Protocol


class ConnectionStatus(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    ERROR = "error"


class Cancellable(Protocol):
    def cancel(self) -> object: ...


@dataclass
class ReconnectState:
    """Mutable reconnect bookkeeping owned by a single ConnectionManager."""

    attempt_count: int = 0
    timer: Cancellable | None = None
    manual_disconnect: bool = False

    def cancel_timer(self) -> None:
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None

    def reset(self) -> None:
        self.attempt_count = 0
        self.cancel_timer()
