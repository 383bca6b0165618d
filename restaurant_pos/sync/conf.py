from __future__ import annotations

import random
from dataclasses import dataclass
from dataclasses import field


@dataclass(frozen=True)
class ReconnectPolicy:
    """Exponential backoff with additive jitter.

    The nth attempt waits ``min(base_delay * 2**n, max_delay)`` seconds plus a
    uniformly distributed jitter in ``[0, max_jitter)``. Jitter keeps a room
    full of terminals from hammering the server in lockstep after an outage.
    """

    base_delay: float = 1.0
    max_delay: float = 30.0
    max_jitter: float = 1.0
    max_attempts: int = 10

    def base_delay_for(self, attempt: int) -> float:
        return min(self.base_delay * (2**attempt), self.max_delay)

    def delay_for(self, attempt: int) -> float:
        return self.base_delay_for(attempt) + random.uniform(0, self.max_jitter)  # noqa: S311


@dataclass(frozen=True)
class ClientSettings:
    server_url: str = "http://localhost:8000"
    socketio_path: str = "socket.io"
    connect_timeout: float = 10.0
    ping_timeout: float = 5.0
    reconnect: ReconnectPolicy = field(default_factory=ReconnectPolicy)

    @classmethod
    def from_django(cls) -> ClientSettings:
        """Build client settings from the ``REALTIME_*`` Django settings."""

        from django.conf import settings  # noqa: PLC0415

        return cls(
            server_url=settings.REALTIME_SERVER_URL,
            socketio_path=settings.REALTIME_SOCKETIO_PATH,
            connect_timeout=settings.REALTIME_CONNECT_TIMEOUT,
            ping_timeout=settings.REALTIME_PING_TIMEOUT,
            reconnect=ReconnectPolicy(
                base_delay=settings.REALTIME_RECONNECT_BASE_DELAY,
                max_delay=settings.REALTIME_RECONNECT_MAX_DELAY,
                max_jitter=settings.REALTIME_RECONNECT_MAX_JITTER,
                max_attempts=settings.REALTIME_MAX_RECONNECT_ATTEMPTS,
            ),
        )
