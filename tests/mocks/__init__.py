from datetime import datetime, timedelta

from .mock_cache import MockRedis
from .mock_gateway import MockGateway


class FrozenClock:
    """Controllable clock; call it for the current time, advance() to move it."""

    def __init__(self, start: datetime = datetime(2026, 1, 15, 12, 0, 0)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now
