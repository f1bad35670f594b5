"""
Feed Port: Abstract interface for live feed listeners.

The pub/sub transport wraps each connected client in a FeedListener and
hands it to the Broadcaster.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class FeedListener(ABC):
    """One connected live feed client."""

    @property
    @abstractmethod
    def listener_id(self) -> str:
        ...

    @abstractmethod
    async def send(self, message: str, payload: Any) -> None:
        """
        Deliver one named message.

        Args:
            message: "initial_data" or "token_update".
            payload: JSON-serializable body.
        """
        ...
