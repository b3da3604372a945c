"""Peer layer seam for media transport.

Media routing is an external capability. The default link records the signals
relayed over the signaling channel and does nothing else.
"""
from __future__ import annotations

import logging
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class PeerLink(Protocol):
    def handle_signal(self, from_id: str, payload: Any) -> None: ...

    def close(self) -> None: ...


class LoggingPeerLink:
    """Accepts signals without negotiating a connection."""

    def __init__(self) -> None:
        self.received: list[tuple[str, Any]] = []
        self.closed = False

    def handle_signal(self, from_id: str, payload: Any) -> None:
        if self.closed:
            logger.debug("Dropping video signal from %s after close", from_id)
            return
        self.received.append((from_id, payload))
        logger.info("Video signal received from %s", from_id)

    def close(self) -> None:
        self.closed = True
