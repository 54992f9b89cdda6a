# Connection State Store for SwiftPOS Print Agent
# Process-wide record of the live direct printer link, if any

import logging
import threading
from typing import Any, Callable, List, Optional

logger = logging.getLogger(__name__)


class LinkHandle:
    """An open link to a paired printer: device identity plus the writable channel"""

    def __init__(self, address: str, name: Optional[str], client: Any, characteristic: Any):
        self.address = address
        self.name = name or 'Unknown Printer'
        self.client = client
        self.characteristic = characteristic
        self._listeners: List[Callable[['LinkHandle'], None]] = []
        self._lock = threading.Lock()
        self.lost = False

    def subscribe(self, callback: Callable[['LinkHandle'], None]):
        """Register a callback(handle) fired once when the link drops"""
        with self._lock:
            self._listeners.append(callback)

    def notify_lost(self):
        with self._lock:
            if self.lost:
                return
            self.lost = True
            listeners = list(self._listeners)
        for callback in listeners:
            callback(self)

    def __repr__(self):
        return f"LinkHandle({self.name!r}, {self.address!r})"


class ConnectionStateStore:
    """
    Holds at most one LinkHandle for the running process.

    One instance is created at startup and injected wherever the link state
    is needed. Nothing is persisted; a fresh process starts disconnected.
    The store listens for link loss on the handle it holds and clears
    itself, so callers only ever see the current state through get_link().
    """

    def __init__(self):
        self._link: Optional[LinkHandle] = None
        self._lock = threading.Lock()

    def set_link(self, handle: LinkHandle):
        with self._lock:
            previous = self._link
            self._link = handle
        handle.subscribe(self._on_link_lost)
        if previous is not None and previous is not handle:
            logger.info(f"Replaced printer link {previous} with {handle}")
        else:
            logger.info(f"Printer link established: {handle}")

    def get_link(self) -> Optional[LinkHandle]:
        with self._lock:
            link = self._link
        if link is not None and link.lost:
            return None
        return link

    @property
    def is_connected(self) -> bool:
        return self.get_link() is not None

    def clear(self):
        with self._lock:
            previous = self._link
            self._link = None
        if previous is not None:
            logger.info(f"Printer link cleared: {previous}")

    def _on_link_lost(self, handle: LinkHandle):
        with self._lock:
            if self._link is not handle:
                logger.debug(f"Ignoring link loss for stale handle {handle}")
                return
            self._link = None
        logger.warning(f"Printer link lost: {handle}")
