"""
Host port allocation for node containers.

Every container that publishes a port needs a host port that no other
container of any concurrent run is using.
"""

from __future__ import annotations

import socket
import threading
from dataclasses import dataclass, field

BASE_WS_PORT = 30444
"""First host port handed out for node WebSocket endpoints."""

MAX_PORT = 65535


def _port_is_free(port: int) -> bool:
    """Check that nothing is listening on a local TCP port."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        try:
            sock.bind(("127.0.0.1", port))
        except OSError:
            return False
    return True


@dataclass(slots=True)
class PortAllocator:
    """
    Thread-safe allocator of host ports.

    Hands out sequential ports from a base, skipping ports that are in use
    on the host. A port is never handed out twice by the same allocator.
    """

    base_port: int = BASE_WS_PORT
    """First candidate port."""

    probe: bool = True
    """Whether to skip ports that are already bound on the host."""

    _next: int = field(default=0)
    """Offset of the next candidate from `base_port`."""

    _issued: set[int] = field(default_factory=set)
    """Ports already handed out."""

    _lock: threading.Lock = field(default_factory=threading.Lock)
    """Thread lock for concurrent access."""

    def allocate(self) -> int:
        """
        Allocate one free host port.

        Raises:
            RuntimeError: If the port range is exhausted.
        """
        with self._lock:
            while self.base_port + self._next <= MAX_PORT:
                port = self.base_port + self._next
                self._next += 1
                if port in self._issued:
                    continue
                if self.probe and not _port_is_free(port):
                    continue
                self._issued.add(port)
                return port
        raise RuntimeError(f"No free ports left above {self.base_port}")

    def allocate_many(self, labels: list[str]) -> dict[str, int]:
        """Allocate one port per label."""
        return {label: self.allocate() for label in labels}

    def release(self, port: int) -> None:
        """Forget a port so it may be reissued after a reset."""
        with self._lock:
            self._issued.discard(port)

    def reset(self) -> None:
        """Reset to the initial state."""
        with self._lock:
            self._next = 0
            self._issued.clear()
