"""RoadCron Service Host - Background Service Lifecycle Management.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import logging
import signal
import threading
from datetime import datetime
from enum import Enum, auto
from typing import Dict, List, Optional, Protocol, runtime_checkable

from roadcron_core.cancellation import CancellationToken

logger = logging.getLogger(__name__)


@runtime_checkable
class HostedService(Protocol):
    """Long-running service driven by a :class:`ServiceHost`."""

    def start(self, cancel: Optional[CancellationToken] = None) -> None:
        ...

    def run(self, cancel: Optional[CancellationToken] = None) -> None:
        ...

    def stop(self, cancel: Optional[CancellationToken] = None) -> bool:
        ...


class HostState(Enum):
    """Host operational states."""

    STOPPED = auto()
    STARTING = auto()
    RUNNING = auto()
    STOPPING = auto()


class ServiceHost:
    """Runs hosted services on background threads.

    Services are started in registration order, each ``run`` gets its own
    daemon thread, and services are stopped in reverse order.

    Example:
        >>> host = ServiceHost([CronSupervisor(MyTask())])
        >>> host.run_forever()  # until SIGINT / SIGTERM
    """

    def __init__(
        self,
        services: Optional[List[HostedService]] = None,
        name: str = "roadcron",
    ):
        self.name = name
        self._services: List[HostedService] = list(services or [])
        self._threads: Dict[int, threading.Thread] = {}
        self._lock = threading.RLock()
        self._state = HostState.STOPPED
        self._token = CancellationToken()
        self._shutdown = threading.Event()
        self.started_at: Optional[datetime] = None

    @property
    def state(self) -> HostState:
        """Get host state."""
        return self._state

    @property
    def services(self) -> List[HostedService]:
        """Get registered services."""
        return list(self._services)

    def add_service(self, service: HostedService) -> "ServiceHost":
        """Register a service; must be called before :meth:`start`."""
        with self._lock:
            if self._state is not HostState.STOPPED:
                raise RuntimeError("Cannot add services to a running host")
            self._services.append(service)
        return self

    def start(self) -> None:
        """Start every service and spawn its run thread."""
        with self._lock:
            if self._state is not HostState.STOPPED:
                return

            self._state = HostState.STARTING
            self._token = CancellationToken()
            self._shutdown.clear()
            self.started_at = datetime.now()

            for service in self._services:
                service.start(self._token)

            for index, service in enumerate(self._services):
                thread = threading.Thread(
                    target=self._run_service,
                    args=(service,),
                    daemon=True,
                    name=f"{self.name}-{_service_name(service)}",
                )
                self._threads[index] = thread
                thread.start()

            self._state = HostState.RUNNING
            logger.info(f"Host {self.name} started with {len(self._services)} services")

    def stop(self, timeout: float = 30.0) -> None:
        """Stop every service.

        Args:
            timeout: Grace period shared by all services
        """
        with self._lock:
            if self._state in (HostState.STOPPED, HostState.STOPPING):
                return

            self._state = HostState.STOPPING
            self._token.cancel()

            grace = CancellationToken()
            grace.cancel_after(timeout)
            try:
                for service in reversed(self._services):
                    try:
                        service.stop(grace)
                    except Exception as e:
                        logger.error(f"Host {self.name} failed to stop {_service_name(service)}: {e}")

                for thread in self._threads.values():
                    thread.join(timeout=max(timeout, 0.1))
                    if thread.is_alive():
                        logger.warning(f"Thread {thread.name} did not stop cleanly")
            finally:
                grace.close()

            self._threads.clear()
            self._state = HostState.STOPPED
            self._shutdown.set()
            logger.info(f"Host {self.name} stopped")

    def wait_for_shutdown(self, timeout: Optional[float] = None) -> bool:
        """Block until :meth:`stop` completes."""
        return self._shutdown.wait(timeout)

    def run_forever(self, install_signal_handlers: bool = True) -> None:
        """Start the host and block until SIGINT/SIGTERM or :meth:`stop`."""
        if install_signal_handlers:
            self._install_signal_handlers()

        self.start()
        try:
            self._token.wait()
        except KeyboardInterrupt:
            logger.info(f"Host {self.name} interrupted")
        finally:
            self.stop()

    def _install_signal_handlers(self) -> None:
        def handle(signum, frame) -> None:
            logger.info(f"Host {self.name} received signal {signum}")
            self._token.cancel()

        signal.signal(signal.SIGINT, handle)
        signal.signal(signal.SIGTERM, handle)

    def _run_service(self, service: HostedService) -> None:
        try:
            service.run(self._token)
        except Exception as e:
            logger.error(f"Service {_service_name(service)} crashed: {e}", exc_info=True)

    def __enter__(self) -> "ServiceHost":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()


def _service_name(service: HostedService) -> str:
    return getattr(service, "name", None) or type(service).__name__


__all__ = ["HostedService", "HostState", "ServiceHost"]
