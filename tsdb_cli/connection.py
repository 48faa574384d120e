"""Single-use connection facade around TSDBClient.

The facade moves through UNCONNECTED -> CONNECTING -> READY | FAILED exactly
once. The handshake outcome is stored in a Future so that ``wait()`` yields
the same client or the same failure however often it is called.
"""

import enum
import logging
import time
from concurrent.futures import Future
from typing import Callable, Optional

from tsdb_cli import (
    ConnectionStateError,
    TSDBClient,
    TSDBConnectionError,
)
from tsdb_cli.config import Config

logger = logging.getLogger(__name__)


class ConnectionState(enum.Enum):
    UNCONNECTED = "unconnected"
    CONNECTING = "connecting"
    READY = "ready"
    FAILED = "failed"


class ConnectionFacade:
    """Holds the config, the connection state and the handshake result."""

    def __init__(
        self,
        config: Config,
        client_factory: Optional[Callable[[Config], TSDBClient]] = None,
    ):
        self.config = config
        self._client_factory = client_factory or Config.make_client
        self.state = ConnectionState.UNCONNECTED
        self.connecting_at: Optional[float] = None
        self.ready_at: Optional[float] = None
        self._result: "Future[TSDBClient]" = Future()

    @property
    def address(self) -> str:
        return f"{self.config.scheme}://{self.config.host}:{self.config.port}"

    def connect(self) -> TSDBClient:
        """
        Performs the handshake: builds the client and lists the series names
        as a connectivity check.

        Returns:
            The ready client.

        Raises:
            ConnectionStateError: If connect() was already called.
            TSDBConnectionError: If the handshake fails.
        """
        if self.state is not ConnectionState.UNCONNECTED:
            raise ConnectionStateError(
                f"connect() called more than once (state: {self.state.value})"
            )
        self.state = ConnectionState.CONNECTING
        self.connecting_at = time.monotonic()
        logger.info(f"Connecting to {self.address} (db={self.config.database})")

        try:
            client = self._client_factory(self.config)
            series = client.get_list_series()
        except Exception as e:
            # Any handshake failure must still resolve the result
            self.state = ConnectionState.FAILED
            error = TSDBConnectionError(f"connecting to {self.address}: {e}")
            error.__cause__ = e
            self._result.set_exception(error)
            raise error

        self.ready_at = time.monotonic()
        self.state = ConnectionState.READY
        self._result.set_result(client)
        logger.info(
            f"Connected in {(self.ready_at - self.connecting_at) * 1000:.0f} ms "
            f"({len(series)} series)"
        )
        return client

    def wait(self, timeout: Optional[float] = None) -> TSDBClient:
        """Blocks until the handshake has finished; returns the client or raises its failure."""
        if self.state is ConnectionState.UNCONNECTED:
            raise ConnectionStateError("wait() called before connect()")
        return self._result.result(timeout=timeout)

    def client(self) -> TSDBClient:
        if self.state is not ConnectionState.READY:
            raise ConnectionStateError(
                f"client() called before the connection is ready (state: {self.state.value})"
            )
        return self._result.result()
