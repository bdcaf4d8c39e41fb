"""Abstract base for network transports.

Workers talk to the outside world through a transport served on the
socket whose address the supervisor hands them (YGG_SOCKET_ADDR).
"""

from __future__ import annotations

import ssl
from abc import ABC, abstractmethod
from typing import Callable

from pydantic import BaseModel, Field

RxHandler = Callable[[str, dict[str, str], bytes], None]


class TxResponse(BaseModel):
    code: int
    metadata: dict[str, str] = Field(default_factory=dict)
    data: bytes = b""


class Transport(ABC):
    @abstractmethod
    async def connect(self) -> None:
        """Start listening and receiving data."""

    @abstractmethod
    async def disconnect(self, quiesce: int) -> None:
        """Shut down, allowing ``quiesce`` milliseconds for in-flight work."""

    @abstractmethod
    async def tx(self, addr: str, metadata: dict[str, str], data: bytes) -> TxResponse: ...

    @abstractmethod
    def set_rx_handler(self, handler: RxHandler) -> None: ...

    @abstractmethod
    def reload_tls_config(self, context: ssl.SSLContext) -> None: ...
