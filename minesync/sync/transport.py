"""TCP transport for the manifest, upload and download endpoints."""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
import logging
import socket
import time
from typing import Any, Callable, Dict, Iterator, Mapping

from ..configuration import (
    DEFAULT_DOWNLOAD_ENDPOINT,
    DEFAULT_MANIFEST_ENDPOINT,
    DEFAULT_MAX_MESSAGE_SIZE,
    DEFAULT_UPLOAD_ENDPOINT,
)
from ..errors import ProtocolError, SyncConnectionError
from .archive import pack_bytes
from .inventory import Inventory, SaveEntry, build_remote_inventory
from .protocol import SyncEnvelope, receive_envelope, send_envelope

logger = logging.getLogger("minesync.sync.transport")


@dataclass(frozen=True)
class Endpoint:
    host: str
    port: int

    @classmethod
    def parse(cls, value: str) -> "Endpoint":
        """Parse ``host:port``; IPv6 hosts go in brackets (``[::1]:9999``)."""
        text = value.strip()
        host, sep, raw_port = text.rpartition(":")
        if not sep or not host or not raw_port.isdigit():
            raise ValueError(f"Endpoint '{value}' must look like host:port")
        port = int(raw_port)
        if not 0 < port < 65536:
            raise ValueError(f"Endpoint '{value}' has an invalid port")
        if host.startswith("[") and host.endswith("]"):
            host = host[1:-1]
        return cls(host=host, port=port)

    def __str__(self) -> str:
        if ":" in self.host:
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"


@dataclass
class EndpointSettings:
    """Addresses of the three sync endpoints plus socket behaviour."""

    manifest: Endpoint
    upload: Endpoint
    download: Endpoint
    connect_timeout: float = 5.0
    io_timeout: float = 60.0
    retries: int = 2
    retry_delay: float = 0.5
    max_message_size: int = DEFAULT_MAX_MESSAGE_SIZE

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "EndpointSettings":
        endpoints = config.get("endpoints", {}) if config else {}
        transport = config.get("transport", {}) if config else {}
        return cls(
            manifest=Endpoint.parse(str(endpoints.get("manifest", DEFAULT_MANIFEST_ENDPOINT))),
            upload=Endpoint.parse(str(endpoints.get("upload", DEFAULT_UPLOAD_ENDPOINT))),
            download=Endpoint.parse(str(endpoints.get("download", DEFAULT_DOWNLOAD_ENDPOINT))),
            connect_timeout=_positive_float(transport.get("connect_timeout"), 5.0),
            io_timeout=_positive_float(transport.get("io_timeout"), 60.0),
            retries=max(0, int(transport.get("retries", 2))),
            retry_delay=max(0.0, float(transport.get("retry_delay", 0.5))),
            max_message_size=_positive_int(transport.get("max_message_size"), DEFAULT_MAX_MESSAGE_SIZE),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "manifest": str(self.manifest),
            "upload": str(self.upload),
            "download": str(self.download),
            "connect_timeout": self.connect_timeout,
            "io_timeout": self.io_timeout,
            "retries": self.retries,
        }


def _positive_float(raw: Any, default: float) -> float:
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return default
    return value if value > 0 else default


def _positive_int(raw: Any, default: int) -> int:
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return default
    return value if value > 0 else default


Connector = Callable[..., socket.socket]


class SyncTransport:
    """Drives single-exchange connections against the sync endpoints."""

    def __init__(
        self,
        settings: EndpointSettings,
        connector: Connector = socket.create_connection,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.settings = settings
        self._connector = connector
        self._sleep = sleep

    @contextmanager
    def connect(self, endpoint: Endpoint) -> Iterator[socket.socket]:
        """Dial ``endpoint``, retrying connection failures with backoff."""
        sock = self._dial(endpoint)
        try:
            sock.settimeout(self.settings.io_timeout)
            yield sock
        finally:
            sock.close()

    def _dial(self, endpoint: Endpoint) -> socket.socket:
        attempts = self.settings.retries + 1
        for attempt in range(1, attempts + 1):
            try:
                return self._connector(
                    (endpoint.host, endpoint.port),
                    timeout=self.settings.connect_timeout,
                )
            except OSError as exc:
                if attempt == attempts:
                    raise SyncConnectionError(
                        f"Could not connect to {endpoint}: {exc}",
                        endpoint=str(endpoint),
                    ) from exc
                delay = self.settings.retry_delay * (2 ** (attempt - 1))
                logger.warning(
                    "Connecting to %s failed (attempt %d/%d): %s; retrying in %.1fs",
                    endpoint, attempt, attempts, exc, delay,
                )
                self._sleep(delay)
        raise AssertionError("unreachable")  # pragma: no cover

    def fetch_manifest(self) -> Inventory:
        """Read the remote inventory from the manifest endpoint."""
        with self.connect(self.settings.manifest) as sock:
            return build_remote_inventory(sock, self.settings.max_message_size)

    def upload(self, entry: SaveEntry) -> int:
        """Send one local save to the upload sink. Returns bytes written."""
        if entry.path is None:
            raise ValueError(f"Save '{entry.name}' has no local directory")

        with self.connect(self.settings.upload) as sock:
            payload = pack_bytes(entry.path)
            envelope = SyncEnvelope(name=entry.archive_name, payload=payload)
            sent = send_envelope(sock, envelope)
            _finish_sending(sock)

        logger.info("Uploaded %s as %s (%d bytes)", entry.name, envelope.name, len(payload))
        return sent

    def download(self, entry: SaveEntry) -> SyncEnvelope:
        """Request one archive from the download source and return the reply."""
        with self.connect(self.settings.download) as sock:
            send_envelope(sock, SyncEnvelope.request(entry.name))
            response = receive_envelope(sock, self.settings.max_message_size)

        if response.name != entry.name:
            raise ProtocolError(
                f"Requested '{entry.name}' but the server answered with '{response.name}'"
            )
        logger.info("Downloaded %s (%d bytes)", response.name, len(response.payload))
        return response


def _finish_sending(sock: socket.socket) -> None:
    try:
        sock.shutdown(socket.SHUT_WR)
    except OSError as exc:
        logger.debug("Half-close after upload failed: %s", exc)


__all__ = ["Endpoint", "EndpointSettings", "SyncTransport"]
