"""Sync protocol data structures and frame codec.

Every message on the wire is a frame: a 4-byte big-endian length followed by
that many bytes of UTF-8 JSON. Binary payloads travel as base64 strings.
"""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass, field
from datetime import datetime, timezone
import json
import socket
import struct
from typing import Any, Dict, List, Union

from ..configuration import DEFAULT_MAX_MESSAGE_SIZE
from ..errors import ProtocolError, SyncConnectionError

HEADER = struct.Struct(">I")
_RECV_CHUNK = 64 * 1024


def format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def parse_timestamp(value: Union[str, int, float]) -> datetime:
    """Parse an ISO-8601 string or epoch seconds into an aware UTC datetime."""

    if isinstance(value, bool):
        raise ProtocolError(f"Invalid timestamp: {value!r}")
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as exc:
            raise ProtocolError(f"Invalid timestamp {value!r}: {exc}") from exc
    if not isinstance(value, str):
        raise ProtocolError(f"Invalid timestamp: {value!r}")

    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as exc:
        raise ProtocolError(f"Invalid timestamp {value!r}: {exc}") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


@dataclass
class SyncEnvelope:
    """A named payload: an upload, a download request or a download response."""

    name: str
    payload: bytes = b""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "Name": self.name,
            "Data": base64.b64encode(self.payload).decode("ascii"),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SyncEnvelope":
        if not isinstance(data, dict):
            raise ProtocolError("Envelope must be an object")
        name = data.get("Name")
        if not isinstance(name, str) or not name:
            raise ProtocolError("Envelope is missing a 'Name' string")
        raw = data.get("Data", "")
        if raw is None:
            raw = ""
        if not isinstance(raw, str):
            raise ProtocolError(f"Envelope '{name}' has a non-string 'Data' field")
        try:
            payload = base64.b64decode(raw, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ProtocolError(f"Envelope '{name}' carries invalid base64 data: {exc}") from exc
        return cls(name=name, payload=payload)

    @classmethod
    def request(cls, name: str) -> "SyncEnvelope":
        """Build a download request naming the wanted archive."""
        return cls(name=name, payload=b"")


@dataclass
class ManifestEntry:
    name: str
    last_modified: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {"Name": self.name, "LastModifiedDate": format_timestamp(self.last_modified)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ManifestEntry":
        if not isinstance(data, dict):
            raise ProtocolError("Manifest entry must be an object")
        name = data.get("Name")
        if not isinstance(name, str) or not name:
            raise ProtocolError("Manifest entry is missing a 'Name' string")
        if "LastModifiedDate" not in data:
            raise ProtocolError(f"Manifest entry '{name}' has no 'LastModifiedDate'")
        return cls(name=name, last_modified=parse_timestamp(data["LastModifiedDate"]))


@dataclass
class SaveManifest:
    """The remote store's list of archives, delivered as one message."""

    saves: List[ManifestEntry] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"Saves": [entry.to_dict() for entry in self.saves]}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SaveManifest":
        if not isinstance(data, dict):
            raise ProtocolError("Manifest must be an object")
        raw = data.get("Saves")
        if raw is None:
            # An empty Go slice is encoded as null.
            raw = []
        if not isinstance(raw, list):
            raise ProtocolError("Manifest 'Saves' must be a list")

        saves = [ManifestEntry.from_dict(item) for item in raw]
        seen = set()
        for entry in saves:
            if entry.name in seen:
                raise ProtocolError(f"Manifest lists '{entry.name}' more than once")
            seen.add(entry.name)
        return cls(saves=saves)


def encode_frame(message: Dict[str, Any]) -> bytes:
    body = json.dumps(message, separators=(",", ":")).encode("utf-8")
    if len(body) > 0xFFFFFFFF:
        raise ProtocolError(f"Message of {len(body)} bytes does not fit in a frame")
    return HEADER.pack(len(body)) + body


def decode_frame_body(body: bytes) -> Dict[str, Any]:
    try:
        message = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ProtocolError(f"Frame does not contain valid JSON: {exc}") from exc
    if not isinstance(message, dict):
        raise ProtocolError("Frame must contain a JSON object")
    return message


def write_frame(sock: socket.socket, message: Dict[str, Any]) -> int:
    """Write one frame fully. Returns the number of bytes sent."""

    frame = encode_frame(message)
    try:
        sock.sendall(frame)
    except OSError as exc:
        raise SyncConnectionError(f"Failed to send {len(frame)} bytes: {exc}") from exc
    return len(frame)


def read_frame(
    sock: socket.socket,
    max_size: int = DEFAULT_MAX_MESSAGE_SIZE,
) -> Dict[str, Any]:
    """Read exactly one frame and decode its JSON body."""

    header = _recv_exactly(sock, HEADER.size, "frame header")
    (length,) = HEADER.unpack(header)
    if length > max_size:
        raise ProtocolError(f"Frame of {length} bytes exceeds the {max_size} byte limit")
    body = _recv_exactly(sock, length, "frame body")
    return decode_frame_body(body)


def _recv_exactly(sock: socket.socket, size: int, what: str) -> bytes:
    chunks = []
    remaining = size
    while remaining > 0:
        try:
            chunk = sock.recv(min(remaining, _RECV_CHUNK))
        except OSError as exc:
            raise SyncConnectionError(f"Failed to read {what}: {exc}") from exc
        if not chunk:
            received = size - remaining
            raise ProtocolError(
                f"Connection closed after {received} of {size} bytes of {what}"
            )
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


def send_envelope(sock: socket.socket, envelope: SyncEnvelope) -> int:
    return write_frame(sock, envelope.to_dict())


def receive_envelope(
    sock: socket.socket,
    max_size: int = DEFAULT_MAX_MESSAGE_SIZE,
) -> SyncEnvelope:
    return SyncEnvelope.from_dict(read_frame(sock, max_size))


def receive_manifest(
    sock: socket.socket,
    max_size: int = DEFAULT_MAX_MESSAGE_SIZE,
) -> SaveManifest:
    return SaveManifest.from_dict(read_frame(sock, max_size))


__all__ = [
    "DEFAULT_MAX_MESSAGE_SIZE",
    "ManifestEntry",
    "SaveManifest",
    "SyncEnvelope",
    "decode_frame_body",
    "encode_frame",
    "format_timestamp",
    "parse_timestamp",
    "read_frame",
    "receive_envelope",
    "receive_manifest",
    "send_envelope",
    "write_frame",
]
