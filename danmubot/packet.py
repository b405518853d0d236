"""Framing of the live-room broadcast websocket protocol."""

import base64
import json
import logging
import struct
import zlib
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Union

import brotli

log = logging.getLogger(__name__)

HEADER = struct.Struct(">IHHII")
HEADER_LENGTH = HEADER.size
_LENGTH = struct.Struct(">I")

BytesLike = Union[bytes, bytearray, memoryview]


class PacketError(ValueError):
    """Raised when bytes do not form a valid packet."""


class Protocol(IntEnum):
    PLAIN = 0
    POPULARITY = 1
    ZLIB = 2
    BROTLI = 3


class Operation(IntEnum):
    HANDSHAKE = 0
    HANDSHAKE_RESPONSE = 1
    HEARTBEAT = 2
    HEARTBEAT_RESPONSE = 3
    NOTIFICATION = 5
    ROOM_ENTER = 7
    ROOM_ENTER_RESPONSE = 8


@dataclass(frozen=True)
class Packet:
    """One frame: protocol version, operation code and payload."""

    protocol_version: int
    operation: int
    body: bytes = b""

    def build(self) -> bytes:
        """Serialise the packet with its 16-byte header."""
        header = HEADER.pack(
            HEADER_LENGTH + len(self.body),
            HEADER_LENGTH,
            self.protocol_version,
            self.operation,
            1,
        )
        return header + bytes(self.body)

    def parse(self) -> list["Packet"]:
        """Unwrap compressed payloads into the packets they carry."""
        version = self.protocol_version
        if version in (Protocol.PLAIN, Protocol.POPULARITY):
            return [self]
        if version == Protocol.ZLIB:
            try:
                payload = zlib.decompress(self.body)
            except zlib.error as exc:
                raise PacketError(f"zlib error: {exc}") from exc
            return slice_packets(payload)
        if version == Protocol.BROTLI:
            try:
                payload = brotli.decompress(self.body)
            except brotli.error as exc:
                raise PacketError(f"brotli error: {exc}") from exc
            return slice_packets(payload)
        raise PacketError(f"unknown protocol version {version}")

    def json(self) -> Any:
        """Decode the body as JSON."""
        return json.loads(self.body)

    @classmethod
    def from_bytes(cls, data: BytesLike) -> "Packet":
        """Read one whole packet; its length field must match the data."""
        data = bytes(data)
        if not data:
            raise PacketError("empty packet")
        if len(data) < HEADER_LENGTH:
            raise PacketError(f"packet of {len(data)} bytes is shorter than its header")
        length, _, version, operation, _ = HEADER.unpack_from(data)
        if length != len(data):
            raise PacketError(f"packet length field {length} does not match {len(data)} bytes")
        return cls(version, operation, data[HEADER_LENGTH:length])


def new_plain_packet(operation: int, body: bytes) -> Packet:
    """Build an uncompressed packet with the given operation."""
    return Packet(1, int(operation), bytes(body))


def new_enter_packet(uid: int, buvid: str, room_id: int, key: str) -> bytes:
    """Bytes of the packet that joins a room; uid may be 0."""
    payload = {
        "uid": uid,
        "buvid": buvid,
        "roomid": room_id,
        "protover": 3,
        "platform": "danmuji",
        "type": 2,
        "key": key,
    }
    body = json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    return new_plain_packet(Operation.ROOM_ENTER, body).build()


def new_heartbeat_packet() -> bytes:
    """Bytes of a heartbeat packet."""
    return Packet(1, Operation.HEARTBEAT).build()


def decode_packet(data: BytesLike) -> Packet:
    return Packet.from_bytes(data)


def encode_packet(packet: Packet) -> bytes:
    return packet.build()


def slice_packets(data: BytesLike) -> list[Packet]:
    """Split a run of concatenated packets."""
    view = bytes(data)
    packets = []
    cursor = 0
    while cursor < len(view):
        if len(view) - cursor < _LENGTH.size:
            raise PacketError("truncated packet length")
        (length,) = _LENGTH.unpack_from(view, cursor)
        if length == 0:
            raise PacketError("packet with zero length")
        packets.append(decode_packet(view[cursor:cursor + length]))
        cursor += length
    return packets


def b64_decode(s: str) -> bytes:
    """Decode standard padded base64; raises ValueError on bad input."""
    return base64.b64decode(s, validate=True)