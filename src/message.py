# message.py
import socket
import struct
from dataclasses import dataclass
from enum import IntEnum
from typing import NamedTuple, Tuple

MAX_TRANSFER = 256
# every field on the wire is a little-endian signed 32-bit integer
FIELD_FORMAT = "i"
BYTE_ORDER = "<"


class MessageType(IntEnum):
    MONEY_TRANSFER = 1


class Direction(IntEnum):
    SEND = 0
    RECV = 1


class ChannelReadError(Exception):
    """A frame could not be read in full from a channel."""


class ChannelClosed(ChannelReadError):
    """The writing side hung up at a frame boundary."""


@dataclass(frozen=True)
class Message:
    kind: int
    direction: Direction
    lamport_timestamp: int
    vector_timestamp: Tuple[int, ...]
    wall_time: int  # nanoseconds since the epoch
    sender: int
    receiver: int
    amount: int


class WireFields(NamedTuple):
    lamport_timestamp: int
    vector_timestamp: Tuple[int, ...]
    kind: int
    amount: int


def frame_struct(num_peers: int) -> struct.Struct:
    # lamport, vector[num_peers], type tag, amount
    return struct.Struct(f"{BYTE_ORDER}{num_peers + 3}{FIELD_FORMAT}")


def frame_size(num_peers: int) -> int:
    return frame_struct(num_peers).size


def encode_message(message: Message) -> bytes:
    if not 0 <= message.amount < MAX_TRANSFER:
        raise ValueError(f"transfer amount {message.amount} outside [0, {MAX_TRANSFER})")
    num_peers = len(message.vector_timestamp)
    return frame_struct(num_peers).pack(
        message.lamport_timestamp,
        *message.vector_timestamp,
        int(message.kind),
        message.amount,
    )


def decode_fields(data: bytes, num_peers: int) -> WireFields:
    fmt = frame_struct(num_peers)
    if len(data) != fmt.size:
        raise ChannelReadError(f"expected {fmt.size} bytes, got {len(data)}")
    values = fmt.unpack(data)
    return WireFields(
        lamport_timestamp=values[0],
        vector_timestamp=tuple(values[1 : num_peers + 1]),
        kind=values[num_peers + 1],
        amount=values[num_peers + 2],
    )


def recv_exact(sock: socket.socket, size: int) -> bytes:
    """
    Read exactly `size` bytes from a stream socket.

    Raises ChannelClosed if the stream ends before any byte of the frame
    arrives and ChannelReadError if it ends part way through.
    """
    buffer = bytearray()
    while len(buffer) < size:
        try:
            chunk = sock.recv(size - len(buffer))
        except OSError as e:
            raise ChannelReadError(f"read failed: {e}") from e
        if not chunk:
            if not buffer:
                raise ChannelClosed("channel closed by writer")
            raise ChannelReadError(f"short read: {len(buffer)} of {size} bytes")
        buffer.extend(chunk)
    return bytes(buffer)


def read_fields(sock: socket.socket, num_peers: int) -> WireFields:
    return decode_fields(recv_exact(sock, frame_size(num_peers)), num_peers)
