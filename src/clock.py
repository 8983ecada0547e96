# clock.py
from typing import Sequence, Tuple


def lamport_send(next_timestamp: int) -> Tuple[int, int]:
    """Timestamp for a send event and the counter that follows it."""
    return next_timestamp, next_timestamp + 1


def lamport_receive(received_timestamp: int, next_timestamp: int) -> Tuple[int, int]:
    """
    Timestamp for a receive event and the counter that follows it.

    The receive is stamped strictly after both the message it observes and
    everything this process has already stamped.
    """
    timestamp = max(received_timestamp, next_timestamp) + 1
    return timestamp, timestamp + 1


def vector_send(vector: Sequence[int], owner: int) -> Tuple[int, ...]:
    stamped = list(vector)
    stamped[owner] += 1
    return tuple(stamped)


def vector_receive(
    vector: Sequence[int], received: Sequence[int], owner: int
) -> Tuple[int, ...]:
    """
    Merge a received vector into a local one.

    Every foreign slot takes the pointwise max, then the owner's slot is
    incremented. The sender's view of the owner's slot is ignored.
    """
    if len(vector) != len(received):
        raise ValueError(
            f"vector length mismatch: local {len(vector)}, received {len(received)}"
        )
    merged = [
        value if i == owner else max(value, other)
        for i, (value, other) in enumerate(zip(vector, received))
    ]
    merged[owner] += 1
    return tuple(merged)


def vector_leq(a: Sequence[int], b: Sequence[int]) -> bool:
    """Pointwise a <= b."""
    return all(x <= y for x, y in zip(a, b))


def happens_before(a: Sequence[int], b: Sequence[int]) -> bool:
    return vector_leq(a, b) and tuple(a) != tuple(b)


class LamportClock:
    """
    Simple Lamport Clock implementation for ordering events

    `value` is the timestamp the next send will carry, so a fresh clock
    stamps its first send with 0.
    """

    def __init__(self, name):
        self.name = name
        self.value = 0

    def send(self) -> int:
        timestamp, self.value = lamport_send(self.value)
        return timestamp

    def receive(self, received_timestamp: int) -> int:
        timestamp, self.value = lamport_receive(received_timestamp, self.value)
        return timestamp

    def __str__(self):
        return f"{self.name}: {self.value}"


class VectorClock:
    """
    Vector clock owned by one peer of a fixed-size mesh.

    The live vector is private; callers only ever see tuple snapshots, so a
    stamp attached to a message can't change after it was sent.
    """

    def __init__(self, name, size: int, owner: int):
        if not 0 <= owner < size:
            raise ValueError(f"owner {owner} outside mesh of size {size}")
        self.name = name
        self.owner = owner
        self._vector = (0,) * size

    @property
    def value(self) -> Tuple[int, ...]:
        return self._vector

    def snapshot(self) -> Tuple[int, ...]:
        return tuple(self._vector)

    def send(self) -> Tuple[int, ...]:
        self._vector = vector_send(self._vector, self.owner)
        return self.snapshot()

    def receive(self, received: Sequence[int]) -> Tuple[int, ...]:
        self._vector = vector_receive(self._vector, received, self.owner)
        return self.snapshot()

    def __str__(self):
        return f"{self.name}: [{','.join(str(v) for v in self._vector)}]"
