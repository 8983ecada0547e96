# ledger.py
import argparse
import logging
import os
import re
from dataclasses import dataclass
from typing import Iterator, List, Optional, Sequence, Tuple

from clock import happens_before

NANOS_PER_SECOND = 1_000_000_000

_LINE = re.compile(r"^(-?\d+) (-?\d+) \[([-\d,]*)\] (\d+)\.(\d{9})$")
_PEER_SUFFIX = re.compile(r"_(\d+)\.txt$")


@dataclass(frozen=True)
class LogEntry:
    counterparty: int
    lamport_time: int
    vector_time: Tuple[int, ...]
    wall_time: int  # nanoseconds since the epoch


def format_entry(entry: LogEntry) -> str:
    seconds, nanos = divmod(entry.wall_time, NANOS_PER_SECOND)
    vector = ",".join(str(v) for v in entry.vector_time)
    return f"{entry.counterparty} {entry.lamport_time} [{vector}] {seconds}.{nanos:09d}"


def parse_entry(line: str) -> LogEntry:
    match = _LINE.match(line.strip())
    if match is None:
        raise ValueError(f"not a causal log line: {line!r}")
    counterparty, lamport, vector, seconds, nanos = match.groups()
    return LogEntry(
        counterparty=int(counterparty),
        lamport_time=int(lamport),
        vector_time=tuple(int(v) for v in vector.split(",")) if vector else (),
        wall_time=int(seconds) * NANOS_PER_SECOND + int(nanos),
    )


def load_log(path) -> List[LogEntry]:
    with open(path) as f:
        return [parse_entry(line) for line in f if line.strip()]


class CausalLog:
    """
    Append-only record of every message a peer sent or received.

    When a sink logger is given each entry is written to it as one line as
    soon as it is appended.
    """

    def __init__(self, sink: Optional[logging.Logger] = None):
        self._entries: List[LogEntry] = []
        self.sink = sink

    def append(self, entry: LogEntry) -> None:
        self._entries.append(entry)
        if self.sink is not None:
            self.sink.info(format_entry(entry))

    @property
    def entries(self) -> Tuple[LogEntry, ...]:
        return tuple(self._entries)

    @property
    def last(self) -> Optional[LogEntry]:
        return self._entries[-1] if self._entries else None

    def __len__(self):
        return len(self._entries)

    def __iter__(self) -> Iterator[LogEntry]:
        return iter(tuple(self._entries))


def check_entries(entries: Sequence[LogEntry], owner: int) -> List[str]:
    """
    Ordering problems in one peer's causal log.

    Events of a single peer are totally ordered: each entry must carry a
    larger Lamport time, a larger own vector slot, and a vector that
    strictly follows the previous one.
    """
    problems = []
    for index in range(1, len(entries)):
        prev, entry = entries[index - 1], entries[index]
        if len(entry.vector_time) <= owner:
            problems.append(f"entry {index}: no vector slot for peer {owner}")
            continue
        if entry.lamport_time <= prev.lamport_time:
            problems.append(
                f"entry {index}: lamport {entry.lamport_time} after {prev.lamport_time}"
            )
        if not happens_before(prev.vector_time, entry.vector_time):
            problems.append(
                f"entry {index}: vector {list(entry.vector_time)} does not follow "
                f"{list(prev.vector_time)}"
            )
        elif entry.vector_time[owner] <= prev.vector_time[owner]:
            problems.append(f"entry {index}: own slot {owner} did not advance")
    return problems


def owner_from_path(path) -> int:
    match = _PEER_SUFFIX.search(os.path.basename(str(path)))
    if match is None:
        raise ValueError(f"cannot tell which peer wrote {path}")
    return int(match.group(1))


def main(argv=None) -> int:
    """Check ledger files written by a run; exit non-zero on any problem."""
    parser = argparse.ArgumentParser(
        description="Check the causal order of peer ledger files."
    )
    parser.add_argument("paths", nargs="+", help="ledger_<time>_<peer>.txt files")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
    log = logging.getLogger(__name__)
    failed = False
    for path in args.paths:
        try:
            owner = owner_from_path(path)
            entries = load_log(path)
        except (OSError, ValueError) as e:
            log.error(f"{path}: {e}")
            failed = True
            continue
        problems = check_entries(entries, owner)
        for problem in problems:
            log.error(f"{path}: {problem}")
        failed = failed or bool(problems)
        log.info(f"{path}: peer {owner}, {len(entries)} entries, {len(problems)} problems")
    return 1 if failed else 0


if __name__ == "__main__":
    raise SystemExit(main())
