# config.py
import argparse
import os
from dataclasses import dataclass
from typing import Optional, Sequence


@dataclass(frozen=True)
class SimulationConfig:
    """
    Parameters shared by every peer of one simulation run.

    `num_snapshots` is accepted for compatibility with existing launch
    scripts; no peer reads it yet.
    """

    num_peers: int = 4
    num_snapshots: int = 5
    seed: int = 100
    initial_balance: int = 100
    # the policy picks among `send_choices` outcomes, `send_weight` of them send
    send_choices: int = 5
    send_weight: int = 4
    max_poll_wait_ms: int = 300
    tick_interval: float = 1.0
    log_dir: str = "./logs/ledger_runs"

    def __post_init__(self):
        if self.num_peers < 2:
            raise ValueError(f"num_peers must be at least 2, got {self.num_peers}")
        if self.num_snapshots < 0:
            raise ValueError(f"num_snapshots must be >= 0, got {self.num_snapshots}")
        if not 0 <= self.send_weight <= self.send_choices or self.send_choices < 1:
            raise ValueError(
                f"send_weight {self.send_weight} must lie in [0, {self.send_choices}]"
            )
        if self.max_poll_wait_ms < 1:
            raise ValueError(f"max_poll_wait_ms must be >= 1, got {self.max_poll_wait_ms}")
        if self.tick_interval < 0:
            raise ValueError(f"tick_interval must be >= 0, got {self.tick_interval}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Simulate a mesh of peers trading money under logical clocks."
    )
    parser.add_argument(
        "-p",
        "--num_processes",
        type=int,
        default=os.environ.get("NUM_PROCESSES", "4"),
        help="number of peers in the mesh",
    )
    parser.add_argument(
        "-s",
        "--num_snapshots",
        type=int,
        default=os.environ.get("NUM_SNAPSHOTS", "5"),
        help="number of snapshots (currently unused)",
    )
    parser.add_argument(
        "-r",
        "--seed",
        type=int,
        default=os.environ.get("SEED", "100"),
        help="base random seed; peer i uses seed + i",
    )
    parser.add_argument(
        "--log_dir",
        default=os.environ.get("LOG_DIR", "./logs/ledger_runs"),
        help="directory for peer and ledger logs",
    )
    parser.add_argument(
        "--tick_interval",
        type=float,
        default=os.environ.get("TICK_INTERVAL", "1.0"),
        help="seconds each peer sleeps between actions",
    )
    return parser


def load_config(argv: Optional[Sequence[str]] = None) -> SimulationConfig:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        return SimulationConfig(
            num_peers=args.num_processes,
            num_snapshots=args.num_snapshots,
            seed=args.seed,
            log_dir=args.log_dir,
            tick_interval=args.tick_interval,
        )
    except ValueError as e:
        parser.error(str(e))
