# run.py
import logging
import multiprocessing
import random
import selectors
import socket
import sys
import time
from enum import Enum
from typing import Callable, List, Optional

import logger
import message
from clock import LamportClock, VectorClock
from config import SimulationConfig, load_config
from ledger import CausalLog, LogEntry
from message import MAX_TRANSFER, Direction, Message, MessageType
from topology import PeerEndpoints, Topology


class Action(Enum):
    SEND = "send"
    RECEIVE = "receive"


Policy = Callable[[random.Random], Action]


def random_policy(config: SimulationConfig) -> Policy:
    """Send on `send_weight` of `send_choices` equally likely outcomes."""

    def choose(rng: random.Random) -> Action:
        if rng.randrange(config.send_choices) < config.send_weight:
            return Action.SEND
        return Action.RECEIVE

    return choose


def fixed_policy(actions) -> Policy:
    """Replay a fixed sequence of actions, e.g. to script a test run."""
    remaining = iter(actions)

    def choose(rng: random.Random) -> Action:
        return next(remaining)

    return choose


class Peer:
    def __init__(
        self,
        peer_id: int,
        endpoints: PeerEndpoints,
        config: SimulationConfig,
        policy: Optional[Policy] = None,
        logmode="w",
    ):
        self.peer_id = peer_id
        self.config = config
        self.endpoints = endpoints
        self.balance = config.initial_balance
        self.clock = LamportClock(str(peer_id))
        self.vector_clock = VectorClock(str(peer_id), config.num_peers, peer_id)
        # seed + id keeps each peer's sequence distinct and reproducible
        self.rng = random.Random(config.seed + peer_id)
        self.policy = policy if policy is not None else random_policy(config)
        self.logger = logger.setup_logger(
            peer_id,
            self.clock,
            self.vector_clock,
            file_mode=logmode,
            log_dir=config.log_dir,
        )
        self.ledger = CausalLog(
            logger.setup_ledger_logger(peer_id, file_mode=logmode, log_dir=config.log_dir)
        )
        # read-only readiness: only inbound endpoints are polled
        self.selector = selectors.DefaultSelector()
        for sender_id, sock in endpoints.inbound.items():
            self.selector.register(sock, selectors.EVENT_READ, sender_id)

    def random_peer(self) -> int:
        other = self.rng.randrange(self.config.num_peers - 1)
        return other + 1 if other >= self.peer_id else other

    def send_money(self, to: int) -> Optional[Message]:
        sock = self.endpoints.outbound.get(to)
        if sock is None:
            self.logger.error(f"No channel available to peer {to}")
            return None
        amount = self.rng.randrange(MAX_TRANSFER)
        msg = Message(
            kind=MessageType.MONEY_TRANSFER,
            direction=Direction.SEND,
            lamport_timestamp=self.clock.send(),
            vector_timestamp=self.vector_clock.send(),
            wall_time=time.time_ns(),
            sender=self.peer_id,
            receiver=to,
            amount=amount,
        )
        try:
            sock.sendall(message.encode_message(msg))
        except OSError as e:
            self.logger.error(f"Error sending message to peer {to}: {e}")
            return None
        self.balance -= amount
        self.record(msg, counterparty=to)
        self.log_event(f"Sent {amount} to peer {to}; balance {self.balance}")
        return msg

    def receive_message(self, sock: socket.socket, sender_id: int) -> Optional[Message]:
        """
        Read one frame from `sock` and apply it.

        Nothing is applied unless the whole frame arrived.
        """
        try:
            fields = message.read_fields(sock, self.config.num_peers)
        except message.ChannelClosed:
            self.logger.warning(f"Channel from peer {sender_id} closed")
            self.detach(sender_id)
            return None
        except message.ChannelReadError as e:
            self.logger.error(f"Read error on channel from peer {sender_id}: {e}")
            return None

        msg = Message(
            kind=fields.kind,
            direction=Direction.RECV,
            lamport_timestamp=self.clock.receive(fields.lamport_timestamp),
            vector_timestamp=self.vector_clock.receive(fields.vector_timestamp),
            wall_time=time.time_ns(),
            sender=sender_id,
            receiver=self.peer_id,
            amount=fields.amount,
        )
        if msg.kind == MessageType.MONEY_TRANSFER:
            self.balance += msg.amount
            self.log_event(
                f"Received {msg.amount} from peer {sender_id}; balance {self.balance}"
            )
        else:
            self.logger.warning(
                f"Undefined message type id {msg.kind} from peer {sender_id}"
            )
        self.record(msg, counterparty=sender_id)
        return msg

    def drain_inbound(self, timeout: float) -> List[Message]:
        """Wait up to `timeout` seconds, then read every ready channel once."""
        try:
            events = self.selector.select(timeout)
        except OSError as e:
            self.logger.critical(f"Readiness polling failed: {e}")
            raise
        received = []
        for key, _ in events:
            msg = self.receive_message(key.fileobj, key.data)
            if msg is not None:
                received.append(msg)
        return received

    def detach(self, sender_id: int):
        sock = self.endpoints.inbound.pop(sender_id, None)
        if sock is None:
            return
        self.selector.unregister(sock)
        sock.close()

    def record(self, msg: Message, counterparty: int):
        self.ledger.append(
            LogEntry(
                counterparty=counterparty,
                lamport_time=msg.lamport_timestamp,
                vector_time=msg.vector_timestamp,
                wall_time=msg.wall_time,
            )
        )
        self.logger.debug(f"Stored a message with timestamp {msg.lamport_timestamp}")

    def step(self) -> Action:
        action = self.policy(self.rng)
        if action is Action.SEND:
            self.send_money(self.random_peer())
        else:
            wait_ms = self.rng.randint(1, self.config.max_poll_wait_ms)
            self.drain_inbound(wait_ms / 1000)
        return action

    def event_loop(self, iterations: Optional[int] = None):
        # runs until the process is terminated unless bounded
        count = 0
        while iterations is None or count < iterations:
            self.step()
            count += 1
            time.sleep(self.config.tick_interval)

    def log_event(self, event: str):
        """Log an event using the dedicated peer logger."""
        self.logger.info(f"Event: {event}")

    def run(self):
        self.logger.info(
            f"Starting peer {self.peer_id} of {self.config.num_peers} "
            f"with seed {self.config.seed + self.peer_id}"
        )
        try:
            self.event_loop()
        finally:
            self.close()

    def close(self):
        self.selector.close()
        self.endpoints.close()


def run_peer(peer_id: int, topology: Topology, config: SimulationConfig):
    """Body of one peer process."""
    endpoints = topology.claim(peer_id)
    peer = Peer(peer_id, endpoints, config)
    try:
        peer.run()
    except KeyboardInterrupt:
        peer.logger.info("Interrupted")


def spawn_peers(config: SimulationConfig, target=run_peer) -> List[Optional[int]]:
    """
    Start one process per peer and wait for all of them.

    Children inherit the mesh through fork and each claims its own
    endpoints; the parent then drops its copies.
    """
    topology = Topology(config.num_peers)
    context = multiprocessing.get_context("fork")
    processes = [
        context.Process(
            target=target, args=(peer_id, topology, config), name=f"peer-{peer_id}"
        )
        for peer_id in range(config.num_peers)
    ]
    for process in processes:
        process.start()
    topology.close()
    for process in processes:
        process.join()
    return [process.exitcode for process in processes]


def exit_status(exit_codes) -> int:
    """First non-zero peer exit code, or 0 when every peer exited cleanly."""
    return next((code for code in exit_codes if code), 0)


def main(argv=None) -> int:
    config = load_config(argv)
    logging.basicConfig(level=logging.INFO)
    log = logging.getLogger(__name__)
    log.info(f"Starting mesh of {config.num_peers} peers with seed {config.seed}")
    exit_codes = spawn_peers(config)
    status = exit_status(exit_codes)
    if status:
        log.error(f"Peers exited with codes {exit_codes}")
    return status


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        time.sleep(1)
