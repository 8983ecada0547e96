# topology.py
import socket
from dataclasses import dataclass, field
from typing import Dict, List, Set, Tuple

# index of each end of a channel's socket pair
WRITE_END = 0
READ_END = 1


@dataclass
class Channel:
    """
    Socket pair carrying messages from peer `source` to peer `target`.

    The source writes `ends[WRITE_END]`, the target reads `ends[READ_END]`.
    """

    source: int
    target: int
    ends: Tuple[socket.socket, socket.socket]

    def close(self, end=None):
        indices = (WRITE_END, READ_END) if end is None else (end,)
        for i in indices:
            self.ends[i].close()


@dataclass
class PeerEndpoints:
    peer_id: int
    outbound: Dict[int, socket.socket] = field(default_factory=dict)
    inbound: Dict[int, socket.socket] = field(default_factory=dict)

    def close(self):
        for sock in list(self.outbound.values()) + list(self.inbound.values()):
            sock.close()


def owned_endpoints(peer_id: int, num_peers: int) -> Set[Tuple[int, int, int]]:
    """(source, target, end) triples a peer keeps once the mesh is handed out."""
    owned = set()
    for other in range(num_peers):
        if other == peer_id:
            continue
        owned.add((peer_id, other, WRITE_END))
        owned.add((other, peer_id, READ_END))
    return owned


class Topology:
    """
    Full mesh of point-to-point channels, one per ordered pair of peers.

    Diagonal channels exist only to keep the (i, j) indexing simple.
    """

    def __init__(self, num_peers: int):
        if num_peers < 2:
            raise ValueError(f"a mesh needs at least 2 peers, got {num_peers}")
        self.num_peers = num_peers
        self.channels: List[List[Channel]] = [
            [
                Channel(i, j, socket.socketpair(socket.AF_UNIX, socket.SOCK_STREAM))
                for j in range(num_peers)
            ]
            for i in range(num_peers)
        ]

    def channel(self, source: int, target: int) -> Channel:
        return self.channels[source][target]

    def claim(self, peer_id: int) -> PeerEndpoints:
        """
        Keep only the endpoints `peer_id` uses and close everything else.

        Called once in the peer's own process. Leftover foreign descriptors
        would keep channels half open and confuse readiness polling.
        """
        if not 0 <= peer_id < self.num_peers:
            raise ValueError(f"peer {peer_id} outside mesh of size {self.num_peers}")
        owned = owned_endpoints(peer_id, self.num_peers)
        endpoints = PeerEndpoints(peer_id)
        for row in self.channels:
            for channel in row:
                for end in (WRITE_END, READ_END):
                    if (channel.source, channel.target, end) not in owned:
                        channel.close(end)
                    elif end == WRITE_END:
                        endpoints.outbound[channel.target] = channel.ends[end]
                    else:
                        endpoints.inbound[channel.source] = channel.ends[end]
        return endpoints

    def close(self):
        for row in self.channels:
            for channel in row:
                channel.close()
