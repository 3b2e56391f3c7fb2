"""Shared fakes for the cluster tests (no network, no Kubernetes)."""

import asyncio
from collections import Counter
from typing import Dict, List, Optional, Set, Tuple

import pytest
import redis

from valkey_manager.cluster.resolver import StaticResolver
from valkey_manager.cluster.store import Address


FRESH_INFO = (
    "cluster_state:fail\r\n"
    "cluster_slots_assigned:0\r\n"
    "cluster_known_nodes:1\r\n"
    "cluster_size:0\r\n"
    "cluster_current_epoch:0\r\n"
    "cluster_my_epoch:0\r\n"
)


def info_text(slots_assigned: int = 0, my_epoch: int = 0, state: str = "fail") -> str:
    return (
        f"cluster_state:{state}\r\n"
        f"cluster_slots_assigned:{slots_assigned}\r\n"
        "cluster_known_nodes:1\r\n"
        f"cluster_current_epoch:{my_epoch}\r\n"
        f"cluster_my_epoch:{my_epoch}\r\n"
    )


class FakeStore:
    """In-memory stand-in for a StoreClient, counting every command."""

    def __init__(self, address: Address, node_id: str = "", info: str = FRESH_INFO):
        self.address = address
        self.node_id = node_id or f"id-{address.host}"
        self.info = info
        self.alive = True
        self.calls: Counter = Counter()
        self.failing: Set[str] = set()
        self.unreachable_peers: Set[str] = set()
        self.epochs: List[int] = []
        self.slot_ranges: List[Tuple[int, int]] = []
        self.met: List[Tuple[str, int]] = []
        self.replicated: List[str] = []
        self.closed = 0
        self.delay = 0.0
        # host -> node id of every store this one could meet
        self.directory: Dict[str, str] = {}
        # CLUSTER NODES polls that still show met peers mid-handshake
        self.handshake_polls = 0
        self.known: Set[str] = {self.node_id}

    def _call(self, name: str) -> None:
        self.calls[name] += 1
        if name in self.failing:
            raise redis.ResponseError(f"ERR {name} refused")

    async def ping(self) -> bool:
        self.calls["ping"] += 1
        if not self.alive:
            raise redis.ConnectionError("Connection refused")
        return True

    async def cluster_info(self) -> str:
        self._call("cluster_info")
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.info

    async def set_config_epoch(self, epoch: int) -> None:
        self._call("set_config_epoch")
        self.epochs.append(epoch)

    async def add_slots_range(self, first: int, last: int) -> None:
        self._call("add_slots_range")
        self.slot_ranges.append((first, last))

    async def meet(self, host: str, port: int) -> None:
        self._call("meet")
        if host in self.unreachable_peers:
            raise redis.ConnectionError(f"cannot reach {host}")
        self.met.append((host, port))

    async def my_id(self) -> str:
        self._call("my_id")
        return self.node_id

    async def known_node_ids(self) -> Set[str]:
        self._call("known_node_ids")
        known = {self.node_id}
        if self.calls["known_node_ids"] > self.handshake_polls:
            known.update(self.directory[host] for host, _ in self.met if host in self.directory)
        self.known = known
        return known

    async def replicate(self, node_id: str) -> None:
        self._call("replicate")
        if node_id not in self.known:
            raise redis.ResponseError(f"ERR Unknown node {node_id}")
        self.replicated.append(node_id)

    async def close(self) -> None:
        self.closed += 1


class FakeCluster:
    """A set of fake stores addressed like StatefulSet members."""

    def __init__(self, size: int, local: Optional[Address] = None):
        self.members: Dict[int, FakeStore] = {
            i: FakeStore(Address(f"valkey-{i}", 6379)) for i in range(size)
        }
        self.local_address = local or Address("127.0.0.1", 6379)
        self.local: Optional[FakeStore] = None
        self.connects: Counter = Counter()
        directory = {s.address.host: s.node_id for s in self.members.values()}
        for store in self.members.values():
            store.directory = directory

    def use_local(self, index: int) -> FakeStore:
        """Make ``local_address`` reach member ``index``."""
        self.local = self.members[index]
        return self.local

    def connect(self, address: Address) -> FakeStore:
        self.connects[address] += 1
        if address == self.local_address and self.local is not None:
            return self.local
        for store in self.members.values():
            if store.address == address:
                return store
        unknown = FakeStore(address)
        unknown.alive = False
        return unknown

    @property
    def resolver(self) -> StaticResolver:
        return StaticResolver({i: s.address for i, s in self.members.items()})


@pytest.fixture
def fake_cluster():
    return FakeCluster(size=6)
