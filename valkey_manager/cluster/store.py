"""Thin async client for the administrative commands the manager issues.

Wraps a ``redis.asyncio.Redis`` connection to a single valkey instance and
exposes only the cluster-management commands needed to form the topology.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional

import redis.asyncio as redis
import structlog
from redis.exceptions import RedisError

logger = structlog.get_logger(__name__)

DEFAULT_PORT = 6379

# Errors a store call may raise: protocol/command errors from the client
# library and socket-level failures.
STORE_ERRORS = (RedisError, OSError)


@dataclass(frozen=True)
class Address:
    host: str
    port: int = DEFAULT_PORT

    def __str__(self) -> str:
        if ":" in self.host:
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"


class StoreClient:
    """Administrative client for one valkey instance."""

    def __init__(self, address: Address, connection: Optional[redis.Redis] = None):
        self.address = address
        if connection is None:
            connection = redis.Redis(
                host=address.host,
                port=address.port,
                decode_responses=True,
            )
        self._redis = connection

    async def ping(self) -> bool:
        return bool(await self._redis.ping())

    async def cluster_info(self) -> str:
        """Return the raw ``CLUSTER INFO`` report."""
        result = await self._redis.execute_command("CLUSTER", "INFO")
        return _as_text(result)

    async def set_config_epoch(self, epoch: int) -> None:
        await self._redis.execute_command("CLUSTER", "SET-CONFIG-EPOCH", epoch)

    async def add_slots_range(self, first: int, last: int) -> None:
        await self._redis.execute_command("CLUSTER", "ADDSLOTSRANGE", first, last)

    async def meet(self, host: str, port: int) -> None:
        await self._redis.execute_command("CLUSTER", "MEET", host, port)

    async def my_id(self) -> str:
        return _as_text(await self._redis.execute_command("CLUSTER", "MYID")).strip()

    async def known_node_ids(self) -> set[str]:
        """Ids of the nodes this instance has finished a handshake with, itself included."""
        result = await self._redis.execute_command("CLUSTER", "NODES")
        return _node_ids(result)

    async def replicate(self, node_id: str) -> None:
        await self._redis.execute_command("CLUSTER", "REPLICATE", node_id)

    async def close(self) -> None:
        try:
            await self._redis.aclose()
        except STORE_ERRORS as e:
            logger.debug("store_close_failed", address=str(self.address), error=str(e))

    def __repr__(self) -> str:
        return f"StoreClient({self.address})"


# Factory used to open a client to a given address.
Connector = Callable[[Address], StoreClient]


def connect(address: Address) -> StoreClient:
    return StoreClient(address)


def _as_text(result: Any) -> str:
    if isinstance(result, bytes):
        return result.decode("utf-8", errors="replace")
    if isinstance(result, Mapping):
        # Some client versions parse CLUSTER INFO into a dict.
        return "\n".join(f"{k}:{v}" for k, v in result.items())
    return str(result)


def _node_ids(result: Any) -> set[str]:
    if isinstance(result, Mapping):
        # parsed form: {"host:port": {"node_id": ..., "flags": ...}}
        entries = [(v.get("node_id", ""), v.get("flags", "")) for v in result.values()]
    else:
        entries = []
        for line in _as_text(result).splitlines():
            fields = line.split()
            if len(fields) >= 3:
                entries.append((fields[0], fields[2]))
    return {
        node_id for node_id, flags in entries
        if node_id and "handshake" not in flags and "noaddr" not in flags
    }
