"""Name resolution for StatefulSet members.

Two strategies are used in practice: addressing a member directly by its
in-cluster hostname (``valkey-2`` or ``valkey-2.valkey.default.svc``), or
looking up the per-member DNS record and using its IP address, which
``CLUSTER MEET`` requires on stores that do not accept hostnames. A static
table is provided for tests and fixed deployments.
"""

from __future__ import annotations

import asyncio
import socket
from typing import Dict, Optional, Protocol

import structlog

from valkey_manager.cluster.errors import ResolutionError
from valkey_manager.cluster.store import DEFAULT_PORT, Address

logger = structlog.get_logger(__name__)

NODE_NAME_PREFIX = "valkey-"


class NameResolver(Protocol):
    async def resolve(self, index: int) -> Address:
        """Return an address reachable for the member at ``index``."""
        ...


def node_name(index: int, prefix: str = NODE_NAME_PREFIX) -> str:
    return f"{prefix}{index}"


class HostnameResolver:
    """Address members by their StatefulSet hostname."""

    def __init__(self, prefix: str = NODE_NAME_PREFIX, port: int = DEFAULT_PORT,
                 domain: Optional[str] = None):
        self.prefix = prefix
        self.port = port
        self.domain = domain.strip(".") if domain else None

    def hostname(self, index: int) -> str:
        name = node_name(index, self.prefix)
        if self.domain:
            return f"{name}.{self.domain}"
        return name

    async def resolve(self, index: int) -> Address:
        if index < 0:
            raise ResolutionError(index, "negative member index")
        return Address(self.hostname(index), self.port)


class DNSResolver(HostnameResolver):
    """Look up the member's DNS record and address it by IP."""

    async def resolve(self, index: int) -> Address:
        hostname = (await super().resolve(index)).host
        loop = asyncio.get_running_loop()
        try:
            infos = await loop.getaddrinfo(hostname, self.port, type=socket.SOCK_STREAM)
        except OSError as e:
            raise ResolutionError(index, f"lookup of {hostname} failed: {e}") from e

        if not infos:
            raise ResolutionError(index, f"no records for {hostname}")

        ip = infos[0][4][0]
        logger.debug("member_resolved", index=index, hostname=hostname, ip=ip)
        return Address(ip, self.port)


class StaticResolver:
    """Resolve members from a fixed index -> address table."""

    def __init__(self, table: Dict[int, Address]):
        self.table = dict(table)

    async def resolve(self, index: int) -> Address:
        try:
            return self.table[index]
        except KeyError:
            raise ResolutionError(index, "no static address configured") from None
