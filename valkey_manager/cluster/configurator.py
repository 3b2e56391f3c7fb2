"""Apply a planned role to the local valkey instance.

Each call to :meth:`NodeConfigurator.configure` is a fresh attempt: the only
memory between attempts is what the store itself reports through
``CLUSTER INFO``. Every step is therefore guarded by a check against the live
state so that re-running an attempt never repeats work already done.
"""

from __future__ import annotations

import asyncio
from enum import Enum

import structlog

from valkey_manager.cluster import topology
from valkey_manager.cluster.errors import ConfigurationError, ManagerError
from valkey_manager.cluster.info import parse_cluster_info
from valkey_manager.cluster.readiness import PING_CHECK_INTERVAL, wait_ready
from valkey_manager.cluster.resolver import NameResolver
from valkey_manager.cluster.store import STORE_ERRORS, Connector, StoreClient, connect
from valkey_manager.cluster.topology import Role

logger = structlog.get_logger(__name__)


class ConfigState(Enum):
    START = "start"
    ROLE_DETERMINED = "role_determined"
    PRIMARY_CONFIGURING = "primary_configuring"
    REPLICA_CONFIGURING = "replica_configuring"
    DONE = "done"
    FAILED = "failed"


class NodeConfigurator:
    """Configures the local node as a primary or a replica."""

    def __init__(self, resolver: NameResolver, connector: Connector = connect,
                 ping_interval: float = PING_CHECK_INTERVAL):
        self.resolver = resolver
        self.connector = connector
        self.ping_interval = ping_interval

    async def configure(self, local: StoreClient, member_index: int, primary_count: int) -> ConfigState:
        """Run one configuration attempt and return the final state.

        Raises:
            ConfigurationError: when a step fatal to the attempt fails.
        """
        log = logger.bind(member_index=member_index, primary_count=primary_count)
        state = ConfigState.START

        def transition(new_state: ConfigState) -> None:
            nonlocal state
            log.debug("configuration_state", previous=state.value, current=new_state.value)
            state = new_state

        try:
            role = topology.role_for(member_index, primary_count)
            transition(ConfigState.ROLE_DETERMINED)

            if role is Role.PRIMARY:
                transition(ConfigState.PRIMARY_CONFIGURING)
                log.info("configuring_primary")
                await self.configure_primary(local, member_index, primary_count)
            else:
                transition(ConfigState.REPLICA_CONFIGURING)
                log.info("configuring_replica")
                await self.configure_replica(local, member_index, primary_count)
        except ManagerError:
            transition(ConfigState.FAILED)
            raise

        transition(ConfigState.DONE)
        return state

    async def configure_primary(self, local: StoreClient, member_index: int, primary_count: int) -> None:
        log = logger.bind(member_index=member_index)

        try:
            info = parse_cluster_info(await local.cluster_info())
        except (ManagerError, *STORE_ERRORS) as e:
            raise ConfigurationError(member_index, "cluster_info", e) from e

        if info.local_epoch > 0:
            log.debug("cluster_epoch_configured", epoch=info.local_epoch)
        else:
            epoch = member_index + 1
            log.info("setting_cluster_epoch", epoch=epoch)
            try:
                await local.set_config_epoch(epoch)
            except STORE_ERRORS as e:
                raise ConfigurationError(member_index, "set_config_epoch", e) from e

        if info.slots_assigned > 0:
            log.debug("slots_already_assigned", slots_assigned=info.slots_assigned)
        else:
            slots = topology.slot_range_for(member_index, primary_count)
            log.info("assigning_slots", first=slots.first, last=slots.last)
            try:
                await local.add_slots_range(slots.first, slots.last)
            except STORE_ERRORS as e:
                raise ConfigurationError(
                    member_index, f"add_slots_range {slots.first}-{slots.last}", e
                ) from e

        for peer_index in range(primary_count):
            if peer_index == member_index:
                continue
            await self._introduce_peer(local, member_index, peer_index)

    async def _introduce_peer(self, local: StoreClient, member_index: int, peer_index: int) -> None:
        log = logger.bind(member_index=member_index, peer_index=peer_index)
        try:
            peer = await self.resolver.resolve(peer_index)
            log.info("introducing_peer", peer=str(peer))
            await local.meet(peer.host, peer.port)
        except (ManagerError, *STORE_ERRORS) as e:
            # peer may still be starting; met again on a later pass
            log.warning("peer_introduction_failed", error=str(e))

    async def configure_replica(self, local: StoreClient, member_index: int, primary_count: int) -> None:
        primary_index = topology.primary_index_for(member_index, primary_count)
        log = logger.bind(member_index=member_index, primary_index=primary_index)

        try:
            primary_addr = await self.resolver.resolve(primary_index)
        except ManagerError as e:
            raise ConfigurationError(member_index, "resolve_primary", e) from e

        log.info("waiting_for_primary", primary=str(primary_addr))
        primary = await wait_ready(primary_addr, self.connector, self.ping_interval)

        try:
            log.info("attaching_to_primary", primary=str(primary_addr))
            try:
                await local.meet(primary_addr.host, primary_addr.port)
                primary_id = await primary.my_id()
            except STORE_ERRORS as e:
                raise ConfigurationError(member_index, "locate_primary", e) from e

            await self._await_handshake(local, member_index, primary_id)

            try:
                await local.replicate(primary_id)
            except STORE_ERRORS as e:
                raise ConfigurationError(
                    member_index, f"replicate {primary_addr} ({primary_id})", e
                ) from e
        finally:
            await primary.close()

        log.info("replica_configured", primary=str(primary_addr), primary_id=primary_id)

    async def _await_handshake(self, local: StoreClient, member_index: int, node_id: str) -> None:
        """Block until the local node knows ``node_id``.

        A freshly met node is listed under a temporary name until the gossip
        handshake completes, and ``CLUSTER REPLICATE`` rejects it until then.
        Polls at the readiness interval with no upper bound; cancelling the
        task interrupts the wait.
        """
        attempts = 0
        while True:
            attempts += 1
            try:
                known = await local.known_node_ids()
            except STORE_ERRORS as e:
                raise ConfigurationError(member_index, "cluster_nodes", e) from e
            if node_id in known:
                logger.debug("handshake_complete", member_index=member_index,
                             node_id=node_id, attempts=attempts)
                return
            logger.debug("handshake_pending", member_index=member_index,
                         node_id=node_id, attempts=attempts)
            await asyncio.sleep(self.ping_interval)
