"""Reconciliation controller.

Re-derives and re-applies the desired cluster configuration whenever the
declared member count of the StatefulSet changes. Attempts are serialized;
the outcome of the latest attempt is recorded in a :class:`ReconciliationState`
shared with the health surface.
"""

from __future__ import annotations

import asyncio
import threading
from typing import Optional

import structlog

from valkey_manager.cluster import topology
from valkey_manager.cluster.configurator import NodeConfigurator
from valkey_manager.cluster.errors import ConfigurationError, ManagerError, PreconditionError
from valkey_manager.cluster.events import Added, MembershipEvent, Removed, Updated
from valkey_manager.cluster.readiness import wait_ready
from valkey_manager.cluster.store import STORE_ERRORS, Address

logger = structlog.get_logger(__name__)


class ReconciliationState:
    """Whether the cluster was configured successfully by the last attempt."""

    def __init__(self) -> None:
        self._configured = False
        self._lock = threading.Lock()

    @property
    def configured(self) -> bool:
        with self._lock:
            return self._configured

    def mark(self, configured: bool) -> None:
        with self._lock:
            self._configured = configured


class ReconciliationController:
    def __init__(
        self,
        member_index: int,
        configurator: NodeConfigurator,
        local_address: Address,
        state: Optional[ReconciliationState] = None,
    ):
        if member_index < 0:
            raise PreconditionError(f"member index must not be negative, got {member_index}")
        self.member_index = member_index
        self.configurator = configurator
        self.local_address = local_address
        self.state = state or ReconciliationState()
        self._lock = asyncio.Lock()
        self._log = logger.bind(member_index=member_index)

    def is_configured(self) -> bool:
        return self.state.configured

    async def handle_event(self, event: MembershipEvent) -> None:
        """Single entry point for membership changes."""
        if isinstance(event, Added):
            await self.reconcile(event.count)
        elif isinstance(event, Updated):
            if not event.count_changed:
                # we only care about changes in member counts
                return
            self._log.info("member_count_changed", old=event.old_count, new=event.new_count)
            await self.reconcile(event.new_count)
        elif isinstance(event, Removed):
            self._log.warning("statefulset_removed")
        else:
            self._log.error("unknown_membership_event", membership_event=repr(event))

    async def reconcile(self, total_count: Optional[int]) -> bool:
        """Run one configuration attempt for ``total_count`` members.

        Returns whether the attempt succeeded. Failures are logged and
        recorded, never raised: the next membership event or a restart
        retries.
        """
        if total_count is None or total_count < 1:
            self._log.error("member_count_unavailable", count=total_count)
            return False

        async with self._lock:
            try:
                await self._configure(total_count)
            except ConfigurationError as e:
                self._log.error(
                    "reconciliation_failed",
                    operation=e.operation,
                    error=str(e),
                )
                self.state.mark(False)
                return False
            except (ManagerError, *STORE_ERRORS) as e:
                self._log.error("reconciliation_failed", error=str(e))
                self.state.mark(False)
                return False

            self.state.mark(True)
            self._log.info("reconciliation_succeeded", total_count=total_count)
            return True

    async def _configure(self, total_count: int) -> None:
        plan = topology.plan_group(total_count)
        self._log.info(
            "topology_planned",
            total_count=total_count,
            primaries=plan.primary_count,
            replicas=plan.replica_count,
        )

        local = await wait_ready(self.local_address, self.configurator.connector,
                                 self.configurator.ping_interval)
        self._log.info("local_store_alive", address=str(self.local_address))
        try:
            await self.configurator.configure(local, self.member_index, plan.primary_count)
        finally:
            await local.close()
