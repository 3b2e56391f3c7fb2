"""Readiness gate: wait until a valkey instance answers PING."""

from __future__ import annotations

import asyncio

import structlog

from valkey_manager.cluster.store import STORE_ERRORS, Address, Connector, StoreClient, connect

logger = structlog.get_logger(__name__)

PING_CHECK_INTERVAL = 1.0  # seconds


async def wait_ready(
    address: Address,
    connector: Connector = connect,
    interval: float = PING_CHECK_INTERVAL,
) -> StoreClient:
    """Block until the instance at ``address`` answers PING.

    Retries without bound, sleeping ``interval`` seconds between attempts.
    Returns the connected client so the caller can keep using it. Cancelling
    the awaiting task interrupts the sleep immediately and raises
    ``asyncio.CancelledError``.
    """
    while True:
        client = connector(address)
        try:
            if await client.ping():
                logger.debug("store_ready", address=str(address))
                return client
            reason = "unexpected ping reply"
        except asyncio.CancelledError:
            await client.close()
            raise
        except STORE_ERRORS as e:
            reason = str(e)

        await client.close()
        logger.debug(
            "waiting_for_store",
            address=str(address),
            reason=reason,
            wait=interval,
        )
        await asyncio.sleep(interval)
