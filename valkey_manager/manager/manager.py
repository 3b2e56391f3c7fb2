"""Manager process orchestration.

Responsibilities:
- Build the name resolver, reconciliation controller and watcher from settings
- Serve the health endpoints
- Watch the StatefulSet and reconcile on every member count change
"""

from __future__ import annotations

import asyncio
import contextlib
from typing import Optional

import uvicorn

from valkey_manager.api.health import create_health_app
from valkey_manager.cluster.configurator import NodeConfigurator
from valkey_manager.cluster.controller import ReconciliationController, ReconciliationState
from valkey_manager.cluster.resolver import DNSResolver, HostnameResolver, NameResolver
from valkey_manager.cluster.store import Address
from valkey_manager.config.settings import Settings
from valkey_manager.manager.watcher import StatefulSetWatcher, load_apps_api
from valkey_manager.utils.logging_config import get_logger


def build_resolver(settings: Settings) -> NameResolver:
    resolver_cls = DNSResolver if settings.RESOLVER == "dns" else HostnameResolver
    return resolver_cls(
        prefix=settings.NODE_NAME_PREFIX,
        port=settings.VALKEY_PORT,
        domain=settings.SERVICE_DOMAIN,
    )


class HealthServer(uvicorn.Server):
    """uvicorn server that leaves SIGINT/SIGTERM to the process entry point."""

    @contextlib.contextmanager
    def capture_signals(self):
        yield

    def install_signal_handlers(self) -> None:
        pass


class Manager:
    """Configures the runtime cluster dynamics of one valkey StatefulSet member."""

    def __init__(self, settings: Settings, apps_api=None, resolver: Optional[NameResolver] = None):
        self.settings = settings
        self.state = ReconciliationState()
        self.controller = ReconciliationController(
            member_index=settings.INDEX,
            configurator=NodeConfigurator(
                resolver or build_resolver(settings),
                ping_interval=settings.PING_INTERVAL,
            ),
            local_address=Address(settings.LOCAL_ADDRESS, settings.VALKEY_PORT),
            state=self.state,
        )
        self._apps_api = apps_api
        self._logger = get_logger(__name__)

    def build_watcher(self) -> StatefulSetWatcher:
        return StatefulSetWatcher(
            api=self._apps_api or load_apps_api(),
            namespace=self.settings.NAMESPACE,
            handler=self.controller.handle_event,
            label_selector=self.settings.LABEL_SELECTOR,
            resync=self.settings.DEFAULT_RESYNC,
        )

    def build_health_server(self) -> HealthServer:
        app = create_health_app(self.state, member_index=self.settings.INDEX)
        server = HealthServer(uvicorn.Config(
            app,
            host=self.settings.listen_host,
            port=self.settings.listen_port,
            log_level="warning",
            access_log=False,
        ))
        return server

    async def run(self) -> None:
        """Serve health and watch the StatefulSet until cancelled."""
        watcher = self.build_watcher()
        server = self.build_health_server()

        self._logger.info(
            "manager_started",
            namespace=self.settings.NAMESPACE,
            label_selector=self.settings.LABEL_SELECTOR or None,
            listen=self.settings.LISTEN_ADDR,
        )

        tasks = [
            asyncio.create_task(server.serve(), name="health"),
            asyncio.create_task(watcher.run(), name="watch"),
        ]
        try:
            done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
            for task in done:
                if not task.cancelled() and task.exception() is not None:
                    raise task.exception()
            # only reached when a component stops on its own
            self._logger.info("manager_stopping", component=[t.get_name() for t in done])
        finally:
            server.should_exit = True
            watcher.stop()
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            self._logger.info("manager_stopped")
