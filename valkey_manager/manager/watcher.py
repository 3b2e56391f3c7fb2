"""StatefulSet watcher.

Lists and watches the StatefulSet that runs valkey and turns Kubernetes watch
events into :mod:`valkey_manager.cluster.events`. The Kubernetes client is
blocking, so the watch runs on a daemon thread and hands each event to the
asyncio loop, waiting for it to be handled before reading the next one.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import threading
from typing import Any, Awaitable, Callable, Dict, Optional

import structlog
import urllib3
from kubernetes import client, config, watch
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException

from valkey_manager.cluster.events import Added, MembershipEvent, Removed, Updated

logger = structlog.get_logger(__name__)

DEFAULT_RESYNC = 60.0  # seconds
RETRY_DELAY = 5.0  # seconds

WATCH_ERRORS = (ApiException, urllib3.exceptions.HTTPError, OSError)

EventHandler = Callable[[MembershipEvent], Awaitable[None]]


def load_apps_api() -> client.AppsV1Api:
    """Build an AppsV1 client from the in-cluster service account.

    Falls back to the local kubeconfig when running outside a cluster.
    """
    try:
        config.load_incluster_config()
    except ConfigException:
        logger.info("incluster_config_unavailable", fallback="kubeconfig")
        config.load_kube_config()
    return client.AppsV1Api()


def replica_count(obj: Any) -> Optional[int]:
    spec = getattr(obj, "spec", None)
    replicas = getattr(spec, "replicas", None)
    if replicas is None:
        return None
    return int(replicas)


class StatefulSetWatcher:
    """Delivers membership events for the StatefulSets matching a selector."""

    def __init__(
        self,
        api: client.AppsV1Api,
        namespace: str,
        handler: EventHandler,
        label_selector: str = "",
        resync: float = DEFAULT_RESYNC,
        retry_delay: float = RETRY_DELAY,
    ):
        self.api = api
        self.namespace = namespace
        self.handler = handler
        self.label_selector = label_selector
        self.resync = resync
        self.retry_delay = retry_delay
        # StatefulSet name -> last observed replica count
        self._counts: Dict[str, Optional[int]] = {}
        self._stop = threading.Event()
        self._watch: Optional[watch.Watch] = None

    def translate(self, event_type: str, obj: Any) -> Optional[MembershipEvent]:
        """Convert one watch event, updating the replica counts seen so far."""
        name = obj.metadata.name
        count = replica_count(obj)

        if event_type == "ADDED":
            known = name in self._counts
            old = self._counts.get(name)
            self._counts[name] = count
            if known:
                return Updated(old, count)
            return Added(count)

        if event_type == "MODIFIED":
            old = self._counts.get(name)
            self._counts[name] = count
            return Updated(old, count)

        if event_type == "DELETED":
            self._counts.pop(name, None)
            return Removed()

        logger.debug("ignored_watch_event", type=event_type, name=name)
        return None

    async def run(self) -> None:
        """Watch until cancelled."""
        loop = asyncio.get_running_loop()
        done = loop.create_future()
        self._stop.clear()

        thread = threading.Thread(
            target=self._watch_forever,
            args=(loop, done),
            name="statefulset-watch",
            daemon=True,
        )
        thread.start()
        try:
            await done
        finally:
            self.stop()

    def stop(self) -> None:
        self._stop.set()
        if self._watch is not None:
            self._watch.stop()

    def _watch_forever(self, loop: asyncio.AbstractEventLoop, done: asyncio.Future) -> None:
        log = logger.bind(namespace=self.namespace, label_selector=self.label_selector)
        log.info("statefulset_watch_started", resync=self.resync)
        try:
            while not self._stop.is_set():
                try:
                    self._list_and_watch(loop)
                except ApiException as e:
                    if e.status == 410:
                        # resource version expired; re-list right away
                        log.info("statefulset_watch_expired")
                        continue
                    log.error("statefulset_watch_failed", status=e.status, error=str(e))
                    self._stop.wait(self.retry_delay)
                except WATCH_ERRORS as e:
                    log.error("statefulset_watch_failed", error=str(e))
                    self._stop.wait(self.retry_delay)
        except concurrent.futures.CancelledError:
            log.info("statefulset_watch_cancelled")
        finally:
            log.info("statefulset_watch_stopped")
            try:
                loop.call_soon_threadsafe(_resolve, done)
            except RuntimeError:
                # loop already closed during shutdown
                pass

    def _list_and_watch(self, loop: asyncio.AbstractEventLoop) -> None:
        listed = self.api.list_namespaced_stateful_set(
            self.namespace, label_selector=self.label_selector
        )
        for obj in listed.items:
            self._dispatch(loop, self.translate("ADDED", obj))
            if self._stop.is_set():
                return

        self._watch = watch.Watch()
        for raw in self._watch.stream(
            self.api.list_namespaced_stateful_set,
            self.namespace,
            label_selector=self.label_selector,
            resource_version=listed.metadata.resource_version,
            timeout_seconds=max(1, int(self.resync)),
        ):
            if self._stop.is_set():
                break
            event_type = raw.get("type")
            if event_type == "ERROR":
                raw_object = raw.get("raw_object") or {}
                raise ApiException(status=raw_object.get("code"), reason=raw_object.get("message"))
            self._dispatch(loop, self.translate(event_type, raw["object"]))

    def _dispatch(self, loop: asyncio.AbstractEventLoop, event: Optional[MembershipEvent]) -> None:
        if event is None:
            return
        future = asyncio.run_coroutine_threadsafe(self.handler(event), loop)
        try:
            future.result()
        except concurrent.futures.CancelledError:
            self._stop.set()
            raise
        except Exception:
            logger.exception("membership_handler_failed", membership_event=repr(event))


def _resolve(done: asyncio.Future) -> None:
    if not done.done():
        done.set_result(None)
