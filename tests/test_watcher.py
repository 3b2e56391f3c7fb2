"""Tests for the StatefulSet watcher (fake Kubernetes API)."""

import asyncio
import time
from types import SimpleNamespace

import pytest
from kubernetes.client.rest import ApiException

from valkey_manager.cluster.events import Added, Removed, Updated
from valkey_manager.manager import watcher as watcher_module
from valkey_manager.manager.watcher import StatefulSetWatcher, replica_count


def statefulset(name="valkey", replicas=3):
    return SimpleNamespace(
        metadata=SimpleNamespace(name=name),
        spec=SimpleNamespace(replicas=replicas),
    )


class FakeApi:
    def __init__(self, items=None):
        self.items = items or []
        self.calls = []

    def list_namespaced_stateful_set(self, namespace, **kwargs):
        self.calls.append((namespace, kwargs))
        return SimpleNamespace(items=self.items, metadata=SimpleNamespace(resource_version="42"))


class FakeWatch:
    events = []
    streams = []

    def __init__(self):
        self.stopped = False

    def stream(self, func, *args, **kwargs):
        FakeWatch.streams.append(kwargs)
        for event in FakeWatch.events:
            yield event
        time.sleep(0.01)

    def stop(self):
        self.stopped = True


@pytest.fixture
def fake_watch(monkeypatch):
    FakeWatch.events = []
    FakeWatch.streams = []
    monkeypatch.setattr(watcher_module.watch, "Watch", FakeWatch)
    return FakeWatch


async def _noop(event):
    pass


class TestTranslate:
    def test_first_add_then_updates(self):
        w = StatefulSetWatcher(FakeApi(), "default", _noop)

        assert w.translate("ADDED", statefulset(replicas=3)) == Added(3)
        assert w.translate("MODIFIED", statefulset(replicas=5)) == Updated(3, 5)
        assert w.translate("MODIFIED", statefulset(replicas=5)) == Updated(5, 5)

    def test_relisted_object_is_an_update(self):
        w = StatefulSetWatcher(FakeApi(), "default", _noop)
        w.translate("ADDED", statefulset(replicas=4))

        event = w.translate("ADDED", statefulset(replicas=4))

        assert event == Updated(4, 4)
        assert not event.count_changed

    def test_delete_forgets_object(self):
        w = StatefulSetWatcher(FakeApi(), "default", _noop)
        w.translate("ADDED", statefulset(replicas=2))

        assert w.translate("DELETED", statefulset(replicas=2)) == Removed()
        assert w.translate("ADDED", statefulset(replicas=2)) == Added(2)

    def test_missing_replicas(self):
        w = StatefulSetWatcher(FakeApi(), "default", _noop)

        assert replica_count(SimpleNamespace(spec=None)) is None
        assert w.translate("ADDED", statefulset(replicas=None)) == Added(None)

    def test_bookmarks_are_ignored(self):
        w = StatefulSetWatcher(FakeApi(), "default", _noop)

        assert w.translate("BOOKMARK", statefulset()) is None


@pytest.mark.asyncio
async def test_list_and_watch_delivers_events(fake_watch):
    fake_watch.events = [
        {"type": "MODIFIED", "object": statefulset(replicas=5)},
        {"type": "DELETED", "object": statefulset(replicas=5)},
    ]
    api = FakeApi(items=[statefulset(replicas=3)])
    handled = []

    async def handler(event):
        handled.append(event)

    w = StatefulSetWatcher(api, "cache", handler, label_selector="app=valkey", resync=30)
    await asyncio.to_thread(w._list_and_watch, asyncio.get_running_loop())

    assert handled == [Added(3), Updated(3, 5), Removed()]
    assert api.calls == [("cache", {"label_selector": "app=valkey"})]
    assert fake_watch.streams == [
        {"label_selector": "app=valkey", "resource_version": "42", "timeout_seconds": 30}
    ]


@pytest.mark.asyncio
async def test_watch_error_event_raises(fake_watch):
    fake_watch.events = [{"type": "ERROR", "raw_object": {"code": 410, "message": "too old"}}]
    w = StatefulSetWatcher(FakeApi(), "default", _noop)

    with pytest.raises(ApiException) as exc:
        await asyncio.to_thread(w._list_and_watch, asyncio.get_running_loop())

    assert exc.value.status == 410


@pytest.mark.asyncio
async def test_handler_failure_does_not_stop_watch(fake_watch):
    fake_watch.events = [{"type": "MODIFIED", "object": statefulset(replicas=4)}]
    seen = []

    async def handler(event):
        seen.append(event)
        raise RuntimeError("boom")

    w = StatefulSetWatcher(FakeApi(items=[statefulset(replicas=2)]), "default", handler)
    await asyncio.to_thread(w._list_and_watch, asyncio.get_running_loop())

    assert seen == [Added(2), Updated(2, 4)]


@pytest.mark.asyncio
async def test_run_stops_when_cancelled(fake_watch):
    w = StatefulSetWatcher(FakeApi(), "default", _noop)

    task = asyncio.create_task(w.run())
    await asyncio.sleep(0.05)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert w._stop.is_set()
