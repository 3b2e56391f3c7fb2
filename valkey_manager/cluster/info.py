"""Parser for the output of the valkey ``CLUSTER INFO`` command.

The report is a line-oriented ``key:value`` text blob::

    cluster_state:ok
    cluster_slots_assigned:16384
    cluster_known_nodes:6
    cluster_size:3
    cluster_current_epoch:6
    cluster_my_epoch:2

The parser is tolerant: the set of fields differs between store versions, so
lines it cannot understand are skipped rather than rejected.
"""

from __future__ import annotations

from enum import Enum
from types import MappingProxyType
from typing import Iterator, Mapping, Union

import structlog

from valkey_manager.cluster.errors import ClusterInfoParseError

logger = structlog.get_logger(__name__)

STATE_KEY = "cluster_state"
CURRENT_EPOCH_KEY = "cluster_current_epoch"
MY_EPOCH_KEY = "cluster_my_epoch"
KNOWN_NODES_KEY = "cluster_known_nodes"
SIZE_KEY = "cluster_size"
SLOTS_ASSIGNED_KEY = "cluster_slots_assigned"

# Returned by the integer accessors when a field is absent or malformed.
UNKNOWN = -1


class ClusterState(Enum):
    """State of the cluster, as reported by ``cluster_state``."""
    OK = "ok"
    FAIL = "fail"
    UNKNOWN = "unknown"


class ClusterInfo(Mapping[str, str]):
    """Immutable snapshot of the cluster, as seen from a single node."""

    def __init__(self, fields: Mapping[str, str]):
        self._fields = MappingProxyType(dict(fields))

    @classmethod
    def from_string(cls, text: Union[str, bytes]) -> "ClusterInfo":
        return parse_cluster_info(text)

    def __getitem__(self, key: str) -> str:
        return self._fields[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._fields)

    def __len__(self) -> int:
        return len(self._fields)

    def __repr__(self) -> str:
        return f"ClusterInfo({dict(self._fields)!r})"

    @property
    def state(self) -> ClusterState:
        value = self._fields.get(STATE_KEY)
        if value is None:
            logger.debug("cluster_info_field_missing", field=STATE_KEY)
            return ClusterState.UNKNOWN
        try:
            return ClusterState(value)
        except ValueError:
            logger.debug("cluster_info_field_invalid", field=STATE_KEY, value=value)
            return ClusterState.UNKNOWN

    @property
    def current_epoch(self) -> int:
        return self._get_int(CURRENT_EPOCH_KEY)

    @property
    def local_epoch(self) -> int:
        """Config epoch of this node.

        Older stores do not report ``cluster_my_epoch``; the cluster-wide
        current epoch is used in that case.
        """
        if MY_EPOCH_KEY in self._fields:
            return self._get_int(MY_EPOCH_KEY)
        return self._get_int(CURRENT_EPOCH_KEY)

    @property
    def known_nodes(self) -> int:
        return self._get_int(KNOWN_NODES_KEY)

    @property
    def size(self) -> int:
        """Number of primaries serving at least one slot."""
        return self._get_int(SIZE_KEY)

    @property
    def slots_assigned(self) -> int:
        """Number of slots assigned to any node in the cluster."""
        return self._get_int(SLOTS_ASSIGNED_KEY)

    def _get_int(self, key: str) -> int:
        value = self._fields.get(key)
        if value is None:
            logger.debug("cluster_info_field_missing", field=key)
            return UNKNOWN
        try:
            return int(value)
        except ValueError:
            logger.debug("cluster_info_field_invalid", field=key, value=value)
            return UNKNOWN


def parse_cluster_info(text: Union[str, bytes]) -> ClusterInfo:
    """Parse a ``CLUSTER INFO`` report.

    Raises:
        ClusterInfoParseError: if not a single ``key:value`` line was found.
    """
    if isinstance(text, bytes):
        text = text.decode("utf-8", errors="replace")

    fields: dict[str, str] = {}
    for raw in (text or "").splitlines():
        line = raw.strip()
        if not line:
            continue
        pieces = line.split(":")
        if len(pieces) != 2 or not pieces[0]:
            logger.warning("unhandled_cluster_info_line", text=line)
            continue
        fields[pieces[0]] = pieces[1]

    if not fields:
        raise ClusterInfoParseError("no cluster info found")

    return ClusterInfo(fields)
