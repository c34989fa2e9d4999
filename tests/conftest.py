"""Pytest configuration and shared fixtures."""

import json
import sys
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import pytest

from proxy_resync.errors import ClusterError, ErrorKind
from proxy_resync.etcdctl import LEADER_CHANGED_MESSAGE, UNHEALTHY_MESSAGE, KeyValue, MemberRecord
from proxy_resync.process import ProcessHandle, spawn
from proxy_resync.settings import Settings

FAKE_ETCD = Path(__file__).parent / "fakes" / "fake_etcd.py"


class FakeCluster:
    """In-memory control plane shared by every client created from it.

    Membership changes are published to ``members_file`` as a JSON list of
    client URLs, which the fake grpc-proxy watches.
    """

    def __init__(self,
                 members_file: Path,
                 client_urls: Dict[str, str],
                 unhealthy_removals: int = 0,
                 leader_changes: int = 0) -> None:
        self.members_file = members_file
        self.client_urls = client_urls
        self.unhealthy_removals = unhealthy_removals
        self.leader_changes = leader_changes
        self.kv: Dict[str, str] = {}
        self.members: List[MemberRecord] = []
        self.calls: List[Tuple[str, ...]] = []
        self.override_values: Optional[List[KeyValue]] = None
        self._next_id = 0x8e9e05c52164694d

    def seed(self, name: str, peer_url: str) -> MemberRecord:
        return self._add(name, [peer_url])

    def _add(self, name: str, peer_urls: Sequence[str]) -> MemberRecord:
        member = MemberRecord(id=self._next_id, name=name, peer_urls=list(peer_urls),
                              client_urls=[self.client_urls[name]])
        self._next_id += 0x1111
        self.members.append(member)
        self.publish()
        return member

    def publish(self) -> None:
        urls = [m.client_urls[0] for m in self.members if m.client_urls]
        self.members_file.write_text(json.dumps(urls))

    def client(self, endpoints: Sequence[str]) -> "FakeControlPlaneClient":
        return FakeControlPlaneClient(self, endpoints)


class FakeControlPlaneClient:
    def __init__(self, cluster: FakeCluster, endpoints: Sequence[str]) -> None:
        self.cluster = cluster
        self.endpoints = list(endpoints)

    async def put(self, key: str, value: str) -> None:
        self.cluster.calls.append(("put", key, value))
        self.cluster.kv[key] = value

    async def get(self, key: str) -> List[KeyValue]:
        self.cluster.calls.append(("get", key))
        if self.cluster.leader_changes > 0:
            self.cluster.leader_changes -= 1
            raise ClusterError(ErrorKind.LEADER_CHANGED, LEADER_CHANGED_MESSAGE)
        if self.cluster.override_values is not None:
            return self.cluster.override_values
        if key not in self.cluster.kv:
            return []
        return [KeyValue(key=key, value=self.cluster.kv[key])]

    async def member_add(self, name: str, peer_urls: Sequence[str]) -> MemberRecord:
        self.cluster.calls.append(("member_add", name))
        return self.cluster._add(name, peer_urls)

    async def member_remove(self, member_id: int) -> None:
        self.cluster.calls.append(("member_remove", f"{member_id:x}"))
        if self.cluster.unhealthy_removals > 0:
            self.cluster.unhealthy_removals -= 1
            raise ClusterError(ErrorKind.UNHEALTHY, UNHEALTHY_MESSAGE)
        remaining = [m for m in self.cluster.members if m.id != member_id]
        if len(remaining) == len(self.cluster.members):
            raise ClusterError(ErrorKind.OTHER, "etcdserver: member not found")
        self.cluster.members = remaining
        self.cluster.publish()

    async def member_list(self) -> List[MemberRecord]:
        self.cluster.calls.append(("member_list",))
        return list(self.cluster.members)


@pytest.fixture
def settings() -> Settings:
    """Settings tuned for fast runs against the fake etcd."""
    return Settings(
        etcd_bin="etcd",
        proxy_health_check=False,
        ready_timeout_seconds=5.0,
        sync_timeout_seconds=5.0,
        stop_grace_seconds=2.0,
        retry_attempts=10,
        retry_delay_seconds=0.0,
    )


@pytest.fixture
def members_file(tmp_path) -> Path:
    return tmp_path / "members.json"


@pytest.fixture
def fake_cluster(settings, members_file) -> FakeCluster:
    cluster = FakeCluster(members_file, {
        settings.node1_name: settings.node1_client_url,
        settings.node2_name: settings.node2_client_url,
    })
    cluster.seed(settings.node1_name, settings.node1_peer_url)
    return cluster


@pytest.fixture
def make_spawner(members_file):
    """Build a spawner that runs the fake etcd script instead of the real binary.

    ``modes`` maps a process name to a ``FAKE_ETCD_MODE`` value. Every handle
    spawned is appended to the returned spawner's ``handles`` list.
    """
    def factory(modes: Optional[Dict[str, str]] = None):
        modes = modes or {}

        async def spawner(command, args=(), env=None, name=None) -> ProcessHandle:
            fake_env = dict(env or {})
            fake_env["FAKE_ETCD_MEMBERS_FILE"] = str(members_file)
            if name in modes:
                fake_env["FAKE_ETCD_MODE"] = modes[name]
            handle = await spawn(sys.executable, [str(FAKE_ETCD), *args], env=fake_env, name=name)
            spawner.handles.append(handle)
            return handle

        spawner.handles = []
        return spawner

    return factory

