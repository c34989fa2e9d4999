"""The grpc-proxy endpoint auto-sync scenario."""

from __future__ import annotations

import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import AsyncIterator, Callable, List, Optional, Sequence

from proxy_resync.cluster import ClusterNode, ClusterState, initial_cluster, start_node
from proxy_resync.errors import AssertionFailure, ErrorKind, ScenarioFailure
from proxy_resync.etcdctl import ControlPlaneClient, EtcdctlClient, KeyValue
from proxy_resync.log_collector import LogCollector
from proxy_resync.membership import (
    add_member,
    find_member_by_client_endpoint,
    list_members,
    remove_member,
)
from proxy_resync.observability import get_logger
from proxy_resync.process import ProcessGroup, Spawner, spawn
from proxy_resync.proxy import ProxyInstance, start_proxy, wait_for_endpoint_sync, wait_for_proxy_health
from proxy_resync.retry import RetryPolicy
from proxy_resync.settings import Settings

logger = get_logger("proxy_resync.scenario")

ClientFactory = Callable[[Sequence[str]], ControlPlaneClient]


@dataclass
class ScenarioResult:
    """Outcome of a successful scenario run."""
    steps: List[str]
    values: List[KeyValue]
    duration_seconds: float
    retries: dict = field(default_factory=dict)


class ScenarioController:
    """Runs the auto-sync scenario one step at a time.

    node1 forms a single-member cluster, grpc-proxy fronts it, node2 joins,
    the proxy must pick node2 up through auto-sync, node1 is removed and
    stopped, and the key written at the start must still be readable
    through the proxy.
    """

    def __init__(self,
                 settings: Settings,
                 work_dir: Path,
                 spawner: Spawner = spawn,
                 client_factory: Optional[ClientFactory] = None,
                 collector: Optional[LogCollector] = None,
                 key: str = "k1",
                 value: str = "v1") -> None:
        self.settings = settings
        self.work_dir = work_dir
        self.collector = collector or LogCollector()
        self.key = key
        self.value = value
        self.completed: List[str] = []
        self._spawner = spawner
        self._client_factory = client_factory or (
            lambda endpoints: EtcdctlClient.from_settings(settings, endpoints))
        self._group: Optional[ProcessGroup] = None

    def nodes(self) -> List[ClusterNode]:
        s = self.settings
        node1 = ClusterNode(
            name=s.node1_name,
            data_dir=self.work_dir / s.node1_name,
            client_url=s.node1_client_url,
            peer_url=s.node1_peer_url,
            cluster_state=ClusterState.NEW,
            initial_cluster=initial_cluster({s.node1_name: s.node1_peer_url}),
        )
        node2 = ClusterNode(
            name=s.node2_name,
            data_dir=self.work_dir / s.node2_name,
            client_url=s.node2_client_url,
            peer_url=s.node2_peer_url,
            cluster_state=ClusterState.EXISTING,
            initial_cluster=initial_cluster({s.node1_name: s.node1_peer_url,
                                             s.node2_name: s.node2_peer_url}),
        )
        return [node1, node2]

    def _retry_policy(self, kind: ErrorKind, name: str) -> RetryPolicy:
        return RetryPolicy(
            retry_on={kind},
            max_attempts=self.settings.retry_attempts,
            delay=self.settings.retry_delay_seconds,
            max_elapsed=self.settings.retry_max_elapsed_seconds,
            name=name,
        )

    @asynccontextmanager
    async def _step(self, name: str) -> AsyncIterator[None]:
        logger.info("Scenario step started", step=name)
        self.collector.add_event(name, "info", "started")
        started = time.monotonic()
        try:
            yield
        except Exception as e:
            outputs = self._group.outputs() if self._group else {}
            logger.error("Scenario step failed", step=name, error=str(e), error_type=type(e).__name__)
            self.collector.add_event(name, "error", str(e), {"error_type": type(e).__name__})
            raise ScenarioFailure(name, e, outputs) from e
        elapsed = time.monotonic() - started
        self.completed.append(name)
        self.collector.add_event(name, "info", "finished", {"duration_seconds": round(elapsed, 3)})
        logger.info("Scenario step finished", step=name, duration_seconds=round(elapsed, 3))

    async def run(self) -> ScenarioResult:
        s = self.settings
        node1, node2 = self.nodes()
        proxy = ProxyInstance(
            address=s.proxy_client_url,
            endpoints=(node1.client_url,),
            auto_sync_interval=s.auto_sync_interval_seconds,
        )
        started = time.monotonic()
        self.work_dir.mkdir(parents=True, exist_ok=True)

        async with ProcessGroup(self._spawner, grace=s.stop_grace_seconds) as group:
            self._group = group

            async with self._step(f"start {node1.name}"):
                node1_proc = await start_node(node1, s, group.spawn)

            async with self._step("start proxy"):
                proxy_proc = await start_proxy(proxy, s, group.spawn)
                if s.proxy_health_check:
                    await wait_for_proxy_health(proxy.url, max_attempts=s.proxy_health_attempts)

            proxy_client = self._client_factory([proxy.address])
            member_client = self._client_factory([node1.client_url])

            async with self._step(f"put {self.key} through proxy"):
                await proxy_client.put(self.key, self.value)

            async with self._step(f"add {node2.name}"):
                await add_member(member_client, node2.name, [node2.peer_url])

            async with self._step(f"start {node2.name}"):
                node2_proc = await start_node(node2, s, group.spawn)

            async with self._step(f"wait for proxy to sync {node2.name}"):
                await wait_for_endpoint_sync(proxy_proc, node2.client_url, s.sync_timeout_seconds)

            async with self._step(f"resolve {node1.name} member id"):
                members = await list_members(member_client)
                node1_id = find_member_by_client_endpoint(members, node1.client_url)

            # node2 may not be healthy yet right after it joined.
            remove_policy = self._retry_policy(ErrorKind.UNHEALTHY, "member remove")
            async with self._step(f"remove {node1.name}"):
                await remove_policy.run(lambda: remove_member(member_client, node1_id))

            async with self._step(f"stop {node1.name}"):
                await node1_proc.stop(s.stop_grace_seconds)

            get_policy = self._retry_policy(ErrorKind.LEADER_CHANGED, "get")
            async with self._step(f"get {self.key} through proxy"):
                values = await get_policy.run(lambda: proxy_client.get(self.key))
                expected = [KeyValue(key=self.key, value=self.value)]
                if values != expected:
                    raise AssertionFailure(f"get {self.key} through proxy", expected, values)

            async with self._step(f"stop {node2.name} and proxy"):
                await node2_proc.stop(s.stop_grace_seconds)
                await proxy_proc.stop(s.stop_grace_seconds)

        return ScenarioResult(
            steps=list(self.completed),
            values=values,
            duration_seconds=time.monotonic() - started,
            retries={"member remove": remove_policy.attempts, "get": get_policy.attempts},
        )
