"""Tests for cluster member bootstrap."""

from pathlib import Path

import pytest

from proxy_resync.cluster import (
    READY_PHRASE,
    ClusterNode,
    ClusterState,
    initial_cluster,
    node_args,
    start_node,
)
from proxy_resync.errors import ProcessExitedError, SetupError, SyncTimeoutError


def make_node(tmp_path: Path, state: ClusterState = ClusterState.NEW) -> ClusterNode:
    return ClusterNode(
        name="node1",
        data_dir=tmp_path / "node1",
        client_url="http://localhost:12379",
        peer_url="http://localhost:12380",
        cluster_state=state,
        initial_cluster=initial_cluster({"node1": "http://localhost:12380"}),
    )


class TestInitialCluster:
    """Test cases for topology string formatting."""

    def test_single_member(self):
        assert initial_cluster({"node1": "http://localhost:12380"}) == "node1=http://localhost:12380"

    def test_preserves_member_order(self):
        members = [("node2", "http://localhost:22380"), ("node1", "http://localhost:12380")]
        assert initial_cluster(members) == "node2=http://localhost:22380,node1=http://localhost:12380"


class TestNodeArgs:
    """Test cases for the etcd command line."""

    def test_flags_from_node_fields(self, tmp_path):
        node = make_node(tmp_path, ClusterState.EXISTING)
        args = node_args(node, "etcd-cluster")

        def value(flag):
            return args[args.index(flag) + 1]

        assert value("--name") == "node1"
        assert value("--data-dir") == str(tmp_path / "node1")
        assert value("--listen-client-urls") == "http://localhost:12379"
        assert value("--advertise-client-urls") == "http://localhost:12379"
        assert value("--listen-peer-urls") == "http://localhost:12380"
        assert value("--initial-advertise-peer-urls") == "http://localhost:12380"
        assert value("--initial-cluster-token") == "etcd-cluster"
        assert value("--initial-cluster-state") == "existing"
        assert value("--initial-cluster") == "node1=http://localhost:12380"

    def test_deterministic(self, tmp_path):
        node = make_node(tmp_path)
        assert node_args(node, "t") == node_args(node, "t")


class TestStartNode:
    """Test cases for start_node against the fake etcd."""

    @pytest.mark.asyncio
    async def test_waits_for_readiness(self, tmp_path, settings, make_spawner):
        spawner = make_spawner()
        handle = await start_node(make_node(tmp_path), settings, spawner)
        try:
            assert handle.is_alive
            assert any(READY_PHRASE in line for line in handle.lines())
            assert handle.name == "node1"
        finally:
            await handle.stop()

    @pytest.mark.asyncio
    async def test_exit_before_ready_fails(self, tmp_path, settings, make_spawner):
        spawner = make_spawner({"node1": "crash"})
        with pytest.raises(ProcessExitedError):
            await start_node(make_node(tmp_path), settings, spawner)
        await spawner.handles[0].stop()

    @pytest.mark.asyncio
    async def test_never_ready_times_out(self, tmp_path, settings, make_spawner):
        settings.ready_timeout_seconds = 0.3
        spawner = make_spawner({"node1": "silent"})
        try:
            with pytest.raises(SyncTimeoutError) as exc_info:
                await start_node(make_node(tmp_path), settings, spawner)
        finally:
            await spawner.handles[0].stop()
        assert exc_info.value.pattern == READY_PHRASE

    @pytest.mark.asyncio
    async def test_refuses_populated_data_dir(self, tmp_path, settings, make_spawner):
        node = make_node(tmp_path)
        node.data_dir.mkdir()
        (node.data_dir / "member").mkdir()
        spawner = make_spawner()

        with pytest.raises(SetupError):
            await start_node(node, settings, spawner)
        assert spawner.handles == []
