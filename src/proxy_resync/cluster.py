"""Bootstrapping etcd members as external processes."""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterable, List, Mapping, Tuple, Union

from proxy_resync.errors import SetupError
from proxy_resync.expect import LogExpectation, await_pattern, contains
from proxy_resync.observability import get_logger
from proxy_resync.process import ProcessHandle, Spawner, spawn
from proxy_resync.settings import Settings

logger = get_logger("proxy_resync.cluster")

READY_PHRASE = "ready to serve client requests"


class ClusterState(str, Enum):
    NEW = "new"
    EXISTING = "existing"


@dataclass(frozen=True)
class ClusterNode:
    """One etcd member as launched by the scenario."""
    name: str
    data_dir: Path
    client_url: str
    peer_url: str
    cluster_state: ClusterState
    initial_cluster: str


def initial_cluster(members: Union[Mapping[str, str], Iterable[Tuple[str, str]]]) -> str:
    """Format ``name=peerURL`` pairs the way ``--initial-cluster`` expects them."""
    pairs = members.items() if isinstance(members, Mapping) else members
    return ",".join(f"{name}={peer_url}" for name, peer_url in pairs)


def node_args(node: ClusterNode, cluster_token: str) -> List[str]:
    return [
        "--name", node.name,
        "--data-dir", str(node.data_dir),
        "--listen-client-urls", node.client_url, "--advertise-client-urls", node.client_url,
        "--listen-peer-urls", node.peer_url, "--initial-advertise-peer-urls", node.peer_url,
        "--initial-cluster-token", cluster_token,
        "--initial-cluster-state", node.cluster_state.value,
        "--initial-cluster", node.initial_cluster,
    ]


async def start_node(node: ClusterNode, settings: Settings, spawner: Spawner = spawn) -> ProcessHandle:
    """Launch ``node`` and block until it is ready to serve client requests.

    A member joining an existing cluster must already have been added with
    ``member add``; otherwise it never becomes ready and the readiness
    deadline fails the start. The spawned handle is not stopped on failure,
    pass a ``ProcessGroup.spawn`` to have it released.
    """
    if node.data_dir.exists() and any(node.data_dir.iterdir()):
        raise SetupError(f"data directory {node.data_dir} for {node.name} is not empty")

    handle = await spawner(settings.etcd_bin, node_args(node, settings.cluster_token), name=node.name)
    await await_pattern(handle, LogExpectation(
        predicate=contains(READY_PHRASE),
        description=READY_PHRASE,
        timeout=settings.ready_timeout_seconds,
    ))
    logger.info("Cluster member ready", node=node.name, state=node.cluster_state.value,
                client_url=node.client_url)
    return handle
