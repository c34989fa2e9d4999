"""E2E orchestration for etcd grpc-proxy endpoint auto-sync."""

from .cluster import ClusterNode, ClusterState, start_node
from .errors import ClusterError, ErrorKind, MemberNotFoundError, ScenarioFailure
from .expect import LogExpectation, await_pattern
from .process import ProcessGroup, ProcessHandle, spawn
from .retry import RetryPolicy
from .scenario import ScenarioController, ScenarioResult
from .settings import Settings

__all__ = [
    "ClusterNode",
    "ClusterState",
    "start_node",
    "ClusterError",
    "ErrorKind",
    "MemberNotFoundError",
    "ScenarioFailure",
    "LogExpectation",
    "await_pattern",
    "ProcessGroup",
    "ProcessHandle",
    "spawn",
    "RetryPolicy",
    "ScenarioController",
    "ScenarioResult",
    "Settings",
]
