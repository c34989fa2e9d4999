"""Scenario settings and configuration."""

from typing import Optional

from pydantic import Field, ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Scenario settings with environment variable support."""

    # Binaries
    etcd_bin: str = Field(default="etcd", description="Path to the etcd binary (also runs grpc-proxy)")
    etcdctl_bin: str = Field(default="etcdctl", description="Path to the etcdctl binary")

    # Cluster topology
    cluster_token: str = Field(default="etcd-cluster", description="Initial cluster token")
    node1_name: str = Field(default="node1", description="Name of the seed member")
    node1_client_url: str = Field(default="http://localhost:12379", description="Seed member client URL")
    node1_peer_url: str = Field(default="http://localhost:12380", description="Seed member peer URL")
    node2_name: str = Field(default="node2", description="Name of the joining member")
    node2_client_url: str = Field(default="http://localhost:22379", description="Joining member client URL")
    node2_peer_url: str = Field(default="http://localhost:22380", description="Joining member peer URL")

    # Proxy settings
    proxy_client_url: str = Field(default="127.0.0.1:32379", description="Proxy advertise/listen address")
    auto_sync_interval_seconds: float = Field(default=1.0, description="Proxy endpoint auto-sync interval")
    proxy_health_check: bool = Field(default=True, description="Probe the proxy /health endpoint after start")
    proxy_health_attempts: int = Field(default=10, description="Proxy health probe attempts")

    # Deadlines
    ready_timeout_seconds: float = Field(default=30.0, description="Node readiness deadline")
    sync_timeout_seconds: float = Field(default=5.0, description="Proxy endpoint resync deadline")
    stop_grace_seconds: float = Field(default=5.0, description="Grace period before SIGKILL on stop")
    command_timeout_seconds: float = Field(default=10.0, description="etcdctl command deadline")

    # Retry settings
    retry_attempts: int = Field(default=10, description="Attempts for transient cluster errors")
    retry_delay_seconds: float = Field(default=0.5, description="Fixed delay between attempts")
    retry_max_elapsed_seconds: Optional[float] = Field(default=None, description="Optional wall-clock budget per retried call")

    # Observability settings
    log_level: str = Field(default="INFO", description="Logging level")

    model_config = ConfigDict(
        env_prefix="PROXY_RESYNC_",
        case_sensitive=False,
    )


def get_settings() -> Settings:
    """Get scenario settings instance."""
    return Settings()


def format_go_duration(seconds: float) -> str:
    """Render seconds the way Go's time.Duration prints them (1s, 500ms, 1.5s)."""
    if seconds <= 0:
        return "0s"
    if seconds < 1:
        return f"{seconds * 1000:g}ms"
    if seconds >= 60 and seconds % 60 == 0:
        return f"{int(seconds // 60)}m0s"
    return f"{seconds:g}s"
