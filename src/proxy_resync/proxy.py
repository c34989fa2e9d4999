"""Launching etcd grpc-proxy and observing its endpoint auto-sync."""

import asyncio
from dataclasses import dataclass
from typing import List, Optional, Tuple

import httpx

from proxy_resync.errors import SetupError
from proxy_resync.expect import LogExpectation, await_pattern, contains_all
from proxy_resync.observability import get_logger
from proxy_resync.process import ProcessHandle, Spawner, spawn
from proxy_resync.settings import Settings, format_go_duration

logger = get_logger("proxy_resync.proxy")

RESYNC_MARKER = "Resolver state updated"


@dataclass(frozen=True)
class ProxyInstance:
    """A grpc-proxy launch configuration."""
    address: str
    endpoints: Tuple[str, ...]
    auto_sync_interval: float

    @property
    def url(self) -> str:
        return f"http://{self.address}"


def strip_scheme(url: str) -> str:
    """``http://localhost:22379`` -> ``localhost:22379``."""
    return url.split("://", 1)[-1]


def proxy_args(proxy: ProxyInstance) -> List[str]:
    return [
        "grpc-proxy", "start",
        "--advertise-client-url", proxy.address,
        "--listen-addr", proxy.address,
        "--endpoints", ",".join(proxy.endpoints),
        "--endpoints-auto-sync-interval", format_go_duration(proxy.auto_sync_interval),
    ]


async def start_proxy(proxy: ProxyInstance, settings: Settings, spawner: Spawner = spawn) -> ProcessHandle:
    handle = await spawner(settings.etcd_bin, proxy_args(proxy), name="grpc-proxy")
    logger.info("Started grpc-proxy", address=proxy.address, endpoints=list(proxy.endpoints),
                auto_sync_interval=proxy.auto_sync_interval)
    return handle


async def wait_for_proxy_health(url: str,
                                max_attempts: int = 10,
                                interval: float = 0.5,
                                transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
    """Wait for the proxy's /health endpoint to report a healthy backend."""
    health_url = f"{url}/health"

    async with httpx.AsyncClient(timeout=2.0, transport=transport) as client:
        for attempt in range(max_attempts):
            try:
                response = await client.get(health_url)
                if response.status_code == 200 and response.json().get("health") == "true":
                    logger.info("Proxy is healthy", url=health_url, attempt=attempt + 1)
                    return
                logger.info("Proxy not healthy yet", url=health_url, attempt=attempt + 1,
                            status=response.status_code)
            except (httpx.HTTPError, ValueError) as e:
                logger.info("Proxy not reachable yet", url=health_url, attempt=attempt + 1, error=str(e))

            await asyncio.sleep(interval)

    raise SetupError(f"proxy at {health_url} not healthy after {max_attempts} attempts")


async def wait_for_endpoint_sync(handle: ProcessHandle, endpoint: str, timeout: float) -> str:
    """Wait for the proxy to log a resolver update that includes ``endpoint``."""
    address = strip_scheme(endpoint)
    return await await_pattern(handle, LogExpectation(
        predicate=contains_all(address, RESYNC_MARKER),
        description=f"{RESYNC_MARKER} with {address}",
        timeout=timeout,
    ))
