"""Control-plane client backed by the etcdctl binary."""

from __future__ import annotations

import asyncio
import base64
import os
from typing import List, Protocol, Sequence

from pydantic import BaseModel, ConfigDict, Field

from proxy_resync.errors import ClusterError, ErrorKind, SpawnError
from proxy_resync.observability import get_logger
from proxy_resync.settings import Settings, format_go_duration

logger = get_logger("proxy_resync.etcdctl")

# Server-side error strings as etcdctl prints them.
UNHEALTHY_MESSAGE = "etcdserver: unhealthy cluster"
LEADER_CHANGED_MESSAGE = "etcdserver: leader changed"


def classify_error(message: str) -> ErrorKind:
    if UNHEALTHY_MESSAGE in message:
        return ErrorKind.UNHEALTHY
    if LEADER_CHANGED_MESSAGE in message:
        return ErrorKind.LEADER_CHANGED
    return ErrorKind.OTHER


class KeyValue(BaseModel):
    key: str
    value: str


class MemberRecord(BaseModel):
    """A cluster member as reported by ``member list``."""
    model_config = ConfigDict(populate_by_name=True)

    id: int = Field(alias="ID")
    name: str = ""
    peer_urls: List[str] = Field(default_factory=list, alias="peerURLs")
    client_urls: List[str] = Field(default_factory=list, alias="clientURLs")


class _RawKeyValue(BaseModel):
    key: str
    value: str = ""


class _RangeResponse(BaseModel):
    kvs: List[_RawKeyValue] = Field(default_factory=list)


class _MemberListResponse(BaseModel):
    members: List[MemberRecord] = Field(default_factory=list)


class _MemberAddResponse(BaseModel):
    member: MemberRecord


class ControlPlaneClient(Protocol):
    async def put(self, key: str, value: str) -> None: ...

    async def get(self, key: str) -> List[KeyValue]: ...

    async def member_add(self, name: str, peer_urls: Sequence[str]) -> MemberRecord: ...

    async def member_remove(self, member_id: int) -> None: ...

    async def member_list(self) -> List[MemberRecord]: ...


def _decode(value: str) -> str:
    return base64.b64decode(value).decode("utf-8")


class EtcdctlClient:
    """Runs etcdctl (API v3) against a fixed endpoint list and parses its JSON output."""

    def __init__(self, endpoints: Sequence[str], etcdctl_bin: str = "etcdctl",
                 command_timeout: float = 10.0) -> None:
        self.endpoints = list(endpoints)
        self._bin = etcdctl_bin
        self._command_timeout = command_timeout

    @classmethod
    def from_settings(cls, settings: Settings, endpoints: Sequence[str]) -> "EtcdctlClient":
        return cls(endpoints, etcdctl_bin=settings.etcdctl_bin,
                   command_timeout=settings.command_timeout_seconds)

    def _argv(self, args: Sequence[str]) -> List[str]:
        return [
            self._bin,
            f"--endpoints={','.join(self.endpoints)}",
            f"--command-timeout={format_go_duration(self._command_timeout)}",
            "-w", "json",
            *args,
        ]

    async def _run(self, *args: str) -> str:
        argv = self._argv(args)
        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env={**os.environ, "ETCDCTL_API": "3"},
            )
        except OSError as e:
            raise SpawnError(argv, e) from e

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(),
                                                    timeout=self._command_timeout + 5.0)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise ClusterError(ErrorKind.OTHER, f"etcdctl {args[0]} timed out") from None

        if process.returncode != 0:
            message = (stderr.decode("utf-8", errors="replace").strip()
                       or stdout.decode("utf-8", errors="replace").strip()
                       or f"etcdctl exited with code {process.returncode}")
            kind = classify_error(message)
            logger.info("etcdctl request failed", command=args[0], kind=kind.value, error=message)
            raise ClusterError(kind, message)

        return stdout.decode("utf-8")

    async def put(self, key: str, value: str) -> None:
        await self._run("put", key, value)

    async def get(self, key: str) -> List[KeyValue]:
        response = _RangeResponse.model_validate_json(await self._run("get", key))
        return [KeyValue(key=_decode(kv.key), value=_decode(kv.value)) for kv in response.kvs]

    async def member_add(self, name: str, peer_urls: Sequence[str]) -> MemberRecord:
        output = await self._run("member", "add", name, f"--peer-urls={','.join(peer_urls)}")
        return _MemberAddResponse.model_validate_json(output).member

    async def member_remove(self, member_id: int) -> None:
        await self._run("member", "remove", f"{member_id:x}")

    async def member_list(self) -> List[MemberRecord]:
        return _MemberListResponse.model_validate_json(await self._run("member", "list")).members
