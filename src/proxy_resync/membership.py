"""Cluster membership operations."""

from typing import List, Sequence

from proxy_resync.errors import MemberNotFoundError
from proxy_resync.etcdctl import ControlPlaneClient, MemberRecord
from proxy_resync.observability import get_logger

logger = get_logger("proxy_resync.membership")


async def add_member(client: ControlPlaneClient, name: str, peer_urls: Sequence[str]) -> MemberRecord:
    member = await client.member_add(name, peer_urls)
    logger.info("Added member", name=name, member_id=f"{member.id:x}", peer_urls=list(peer_urls))
    return member


async def remove_member(client: ControlPlaneClient, member_id: int) -> None:
    await client.member_remove(member_id)
    logger.info("Removed member", member_id=f"{member_id:x}")


async def list_members(client: ControlPlaneClient) -> List[MemberRecord]:
    return await client.member_list()


def find_member_by_client_endpoint(members: Sequence[MemberRecord], endpoint: str) -> int:
    """Return the ID of the member whose first client URL is ``endpoint``.

    Members that have not published client URLs yet are skipped.
    """
    for member in members:
        if member.client_urls and member.client_urls[0] == endpoint:
            return member.id
    raise MemberNotFoundError(endpoint)
