"""Redis bookkeeping of which users and servers take part in each group."""

from __future__ import annotations

from typing import Any, AsyncIterator

from redis import asyncio as aioredis


def _member_key(group_id: str, server_id: str) -> str:
    return f"group:{group_id}:server:{server_id}"


def _servers_key(group_id: str) -> str:
    return f"group:{group_id}:activeServers"


def _text(value: Any) -> str:
    return value.decode() if isinstance(value, bytes) else str(value)


class GroupRegistry:
    """Tracks group members per server and the servers active for each group."""

    def __init__(self, client: Any) -> None:
        self._client = client

    async def add_user_to_group_server(self, group_id: str, server_id: str, user_id: str) -> None:
        await self._client.sadd(_member_key(group_id, server_id), user_id)

    async def remove_user_from_group_server(
        self, group_id: str, server_id: str, user_id: str
    ) -> None:
        await self._client.srem(_member_key(group_id, server_id), user_id)

    async def group_members_on_server(self, group_id: str, server_id: str) -> set[str]:
        members = await self._client.smembers(_member_key(group_id, server_id))
        return {_text(member) for member in members}

    async def add_active_server(self, group_id: str, server_id: str) -> None:
        await self._client.sadd(_servers_key(group_id), server_id)

    async def active_servers(self, group_id: str) -> set[str]:
        servers = await self._client.smembers(_servers_key(group_id))
        return {_text(server) for server in servers}

    async def remove_active_server(self, group_id: str, server_id: str) -> None:
        await self._client.srem(_servers_key(group_id), server_id)

    async def remaining_members_on_server(self, group_id: str, server_id: str) -> int:
        return int(await self._client.scard(_member_key(group_id, server_id)))

    async def listen(self, channel: str) -> AsyncIterator[str]:
        """Yield the payload of every message published on ``channel``."""
        pubsub = self._client.pubsub()
        await pubsub.subscribe(channel)
        try:
            async for item in pubsub.listen():
                if item.get("type") == "message":
                    yield _text(item["data"])
        finally:
            await pubsub.unsubscribe(channel)
            await pubsub.aclose()


def connect(host: str = "redis", port: int = 6379, db: int = 0) -> aioredis.Redis:
    """Create a lazily connecting Redis client."""
    return aioredis.Redis(host=host, port=port, db=db, decode_responses=True)