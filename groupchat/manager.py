"""Tracking of connected chat clients and delivery of their messages."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from aiohttp import WSMsgType

from groupchat.database import Database
from groupchat.models import Message, fetch_user_groups
from groupchat.registry import GroupRegistry

logger = logging.getLogger(__name__)

ALLOWED_ORIGIN = "http://localhost:8000"
READ_LIMIT = 512


def check_origin(origin: str) -> bool:
    """Return whether a websocket handshake from ``origin`` is accepted."""
    return origin == ALLOWED_ORIGIN


class Client:
    """One user's websocket connection."""

    def __init__(self, conn: Any, manager: Manager, user_id: str) -> None:
        self.conn = conn
        self.manager = manager
        self.user_id = user_id

    async def receive(self) -> None:
        """Read messages until the connection ends, then unregister the client."""
        try:
            async for item in self.conn:
                if item.type not in (WSMsgType.TEXT, WSMsgType.BINARY):
                    if item.type == WSMsgType.ERROR:
                        logger.warning("read error from %s: %s", self.user_id, item.data)
                    break
                if len(item.data) > READ_LIMIT:
                    logger.warning("message from %s exceeds read limit", self.user_id)
                    break
                try:
                    message = Message.from_json(item.data)
                except ValueError as exc:
                    logger.warning("error decoding message from %s: %s", self.user_id, exc)
                    continue
                await self._dispatch(message, _as_text(item.data))
        finally:
            await self.manager.remove_client(self)

    async def send(self, raw: str | bytes) -> None:
        """Deliver a message the user sent; raises ValueError if it is malformed."""
        message = Message.from_json(raw)
        await self._dispatch(message, _as_text(raw))

    async def _dispatch(self, message: Message, raw: str) -> None:
        if message.group:
            await self._send_to_group(message, raw)
        else:
            await self._send_private(message, raw)

    async def _send_to_group(self, message: Message, raw: str) -> None:
        members = await self.manager.registry.group_members_on_server(
            message.group_id, self.manager.server_id
        )
        for member in sorted(members):
            if member == self.user_id:
                continue
            conn = self.manager.connection(member)
            if conn is not None:
                await conn.send_str(raw)

    async def _send_private(self, message: Message, raw: str) -> None:
        conn = self.manager.connection(message.receiver)
        if conn is None:
            logger.info("receiver %r offline", message.receiver)
            return
        await conn.send_str(raw)


def _as_text(data: str | bytes) -> str:
    return data.decode("utf-8", errors="replace") if isinstance(data, bytes) else data


class Manager:
    """Registry of the clients connected to this server.

    Without a database no group memberships can be looked up, so clients are
    tracked but not registered in any group.
    """

    def __init__(
        self, db: Database | None, registry: GroupRegistry, server_id: str
    ) -> None:
        self._db = db
        self.registry = registry
        self.server_id = server_id
        self._clients: dict[str, Client] = {}
        self._lock = asyncio.Lock()

    def connection(self, user_id: str) -> Any | None:
        """Return the connection of an online user, or None."""
        client = self._clients.get(user_id)
        return client.conn if client is not None else None

    def _user_groups(self, user_id: str) -> list[str] | None:
        if self._db is None:
            return []
        try:
            return fetch_user_groups(self._db, user_id)
        except Exception:
            logger.exception("error getting groups of user %s", user_id)
            return None

    async def add_client(self, client: Client) -> None:
        """Register a client and mark it present in each of its groups."""
        async with self._lock:
            self._clients[client.user_id] = client
            groups = self._user_groups(client.user_id)
            for group in groups or ():
                try:
                    await self.registry.add_user_to_group_server(
                        group, self.server_id, client.user_id
                    )
                except Exception:
                    logger.exception("could not add user to group %s on server", group)
                    continue
                try:
                    await self.registry.add_active_server(group, self.server_id)
                except Exception:
                    logger.exception("could not mark server active for group %s", group)

    async def remove_client(self, client: Client) -> None:
        """Close and unregister a client, retiring this server from emptied groups."""
        async with self._lock:
            if self._clients.get(client.user_id) is not client:
                return
            try:
                await client.conn.close()
            except Exception:
                logger.exception("error closing connection of %s", client.user_id)
            del self._clients[client.user_id]

            groups = self._user_groups(client.user_id)
            for group in groups or ():
                try:
                    await self.registry.remove_user_from_group_server(
                        group, self.server_id, client.user_id
                    )
                except Exception:
                    logger.exception(
                        "error removing user %s from group %s", client.user_id, group
                    )
                try:
                    count = await self.registry.remaining_members_on_server(
                        group, self.server_id
                    )
                except Exception:
                    logger.exception("error checking online members of group %s", group)
                    continue
                if count == 0:
                    try:
                        await self.registry.remove_active_server(group, self.server_id)
                    except Exception:
                        logger.exception(
                            "error removing server %s from group %s", self.server_id, group
                        )