"""HTTP server: static frontend plus the chat websocket endpoint."""

from __future__ import annotations

import argparse
import logging
import os
from pathlib import Path

from aiohttp import web

from groupchat.manager import READ_LIMIT, Client, Manager, check_origin
from groupchat.registry import GroupRegistry, connect

logger = logging.getLogger(__name__)


def create_app(manager: Manager, static_dir: str | os.PathLike[str] = "./frontend") -> web.Application:
    """Build the web application serving ``static_dir`` and ``/ws``."""
    app = web.Application()
    static = Path(static_dir)

    async def websocket(request: web.Request) -> web.StreamResponse:
        logger.info("new connection")
        user_id = request.query.get("id", "")
        if not user_id:
            raise web.HTTPBadRequest(text="userID not provided")
        if not check_origin(request.headers.get("Origin", "")):
            raise web.HTTPForbidden(text="origin not allowed")
        ws = web.WebSocketResponse(max_msg_size=READ_LIMIT)
        await ws.prepare(request)
        client = Client(ws, manager, user_id)
        await manager.add_client(client)
        await client.receive()
        return ws

    async def index(request: web.Request) -> web.StreamResponse:
        page = static / "index.html"
        if not page.is_file():
            raise web.HTTPNotFound()
        return web.FileResponse(page)

    app.router.add_get("/ws", websocket)
    app.router.add_get("/", index)
    if static.is_dir():
        app.router.add_static("/", static)
    return app


def main(argv: list[str] | None = None) -> int:
    """Run the chat server."""
    parser = argparse.ArgumentParser(prog="groupchat", description="Group chat server.")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--static-dir", default="./frontend")
    parser.add_argument("--redis-host", default="redis")
    parser.add_argument("--redis-port", type=int, default=6379)
    parser.add_argument("--redis-db", type=int, default=0)
    parser.add_argument("--server-id", default=os.environ.get("SERVERID", ""))
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO)
    registry = GroupRegistry(connect(args.redis_host, args.redis_port, args.redis_db))
    manager = Manager(None, registry, args.server_id)
    web.run_app(create_app(manager, args.static_dir), host=args.host, port=args.port)
    return 0