import asyncio
import json
from unittest.mock import patch

import pytest
from aiohttp.test_utils import TestClient, TestServer

from groupchat.app import create_app, main
from groupchat.manager import Manager
from groupchat.registry import GroupRegistry

ORIGIN = {"Origin": "http://localhost:8000"}


class _FakeRedis:
    def __init__(self):
        self.sets = {}

    async def sadd(self, key, *members):
        self.sets.setdefault(key, set()).update(members)
        return len(members)

    async def srem(self, key, *members):
        self.sets.get(key, set()).difference_update(members)
        return len(members)

    async def smembers(self, key):
        return set(self.sets.get(key, set()))

    async def scard(self, key):
        return len(self.sets.get(key, set()))


def _manager():
    return Manager(None, GroupRegistry(_FakeRedis()), "s1")


async def _wait_for(predicate):
    for _ in range(200):
        if predicate():
            return True
        await asyncio.sleep(0.01)
    return predicate()


@pytest.mark.asyncio
async def test_ws_requires_user_id(tmp_path):
    async with TestClient(TestServer(create_app(_manager(), tmp_path))) as client:
        resp = await client.get("/ws", headers=ORIGIN)
        assert resp.status == 400
        assert await resp.text() == "userID not provided"


@pytest.mark.asyncio
async def test_ws_rejects_foreign_origin(tmp_path):
    async with TestClient(TestServer(create_app(_manager(), tmp_path))) as client:
        resp = await client.get("/ws?id=abc", headers={"Origin": "http://evil.example.com"})
        assert resp.status == 403


@pytest.mark.asyncio
async def test_ws_session_registers_delivers_and_unregisters(tmp_path):
    manager = _manager()
    async with TestClient(TestServer(create_app(manager, tmp_path))) as client:
        ws = await client.ws_connect("/ws?id=abc", headers=ORIGIN)
        assert await _wait_for(lambda: manager.connection("abc") is not None)
        raw = json.dumps({"receiver": "abc", "Content": "hi"})
        await ws.send_str(raw)
        echoed = await asyncio.wait_for(ws.receive_str(), 5)
        assert json.loads(echoed)["Content"] == "hi"
        await ws.close()
        assert await _wait_for(lambda: manager.connection("abc") is None)


@pytest.mark.asyncio
async def test_serves_static_files(tmp_path):
    (tmp_path / "index.html").write_text("<h1>chat</h1>")
    (tmp_path / "app.js").write_text("console.log(1);")
    async with TestClient(TestServer(create_app(_manager(), tmp_path))) as client:
        index = await client.get("/")
        assert index.status == 200
        assert await index.text() == "<h1>chat</h1>"
        script = await client.get("/app.js")
        assert await script.text() == "console.log(1);"


@pytest.mark.asyncio
async def test_missing_static_dir_gives_not_found(tmp_path):
    app = create_app(_manager(), tmp_path / "absent")
    async with TestClient(TestServer(app)) as client:
        resp = await client.get("/")
        assert resp.status == 404


def test_main_runs_app_with_options(tmp_path):
    with patch("groupchat.app.web.run_app") as run_app:
        result = main(["--host", "127.0.0.1", "--port", "8123", "--static-dir", str(tmp_path)])
    assert result == 0
    run_app.assert_called_once()
    assert run_app.call_args.kwargs == {"host": "127.0.0.1", "port": 8123}


def test_main_help_exits_cleanly():
    with pytest.raises(SystemExit) as excinfo:
        main(["--help"])
    assert excinfo.value.code == 0