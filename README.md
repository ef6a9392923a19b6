# groupchat

A WebSocket chat server built on aiohttp. Users connect over a WebSocket,
send JSON messages, and the server forwards them to other users connected
to the same server instance. Redis holds, per group, the set of members
connected to each server and the set of servers that hold members of the
group.

## Installing

```
pip install .
```

For the test suite:

```
pip install ".[test]"
pytest
```

## Running the server

```
groupchat
```

Options:

| option          | default                      |
|-----------------|------------------------------|
| `--host`        | `0.0.0.0`                    |
| `--port`        | `8000`                       |
| `--static-dir`  | `./frontend`                 |
| `--redis-host`  | `redis`                      |
| `--redis-port`  | `6379`                       |
| `--redis-db`    | `0`                          |
| `--server-id`   | value of `SERVERID`, or empty |

The server:

- answers `/` with `index.html` from the static directory (404 if it is
  missing) and serves the other files of that directory;
- accepts WebSocket connections on `/ws?id=<user-id>`. A request without
  `id` gets `400 Bad Request`; a request whose `Origin` header is not
  `http://localhost:8000` gets `403 Forbidden`;
- closes a connection that sends a message longer than 512 bytes.

## Messages

Clients send JSON objects. Keys are matched without regard to case:
`GroupID`, `MsgID` (a UUID), `SenderID`, `SenderName`, `Receiver`,
`Content`, `Timestamp` (RFC 3339), `Bucket` and `Group` (a boolean).
Unknown keys and `null` values are ignored; malformed messages are logged
and skipped.

- With `"Group": true`, the message text is sent unchanged to every member
  of `GroupID` that Redis lists as connected to this server, except the
  sender.
- Otherwise it is sent unchanged to the user named in `Receiver`, if that
  user is connected to this server.

## Using it as a library

```python
from aiohttp import web

from groupchat.app import create_app
from groupchat.database import Database
from groupchat.manager import Manager
from groupchat.registry import GroupRegistry, connect

registry = GroupRegistry(connect("localhost", 6379, 0))
database = Database(session)   # any object with execute(query, parameters) returning rows
manager = Manager(database, registry, "server-1")

web.run_app(create_app(manager, "./frontend"))
```

With a `Database`, `Manager.add_client` looks up the user's groups
(`SELECT group_id FROM user_groups WHERE user_id = ?`, the user id being a
UUID) and records, for each group, in Redis:

- `group:<group-id>:server:<server-id>`: the group's users on this server;
- `group:<group-id>:activeServers`: the servers holding group members.

`Manager.remove_client` closes the connection, removes the user from the
first set and, once no member of a group is left on the server, removes the
server from the second.

Other entry points:

- `groupchat.models.Message.from_json` parses a client message, raising
  `ValueError` on bad input;
- `groupchat.models.save_group_message` inserts a group message into the
  `group_chat` table;
- `groupchat.models.fetch_user_groups` lists the groups a user has joined;
- `groupchat.database.bucket_for_time` gives the ISO-week bucket of a date,
  such as `2024-W05`;
- `GroupRegistry.active_servers`, `GroupRegistry.group_members_on_server`
  and `GroupRegistry.remaining_members_on_server` answer routing questions;
- `GroupRegistry.listen(channel)` yields the payloads published on a Redis
  channel.

## What it does not do

- The `groupchat` command runs without a database: it does not look up group
  memberships, so no users are registered in any group in Redis and group
  messages reach no one. Group routing works only when a `Manager` is built
  with a `Database` by hand.
- Messages are never stored by the server; `save_group_message` is only
  available to be called directly.
- Messages are not passed between server instances. `GroupRegistry.listen`
  exists, but the server does not use it, so users on different servers
  cannot reach each other.