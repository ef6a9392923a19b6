"""Chat message model and the queries that store and look up chat data."""

from __future__ import annotations

import json
import re
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from groupchat.database import Database

_FIELD_NAMES = {
    "groupid": "group_id",
    "msgid": "msg_id",
    "senderid": "sender_id",
    "sendername": "sender_name",
    "receiver": "receiver",
    "content": "content",
    "timestamp": "timestamp",
    "bucket": "bucket",
    "group": "group",
}

_RFC3339 = re.compile(
    r"^(\d{4}-\d{2}-\d{2})[Tt](\d{2}:\d{2}:\d{2})(?:\.(\d+))?([Zz]|[+-]\d{2}:\d{2})$"
)

_INSERT_GROUP_MESSAGE = (
    "INSERT INTO group_chat(group_id, bucket, msg_id, sender_id, sender_name, content, timestamp) "
    "VALUES(?, ?, ?, ?, ?, ?, ?)"
)
_SELECT_USER_GROUPS = "SELECT group_id FROM user_groups WHERE user_id = ?"


def _parse_timestamp(text: str) -> datetime:
    match = _RFC3339.match(text)
    if match is None:
        raise ValueError(f"invalid timestamp: {text!r}")
    day, clock, fraction, zone = match.groups()
    moment = datetime.strptime(f"{day}T{clock}", "%Y-%m-%dT%H:%M:%S")
    micros = int((fraction or "0")[:6].ljust(6, "0"))
    if zone in ("Z", "z"):
        tz = timezone.utc
    else:
        sign = -1 if zone[0] == "-" else 1
        hours, minutes = int(zone[1:3]), int(zone[4:6])
        tz = timezone(sign * timedelta(hours=hours, minutes=minutes))
    return moment.replace(microsecond=micros, tzinfo=tz)


def _convert(field: str, value: Any) -> Any:
    if field == "group":
        if not isinstance(value, bool):
            raise ValueError("field Group must be a boolean")
        return value
    if not isinstance(value, str):
        raise ValueError(f"field {field} must be a string")
    if field == "msg_id":
        try:
            return uuid.UUID(value)
        except ValueError as exc:
            raise ValueError(f"invalid message id: {value!r}") from exc
    if field == "timestamp":
        return _parse_timestamp(value)
    return value


@dataclass
class Message:
    """A chat message; ``receiver`` is empty for group messages."""

    group_id: str = ""
    msg_id: uuid.UUID | None = None
    sender_id: str = ""
    sender_name: str = ""
    receiver: str = ""
    content: str = ""
    timestamp: datetime | None = None
    bucket: str = ""
    group: bool = False

    @classmethod
    def from_json(cls, data: str | bytes) -> Message:
        """Decode a message sent by a client; raises ValueError on bad input."""
        decoded = json.loads(data)
        if not isinstance(decoded, dict):
            raise ValueError("message must be a JSON object")
        values: dict[str, Any] = {}
        for key, value in decoded.items():
            field = _FIELD_NAMES.get(key.lower())
            if field is None or value is None:
                continue
            values[field] = _convert(field, value)
        return cls(**values)


def save_group_message(db: Database, message: Message) -> None:
    """Store a group message in its group's time bucket."""
    db.execute(
        _INSERT_GROUP_MESSAGE,
        message.group_id,
        message.bucket,
        message.msg_id,
        message.sender_id,
        message.sender_name,
        message.content,
        message.timestamp,
    )


def fetch_user_groups(db: Database, user_id: str) -> list[str]:
    """Return the ids of every group the user has joined."""
    try:
        user_uuid = uuid.UUID(user_id)
    except ValueError as exc:
        raise ValueError(f"invalid user id: {user_id!r}") from exc
    return [str(group) for group in db.iterate(_SELECT_USER_GROUPS, user_uuid)]