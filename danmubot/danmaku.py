"""Decoding of DANMU_MSG broadcast payloads."""

import json
import logging
from dataclasses import dataclass, field, fields
from enum import IntEnum
from typing import Any, TypeVar, Union

log = logging.getLogger(__name__)

S = TypeVar("S")


class DanmakuType(IntEnum):
    TEXT = 0
    EMOTICON = 1


@dataclass
class Medal:
    name: str = ""
    level: int = 0
    color: int = 0
    up_room_id: int = 0
    up_uid: int = 0
    up_name: str = ""


@dataclass
class User:
    uid: int = 0
    uname: str = ""
    admin: bool = False
    urank: int = 0
    mobile_verify: bool = False
    medal: Medal = field(default_factory=Medal)
    guard_level: int = 0
    user_level: int = 0


@dataclass
class Extra:
    send_from_me: bool = False
    mode: int = 0
    color: int = 0
    dm_type: int = 0
    font_size: int = 0
    player_mode: int = 0
    show_player_type: int = 0
    content: str = ""
    user_hash: str = ""
    emoticon_unique: str = ""
    direction: int = 0
    pk_direction: int = 0
    space_type: str = ""
    space_url: str = ""


@dataclass
class Emoticon:
    bulge_display: int = 0
    emoticon_unique: str = ""
    height: int = 0
    in_player_area: int = 0
    is_dynamic: int = 0
    url: str = ""
    width: int = 0


@dataclass
class Danmaku:
    sender: User = field(default_factory=User)
    content: str = ""
    extra: Extra = field(default_factory=Extra)
    emoticon: Emoticon = field(default_factory=Emoticon)
    type: int = DanmakuType.TEXT
    timestamp: int = 0
    raw: str = ""


def _lookup(node: Any, path: str) -> Any:
    for part in path.split("."):
        if isinstance(node, list):
            if not part.isdigit() or int(part) >= len(node):
                return None
            node = node[int(part)]
        elif isinstance(node, dict):
            if part not in node:
                return None
            node = node[part]
        else:
            return None
    return node


def _as_int(value: Any) -> int:
    if isinstance(value, (bool, int)):
        return int(value)
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            try:
                return int(float(value))
            except ValueError:
                return 0
    return 0


def _as_str(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    return json.dumps(value, ensure_ascii=False)


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value in ("1", "t", "T", "true", "TRUE", "True")
    return False


def _typed(value: Any, kind: type) -> Any:
    if kind is bool and isinstance(value, bool):
        return value
    if kind is int and isinstance(value, int) and not isinstance(value, bool):
        return value
    if kind is int and isinstance(value, float) and value.is_integer():
        return int(value)
    if kind is str and isinstance(value, str):
        return value
    raise TypeError


def _parse_struct(cls: type[S], text: str, what: str) -> S:
    """Fill a dataclass from JSON text, keeping defaults for mistyped fields."""
    try:
        document = json.loads(text)
    except ValueError:
        log.error("parse danmaku %s failed", what)
        return cls()
    if not isinstance(document, dict):
        log.error("parse danmaku %s failed", what)
        return cls()
    values = {}
    failed = False
    for spec in fields(cls):
        raw = document.get(spec.name)
        if raw is None:
            continue
        try:
            values[spec.name] = _typed(raw, spec.type)
        except TypeError:
            failed = True
    if failed:
        log.error("parse danmaku %s failed", what)
    return cls(**values)


def parse_danmaku(data: Union[bytes, bytearray, str]) -> Danmaku:
    """Decode a DANMU_MSG body; raises ValueError when it is not JSON."""
    raw = bytes(data).decode("utf-8") if isinstance(data, (bytes, bytearray)) else data
    parsed = json.loads(raw)
    info = _lookup(parsed, "info")

    extra = _parse_struct(Extra, _as_str(_lookup(info, "0.15.extra")), "extra")
    emoticon = _parse_struct(Emoticon, _as_str(_lookup(info, "0.13")), "emoticon")
    sender_info = _lookup(info, "2")
    medal_info = _lookup(info, "3")

    sender = User(
        uid=_as_int(_lookup(sender_info, "0")),
        uname=_as_str(_lookup(sender_info, "1")),
        user_level=_as_int(_lookup(sender_info, "16.0")),
        admin=_as_bool(_lookup(sender_info, "2")),
        urank=_as_int(_lookup(sender_info, "5")),
        mobile_verify=_as_bool(_lookup(sender_info, "6")),
        guard_level=_as_int(_lookup(info, "7")),
        medal=Medal(
            level=_as_int(_lookup(medal_info, "0")),
            name=_as_str(_lookup(medal_info, "1")),
            up_name=_as_str(_lookup(medal_info, "2")),
            up_room_id=_as_int(_lookup(medal_info, "3")),
            color=_as_int(_lookup(medal_info, "4")),
            up_uid=_as_int(_lookup(medal_info, "12")),
        ),
    )
    return Danmaku(
        sender=sender,
        content=_as_str(_lookup(info, "1")),
        extra=extra,
        emoticon=emoticon,
        type=_as_int(_lookup(info, "0.12")),
        timestamp=_as_int(_lookup(info, "0.4")),
        raw=raw,
    )