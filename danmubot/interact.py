"""Welcomes, follow thanks and share thanks for INTERACT_WORD messages."""

import json
import logging
import random
from datetime import datetime
from typing import Any, Iterable, Optional, Union

from danmubot.api import ReplyInfo
from danmubot.bullets import InteractData
from danmubot.greetings import time_slot
from danmubot.service import ServiceContext

log = logging.getLogger(__name__)

MARKER = "{user}"
AT_MARKER = " {user}"
VISITOR_AT = "欢迎过来串门~"
VISITOR_TEMPLATE = "欢迎  过来串门~"

ENTER = 1
FOLLOW = 2
SHARE = 3
MUTUAL_FOLLOW = 5

_RNG = random.Random()


def in_wide(target: str, src: Optional[Iterable[str]]) -> bool:
    """True if any entry of `src` occurs inside `target`."""
    return any(entry in target for entry in (src or ()))


def in_exact(target: str, src: Optional[Iterable[str]]) -> bool:
    """True if `target` equals one of the entries of `src`."""
    return target in set(src or ())


def short_name(uname: str, already_len: int, danmu_len: int) -> str:
    """Cut a name so that it fits beside `already_len` other characters."""
    limit = danmu_len - already_len
    if len(uname) > limit and limit > 0:
        return uname[:limit - 1] + "…"
    return uname


def strip_welcome(name: str) -> str:
    """Drop the first "欢迎" from a user name."""
    return name.replace("欢迎", "", 1)


def _collapse(text: str, marker: str, replacement: str) -> str:
    for suffix in (", ", ",", "，"):
        text = text.replace(marker + suffix, replacement)
    return text


def _pick(options: list[str], rng: random.Random) -> str:
    if not options:
        raise ValueError("no welcome messages configured")
    return rng.choice(options)


def welcome_text(service: ServiceContext, uid: int, uname: str,
                 rng: Optional[random.Random] = None) -> str:
    """The welcome for a viewer; visitors from the PK opponent get a visitor greeting."""
    rng = rng or _RNG
    config = service.config
    if uid in service.other_side_uid:
        if config.welcome_use_at:
            return VISITOR_AT
        limit = config.danmu_len - len(VISITOR_TEMPLATE)
        if len(uname) > limit and limit > 0:
            return "欢迎 " + uname[:limit - 1] + "… 过来串门~"
        return "欢迎 " + uname + " 过来串门~"

    template = _pick(config.welcome_danmu, rng)
    if config.welcome_use_at:
        return _collapse(template, AT_MARKER, "，").replace(AT_MARKER, "，")
    welcome = template.replace(MARKER, short_name(uname, 3, config.danmu_len))
    if len(welcome) > config.danmu_len:
        rep = MARKER + "\n"
        text = _collapse(template, MARKER, rep).replace(MARKER, rep)
        return text.replace(MARKER, uname)
    return welcome


def welcome_text_by_time(service: ServiceContext, uid: int, uname: str,
                         rng: Optional[random.Random] = None,
                         hour: Optional[int] = None) -> str:
    """The welcome taken from the time-of-day list, falling back to the plain list."""
    rng = rng or _RNG
    config = service.config
    if uid in service.other_side_uid:
        return welcome_text(service, uid, uname, rng)
    if not (config.interact_word_by_time and config.welcome_danmu_by_time):
        return welcome_text(service, uid, uname, rng)

    key = time_slot(datetime.now().hour if hour is None else hour)
    for slot in config.welcome_danmu_by_time:
        if slot.key != key:
            continue
        if not (slot.enabled and slot.danmu):
            return welcome_text(service, uid, uname, rng)
        template = rng.choice(slot.danmu)
        if config.welcome_use_at:
            return _collapse(template, AT_MARKER, "，").replace(AT_MARKER, "")
        welcome = template.replace(MARKER, short_name(uname, 3, config.danmu_len))
        if len(welcome) > config.danmu_len:
            return _collapse(template, MARKER, MARKER + "\n").replace(MARKER, uname)
        return welcome
    return welcome_text(service, uid, uname, rng)


def _int(value: Any) -> int:
    if isinstance(value, (int, float)):
        return int(value)
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _thank(service: ServiceContext, sender: Any, uname: str, uid: int,
           rng: random.Random, word: str) -> None:
    config = service.config
    focus = config.focus_danmu or []
    if config.welcome_use_at:
        msg = f"感谢{word}!" + (rng.choice(focus) if focus else "")
        sender.push(msg, ReplyInfo(reply_uid=str(uid)))
        return
    sender.push("感谢 " + short_name(uname, 8, config.danmu_len) + f" 的{word}!")
    if focus:
        sender.push(rng.choice(focus))


def handle_interact_word(service: ServiceContext, gate: Any, sender: Any,
                         payload: Union[dict, str, bytes],
                         rng: Optional[random.Random] = None,
                         hour: Optional[int] = None) -> list[InteractData]:
    """React to an INTERACT_WORD message; returns the welcomes handed to the gate."""
    rng = rng or _RNG
    if not isinstance(payload, dict):
        try:
            payload = json.loads(payload)
        except ValueError:
            payload = {}
    data = payload.get("data") if isinstance(payload, dict) else None
    if not isinstance(data, dict):
        data = {}
    config = service.config
    uname = str(data.get("uname") or "")
    uid = _int(data.get("uid"))
    msg_type = _int(data.get("msg_type"))
    pushed: list[InteractData] = []

    def hand_over(item: InteractData) -> None:
        gate.push(item)
        pushed.append(item)

    if msg_type == ENTER:
        if not config.interact_self and str(uid) == service.robot_id:
            return pushed
        if not config.interact_anchor and uid == service.user_id:
            return pushed
        special = (config.welcome_string or {}).get(str(uid))
        if config.welcome_switch and special is not None:
            hand_over(InteractData(uid=uid, msg=special))
        elif config.interact_word:
            if in_wide(uname, config.welcome_blacklist_wide) or in_exact(uname, config.welcome_blacklist):
                return pushed
            name = strip_welcome(uname)
            if config.interact_word_by_time:
                msg = welcome_text_by_time(service, uid, name, rng, hour)
                log.debug(msg)
                hand_over(InteractData(uid=uid, msg=msg))
            else:
                msg = welcome_text(service, uid, name, rng)
                lines = msg.split("\n")
                if len(lines) > 1:
                    for offset, line in enumerate(lines):
                        hand_over(InteractData(uid=uid + offset, msg=line))
                else:
                    hand_over(InteractData(uid=uid, msg=msg))
    elif msg_type in (FOLLOW, MUTUAL_FOLLOW):
        if config.thanks_focus and uname:
            _thank(service, sender, uname, uid, rng, "关注")
    elif msg_type == SHARE:
        if config.thanks_share and uname:
            _thank(service, sender, uname, uid, rng, "分享")
    else:
        log.info(">>>>>>>>>>>>> 未识别的类型: %s", payload)
    return pushed