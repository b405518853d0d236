"""Welcome texts for viewers entering with an entry effect."""

import json
import logging
import random
from datetime import datetime
from typing import Any, Optional, Union

from danmubot.bullets import InteractData
from danmubot.service import ServiceContext

log = logging.getLogger(__name__)

GUARD_TITLES = {1: "总督", 2: "提督", 3: "舰长"}

_SLOTS = (
    (range(0, 2), "midnight"),
    (range(2, 5), "earlymorning"),
    (range(5, 9), "morning"),
    (range(9, 11), "latemorning"),
    (range(11, 14), "noon"),
    (range(14, 20), "afternoon"),
    (range(20, 24), "night"),
)

_RNG = random.Random()


def time_slot(hour: int) -> str:
    """Key of the time-of-day slot an hour falls in."""
    for hours, key in _SLOTS:
        if hour in hours:
            return key
    raise ValueError(f"hour must be between 0 and 23, got {hour}")


def _pick(options: list[str], rng: random.Random) -> str:
    if not options:
        raise ValueError("no welcome messages configured")
    return rng.choice(options)


def random_welcome(service: ServiceContext, msg: str, rng: Optional[random.Random] = None,
                   hour: Optional[int] = None) -> str:
    """Pick a welcome template (by time slot if configured) and fill in `msg`."""
    rng = rng or _RNG
    config = service.config
    text = ""
    if config.interact_word_by_time and config.welcome_danmu_by_time:
        key = time_slot(datetime.now().hour if hour is None else hour)
        for slot in config.welcome_danmu_by_time:
            if slot.key == key:
                if slot.enabled and slot.danmu:
                    text = _pick(slot.danmu, rng)
                else:
                    text = _pick(config.welcome_danmu, rng)
                break
    else:
        text = _pick(config.welcome_danmu, rng)
    if not text:
        text = _pick(config.welcome_danmu, rng)

    marker = "{user}"
    replacement = marker + "\n"
    if config.welcome_use_at:
        replacement = "，"
        marker = " {user}"
    for suffix in (", ", ",", "，"):
        text = text.replace(marker + suffix, replacement)
    return text.replace(marker, msg)


def _get(node: Any, *path: str) -> Any:
    for key in path:
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    return node


def _int(value: Any) -> int:
    if isinstance(value, (int, float)):
        return int(value)
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def entry_effect_welcome(service: ServiceContext, payload: Union[dict, str, bytes],
                         rng: Optional[random.Random] = None,
                         hour: Optional[int] = None) -> Optional[InteractData]:
    """The welcome for an ENTRY_EFFECT message, or None when nobody is to be welcomed."""
    if not isinstance(payload, dict):
        payload = json.loads(payload)
    config = service.config
    uid = _int(_get(payload, "data", "uid"))

    if not config.interact_self and str(uid) == service.robot_id:
        return None
    if not config.interact_anchor and uid == service.user_id:
        return None

    special = config.welcome_string.get(str(uid))
    if config.welcome_switch and special is not None and config.entry_effect:
        return InteractData(uid=uid, msg=special)
    if not config.entry_effect:
        return None

    log.info("特效欢迎")
    name = str(_get(payload, "data", "uinfo", "base", "name") or "")
    title = GUARD_TITLES.get(_int(_get(payload, "data", "uinfo", "guard", "level")), "")
    msg = ""
    if title:
        msg = f"{title} {name}"
    elif config.welcome_high_wealthy:
        if _int(_get(payload, "data", "uinfo", "wealth", "level")) >= config.welcome_high_wealthy_level:
            msg = name
    if not msg:
        return None
    return InteractData(uid=uid, msg=random_welcome(service, msg, rng, hour))