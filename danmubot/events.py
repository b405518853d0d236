"""Routing of live-room broadcast events to the robot's features."""

import json
import logging
import random
import threading
from typing import Any, Callable, Optional, Union

from danmubot.api import ReplyInfo
from danmubot.chat import save_blind_box_stat
from danmubot.greetings import entry_effect_welcome
from danmubot.interact import handle_interact_word
from danmubot.service import ServiceContext
from danmubot.thanks import thank_guard

log = logging.getLogger(__name__)

Raw = Union[str, bytes]

LOT_START = "识别到天选，欢迎弹幕已临时关闭"
LOT_END = "天选结束，欢迎弹幕已恢复默认"
POCKET_START = "识别到红包，欢迎弹幕已临时关闭"
POCKET_END = "红包结束，欢迎弹幕已恢复默认"


def _load(raw: Raw) -> dict:
    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError("event payload is not an object")
    return data


def _load_quiet(raw: Raw) -> dict:
    try:
        return _load(raw)
    except ValueError:
        return {}


def _section(payload: dict) -> dict:
    data = payload.get("data")
    return data if isinstance(data, dict) else {}


def _int(value: Any) -> int:
    if isinstance(value, (int, float)):
        return int(value)
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def describe_block(payload: dict) -> str:
    """The announcement for a ROOM_BLOCK_MSG payload."""
    data = _section(payload)
    operator = _int(data.get("operator"))
    if operator == 2:
        who, action = "主播", "禁言"
    elif operator == 1:
        who, action = "房管", "禁言"
    else:
        who, action = "", "解开禁言"
    return f"用户 {data.get('uname', '')} 被{who} {action}!"


def pk_opponent(payload: dict, room_id: int) -> int:
    """The room id of the other side of a PK start message; 0 when unknown."""
    data = _section(payload)
    init = data.get("init_info") if isinstance(data.get("init_info"), dict) else {}
    match = data.get("match_info") if isinstance(data.get("match_info"), dict) else {}
    if _int(init.get("room_id")) == room_id:
        return _int(match.get("room_id"))
    return _int(init.get("room_id"))


def guard_box_thanks(segments: list) -> Optional[str]:
    """Thanks for a guard blind-box notice, or None if the notice is something else."""
    texts = [str(seg.get("text", "")) if isinstance(seg, dict) else "" for seg in segments]
    if len(texts) == 5 and texts[1] == "投喂" and texts[2] == "大航海盲盒":
        return f"感谢 {texts[0]} 的 {texts[4]}"
    if len(texts) == 6 and texts[2] == "投喂" and texts[3] == "大航海盲盒":
        return f"感谢 {texts[1]} 的 {texts[5]}"
    return None


class EventRouter:
    """Dispatches broadcast commands to handlers."""

    def __init__(self, service: ServiceContext, sender: Any, gate: Any, pk: Any, thanks: Any,
                 dispatcher: Any, rng: Optional[random.Random] = None) -> None:
        self.service = service
        self.sender = sender
        self.gate = gate
        self.pk = pk
        self.thanks = thanks
        self.dispatcher = dispatcher
        self.rng = rng or random.Random()
        self._red_pockets = 0
        self._lock = threading.Lock()
        self._routes: dict[str, Callable[[Raw], None]] = {
            "ENTRY_EFFECT": self.on_entry_effect,
            "INTERACT_WORD": self.on_interact_word,
            "DANMU_MSG": self.on_danmu,
            "ANCHOR_LOT_START": self.on_anchor_lot_start,
            "ANCHOR_LOT_AWARD": self.on_anchor_lot_award,
            "PK_BATTLE_START_NEW": self.on_pk_start,
            "PK_BATTLE_START": self.on_pk_start,
            "PK_BATTLE_END": self.on_pk_end,
            "PK_END": self.on_pk_end,
            "PK_BATTLE_CRIT": self.on_pk_end,
            "PK_BATTLE_SETTLE_NEW": self.on_pk_end,
            "ROOM_BLOCK_MSG": self.on_block,
            "SEND_GIFT": self.on_send_gift,
            "GUARD_BUY": self.on_guard_buy,
            "COMMON_NOTICE_DANMAKU": self.on_common_notice,
            "POPULARITY_RED_POCKET_NEW": self.on_red_pocket_new,
            "POPULARITY_RED_POCKET_WINNER_LIST": self.on_red_pocket_winners,
        }

    def handle(self, cmd: str, raw: Raw) -> bool:
        """Run the handler of a command; False when the command is not handled."""
        route = self._routes.get(cmd)
        if route is None:
            return False
        route(raw)
        return True

    def _welcome_on(self) -> bool:
        config = self.service.config
        return config.interact_word or config.entry_effect or config.welcome_high_wealthy

    def _welcome_off(self) -> None:
        config = self.service.config
        config.interact_word = False
        config.entry_effect = False
        config.welcome_high_wealthy = False

    def _welcome_restore(self) -> None:
        config = self.service.config
        auto = self.service.auto_interact
        config.interact_word = auto.interact_word
        config.entry_effect = auto.entry_effect
        config.welcome_high_wealthy = auto.welcome_high_wealthy

    def on_anchor_lot_start(self, raw: Raw) -> None:
        if self._welcome_on():
            self._welcome_off()
        self.sender.push(LOT_START)

    def on_anchor_lot_award(self, raw: Raw) -> None:
        self._welcome_restore()
        self.sender.push(LOT_END)

    def on_block(self, raw: Raw) -> None:
        if not self.service.config.show_block_msg:
            return
        try:
            payload = _load(raw)
        except ValueError as exc:
            log.error("禁言数据解析失败:%s %s", exc, raw)
            return
        self.sender.push(describe_block(payload))

    def on_pk_start(self, raw: Raw) -> None:
        if not self.service.config.pk_notice:
            return
        try:
            payload = _load(raw)
        except ValueError as exc:
            log.error("pk数据解析失败:%s %s", exc, raw)
            return
        room = pk_opponent(payload, self.service.config.room_id)
        log.debug("开始pk")
        if room == 0:
            log.error("未获取的pk对手信息")
        else:
            self.pk.push(room)

    def on_pk_end(self, raw: Raw) -> None:
        self.service.other_side_uid.clear()

    def on_red_pocket_new(self, raw: Raw) -> None:
        data = _section(_load_quiet(raw))
        with self._lock:
            self._red_pockets += 1
        config = self.service.config
        if config.thanks_gift:
            price = _int(data.get("price"))
            gift_name = data.get("gift_name", "")
            if config.thanks_gift_use_at:
                self.sender.push(f"感谢 {price} 电池的 {gift_name}",
                                 ReplyInfo(reply_uid=str(_int(data.get("uid")))))
            else:
                self.sender.push(f"感谢 {data.get('uname', '')} {price}电池的 {gift_name}")
        if self._welcome_on():
            self._welcome_off()
            config.lottery_enable = False
            self.sender.push(POCKET_START)

    def on_red_pocket_winners(self, raw: Raw) -> None:
        with self._lock:
            self._red_pockets = max(self._red_pockets - 1, 0)
            remaining = self._red_pockets
        data = _section(_load_quiet(raw))
        log.info("中奖名单:")
        for winner in data.get("winner_info") or []:
            if isinstance(winner, list) and len(winner) > 1:
                log.info(" >>> %s %s", _int(winner[0]), winner[1])
        if remaining <= 0:
            self._welcome_restore()
            self.sender.push(POCKET_END)

    def on_send_gift(self, raw: Raw) -> None:
        gift = _load_quiet(raw)
        if self.service.config.thanks_gift:
            self.thanks.push(gift)
        save_blind_box_stat(self.service, gift)

    def on_guard_buy(self, raw: Raw) -> None:
        config = self.service.config
        if not config.thanks_gift:
            return
        gift = _load_quiet(raw)
        if config.thanks_gift_use_at:
            uid = _int(_section(gift).get("uid"))
            thank_guard(self.sender, gift, ReplyInfo(reply_uid=str(uid)))
        else:
            thank_guard(self.sender, gift)

    def on_common_notice(self, raw: Raw) -> None:
        if not self.service.config.thanks_gift:
            return
        segments = _section(_load_quiet(raw)).get("content_segments")
        if not isinstance(segments, list):
            return
        text = guard_box_thanks(segments)
        if text is not None:
            self.sender.push(text)

    def on_danmu(self, raw: Raw) -> None:
        with self._lock:
            self.dispatcher.push(raw)

    def on_entry_effect(self, raw: Raw) -> None:
        try:
            data = entry_effect_welcome(self.service, raw, self.rng)
        except ValueError as exc:
            log.error("%s", exc)
            return
        if data is not None:
            self.gate.push(data)

    def on_interact_word(self, raw: Raw) -> None:
        try:
            handle_interact_word(self.service, self.gate, self.sender, raw, self.rng)
        except ValueError as exc:
            log.error("%s", exc)

    def on_preparing(self, raw: Raw) -> None:
        """Say goodbye when the stream ends (not routed by default)."""
        goodbye = self.service.config.goodbye_info
        if goodbye:
            self.sender.push(goodbye)