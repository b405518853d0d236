"""Grouped thanks for gifts, guard purchases and blind-box results."""

import logging
import queue
import threading
import time
from typing import Any, Optional

from danmubot.api import ReplyInfo
from danmubot.bullets import POLL_INTERVAL, QUEUE_SIZE
from danmubot.service import ServiceContext

log = logging.getLogger(__name__)

BIG_SPENDER = 50000


def _data(message: Any) -> dict:
    if isinstance(message, dict):
        inner = message.get("data")
        if isinstance(inner, dict):
            return inner
    return {}


def _int(value: Any) -> int:
    if isinstance(value, (int, float)):
        return int(value)
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def thank_guard(sender: Any, gift: dict, reply: Optional[ReplyInfo] = None) -> str:
    """Thank a guard purchase; with a reply target the name is left out."""
    data = _data(gift)
    gift_name = str(data.get("gift_name", ""))
    if reply is not None:
        msg = "感谢" + gift_name
        sender.push(msg, reply)
    else:
        msg = "感谢 " + str(data.get("username", "")) + " 的 " + gift_name
        sender.push(msg)
    return msg


class GiftThanks:
    """Collects gifts per sender and thanks them in batches."""

    def __init__(self, service: ServiceContext, sender: Any) -> None:
        self.service = service
        self.sender = sender
        self._uids: dict[str, int] = {}
        self._gifts: dict[str, dict[str, dict[str, int]]] = {}
        self._boxes: dict[str, dict[str, dict[str, int]]] = {}
        self._box_deadlines: dict[int, float] = {}
        self._next_summary: Optional[float] = None
        self._lock = threading.RLock()
        self._queue: "queue.Queue[dict]" = queue.Queue(QUEUE_SIZE)

    def push(self, gift: dict) -> None:
        self._queue.put(gift)

    def add_gift(self, gift: dict, now: Optional[float] = None) -> None:
        """Record one SEND_GIFT message; `now` is on the monotonic clock."""
        moment = time.monotonic() if now is None else now
        config = self.service.config
        data = _data(gift)
        uname = str(data.get("uname", ""))
        uid = _int(data.get("uid"))
        price = _int(data.get("price"))
        num = _int(data.get("num"))
        blind = data.get("blind_gift")
        if not isinstance(blind, dict):
            blind = {}
        original = str(blind.get("original_gift_name") or "")
        with self._lock:
            if config.thanks_gift_use_at:
                self._uids[uname] = uid
            label = str(data.get("giftName", ""))
            if original:
                label += "(" + original.replace("盲盒", "") + ")"
            entry = self._gifts.setdefault(uname, {}).setdefault(label, {"cost": 0, "count": 0})
            entry["cost"] += price
            entry["count"] += num
            self._next_summary = moment + config.thanks_gift_timeout

            if config.blind_box_profit_loss_stat and original:
                self._box_deadlines[uid] = moment + config.thanks_gift_timeout
                box = self._boxes.setdefault(uname, {}).setdefault(
                    original, {"count": 0, "profit_and_loss": 0}
                )
                box["count"] += num
                box["profit_and_loss"] += (price - _int(blind.get("original_gift_price"))) * num

    def _reply(self, name: str) -> ReplyInfo:
        return ReplyInfo(reply_uid=str(self._uids.get(name, 0)))

    def _announce(self, full: str, head: str, short: str, name: str) -> list[str]:
        use_at = self.service.config.thanks_gift_use_at
        if len(full) > self.service.config.danmu_len:
            if not use_at:
                self.sender.push(head)
                self.sender.push(short)
                return [head, short]
            self.sender.push(short, self._reply(name))
            return [short]
        if not use_at:
            self.sender.push(full)
        else:
            self.sender.push(full, self._reply(name))
        return [full]

    def summarize_gifts(self) -> list[str]:
        """Thank every sender for the gifts collected so far; returns what was pushed."""
        config = self.service.config
        pushed: list[str] = []
        with self._lock:
            gifts, self._gifts = self._gifts, {}
            for name, table in gifts.items():
                total = sum(entry["cost"] for entry in table.values())
                short = "，".join(f"{entry['count']}个{gift}" for gift, entry in table.items())
                prefix = "感谢" if config.thanks_gift_use_at else "感谢" + name + "的"
                if total >= config.thanks_min_cost:
                    pushed += self._announce(prefix + short, "感谢 " + name + " 的", short, name)
                if total >= BIG_SPENDER:
                    line = name + "老板大气大气"
                    self.sender.push(line)
                    pushed.append(line)
        return pushed

    def summarize_blind_boxes(self) -> list[str]:
        """Announce the profit or loss of every sender's blind boxes; returns what was pushed."""
        config = self.service.config
        pushed: list[str] = []
        with self._lock:
            boxes, self._boxes = self._boxes, {}
            for name, table in boxes.items():
                parts = []
                for box_name, entry in table.items():
                    pnl = entry["profit_and_loss"]
                    if pnl > 0:
                        parts.append(f"{entry['count']}个{box_name}赚了＋{pnl / 1000:.2f}元")
                    else:
                        parts.append(f"{entry['count']}个{box_name}亏了－{abs(pnl / 1000):.2f}元")
                short = "，".join(parts)
                prefix = "" if config.thanks_gift_use_at else name + "的"
                pushed += self._announce(prefix + short, name + "的", short, name)
        return pushed

    def due_blind_boxes(self, now: Optional[float] = None) -> list[str]:
        """Announce blind boxes once a sender's quiet period has passed."""
        moment = time.monotonic() if now is None else now
        with self._lock:
            due = [uid for uid, deadline in self._box_deadlines.items() if deadline <= moment]
            if not due:
                return []
            for uid in due:
                del self._box_deadlines[uid]
            return self.summarize_blind_boxes()

    def run(self, stop: threading.Event) -> None:
        timeout = self.service.config.thanks_gift_timeout
        with self._lock:
            self._next_summary = time.monotonic() + timeout
        while not stop.is_set():
            try:
                gift = self._queue.get(timeout=POLL_INTERVAL)
            except queue.Empty:
                pass
            else:
                self.add_gift(gift)
            moment = time.monotonic()
            with self._lock:
                if self._next_summary is not None and moment >= self._next_summary:
                    self.summarize_gifts()
                    self._next_summary = moment + timeout
            self.due_blind_boxes(moment)