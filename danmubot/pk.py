"""Opponent report for PK battles."""

import logging
import queue
import threading
import time
from typing import Any, Optional

from danmubot.api import ApiError, Session
from danmubot.bullets import POLL_INTERVAL, QUEUE_SIZE
from danmubot.live import guard_list, master_info, online_rank
from danmubot.service import ServiceContext

log = logging.getLogger(__name__)

PK_FAILED = "PK信息获取失败!"
RANK_PAGE_SIZE = 50


def _get(node: Any, *path: str, default: Any = None) -> Any:
    for key in path:
        if not isinstance(node, dict):
            return default
        node = node.get(key)
        if node is None:
            return default
    return node


def _int(value: Any) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return int(value)
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _items(node: Any, *path: str) -> list[dict]:
    value = _get(node, *path)
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


def pk_report(service: ServiceContext, session: Session, sender: Any, room_id: int) -> list[str]:
    """Collect the opponent's guards and ranking, remember their uids and announce a summary.

    Returns the announced lines; on failure returns an empty list.
    """
    try:
        profile = master_info(session, room_id)
    except ApiError as exc:
        log.error("%s", exc)
        return []
    anchor = _int(_get(profile, "data", "info", "uid", default=0))

    try:
        first = guard_list(session, room_id, anchor, 1)
    except ApiError as exc:
        log.error("%s", exc)
        sender.push(PK_FAILED)
        return []
    guards = _items(first, "data", "list")
    pages = _int(_get(first, "data", "info", "page", default=0))
    for page in range(2, pages + 1):
        try:
            guards.extend(_items(guard_list(session, room_id, anchor, page), "data", "list"))
        except ApiError as exc:
            log.error("%s", exc)

    service.other_side_uid.clear()
    service.other_side_uid.update(_int(item.get("uid")) for item in guards)

    try:
        rank = online_rank(session, room_id, anchor, 1)
    except ApiError as exc:
        sender.push(PK_FAILED)
        log.error("%s", exc)
        return []
    items = _items(rank, "data", "OnlineRankItem")
    online_num = _int(_get(rank, "data", "onlineNum", default=0))
    score = 0
    alive = 0
    for item in items:
        score += _int(item.get("score"))
        if _int(item.get("guard_level")) > 0:
            alive += 1
        service.other_side_uid.add(_int(item.get("uid")))

    if items and len(items) < online_num:
        total_pages = online_num // len(items)
        if online_num % RANK_PAGE_SIZE > 0:
            total_pages += 1
        for page in range(2, total_pages + 1):
            try:
                items.extend(_items(online_rank(session, room_id, anchor, page), "data", "OnlineRankItem"))
            except ApiError as exc:
                log.error("%s", exc)
        for item in items:
            if _int(item.get("guard_level")) > 0:
                alive += 1
            service.other_side_uid.add(_int(item.get("uid")))

    uname = _get(profile, "data", "info", "uname", default="")
    lines = [
        f"当前对手:{uname}",
        f"共{_int(_get(first, 'data', 'info', 'num', default=0))}船，"
        f"{_int(_get(profile, 'data', 'follower_num', default=0))}粉",
        f"当前{alive}船在线，高能榜{online_num}人",
        f"榜前50贡献{score}分",
    ]
    for line in lines:
        sender.push(line)
    return lines


class PKWatcher:
    """Reports PK opponents, ignoring repeats of the same room within a time window."""

    def __init__(self, service: ServiceContext, session: Session, sender: Any, window: float = 10.0) -> None:
        self.service = service
        self.session = session
        self.sender = sender
        self.window = window
        self._seen: dict[int, float] = {}
        self._lock = threading.Lock()
        self._queue: "queue.Queue[int]" = queue.Queue(QUEUE_SIZE)

    def push(self, room_id: int) -> None:
        self._queue.put(room_id)

    def handle(self, room_id: int, now: Optional[float] = None) -> bool:
        """Report the room unless it was reported recently; True if reported."""
        moment = time.time() if now is None else now
        with self._lock:
            last = self._seen.get(room_id)
            if last is not None and last + self.window >= moment:
                log.debug("pk room %s 重复获取数据已被过滤", room_id)
                return False
            log.debug("正在处理pk信息")
            pk_report(self.service, self.session, self.sender, room_id)
            self._seen[room_id] = moment
        return True

    def prune(self, now: Optional[float] = None) -> None:
        """Forget rooms whose window has passed."""
        moment = time.time() if now is None else now
        with self._lock:
            for room in [room for room, last in self._seen.items() if last + self.window < moment]:
                del self._seen[room]
                log.debug("pk room %s 已从重复过滤列表移除", room)

    def run(self, stop: threading.Event) -> None:
        next_prune = time.monotonic() + self.window
        while not stop.is_set():
            try:
                room_id = self._queue.get(timeout=POLL_INTERVAL)
            except queue.Empty:
                pass
            else:
                self.handle(room_id)
            if time.monotonic() >= next_prune:
                self.prune()
                next_prune = time.monotonic() + self.window