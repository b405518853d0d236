"""Handling of viewer chat messages: parsing, statistics and sign-ins."""

import json
import logging
import queue
import random
import re
import sqlite3
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, Union

from danmubot.api import ReplyInfo
from danmubot.bullets import POLL_INTERVAL, QUEUE_SIZE
from danmubot.commands import anchor_command, draw_lot, keyword_reply, robot_process
from danmubot.service import ServiceContext
from danmubot.storage import BlindBoxRecord, DanmuCountRecord, RecordNotFound, SignInRecord

log = logging.getLogger(__name__)

SIGN_IN_FAILED = "签到服务异常"
BLIND_BOX_FAILED = "盲盒统计服务异常"
SIGN_IN_WORDS = ("签到", "打卡")
COUNT_QUERY = "查询弹幕"
COUNT_MILESTONE = 10

_BRACKETS = re.compile(r"\[(.*?)\]")
_BLIND_BOX_QUERY = re.compile(r"([0-9]+)月盲盒")


@dataclass
class IncomingDanmu:
    """A viewer's chat message as the robot sees it."""

    text: str
    uid: str
    uname: str
    reply: ReplyInfo
    card_level: str = "0"
    card_name: str = "无信仰"
    reply_mid: int = 0
    reply_uname: str = ""


def _number_text(value: Any) -> str:
    if isinstance(value, bool):
        raise ValueError(f"expected a number, got {value!r}")
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return f"{value:.0f}"
    raise ValueError(f"expected a number, got {value!r}")


def parse_danmu_message(raw: Union[str, bytes]) -> IncomingDanmu:
    """Read a DANMU_MSG payload; raises ValueError when it is malformed."""
    try:
        message = json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"invalid danmu message: {exc}") from exc
    info = message.get("info") if isinstance(message, dict) else None
    if not isinstance(info, list) or len(info) < 3:
        raise ValueError("danmu message has no info list")
    text = info[1]
    if not isinstance(text, str):
        raise ValueError("danmu text is not a string")
    sender_info = info[2]
    if not isinstance(sender_info, list) or len(sender_info) < 2:
        raise ValueError("danmu sender is missing")
    uid = _number_text(sender_info[0])
    uname = str(sender_info[1])
    text = _BRACKETS.sub("", text)

    head = info[0]
    if not isinstance(head, list) or len(head) <= 15 or not isinstance(head[15], dict):
        raise ValueError("danmu extra section is missing")
    extra_raw = head[15].get("extra")
    if not isinstance(extra_raw, str):
        raise ValueError("danmu extra is not a string")
    try:
        extra = json.loads(extra_raw.replace('\\"', '"'))
    except ValueError as exc:
        log.warning("danmu extra could not be parsed: %s", exc)
        extra = {}
    if not isinstance(extra, dict):
        extra = {}

    danmu = IncomingDanmu(
        text=text,
        uid=uid,
        uname=uname,
        reply=ReplyInfo(reply_uid=uid, reply_msg_id=str(extra.get("id_str") or "")),
        reply_mid=int(extra.get("reply_mid") or 0),
        reply_uname=str(extra.get("reply_uname") or ""),
    )
    if len(info) > 3 and isinstance(info[3], list) and len(info[3]) > 1:
        danmu.card_level = _number_text(info[3][0])
        danmu.card_name = str(info[3][1])
    return danmu


def _parse_uid(uid: str) -> Optional[int]:
    try:
        return int(uid)
    except ValueError as exc:
        log.error("%s", exc)
        return None


def danmu_count_process(service: ServiceContext, sender: Any, msg: str, uid: str,
                        reply: Optional[ReplyInfo] = None) -> None:
    """Count today's message of the user and answer count queries."""
    store = service.danmu_count
    today = store.date_str(0)
    user = _parse_uid(uid)
    if user is None:
        sender.push(SIGN_IN_FAILED, reply)
        return

    found: Optional[DanmuCountRecord] = None
    try:
        found = store.find_one(user, today)
    except RecordNotFound:
        try:
            store.insert(DanmuCountRecord(uid=user, date=today, count=1))
        except sqlite3.Error as exc:
            sender.push(SIGN_IN_FAILED, reply)
            log.error("%s", exc)
            return
    except sqlite3.Error as exc:
        log.error("%s", exc)
        return
    else:
        try:
            store.update_count(user)
        except sqlite3.Error as exc:
            sender.push(SIGN_IN_FAILED, reply)
            log.error("%s", exc)
            return
        found.count += 1
        if found.count == COUNT_MILESTONE:
            sender.push(f"好耶！今天发了{found.count}条弹幕了耶！", reply)

    if msg != COUNT_QUERY:
        return
    counts = []
    for days in (1, 2):
        try:
            counts.append(store.find_one(user, store.date_str(days)).count)
        except (RecordNotFound, sqlite3.Error):
            counts.append(0)
    today_count = found.count if found is not None else 0
    sender.push(f"今/昨/前天各发送了：{today_count}，{counts[0]}，{counts[1]}条弹幕", reply)


def save_blind_box_stat(service: ServiceContext, gift: dict,
                        now: Optional[datetime] = None) -> Optional[BlindBoxRecord]:
    """Store the result of a blind box from a SEND_GIFT message; None if it is no blind box."""
    data = gift.get("data") if isinstance(gift, dict) else None
    if not isinstance(data, dict):
        return None
    blind = data.get("blind_gift")
    if not isinstance(blind, dict):
        return None
    name = str(blind.get("original_gift_name") or "")
    if not name:
        return None
    moment = now if now is not None else datetime.now()
    record = BlindBoxRecord(
        uid=int(data.get("uid") or 0),
        blind_box_name=name,
        price=int(data.get("price") or 0),
        original_gift_price=int(blind.get("original_gift_price") or 0),
        cnt=int(data.get("num") or 0),
        year=moment.year,
        month=moment.month,
        day=moment.day,
    )
    try:
        saved = service.blind_box.insert(record)
    except sqlite3.Error as exc:
        log.critical("保存盲盒数据出错!!! %s", exc)
        return None
    log.info("盲盒数据保存成功!!! ")
    return saved


def blind_box_query(service: ServiceContext, sender: Any, msg: str, uid: str,
                    reply: Optional[ReplyInfo] = None, now: Optional[datetime] = None) -> None:
    """Answer "N月盲盒": the anchor gets the room's totals, a viewer their own."""
    if not service.config.blind_box_stat:
        return
    match = _BLIND_BOX_QUERY.fullmatch(msg)
    if match is None:
        return
    month_text = match.group(1)
    month = int(month_text)
    if not 1 <= month <= 12:
        sender.push(f"月份「{month_text}」不正确!", reply)
        return
    user = _parse_uid(uid)
    if user is None:
        sender.push(BLIND_BOX_FAILED, reply)
        return
    moment = now if now is not None else datetime.now()
    try:
        if service.user_id == user:
            result = service.blind_box.total(moment.year, month, 0)
        else:
            result = service.blind_box.total_for_user(user, moment.year, month, 0)
    except sqlite3.Error as exc:
        sender.push(BLIND_BOX_FAILED, reply)
        log.critical("盲盒统计出错了!%s", exc)
        return
    amount = result.profit / 1000
    if result.profit > 0:
        text = f"{month_text}月共开{result.count}个, 赚了＋{amount:.2f}元"
    elif result.profit == 0:
        text = f"{month_text}月共开{result.count}个, 没亏没赚!"
    else:
        text = f"{month_text}月共开{result.count}个, 亏了－{abs(amount):.2f}元"
    sender.push(text, reply)


def sign_in(service: ServiceContext, sender: Any, msg: str, uid: str,
            reply: Optional[ReplyInfo] = None, now: Optional[datetime] = None) -> None:
    """Record a daily sign-in and announce the number of days."""
    if msg not in SIGN_IN_WORDS:
        return
    user = _parse_uid(uid)
    if user is None:
        sender.push(SIGN_IN_FAILED, reply)
        return
    moment = now if now is not None else datetime.now()
    store = service.sign_in
    try:
        record = store.find_one(user)
    except RecordNotFound:
        try:
            store.insert(SignInRecord(uid=user, last_day=int(moment.timestamp()), count=1))
        except sqlite3.Error as exc:
            sender.push(SIGN_IN_FAILED, reply)
            log.error("%s", exc)
            return
        sender.push("已签到1天", reply)
        return
    except sqlite3.Error as exc:
        sender.push(SIGN_IN_FAILED, reply)
        log.error("%s", exc)
        return

    if datetime.fromtimestamp(record.last_day).date() != moment.date():
        try:
            store.update_count(user, moment)
        except sqlite3.Error as exc:
            sender.push(SIGN_IN_FAILED, reply)
            log.error("%s", exc)
            return
        sender.push(f"已签到{record.count + 1}天", reply)
    else:
        sender.push(f"今天已经签到过了,已签到{record.count}天", reply)


class DanmuDispatcher:
    """Runs every chat feature on the incoming viewer messages."""

    def __init__(self, service: ServiceContext, sender: Any, robot: Any) -> None:
        self.service = service
        self.sender = sender
        self.robot = robot
        self.rng = random.Random()
        self._queue: "queue.Queue[Union[str, bytes]]" = queue.Queue(QUEUE_SIZE)

    def push(self, raw: Union[str, bytes]) -> None:
        self._queue.put(raw)

    def handle(self, raw: Union[str, bytes]) -> IncomingDanmu:
        """Process one DANMU_MSG payload and return what was read from it."""
        danmu = parse_danmu_message(raw)
        service = self.service
        config = service.config
        text, uid, reply = danmu.text, danmu.uid, danmu.reply

        if text and uid != service.robot_id:
            robot_process(service, self.sender, self.robot, text, reply)
            if config.danmu_cnt_enable:
                danmu_count_process(service, self.sender, text, uid, reply)
            if config.keyword_reply:
                keyword_reply(service, self.sender, text, reply)
        if config.sign_in_enable:
            sign_in(service, self.sender, text, uid, reply)
        if config.draw_by_lot:
            draw_lot(service, self.sender, text, reply, self.rng)
        if config.blind_box_stat:
            blind_box_query(service, self.sender, text, uid, reply)
        if text and uid == str(service.user_id):
            anchor_command(service, self.sender, text, uid)

        shown = f"@{danmu.reply_uname} {text}" if danmu.reply_mid > 0 else text
        log.info("%s 「%s %s」%s:%s", uid, danmu.card_level, danmu.card_name, danmu.uname, shown)
        return danmu

    def run(self, stop: threading.Event) -> None:
        while not stop.is_set():
            try:
                raw = self._queue.get(timeout=POLL_INTERVAL)
            except queue.Empty:
                continue
            try:
                self.handle(raw)
            except ValueError as exc:
                log.error("%s", exc)