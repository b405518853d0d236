"""Queues that send chat messages, ask the chat robot and gate welcomes."""

import logging
import queue
import re
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

from danmubot.api import ApiError, ReplyInfo
from danmubot.service import ServiceContext

log = logging.getLogger(__name__)

QUEUE_SIZE = 1000
POLL_INTERVAL = 0.1
ROBOT_BROKEN = "不好意思，机器人坏掉了..."
_FACE = re.compile(r"\{face:.*\}")

SendFunc = Callable[[str, int, Optional[ReplyInfo]], None]
AskFunc = Callable[[str], str]


@dataclass
class Bullet:
    """A message waiting to be sent, and whom it replies to."""

    msg: str
    reply: Optional[ReplyInfo] = None


def split_message(msg: str, length: int) -> list[str]:
    """Cut a message into pieces of at most `length` characters."""
    if length <= 0:
        raise ValueError(f"message length must be positive, got {length}")
    return [msg[start:start + length] for start in range(0, len(msg), length)]


def split_robot_reply(content: str, robot_name: str) -> list[str]:
    """Rename the robot, drop face codes and split at {br} markers."""
    content = content.replace("菲菲", robot_name)
    content = _FACE.sub("", content)
    return content.split("{br}")


class BulletSender:
    """Sends queued messages, cut to the configured length, one per second."""

    interval = 1.0

    def __init__(self, service: ServiceContext, send: SendFunc) -> None:
        self.service = service
        self._send = send
        self._queue: "queue.Queue[Bullet]" = queue.Queue(QUEUE_SIZE)

    def push(self, msg: str, reply: Optional[ReplyInfo] = None) -> None:
        log.info("PushToBulletSender成功 %s", msg)
        self._queue.put(Bullet(msg, reply))

    def deliver(self, bullet: Bullet) -> list[str]:
        """Send every piece of one message; returns the pieces."""
        pieces = split_message(bullet.msg, self.service.config.danmu_len)
        for piece in pieces:
            try:
                self._send(piece, self.service.config.room_id, bullet.reply)
            except ApiError as exc:
                log.error("弹幕发送失败：%s msg: %s", exc, piece)
            else:
                log.info("弹幕发送成功：%s", piece)
            time.sleep(self.interval)
        return pieces

    def run(self, stop: threading.Event) -> None:
        while not stop.is_set():
            try:
                bullet = self._queue.get(timeout=POLL_INTERVAL)
            except queue.Empty:
                continue
            self.deliver(bullet)


class BulletRobot:
    """Passes viewer questions to the chat robot and queues its answers."""

    def __init__(self, service: ServiceContext, sender: Any, ask: AskFunc) -> None:
        self.service = service
        self.sender = sender
        self._ask = ask
        self._queue: "queue.Queue[Bullet]" = queue.Queue(QUEUE_SIZE)

    def push(self, content: str, reply: Optional[ReplyInfo] = None) -> None:
        log.info("PushToBulletRobot成功：%s", content)
        self._queue.put(Bullet(content, reply))

    def handle(self, bullet: Bullet) -> None:
        try:
            answer = self._ask(bullet.msg)
        except ApiError as exc:
            log.error("请求机器人失败：%s", exc)
            self.sender.push(ROBOT_BROKEN, bullet.reply)
            return
        if self.service.config.robot_mode == "ChatGPT":
            self.sender.push(answer, bullet.reply)
            log.info("机器人回复：%s", answer)
            return
        for part in split_robot_reply(answer, self.service.config.robot_name):
            self.sender.push(part, bullet.reply)

    def run(self, stop: threading.Event) -> None:
        while not stop.is_set():
            try:
                bullet = self._queue.get(timeout=POLL_INTERVAL)
            except queue.Empty:
                continue
            self.handle(bullet)


@dataclass
class InteractData:
    """A welcome for one user."""

    uid: int
    msg: str
    reply: Optional[ReplyInfo] = None


class InteractGate:
    """Sends welcomes, dropping repeats for the same user within a time window."""

    def __init__(self, service: ServiceContext, sender: Any, window: float = 10.0) -> None:
        self.service = service
        self.sender = sender
        self.window = window
        self._seen: dict[int, float] = {}
        self._lock = threading.Lock()
        self._queue: "queue.Queue[InteractData]" = queue.Queue(QUEUE_SIZE)

    def push(self, data: InteractData) -> None:
        self._queue.put(data)

    def handle(self, data: InteractData, now: Optional[float] = None) -> bool:
        """Send the welcome unless the user was welcomed recently; True if sent."""
        moment = time.time() if now is None else now
        with self._lock:
            last = self._seen.get(data.uid)
            if last is not None and last + self.window >= moment:
                log.debug("用户 %s 重复欢迎已被过滤", data.uid)
                return False
            for line in data.msg.split("\n"):
                if self.service.config.welcome_use_at:
                    data.reply = ReplyInfo(reply_uid=str(data.uid))
                    self.sender.push(line, data.reply)
                else:
                    self.sender.push(line)
                log.debug(line)
            self._seen[data.uid] = moment
        return True

    def prune(self, now: Optional[float] = None) -> None:
        """Forget users whose window has passed."""
        moment = time.time() if now is None else now
        with self._lock:
            for uid in [uid for uid, last in self._seen.items() if last + self.window < moment]:
                del self._seen[uid]
                log.debug("用户 %s 已从重复过滤列表移除", uid)

    def run(self, stop: threading.Event) -> None:
        next_prune = time.monotonic() + self.window
        while not stop.is_set():
            try:
                data = self._queue.get(timeout=POLL_INTERVAL)
            except queue.Empty:
                pass
            else:
                self.handle(data)
            if time.monotonic() >= next_prune:
                self.prune()
                next_prune = time.monotonic() + self.window