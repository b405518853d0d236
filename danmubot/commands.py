"""Chat commands: anchor switches, keyword replies, drawing lots and robot talk."""

import logging
import random
from enum import Enum
from typing import Any, Optional

from danmubot.api import ReplyInfo
from danmubot.service import ServiceContext

log = logging.getLogger(__name__)

CLOSE_WELCOME = "关闭欢迎弹幕"
OPEN_WELCOME = "开启欢迎弹幕"
DRAW_LOT = "抽签"
NO_LOTS = "别抽签，抽主播!"
HELP = "@帮助"
HELP_LINES = (
    "发送「签到/打卡」即可签到",
    "发送「查询弹幕」查询自己近三天的弹幕数",
    "发送「X月盲盒」查询在本直播间的盲盒盈亏",
    "发送「抽签」即可抽签",
    "主播发送「关闭欢迎弹幕」即可关闭欢迎弹幕",
    "主播发送「开启欢迎弹幕」即可开启欢迎弹幕",
)

_RNG = random.Random()


class MatchKind(Enum):
    """How a message addresses the chat robot."""

    NONE = 0
    CONTAINED = 1
    HAS_PREFIX = 2


def _set_welcome(service: ServiceContext, enabled: bool) -> None:
    config = service.config
    config.interact_word = enabled
    config.entry_effect = enabled
    config.welcome_high_wealthy = enabled
    auto = service.auto_interact
    auto.interact_word = enabled
    auto.entry_effect = enabled
    auto.welcome_high_wealthy = enabled


def anchor_command(service: ServiceContext, sender: Any, msg: str, uid: str) -> Optional[str]:
    """Apply a welcome switch sent by the anchor; returns the announcement, if any."""
    if uid != str(service.user_id):
        return None
    if msg == CLOSE_WELCOME:
        _set_welcome(service, False)
        answer = "已临时关闭欢迎弹幕"
    elif msg == OPEN_WELCOME:
        _set_welcome(service, True)
        answer = "已临时开启欢迎弹幕"
    else:
        return None
    sender.push(answer)
    return answer


def keyword_reply(service: ServiceContext, sender: Any, msg: str,
                  reply: Optional[ReplyInfo] = None) -> Optional[str]:
    """Answer with the reply of the first configured keyword found in the message."""
    for keyword, answer in service.config.keyword_reply_list.items():
        if keyword in msg:
            sender.push(answer, reply)
            return answer
    return None


def draw_lot(service: ServiceContext, sender: Any, msg: str, reply: Optional[ReplyInfo] = None,
             rng: Optional[random.Random] = None) -> Optional[str]:
    """Draw a random lot when the message asks for one."""
    if msg != DRAW_LOT:
        return None
    lots = service.config.draw_lots_list
    answer = (rng or _RNG).choice(lots) if lots else NO_LOTS
    sender.push(answer, reply)
    return answer


def check_at_me(msg: str, service: ServiceContext) -> MatchKind:
    """Whether, and how, the message carries the robot's talk command."""
    command = service.config.talk_robot_cmd
    if command in msg and service.config.fuzzy_match_cmd:
        return MatchKind.CONTAINED
    if msg.startswith(command):
        return MatchKind.HAS_PREFIX
    return MatchKind.NONE


def robot_process(service: ServiceContext, sender: Any, robot: Any, msg: str,
                  reply: Optional[ReplyInfo] = None) -> Optional[str]:
    """Print help on request and pass questions for the robot on; returns the question."""
    config = service.config
    if msg == HELP:
        if config.talk_robot_cmd:
            sender.push(f"发送带有 {config.talk_robot_cmd} 的弹幕和我互动")
            sender.push("请尽情调戏我吧!")
        else:
            sender.push("互动聊天已禁用...")
        for line in HELP_LINES:
            sender.push(line)

    kind = check_at_me(msg, service)
    if kind is MatchKind.NONE:
        return None
    if kind is MatchKind.CONTAINED:
        content = msg.replace(config.talk_robot_cmd, "")
    else:
        content = msg[len(config.talk_robot_cmd):]
    if content and config.talk_robot_cmd and msg != config.entry_msg:
        robot.push(content, reply)
        return content
    return None