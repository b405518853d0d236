import random

import pytest

from danmubot.api import ReplyInfo
from danmubot.commands import (
    MatchKind,
    anchor_command,
    check_at_me,
    draw_lot,
    keyword_reply,
    robot_process,
)
from danmubot.config import Config
from danmubot.service import ServiceContext


class Recorder:
    def __init__(self):
        self.pushed = []

    def push(self, msg, reply=None):
        self.pushed.append((msg, reply))


@pytest.fixture
def service(tmp_path):
    ctx = ServiceContext.open(Config(db_path=str(tmp_path)))
    ctx.user_id = 777
    yield ctx
    ctx.close()


def test_anchor_closes_welcome(service):
    service.config.interact_word = True
    service.config.entry_effect = True
    sender = Recorder()
    answer = anchor_command(service, sender, "关闭欢迎弹幕", "777")
    assert answer == "已临时关闭欢迎弹幕"
    assert sender.pushed == [("已临时关闭欢迎弹幕", None)]
    assert not service.config.interact_word
    assert not service.config.entry_effect
    assert not service.auto_interact.interact_word


def test_anchor_opens_welcome(service):
    sender = Recorder()
    anchor_command(service, sender, "开启欢迎弹幕", "777")
    assert sender.pushed == [("已临时开启欢迎弹幕", None)]
    assert service.config.welcome_high_wealthy
    assert service.auto_interact.entry_effect


def test_command_from_viewer_is_ignored(service):
    sender = Recorder()
    assert anchor_command(service, sender, "开启欢迎弹幕", "1") is None
    assert sender.pushed == []
    assert not service.config.interact_word


def test_keyword_reply_matches_substring(service):
    service.config.keyword_reply_list = {"hello": "hi there"}
    sender = Recorder()
    reply = ReplyInfo("5")
    assert keyword_reply(service, sender, "say hello now", reply) == "hi there"
    assert sender.pushed == [("hi there", reply)]


def test_keyword_reply_without_match(service):
    service.config.keyword_reply_list = {"hello": "hi there"}
    sender = Recorder()
    assert keyword_reply(service, sender, "nothing", None) is None
    assert sender.pushed == []


def test_draw_lot_picks_from_list(service):
    sender = Recorder()
    reply = ReplyInfo("9")
    answer = draw_lot(service, sender, "抽签", reply, random.Random(0))
    assert answer in service.config.draw_lots_list
    assert sender.pushed == [(answer, reply)]


def test_draw_lot_with_empty_list(service):
    service.config.draw_lots_list = []
    sender = Recorder()
    assert draw_lot(service, sender, "抽签", None, random.Random(0)) == "别抽签，抽主播!"


def test_draw_lot_other_message(service):
    sender = Recorder()
    assert draw_lot(service, sender, "抽签吧", None, random.Random(0)) is None
    assert sender.pushed == []


def test_check_at_me_kinds(service):
    assert check_at_me("test hello", service) is MatchKind.HAS_PREFIX
    assert check_at_me("a test b", service) is MatchKind.NONE
    service.config.fuzzy_match_cmd = True
    assert check_at_me("a test b", service) is MatchKind.CONTAINED


def test_robot_gets_prefixed_question(service):
    sender = Recorder()
    robot = Recorder()
    reply = ReplyInfo("3")
    assert robot_process(service, sender, robot, "test hello", reply) == " hello"
    assert robot.pushed == [(" hello", reply)]
    assert sender.pushed == []


def test_robot_gets_fuzzy_question(service):
    service.config.fuzzy_match_cmd = True
    robot = Recorder()
    robot_process(service, Recorder(), robot, "a test b", None)
    assert robot.pushed == [("a  b", None)]


def test_robot_skips_entry_message(service):
    service.config.entry_msg = "test me"
    robot = Recorder()
    assert robot_process(service, Recorder(), robot, "test me", None) is None
    assert robot.pushed == []


def test_help_lists_commands(service):
    sender = Recorder()
    robot = Recorder()
    robot_process(service, sender, robot, "@帮助", None)
    messages = [msg for msg, _ in sender.pushed]
    assert messages[0] == "发送带有 test 的弹幕和我互动"
    assert messages[1] == "请尽情调戏我吧!"
    assert messages[-1] == "主播发送「开启欢迎弹幕」即可开启欢迎弹幕"
    assert robot.pushed == []


def test_help_without_robot_command(service):
    service.config.talk_robot_cmd = ""
    sender = Recorder()
    robot = Recorder()
    robot_process(service, sender, robot, "@帮助", None)
    assert sender.pushed[0] == ("互动聊天已禁用...", None)
    assert robot.pushed == []