import json
import random

import pytest

from danmubot.config import Config, WelcomeByTime
from danmubot.interact import (
    handle_interact_word,
    in_exact,
    in_wide,
    short_name,
    strip_welcome,
    welcome_text,
    welcome_text_by_time,
)
from danmubot.service import ServiceContext


class Recorder:
    def __init__(self):
        self.items = []

    def push(self, item, reply=None):
        self.items.append((item, reply))


@pytest.fixture
def service(tmp_path):
    config = Config()
    config.db_path = str(tmp_path)
    config.danmu_len = 20
    config.welcome_danmu = ["欢迎 {user} ~"]
    config.welcome_use_at = False
    config.interact_word_by_time = False
    config.welcome_danmu_by_time = []
    config.interact_word = True
    config.interact_self = True
    config.interact_anchor = True
    config.welcome_switch = False
    config.welcome_string = {}
    config.welcome_blacklist = []
    config.welcome_blacklist_wide = []
    config.thanks_focus = True
    config.thanks_share = True
    config.focus_danmu = []
    ctx = ServiceContext.open(config)
    yield ctx
    ctx.close()


def _payload(msg_type, uid=100, uname="Bob"):
    return json.dumps({"data": {"uname": uname, "uid": uid, "msg_type": msg_type}})


def test_in_wide():
    assert in_wide("superbot99", ["bot"]) is True
    assert in_wide("alice", ["bot"]) is False
    assert in_wide("alice", None) is False


def test_in_exact():
    assert in_exact("alice", ["bob", "alice"]) is True
    assert in_exact("ali", ["bob", "alice"]) is False
    assert in_exact("alice", None) is False


def test_short_name_cuts_to_limit():
    name = "abcdefghijklmnop"
    result = short_name(name, 3, 10)
    assert len(result) == 7
    assert result.endswith("…")
    assert name.startswith(result[:-1])


def test_short_name_keeps_short_or_unbounded():
    assert short_name("Bob", 3, 20) == "Bob"
    assert short_name("abcdefghijk", 30, 20) == "abcdefghijk"


def test_strip_welcome_only_first():
    assert strip_welcome("欢迎欢迎小明") == "欢迎小明"
    assert strip_welcome("小明") == "小明"


def test_welcome_text_fills_name(service):
    assert welcome_text(service, 1, "Bob", random.Random(0)) == "欢迎 Bob ~"


def test_welcome_text_use_at_drops_name(service):
    service.config.welcome_use_at = True
    result = welcome_text(service, 1, "Bob", random.Random(0))
    assert "{user}" not in result
    assert "Bob" not in result


def test_welcome_text_long_name_splits_line(service):
    service.config.danmu_len = 10
    name = "abcdefghijklmnop"
    result = welcome_text(service, 1, name, random.Random(0))
    assert name in result
    assert "\n" in result


def test_visitor_use_at(service):
    service.config.welcome_use_at = True
    service.other_side_uid.add(7)
    assert welcome_text(service, 7, "Bob", random.Random(0)) == "欢迎过来串门~"


def test_visitor_long_name_fits_length(service):
    service.other_side_uid.add(7)
    result = welcome_text(service, 7, "x" * 40, random.Random(0))
    assert len(result) == service.config.danmu_len
    assert result.startswith("欢迎 ")
    assert result.endswith("… 过来串门~")


def test_visitor_short_name(service):
    service.other_side_uid.add(7)
    result = welcome_text(service, 7, "Bob", random.Random(0))
    assert "Bob" in result and result.endswith("过来串门~")


def test_welcome_by_time_uses_slot(service):
    service.config.interact_word_by_time = True
    service.config.welcome_danmu_by_time = [
        WelcomeByTime(enabled=True, key="morning", danmu=["早上好 {user}"])
    ]
    assert welcome_text_by_time(service, 1, "Bob", random.Random(0), hour=6) == "早上好 Bob"
    assert welcome_text_by_time(service, 1, "Bob", random.Random(0), hour=22) == "欢迎 Bob ~"


def test_enter_pushes_welcome(service):
    gate, sender = Recorder(), Recorder()
    pushed = handle_interact_word(service, gate, sender, _payload(1), random.Random(0))
    assert [item.uid for item in pushed] == [100]
    assert gate.items[0][0].msg == "欢迎 Bob ~"
    assert sender.items == []


def test_blacklisted_user_not_welcomed(service):
    service.config.welcome_blacklist_wide = ["Bo"]
    gate = Recorder()
    assert handle_interact_word(service, gate, Recorder(), _payload(1), random.Random(0)) == []
    assert gate.items == []


def test_special_welcome(service):
    service.config.welcome_switch = True
    service.config.welcome_string = {"100": "hello there"}
    pushed = handle_interact_word(service, Recorder(), Recorder(), _payload(1), random.Random(0))
    assert pushed[0].msg == "hello there"


def test_self_skipped(service):
    service.config.interact_self = False
    service.robot_id = "100"
    assert handle_interact_word(service, Recorder(), Recorder(), _payload(1), random.Random(0)) == []


def test_follow_thanks(service):
    service.config.focus_danmu = ["thanks!"]
    sender = Recorder()
    handle_interact_word(service, Recorder(), sender, _payload(2), random.Random(0))
    first = sender.items[0][0]
    assert "Bob" in first and first.endswith("的关注!")
    assert sender.items[1][0] == "thanks!"


def test_share_thanks_with_at(service):
    service.config.welcome_use_at = True
    service.config.focus_danmu = ["thanks!"]
    sender = Recorder()
    handle_interact_word(service, Recorder(), sender, _payload(3), random.Random(0))
    msg, reply = sender.items[0]
    assert msg.startswith("感谢分享!")
    assert reply.reply_uid == "100"