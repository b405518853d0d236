import json

import pytest

from danmubot.config import ChatGPTConfig, Config, CronDanmu, WelcomeByTime, load_config, save_config


def test_empty_mapping_gives_defaults():
    cfg = Config.from_dict({})
    assert cfg == Config()
    assert cfg.room_id == 4699397
    assert cfg.danmu_len == 20
    assert cfg.entry_msg == "off"
    assert cfg.welcome_danmu == ["欢迎 {user} ~"]
    assert cfg.chatgpt.model == "gpt-3.5-turbo"
    assert cfg.draw_lots_list[-1] == "我是签，抽我抽我"


def test_keys_are_case_insensitive():
    cfg = Config.from_dict({"roomid": 1234, "DANMULEN": 30, "robotmode": "ChatGPT"})
    assert cfg.room_id == 1234
    assert cfg.danmu_len == 30
    assert cfg.robot_mode == "ChatGPT"


def test_nested_sections():
    cfg = Config.from_dict(
        {
            "ChatGPT": {"APIToken": "token", "Limit": False},
            "CronDanmuList": [{"Cron": "*/5 * * * *", "Random": True, "Danmu": ["a", "b"]}],
            "WelcomeDanmuByTime": [{"Enabled": True, "Key": "night", "Danmu": ["晚上好 {user}"]}],
            "WelcomeString": {123: "hi"},
        }
    )
    assert cfg.chatgpt == ChatGPTConfig(api_token="token", limit=False)
    assert cfg.cron_danmu_list == [CronDanmu(cron="*/5 * * * *", random=True, danmu=["a", "b"])]
    assert cfg.welcome_danmu_by_time == [WelcomeByTime(enabled=True, key="night", danmu=["晚上好 {user}"])]
    assert cfg.welcome_string == {"123": "hi"}


def test_null_value_keeps_default():
    assert Config.from_dict({"GoodbyeInfo": None, "DBPath": None}).db_path == "./db"


def test_invalid_robot_mode_rejected():
    with pytest.raises(ValueError):
        Config.from_dict({"RobotMode": "Other"})


@pytest.mark.parametrize(
    "data",
    [{"RoomId": "abc"}, {"PKNotice": "yes"}, {"WelcomeDanmu": "x"}, {"CronDanmuList": {"Cron": "x"}}],
)
def test_wrong_types_rejected(data):
    with pytest.raises(ValueError):
        Config.from_dict(data)


def test_to_dict_uses_setting_names():
    data = Config().to_dict()
    assert data["RoomId"] == 4699397
    assert data["ChatGPT"]["APIUrl"] == "https://api.openai.com/v1"
    assert data["CronDanmuList"] == []


def test_json_round_trip():
    cfg = Config(room_id=55, cron_danmu_list=[CronDanmu(cron="0 * * * *", danmu=["x"])])
    assert Config.from_dict(json.loads(json.dumps(cfg.to_dict(), ensure_ascii=False))) == cfg


def test_write_and_reload_like_source(tmp_path):
    path = tmp_path / "etc" / "bilidanmaku-api.yaml"
    cfg = Config()
    cfg.sign_in_enable = False
    cfg.room_id = 4699397
    cfg.cron_danmu = False
    save_config(Config.from_dict(json.loads(json.dumps(cfg.to_dict()))), path)
    loaded = load_config(path)
    assert loaded.room_id == 4699397
    assert loaded.sign_in_enable is False
    assert loaded == cfg

    loaded.sign_in_enable = True
    save_config(loaded, path)
    assert load_config(path).sign_in_enable is True


def test_env_expansion(tmp_path, monkeypatch):
    monkeypatch.setenv("DANMUBOT_ROOM", "12345")
    monkeypatch.delenv("DANMUBOT_MISSING", raising=False)
    path = tmp_path / "conf.yaml"
    path.write_text("RoomId: ${DANMUBOT_ROOM}\nRobotName: a$DANMUBOT_MISSING\n", encoding="utf-8")
    cfg = load_config(path)
    assert cfg.room_id == 12345
    assert cfg.robot_name == "a"


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "absent.yaml")