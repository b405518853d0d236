"""Robot configuration: defaults, validation and YAML storage."""

import os
import re
from collections.abc import Mapping
from dataclasses import MISSING, dataclass, field, fields
from pathlib import Path
from typing import Any, Callable, TypeVar, Union

import yaml

DEFAULT_CONFIG_PATH = Path("etc/bilidanmaku-api.yaml")
ROBOT_MODES = ("QingYunKe", "ChatGPT")

DEFAULT_DRAW_LOTS = (
    "恭喜您抽到吉签，好运常伴，心想事成！",
    "恭喜您获得上上签，一帆风顺，万事如意！",
    "喜获佳签，吉星高照，未来可期！",
    "抽到福签，福运亨通，好事连连！",
    "吉签在手，好运相随，笑口常开！",
    "恭喜您抽中好签，好运不断，步步高升！",
    "喜得吉签，好运自来，前程似锦！",
    "抽到吉签啦，事事顺心，幸福安康！",
    "恭喜您抽中如意签，心想事成，万事如意！",
    "喜获吉祥签，好运连连，快乐无边！",
    "抽到小凶签，近期小心行事。",
    "遗憾，下签，请保持警惕。",
    "不吉之签，需谨慎处理。",
    "抽到凶签，冷静应对挑战。",
    "抽到稍逊签，行事需谨慎。",
    "抽到小凶签，请留意周围事物。",
    "抽到下签，调整心态面对。",
    "运势不佳，努力克服困难。",
    "抽到下下签，但也请信心面对未来。",
    "我是签，抽我抽我",
)

T = TypeVar("T", bound="_Section")
Converter = Callable[[Any, str], Any]


def _setting(key: str, convert: Converter, default: Any = MISSING, factory: Any = MISSING) -> Any:
    meta = {"key": key, "convert": convert}
    if factory is not MISSING:
        return field(default_factory=factory, metadata=meta)
    return field(default=default, metadata=meta)


def _bool(value: Any, name: str) -> bool:
    if isinstance(value, bool):
        return value
    raise ValueError(f"{name}: expected a boolean, got {value!r}")


def _int(value: Any, name: str) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    raise ValueError(f"{name}: expected an integer, got {value!r}")


def _str(value: Any, name: str) -> str:
    if isinstance(value, str):
        return value
    raise ValueError(f"{name}: expected a string, got {value!r}")


def _str_list(value: Any, name: str) -> list[str]:
    if not isinstance(value, list):
        raise ValueError(f"{name}: expected a list, got {value!r}")
    return [_str(item, f"{name}[{pos}]") for pos, item in enumerate(value)]


def _str_map(value: Any, name: str) -> dict[str, str]:
    if not isinstance(value, Mapping):
        raise ValueError(f"{name}: expected a mapping, got {value!r}")
    return {str(key): _str(item, f"{name}.{key}") for key, item in value.items()}


def _mapping(value: Any, name: str) -> dict:
    if not isinstance(value, Mapping):
        raise ValueError(f"{name}: expected a mapping, got {value!r}")
    return dict(value)


def _section(cls: type) -> Converter:
    return lambda value, name: cls.from_dict(value)


def _section_list(cls: type) -> Converter:
    def convert(value: Any, name: str) -> list:
        if not isinstance(value, list):
            raise ValueError(f"{name}: expected a list, got {value!r}")
        return [cls.from_dict(item) for item in value]

    return convert


def _dump(value: Any) -> Any:
    if isinstance(value, _Section):
        return value.to_dict()
    if isinstance(value, list):
        return [_dump(item) for item in value]
    if isinstance(value, dict):
        return {key: _dump(item) for key, item in value.items()}
    return value


class _Section:
    """Mapping to and from dictionaries keyed by setting names, case-insensitively."""

    @classmethod
    def from_dict(cls: type[T], data: Any) -> T:
        if data is None:
            data = {}
        if not isinstance(data, Mapping):
            raise ValueError(f"{cls.__name__}: expected a mapping, got {data!r}")
        lookup = {str(key).lower(): value for key, value in data.items()}
        values = {}
        for spec in fields(cls):
            key = spec.metadata["key"]
            raw = lookup.get(key.lower())
            if raw is None:
                continue
            values[spec.name] = spec.metadata["convert"](raw, key)
        return cls(**values)

    def to_dict(self) -> dict[str, Any]:
        return {spec.metadata["key"]: _dump(getattr(self, spec.name)) for spec in fields(self)}


@dataclass
class CronDanmu(_Section):
    """A scheduled message list."""

    cron: str = _setting("Cron", _str, "")
    random: bool = _setting("Random", _bool, False)
    danmu: list[str] = _setting("Danmu", _str_list, factory=list)


@dataclass
class WelcomeByTime(_Section):
    """Welcome messages used during one time slot of the day."""

    enabled: bool = _setting("Enabled", _bool, False)
    key: str = _setting("Key", _str, "")
    random: bool = _setting("Random", _bool, False)
    danmu: list[str] = _setting("Danmu", _str_list, factory=list)


@dataclass
class ChatGPTConfig(_Section):
    api_url: str = _setting("APIUrl", _str, "https://api.openai.com/v1")
    api_token: str = _setting("APIToken", _str, "")
    prompt: str = _setting(
        "Prompt", _str, "你是一个非常幽默的机器人助理，可以使用emoji表情符号，可以使用颜文字"
    )
    limit: bool = _setting("Limit", _bool, True)
    model: str = _setting("Model", _str, "gpt-3.5-turbo")


@dataclass
class Config(_Section):
    """All robot settings with their defaults."""

    log: dict = _setting("Log", _mapping, factory=dict)

    room_id: int = _setting("RoomId", _int, 4699397)
    ws_server_url: str = _setting("WsServerUrl", _str, "wss://broadcastlv.chat.bilibili.com:2245/sub")

    danmu_len: int = _setting("DanmuLen", _int, 20)
    entry_msg: str = _setting("EntryMsg", _str, "off")
    pk_notice: bool = _setting("PKNotice", _bool, True)
    show_block_msg: bool = _setting("ShowBlockMsg", _bool, False)
    goodbye_info: str = _setting("GoodbyeInfo", _str, "")

    keyword_reply: bool = _setting("KeywordReply", _bool, False)
    keyword_reply_list: dict[str, str] = _setting("KeywordReplyList", _str_map, factory=dict)

    talk_robot_cmd: str = _setting("TalkRobotCmd", _str, "test")
    fuzzy_match_cmd: bool = _setting("FuzzyMatchCmd", _bool, False)
    robot_name: str = _setting("RobotName", _str, "花花")
    robot_mode: str = _setting("RobotMode", _str, "QingYunKe")
    chatgpt: ChatGPTConfig = _setting("ChatGPT", _section(ChatGPTConfig), factory=ChatGPTConfig)

    interact_word: bool = _setting("InteractWord", _bool, False)
    welcome_use_at: bool = _setting("WelcomeUseAt", _bool, False)
    welcome_danmu: list[str] = _setting("WelcomeDanmu", _str_list, factory=lambda: ["欢迎 {user} ~"])
    interact_word_by_time: bool = _setting("InteractWordByTime", _bool, False)
    welcome_danmu_by_time: list[WelcomeByTime] = _setting(
        "WelcomeDanmuByTime", _section_list(WelcomeByTime), factory=list
    )
    entry_effect: bool = _setting("EntryEffect", _bool, False)
    welcome_high_wealthy: bool = _setting("WelcomeHighWealthy", _bool, False)
    welcome_high_wealthy_level: int = _setting("WelcomeHighWealthyLevel", _int, 20)
    thanks_focus: bool = _setting("ThanksFocus", _bool, False)
    thanks_share: bool = _setting("ThanksShare", _bool, False)
    interact_self: bool = _setting("InteractSelf", _bool, True)
    interact_anchor: bool = _setting("InteractAnchor", _bool, True)
    focus_danmu: list[str] = _setting("FocusDanmu", _str_list, factory=list)
    welcome_switch: bool = _setting("WelcomeSwitch", _bool, False)
    welcome_string: dict[str, str] = _setting("WelcomeString", _str_map, factory=dict)
    welcome_blacklist_wide: list[str] = _setting("WelcomeBlacklistWide", _str_list, factory=list)
    welcome_blacklist: list[str] = _setting("WelcomeBlacklist", _str_list, factory=list)

    thanks_gift: bool = _setting("ThanksGift", _bool, False)
    thanks_gift_timeout: int = _setting("ThanksGiftTimeout", _int, 3)
    thanks_blind_box_timeout: int = _setting("ThanksBlindBoxTimeout", _int, 6)
    thanks_min_cost: int = _setting("ThanksMinCost", _int, 0)
    blind_box_profit_loss_stat: bool = _setting("BlindBoxProfitLossStat", _bool, True)
    thanks_gift_use_at: bool = _setting("ThanksGiftUseAt", _bool, False)

    cron_danmu: bool = _setting("CronDanmu", _bool, False)
    cron_danmu_list: list[CronDanmu] = _setting("CronDanmuList", _section_list(CronDanmu), factory=list)

    draw_by_lot: bool = _setting("DrawByLot", _bool, True)
    draw_lots_list: list[str] = _setting("DrawLotsList", _str_list, factory=lambda: list(DEFAULT_DRAW_LOTS))

    sign_in_enable: bool = _setting("SignInEnable", _bool, True)
    danmu_cnt_enable: bool = _setting("DanmuCntEnable", _bool, False)
    blind_box_stat: bool = _setting("BlindBoxStat", _bool, True)
    db_path: str = _setting("DBPath", _str, "./db")
    db_name: str = _setting("DBName", _str, "sqliteDataBase.db")

    customize_bullet: bool = _setting("CustomizeBullet", _bool, False)

    lottery_enable: bool = _setting("LotteryEnable", _bool, True)
    lottery_url: str = _setting("LotteryUrl", _str, "")

    def __post_init__(self) -> None:
        if self.robot_mode not in ROBOT_MODES:
            raise ValueError(f"RobotMode must be one of {', '.join(ROBOT_MODES)}, got {self.robot_mode!r}")

    @classmethod
    def from_dict(cls, data: Any) -> "Config":
        """Build a configuration from a mapping of setting names, filling in defaults."""
        return super().from_dict(data)

    def to_dict(self) -> dict[str, Any]:
        """Return every setting keyed by its setting name."""
        return super().to_dict()


_ENV_REF = re.compile(r"\$(?:\{([^}]*)\}|([A-Za-z0-9_]+))")


def _expand_env(text: str) -> str:
    def replace(match: re.Match) -> str:
        name = match.group(1) if match.group(1) is not None else match.group(2)
        return os.environ.get(name, "")

    return _ENV_REF.sub(replace, text)


def load_config(path: Union[str, Path] = DEFAULT_CONFIG_PATH) -> Config:
    """Read a YAML configuration file, expanding $VAR references first."""
    text = Path(path).read_text(encoding="utf-8")
    data = yaml.safe_load(_expand_env(text))
    return Config.from_dict(data or {})


def save_config(config: Config, path: Union[str, Path] = DEFAULT_CONFIG_PATH) -> None:
    """Write the configuration as YAML, creating the directory if needed."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(
        yaml.safe_dump(config.to_dict(), allow_unicode=True, sort_keys=False),
        encoding="utf-8",
    )