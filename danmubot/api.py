"""HTTP calls of the live site and of the chat robots."""

import json
import logging
import time
import urllib.parse
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Union

import requests

from danmubot.config import Config

log = logging.getLogger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
SEND_URL = "https://api.live.bilibili.com/msg/send"
DANMU_INFO_URL = "https://api.live.bilibili.com/xlive/web-room/v1/index/getDanmuInfo?id={}&type=0"
QINGYUNKE_URL = "http://api.qingyunke.com/api.php?key=free&appid=0&msg={}&_={}"
SEND_ATTEMPTS = 3
TOKEN_TEXT = "bili_token.txt"
TOKEN_JSON = "bili_token.json"


class ApiError(Exception):
    """Raised when a remote service fails or answers with an error."""


@dataclass
class ReplyInfo:
    """Whom a message replies to."""

    reply_uid: str
    reply_msg_id: str = ""


def _decode(resp: Any) -> Any:
    try:
        return resp.json()
    except ValueError as exc:
        raise ApiError(f"invalid JSON response: {exc}") from exc


class Session:
    """Logged-in cookies and the HTTP client that carries them."""

    retry_delay = 1.0

    def __init__(self, cookie_str: str = "", cookies: Optional[dict[str, str]] = None,
                 http: Optional[Any] = None) -> None:
        self.cookie_str = cookie_str
        self.cookies = dict(cookies or {})
        self.http = http if http is not None else requests.Session()

    @classmethod
    def from_token_files(cls, directory: Union[str, Path] = "token", http: Optional[Any] = None) -> "Session":
        """Load cookies saved by an earlier login."""
        base = Path(directory)
        cookie_str = (base / TOKEN_TEXT).read_text(encoding="utf-8")
        cookies = json.loads((base / TOKEN_JSON).read_text(encoding="utf-8"))
        if not isinstance(cookies, dict):
            raise ValueError(f"{base / TOKEN_JSON}: expected a JSON object")
        return cls(cookie_str, {str(k): str(v) for k, v in cookies.items()}, http)

    def save_token_files(self, directory: Union[str, Path] = "token") -> None:
        base = Path(directory)
        base.mkdir(parents=True, exist_ok=True)
        (base / TOKEN_TEXT).write_text(self.cookie_str, encoding="utf-8")
        (base / TOKEN_JSON).write_text(json.dumps(self.cookies, ensure_ascii=False), encoding="utf-8")

    def get_json(self, url: str, headers: Optional[dict[str, str]] = None) -> Any:
        """GET a URL with the browser user agent and decode the JSON answer."""
        merged = {"user-agent": USER_AGENT, **(headers or {})}
        try:
            resp = self.http.get(url, headers=merged)
        except requests.RequestException as exc:
            raise ApiError(f"request {url} failed: {exc}") from exc
        return _decode(resp)

    def send(self, msg: str, room_id: int, reply: Optional[ReplyInfo] = None) -> None:
        """Post a chat message, retrying; failures are logged, not raised."""
        form = build_send_form(msg, room_id, self.cookies.get("bili_jct", ""), reply)
        files = {key: (None, value) for key, value in form.items()}
        headers = {"Cookie": self.cookie_str, "user-agent": USER_AGENT}
        last_error: Optional[Exception] = None
        for attempt in range(1, SEND_ATTEMPTS + 1):
            try:
                resp = self.http.post(SEND_URL, files=files, headers=headers)
            except requests.RequestException as exc:
                log.error("send request failed: %s", exc)
                last_error = exc
            else:
                try:
                    data = resp.json()
                except ValueError as exc:
                    log.error("send response could not be parsed: %s", exc)
                    return
                if not isinstance(data, dict) or data.get("code", 0) == 0:
                    return
                message = str(data.get("msg", ""))
                log.info("send rejected: %s", message)
                last_error = ApiError(message)
            if attempt < SEND_ATTEMPTS:
                time.sleep(self.retry_delay)
        log.error("message %r not sent: %s", msg, last_error)

    def danmu_token(self, room_id: int, buvid3: str, buvid4: str) -> dict:
        """Fetch the broadcast token and host list of a room."""
        cookies = self.cookie_str + f"buvid3={buvid3};" + f"buvid4={buvid4};"
        data = self.get_json(DANMU_INFO_URL.format(room_id), {"Cookie": cookies})
        if not isinstance(data, dict):
            raise ApiError("unexpected danmu info response")
        if data.get("code", 0) != 0:
            raise ApiError(str(data.get("message", "")))
        return data


def build_send_form(msg: str, room_id: int, csrf: str, reply: Optional[ReplyInfo] = None,
                    rnd: Optional[int] = None) -> dict[str, str]:
    """Form fields of a message post."""
    form = {
        "bubble": "5",
        "msg": msg,
        "color": "4546550",
        "fontsize": "25",
        "rnd": str(int(time.time()) if rnd is None else rnd),
    }
    if reply is not None:
        form["reply_mid"] = reply.reply_uid
        if reply.reply_msg_id:
            form["replay_dmid"] = reply.reply_msg_id
    form["roomid"] = str(room_id)
    form["csrf"] = csrf
    form["csrf_token"] = csrf
    return form


def encode_special_char(s: str) -> str:
    """Escape ASCII punctuation twice, keep letters, digits and non-ASCII text."""
    out = []
    for char in s:
        if char.isascii() and char.isalnum():
            out.append(char)
        elif char.isascii():
            out.append(urllib.parse.quote_plus(urllib.parse.quote_plus(char, safe=""), safe=""))
        else:
            out.append(char)
    return "".join(out)


def request_qingyunke(session: Session, msg: str) -> str:
    """Ask the free chat robot and return its raw reply."""
    url = QINGYUNKE_URL.format(encode_special_char(msg), time.time_ns() // 1000)
    try:
        resp = session.http.get(url, headers={"Content-Type": "utf-8"})
    except requests.RequestException as exc:
        raise ApiError(f"robot request failed: {exc}") from exc
    data = _decode(resp)
    if not isinstance(data, dict):
        raise ApiError("unexpected robot response")
    return str(data.get("content", ""))


def clean_chatgpt_reply(text: str) -> str:
    """Drop a leading full-width question mark and blank-line breaks."""
    if text.startswith("？"):
        text = text[1:]
    return text.replace("\n\n", "")


def request_chatgpt(session: Session, msg: str, config: Config) -> str:
    """Ask a chat-completion service configured in the robot settings."""
    gpt = config.chatgpt
    prompt = gpt.prompt
    if gpt.limit:
        prompt += f" 尽可能的在{config.danmu_len}个字内回答"
    body = {
        "model": gpt.model,
        "messages": [
            {"role": "assistant", "content": prompt},
            {"role": "user", "content": msg},
        ],
    }
    url = gpt.api_url.rstrip("/") + "/chat/completions"
    headers = {"Authorization": f"Bearer {gpt.api_token}", "Content-Type": "application/json"}
    try:
        resp = session.http.post(url, json=body, headers=headers)
    except requests.RequestException as exc:
        raise ApiError(f"chat request failed: {exc}") from exc
    data = _decode(resp)
    if resp.status_code >= 400:
        detail = data.get("error", {}) if isinstance(data, dict) else {}
        message = detail.get("message", "") if isinstance(detail, dict) else str(detail)
        raise ApiError(f"chat service returned {resp.status_code}: {message}")
    if not isinstance(data, dict):
        raise ApiError("unexpected chat response")
    log.info("本次开销：%s tokens", data.get("usage", {}).get("total_tokens", 0))
    return "".join(
        clean_chatgpt_reply(str(choice.get("message", {}).get("content", "")))
        for choice in data.get("choices", [])
    )