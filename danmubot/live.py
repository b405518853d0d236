"""Room, anchor, ranking and login calls of the live site."""

import logging
import time
from enum import IntEnum
from pathlib import Path
from typing import Any, Union

import requests

from danmubot.api import USER_AGENT, ApiError, Session

log = logging.getLogger(__name__)

ROOM_INIT_URL = "https://api.live.bilibili.com/room/v1/Room/room_init?id={}"
MASTER_INFO_URL = "https://api.live.bilibili.com/live_user/v1/Master/info?uid={}"
GUARD_LIST_URL = (
    "https://api.live.bilibili.com/xlive/app-room/v2/guardTab/topList"
    "?page_size=29&roomid={}&page={}&ruid={}"
)
ONLINE_RANK_URL = (
    "https://api.live.bilibili.com/xlive/general-interface/v1/rank/getOnlineGoldRank"
    "?ruid={}&roomId={}&page={}&pageSize=50"
)
LOGIN_URL = "https://passport.bilibili.com/x/passport-login/web/qrcode/generate"
LOGIN_POLL_URL = "https://passport.bilibili.com/x/passport-login/web/qrcode/poll?qrcode_key={}"

ROOM_MISSING = 60004
QR_EXPIRED = 86038


class LiveStatus(IntEnum):
    NOT_STARTED = 0
    LIVE = 1
    CAROUSEL = 2


class RoomNotFound(ApiError):
    """Raised when a room id no longer exists."""


def _object(data: Any) -> dict:
    if not isinstance(data, dict):
        raise ApiError("unexpected response")
    return data


def _json(resp: Any) -> dict:
    try:
        return _object(resp.json())
    except ValueError as exc:
        raise ApiError(f"invalid JSON response: {exc}") from exc


def room_init(session: Session, room_id: int) -> dict:
    """The data section of a room's init record (uid, live_status, ...)."""
    data = _object(session.get_json(ROOM_INIT_URL.format(room_id)))
    code = data.get("code", 0)
    if code == ROOM_MISSING:
        raise RoomNotFound("房间号不存在")
    if code != 0:
        return {}
    section = data.get("data")
    return section if isinstance(section, dict) else {}


def master_info(session: Session, room_id: int) -> dict:
    """Profile of the anchor of a room."""
    room = room_init(session, room_id)
    uid = room.get("uid", 0)
    data = _object(session.get_json(MASTER_INFO_URL.format(uid)))
    if data.get("code", 0) != 0:
        log.error("直播间id %s 用户id %s 获取用户信息失败", room_id, uid)
        raise ApiError("获取用户信息失败")
    return data


def guard_list(session: Session, room_id: int, user_id: int, page: int) -> dict:
    """One page of the guard list of a room."""
    data = _object(session.get_json(GUARD_LIST_URL.format(room_id, page, user_id)))
    if data.get("code", 0) != 0:
        log.error("直播间id %s 用户id %s 获取舰长列表失败", room_id, user_id)
        raise ApiError("获取舰长列表失败")
    return data


def online_rank(session: Session, room_id: int, user_id: int, page: int) -> dict:
    """One page of the online gold ranking of a room."""
    data = _object(session.get_json(ONLINE_RANK_URL.format(user_id, room_id, page)))
    if data.get("code", 0) != 0:
        log.error("直播间id %s 用户id %s 获取高能列表失败", room_id, user_id)
        raise ApiError("获取高能列表失败")
    return data


def get_login_url(session: Session) -> tuple[str, str]:
    """The QR login URL and the key to poll it with."""
    data = _object(session.get_json(LOGIN_URL))
    section = data.get("data")
    if not isinstance(section, dict):
        section = {}
    key = str(section.get("qrcode_key", ""))
    log.info("oauthKey: %s", key)
    return str(section.get("url", "")), key


def _set_cookie_headers(resp: Any) -> list[str]:
    raw_headers = getattr(getattr(resp, "raw", None), "headers", None)
    if raw_headers is not None and hasattr(raw_headers, "getlist"):
        return list(raw_headers.getlist("Set-Cookie"))
    value = resp.headers.get("Set-Cookie")
    return [value] if value else []


def poll_login(session: Session, oauth_key: str, token_dir: Union[str, Path] = "token",
               interval: float = 5.0) -> dict:
    """Wait for the QR code to be scanned, store the cookies and save them."""
    url = LOGIN_POLL_URL.format(oauth_key)
    log.info("等待扫码登录...")
    while True:
        try:
            resp = session.http.get(url, headers={"user-agent": USER_AGENT})
        except requests.RequestException as exc:
            raise ApiError(f"login poll failed: {exc}") from exc
        data = _json(resp)
        if data.get("code", 0) != 0:
            raise ApiError(str(data.get("message", "")))
        section = data.get("data")
        if not isinstance(section, dict):
            section = {}
        state = section.get("code", 0)
        if state == 0:
            log.info("登录成功！")
            break
        if state == QR_EXPIRED:
            message = str(section.get("message", ""))
            log.error(message)
            raise ApiError(message)
        time.sleep(interval)

    for header in _set_cookie_headers(resp):
        first = header.split(";")[0]
        name, sep, rest = first.partition("=")
        if not sep:
            continue
        if name not in session.cookies:
            session.cookies[name] = rest.split("=")[0]
            session.cookie_str += first + ";"
    session.save_token_files(token_dir)
    return section