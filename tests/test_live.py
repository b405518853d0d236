import pytest

from danmubot.api import ApiError, Session
from danmubot.live import (
    LiveStatus,
    RoomNotFound,
    get_login_url,
    guard_list,
    master_info,
    online_rank,
    poll_login,
    room_init,
)


class FakeRawHeaders:
    def __init__(self, cookies):
        self._cookies = list(cookies)

    def getlist(self, name):
        return list(self._cookies) if name == "Set-Cookie" else []


class FakeRaw:
    def __init__(self, cookies):
        self.headers = FakeRawHeaders(cookies)


class FakeResponse:
    def __init__(self, payload, cookies=()):
        self._payload = payload
        self.headers = {}
        self.raw = FakeRaw(cookies)
        self.status_code = 200

    def json(self):
        return self._payload


class FakeHttp:
    def __init__(self, *responses):
        self.responses = list(responses)
        self.urls = []

    def get(self, url, headers=None):
        self.urls.append(url)
        return self.responses.pop(0)


def make_session(*responses, **kwargs):
    http = FakeHttp(*responses)
    return Session(http=http, **kwargs), http


def test_room_init_returns_data_section():
    session, http = make_session(FakeResponse({"code": 0, "data": {"uid": 42, "live_status": 1}}))
    room = room_init(session, 7)
    assert room["uid"] == 42
    assert LiveStatus(room["live_status"]) is LiveStatus.LIVE
    assert http.urls[0].endswith("room_init?id=7")


def test_room_init_missing_room():
    session, _ = make_session(FakeResponse({"code": 60004, "data": {}}))
    with pytest.raises(RoomNotFound):
        room_init(session, 7)


def test_room_missing_is_api_error():
    session, _ = make_session(FakeResponse({"code": 60004}))
    with pytest.raises(ApiError, match="房间号不存在"):
        room_init(session, 7)


def test_room_init_other_code_gives_empty():
    session, _ = make_session(FakeResponse({"code": 1, "data": {"uid": 42}}))
    assert room_init(session, 7) == {}


def test_master_info_uses_anchor_uid():
    info = {"code": 0, "data": {"info": {"uid": 42, "uname": "主播"}, "follower_num": 5}}
    session, http = make_session(
        FakeResponse({"code": 0, "data": {"uid": 42, "live_status": 0}}),
        FakeResponse(info),
    )
    result = master_info(session, 7)
    assert result["data"]["info"]["uname"] == "主播"
    assert http.urls[1].endswith("Master/info?uid=42")


def test_master_info_error():
    session, _ = make_session(
        FakeResponse({"code": 0, "data": {"uid": 42}}),
        FakeResponse({"code": -400}),
    )
    with pytest.raises(ApiError, match="获取用户信息失败"):
        master_info(session, 7)


def test_guard_list_url_and_result():
    payload = {"code": 0, "data": {"info": {"num": 3, "page": 1}, "list": []}}
    session, http = make_session(FakeResponse(payload))
    assert guard_list(session, 7, 42, 2) == payload
    assert "page_size=29&roomid=7&page=2&ruid=42" in http.urls[0]


def test_guard_list_error():
    session, _ = make_session(FakeResponse({"code": 1}))
    with pytest.raises(ApiError, match="获取舰长列表失败"):
        guard_list(session, 7, 42, 1)


def test_online_rank_error_and_url():
    session, http = make_session(FakeResponse({"code": 1}))
    with pytest.raises(ApiError, match="获取高能列表失败"):
        online_rank(session, 7, 42, 1)
    assert "ruid=42&roomId=7&page=1&pageSize=50" in http.urls[0]


def test_get_login_url():
    session, _ = make_session(
        FakeResponse({"data": {"url": "https://example.com/qr", "qrcode_key": "abc"}})
    )
    assert get_login_url(session) == ("https://example.com/qr", "abc")


def test_poll_login_waits_then_stores_cookies(tmp_path):
    session, http = make_session(
        FakeResponse({"code": 0, "data": {"code": 86101, "message": "wait"}}),
        FakeResponse(
            {"code": 0, "data": {"code": 0, "url": "u"}},
            cookies=["SESSDATA=token; Path=/", "bili_jct=token; Path=/"],
        ),
    )
    result = poll_login(session, "abc", tmp_path, interval=0)
    assert result["url"] == "u"
    assert len(http.urls) == 2
    assert http.urls[0].endswith("qrcode_key=abc")
    assert session.cookies == {"SESSDATA": "token", "bili_jct": "token"}
    assert session.cookie_str == "SESSDATA=token;bili_jct=token;"
    loaded = Session.from_token_files(tmp_path)
    assert loaded.cookies == session.cookies
    assert loaded.cookie_str == session.cookie_str


def test_poll_login_keeps_existing_cookie(tmp_path):
    session, _ = make_session(
        FakeResponse({"code": 0, "data": {"code": 0}}, cookies=["SESSDATA=placeholder; Path=/"]),
        cookie_str="SESSDATA=token;",
        cookies={"SESSDATA": "token"},
    )
    poll_login(session, "abc", tmp_path, interval=0)
    assert session.cookies == {"SESSDATA": "token"}
    assert session.cookie_str == "SESSDATA=token;"


def test_poll_login_expired_code(tmp_path):
    session, _ = make_session(FakeResponse({"code": 0, "data": {"code": 86038, "message": "expired"}}))
    with pytest.raises(ApiError, match="expired"):
        poll_login(session, "abc", tmp_path, interval=0)


def test_poll_login_outer_error(tmp_path):
    session, _ = make_session(FakeResponse({"code": -3, "message": "bad key"}))
    with pytest.raises(ApiError, match="bad key"):
        poll_login(session, "abc", tmp_path, interval=0)