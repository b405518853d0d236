import threading
import time
from types import SimpleNamespace
from urllib.parse import parse_qs, urlparse

from danmubot.config import Config
from danmubot.pk import PK_FAILED, PKWatcher, pk_report


class FakeSender:
    def __init__(self):
        self.sent = []

    def push(self, msg, reply=None):
        self.sent.append((msg, reply))


class FakeSession:
    def __init__(self, routes):
        self.routes = routes
        self.calls = []

    def get_json(self, url, headers=None):
        self.calls.append(url)
        parsed = urlparse(url)
        query = {key: values[0] for key, values in parse_qs(parsed.query).items()}
        for fragment, answer in self.routes.items():
            if fragment in parsed.path:
                return answer(query) if callable(answer) else answer
        raise AssertionError(f"unexpected url {url}")


GUARD_PAGES = {
    1: {"code": 0, "data": {"info": {"num": 2, "page": 2}, "list": [{"uid": 1}, {"uid": 2}]}},
    2: {"code": 0, "data": {"info": {"num": 2, "page": 2}, "list": [{"uid": 3}]}},
}


def make_routes(rank_pages=None, guard_pages=None):
    rank_pages = rank_pages or {
        1: {
            "code": 0,
            "data": {
                "onlineNum": 2,
                "OnlineRankItem": [
                    {"uid": 5, "score": 10, "guard_level": 3},
                    {"uid": 6, "score": 7, "guard_level": 0},
                ],
            },
        }
    }
    guard_pages = guard_pages or GUARD_PAGES
    return {
        "room_init": {"code": 0, "data": {"uid": 42, "live_status": 1}},
        "Master/info": {"code": 0, "data": {"info": {"uid": 42, "uname": "rival"}, "follower_num": 100}},
        "guardTab/topList": lambda q: guard_pages[int(q["page"])],
        "getOnlineGoldRank": lambda q: rank_pages[int(q["page"])],
    }


def make_service():
    return SimpleNamespace(config=Config(), other_side_uid={999})


def test_report_lines_and_opponents():
    service = make_service()
    sender = FakeSender()
    lines = pk_report(service, FakeSession(make_routes()), sender, 1001)
    assert lines[0] == "当前对手:rival"
    assert lines[2] == "当前1船在线，高能榜2人"
    assert lines[3] == "榜前50贡献17分"
    assert [msg for msg, _ in sender.sent] == lines
    assert service.other_side_uid == {1, 2, 3, 5, 6}


def test_report_fetches_remaining_rank_pages():
    rank_pages = {
        1: {"code": 0, "data": {"onlineNum": 3, "OnlineRankItem": [
            {"uid": 5, "score": 1, "guard_level": 0},
            {"uid": 6, "score": 1, "guard_level": 0},
        ]}},
        2: {"code": 0, "data": {"onlineNum": 3, "OnlineRankItem": [{"uid": 7, "score": 1, "guard_level": 0}]}},
    }
    service = make_service()
    pk_report(service, FakeSession(make_routes(rank_pages=rank_pages)), FakeSender(), 1001)
    assert 7 in service.other_side_uid
    assert {5, 6} <= service.other_side_uid


def test_guard_list_failure_announces_error():
    routes = make_routes()
    routes["guardTab/topList"] = {"code": -1, "message": "bad"}
    service = make_service()
    sender = FakeSender()
    assert pk_report(service, FakeSession(routes), sender, 1001) == []
    assert sender.sent == [(PK_FAILED, None)]
    assert service.other_side_uid == {999}


def test_master_info_failure_is_silent():
    routes = make_routes()
    routes["Master/info"] = {"code": 1}
    sender = FakeSender()
    assert pk_report(make_service(), FakeSession(routes), sender, 1001) == []
    assert sender.sent == []


def test_rank_failure_announces_error():
    routes = make_routes()
    routes["getOnlineGoldRank"] = {"code": 5}
    sender = FakeSender()
    pk_report(make_service(), FakeSession(routes), sender, 1001)
    assert sender.sent[-1] == (PK_FAILED, None)


def test_watcher_filters_repeats_within_window():
    sender = FakeSender()
    watcher = PKWatcher(make_service(), FakeSession(make_routes()), sender, window=10.0)
    assert watcher.handle(1001, now=100.0) is True
    count = len(sender.sent)
    assert watcher.handle(1001, now=105.0) is False
    assert len(sender.sent) == count
    assert watcher.handle(1001, now=111.0) is True
    assert len(sender.sent) == 2 * count


def test_watcher_prune_forgets_old_rooms():
    watcher = PKWatcher(make_service(), FakeSession(make_routes()), FakeSender(), window=10.0)
    watcher.handle(1001, now=100.0)
    watcher.prune(now=105.0)
    assert watcher.handle(1001, now=106.0) is False
    watcher.prune(now=200.0)
    assert watcher.handle(1001, now=200.0) is True


def test_watcher_run_processes_queue():
    sender = FakeSender()
    watcher = PKWatcher(make_service(), FakeSession(make_routes()), sender)
    stop = threading.Event()
    watcher.push(1001)
    thread = threading.Thread(target=watcher.run, args=(stop,))
    thread.start()
    deadline = time.monotonic() + 5
    while len(sender.sent) < 4 and time.monotonic() < deadline:
        time.sleep(0.01)
    stop.set()
    thread.join(timeout=5)
    assert sender.sent[0][0] == "当前对手:rival"
    assert not thread.is_alive()