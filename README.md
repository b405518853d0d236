# danmubot

The parts of a chat robot for Bilibili live rooms. Given the frames of a
room's danmaku (bullet-comment) stream, it decodes them and reacts in the
chat: it welcomes viewers, thanks them for gifts, follows and shares,
announces PK opponents, keeps sign-ins and daily message counts, tracks
blind-box profit and loss, draws lots, answers keywords and hands
questions to a chat robot (QingYunKe or an OpenAI-compatible
chat-completion service).

## What is inside

| Module | Purpose |
| --- | --- |
| `danmubot.packet` | The binary frame format of the stream: `Packet`, `Protocol`, `Operation`, building enter and heartbeat packets, decoding frames and unpacking zlib/brotli bundles (`Packet.parse`). |
| `danmubot.danmaku` | `parse_danmaku`: a `DANMU_MSG` body as a `Danmaku` with its `User`, `Medal`, `Extra` and `Emoticon`. |
| `danmubot.config` | `Config` with every setting and its default; `load_config` / `save_config` for YAML files. |
| `danmubot.storage` | SQLite stores: `SignInStore`, `DanmuCountStore`, `BlindBoxStatStore`; `RecordNotFound` when a lookup finds nothing. |
| `danmubot.service` | `ServiceContext`: the configuration, the stores and shared run-time state (anchor uid, robot uid, PK opponent's viewers). |
| `danmubot.api` | `Session`: cookies and HTTP client, posting chat messages (`send`), the broadcast token; `request_qingyunke`, `request_chatgpt`. |
| `danmubot.live` | `room_init`, `master_info`, `guard_list`, `online_rank`, and QR login with `get_login_url` / `poll_login`. |
| `danmubot.bullets` | `BulletSender` (cuts messages to `DanmuLen` and sends one piece per second), `BulletRobot` (chat-robot queue), `InteractGate` (drops repeat welcomes within a window). |
| `danmubot.pk` | `pk_report` and `PKWatcher`: the opponent's name, guards, followers and online ranking. |
| `danmubot.thanks` | `GiftThanks`: gathers gifts per giver and thanks them in one message; blind-box results; `thank_guard`. |
| `danmubot.greetings`, `danmubot.interact` | Welcome texts from a list or by time of day, follow and share thanks. |
| `danmubot.commands`, `danmubot.chat` | Reactions to chat messages: anchor switches, keywords, lots, robot questions, sign-in, counts, blind-box queries; `DanmuDispatcher`. |
| `danmubot.events` | `EventRouter`: hands each stream command to the part that handles it. |

## Configuration

Settings live in a YAML file. Every key is optional and falls back to its
default; keys are matched without regard to case, and `$VAR` or `${VAR}`
in the file is replaced by the environment variable before parsing.
`RobotMode` must be `QingYunKe` or `ChatGPT`; anything else, or a value of
the wrong type, raises `ValueError`.

```yaml
RoomId: 4699397
DanmuLen: 20
EntryMsg: "off"
InteractWord: true
WelcomeDanmu:
  - "欢迎 {user} ~"
ThanksGift: true
ThanksGiftTimeout: 3
TalkRobotCmd: "test"
RobotMode: QingYunKe
KeywordReply: true
KeywordReplyList:
  主播: "主播在呢~"
DBPath: ./db
DBName: sqliteDataBase.db
```

```python
from danmubot.config import load_config, save_config

config = load_config("etc/bilidanmaku-api.yaml")
config.sign_in_enable = False
save_config(config, "etc/bilidanmaku-api.yaml")
```

## Working with the stream format

```python
from danmubot.packet import Operation, decode_packet, new_enter_packet, new_heartbeat_packet

heartbeat = new_heartbeat_packet()
enter = new_enter_packet(0, "", 4699397, "token")

for packet in decode_packet(frame).parse():
    if packet.operation == Operation.NOTIFICATION:
        print(packet.json())
```

`Packet.parse()` unpacks zlib- and brotli-compressed bundles into the
packets they carry; plain packets come back as they are. Malformed frames
raise `PacketError`.

## Logging in

A saved login is two files: `token/bili_token.txt` holds the cookie string
and `token/bili_token.json` the same cookies as a mapping.

```python
from danmubot.api import Session

session = Session.from_token_files("token", None)
```

Without one, `danmubot.live.get_login_url` returns the address to show as
a QR code and its key; `danmubot.live.poll_login` waits until it has been
scanned, fills the session's cookies and writes the token files.

## Putting the parts together

Each queue has a `run(stop)` loop meant for its own thread, ending when the
`threading.Event` is set.

```python
import threading

from danmubot.api import Session, request_qingyunke
from danmubot.bullets import BulletRobot, BulletSender, InteractGate
from danmubot.chat import DanmuDispatcher
from danmubot.config import load_config
from danmubot.events import EventRouter
from danmubot.pk import PKWatcher
from danmubot.service import ServiceContext
from danmubot.thanks import GiftThanks

session = Session.from_token_files("token", None)
service = ServiceContext.open(load_config("etc/bilidanmaku-api.yaml"))

sender = BulletSender(service, session.send)
robot = BulletRobot(service, sender, lambda text: request_qingyunke(session, text))
gate = InteractGate(service, sender, 10.0)
pk = PKWatcher(service, session, sender, 10.0)
thanks = GiftThanks(service, sender)
dispatcher = DanmuDispatcher(service, sender, robot)
router = EventRouter(service, sender, gate, pk, thanks, dispatcher)

stop = threading.Event()
for worker in (sender, robot, gate, pk, thanks, dispatcher):
    threading.Thread(target=worker.run, args=(stop,), daemon=True).start()

# for each notification packet read from the stream:
#     router.handle(packet.json()["cmd"], packet.body)
```

`EventRouter.handle` returns `False` for commands it has no handler for.
`on_preparing` (the goodbye message) is not routed by default.

## Chat commands the robot understands

* `@帮助` – lists what the robot can do
* `签到` / `打卡` – daily sign-in (`SignInEnable`)
* `查询弹幕` – your message counts for today, yesterday and the day before (`DanmuCntEnable`)
* `X月盲盒` – your blind-box result for month X of this year; the anchor sees the whole room (`BlindBoxStat`)
* `抽签` – draw a lot (`DrawByLot`)
* `关闭欢迎弹幕` / `开启欢迎弹幕` – the anchor turns welcomes off or on
* a message starting with `TalkRobotCmd` (or containing it, with `FuzzyMatchCmd`) goes to the chat robot

## What it does not do

* It has no websocket client: opening the connection to the stream,
  sending the enter and heartbeat packets and reading frames is left to
  the caller.
* It has no command-line program; the parts are wired together in code as
  shown above.
* Scheduled messages (`CronDanmu`, `CronDanmuList`) are read from the
  configuration but nothing runs them.
* It does not draw the login QR code; it only returns its address.
* Configuration is not reloaded while running.

## Tests

The test suite uses pytest, available through the `test` extra.