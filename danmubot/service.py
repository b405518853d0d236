"""Shared state of a running robot."""

import sqlite3
from dataclasses import dataclass, field
from pathlib import Path

from danmubot.config import Config
from danmubot.storage import BlindBoxStatStore, DanmuCountStore, SignInStore, open_database


@dataclass
class AutoInteract:
    """Welcome switches as the anchor last set them by command."""

    entry_effect: bool = False
    welcome_high_wealthy: bool = False
    interact_word: bool = False


@dataclass
class ServiceContext:
    """Configuration, stores and run-time state used by every part of the robot."""

    config: Config
    conn: sqlite3.Connection
    sign_in: SignInStore
    danmu_count: DanmuCountStore
    blind_box: BlindBoxStatStore
    user_id: int = 0
    robot_id: str = ""
    other_side_uid: set[int] = field(default_factory=set)
    auto_interact: AutoInteract = field(default_factory=AutoInteract)

    @classmethod
    def open(cls, config: Config) -> "ServiceContext":
        """Open the database named by the configuration and its stores."""
        directory = Path(config.db_path)
        directory.mkdir(parents=True, exist_ok=True)
        conn = open_database(directory / config.db_name)
        return cls(
            config=config,
            conn=conn,
            sign_in=SignInStore(conn, config.room_id),
            danmu_count=DanmuCountStore(conn, config.room_id),
            blind_box=BlindBoxStatStore(conn, config.room_id),
        )

    def close(self) -> None:
        self.conn.close()

    def __enter__(self) -> "ServiceContext":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()