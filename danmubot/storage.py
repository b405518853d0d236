"""SQLite storage for sign-ins, danmu counts and blind-box statistics."""

import logging
import sqlite3
from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Optional, Union

log = logging.getLogger(__name__)

BUSY_TIMEOUT = 5.0


class RecordNotFound(LookupError):
    """Raised when a query matches no record."""


def open_database(path: Union[str, Path]) -> sqlite3.Connection:
    """Open (or create) the SQLite database shared by the stores."""
    conn = sqlite3.connect(str(path), timeout=BUSY_TIMEOUT, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    return conn


def _table_name(prefix: str, room_id: int) -> str:
    return f'"{prefix}_{int(room_id)}"'


class _Store:
    prefix = ""
    columns: tuple = ()
    schema = ""

    def __init__(self, conn: sqlite3.Connection, room_id: int) -> None:
        self._conn = conn
        self.table = _table_name(self.prefix, room_id)
        with self._conn:
            self._conn.execute(
                f"CREATE TABLE IF NOT EXISTS {self.table} "
                f"(id INTEGER PRIMARY KEY AUTOINCREMENT, {self.schema})"
            )

    def _save(self, values: tuple, record_id: Optional[int]) -> int:
        names = ", ".join(self.columns)
        marks = ", ".join("?" for _ in self.columns)
        with self._conn:
            if record_id:
                self._conn.execute(
                    f"INSERT OR REPLACE INTO {self.table} (id, {names}) VALUES (?, {marks})",
                    (record_id, *values),
                )
                return record_id
            cursor = self._conn.execute(
                f"INSERT INTO {self.table} ({names}) VALUES ({marks})", values
            )
            return cursor.lastrowid


@dataclass
class SignInRecord:
    uid: int
    last_day: int
    count: int
    id: Optional[int] = None


class SignInStore(_Store):
    """Daily sign-ins of viewers in one room."""

    prefix = "room"
    columns = ("uid", "last_day", "count")
    schema = "uid INTEGER, last_day INTEGER, count INTEGER"

    def __init__(self, conn: sqlite3.Connection, room_id: int) -> None:
        super().__init__(conn, room_id)

    def insert(self, record: SignInRecord) -> SignInRecord:
        """Save the record, replacing one with the same id; returns it with its id."""
        new_id = self._save((record.uid, record.last_day, record.count), record.id)
        return replace(record, id=new_id)

    def find_one(self, uid: int) -> SignInRecord:
        row = self._conn.execute(
            f"SELECT id, uid, last_day, count FROM {self.table} WHERE uid = ? LIMIT 1", (uid,)
        ).fetchone()
        if row is None:
            raise RecordNotFound(f"no sign-in for uid {uid}")
        return SignInRecord(uid=row["uid"], last_day=row["last_day"], count=row["count"], id=row["id"])

    def update_count(self, uid: int, now: Optional[datetime] = None) -> None:
        """Add one sign-in day and stamp the time of it."""
        moment = now if now is not None else datetime.now()
        with self._conn:
            self._conn.execute(
                f"UPDATE {self.table} SET count = count + 1, last_day = ? WHERE uid = ?",
                (int(moment.timestamp()), uid),
            )


@dataclass
class DanmuCountRecord:
    uid: int
    date: str
    count: int
    id: Optional[int] = None


class DanmuCountStore(_Store):
    """Per-day message counts of viewers in one room."""

    prefix = "danmu"
    columns = ("uid", "date", "count")
    schema = "uid INTEGER, date TEXT, count INTEGER"

    def __init__(self, conn: sqlite3.Connection, room_id: int) -> None:
        super().__init__(conn, room_id)

    def date_str(self, days_from_today: int) -> str:
        """The date that many days before today, as YYYY-MM-DD."""
        text = (date.today() - timedelta(days=days_from_today)).isoformat()
        log.debug(text)
        return text

    def insert(self, record: DanmuCountRecord) -> DanmuCountRecord:
        new_id = self._save((record.uid, record.date, record.count), record.id)
        return replace(record, id=new_id)

    def find_one(self, uid: int, date: str) -> DanmuCountRecord:
        row = self._conn.execute(
            f"SELECT id, uid, date, count FROM {self.table} WHERE uid = ? AND date = ? LIMIT 1",
            (uid, date),
        ).fetchone()
        if row is None:
            raise RecordNotFound(f"no count for uid {uid} on {date}")
        return DanmuCountRecord(uid=row["uid"], date=row["date"], count=row["count"], id=row["id"])

    def recent_records(self, uid: int) -> list[DanmuCountRecord]:
        """Records of today and the two days before, oldest first."""
        rows = self._conn.execute(
            f"SELECT id, uid, date, count FROM {self.table} "
            "WHERE uid = ? AND date BETWEEN ? AND ? ORDER BY date ASC",
            (uid, self.date_str(2), self.date_str(0)),
        ).fetchall()
        if not rows:
            raise RecordNotFound(f"no recent counts for uid {uid}")
        return [
            DanmuCountRecord(uid=row["uid"], date=row["date"], count=row["count"], id=row["id"])
            for row in rows
        ]

    def update_count(self, uid: int) -> None:
        """Add one to today's count of the user."""
        with self._conn:
            self._conn.execute(
                f"UPDATE {self.table} SET count = count + 1 WHERE uid = ? AND date = ?",
                (uid, self.date_str(0)),
            )


@dataclass
class BlindBoxRecord:
    uid: int
    blind_box_name: str
    price: int
    original_gift_price: int
    cnt: int
    year: int
    month: int
    day: int
    id: Optional[int] = None


@dataclass(frozen=True)
class BlindBoxTotal:
    """Boxes opened and the value won minus the value paid."""

    count: int
    profit: int


class BlindBoxStatStore(_Store):
    """Opened blind boxes in one room."""

    prefix = "blind"
    columns = ("uid", "blind_box_name", "price", "original_gift_price", "cnt", "year", "month", "day")
    schema = (
        "uid INTEGER, blind_box_name TEXT, price INTEGER, original_gift_price INTEGER, "
        "cnt INTEGER, year INTEGER, month INTEGER, day INTEGER"
    )

    def __init__(self, conn: sqlite3.Connection, room_id: int) -> None:
        super().__init__(conn, room_id)

    def insert(self, record: BlindBoxRecord) -> BlindBoxRecord:
        values = (
            record.uid,
            record.blind_box_name,
            record.price,
            record.original_gift_price,
            record.cnt,
            record.year,
            record.month,
            record.day,
        )
        return replace(record, id=self._save(values, record.id))

    def _total(self, conditions: list[tuple[str, int]], year: int, month: int, day: int) -> BlindBoxTotal:
        for column, value in (("year", year), ("month", month), ("day", day)):
            if value > 0:
                conditions.append((column, value))
        where = " AND ".join(f"{column} = ?" for column, _ in conditions)
        sql = (
            f"SELECT sum(cnt) AS c, sum(cnt * price) - sum(cnt * original_gift_price) AS r "
            f"FROM {self.table}"
        )
        if where:
            sql += f" WHERE {where}"
        row = self._conn.execute(sql, tuple(value for _, value in conditions)).fetchone()
        return BlindBoxTotal(count=row["c"] or 0, profit=row["r"] or 0)

    def total_for_user(self, uid: int, year: int, month: int, day: int) -> BlindBoxTotal:
        """Totals of one user; a zero year, month or day does not filter."""
        return self._total([("uid", uid)], year, month, day)

    def total(self, year: int, month: int, day: int) -> BlindBoxTotal:
        """Totals of the whole room; a zero year, month or day does not filter."""
        return self._total([], year, month, day)