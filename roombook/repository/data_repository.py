"""Repository layer responsible for all database access."""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Iterator, Optional, Sequence, Union
from uuid import uuid4

from roombook.domain.models import (
    AuditEntry,
    Booking,
    BookingStatus,
    Interval,
    MaintenanceBlock,
    PolicyConfig,
    Room,
    RoomStatus,
    to_utc,
)
from roombook.repository.locks import RoomLockRegistry
from roombook.utils.config import Settings, get_settings
from roombook.utils.logger import get_logger


logger = get_logger(__name__)

# Fixed-width so that lexicographic comparison in SQL matches time order.
_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S.%f"

ScheduleEntry = Union[Booking, MaintenanceBlock]


def format_timestamp(value: datetime) -> str:
    return to_utc(value).strftime(_TIMESTAMP_FORMAT)


def parse_timestamp(value: str) -> datetime:
    return datetime.strptime(value, _TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)


def _optional_timestamp(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    return parse_timestamp(value)


def _new_id() -> str:
    return str(uuid4())


def _row_to_room(row: sqlite3.Row) -> Room:
    return Room(
        room_id=str(row["id"]),
        name=str(row["name"]),
        capacity=int(row["capacity"]),
        capabilities=frozenset(json.loads(row["capabilities"] or "[]")),
        status=RoomStatus(row["status"]),
    )


def _row_to_booking(row: sqlite3.Row) -> Booking:
    return Booking(
        booking_id=str(row["id"]),
        requester_id=str(row["requester_id"]),
        room_id=str(row["room_id"]),
        interval=Interval(
            start=parse_timestamp(row["start_at"]),
            end=parse_timestamp(row["end_at"]),
        ),
        status=BookingStatus(row["status"]),
        created_at=_optional_timestamp(row["created_at"]),
        cancelled_by=row["cancelled_by"],
        cancelled_at=_optional_timestamp(row["cancelled_at"]),
    )


def _row_to_block(row: sqlite3.Row) -> MaintenanceBlock:
    return MaintenanceBlock(
        block_id=str(row["id"]),
        room_id=str(row["room_id"]),
        interval=Interval(
            start=parse_timestamp(row["start_at"]),
            end=parse_timestamp(row["end_at"]),
        ),
        reason=row["reason"],
    )


def _row_to_policy(row: sqlite3.Row) -> PolicyConfig:
    return PolicyConfig(
        open_hour=int(row["open_hour"]),
        close_hour=int(row["close_hour"]),
        time_slot_interval_minutes=int(row["time_slot_interval_minutes"]),
        min_duration_minutes=int(row["min_duration_minutes"]),
        max_duration_minutes=int(row["max_duration_minutes"]),
        max_active_bookings=int(row["max_active_bookings"]),
        max_consecutive=(
            int(row["max_consecutive"]) if row["max_consecutive"] is not None else None
        ),
        cooldown_minutes=(
            int(row["cooldown_minutes"]) if row["cooldown_minutes"] is not None else None
        ),
        min_notice_minutes=int(row["min_notice_minutes"]),
        max_days_ahead=int(row["max_days_ahead"]),
    )


class DataRepository:
    """Encapsulates SQLite access so business logic stays storage-agnostic."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        self._db_path = Path(self._settings.database_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._room_locks = RoomLockRegistry()

    @property
    def room_locks(self) -> RoomLockRegistry:
        return self._room_locks

    def _connect(self) -> sqlite3.Connection:
        connection = sqlite3.connect(
            self._db_path,
            timeout=self._settings.sqlite_busy_timeout_seconds,
        )
        connection.row_factory = sqlite3.Row
        connection.execute("PRAGMA foreign_keys = ON;")
        return connection

    @contextmanager
    def _session(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection that commits on success, rolls back on error, then closes."""
        connection = self._connect()
        try:
            with connection:
                yield connection
        finally:
            connection.close()

    @contextmanager
    def room_transaction(self, room_id: str) -> Iterator[sqlite3.Connection]:
        """Exclusive per-room unit of work for check-then-insert.

        Every booking write for ``room_id`` must go through here; writes for
        other rooms use their own lock and are never serialized behind this one.
        """
        with self._room_locks.hold(room_id):
            with self._session() as connection:
                yield connection

    def initialize_database(self) -> None:
        """Create all persistence artifacts before API startup."""
        try:
            with self._session() as conn:
                cursor = conn.cursor()

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Rooms (
                        id TEXT PRIMARY KEY,
                        name TEXT NOT NULL UNIQUE,
                        capacity INTEGER NOT NULL CHECK (capacity > 0),
                        capabilities TEXT NOT NULL DEFAULT '[]',
                        status TEXT NOT NULL
                            CHECK (status IN ('active', 'maintenance', 'archived')),
                        created_at TEXT NOT NULL
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Bookings (
                        id TEXT PRIMARY KEY,
                        requester_id TEXT NOT NULL,
                        room_id TEXT NOT NULL,
                        start_at TEXT NOT NULL,
                        end_at TEXT NOT NULL,
                        status TEXT NOT NULL
                            CHECK (status IN ('confirmed', 'cancelled', 'expired')),
                        cancelled_by TEXT,
                        cancelled_at TEXT,
                        created_at TEXT NOT NULL,
                        CHECK (start_at < end_at),
                        FOREIGN KEY (room_id) REFERENCES Rooms(id)
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS MaintenanceBlocks (
                        id TEXT PRIMARY KEY,
                        room_id TEXT NOT NULL,
                        start_at TEXT NOT NULL,
                        end_at TEXT NOT NULL,
                        reason TEXT,
                        created_at TEXT NOT NULL,
                        CHECK (start_at < end_at),
                        FOREIGN KEY (room_id) REFERENCES Rooms(id)
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS RuleConfig (
                        id INTEGER PRIMARY KEY CHECK (id = 1),
                        open_hour INTEGER NOT NULL,
                        close_hour INTEGER NOT NULL,
                        time_slot_interval_minutes INTEGER NOT NULL,
                        min_duration_minutes INTEGER NOT NULL,
                        max_duration_minutes INTEGER NOT NULL,
                        max_active_bookings INTEGER NOT NULL,
                        max_consecutive INTEGER,
                        cooldown_minutes INTEGER,
                        min_notice_minutes INTEGER NOT NULL,
                        max_days_ahead INTEGER NOT NULL,
                        updated_at TEXT NOT NULL
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS AuditLog (
                        id TEXT PRIMARY KEY,
                        actor_id TEXT,
                        action TEXT NOT NULL,
                        entity_type TEXT NOT NULL,
                        entity_id TEXT,
                        payload TEXT,
                        created_at TEXT NOT NULL
                    );
                    """
                )

                cursor.execute(
                    "CREATE INDEX IF NOT EXISTS idx_rooms_status ON Rooms(status);"
                )
                cursor.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_bookings_room_window
                    ON Bookings(room_id, start_at, end_at);
                    """
                )
                cursor.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_bookings_requester_status
                    ON Bookings(requester_id, status);
                    """
                )
                cursor.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_blocks_room_window
                    ON MaintenanceBlocks(room_id, start_at, end_at);
                    """
                )
                cursor.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_audit_entity
                    ON AuditLog(entity_type, entity_id);
                    """
                )
                cursor.execute(
                    "CREATE INDEX IF NOT EXISTS idx_audit_created ON AuditLog(created_at);"
                )
            logger.info("Database initialized at %s", self._db_path)
        except sqlite3.Error as exc:
            raise RuntimeError(f"Database initialization failed: {exc}") from exc

    def seed_default_rules(self) -> bool:
        """Insert RuleConfig row 1 from settings when it does not exist yet."""
        defaults = PolicyConfig(
            open_hour=self._settings.default_open_hour,
            close_hour=self._settings.default_close_hour,
            time_slot_interval_minutes=self._settings.default_time_slot_interval_minutes,
            min_duration_minutes=self._settings.default_min_duration_minutes,
            max_duration_minutes=self._settings.default_max_duration_minutes,
            max_active_bookings=self._settings.default_max_active_bookings,
            max_consecutive=self._settings.default_max_consecutive,
            cooldown_minutes=self._settings.default_cooldown_minutes,
            min_notice_minutes=self._settings.default_min_notice_minutes,
            max_days_ahead=self._settings.default_max_days_ahead,
        )
        try:
            with self._session() as conn:
                cursor = conn.cursor()
                cursor.execute("SELECT COUNT(*) AS count FROM RuleConfig;")
                if int(cursor.fetchone()["count"]) > 0:
                    logger.info("Rule config already present; skipping seed")
                    return False
                self._write_policy(cursor, defaults, insert=True)
            logger.info("Default rule config seeded | %s", defaults.to_dict())
            return True
        except sqlite3.Error as exc:
            raise RuntimeError(f"Rule config seeding failed: {exc}") from exc

    def seed_demo_rooms(self) -> int:
        """Seed a small demo room set only when the Rooms table is empty."""
        try:
            with self._session() as conn:
                cursor = conn.cursor()
                cursor.execute("SELECT COUNT(*) AS count FROM Rooms;")
                if int(cursor.fetchone()["count"]) > 0:
                    logger.info("Rooms already present; skipping demo seed")
                    return 0

                rooms = [
                    ("Room A", 4, ["whiteboard"], RoomStatus.ACTIVE),
                    ("Room B", 8, ["projector", "whiteboard"], RoomStatus.ACTIVE),
                    ("Room C", 12, ["projector", "video_conference"], RoomStatus.ACTIVE),
                    ("Room D", 20, ["projector", "video_conference", "whiteboard"], RoomStatus.ACTIVE),
                    ("Room E", 6, [], RoomStatus.MAINTENANCE),
                    ("Room F", 30, ["projector", "microphone"], RoomStatus.ACTIVE),
                ]
                created_at = format_timestamp(datetime.now(timezone.utc))
                cursor.executemany(
                    """
                    INSERT INTO Rooms (id, name, capacity, capabilities, status, created_at)
                    VALUES (?, ?, ?, ?, ?, ?);
                    """,
                    [
                        (
                            _new_id(),
                            name,
                            capacity,
                            json.dumps(sorted(capabilities)),
                            str(status),
                            created_at,
                        )
                        for name, capacity, capabilities, status in rooms
                    ],
                )
            logger.info("Demo room seed completed with %s rooms", len(rooms))
            return len(rooms)
        except sqlite3.Error as exc:
            raise RuntimeError(f"Demo room seeding failed: {exc}") from exc

    # ------------------------------------------------------------------
    # Rooms
    # ------------------------------------------------------------------

    def create_room(
        self,
        name: str,
        capacity: int,
        capabilities: Iterable[str] = (),
        status: RoomStatus = RoomStatus.ACTIVE,
        room_id: Optional[str] = None,
    ) -> Room:
        """Insert a room row; room administration itself lives outside this service."""
        room = Room(
            room_id=room_id or _new_id(),
            name=name,
            capacity=capacity,
            capabilities=frozenset(capabilities),
            status=RoomStatus(status),
        )
        with self._session() as conn:
            conn.execute(
                """
                INSERT INTO Rooms (id, name, capacity, capabilities, status, created_at)
                VALUES (?, ?, ?, ?, ?, ?);
                """,
                (
                    room.room_id,
                    room.name,
                    room.capacity,
                    json.dumps(sorted(room.capabilities)),
                    str(room.status),
                    format_timestamp(datetime.now(timezone.utc)),
                ),
            )
        return room

    def get_room(self, room_id: str) -> Optional[Room]:
        with self._session() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT id, name, capacity, capabilities, status FROM Rooms WHERE id = ?;",
                (room_id,),
            )
            row = cursor.fetchone()
            if row is None:
                return None
            return _row_to_room(row)

    def list_rooms(self, include_archived: bool = False) -> list[Room]:
        query = "SELECT id, name, capacity, capabilities, status FROM Rooms"
        if not include_archived:
            query += " WHERE status != 'archived'"
        query += " ORDER BY id ASC;"
        with self._session() as conn:
            cursor = conn.cursor()
            cursor.execute(query)
            return [_row_to_room(row) for row in cursor.fetchall()]

    # ------------------------------------------------------------------
    # Conflict reads
    # ------------------------------------------------------------------

    def _overlapping_rows(
        self,
        conn: sqlite3.Connection,
        room_ids: Sequence[str],
        interval: Interval,
    ) -> tuple[list[sqlite3.Row], list[sqlite3.Row]]:
        placeholders = ",".join("?" for _ in room_ids)
        start = format_timestamp(interval.start)
        end = format_timestamp(interval.end)
        cursor = conn.cursor()
        cursor.execute(
            f"""
            SELECT *
            FROM Bookings
            WHERE room_id IN ({placeholders})
              AND status = 'confirmed'
              AND start_at < ?
              AND end_at > ?
            ORDER BY start_at ASC, id ASC;
            """,
            (*room_ids, end, start),
        )
        booking_rows = cursor.fetchall()
        cursor.execute(
            f"""
            SELECT *
            FROM MaintenanceBlocks
            WHERE room_id IN ({placeholders})
              AND start_at < ?
              AND end_at > ?
            ORDER BY start_at ASC, id ASC;
            """,
            (*room_ids, end, start),
        )
        return booking_rows, cursor.fetchall()

    def list_overlapping(
        self,
        room_id: str,
        interval: Interval,
        connection: Optional[sqlite3.Connection] = None,
    ) -> list[ScheduleEntry]:
        """Return confirmed bookings and maintenance blocks overlapping ``interval``.

        Pass ``connection`` to read inside an open ``room_transaction``.
        """
        if connection is not None:
            booking_rows, block_rows = self._overlapping_rows(connection, [room_id], interval)
        else:
            with self._session() as conn:
                booking_rows, block_rows = self._overlapping_rows(conn, [room_id], interval)
        entries: list[ScheduleEntry] = [_row_to_booking(row) for row in booking_rows]
        entries.extend(_row_to_block(row) for row in block_rows)
        return entries

    def list_overlapping_by_room(
        self,
        room_ids: Sequence[str],
        interval: Interval,
    ) -> dict[str, list[ScheduleEntry]]:
        """Batch form of ``list_overlapping`` used by availability search."""
        grouped: dict[str, list[ScheduleEntry]] = {room_id: [] for room_id in room_ids}
        if not room_ids:
            return grouped
        with self._session() as conn:
            booking_rows, block_rows = self._overlapping_rows(conn, list(room_ids), interval)
        for row in booking_rows:
            grouped[str(row["room_id"])].append(_row_to_booking(row))
        for row in block_rows:
            grouped[str(row["room_id"])].append(_row_to_block(row))
        return grouped

    # ------------------------------------------------------------------
    # Bookings
    # ------------------------------------------------------------------

    def list_active_bookings(self, requester_id: str, now: datetime) -> list[Booking]:
        """Confirmed bookings of ``requester_id`` whose end is after ``now``."""
        with self._session() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT *
                FROM Bookings
                WHERE requester_id = ?
                  AND status = 'confirmed'
                  AND end_at > ?
                ORDER BY start_at ASC, id ASC;
                """,
                (requester_id, format_timestamp(now)),
            )
            return [_row_to_booking(row) for row in cursor.fetchall()]

    def list_bookings_for_requester(self, requester_id: str) -> list[Booking]:
        with self._session() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT *
                FROM Bookings
                WHERE requester_id = ?
                ORDER BY start_at DESC, id ASC;
                """,
                (requester_id,),
            )
            return [_row_to_booking(row) for row in cursor.fetchall()]

    def list_all_bookings(
        self,
        now: datetime,
        *,
        requester_id: Optional[str] = None,
        room_id: Optional[str] = None,
        status: Optional[BookingStatus] = None,
        starts_from: Optional[datetime] = None,
        ends_by: Optional[datetime] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Booking], int]:
        """Return one page of bookings, newest start first, plus the total match count.

        The status filter uses the read-time status: a confirmed booking that ended
        before ``now`` matches ``expired``, not ``confirmed``.
        """
        clauses: list[str] = []
        params: list[Any] = []
        for column, value in (("requester_id", requester_id), ("room_id", room_id)):
            if value is not None:
                clauses.append(f"{column} = ?")
                params.append(value)
        if starts_from is not None:
            clauses.append("start_at >= ?")
            params.append(format_timestamp(starts_from))
        if ends_by is not None:
            clauses.append("end_at <= ?")
            params.append(format_timestamp(ends_by))

        cutoff = format_timestamp(now)
        if status == BookingStatus.CONFIRMED:
            clauses.append("(status = 'confirmed' AND end_at > ?)")
            params.append(cutoff)
        elif status == BookingStatus.EXPIRED:
            clauses.append("(status = 'expired' OR (status = 'confirmed' AND end_at <= ?))")
            params.append(cutoff)
        elif status is not None:
            clauses.append("status = ?")
            params.append(str(status))

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        with self._session() as conn:
            cursor = conn.cursor()
            cursor.execute(f"SELECT COUNT(*) FROM Bookings {where};", params)
            total = int(cursor.fetchone()[0])
            cursor.execute(
                f"""
                SELECT * FROM Bookings {where}
                ORDER BY start_at DESC, id ASC
                LIMIT ? OFFSET ?;
                """,
                (*params, limit, offset),
            )
            return [_row_to_booking(row) for row in cursor.fetchall()], total

    def get_booking(
        self,
        booking_id: str,
        connection: Optional[sqlite3.Connection] = None,
    ) -> Optional[Booking]:
        if connection is not None:
            row = connection.execute(
                "SELECT * FROM Bookings WHERE id = ?;", (booking_id,)
            ).fetchone()
        else:
            with self._session() as conn:
                row = conn.execute(
                    "SELECT * FROM Bookings WHERE id = ?;", (booking_id,)
                ).fetchone()
        if row is None:
            return None
        return _row_to_booking(row)

    def insert_booking(self, booking: Booking, connection: sqlite3.Connection) -> None:
        """Insert inside the caller's ``room_transaction``; commit happens on exit."""
        connection.execute(
            """
            INSERT INTO Bookings (
                id,
                requester_id,
                room_id,
                start_at,
                end_at,
                status,
                cancelled_by,
                cancelled_at,
                created_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?);
            """,
            (
                booking.booking_id,
                booking.requester_id,
                booking.room_id,
                format_timestamp(booking.interval.start),
                format_timestamp(booking.interval.end),
                str(booking.status),
                booking.cancelled_by,
                format_timestamp(booking.cancelled_at) if booking.cancelled_at else None,
                format_timestamp(booking.created_at or datetime.now(timezone.utc)),
            ),
        )

    def mark_booking_cancelled(
        self,
        booking_id: str,
        actor_id: str,
        cancelled_at: datetime,
    ) -> bool:
        """Atomically move one confirmed, unexpired booking to cancelled.

        Returns False when no row matched; callers re-read to find out why.
        """
        stamp = format_timestamp(cancelled_at)
        with self._session() as conn:
            cursor = conn.execute(
                """
                UPDATE Bookings
                SET status = 'cancelled',
                    cancelled_by = ?,
                    cancelled_at = ?
                WHERE id = ?
                  AND status = 'confirmed'
                  AND end_at > ?;
                """,
                (actor_id, stamp, booking_id, stamp),
            )
            return cursor.rowcount == 1

    def expire_bookings(self, now: datetime) -> list[str]:
        """Persist the expired status for confirmed bookings that have ended."""
        stamp = format_timestamp(now)
        with self._session() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT id FROM Bookings
                WHERE status = 'confirmed' AND end_at <= ?
                ORDER BY id ASC;
                """,
                (stamp,),
            )
            expired_ids = [str(row["id"]) for row in cursor.fetchall()]
            if expired_ids:
                placeholders = ",".join("?" for _ in expired_ids)
                cursor.execute(
                    f"""
                    UPDATE Bookings
                    SET status = 'expired'
                    WHERE id IN ({placeholders}) AND status = 'confirmed';
                    """,
                    tuple(expired_ids),
                )
            return expired_ids

    def count_bookings(self, room_id: Optional[str] = None) -> int:
        with self._session() as conn:
            cursor = conn.cursor()
            if room_id is None:
                cursor.execute("SELECT COUNT(*) AS count FROM Bookings;")
            else:
                cursor.execute(
                    "SELECT COUNT(*) AS count FROM Bookings WHERE room_id = ?;",
                    (room_id,),
                )
            return int(cursor.fetchone()["count"])

    # ------------------------------------------------------------------
    # Maintenance blocks
    # ------------------------------------------------------------------

    def create_maintenance_block(
        self,
        room_id: str,
        interval: Interval,
        reason: Optional[str] = None,
    ) -> MaintenanceBlock:
        block = MaintenanceBlock(
            block_id=_new_id(),
            room_id=room_id,
            interval=interval,
            reason=reason or None,
        )
        # same lock as booking writes so a block never races a conflict check
        with self.room_transaction(room_id) as conn:
            conn.execute(
                """
                INSERT INTO MaintenanceBlocks (id, room_id, start_at, end_at, reason, created_at)
                VALUES (?, ?, ?, ?, ?, ?);
                """,
                (
                    block.block_id,
                    block.room_id,
                    format_timestamp(interval.start),
                    format_timestamp(interval.end),
                    block.reason,
                    format_timestamp(datetime.now(timezone.utc)),
                ),
            )
        return block

    def get_maintenance_block(self, block_id: str) -> Optional[MaintenanceBlock]:
        with self._session() as conn:
            row = conn.execute(
                "SELECT * FROM MaintenanceBlocks WHERE id = ?;", (block_id,)
            ).fetchone()
        if row is None:
            return None
        return _row_to_block(row)

    def delete_maintenance_block(self, block_id: str) -> bool:
        with self._session() as conn:
            cursor = conn.execute("DELETE FROM MaintenanceBlocks WHERE id = ?;", (block_id,))
            return cursor.rowcount == 1

    def list_maintenance_blocks(
        self,
        room_id: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[MaintenanceBlock]:
        clauses: list[str] = []
        params: list[Any] = []
        if room_id is not None:
            clauses.append("room_id = ?")
            params.append(room_id)
        if start is not None:
            clauses.append("end_at >= ?")
            params.append(format_timestamp(start))
        if end is not None:
            clauses.append("start_at <= ?")
            params.append(format_timestamp(end))
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        with self._session() as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"SELECT * FROM MaintenanceBlocks {where} ORDER BY start_at ASC, id ASC;",
                tuple(params),
            )
            return [_row_to_block(row) for row in cursor.fetchall()]

    # ------------------------------------------------------------------
    # Policy config
    # ------------------------------------------------------------------

    def get_policy(self) -> Optional[PolicyConfig]:
        with self._session() as conn:
            row = conn.execute("SELECT * FROM RuleConfig WHERE id = 1;").fetchone()
        if row is None:
            return None
        return _row_to_policy(row)

    def replace_policy(self, config: PolicyConfig) -> PolicyConfig:
        """Overwrite every column of row 1 in one statement."""
        with self._session() as conn:
            self._write_policy(conn.cursor(), config, insert=False)
        return config

    def _write_policy(
        self,
        cursor: sqlite3.Cursor,
        config: PolicyConfig,
        *,
        insert: bool,
    ) -> None:
        values = (
            config.open_hour,
            config.close_hour,
            config.time_slot_interval_minutes,
            config.min_duration_minutes,
            config.max_duration_minutes,
            config.max_active_bookings,
            config.max_consecutive,
            config.cooldown_minutes,
            config.min_notice_minutes,
            config.max_days_ahead,
            format_timestamp(datetime.now(timezone.utc)),
        )
        if insert:
            cursor.execute(
                """
                INSERT INTO RuleConfig (
                    id,
                    open_hour,
                    close_hour,
                    time_slot_interval_minutes,
                    min_duration_minutes,
                    max_duration_minutes,
                    max_active_bookings,
                    max_consecutive,
                    cooldown_minutes,
                    min_notice_minutes,
                    max_days_ahead,
                    updated_at
                )
                VALUES (1, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
                """,
                values,
            )
            return
        cursor.execute(
            """
            UPDATE RuleConfig
            SET open_hour = ?,
                close_hour = ?,
                time_slot_interval_minutes = ?,
                min_duration_minutes = ?,
                max_duration_minutes = ?,
                max_active_bookings = ?,
                max_consecutive = ?,
                cooldown_minutes = ?,
                min_notice_minutes = ?,
                max_days_ahead = ?,
                updated_at = ?
            WHERE id = 1;
            """,
            values,
        )
        if cursor.rowcount != 1:
            raise RuntimeError("RuleConfig row is missing; run seed_default_rules first")

    # ------------------------------------------------------------------
    # Audit log
    # ------------------------------------------------------------------

    def save_audit_entry(
        self,
        action: str,
        entity_type: str,
        entity_id: Optional[str] = None,
        actor_id: Optional[str] = None,
        payload: Optional[dict] = None,
    ) -> AuditEntry:
        entry = AuditEntry(
            entry_id=_new_id(),
            actor_id=actor_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            payload=payload,
            created_at=datetime.now(timezone.utc),
        )
        with self._session() as conn:
            conn.execute(
                """
                INSERT INTO AuditLog (id, actor_id, action, entity_type, entity_id, payload, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?);
                """,
                (
                    entry.entry_id,
                    entry.actor_id,
                    entry.action,
                    entry.entity_type,
                    entry.entity_id,
                    json.dumps(payload, default=str) if payload is not None else None,
                    format_timestamp(entry.created_at),
                ),
            )
        return entry

    def list_audit_entries(
        self,
        *,
        actor_id: Optional[str] = None,
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
        action: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[AuditEntry]:
        clauses: list[str] = []
        params: list[Any] = []
        for column, value in (
            ("actor_id", actor_id),
            ("entity_type", entity_type),
            ("entity_id", entity_id),
            ("action", action),
        ):
            if value is not None:
                clauses.append(f"{column} = ?")
                params.append(value)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        with self._session() as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"""
                SELECT * FROM AuditLog {where}
                ORDER BY created_at DESC, id ASC
                LIMIT ? OFFSET ?;
                """,
                (*params, limit, offset),
            )
            return [
                AuditEntry(
                    entry_id=str(row["id"]),
                    actor_id=row["actor_id"],
                    action=str(row["action"]),
                    entity_type=str(row["entity_type"]),
                    entity_id=row["entity_id"],
                    payload=json.loads(row["payload"]) if row["payload"] else None,
                    created_at=parse_timestamp(row["created_at"]),
                )
                for row in cursor.fetchall()
            ]
