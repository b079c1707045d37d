"""Repository layer responsible for all database access."""

from __future__ import annotations

import json
import sqlite3
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional, Sequence

from backend.domain.dates import format_iso_date, parse_iso_date
from backend.domain.models import (
    NON_CONSUMING_STATUSES,
    STATUS_SCHEDULED,
    UPCOMING_STATUSES,
    Addon,
    CleanerRecord,
    ScheduledJob,
    SubscriptionPlan,
    TimeOffInterval,
    TimeSlot,
)
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)

DEFAULT_ADDONS = (
    ("fridge", "Inside Fridge Cleaning", 35, 30),
    ("oven", "Inside Oven Cleaning", 25, 20),
    ("windows", "Interior Windows (per floor)", 50, 45),
    ("laundry", "Laundry - Wash/Dry/Fold", 30, 60),
    ("pantry", "Organize Pantry", 40, 30),
    ("closet", "Organize Closet", 40, 30),
)

DEMO_CLEANERS = ("Avery", "Jordan", "Riley")


class SlotCapacityExceededError(Exception):
    """Raised when a slot filled up between the availability read and the write."""


class DataRepository:
    """Encapsulates SQLite access so business logic stays storage-agnostic."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        self._db_path = Path(self._settings.database_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def database_path(self) -> Path:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        connection = sqlite3.connect(self._db_path, timeout=10)
        connection.row_factory = sqlite3.Row
        connection.execute("PRAGMA foreign_keys = ON;")
        return connection

    def initialize_database(self) -> None:
        """Create all persistence artifacts before API startup."""
        try:
            with self._connect() as conn:
                cursor = conn.cursor()

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Cleaners (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        name TEXT NOT NULL,
                        status TEXT NOT NULL DEFAULT 'active'
                            CHECK (status IN ('active', 'inactive')),
                        created_at DATETIME DEFAULT CURRENT_TIMESTAMP
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS CleanerTimeOff (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        cleaner_id INTEGER NOT NULL,
                        start_date TEXT NOT NULL,
                        end_date TEXT NOT NULL,
                        reason TEXT,
                        CHECK (start_date <= end_date),
                        FOREIGN KEY (cleaner_id) REFERENCES Cleaners(id)
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Subscriptions (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        customer_id TEXT NOT NULL,
                        frequency TEXT NOT NULL,
                        preferred_day TEXT NOT NULL,
                        preferred_time TEXT NOT NULL,
                        base_price REAL NOT NULL CHECK (base_price >= 0),
                        status TEXT NOT NULL DEFAULT 'active',
                        started_at DATETIME DEFAULT CURRENT_TIMESTAMP
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Jobs (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        customer_id TEXT NOT NULL,
                        subscription_id INTEGER,
                        scheduled_date TEXT NOT NULL,
                        scheduled_time TEXT NOT NULL
                            CHECK (scheduled_time IN ('morning', 'afternoon')),
                        duration_minutes INTEGER NOT NULL CHECK (duration_minutes > 0),
                        job_type TEXT NOT NULL DEFAULT 'first_clean',
                        price REAL NOT NULL CHECK (price >= 0),
                        status TEXT NOT NULL DEFAULT 'scheduled',
                        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                        FOREIGN KEY (subscription_id) REFERENCES Subscriptions(id)
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS AddonServices (
                        id TEXT PRIMARY KEY,
                        name TEXT NOT NULL,
                        price REAL NOT NULL CHECK (price >= 0),
                        duration_minutes INTEGER NOT NULL CHECK (duration_minutes >= 0),
                        active INTEGER NOT NULL DEFAULT 1 CHECK (active IN (0, 1))
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS PricingSettings (
                        key TEXT PRIMARY KEY,
                        value TEXT NOT NULL,
                        updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_jobs_date_slot_status
                    ON Jobs(scheduled_date, scheduled_time, status);
                    """
                )
                cursor.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_jobs_customer_date
                    ON Jobs(customer_id, scheduled_date);
                    """
                )
                cursor.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_time_off_cleaner_dates
                    ON CleanerTimeOff(cleaner_id, start_date, end_date);
                    """
                )
                conn.commit()
            logger.info("Database initialized at %s", self._db_path)
        except sqlite3.Error as exc:
            raise RuntimeError(f"Database initialization failed: {exc}") from exc

    def seed_demo_data(self) -> None:
        """Seed the add-on catalogue and a small roster only when tables are empty."""
        try:
            with self._connect() as conn:
                cursor = conn.cursor()

                cursor.execute("SELECT COUNT(*) AS count FROM AddonServices;")
                if int(cursor.fetchone()["count"]) == 0:
                    cursor.executemany(
                        """
                        INSERT INTO AddonServices (id, name, price, duration_minutes)
                        VALUES (?, ?, ?, ?);
                        """,
                        DEFAULT_ADDONS,
                    )
                    logger.info("Seeded %s add-on services", len(DEFAULT_ADDONS))

                cursor.execute("SELECT COUNT(*) AS count FROM Cleaners;")
                if int(cursor.fetchone()["count"]) == 0:
                    cursor.executemany(
                        "INSERT INTO Cleaners (name) VALUES (?);",
                        [(name,) for name in DEMO_CLEANERS],
                    )
                    logger.info("Seeded %s demo cleaners", len(DEMO_CLEANERS))
                conn.commit()
        except sqlite3.Error as exc:
            raise RuntimeError(f"Demo data seeding failed: {exc}") from exc

    # --- Add-ons -------------------------------------------------------

    def list_addons(self) -> list[Addon]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT id, name, price, duration_minutes
                FROM AddonServices
                WHERE active = 1
                ORDER BY id ASC;
                """
            )
            return [
                Addon(
                    addon_id=str(row["id"]),
                    name=str(row["name"]),
                    price=float(row["price"]),
                    duration_minutes=int(row["duration_minutes"]),
                )
                for row in cursor.fetchall()
            ]

    # --- Pricing settings ----------------------------------------------

    def load_pricing_settings(self) -> dict[str, Any]:
        """Return raw key/value settings; values are decoded from JSON text."""
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute("SELECT key, value FROM PricingSettings;")
                rows = cursor.fetchall()
        except sqlite3.Error as exc:
            raise RuntimeError(f"Pricing settings read failed: {exc}") from exc

        settings: dict[str, Any] = {}
        for row in rows:
            raw_value = str(row["value"])
            try:
                settings[str(row["key"])] = json.loads(raw_value)
            except json.JSONDecodeError:
                settings[str(row["key"])] = raw_value
        return settings

    def upsert_pricing_settings(self, updates: Mapping[str, Any]) -> None:
        if not updates:
            return
        updated_at = datetime.now(timezone.utc).isoformat()
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.executemany(
                """
                INSERT INTO PricingSettings (key, value, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = excluded.updated_at;
                """,
                [(key, json.dumps(value), updated_at) for key, value in updates.items()],
            )
            conn.commit()
        logger.info("Pricing settings updated | keys=%s", sorted(updates))

    # --- Cleaners and time off -----------------------------------------

    def create_cleaner(self, name: str, active: bool = True) -> int:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "INSERT INTO Cleaners (name, status) VALUES (?, ?);",
                (name, "active" if active else "inactive"),
            )
            conn.commit()
            return int(cursor.lastrowid)

    def set_cleaner_active(self, cleaner_id: int, active: bool) -> None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE Cleaners SET status = ? WHERE id = ?;",
                ("active" if active else "inactive", cleaner_id),
            )
            conn.commit()

    def get_cleaner(self, cleaner_id: int) -> Optional[CleanerRecord]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT id, status FROM Cleaners WHERE id = ?;", (cleaner_id,))
            row = cursor.fetchone()
            if row is None:
                return None
            return CleanerRecord(cleaner_id=int(row["id"]), active=row["status"] == "active")

    def list_cleaners(self) -> list[CleanerRecord]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT id, status FROM Cleaners ORDER BY id ASC;")
            return [
                CleanerRecord(cleaner_id=int(row["id"]), active=row["status"] == "active")
                for row in cursor.fetchall()
            ]

    def create_time_off(
        self,
        cleaner_id: int,
        start_date: date,
        end_date: date,
        reason: str | None = None,
    ) -> int:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT INTO CleanerTimeOff (cleaner_id, start_date, end_date, reason)
                VALUES (?, ?, ?, ?);
                """,
                (cleaner_id, format_iso_date(start_date), format_iso_date(end_date), reason),
            )
            conn.commit()
            return int(cursor.lastrowid)

    def list_time_off(self, start_date: date, end_date: date) -> list[TimeOffInterval]:
        """Return intervals overlapping the inclusive ``start_date``..``end_date`` range."""
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT cleaner_id, start_date, end_date
                FROM CleanerTimeOff
                WHERE start_date <= ? AND end_date >= ?
                ORDER BY start_date ASC, cleaner_id ASC;
                """,
                (format_iso_date(end_date), format_iso_date(start_date)),
            )
            return [
                TimeOffInterval(
                    cleaner_id=int(row["cleaner_id"]),
                    start_date=parse_iso_date(str(row["start_date"])),
                    end_date=parse_iso_date(str(row["end_date"])),
                )
                for row in cursor.fetchall()
            ]

    # --- Jobs ------------------------------------------------------------

    def list_jobs(self, start_date: date, end_date: date) -> list[ScheduledJob]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT scheduled_date, scheduled_time, status
                FROM Jobs
                WHERE scheduled_date BETWEEN ? AND ?
                ORDER BY scheduled_date ASC, scheduled_time ASC, id ASC;
                """,
                (format_iso_date(start_date), format_iso_date(end_date)),
            )
            return [
                ScheduledJob(
                    scheduled_date=parse_iso_date(str(row["scheduled_date"])),
                    time_slot=TimeSlot(str(row["scheduled_time"])),
                    status=str(row["status"]),
                )
                for row in cursor.fetchall()
            ]

    def list_customer_job_dates(
        self,
        customer_id: str,
        from_date: date,
        statuses: Iterable[str] = UPCOMING_STATUSES,
    ) -> set[date]:
        status_list = sorted(statuses)
        placeholders = ", ".join("?" for _ in status_list)
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"""
                SELECT DISTINCT scheduled_date
                FROM Jobs
                WHERE customer_id = ?
                  AND scheduled_date >= ?
                  AND status IN ({placeholders});
                """,
                (customer_id, format_iso_date(from_date), *status_list),
            )
            return {parse_iso_date(str(row["scheduled_date"])) for row in cursor.fetchall()}

    def claim_slot(
        self,
        *,
        customer_id: str,
        scheduled_date: date,
        time_slot: TimeSlot,
        duration_minutes: int,
        price: float,
        job_type: str = "first_clean",
    ) -> int:
        """Insert a job only if the date/slot still has a free cleaner.

        The capacity recount and the insert share one write transaction, so
        two concurrent claims for the last unit cannot both succeed.
        """
        day = format_iso_date(scheduled_date)
        excluded = sorted(NON_CONSUMING_STATUSES)
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute("BEGIN IMMEDIATE;")
                cursor.execute(
                    """
                    SELECT COUNT(*) AS count
                    FROM Cleaners AS c
                    WHERE c.status = 'active'
                      AND NOT EXISTS (
                          SELECT 1 FROM CleanerTimeOff AS t
                          WHERE t.cleaner_id = c.id
                            AND t.start_date <= ?
                            AND t.end_date >= ?
                      );
                    """,
                    (day, day),
                )
                capacity = int(cursor.fetchone()["count"])
                cursor.execute(
                    """
                    SELECT COUNT(*) AS count
                    FROM Jobs
                    WHERE scheduled_date = ?
                      AND scheduled_time = ?
                      AND status NOT IN (?, ?);
                    """,
                    (day, time_slot.value, *excluded),
                )
                booked = int(cursor.fetchone()["count"])
                if booked >= capacity:
                    raise SlotCapacityExceededError(
                        f"{day} {time_slot.value} is full (capacity={capacity}, booked={booked})"
                    )
                cursor.execute(
                    """
                    INSERT INTO Jobs (
                        customer_id, scheduled_date, scheduled_time,
                        duration_minutes, job_type, price, status
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?);
                    """,
                    (
                        customer_id,
                        day,
                        time_slot.value,
                        duration_minutes,
                        job_type,
                        price,
                        STATUS_SCHEDULED,
                    ),
                )
                job_id = int(cursor.lastrowid)
                conn.commit()
                return job_id
        except sqlite3.Error as exc:
            raise RuntimeError(f"Slot claim failed: {exc}") from exc

    def update_job_status(self, job_id: int, status: str) -> None:
        with self._connect() as conn:
            conn.execute("UPDATE Jobs SET status = ? WHERE id = ?;", (status, job_id))
            conn.commit()

    def count_jobs(self, customer_id: str | None = None) -> int:
        with self._connect() as conn:
            cursor = conn.cursor()
            if customer_id is None:
                cursor.execute("SELECT COUNT(*) AS count FROM Jobs;")
            else:
                cursor.execute(
                    "SELECT COUNT(*) AS count FROM Jobs WHERE customer_id = ?;",
                    (customer_id,),
                )
            return int(cursor.fetchone()["count"])

    # --- Subscriptions -------------------------------------------------

    def get_active_subscription_id(self, customer_id: str) -> Optional[int]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT id FROM Subscriptions
                WHERE customer_id = ? AND status = 'active'
                ORDER BY id DESC
                LIMIT 1;
                """,
                (customer_id,),
            )
            row = cursor.fetchone()
            return None if row is None else int(row["id"])

    def create_subscription_with_jobs(
        self,
        *,
        customer_id: str,
        plan: SubscriptionPlan,
        preferred_day: str,
        base_price: float,
        duration_minutes: int,
        job_dates: Sequence[date],
    ) -> int:
        """Record the subscription and its generated jobs atomically."""
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute(
                    """
                    INSERT INTO Subscriptions (
                        customer_id, frequency, preferred_day, preferred_time, base_price
                    )
                    VALUES (?, ?, ?, ?, ?);
                    """,
                    (
                        customer_id,
                        plan.frequency.value,
                        preferred_day,
                        plan.preferred_time_slot.value,
                        base_price,
                    ),
                )
                subscription_id = int(cursor.lastrowid)
                cursor.executemany(
                    """
                    INSERT INTO Jobs (
                        customer_id, subscription_id, scheduled_date, scheduled_time,
                        duration_minutes, job_type, price, status
                    )
                    VALUES (?, ?, ?, ?, ?, 'recurring', ?, ?);
                    """,
                    [
                        (
                            customer_id,
                            subscription_id,
                            format_iso_date(job_date),
                            plan.preferred_time_slot.value,
                            duration_minutes,
                            base_price,
                            STATUS_SCHEDULED,
                        )
                        for job_date in job_dates
                    ],
                )
                conn.commit()
                return subscription_id
        except sqlite3.Error as exc:
            raise RuntimeError(f"Subscription creation failed: {exc}") from exc
