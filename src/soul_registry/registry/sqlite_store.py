"""SQLite-backed soul store.

One row per soul keyed by ``did`` with a unique ``name COLLATE NOCASE``
column, and one row per challenge keyed by its id with secondary indexes on
``did`` and ``expires_at`` for sweeping. Timestamps are stored as fixed-width
``...Z`` strings so they compare correctly as text.

Updates run ``UPDATE ... SET version = version + 1 WHERE did = ? [AND
version = ?]`` so several processes sharing one database file cannot lose
each other's writes.
"""
from __future__ import annotations

import datetime
import json
import logging
import os
import sqlite3
import threading

from soul_registry.errors import (
    ConcurrentModificationError,
    NameTakenError,
    SoulNotFoundError,
)
from soul_registry.registry.documents import (
    BirthCertificate,
    Contact,
    RiskLevel,
    SoulStatus,
)
from soul_registry.registry.records import (
    Challenge,
    ChallengeStatus,
    SearchPage,
    SearchQuery,
    SoulRecord,
)
from soul_registry.registry.store import SoulStore, check_mutable_fields
from soul_registry.timeutil import format_timestamp, parse_timestamp

logger = logging.getLogger(__name__)

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS souls (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        did TEXT UNIQUE NOT NULL,
        name TEXT UNIQUE NOT NULL COLLATE NOCASE,
        public_key TEXT NOT NULL,
        birth_timestamp TEXT NOT NULL,
        birth_operator TEXT NOT NULL,
        birth_base_model TEXT,
        birth_platform TEXT,
        birth_charter_hash TEXT,
        avatar TEXT,
        description TEXT,
        website TEXT,
        contact_json TEXT,
        capabilities_json TEXT,
        risk_level TEXT,
        status TEXT NOT NULL DEFAULT 'active',
        status_reason TEXT,
        status_changed_at TEXT,
        registered_at TEXT NOT NULL,
        last_verified_at TEXT,
        verification_count INTEGER NOT NULL DEFAULT 0,
        version INTEGER NOT NULL DEFAULT 1
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS challenges (
        id TEXT PRIMARY KEY,
        did TEXT NOT NULL,
        nonce TEXT NOT NULL,
        issued_at TEXT NOT NULL,
        expires_at TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'pending'
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_souls_status ON souls(status)",
    "CREATE INDEX IF NOT EXISTS idx_souls_operator ON souls(birth_operator)",
    "CREATE INDEX IF NOT EXISTS idx_challenges_did ON challenges(did)",
    "CREATE INDEX IF NOT EXISTS idx_challenges_expires ON challenges(expires_at)",
)

# Record attribute -> (column, encoder)
_COLUMN_ENCODERS = {
    "avatar": ("avatar", lambda v: v),
    "description": ("description", lambda v: v),
    "website": ("website", lambda v: v),
    "contact": ("contact_json", lambda v: json.dumps(v.to_wire()) if v is not None else None),
    "capabilities": ("capabilities_json", lambda v: json.dumps(v) if v is not None else None),
    "risk_level": ("risk_level", lambda v: v.value if v is not None else None),
    "status": ("status", lambda v: v.value),
    "status_reason": ("status_reason", lambda v: v),
    "status_changed_at": ("status_changed_at", lambda v: _ts(v)),
    "last_verified_at": ("last_verified_at", lambda v: _ts(v)),
    "verification_count": ("verification_count", lambda v: int(v)),
}


def _ts(moment: datetime.datetime | None) -> str | None:
    return format_timestamp(moment) if moment is not None else None


def _parse_ts(text: str | None) -> datetime.datetime | None:
    return parse_timestamp(text) if text else None


def like_pattern(pattern: str) -> str:
    """Translate a ``*`` wildcard pattern into a ``LIKE ... ESCAPE '\\'`` operand."""
    escaped = pattern.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return escaped.replace("*", "%")


class SQLiteSoulStore(SoulStore):
    """SQLite implementation of :class:`SoulStore`.

    Parameters
    ----------
    path:
        Database file path, or ``":memory:"``. Parent directories are
        created as needed.
    """

    def __init__(self, path: str = "registry.db") -> None:
        if path != ":memory:":
            dir_path = os.path.dirname(path) or "."
            os.makedirs(dir_path, exist_ok=True)
        self._path = path
        self._db = sqlite3.connect(path, check_same_thread=False)
        self._db.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._init_schema()
        logger.info("Opened soul store at %s", path)

    def _init_schema(self) -> None:
        with self._lock, self._db:
            for statement in _SCHEMA:
                self._db.execute(statement)

    # ------------------------------------------------------------------
    # Souls
    # ------------------------------------------------------------------

    def create_soul(self, record: SoulRecord) -> SoulRecord:
        birth = record.birth
        params = (
            record.did.lower(),
            record.name,
            record.public_key,
            birth.timestamp,
            birth.operator,
            birth.base_model,
            birth.platform,
            birth.charter_hash,
            record.avatar,
            record.description,
            record.website,
            _COLUMN_ENCODERS["contact"][1](record.contact),
            _COLUMN_ENCODERS["capabilities"][1](record.capabilities),
            _COLUMN_ENCODERS["risk_level"][1](record.risk_level),
            record.status.value,
            record.status_reason,
            _ts(record.status_changed_at),
            format_timestamp(record.registered_at),
            _ts(record.last_verified_at),
            record.verification_count,
            record.version,
        )
        try:
            with self._lock, self._db:
                self._db.execute(
                    """
                    INSERT INTO souls (
                        did, name, public_key,
                        birth_timestamp, birth_operator, birth_base_model,
                        birth_platform, birth_charter_hash,
                        avatar, description, website,
                        contact_json, capabilities_json, risk_level,
                        status, status_reason, status_changed_at,
                        registered_at, last_verified_at, verification_count, version
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    params,
                )
        except sqlite3.IntegrityError as exc:
            raise NameTakenError(record.name) from exc
        return self._require_soul(record.did)

    def get_by_did(self, did: str) -> SoulRecord | None:
        return self._fetch_soul("SELECT * FROM souls WHERE did = ?", (did.lower(),))

    def get_by_name(self, name: str) -> SoulRecord | None:
        return self._fetch_soul("SELECT * FROM souls WHERE name = ?", (name,))

    def _fetch_soul(self, sql: str, params: tuple[object, ...]) -> SoulRecord | None:
        with self._lock:
            row = self._db.execute(sql, params).fetchone()
        return self._row_to_soul(row) if row is not None else None

    def update_soul(
        self,
        did: str,
        changes: dict[str, object],
        expected_version: int | None = None,
    ) -> SoulRecord:
        check_mutable_fields(changes)
        assignments: list[str] = []
        params: list[object] = []
        for attribute, value in changes.items():
            column, encode = _COLUMN_ENCODERS[attribute]
            assignments.append(f"{column} = ?")
            params.append(encode(value))
        assignments.append("version = version + 1")

        sql = f"UPDATE souls SET {', '.join(assignments)} WHERE did = ?"
        params.append(did.lower())
        if expected_version is not None:
            sql += " AND version = ?"
            params.append(expected_version)

        with self._lock, self._db:
            cursor = self._db.execute(sql, params)
            updated = cursor.rowcount
        if updated == 0:
            if self.get_by_did(did) is None:
                raise SoulNotFoundError(did)
            raise ConcurrentModificationError(did, expected_version or 0)
        return self._require_soul(did)

    def record_verification(self, did: str, verified_at: datetime.datetime) -> SoulRecord:
        with self._lock, self._db:
            cursor = self._db.execute(
                """
                UPDATE souls
                SET verification_count = verification_count + 1,
                    last_verified_at = ?,
                    version = version + 1
                WHERE did = ?
                """,
                (format_timestamp(verified_at), did.lower()),
            )
            updated = cursor.rowcount
        if updated == 0:
            raise SoulNotFoundError(did)
        return self._require_soul(did)

    def _require_soul(self, did: str) -> SoulRecord:
        record = self.get_by_did(did)
        if record is None:
            raise SoulNotFoundError(did)
        return record

    def search(self, query: SearchQuery) -> SearchPage:
        conditions: list[str] = []
        params: list[object] = []
        if query.name:
            conditions.append("name LIKE ? ESCAPE '\\'")
            params.append(like_pattern(query.name))
        if query.operator:
            conditions.append("birth_operator LIKE ? ESCAPE '\\'")
            params.append(like_pattern(query.operator))
        if query.status is not None:
            conditions.append("status = ?")
            params.append(query.status.value)
        if query.registered_after is not None:
            conditions.append("registered_at >= ?")
            params.append(format_timestamp(query.registered_after))
        if query.registered_before is not None:
            conditions.append("registered_at <= ?")
            params.append(format_timestamp(query.registered_before))
        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""

        with self._lock:
            total = self._db.execute(f"SELECT COUNT(*) FROM souls {where}", params).fetchone()[0]
            rows = self._db.execute(
                f"SELECT * FROM souls {where} ORDER BY registered_at DESC, id DESC LIMIT ? OFFSET ?",
                [*params, query.limit, query.offset],
            ).fetchall()
        return SearchPage(
            results=[self._row_to_soul(row) for row in rows],
            total=int(total),
            limit=query.limit,
            offset=query.offset,
        )

    def count_souls(self) -> int:
        with self._lock:
            return int(self._db.execute("SELECT COUNT(*) FROM souls").fetchone()[0])

    @staticmethod
    def _row_to_soul(row: sqlite3.Row) -> SoulRecord:
        birth = BirthCertificate(
            timestamp=row["birth_timestamp"],
            operator=row["birth_operator"],
            base_model=row["birth_base_model"],
            platform=row["birth_platform"],
            charter_hash=row["birth_charter_hash"],
        )
        contact = (
            Contact.model_validate(json.loads(row["contact_json"]))
            if row["contact_json"]
            else None
        )
        return SoulRecord(
            did=row["did"],
            name=row["name"],
            public_key=row["public_key"],
            birth=birth,
            registered_at=parse_timestamp(row["registered_at"]),
            avatar=row["avatar"],
            description=row["description"],
            website=row["website"],
            contact=contact,
            capabilities=json.loads(row["capabilities_json"]) if row["capabilities_json"] else None,
            risk_level=RiskLevel(row["risk_level"]) if row["risk_level"] else None,
            status=SoulStatus(row["status"]),
            status_reason=row["status_reason"],
            status_changed_at=_parse_ts(row["status_changed_at"]),
            last_verified_at=_parse_ts(row["last_verified_at"]),
            verification_count=int(row["verification_count"]),
            version=int(row["version"]),
        )

    # ------------------------------------------------------------------
    # Challenges
    # ------------------------------------------------------------------

    def create_challenge(self, challenge: Challenge) -> None:
        with self._lock, self._db:
            self._db.execute(
                "INSERT INTO challenges (id, did, nonce, issued_at, expires_at, status) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (
                    challenge.challenge_id,
                    challenge.did,
                    challenge.nonce,
                    format_timestamp(challenge.issued_at),
                    format_timestamp(challenge.expires_at),
                    challenge.status.value,
                ),
            )

    def get_challenge(self, challenge_id: str) -> Challenge | None:
        with self._lock:
            row = self._db.execute(
                "SELECT * FROM challenges WHERE id = ?", (challenge_id,)
            ).fetchone()
        if row is None:
            return None
        return Challenge(
            challenge_id=row["id"],
            did=row["did"],
            nonce=row["nonce"],
            issued_at=parse_timestamp(row["issued_at"]),
            expires_at=parse_timestamp(row["expires_at"]),
            status=ChallengeStatus(row["status"]),
        )

    def transition_challenge(
        self,
        challenge_id: str,
        from_status: ChallengeStatus,
        to_status: ChallengeStatus,
    ) -> bool:
        with self._lock, self._db:
            cursor = self._db.execute(
                "UPDATE challenges SET status = ? WHERE id = ? AND status = ?",
                (to_status.value, challenge_id, from_status.value),
            )
            return cursor.rowcount == 1

    def delete_expired_challenges(self, now: datetime.datetime) -> int:
        with self._lock, self._db:
            cursor = self._db.execute(
                "DELETE FROM challenges WHERE expires_at < ? AND status = ?",
                (format_timestamp(now), ChallengeStatus.PENDING.value),
            )
            return cursor.rowcount

    def close(self) -> None:
        with self._lock:
            self._db.close()
        logger.info("Closed soul store at %s", self._path)


__all__ = ["SQLiteSoulStore", "like_pattern"]
