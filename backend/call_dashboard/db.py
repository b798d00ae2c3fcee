from typing import Any, Dict, List, Optional, Tuple
from datetime import timezone
from pathlib import Path
import logging

import sqlalchemy as sa
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool

from .errors import CallNotFound, StorageError
from .models.db_models import calls, metadata, transcripts
from .schemas.pydantic_schemas import CallRecord, TranscriptLine

logger = logging.getLogger(__name__)


def _create_engine(database_url: str) -> Engine:
    url = sa.engine.make_url(database_url)
    if url.get_backend_name() != "sqlite":
        return sa.create_engine(database_url, pool_pre_ping=True)

    in_memory = url.database in (None, "", ":memory:")
    if in_memory:
        # One shared connection, otherwise every checkout sees an empty database
        engine = sa.create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)
        engine = sa.create_engine(database_url, connect_args={"check_same_thread": False, "timeout": 10})

    @sa.event.listens_for(engine, "connect")
    def _sqlite_pragmas(dbapi_connection, _record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys = ON")
        cursor.execute("PRAGMA busy_timeout = 10000")
        if not in_memory:
            cursor.execute("PRAGMA journal_mode = WAL")
            cursor.execute("PRAGMA synchronous = NORMAL")
        cursor.close()

    return engine


class SQLDB:
    """Durable store for calls and their transcript lines."""

    def __init__(self, database_url: str) -> None:
        self.database_url = database_url
        self.engine = _create_engine(database_url)

    def init_schema(self) -> None:
        try:
            metadata.create_all(self.engine)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to initialize database: {e}") from e
        logger.info(f"Database ready: {self.engine.url.render_as_string(hide_password=True)}")

    def close(self) -> None:
        self.engine.dispose()

    # Calls
    def save_call(self, call: CallRecord) -> None:
        logger.info(f"Saving call {call.id[-8:]} with {len(call.transcript)} transcript lines")
        row = {
            "id": call.id,
            "from_number": call.from_number,
            "to_number": call.to_number,
            "duration": call.duration,
            "recording_url": call.recording_url,
            "pii_url": call.pii_url,
            "transcript_sid": call.transcript_sid,
            "recording_type": call.recording_type,
            "created_at": call.created_at,
        }
        lines = [{"call_id": call.id, "speaker": t.speaker, "text": t.text} for t in call.transcript]
        try:
            with self.engine.begin() as conn:
                conn.execute(calls.insert().values(**row))
                if lines:
                    conn.execute(transcripts.insert(), lines)
        except SQLAlchemyError as e:
            logger.error(f"Failed to save call {call.id}: {e}")
            raise StorageError(f"Failed to save call {call.id}") from e

    def list_calls(self, page: int, limit: int, search: Optional[str] = None) -> Tuple[List[CallRecord], int]:
        condition = self._search_condition(search)
        count_q = sa.select(sa.func.count()).select_from(calls)
        page_q = sa.select(calls).order_by(calls.c.created_at.desc(), calls.c.id.desc())
        if condition is not None:
            count_q = count_q.where(condition)
            page_q = page_q.where(condition)
        page_q = page_q.limit(limit).offset((page - 1) * limit)

        try:
            with self.engine.connect() as conn:
                total = conn.execute(count_q).scalar_one()
                rows = conn.execute(page_q).mappings().all()
                lines = self._transcripts_for(conn, [r["id"] for r in rows])
        except SQLAlchemyError as e:
            logger.error(f"Failed to list calls: {e}")
            raise StorageError("Failed to list calls") from e

        return [self._to_record(r, lines.get(r["id"], [])) for r in rows], total

    def get_call(self, call_id: str) -> CallRecord:
        try:
            with self.engine.connect() as conn:
                row = conn.execute(sa.select(calls).where(calls.c.id == call_id)).mappings().first()
                if row is None:
                    raise CallNotFound(call_id)
                lines = self._transcripts_for(conn, [call_id])
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to read call {call_id}") from e
        return self._to_record(row, lines.get(call_id, []))

    def delete_call(self, call_id: str) -> None:
        logger.info(f"Deleting call {call_id}")
        try:
            with self.engine.begin() as conn:
                exists = conn.execute(sa.select(calls.c.id).where(calls.c.id == call_id)).first()
                if exists is None:
                    raise CallNotFound(call_id)
                conn.execute(transcripts.delete().where(transcripts.c.call_id == call_id))
                conn.execute(calls.delete().where(calls.c.id == call_id))
        except SQLAlchemyError as e:
            logger.error(f"Failed to delete call {call_id}: {e}")
            raise StorageError(f"Failed to delete call {call_id}") from e

    # Helpers
    @staticmethod
    def _search_condition(search: Optional[str]):
        term = (search or "").strip()
        if not term:
            return None
        in_transcript = (
            sa.select(transcripts.c.id)
            .where(transcripts.c.call_id == calls.c.id)
            .where(transcripts.c.text.icontains(term, autoescape=True))
            .exists()
        )
        return sa.or_(
            calls.c.from_number.icontains(term, autoescape=True),
            calls.c.to_number.icontains(term, autoescape=True),
            in_transcript,
        )

    @staticmethod
    def _transcripts_for(conn, call_ids: List[str]) -> Dict[str, List[TranscriptLine]]:
        if not call_ids:
            return {}
        q = (
            sa.select(transcripts.c.call_id, transcripts.c.speaker, transcripts.c.text)
            .where(transcripts.c.call_id.in_(call_ids))
            .order_by(transcripts.c.id)
        )
        grouped: Dict[str, List[TranscriptLine]] = {}
        for r in conn.execute(q):
            grouped.setdefault(r.call_id, []).append(TranscriptLine(speaker=r.speaker, text=r.text))
        return grouped

    @staticmethod
    def _to_record(row: Any, lines: List[TranscriptLine]) -> CallRecord:
        created_at = row["created_at"]
        # SQLite drops tzinfo on the way back
        if created_at is not None and created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        return CallRecord(
            id=row["id"],
            from_number=row["from_number"],
            to_number=row["to_number"],
            duration=row["duration"],
            recording_url=row["recording_url"],
            pii_url=row["pii_url"],
            transcript_sid=row["transcript_sid"],
            created_at=created_at,
            transcript=lines,
        )
