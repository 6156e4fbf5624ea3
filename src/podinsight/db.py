"""
PodInsight Database Layer
Resource store for transcript and summary records.

Two backends share one contract:
- MemoryStore: process-local dicts (tests, ephemeral runs)
- SqlStore: SQLAlchemy tables (SQLite file by default)

Every transition is a single upsert keyed by the record identity. Upserts
merge the given fields into the existing row; updates are no-ops when the
row does not exist.
"""

import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterator, List, Optional

from sqlalchemy import JSON, Column, DateTime, Float, String, Text, create_engine, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from .config import settings
from .exceptions import StoreError
from .models import IN_FLIGHT_STATUSES, SummaryRecord, TranscriptRecord, Utterance, utcnow

logger = logging.getLogger(__name__)


class ResourceStore(ABC):
    """Read/write contract the pipeline needs from persistence."""

    @abstractmethod
    def get_transcript(self, episode_id: str, language: str) -> Optional[TranscriptRecord]:
        pass

    @abstractmethod
    def upsert_transcript(self, episode_id: str, language: str, **fields) -> TranscriptRecord:
        pass

    @abstractmethod
    def update_transcript(self, episode_id: str, language: str, **fields) -> Optional[TranscriptRecord]:
        pass

    @abstractmethod
    def get_summary(self, episode_id: str, level: str, language: str) -> Optional[SummaryRecord]:
        pass

    @abstractmethod
    def upsert_summary(self, episode_id: str, level: str, language: str, **fields) -> SummaryRecord:
        pass

    @abstractmethod
    def update_summary(self, episode_id: str, level: str, language: str, **fields) -> Optional[SummaryRecord]:
        pass

    @abstractmethod
    def list_summaries(self, episode_id: str, language: Optional[str] = None) -> List[SummaryRecord]:
        """Summaries of an episode in one language, or in every language when None."""
        pass

    @abstractmethod
    def list_stale_transcripts(self, updated_before: datetime) -> List[TranscriptRecord]:
        """In-flight transcript records not touched since updated_before."""
        pass

    @abstractmethod
    def list_stale_summaries(self, updated_before: datetime) -> List[SummaryRecord]:
        """In-flight summary records not touched since updated_before."""
        pass


def _merge(model_cls, existing, identity: dict, fields: dict):
    """Build a validated record from an existing row plus new field values."""
    now = utcnow()
    base = existing.model_dump() if existing else {**identity, "created_at": now}
    base.update(fields)
    base["updated_at"] = now
    return model_cls.model_validate(base)


class MemoryStore(ResourceStore):
    """Dict-backed store. Returned records are copies."""

    def __init__(self):
        self._transcripts: Dict[tuple, TranscriptRecord] = {}
        self._summaries: Dict[tuple, SummaryRecord] = {}

    def get_transcript(self, episode_id: str, language: str) -> Optional[TranscriptRecord]:
        record = self._transcripts.get((episode_id, language))
        return record.model_copy(deep=True) if record else None

    def upsert_transcript(self, episode_id: str, language: str, **fields) -> TranscriptRecord:
        key = (episode_id, language)
        record = _merge(
            TranscriptRecord,
            self._transcripts.get(key),
            {"episode_id": episode_id, "language": language},
            fields,
        )
        self._transcripts[key] = record
        return record.model_copy(deep=True)

    def update_transcript(self, episode_id: str, language: str, **fields) -> Optional[TranscriptRecord]:
        if (episode_id, language) not in self._transcripts:
            return None
        return self.upsert_transcript(episode_id, language, **fields)

    def get_summary(self, episode_id: str, level: str, language: str) -> Optional[SummaryRecord]:
        record = self._summaries.get((episode_id, level, language))
        return record.model_copy(deep=True) if record else None

    def upsert_summary(self, episode_id: str, level: str, language: str, **fields) -> SummaryRecord:
        key = (episode_id, level, language)
        record = _merge(
            SummaryRecord,
            self._summaries.get(key),
            {"episode_id": episode_id, "level": level, "language": language},
            fields,
        )
        self._summaries[key] = record
        return record.model_copy(deep=True)

    def update_summary(self, episode_id: str, level: str, language: str, **fields) -> Optional[SummaryRecord]:
        if (episode_id, level, language) not in self._summaries:
            return None
        return self.upsert_summary(episode_id, level, language, **fields)

    def list_summaries(self, episode_id: str, language: Optional[str] = None) -> List[SummaryRecord]:
        return [
            record.model_copy(deep=True)
            for (eid, _level, lang), record in self._summaries.items()
            if eid == episode_id and (language is None or lang == language)
        ]

    def list_stale_transcripts(self, updated_before: datetime) -> List[TranscriptRecord]:
        return [
            record.model_copy(deep=True)
            for record in self._transcripts.values()
            if record.status in IN_FLIGHT_STATUSES and record.updated_at <= updated_before
        ]

    def list_stale_summaries(self, updated_before: datetime) -> List[SummaryRecord]:
        return [
            record.model_copy(deep=True)
            for record in self._summaries.values()
            if record.status in IN_FLIGHT_STATUSES and record.updated_at <= updated_before
        ]


# --- SQL backend ---

Base = declarative_base()


class TranscriptRow(Base):
    """One row per (episode_id, language)."""

    __tablename__ = "transcripts"

    episode_id = Column(String(255), primary_key=True)
    language = Column(String(16), primary_key=True)
    status = Column(String(32), nullable=False)
    full_text = Column(Text)
    provider = Column(String(64))
    error_message = Column(Text)
    utterances = Column(JSON, nullable=False, default=list)  # diarized utterances, when known
    duration_seconds = Column(Float)
    speaker_names = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)


class SummaryRow(Base):
    """One row per (episode_id, level, language)."""

    __tablename__ = "summaries"

    episode_id = Column(String(255), primary_key=True)
    level = Column(String(16), primary_key=True)
    language = Column(String(16), primary_key=True)
    status = Column(String(32), nullable=False)
    content = Column(JSON)  # level-specific payload, set only when ready
    error_message = Column(Text)
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)


def _dialect_insert(dialect_name: str):
    """INSERT construct supporting ON CONFLICT for the engine's dialect."""
    if dialect_name == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    elif dialect_name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    else:
        raise StoreError(f"Unsupported database dialect for upserts: {dialect_name}")
    return insert


class SqlStore(ResourceStore):
    """
    SQLAlchemy-backed store (SQLite by default, PostgreSQL supported).

    Upserts are a single INSERT ... ON CONFLICT DO UPDATE that only touches
    the given fields, so each transition is one atomic write.
    """

    def __init__(self, database_url: Optional[str] = None, engine: Optional[Engine] = None):
        self.database_url = database_url or settings.resolved_database_url
        self._engine = engine
        self._session_factory = None

    def connect(self) -> "SqlStore":
        """Create the engine and tables."""
        try:
            if self._engine is None:
                if self.database_url.startswith("sqlite:///"):
                    Path(self.database_url[len("sqlite:///"):]).parent.mkdir(parents=True, exist_ok=True)
                self._engine = create_engine(self.database_url, future=True)
            Base.metadata.create_all(self._engine)
        except SQLAlchemyError as e:
            raise StoreError(f"Cannot open store at {self.database_url}: {e}") from e
        self._session_factory = sessionmaker(bind=self._engine, expire_on_commit=False)
        return self

    @property
    def engine(self) -> Engine:
        if self._session_factory is None:
            self.connect()
        return self._engine

    @contextmanager
    def _session(self) -> Iterator[Session]:
        if self._session_factory is None:
            self.connect()
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            raise StoreError(f"Store operation failed: {e}") from e
        finally:
            session.close()

    def _upsert(self, table, keys: List[str], record, fields: dict) -> None:
        """Insert the full record, or on key conflict update only `fields`."""
        row = record.model_dump(mode="python")
        insert = _dialect_insert(self.engine.dialect.name)
        stmt = insert(table).values(**row)
        changed = [c for c in fields if c in row and c not in keys] + ["updated_at"]
        stmt = stmt.on_conflict_do_update(
            index_elements=keys,
            set_={column: stmt.excluded[column] for column in changed},
        )
        with self._session() as session:
            session.execute(stmt)

    # --- Transcript rows ---

    @staticmethod
    def _row_to_transcript(row: TranscriptRow) -> TranscriptRecord:
        return TranscriptRecord(
            episode_id=row.episode_id,
            language=row.language,
            status=row.status,
            full_text=row.full_text,
            provider=row.provider,
            error_message=row.error_message,
            utterances=[Utterance(**u) for u in (row.utterances or [])],
            duration_seconds=row.duration_seconds,
            speaker_names=row.speaker_names or {},
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def get_transcript(self, episode_id: str, language: str) -> Optional[TranscriptRecord]:
        with self._session() as session:
            row = session.get(TranscriptRow, (episode_id, language))
            return self._row_to_transcript(row) if row else None

    def upsert_transcript(self, episode_id: str, language: str, **fields) -> TranscriptRecord:
        identity = {"episode_id": episode_id, "language": language}
        record = _merge(TranscriptRecord, None, identity, fields)
        self._upsert(TranscriptRow.__table__, list(identity), record, fields)
        return self.get_transcript(episode_id, language)

    def update_transcript(self, episode_id: str, language: str, **fields) -> Optional[TranscriptRecord]:
        if self.get_transcript(episode_id, language) is None:
            return None
        return self.upsert_transcript(episode_id, language, **fields)

    # --- Summary rows ---

    @staticmethod
    def _row_to_summary(row: SummaryRow) -> SummaryRecord:
        return SummaryRecord(
            episode_id=row.episode_id,
            level=row.level,
            language=row.language,
            status=row.status,
            content=row.content,
            error_message=row.error_message,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def get_summary(self, episode_id: str, level: str, language: str) -> Optional[SummaryRecord]:
        with self._session() as session:
            row = session.get(SummaryRow, (episode_id, level, language))
            return self._row_to_summary(row) if row else None

    def upsert_summary(self, episode_id: str, level: str, language: str, **fields) -> SummaryRecord:
        identity = {"episode_id": episode_id, "level": level, "language": language}
        record = _merge(SummaryRecord, None, identity, fields)
        self._upsert(SummaryRow.__table__, list(identity), record, fields)
        return self.get_summary(episode_id, level, language)

    def update_summary(self, episode_id: str, level: str, language: str, **fields) -> Optional[SummaryRecord]:
        if self.get_summary(episode_id, level, language) is None:
            return None
        return self.upsert_summary(episode_id, level, language, **fields)

    def list_summaries(self, episode_id: str, language: Optional[str] = None) -> List[SummaryRecord]:
        query = select(SummaryRow).where(SummaryRow.episode_id == episode_id)
        if language is not None:
            query = query.where(SummaryRow.language == language)
        with self._session() as session:
            rows = session.execute(query.order_by(SummaryRow.level, SummaryRow.language)).scalars().all()
            return [self._row_to_summary(r) for r in rows]

    # --- Stale in-flight rows ---

    def list_stale_transcripts(self, updated_before: datetime) -> List[TranscriptRecord]:
        with self._session() as session:
            rows = session.execute(
                select(TranscriptRow).where(
                    TranscriptRow.status.in_(sorted(IN_FLIGHT_STATUSES)),
                    TranscriptRow.updated_at <= updated_before,
                )
            ).scalars().all()
            return [self._row_to_transcript(r) for r in rows]

    def list_stale_summaries(self, updated_before: datetime) -> List[SummaryRecord]:
        with self._session() as session:
            rows = session.execute(
                select(SummaryRow).where(
                    SummaryRow.status.in_(sorted(IN_FLIGHT_STATUSES)),
                    SummaryRow.updated_at <= updated_before,
                )
            ).scalars().all()
            return [self._row_to_summary(r) for r in rows]


def create_store(backend: Optional[str] = None) -> ResourceStore:
    """Create the configured store backend."""
    backend = backend or settings.store_backend
    if backend == "memory":
        logger.info("Using in-memory resource store")
        return MemoryStore()
    if backend == "sql":
        logger.info(f"Using SQL resource store at {settings.resolved_database_url}")
        return SqlStore().connect()
    raise ValueError(f"Unknown store backend: {backend}")
