"""Prompt template library persisted in SQLite via SQLModel."""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import UTC, datetime
from pathlib import Path
from typing import Protocol
from uuid import uuid4

from sqlalchemy import Column, DateTime, Text, event
from sqlalchemy.engine import Engine
from sqlalchemy.pool import NullPool
from sqlmodel import Field, Session, SQLModel, col, create_engine, delete, select

from video_jobs.orchestrator.models import Template

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "Untitled Prompt"


class TemplateRow(SQLModel, table=True):
    __tablename__ = "prompt_templates"  # type: ignore[bad-override]

    template_id: str = Field(primary_key=True)
    title: str
    text: str = Field(sa_column=Column(Text, nullable=False))
    created_at: datetime = Field(
        sa_column=Column(DateTime(timezone=True), nullable=False, index=True),
    )
    modified_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class TemplateStore(Protocol):
    """Persistence contract for user templates."""

    def load(self) -> list[Template]: ...

    def save(self, templates: list[Template]) -> None: ...


class SqliteTemplateStore:
    """Template persistence backed by SQLModel + SQLite."""

    def __init__(self, db_path: Path, *, busy_timeout_ms: int = 5000) -> None:
        self.db_path = db_path
        self.engine = _sqlite_engine(db_path, busy_timeout_ms=busy_timeout_ms)

    def init_schema(self) -> None:
        SQLModel.metadata.create_all(self.engine, tables=[TemplateRow.__table__])

    def close(self) -> None:
        self.engine.dispose()

    def load(self) -> list[Template]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(TemplateRow).order_by(col(TemplateRow.created_at).desc()),
            ).all()
            return [_to_template(row) for row in rows]

    def save(self, templates: list[Template]) -> None:
        """Replace the stored set with ``templates``."""

        with Session(self.engine) as session:
            session.exec(delete(TemplateRow))
            session.add_all(
                TemplateRow(
                    template_id=template.id,
                    title=template.title,
                    text=template.text,
                    created_at=template.created_at,
                    modified_at=template.modified_at,
                )
                for template in templates
            )
            session.commit()


class TemplateLibrary:
    """In-memory template list that writes through to a store."""

    def __init__(self, store: TemplateStore) -> None:
        self.store = store
        self._templates = sorted(store.load(), key=lambda item: item.created_at, reverse=True)
        logger.info("Loaded %d templates from storage", len(self._templates))

    def list(self) -> list[Template]:
        """Templates, newest first."""

        return list(self._templates)

    def get(self, template_id: str) -> Template | None:
        for template in self._templates:
            if template.id == template_id:
                return template
        return None

    def add(self, *, title: str = DEFAULT_TITLE, text: str = "") -> Template:
        now = utc_now()
        template = Template(
            id=str(uuid4()),
            title=title.strip() or DEFAULT_TITLE,
            text=text,
            created_at=now,
            modified_at=now,
        )
        self._templates.insert(0, template)
        self._save()
        logger.info("Added template %s", template.id)
        return template

    def update(self, template: Template) -> Template | None:
        """Store new title/text for an existing template; returns None when unknown."""

        for index, current in enumerate(self._templates):
            if current.id == template.id:
                updated = replace(template, created_at=current.created_at, modified_at=utc_now())
                self._templates[index] = updated
                self._save()
                return updated
        logger.warning("Attempted to update non-existent template: %s", template.id)
        return None

    def delete(self, template_id: str) -> bool:
        remaining = [item for item in self._templates if item.id != template_id]
        if len(remaining) == len(self._templates):
            return False
        self._templates = remaining
        self._save()
        logger.info("Deleted template %s", template_id)
        return True

    def _save(self) -> None:
        self.store.save(list(self._templates))
        logger.debug("Saved %d templates to storage", len(self._templates))


def _to_template(row: TemplateRow) -> Template:
    return Template(
        id=row.template_id,
        title=row.title,
        text=row.text,
        created_at=_as_utc(row.created_at),
        modified_at=_as_utc(row.modified_at),
    )


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


def _as_utc(value: datetime) -> datetime:
    # SQLite returns naive datetimes.
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)


def _sqlite_engine(db_path: Path, *, busy_timeout_ms: int) -> Engine:
    db_path.parent.mkdir(parents=True, exist_ok=True)
    engine = create_engine(
        f"sqlite:///{db_path}",
        connect_args={"check_same_thread": False, "timeout": max(1.0, busy_timeout_ms / 1000.0)},
        poolclass=NullPool,
    )

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, _record) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode = WAL")
        cursor.execute(f"PRAGMA busy_timeout = {max(1, busy_timeout_ms)}")
        cursor.close()

    return engine
