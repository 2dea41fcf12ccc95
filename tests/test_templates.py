from __future__ import annotations

from dataclasses import replace
from datetime import UTC, datetime, timedelta

import allure

from video_jobs.orchestrator.models import Template
from video_jobs.templates import SqliteTemplateStore, TemplateLibrary

pytestmark = [
    allure.epic("Video Jobs"),
    allure.feature("Prompt Templates"),
]


class MemoryTemplateStore:
    def __init__(self, templates: list[Template] | None = None) -> None:
        self.saved: list[list[Template]] = []
        self._templates = list(templates or [])

    def load(self) -> list[Template]:
        return list(self._templates)

    def save(self, templates: list[Template]) -> None:
        self._templates = list(templates)
        self.saved.append(list(templates))


def _template(template_id: str, created_at: datetime) -> Template:
    return Template(
        id=template_id,
        title=f"Title {template_id}",
        text=f"Prompt {template_id}",
        created_at=created_at,
        modified_at=created_at,
    )


def test_library_lists_newest_first() -> None:
    base = datetime(2024, 4, 1, tzinfo=UTC)
    store = MemoryTemplateStore(
        [
            _template("old", base),
            _template("new", base + timedelta(days=2)),
            _template("mid", base + timedelta(days=1)),
        ],
    )

    library = TemplateLibrary(store)

    assert [template.id for template in library.list()] == ["new", "mid", "old"]


def test_add_persists_and_defaults_blank_title() -> None:
    store = MemoryTemplateStore()
    library = TemplateLibrary(store)

    template = library.add(title="  ", text="A cat on a piano")

    assert template.title == "Untitled Prompt"
    assert template.created_at == template.modified_at
    assert library.get(template.id) == template
    assert store.saved[-1] == [template]


def test_update_bumps_modified_time_only() -> None:
    created = datetime(2024, 4, 1, tzinfo=UTC)
    store = MemoryTemplateStore([_template("t1", created)])
    library = TemplateLibrary(store)

    updated = library.update(replace(library.get("t1"), title="Renamed", text="New text"))

    assert updated is not None
    assert updated.title == "Renamed"
    assert updated.created_at == created
    assert updated.modified_at > created
    assert store.saved[-1] == [updated]


def test_update_unknown_template_is_ignored() -> None:
    store = MemoryTemplateStore()
    library = TemplateLibrary(store)

    missing = _template("ghost", datetime(2024, 4, 1, tzinfo=UTC))

    assert library.update(missing) is None
    assert store.saved == []


def test_delete_reports_missing_templates() -> None:
    store = MemoryTemplateStore([_template("t1", datetime(2024, 4, 1, tzinfo=UTC))])
    library = TemplateLibrary(store)

    assert library.delete("t1") is True
    assert library.delete("t1") is False
    assert library.list() == []
    assert store.saved == [[]]


def test_sqlite_store_round_trips_templates(tmp_path) -> None:
    db_path = tmp_path / "nested" / "templates.db"
    store = SqliteTemplateStore(db_path)
    store.init_schema()
    try:
        library = TemplateLibrary(store)
        first = library.add(title="Piano cat", text="A cat on a piano")
        second = library.add(title="Dusk", text="Waves at dusk")
        library.delete(first.id)
    finally:
        store.close()

    reopened = SqliteTemplateStore(db_path)
    reopened.init_schema()
    try:
        loaded = reopened.load()
    finally:
        reopened.close()

    assert [template.id for template in loaded] == [second.id]
    assert loaded[0].title == "Dusk"
    assert loaded[0].text == "Waves at dusk"
    assert loaded[0].created_at == second.created_at
    assert loaded[0].created_at.tzinfo is not None
