from __future__ import annotations

import copy
import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path

import pytest

from rehearsal_planner.database import (
    JSONFileDocumentStore,
    MemoryDocumentStore,
    SQLiteDocumentStore,
    open_store,
    resolve_database_path,
)
from rehearsal_planner.engine import DateSpec, RehearsalEngine
from rehearsal_planner.models import DateOption, Document, Rehearsal

NOW = datetime(2024, 2, 1, 9, 30, tzinfo=timezone.utc)

LEGACY_DATA = {
    "users": [
        {
            "id": "u1",
            "username": "admin",
            "passwordHash": "$2b$10$abcdefghijklmnopqrstuv0123456789ABCDEFGHIJKLMNOPQRSTU",
            "role": "admin",
            "createdAt": "2024-01-01T10:00:00.000Z",
        }
    ],
    "rehearsals": [
        {
            "id": "r1",
            "title": "Spring Concert",
            "description": "",
            "createdAt": "2024-01-02T10:00:00.000Z",
            "dates": [
                {
                    "id": "d1",
                    "datetime": "2024-04-05T19:00",
                    "location": "Hall A",
                    "votes": [
                        {
                            "userId": "u1",
                            "userName": "admin",
                            "comment": "works for me",
                            "createdAt": "2024-01-03T10:00:00.000Z",
                        }
                    ],
                }
            ],
            "selectedDateId": None,
        }
    ],
    "setupComplete": True,
}


def _sample_document() -> Document:
    option = DateOption(id="d1", starts_at=NOW, location="Hall A")
    rehearsal = Rehearsal(id="r1", title="Tutti", description="", created_at=NOW, dates=[option])
    return Document(setup_complete=True, rehearsals=[rehearsal])


def test_sqlite_store_starts_empty_and_persists(tmp_path: Path) -> None:
    db_path = tmp_path / "nested" / "planner.sqlite3"
    store = SQLiteDocumentStore(db_path)
    store.initialize()

    assert store.load() == Document()

    store.save(_sample_document())
    assert SQLiteDocumentStore(db_path).load() == _sample_document()

    with sqlite3.connect(db_path) as conn:
        rows = conn.execute("SELECT key FROM documents").fetchall()
    assert rows == [("planner",)]


def test_sqlite_store_overwrites_single_row(tmp_path: Path) -> None:
    store = SQLiteDocumentStore(tmp_path / "planner.sqlite3")
    store.save(Document())
    store.save(_sample_document())

    with sqlite3.connect(store.path) as conn:
        count = conn.execute("SELECT COUNT(*) FROM documents").fetchone()[0]
    assert count == 1
    assert store.load().setup_complete


def test_json_store_reads_legacy_data_file(tmp_path: Path) -> None:
    path = tmp_path / "data.json"
    path.write_text(json.dumps(LEGACY_DATA), encoding="utf-8")

    document = JSONFileDocumentStore(path).load()

    assert document.setup_complete
    assert document.users[0].username == "admin"
    option = document.rehearsals[0].dates[0]
    assert option.starts_at == datetime(2024, 4, 5, 19, 0, tzinfo=timezone.utc)
    assert option.votes[0].comment == "works for me"


def test_json_store_drops_selection_of_removed_option(tmp_path: Path) -> None:
    data = copy.deepcopy(LEGACY_DATA)
    rehearsal = data["rehearsals"][0]
    rehearsal["selectedDateId"] = "d-removed"
    # Ids minted by the old web client were millisecond timestamps.
    rehearsal["dates"].append(
        {"id": "1712345678901", "datetime": "2024-04-06T19:00", "location": "", "votes": []}
    )
    path = tmp_path / "data.json"
    path.write_text(json.dumps(data), encoding="utf-8")
    store = JSONFileDocumentStore(path)
    engine = RehearsalEngine(store)

    loaded = engine.get_rehearsal("r1")
    assert loaded.selected_date_id is None
    assert loaded.state.value == "open"

    engine.create_user("ann", "Sup3rSecret!pw")
    voted = engine.record_vote("r1", "1712345678901", "u1", "admin", "later works too")

    assert voted.selected_date_id is None
    reloaded = json.loads(path.read_text(encoding="utf-8"))
    assert reloaded["rehearsals"][0]["selectedDateId"] is None
    assert reloaded["rehearsals"][0]["dates"][1]["votes"][0]["comment"] == "later works too"
    assert [user["username"] for user in reloaded["users"]] == ["admin", "ann"]


def test_stored_selection_of_existing_option_is_kept() -> None:
    data = copy.deepcopy(LEGACY_DATA)
    data["rehearsals"][0]["selectedDateId"] = "d1"

    assert Document.from_dict(data).rehearsals[0].selected_date_id == "d1"


def test_json_store_writes_camel_case_layout(tmp_path: Path) -> None:
    path = tmp_path / "data.json"
    store = JSONFileDocumentStore(path)
    store.initialize()
    assert json.loads(path.read_text(encoding="utf-8")) == {
        "setupComplete": False,
        "users": [],
        "rehearsals": [],
    }

    store.save(_sample_document())
    raw = json.loads(path.read_text(encoding="utf-8"))
    assert raw["rehearsals"][0]["dates"][0]["datetime"] == NOW.isoformat()
    assert raw["rehearsals"][0]["selectedDateId"] is None
    assert list(tmp_path.iterdir()) == [path]


def test_memory_store_returns_independent_copies() -> None:
    store = MemoryDocumentStore(_sample_document())

    loaded = store.load()
    loaded.rehearsals.clear()

    assert len(store.load().rehearsals) == 1
    assert store.saves == 0


def test_open_store_picks_backend_by_suffix(tmp_path: Path) -> None:
    assert isinstance(open_store(tmp_path / "data.json"), JSONFileDocumentStore)
    assert isinstance(open_store(tmp_path / "data.JSON"), JSONFileDocumentStore)
    assert isinstance(open_store(tmp_path / "planner.sqlite3"), SQLiteDocumentStore)


def test_resolve_database_path(tmp_path: Path) -> None:
    assert resolve_database_path(str(tmp_path / "x.json")) == (tmp_path / "x.json").resolve()
    assert resolve_database_path(None).name == "planner.sqlite3"


def test_engine_round_trip_through_sqlite(tmp_path: Path) -> None:
    store = SQLiteDocumentStore(tmp_path / "planner.sqlite3")
    store.initialize()
    engine = RehearsalEngine(store)
    rehearsal = engine.create_rehearsal("Tutti", None, [DateSpec("2024-04-05T19:00:00Z")])
    engine.record_vote(rehearsal.id, rehearsal.dates[0].id, "u1", "Ann", "ok")

    reopened = RehearsalEngine(SQLiteDocumentStore(store.path))
    assert reopened.get_tally(rehearsal.id).max_votes == 1


@pytest.mark.parametrize("broken", [{"users": [{"username": "x"}]}, {"rehearsals": [{"id": "r1"}]}])
def test_malformed_records_raise(tmp_path: Path, broken: dict) -> None:
    path = tmp_path / "data.json"
    path.write_text(json.dumps(broken), encoding="utf-8")

    with pytest.raises(ValueError):
        JSONFileDocumentStore(path).load()
