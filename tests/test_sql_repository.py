"""
Smoke tests for the SQLRepository against a temporary SQLite database.
"""
from __future__ import annotations

import pytest

from scrubbed.repositories.sql_repository import DuplicateRowError, SQLRepository


def _request_values(**overrides) -> dict:
    values = {
        "dumper_id": "d1",
        "waste_type": "Household",
        "location": {"lat": 1.5, "lng": 2.5},
        "address": "Main St",
        "photos": [],
    }
    values.update(overrides)
    return values


def test_profile_insert_update_and_duplicate(temp_db):
    repo = SQLRepository()
    assert repo.get_profile("p1") is None
    repo.insert_profile({"id": "p1", "email": "p1@example.com", "user_type": "dumper"})
    with pytest.raises(DuplicateRowError):
        repo.insert_profile({"id": "p1", "email": "other@example.com", "user_type": "collector"})

    assert repo.update_profile("p1", {"phone": "+15551234567"}) is True
    assert repo.update_profile("missing", {"phone": "+1"}) is False
    row = repo.get_profile("p1")
    assert row.email == "p1@example.com"
    assert row.phone == "+15551234567"


def test_insert_request_forces_pending_and_keeps_input(temp_db):
    repo = SQLRepository()
    values = _request_values(id="r-1")
    entity = repo.insert_request(values)
    assert values["id"] == "r-1"
    assert entity.id == "r-1"
    assert entity.status == "pending"
    assert entity.collector_id is None
    assert repo.get_request(entity.id).location == {"lat": 1.5, "lng": 2.5}


def test_accept_is_compare_and_swap(temp_db):
    repo = SQLRepository()
    entity = repo.insert_request(_request_values())
    assert repo.accept_request(entity.id, "c1") is True
    assert repo.accept_request(entity.id, "c2") is False
    row = repo.get_request(entity.id)
    assert row.status == "matched"
    assert row.collector_id == "c1"
    assert repo.accept_request("missing", "c1") is False


def test_transition_checks_status_and_party(temp_db):
    repo = SQLRepository()
    entity = repo.insert_request(_request_values())
    repo.accept_request(entity.id, "c1")

    assert repo.transition_request(entity.id, from_status="matched", to_status="in_progress", collector_id="c2") is False
    assert repo.transition_request(entity.id, from_status="in_progress", to_status="completed", collector_id="c1") is False
    assert repo.transition_request(entity.id, from_status="matched", to_status="in_progress", collector_id="c1") is True
    assert repo.get_request(entity.id).status == "in_progress"


def test_pending_intent_is_read_once(temp_db):
    repo = SQLRepository()
    repo.save_pending_intent("key-1", "collector")
    repo.save_pending_intent("key-1", "dumper")

    intent = repo.consume_pending_intent("key-1")
    assert intent.user_type == "dumper"
    assert intent.created_at is not None
    assert repo.consume_pending_intent("key-1") is None


def test_collector_rows(temp_db):
    repo = SQLRepository()
    repo.insert_profile({"id": "p1", "email": "p1@example.com", "user_type": "collector"})
    repo.insert_collector("p1", specializations=["Household"], service_radius_km=10)
    with pytest.raises(DuplicateRowError):
        repo.insert_collector("p1", specializations=[], service_radius_km=5)

    assert repo.update_collector("p1", {"current_location": {"lat": 1.0, "lng": 2.0}}) is True
    assert repo.update_collector("nobody", {"is_available": False}) is False
    repo.increment_collections("p1")
    row = repo.get_collector_by_profile("p1")
    assert row.current_location == {"lat": 1.0, "lng": 2.0}
    assert row.total_collections == 1
    assert row.specializations == ["Household"]
