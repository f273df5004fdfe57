"""Tests for the two-phase sibling reorder."""

import pytest

from errors import ConflictError, InvalidArgumentError, NotFoundError
from extensions import db
from models import Unit
from services import get_reorder_service

MISSING_ID = "0b9f6c5e-1111-4222-8333-444455556666"


@pytest.fixture()
def reorder_service(app):
    return get_reorder_service()


@pytest.fixture()
def units(make_node, tree):
    """Three units A, B, C at positions 1, 2, 3 under one subject."""
    subject = make_node("subject", "ordering subject", tree["exam"])
    return [make_node("unit", f"unit {label}", subject) for label in "ABC"]


def _positions(nodes):
    return [db.session.get(Unit, node["id"]).position for node in nodes]


def _sibling_positions(subject_id):
    return [
        row.position
        for row in Unit.query.filter_by(subject_id=subject_id)
        .order_by(Unit.position)
        .all()
    ]


def test_reorder_persists_requested_positions(reorder_service, units, monkeypatch):
    a, b, c = units
    store = reorder_service.store
    original = store.bulk_set_positions
    phases = []

    def checked(model, positions):
        count = original(model, positions)
        held = _sibling_positions(a["subject_id"])
        assert len(held) == len(set(held))
        phases.append(dict(positions))
        return count

    monkeypatch.setattr(store, "bulk_set_positions", checked)

    result = reorder_service.reorder_siblings(
        "unit",
        [
            {"id": a["id"], "position": 3},
            {"id": b["id"], "position": 1},
            {"id": c["id"], "position": 2},
        ],
    )

    assert result["success"] is True
    assert result["modified_count"] == 3
    assert result["base_offset"] == 10000
    assert _positions(units) == [3, 1, 2]
    assert len(phases) == 2
    assert phases[0] == {a["id"]: 10000, b["id"]: 10001, c["id"]: 10002}
    assert phases[1] == {a["id"]: 3, b["id"]: 1, c["id"]: 2}


def test_reorder_is_idempotent(reorder_service, units):
    updates = [
        {"id": units[0]["id"], "position": 2},
        {"id": units[1]["id"], "position": 1},
    ]
    reorder_service.reorder_siblings("unit", updates)

    result = reorder_service.reorder_siblings("unit", updates)

    assert result["modified_count"] == 0
    assert _positions(units) == [2, 1, 3]


def test_single_item_reorder_runs_both_phases(reorder_service, units, monkeypatch):
    store = reorder_service.store
    original = store.bulk_set_positions
    calls = []

    def counting(model, positions):
        calls.append(dict(positions))
        return original(model, positions)

    monkeypatch.setattr(store, "bulk_set_positions", counting)

    result = reorder_service.reorder_siblings(
        "unit", [{"id": units[2]["id"], "position": 7}]
    )

    assert len(calls) == 2
    assert result["modified_count"] == 1
    assert _positions(units) == [1, 2, 7]


def test_commit_phase_failure_leaves_quarantine_and_rerun_repairs(
    reorder_service, units, monkeypatch
):
    store = reorder_service.store
    original = store.bulk_set_positions
    calls = []

    def commit_fails(model, positions):
        calls.append(dict(positions))
        if len(calls) == 2:
            raise ConflictError("Write conflicts with an existing row")
        return original(model, positions)

    updates = [
        {"id": units[0]["id"], "position": 3},
        {"id": units[1]["id"], "position": 1},
        {"id": units[2]["id"], "position": 2},
    ]
    with monkeypatch.context() as patch:
        patch.setattr(store, "bulk_set_positions", commit_fails)
        with pytest.raises(ConflictError):
            reorder_service.reorder_siblings("unit", updates)

    assert _positions(units) == [10000, 10001, 10002]

    result = reorder_service.reorder_siblings("unit", updates)

    assert result["base_offset"] == 10003
    assert _positions(units) == [3, 1, 2]


def test_base_offset_moves_above_large_positions(reorder_service, units, app, monkeypatch):
    monkeypatch.setitem(app.config, "REORDER_BASE_OFFSET", 5)

    result = reorder_service.reorder_siblings(
        "unit",
        [{"id": units[0]["id"], "position": 40}, {"id": units[1]["id"], "position": 1}],
    )

    assert result["base_offset"] == 41
    assert _positions(units) == [40, 1, 3]


def test_order_number_alias_is_accepted(reorder_service, units):
    reorder_service.reorder_siblings(
        "unit",
        [
            {"_id": units[0]["id"], "orderNumber": "2"},
            {"id": units[1]["id"], "orderNumber": 1},
        ],
    )

    assert _positions(units) == [2, 1, 3]


def test_unknown_id_fails_before_any_write(reorder_service, units):
    with pytest.raises(NotFoundError) as excinfo:
        reorder_service.reorder_siblings(
            "unit",
            [{"id": units[0]["id"], "position": 3}, {"id": MISSING_ID, "position": 1}],
        )

    assert excinfo.value.details["missing_ids"] == [MISSING_ID]
    assert _positions(units) == [1, 2, 3]


@pytest.mark.parametrize(
    "updates",
    [
        [],
        None,
        [{"id": "bad-id", "position": 1}],
        [{"position": 1}],
        "not a list",
    ],
)
def test_malformed_requests_are_rejected(reorder_service, units, updates):
    with pytest.raises(InvalidArgumentError):
        reorder_service.reorder_siblings("unit", updates)
    assert _positions(units) == [1, 2, 3]


@pytest.mark.parametrize("position", [0, -1, 1.5, "x", True, None])
def test_invalid_positions_are_rejected(reorder_service, units, position):
    with pytest.raises(InvalidArgumentError):
        reorder_service.reorder_siblings(
            "unit", [{"id": units[0]["id"], "position": position}]
        )


def test_duplicate_ids_and_positions_are_rejected(reorder_service, units):
    with pytest.raises(InvalidArgumentError):
        reorder_service.reorder_siblings(
            "unit",
            [
                {"id": units[0]["id"], "position": 1},
                {"id": units[0]["id"].upper(), "position": 2},
            ],
        )
    with pytest.raises(InvalidArgumentError):
        reorder_service.reorder_siblings(
            "unit",
            [{"id": units[0]["id"], "position": 1}, {"id": units[0]["id"], "position": 2}],
        )
    with pytest.raises(InvalidArgumentError):
        reorder_service.reorder_siblings(
            "unit",
            [{"id": units[0]["id"], "position": 2}, {"id": units[1]["id"], "position": 2}],
        )
    assert _positions(units) == [1, 2, 3]


def test_items_must_share_one_parent(reorder_service, units, tree):
    with pytest.raises(InvalidArgumentError):
        reorder_service.reorder_siblings(
            "unit",
            [
                {"id": units[0]["id"], "position": 5},
                {"id": tree["unit"]["id"], "position": 6},
            ],
        )
    assert _positions(units) == [1, 2, 3]


def test_position_held_by_sibling_outside_request_conflicts(reorder_service, units):
    with pytest.raises(ConflictError) as excinfo:
        reorder_service.reorder_siblings(
            "unit",
            [{"id": units[0]["id"], "position": 2}, {"id": units[1]["id"], "position": 3}],
        )

    assert excinfo.value.details["positions"] == [3]
    assert _positions(units) == [1, 2, 3]


def test_exams_cannot_be_reordered(reorder_service, tree):
    with pytest.raises(InvalidArgumentError):
        reorder_service.reorder_siblings(
            "exam", [{"id": tree["exam"]["id"], "position": 1}]
        )


def test_reorder_clears_cached_listings(reorder_service, content_service, units):
    subject_id = units[0]["subject_id"]
    before = content_service.list_nodes("unit", parent_id=subject_id)
    assert [item["name"] for item in before] == ["Unit A", "Unit B", "Unit C"]

    reorder_service.reorder_siblings(
        "unit",
        [
            {"id": units[0]["id"], "position": 3},
            {"id": units[2]["id"], "position": 1},
        ],
    )

    after = content_service.list_nodes("unit", parent_id=subject_id)
    assert [item["name"] for item in after] == ["Unit C", "Unit B", "Unit A"]
