"""Tests for cascading deletes and status propagation."""

import pytest
from sqlalchemy.exc import OperationalError

from errors import CascadeAbortedError, InternalError, InvalidArgumentError, NotFoundError
from extensions import db
from models import NODE_MODELS, ExamDetail
from services import get_cascade_service


def _exists(kind, node):
    return db.session.get(NODE_MODELS[kind], node["id"]) is not None


def _status(kind, node):
    return db.session.get(NODE_MODELS[kind], node["id"]).status


@pytest.fixture()
def cascade_service(app):
    return get_cascade_service()


# ============================================================================
# CASCADE DELETE
# ============================================================================


def test_exam_delete_removes_every_level_and_details(
    cascade_service, content_service, tree
):
    content_service.save_exam_details(tree["exam"]["id"], {"content": "About"})

    result = cascade_service.delete_node("exam", tree["exam"]["id"])

    assert result["deleted_primary"] is True
    assert result["errors"] == []
    assert result["cascade_report"] == {
        "exam_details": 1,
        "definitions": 1,
        "subtopics": 1,
        "topics": 1,
        "chapters": 1,
        "units": 1,
        "subjects": 1,
    }
    for kind, node in tree.items():
        assert not _exists(kind, node)
    assert ExamDetail.query.count() == 0


def test_unit_delete_cascades_only_below_the_unit(cascade_service, make_node, tree):
    other_unit = make_node("unit", "other unit", tree["subject"])
    other_chapter = make_node("chapter", "kept chapter", other_unit)

    result = cascade_service.delete_node("unit", tree["unit"]["id"])

    assert result["cascade_report"] == {
        "definitions": 1,
        "subtopics": 1,
        "topics": 1,
        "chapters": 1,
    }
    for kind in ("unit", "chapter", "topic", "subtopic", "definition"):
        assert not _exists(kind, tree[kind])
    assert _exists("subject", tree["subject"])
    assert _exists("unit", other_unit)
    assert _exists("chapter", other_chapter)


@pytest.mark.parametrize(
    "kind, levels",
    [
        ("chapter", ["definitions", "subtopics", "topics"]),
        ("topic", ["definitions", "subtopics"]),
        ("subtopic", ["definitions"]),
        ("definition", []),
    ],
)
def test_lower_level_deletes_report_each_level(cascade_service, tree, kind, levels):
    result = cascade_service.delete_node(kind, tree[kind]["id"])

    assert result["cascade_report"] == {level: 1 for level in levels}
    assert not _exists(kind, tree[kind])


def test_subject_delete_does_not_cascade_by_default(cascade_service, tree):
    result = cascade_service.delete_node("subject", tree["subject"]["id"])

    assert result["deleted_primary"] is True
    assert result["cascade_report"] == {}
    assert not _exists("subject", tree["subject"])
    # Descendants are left behind without a subject.
    assert _exists("unit", tree["unit"])
    assert _exists("definition", tree["definition"])


def test_subject_delete_cascades_when_enabled(app, cascade_service, tree, monkeypatch):
    monkeypatch.setitem(app.config, "SUBJECT_DELETE_CASCADES", True)

    result = cascade_service.delete_node("subject", tree["subject"]["id"])

    assert result["cascade_report"]["units"] == 1
    assert result["cascade_report"]["definitions"] == 1
    for kind in ("subject", "unit", "chapter", "topic", "subtopic", "definition"):
        assert not _exists(kind, tree[kind])
    assert _exists("exam", tree["exam"])


def test_delete_missing_node_raises_not_found(cascade_service, app):
    with pytest.raises(NotFoundError):
        cascade_service.delete_node("unit", "7f1a1a9e-0000-4000-8000-000000000000")


def test_delete_with_malformed_id_is_rejected(cascade_service, app):
    with pytest.raises(InvalidArgumentError):
        cascade_service.delete_node("unit", "not-an-id")


def _fail_on(store, method_name, model_name, monkeypatch):
    original = getattr(store, method_name)

    def failing(model, *args, **kwargs):
        if model.__name__ == model_name:
            raise InternalError("simulated store failure")
        return original(model, *args, **kwargs)

    monkeypatch.setattr(store, method_name, failing)


def test_delete_error_is_swallowed_and_primary_still_deleted(
    cascade_service, tree, monkeypatch
):
    _fail_on(cascade_service.store, "delete_where", "Topic", monkeypatch)

    result = cascade_service.delete_node("chapter", tree["chapter"]["id"])

    assert result["deleted_primary"] is True
    assert result["cascade_report"] == {"definitions": 1, "subtopics": 1, "topics": 0}
    assert result["errors"] == [
        {"level": "topics", "error": "simulated store failure"}
    ]
    assert not _exists("chapter", tree["chapter"])
    assert _exists("topic", tree["topic"])


def test_delete_error_aborts_when_configured(app, cascade_service, tree, monkeypatch):
    monkeypatch.setitem(app.config, "CASCADE_DELETE_ERROR_POLICY", "abort")
    _fail_on(cascade_service.store, "delete_where", "Topic", monkeypatch)

    with pytest.raises(CascadeAbortedError) as excinfo:
        cascade_service.delete_node("chapter", tree["chapter"]["id"])

    report = excinfo.value.report
    assert report["deleted_primary"] is False
    assert report["cascade_report"]["definitions"] == 1
    assert report["cascade_report"]["topics"] == 0
    assert _exists("chapter", tree["chapter"])


def _lose_database_on_query(monkeypatch):
    def unavailable(*args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("database is gone"))

    monkeypatch.setattr(db.session, "query", unavailable)


def test_delete_id_collection_failure_is_swallowed(cascade_service, tree, monkeypatch):
    with monkeypatch.context() as patch:
        _lose_database_on_query(patch)
        result = cascade_service.delete_node("unit", tree["unit"]["id"])

    assert result["deleted_primary"] is True
    assert result["errors"] == [
        {"level": "collection", "error": "Database read failed"}
    ]
    assert set(result["cascade_report"].values()) == {0}
    assert not _exists("unit", tree["unit"])
    assert _exists("chapter", tree["chapter"])


def test_delete_id_collection_failure_aborts_when_configured(
    app, cascade_service, tree, monkeypatch
):
    monkeypatch.setitem(app.config, "CASCADE_DELETE_ERROR_POLICY", "abort")

    with monkeypatch.context() as patch:
        _lose_database_on_query(patch)
        with pytest.raises(CascadeAbortedError) as excinfo:
            cascade_service.delete_node("unit", tree["unit"]["id"])

    assert excinfo.value.report["deleted_primary"] is False
    assert excinfo.value.report["errors"][0]["level"] == "collection"
    assert _exists("unit", tree["unit"])


# ============================================================================
# CASCADE STATUS
# ============================================================================


def test_exam_status_cascades_in_both_directions(cascade_service, tree):
    exam_id = tree["exam"]["id"]

    result = cascade_service.set_status("exam", exam_id, "inactive")
    assert result["cascade_report"] == {
        "definitions": 1,
        "subtopics": 1,
        "topics": 1,
        "chapters": 1,
        "units": 1,
        "subjects": 1,
    }
    assert all(_status(kind, node) == "inactive" for kind, node in tree.items())

    result = cascade_service.set_status("exam", exam_id, "active")
    assert result["cascade_report"]["definitions"] == 1
    assert all(_status(kind, node) == "active" for kind, node in tree.items())


def test_unit_reactivation_does_not_cascade(cascade_service, tree):
    unit_id = tree["unit"]["id"]
    cascade_service.set_status("unit", unit_id, "inactive")
    assert _status("definition", tree["definition"]) == "inactive"
    assert _status("subject", tree["subject"]) == "active"

    result = cascade_service.set_status("unit", unit_id, "active")

    assert _status("unit", tree["unit"]) == "active"
    assert _status("chapter", tree["chapter"]) == "inactive"
    assert _status("definition", tree["definition"]) == "inactive"
    assert set(result["cascade_report"].values()) == {0}
    assert result["message"] == "Unit activated successfully"


def test_repeated_deactivation_reports_nothing_changed(cascade_service, tree):
    cascade_service.set_status("topic", tree["topic"]["id"], "inactive")

    result = cascade_service.set_status("topic", tree["topic"]["id"], "inactive")

    assert result["cascade_report"] == {"definitions": 0, "subtopics": 0}
    assert result["updated_primary"] is True


def test_status_must_be_active_or_inactive(cascade_service, tree):
    with pytest.raises(InvalidArgumentError):
        cascade_service.set_status("exam", tree["exam"]["id"], "draft")
    with pytest.raises(InvalidArgumentError):
        cascade_service.set_status("unit", tree["unit"]["id"], None)
    assert _status("exam", tree["exam"]) == "active"


def test_status_cascade_aborts_with_partial_report(cascade_service, tree, monkeypatch):
    _fail_on(cascade_service.store, "update_status_where", "Topic", monkeypatch)

    with pytest.raises(CascadeAbortedError) as excinfo:
        cascade_service.set_status("unit", tree["unit"]["id"], "inactive")

    report = excinfo.value.report
    assert report["updated_primary"] is True
    assert report["cascade_report"] == {
        "definitions": 1,
        "subtopics": 1,
        "topics": 0,
        "chapters": 0,
    }
    assert report["errors"][0]["level"] == "topics"
    assert _status("unit", tree["unit"]) == "inactive"
    assert _status("chapter", tree["chapter"]) == "active"


def test_status_cascade_swallow_policy_skips_remaining_levels(
    app, cascade_service, tree, monkeypatch
):
    monkeypatch.setitem(app.config, "CASCADE_STATUS_ERROR_POLICY", "swallow")
    _fail_on(cascade_service.store, "update_status_where", "Topic", monkeypatch)

    result = cascade_service.set_status("unit", tree["unit"]["id"], "inactive")

    assert result["success"] is True
    assert result["errors"][0]["level"] == "topics"
    assert result["cascade_report"]["chapters"] == 0
    assert _status("chapter", tree["chapter"]) == "active"
