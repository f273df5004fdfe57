"""Shared fixtures for the hierarchy tests.

Every test runs against a fresh in-memory SQLite database.
"""

import os
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
os.environ["DATABASE_URL"] = "sqlite://"

from app import app as flask_app  # noqa: E402
from extensions import cache, db  # noqa: E402
from models import KINDS, parent_column  # noqa: E402
from services import get_content_service  # noqa: E402


@pytest.fixture()
def app():
    flask_app.config["TESTING"] = True
    with flask_app.app_context():
        db.create_all()
        cache.clear()
        yield flask_app
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app):
    with app.test_client() as test_client:
        with test_client.session_transaction() as sess:
            sess["is_admin"] = True
        yield test_client


@pytest.fixture()
def anonymous_client(app):
    with app.test_client() as test_client:
        yield test_client


@pytest.fixture()
def content_service(app):
    return get_content_service()


@pytest.fixture()
def make_node(content_service):
    """Create a node of ``kind`` under ``parent`` (a node dict)."""

    def _make(kind, name, parent=None, **extra):
        payload = {"name": name, **extra}
        if parent is not None:
            payload[parent_column(kind)] = parent["id"]
        return content_service.create_node(kind, payload)

    return _make


@pytest.fixture()
def tree(make_node):
    """One node per level, Exam down to Definition."""
    nodes = {}
    parent = None
    for kind in KINDS:
        parent = make_node(kind, f"{kind} one", parent)
        nodes[kind] = parent
    return nodes
