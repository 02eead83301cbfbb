"""
Shared pytest fixtures for the Proposal Board test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - rfp_board / status_board: template boards created via the API
    - make_layout / make_proposal: engine-level factories (no database)
"""

import pytest

from proposal_board import create_app
from proposal_board.models import db as _db
from proposal_board.services.board_layout import BoardLayout, ProposalSnapshot

ORG_ID = 1


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        # Ids are reused once tables are recreated; drop remembered versions.
        reconciler = app.extensions.get("board_reconciler")
        if reconciler is not None:
            reconciler.reset()
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Board fixtures ───────────────────────────────────────────────────────


@pytest.fixture()
def rfp_board(client):
    """15-column RFP board for ORG_ID, created via the API."""
    res = client.post("/api/v1/boards", json={"organization_id": ORG_ID, "template": "rfp_15_column"})
    assert res.status_code == 201, res.get_json()
    return res.get_json()


@pytest.fixture()
def status_board(client):
    """8-column default-status board for ORG_ID, created via the API."""
    res = client.post("/api/v1/boards", json={"organization_id": ORG_ID, "template": "default_status"})
    assert res.status_code == 201, res.get_json()
    return res.get_json()


# ── Engine factories ─────────────────────────────────────────────────────


def column(col_id, col_type="custom_stage", **kw):
    """Raw column dict as stored on a board."""
    data = {"id": col_id, "type": col_type, "label": kw.pop("label", col_id.title())}
    data.update(kw)
    return data


def system_item(item_id, label=None, required=True, order=0):
    return {"id": item_id, "label": label or item_id, "type": "system_check", "required": required, "order": order}


@pytest.fixture()
def make_layout():
    def _make(*columns, board_id=1, version=1):
        return BoardLayout.from_config(list(columns), board_id=board_id, version=version)
    return _make


@pytest.fixture()
def make_proposal():
    def _make(**kw):
        kw.setdefault("id", 1)
        kw.setdefault("version", 1)
        return ProposalSnapshot(**kw)
    return _make
