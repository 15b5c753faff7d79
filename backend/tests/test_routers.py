"""
HTTP API tests

The engine is replaced by a mock so the routes can be checked in isolation;
the list store runs against the in-memory repository.
"""
import pytest
from unittest.mock import AsyncMock, MagicMock
from fastapi.testclient import TestClient

from dependencies import get_engine, get_list_store, get_smart_add_parser
from helpers import make_item
from models import CandidateItem, Item, ItemDraft
from server import app
from services.ingestion import StepOutcome
from services.merge_proposal import MergeProposal
from utils.errors import NoOpenProposalError, NormalizationError


@pytest.fixture
def mock_engine():
    engine = MagicMock()
    engine.has_pending = True
    engine.proposal = None
    engine.status.return_value = {"busy": False, "pending": False, "proposal": None}
    engine.resolve_proposal = AsyncMock(return_value=StepOutcome.MERGED)
    return engine


@pytest.fixture
def mock_parser():
    parser = MagicMock()
    parser.parse = AsyncMock(return_value=[ItemDraft(name="Milk", canonical_name="Milk", qty=2)])
    return parser


@pytest.fixture
def client(store, mock_engine, mock_parser):
    app.dependency_overrides[get_engine] = lambda: mock_engine
    app.dependency_overrides[get_list_store] = lambda: store
    app.dependency_overrides[get_smart_add_parser] = lambda: mock_parser
    yield TestClient(app)
    app.dependency_overrides.clear()


# =============================================================================
# SHOPPING LISTS
# =============================================================================

class TestShoppingListRoutes:

    def test_create_and_get(self, client):
        response = client.post("/api/shopping-lists", json={"name": "Weekly", "owner_id": "u1"})
        assert response.status_code == 200
        list_id = response.json()["id"]

        response = client.get(f"/api/shopping-lists/{list_id}")
        assert response.status_code == 200
        assert response.json()["name"] == "Weekly"
        assert response.json()["items"] == []

    def test_get_missing_list(self, client):
        response = client.get("/api/shopping-lists/nope")

        assert response.status_code == 404
        assert response.json()["detail"]["error"]["code"] == "NOT_FOUND"

    def test_list_for_user_requires_user_id(self, client, repository):
        repository.add_list("l1", owner_id="u1")

        assert client.get("/api/shopping-lists").status_code == 422
        response = client.get("/api/shopping-lists", params={"user_id": "u1"})
        assert [l["id"] for l in response.json()] == ["l1"]

    def test_delete_list(self, client, repository):
        repository.add_list("l1")

        assert client.delete("/api/shopping-lists/l1").status_code == 200
        assert client.delete("/api/shopping-lists/l1").status_code == 404

    def test_delete_item(self, client, repository):
        repository.add_list("l1", items=[make_item("a", "Milk")])

        assert client.delete("/api/shopping-lists/l1/items/a").status_code == 200
        assert repository.items("l1") == []
        assert client.delete("/api/shopping-lists/l1/items/a").status_code == 404

    def test_toggle_item(self, client, repository):
        repository.add_list("l1", items=[make_item("a", "Milk")])

        response = client.post("/api/shopping-lists/l1/items/a/toggle")

        assert response.status_code == 200
        assert response.json()["checked"] is True
        assert client.post("/api/shopping-lists/l1/items/zzz/toggle").status_code == 404


# =============================================================================
# INGESTION
# =============================================================================

class TestIngestionRoutes:

    def test_add_item_is_queued(self, client, mock_engine):
        response = client.post("/api/shopping-lists/l1/items",
                               json={"name": " Milk ", "qty": 2, "unit": "l", "skip_normalization": True})

        assert response.status_code == 202
        assert response.json() == {"status": "queued", "list_id": "l1", "pending": True}
        list_id, draft = mock_engine.enqueue_add.call_args.args
        assert list_id == "l1"
        assert draft.name == "Milk"
        assert draft.qty == 2
        assert mock_engine.enqueue_add.call_args.kwargs == {"skip_normalization": True}

    def test_add_item_rejects_bad_quantity(self, client, mock_engine):
        response = client.post("/api/shopping-lists/l1/items", json={"name": "Milk", "qty": 0})

        assert response.status_code == 422
        mock_engine.enqueue_add.assert_not_called()

    def test_update_item_is_queued(self, client, mock_engine):
        response = client.put("/api/shopping-lists/l1/items/a", json={"name": "Oat milk"})

        assert response.status_code == 202
        list_id, item_id, draft = mock_engine.enqueue_update.call_args.args
        assert (list_id, item_id, draft.name) == ("l1", "a", "Oat milk")

    def test_smart_add(self, client, mock_engine, mock_parser):
        response = client.post("/api/shopping-lists/l1/smart-add",
                               json={"voice_input": "two litres of milk"})

        assert response.status_code == 202
        assert response.json()["items"][0]["name"] == "Milk"
        mock_parser.parse.assert_awaited_once_with("two litres of milk")
        mock_engine.enqueue_many.assert_called_once()
        assert mock_engine.enqueue_many.call_args.kwargs == {"skip_normalization": True}

    def test_smart_add_parse_failure(self, client, mock_engine, mock_parser):
        mock_parser.parse.side_effect = NormalizationError("Malformed response")

        response = client.post("/api/shopping-lists/l1/smart-add", json={"voice_input": "mumble"})

        assert response.status_code == 503
        mock_engine.enqueue_many.assert_not_called()

    def test_status(self, client):
        response = client.get("/api/ingestion/status")

        assert response.status_code == 200
        assert response.json() == {"busy": False, "pending": False, "proposal": None}

    def test_no_proposal(self, client):
        assert client.get("/api/ingestion/proposal").status_code == 404

    def test_open_proposal(self, client, mock_engine):
        mock_engine.proposal = MergeProposal(
            list_id="l1",
            existing_item=Item(**make_item("a", "Milk", store="SuperMart")),
            candidate_item=CandidateItem(name="Milk", canonical_name="Milk"),
        )

        response = client.get("/api/ingestion/proposal")

        assert response.status_code == 200
        body = response.json()
        assert body["list_id"] == "l1"
        assert body["existing_item"]["store"] == "SuperMart"
        assert body["candidate_item"]["store"] == ""

    def test_resolve(self, client, mock_engine):
        response = client.post("/api/ingestion/proposal/resolve", json={"accept": True})

        assert response.status_code == 200
        assert response.json() == {"outcome": "merged"}
        mock_engine.resolve_proposal.assert_awaited_once_with(True, keep_separate=False)

    def test_resolve_without_proposal_conflicts(self, client, mock_engine):
        mock_engine.resolve_proposal.side_effect = NoOpenProposalError()

        response = client.post("/api/ingestion/proposal/resolve",
                               json={"accept": False, "keep_separate": True})

        assert response.status_code == 409
        assert response.json()["detail"]["error"]["code"] == "CONFLICT"


def test_health(client):
    response = client.get("/api/health")

    assert response.status_code == 200
    assert response.json()["app"] == "SmartList"
    assert "websocket" in response.json()


def test_engine_missing_is_unavailable():
    app.dependency_overrides.clear()
    app.state.engine = None

    response = TestClient(app).get("/api/ingestion/status")

    assert response.status_code == 503


def test_resolve_rejects_accept_with_keep_separate(client, mock_engine):
    response = client.post("/api/ingestion/proposal/resolve",
                           json={"accept": True, "keep_separate": True})

    assert response.status_code == 400
    assert response.json()["detail"]["error"]["code"] == "INVALID_INPUT"
    mock_engine.resolve_proposal.assert_not_called()


def test_storage_failure_on_list_is_internal_error(client, repository):
    repository.find_by_user = AsyncMock(side_effect=ConnectionError("pool closed"))

    response = client.get("/api/shopping-lists", params={"user_id": "u1"})

    assert response.status_code == 500
    body = response.json()["detail"]["error"]
    assert body["code"] == "INTERNAL_SERVER_ERROR"
    assert "pool closed" not in body["message"]


def test_storage_failure_on_create_is_internal_error(client, repository):
    repository.create = AsyncMock(side_effect=ConnectionError("pool closed"))

    response = client.post("/api/shopping-lists", json={"name": "Weekly", "owner_id": "u1"})

    assert response.status_code == 500
