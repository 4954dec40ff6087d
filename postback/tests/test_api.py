"""
HTTP contract tests for the postback API.

The postback route answers in plain text: 400 for bad input, 200 once the
conversion is written, 500 on unexpected failure.
"""

import pytest
from decimal import Decimal
from fastapi.testclient import TestClient

from postback.api import create_app
from postback.config import Settings
from postback.service import PostbackService
from postback.store import DocumentStoreError, InMemoryDocumentStore


def seeded_store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore(seed={
        "clicks": {"click-doc-1": {"clickId": "c1", "userId": "u1", "storeId": "s1", "storeName": "Amazon"}},
        "stores": {
            "s1": {
                "name": "Amazon", "cashbackType": "percentage", "cashbackRateValue": 10,
                "cashbackRate": "10%", "affiliateLink": "https://aff.example/amazon?sub={CLICK_ID}",
            },
        },
        "users": {"u1": {"pendingCashback": 0}},
    })


class UnavailableStore(InMemoryDocumentStore):
    def find_one(self, collection, field_name, value):
        raise DocumentStoreError("backend unavailable")


@pytest.fixture
def store():
    return seeded_store()


@pytest.fixture
def client(store):
    service = PostbackService(store, Settings())
    return TestClient(create_app(service=service))


class TestPostbackEndpoint:

    def test_matched_postback(self, client, store):
        response = client.get("/postback", params={"click_id": "c1", "order_id": "o1", "amount": "1000"})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert "transaction created" in response.text
        assert store.get("users", "u1").data["pendingCashback"] == Decimal("100.00")

    def test_unmatched_postback_is_still_success(self, client, store):
        response = client.get("/postback", params={"click_id": "unknown", "order_id": "o1", "amount": "10"})

        assert response.status_code == 200
        assert "transaction skipped" in response.text
        assert len(store.all("conversions")) == 1
        assert store.all("transactions") == []

    @pytest.mark.parametrize("params", [
        {"order_id": "o1", "amount": "10"},
        {"click_id": "c1", "amount": "10"},
        {"click_id": "c1", "order_id": "o1"},
        {"click_id": "c1", "order_id": "o1", "amount": ""},
        {"click_id": "c1", "order_id": "o1", "amount": "abc"},
        {"click_id": "c1", "order_id": "o1", "amount": "-1"},
        {"click_id": "c1", "order_id": "o1", "amount": "0"},
        {"click_id": "c1", "order_id": "o1", "amount": "1e30"},
    ])
    def test_bad_request(self, client, store, params):
        response = client.get("/postback", params=params)

        assert response.status_code == 400
        assert response.headers["content-type"].startswith("text/plain")
        assert store.all("conversions") == []
        assert store.all("transactions") == []

    def test_extra_parameters_are_audited(self, client, store):
        client.get("/postback", params={
            "click_id": "c1", "order_id": "o1", "amount": "1000",
            "merchant_name": "Amazon IN", "sub_id": "xyz", "network": "cuelinks",
        })

        data = store.all("conversions")[0].data["postbackData"]
        assert data["sub_id"] == "xyz"
        assert data["network"] == "cuelinks"
        assert data["merchant_name"] == "Amazon IN"

    def test_store_failure_is_server_error(self):
        service = PostbackService(UnavailableStore(), Settings())
        client = TestClient(create_app(service=service))

        response = client.get("/postback", params={"click_id": "c1", "order_id": "o1", "amount": "10"})

        assert response.status_code == 500
        assert response.headers["content-type"].startswith("text/plain")

    def test_duplicate_with_dedupe_enabled(self, store):
        service = PostbackService(store, Settings(dedupe_postbacks=True))
        client = TestClient(create_app(service=service))
        params = {"click_id": "c1", "order_id": "o1", "amount": "1000"}

        client.get("/postback", params=params)
        response = client.get("/postback", params=params)

        assert response.status_code == 200
        assert "Duplicate" in response.text
        assert store.get("users", "u1").data["pendingCashback"] == Decimal("100.00")


class TestClickEndpoint:

    def test_track_click_generates_link(self, client, store):
        response = client.post("/clicks", json={"user_id": "u2", "store_id": "s1", "coupon_id": "SAVE10"})

        assert response.status_code == 201
        body = response.json()
        assert body["clickId"]
        assert body["storeName"] == "Amazon"
        assert body["affiliateLink"] == f"https://aff.example/amazon?sub={body['clickId']}"
        assert store.find_one("clicks", "clickId", body["clickId"]) is not None

    def test_tracked_click_correlates_postback(self, client, store):
        store.create("users", {"pendingCashback": 0}, document_id="u2")
        click_id = client.post("/clicks", json={"user_id": "u2", "store_id": "s1"}).json()["clickId"]

        client.get("/postback", params={"click_id": click_id, "order_id": "o9", "amount": "500"})

        assert store.get("users", "u2").data["pendingCashback"] == Decimal("50.00")

    def test_unknown_store(self, client):
        response = client.post("/clicks", json={"user_id": "u2", "store_id": "nope"})
        assert response.status_code == 404

    def test_duplicate_click_id(self, client):
        payload = {"user_id": "u2", "store_id": "s1", "click_id": "fixed-token"}
        assert client.post("/clicks", json=payload).status_code == 201
        assert client.post("/clicks", json=payload).status_code == 409

    def test_missing_user(self, client):
        response = client.post("/clicks", json={"store_id": "s1"})
        assert response.status_code == 422


class TestBalanceEndpoint:

    def test_balance(self, client):
        client.get("/postback", params={"click_id": "c1", "order_id": "o1", "amount": "1000"})

        response = client.get("/users/u1/balance")

        assert response.status_code == 200
        assert Decimal(str(response.json()["pending_cashback"])) == Decimal("100.00")

    def test_health(self, client):
        assert client.get("/health").json()["status"] == "healthy"


class TestAppFactory:

    def test_import_builds_no_application(self):
        """Apps are only built by create_app, each around its own service."""
        import postback.api as api_module

        assert not hasattr(api_module, "app")

    def test_apps_do_not_share_services(self):
        first = create_app(service=PostbackService(seeded_store(), Settings()))
        second = create_app(service=PostbackService(InMemoryDocumentStore(), Settings()))

        assert first.state.postback_service is not second.state.postback_service
        assert TestClient(second).get("/users/u1/balance").json()["user_id"] == "u1"
