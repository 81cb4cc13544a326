"""Tests for the chat API blueprint."""

from unittest.mock import Mock, patch

import pytest

from app import app as flask_app, limiter
from models.model_config import ModelDescriptor
from services.chat_service import ChatService
from utils.errors import ChatWidgetError, MissingCredential, NotAShopifyStore, StoreUnreachable


@pytest.fixture
def store_service():
    service = Mock()
    service.connect.return_value = {
        "url": "https://store.example.com",
        "name": "Store",
        "description": "Shopify store: Store",
        "products": [],
    }
    return service


@pytest.fixture
def chat_service(client, make_dispatcher, two_models, store_service):
    return ChatService(client=client, dispatcher=make_dispatcher(two_models), store_service=store_service)


@pytest.fixture
def api(chat_service):
    """Flask test client wired to a ChatService over mocks."""
    flask_app.config["TESTING"] = True
    limiter.enabled = False
    with patch("routes.chat.get_chat_service", return_value=chat_service):
        with flask_app.test_client() as test_client:
            yield test_client
    limiter.enabled = True


class TestActions:
    """Test action requests."""

    def test_set_store(self, api):
        response = api.post("/api/chat", json={"action": "setStore", "storeUrl": "https://store.example.com"})

        assert response.status_code == 200
        body = response.get_json()
        assert body["success"] is True
        assert body["storeInfo"]["name"] == "Store"
        assert body["currentModel"] == "A"
        assert "Store connected successfully" in body["message"]

    def test_set_store_bare_domain_gets_https(self, api, store_service):
        """Test a store URL without a scheme connects over https."""
        response = api.post("/api/chat", json={"action": "setStore", "storeUrl": "  store.example.com  "})

        assert response.status_code == 200
        store_service.connect.assert_called_once_with("https://store.example.com")

    def test_set_store_keeps_http_scheme(self, api, store_service):
        api.post("/api/chat", json={"action": "setStore", "storeUrl": "http://store.example.com"})

        store_service.connect.assert_called_once_with("http://store.example.com")

    @pytest.mark.parametrize("store_url", ["http://", "my store.com", "   "])
    def test_set_store_malformed_url(self, api, store_service, store_url):
        response = api.post("/api/chat", json={"action": "setStore", "storeUrl": store_url})

        assert response.status_code == 400
        assert response.get_json()["error"] == "Invalid store URL format"
        store_service.connect.assert_not_called()

    def test_set_store_not_shopify(self, api, store_service):
        store_service.connect.side_effect = NotAShopifyStore("https://example.com")

        response = api.post("/api/chat", json={"action": "setStore", "storeUrl": "https://example.com"})

        assert response.status_code == 400
        body = response.get_json()
        assert body["error_code"] == "NOT_A_SHOPIFY_STORE"
        assert "not a Shopify store" in body["error"]

    def test_set_store_unreachable(self, api, store_service):
        store_service.connect.side_effect = StoreUnreachable(store_url="https://down.example.com")

        response = api.post("/api/chat", json={"action": "setStore", "storeUrl": "https://down.example.com"})

        assert response.status_code == 400
        assert response.get_json()["error_code"] == "STORE_UNREACHABLE"

    def test_list_models(self, api, client):
        client.list_models.return_value = [{"id": "A"}]

        body = api.post("/api/chat", json={"action": "listModels"}).get_json()

        assert body["models"] == [{"id": "A"}]
        assert body["currentModel"] == "A"

    def test_verify_token(self, api, client):
        client.list_models.return_value = [{"id": "B"}]

        body = api.post("/api/chat", json={"action": "verifyToken"}).get_json()

        assert body["success"] is True
        assert body["available"] == ["B"]
        assert body["unavailable"] == ["A"]
        assert "Token Access Verification" in body["summary"]

    def test_get_usage_status(self, api):
        body = api.post("/api/chat", json={"action": "getUsageStatus"}).get_json()

        assert body["success"] is True
        assert "Model Usage Status" in body["usageStatus"]
        assert body["usage"]["total_available"] == 4


class TestChatTurns:
    """Test conversation requests."""

    def test_reply_with_product_block(self, api, client):
        client.complete.return_value = (
            '{"products": [{"name": "Wool Socks", "url": "https://store.example.com/products/wool"}]}\n'
            "These are cozy!"
        )

        response = api.post("/api/chat", json={"messages": [{"role": "user", "content": "socks?"}]})

        assert response.status_code == 200
        body = response.get_json()
        assert body["message"].startswith('{"products"')
        assert body["text"] == "These are cozy!"
        assert body["products"][0]["name"] == "Wool Socks"
        assert body["currentModel"] == "A"
        assert "timestamp" in body

    def test_plain_reply(self, api):
        body = api.post("/api/chat", json={"messages": [{"role": "user", "content": "hi"}]}).get_json()

        assert body["message"] == "Hello from the model"
        assert body["products"] == []
        assert body["storeInfo"] is None

    def test_invalid_turn(self, api, client):
        response = api.post("/api/chat", json={"messages": [{"role": "robot", "content": "hi"}]})

        assert response.status_code == 400
        client.complete.assert_not_called()

    def test_all_models_exhausted(self, api, client, rate_limit_error):
        client.complete.side_effect = rate_limit_error()

        response = api.post("/api/chat", json={"messages": [{"role": "user", "content": "hi"}]})

        assert response.status_code == 429
        body = response.get_json()
        assert body["error_code"] == "ALL_MODELS_EXHAUSTED"
        assert "Model Usage Status" in body["details"]["usage_status"]
        assert body["details"]["usage_status"].count("Blocked: Rate limit exceeded") == 2

    def test_upstream_failure(self, api, client):
        client.complete.side_effect = RuntimeError("502 Bad Gateway")

        response = api.post("/api/chat", json={"messages": [{"role": "user", "content": "hi"}]})

        assert response.status_code == 502
        body = response.get_json()
        assert body["error_code"] == "UPSTREAM_REQUEST_FAILED"
        assert body["details"]["model"] == "A"

    def test_invalid_request_format(self, api):
        response = api.post("/api/chat", json={"hello": "world"})

        assert response.status_code == 400
        assert response.get_json()["error"] == "Invalid request format"


class TestServiceErrors:
    def test_missing_credential(self):
        """Test a missing token is reported with remediation text."""
        limiter.enabled = False
        with patch("routes.chat.get_chat_service", side_effect=MissingCredential()):
            response = flask_app.test_client().post("/api/chat", json={"messages": []})
        limiter.enabled = True

        assert response.status_code == 500
        body = response.get_json()
        assert body["error_code"] == "MISSING_CREDENTIAL"
        assert "GITHUB_TOKEN" in body["error"]
        assert "solution" in body["details"]

    def test_usage_endpoint_missing_credential(self):
        """Test widget errors from any view share the app-level error rendering."""
        limiter.enabled = False
        with patch("routes.chat.get_chat_service", side_effect=MissingCredential()):
            response = flask_app.test_client().get("/api/usage")
        limiter.enabled = True

        assert response.status_code == 500
        body = response.get_json()
        assert body["success"] is False
        assert body["error_code"] == "MISSING_CREDENTIAL"

    def test_widget_error_handler_registered(self):
        assert ChatWidgetError in flask_app.error_handler_spec[None][None]


class TestUsageAndHealth:
    def test_usage_endpoint(self, api):
        body = api.get("/api/usage").get_json()

        assert body["success"] is True
        assert [m["model"] for m in body["usage"]["models"]] == ["A", "B"]

    def test_health(self, api):
        body = api.get("/").get_json()
        assert body["status"] == "healthy"
        assert body["endpoints"]["chat"] == "/api/chat"

    def test_chat_health(self, api):
        assert api.get("/api/health").get_json()["service"] == "chat"
