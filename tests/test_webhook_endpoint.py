import pytest
from fastapi.testclient import TestClient

from arsychat.main import app
from arsychat.routers.telegram_webhook import get_update_router

from conftest import FakeProvider, FakeTelegram, MemoryUserDirectory, make_router


def message_update(text, user_id=42, message_id=10):
    return {
        "update_id": 1,
        "message": {
            "message_id": message_id,
            "date": 1702000000,
            "chat": {"id": user_id, "type": "private"},
            "from": {"id": user_id, "is_bot": False, "first_name": "Alice"},
            "text": text,
        },
    }


@pytest.fixture
def bot():
    telegram = FakeTelegram()
    directory = MemoryUserDirectory()
    provider = FakeProvider(["Hi!"])
    router = make_router(telegram=telegram, directory=directory, provider=provider)
    app.dependency_overrides[get_update_router] = lambda: router
    yield router
    app.dependency_overrides.clear()


@pytest.fixture
def client(bot):
    return TestClient(app)


class TestTelegramWebhook:
    @pytest.mark.parametrize("path", ["/", "/telegram-webhook"])
    def test_message_is_handled(self, client, bot, path):
        response = client.post(path, json=message_update("hello"))

        assert response.status_code == 200
        assert response.json() == {"ok": True, "handled": "verified_no_model"}
        assert bot.telegram.texts_to(42) == ["Hi!"]

    def test_start_registers_user(self, client, bot):
        response = client.post("/", json=message_update("/start"))

        assert response.status_code == 200
        assert response.json()["handled"] == "verified_no_model"
        assert "42" in bot.directory.records

    def test_callback_is_handled(self, client, bot):
        payload = {
            "update_id": 2,
            "callback_query": {
                "id": "cb1",
                "from": {"id": 42, "first_name": "Alice"},
                "message": {"message_id": 7, "date": 1702000000, "chat": {"id": 42, "type": "private"}},
                "data": "Qwen",
            },
        }

        response = client.post("/", json=payload)

        assert response.json()["handled"] == "verified_with_model"
        assert bot.directory.records["42"]["current_model"] == "Qwen"

    def test_malformed_json_still_200(self, client, bot):
        response = client.post("/", content=b"{not json", headers={"Content-Type": "application/json"})

        assert response.status_code == 200
        assert response.json()["handled"] == "ignored"
        assert bot.telegram.calls == []

    def test_non_object_body_ignored(self, client):
        response = client.post("/", json=[1, 2, 3])
        assert response.status_code == 200
        assert response.json()["handled"] == "ignored"

    def test_invalid_update_ignored(self, client):
        response = client.post("/", json={"update_id": 3, "message": {"text": "no chat"}})
        assert response.status_code == 200
        assert response.json()["handled"] == "ignored"

    def test_unsupported_update_type_ignored(self, client, bot):
        response = client.post("/", json={"update_id": 4, "channel_post": {"message_id": 1}})
        assert response.json() == {"ok": True, "handled": "ignored"}
        assert bot.telegram.calls == []


class TestLiveness:
    def test_root_get(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.text == "Bot Active"

    def test_health(self, client):
        response = client.get("/health")
        assert response.json() == {"status": "ok"}
