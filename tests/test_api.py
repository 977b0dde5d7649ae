from fastapi.testclient import TestClient

from stream_relay.api import create_app
from stream_relay.config import BotConfig
from stream_relay.service import ChatService


def test_health():
    client = TestClient(create_app(ChatService(BotConfig())))

    assert client.get("/health").json() == {"status": "ok"}


def test_history_for_unknown_user_is_404():
    client = TestClient(create_app(ChatService(BotConfig())))

    response = client.get("/history/5")

    assert response.status_code == 404


def test_history_returns_conversation():
    service = ChatService(BotConfig())
    service.store.add_message(5, "user", "hi")
    service.store.add_message(5, "assistant", "hello")
    client = TestClient(create_app(service))

    payload = client.get("/history/5").json()

    assert payload["user_id"] == 5
    assert payload["model_id"] == "gemini-2.0-flash"
    assert [m["content"] for m in payload["messages"]] == ["hi", "hello"]


def test_webhook_route_only_exists_with_application():
    client = TestClient(create_app(ChatService(BotConfig())))

    assert client.post("/telegram", json={}).status_code in (404, 405)


class FakeApplication:
    def __init__(self):
        self.events = []
        self.bot = None
        self.update_queue = None

    async def __aenter__(self):
        self.events.append("initialize")
        return self

    async def __aexit__(self, *exc_info):
        self.events.append("shutdown")

    async def start(self):
        self.events.append("start")

    async def stop(self):
        self.events.append("stop")


def test_started_callback_runs_after_application_start():
    application = FakeApplication()

    def started():
        application.events.append("started")

    app = create_app(ChatService(BotConfig()), application=application, on_started=started)
    with TestClient(app) as client:
        assert client.get("/health").status_code == 200
        assert application.events == ["initialize", "start", "started"]

    assert application.events[-2:] == ["stop", "shutdown"]
