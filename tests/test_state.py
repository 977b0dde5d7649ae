import pytest

from stream_relay.config import DEFAULT_MODEL_KEY, BotConfig, parse_allowed_user_ids
from stream_relay.state import UserStateStore


def test_parse_allowed_user_ids_skips_noise():
    assert parse_allowed_user_ids(" 12, ,34,abc,  56 ") == {12, 34, 56}
    assert parse_allowed_user_ids("") == set()


def test_from_env_reads_overrides():
    config = BotConfig.from_env({
        "BOT_TOKEN": "t",
        "API_KEY": "k",
        "ALLOWED_USER_IDS": "1,2",
        "EDIT_THROTTLE_MS": "2000",
        "MAX_HISTORY_MESSAGES": "10",
        "LLM_ENDPOINT": "http://localhost:8000/v1/chat/completions",
    })

    assert config.bot_token == "t"
    assert config.llm.api_key == "k"
    assert config.allowed_user_ids == {1, 2}
    assert config.render.throttle_interval == 2.0
    assert config.max_history_messages == 10
    assert config.llm.endpoint.startswith("http://localhost:8000")


def test_from_env_rejects_bad_numbers():
    with pytest.raises(ValueError):
        BotConfig.from_env({"EDIT_THROTTLE_MS": "fast"})


def test_unknown_model_key_resolves_to_default():
    config = BotConfig()
    assert config.resolve_model_id("nope") == config.models[DEFAULT_MODEL_KEY]
    assert config.resolve_model_id(None) == config.default_model_id


def test_new_user_gets_default_model():
    store = UserStateStore(BotConfig())
    state = store.get(1)
    assert state.model_key == DEFAULT_MODEL_KEY
    assert state.history == []


def test_set_model_validates_key():
    store = UserStateStore(BotConfig())

    assert store.set_model(1, "/gemini15flash") == "gemini-1.5-flash"
    assert store.get(1).model_key == "gemini15flash"
    assert store.set_model(1, "gpt") is None
    assert store.get(1).model_key == "gemini15flash"


def test_clear_history_keeps_model():
    store = UserStateStore(BotConfig())
    store.set_model(1, "gemini15flash")
    store.add_message(1, "user", "hi")

    store.clear_history(1)

    assert store.get(1).history == []
    assert store.get(1).model_key == "gemini15flash"


def test_history_cap_and_pop_pending():
    store = UserStateStore(BotConfig(max_history_messages=3))
    for i in range(5):
        store.add_message(1, "user" if i % 2 == 0 else "assistant", f"m{i}")

    assert [m["content"] for m in store.get(1).history] == ["m2", "m3", "m4"]

    store.pop_pending_user_message(1)
    assert [m["content"] for m in store.get(1).history] == ["m2", "m3"]
    store.pop_pending_user_message(1)
    assert [m["content"] for m in store.get(1).history] == ["m2", "m3"]


def test_snapshot_unknown_user():
    store = UserStateStore(BotConfig())
    with pytest.raises(ValueError):
        store.snapshot(404)
