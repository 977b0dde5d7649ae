import asyncio

import pytest

import server
from stream_relay.supervisor import EXIT_GIVE_UP, EXIT_RESTART


class FailingApplication:
    """Stands in for the PTB application; polling always blows up."""

    def __init__(self, post_init=None, *, initialised=False):
        self.post_init = post_init
        self.initialised = initialised

    def run_polling(self, **kwargs):
        if self.initialised and self.post_init is not None:
            asyncio.run(self.post_init(self))
        raise RuntimeError("getMe failed")


@pytest.fixture
def bot_env(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("BOT_TOKEN", "123:abc")
    monkeypatch.setattr(server, "load_dotenv", lambda: None)
    monkeypatch.setattr(server, "setup_logging", lambda *args, **kwargs: None)
    return tmp_path


def start_repeatedly(times):
    codes = []
    for _ in range(times):
        with pytest.raises(SystemExit) as exc_info:
            server.main([])
        codes.append(exc_info.value.code)
    return codes


def test_repeated_startup_failures_stop_the_restart_loop(bot_env, monkeypatch):
    monkeypatch.setattr(
        server,
        "build_application",
        lambda service, webhook=False, post_init=None: FailingApplication(post_init),
    )

    codes = start_repeatedly(5)

    assert codes == [EXIT_RESTART] * 4 + [EXIT_GIVE_UP]


def test_crash_count_resets_once_the_bot_has_started(bot_env, monkeypatch):
    monkeypatch.setattr(
        server,
        "build_application",
        lambda service, webhook=False, post_init=None: FailingApplication(post_init, initialised=True),
    )

    codes = start_repeatedly(6)

    assert codes == [EXIT_RESTART] * 6
