"""Run the relay bot, either long-polling Telegram or behind a FastAPI webhook."""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Optional

import uvicorn
from dotenv import load_dotenv
from telegram.ext import Application

from stream_relay import BotConfig, ChatService
from stream_relay.api import create_app
from stream_relay.handlers import build_application
from stream_relay.supervisor import CrashTracker
from stream_relay.utils import setup_logging

logger = logging.getLogger(__name__)


# ---------- CLI ----------
def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the Telegram stream relay bot.")
    parser.add_argument("--mode", choices=("polling", "webhook"), default="polling", help="How to receive updates.")
    parser.add_argument("--host", default="0.0.0.0", help="Host interface to bind in webhook mode.")
    parser.add_argument("--port", type=int, default=8010, help="Port to bind in webhook mode.")
    parser.add_argument("--log_dir", default="./logs", help="Directory for application logs.")
    parser.add_argument("--llm_endpoint", help="Chat-completions endpoint (overrides LLM_ENDPOINT).")
    parser.add_argument("--request_timeout", type=int, help="Timeout for LLM calls (seconds).")
    parser.add_argument("--throttle_ms", type=int, help="Minimum milliseconds between message edits.")
    parser.add_argument("--max_history_messages", type=int, help="Max messages kept per user (0 = unlimited).")
    parser.add_argument("--webhook_url", help="Public base URL Telegram should deliver updates to.")
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> BotConfig:
    config = BotConfig.from_env()
    if args.llm_endpoint:
        config.llm.endpoint = args.llm_endpoint
    if args.request_timeout is not None:
        config.llm.request_timeout = args.request_timeout
    if args.throttle_ms is not None:
        config.render.throttle_interval_ms = args.throttle_ms
    if args.max_history_messages is not None:
        config.max_history_messages = args.max_history_messages
    if args.webhook_url:
        config.webhook_url = args.webhook_url
    return config


def run(args: argparse.Namespace, config: BotConfig, tracker: CrashTracker) -> None:
    service = ChatService(config)
    webhook = args.mode == "webhook"

    def started() -> None:
        logger.info("Bot started")
        tracker.reset()

    async def post_init(application: Application) -> None:
        started()

    application = build_application(service, webhook=webhook, post_init=None if webhook else post_init)

    logger.info("Default model: %s (key: %s)", config.default_model_id, config.default_model_key)
    for key, model_id in config.models.items():
        logger.info("  /%s -> %s", key, model_id)
    if config.allowed_user_ids:
        logger.info("Allowed users: %s", ", ".join(str(uid) for uid in sorted(config.allowed_user_ids)))

    if webhook:
        if not config.webhook_url:
            raise ValueError("--webhook_url or WEBHOOK_URL is required in webhook mode")
        app = create_app(service, application=application, on_started=started)
        logger.info("Starting webhook server on %s:%d", args.host, args.port)
        uvicorn.run(app, host=args.host, port=args.port)
    else:
        logger.info("Starting long polling")
        application.run_polling(drop_pending_updates=True)


def main(argv: Optional[list[str]] = None) -> None:
    load_dotenv()
    args = parse_args(argv)
    setup_logging(args.log_dir, logging.INFO)
    config = build_config(args)
    tracker = CrashTracker(config.crash_state_path)

    try:
        run(args, config, tracker)
    except Exception as exc:
        sys.exit(tracker.record_crash(exc, "main"))


if __name__ == "__main__":
    main()
