"""Telegram command and message handlers."""

from __future__ import annotations

import logging
from functools import partial
from typing import Awaitable, Callable, Optional

from telegram import Update
from telegram.constants import ChatAction, ParseMode
from telegram.error import NetworkError, RetryAfter, TimedOut
from telegram.ext import (
    Application,
    ApplicationHandlerStop,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    TypeHandler,
    filters,
)

from .files import Attachment, download_file, is_supported
from .service import ChatService
from .sink import TelegramMessageSink

logger = logging.getLogger(__name__)

ACCESS_DENIED = "Sorry, you do not have access to this bot."


class BotHandlers:
    """Routes Telegram updates to the :class:`ChatService`."""

    def __init__(self, service: ChatService) -> None:
        self.service = service
        self.config = service.config
        self.store = service.store

    def register(self, app: Application) -> None:
        # Edits of earlier messages are ignored.
        new = filters.UpdateType.MESSAGE
        app.add_handler(TypeHandler(Update, self.guard), group=-1)
        app.add_handler(CommandHandler("start", self.cmd_start, filters=new))
        app.add_handler(CommandHandler("help", self.cmd_help, filters=new))
        app.add_handler(CommandHandler("clear", self.cmd_clear, filters=new))
        for key in self.config.models:
            app.add_handler(CommandHandler(key, partial(self.cmd_model, key), filters=new))
        app.add_handler(MessageHandler(new & filters.COMMAND, self.unknown_command))
        app.add_handler(MessageHandler(new & filters.TEXT & ~filters.COMMAND, self.handle_text))
        app.add_handler(MessageHandler(new & filters.PHOTO, self.handle_photo))
        app.add_handler(MessageHandler(new & filters.Document.ALL, self.handle_document))
        app.add_handler(MessageHandler(new & filters.VOICE, self.handle_voice))
        app.add_error_handler(self.on_error)

    def is_allowed(self, user_id: int) -> bool:
        return user_id in self.config.allowed_user_ids

    async def guard(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """Stop updates from users outside the allow-list before any other handler runs."""
        user = update.effective_user
        if user and self.is_allowed(user.id):
            return

        logger.info(
            "Rejected update from unauthorised user %s (%s)",
            user.id if user else None,
            user.username if user else None,
        )
        if (update.message or update.callback_query) and update.effective_message:
            await update.effective_message.reply_text(ACCESS_DENIED)
        raise ApplicationHandlerStop

    # -- Commands --------------------------------------------------------

    async def cmd_start(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        model_id = self.store.model_id(update.effective_user.id)
        await update.message.reply_text(
            f"Hi! I am your personal assistant (current model: {model_id}).\n"
            "Ask me anything. I can work with text, images, documents and voice messages.\n"
            "Use /help to list the commands."
        )

    async def cmd_help(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        await update.message.reply_text(self.help_text(update.effective_user.id), parse_mode=ParseMode.MARKDOWN)

    def help_text(self, user_id: int) -> str:
        state = self.store.get(user_id)
        lines = [
            "*Available commands:*",
            "",
            "/clear - Clear the conversation history",
            "/help - Show this message",
            "",
            "*Model selection:*",
        ]
        for key, model_id in self.config.models.items():
            current = " *(current)*" if key == state.model_key else ""
            lines.append(f"/{key} - Switch to {model_id}{current}")
        lines.append("")
        lines.append(f"Current model: *{self.config.resolve_model_id(state.model_key)}*")
        return "\n".join(lines)

    async def cmd_clear(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        self.store.clear_history(update.effective_user.id)
        await update.message.reply_text("Conversation history cleared.")

    async def cmd_model(self, model_key: str, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        user_id = update.effective_user.id
        model_id = self.store.set_model(user_id, model_key)
        if model_id:
            await update.message.reply_text(f"Model switched to: {model_id}")
            return

        self.store.reset_model(user_id)
        attempted = self.config.models.get(model_key, model_key)
        await update.message.reply_text(
            f'Could not switch to model "{attempted}". '
            f"Falling back to {self.config.default_model_id}."
        )

    async def unknown_command(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        await update.message.reply_text("Unknown command. Use /help to list the commands.")

    # -- Messages --------------------------------------------------------

    def _sink(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> TelegramMessageSink:
        return TelegramMessageSink(context.bot, update.effective_chat.id)

    async def handle_text(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        await update.effective_chat.send_action(ChatAction.TYPING)
        await self.service.respond(self._sink(update, context), update.effective_user.id, update.message.text)

    async def handle_photo(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        photo = update.message.photo[-1]
        attachment = Attachment(file_id=photo.file_id, mime_type="image/jpeg", kind="image")
        await self._respond_with_file(update, context, update.message.caption or " ", attachment)

    async def handle_document(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        document = update.message.document
        mime_type = document.mime_type or ""
        file_name = document.file_name or "document"

        if not is_supported(mime_type, self.config.supported_mime_types):
            logger.info("Rejected unsupported document %s (%s)", file_name, mime_type or "unknown")
            await update.message.reply_text(
                f"Sorry, I cannot handle files ({file_name}) of type {mime_type or 'unknown'}. "
                f"Supported types: {', '.join(self.config.supported_mime_types)}"
            )
            return

        prompt = update.message.caption or f'Analyse the contents of the file "{file_name}".'
        attachment = Attachment(file_id=document.file_id, mime_type=mime_type, kind="document", file_name=f'"{file_name}"')
        await self._respond_with_file(update, context, prompt, attachment)

    async def handle_voice(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        voice = update.message.voice
        attachment = Attachment(file_id=voice.file_id, mime_type=voice.mime_type or "audio/ogg", kind="voice message")
        await self._respond_with_file(update, context, " ", attachment)

    async def _respond_with_file(
        self,
        update: Update,
        context: ContextTypes.DEFAULT_TYPE,
        prompt: str,
        attachment: Attachment,
    ) -> None:
        await self.service.respond(
            self._sink(update, context),
            update.effective_user.id,
            prompt,
            attachment=attachment,
            download=partial(download_file, context.bot),
        )

    # -- Errors ----------------------------------------------------------

    async def on_error(self, update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
        err = context.error
        if isinstance(err, RetryAfter):
            logger.warning("Telegram rate limit: retry after %s", err.retry_after)
            return
        if isinstance(err, (TimedOut, NetworkError)):
            logger.warning("Telegram network issue: %s", err)
            return
        logger.error("Unhandled error while processing update %s", update, exc_info=err)


def build_application(
    service: ChatService,
    *,
    webhook: bool = False,
    post_init: Optional[Callable[[Application], Awaitable[None]]] = None,
) -> Application:
    """Create the Telegram application with all handlers registered.

    ``post_init`` runs once the application is initialised, before polling starts.
    """
    if not service.config.bot_token:
        raise ValueError("BOT_TOKEN is required")
    builder = Application.builder().token(service.config.bot_token)
    if webhook:
        builder = builder.updater(None)
    if post_init is not None:
        builder = builder.post_init(post_init)
    app = builder.build()
    BotHandlers(service).register(app)
    return app
