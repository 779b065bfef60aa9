"""Telegram bot integration for Argus.

Every text message sent to the bot is ingested like any other chat
message. Commands expose the stored memory: listing events, checking a
URL, confirming proposed changes and asking questions.
"""

from __future__ import annotations

import logging
import os
import time

from groq import AsyncGroq
from telegram import Update
from telegram.constants import ChatType, ParseMode
from telegram.ext import (
    Application,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from ..config import ArgusConfig, config_from_env
from ..context.compressor import format_event_time
from ..context.matcher import ContextCheckResult, ContextMatcher
from ..ingest.actions import confirm_pending_action
from ..ingest.pipeline import InboundMessage, IngestionPipeline, IngestionResult
from ..llm import ArgusLLM
from ..logging import get_logger
from ..memory import Event, EventStore, PendingAction

logger = logging.getLogger(__name__)

WELCOME_MESSAGE = """
👁 *Argus*

I remember plans, deadlines and recommendations from your messages.

*Commands:*
/start - Show this message
/events [pending|completed|expired|all] - List stored events
/context <url> - Find events relevant to a page
/confirm - Apply the last proposed change
/discard - Drop the last proposed change
/ask <question> - Ask about your events

Just write to me and I'll keep track of what matters.
"""

MAX_MESSAGE_LENGTH = 4096
EVENTS_PAGE_SIZE = 10
MAX_ASK_HISTORY = 40


def truncate_message(text: str, max_length: int = MAX_MESSAGE_LENGTH) -> str:
    """Truncate message to fit Telegram limits."""
    if len(text) <= max_length:
        return text
    return text[: max_length - 20] + "\n... [truncated]"


def format_event(event: Event, now: int | None = None) -> str:
    """One display line for an event."""
    line = f"#{event.id} {event.title}"
    if event.event_time:
        line += f" · {format_event_time(event.event_time, now)}"
    if event.location:
        line += f" · 📍 {event.location}"
    current = int(time.time()) if now is None else now
    return f"{line} [{event.display_status(current)}]"


def format_ingestion_reply(result: IngestionResult, now: int | None = None) -> str | None:
    """Reply text for a processed message, or None when nothing happened."""
    if result.error:
        return f"❌ Error: {result.error}"
    if result.pending_action:
        pending = result.pending_action
        return (
            f'📝 Proposed change to "{pending.target_event_title}": {pending.description}\n'
            "Send /confirm to apply it or /discard to drop it."
        )
    if result.action_performed:
        return f"✅ {result.action_performed.message}"
    if not result.events:
        return None

    lines = []
    for processed in result.events:
        icon = "📌" if processed.outcome == "created" else "✏️"
        lines.append(f"{icon} {format_event(processed.event, now)}")
        for conflict in processed.conflicts:
            lines.append(f"   ⚠️ Conflicts with #{conflict.id} {conflict.title}")
    return truncate_message("\n".join(lines))


def format_event_list(events: list[Event], now: int | None = None) -> str:
    if not events:
        return "No events found."
    return truncate_message("\n".join(format_event(e, now) for e in events))


def format_context_result(result: ContextCheckResult, now: int | None = None) -> str:
    if not result.matched:
        keywords = ", ".join(result.keywords) or "none"
        return f"Nothing relevant here (keywords: {keywords})."
    lines = [f"🔔 {len(result.events)} relevant event(s) ({result.confidence:.0%} sure):"]
    lines.extend(format_event(e, now) for e in result.events)
    return truncate_message("\n".join(lines))


class TelegramBot:
    """Telegram bot for Argus."""

    def __init__(
        self,
        token: str | None = None,
        config: ArgusConfig | None = None,
        llm: ArgusLLM | None = None,
        store: EventStore | None = None,
    ) -> None:
        self.token = token or os.getenv("TELEGRAM_TOKEN")
        if not self.token:
            raise ValueError("TELEGRAM_TOKEN not set")

        self.config = config or config_from_env()
        self.json_logger = get_logger()

        if store is None:
            assert self.config.db_path is not None
            store = EventStore(self.config.db_path)
            store.init_db()
        self.store = store

        if llm is None:
            llm = ArgusLLM(
                AsyncGroq(api_key=os.getenv("GROQ_API_KEY")),
                model=self.config.model,
                max_prompt_events=self.config.max_prompt_events,
                json_logger=self.json_logger,
            )
        self.llm = llm

        self.pipeline = IngestionPipeline(self.store, self.llm, self.config, self.json_logger)
        self.matcher = ContextMatcher(self.store, self.llm, self.json_logger)

        # Last proposal per chat, kept only so /confirm can resubmit it.
        self._pending: dict[str, PendingAction] = {}
        self._ask_history: dict[str, list[dict[str, str]]] = {}
        self._app: Application | None = None

    def _get_chat_id(self, update: Update) -> str:
        """Get chat_id as string from update."""
        assert update.effective_chat is not None
        return str(update.effective_chat.id)

    def to_inbound(self, update: Update) -> InboundMessage:
        """Map a Telegram text message to an InboundMessage."""
        assert update.message is not None
        message = update.message
        chat_id = self._get_chat_id(update)
        user = message.from_user
        return InboundMessage(
            id=f"tg-{chat_id}-{message.message_id}",
            chat_id=chat_id,
            sender=str(user.id) if user else chat_id,
            content=message.text,
            timestamp=int(message.date.timestamp()),
            sender_name=user.full_name if user else None,
            is_group=message.chat.type in (ChatType.GROUP, ChatType.SUPERGROUP),
        )

    async def _handle_start(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        """Handle /start command."""
        assert update.message is not None
        self.json_logger.log("telegram_start", chat_id=self._get_chat_id(update))
        await update.message.reply_text(WELCOME_MESSAGE, parse_mode=ParseMode.MARKDOWN)

    async def _handle_events(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        """Handle /events [status]."""
        assert update.message is not None
        status = context.args[0].lower() if context.args else "pending"
        try:
            events = self.store.list_events(status=status, limit=EVENTS_PAGE_SIZE)
        except ValueError as e:
            await update.message.reply_text(str(e))
            return
        await update.message.reply_text(format_event_list(events))

    async def _handle_context(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        """Handle /context <url>."""
        assert update.message is not None
        if not context.args:
            await update.message.reply_text("Usage: /context <url>")
            return

        url = context.args[0]
        title = " ".join(context.args[1:]) or None
        try:
            result = await self.matcher.match(
                url, title, hot_window_days=self.config.hot_window_days
            )
        except Exception as e:
            logger.exception("Context check failed")
            await update.message.reply_text(f"❌ Error: {e}")
            return
        await update.message.reply_text(format_context_result(result))

    async def _handle_confirm(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        """Handle /confirm: apply the last proposed change."""
        assert update.message is not None
        chat_id = self._get_chat_id(update)
        pending = self._pending.pop(chat_id, None)
        if pending is None:
            await update.message.reply_text("Nothing to confirm.")
            return

        if confirm_pending_action(self.store, pending):
            self.json_logger.log_action(pending.action, pending.target_event_id, chat_id=chat_id)
            await update.message.reply_text(
                f'✅ Updated "{pending.target_event_title}": {pending.description}'
            )
        else:
            await update.message.reply_text(
                f'Could not update "{pending.target_event_title}".'
            )

    async def _handle_discard(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        """Handle /discard: drop the last proposed change."""
        assert update.message is not None
        if self._pending.pop(self._get_chat_id(update), None) is None:
            await update.message.reply_text("Nothing to discard.")
        else:
            await update.message.reply_text("Discarded.")

    async def _handle_ask(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        """Handle /ask <question>."""
        assert update.message is not None
        if not context.args:
            await update.message.reply_text("Usage: /ask <question>")
            return

        chat_id = self._get_chat_id(update)
        question = " ".join(context.args)
        history = self._ask_history.setdefault(chat_id, [])
        await update.message.chat.send_action("typing")

        try:
            events = self.store.get_active_events(self.config.max_prompt_events)
            answer = await self.llm.answer(
                question, history, events, recent_turns=self.config.recent_turns
            )
        except Exception as e:
            logger.exception("Error answering question")
            self.json_logger.log("telegram_error", chat_id=chat_id, error=str(e))
            await update.message.reply_text(f"❌ Error: {e}")
            return

        history.append({"role": "user", "content": question})
        history.append({"role": "assistant", "content": answer})
        del history[:-MAX_ASK_HISTORY]
        await update.message.reply_text(truncate_message(answer))

    async def _handle_message(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        """Handle incoming text messages."""
        assert update.message is not None
        chat_id = self._get_chat_id(update)

        result = await self.pipeline.process(self.to_inbound(update))
        if result.pending_action:
            self._pending[chat_id] = result.pending_action

        reply = format_ingestion_reply(result)
        if reply:
            await update.message.reply_text(reply)

    def build_app(self) -> Application:
        """Build the Telegram application."""
        self._app = Application.builder().token(self.token).build()

        self._app.add_handler(CommandHandler("start", self._handle_start))
        self._app.add_handler(CommandHandler("events", self._handle_events))
        self._app.add_handler(CommandHandler("context", self._handle_context))
        self._app.add_handler(CommandHandler("confirm", self._handle_confirm))
        self._app.add_handler(CommandHandler("discard", self._handle_discard))
        self._app.add_handler(CommandHandler("ask", self._handle_ask))
        self._app.add_handler(
            MessageHandler(filters.TEXT & ~filters.COMMAND, self._handle_message)
        )

        return self._app

    def run(self) -> None:
        """Run the bot (blocking)."""
        app = self.build_app()

        logger.info("Starting Telegram bot...")
        try:
            app.run_polling()
        finally:
            self.store.close()
