"""Telegram transport using aiogram 3.x.

This module connects the command dispatcher to Telegram:
- Maps Telegram chats to channel ids (private -> "D", groups -> "C")
- Middleware dropping messages from any other kind of chat
- Forwards text messages to the command dispatcher
- Sends replies with retry logic for Telegram API errors
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from aiogram import Bot, Dispatcher, F, types
from aiogram.enums import ChatType
from aiogram.exceptions import (
    TelegramBadRequest,
    TelegramNetworkError,
    TelegramRetryAfter,
)
from aiogram.types import BotCommand, TelegramObject

from workday_bot.commands import WorkdayCommands
from workday_bot.config import Settings
from workday_bot.dispatcher import CommandDispatcher
from workday_bot.metrics import Metrics, metrics
from workday_bot.normalizer import (
    DIRECT_CHANNEL_PREFIX,
    PUBLIC_CHANNEL_PREFIX,
    InboundMessage,
    is_routable_channel,
)
from workday_bot.registry import CommandRegistry, load_command_modules
from workday_bot.store import JsonFileSessionStore, SessionStore
from workday_bot.workday import WorkdayManager

logger = logging.getLogger(__name__)

# Prefix for chats that are neither private nor groups (dropped)
OTHER_CHANNEL_PREFIX = "X"


def channel_id_for_chat(chat: types.Chat) -> str:
    """Map a Telegram chat to a channel id.

    Args:
        chat: The Telegram chat.

    Returns:
        "D<id>" for private chats, "C<id>" for groups, "X<id>" otherwise.
    """
    if chat.type == ChatType.PRIVATE:
        prefix = DIRECT_CHANNEL_PREFIX
    elif chat.type in (ChatType.GROUP, ChatType.SUPERGROUP):
        prefix = PUBLIC_CHANNEL_PREFIX
    else:
        prefix = OTHER_CHANNEL_PREFIX
    return f"{prefix}{chat.id}"


def chat_id_for_channel(channel: str) -> int:
    """Inverse of channel_id_for_chat.

    Raises:
        ValueError: If the channel id does not carry a chat id.
    """
    return int(channel[1:])


def to_inbound(message: types.Message) -> InboundMessage | None:
    """Convert an aiogram message, None when it has no text or sender."""
    if message.text is None or message.from_user is None:
        return None
    return InboundMessage(
        text=message.text,
        user=str(message.from_user.id),
        channel=channel_id_for_chat(message.chat),
    )


async def send_with_retry(
    send_func: Callable[[], Awaitable[types.Message | bool | None]],
    max_retries: int = 3,
    base_delay: float = 1.0,
) -> types.Message | bool | None:
    """Execute a send function with retry logic for Telegram API errors.

    Handles:
    - TelegramRetryAfter: Wait specified time and retry
    - TelegramNetworkError: Exponential backoff retry
    - TelegramBadRequest: Log and return None (don't retry)

    Args:
        send_func: Async function that sends the message.
        max_retries: Maximum number of retry attempts.
        base_delay: Base delay for exponential backoff.

    Returns:
        Result of send_func or None if all retries failed.
    """
    last_error: Exception | None = None

    for attempt in range(max_retries + 1):
        try:
            return await send_func()
        except TelegramRetryAfter as e:
            # Telegram asks us to wait
            wait_time = e.retry_after
            logger.warning(
                "Rate limited by Telegram, waiting",
                extra={"retry_after": wait_time, "attempt": attempt},
            )
            await asyncio.sleep(wait_time)
            last_error = e
        except TelegramNetworkError as e:
            # Network error, use exponential backoff
            if attempt < max_retries:
                delay = base_delay * (2**attempt)
                logger.warning(
                    "Network error, retrying",
                    extra={"error": str(e), "delay": delay, "attempt": attempt},
                )
                await asyncio.sleep(delay)
            last_error = e
        except TelegramBadRequest as e:
            logger.error("Telegram bad request", extra={"error": str(e)})
            return None

    if last_error:
        logger.error(
            "All retries failed",
            extra={"max_retries": max_retries, "error": str(last_error)},
        )
    return None


class WorkdayBot:
    """Workday Telegram Bot.

    This class wires the session store, workday manager, command registry
    and dispatcher to an aiogram bot, providing a clean interface for
    starting and stopping it.
    """

    def __init__(
        self,
        settings: Settings,
        store: SessionStore | None = None,
        bot_metrics: Metrics | None = None,
    ) -> None:
        """Initialize the bot.

        Args:
            settings: Application settings.
            store: Session store, a JSON file store at settings.sessions_file by default.
            bot_metrics: Metrics sink, the global instance by default.

        Raises:
            RegistrationError: If a command is registered twice or a module is invalid.
            ConfigurationError: If a configured command module cannot be imported.
        """
        self.settings = settings
        self.bot = Bot(token=settings.telegram_bot_token.get_secret_value())
        self.dp = Dispatcher()
        self.metrics = bot_metrics or metrics

        self.store = store or JsonFileSessionStore(settings.sessions_file)
        self.manager = WorkdayManager(self.store)

        self.registry = CommandRegistry()
        WorkdayCommands(
            self.manager,
            self.send,
            metrics=self.metrics,
            owner_id=settings.owner_user_id,
        ).register(self.registry)
        load_command_modules(self.registry, settings.command_modules)

        self.commands = CommandDispatcher(
            self.registry,
            self.send,
            bot_id=settings.bot_username,
            owner_id=settings.owner_user_id,
            metrics=self.metrics,
        )

        # Register middleware
        self._setup_middleware()

        # Register handlers
        self._setup_handlers()

        self.dp.startup.register(self._on_startup)
        self.dp.shutdown.register(self._on_shutdown)

    def _setup_middleware(self) -> None:
        """Set up message middleware for channel filtering."""

        @self.dp.message.middleware()  # type: ignore[misc,call-arg,arg-type]
        async def channel_middleware(
            handler: Callable[[TelegramObject, dict[str, Any]], Awaitable[Any]],
            event: TelegramObject,
            data: dict[str, Any],
        ) -> Any:
            """Middleware to drop messages outside public and direct chats."""
            if not isinstance(event, types.Message):
                return await handler(event, data)

            channel = channel_id_for_chat(event.chat)
            if not is_routable_channel(channel):
                logger.debug("Dropping message", extra={"channel": channel})
                return None  # Silently ignore

            return await handler(event, data)

    def _setup_handlers(self) -> None:
        """Set up the text message handler."""

        @self.dp.message(F.text)
        async def handle_message(message: types.Message) -> Any:
            """Forward text messages to the command dispatcher."""
            inbound = to_inbound(message)
            if inbound is None:
                logger.warning("Message without user info")
                return None
            return await self.commands.handle(inbound)

    async def send(self, text: str, channel: str) -> None:
        """Send a message to a channel."""
        chat_id = chat_id_for_channel(channel)
        await send_with_retry(
            lambda: self.bot.send_message(chat_id, text),
            max_retries=self.settings.telegram_max_retries,
            base_delay=self.settings.telegram_retry_base_delay,
        )

    async def _on_startup(self) -> None:
        """Resolve the bot username and publish the command menu."""
        if self.commands.bot_id is None:
            me = await self.bot.get_me()
            self.commands.bot_id = me.username
            logger.info("Resolved bot username", extra={"username": me.username})

        await self.bot.set_my_commands(
            [
                BotCommand(command=command.name, description=command.description or command.name)
                for command in self.registry.commands()
                if not command.owner_only
            ]
        )
        logger.info("Bot commands registered", extra={"count": len(self.registry)})

    async def _on_shutdown(self) -> None:
        logger.info("Bot shutdown complete")

    async def start(self) -> None:
        """Start the bot polling."""
        logger.info(
            "Starting bot",
            extra={
                "app_name": self.settings.app_name,
                "app_version": self.settings.app_version,
            },
        )
        await self.dp.start_polling(self.bot)

    async def stop(self) -> None:
        """Stop the bot gracefully."""
        logger.info("Stopping bot")
        await self.bot.session.close()
