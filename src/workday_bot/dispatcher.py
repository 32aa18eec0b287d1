"""Command dispatcher.

Routes a normalized message to its registered command and turns failures
into replies:

- user-facing (domain) errors are shown verbatim after a mention of the sender
- anything else is logged and answered with a generic message
"""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum

from workday_bot.exceptions import (
    DomainError,
    OwnerOnlyCommandError,
    UnknownCommandError,
)
from workday_bot.locks import KeyedLocks
from workday_bot.metrics import Metrics
from workday_bot.normalizer import (
    InboundMessage,
    ParsedCommand,
    is_routable_channel,
    parse_command,
)
from workday_bot.registry import CommandRegistry, Invocation

logger = logging.getLogger(__name__)

SendFn = Callable[[str, str], Awaitable[None]]

INTERNAL_ERROR_TEXT = "problems captain!"


def mention(user_id: str) -> str:
    """Mention token for a user."""
    return f"@{user_id}"


class ErrorKind(str, Enum):
    """Whether an error message may be shown to the user."""

    DOMAIN = "domain"
    INTERNAL = "internal"


@dataclass(frozen=True)
class ErrorReply:
    """A translated error ready to send.

    Attributes:
        kind: Domain or internal.
        text: Reply text addressed to the sender.
    """

    kind: ErrorKind
    text: str


@dataclass(frozen=True)
class DispatchResult:
    """Outcome of one dispatched message.

    Attributes:
        command_key: The resolved command key.
        error: The error reply sent, None on success.
    """

    command_key: str
    error: ErrorReply | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def translate_error(error: BaseException, user_id: str) -> ErrorReply:
    """Turn an exception into a reply that leaks nothing internal.

    Args:
        error: The exception raised while handling a command.
        user_id: Sender to address the reply to.

    Returns:
        ErrorReply with the domain message or a generic internal message.
    """
    if isinstance(error, DomainError):
        return ErrorReply(ErrorKind.DOMAIN, f"{mention(user_id)}, {error.message}")
    return ErrorReply(ErrorKind.INTERNAL, f"{mention(user_id)}, {INTERNAL_ERROR_TEXT}")


class CommandDispatcher:
    """Dispatches chat messages to registered commands.

    Messages from the same sender are handled one at a time, so replies
    come back in the order the commands were sent.
    """

    def __init__(
        self,
        registry: CommandRegistry,
        send: SendFn,
        *,
        bot_id: str | None = None,
        owner_id: str | None = None,
        metrics: Metrics | None = None,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            registry: Command table built at startup.
            send: Reply primitive taking (text, channel).
            bot_id: Bot identifier used to strip mentions.
            owner_id: Workspace owner allowed to run owner-only commands.
            metrics: Optional metrics sink.
        """
        self.registry = registry
        self.send = send
        self.bot_id = bot_id
        self.owner_id = owner_id
        self.metrics = metrics
        self._sender_locks = KeyedLocks()

    def is_owner(self, user_id: str) -> bool:
        return self.owner_id is not None and user_id == self.owner_id

    async def handle(self, message: InboundMessage) -> DispatchResult | None:
        """Entry point for inbound messages.

        Returns:
            The dispatch result, or None when the message was dropped.
        """
        if not is_routable_channel(message.channel):
            logger.debug("Ignoring message on channel", extra={"channel": message.channel})
            return None

        parsed = parse_command(message.text, self.bot_id)
        return await self.dispatch(message, parsed)

    async def dispatch(self, message: InboundMessage, parsed: ParsedCommand) -> DispatchResult:
        """Run the command for a parsed message and reply on failure."""
        sender = message.user
        async with self._sender_locks.hold(sender):
            start_time = time.time()
            logger.debug(
                "Dispatching command",
                extra={
                    "command": parsed.command_key,
                    "user_id": sender,
                    "is_owner": self.is_owner(sender),
                },
            )
            try:
                await self._run(message, parsed)
            except Exception as e:
                reply = translate_error(e, sender)
                if reply.kind is ErrorKind.INTERNAL:
                    logger.exception(
                        "Command failed",
                        extra={"command": parsed.command_key, "user_id": sender},
                    )
                else:
                    logger.info(
                        "Command rejected",
                        extra={
                            "command": parsed.command_key,
                            "user_id": sender,
                            "reason": type(e).__name__,
                        },
                    )
                if self.metrics is not None:
                    self.metrics.record_error(internal=reply.kind is ErrorKind.INTERNAL)
                await self._send_error(reply, message.channel)
                return DispatchResult(parsed.command_key, reply)
            finally:
                if self.metrics is not None:
                    self.metrics.record_latency(time.time() - start_time)

        return DispatchResult(parsed.command_key)

    async def _run(self, message: InboundMessage, parsed: ParsedCommand) -> None:
        command = self.registry.lookup(parsed.command_key) if parsed.command_key else None
        if self.metrics is not None:
            self.metrics.record_command(command.name if command else None, message.user)

        if command is None:
            raise UnknownCommandError(parsed.command_key)

        if command.owner_only and not self.is_owner(message.user):
            raise OwnerOnlyCommandError(command.name, message.user)

        logger.debug(
            "Redirecting message to command",
            extra={"command": command.name, "kind": command.kind.value},
        )
        await command.invoke(Invocation(message=message, argument_text=parsed.argument_text))

    async def _send_error(self, reply: ErrorReply, channel: str) -> None:
        try:
            await self.send(reply.text, channel)
        except Exception:
            logger.exception("Error sending the error message", extra={"channel": channel})
