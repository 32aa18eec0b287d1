"""Message normalization for command dispatch.

Turns raw chat text into a command key and argument text:

- strips a leading mention of the bot (``<@BOT>`` or ``@bot``)
- trims whitespace
- splits the first token (command) from the remainder (arguments)
"""

from __future__ import annotations

import re
from dataclasses import dataclass

# Channel id prefixes for public and direct conversations
PUBLIC_CHANNEL_PREFIX = "C"
DIRECT_CHANNEL_PREFIX = "D"
ROUTABLE_CHANNEL_PREFIXES = (PUBLIC_CHANNEL_PREFIX, DIRECT_CHANNEL_PREFIX)

# Single separator allowed after a mention ("@bot: start", "@bot, start")
MENTION_SEPARATOR_PATTERN = re.compile(r"^[:,]?\s?")
WHITESPACE_PATTERN = re.compile(r"\s+")


@dataclass(frozen=True)
class InboundMessage:
    """A chat message as delivered by the transport.

    Attributes:
        text: Raw message text.
        user: Sender user ID.
        channel: Channel ID the message arrived on.
    """

    text: str
    user: str
    channel: str


@dataclass(frozen=True)
class ParsedCommand:
    """Result of normalizing a message.

    Attributes:
        command_key: Lower-cased first token (empty for empty text).
        argument_text: Everything after the first whitespace run.
    """

    command_key: str
    argument_text: str


def is_routable_channel(channel: str) -> bool:
    """Check whether messages on a channel should be dispatched.

    Args:
        channel: Channel ID.

    Returns:
        True for public and direct-message channels.
    """
    return bool(channel) and channel.startswith(ROUTABLE_CHANNEL_PREFIXES)


def _mention_tokens(bot_id: str) -> tuple[str, ...]:
    return (f"<@{bot_id}>".lower(), f"@{bot_id}".lower())


def strip_mention(text: str, bot_id: str | None) -> str:
    """Remove a leading bot mention and one following separator.

    Args:
        text: Message text.
        bot_id: Bot identifier; when None the text is returned trimmed.

    Returns:
        Trimmed text without the mention.
    """
    text = text.strip()
    if not bot_id:
        return text

    lowered = text.lower()
    for token in _mention_tokens(bot_id):
        if not lowered.startswith(token):
            continue
        rest = text[len(token) :]
        # "@botname" must not match "@botnamextra"
        if rest and not (rest[0].isspace() or rest[0] in ":,"):
            continue
        rest = MENTION_SEPARATOR_PATTERN.sub("", rest, count=1)
        return rest.strip()
    return text


def _clean_command_key(token: str, bot_id: str | None) -> str:
    key = token.lower()
    if key.startswith("/"):
        key = key[1:]
    if bot_id:
        suffix = f"@{bot_id}".lower()
        if key.endswith(suffix):
            key = key[: -len(suffix)]
    return key


def parse_command(text: str, bot_id: str | None = None) -> ParsedCommand:
    """Split message text into command key and argument text.

    Args:
        text: Raw message text.
        bot_id: Bot identifier used for mention stripping.

    Returns:
        ParsedCommand with a lower-cased command key.

    Examples:
        "start design review" -> ("start", "design review")
        "<@BOT> end" -> ("end", "")
        "/break@workday_bot lunch" -> ("break", "lunch")
    """
    normalized = strip_mention(text, bot_id)
    if not normalized:
        return ParsedCommand(command_key="", argument_text="")

    parts = WHITESPACE_PATTERN.split(normalized, maxsplit=1)
    command_key = _clean_command_key(parts[0], bot_id)
    argument_text = parts[1] if len(parts) > 1 else ""
    return ParsedCommand(command_key=command_key, argument_text=argument_text)
