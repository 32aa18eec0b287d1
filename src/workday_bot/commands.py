"""Built-in chat commands.

Each handler takes ``(argument_text, sender_id, channel)``, drives the
workday manager and sends its own confirmation. Errors propagate to the
dispatcher, which replies with them.
"""

from __future__ import annotations

from datetime import datetime

from workday_bot.dispatcher import SendFn, mention
from workday_bot.exceptions import OwnerOnlyCommandError
from workday_bot.metrics import Metrics, format_metrics_message
from workday_bot.models import SessionState, WorkSession, state_of
from workday_bot.registry import CommandRegistry
from workday_bot.workday import WorkdayManager


def _format_time(value: datetime) -> str:
    return value.strftime("%H:%M")


def _format_duration(seconds: float) -> str:
    minutes = int(seconds // 60)
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


def _with_description(description: str) -> str:
    return f" with {description}" if description else ""


def format_status(user_id: str, session: WorkSession | None, now: datetime) -> str:
    """Describe a user's current workday.

    Args:
        user_id: User the status is about.
        session: The user's last session, if any.
        now: Reference time for open intervals.

    Returns:
        Status text.
    """
    state = state_of(session)
    who = mention(user_id)
    if session is None or state is SessionState.NOT_STARTED:
        return f"{who} has not started a workday."

    worked = sum(
        ((interval.end or now) - interval.begin).total_seconds()
        for interval in session.intervals
        if not interval.is_break
    )
    since = _format_time(session.begin_date)

    if state is SessionState.ENDED and session.ended_at is not None:
        return (
            f"{who}'s last workday ran {since}-{_format_time(session.ended_at)}, "
            f"worked {_format_duration(worked)}."
        )

    current = session.intervals[-1]
    if state is SessionState.ON_BREAK:
        activity = f"on a break since {_format_time(current.begin)}"
    else:
        activity = f"working{_with_description(current.description)} since {_format_time(current.begin)}"
    return f"{who} is {activity}. Workday started at {since}, worked {_format_duration(worked)}."


class WorkdayCommands:
    """Built-in commands for the workday lifecycle."""

    def __init__(
        self,
        manager: WorkdayManager,
        send: SendFn,
        *,
        metrics: Metrics | None = None,
        owner_id: str | None = None,
    ) -> None:
        self.manager = manager
        self.send = send
        self.metrics = metrics
        self.owner_id = owner_id
        self._registry: CommandRegistry | None = None

    def register(self, registry: CommandRegistry) -> None:
        """Register every built-in command on the registry."""
        self._registry = registry
        registry.register("start", self.start, description="Start your workday")
        registry.register("break", self.give_break, description="Take a break")
        registry.register("continue", self.continue_day, description="Get back to work after a break")
        registry.register("end", self.end_day, description="End your workday")
        registry.register("status", self.status, description="Show your workday status")
        registry.register("help", self.help, description="List available commands")
        registry.register(
            "metrics",
            self.show_metrics,
            description="Show bot usage statistics",
            owner_only=True,
        )

    async def start(self, text: str, user_id: str, channel: str) -> None:
        await self.manager.start(user_id, text)
        await self.send(f"{mention(user_id)}'s workday has just started{_with_description(text)}.", channel)

    async def give_break(self, text: str, user_id: str, channel: str) -> None:
        await self.manager.give_break(user_id)
        reason = f" ({text})" if text else ""
        await self.send(f"{mention(user_id)} is giving a break.{reason}", channel)

    async def continue_day(self, text: str, user_id: str, channel: str) -> None:
        await self.manager.continue_day(user_id, text)
        await self.send(f"{mention(user_id)}'s workday continues{_with_description(text)}.", channel)

    async def end_day(self, text: str, user_id: str, channel: str) -> None:
        await self.manager.end_day(user_id)
        await self.send(f"End of the workday for {mention(user_id)}.", channel)

    async def status(self, text: str, user_id: str, channel: str) -> None:
        """Show the sender's status; the owner may ask about someone else."""
        target = text.strip().lstrip("@") or user_id
        if target != user_id and user_id != self.owner_id:
            raise OwnerOnlyCommandError("status", user_id)
        session = await self.manager.get_session(target)
        await self.send(format_status(target, session, self.manager.now()), channel)

    async def help(self, text: str, user_id: str, channel: str) -> None:
        lines = ["Available commands:"]
        for command in self._registry.commands() if self._registry else []:
            if command.owner_only and user_id != self.owner_id:
                continue
            lines.append(f"{command.name} - {command.description}".rstrip(" -"))
        await self.send("\n".join(lines), channel)

    async def show_metrics(self, text: str, user_id: str, channel: str) -> None:
        await self.send(format_metrics_message(self.metrics), channel)
