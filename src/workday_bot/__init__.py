"""Workday Bot - chat bot tracking work sessions, breaks and workday ends."""

__version__ = "1.0.0"

from workday_bot.config import Settings
from workday_bot.dispatcher import CommandDispatcher
from workday_bot.models import Interval, SessionState, WorkSession
from workday_bot.registry import CommandRegistry
from workday_bot.workday import WorkdayManager

__all__ = [
    "CommandDispatcher",
    "CommandRegistry",
    "Interval",
    "SessionState",
    "Settings",
    "WorkSession",
    "WorkdayManager",
    "__version__",
]
