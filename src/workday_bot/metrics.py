"""Metrics for Workday Bot.

Simple in-memory counters suitable for single-instance deployment:
dispatched commands, user-facing and internal errors, latency and uptime.
"""

from __future__ import annotations

import time
from collections import OrderedDict
from dataclasses import dataclass, field


def _create_ordered_dict() -> OrderedDict[str, int]:
    """Factory function for creating OrderedDict with proper typing."""
    return OrderedDict()


@dataclass
class Metrics:
    """Application metrics storage.

    Tracks command counts, errors, latency, and per-user statistics.
    User counters use LRU eviction to prevent unbounded memory growth.
    """

    # Command counters
    total_commands: int = 0
    command_counts: dict[str, int] = field(default_factory=dict)

    # Error counters
    domain_errors: int = 0
    internal_errors: int = 0

    # Per-user counters with LRU eviction
    user_command_counts: OrderedDict[str, int] = field(default_factory=_create_ordered_dict)

    # Maximum number of users to track (LRU eviction when exceeded)
    max_tracked_users: int = 1000

    # Latency tracking (last 100 commands)
    latencies: list[float] = field(default_factory=list)
    max_latency_samples: int = 100

    # Timestamps
    start_time: float = field(default_factory=time.time)
    last_command_time: float | None = None

    @property
    def total_errors(self) -> int:
        return self.domain_errors + self.internal_errors

    def record_command(self, command: str | None, user_id: str) -> None:
        """Record a dispatched command.

        Every dispatched message counts towards the total, so the error
        rate stays within 0-100%. Unknown keys are not tallied per command.

        Args:
            command: The command name (e.g., 'start', 'break'), None if unknown.
            user_id: User who issued it.
        """
        self.total_commands += 1
        if command is not None:
            self.command_counts[command] = self.command_counts.get(command, 0) + 1

        # Update user count with LRU behavior (move to end)
        count = self.user_command_counts.pop(user_id, 0) + 1
        self.user_command_counts[user_id] = count
        while len(self.user_command_counts) > self.max_tracked_users:
            self.user_command_counts.popitem(last=False)

        self.last_command_time = time.time()

    def record_error(self, internal: bool = False) -> None:
        """Record a failed command.

        Args:
            internal: True for internal errors, False for user-facing ones.
        """
        if internal:
            self.internal_errors += 1
        else:
            self.domain_errors += 1

    def record_latency(self, latency: float) -> None:
        """Record command latency.

        Args:
            latency: Latency in seconds.
        """
        self.latencies.append(latency)
        # Keep only last N samples
        if len(self.latencies) > self.max_latency_samples:
            self.latencies = self.latencies[-self.max_latency_samples :]

    def get_uptime(self) -> float:
        """Get application uptime in seconds."""
        return time.time() - self.start_time

    def get_average_latency(self) -> float:
        """Get average command latency.

        Returns:
            Average latency in seconds, or 0.0 if no samples.
        """
        if not self.latencies:
            return 0.0
        return sum(self.latencies) / len(self.latencies)

    def get_error_rate(self) -> float:
        """Get error rate as percentage (0-100)."""
        if self.total_commands == 0:
            return 0.0
        return (self.total_errors / self.total_commands) * 100

    def format_uptime(self) -> str:
        """Format uptime as human-readable string.

        Returns:
            Formatted uptime string (e.g., "1d 2h 30m 15s").
        """
        uptime = int(self.get_uptime())
        days = uptime // 86400
        hours = (uptime % 86400) // 3600
        minutes = (uptime % 3600) // 60
        seconds = uptime % 60

        parts = []
        if days > 0:
            parts.append(f"{days}d")
        if hours > 0:
            parts.append(f"{hours}h")
        if minutes > 0:
            parts.append(f"{minutes}m")
        parts.append(f"{seconds}s")

        return " ".join(parts)

    def reset(self) -> None:
        """Reset all metrics to initial values."""
        self.total_commands = 0
        self.command_counts.clear()
        self.domain_errors = 0
        self.internal_errors = 0
        self.user_command_counts.clear()
        self.latencies.clear()
        self.start_time = time.time()
        self.last_command_time = None


# Global instance
metrics = Metrics()


def format_metrics_message(source: Metrics | None = None) -> str:
    """Format metrics as a chat message.

    Args:
        source: Metrics to render, the global instance by default.

    Returns:
        Plain-text metrics summary.
    """
    m = source or metrics
    lines = [
        "Application Metrics",
        f"Uptime: {m.format_uptime()}",
        "",
        f"Commands: {m.total_commands}",
    ]
    for command, count in sorted(m.command_counts.items()):
        lines.append(f"- {command}: {count}")
    lines += [
        "",
        f"User errors: {m.domain_errors}",
        f"Internal errors: {m.internal_errors}",
        f"Error rate: {m.get_error_rate():.1f}%",
        f"Average latency: {m.get_average_latency() * 1000:.0f}ms",
        f"Active users: {len(m.user_command_counts)}",
    ]
    return "\n".join(lines)
