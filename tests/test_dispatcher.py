"""Tests for the command dispatcher."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from conftest import DIRECT_CHANNEL, OWNER_ID, PUBLIC_CHANNEL, USER_ID
from workday_bot.dispatcher import (
    INTERNAL_ERROR_TEXT,
    CommandDispatcher,
    ErrorKind,
    mention,
    translate_error,
)
from workday_bot.exceptions import (
    NoOpenSessionError,
    StoreError,
    UnknownCommandError,
)
from workday_bot.metrics import Metrics
from workday_bot.normalizer import InboundMessage, ParsedCommand
from workday_bot.registry import CommandRegistry
from workday_bot.store import InMemorySessionStore


def inbound(text: str, user: str = USER_ID, channel: str = PUBLIC_CHANNEL) -> InboundMessage:
    return InboundMessage(text=text, user=user, channel=channel)


class TestTranslateError:
    """Tests for translate_error function."""

    def test_domain_error_shown_verbatim(self) -> None:
        reply = translate_error(NoOpenSessionError("U1"), "U1")

        assert reply.kind is ErrorKind.DOMAIN
        assert reply.text.startswith("@U1, ")
        assert "no open workday" in reply.text

    def test_internal_error_hidden(self) -> None:
        """Internal error text must never reach the user."""
        reply = translate_error(StoreError(OSError("/var/secret/path")), "U1")

        assert reply.kind is ErrorKind.INTERNAL
        assert reply.text == f"@U1, {INTERNAL_ERROR_TEXT}"
        assert "secret" not in reply.text

    def test_programming_error_hidden(self) -> None:
        reply = translate_error(KeyError("intervals"), "U1")
        assert reply.kind is ErrorKind.INTERNAL
        assert "intervals" not in reply.text

    def test_mention_format(self) -> None:
        assert mention("U42") == "@U42"


class TestHandle:
    """Tests for CommandDispatcher.handle."""

    @pytest.mark.asyncio
    async def test_start_command(
        self,
        dispatcher: CommandDispatcher,
        send: AsyncMock,
        store: InMemorySessionStore,
    ) -> None:
        """Built-in handlers reply on their own."""
        result = await dispatcher.handle(inbound("start design"))

        assert result is not None and result.ok
        assert result.command_key == "start"
        send.assert_awaited_once()
        text, channel = send.await_args.args
        assert "started with design" in text
        assert channel == PUBLIC_CHANNEL
        assert len(store.records) == 1

    @pytest.mark.asyncio
    async def test_mention_prefix(
        self, dispatcher: CommandDispatcher, store: InMemorySessionStore
    ) -> None:
        result = await dispatcher.handle(inbound("@workday_bot start design"))

        assert result is not None and result.ok
        assert len(store.records) == 1

    @pytest.mark.asyncio
    async def test_unknown_command(
        self,
        dispatcher: CommandDispatcher,
        send: AsyncMock,
        store: InMemorySessionStore,
    ) -> None:
        """Unknown commands get a single reply and mutate nothing."""
        result = await dispatcher.handle(inbound("frobnicate now"))

        assert result is not None
        assert result.error is not None
        assert result.error.kind is ErrorKind.DOMAIN
        send.assert_awaited_once_with(
            f"@{USER_ID}, command 'frobnicate' does not exist.", PUBLIC_CHANNEL
        )
        assert store.records == []

    @pytest.mark.asyncio
    async def test_empty_text_is_unknown(
        self, dispatcher: CommandDispatcher, send: AsyncMock
    ) -> None:
        result = await dispatcher.handle(inbound("   "))

        assert result is not None and not result.ok
        send.assert_awaited_once()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("channel", ["G123", "X-100", "W1"])
    async def test_other_channels_dropped(
        self, dispatcher: CommandDispatcher, send: AsyncMock, channel: str
    ) -> None:
        """Messages outside public and direct channels are dropped silently."""
        with pytest.MonkeyPatch.context() as mp:
            dispatch = AsyncMock()
            mp.setattr(dispatcher, "dispatch", dispatch)

            result = await dispatcher.handle(inbound("start design", channel=channel))

        assert result is None
        dispatch.assert_not_awaited()
        send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_direct_channel_routed(
        self, dispatcher: CommandDispatcher, send: AsyncMock
    ) -> None:
        result = await dispatcher.handle(inbound("start", channel=DIRECT_CHANNEL))

        assert result is not None and result.ok
        assert send.await_args.args[1] == DIRECT_CHANNEL

    @pytest.mark.asyncio
    async def test_domain_error_reply(
        self, dispatcher: CommandDispatcher, send: AsyncMock
    ) -> None:
        """Precondition failures are replied with their message."""
        result = await dispatcher.handle(inbound("break"))

        assert result is not None
        assert result.error is not None
        assert result.error.kind is ErrorKind.DOMAIN
        text = send.await_args.args[0]
        assert text.startswith(f"@{USER_ID}, ")
        assert "no open workday" in text

    @pytest.mark.asyncio
    async def test_internal_error_reply(
        self,
        registry: CommandRegistry,
        dispatcher: CommandDispatcher,
        send: AsyncMock,
        fresh_metrics: Metrics,
    ) -> None:
        """Unexpected failures are logged and answered generically."""
        registry.register("explode", AsyncMock(side_effect=RuntimeError("db password is hunter2")))

        result = await dispatcher.handle(inbound("explode"))

        assert result is not None
        assert result.error is not None
        assert result.error.kind is ErrorKind.INTERNAL
        send.assert_awaited_once_with(f"@{USER_ID}, {INTERNAL_ERROR_TEXT}", PUBLIC_CHANNEL)
        assert fresh_metrics.internal_errors == 1

    @pytest.mark.asyncio
    async def test_send_failure_while_reporting_is_contained(
        self, dispatcher: CommandDispatcher, send: AsyncMock
    ) -> None:
        send.side_effect = ConnectionError("transport down")

        result = await dispatcher.handle(inbound("frobnicate"))

        assert result is not None
        assert result.error is not None
        assert result.error.kind is ErrorKind.DOMAIN

    @pytest.mark.asyncio
    async def test_module_receives_argument_text(
        self, registry: CommandRegistry, dispatcher: CommandDispatcher
    ) -> None:
        class DeployModule:
            def __init__(self) -> None:
                self.received: list[tuple[str, str]] = []

            async def dispatch_command(self, message: InboundMessage, user_id: str) -> None:
                self.received.append((message.text, user_id))

        module = DeployModule()
        registry.register_module("deploy", module)

        result = await dispatcher.handle(inbound("deploy staging now"))

        assert result is not None and result.ok
        assert module.received == [("staging now", USER_ID)]

    @pytest.mark.asyncio
    async def test_module_errors_translated(
        self, registry: CommandRegistry, dispatcher: CommandDispatcher, send: AsyncMock
    ) -> None:
        class FailingModule:
            def dispatch_command(self, message: InboundMessage, user_id: str) -> None:
                raise UnknownCommandError("deploy", "nothing to deploy.")

        registry.register_module("deploy", FailingModule())

        await dispatcher.handle(inbound("deploy"))

        send.assert_awaited_once_with(f"@{USER_ID}, nothing to deploy.", PUBLIC_CHANNEL)


class TestOwnerOnly:
    """Tests for owner-only commands."""

    @pytest.mark.asyncio
    async def test_owner_can_run(self, dispatcher: CommandDispatcher, send: AsyncMock) -> None:
        result = await dispatcher.handle(inbound("metrics", user=OWNER_ID))

        assert result is not None and result.ok
        assert "Application Metrics" in send.await_args.args[0]

    @pytest.mark.asyncio
    async def test_others_rejected(self, dispatcher: CommandDispatcher, send: AsyncMock) -> None:
        result = await dispatcher.handle(inbound("metrics"))

        assert result is not None
        assert result.error is not None
        assert "only the workspace owner" in send.await_args.args[0]

    def test_no_owner_configured(self, registry: CommandRegistry, send: AsyncMock) -> None:
        dispatcher = CommandDispatcher(registry, send)
        assert not dispatcher.is_owner(OWNER_ID)


class TestOrdering:
    """Tests for per-sender serialization."""

    @pytest.mark.asyncio
    async def test_replies_keep_input_order(
        self, registry: CommandRegistry, send: AsyncMock
    ) -> None:
        """A slow command must not be overtaken by a later one from the same user."""

        async def slow(text: str, user_id: str, channel: str) -> None:
            await asyncio.sleep(0.01)
            await send("slow done", channel)

        async def fast(text: str, user_id: str, channel: str) -> None:
            await send("fast done", channel)

        registry.register("slow", slow)
        registry.register("fast", fast)
        dispatcher = CommandDispatcher(registry, send)

        await asyncio.gather(
            dispatcher.handle(inbound("slow")),
            dispatcher.handle(inbound("fast")),
        )

        assert [c.args[0] for c in send.await_args_list] == ["slow done", "fast done"]

    @pytest.mark.asyncio
    async def test_concurrent_breaks_one_succeeds(
        self, dispatcher: CommandDispatcher, send: AsyncMock
    ) -> None:
        await dispatcher.handle(inbound("start design"))
        send.reset_mock()

        results = await asyncio.gather(
            dispatcher.dispatch(inbound("break"), ParsedCommand("break", "")),
            dispatcher.dispatch(inbound("break"), ParsedCommand("break", "")),
        )

        assert sorted(r.ok for r in results) == [False, True]
        failed = next(r for r in results if not r.ok)
        assert failed.error is not None
        assert "already on a break" in failed.error.text


class TestMetricsRecording:
    """Tests for metrics recorded during dispatch."""

    @pytest.mark.asyncio
    async def test_records_command_and_latency(
        self, dispatcher: CommandDispatcher, fresh_metrics: Metrics
    ) -> None:
        await dispatcher.handle(inbound("start design"))
        await dispatcher.handle(inbound("start again"))

        assert fresh_metrics.command_counts == {"start": 2}
        assert fresh_metrics.domain_errors == 1
        assert len(fresh_metrics.latencies) == 2

    @pytest.mark.asyncio
    async def test_rejected_commands_count_towards_error_rate(
        self, dispatcher: CommandDispatcher, fresh_metrics: Metrics
    ) -> None:
        """Unknown and owner-only rejections are dispatched commands too."""
        await dispatcher.handle(inbound("start design"))
        await dispatcher.handle(inbound("frobnicate"))
        await dispatcher.handle(inbound("frobnicate again"))
        await dispatcher.handle(inbound("metrics"))

        assert fresh_metrics.total_commands == 4
        assert fresh_metrics.command_counts == {"start": 1, "metrics": 1}
        assert fresh_metrics.domain_errors == 3
        assert fresh_metrics.get_error_rate() == 75.0
