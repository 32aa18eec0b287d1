"""Run the workday bot: ``python -m workday_bot`` or ``workday-bot``.

Startup order matters: the command table (built-ins plus modules listed in
``COMMAND_MODULES``) is built before polling, so a duplicate name or a
module without ``dispatch_command`` stops the process instead of failing
on the first message.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
import sys
from typing import TYPE_CHECKING

import structlog

from workday_bot.bot import WorkdayBot
from workday_bot.config import get_settings
from workday_bot.exceptions import ConfigurationError, RegistrationError

if TYPE_CHECKING:
    from workday_bot.config import Settings

STOP_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def configure_structlog(log_level: str) -> None:
    """Route stdlib and structlog records to stdout as console lines.

    Library modules log through ``logging.getLogger(__name__)`` with
    ``extra=`` context; this only sets the sink and the renderer.
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


async def shutdown(bot: WorkdayBot, timeout: int = 30) -> None:
    """Close the Telegram session, giving up after ``timeout`` seconds.

    Sessions are saved on every command, so nothing is flushed here.
    """
    logger = structlog.get_logger(__name__)
    logger.info("Initiating graceful shutdown...", timeout=timeout)

    try:
        await asyncio.wait_for(bot.stop(), timeout=timeout)
        logger.info("Bot stopped successfully")
    except TimeoutError:
        logger.warning("Shutdown timed out after seconds", seconds=timeout)
    except Exception as e:
        logger.error("Error during shutdown", error=str(e))


def install_stop_signals(stop: asyncio.Event) -> None:
    """Set ``stop`` on SIGINT or SIGTERM where the loop supports it."""
    logger = structlog.get_logger(__name__)
    loop = asyncio.get_running_loop()

    for sig in STOP_SIGNALS:

        def on_signal(sig: signal.Signals = sig) -> None:
            logger.info("Received signal", signal=sig.name)
            stop.set()

        # Not available on Windows event loops
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, on_signal)


async def poll_until_stopped(bot: WorkdayBot, stop: asyncio.Event) -> None:
    """Poll Telegram until polling ends on its own or ``stop`` is set."""
    polling = asyncio.create_task(bot.start())
    stopped = asyncio.create_task(stop.wait())

    _, pending = await asyncio.wait(
        [polling, stopped],
        return_when=asyncio.FIRST_COMPLETED,
    )
    for task in pending:
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task


async def main() -> None:
    """Load settings, build the command table, then poll until stopped."""
    try:
        settings: Settings = get_settings()
    except Exception as e:
        print(f"Failed to load settings: {e}")
        print("Set TELEGRAM_BOT_TOKEN in the environment or in a .env file.")
        sys.exit(1)

    configure_structlog(settings.log_level)
    logger = structlog.get_logger(__name__)

    logger.info(
        "Starting Workday Bot",
        app_name=settings.app_name,
        version=settings.app_version,
        sessions_file=settings.sessions_file,
        command_modules=len(settings.command_modules),
    )

    try:
        bot = WorkdayBot(settings)
    except (RegistrationError, ConfigurationError) as e:
        logger.error("Invalid command setup", error=str(e))
        sys.exit(1)

    stop = asyncio.Event()
    install_stop_signals(stop)

    try:
        await poll_until_stopped(bot, stop)
    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt")
    except Exception as e:
        logger.exception("Unexpected error", error=str(e))
        raise
    finally:
        await shutdown(bot, timeout=settings.shutdown_timeout)
        logger.info("Shutdown complete")


def run() -> None:
    """Console script entry point."""
    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(main())


if __name__ == "__main__":
    run()
