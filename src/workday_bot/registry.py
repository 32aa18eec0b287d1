"""Command registry.

Built-in handlers and external command modules live in one table built at
startup. Both are wrapped behind the same ``invoke(invocation)`` call, so
the dispatcher never needs to know which kind it is calling.

Built-in handler signature::

    async def handler(argument_text: str, sender_id: str, channel: str) -> None

External modules expose ``dispatch_command(message, user_id)``, sync or async.
"""

from __future__ import annotations

import dataclasses
import importlib
import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

from workday_bot.exceptions import (
    ConfigurationError,
    DuplicateCommandError,
    InvalidCommandModuleError,
)
from workday_bot.normalizer import InboundMessage

logger = logging.getLogger(__name__)

HandlerFn = Callable[[str, str, str], Awaitable[None]]


class CommandModule(Protocol):
    """External module that handles a command on its own."""

    def dispatch_command(self, message: InboundMessage, user_id: str) -> Any: ...


class HandlerKind(str, Enum):
    """Origin of a registered command."""

    BUILTIN = "builtin"
    MODULE = "module"


@dataclass(frozen=True)
class Invocation:
    """Everything a handler may need for one command call.

    Attributes:
        message: The original inbound message.
        argument_text: Text after the command key.
    """

    message: InboundMessage
    argument_text: str

    @property
    def sender_id(self) -> str:
        return self.message.user

    @property
    def channel(self) -> str:
        return self.message.channel


@dataclass(frozen=True)
class RegisteredCommand:
    """A command entry in the registry.

    Attributes:
        name: Command key.
        kind: Whether this is a built-in or an external module.
        target: The handler function or module object.
        description: Short help text.
        owner_only: Only the workspace owner may run it.
    """

    name: str
    kind: HandlerKind
    target: Any
    description: str = ""
    owner_only: bool = False

    async def invoke(self, invocation: Invocation) -> None:
        """Call the handler with the calling convention of its kind."""
        if self.kind is HandlerKind.BUILTIN:
            await self.target(
                invocation.argument_text,
                invocation.sender_id,
                invocation.channel,
            )
            return

        # Modules see the message with the command key already removed
        message = dataclasses.replace(invocation.message, text=invocation.argument_text)
        result = self.target.dispatch_command(message, invocation.sender_id)
        if inspect.isawaitable(result):
            await result


class CommandRegistry:
    """Name to command table.

    Names are case-insensitive. A name may be registered once per kind;
    a module registered under a built-in's name takes precedence over it.
    """

    def __init__(self) -> None:
        self._builtins: dict[str, RegisteredCommand] = {}
        self._modules: dict[str, RegisteredCommand] = {}

    def register(
        self,
        name: str,
        handler: HandlerFn,
        *,
        description: str = "",
        owner_only: bool = False,
    ) -> RegisteredCommand:
        """Register a built-in handler.

        Raises:
            DuplicateCommandError: If a built-in with this name exists.
        """
        key = name.lower()
        if key in self._builtins:
            raise DuplicateCommandError(key)
        if key in self._modules:
            logger.warning("Built-in command shadowed by module", extra={"command": key})

        entry = RegisteredCommand(
            name=key,
            kind=HandlerKind.BUILTIN,
            target=handler,
            description=description,
            owner_only=owner_only,
        )
        self._builtins[key] = entry
        logger.debug("Registered built-in command", extra={"command": key})
        return entry

    def register_module(
        self,
        name: str,
        module: CommandModule,
        *,
        description: str = "",
    ) -> RegisteredCommand:
        """Register an external command module.

        Raises:
            InvalidCommandModuleError: If the module has no dispatch_command().
            DuplicateCommandError: If a module with this name exists.
        """
        key = name.lower()
        if not callable(getattr(module, "dispatch_command", None)):
            raise InvalidCommandModuleError(key)
        if key in self._modules:
            raise DuplicateCommandError(key)
        if key in self._builtins:
            logger.warning("Module overrides built-in command", extra={"command": key})

        entry = RegisteredCommand(
            name=key,
            kind=HandlerKind.MODULE,
            target=module,
            description=description or (inspect.getdoc(module) or "").split("\n")[0],
        )
        self._modules[key] = entry
        logger.info("Added command module", extra={"command": key})
        return entry

    def lookup(self, command_key: str) -> RegisteredCommand | None:
        """Find the command for a key, modules first. Never raises."""
        key = command_key.lower()
        return self._modules.get(key) or self._builtins.get(key)

    def commands(self) -> list[RegisteredCommand]:
        """All effective commands sorted by name."""
        merged = {**self._builtins, **self._modules}
        return [merged[name] for name in sorted(merged)]

    def __contains__(self, command_key: object) -> bool:
        return isinstance(command_key, str) and self.lookup(command_key) is not None

    def __len__(self) -> int:
        return len(self._builtins.keys() | self._modules.keys())


def import_command_module(path: str) -> Any:
    """Import an object from a ``package.module:attribute`` string.

    Raises:
        ConfigurationError: If the module path is malformed or cannot be imported.
    """
    module_path, _, attribute = path.partition(":")
    if not module_path or not attribute:
        raise ConfigurationError(
            "command_modules",
            f"Invalid command module '{path}', expected 'package.module:attribute'",
        )
    try:
        module = importlib.import_module(module_path)
        return getattr(module, attribute)
    except (ImportError, AttributeError) as exc:
        raise ConfigurationError(
            "command_modules",
            f"Cannot import command module '{path}': {exc}",
        ) from exc


def load_command_modules(registry: CommandRegistry, paths: dict[str, str]) -> None:
    """Import and register every configured external module.

    Args:
        registry: Registry to add the modules to.
        paths: Command name to ``package.module:attribute``.
    """
    for name, path in paths.items():
        registry.register_module(name, import_command_module(path))
