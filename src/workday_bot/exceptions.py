"""Custom exceptions for Workday Bot.

This module defines a hierarchy of exceptions for proper error handling
across the application. All exceptions inherit from WorkdayBotError.

DomainError subclasses carry a message that is safe to show to the user
verbatim. Everything else is an internal error and is never shown.
"""

from __future__ import annotations


class WorkdayBotError(Exception):
    """Base exception for all Workday Bot errors.

    All custom exceptions in this application should inherit from this class.
    This allows for catch-all exception handling when needed.
    """

    def __init__(self, message: str = "An error occurred") -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error message.
        """
        self.message = message
        super().__init__(self.message)


# =============================================================================
# Domain Errors (user-facing)
# =============================================================================


class DomainError(WorkdayBotError):
    """Base exception for errors whose message may be shown to the user."""

    pass


class SessionAlreadyOpenError(DomainError):
    """Raised when starting a workday while another one is still open.

    Attributes:
        owner_id: The user who already has an open session.
    """

    def __init__(self, owner_id: str, message: str | None = None) -> None:
        """Initialize the exception.

        Args:
            owner_id: User ID that owns the open session.
            message: Optional custom message.
        """
        self.owner_id = owner_id
        msg = message or "your workday has already started, end it before starting a new one."
        super().__init__(msg)


class NoOpenSessionError(DomainError):
    """Raised when an operation needs an open workday and there is none.

    Attributes:
        owner_id: The user without an open session.
    """

    def __init__(self, owner_id: str, message: str | None = None) -> None:
        """Initialize the exception.

        Args:
            owner_id: User ID without an open session.
            message: Optional custom message.
        """
        self.owner_id = owner_id
        msg = message or "you have no open workday, use 'start' to begin one."
        super().__init__(msg)


class AlreadyOnBreakError(DomainError):
    """Raised when giving a break while already on one.

    Attributes:
        owner_id: The user who is already on break.
    """

    def __init__(self, owner_id: str, message: str | None = None) -> None:
        """Initialize the exception.

        Args:
            owner_id: User ID that is on break.
            message: Optional custom message.
        """
        self.owner_id = owner_id
        msg = message or "you are already on a break, use 'continue' to get back to work."
        super().__init__(msg)


class UnknownCommandError(DomainError):
    """Raised when no handler is registered for a command key.

    Attributes:
        command: The command key that could not be resolved.
    """

    def __init__(self, command: str, message: str | None = None) -> None:
        """Initialize the exception.

        Args:
            command: The unresolved command key.
            message: Optional custom message.
        """
        self.command = command
        msg = message or f"command '{command}' does not exist."
        super().__init__(msg)


class OwnerOnlyCommandError(DomainError):
    """Raised when someone other than the workspace owner runs an owner-only command.

    Attributes:
        command: The restricted command.
        user_id: The user that attempted it.
    """

    def __init__(self, command: str, user_id: str, message: str | None = None) -> None:
        """Initialize the exception.

        Args:
            command: The restricted command.
            user_id: The user that attempted it.
            message: Optional custom message.
        """
        self.command = command
        self.user_id = user_id
        msg = message or f"only the workspace owner can use '{command}'."
        super().__init__(msg)


# =============================================================================
# Registration Errors (startup)
# =============================================================================


class RegistrationError(WorkdayBotError):
    """Base exception for command registration errors raised at startup."""

    pass


class DuplicateCommandError(RegistrationError):
    """Raised when a command name is registered twice.

    Attributes:
        command: The duplicated command name.
    """

    def __init__(self, command: str, message: str | None = None) -> None:
        """Initialize the exception.

        Args:
            command: The duplicated command name.
            message: Optional custom message.
        """
        self.command = command
        msg = message or f"Command '{command}' is already registered"
        super().__init__(msg)


class InvalidCommandModuleError(RegistrationError):
    """Raised when an external module lacks a dispatch_command() method.

    Attributes:
        command: The name the module was registered under.
    """

    def __init__(self, command: str, message: str | None = None) -> None:
        """Initialize the exception.

        Args:
            command: The name the module was registered under.
            message: Optional custom message.
        """
        self.command = command
        msg = message or f"Module '{command}' does not have a dispatch_command() method"
        super().__init__(msg)


# =============================================================================
# Configuration and Persistence Errors
# =============================================================================


class ConfigurationError(WorkdayBotError):
    """Raised when configuration is invalid or missing.

    Attributes:
        config_key: The configuration key that is invalid.
    """

    def __init__(
        self,
        config_key: str | None = None,
        message: str | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            config_key: The configuration key that is invalid.
            message: Optional custom message.
        """
        self.config_key = config_key
        msg = message or "Configuration error"
        if config_key and not message:
            msg = f"Invalid configuration for '{config_key}'"
        super().__init__(msg)


class StoreError(WorkdayBotError):
    """Raised when the session store cannot be read or written.

    Attributes:
        original_error: The underlying exception, if any.
    """

    def __init__(
        self,
        original_error: Exception | None = None,
        message: str | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            original_error: The underlying exception.
            message: Optional custom message.
        """
        self.original_error = original_error
        msg = message or "Session store error"
        if original_error:
            msg += f": {original_error}"
        super().__init__(msg)
