#  Copyright (c) 2025 Tom Villani, Ph.D.
"""Custom exceptions for the multifind library.

This module defines the error taxonomy shared by the three cooperating
contexts (Query Surface, Document Engine, background Log Store).

Exception Hierarchy
-------------------
- MultiFindError (base exception)

  - ValidationError (parameter/option validation)
    - ProtocolError (malformed wire messages)

  - MessagingError (message delivery failures)
    - NoReceiverError (tab has no live Document Engine)
    - TabNotFoundError (tab id is unknown or closed)

  - InjectionError (engine injection failures)
    - RestrictedTargetError (injection disallowed by URL scheme)
    - InjectionExhaustedError (retry budget exceeded)

  - StorageError (log store read/write failures)

A persistent-term cap hit is not an exception. It is reported through the
``searchLimitReached`` response flag.

"""

from typing import Any


class MultiFindError(Exception):
    """Base exception class for all multifind-specific errors.

    Parameters
    ----------
    message : str
        Human-readable description of the error
    original_error : Exception, optional
        The original exception that caused this error, if applicable

    Attributes
    ----------
    message : str
        The error message
    original_error : Exception or None
        The wrapped original exception, if any

    """

    def __init__(self, message: str, original_error: Exception | None = None):
        """Initialize the error with a message and optional original exception."""
        super().__init__(message)
        self.message = message
        self.original_error = original_error


class ValidationError(MultiFindError):
    """Exception raised for invalid input parameters or options.

    Parameters
    ----------
    message : str
        Description of the validation error
    parameter_name : str, optional
        Name of the invalid parameter
    parameter_value : any, optional
        The invalid value that was provided
    original_error : Exception, optional
        The original exception that caused this error

    """

    def __init__(
        self,
        message: str,
        parameter_name: str | None = None,
        parameter_value: Any = None,
        original_error: Exception | None = None,
    ):
        """Initialize the validation error with parameter details."""
        super().__init__(message, original_error=original_error)
        self.parameter_name = parameter_name
        self.parameter_value = parameter_value


class ProtocolError(ValidationError):
    """Exception raised when a wire message cannot be decoded into a request.

    Parameters
    ----------
    message : str
        Description of what is wrong with the message
    action : str, optional
        The ``action`` tag of the offending message, when present
    parameter_name : str, optional
        Field that failed validation
    parameter_value : any, optional
        The invalid field value

    """

    def __init__(
        self,
        message: str,
        action: str | None = None,
        parameter_name: str | None = None,
        parameter_value: Any = None,
    ):
        """Initialize the protocol error."""
        super().__init__(message, parameter_name=parameter_name, parameter_value=parameter_value)
        self.action = action


class MessagingError(MultiFindError):
    """Base exception for message delivery failures between contexts.

    Parameters
    ----------
    message : str
        Description of the delivery failure
    tab_id : int, optional
        Tab the message was addressed to
    original_error : Exception, optional
        The original exception that caused this error

    """

    def __init__(self, message: str, tab_id: int | None = None, original_error: Exception | None = None):
        """Initialize the messaging error with the target tab."""
        super().__init__(message, original_error=original_error)
        self.tab_id = tab_id


class NoReceiverError(MessagingError):
    """Exception raised when a tab has no live Document Engine to receive a message.

    This is the normal signal that the engine was never injected, or that the
    page navigated and lost it. The injection coordinator retries on it.
    """

    def __init__(self, tab_id: int, message: str | None = None):
        """Initialize the no-receiver error."""
        if message is None:
            message = f"Could not establish connection: no receiving end in tab {tab_id}"
        super().__init__(message, tab_id=tab_id)


class TabNotFoundError(MessagingError):
    """Exception raised when a message or injection targets an unknown tab."""

    def __init__(self, tab_id: int, message: str | None = None):
        """Initialize the tab-not-found error."""
        if message is None:
            message = f"No tab with id: {tab_id}"
        super().__init__(message, tab_id=tab_id)


class InjectionError(MultiFindError):
    """Base exception for failures to inject the Document Engine into a tab.

    Parameters
    ----------
    message : str
        Description of the injection failure
    url : str, optional
        URL of the page that could not be injected
    original_error : Exception, optional
        The original exception that caused this error

    """

    def __init__(self, message: str, url: str | None = None, original_error: Exception | None = None):
        """Initialize the injection error with the page URL."""
        super().__init__(message, original_error=original_error)
        self.url = url


class RestrictedTargetError(InjectionError):
    """Exception raised when a page's URL scheme forbids injection and messaging.

    Fatal to the operation; never retried.
    """

    def __init__(self, url: str, message: str | None = None):
        """Initialize the restricted target error."""
        if message is None:
            message = f"Cannot search in browser system pages: {url}"
        super().__init__(message, url=url)


class InjectionExhaustedError(InjectionError):
    """Exception raised when the engine is still unreachable after every injection attempt.

    Parameters
    ----------
    url : str
        URL of the page
    attempts : int
        Number of injection attempts made
    original_error : Exception, optional
        The last delivery error observed

    """

    def __init__(self, url: str, attempts: int, original_error: Exception | None = None):
        """Initialize the exhausted error."""
        message = f"Search is unavailable on this page (engine did not respond after {attempts} attempt(s))"
        super().__init__(message, url=url, original_error=original_error)
        self.attempts = attempts


class StorageError(MultiFindError):
    """Exception raised when the log store cannot read or write its backing storage.

    Parameters
    ----------
    message : str
        Description of the storage failure
    key : str, optional
        Storage key involved
    original_error : Exception, optional
        The original exception that caused this error

    """

    def __init__(self, message: str, key: str | None = None, original_error: Exception | None = None):
        """Initialize the storage error."""
        super().__init__(message, original_error=original_error)
        self.key = key


__all__ = [
    "MultiFindError",
    "ValidationError",
    "ProtocolError",
    "MessagingError",
    "NoReceiverError",
    "TabNotFoundError",
    "InjectionError",
    "RestrictedTargetError",
    "InjectionExhaustedError",
    "StorageError",
]
