import os
from typing import Optional, Union


class FtpError(Exception):
    """Base class for everything FtpLink raises on purpose."""


class UsageError(FtpError, ValueError):
    """
    The caller asked for something that can never work.

    Blank hosts, users or passwords, addresses without a port and unknown
    transfer modes all end up here. These are always raised before any
    socket is opened, so there is nothing to clean up.
    """


class TransportError(FtpError, ConnectionError):
    """
    The byte stream underneath us let us down.

    Covers failed dials, read/write failures, timeouts, the server hanging
    up in the middle of a reply, and any attempt to use a session whose
    control channel is already closed.
    """


class ProtocolError(FtpError):
    """The server said something we could not make sense of."""


class StatusCodeError(ProtocolError):
    """
    The server answered with a code outside the expected class.

    Attributes:
        expected: The code pattern we were waiting for (1-9, 10-99 or 100-999).
        received: The code the server actually sent.
        message: Full reply text, handy when the server explains itself.
    """

    def __init__(self, expected: int, received: int, message: str = "", step: Optional[str] = None) -> None:
        self.expected = expected
        self.received = received
        self.message = message
        self.step = step

        # codes lives in the package root, which imports this module
        from . import codes

        description = codes.get(received)
        text = f"Bad response from server. Expected: {expected}, Got: {received}"
        if description:
            text += f" ({description})"
        if step:
            text = f"{step} failed. {text}"
        if message.strip():
            text += f". Line: {message.strip()!r}"
        super().__init__(text)


class PassiveParseError(ProtocolError):
    """
    A PASV reply without a usable host/port tuple.

    Attributes:
        line: The reply text that could not be decoded.
    """

    def __init__(self, line: str, reason: str = "Cannot find data port in server output") -> None:
        self.line = line
        super().__init__(f"{reason}: {line.strip()!r}")


class LocalFileError(FtpError, OSError):
    """
    Opening, reading or writing the local side of a transfer failed.

    Attributes:
        path: The local file involved.
    """

    def __init__(self, path: Union[str, os.PathLike], message: str) -> None:
        self.path = str(path)
        super().__init__(f"{message}, '{self.path}'")
