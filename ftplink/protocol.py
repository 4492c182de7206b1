"""
Wire-level pieces of the FTP control protocol.

Everything in here is stateless: framing commands, reading replies off a
stream, checking status codes and decoding PASV replies. The session in
:mod:`ftplink.core` glues these together.
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Optional, Union

from .errors import PassiveParseError, ProtocolError, StatusCodeError, TransportError, UsageError

logger = logging.getLogger(__name__)

CRLF = "\r\n"  # Line terminator for everything on the control channel
CHUNK_SIZE = 1024  # Bytes moved per read/write on the data channel


class Mode(str, Enum):
    """Transfer type letters accepted by the TYPE command."""

    ASCII = "A"
    BINARY = "I"
    IMAGE = "I"  # alias of BINARY


def resolve_mode(mode: Union[str, Mode]) -> str:
    """Turn a Mode or a bare letter into the TYPE argument."""
    try:
        return Mode(str.upper(mode)).value
    except (TypeError, ValueError):
        raise UsageError(f"Unknown transfer mode {mode!r}, expected 'A' or 'I'") from None


# Final line of a reply: three digits then a space. A bare "ddd" line is
# accepted too, some servers drop the trailing space on empty replies.
TERMINATOR = re.compile(r"^(\d{3})(?: |\r?\n|$)")

# h1,h2,h3,h4,p1,p2 - the host octets only anchor the match
PASV_TUPLE = re.compile(r"(\d+)[,.](\d+)[,.](\d+)[,.](\d+),(\d+),(\d+)")

# First line of any reply: three digits then a space or a dash
OPENING = re.compile(r"^\d{3}(?:[ -]|\r?\n|$)")

# Which verbs carry secrets that must not show up in the debug log
CENSORED = MappingProxyType({"PASS": "****"})


@dataclass(frozen=True)
class Response:
    """
    One complete server reply.

    Attributes:
        code: Three-digit status code taken from the terminating line.
        message: Every line of the reply, CRLF terminators included.
    """

    code: int
    message: str

    @property
    def lines(self):
        return self.message.splitlines()

    def __str__(self) -> str:
        return self.message.rstrip()


def format_command(verb: str, argument: str = "") -> str:
    """Build ``VERB ARGUMENT\\r\\n``, leaving out the space when there is no argument."""
    if not verb or not verb.strip():
        raise UsageError("FTP command verb cannot be blank")
    if any(char in verb + argument for char in CRLF):
        raise UsageError("FTP commands cannot contain line breaks")
    if argument:
        return f"{verb} {argument}{CRLF}"
    return f"{verb}{CRLF}"


def censor(verb: str, argument: str) -> str:
    """Render a command for logging with secrets masked."""
    if verb.upper() in CENSORED:
        argument = CENSORED[verb.upper()]
    return f"{verb} {argument}".rstrip()


async def read_response(
    reader: asyncio.StreamReader,
    encoding: str = "utf-8",
    timeout: Optional[float] = None,
) -> Response:
    """
    Read lines until the one that closes a reply, and return the whole reply.

    Continuation lines (``ddd-text`` or free text) are accumulated verbatim.
    The first line starting with three digits and a space ends the reply and
    its digits become the status code.

    Args:
        reader: Control channel reader.
        encoding: Text encoding used by the server.
        timeout: Seconds to wait for each line, None to wait forever.

    Returns:
        Response: The code and the full accumulated message.

    Raises:
        TransportError: If the stream fails or ends before the final line.
        ProtocolError: If a line cannot be decoded or the reply does not open
            with a status code.
    """
    message = []
    while True:
        try:
            raw = await asyncio.wait_for(reader.readline(), timeout=timeout)
        except asyncio.TimeoutError as error:
            raise TransportError(f"Timed out after {timeout}s waiting for server reply") from error
        except (OSError, ValueError) as error:
            # ValueError is what StreamReader raises for an oversized line
            raise TransportError(f"Failed to read server reply: {error}") from error

        if not raw:
            raise TransportError(
                "Connection closed before the server finished its reply"
                + (f": {''.join(message).strip()!r}" if message else "")
            )

        try:
            line = raw.decode(encoding)
        except UnicodeDecodeError as error:
            raise ProtocolError(f"Server reply is not valid {encoding}: {raw!r}") from error

        logger.debug("<- %s", line.rstrip())
        if not message and not OPENING.match(line):
            raise ProtocolError(f"Malformed server reply, no status code: {line.strip()!r}")
        message.append(line)

        match = TERMINATOR.match(line)
        if match:
            return Response(int(match.group(1)), "".join(message))

        if not raw.endswith(b"\n"):
            # readline only returns a partial line at end of stream
            raise TransportError(f"Connection closed in the middle of a reply line: {line!r}")


def check_response_code(expected: int, actual: int, message: str = "", step: Optional[str] = None) -> None:
    """
    Make sure a status code matches what we were waiting for.

    The width of ``expected`` picks how strict the match is:

    - 1 to 9 checks only the first digit (2 means "any 2xx")
    - 10 to 99 checks the first two digits (22 means "any 22x")
    - 100 to 999 needs the exact code

    Args:
        expected: Code pattern to match against.
        actual: Code the server sent.
        message: Reply text, attached to the error for diagnostics.
        step: Name of the operation, attached to the error as well.

    Raises:
        StatusCodeError: If the code does not match, or ``expected`` is outside 1-999.
    """
    if 1 <= expected <= 9:
        ok = actual // 100 == expected
    elif 10 <= expected <= 99:
        ok = actual // 10 == expected
    elif 100 <= expected <= 999:
        ok = actual == expected
    else:
        ok = False

    if not ok:
        raise StatusCodeError(expected, actual, message, step=step)


def extract_data_port(line: str) -> int:
    """
    Pull the data port out of a PASV reply.

    Looks for ``h1,h2,h3,h4,p1,p2`` anywhere in the text, e.g.
    ``227 Entering Passive Mode (192,168,1,5,17,36).`` gives
    ``17 * 256 + 36 = 4388``. The host octets are ignored: data connections
    always go to the host the control connection uses.

    Raises:
        PassiveParseError: If there is no such tuple or the port is out of range.
    """
    match = PASV_TUPLE.search(line)
    if match is None:
        raise PassiveParseError(line)

    high, low = int(match.group(5)), int(match.group(6))
    if high > 255 or low > 255:
        raise PassiveParseError(line, f"Port octets out of range ({high},{low})")

    port = high * 256 + low
    if port == 0:
        raise PassiveParseError(line, "Server offered data port 0")
    return port
