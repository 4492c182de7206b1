import asyncio
import logging
import warnings
from pathlib import Path
from typing import Awaitable, Callable, Dict, Optional, Tuple, Union
from urllib.parse import urlsplit

import aioftp

from .config import Timeout
from .errors import FtpError, TransportError, UsageError
from .protocol import (
    Mode,
    Response,
    censor,
    check_response_code,
    format_command,
    read_response,
)
from .transfer import Direction, Transfer

logger = logging.getLogger(__name__)

HookType = Callable[..., Awaitable[None]]
PathLike = Union[str, Path]


def parse_address(address: str) -> Tuple[str, int]:
    """
    Split a control connection address into host and port.

    Accepts ``host:port``, ``[ipv6]:port`` and ``ftp://host:port``. The port
    has to be spelled out: an address without one is a usage error, caught
    here before anything touches the network.

    Args:
        address: Where the FTP server lives.

    Returns:
        Tuple[str, int]: Hostname (brackets stripped) and port.

    Raises:
        UsageError: If the host is blank, the port is missing or invalid, or
            an IPv6 literal is not bracketed.
    """
    if not isinstance(address, str) or not address.strip():
        raise UsageError("FTP Connection Error: Host can not be blank!")

    text = address.strip()
    try:
        if "://" in text:
            url = urlsplit(text)
            if url.scheme != "ftp":
                raise UsageError(f"Address scheme must be 'ftp', got {url.scheme!r}")
        else:
            url = urlsplit("//" + text)
    except ValueError as error:
        raise UsageError(f"Malformed address {address!r}: {error}") from None

    netloc = url.netloc.rpartition("@")[2]
    if not netloc.startswith("[") and netloc.count(":") > 1:
        raise UsageError(f"IPv6 addresses must be bracketed, e.g. [::1]:21, got {address!r}")

    try:
        port = url.port
    except ValueError as error:
        raise UsageError(f"Invalid port in {address!r}: {error}") from None

    if port is None:
        raise UsageError("FTP Connection Error: Host must have a port! e.g. host:21")
    if port == 0:
        raise UsageError(f"Port 0 is not a valid FTP port: {address!r}")
    if not url.hostname:
        raise UsageError("FTP Connection Error: Host can not be blank!")

    return url.hostname, port


class Session:
    """
    One FTP control connection and everything done over it.

    A session is created by :func:`connect` once the server greeted us with
    a 2xx reply. From there it runs a strict dialogue: one command on the
    wire at a time, and at most one data connection open at a time. An
    internal lock enforces that when several tasks share the session.

    Once the control channel is closed by :meth:`logout`, :meth:`close` or
    :meth:`abort` the session is dead and every operation raises
    TransportError. Other failures leave the channel open: tearing it down
    is up to the caller.
    """

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        hostname: str,
        port: int,
        timeout: Optional[Timeout] = None,
        encoding: str = "utf-8",
        hooks: Optional[Dict[str, HookType]] = None,
        path_io: Optional[aioftp.AbstractPathIO] = None,
    ) -> None:
        """Wrap an already open control channel.

        Most code should call :func:`connect` instead, which also handles
        the greeting.

        Args:
            reader: Control channel reader.
            writer: Control channel writer.
            hostname: Host the control channel points at; data connections go there too.
            port: Control port, kept for error messages.
            timeout: Channel timeouts, None to wait forever.
            encoding: Text encoding for commands and replies.
            hooks: Async callbacks for "connect", "download", "upload" and "error".
            path_io: aioftp path layer used for local files (blocking PathIO by default).
        """
        self.reader = reader
        self.writer = writer
        self.hostname = hostname
        self.port = port
        self.timeout = timeout
        self.encoding = encoding
        self.hooks: Dict[str, HookType] = hooks or {}
        self.path_io = path_io or aioftp.PathIO()
        self.welcome: Optional[Response] = None
        self.closed = False
        self.pending = 0  # transfer replies still owed by the server
        self.lock = asyncio.Lock()

    def __repr__(self) -> str:
        state = "closed" if self.closed else "open"
        return f"<Session {self.hostname}:{self.port} {state}>"

    @property
    def read_timeout(self) -> Optional[float]:
        return self.timeout.read if self.timeout else None

    @property
    def write_timeout(self) -> Optional[float]:
        return self.timeout.write if self.timeout else None

    @property
    def connect_timeout(self) -> Optional[float]:
        return self.timeout.connect if self.timeout else None

    def ensure_open(self) -> None:
        if self.closed:
            raise TransportError(f"Control connection to {self.hostname}:{self.port} is closed")

    async def hook(self, name: str, *args) -> None:
        """Run a user hook. Hook failures are reported but never break the session."""
        if name not in self.hooks:
            return
        try:
            await self.hooks[name](*args)
        except Exception as error:
            warnings.warn(f"{name.capitalize()} hook failed: {error}")

    async def send(self, verb: str, argument: str = "") -> None:
        """
        Write one command without waiting for its reply.

        Used directly only for RETR and STOR, whose reply is read after the
        data connection is done. Everything else goes through :meth:`command`.

        Raises:
            TransportError: If the session is closed or the write fails.
        """
        self.ensure_open()
        line = format_command(verb, argument)
        logger.debug("-> %s", censor(verb, argument))
        try:
            self.writer.write(line.encode(self.encoding))
            await asyncio.wait_for(self.writer.drain(), timeout=self.write_timeout)
        except asyncio.TimeoutError as error:
            raise TransportError(f"Timed out sending {verb} to {self.hostname}:{self.port}") from error
        except OSError as error:
            raise TransportError(f"Failed to send {verb} to {self.hostname}:{self.port}: {error}") from error

    async def receive(self) -> Response:
        """Read the next complete reply off the control channel."""
        self.ensure_open()
        return await read_response(self.reader, self.encoding, self.read_timeout)

    async def read_final(self) -> Response:
        """Read replies until one that is not a 1xx preliminary reply."""
        reply = await self.receive()
        while reply.code // 100 == 1:
            reply = await self.receive()
        return reply

    async def exchange(self, verb: str, argument: str = "") -> Response:
        """Send a command and read its reply. Callers must already hold the lock."""
        while self.pending:
            # A failed transfer left its closing reply on the wire
            stale = await self.read_final()
            self.pending -= 1
            logger.debug("Skipped reply to an interrupted transfer: %s", stale)
        await self.send(verb, argument)
        return await self.receive()

    async def command(self, verb: str, argument: str = "") -> Response:
        """
        Send ``VERB ARGUMENT`` and return the server's complete reply.

        The reply code is not checked here; pair this with
        :func:`ftplink.protocol.check_response_code` when the caller cares.

        Args:
            verb: Command name, e.g. "NOOP" or "CWD".
            argument: Optional argument; no trailing space is sent when empty.

        Returns:
            Response: Final status code and every line of the reply.

        Raises:
            TransportError: If the write fails or the stream ends mid-reply.
            ProtocolError: If the reply is malformed.
        """
        async with self.lock:
            return await self.exchange(verb, argument)

    async def login(self, user: str, password: str) -> Response:
        """
        Authenticate with USER and PASS.

        Each step is checked before moving on, so the error raised always
        names the step that actually failed. A 2xx answer to USER means the
        server does not want a password and PASS is skipped.

        Args:
            user: Login name.
            password: Password.

        Returns:
            Response: The reply that completed the login.

        Raises:
            UsageError: If either credential is blank (before any I/O).
            StatusCodeError: If USER is not answered with 2xx/3xx, or PASS with 2xx.
        """
        if not user:
            raise UsageError("FTP Connection Error: User can not be blank!")
        if not password:
            raise UsageError("FTP Connection Error: Password can not be blank!")

        async with self.lock:
            reply = await self.exchange("USER", user)
            if reply.code // 100 == 2:
                logger.info("Logged in to %s as %s without password", self.hostname, user)
                return reply
            check_response_code(3, reply.code, reply.message, step="USER")

            reply = await self.exchange("PASS", password)
            check_response_code(2, reply.code, reply.message, step="PASS")

        logger.info("Logged in to %s as %s", self.hostname, user)
        return reply

    async def logout(self) -> Response:
        """
        Say QUIT and close the control channel.

        If QUIT itself fails the channel is left open so the caller can retry
        or :meth:`close` it. A failure while closing is raised as well.

        Returns:
            Response: The server's goodbye.
        """
        async with self.lock:
            reply = await self.exchange("QUIT")
            await self.close()
        return reply

    async def close(self) -> None:
        """
        Close the control channel without saying goodbye.

        Safe to call more than once.

        Raises:
            TransportError: If the transport fails while shutting down.
        """
        if self.closed:
            return
        self.closed = True
        self.writer.close()
        try:
            await self.writer.wait_closed()
        except OSError as error:
            raise TransportError(f"Failed to close connection to {self.hostname}:{self.port}: {error}") from error
        logger.info("Disconnected from %s:%s", self.hostname, self.port)

    def abort(self) -> None:
        """Drop the control channel right away, used when it can no longer be trusted."""
        if not self.closed:
            self.closed = True
            self.writer.close()
            logger.info("Dropped connection to %s:%s", self.hostname, self.port)

    async def download(self, remote: str, local: PathLike, mode: Union[str, Mode] = Mode.BINARY) -> Response:
        """
        Fetch a remote file over a passive data connection.

        The local file is created or truncated. If the transfer fails half
        way through, whatever arrived stays on disk.

        Args:
            remote: Path of the file on the server.
            local: Where to write it.
            mode: "A" for ASCII or "I" for binary (default).

        Returns:
            Response: The server's transfer-complete reply.
        """
        transfer = Transfer(self, Direction.DOWNLOAD, remote, local, mode)
        await self.hook("download", remote, local)
        return await self.perform(transfer)

    async def upload(self, local: PathLike, remote: str, mode: Union[str, Mode] = Mode.BINARY) -> Response:
        """
        Send a local file to the server over a passive data connection.

        Args:
            local: File to read.
            remote: Path to store it under on the server.
            mode: "A" for ASCII or "I" for binary (default).

        Returns:
            Response: The server's transfer-complete reply.
        """
        transfer = Transfer(self, Direction.UPLOAD, remote, local, mode)
        await self.hook("upload", local, remote)
        return await self.perform(transfer)

    async def perform(self, transfer: Transfer) -> Response:
        """Run a prepared transfer with the control channel to itself."""
        async with self.lock:
            try:
                return await transfer.run()
            except FtpError as error:
                await self.hook("error", error)
                raise

    async def __aenter__(self) -> "Session":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Log out on a clean exit, just drop the connection when the block raised."""
        if self.closed:
            return
        if exc_type is None:
            await self.logout()
        else:
            self.abort()


async def connect(
    address: str,
    timeout: Optional[Timeout] = None,
    encoding: str = "utf-8",
    hooks: Optional[Dict[str, HookType]] = None,
    path_io: Optional[aioftp.AbstractPathIO] = None,
) -> Session:
    """
    Open a control connection and wait for the server's welcome.

    The whole greeting is read, however many lines it spans. Anything other
    than a 2xx greeting closes the socket again before the error is raised.

    Args:
        address: ``host:port``, ``[ipv6]:port`` or ``ftp://host:port``.
        timeout: Channel timeouts, None to wait forever.
        encoding: Text encoding for commands and replies.
        hooks: Async callbacks, see :class:`Session`.
        path_io: aioftp path layer for local files.

    Returns:
        Session: Connected, not yet logged in.

    Raises:
        UsageError: If the address is blank or has no port.
        TransportError: If the server cannot be reached or hangs up.
        ProtocolError: If the greeting is malformed or not 2xx.
    """
    host, port = parse_address(address)
    connect_timeout = timeout.connect if timeout else None

    logger.info("Connecting to %s:%s", host, port)
    try:
        reader, writer = await asyncio.wait_for(asyncio.open_connection(host, port), timeout=connect_timeout)
    except asyncio.TimeoutError as error:
        raise TransportError(f"Connection to {host}:{port} timed out") from error
    except OSError as error:
        raise TransportError(f"Failed to connect to {host}:{port}: {error}") from error

    session = Session(reader, writer, host, port, timeout=timeout, encoding=encoding, hooks=hooks, path_io=path_io)
    try:
        session.welcome = await session.receive()
        check_response_code(2, session.welcome.code, session.welcome.message, step="Reading the welcome message")
    except BaseException:
        # Failed or cancelled mid-greeting, either way the socket goes
        session.abort()
        raise

    logger.info("Connected to %s:%s", host, port)
    await session.hook("connect", session)
    return session
