"""
Passive-mode data transfers.

A transfer walks one fixed path through the protocol::

    Idle -> PasvSent -> PasvConfirmed -> TypeSent -> TypeConfirmed
         -> CommandSent -> DataOpen -> Streaming -> Closed

and drops straight to Closed on the first failure. Bytes move while the
control channel is watched for the server's verdict, so servers that stay
quiet until the data is done work as well as those that send 150 first,
and a refusal stops the copy right away. The data connection and the local
file are released on every way out.
"""

import asyncio
import logging
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Optional, Tuple, Union

import aioftp

from .errors import LocalFileError, TransportError
from .protocol import (
    CHUNK_SIZE,
    Mode,
    Response,
    check_response_code,
    extract_data_port,
    read_response,
    resolve_mode,
)

if TYPE_CHECKING:
    from .core import Session

logger = logging.getLogger(__name__)


def reason(error: Exception) -> Exception:
    """aioftp wraps local failures in PathIOError, the OSError underneath is the useful part."""
    return error.__cause__ or error


async def settle(task: asyncio.Future) -> None:
    """Cancel a helper task if it is still running and collect its outcome."""
    task.cancel()
    await asyncio.gather(task, return_exceptions=True)


class Direction(Enum):
    DOWNLOAD = "RETR"
    UPLOAD = "STOR"


class State(Enum):
    IDLE = "Idle"
    PASV_SENT = "PasvSent"
    PASV_CONFIRMED = "PasvConfirmed"
    TYPE_SENT = "TypeSent"
    TYPE_CONFIRMED = "TypeConfirmed"
    COMMAND_SENT = "CommandSent"
    DATA_OPEN = "DataOpen"
    STREAMING = "Streaming"
    CLOSED = "Closed"


class Transfer:
    """
    One file moving over one data connection.

    Built by :meth:`Session.download` and :meth:`Session.upload`, which hold
    the session lock for the whole run so nothing else touches the control
    channel meanwhile.

    Attributes:
        state: Where in the transfer state machine we are.
        port: Data port decoded from the PASV reply, once known.
        transferred: Bytes moved over the data connection so far.
    """

    def __init__(
        self,
        session: "Session",
        direction: Direction,
        remote: str,
        local: Union[str, Path],
        mode: Union[str, Mode] = Mode.BINARY,
    ) -> None:
        self.session = session
        self.direction = direction
        self.remote = remote
        self.local = Path(local)
        self.mode = resolve_mode(mode)
        self.state = State.IDLE
        self.port: Optional[int] = None
        self.transferred = 0

    def __repr__(self) -> str:
        return f"<Transfer {self.direction.value} {self.remote!r} <-> '{self.local}' {self.state.value}>"

    async def run(self) -> Response:
        """
        Negotiate, stream and collect the server's verdict.

        Returns:
            Response: Final 2xx reply to RETR/STOR.

        Raises:
            StatusCodeError: If PASV, TYPE or the transfer itself is refused.
            PassiveParseError: If the PASV reply carries no usable port.
            TransportError: If the control or data connection fails.
            LocalFileError: If the local file cannot be opened, read or written.
        """
        session = self.session
        verdict: Optional["asyncio.Future[Response]"] = None
        try:
            self.state = State.PASV_SENT
            reply = await session.exchange("PASV")
            check_response_code(2, reply.code, reply.message, step="Cannot set PASV")
            self.state = State.PASV_CONFIRMED
            self.port = extract_data_port(reply.message)

            self.state = State.TYPE_SENT
            reply = await session.exchange("TYPE", self.mode)
            check_response_code(2, reply.code, reply.message, step="Cannot set TYPE")
            self.state = State.TYPE_CONFIRMED

            step = f"{self.direction.value} {self.remote}"
            file = await self.open_local()
            try:
                await session.send(self.direction.value, self.remote)
                # From here on the server owes us a reply to RETR/STOR
                session.pending += 1
                self.state = State.COMMAND_SENT
                reader, writer = await self.open_data()
                verdict = asyncio.ensure_future(read_response(session.reader, session.encoding))
                try:
                    final = await self.stream(reader, writer, file, verdict, step)
                except BaseException:
                    self.drop_data(writer)
                    raise
                await self.close_data(writer)
            except BaseException:
                await self.drop_local(file)
                raise
            await self.close_local(file)

            if final is None:
                final = await self.collect(verdict, step)
        finally:
            if verdict is not None:
                # Never leave a reader behind on the control channel
                await settle(verdict)
            self.state = State.CLOSED

        logger.info(
            "%s %s: %d bytes %s '%s'",
            self.direction.value,
            self.remote,
            self.transferred,
            "to" if self.direction is Direction.DOWNLOAD else "from",
            self.local,
        )
        return final

    async def open_local(self) -> aioftp.pathio.AsyncPathIOContext:
        if self.direction is Direction.DOWNLOAD:
            mode, message = "wb", "Cannot open destination file"
        else:
            mode, message = "rb", "Cannot open src file"
        try:
            return await self.session.path_io.open(self.local, mode=mode)
        except (aioftp.PathIOError, OSError) as error:
            raise LocalFileError(self.local, f"{message} ({reason(error)})") from error

    async def close_local(self, file: aioftp.pathio.AsyncPathIOContext) -> None:
        try:
            await file.close()
        except (aioftp.PathIOError, OSError) as error:
            raise LocalFileError(self.local, f"Cannot close file ({reason(error)})") from error

    async def drop_local(self, file: aioftp.pathio.AsyncPathIOContext) -> None:
        """Close the local file on the way out of a failed transfer, keeping the original error."""
        try:
            await file.close()
        except (aioftp.PathIOError, OSError) as error:
            logger.debug("Couldn't close '%s' after a failed transfer: %s", self.local, reason(error))

    async def stream(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        file: aioftp.pathio.AsyncPathIOContext,
        verdict: "asyncio.Future[Response]",
        step: str,
    ) -> Optional[Response]:
        """
        Move the file while listening on the control channel.

        Servers differ in when they speak up: some send 150 before the first
        byte, some hold everything back until the data is done. The copy loop
        therefore never waits on the control channel. A 4xx/5xx that shows
        up mid-stream stops the copy at once.

        Returns:
            Optional[Response]: The final reply if the server already sent
            it, None while it is still owed.
        """
        self.state = State.STREAMING
        if self.direction is Direction.DOWNLOAD:
            copy = asyncio.ensure_future(self.receive_file(reader, file))
        else:
            copy = asyncio.ensure_future(self.send_file(writer, file))

        try:
            done, _ = await asyncio.wait({verdict, copy}, return_when=asyncio.FIRST_COMPLETED)
            if verdict in done:
                reply = verdict.result()
                if reply.code // 100 != 1:
                    # Refused outright, or finished before we drained the socket
                    self.session.pending -= 1
                    check_response_code(2, reply.code, reply.message, step=step)
                    await copy
                    return reply
            await copy
        finally:
            await settle(copy)
        return None

    async def collect(self, verdict: "asyncio.Future[Response]", step: str) -> Response:
        """Wait for the server's final word on a transfer whose data has all moved."""
        session = self.session
        done, _ = await asyncio.wait({verdict}, timeout=session.read_timeout)
        if not done:
            await settle(verdict)
            raise TransportError(f"Timed out after {session.read_timeout}s waiting for the reply to {step}")

        reply = verdict.result()
        while reply.code // 100 == 1:
            reply = await session.receive()
        session.pending -= 1
        check_response_code(2, reply.code, reply.message, step=step)
        return reply

    async def open_data(self) -> Tuple[asyncio.StreamReader, asyncio.StreamWriter]:
        """Connect to the session host on the port the server just offered."""
        host, port = self.session.hostname, self.port
        try:
            connection = await asyncio.wait_for(
                asyncio.open_connection(host, port),
                timeout=self.session.connect_timeout,
            )
        except asyncio.TimeoutError as error:
            raise TransportError(f"Timed out connecting to server's remote data port {host}:{port}") from error
        except OSError as error:
            raise TransportError(f"Couldn't connect to server's remote data port {host}:{port}. Error: {error}") from error

        self.state = State.DATA_OPEN
        logger.debug("Data connection open to %s:%s", host, port)
        return connection

    async def close_data(self, writer: asyncio.StreamWriter) -> None:
        """
        Close the data connection.

        For uploads this is also how the server learns the file is complete,
        so a failure here is reported rather than ignored.
        """
        writer.close()
        try:
            await asyncio.wait_for(writer.wait_closed(), timeout=self.session.write_timeout)
        except asyncio.TimeoutError as error:
            raise TransportError(f"Timed out closing data connection for {self.remote!r}") from error
        except OSError as error:
            if self.direction is Direction.UPLOAD:
                raise TransportError(f"Failed to close data connection for {self.remote!r}: {error}") from error
            logger.debug("Data connection for %r closed uncleanly: %s", self.remote, error)

    def drop_data(self, writer: asyncio.StreamWriter) -> None:
        """Tear the data connection down after a failure, unsent bytes and all."""
        writer.transport.abort()

    async def receive_file(self, reader: asyncio.StreamReader, file: aioftp.pathio.AsyncPathIOContext) -> None:
        """Copy the data connection into the local file until the server closes it."""
        while True:
            try:
                block = await asyncio.wait_for(reader.read(CHUNK_SIZE), timeout=self.session.read_timeout)
            except asyncio.TimeoutError as error:
                raise TransportError(
                    f"Timed out reading data for '{self.local}' after {self.transferred} bytes"
                ) from error
            except OSError as error:
                raise TransportError(
                    f"Data connection failed while writing '{self.local}' after {self.transferred} bytes: {error}"
                ) from error

            if not block:
                return

            try:
                await file.write(block)
            except (aioftp.PathIOError, OSError) as error:
                raise LocalFileError(self.local, f"Couldn't write to file ({reason(error)})") from error
            self.transferred += len(block)

    async def send_file(self, writer: asyncio.StreamWriter, file: aioftp.pathio.AsyncPathIOContext) -> None:
        """Copy the local file into the data connection until it runs out."""
        while True:
            try:
                block = await file.read(CHUNK_SIZE)
            except (aioftp.PathIOError, OSError) as error:
                raise LocalFileError(self.local, f"Couldn't read file ({reason(error)})") from error

            if not block:
                return

            try:
                writer.write(block)
                await asyncio.wait_for(writer.drain(), timeout=self.session.write_timeout)
            except asyncio.TimeoutError as error:
                raise TransportError(
                    f"Timed out sending '{self.local}' to server after {self.transferred} bytes"
                ) from error
            except OSError as error:
                raise TransportError(
                    f"Couldn't write file to server, '{self.local}'. Error: {error}"
                ) from error
            self.transferred += len(block)
