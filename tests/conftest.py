import asyncio
from typing import Dict, List, Optional

import pytest
import pytest_asyncio

HOST = "127.0.0.1"


class StubServer:
    """
    Scripted FTP server for driving a session through a dialogue.

    Every command is recorded. Commands found in ``replies`` get that canned
    text back verbatim. PASV, RETR and STOR otherwise get real passive-mode
    behaviour: a data listener on a fresh port, ``payload`` streamed out on
    RETR, and whatever arrives on STOR kept in ``uploaded``. With
    ``preliminary`` off, RETR and STOR get no 150 and the only reply comes
    once the data has moved.
    """

    def __init__(
        self,
        greeting: str = "220 Service ready\r\n",
        replies: Optional[Dict[str, str]] = None,
        payload: bytes = b"",
        pasv_host: str = "10,0,0,1",
        preliminary: bool = True,
    ) -> None:
        self.greeting = greeting
        self.replies = {
            "USER": "331 User name okay, need password\r\n",
            "PASS": "230 User logged in\r\n",
            "TYPE": "200 Type set\r\n",
            "NOOP": "200 NOOP ok\r\n",
            "QUIT": "221 Goodbye\r\n",
        }
        self.replies.update(replies or {})
        self.payload = payload
        self.pasv_host = pasv_host
        self.preliminary = preliminary
        self.commands: List[str] = []
        self.uploaded: Optional[bytes] = None
        self.data_connections = 0
        self.disconnected = asyncio.Event()
        self.server: Optional[asyncio.AbstractServer] = None
        self.data_server: Optional[asyncio.AbstractServer] = None
        self.data_connection: Optional[asyncio.Future] = None
        self.writers: List[asyncio.StreamWriter] = []

    async def start(self) -> "StubServer":
        self.server = await asyncio.start_server(self.handle, HOST, 0)
        return self

    @property
    def port(self) -> int:
        return self.server.sockets[0].getsockname()[1]

    @property
    def address(self) -> str:
        return f"{HOST}:{self.port}"

    async def close(self) -> None:
        for writer in self.writers:
            writer.close()
        for server in (self.server, self.data_server):
            if server is not None:
                server.close()

    async def handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self.writers.append(writer)
        try:
            writer.write(self.greeting.encode())
            await writer.drain()
            while True:
                line = await reader.readline()
                if not line:
                    break
                text = line.decode().rstrip("\r\n")
                self.commands.append(text)
                verb, _, argument = text.partition(" ")
                if verb in self.replies:
                    writer.write(self.replies[verb].encode())
                    await writer.drain()
                    if verb == "QUIT":
                        break
                elif verb == "PASV":
                    await self.pasv(writer)
                elif verb == "RETR":
                    await self.retr(writer)
                elif verb == "STOR":
                    await self.stor(writer)
                else:
                    writer.write(b"502 Command not implemented\r\n")
                    await writer.drain()
        except ConnectionError:
            pass
        finally:
            self.disconnected.set()
            writer.close()

    async def on_data(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self.data_connections += 1
        self.writers.append(writer)
        if not self.data_connection.done():
            self.data_connection.set_result((reader, writer))

    async def pasv(self, writer: asyncio.StreamWriter) -> None:
        if self.data_server is not None:
            self.data_server.close()
        self.data_connection = asyncio.get_running_loop().create_future()
        self.data_server = await asyncio.start_server(self.on_data, HOST, 0)
        port = self.data_server.sockets[0].getsockname()[1]
        writer.write(f"227 Entering Passive Mode ({self.pasv_host},{port >> 8},{port & 0xFF}).\r\n".encode())
        await writer.drain()

    async def retr(self, writer: asyncio.StreamWriter) -> None:
        if self.preliminary:
            writer.write(b"150 Opening BINARY mode data connection\r\n")
            await writer.drain()
        _, data = await asyncio.wait_for(self.data_connection, 5)
        try:
            data.write(self.payload)
            await data.drain()
            data.close()
            await data.wait_closed()
        except ConnectionError:
            writer.write(b"426 Connection closed; transfer aborted\r\n")
        else:
            writer.write(b"226 Transfer complete\r\n")
        await writer.drain()

    async def stor(self, writer: asyncio.StreamWriter) -> None:
        if self.preliminary:
            writer.write(b"150 Ok to send data\r\n")
            await writer.drain()
        reader, data = await asyncio.wait_for(self.data_connection, 5)
        self.uploaded = await reader.read()
        data.close()
        writer.write(b"226 Transfer complete\r\n")
        await writer.drain()


@pytest_asyncio.fixture
async def ftp_server():
    """Factory for started StubServer instances, all closed after the test."""
    servers = []

    async def factory(**kwargs) -> StubServer:
        server = await StubServer(**kwargs).start()
        servers.append(server)
        return server

    yield factory

    for server in servers:
        await server.close()


@pytest.fixture
def payload() -> bytes:
    # Not a multiple of the chunk size, so the last read is a short one
    return bytes(range(256)) * 40 + b"tail"
