__version__ = "1.0.0"
__author__ = "Andrew Hernandez"
__email__ = "andromedeyz@hotmail.com"
__license__ = "MIT"
__description__ = "A small async FTP client: login, passive-mode downloads and uploads, nothing it doesn't need."
__url__ = "http://github.com/ApaxPhoenix/FtpLink"

# FTP reply codes - what the server is trying to tell you. Error messages
# quote these so a bare "550" comes with its meaning attached.
codes = {
    # 1xx - "Hold on, the transfer is starting"
    110: "Restart marker reply",
    120: "Service ready in n minutes",
    125: "Data connection already open; transfer starting",
    150: "File status okay; about to open data connection",
    # 2xx - "Done"
    200: "Command okay",
    202: "Command not implemented, superfluous at this site",
    211: "System status, or system help reply",
    213: "File status",
    214: "Help message",
    215: "NAME system type",
    220: "Service ready for new user",
    221: "Service closing control connection",
    225: "Data connection open; no transfer in progress",
    226: "Closing data connection",
    227: "Entering Passive Mode",
    230: "User logged in, proceed",
    250: "Requested file action okay, completed",
    257: "PATHNAME created",
    # 3xx - "Send the next piece" (PASS after USER, mostly)
    331: "User name okay, need password",
    332: "Need account for login",
    350: "Requested file action pending further information",
    # 4xx - "Not now, maybe later"
    421: "Service not available, closing control connection",
    425: "Can't open data connection",
    426: "Connection closed; transfer aborted",
    450: "Requested file action not taken",
    451: "Requested action aborted: local error in processing",
    452: "Requested action not taken; insufficient storage space",
    # 5xx - "No"
    500: "Syntax error, command unrecognized",
    501: "Syntax error in parameters or arguments",
    502: "Command not implemented",
    503: "Bad sequence of commands",
    504: "Command not implemented for that parameter",
    530: "Not logged in",
    532: "Need account for storing files",
    550: "Requested action not taken; file unavailable",
    551: "Requested action aborted: page type unknown",
    552: "Requested file action aborted; exceeded storage allocation",
    553: "Requested action not taken; file name not allowed",
}

# Opening the control connection and running a session over it
from .core import (
    connect,  # Open a control connection and read the server's welcome
    Session,  # Login, commands, downloads and uploads over one connection
    parse_address,  # Split "host:port" the way connect does
)

# Connect and log in for the length of an async with block
from .ftp import FtpClient

# The protocol pieces, for when you want to drive the wire yourself
from .protocol import (
    CRLF,
    CHUNK_SIZE,
    Mode,  # A for ASCII, I for binary
    Response,  # One complete server reply
    check_response_code,
    extract_data_port,
)

# How a transfer progresses
from .transfer import Direction, State, Transfer

# Channel timeouts
from .config import Timeout

# Who we log in as
from .auth import (
    Basic,  # Classic username and password login
    Guest,  # Anonymous access for public servers
)

# What can go wrong
from .errors import (
    FtpError,
    UsageError,
    TransportError,
    ProtocolError,
    StatusCodeError,
    PassiveParseError,
    LocalFileError,
)

# Everything you can import and use
__all__ = [
    # Sessions
    "connect",
    "Session",
    "parse_address",
    "FtpClient",
    # Protocol
    "CRLF",
    "CHUNK_SIZE",
    "Mode",
    "Response",
    "check_response_code",
    "extract_data_port",
    "codes",
    # Transfers
    "Direction",
    "State",
    "Transfer",
    # Configuration
    "Timeout",
    "Basic",
    "Guest",
    # Errors
    "FtpError",
    "UsageError",
    "TransportError",
    "ProtocolError",
    "StatusCodeError",
    "PassiveParseError",
    "LocalFileError",
    # Package info
    "__version__",
    "__author__",
    "__email__",
    "__license__",
    "__description__",
    "__url__",
]

# Make sure you're running a Python version aioftp still supports
import sys

if sys.version_info < (3, 10):
    raise RuntimeError("FtpLink needs Python 3.10 or newer to work properly")
