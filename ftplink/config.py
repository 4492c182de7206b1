from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Timeout:
    """
    Timeout configuration for FTP channels.

    The protocol engine itself never gives up on a slow server. When a
    Timeout is handed to a session, every channel operation is bounded
    instead: opening connections, waiting for reply lines and data blocks,
    and flushing writes. An expired timeout surfaces as a TransportError
    and the transfer in progress is abandoned.

    Attributes:
        connect: Time to wait for the control or data TCP connection.
                Covers DNS resolution and the TCP handshake.
        read: Time to wait for each reply line or data block.
              Long transfers are fine as long as bytes keep arriving.
        write: Time to wait for a command or data chunk to be flushed.
               Slow uploads to a congested server trip this one first.
    """

    connect: Optional[float] = 5.0  # Time to wait for TCP connection establishment
    read: Optional[float] = 30.0  # Time to wait for each reply line or data block
    write: Optional[float] = 10.0  # Time to wait for each write to drain

    def __post_init__(self) -> None:
        """
        Validate timeout configuration after initialization.

        None disables a single timeout; anything else must be positive.

        Raises:
            ValueError: If a timeout value is zero or negative.
        """
        for name in ("connect", "read", "write"):
            value = getattr(self, name)
            if value is not None and value <= 0:
                raise ValueError(f"{name.capitalize()} timeout must be positive")
