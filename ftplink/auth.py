import warnings
from dataclasses import dataclass

from .errors import UsageError

Username = str
Password = str


@dataclass
class Basic:
    """
    Username and password login for FTP servers.

    FTP sends both in clear text over the control channel (USER then PASS),
    so this should only be used on networks you trust.

    Attributes:
        user: Login name sent with USER.
        password: Secret sent with PASS when the server asks for it.
    """

    user: Username
    password: Password

    def __post_init__(self) -> None:
        """
        Validate credentials before they ever reach a socket.

        Raises:
            UsageError: If either field is empty or whitespace.
        """
        if not self.user or not self.user.strip():
            raise UsageError("FTP Connection Error: User can not be blank!")

        if not self.password or not self.password.strip():
            raise UsageError("FTP Connection Error: Password can not be blank!")

        if any(char in self.user + self.password for char in "\r\n"):
            raise UsageError("FTP credentials cannot contain line breaks")

    def __repr__(self) -> str:
        return f"Basic(user={self.user!r}, password='****')"


@dataclass
class Guest(Basic):
    """
    Anonymous login as offered by public FTP mirrors.

    Logs in as ``anonymous`` and, following the usual convention, sends an
    email address as the password so the server operator knows who to
    contact.

    Attributes:
        email: Address sent as the password.
    """

    user: Username = "anonymous"
    password: Password = ""
    email: str = "anonymous@"

    def __post_init__(self) -> None:
        if not self.email.strip():
            raise UsageError("Guest email cannot be empty or whitespace")

        if "@" not in self.email:
            warnings.warn(
                f"Guest email {self.email!r} does not look like an address. "
                "Some servers refuse anonymous logins without one."
            )

        self.password = self.email
        super().__post_init__()

    def __repr__(self) -> str:
        return f"Guest(email={self.email!r})"
