"""Types for clamd communication.

"""
from dataclasses import dataclass
from enum import Enum


class ClamdException(Exception):
    """Raised when error occurred communicating with the clamd daemon.
    """


class ClamdTransportError(ClamdException):
    """Raised when a connection to clamd cannot be established or breaks
    in the middle of an exchange.
    """


class ClamdProtocolError(ClamdException):
    """Raised when clamd replies with something we are not able to parse.
    """


class ClamdCommand(Enum):
    """Commands understood by clamd, see man clamd(8).
    """
    PING = "PING"
    VERSION = "VERSION"
    RELOAD = "RELOAD"
    SHUTDOWN = "SHUTDOWN"
    SCAN = "SCAN"
    CONTSCAN = "CONTSCAN"
    STREAM = "STREAM"

    def line(self, argument: str | None = None) -> str:
        """Build the command line sent to clamd.

        :param argument: Optional argument (e.g. path for SCAN)
        :return: Command line, without terminator
        """
        if argument is None:
            return self.value
        if "\n" in argument or "\x00" in argument:
            raise ValueError(f"Invalid argument for {self.value}: "
                             "newline and NUL are not allowed")
        return f"{self.value} {argument}"


@dataclass(frozen=True)
class ScanResult():
    """Result of a SCAN or CONTSCAN on a single path.
    """
    path: str
    # verbatim text after the colon, e.g. "OK" or
    # "Eicar-Test-Signature FOUND"
    status: str

    @property
    def is_clean(self) -> bool:
        return self.status == "OK"


@dataclass(frozen=True)
class StreamResult():
    """Result of a STREAM scan.
    """
    status: str

    @property
    def is_clean(self) -> bool:
        return self.status == "OK"
