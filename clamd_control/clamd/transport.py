"""Transports to reach clamd.

It comes in two shapes:
 - UnixSocketTransport for clamav daemon running locally
 - TCPTransport for clamav daemon on the network

Both only know how to hand out a connected socket.  The STREAM command
always needs a TCP data connection, so every transport also tells
which TCP transport to use for a given data port.

"""
import logging
import os
import socket
import typing as t
from dataclasses import dataclass

from .types import ClamdTransportError

DEFAULT_SOCKET_PATH = "/var/run/clamav/clamd.ctl"
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 3310


class Transport(t.Protocol):
    """Anything able to open a connection to clamd.
    """

    def connect(self) -> socket.socket:
        """Open a new connection to clamd.

        :return: Connected socket, owned by the caller
        :raises ClamdTransportError: if clamd can't be reached
        """

    def data_transport(self, port: int) -> "Transport":
        """Transport for the STREAM data connection on the given port.
        """


def _open(family: socket.AddressFamily,
          address: t.Any,
          timeout: float | None,
          what: str) -> socket.socket:
    sock = socket.socket(family, socket.SOCK_STREAM)
    if timeout is not None:
        sock.settimeout(timeout)
    try:
        sock.connect(address)
    except (OSError, OverflowError) as e:
        # OverflowError: port out of range
        sock.close()
        raise ClamdTransportError(f"Unable to connect to clamd {what}: "
                                  f"{e}") from e
    logging.debug("Connected to clamd %s", what)
    return sock


@dataclass(frozen=True)
class TCPTransport():
    """Connect to clamd over TCP socket.

    This is the recommended (only) option when clamd is running on
    other host in the network.

    When using this option, clamd should be running with 'TCPSocket <port>'
    configuration option in clamd.conf (see man clamd.conf(5)).
    """
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    # seconds, None keeps the OS defaults
    timeout: float | None = None

    def connect(self) -> socket.socket:
        return _open(socket.AF_INET,
                     (self.host, self.port),
                     self.timeout,
                     f"at {self.host}:{self.port}")

    def data_transport(self, port: int) -> "TCPTransport":
        return TCPTransport(host=self.host, port=port, timeout=self.timeout)


@dataclass(frozen=True)
class UnixSocketTransport():
    """Connect to clamd over UNIX domain socket.

    This is the recommended option when clamd is running on the same host.

    When using this option, clamd should be running with 'LocalSocket <path>'
    configuration option in clamd.conf (see man clamd.conf(5)).
    """
    socket_path: str = DEFAULT_SOCKET_PATH
    # host where STREAM data ports are opened
    stream_host: str = DEFAULT_HOST
    timeout: float | None = None

    def connect(self) -> socket.socket:
        if not os.path.exists(self.socket_path):
            raise ClamdTransportError("clamd unix socket not found at " +
                                      self.socket_path +
                                      ". Is the clamd daemon running?")
        return _open(socket.AF_UNIX,
                     self.socket_path,
                     self.timeout,
                     f"unix socket {self.socket_path}")

    def data_transport(self, port: int) -> TCPTransport:
        return TCPTransport(host=self.stream_host,
                            port=port,
                            timeout=self.timeout)
