"""Python bindings for clamd daemon on Unix or TCP socket.

For details about commands, see man clamd(8).

Usage:
.. code-block:: python

    clamd = Clamd.unix_socket("/var/run/clamav/clamd.ctl")
    if clamd.ping():
        result = clamd.file_scan("/my/file.txt")

A new connection is opened and closed each time you run a command, so
a single client can be shared freely.  For example:
.. code-block:: python

    clamd = Clamd.tcp("127.0.0.1", 3310)
    version = clamd.version()
    verdict = clamd.stream_scan(b"some bytes")

NOTE: clamd sessions are not implemented.

"""

from .types import ClamdCommand, ClamdException, ClamdProtocolError, \
    ClamdTransportError, ScanResult, StreamResult  # noqa
from .transport import Transport, TCPTransport, UnixSocketTransport, \
    DEFAULT_HOST, DEFAULT_PORT, DEFAULT_SOCKET_PATH  # noqa
from .client import Clamd, MAX_RESPONSE_SIZE  # noqa
