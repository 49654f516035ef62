"""Client for clamd.

The client owns a transport (see transport.py) and opens a new
connection for each command, closing it as soon as the response is
read.  Once connection is established, the behaviour is the same for
every transport.

Responses are read with a single bounded recv: anything clamd sends
beyond max_response_size is truncated.

"""
import logging
import socket

from . import parser
from .transport import (DEFAULT_HOST, DEFAULT_PORT, DEFAULT_SOCKET_PATH,
                        TCPTransport, Transport, UnixSocketTransport)
from .types import (ClamdCommand, ClamdException, ClamdTransportError,
                    ScanResult, StreamResult)

MAX_RESPONSE_SIZE = 20000


class Clamd():
    """Client for clamd daemon.
    """
    def __init__(self,
                 transport: Transport,
                 max_response_size: int = MAX_RESPONSE_SIZE,
                 cmd_terminator: bytes = b''):
        """Create clamd client instance.

        :param transport: Transport used to reach clamd
        :param max_response_size: Max bytes read for each response
        :param cmd_terminator: Terminator of clamd commands, b'' sends
            commands verbatim (legacy format)
        """
        self.transport = transport
        self.max_response_size = max_response_size
        self.cmd_terminator = cmd_terminator

        # cmd specifier is a prefix we put before the command.  Its
        # value is 'z' for null terminated commands or 'n' for newline
        # terminated commands.  Read more in man clamd(8)
        if cmd_terminator == b'':
            self.cmd_specifier = b''
        elif cmd_terminator == b'\x00':
            self.cmd_specifier = b'z'
        elif cmd_terminator == b'\n':
            self.cmd_specifier = b'n'
        else:
            raise ClamdException("Unknown command terminator, "
                                 "'', \\x00 or \\n accepted. "
                                 "Read man clamd(8) for details")

    @classmethod
    def unix_socket(cls,
                    socket_path: str = DEFAULT_SOCKET_PATH,
                    stream_host: str = DEFAULT_HOST,
                    timeout: float | None = None,
                    **kwargs) -> "Clamd":
        """Client for clamd on a local UNIX domain socket.
        """
        return cls(UnixSocketTransport(socket_path=socket_path,
                                       stream_host=stream_host,
                                       timeout=timeout),
                   **kwargs)

    @classmethod
    def tcp(cls,
            host: str = DEFAULT_HOST,
            port: int = DEFAULT_PORT,
            timeout: float | None = None,
            **kwargs) -> "Clamd":
        """Client for clamd on a TCP socket.
        """
        return cls(TCPTransport(host=host, port=port, timeout=timeout),
                   **kwargs)

    def ping(self) -> bool:
        """Execute clamd PING command.

        Check the server's state. It should reply with "PONG".
        """
        try:
            return parser.parse_pong(self._exchange(ClamdCommand.PING.line()))
        except ClamdException as e:
            logging.warning("clamd PING failed: %s", e)
            return False

    def version(self) -> str | None:
        """Execute clamd VERSION command.

        Print program and database versions.

        :return: Version string, None if clamd could not be reached
        """
        try:
            raw = self._exchange(ClamdCommand.VERSION.line())
        except ClamdException as e:
            logging.warning("clamd VERSION failed: %s", e)
            return None
        return parser.parse_version(raw)

    def ready(self) -> bool:
        """Check that clamd is reachable and answers to VERSION.
        """
        try:
            self.transport.connect().close()
        except ClamdException as e:
            logging.warning("clamd not ready: %s", e)
            return False
        return self.version() is not None

    def reload(self) -> str | None:
        """Execute clamd RELOAD command.

        Reload the virus databases.

        :return: Raw clamd response, None if clamd could not be reached
        """
        return self._simple_command(ClamdCommand.RELOAD)

    def shutdown(self) -> str | None:
        """Execute clamd SHUTDOWN command.

        Perform a clean exit of clamd.

        :return: Raw clamd response, None if clamd could not be reached
        """
        return self._simple_command(ClamdCommand.SHUTDOWN)

    def file_scan(self, filepath: str) -> ScanResult:
        """Execute clamd SCAN command.

        Scan a file or a directory (recursively) with archive support
        enabled (if not disabled in clamd.conf). Stops at the first
        infected file in a directory.

        :param filepath: Path of the file to scan, as seen by clamd
        :return: Result of the scanning
        :raises ClamdTransportError: if clamd could not be reached
        :raises ClamdProtocolError: if the response can't be parsed
        """
        raw = self._exchange(ClamdCommand.SCAN.line(filepath))
        return parser.parse_scan_line(parser.trim(raw).split("\n")[0])

    def continue_scan(self, filepath: str) -> list[ScanResult]:
        """Execute clamd CONTSCAN command.

        Like SCAN, but don't stop scanning on infected files.

        :param filepath: Path of the file or directory to scan
        :return: One result per line of the response, in clamd order
        :raises ClamdTransportError: if clamd could not be reached
        :raises ClamdProtocolError: if any line can't be parsed
        """
        raw = self._exchange(ClamdCommand.CONTSCAN.line(filepath))
        return parser.parse_scan_response(raw)

    def stream_scan(self, buffer: bytes | str) -> StreamResult:
        """Execute clamd STREAM command.

        clamd replies on the control connection with "PORT <n>": the
        buffer is written to a new TCP connection on that port, which
        is closed to signal the end of data.  The verdict then comes
        back on the control connection.

        :param buffer: Data to scan
        :return: Result of the scanning
        :raises ClamdTransportError: if clamd could not be reached
        :raises ClamdProtocolError: if clamd gave no usable port
        """
        if isinstance(buffer, str):
            buffer = buffer.encode()

        control = self.transport.connect()
        try:
            self._send_command(control, ClamdCommand.STREAM.line())
            port = parser.parse_stream_port(self._recv(control))

            data = self.transport.data_transport(port).connect()
            try:
                logging.debug("Streaming %d bytes to clamd port %d",
                              len(buffer), port)
                self._send(data, buffer)
            finally:
                data.close()

            return parser.parse_stream_result(self._recv(control))
        finally:
            control.close()

    def infected(self,
                 filepath: str,
                 force_check: bool = True) -> bool | None:
        """Check whether the given file is infected.

        Anything other than an "OK" status counts as infected.

        :param filepath: Path of the file to check
        :param force_check: Whether the caller requires a definite
            answer.  A failed scan yields None either way: with
            force_check the failure is logged as an error.
        :return: True/False, or None if the status could not be
            determined (e.g. clamd not available)
        """
        try:
            result = self.file_scan(filepath)
        except ClamdException as e:
            log = logging.error if force_check else logging.warning
            log("Unable to check infection of %s: %s", filepath, e)
            return None
        return not result.is_clean

    def _simple_command(self, command: ClamdCommand) -> str | None:
        """Send simple command to clamd and return its raw response.

        :param command: Command to execute
        :return: clamd response, None on failure
        """
        try:
            return self._exchange(command.line())
        except ClamdException as e:
            logging.warning("clamd %s failed: %s", command.value, e)
            return None

    def _exchange(self, command: str) -> str:
        """Open a connection, send command, read response, close.

        :param command: Command line to send
        :return: Decoded response
        """
        sock = self.transport.connect()
        try:
            self._send_command(sock, command)
            return self._recv(sock)
        finally:
            sock.close()

    def _send_command(self, sock: socket.socket, command: str) -> None:
        """Send command to clamd.

        :param command: Command to execute, possible values in man clamd(8)
        """
        full_cmd = b''.join([
            self.cmd_specifier,
            command.encode(),
            self.cmd_terminator,
        ])
        logging.debug("Sending command: %s", full_cmd)
        self._send(sock, full_cmd)

    def _send(self, sock: socket.socket, data: bytes) -> None:
        try:
            sock.sendall(data)
        except OSError as e:
            raise ClamdTransportError(
                f"Unable to send data to clamd: {e}") from e

    def _recv(self, sock: socket.socket) -> str:
        """Receive response from clamd socket, single bounded read.

        :return: Data received (UTF-8), without the command terminator
        """
        try:
            recd_raw = sock.recv(self.max_response_size)
        except OSError as e:
            raise ClamdTransportError(
                f"Unable to receive data from clamd: {e}") from e
        logging.debug("Received from clamd: %s", recd_raw)

        # clamd respects the terminator that we chose
        if self.cmd_terminator and recd_raw.endswith(self.cmd_terminator):
            recd_raw = recd_raw[:-len(self.cmd_terminator)]
        return recd_raw.decode(errors="replace")
