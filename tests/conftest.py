import os
import shutil
import socket
import socketserver
import tempfile
import threading

import pytest
from clamd_control import app
from fakes import EICAR


class FakeClamdHandler(socketserver.BaseRequestHandler):
    """Answers a single legacy clamd command, like clamd would.
    """

    def handle(self):
        command = self.request.recv(1024).decode()
        if not command:
            # connection probe
            return
        name, _, arg = command.partition(" ")

        if name == "PING":
            self.request.sendall(b"PONG")
        elif name == "VERSION":
            self.request.sendall(b"ClamAV 1.4.2/27790/Sat Oct 17 2026\n")
        elif name == "RELOAD":
            self.request.sendall(b"RELOADING\n")
        elif name == "SCAN":
            self.request.sendall(self._verdict(arg).encode())
        elif name == "CONTSCAN":
            lines = [self._verdict(os.path.join(arg, f))
                     for f in ("clean.txt", "eicar.com")]
            self.request.sendall("".join(lines).encode())
        elif name == "STREAM":
            self._stream()
        else:
            self.request.sendall(b"UNKNOWN COMMAND\n")

    def _verdict(self, path):
        if "eicar" in path:
            return f"{path}: Eicar-Test-Signature FOUND\n"
        return f"{path}: OK\n"

    def _stream(self):
        with socket.create_server(("127.0.0.1", 0)) as listener:
            listener.settimeout(5)
            port = listener.getsockname()[1]
            self.request.sendall(f"PORT {port}\n".encode())
            conn, _ = listener.accept()
            with conn:
                data = bytearray()
                buf = conn.recv(4096)
                while buf:
                    data.extend(buf)
                    buf = conn.recv(4096)
        self.server.streamed.append(bytes(data))
        if EICAR in data:
            self.request.sendall(b"stream: Eicar-Test-Signature FOUND\n")
        else:
            self.request.sendall(b"stream: OK\n")


class FakeClamdUnixServer(socketserver.ThreadingUnixStreamServer):
    daemon_threads = True


class FakeClamdTCPServer(socketserver.ThreadingTCPServer):
    daemon_threads = True
    allow_reuse_address = True


def _serve(server):
    server.streamed = []
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    return thread


@pytest.fixture()
def clamd_socket_path():
    # unix socket paths are short, keep away from pytest tmp_path
    tmpdir = tempfile.mkdtemp(prefix="clamd")
    socket_path = os.path.join(tmpdir, "clamd.ctl")
    server = FakeClamdUnixServer(socket_path, FakeClamdHandler)
    _serve(server)

    yield socket_path

    server.shutdown()
    server.server_close()
    shutil.rmtree(tmpdir, ignore_errors=True)


@pytest.fixture()
def clamd_tcp_server():
    server = FakeClamdTCPServer(("127.0.0.1", 0), FakeClamdHandler)
    _serve(server)

    yield server

    server.shutdown()
    server.server_close()


@pytest.fixture()
def unused_tcp_port():
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.fixture()
def test_app():
    app.config.update({
        "TESTING": True,
        "CLAMD_SOCKET_PATH": "/nonexistent/clamd.sock",
    })

    yield app

    # clean up / reset resources here
    for key in ("CLAMD_HOST", "CLAMD_PORT", "CLAMD_SOCKET_PATH"):
        app.config.pop(key, None)


@pytest.fixture()
def client(test_app):
    return test_app.test_client()
