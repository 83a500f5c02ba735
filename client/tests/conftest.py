import io
import logging
import socket
import threading

import pytest

from ftpget.parser import ResponseReader

logger = logging.getLogger(__name__)


class FakeControl:
    """Control connection stand-in that replays scripted server bytes."""

    def __init__(self, script: bytes, peer_address: str = "10.0.0.1"):
        self.stream = io.BytesIO(script)
        self.reader = ResponseReader(self.stream.read)
        self.sent = []
        self.connected = True
        self.peer_address = peer_address

    def send_command(self, command: str):
        self.sent.append(command)

    def receive_response(self):
        return self.reader.read_reply()


class ScriptedFTPServer:
    """Minimal RFC 959 server: USER/PASS/PASV/RETR/QUIT on 127.0.0.1.

    ``overrides`` maps a command name to raw reply lines sent instead of the
    normal handling, e.g. ``{"PASV": ["227 garbage"]}``.
    """

    def __init__(self, files=None, users=None, greeting=("220 Service ready",),
                 overrides=None, pasv_address="127,0,0,1", truncate_after=None,
                 size_hint=True):
        self.files = files or {}
        self.users = users if users is not None else {"rcom": "rcom"}
        self.greeting = list(greeting)
        self.overrides = overrides or {}
        self.pasv_address = pasv_address
        self.truncate_after = truncate_after
        self.size_hint = size_hint
        self.commands = []
        self.server_sock = None
        self.thread = None
        self._data_sock = None
        self._user = None

    @property
    def port(self) -> int:
        return self.server_sock.getsockname()[1]

    def url(self, path: str, credentials: str = "") -> str:
        return f"ftp://{credentials}127.0.0.1:{self.port}/{path}"

    def start(self):
        self.server_sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.server_sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self.server_sock.bind(("127.0.0.1", 0))
        self.server_sock.listen(5)
        self.thread = threading.Thread(target=self._serve, daemon=True)
        self.thread.start()
        return self

    def stop(self):
        try:
            self.server_sock.close()
        except OSError:
            pass
        if self.thread is not None:
            self.thread.join(timeout=5)

    def _serve(self):
        try:
            client_sock, client_addr = self.server_sock.accept()
        except OSError:
            return
        client_sock.settimeout(5)
        try:
            self._handle_client(client_sock)
        except OSError:
            logger.exception("Fake server connection error")
        finally:
            client_sock.close()
            self._cleanup_pasv()

    def _send(self, sock, *lines):
        for line in lines:
            sock.sendall(line.encode("utf-8") + b"\r\n")

    def _handle_client(self, sock):
        if self.greeting:
            self._send(sock, *self.greeting)
        buf = b""
        while True:
            chunk = sock.recv(4096)
            if not chunk:
                return
            buf += chunk
            while b"\r\n" in buf:
                raw, buf = buf.split(b"\r\n", 1)
                line = raw.decode("utf-8")
                self.commands.append(line)
                name, _, arg = line.partition(" ")
                name = name.upper()
                if name in self.overrides:
                    self._send(sock, *self.overrides[name])
                    continue
                if not self._dispatch(sock, name, arg):
                    return

    def _dispatch(self, sock, name, arg) -> bool:
        if name == "USER":
            self._user = arg
            self._send(sock, "331 Password required")
        elif name == "PASS":
            if self._user in self.users and self.users[self._user] == arg:
                self._send(sock, "230 Login successful")
            else:
                self._send(sock, "530 Login incorrect")
        elif name == "PASV":
            self._cleanup_pasv()
            self._data_sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
            self._data_sock.bind(("127.0.0.1", 0))
            self._data_sock.listen(1)
            self._data_sock.settimeout(5)
            data_port = self._data_sock.getsockname()[1]
            self._send(sock, f"227 Entering Passive Mode ({self.pasv_address},{data_port // 256},{data_port % 256})")
        elif name == "RETR":
            self._retr(sock, arg)
        elif name == "QUIT":
            self._send(sock, "221 Goodbye")
            return False
        else:
            self._send(sock, f"500 Command '{name}' not recognized")
        return True

    def _retr(self, sock, filename):
        if self._data_sock is None:
            self._send(sock, "425 Use PASV first")
            return
        if filename not in self.files:
            self._send(sock, f"550 {filename}: No such file")
            self._cleanup_pasv()
            return
        data_conn, _ = self._data_sock.accept()
        payload = self.files[filename]
        if self.size_hint:
            self._send(sock, f"150 Opening BINARY mode data connection for {filename} ({len(payload)} bytes)")
        else:
            self._send(sock, f"150 Opening data connection for {filename}")
        try:
            if self.truncate_after is not None:
                data_conn.sendall(payload[:self.truncate_after])
            else:
                data_conn.sendall(payload)
        finally:
            data_conn.close()
            self._cleanup_pasv()
        if self.truncate_after is not None:
            self._send(sock, "426 Connection closed; transfer aborted")
        else:
            self._send(sock, "226 Transfer complete")

    def _cleanup_pasv(self):
        if self._data_sock is not None:
            self._data_sock.close()
            self._data_sock = None


@pytest.fixture
def control():
    return FakeControl


@pytest.fixture
def ftp_server():
    servers = []

    def factory(**kwargs):
        server = ScriptedFTPServer(**kwargs).start()
        servers.append(server)
        return server

    yield factory
    for server in servers:
        server.stop()
