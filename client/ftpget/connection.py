import socket
import logging

from ftpget.errors import ConnectError, FTPTimeout, TruncatedReply
from ftpget.parser import DEFAULT_MAX_LINE, Parser, ResponseReader, ServerReply

logger = logging.getLogger(__name__)

FTP_PORT = 21


def open_connection(host: str, port: int, timeout: float) -> socket.socket:
    """Open a blocking IPv4 TCP connection bounded by ``timeout``."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.settimeout(timeout)
    try:
        sock.connect((host, port))
    except socket.timeout as e:
        sock.close()
        raise FTPTimeout(f"Timed out connecting to {host}:{port}") from e
    except OSError as e:
        sock.close()
        raise ConnectError(f"Failed to connect to {host}:{port} - {e}") from e
    return sock


class ControlConnectionManager:
    def __init__(self, host: str, port: int = FTP_PORT, timeout: float = 10.0,
                 max_line_length: int = DEFAULT_MAX_LINE):
        self.host = host
        self.port = port
        self.socket: socket.socket = None
        self.timeout = timeout
        self.reader = ResponseReader(self._recv, Parser(), max_line_length)

    @property
    def connected(self) -> bool:
        return self.socket is not None

    @property
    def peer_address(self) -> str:
        if self.socket is None:
            return self.host
        return self.socket.getpeername()[0]

    def connect(self):
        if self.socket is not None:
            raise RuntimeError("Connection already established.")
        logger.info(f"Connecting to {self.host}:{self.port} (timeout={self.timeout}s)")
        try:
            self.socket = open_connection(self.host, self.port, self.timeout)
        except (FTPTimeout, ConnectError) as e:
            logger.error(f"✗ Failed to connect to {self.host}:{self.port} - {e}")
            raise
        logger.info(f"✓ Connected to {self.host}:{self.port}")

    def disconnect(self):
        if self.socket:
            try:
                logger.info(f"Closing connection to {self.host}:{self.port}")
                self.socket.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            self.socket.close()
            logger.info(f"✓ Disconnected from {self.host}:{self.port}")
        self.socket = None

    def send_command(self, command: str):
        if self.socket is None:
            raise RuntimeError("No connection established.")
        if not command.endswith('\r\n'):
            command += '\r\n'
        shown = command.strip()
        if shown.upper().startswith("PASS "):
            shown = "PASS ****"
        logger.debug(f"→ SEND: {shown}")
        try:
            self.socket.sendall(command.encode('utf-8'))
        except socket.timeout as e:
            raise FTPTimeout(f"Timed out sending {shown.split()[0]}") from e
        except OSError as e:
            raise ConnectError(f"Control connection lost while sending {shown.split()[0]}: {e}") from e

    def receive_response(self) -> ServerReply:
        """Read exactly one reply line from the control connection."""
        if self.socket is None:
            raise RuntimeError("No connection established.")
        return self.reader.read_reply()

    def _recv(self, size: int) -> bytes:
        try:
            return self.socket.recv(size)
        except socket.timeout as e:
            raise FTPTimeout(f"No reply from {self.host}:{self.port} within {self.timeout}s") from e
        except OSError as e:
            raise TruncatedReply(f"Control connection read failed: {e}") from e
