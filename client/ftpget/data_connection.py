import os
import socket
import logging
from typing import BinaryIO, Callable, Optional

from ftpget.connection import open_connection
from ftpget.errors import DownloadIOError, FTPClientError, FTPTimeout, TransferTruncated

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 4096


def discard_partial(local_path: str) -> bool:
    """Remove an incompletely written file; True when it is gone."""
    try:
        os.remove(local_path)
    except FileNotFoundError:
        return True
    except OSError as e:
        logger.warning(f"[DATA] Could not remove incomplete file {local_path}: {e}")
        return False
    logger.info(f"[DATA] Removed incomplete file {local_path}")
    return True


class DataConnectionManager:
    def __init__(self, ip: str, port: int, timeout: float = 10.0,
                 chunk_size: int = DEFAULT_CHUNK_SIZE):
        """
        Handles the passive-mode data connection of the client.
        """
        self.ip = ip
        self.port = port
        self.timeout = timeout
        self.chunk_size = chunk_size
        self.data_socket: Optional[socket.socket] = None
        self.bytes_received = 0

    def connect(self):
        """
        Opens the TCP connection to the endpoint advertised by PASV.
        """
        self.data_socket = open_connection(self.ip, self.port, self.timeout)
        logger.info(f"[DATA] Connected to {self.ip}:{self.port}")

    def close(self):
        if self.data_socket:
            self.data_socket.close()
            self.data_socket = None
            logger.info(f"[DATA] Disconnected from {self.ip}:{self.port}")

    def copy_to(self, sink: BinaryIO, progress: Callable[[int], None] = None) -> int:
        """
        Copies bytes from the data connection into ``sink`` until the server
        closes the connection, then closes it. Returns the number of bytes copied.
        """
        if self.data_socket is None:
            raise RuntimeError("Data connection is not established.")
        try:
            while True:
                try:
                    data = self.data_socket.recv(self.chunk_size)
                except socket.timeout as e:
                    raise FTPTimeout(
                        f"Data connection stalled after {self.bytes_received} bytes") from e
                except OSError as e:
                    raise TransferTruncated(
                        f"Data connection failed after {self.bytes_received} bytes: {e}") from e
                if not data:
                    break
                try:
                    sink.write(data)
                except OSError as e:
                    raise DownloadIOError(f"Cannot write downloaded data: {e}") from e
                self.bytes_received += len(data)
                if progress is not None:
                    progress(self.bytes_received)
        finally:
            self.close()
        return self.bytes_received

    def receive_file(self, local_path: str, progress: Callable[[int], None] = None) -> int:
        """
        Receives the file from the server and stores it at local_path.
        A file left incomplete by a failed transfer is removed.
        """
        try:
            f = open(local_path, 'wb')
        except OSError as e:
            self.close()
            raise DownloadIOError(f"Cannot create file {local_path}: {e}") from e
        try:
            with f:
                total = self.copy_to(f, progress)
        except FTPClientError:
            discard_partial(local_path)
            raise
        except OSError as e:
            # flush on close
            discard_partial(local_path)
            raise DownloadIOError(f"Cannot write {local_path}: {e}") from e
        logger.info(f"[DATA] File downloaded to {local_path} ({total} bytes)")
        return total
