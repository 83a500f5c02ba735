import logging
import os
import sys
import time
from typing import NamedTuple, Optional, TextIO

from ftpget.commands import ClientCommandHandler, Phase
from ftpget.config import Settings
from ftpget.connection import ControlConnectionManager
from ftpget.data_connection import DataConnectionManager, discard_partial
from ftpget.errors import ConnectError, DownloadIOError, FTPClientError
from ftpget.parser import Parser
from ftpget.url import ParsedURL, parse_url

logger = logging.getLogger(__name__)

MB = 1024.0 * 1024.0


class DownloadResult(NamedTuple):
    path: str
    size: int
    elapsed: float
    phase: Phase


class FileDownloader:
    """Runs one ``ftp://`` download from URL to local file.

    Counters (``bytes_received``, ``expected_size``, ``phase``) are plain
    attributes so a UI thread can poll them while ``run`` blocks. Status text
    goes to ``status`` (``sys.stdout`` when not given).
    """

    def __init__(self, settings: Settings = None, status: Optional[TextIO] = None):
        self.settings = settings or Settings()
        self.status = status
        self.url: Optional[ParsedURL] = None
        self.handler: Optional[ClientCommandHandler] = None
        self.bytes_received = 0
        self.expected_size: Optional[int] = None
        self._started = None

    @property
    def phase(self) -> Optional[Phase]:
        return self.handler.phase if self.handler else None

    @property
    def failure(self):
        return self.handler.failure if self.handler else None

    def history(self):
        return self.handler.get_history() if self.handler else []

    def _say(self, text: str = "", end: str = "\n"):
        print(text, end=end, file=self.status or sys.stdout, flush=True)

    def _on_progress(self, total: int):
        self.bytes_received = total
        elapsed = time.monotonic() - self._started
        if elapsed > 0:
            speed = total / MB / elapsed
            self._say(f"\rDownloaded: {total / MB:.2f} MB ({speed:.2f} MB/s)", end="")

    def _print_details(self, url: ParsedURL):
        self._say("\n=== CONNECTION DETAILS ===")
        self._say(f"Host: {url.host}")
        self._say(f"Resource: {url.resource}")
        self._say(f"File: {url.file}")
        self._say(f"User: {url.user}")
        self._say(f"Password: {'*' * len(url.password)}")
        self._say(f"IP Address: {url.address}")
        self._say(f"Port: {url.port}")
        self._say("==========================")

    def local_path(self, url: ParsedURL) -> str:
        try:
            os.makedirs(self.settings.output_dir, exist_ok=True)
        except OSError as e:
            raise DownloadIOError(
                f"Cannot create download folder {self.settings.output_dir}: {e}") from e
        return os.path.join(self.settings.output_dir, url.file)

    def _discard(self, path: str):
        if discard_partial(path):
            self._say(f"\nRemoved incomplete file: {path}")
        else:
            self._say(f"\nIncomplete file left at: {path}")

    def run(self, raw_url: str) -> DownloadResult:
        settings = self.settings
        url = parse_url(raw_url, settings.default_user, settings.default_password)
        self.url = url
        self._print_details(url)

        conn = ControlConnectionManager(url.address, url.port, settings.timeout,
                                        settings.max_line_length)
        conn.connect()
        handler = ClientCommandHandler(conn, Parser(), settings.trust_pasv_address,
                                       settings.max_reply_lines)
        self.handler = handler
        data_conn = None
        partial = None
        try:
            banner = handler.read_banner()
            self._say(f"{banner.code} {banner.message}")

            self._say("\n=== AUTHENTICATION ===")
            handler.login(url.user, url.password)
            self._say("Authentication successful!")

            self._say("\n=== PASSIVE MODE ===")
            endpoint = handler.pasv()
            self._say(f"Passive mode: connecting to {endpoint.address}:{endpoint.port}")
            data_conn = DataConnectionManager(endpoint.address, endpoint.port,
                                              settings.timeout, settings.chunk_size)
            try:
                data_conn.connect()
            except ConnectError as e:
                e.step = "data-connect"
                raise

            self._say(f"Requesting file: {url.resource}")
            handler.retr(url.resource)
            self.expected_size = handler.transfer_size

            self._say("\n=== FILE DOWNLOAD ===")
            path = self.local_path(url)
            self._say(f"Downloading to: {path}")
            self._started = time.monotonic()
            size = data_conn.receive_file(path, self._on_progress)
            elapsed = time.monotonic() - self._started
            self._say(f"\nDownload completed. Total: {size / MB:.2f} MB")

            if settings.verify_transfer:
                partial = path
                handler.complete_transfer()
            partial = None
        except FTPClientError as e:
            if handler.phase != Phase.FAILED:
                handler.fail(e.step, e.reply or str(e))
            if partial is not None:
                self._discard(partial)
            raise
        finally:
            if data_conn is not None:
                data_conn.close()
            handler.quit()
            conn.disconnect()

        logger.info(f"Downloaded {url.resource} to {path} ({size} bytes in {elapsed:.2f}s)")
        return DownloadResult(path, size, elapsed, handler.phase)


def download(raw_url: str, settings: Settings = None, status: Optional[TextIO] = None) -> DownloadResult:
    return FileDownloader(settings, status).run(raw_url)
