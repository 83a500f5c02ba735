import logging
import re
from typing import Callable, List, NamedTuple, Optional

from ftpget.errors import MalformedPassiveReply, TruncatedReply

logger = logging.getLogger(__name__)

CRLF = b"\r\n"
DEFAULT_MAX_LINE = 8192

MIN_CODE, MAX_CODE = 100, 599

RESPONSE_TYPES = {
    '1': 'preliminary',
    '2': 'success',
    '3': 'missing_info',
    '4': 'error',
    '5': 'error'
}

PASV_PATTERN = re.compile(r"\(([0-9]+),([0-9]+),([0-9]+),([0-9]+),([0-9]+),([0-9]+)\)")
SIZE_PATTERN = re.compile(r"\(([0-9]+) bytes\)")


def _reply_type(code: Optional[int]) -> str:
    if code is None:
        return 'unknown'
    return RESPONSE_TYPES.get(str(code)[0], 'unknown')


class ServerReply:
    """One decoded line of the control connection."""

    def __init__(self, code: Optional[int], is_final: bool, raw_line: str):
        self.code = code
        self.is_final = is_final
        self.raw_line = raw_line

    @property
    def message(self) -> str:
        if self.code is None:
            return self.raw_line
        return self.raw_line[4:]

    @property
    def type(self) -> str:
        return _reply_type(self.code)

    def __repr__(self):
        return f"ServerReply(code={self.code}, is_final={self.is_final}, raw_line={self.raw_line!r})"


class Reply:
    """A complete reply: every line read until the final line, collapsed to its code."""

    def __init__(self, code: Optional[int], lines: List[str]):
        self.code = code
        self.lines = lines

    @property
    def message(self) -> str:
        if not self.lines:
            return ""
        last = self.lines[-1]
        return last[4:] if last[:3].isdigit() else last

    @property
    def text(self) -> str:
        return "\n".join(self.lines)

    @property
    def type(self) -> str:
        return _reply_type(self.code)

    def __str__(self):
        return self.text


class PassiveEndpoint(NamedTuple):
    address: str
    port: int


class Parser:
    def parse_line(self, line: str) -> ServerReply:
        """Decode one reply line (terminator already stripped).

        ``NNN-`` is a continuation line of a multi-line reply, ``NNN `` the
        final line. Lines without a leading code, or with a code outside
        100..599, are bare continuation text.
        """
        code_str = line[:3]
        if len(code_str) != 3 or not (code_str.isascii() and code_str.isdigit()):
            return ServerReply(None, False, line)

        code = int(code_str)
        if not MIN_CODE <= code <= MAX_CODE:
            logger.warning(f"Malformed reply line, code out of range: {line!r}")
            return ServerReply(None, False, line)
        separator = line[3:4]
        if separator == ' ':
            return ServerReply(code, True, line)
        if separator != '-':
            logger.warning(f"Malformed reply line, no separator after code: {line!r}")
        return ServerReply(code, False, line)

    def parse_pasv_response(self, message: str) -> PassiveEndpoint:
        """Parses the PASV response to extract IP and port."""
        match = PASV_PATTERN.search(message)
        if match is None:
            logger.error(f"Failed to parse PASV response: {message}")
            raise MalformedPassiveReply("Invalid PASV response format", reply=message)
        numbers = [int(n) for n in match.groups()]
        if any(n > 255 for n in numbers):
            logger.error(f"PASV response out of range: {message}")
            raise MalformedPassiveReply("PASV values must be in 0..255", reply=message)
        ip = '.'.join(str(n) for n in numbers[:4])
        port = numbers[4] * 256 + numbers[5]
        logger.debug(f"PASV parsed: {ip}:{port}")
        return PassiveEndpoint(ip, port)

    def parse_transfer_size(self, message: str) -> Optional[int]:
        """Size hint some servers put in the 150 reply, e.g. ``(1024 bytes)``."""
        match = SIZE_PATTERN.search(message)
        return int(match.group(1)) if match else None


class ResponseReader:
    """Reads reply lines from a control connection, one byte at a time.

    ``recv`` is any callable with ``socket.recv`` semantics: it returns up to
    ``n`` bytes and ``b""`` at end of stream. Reading single bytes keeps the
    reader from consuming anything past the current line terminator.
    """

    def __init__(self, recv: Callable[[int], bytes], parser: Parser = None,
                 max_line_length: int = DEFAULT_MAX_LINE):
        self._recv = recv
        self.parser = parser or Parser()
        self.max_line_length = max_line_length

    def read_line(self) -> str:
        buffer = bytearray()
        while not buffer.endswith(CRLF):
            byte = self._recv(1)
            if not byte:
                raise TruncatedReply(
                    f"Connection closed before end of reply line ({len(buffer)} bytes read)",
                    reply=buffer.decode('utf-8', errors='replace'),
                )
            buffer += byte
            if len(buffer) > self.max_line_length:
                raise TruncatedReply(
                    f"Reply line exceeds {self.max_line_length} bytes",
                    reply=buffer[:80].decode('utf-8', errors='replace'),
                )
        return buffer[:-2].decode('utf-8', errors='replace')

    def read_reply(self) -> ServerReply:
        line = self.read_line()
        logger.debug(f"← RECV: {line}")
        return self.parser.parse_line(line)
