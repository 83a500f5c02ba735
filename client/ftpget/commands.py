import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Iterable, Optional

from ftpget.connection import ControlConnectionManager
from ftpget.errors import (
    FTPClientError,
    FTPTimeout,
    TransferTruncated,
    TruncatedReply,
    UnexpectedReplyCode,
)
from ftpget.parser import Parser, PassiveEndpoint, Reply

logger = logging.getLogger(__name__)

SV_READY4AUTH = 220
SV_READY4PASS = 331
SV_LOGINSUCCESS = 230
SV_NOT_IMPLEMENTED_SUPERFLUOUS = 202
SV_PASSIVE = 227
SV_READY4TRANSFER = (150, 125)
SV_TRANSFER_COMPLETE = (226, 250)
SV_GOODBYE = 221
SV_LOGIN_REJECTED = (530, 430)

DEFAULT_MAX_REPLY_LINES = 1000


class Phase(Enum):
    CONNECTED = "connected"
    GREETED = "greeted"
    AUTHENTICATED = "authenticated"
    PASSIVE_NEGOTIATED = "passive_negotiated"
    TRANSFER_REQUESTED = "transfer_requested"
    CLOSED = "closed"
    FAILED = "failed"


class ClientCommandHandler:
    """Drives the command/response sequence of a single download session.

    Each step sends one command and waits for its complete reply before the
    next one is issued. Any unexpected reply moves the session to
    ``Phase.FAILED`` and raises; ``failure`` then holds ``(step, reply_text)``.
    ``quit`` is safe to call from any phase and never raises.
    """

    def __init__(self, connection: ControlConnectionManager, parser: Parser = None,
                 trust_pasv_address: bool = True,
                 max_reply_lines: int = DEFAULT_MAX_REPLY_LINES):
        self.conn = connection
        self.parser = parser or Parser()
        self.trust_pasv_address = trust_pasv_address
        self.max_reply_lines = max_reply_lines
        self.phase = Phase.CONNECTED
        self.failure = None
        self.last_reply: Optional[Reply] = None
        self.data_addr: Optional[PassiveEndpoint] = None
        self.transfer_size: Optional[int] = None
        self._completion_pending = False
        # history as list of dicts: {"time":..., "command":..., "raw":..., "parsed":..., "error":bool}
        self.history = []

    # Reply framing
    def read_reply(self) -> Reply:
        """Read lines until the reply is complete and collapse them.

        A line ``NNN-`` opens a multi-line reply that only a final line with
        the same code closes; anything in between belongs to the reply. Bare
        text lines seen before any coded line are kept but do not end it.
        A reply longer than ``max_reply_lines`` raises ``TruncatedReply``.
        """
        lines = []
        opening = None
        while True:
            line = self.conn.receive_response()
            lines.append(line.raw_line)
            if len(lines) > self.max_reply_lines:
                raise TruncatedReply(
                    f"Reply exceeds {self.max_reply_lines} lines without a final line",
                    reply=lines[0])
            if line.code is None:
                continue
            if opening is None:
                if line.is_final:
                    return Reply(line.code, lines)
                opening = line.code
            elif line.is_final and line.code == opening:
                return Reply(line.code, lines)

    def _execute(self, step: str, command: Optional[str]) -> Reply:
        try:
            if command is not None:
                self.conn.send_command(command)
            reply = self.read_reply()
        except FTPTimeout as e:
            self.fail(e.step, e.reply or str(e))
            raise
        except FTPClientError as e:
            e.step = step
            self.fail(step, e.reply or str(e))
            raise
        self.last_reply = reply
        self.history.append({
            "time": datetime.now(timezone.utc),
            "command": _masked(command) if command is not None else f"({step})",
            "raw": reply.text,
            "parsed": reply,
            "error": reply.type in ("error", "unknown")
        })
        return reply

    def fail(self, step: str, text: str):
        self.phase = Phase.FAILED
        self.failure = (step, text)
        logger.error(f"Session failed at step '{step}': {text}")

    def _expect(self, step: str, reply: Reply, expected: Iterable[int]):
        expected = tuple(expected)
        if reply.code not in expected:
            self.fail(step, reply.text)
            raise UnexpectedReplyCode(step, expected, reply.code, reply.text)

    def _require(self, *phases: Phase):
        if self.phase not in phases:
            raise RuntimeError(
                f"Command not allowed in phase {self.phase.value}, expected "
                f"{' or '.join(p.value for p in phases)}")

    # Protocol steps
    def read_banner(self) -> Reply:
        self._require(Phase.CONNECTED)
        reply = self._execute("greeting", None)
        self._expect("greeting", reply, (SV_READY4AUTH,))
        self.phase = Phase.GREETED
        return reply

    def login(self, user: str, password: str) -> Reply:
        self._require(Phase.GREETED)
        reply = self._execute("user", f"USER {user}")
        if reply.code == SV_LOGINSUCCESS:
            logger.info("Server accepted USER without a password")
            self.phase = Phase.AUTHENTICATED
            return reply
        if reply.code in SV_LOGIN_REJECTED:
            # credentials refused before the password was asked for
            self.fail("pass", reply.text)
            raise UnexpectedReplyCode("pass", (SV_READY4PASS,), reply.code, reply.text)
        self._expect("user", reply, (SV_READY4PASS,))

        reply = self._execute("pass", f"PASS {password}")
        self._expect("pass", reply, (SV_LOGINSUCCESS, SV_NOT_IMPLEMENTED_SUPERFLUOUS))
        self.phase = Phase.AUTHENTICATED
        logger.info(f"Logged in as {user}")
        return reply

    def pasv(self) -> PassiveEndpoint:
        self._require(Phase.AUTHENTICATED)
        reply = self._execute("pasv", "PASV")
        self._expect("pasv", reply, (SV_PASSIVE,))
        try:
            endpoint = self.parser.parse_pasv_response(reply.message)
        except FTPClientError as e:
            self.fail("pasv", reply.text)
            e.reply = reply.text
            raise
        if not self.trust_pasv_address:
            peer = self.conn.peer_address
            if peer != endpoint.address:
                logger.info(f"Ignoring PASV address {endpoint.address}, using control peer {peer}")
            endpoint = PassiveEndpoint(peer, endpoint.port)
        self.data_addr = endpoint
        self.phase = Phase.PASSIVE_NEGOTIATED
        return endpoint

    def retr(self, resource: str) -> Reply:
        self._require(Phase.PASSIVE_NEGOTIATED)
        reply = self._execute("retr", f"RETR {resource}")
        self._expect("retr", reply, SV_READY4TRANSFER)
        self.transfer_size = self.parser.parse_transfer_size(reply.message)
        self._completion_pending = True
        self.phase = Phase.TRANSFER_REQUESTED
        return reply

    def complete_transfer(self) -> Reply:
        """Wait for the 226 that follows a drained data connection."""
        self._require(Phase.TRANSFER_REQUESTED)
        reply = self._execute("transfer", None)
        self._completion_pending = False
        if reply.code not in SV_TRANSFER_COMPLETE:
            self.fail("transfer", reply.text)
            raise TransferTruncated(
                f"Server did not confirm the transfer: {reply.text}", reply=reply.text)
        return reply

    def quit(self) -> Optional[Reply]:
        """Send QUIT and discard its reply. Failures are logged, not raised."""
        if self.phase == Phase.CLOSED:
            return None
        reply = None
        if self.conn.connected:
            try:
                self.conn.send_command("QUIT")
                reply = self.read_reply()
                if self._completion_pending and reply.code != SV_GOODBYE:
                    # the first reply after RETR still belongs to the transfer
                    if reply.code in SV_TRANSFER_COMPLETE:
                        logger.debug(f"Discarding transfer completion reply: {reply.text}")
                    else:
                        logger.warning(f"Transfer ended with: {reply.text}")
                    reply = self.read_reply()
                self._completion_pending = False
                if reply.code != SV_GOODBYE:
                    logger.warning(f"Unexpected reply to QUIT: {reply.text}")
            except (FTPClientError, RuntimeError) as e:
                logger.warning(f"QUIT failed: {e}")
        if self.phase != Phase.FAILED:
            self.phase = Phase.CLOSED
        return reply

    # Helpers for UI
    def get_history(self):
        """Return a copy of the history list."""
        return list(self.history)

    def clear_history(self):
        self.history.clear()


def _masked(command: str) -> str:
    if command.upper().startswith("PASS "):
        return "PASS ****"
    return command
