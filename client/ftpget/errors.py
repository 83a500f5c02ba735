"""Failure types raised by the FTP download client.

Every error carries the protocol ``step`` it happened in and the text of the
last server reply (empty when no reply was involved), so the orchestrator can
render a single human readable reason.
"""


class FTPClientError(Exception):
    step = "client"

    def __init__(self, message: str, step: str = None, reply: str = ""):
        super().__init__(message)
        if step is not None:
            self.step = step
        self.reply = reply


class UrlParseError(FTPClientError, ValueError):
    step = "url"


class UnresolvableHost(FTPClientError):
    step = "resolve"


class ConnectError(FTPClientError, ConnectionError):
    step = "connect"


class TruncatedReply(FTPClientError):
    step = "reply"


class MalformedPassiveReply(FTPClientError, ValueError):
    step = "pasv"


class UnexpectedReplyCode(FTPClientError):
    def __init__(self, step: str, expected, actual, reply: str = ""):
        self.expected = tuple(expected)
        self.actual = actual
        expected_str = "/".join(str(c) for c in self.expected)
        super().__init__(
            f"expected {expected_str}, got {actual if actual is not None else 'no code'}: {reply}",
            step=step,
            reply=reply,
        )


class DownloadIOError(FTPClientError, OSError):
    step = "write"


class TransferTruncated(FTPClientError):
    step = "transfer"


class FTPTimeout(FTPClientError, TimeoutError):
    step = "timeout"
