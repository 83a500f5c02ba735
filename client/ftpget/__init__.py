"""
Passive-mode FTP download client.
Includes the URL resolver, reply parser, connection managers and the
command sequencer that drives a download session.
"""

from .commands import ClientCommandHandler, Phase
from .config import Settings
from .connection import ControlConnectionManager
from .data_connection import DataConnectionManager
from .download import DownloadResult, FileDownloader, download
from .parser import Parser, PassiveEndpoint, Reply, ResponseReader, ServerReply
from .url import ParsedURL, parse_url

__all__ = [
    "ClientCommandHandler",
    "ControlConnectionManager",
    "DataConnectionManager",
    "DownloadResult",
    "FileDownloader",
    "ParsedURL",
    "Parser",
    "PassiveEndpoint",
    "Phase",
    "Reply",
    "ResponseReader",
    "ServerReply",
    "Settings",
    "download",
    "parse_url"
]
