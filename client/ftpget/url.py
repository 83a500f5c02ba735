"""Parsing of ``ftp://[<user>:<password>@]<host>[:<port>]/<url-path>`` URLs."""

import logging
import posixpath
import re
import socket
from dataclasses import dataclass
from urllib.parse import unquote

from ftpget.connection import FTP_PORT
from ftpget.errors import UnresolvableHost, UrlParseError

logger = logging.getLogger(__name__)

DEFAULT_USER = "rcom"
DEFAULT_PASSWORD = "rcom"

URL_PATTERN = re.compile(
    r"^(?P<scheme>[A-Za-z][A-Za-z0-9+.-]*)://"
    r"(?:(?P<user>[^:@/]*):(?P<password>[^@/]*)@)?"
    r"(?P<host>[^/:@]*)"
    r"(?::(?P<port>[^/]*))?"
    r"(?P<path>/.*)?$"
)


@dataclass(frozen=True)
class ParsedURL:
    host: str
    resource: str
    file: str
    user: str
    password: str
    address: str
    port: int = FTP_PORT


def resolve_host(host: str) -> str:
    """Resolve ``host`` to a dotted-quad IPv4 address."""
    try:
        address = socket.gethostbyname(host)
    except (socket.gaierror, UnicodeError) as e:
        raise UnresolvableHost(f"Invalid hostname '{host}'") from e
    if not address:
        raise UnresolvableHost(f"Invalid hostname '{host}'")
    logger.debug(f"Resolved {host} to {address}")
    return address


def parse_url(url: str, default_user: str = DEFAULT_USER,
              default_password: str = DEFAULT_PASSWORD, resolve: bool = True) -> ParsedURL:
    match = URL_PATTERN.match(url.strip())
    if match is None:
        raise UrlParseError(f"Malformed URL '{url}'")
    if match.group("scheme").lower() != "ftp":
        raise UrlParseError(f"Unsupported scheme '{match.group('scheme')}', expected ftp")

    host = match.group("host")
    if not host:
        raise UrlParseError(f"Missing host in '{url}'")

    port = FTP_PORT
    if match.group("port") is not None:
        try:
            port = int(match.group("port"))
        except ValueError:
            raise UrlParseError(f"Invalid port '{match.group('port')}'") from None
        if not 0 < port < 65536:
            raise UrlParseError(f"Port {port} out of range")

    if match.group("user") is None:
        user, password = default_user, default_password
    else:
        user = unquote(match.group("user"))
        password = unquote(match.group("password"))
    if not user or not password:
        raise UrlParseError(f"Empty user or password in '{url}'")

    resource = unquote((match.group("path") or "").lstrip("/"))
    file = posixpath.basename(resource)
    if not resource or file in ("", ".", ".."):
        raise UrlParseError(f"URL '{url}' does not name a file")

    address = resolve_host(host) if resolve else host
    return ParsedURL(host=host, resource=resource, file=file, user=user,
                     password=password, address=address, port=port)
