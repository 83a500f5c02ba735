import os
from dataclasses import dataclass, replace

from ftpget.commands import DEFAULT_MAX_REPLY_LINES
from ftpget.data_connection import DEFAULT_CHUNK_SIZE
from ftpget.parser import DEFAULT_MAX_LINE
from ftpget.url import DEFAULT_PASSWORD, DEFAULT_USER

TRUE_VALUES = ('1', 'true', 'yes')


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in TRUE_VALUES


def _env_number(name: str, default, cast):
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    try:
        number = cast(value)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {value!r}") from None
    if number <= 0:
        raise ValueError(f"{name} must be positive, got {value!r}")
    return number


@dataclass(frozen=True)
class Settings:
    output_dir: str = "downloads"
    timeout: float = 10.0
    default_user: str = DEFAULT_USER
    default_password: str = DEFAULT_PASSWORD
    verify_transfer: bool = False
    trust_pasv_address: bool = True
    chunk_size: int = DEFAULT_CHUNK_SIZE
    max_line_length: int = DEFAULT_MAX_LINE
    max_reply_lines: int = DEFAULT_MAX_REPLY_LINES

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            output_dir=os.getenv('FTPGET_OUTPUT_DIR', cls.output_dir),
            timeout=_env_number('FTPGET_TIMEOUT', cls.timeout, float),
            default_user=os.getenv('FTPGET_DEFAULT_USER', cls.default_user),
            default_password=os.getenv('FTPGET_DEFAULT_PASSWORD', cls.default_password),
            verify_transfer=_env_bool('FTPGET_VERIFY_TRANSFER', cls.verify_transfer),
            trust_pasv_address=_env_bool('FTPGET_TRUST_PASV_ADDRESS', cls.trust_pasv_address),
            chunk_size=_env_number('FTPGET_CHUNK_SIZE', cls.chunk_size, int),
            max_line_length=_env_number('FTPGET_MAX_LINE', cls.max_line_length, int),
            max_reply_lines=_env_number('FTPGET_MAX_REPLY_LINES', cls.max_reply_lines, int),
        )

    def override(self, **changes) -> "Settings":
        """Copy with every change that is not ``None`` applied."""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})
