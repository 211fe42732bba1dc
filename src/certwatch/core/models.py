import re
from enum import Enum
from typing import List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


COMPONENT_SUFFIXES: Tuple[str, ...] = (".key", ".crt")

_DURATION_PART_PATTERN = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")
_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


def parse_duration(value: Union[str, int, float]) -> float:
    """
    Convert a duration to seconds.

    Accepts plain numbers (seconds) and Go-style duration strings such as
    ``10s``, ``1m30s`` or ``500ms``.
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return float(value)

    text = value.strip()
    if not text:
        raise ValueError("Duration cannot be empty.")

    try:
        return float(text)
    except ValueError:
        pass

    position = 0
    total = 0.0
    for match in _DURATION_PART_PATTERN.finditer(text):
        if match.start() != position:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        position = match.end()

    if position == 0 or position != len(text):
        raise ValueError(f"Invalid duration: '{value}'")
    return total


class CertwatchSettings(BaseSettings):
    """
    Runtime settings for the certificate mirror.

    Values come from CLI options, the 'certwatch' section of the config file
    and CERTWATCH_* environment variables.
    """
    model_config = SettingsConfigDict(env_prefix='CERTWATCH_', extra='ignore')

    redis_url: str = Field(..., min_length=1)
    key_prefix: str = "caddy"
    value_prefix: str = "caddy-storage-redis"
    acme_dir_name: str = "acme-v02.api.letsencrypt.org-directory"
    cert_dir: str = "/var/lib/certwatch"
    certs: List[str] = Field(..., min_length=1)
    cmd: Optional[str] = None
    debug: bool = False
    retry_sleep: float = Field(default=10.0, ge=0)
    keyspace_db: Optional[int] = Field(default=None, ge=0)
    poll_interval: float = Field(default=1.0, gt=0)
    reload_timeout: Optional[float] = Field(default=None, gt=0)

    @field_validator("retry_sleep", mode="before")
    @classmethod
    def _parse_retry_sleep(cls, value):
        return parse_duration(value)

    @field_validator("certs")
    @classmethod
    def _validate_certs(cls, value: List[str]) -> List[str]:
        for name in value:
            if not name or "/" in name:
                raise ValueError(f"Invalid certificate name: '{name}'")
        return value

    @field_validator("cmd")
    @classmethod
    def _blank_cmd_is_none(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.strip():
            return None
        return value


class StoredValue(BaseModel):
    """
    One decoded certificate component as held in the store.
    """
    model_config = ConfigDict(frozen=True)

    payload: bytes
    modified_ns: int


class EventKind(str, Enum):
    """Classification of a keyspace notification payload."""

    SET = "set"
    DELETE = "delete"
    UNKNOWN = "unknown"


DELETE_PAYLOADS = frozenset({"del", "expired", "evicted"})


class ChangeEvent(BaseModel):
    """A keyspace notification reduced to the stored key and its event kind."""

    model_config = ConfigDict(frozen=True)

    key: str
    kind: EventKind
    payload: str
