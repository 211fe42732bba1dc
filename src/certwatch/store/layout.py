from __future__ import annotations

import posixpath
from dataclasses import dataclass
from typing import Iterable, List, Optional

from certwatch.core.models import COMPONENT_SUFFIXES


@dataclass(frozen=True)
class StoreLayout:
    """Key and keyspace-channel naming for certificates written by caddy-storage-redis."""

    key_prefix: str
    acme_dir_name: str
    db: int = 0

    @property
    def namespace(self) -> str:
        return f"{self.key_prefix}/certificates/{self.acme_dir_name}/"

    @property
    def channel_prefix(self) -> str:
        return f"__keyspace@{self.db}__:{self.namespace}"

    @property
    def channel_pattern(self) -> str:
        return f"{self.channel_prefix}*"

    def component_key(self, name: str, suffix: str) -> str:
        """Return the store key holding one component of a certificate."""
        return f"{self.namespace}{name}/{name}{suffix}"

    def stored_key(self, channel: str) -> str:
        """Strip the keyspace channel prefix, leaving '<name>/<name><suffix>'."""
        if channel.startswith(self.channel_prefix):
            return channel[len(self.channel_prefix):]
        return channel


def owning_names(stored_key: str, names: Iterable[str]) -> List[str]:
    """Return watched names whose certificate folder contains the stored key."""
    return [name for name in names if stored_key.startswith(f"{name}/")]


def component_suffix(stored_key: str) -> Optional[str]:
    """Return the mirror suffix named by a stored key, or None for other keys."""
    _, ext = posixpath.splitext(stored_key)
    if ext in COMPONENT_SUFFIXES:
        return ext
    return None
