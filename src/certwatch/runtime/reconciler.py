from __future__ import annotations

import errno
import os
import tempfile
from pathlib import Path
from typing import Iterable, Optional, Protocol

from redis.exceptions import RedisError

from certwatch.cli.formatter import OutputFormatter
from certwatch.core.models import COMPONENT_SUFFIXES, StoredValue
from certwatch.store.codec import decode_stored_value
from certwatch.store.layout import StoreLayout
from certwatch.utils.errors import CertReconcileError, DecodeError, ReconcilePassError

MIRROR_FILE_MODE = 0o600


class StoreReader(Protocol):
    def get(self, name: str) -> Optional[bytes]:
        ...


def mirror_path(cert_dir: Path, name: str, suffix: str) -> Path:
    """Return the local mirror path for one certificate component."""
    return cert_dir / f"{name}{suffix}"


def mirror_in_sync(path: Path, value: StoredValue) -> bool:
    """
    Return True when the mirror's size and mtime match the stored value.

    A missing file is out of sync; other stat failures propagate.
    """
    try:
        stat_result = path.stat()
    except FileNotFoundError:
        return False

    return stat_result.st_mtime_ns == value.modified_ns and stat_result.st_size == len(value.payload)


def write_mirror(path: Path, value: StoredValue) -> None:
    """
    Atomically replace `path` with the stored payload and stamp its mtime.

    The payload goes to a 0600 temporary file in the same directory, whose
    times are set to the stored timestamp before it is renamed into place.
    """
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as handle:
            os.fchmod(handle.fileno(), MIRROR_FILE_MODE)
            handle.write(value.payload)
            handle.flush()
            os.fsync(handle.fileno())
        os.utime(tmp_name, ns=(value.modified_ns, value.modified_ns))
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except OSError as exc:
            if exc.errno != errno.ENOENT:
                OutputFormatter.log("Cannot remove temporary file", severity="warning", path=tmp_name, err=exc)
        raise


def remove_mirror(path: Path) -> bool:
    """Delete a mirror file; returns False when it was already absent."""
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    return True


class CertReconciler:
    """Brings the local mirror of each watched certificate in line with the store."""

    def __init__(
        self,
        client: StoreReader,
        layout: StoreLayout,
        cert_dir: Path,
        value_prefix: str,
    ) -> None:
        self.client = client
        self.layout = layout
        self.cert_dir = cert_dir
        self.value_prefix = value_prefix

    def reconcile(self, name: str) -> bool:
        """
        Reconcile both components of one certificate.

        Returns True when at least one mirror file was rewritten. Store errors,
        DecodeError and filesystem errors abort the remaining components of
        this certificate and are raised as CertReconcileError, which records
        whether an earlier component was already rewritten.
        """
        changed = False
        for suffix in COMPONENT_SUFFIXES:
            key = self.layout.component_key(name, suffix)
            try:
                updated = self._reconcile_component(name, suffix, key)
            except (DecodeError, RedisError, OSError) as exc:
                raise CertReconcileError(name, key, exc, changed=changed) from exc
            if updated:
                changed = True

        return changed

    def _reconcile_component(self, name: str, suffix: str, key: str) -> bool:
        raw = self.client.get(key)
        if raw is None:
            OutputFormatter.log("Component not in store", severity="debug", key=key)
            return False

        value = decode_stored_value(key, raw, self.value_prefix)
        path = mirror_path(self.cert_dir, name, suffix)
        if mirror_in_sync(path, value):
            OutputFormatter.log("Mirror up to date", severity="debug", path=path)
            return False

        write_mirror(path, value)
        OutputFormatter.log(
            "Mirror updated",
            severity="info",
            path=path,
            size=len(value.payload),
            modified_ns=value.modified_ns,
        )
        return True

    def reconcile_all(self, names: Iterable[str]) -> bool:
        """
        Reconcile every watched certificate in order.

        The first failure stops the pass and is raised as ReconcilePassError,
        carrying whether any mirror file was already rewritten, including a
        component of the failing certificate itself.
        """
        changed = False
        for name in names:
            try:
                if self.reconcile(name):
                    changed = True
            except CertReconcileError as exc:
                raise ReconcilePassError(name, exc.cause, changed=changed or exc.changed) from exc
            except Exception as exc:
                raise ReconcilePassError(name, exc, changed=changed) from exc
        return changed

    def remove_component(self, name: str, suffix: str) -> bool:
        """Delete the mirror of one component; absence is not an error."""
        path = mirror_path(self.cert_dir, name, suffix)
        removed = remove_mirror(path)
        if removed:
            OutputFormatter.log("Mirror removed", severity="info", path=path)
        else:
            OutputFormatter.log("Mirror already absent", severity="debug", path=path)
        return removed
