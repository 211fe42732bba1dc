from __future__ import annotations

import threading
from pathlib import Path
from typing import Any, Optional

from certwatch.cli.formatter import OutputFormatter
from certwatch.core.models import CertwatchSettings
from certwatch.runtime.contracts import SupervisorState
from certwatch.runtime.listener import SubscriptionListener
from certwatch.runtime.notifier import ChangeNotifier
from certwatch.runtime.reconciler import CertReconciler
from certwatch.store.client import build_store_layout, create_store_client
from certwatch.utils.errors import ReconcilePassError, describe_error

CERT_DIR_MODE = 0o700


def ensure_cert_dir(cert_dir: Path) -> Path:
    """Create the certificate directory with owner-only permissions."""
    cert_dir.mkdir(mode=CERT_DIR_MODE, parents=True, exist_ok=True)
    return cert_dir


class CertwatchController:
    """
    Owns settings, the store client and the reconcile/listen/notify pipeline,
    and restarts the pipeline after failures until stopped.
    """

    def __init__(
        self,
        settings: CertwatchSettings,
        client: Optional[Any] = None,
        notifier: Optional[ChangeNotifier] = None,
    ) -> None:
        self.settings = settings
        self.client = client if client is not None else create_store_client(settings.redis_url)
        self.layout = build_store_layout(settings, self.client)
        self.cert_dir = Path(settings.cert_dir)

        self.reconciler = CertReconciler(
            client=self.client,
            layout=self.layout,
            cert_dir=self.cert_dir,
            value_prefix=settings.value_prefix,
        )
        self.notifier = notifier or ChangeNotifier(settings.cmd, timeout=settings.reload_timeout)
        self.listener = SubscriptionListener(
            client=self.client,
            layout=self.layout,
            reconciler=self.reconciler,
            notifier=self.notifier,
            names=settings.certs,
            poll_interval=settings.poll_interval,
        )

        self.state: SupervisorState = SupervisorState.STOPPED
        self.cycles = 0
        self._stop_event = threading.Event()

    @property
    def stopping(self) -> bool:
        return self._stop_event.is_set()

    def stop(self) -> None:
        """Request shutdown; interrupts the receive loop and the retry sleep."""
        self._stop_event.set()

    def run_once(self) -> bool:
        """
        Run one full reconciliation pass and notify on changes.

        Changes written before a failing certificate are still notified
        before the error is raised.
        """
        self.state = SupervisorState.RECONCILING
        try:
            changed = self.reconciler.reconcile_all(self.settings.certs)
        except ReconcilePassError as exc:
            if exc.changed and self.notifier.enabled:
                self.notifier.notify()
            raise

        if changed and self.notifier.enabled:
            self.notifier.notify()
        return changed

    def run_cycle(self) -> None:
        """One listen cycle: full pass, then follow notifications until stopped or broken."""
        self.cycles += 1
        self.run_once()
        if self.stopping:
            return
        self.state = SupervisorState.LISTENING
        self.listener.listen(self._stop_event)

    def run_forever(self) -> None:
        """
        Keep the mirror in sync forever.

        Every failure is logged, followed by a fixed sleep and a fresh cycle.
        Returns only after stop().
        """
        while not self.stopping:
            OutputFormatter.log("Listening for certificate changes", severity="info")
            try:
                self.run_cycle()
            except Exception as exc:
                if self.stopping:
                    break
                OutputFormatter.log("Listen cycle failed", severity="error", err=describe_error(exc))
            if self.stopping:
                break

            self.state = SupervisorState.BACKING_OFF
            OutputFormatter.log("Sleeping after error", severity="info", dur=f"{self.settings.retry_sleep:g}s")
            self._stop_event.wait(self.settings.retry_sleep)

        self.state = SupervisorState.STOPPED
        OutputFormatter.log("Stopped", severity="info")

    def close(self) -> None:
        close = getattr(self.client, "close", None)
        if callable(close):
            close()
