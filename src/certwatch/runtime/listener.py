from __future__ import annotations

import threading
from typing import Any, List, Mapping, Sequence

from certwatch.cli.formatter import OutputFormatter
from certwatch.core.models import ChangeEvent, EventKind
from certwatch.runtime.contracts import classify_event
from certwatch.runtime.notifier import ChangeNotifier
from certwatch.runtime.reconciler import CertReconciler
from certwatch.store.layout import StoreLayout, component_suffix, owning_names
from certwatch.utils.errors import CertReconcileError, describe_error

PATTERN_MESSAGE_TYPES = {"pmessage", "message"}


def _as_text(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


class SubscriptionListener:
    """Follows keyspace notifications for the certificate namespace."""

    def __init__(
        self,
        client: Any,
        layout: StoreLayout,
        reconciler: CertReconciler,
        notifier: ChangeNotifier,
        names: Sequence[str],
        poll_interval: float = 1.0,
    ) -> None:
        self.client = client
        self.layout = layout
        self.reconciler = reconciler
        self.notifier = notifier
        self.names: List[str] = list(names)
        self.poll_interval = poll_interval

    def listen(self, stop_event: threading.Event) -> None:
        """
        Subscribe and process events until `stop_event` is set.

        Returns normally only on cancellation. Subscription failures
        propagate so the supervisor can restart the cycle.
        """
        pubsub = self.client.pubsub()
        try:
            pubsub.psubscribe(self.layout.channel_pattern)
            OutputFormatter.log("Subscribed", severity="info", pattern=self.layout.channel_pattern)
            while not stop_event.is_set():
                message = pubsub.get_message(ignore_subscribe_messages=True, timeout=self.poll_interval)
                if message is None:
                    continue
                self.handle_message(message)
        finally:
            pubsub.close()

    def handle_message(self, message: Mapping[str, Any]) -> bool:
        """
        Handle one pub/sub message as a batch.

        Returns True when the batch changed a mirror file; the reload
        command then runs once.
        """
        if message.get("type") not in PATTERN_MESSAGE_TYPES:
            return False

        stored_key = self.layout.stored_key(_as_text(message.get("channel", "")))
        event = classify_event(stored_key, _as_text(message.get("data", "")))
        OutputFormatter.log("Event", severity="debug", key=event.key, payload=event.payload)

        changed = self.process_event(event)
        if changed and self.notifier.enabled:
            self.notifier.notify()
        return changed

    def process_event(self, event: ChangeEvent) -> bool:
        """Apply one event to every watched certificate that owns its key."""
        changed = False
        for name in owning_names(event.key, self.names):
            if event.kind == EventKind.SET:
                if self._reconcile_one(name, event):
                    changed = True
            elif event.kind == EventKind.DELETE:
                self._remove_one(name, event)
            elif event.kind == EventKind.UNKNOWN:
                OutputFormatter.log("Unhandled event", severity="warning", key=event.key, payload=event.payload)
        return changed

    def _reconcile_one(self, name: str, event: ChangeEvent) -> bool:
        # A component written before the failure still counts as a change.
        try:
            return self.reconciler.reconcile(name)
        except CertReconcileError as exc:
            OutputFormatter.log(
                "Reconcile failed",
                severity="error",
                name=name,
                key=exc.key,
                event_key=event.key,
                err=describe_error(exc.cause),
            )
            return exc.changed

    def _remove_one(self, name: str, event: ChangeEvent) -> None:
        suffix = component_suffix(event.key)
        if suffix is None:
            OutputFormatter.log("Ignoring delete for non-mirrored key", severity="debug", key=event.key)
            return
        try:
            self.reconciler.remove_component(name, suffix)
        except OSError as exc:
            OutputFormatter.log(
                "Remove failed",
                severity="error",
                name=name,
                key=event.key,
                err=describe_error(exc),
            )
