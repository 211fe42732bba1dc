"""Runtime orchestration: reconciliation, subscription and supervision."""

from certwatch.runtime.contracts import (
	CommandResult,
	CommandStatus,
	SupervisorState,
	classify_event,
)
from certwatch.runtime.controller import CertwatchController, ensure_cert_dir
from certwatch.runtime.listener import SubscriptionListener
from certwatch.runtime.notifier import ChangeNotifier
from certwatch.runtime.reconciler import CertReconciler

__all__ = [
	"CertReconciler",
	"CertwatchController",
	"ChangeNotifier",
	"CommandResult",
	"CommandStatus",
	"SubscriptionListener",
	"SupervisorState",
	"classify_event",
	"ensure_cert_dir",
]
