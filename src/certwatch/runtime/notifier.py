from __future__ import annotations

import subprocess
from typing import Optional

from certwatch.cli.formatter import OutputFormatter
from certwatch.runtime.contracts import CommandResult, CommandStatus


class ChangeNotifier:
    """Runs the configured reload command after a batch changed mirror files."""

    def __init__(self, command: Optional[str], timeout: Optional[float] = None) -> None:
        self.command = command
        self.timeout = timeout

    @property
    def enabled(self) -> bool:
        return bool(self.command)

    def notify(self) -> Optional[CommandResult]:
        """
        Run the reload command once through the shell.

        Failures are logged and reported in the result, never raised.
        Returns None when no command is configured.
        """
        if not self.command:
            return None

        OutputFormatter.log("Running reload command", severity="info", cmd=self.command)
        try:
            completed = subprocess.run(
                ["sh", "-c", self.command],
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                timeout=self.timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            output = _decode_output(exc.output)
            OutputFormatter.log(
                "Reload command timed out",
                severity="error",
                cmd=self.command,
                timeout=self.timeout,
                output=output,
            )
            return CommandResult(command=self.command, status=CommandStatus.TIMEOUT, output=output)
        except OSError as exc:
            OutputFormatter.log("Cannot run reload command", severity="error", cmd=self.command, err=exc)
            return CommandResult(command=self.command, status=CommandStatus.SPAWN_ERROR, output=str(exc))

        output = _decode_output(completed.stdout)
        if completed.returncode != 0:
            OutputFormatter.log(
                "Reload command failed",
                severity="error",
                cmd=self.command,
                returncode=completed.returncode,
                output=output,
            )
            return CommandResult(
                command=self.command,
                status=CommandStatus.FAILURE,
                returncode=completed.returncode,
                output=output,
            )

        OutputFormatter.log("Reload command finished", severity="debug", cmd=self.command, output=output)
        return CommandResult(
            command=self.command,
            status=CommandStatus.SUCCESS,
            returncode=completed.returncode,
            output=output,
        )


def _decode_output(raw: Optional[bytes]) -> str:
    if not raw:
        return ""
    if isinstance(raw, str):
        return raw
    return raw.decode("utf-8", errors="replace")
