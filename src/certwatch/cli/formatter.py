from typing import Any

from rich.console import Console
from rich.markup import escape

# Create a stderr console for logging
error_console = Console(stderr=True)

_SEVERITY_STYLES = {
    "debug": "dim",
    "info": "white",
    "success": "green",
    "warning": "yellow",
    "error": "red",
    "critical": "bold red",
}


class OutputFormatter:
    """
    Writes the daemon's log stream to stderr with color coding.
    """

    verbose: bool = False

    @classmethod
    def set_verbose(cls, verbose: bool) -> None:
        cls.verbose = verbose

    @classmethod
    def log(cls, message: str, severity: str = "info", **fields: Any) -> None:
        """
        Print a log line. Keyword fields are appended as key=value pairs.
        Debug lines are dropped unless verbose output is enabled.
        """
        if severity == "debug" and not cls.verbose:
            return

        style = _SEVERITY_STYLES.get(severity, "white")
        prefix = f"[{severity.upper()}]"
        line = f"{prefix} {message}"
        if fields:
            line += " " + " ".join(f"{key}={_render_field(value)}" for key, value in fields.items())

        error_console.print(f"[{style}]{escape(line)}[/{style}]", soft_wrap=True, highlight=False)


def _render_field(value: Any) -> str:
    text = str(value)
    if not text or any(ch.isspace() for ch in text) or '"' in text:
        return '"' + text.replace("\\", "\\\\").replace('"', '\\"') + '"'
    return text
