import signal
from pathlib import Path
from typing import List, Optional
from urllib.parse import urlsplit, urlunsplit

import typer

from certwatch import __version__
from certwatch.cli.formatter import OutputFormatter
from certwatch.config.loader import load_settings
from certwatch.core.models import CertwatchSettings
from certwatch.runtime import CertwatchController, ensure_cert_dir
from certwatch.utils.errors import ConfigError, describe_error

app = typer.Typer(
    name="certwatch",
    help="Mirror caddy certificates from Redis to local files.",
    rich_markup_mode=None,
    no_args_is_help=True,
)

NAMES_ARGUMENT = typer.Argument(None, help="Certificate names to watch.", show_default=False)
REDIS_URL_OPTION = typer.Option(None, "--redis-url", "--redisurl", help="URL for the Redis instance.")
KEY_PREFIX_OPTION = typer.Option(None, "--key-prefix", "--keyprefix", help="Prefix for keys [default: caddy].")
VALUE_PREFIX_OPTION = typer.Option(
    None, "--value-prefix", "--valueprefix", help="Prefix for values [default: caddy-storage-redis]."
)
ACME_DIR_OPTION = typer.Option(
    None, "--acme-dir", "--acmedir", help="ACME subdirectory [default: acme-v02.api.letsencrypt.org-directory]."
)
CERT_DIR_OPTION = typer.Option(
    None, "--cert-dir", "--certdir", help="Directory for local certificates [default: /var/lib/certwatch]."
)
CMD_OPTION = typer.Option(None, "--cmd", help="Shell command to run when certificates changed.")
DEBUG_OPTION = typer.Option(False, "--debug", help="Verbose debug output.")
SLEEP_OPTION = typer.Option(None, "--sleep", help="Sleep duration after an error, e.g. 10s or 1m [default: 10s].")
CONFIG_OPTION = typer.Option(None, "--config", "-c", help="YAML config file with a 'certwatch' section.")


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"certwatch {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False, "--version", callback=_version_callback, is_eager=True, help="Show version and exit."
    ),
) -> None:
    """Mirror caddy certificates from Redis to local files."""


def _redact_url(url: str) -> str:
    try:
        parts = urlsplit(url)
    except ValueError:
        return "<invalid>"
    if parts.password is None:
        return url
    netloc = parts.netloc.rsplit("@", 1)[1]
    user = parts.username or ""
    return urlunsplit(parts._replace(netloc=f"{user}:***@{netloc}"))


def _build_settings(
    names: Optional[List[str]],
    redis_url: Optional[str],
    key_prefix: Optional[str],
    value_prefix: Optional[str],
    acme_dir: Optional[str],
    cert_dir: Optional[str],
    cmd: Optional[str],
    debug: bool,
    sleep: Optional[str],
    config: Optional[Path],
) -> CertwatchSettings:
    overrides = {
        "redis_url": redis_url,
        "key_prefix": key_prefix,
        "value_prefix": value_prefix,
        "acme_dir_name": acme_dir,
        "cert_dir": cert_dir,
        "certs": names,
        "cmd": cmd,
        "debug": True if debug else None,
        "retry_sleep": sleep,
    }
    try:
        settings = load_settings(config, overrides)
    except ConfigError as exc:
        OutputFormatter.log(str(exc), severity="critical")
        OutputFormatter.log("Usage: certwatch run --redis-url URL [OPTIONS] NAME...", severity="info")
        raise typer.Exit(code=1)

    OutputFormatter.set_verbose(settings.debug)
    OutputFormatter.log(
        "Config",
        severity="debug",
        redis_url=_redact_url(settings.redis_url),
        key_prefix=settings.key_prefix,
        value_prefix=settings.value_prefix,
        acme_dir=settings.acme_dir_name,
        cert_dir=settings.cert_dir,
        certs=",".join(settings.certs),
        cmd=settings.cmd or "",
        sleep=f"{settings.retry_sleep:g}s",
    )
    return settings


def _create_controller(settings: CertwatchSettings) -> CertwatchController:
    try:
        ensure_cert_dir(Path(settings.cert_dir))
    except OSError as exc:
        OutputFormatter.log("Cannot create certificate directory", severity="critical", err=describe_error(exc))
        raise typer.Exit(code=1)

    try:
        return CertwatchController(settings)
    except ValueError as exc:
        OutputFormatter.log("Invalid Redis URL", severity="critical", err=describe_error(exc))
        raise typer.Exit(code=1)


def _install_signal_handlers(controller: CertwatchController) -> None:
    def _handle(signum, _frame) -> None:
        OutputFormatter.log("Shutdown requested", severity="info", signal=signal.Signals(signum).name)
        controller.stop()

    signal.signal(signal.SIGINT, _handle)
    signal.signal(signal.SIGTERM, _handle)


@app.command()
def run(
    names: Optional[List[str]] = NAMES_ARGUMENT,
    redis_url: Optional[str] = REDIS_URL_OPTION,
    key_prefix: Optional[str] = KEY_PREFIX_OPTION,
    value_prefix: Optional[str] = VALUE_PREFIX_OPTION,
    acme_dir: Optional[str] = ACME_DIR_OPTION,
    cert_dir: Optional[str] = CERT_DIR_OPTION,
    cmd: Optional[str] = CMD_OPTION,
    debug: bool = DEBUG_OPTION,
    sleep: Optional[str] = SLEEP_OPTION,
    config: Optional[Path] = CONFIG_OPTION,
):
    """Watch Redis and keep local certificate files in sync until stopped."""
    settings = _build_settings(
        names, redis_url, key_prefix, value_prefix, acme_dir, cert_dir, cmd, debug, sleep, config
    )
    controller = _create_controller(settings)
    _install_signal_handlers(controller)
    try:
        controller.run_forever()
    finally:
        controller.close()


@app.command()
def sync(
    names: Optional[List[str]] = NAMES_ARGUMENT,
    redis_url: Optional[str] = REDIS_URL_OPTION,
    key_prefix: Optional[str] = KEY_PREFIX_OPTION,
    value_prefix: Optional[str] = VALUE_PREFIX_OPTION,
    acme_dir: Optional[str] = ACME_DIR_OPTION,
    cert_dir: Optional[str] = CERT_DIR_OPTION,
    cmd: Optional[str] = CMD_OPTION,
    debug: bool = DEBUG_OPTION,
    config: Optional[Path] = CONFIG_OPTION,
):
    """Run a single reconciliation pass and exit."""
    settings = _build_settings(
        names, redis_url, key_prefix, value_prefix, acme_dir, cert_dir, cmd, debug, None, config
    )
    controller = _create_controller(settings)
    try:
        changed = controller.run_once()
    except Exception as exc:
        OutputFormatter.log("Reconciliation failed", severity="error", err=describe_error(exc))
        raise typer.Exit(code=1)
    finally:
        controller.close()

    if changed:
        OutputFormatter.log("Certificates updated", severity="success")
    else:
        OutputFormatter.log("Certificates unchanged", severity="info")


if __name__ == "__main__":
    app()
