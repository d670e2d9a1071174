from __future__ import annotations

import asyncio

import typer

from soboss.config import AppSettings, ConfigProvider
from soboss.core.errors import ConfigurationError
from soboss.core.logging import configure_logging
from soboss.integrations.ping import make_probe
from soboss.integrations.playback import PlaybackRegistry
from soboss.integrations.sonos import SonosDiscovery
from soboss.main import main
from soboss.startup.checks import CheckStatus, run_startup_checks

app = typer.Typer(no_args_is_help=True)


@app.command()
def run() -> None:
    """Run the availability monitor."""
    raise SystemExit(main())


@app.command("check-config")
def check_config(
    config_dir: str = typer.Option(None, "--config-dir", help="Override SOBOSS_CONFIG_DIR"),
) -> None:
    """Validate ping, sonos and device config sections without touching the network."""
    settings = AppSettings()
    configure_logging(settings.log_level)

    provider = ConfigProvider(config_dir or settings.config_dir, settings.environment)
    typer.echo("Checking %s" % provider.config_dir.resolve())
    results = run_startup_checks(provider)
    for r in results:
        typer.echo("%-5s %s: %s" % (r.status.value.upper(), r.name, r.details))
    raise SystemExit(1 if any(r.status == CheckStatus.FAIL for r in results) else 0)


@app.command()
def discover(
    timeout: float = typer.Option(None, "--timeout", help="Discovery timeout seconds"),
) -> None:
    """
    Discover Sonos speakers and show which configured identifiers they map to.
    """
    settings = AppSettings()
    configure_logging(settings.log_level)
    provider = ConfigProvider(settings.config_dir, settings.environment)
    try:
        sonos = provider.sonos()
    except ConfigurationError as e:
        raise typer.BadParameter(str(e))

    registry = PlaybackRegistry()
    discovery = SonosDiscovery(registry)
    found = asyncio.run(
        discovery.discover(sonos, timeout_seconds=timeout if timeout is not None else settings.discovery_timeout_seconds)
    )
    if not found:
        typer.echo("No configured speakers found.")
        raise SystemExit(0)
    for spk in found:
        typer.echo(
            "%s | %s | %s | %s | %s" % (spk.identifier, spk.room_name, spk.model_name, spk.host_address, spk.serial_number)
        )


@app.command()
def probe(
    host: str = typer.Argument(..., help="Host name or IP to ping"),
    timeout_ms: int = typer.Option(2000, "--timeout-ms", help="Probe timeout in milliseconds"),
    method: str = typer.Option(None, "--method", help="icmp|system (default: SOBOSS_PING_METHOD)"),
) -> None:
    """Run one reachability probe against HOST."""
    settings = AppSettings()
    configure_logging(settings.log_level)
    try:
        p = make_probe(method or settings.ping_method)
    except ValueError as e:
        raise typer.BadParameter(str(e), param_hint="--method")

    alive = asyncio.run(p.check(host, timeout_ms))
    typer.echo("%s is %s" % (host, "reachable" if alive else "unreachable"))
    raise SystemExit(0 if alive else 1)


if __name__ == "__main__":
    app()
