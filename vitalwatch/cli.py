"""Command Line Interface for VitalWatch.

This module provides a Typer CLI for running the monitoring API, preparing
the patient store, and replaying recorded readings through the risk and
alerting pipeline offline.
"""

import json
import logging
from pathlib import Path
from typing import Optional

import typer
from pydantic import ValidationError as PydanticValidationError
from rich.console import Console
from rich.table import Table

from vitalwatch import __version__
from vitalwatch.adapters.normalization import parse_reading
from vitalwatch.adapters.notifications import LoggingNotificationSink
from vitalwatch.adapters.storage.duckdb_adapter import DuckDBPatientStore
from vitalwatch.domain.alerting import AlertDispatcher
from vitalwatch.domain.models import Patient, Severity, VitalReading
from vitalwatch.domain.ports import ConfigurationError
from vitalwatch.domain.risk import assess
from vitalwatch.infrastructure.config_manager import MonitoringConfig
from vitalwatch.infrastructure.settings import settings

app = typer.Typer(
    name="vitalwatch",
    help="VitalWatch: real-time vital-sign risk monitoring",
    add_completion=False
)
console = Console()

SEVERITY_STYLES = {
    Severity.NORMAL: "green",
    Severity.WARNING: "yellow",
    Severity.CRITICAL: "bold red",
}


def load_monitoring_config() -> MonitoringConfig:
    """Load monitoring configuration, exiting with code 1 when it is invalid."""
    try:
        return settings.monitoring
    except ConfigurationError as e:
        console.print(f"[red]✗[/red] Invalid configuration: {str(e)}")
        raise typer.Exit(code=1)


def load_readings(input_file: Path, patient_id: Optional[str]) -> list[VitalReading]:
    """Parse a JSON list of raw reading payloads, sorted chronologically.

    Each payload names its patient with ``patient_id`` unless ``patient_id``
    is given. Invalid payloads are reported and skipped.
    """
    try:
        payloads = json.loads(input_file.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        console.print(f"[red]✗[/red] {input_file} is not valid JSON: {str(e)}")
        raise typer.Exit(code=1)
    if not isinstance(payloads, list):
        console.print(f"[red]✗[/red] {input_file} must contain a JSON list of readings")
        raise typer.Exit(code=1)

    readings = []
    for index, payload in enumerate(payloads):
        owner = patient_id or (payload.get("patient_id") if isinstance(payload, dict) else None)
        if not owner:
            console.print(f"[yellow]![/yellow] Entry {index}: no patient_id, skipped")
            continue
        result = parse_reading(str(owner), payload, f"file:{input_file.name}")
        if result.is_failure():
            console.print(f"[yellow]![/yellow] Entry {index}: {result.error}")
            continue
        readings.append(result.value)

    readings.sort(key=lambda r: r.timestamp)
    return readings


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address (default: VW_HOST)"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Bind port (default: VW_PORT)"),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes"),
) -> None:
    """Run the monitoring API server."""
    import uvicorn

    load_monitoring_config()
    console.print(f"[bold blue]{settings.app_name} Monitoring API[/bold blue]")
    uvicorn.run(
        "vitalwatch.dashboard.api.main:app",
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
        log_level=settings.log_level.lower()
    )


@app.command("init-db")
def init_db(
    patients_file: Optional[Path] = typer.Option(
        None, "--patients", help="JSON list of patients to load", exists=True
    ),
) -> None:
    """Create the patient store schema and optionally load patients.

    Examples:
        vitalwatch init-db
        vitalwatch init-db --patients data/patients.json
    """
    config = load_monitoring_config()
    store = DuckDBPatientStore(db_path=config.store.db_path)
    try:
        result = store.initialize_schema()
        if result.is_failure():
            console.print(f"[red]✗[/red] Failed to initialize schema: {result.error}")
            raise typer.Exit(code=1)
        console.print(f"[green]✓[/green] Schema ready at {config.store.db_path}")

        if patients_file is None:
            return
        loaded = 0
        try:
            entries = json.loads(patients_file.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            console.print(f"[red]✗[/red] {patients_file} is not valid JSON: {e}")
            raise typer.Exit(code=1)
        for index, entry in enumerate(entries):
            try:
                patient = Patient(**entry)
            except (PydanticValidationError, TypeError) as e:
                console.print(f"[red]✗[/red] Invalid patient entry {index}: {e}")
                raise typer.Exit(code=1)
            upsert = store.upsert_patient(patient)
            if upsert.is_failure():
                console.print(f"[red]✗[/red] {upsert.error}")
                raise typer.Exit(code=1)
            loaded += 1
        console.print(f"[green]✓[/green] Loaded {loaded} patient(s)")
    finally:
        store.close()


@app.command("assess")
def assess_readings(
    input_file: Path = typer.Argument(..., help="JSON list of readings", exists=True),
    patient_id: Optional[str] = typer.Option(None, "--patient", help="Patient id for payloads without one"),
) -> None:
    """Replay recorded readings through risk assessment and alert decisions.

    Readings are evaluated chronologically per patient with the configured
    alert policy; the alert decision uses each reading's timestamp as the
    decision time. Nothing is delivered.

    Examples:
        vitalwatch assess recordings.json
        vitalwatch assess bedside.json --patient P-001
    """
    config = load_monitoring_config()
    readings = load_readings(input_file, patient_id)
    if not readings:
        console.print("[yellow]No valid readings to assess[/yellow]")
        raise typer.Exit(code=1)

    dispatcher = AlertDispatcher(sink=LoggingNotificationSink(), policy=config.alerts)
    histories: dict[str, list[VitalReading]] = {}
    windows = {}

    table = Table(title=f"Risk assessment: {input_file.name}")
    table.add_column("Time")
    table.add_column("Patient")
    table.add_column("Risk", justify="right")
    table.add_column("Trend")
    table.add_column("Severity")
    table.add_column("Violations")
    table.add_column("Alerts", justify="right")

    alert_total = 0
    for reading in readings:
        history = histories.setdefault(reading.patient_id, [])
        window = windows.get(reading.patient_id) or dispatcher.new_window()

        assessment = assess(reading, history)
        alerts, windows[reading.patient_id] = dispatcher.decide(assessment, reading, window, now=reading.timestamp)
        history.append(reading)
        alert_total += len(alerts)

        severity = assessment.max_severity
        table.add_row(
            reading.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            reading.patient_id,
            f"{assessment.risk_level:.2f}",
            assessment.trend.value,
            f"[{SEVERITY_STYLES[severity]}]{severity.value}[/]",
            "; ".join(v.message for v in assessment.violations) or "-",
            str(len(alerts)),
        )

    console.print(table)
    console.print(f"\n[bold]{len(readings)}[/bold] reading(s), [bold]{alert_total}[/bold] alert(s) decided")


@app.command()
def info() -> None:
    """Display configuration."""
    config = load_monitoring_config()
    console.print("[bold blue]System Information[/bold blue]\n")

    info_table = Table(show_header=False, box=None, padding=(0, 2))
    info_table.add_row("Application:", settings.app_name)
    info_table.add_row("Database Path:", config.store.db_path)
    info_table.add_row("Critical Risk Threshold:", f"{config.alerts.critical_risk_threshold:.2f}")
    info_table.add_row("Alert Cooldown:", f"{config.alerts.cooldown_seconds:g}s")
    info_table.add_row(
        "Alert Rate Limit:",
        f"{config.alerts.max_alerts_per_minute}/min" if config.alerts.max_alerts_per_minute else "Disabled",
    )
    info_table.add_row("History Size:", str(config.session.history_size))
    info_table.add_row("Stale After:", f"{config.session.stale_after_seconds:g}s")
    info_table.add_row("Performance Tick:", f"{config.performance.tick_interval_seconds:g}s")
    info_table.add_row("Auto Optimize:", "Enabled" if config.performance.auto_optimize else "Disabled")

    console.print(info_table)


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(False, "--version", help="Show version information"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """VitalWatch: real-time vital-sign risk monitoring."""
    if version:
        console.print(f"VitalWatch v{__version__}")
        raise typer.Exit()
    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())
        raise typer.Exit()
    logging.basicConfig(level=logging.DEBUG if verbose else logging.WARNING)


if __name__ == "__main__":
    app()
