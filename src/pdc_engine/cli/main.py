"""Command Line Interface for pdc-engine."""

import json
import sys
from datetime import date
from pathlib import Path
from typing import Any, List, Optional
import click
import structlog
from rich.console import Console
from rich.table import Table
from rich.panel import Panel

from .. import __version__
from ..core.config import Config, load_config
from ..core.errors import PDCEngineError
from ..core.logging_config import configure_logging
from ..core.models import MeasureAdherence, PatientAdherenceSummary
from ..core.pipeline import AdherenceEngine
from ..export.feature_exporter import export_results, results_to_frame
from ..ingestion.fill_normalizer import FillNormalizer
from ..rules.coverage import merge_intervals
from ..rules.pdc_calculator import fills_in_window

logger = structlog.get_logger()
console = Console()

TIER_STYLES = {
    "F1_IMMINENT": "bold red",
    "F2_FRAGILE": "red",
    "F3_MODERATE": "yellow",
    "F4_COMFORTABLE": "cyan",
    "F5_SAFE": "green",
    "COMPLIANT": "bold green",
    "T5_UNSALVAGEABLE": "magenta",
}


@click.group()
@click.option('--config', '-c', help='Configuration file path')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose logging')
@click.pass_context
def cli(ctx, config: Optional[str], verbose: bool):
    """pdc-engine - medication adherence (PDC) and outreach priority calculator."""
    ctx.ensure_object(dict)
    ctx.obj['config'] = load_config(config)

    log_config = ctx.obj['config'].logging
    configure_logging("DEBUG" if verbose else log_config.level, log_config.json_output)

    if ctx.invoked_subcommand != 'version':
        console.print(Panel.fit(
            "[bold blue]pdc-engine[/bold blue]\n"
            "Medication adherence and outreach priority calculator\n"
            f"Version {__version__}",
            style="cyan"
        ))


@cli.command()
def version():
    """Show version information."""
    console.print(f"pdc-engine version {__version__}")


@cli.command()
@click.option('--output', '-o', default='config.yaml', help='Output configuration file path')
def init_config(output: str):
    """Initialize a new configuration file."""
    config = Config()
    config.to_yaml(output)
    console.print(f"[bold green]Configuration file created:[/bold green] {output}")
    console.print("Edit the configuration file and run with: pdc-engine -c config.yaml calculate ...")


@cli.command()
@click.option('--fills', '-f', 'fills_path', required=True, type=click.Path(exists=True, dir_okay=False),
              help='JSON file with fill or dispense records')
@click.option('--year', '-y', required=True, type=int, help='Measurement year')
@click.option('--as-of', 'as_of', type=click.DateTime(formats=["%Y-%m-%d"]), default=None,
              help='Calculation date (default: today)')
@click.option('--supply', type=int, default=None, help='Days of supply on hand (default: derived from fills)')
@click.option('--refills', type=int, default=None, help='Remaining refills (default: estimated refills needed)')
@click.option('--measures', type=int, default=1, help='Number of measures the patient is in')
@click.option('--new-patient', 'new_patient', type=click.Choice(['auto', 'yes', 'no']), default='auto',
              help='New-patient bonus: detect from fills, or force yes/no')
@click.pass_context
def calculate(ctx, fills_path: str, year: int, as_of, supply: Optional[int], refills: Optional[int],
              measures: int, new_patient: str):
    """Calculate PDC, fragility tier and priority for one medication group."""
    engine = AdherenceEngine(ctx.obj['config'])
    as_of_date = as_of.date() if as_of else date.today()

    try:
        result = engine.assess(
            _load_records(fills_path),
            year,
            as_of_date,
            measure_count=measures,
            is_new_patient=None if new_patient == 'auto' else new_patient == 'yes',
            current_supply_on_hand=supply,
            remaining_refills=refills,
        )
    except PDCEngineError as e:
        console.print(f"[bold red]Invalid input:[/bold red] {e}")
        sys.exit(1)

    _display_measure_result(result)


@cli.command()
@click.option('--fills', '-f', 'fills_path', required=True, type=click.Path(exists=True, dir_okay=False),
              help='JSON file with fill or dispense records')
@click.option('--year', '-y', required=True, type=int, help='Measurement year')
@click.option('--as-of', 'as_of', type=click.DateTime(formats=["%Y-%m-%d"]), default=None,
              help='Calculation date (default: today)')
def explain(fills_path: str, year: int, as_of):
    """Show how each fill contributes to covered days."""
    as_of_date = as_of.date() if as_of else date.today()
    normalizer = FillNormalizer()
    try:
        fills = fills_in_window(normalizer.normalize(_load_records(fills_path)), year, as_of_date)
    except PDCEngineError as e:
        console.print(f"[bold red]Invalid input:[/bold red] {e}")
        sys.exit(1)
    period_end = min(as_of_date, date(year, 12, 31))

    intervals, steps = merge_intervals(fills, period_end)

    table = Table(show_header=True, header_style="bold magenta", title=f"Coverage through {period_end}")
    table.add_column("Fill date")
    table.add_column("Days supply", justify="right")
    table.add_column("Medication")
    table.add_column("Overlap")
    table.add_column("New days", justify="right")
    table.add_column("Covered through")

    for step in steps:
        table.add_row(
            step.fill.fill_date.isoformat(),
            str(step.fill.days_supply),
            step.fill.medication_key or "-",
            "yes" if step.overlapped else "no",
            str(step.new_days),
            step.cursor.isoformat() if step.cursor else "-",
        )
    console.print(table)

    for interval in intervals:
        console.print(f"  {interval.start} .. {interval.end}  ({interval.days} days)")
    console.print(f"[bold]Total covered days:[/bold] {sum(step.new_days for step in steps)}")
    if normalizer.last_drop_counts:
        console.print(f"[yellow]Dropped records:[/yellow] {normalizer.last_drop_counts}")


@cli.command()
@click.option('--dispenses', '-d', 'dispenses_path', required=True, type=click.Path(exists=True, dir_okay=False),
              help='JSON file with dispenses (list or FHIR Bundle)')
@click.option('--year', '-y', required=True, type=int, help='Measurement year')
@click.option('--as-of', 'as_of', type=click.DateTime(formats=["%Y-%m-%d"]), default=None,
              help='Calculation date (default: today)')
@click.option('--patient-id', default='', help='Patient identifier for the output')
@click.option('--output', '-o', default=None, help='Write results to a .csv or .json file')
@click.pass_context
def evaluate(ctx, dispenses_path: str, year: int, as_of, patient_id: str, output: Optional[str]):
    """Evaluate every adherence measure for one patient."""
    engine = AdherenceEngine(ctx.obj['config'])
    as_of_date = as_of.date() if as_of else date.today()

    try:
        summary = engine.evaluate_patient(_load_records(dispenses_path), year, as_of_date, patient_id=patient_id)
    except PDCEngineError as e:
        console.print(f"[bold red]Invalid input:[/bold red] {e}")
        sys.exit(1)

    _display_summary(summary)

    if output:
        try:
            path = export_results(results_to_frame(summary), output)
        except ValueError as e:
            console.print(f"[bold red]Error exporting results:[/bold red] {e}")
            sys.exit(1)
        console.print(f"[bold green]Results written to:[/bold green] {path}")


def _load_records(path: str) -> List[Any]:
    """Read a JSON list of records, or the MedicationDispense entries of a FHIR Bundle."""
    try:
        with open(Path(path), 'r', encoding='utf-8') as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise click.ClickException(f"{path} is not valid JSON: {e}")

    if isinstance(data, dict) and data.get("resourceType") == "Bundle":
        return [
            entry["resource"]
            for entry in data.get("entry", [])
            if isinstance(entry, dict)
            and isinstance(entry.get("resource"), dict)
            and entry["resource"].get("resourceType") == "MedicationDispense"
        ]
    if isinstance(data, dict) and isinstance(data.get("fills"), list):
        return data["fills"]
    if not isinstance(data, list):
        raise click.ClickException(f"{path} must contain a list of records or a FHIR Bundle")
    return data


def _display_measure_result(result: MeasureAdherence):
    """Display one measure's PDC, tier and priority."""
    pdc = result.pdc_result

    table = Table(show_header=True, header_style="bold magenta", title="PDC")
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    rows = [
        ("PDC", f"{pdc.pdc:.1f}%"),
        ("PDC status quo", f"{pdc.pdc_status_quo:.1f}%"),
        ("PDC perfect", f"{pdc.pdc_perfect:.1f}%"),
        ("Covered / treatment days", f"{pdc.covered_days} / {pdc.treatment_days}"),
        ("Gap days used / allowed", f"{pdc.gap_days_used} / {pdc.gap_days_allowed}"),
        ("Gap days remaining", str(pdc.gap_days_remaining)),
        ("Days to runout", str(pdc.days_to_runout)),
        ("Supply on hand", str(pdc.current_supply)),
        ("Refills needed", str(pdc.refills_needed)),
        ("Valid fills", str(pdc.fill_count)),
    ]
    for metric, value in rows:
        table.add_row(metric, value)
    console.print(table)

    fragility = result.fragility
    priority = result.priority
    style = TIER_STYLES.get(fragility.tier.value, "white")
    budget = "-" if fragility.delay_budget_per_refill is None else f"{fragility.delay_budget_per_refill:.2f}"
    console.print(f"Tier: [{style}]{fragility.tier.value}[/{style}] (rule: {fragility.rule}, "
                  f"delay budget: {budget}, Q4 tightened: {fragility.flags.is_q4_tightened})")
    console.print(f"Contact within: {fragility.contact_window} - {fragility.action}")
    console.print(f"Priority: {priority.priority_score} ({priority.urgency_level.value}) = "
                  f"base {priority.base_score} + bonuses {priority.applied_bonuses.total}")


def _display_summary(summary: PatientAdherenceSummary):
    """Display per-measure results for one patient."""
    console.print(f"\n[bold green]Adherence for {summary.patient_id or 'patient'}[/bold green] "
                  f"(year {summary.measurement_year}, as of {summary.as_of})")
    console.print(f"Records: {summary.records_received} received, {summary.records_dropped} dropped")

    if not summary.measures:
        console.print("[yellow]No dispenses matched an adherence measure[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Measure")
    table.add_column("PDC", justify="right")
    table.add_column("Status quo", justify="right")
    table.add_column("Perfect", justify="right")
    table.add_column("Gap left", justify="right")
    table.add_column("Tier")
    table.add_column("Priority", justify="right")
    table.add_column("Urgency")

    for result in summary.measures:
        pdc = result.pdc_result
        tier = result.fragility.tier.value
        style = TIER_STYLES.get(tier, "white")
        table.add_row(
            result.measure.value if result.measure else "-",
            f"{pdc.pdc:.1f}",
            f"{pdc.pdc_status_quo:.1f}",
            f"{pdc.pdc_perfect:.1f}",
            str(pdc.gap_days_remaining),
            f"[{style}]{tier}[/{style}]",
            str(result.priority.priority_score),
            result.priority.urgency_level.value,
        )
    console.print(table)


def main():
    """Main entry point for the CLI."""
    try:
        cli()
    except KeyboardInterrupt:
        console.print("\n[yellow]Operation cancelled by user[/yellow]")
        sys.exit(1)
    except Exception as e:
        console.print(f"\n[bold red]Unexpected error:[/bold red] {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
