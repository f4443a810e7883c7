"""
Command-line interface for itilops

Provides CLI commands for:
- Drafting incidents: itilops ingest --alert-file alert.json --ci-file ci.json
- Checking SLAs: itilops check-sla --incidents-file incidents.yml
- Finding patterns: itilops patterns --incidents-file incidents.json
- CI impact: itilops impact --data-file snapshot.json --ci-id ci-002
- Reports: itilops report --data-file snapshot.json --kind sla
- Automation cycles: itilops sync [--watch]
- Managing configuration: itilops config --show

Input files may be JSON or YAML.
"""

import asyncio
import json
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

import click
import yaml

from . import __version__
from .config import ItilOpsConfig, get_config, set_config
from .context import NamespaceContext
from .impact import CIImpactAnalyzer
from .ingest import AlertIngestor
from .models import (
    Change,
    ConfigurationItem,
    Incident,
    MonitoringAlert,
    Problem,
    ensure_utc,
    utcnow,
)
from .observability import configure_logging, initialize_observability, shutdown_observability
from .patterns import PatternLinker
from .pipeline import AutomationPipeline, CycleReport
from .policy import AssignmentMatrix, SLAPolicy
from .rendering import DescriptionRenderer
from .reports import ReportBuilder
from .scheduler import AutoSyncScheduler
from .sla import SLAMonitor

REPORT_KINDS = ["incident", "problem", "change", "sla", "cmdb", "availability"]


def _load_data(path: str) -> Any:
    """Load a JSON or YAML file, chosen by extension"""
    with open(path, encoding="utf-8") as f:
        if Path(path).suffix.lower() in (".yml", ".yaml"):
            return yaml.safe_load(f)
        return json.load(f)


def _load_records(path: str, key: str, model) -> list:
    data = _load_data(path)
    if isinstance(data, dict):
        data = data.get(key, [])
    return [model.model_validate(item) for item in data or []]


def _parse_now(value: Optional[str]) -> datetime:
    if not value:
        return utcnow()
    return ensure_utc(datetime.fromisoformat(value))


def _fail(message: str) -> None:
    click.echo(f"❌ {message}", err=True)
    sys.exit(1)


@click.group()
@click.version_option(version=__version__, prog_name="itilops")
@click.option(
    "--config-file",
    type=click.Path(),
    default=None,
    help="YAML configuration file (default: itilops.yml if present)",
)
@click.option("--log-level", default="WARNING", help="Logging level")
def cli(config_file: Optional[str], log_level: str):
    """itilops - ITIL automation: SLA monitoring, escalation and problem linking"""
    configure_logging(level=log_level.upper(), log_format="text")
    if config_file:
        set_config(ItilOpsConfig.load_from_file(config_file))


@cli.command()
@click.option(
    "--alert-file",
    type=click.Path(exists=True),
    required=True,
    help="File containing the monitoring alert",
)
@click.option(
    "--ci-file",
    type=click.Path(exists=True),
    required=True,
    help="File containing the affected configuration item",
)
@click.option("--json", "as_json", is_flag=True, help="Print the incident as JSON")
def ingest(alert_file: str, ci_file: str, as_json: bool):
    """Draft an incident from a monitoring alert"""
    try:
        config = get_config()
        alert = MonitoringAlert.model_validate(_load_data(alert_file))
        ci = ConfigurationItem.model_validate(_load_data(ci_file))

        ingestor = AlertIngestor(
            SLAPolicy.from_config(config),
            AssignmentMatrix.from_config(config),
            DescriptionRenderer(config.templates_dir),
        )
        incident = ingestor.ingest(alert, ci)
    except Exception as e:
        _fail(f"Alert ingestion failed: {e}")
        return

    if as_json:
        click.echo(incident.model_dump_json(indent=2))
        return

    click.echo(f"🚨 Incident drafted from {alert_file}")
    click.echo("=" * 50)
    click.echo(f"ID: {incident.id}")
    click.echo(f"Title: {incident.title}")
    click.echo(f"Severity: {incident.severity.value}")
    click.echo(f"Assigned Group: {incident.assigned_group}")
    click.echo(f"SLA Response: {incident.sla_response_time} min")
    click.echo(f"SLA Resolution: {incident.sla_resolution_time} min")
    click.echo(f"Escalation After: {incident.escalation_threshold} min")


@cli.command("check-sla")
@click.option(
    "--incidents-file",
    type=click.Path(exists=True),
    required=True,
    help="File containing a list of incidents",
)
@click.option("--now", default=None, help="Reference time (ISO 8601), default: now")
def check_sla(incidents_file: str, now: Optional[str]):
    """Report SLA violations for a set of incidents"""
    try:
        incidents = _load_records(incidents_file, "incidents", Incident)
        monitor = SLAMonitor(SLAPolicy.from_config(get_config()))
        violations = monitor.check_violations(incidents, _parse_now(now))
    except Exception as e:
        _fail(f"SLA check failed: {e}")
        return

    if not violations:
        click.echo(f"✅ No SLA violations in {len(incidents)} incidents")
        return

    click.echo(f"⏱️  {len(violations)} SLA violations in {len(incidents)} incidents")
    click.echo("=" * 50)
    for v in violations:
        click.echo(
            f"  - {v.type.value} {v.incident_id}: "
            f"{v.elapsed_time}/{v.threshold} min -> {v.recommended_action}"
        )


@cli.command()
@click.option(
    "--incidents-file",
    type=click.Path(exists=True),
    required=True,
    help="File containing a list of incidents",
)
@click.option("--window", type=int, default=None, help="Window in minutes")
@click.option("--min-count", type=int, default=None, help="Minimum incidents per CI")
@click.option("--now", default=None, help="Reference time (ISO 8601), default: now")
def patterns(
    incidents_file: str,
    window: Optional[int],
    min_count: Optional[int],
    now: Optional[str],
):
    """Find CIs with repeated recent incidents"""
    try:
        incidents = _load_records(incidents_file, "incidents", Incident)
        linker = PatternLinker.from_config(get_config())
        found = linker.find_patterns(
            incidents, _parse_now(now), window_minutes=window, min_count=min_count
        )
    except Exception as e:
        _fail(f"Pattern analysis failed: {e}")
        return

    click.echo(f"🔗 Found {len(found)} incident patterns")
    for pattern in found:
        click.echo(
            f"  - CI {pattern.ci_id}: {pattern.count} incidents "
            f"({pattern.severity.value}) [{', '.join(pattern.incident_ids)}]"
        )


@cli.command()
@click.option(
    "--data-file",
    type=click.Path(exists=True),
    required=True,
    help="File with cis, incidents, problems and changes",
)
@click.option("--ci-id", required=True, help="Configuration item to analyze")
def impact(data_file: str, ci_id: str):
    """Analyze the impact and risk of a configuration item"""
    try:
        report = CIImpactAnalyzer().analyze(
            ci_id,
            _load_records(data_file, "cis", ConfigurationItem),
            _load_records(data_file, "incidents", Incident),
            _load_records(data_file, "problems", Problem),
            _load_records(data_file, "changes", Change),
        )
    except Exception as e:
        _fail(f"Impact analysis failed: {e}")
        return

    click.echo(f"📊 Impact Analysis for {report.ci.name} ({report.ci.id})")
    click.echo("=" * 50)
    click.echo(f"Risk: {report.risk_assessment}")
    direct = report.direct_impact
    click.echo(
        f"Incidents: {direct.incidents} ({direct.open_issues} open), "
        f"Problems: {direct.problems}, Changes: {direct.changes}"
    )
    click.echo(f"Dependent CIs: {len(report.relationships.dependent_cis)}")
    click.echo(f"Dependencies: {len(report.relationships.dependency_cis)}")
    if report.recommendations:
        click.echo("\nRecommendations:")
        for i, recommendation in enumerate(report.recommendations, 1):
            click.echo(f"  {i}. {recommendation}")


@cli.command()
@click.option(
    "--data-file",
    type=click.Path(exists=True),
    required=True,
    help="File with cis, incidents, problems and changes",
)
@click.option("--kind", type=click.Choice(REPORT_KINDS), required=True)
@click.option("--now", default=None, help="Reference time for SLA elapsed times")
def report(data_file: str, kind: str, now: Optional[str]):
    """Build an ITIL report and print it as JSON"""
    try:
        builder = ReportBuilder(SLAPolicy.from_config(get_config()))
        if kind == "incident":
            result = builder.incident_report(_load_records(data_file, "incidents", Incident))
        elif kind == "problem":
            result = builder.problem_report(_load_records(data_file, "problems", Problem))
        elif kind == "change":
            result = builder.change_report(_load_records(data_file, "changes", Change))
        elif kind == "sla":
            result = builder.sla_report(
                _load_records(data_file, "incidents", Incident), _parse_now(now)
            )
        elif kind == "cmdb":
            result = builder.cmdb_report(_load_records(data_file, "cis", ConfigurationItem))
        else:
            result = builder.service_availability_report(
                _load_records(data_file, "incidents", Incident),
                _load_records(data_file, "cis", ConfigurationItem),
            )
    except Exception as e:
        _fail(f"Report generation failed: {e}")
        return

    click.echo(result.model_dump_json(indent=2))


def _print_cycle(report: CycleReport) -> None:
    click.echo(f"🔄 Cycle for {report.namespace} at {report.run_at.isoformat()}")
    click.echo(f"Violations: {len(report.violations)}")
    click.echo(f"Escalated: {', '.join(report.escalated_incident_ids) or '-'}")
    click.echo(f"Patterns: {len(report.patterns)}")
    click.echo(f"Problems created: {', '.join(report.created_problem_ids) or '-'}")
    click.echo(f"Problems updated: {', '.join(report.updated_problem_ids) or '-'}")
    if report.skipped_ci_ids:
        click.echo(f"⚠️  Unknown CIs skipped: {', '.join(report.skipped_ci_ids)}")


async def _watch(scheduler: AutoSyncScheduler) -> None:
    scheduler.start()
    try:
        while True:
            await asyncio.sleep(3600)
    finally:
        await scheduler.stop()


@cli.command()
@click.option("--namespace", default=None, help="Tenant namespace (default: configured)")
@click.option("--now", default=None, help="Reference time (ISO 8601), default: now")
@click.option("--watch", is_flag=True, help="Keep running cycles on the configured interval")
def sync(namespace: Optional[str], now: Optional[str], watch: bool):
    """Run the automation cycle against the configured storage"""
    config = get_config()
    if config.telemetry.enabled:
        initialize_observability(config.telemetry)

    try:
        pipeline = AutomationPipeline(config)
        if watch:
            scheduler = AutoSyncScheduler(pipeline, namespace=namespace, run_immediately=True)
            click.echo(
                f"⏱️  Auto-sync for {scheduler.namespace} every "
                f"{scheduler.interval_minutes} minutes (Ctrl+C to stop)"
            )
            try:
                asyncio.run(_watch(scheduler))
            except KeyboardInterrupt:
                click.echo("Auto-sync stopped")
            return

        with NamespaceContext(namespace or config.get_current_namespace()):
            report = pipeline.run_cycle(_parse_now(now))
    except Exception as e:
        _fail(f"Sync failed: {e}")
        return
    finally:
        shutdown_observability()

    _print_cycle(report)


@cli.command()
@click.option("--show", is_flag=True, help="Show current configuration")
@click.option("--format", type=click.Choice(["yaml", "json"]), default="yaml", help="Output format")
def config(show: bool, format: str):
    """Manage itilops configuration"""
    if show:
        try:
            config_dict = get_config().model_dump(mode="json")
        except Exception as e:
            _fail(f"Failed to load configuration: {e}")
            return

        click.echo("🔧 Current itilops Configuration")
        click.echo("=" * 40)
        if format == "yaml":
            click.echo(yaml.dump(config_dict, default_flow_style=False, indent=2))
        else:
            click.echo(json.dumps(config_dict, indent=2))
    else:
        click.echo("Use --show to display current configuration")
        click.echo("Available options:")
        click.echo("  --show          Show current configuration")
        click.echo("  --format yaml   Output in YAML format (default)")
        click.echo("  --format json   Output in JSON format")


def main():
    """Entry point for the CLI"""
    cli()


if __name__ == "__main__":
    main()
