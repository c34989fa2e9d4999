"""Command-line interface for the grpc-proxy auto-sync scenario."""

import asyncio
import json
import sys
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional

import click

from proxy_resync.errors import ScenarioFailure
from proxy_resync.log_collector import LogCollector
from proxy_resync.observability import setup_logging
from proxy_resync.scenario import ScenarioController, ScenarioResult
from proxy_resync.settings import Settings, get_settings


@click.group()
def cli():
    """proxy-resync-e2e - endpoint auto-sync scenario for etcd grpc-proxy."""
    pass


@cli.command()
@click.option("--etcd-bin", default=None, help="Path to the etcd binary")
@click.option("--etcdctl-bin", default=None, help="Path to the etcdctl binary")
@click.option("--work-dir", default=None, type=click.Path(path_type=Path),
              help="Directory for member data (a temporary one by default)")
@click.option("--auto-sync-interval", default=None, type=float, help="Proxy auto-sync interval in seconds")
@click.option("--output", default=None, type=click.Path(path_type=Path), help="Directory for the JSON report")
@click.option("--log-level", default=None, help="Logging level (debug, info, warning, error)")
def run(etcd_bin: Optional[str], etcdctl_bin: Optional[str], work_dir: Optional[Path],
        auto_sync_interval: Optional[float], output: Optional[Path], log_level: Optional[str]):
    """Run the scenario against real etcd binaries."""
    settings = get_settings()

    if etcd_bin is not None:
        settings.etcd_bin = etcd_bin
    if etcdctl_bin is not None:
        settings.etcdctl_bin = etcdctl_bin
    if auto_sync_interval is not None:
        settings.auto_sync_interval_seconds = auto_sync_interval
    if log_level is not None:
        settings.log_level = log_level

    setup_logging(settings.log_level)

    click.echo("Running grpc-proxy auto-sync scenario with configuration:")
    click.echo(f"   etcd: {settings.etcd_bin}")
    click.echo(f"   etcdctl: {settings.etcdctl_bin}")
    click.echo(f"   {settings.node1_name}: {settings.node1_client_url} / {settings.node1_peer_url}")
    click.echo(f"   {settings.node2_name}: {settings.node2_client_url} / {settings.node2_peer_url}")
    click.echo(f"   Proxy: {settings.proxy_client_url}")
    click.echo(f"   Auto-sync interval: {settings.auto_sync_interval_seconds}s")
    click.echo()

    collector = LogCollector()
    try:
        result = asyncio.run(_run_scenario(settings, work_dir, collector))
    except ScenarioFailure as e:
        click.echo(e.render(), err=True)
        if output is not None:
            write_report(output, collector, failure=e)
        click.echo("Scenario failed!")
        sys.exit(1)

    if output is not None:
        write_report(output, collector, result=result)
    click.echo(f"Scenario completed successfully in {result.duration_seconds:.1f}s")


async def _run_scenario(settings: Settings, work_dir: Optional[Path], collector: LogCollector) -> ScenarioResult:
    if work_dir is not None:
        return await ScenarioController(settings, work_dir, collector=collector).run()
    with tempfile.TemporaryDirectory(prefix="proxy-resync-") as tmp:
        return await ScenarioController(settings, Path(tmp), collector=collector).run()


def write_report(output: Path,
                 collector: LogCollector,
                 result: Optional[ScenarioResult] = None,
                 failure: Optional[ScenarioFailure] = None) -> Path:
    """Write ``scenario_report.json`` plus the step events into ``output``."""
    output.mkdir(parents=True, exist_ok=True)
    report: Dict[str, Any] = {
        "status": "success" if failure is None else "failed",
        "summary": collector.get_summary(),
    }
    if result is not None:
        report["steps"] = result.steps
        report["values"] = [kv.model_dump() for kv in result.values]
        report["duration_seconds"] = result.duration_seconds
        report["retries"] = result.retries
    if failure is not None:
        report["failed_step"] = failure.step
        report["error"] = str(failure.cause)
        report["outputs"] = failure.outputs

    report_path = output / "scenario_report.json"
    with open(report_path, "w") as f:
        json.dump(report, f, indent=2)
    collector.export_events(output / "events.json")
    return report_path


def main():
    """Main CLI entry point."""
    cli()


if __name__ == "__main__":
    main()
