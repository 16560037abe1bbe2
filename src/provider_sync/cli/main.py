"""Main CLI entry point."""

import sys
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from typing import Callable, Dict, List, Optional, TypeVar

import click
from rich.console import Console
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn
from rich.table import Table

from provider_sync.cancellation import CancellationToken
from provider_sync.config.parser import Config, ConfigValidationError
from provider_sync.driver import ReconcileStatus, ReconciliationResult
from provider_sync.repository.json_store import JsonInventoryStore, StoreError
from provider_sync.service import SyncService
from provider_sync.sinks import ProgressSink
from provider_sync.status import StatusBucket, classify_status, compute_quota_usage
from provider_sync.utils.errors import SyncError
from provider_sync.utils.logging import LogContext, setup_logging

console = Console()

T = TypeVar('T')

STATUS_STYLES = {
    ReconcileStatus.SUCCESS: "green",
    ReconcileStatus.FAILED: "red",
    ReconcileStatus.CANCELLED: "yellow",
}

BUCKET_STYLES = {
    StatusBucket.STABLE: "green",
    StatusBucket.TRANSITIONAL: "yellow",
    StatusBucket.TERMINAL: "dim",
    StatusBucket.UNKNOWN: "red",
}


@click.group()
@click.option('--config', 'config_path', default='provider-sync.yaml', help='Path to configuration file')
@click.option('--log-level', default='info', type=click.Choice(['debug', 'info', 'warning', 'error']))
@click.option('--log-dir', default='.provider-sync/logs', help='Directory for JSON log files')
@click.pass_context
def cli(ctx, config_path, log_level, log_dir):
    """Reconcile local instance inventory with provider state."""
    ctx.ensure_object(dict)
    ctx.obj['config_path'] = config_path
    ctx.obj['log_level'] = log_level

    setup_logging(log_level, log_dir)


def load_config(config_path: str) -> Config:
    """Load and validate configuration file."""
    try:
        return Config(config_path).load()
    except FileNotFoundError:
        console.print(f"[red]Error:[/red] Configuration file not found: {config_path}")
        sys.exit(1)
    except ConfigValidationError as e:
        console.print("[red]Configuration validation failed:[/red]\n")
        console.print(str(e))
        sys.exit(1)


def create_service(config: Config, progress_sink: Optional[ProgressSink] = None) -> SyncService:
    """Create the sync service with all dependencies."""
    return SyncService(config, progress_sink=progress_sink)


class RichProgressSink(ProgressSink):
    """Progress sink that displays job milestones using Rich."""

    def __init__(self, progress: Progress):
        self.progress = progress
        self.tasks: Dict[str, int] = {}

    def report_progress(self, job_id: str, percent: int, message: str) -> None:
        if job_id not in self.tasks:
            self.tasks[job_id] = self.progress.add_task(message, total=100)
        self.progress.update(self.tasks[job_id], completed=percent, description=message)

    def finish(self) -> None:
        for task_id in self.tasks.values():
            self.progress.update(task_id, completed=100)


def run_interruptible(fn: Callable[[], T], token: CancellationToken) -> T:
    """Run fn in a worker thread, turning Ctrl-C into a cooperative cancellation."""
    with ThreadPoolExecutor(max_workers=1) as executor:
        future = executor.submit(fn)
        while True:
            try:
                return future.result(timeout=0.2)
            except FutureTimeoutError:
                continue
            except KeyboardInterrupt:
                if not token.is_cancelled:
                    console.print("[yellow]Cancelling after the current step...[/yellow]")
                    token.cancel("interrupted by user")


def print_results(results: List[ReconciliationResult]) -> None:
    """Render pass results as a table followed by per-pass details."""
    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Provider", style="cyan")
    table.add_column("Status")
    table.add_column("Checked", justify="right")
    table.add_column("Orphans", justify="right")
    table.add_column("Cleaned", justify="right")
    table.add_column("Port Mappings", justify="right")
    table.add_column("Duration", justify="right")

    for result in results:
        style = STATUS_STYLES[result.status]
        table.add_row(
            result.provider_name,
            f"[{style}]{result.status.value}[/{style}]",
            str(result.checked_count),
            str(result.orphan_count),
            str(result.cleaned_instance_count),
            str(result.cleaned_port_mapping_count),
            f"{result.duration:.1f}s"
        )

    console.print(table)

    for result in results:
        style = STATUS_STYLES[result.status]
        body = result.summary
        if result.warnings:
            body += "\n\n[yellow]Warnings:[/yellow]\n" + "\n".join(
                f"  - {warning.message}" for warning in result.warnings
            )
        if result.error and result.error.suggestions:
            body += "\n\n[bold]Suggested fixes:[/bold]\n" + "\n".join(
                f"  {i}. {s}" for i, s in enumerate(result.error.suggestions, 1)
            )
        console.print(Panel(body, title=result.provider_name, border_style=style))


@cli.command()
@click.pass_context
def providers(ctx):
    """List configured providers."""
    config = load_config(ctx.obj['config_path'])

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("ID", justify="right")
    table.add_column("Name", style="cyan")
    table.add_column("Type")
    table.add_column("Region")
    table.add_column("Status")

    for provider in config.providers:
        status_style = "green" if provider.is_active() else "dim"
        table.add_row(
            str(provider.id),
            provider.name,
            provider.type,
            provider.region or "-",
            f"[{status_style}]{provider.status}[/{status_style}]"
        )

    console.print(table)


@cli.command()
@click.option('--provider', 'provider_ref', required=True, help='Provider id or name')
@click.pass_context
def check(ctx, provider_ref):
    """Check that a provider is reachable."""
    config = load_config(ctx.obj['config_path'])
    service = create_service(config)

    try:
        with console.status(f"[cyan]Checking provider {provider_ref}..."):
            provider = service.check_provider(provider_ref)
    except SyncError as e:
        console.print(f"[red]{e.to_user_message()}[/red]")
        sys.exit(1)

    console.print(f"[green]Provider {provider.name} is reachable[/green]")


@cli.command()
@click.option('--provider', 'provider_ref', help='Provider id or name')
@click.option('--all', 'sync_all', is_flag=True, help='Reconcile every active provider')
@click.option('--parallel/--sequential', default=True, help='Reconcile providers concurrently')
@click.pass_context
def sync(ctx, provider_ref, sync_all, parallel):
    """Remove local instances and port mappings the provider no longer has."""
    if bool(provider_ref) == bool(sync_all):
        raise click.UsageError("Specify exactly one of --provider or --all")

    config = load_config(ctx.obj['config_path'])
    token = CancellationToken()

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        console=console,
        transient=True
    ) as progress:
        sink = RichProgressSink(progress)
        service = create_service(config, progress_sink=sink)

        try:
            if sync_all:
                results = run_interruptible(lambda: service.sync_all(parallel, token), token)
            else:
                provider = config.get_provider(provider_ref)
                with LogContext(provider_id=provider.id, provider_name=provider.name):
                    results = [run_interruptible(
                        lambda: service.sync_provider(provider.id, cancel_token=token), token
                    )]
        except SyncError as e:
            console.print(f"[red]{e.to_user_message()}[/red]")
            sys.exit(1)
        sink.finish()

    if not results:
        console.print("[dim]No active providers to reconcile[/dim]")
        return

    print_results(results)

    if any(result.is_failed() for result in results):
        sys.exit(1)


@cli.command()
@click.option('--provider', 'provider_ref', required=True, help='Provider id or name')
@click.option('--include-deleted', is_flag=True, help='Also show deleted and deleting instances')
@click.pass_context
def inventory(ctx, provider_ref, include_deleted):
    """Show locally tracked instances of a provider."""
    config = load_config(ctx.obj['config_path'])

    try:
        provider = config.get_provider(provider_ref)
        store = JsonInventoryStore(config.store.path, lock_timeout=config.store.lock_timeout)
        inventory_data = store.load()
    except SyncError as e:
        console.print(f"[red]{e.to_user_message()}[/red]")
        sys.exit(1)
    except StoreError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)

    instances = inventory_data.instances_for_provider(provider.id, include_deleted=include_deleted)
    if not instances:
        console.print(f"[dim]No instances tracked for provider {provider.name}[/dim]")
        return

    table = Table(show_header=True, header_style="bold cyan", title=f"Provider {provider.name}")
    table.add_column("ID", justify="right")
    table.add_column("Name", style="cyan")
    table.add_column("Status")
    table.add_column("Bucket")
    table.add_column("Port Mappings", justify="right")
    table.add_column("Updated")

    for instance in instances:
        bucket = classify_status(instance.status)
        style = BUCKET_STYLES[bucket]
        table.add_row(
            str(instance.id),
            instance.name,
            instance.status,
            f"[{style}]{bucket.value}[/{style}]",
            str(len(inventory_data.port_mappings_for_instance(instance.id))),
            instance.updated_at.strftime('%Y-%m-%d %H:%M:%S')
        )

    console.print(table)


@cli.command()
@click.option('--provider', 'provider_ref', required=True, help='Provider id or name')
@click.pass_context
def quota(ctx, provider_ref):
    """Show used and pending instance quota for a provider."""
    config = load_config(ctx.obj['config_path'])

    try:
        provider = config.get_provider(provider_ref)
        store = JsonInventoryStore(config.store.path, lock_timeout=config.store.lock_timeout)
        instances = store.list_instances(provider.id, include_deleted=True)
    except SyncError as e:
        console.print(f"[red]{e.to_user_message()}[/red]")
        sys.exit(1)
    except StoreError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)

    usage = compute_quota_usage(instance.status for instance in instances)

    console.print(Panel.fit(
        f"Used: [green]{usage.used}[/green]\n"
        f"Pending: [yellow]{usage.pending}[/yellow]\n"
        f"Total: {usage.total}",
        title=f"Quota - {provider.name}",
        border_style="cyan"
    ))


def main():
    cli(obj={})


if __name__ == '__main__':
    main()
