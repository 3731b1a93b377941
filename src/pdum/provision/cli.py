"""CLI entry point for pdum_provision."""

import sys
from dataclasses import replace
from enum import Enum
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from pdum.provision.archive import ArchiveAggregator
from pdum.provision.config import ProvisionConfig
from pdum.provision.control_plane import ControlPlane, GCloudControlPlane
from pdum.provision.log import ConsoleLogger
from pdum.provision.provisioner import Provisioner, ProvisioningReport
from pdum.provision.types.exceptions import ConfigError, ControlPlaneError, GCloudError
from pdum.provision.utils import (
    check_environment,
    choose_billing_account,
    confirm,
    format_mode,
    list_key_files,
)

app = typer.Typer(
    help="Provision a GCP project with billing, APIs, an API key and a service-account key",
    no_args_is_help=True,
)
console = Console()


class Backend(str, Enum):
    GCLOUD = "gcloud"
    API = "api"


def _control_plane(backend: Backend, logger: ConsoleLogger) -> ControlPlane:
    if backend is Backend.API:
        from pdum.provision.api_control_plane import ApiControlPlane

        return ApiControlPlane(logger=logger)

    account = check_environment()
    logger.success(f"gcloud environment OK (account: {account})")
    return GCloudControlPlane(logger=logger)


def _load_config(config_file: Optional[Path], billing: Optional[str], **overrides) -> ProvisionConfig:
    config = ProvisionConfig.from_yaml(config_file) if config_file else ProvisionConfig()
    if billing and billing.lower() == "auto":
        # "auto" beats an account set in the YAML file
        config = replace(config, billing_account=None)
        billing = None
    return config.with_overrides(billing_account=billing, **overrides)


def _print_plan(config: ProvisionConfig, project_id: str, backend: Backend, dry_run: bool, count: int = 1) -> None:
    mode_text = " [DRY RUN]" if dry_run else ""
    if count > 1:
        projects_text = f"Projects: {count}, one at a time (first: {project_id})"
    else:
        projects_text = f"Project ID: {project_id}"
    console.print(
        Panel.fit(
            f"[bold cyan]Provision project{mode_text}[/bold cyan]\n"
            f"{projects_text}\n"
            f"Billing: {config.billing_account or 'first open account'}\n"
            f"Backend: {backend.value}\n"
            f"Key directory: {config.key_dir}",
            border_style="yellow" if dry_run else "cyan",
        )
    )
    if not dry_run:
        return

    steps = [
        f"Create project {project_id}",
        "Link billing (unlink existing projects once if the account is full)",
        *[f"Enable {service}" for service in config.services],
        f"Create API key '{config.api_key_display_name}' for {config.api_key_target_service}",
        f"Create service account {config.service_account_email(project_id)}",
        *[f"Grant {role}" for role in config.roles],
        f"Create service account key in {config.key_dir}",
        f"Archive key files under {config.archive_root}",
    ]
    for step in steps:
        console.print(f"[dim][DRY RUN] Would {step[0].lower()}{step[1:]}[/dim]")


def _print_report(report: ProvisioningReport) -> None:
    summary = report.summary()

    if report.aborted:
        title, color = "Interrupted", "yellow"
    elif report.failed:
        title, color = f"Provisioning {summary['state']}", "red"
    else:
        title, color = "Provisioning complete", "green"

    lines = [
        f"[bold {color}]{title}[/bold {color}]\n",
        f"Project ID: {summary['project_id']}",
        f"State: {summary['state']}",
        f"Elapsed: {summary['elapsed_seconds']}s",
        f"Billing: {summary['billing_account'] or 'N/A'}",
    ]
    if summary["unlinked_projects"]:
        lines.append(f"Unlinked: {', '.join(summary['unlinked_projects'])}")
    if summary["error"]:
        lines.append(f"Error: {summary['error']}")
    console.print(Panel.fit("\n".join(lines), border_style=color))

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Item")
    table.add_column("Status")

    def status_cell(status: str) -> str:
        if status in ("ok", "enabled", "already enabled", "bound"):
            return f"[green]{status}[/green]"
        if status == "not attempted":
            return f"[dim]{status}[/dim]"
        return f"[red]{status}[/red]"

    for service, status in summary["services"].items():
        table.add_row(service, status_cell(status))
    for role, status in summary["role_bindings"].items():
        table.add_row(role, status_cell(status))

    api_status = status_cell(summary["api_key"])
    if report.api_key is not None and report.api_key.ok:
        api_key = report.api_key.credential
        api_status += f" {api_key.masked()} ({api_key.file_path})"
    table.add_row("API key", api_status)

    sa_status = status_cell(summary["service_account_key"])
    if report.service_account_key is not None and report.service_account_key.ok:
        sa_status += f" ({report.service_account_key.credential.file_path})"
    table.add_row("Service account key", sa_status)

    if summary["archive"]:
        archived = report.archive is not None and report.archive.directory is not None
        table.add_row("Archive", summary["archive"] if archived else f"[red]{summary['archive']}[/red]")
    for path, error in summary["archive_left_in_place"].items():
        table.add_row(f"Not archived: {path}", f"[red]{error}[/red]")

    console.print(table)


def _print_batch(reports: list[ProvisioningReport], archiver: ArchiveAggregator) -> None:
    failed = sum(1 for r in reports if r.failed)
    console.print(f"\n[bold]Projects: {len(reports)}, succeeded: {len(reports) - failed}, failed: {failed}[/bold]")

    keys = [r.api_key.credential.value for r in reports if r.api_key is not None and r.api_key.credential is not None]
    if not keys:
        console.print("[yellow]No API keys were created.[/yellow]")
        return
    try:
        lines_path, csv_path = archiver.write_key_lists(keys)
    except OSError as e:
        console.print(f"[bold red]Could not write the API key lists:[/bold red] {e}")
        return
    console.print(f"API keys, one per line: [bold]{lines_path}[/bold]")
    console.print(f"API keys, comma-separated: [bold]{csv_path}[/bold]")


@app.command("version")
def version():
    """Show the version of pdum_provision."""
    from pdum.provision import __version__

    console.print(f"pdum_provision version: [bold green]{__version__}[/bold green]")


@app.command("provision")
def provision(
    prefix: Optional[str] = typer.Option(
        None,
        "--prefix",
        "-p",
        envvar="PROJECT_PREFIX",
        help="Prefix for the generated project ID",
    ),
    billing: Optional[str] = typer.Option(
        None,
        "--billing",
        "-b",
        envvar="BILLING_ACCOUNT",
        help="Billing account ID, or 'auto' to use the first open account",
    ),
    choose_billing: bool = typer.Option(
        False,
        "--choose-billing",
        help="Pick the billing account interactively instead of using the first open one",
    ),
    config_file: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        exists=True,
        dir_okay=False,
        help="YAML file with provisioning settings",
    ),
    services: Optional[list[str]] = typer.Option(
        None,
        "--service",
        "-s",
        help="API to enable (repeatable; replaces the default list)",
    ),
    roles: Optional[list[str]] = typer.Option(
        None,
        "--role",
        "-r",
        help="IAM role for the service account (repeatable; replaces the default list)",
    ),
    service_account: Optional[str] = typer.Option(
        None,
        "--service-account",
        envvar="SERVICE_ACCOUNT_NAME",
        help="Service account name",
    ),
    max_retry: Optional[int] = typer.Option(
        None,
        "--max-retry",
        envvar="MAX_RETRY",
        min=1,
        help="Attempts per remote call",
    ),
    retry_step: Optional[float] = typer.Option(
        None,
        "--retry-step",
        min=0,
        help="Seconds added to the wait after each failed attempt",
    ),
    retry_jitter: Optional[float] = typer.Option(
        None,
        "--retry-jitter",
        min=0,
        help="Maximum random seconds added to each wait",
    ),
    key_dir: Optional[Path] = typer.Option(
        None,
        "--key-dir",
        envvar="KEY_DIR",
        help="Directory for key files (created with owner-only access)",
    ),
    archive_root: Optional[Path] = typer.Option(
        None,
        "--archive-root",
        help="Directory in which the timestamped result folder is created",
    ),
    backend: Backend = typer.Option(
        Backend.GCLOUD,
        "--backend",
        help="Talk to GCP through the gcloud CLI or the REST APIs",
    ),
    sequential: bool = typer.Option(
        False,
        "--sequential",
        help="Extract the two credentials one after the other",
    ),
    count: int = typer.Option(
        1,
        "--count",
        min=1,
        help="Number of projects to provision, one after another",
    ),
    recover_on_any_error: bool = typer.Option(
        False,
        "--recover-on-any-error",
        help="Free billing quota after any link failure, not only quota errors",
    ),
    yes: bool = typer.Option(
        False,
        "--yes",
        "-y",
        help="Do not ask for confirmation",
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        "-n",
        help="Show what would be done without making changes",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Print every remote command",
    ),
):
    """
    Create a project and extract an API key and a service-account key.

    The project is linked to a billing account. If the account is at its
    project limit, projects already linked to it are unlinked once and the
    link is retried. If billing still cannot be linked, the new project is
    deleted again.

    Examples:
        # First open billing account, default APIs and roles
        pdum_provision provision

        # Specific billing account and prefix, no prompt
        pdum_provision provision --billing 0X0X0X-0X0X0X-0X0X0X --prefix demo --yes

        # See the plan only
        pdum_provision provision --dry-run

        # Three projects in a row, with all API keys collected in one list
        pdum_provision provision --count 3 --yes
    """
    logger = ConsoleLogger(console, verbose=verbose)
    try:
        config = _load_config(
            config_file,
            billing,
            project_prefix=prefix,
            services=tuple(services) if services else None,
            roles=tuple(roles) if roles else None,
            service_account_name=service_account,
            max_attempts=max_retry,
            retry_step_seconds=retry_step,
            retry_jitter_seconds=retry_jitter,
            key_dir=key_dir,
            archive_root=archive_root,
            parallel_credentials=False if sequential else None,
            recover_on_any_link_error=True if recover_on_any_error else None,
        )

        control_plane = _control_plane(backend, logger)

        if choose_billing and not config.billing_account:
            account = choose_billing_account(control_plane.list_open_billing_accounts())
            config = config.with_overrides(billing_account=account.id)

        provisioner = Provisioner(control_plane, config, logger=logger)
        record = provisioner.new_record()
        _print_plan(config, record.id, backend, dry_run, count)
        if dry_run:
            return

        question = f"Create project {record.id} now?" if count == 1 else f"Create {count} projects now?"
        if not yes and not confirm(question, default=True):
            console.print("[yellow]Nothing was created.[/yellow]")
            return

        reports: list[ProvisioningReport] = []
        for number in range(1, count + 1):
            if number > 1:
                record = provisioner.new_record()
                logger.info(f"Project {number}/{count}: {record.id}")
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                console=console,
                transient=True,
            ) as progress:
                progress.add_task(description=f"Provisioning {record.id}...", total=None)
                report = provisioner.run(record)

            _print_report(report)
            reports.append(report)
            if report.aborted:
                break

        if count > 1:
            _print_batch(reports, provisioner.archiver)
        if any(r.failed for r in reports):
            sys.exit(1)
    except (GCloudError, ConfigError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        console.print("\n[yellow]Provisioning interrupted by user.[/yellow]")
    except Exception as e:
        console.print(f"[bold red]Unexpected error:[/bold red] {e}")
        sys.exit(1)


@app.command("billing-accounts")
def billing_accounts(
    backend: Backend = typer.Option(Backend.GCLOUD, "--backend", help="gcloud CLI or REST APIs"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Print every remote command"),
):
    """List open billing accounts and the projects linked to each."""
    logger = ConsoleLogger(console, verbose=verbose)
    try:
        control_plane = _control_plane(backend, logger)
        accounts = control_plane.list_open_billing_accounts()
        if not accounts:
            console.print("[yellow]No open billing accounts found.[/yellow]")
            return

        table = Table(show_header=True, header_style="bold cyan")
        table.add_column("Billing Account")
        table.add_column("Account ID")
        table.add_column("Linked Projects")

        for account in accounts:
            try:
                linked = control_plane.list_linked_projects(account.id)
                linked_text = ", ".join(linked) if linked else "[dim]none[/dim]"
            except ControlPlaneError as e:
                linked_text = f"[red]unavailable: {e}[/red]"
            table.add_row(account.display_name, account.id, linked_text)

        console.print(table)
    except ControlPlaneError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        sys.exit(1)


@app.command("keys")
def keys(
    key_dir: Path = typer.Option(Path("keys"), "--key-dir", envvar="KEY_DIR", help="Directory holding key files"),
):
    """List key files and whether they are private to their owner."""
    files = list_key_files(key_dir)
    if not files:
        console.print(f"[yellow]No key files in {key_dir}[/yellow]")
        return

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("File")
    table.add_column("Mode")
    table.add_column("Private")
    table.add_column("Size")
    table.add_column("Modified")

    for key_file in files:
        private = "[green]Yes[/green]" if key_file.is_private else "[red]No[/red]"
        table.add_row(
            str(key_file.path),
            format_mode(key_file.mode),
            private,
            str(key_file.size),
            key_file.modified.strftime("%Y-%m-%d %H:%M:%S"),
        )
    console.print(table)


def main():
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
