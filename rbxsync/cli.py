"""rbxsync CLI — the main entry point."""

from __future__ import annotations

import logging
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from rbxsync import __version__
from rbxsync.errors import ConflictError, ProviderError, SyncError, ValidationError

console = Console()

KIND_CHOICE = click.Choice(["passes", "badges", "products"])


class Project:
    """Paths and credentials shared by every command."""

    def __init__(self, config: str, api_key: str | None):
        self.config_path = Path(config)
        self.root = self.config_path.parent
        self.api_key = api_key

    @property
    def checkpoint(self):
        from rbxsync.state.checkpoint import CheckpointFile, checkpoint_path_for

        return CheckpointFile(checkpoint_path_for(self.config_path))

    @property
    def content(self):
        from rbxsync.content import ContentStore

        return ContentStore(self.root)

    def load_desired(self):
        from rbxsync.state.desired import load_desired

        return load_desired(self.config_path)

    def save_desired(self, state):
        from rbxsync.state.desired import save_desired

        save_desired(state, self.config_path)

    def provider(self, desired, badge_cost: int = 0):
        from rbxsync.providers.opencloud import OpenCloudProvider

        return OpenCloudProvider(
            api_key=self.api_key,
            universe_id=desired.experience.universe_id,
            creator_type=desired.experience.creator_type,
            badge_cost=badge_cost,
        )


def _run(fn, *args, **kwargs):
    """Run a command body, turning engine errors into exit code 1."""
    try:
        fn(*args, **kwargs)
    except ValidationError as e:
        console.print("[red]Invalid configuration:[/]")
        for issue in e.issues:
            console.print(f"  [red]x[/] {issue}")
        raise SystemExit(1)
    except SyncError as e:
        console.print(f"[red]Error:[/] {e}")
        raise SystemExit(1)


@click.group()
@click.version_option(version=__version__)
@click.option("--config", "config", default="rbxsync.yaml", show_default=True, help="Path to config file")
@click.option("--api-key", envvar="RBXSYNC_API_KEY", default=None, help="Roblox Open Cloud API key")
@click.option("--verbose", "-v", is_flag=True, help="Log every remote call")
@click.pass_context
def main(ctx: click.Context, config: str, api_key: str | None, verbose: bool):
    """rbxsync — declaratively manage Roblox game passes, badges, and developer products.

    Declare resources in rbxsync.yaml, then `sync` them. Applied state is
    checkpointed in rbxsync.lock.yaml next to it.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )
    ctx.obj = Project(config, api_key)


# ── Init ─────────────────────────────────────────────────────────────


@main.command()
@click.pass_obj
def init(project: Project):
    """Write a starter rbxsync.yaml."""
    from rbxsync.state.desired import default_template

    if project.config_path.exists():
        console.print(
            f"[red]{project.config_path} already exists.[/] Remove it first or use --config."
        )
        raise SystemExit(1)

    project.config_path.write_text(default_template())
    console.print(f"[green]v[/] Created {project.config_path}")
    console.print("Edit the file to configure your universe and resources, then run `rbxsync sync`.")


# ── Check / Diff ─────────────────────────────────────────────────────


@main.command()
@click.pass_obj
def check(project: Project):
    """Validate the config and compare it against the checkpoint."""
    _run(_check, project)


def _check(project: Project):
    from rbxsync.sync.planner import build_sync_plan

    desired = project.load_desired()
    console.print(f"[green]v[/] Config is valid ({project.config_path})")

    checkpoint = project.checkpoint
    if not checkpoint.exists():
        console.print("[yellow]![/] No checkpoint found. Run `rbxsync sync` to create one.")
        return

    applied = checkpoint.load()
    console.print(f"[green]v[/] Checkpoint is valid ({checkpoint.path}, {applied.count()} resources)")

    if applied.universe_id != desired.experience.universe_id:
        console.print(
            f"[red]x[/] Universe ID mismatch: config={desired.experience.universe_id}, "
            f"checkpoint={applied.universe_id}"
        )

    plan = build_sync_plan(desired, applied, project.content)
    for warning in plan.warnings:
        console.print(f"[yellow]![/] {warning}")

    if plan.has_changes:
        console.print(
            f"[yellow]![/] Out of sync: {plan.summary()}. Run `rbxsync diff` for details."
        )
    else:
        console.print("[green]v[/] Everything is in sync.")


@main.command()
@click.pass_obj
def diff(project: Project):
    """Show what `sync` would change, field by field."""
    _run(_diff, project)


def _diff(project: Project):
    from rbxsync.sync.planner import build_sync_plan

    desired = project.load_desired()
    plan = build_sync_plan(desired, project.checkpoint.load(), project.content)
    _print_plan(plan, show_skips=True)


def _print_plan(plan, show_skips: bool = False):
    from rbxsync.models.plan import Create, Update

    for warning in plan.warnings:
        console.print(f"[yellow]![/] {warning}")

    for action in plan.ordered():
        label = action.kind.label
        if isinstance(action.action, Create):
            console.print(f"  [green]+ create[/] {label} [bold]{action.key}[/]")
        elif isinstance(action.action, Update):
            console.print(f"  [yellow]~ update[/] {label} [bold]{action.key}[/]")
            for change in action.action.changes:
                console.print(f"    [dim]·[/] {change}")
        elif show_skips:
            console.print(f"  [dim]= skip {label} {action.key}[/]")

    console.print(f"\n{plan.summary()}")


# ── Sync ─────────────────────────────────────────────────────────────


@main.command()
@click.option("--dry-run", is_flag=True, help="Show what would change without applying")
@click.option("--only", default=None, help="Only sync these kinds (comma-separated: passes,badges,products)")
@click.option("--badge-cost", default=0, show_default=True, help="Expected Robux cost when creating a badge")
@click.pass_obj
def sync(project: Project, dry_run: bool, only: str | None, badge_cost: int):
    """Create and update remote resources to match the config."""
    _run(_sync, project, dry_run, only, badge_cost)


def _sync(project: Project, dry_run: bool, only: str | None, badge_cost: int):
    from rbxsync.models.resources import KIND_ORDER, ResourceKind
    from rbxsync.sync.planner import build_sync_plan
    from rbxsync.sync.reconciler import Reconciler

    kinds = KIND_ORDER
    if only:
        try:
            kinds = tuple(ResourceKind.parse(k) for k in only.split(",") if k.strip())
        except ValueError as e:
            raise ValidationError(str(e))

    desired = project.load_desired()
    checkpoint = project.checkpoint
    applied = checkpoint.load()
    content = project.content

    plan = build_sync_plan(desired, applied, content, kinds=kinds)

    if not plan.has_changes:
        for warning in plan.warnings:
            console.print(f"[yellow]![/] {warning}")
        console.print("[green]v[/] Everything is up to date.")
        return

    _print_plan(plan)

    if dry_run:
        console.print("\n[blue]i[/] Dry run — no changes applied.")
        return

    reconciler = Reconciler(project.provider(desired, badge_cost), content, checkpoint.save, kinds=kinds)
    try:
        report = reconciler.apply(plan, desired, applied)
    except SyncError as e:
        report = reconciler.report
        reason = f" ({e.category})" if isinstance(e, ProviderError) else ""
        console.print(f"\n[red]Sync aborted[/]{reason}: {e}")
        if report.applied:
            console.print("Applied and checkpointed before the failure:")
            for done in report.applied:
                console.print(f"  [green]v[/] {done.verb} {done.kind.label} {done.key} (id: {done.remote_id})")
        console.print("Run `rbxsync sync` again to retry the remaining changes.")
        raise SystemExit(1)

    for done in report.applied:
        console.print(f"  [green]v[/] {done.verb} {done.kind.label} [bold]{done.key}[/] (id: {done.remote_id})")
    console.print("[green]v[/] Sync complete.")


# ── Pull ─────────────────────────────────────────────────────────────


@main.command()
@click.option("--dry-run", is_flag=True, help="Show how remote state differs without writing anything")
@click.option("--accept-remote", is_flag=True, help="Keep remote icons (download them over local files)")
@click.option("--accept-local", is_flag=True, help="Re-upload local icons on next sync")
@click.pass_obj
def pull(project: Project, dry_run: bool, accept_remote: bool, accept_local: bool):
    """Pull remote state into the checkpoint and config."""
    _run(_pull, project, dry_run, accept_remote, accept_local)


def _pull(project: Project, dry_run: bool, accept_remote: bool, accept_local: bool):
    from rbxsync.sync.drift import DriftDetector, DriftStatus, PullOptions

    options = PullOptions(accept_remote=accept_remote, accept_local=accept_local, dry_run=dry_run)
    options.validate()

    desired = project.load_desired()
    checkpoint = project.checkpoint
    applied = checkpoint.load()

    detector = DriftDetector(
        project.provider(desired),
        project.content,
        save_desired=project.save_desired,
        save_applied=checkpoint.save,
    )

    console.print("Pulling remote state...")
    try:
        result = detector.pull(desired, applied, options)
    except ConflictError as e:
        console.print()
        for conflict in e.conflicts:
            console.print(f"[yellow]![/] {conflict.describe()}")
        console.print(
            "\n[red]Icon conflicts detected.[/] Nothing was written.\n"
            "  Use --accept-remote to keep remote icons\n"
            "  Use --accept-local to re-upload local icons on next sync"
        )
        raise SystemExit(1)

    for warning in result.warnings:
        console.print(f"[yellow]![/] {warning}")

    for drift in result.drift:
        label = drift.kind.label
        if drift.status == DriftStatus.NEW:
            console.print(f"  [green]+ new[/] {label} [bold]{drift.key}[/] (id: {drift.remote_id})")
        elif drift.status == DriftStatus.REMOVED:
            console.print(f"  [red]- removed[/] {label} [bold]{drift.key}[/]")
        else:
            console.print(f"  [yellow]~ update[/] {label} [bold]{drift.key}[/]")
            for change in drift.changes:
                console.print(f"    [dim]·[/] {change}")

    for change in result.desired_changes:
        verb = "[green]+ add[/]" if change.is_new else "[yellow]~ update[/]"
        console.print(f"  {verb} {change.kind.label} [bold]{change.key}[/] in config")
        for fc in change.changes:
            console.print(f"    [dim]·[/] {fc}")

    if dry_run:
        for dl in result.downloads:
            console.print(f"  [cyan]↓[/] would download {dl.kind.label} '{dl.key}' icon to {dl.path}")
        for conflict in result.conflicts:
            console.print(f"  [yellow]![/] would conflict: {conflict.describe()}")
        if result.has_changes:
            console.print("\n[blue]i[/] Dry run — no changes applied.")
        else:
            console.print("[green]v[/] Already up to date with remote.")
        return

    for dl in result.downloads:
        console.print(f"  [green]v[/] Saved {dl.kind.label} '{dl.key}' icon to {dl.path}")

    counts = result.counts()
    console.print(
        "[green]v[/] Updated: "
        + ", ".join(f"{n} {kind.value}" for kind, n in counts.items())
    )


# ── Rename ───────────────────────────────────────────────────────────


@main.command()
@click.argument("kind", type=KIND_CHOICE)
@click.argument("old_key")
@click.argument("new_key")
@click.pass_obj
def rename(project: Project, kind: str, old_key: str, new_key: str):
    """Rename a resource key in config and checkpoint (local only)."""
    _run(_rename, project, kind, old_key, new_key)


def _rename(project: Project, kind: str, old_key: str, new_key: str):
    from rbxsync.models.resources import ResourceKind
    from rbxsync.sync.rename import rename_resource

    resource_kind = ResourceKind.parse(kind)
    desired = project.load_desired()
    checkpoint = project.checkpoint
    applied = checkpoint.load()

    moved = rename_resource(desired, applied, resource_kind, old_key, new_key)

    project.save_desired(desired)
    if moved:
        checkpoint.save(applied)
    console.print(f"Renamed {resource_kind.label} '{old_key}' -> '{new_key}'")


# ── List ─────────────────────────────────────────────────────────────


@main.command(name="list")
@click.argument("kind", type=KIND_CHOICE)
@click.pass_obj
def list_remote(project: Project, kind: str):
    """List remote resources of a kind."""
    _run(_list_remote, project, kind)


def _list_remote(project: Project, kind: str):
    from rbxsync.models.resources import ResourceKind

    resource_kind = ResourceKind.parse(kind)
    desired = project.load_desired()
    resources = project.provider(desired).list(resource_kind)

    table = Table(title=f"{resource_kind.title} ({len(resources)} found)")
    table.add_column("ID", style="dim")
    table.add_column("Name", style="cyan")
    if resource_kind is ResourceKind.BADGES:
        table.add_column("Enabled", justify="center")
    else:
        table.add_column("Price", justify="right")
    table.add_column("Description")

    for r in resources:
        if resource_kind is ResourceKind.BADGES:
            status = "-" if r.enabled is None else ("Yes" if r.enabled else "No")
        else:
            status = f"R${r.price}" if r.price is not None else "Free"
        table.add_row(str(r.remote_id), r.name or "-", status, (r.description or "")[:60])

    console.print(table)
    if not resources:
        console.print(Panel("No remote resources of this kind.", title=resource_kind.title))


if __name__ == "__main__":
    main()
