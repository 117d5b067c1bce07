import sys
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Confirm
from rich.syntax import Syntax
from rich.table import Table

from arcl.config import (
    ConfigError,
    PatchPolicy,
    get_config_path,
    init_policy,
    load_policy,
    setup_logging,
)
from arcl.patch import ErrorKind, apply_diff_to_file, apply_patch, restore_from_backup
from arcl.patch.validator import count_changed_lines
from arcl.tools.apply_diff import check_diff, resolve_backup
from arcl.utils import file_io, history
from arcl.utils.logger import log_error

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CRITICAL = 2

RESULT_COLORS = {
    history.RESULT_SUCCESS: "green",
    history.RESULT_DRY_RUN: "cyan",
    history.RESULT_NO_CHANGES: "cyan",
    history.RESULT_REJECTED: "yellow",
}

console = Console(soft_wrap=True)


def _load_policy_or_exit() -> PatchPolicy:
    try:
        return load_policy()
    except ConfigError as e:
        console.print(f"[bold red]Config error:[/bold red] {escape(str(e))}")
        sys.exit(EXIT_FAILED)


def _confirm(question: str) -> bool:
    try:
        return Confirm.ask(question, default=False)
    except EOFError:
        # stdin already consumed, e.g. the diff was piped in
        return False


def _warn(message: str) -> None:
    console.print(f"[yellow]Warning:[/yellow] {escape(message)}")


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Log debug output to the console.")
def cli(verbose):
    """Validate and apply model-written unified diffs with backup and rollback."""
    load_dotenv()
    setup_logging(verbose=verbose)


@cli.command()
@click.argument("file", type=click.Path(dir_okay=False))
@click.argument("diff", type=click.File("r", encoding="utf-8"), default="-")
@click.option("--allow-rewrite", is_flag=True, help="Permit full-file deletions and rewrites.")
@click.option("--yes", "-y", is_flag=True, help="Apply without asking for confirmation.")
@click.option("--dry-run", is_flag=True, help="Show the patched content without writing it.")
def apply(file, diff, allow_rewrite, yes, dry_run):
    """Apply DIFF (a path, or - for stdin) to FILE."""
    policy = _load_policy_or_exit()
    diff_text = diff.read()
    path = Path(file).expanduser().resolve()

    verdict = check_diff(diff_text, path.name, policy, allow_rewrite)
    if verdict.no_changes:
        console.print("[green]No changes requested.[/green]")
        history.record_operation("apply", path, history.RESULT_NO_CHANGES)
        sys.exit(EXIT_OK)
    if not verdict.valid:
        style = "yellow" if verdict.refused else "red"
        console.print(f"[bold {style}]Rejected:[/bold {style}] {escape(verdict.error or '')}")
        history.record_operation("apply", path, history.RESULT_REJECTED, error=verdict.error)
        sys.exit(EXIT_FAILED)

    console.print(Panel(Syntax(diff_text, "diff", theme="monokai"), title=f"Diff for {path.name}"))

    if dry_run:
        _preview(path, diff_text)
        return

    if policy.require_confirmation and not yes:
        if not _confirm(f"Apply this diff to {path}?"):
            console.print("Cancelled.")
            history.record_operation("apply", path, history.RESULT_REJECTED, error="Cancelled by user")
            sys.exit(EXIT_OK)

    outcome = apply_diff_to_file(path, diff_text, on_warning=_warn)
    history.record_operation(
        "apply",
        path,
        history.RESULT_SUCCESS if outcome.succeeded else history.RESULT_FAILED,
        error=outcome.error,
        backup_path=outcome.backup_path,
    )

    if outcome.kind is ErrorKind.ROLLBACK_FAILED:
        console.print(f"[bold red]{escape(outcome.error or '')}[/bold red]")
        sys.exit(EXIT_CRITICAL)
    if not outcome.succeeded:
        console.print(f"[red]{escape(outcome.error or '')}[/red]")
        sys.exit(EXIT_FAILED)

    console.print(f"[green]Applied diff to {path}[/green]")
    console.print(f"Backup: {outcome.backup_path}")


def _preview(path: Path, diff_text: str) -> None:
    if not path.is_file():
        console.print(f"[red]File not found: {path}[/red]")
        sys.exit(EXIT_FAILED)
    try:
        original = file_io.read_text_utf8(path)
    except (OSError, UnicodeDecodeError) as e:
        console.print(f"[red]Failed to read file: {e}[/red]")
        sys.exit(EXIT_FAILED)

    patch = apply_patch(original, diff_text, on_warning=_warn)
    history.record_operation(
        "apply",
        path,
        history.RESULT_DRY_RUN if patch.succeeded else history.RESULT_FAILED,
        error=patch.error,
    )
    if not patch.succeeded:
        console.print(f"[red]Patch failed: {escape(patch.error or '')}[/red]")
        sys.exit(EXIT_FAILED)

    lexer = Syntax.guess_lexer(str(path), code=patch.patched_content)
    console.print(
        Panel(
            Syntax(patch.patched_content or "", lexer, line_numbers=True),
            title=f"{path.name} after patch (dry run, nothing written)",
        )
    )


@cli.command()
@click.argument("diff", type=click.File("r", encoding="utf-8"), default="-")
@click.option("--target", help="File name the diff must be addressed to.")
@click.option("--allow-rewrite", is_flag=True, help="Permit full-file deletions and rewrites.")
def validate(diff, target, allow_rewrite):
    """Check DIFF (a path, or - for stdin) without touching any file."""
    policy = _load_policy_or_exit()
    diff_text = diff.read()

    verdict = check_diff(diff_text, target, policy, allow_rewrite)
    if verdict.no_changes:
        console.print("[green]No changes requested.[/green]")
        return
    if not verdict.valid:
        console.print(f"[red]Invalid:[/red] {escape(verdict.error or '')}")
        sys.exit(EXIT_FAILED)

    deletions, additions = count_changed_lines(diff_text)
    console.print(f"[green]Diff is valid[/green] (-{deletions} +{additions})")


@cli.command()
@click.argument("file", type=click.Path(dir_okay=False))
@click.option("--backup", "backup_path", type=click.Path(dir_okay=False), help="Backup to restore from.")
@click.option("--yes", "-y", is_flag=True, help="Restore without asking for confirmation.")
def undo(file, backup_path, yes):
    """Restore FILE from a backup made by apply."""
    path = Path(file).expanduser().resolve()
    source = resolve_backup(path, backup_path)
    if source is None or not source.is_file():
        console.print(f"[red]No backup found for {path}[/red]")
        sys.exit(EXIT_FAILED)

    if not yes and not _confirm(f"Restore {path} from {source}?"):
        console.print("Cancelled.")
        return

    if not restore_from_backup(path, source):
        message = f"Failed to restore {path} from {source}"
        log_error(message)
        history.record_operation("undo", path, history.RESULT_FAILED, error=message, backup_path=source)
        console.print(f"[red]{escape(message)}[/red]")
        sys.exit(EXIT_FAILED)

    history.record_operation("undo", path, history.RESULT_SUCCESS, backup_path=source)
    console.print(f"[green]Restored {path} from {source}[/green]")


@cli.command(name="history")
@click.option("--limit", "-n", default=20, show_default=True, help="Number of entries to show.")
def show_history(limit):
    """Show recent operations."""
    entries = history.read_history()
    if not entries:
        console.print("No history yet.")
        return

    table = Table(title="arcl history")
    table.add_column("Time", no_wrap=True)
    table.add_column("Command", no_wrap=True)
    table.add_column("Files", overflow="fold")
    table.add_column("Result", no_wrap=True)
    table.add_column("Detail", overflow="fold")
    for entry in entries[-limit:]:
        result = entry.get("result", "")
        color = RESULT_COLORS.get(result, "red")
        table.add_row(
            entry.get("timestamp", "")[:19].replace("T", " "),
            entry.get("command", ""),
            ", ".join(entry.get("files", [])),
            f"[{color}]{result}[/{color}]",
            escape(entry.get("error") or entry.get("backup_path") or ""),
        )
    console.print(table)


@cli.command()
def init():
    """Write the default config file."""
    path = get_config_path()
    if init_policy(path):
        console.print(f"[green]Wrote default config to {path}[/green]")
    else:
        console.print(f"Config already exists at {path}")


def main():
    cli(prog_name="arcl")


if __name__ == "__main__":
    main()
