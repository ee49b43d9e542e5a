import logging
import sys
from pathlib import Path

import typer

from diffpatch.config import load_apply_options, load_patch_options
from diffpatch.engine.models import ApplierStrategy
from diffpatch.engine.parser import validate
from diffpatch.engine.synthesizer import create_diff
from diffpatch.errors import DiffError, PatchTransactionError
from diffpatch.logging import setup_logging
from diffpatch.render import format_diff_result, format_patch_result, format_validation
from diffpatch.store.filesystem import FileSystemTextStore
from diffpatch.store.validators import StructuredSyntaxValidator
from diffpatch.transaction.coordinator import PatchCoordinator

app = typer.Typer(no_args_is_help = True)


def _read_input(path: Path) -> str:
    if str(path) == "-":
        return sys.stdin.read()
    try:
        with path.open("r", encoding="utf-8", newline="") as f:
            return f.read()
    except OSError as exc:
        raise typer.BadParameter(f"Cannot read {path}: {exc}")


def _fail(exc: DiffError) -> None:
    typer.echo(f"Error: {exc}", err=True)
    raise typer.Exit(1)


def _coordinator(root: Path) -> PatchCoordinator:
    return PatchCoordinator(
        FileSystemTextStore(root),
        validator=StructuredSyntaxValidator(),
    )


@app.command("apply")
def apply_cmd(
    target: str = typer.Argument(..., help="File to patch, relative to --root"),
    diff_file: Path = typer.Argument(..., help="Unified diff file, or - for stdin"),
    root: Path = typer.Option(Path("."), "--root", help="Directory the target must stay inside"),
    fuzzy: int | None = typer.Option(None, "--fuzzy", min=0, max=100, help="Line similarity tolerance (0-100)"),
    strategy: ApplierStrategy | None = typer.Option(None, "--strategy", help="exact or approximate"),
    ignore_whitespace: bool | None = typer.Option(None, "--ignore-whitespace/--no-ignore-whitespace"),
    ignore_case: bool | None = typer.Option(None, "--ignore-case/--no-ignore-case"),
    dry_run: bool | None = typer.Option(None, "--dry-run/--no-dry-run", help="Show a preview, write nothing"),
    partial: bool | None = typer.Option(None, "--partial/--no-partial", help="Keep the hunks that did apply"),
    backup: bool | None = typer.Option(None, "--backup/--no-backup"),
    validate_syntax: bool | None = typer.Option(None, "--validate-syntax/--no-validate-syntax"),
    config: Path | None = typer.Option(None, "--config", help="YAML options file"),
):
    """Apply a single-file unified diff."""
    diff_text = _read_input(diff_file)

    try:
        options = load_apply_options(
            config,
            fuzzy=fuzzy,
            strategy=strategy,
            ignore_whitespace=ignore_whitespace,
            ignore_case=ignore_case,
            dry_run=dry_run,
            partial_allowed=partial,
            create_backup=backup,
            validate_syntax=validate_syntax,
        )
        result = _coordinator(root).update_file(target, diff_text, options)
    except DiffError as exc:
        _fail(exc)

    typer.echo(format_diff_result(result, dry_run=options.dry_run))
    if not result.success:
        raise typer.Exit(1)


@app.command("patch")
def patch_cmd(
    patch_file: Path = typer.Argument(..., help="Multi-file patch or JSON file list, or - for stdin"),
    root: Path = typer.Option(Path("."), "--root", help="Directory every target must stay inside"),
    atomic: bool | None = typer.Option(None, "--atomic/--no-atomic", help="Roll back earlier files on failure"),
    continue_on_error: bool | None = typer.Option(None, "--continue-on-error/--stop-on-error"),
    fuzzy: int | None = typer.Option(None, "--fuzzy", min=0, max=100),
    strategy: ApplierStrategy | None = typer.Option(None, "--strategy"),
    backup: bool | None = typer.Option(None, "--backup/--no-backup"),
    journal: Path | None = typer.Option(None, "--journal", help="Append a JSONL transaction record here"),
    config: Path | None = typer.Option(None, "--config", help="YAML options file"),
):
    """Apply a multi-file patch as one transaction."""
    patch_text = _read_input(patch_file)

    def progress(current: int, total: int, path: str) -> None:
        typer.echo(f"[{current + 1}/{total}] {path}", err=True)

    try:
        options = load_patch_options(
            config,
            root=root,
            atomic=atomic,
            continue_on_error=continue_on_error,
            fuzzy=fuzzy,
            strategy=strategy,
            create_backup=backup,
            journal_path=journal,
        )
        result = _coordinator(root).apply_patch(patch_text, options, on_progress=progress)
    except PatchTransactionError as exc:
        typer.echo(format_patch_result(exc.result))
        typer.echo(f"Error: {exc}", err=True)
        typer.echo(f"Rolled back: {'yes' if exc.rolled_back else 'no'}", err=True)
        raise typer.Exit(1)
    except DiffError as exc:
        _fail(exc)

    typer.echo(format_patch_result(result))
    if not result.success:
        raise typer.Exit(1)


@app.command("create-diff")
def create_diff_cmd(
    old: Path = typer.Argument(..., help="Original file"),
    new: Path = typer.Argument(..., help="Modified file"),
    context: int = typer.Option(3, "--context", "-U", min=0, help="Lines of context"),
    output: Path | None = typer.Option(None, "--output", "-o", help="Write the diff here instead of stdout"),
):
    """Print a unified diff turning OLD into NEW."""
    diff_text = create_diff(_read_input(old), _read_input(new), str(old), str(new), context)

    if output is None:
        typer.echo(diff_text, nl=False)
        return
    with output.open("w", encoding="utf-8", newline="") as f:
        f.write(diff_text)
    typer.echo(f"Diff written to {output}")


@app.command("validate")
def validate_cmd(
    diff_file: Path = typer.Argument(..., help="Unified diff file, or - for stdin"),
    target: str | None = typer.Option(None, "--target", help="Also dry-run the diff against this file"),
    root: Path = typer.Option(Path("."), "--root"),
    config: Path | None = typer.Option(None, "--config", help="YAML options file"),
):
    """Check a diff's format, and optionally whether it applies."""
    diff_text = _read_input(diff_file)

    if target is None:
        report = validate(diff_text)
        typer.echo(format_validation(report))
        if not report.valid:
            raise typer.Exit(1)
        return

    try:
        options = load_apply_options(config)
        result = _coordinator(root).validate_diff(target, diff_text, options)
    except DiffError as exc:
        _fail(exc)

    typer.echo(format_validation(result))
    if not (result.valid and result.applicable):
        raise typer.Exit(1)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log debug output to stderr"),
):
    """
    diffpatch: apply, validate and create unified diffs
    """
    if verbose:
        setup_logging(level=logging.DEBUG)
