#!/usr/bin/env python3
"""Command-line gradebook for recording and scoring gymnastics evaluations."""

import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from calgym.libs.config_loader import get_config, load_default_configs
from calgym.records.errors import CalGymError
from calgym.records.models import OperationResult
from calgym.records.persistence import FilePersistence
from calgym.records.store import RecordStore, Session
from calgym.scoring.engine import score_evaluation
from calgym.scoring.rules import LINKING_QUALITIES, ClassLevel
from calgym.tools.grade_export import evaluation_history_rows, latest_scores_rows, write_csv
from calgym.tools.roster_import import import_evaluations, import_students

LOG = logging.getLogger(__name__)

console = Console()

LEVEL_CHOICE = click.Choice([level.value for level in ClassLevel])
QUALITY_CHOICE = click.Choice(list(LINKING_QUALITIES))


class GradebookGroup(click.Group):
    """Turns store faults (no identity, broken storage) into a clean exit."""

    def invoke(self, ctx):
        try:
            return super().invoke(ctx)
        except CalGymError as e:
            console.print(f"[bold red]Error:[/bold red] {e}")
            LOG.debug("Command failed", exc_info=True)
            sys.exit(1)


def _store(ctx: click.Context) -> RecordStore:
    obj = ctx.obj
    if 'store' not in obj:
        obj['store'] = RecordStore(
            FilePersistence(obj['data_dir']),
            Session(teacher_id=obj['teacher']),
            obj['configs'],
        )
    return obj['store']


def _report(result: OperationResult) -> None:
    if result.success:
        console.print(f"[green]{result.message}[/green]")
    else:
        console.print(f"[red]{result.message}[/red] ({result.code.value})")
        sys.exit(1)


def _evaluation_options(func):
    """Attach the rubric input options shared by `calculate` and `evaluate`."""
    options = [
        click.option('--a', 'performed_a', type=click.IntRange(min=0), default=0, help='A elements performed'),
        click.option('--b', 'performed_b', type=click.IntRange(min=0), default=0, help='B elements performed'),
        click.option('--c', 'performed_c', type=click.IntRange(min=0), default=0, help='C elements performed'),
        click.option('--specific', 'specific_req_score', type=float, default=0.0,
                      help='Specific requirements score (0-1.5)'),
        click.option('--linking', 'linking_quality', type=QUALITY_CHOICE, default='average',
                      help='Linking quality'),
        click.option('--execution', 'execution_score', type=float, default=0.0, help='Execution score (0-2)'),
        click.option('--co-cn', 'co_cn_score', type=float, default=0.0, help='Knowledge score (0-3)'),
        click.option('--co-cm', 'co_cm_score', type=float, default=0.0, help='Conduct score (0-level max)'),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _print_breakdown(breakdown) -> None:
    table = Table(title="Score Breakdown")
    table.add_column("Component", style="cyan")
    table.add_column("Score", justify="right")
    table.add_column("Max", justify="right")
    for component in breakdown.components:
        table.add_row(component.label, f"{component.score:.2f}", f"{component.max_score:g}")
    table.add_row("[bold]Total[/bold]", f"[bold]{breakdown.total_score:.2f}[/bold]", "20")
    console.print(table)
    for line in breakdown.difficulty.explanation:
        console.print(f"  [dim]{line}[/dim]")


@click.group(cls=GradebookGroup)
@click.option('--data-dir', '-d', type=click.Path(file_okay=False, path_type=Path), default=None,
              help='Directory holding gradebook files (default: storage.data_dir from config)')
@click.option('--teacher', '-t', envvar='CALGYM_TEACHER', default=None,
              help='Teacher identity whose gradebook is used (or set CALGYM_TEACHER)')
@click.option('--config', '-c', 'config_path', type=click.Path(exists=True, dir_okay=False), default=None,
              help='Extra YAML config merged over the defaults')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose logging')
@click.pass_context
def cli(ctx, data_dir, teacher, config_path, verbose):
    """Record gymnastics evaluations and compute 0-20 grades."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    configs = load_default_configs(*([config_path] if config_path else []))
    if data_dir is None:
        data_dir = Path(get_config("storage.data_dir", configs, default="~/.calgym"))
    ctx.obj = {'configs': configs, 'data_dir': data_dir, 'teacher': teacher}


@cli.command()
@click.argument('level', type=LEVEL_CHOICE)
@_evaluation_options
def calculate(level, **inputs):
    """Show the score breakdown for LEVEL without saving anything."""
    _print_breakdown(score_evaluation(level, **inputs))


@cli.command('add-class')
@click.argument('name')
@click.argument('level', type=LEVEL_CHOICE)
@click.pass_context
def add_class(ctx, name, level):
    """Create class NAME at LEVEL."""
    _report(_store(ctx).add_class(name, level))


@cli.command('edit-class')
@click.argument('old_name')
@click.argument('new_name')
@click.argument('level', type=LEVEL_CHOICE)
@click.pass_context
def edit_class(ctx, old_name, new_name, level):
    """Rename OLD_NAME to NEW_NAME and set its LEVEL."""
    _report(_store(ctx).edit_class(old_name, new_name, level))


@cli.command('delete-class')
@click.argument('name')
@click.confirmation_option(prompt='Delete this class?')
@click.pass_context
def delete_class(ctx, name):
    """Delete an empty class."""
    _report(_store(ctx).delete_class(name))


@cli.command('add-student')
@click.argument('name')
@click.argument('class_name')
@click.pass_context
def add_student(ctx, name, class_name):
    """Add student NAME to CLASS_NAME."""
    result = _store(ctx).add_student(name, class_name)
    _report(result)
    console.print(f"Student id: {result.data}")


@cli.command('edit-student')
@click.argument('student_id')
@click.argument('name')
@click.argument('class_name')
@click.pass_context
def edit_student(ctx, student_id, name, class_name):
    """Rename a student and/or move them to CLASS_NAME."""
    _report(_store(ctx).edit_student(student_id, name, class_name))


@cli.command('delete-student')
@click.argument('student_id')
@click.confirmation_option(prompt='Delete this student and all their evaluations?')
@click.pass_context
def delete_student(ctx, student_id):
    """Delete a student."""
    _report(_store(ctx).delete_student(student_id))


@cli.command()
@click.argument('student_id')
@_evaluation_options
@click.pass_context
def evaluate(ctx, student_id, **inputs):
    """Score and save an evaluation for STUDENT_ID at their class level."""
    store = _store(ctx)
    result = store.save_evaluation(student_id, inputs)
    if result.success:
        # Show what was stored, after clamping.
        saved = store.get_student(student_id).evaluations[result.data]
        _print_breakdown(score_evaluation(
            saved.level, saved.performed_a, saved.performed_b, saved.performed_c,
            saved.specific_req_score, saved.linking_quality, saved.execution_score,
            saved.co_cn_score, saved.co_cm_score,
        ))
    _report(result)


@cli.command('delete-evaluation')
@click.argument('student_id')
@click.argument('index', type=int)
@click.pass_context
def delete_evaluation(ctx, student_id, index):
    """Delete the evaluation at position INDEX (0 = oldest)."""
    _report(_store(ctx).delete_evaluation(student_id, index))


@cli.command('list')
@click.argument('class_name', required=False)
@click.pass_context
def list_records(ctx, class_name):
    """List classes, or the students of CLASS_NAME."""
    store = _store(ctx)
    if class_name is None:
        table = Table(title="Classes")
        table.add_column("Class", style="cyan")
        table.add_column("Level")
        table.add_column("Students", justify="right")
        for klass in store.classes().values():
            table.add_row(klass.name, klass.level.value, str(len(store.students_in_class(klass.name))))
        console.print(table)
        return

    if store.get_class(class_name) is None:
        console.print(f"[red]Class '{class_name}' not found[/red]")
        sys.exit(1)
    table = Table(title=f"Students of {class_name}")
    table.add_column("ID", style="dim")
    table.add_column("Name", style="cyan")
    table.add_column("Evaluations", justify="right")
    table.add_column("Latest", justify="right")
    for student in store.students_in_class(class_name):
        last = student.latest_evaluation
        table.add_row(student.id, student.name, str(len(student.evaluations)),
                      f"{last.total_score:.2f}" if last else "-")
    console.print(table)


def _print_import_report(report, what: str) -> None:
    console.print(f"[green]{report.imported} {what} imported[/green]")
    if report.classes_created:
        console.print(f"{report.classes_created} new class(es) created")
    if report.errors:
        console.print(f"[yellow]{report.failed} error(s):[/yellow]")
        for error in report.errors[:5]:
            console.print(f"  - {error}")
        if len(report.errors) > 5:
            console.print(f"  ... and {len(report.errors) - 5} more")


@cli.command('import-students')
@click.argument('csv_path', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('--create-classes', is_flag=True, help='Create classes that do not exist yet')
@click.option('--level', type=LEVEL_CHOICE, default=None, help='Level for created classes')
@click.pass_context
def import_students_command(ctx, csv_path, create_classes, level):
    """Import students from a CSV with name and class columns."""
    configs = ctx.obj['configs']
    level = level or get_config("import.default_level", configs, default="2AC")
    try:
        report = import_students(
            _store(ctx), csv_path,
            create_missing_classes=create_classes,
            default_level=level,
            max_file_size=get_config("import.max_file_size", configs, default=5 * 1024 * 1024),
        )
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)
    _print_import_report(report, "student(s)")


@cli.command('import-evaluations')
@click.argument('csv_path', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_context
def import_evaluations_command(ctx, csv_path):
    """Import evaluations from a CSV with name, class and score columns."""
    try:
        report = import_evaluations(
            _store(ctx), csv_path,
            max_file_size=get_config("import.max_file_size", ctx.obj['configs'], default=5 * 1024 * 1024),
        )
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)
    _print_import_report(report, "evaluation(s)")


@cli.command()
@click.argument('class_name')
@click.argument('output', type=click.Path(dir_okay=False, path_type=Path))
@click.option('--history', is_flag=True, help='Export every evaluation, not just the latest')
@click.pass_context
def export(ctx, class_name, output, history):
    """Export the grades of CLASS_NAME to OUTPUT as CSV."""
    store = _store(ctx)
    if store.get_class(class_name) is None:
        console.print(f"[red]Class '{class_name}' not found[/red]")
        sys.exit(1)
    rows = evaluation_history_rows(store, class_name) if history else latest_scores_rows(store, class_name)
    write_csv(rows, output)
    console.print(f"[green]Exported {len(rows) - 1} row(s) to {output}[/green]")


@cli.command()
@click.option('--teacher-name', required=True, help='Name printed on reports')
@click.option('--report-title', required=True, help='Title printed on reports')
@click.pass_context
def settings(ctx, teacher_name, report_title):
    """Update report settings."""
    _report(_store(ctx).update_settings(teacher_name, report_title))


@cli.command()
@click.pass_context
def backups(ctx):
    """List the retained backups, oldest first."""
    table = Table(title="Backups")
    table.add_column("#", justify="right")
    table.add_column("Taken at")
    table.add_column("Classes", justify="right")
    table.add_column("Students", justify="right")
    for position, backup in enumerate(_store(ctx).list_backups()):
        table.add_row(str(position), backup.taken_at.strftime("%Y-%m-%d %H:%M:%S"),
                      str(len(backup.data.classes)), str(len(backup.data.students)))
    console.print(table)


@cli.command()
@click.option('--position', '-p', type=int, default=-1, show_default=True,
              help='Backup position as listed by `backups` (-1 = most recent)')
@click.confirmation_option(prompt='Replace the current gradebook with this backup?')
@click.pass_context
def restore(ctx, position):
    """Restore the gradebook from a backup."""
    _report(_store(ctx).restore_backup(position))


def main():
    """Main entry point for the calgym command."""
    cli(obj={})


if __name__ == '__main__':
    main()
