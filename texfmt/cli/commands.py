"""
Command-line interface for texfmt.

This module provides CLI commands for formatting and checking TeX-family
documents and for inspecting how the formatter reads them.
"""

import sys
import json
import click
import logging
from pathlib import Path
from typing import List, Optional
from rich.console import Console
from rich.table import Table
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.panel import Panel
from rich.text import Text
from rich.tree import Tree
from rich.markup import escape

from .. import __version__
from ..config import load_config
from ..core.errors import TexFormatError
from ..core.scanner import Scanner
from ..core.parser import parse
from ..core.nodes import (
    BlankLine, Command, Comment, Environment, Group, Math, Text as TextNode, Whitespace, children
)
from ..core.checker import CheckResult
from ..core.processor import DocumentProcessor, collect_sources
from ..core.aggregator import FileAggregator

# Documents go to stdout; messages and progress go to stderr
console = Console()
err_console = Console(stderr=True)

# Configure logging
logging.basicConfig(level=logging.WARNING, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

STDIN_NAME = '<stdin>'


@click.group()
@click.version_option(version=__version__, prog_name='texfmt')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose output')
@click.option('--debug', '-d', is_flag=True, help='Enable debug logging (includes timings)')
@click.option('--color', type=click.Choice(['auto', 'always', 'never']), default='auto',
              help='When to use colored output')
def main(verbose, debug, color):
    """texfmt - A formatter for LaTeX and other TeX-family documents."""
    global console, err_console
    if color == 'always':
        console = Console(force_terminal=True)
        err_console = Console(stderr=True, force_terminal=True)
    elif color == 'never':
        console = Console(no_color=True, highlight=False)
        err_console = Console(stderr=True, no_color=True, highlight=False)

    if debug:
        logging.getLogger().setLevel(logging.DEBUG)
    elif verbose:
        logging.getLogger().setLevel(logging.INFO)
        err_console.print("[dim]Verbose mode enabled[/dim]")


def config_option(command):
    return click.option('--config', 'config_path', type=click.Path(exists=True, dir_okay=False),
                        help='Configuration file (default: nearest .texfmt.yaml)')(command)


def formatting_options(command):
    """Options shared by every command that formats."""
    command = config_option(command)
    command = click.option('--tabs/--spaces', default=None, help='Indent with tabs or spaces')(command)
    command = click.option('--indent', type=click.IntRange(min=0), default=None,
                           help='Spaces per indentation level')(command)
    command = click.option('--width', '-w', type=click.IntRange(min=1), default=None,
                           help='Maximum line width (default 80)')(command)
    return command


def build_processor(config_path: Optional[str], width: Optional[int], indent: Optional[int],
                    tabs: Optional[bool]) -> DocumentProcessor:
    """Load configuration, apply command-line overrides and create the processor."""
    try:
        config = load_config(config_path)
        config = config.with_overrides(width=width, indent_width=indent, use_tabs=tabs)
    except TexFormatError as e:
        err_console.print(f"[red]{escape(str(e))}[/red]")
        sys.exit(1)
    return DocumentProcessor(config)


def read_source(processor: DocumentProcessor, path: str) -> str:
    """Read a document from a file, or from standard input for '-'."""
    if path == '-':
        try:
            return sys.stdin.buffer.read().decode('utf-8')
        except UnicodeDecodeError as e:
            err_console.print(f"[red]{STDIN_NAME}: input is not valid UTF-8: {escape(str(e))}[/red]")
            sys.exit(1)
    try:
        return processor.read_file(Path(path))
    except TexFormatError as e:
        err_console.print(f"[red]{escape(str(e))}[/red]")
        sys.exit(1)


def report_error(name: str, error: TexFormatError):
    err_console.print(f"[red]{escape(name)}:{escape(str(error))}[/red]")


def print_diff(lines: List[str]):
    """Print a unified diff with added/removed lines highlighted."""
    for line in lines:
        if line.startswith(('+++', '---')):
            style = 'bold'
        elif line.startswith('+'):
            style = 'green'
        elif line.startswith('-'):
            style = 'red'
        elif line.startswith('@@'):
            style = 'cyan'
        else:
            style = ''
        console.print(Text(line, style=style), soft_wrap=True, highlight=False)


@main.command('format')
@click.argument('paths', nargs=-1, type=click.Path())
@formatting_options
@click.option('--check', is_flag=True, help='Only check formatting; exit 1 if a file would change')
@click.option('--diff', 'show_diff', is_flag=True, help='Show a diff of the changes (implies no writes)')
@click.option('--in-place', '-i', is_flag=True, help='Rewrite files in place')
@click.option('--output', '-o', type=click.Path(dir_okay=False), help='Write the result to this file')
@click.option('--recursive/--no-recursive', default=True, help='Search directories recursively')
@click.option('--report', type=click.Path(dir_okay=False), help='Save a JSON report of the run')
def format_command(paths, width, indent, tabs, config_path, check, show_diff, in_place, output, recursive, report):
    """Format documents (standard input when no path or '-' is given)."""
    processor = build_processor(config_path, width, indent, tabs)
    run_format(processor, paths, check=check or show_diff, show_diff=show_diff, in_place=in_place,
               output=output, recursive=recursive, report=report)


@main.command()
@click.argument('paths', nargs=-1, type=click.Path())
@formatting_options
@click.option('--diff', 'show_diff', is_flag=True, help='Show a diff for files that would change')
@click.option('--recursive/--no-recursive', default=True, help='Search directories recursively')
@click.option('--report', type=click.Path(dir_okay=False), help='Save a JSON report of the run')
def check(paths, width, indent, tabs, config_path, show_diff, recursive, report):
    """Check that documents are formatted; exit 1 if any would change."""
    processor = build_processor(config_path, width, indent, tabs)
    run_format(processor, paths, check=True, show_diff=show_diff, in_place=False,
               output=None, recursive=recursive, report=report)


def run_format(processor: DocumentProcessor, paths, check: bool, show_diff: bool, in_place: bool,
               output: Optional[str], recursive: bool, report: Optional[str]):
    """Shared body of the format and check commands; exits with the run status."""
    if check and (in_place or output):
        raise click.UsageError("--check cannot be combined with --in-place or --output")

    if not paths or tuple(paths) == ('-',):
        if in_place:
            raise click.UsageError("--in-place needs file arguments")
        sys.exit(format_stdin(processor, check, show_diff, output))

    sources = collect_sources(paths, recursive=recursive)
    if not sources:
        err_console.print("[yellow]No documents found[/yellow]")
        sys.exit(0)
    if output and len(sources) != 1:
        raise click.UsageError("--output needs exactly one input file")
    if len(sources) > 1 and not (in_place or check):
        raise click.UsageError("formatting several files needs --in-place or --check")

    aggregator = FileAggregator(check=check)

    if len(sources) == 1 and not (in_place or check):
        # single document to stdout or --output
        result = processor.format_file(sources[0], output=output)
        aggregator.add_result(result)
        if not result.success:
            report_error(result.filepath, result.error)
        elif output is None:
            click.echo(result.formatted_content, nl=False)
    else:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=err_console,
            transient=True
        ) as progress:
            progress.add_task(f"{'Checking' if check else 'Formatting'} {len(sources)} files...", total=None)
            results = processor.format_multiple_files(sources, in_place=in_place)
        aggregator.add_results(results)
        display_results(results, check, show_diff)
        display_summary(aggregator)

    if report:
        save_report(aggregator, report)
        err_console.print(f"[green]Report saved to {escape(report)}[/green]")

    sys.exit(aggregator.exit_code())


def format_stdin(processor: DocumentProcessor, check: bool, show_diff: bool, output: Optional[str]) -> int:
    """Format or check standard input; returns the exit status."""
    source = read_source(processor, '-')
    try:
        result = processor.check_text(source, STDIN_NAME)
    except TexFormatError as e:
        report_error(STDIN_NAME, e)
        return 1

    if check:
        if show_diff:
            print_diff(result.diff())
        if result.would_reformat:
            err_console.print(f"[yellow]would reformat {STDIN_NAME}[/yellow]")
            return 1
        return 0

    if output:
        try:
            processor.write_file(Path(output), result.formatted)
        except TexFormatError as e:
            report_error(output, e)
            return 1
    else:
        click.echo(result.formatted, nl=False)
    return 0


def display_results(results, check: bool, show_diff: bool):
    """Display one line per file, and diffs when requested."""
    for filepath, result in results.items():
        if not result.success:
            if result.error is not None:
                report_error(filepath, result.error)
            else:
                err_console.print(f"[red]✗[/red] {escape(filepath)}: {escape(result.message)}")
            continue
        if not result.changed:
            err_console.print(f"[green]✓[/green] {escape(filepath)}: {result.message}", highlight=False)
            continue
        marker = "[yellow]![/yellow]" if check else "[green]✓[/green]"
        err_console.print(f"{marker} {escape(filepath)}: {result.message}", highlight=False)
        if show_diff:
            print_diff(CheckResult(False, result.original_content, result.formatted_content, filepath).diff())


def display_summary(aggregator: FileAggregator):
    """Display the run summary in a panel."""
    summary = aggregator.generate_summary()
    summary_text = f"""
Total Files: {summary.total_files}
Unchanged: {summary.unchanged_files}
Reformatted: {summary.reformatted_files}
Would Reformat: {summary.would_reformat_files}
Failed: {summary.failed_files}
    """.strip()

    border_style = "red" if aggregator.exit_code() else "green"
    err_console.print(Panel(summary_text, title="Summary", border_style=border_style))


def save_report(aggregator: FileAggregator, output_path: str):
    """Save the run report as JSON."""
    report_data = aggregator.export_report()

    with open(output_path, 'w', encoding='utf-8') as f:
        json.dump(report_data, f, indent=2)


@main.command()
@click.argument('filepath', type=click.Path(exists=True, dir_okay=False))
@formatting_options
def preview(filepath, width, indent, tabs, config_path):
    """Preview the formatted version of a file."""
    err_console.print(f"[bold magenta]Preview for:[/bold magenta] {escape(filepath)}")

    processor = build_processor(config_path, width, indent, tabs)
    result = processor.format_file(filepath)

    if not result.success:
        report_error(filepath, result.error)
        sys.exit(1)

    console.print(Panel(Text(result.formatted_content), title="Formatted Document", border_style="green"))
    if result.changed:
        console.print(f"\n[yellow]{result.message}[/yellow]")
    else:
        console.print("\n[green]File is already formatted[/green]")


@main.command()
@click.argument('filepath', type=click.Path(allow_dash=True))
@config_option
def tokens(filepath, config_path):
    """Show the lexical tokens of a document (text mode)."""
    source = read_source(build_processor(config_path, None, None, None), filepath)

    table = Table(title="Tokens")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Kind", style="cyan")
    table.add_column("Span", justify="right")
    table.add_column("Text")

    try:
        for index, token in enumerate(Scanner(source)):
            table.add_row(str(index), token.kind.value, f"{token.start}-{token.end}", escape(repr(token.text)))
    except TexFormatError as e:
        report_error(filepath, e)
        sys.exit(1)

    console.print(table)


def node_label(node) -> str:
    """Short rich-markup description of a tree node."""
    if isinstance(node, TextNode):
        kind = "verbatim" if node.verbatim else "text"
        content = node.content if len(node.content) <= 40 else node.content[:37] + '...'
        return f"[white]{kind}[/white] {escape(repr(content))}"
    if isinstance(node, Whitespace):
        return f"[dim]whitespace {escape(repr(node.content))}[/dim]"
    if isinstance(node, BlankLine):
        return "[dim]blank line[/dim]"
    if isinstance(node, Comment):
        return f"[green]comment[/green] ({node.placement.value}) {escape(node.text)}"
    if isinstance(node, Command):
        return f"[cyan]command[/cyan] \\{escape(node.full_name)}"
    if isinstance(node, Group):
        return f"[yellow]group[/yellow] {escape(node.delimiter + node.closing)}"
    if isinstance(node, Environment):
        return f"[magenta]environment[/magenta] {escape(node.name)}"
    if isinstance(node, Math):
        return f"[blue]math[/blue] ({node.kind.value}) {escape(node.delimiter)}"
    return escape(repr(node))


@main.command()
@click.argument('filepath', type=click.Path(allow_dash=True))
@click.option('--whitespace', is_flag=True, help='Include whitespace nodes')
@config_option
def tree(filepath, whitespace, config_path):
    """Show the document tree the formatter works on."""
    processor = build_processor(config_path, None, None, None)
    source = read_source(processor, filepath)

    try:
        document = parse(source, processor.formatter.table)
    except TexFormatError as e:
        report_error(filepath, e)
        sys.exit(1)

    root = Tree(f"[bold]document[/bold] {escape(filepath)}")
    stack = [(root, node) for node in reversed(document.nodes)]
    while stack:
        parent, node = stack.pop()
        if isinstance(node, Whitespace) and not whitespace:
            continue
        branch = parent.add(node_label(node))
        stack.extend((branch, child) for child in reversed(children(node)))

    console.print(root)


if __name__ == '__main__':
    main()
