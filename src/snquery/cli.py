"""Command-line interface for snquery."""

import json
import sys
import time
from pathlib import Path
from typing import Any, List, Optional

import typer
from loguru import logger
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table

from . import api
from .config import BuilderConfig, load_config, write_default_config
from .errors import QuerySyntaxError, SnQueryError, ValidationError
from .filter.fields import FieldType, TableFieldMetadata
from .filter.lang import parse_query
from .filter.validator import Severity, ValidationIssue
from .log import setup_logger
from .services.records import JsonRecordSource
from .services.saved import SavedFilterStore
from .tui.builder import ConditionBuilder
from .tui.keys import keys_from_line


app = typer.Typer(
    name="snquery",
    help="Build and validate ServiceNow encoded queries",
    add_completion=False,
)
console = Console()

_SEVERITY_STYLES = {
    Severity.ERROR: "red",
    Severity.WARNING: "yellow",
    Severity.INFO: "blue",
}


def _config(ctx: typer.Context) -> BuilderConfig:
    if isinstance(ctx.obj, BuilderConfig):
        return ctx.obj
    return load_config()


def print_issues(issues: List[ValidationIssue], title: str = "Validation") -> None:
    """以表格输出校验问题"""
    if not issues:
        console.print("[green]✅ No issues found[/green]")
        return
    table = Table(title=title)
    table.add_column("Severity", style="bold")
    table.add_column("Where")
    table.add_column("Message")
    table.add_column("Suggestion", style="dim")
    for issue in issues:
        style = _SEVERITY_STYLES[issue.severity]
        table.add_row(f"[{style}]{issue.severity.value}[/{style}]", issue.subject,
                      issue.message, issue.suggestion)
    console.print(table)


def print_query(query: str) -> None:
    """原样输出查询字符串（不解析 rich 标记）"""
    console.print(query, markup=False, highlight=False, soft_wrap=True)


def _read_json(path: str) -> Any:
    if path == "-":
        return json.loads(sys.stdin.read())
    with open(Path(path).expanduser(), 'r', encoding='utf-8') as f:
        return json.load(f)


def _open_source(data: Path) -> JsonRecordSource:
    try:
        return JsonRecordSource.from_file(data)
    except (OSError, ValueError) as e:
        console.print(f"[red]❌ Cannot read data file: {e}[/red]")
        raise typer.Exit(2)


def _wait_for_search(builder: ConditionBuilder, config: BuilderConfig) -> None:
    """等待引用搜索结果（最多 debounce + timeout 秒）"""
    deadline = time.monotonic() + config.search_debounce + config.search_timeout
    while builder.reference.searching and time.monotonic() < deadline:
        if builder.poll():
            return
        time.sleep(0.05)


def run_builder(builder: ConditionBuilder, config: BuilderConfig) -> None:
    """行模式驱动构建器

    每行输入转换为按键：空行为回车，``:`` 开头为按键名列表，其他逐字符输入
    """
    while builder.is_active():
        console.print(builder.view())
        try:
            line = Prompt.ask("[cyan]keys[/cyan]", default="", show_default=False)
        except EOFError:
            break
        for key in keys_from_line(line):
            builder.update(key)
            if not builder.is_active():
                break
        _wait_for_search(builder, config)


@app.callback()
def main(
    ctx: typer.Context,
    config_path: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to a config.toml (default: SNQUERY_CONFIG or ~/.config/snquery/config.toml)"
    ),
    verbose: bool = typer.Option(
        False,
        "-v",
        "--verbose",
        help="Log debug output to stderr"
    ),
):
    """Build and validate ServiceNow encoded queries."""
    config = load_config(config_path)
    setup_logger(console_output=verbose, level="DEBUG" if verbose else config.log_level)
    ctx.obj = config


@app.command()
def build(
    ctx: typer.Context,
    table: str = typer.Argument(..., help="Table to build a filter for, e.g. incident"),
    data: Optional[Path] = typer.Option(
        None,
        "--data",
        "-d",
        help="JSON dump of records: {table: [records]}"
    ),
    fields: Optional[str] = typer.Option(
        None,
        "--fields",
        help="Comma separated field names when no data dump is available"
    ),
    load: Optional[str] = typer.Option(
        None,
        "--load",
        help="Start from an existing encoded query"
    ),
    saved_id: Optional[str] = typer.Option(
        None,
        "--saved",
        help="Start from a saved filter (by id)"
    ),
    save: Optional[str] = typer.Option(
        None,
        "--save",
        help="Save the result under this name"
    ),
):
    """
    Build a filter interactively.

    Each input line is turned into key presses: an empty line is Enter,
    a line starting with ':' lists key names (':down down enter', ':esc',
    ':ctrl+p'), anything else is typed character by character.
    """
    config = _config(ctx)
    source = None
    if data is not None:
        source = _open_source(data)
        metadata = api.load_metadata(source, table)
    elif fields:
        metadata = TableFieldMetadata.text_only(table, [f.strip() for f in fields.split(",") if f.strip()])
    else:
        console.print("[red]❌ Provide --data or --fields[/red]")
        raise typer.Exit(2)

    if not metadata.fields:
        console.print(f"[red]❌ No fields found for {table}[/red]")
        raise typer.Exit(1)

    builder = ConditionBuilder(metadata, source=source, config=config)
    store = SavedFilterStore(config.saved_filters_file())
    try:
        if load:
            builder.set_conditions(api.query_to_conditions(load, metadata))
        elif saved_id:
            saved = store.mark_used(saved_id)
            if saved is None:
                console.print(f"[red]❌ Saved filter not found: {saved_id}[/red]")
                raise typer.Exit(1)
            builder.set_conditions(saved.condition_set())

        run_builder(builder, config)
    except QuerySyntaxError as e:
        console.print(f"[red]❌ {e}[/red]")
        raise typer.Exit(1)
    finally:
        builder.close()

    if builder.cancelled:
        console.print("[yellow]Cancelled[/yellow]")
        raise typer.Exit(1)

    query = builder.build_query()
    if not query:
        console.print("[yellow]No conditions[/yellow]")
        raise typer.Exit(1)

    console.print(Panel("[bold]Encoded query[/bold]", border_style="green"))
    print_query(query)

    if save:
        saved = store.save(save, table, query, conditions=builder.get_conditions())
        console.print(f"[green]💾 Saved as '{saved.name}' ({saved.id})[/green]")


@app.command("compile")
def compile_command(
    ctx: typer.Context,
    conditions_file: str = typer.Argument(..., help="JSON list of conditions, '-' for stdin"),
    strict: bool = typer.Option(
        False,
        "--strict",
        help="Fail when validation reports errors"
    ),
    table: Optional[str] = typer.Option(None, "--table", "-t", help="Table name for metadata"),
    data: Optional[Path] = typer.Option(None, "--data", "-d", help="JSON dump used for metadata"),
):
    """Compile a JSON condition list into an encoded query."""
    try:
        payload = _read_json(conditions_file)
    except (OSError, json.JSONDecodeError) as e:
        console.print(f"[red]❌ Cannot read conditions: {e}[/red]")
        raise typer.Exit(2)
    if isinstance(payload, dict):
        payload = payload.get("conditions", [])

    metadata = None
    if data is not None and table:
        metadata = api.load_metadata(_open_source(data), table)

    try:
        query = api.compile_query(payload, metadata=metadata, strict=strict)
    except ValidationError as e:
        console.print(f"[red]❌ {e}[/red]")
        print_issues(e.issues)
        raise typer.Exit(1)
    except (SnQueryError, ValueError, KeyError) as e:
        console.print(f"[red]❌ Invalid condition list: {e}[/red]")
        raise typer.Exit(2)
    print_query(query)


@app.command()
def validate(
    query: str = typer.Argument(..., help="Encoded query to check"),
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Output issues as JSON"
    ),
):
    """
    Sanity-check a hand-written encoded query.

    The dangerous-pattern check is a heuristic, not a security guarantee.
    """
    result = api.validate_raw_query(query)
    if json_output:
        data = {
            'valid': result.is_valid,
            'query': result.query,
            'issues': [
                {
                    'severity': i.severity.value,
                    'message': i.message,
                    'suggestion': i.suggestion,
                }
                for i in result.issues
            ],
        }
        print_query(json.dumps(data, ensure_ascii=False))
    else:
        print_issues(result.issues)
        if result.is_valid:
            console.print("[green]✅ Query is valid[/green]")
        else:
            console.print("[red]❌ Query is invalid[/red]")
    if not result.is_valid:
        raise typer.Exit(1)


@app.command()
def parse(query: str = typer.Argument(..., help="Encoded query to split into terms")):
    """Show the terms of an encoded query."""
    try:
        terms = parse_query(query)
    except QuerySyntaxError as e:
        console.print(f"[red]❌ {e}[/red]")
        raise typer.Exit(1)
    table = Table(title="Terms")
    table.add_column("Join", style="magenta")
    table.add_column("Field", style="cyan")
    table.add_column("Operator", style="bold")
    table.add_column("Value")
    for term in terms:
        table.add_row(term.join or "", term.field, term.operator, term.value)
    console.print(table)


@app.command()
def operators(
    field_type: Optional[str] = typer.Argument(
        None,
        help="Field type (string, integer, glide_date, reference, ...); all types when omitted"
    ),
):
    """List the operators available for a field type."""
    if field_type:
        try:
            types = [FieldType(field_type)]
        except ValueError:
            types = [FieldType.from_internal(field_type)]
    else:
        types = list(FieldType)

    for ftype in types:
        table = Table(title=f"{ftype.value}")
        table.add_column("Token", style="bold cyan")
        table.add_column("Label")
        table.add_column("Description", style="dim")
        table.add_column("Value")
        table.add_column("Date only")
        for row in api.operator_table(ftype):
            table.add_row(
                row['token'],
                row['label'],
                row['description'],
                "yes" if row['requires_value'] else "no",
                "yes" if row['date_only'] else "",
            )
        console.print(table)


@app.command()
def presets():
    """Show the date range presets relative to now."""
    table = Table(title="Date presets")
    table.add_column("Name", style="bold")
    table.add_column("Start")
    table.add_column("End")
    for preset in api.date_presets():
        table.add_row(preset.name, f"{preset.start:%Y-%m-%d %H:%M:%S}", f"{preset.end:%Y-%m-%d %H:%M:%S}")
    console.print(table)


@app.command()
def saved(
    ctx: typer.Context,
    search: Optional[str] = typer.Argument(None, help="Text to search in name, description or query"),
    table: Optional[str] = typer.Option(None, "--table", "-t", help="Only filters for this table"),
    delete: Optional[str] = typer.Option(None, "--delete", help="Delete the filter with this id"),
):
    """List, search or delete saved filters."""
    store = SavedFilterStore(_config(ctx).saved_filters_file())
    if delete:
        if store.delete(delete):
            console.print(f"[green]Deleted {delete}[/green]")
            return
        console.print(f"[red]❌ Saved filter not found: {delete}[/red]")
        raise typer.Exit(1)

    filters = store.search(search, table) if search else store.list(table)
    if not filters:
        console.print("[yellow]No saved filters[/yellow]")
        return
    out = Table(title="Saved filters")
    out.add_column("★")
    out.add_column("Id", style="dim")
    out.add_column("Name", style="bold")
    out.add_column("Table", style="cyan")
    out.add_column("Query")
    out.add_column("Used", justify="right")
    for f in filters:
        out.add_row("★" if f.is_favorite else "", f.id, f.name, f.table, f.query, str(f.use_count))
    console.print(out)


@app.command("init-config")
def init_config(
    path: Path = typer.Argument(
        Path.home() / ".config" / "snquery" / "config.toml",
        help="Where to write the default configuration"
    ),
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite an existing file"),
):
    """Write the default configuration file."""
    target = path.expanduser()
    if target.exists() and not force:
        console.print(f"[yellow]Config already exists: {target} (use --force)[/yellow]")
        raise typer.Exit(1)
    written = write_default_config(target)
    logger.info(f"config written to {written}")
    console.print(f"[green]✅ Wrote {written}[/green]")


if __name__ == "__main__":
    app()
