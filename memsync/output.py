"""Console output for the memsync CLI."""

import json
from typing import Any, Optional

import click
from rich.console import Console
from rich.table import Table


class OutputFormatter:
    """Formats CLI output as styled text, rich tables or JSON.

    In JSON mode informational messages are suppressed so stdout only carries
    the JSON document. Errors always go to stderr.
    """

    def __init__(self, json_output: bool = False, quiet: bool = False):
        """Initialize output formatter.

        Args:
            json_output: Emit machine-readable JSON instead of text
            quiet: Suppress non-essential output
        """
        self.json_output = json_output
        self.quiet = quiet

    @property
    def _silent(self) -> bool:
        return self.quiet or self.json_output

    def info(self, message: str) -> None:
        if not self._silent:
            click.echo(message)

    def success(self, message: str) -> None:
        if not self._silent:
            click.secho(message, fg="green")

    def warning(self, message: str) -> None:
        if not self.json_output:
            click.secho(f"Warning: {message}", fg="yellow", err=True)

    def error(self, message: str) -> None:
        click.secho(f"Error: {message}", fg="red", err=True)

    def print(self, message: str = "") -> None:
        """Print a plain line, even in quiet mode."""
        if not self.json_output:
            click.echo(message)

    def output_json(self, data: Any) -> None:
        click.echo(json.dumps(data, indent=2, default=str))

    def output_table(
        self,
        rows: list[dict[str, Any]],
        columns: list[str],
        headers: Optional[dict[str, str]] = None,
        title: Optional[str] = None,
    ) -> None:
        """Print rows as a table, or as a JSON list in JSON mode.

        Args:
            rows: One dict per row
            columns: Keys to show, in order
            headers: Optional column key -> header label
            title: Optional table title
        """
        if self.json_output:
            self.output_json([{c: row.get(c) for c in columns} for row in rows])
            return

        headers = headers or {}
        table = Table(title=title)
        for column in columns:
            table.add_column(headers.get(column, column))
        for row in rows:
            values = [row.get(c) for c in columns]
            table.add_row(*("" if v is None else str(v) for v in values))
        Console().print(table)

    def print_summary(self, title: str, items: list[tuple[str, Any]]) -> None:
        """Print a titled list of label/value pairs.

        Args:
            title: Summary heading
            items: (label, value) pairs
        """
        if self.json_output:
            self.output_json({label: value for label, value in items})
            return
        if self.quiet:
            return

        click.echo("")
        click.secho(title, bold=True)
        click.echo("=" * len(title))
        for label, value in items:
            click.echo(f"  {label}: {value}")
