"""Console reporter using Rich library for formatted CLI output.

Displays upload progress: one line per uploaded part, and a summary
when the upload completes or is aborted.
"""

from typing import Optional

from rich.console import Console
from rich.rule import Rule

from cos_client.models import Part, UploadResult, UploadSession
from cos_client.reporters.base import Reporter


def format_size(size: int) -> str:
    """Format a byte count with a binary unit, e.g. 5.0 MiB."""
    if size < 1024:
        return f"{size} B"
    value = size / 1024
    for unit in ("KiB", "MiB"):
        if value < 1024:
            return f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} GiB"


class ConsoleReporter(Reporter):
    """Rich-based console reporter for CLI output.

    Args:
        quiet: If True, suppress per-part output (only show summary)
        console: Console to print to (defaults to stderr)
    """

    def __init__(self, quiet: bool = False, console: Optional[Console] = None):
        # Use legacy_windows=True for ASCII-safe output on Windows consoles
        self.console = console or Console(stderr=True, legacy_windows=True)
        self.quiet = quiet

    def on_upload_start(self, session: UploadSession) -> None:
        self.console.print(
            Rule(f"[bold cyan]Uploading: {session.bucket}/{session.key}[/bold cyan]", style="cyan", characters="-")
        )
        if not self.quiet:
            self.console.print(f"  [dim]upload id {session.upload_id}[/dim]")

    def on_part_complete(self, session: UploadSession, part: Part, size: int) -> None:
        if self.quiet:
            return
        self.console.print(
            f"  [green][OK][/green] part {part.part_number} ({format_size(size)}) "
            f"[dim]etag {part.etag}[/dim]"
        )

    def on_upload_complete(self, result: UploadResult) -> None:
        etag = f" etag {result.etag}" if result.etag else ""
        self.console.print(
            f"[bold green]DONE[/bold green] {result.session.bucket}/{result.session.key}: "
            f"{len(result.parts)} part(s), {format_size(result.size)}{etag}"
        )

    def on_upload_aborted(self, session: UploadSession, error: BaseException) -> None:
        self.console.print(
            f"[bold red]ABORTED[/bold red] {session.bucket}/{session.key} "
            f"(upload id {session.upload_id})"
        )
        self.console.print(f"   [dim red]{error}[/dim red]")
