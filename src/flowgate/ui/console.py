"""Console output formatting utilities for flowgate."""

from __future__ import annotations

import sys
from collections import Counter
from typing import Optional

from ..errors import UnauthorizedExpressionError


class Console:
    """Centralized console output formatting."""

    def __init__(self, debug: bool = False):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
        """
        self.debug = debug

    def print_compile_started(self, workflow_count: int, output_dir: Optional[str] = None) -> None:
        """Print compile start information."""
        print("\nCOMPILE STARTED")
        print(f"Workflows: {workflow_count}")
        if output_dir:
            print(f"Output: {output_dir}")
        print()

    def print_compiled(self, source: str, target: str, job_names: list[str], changed: bool) -> None:
        status = "written" if changed else "unchanged"
        print(f"COMPILED: {source} -> {target} ({status})")
        print(f"  Jobs: {', '.join(job_names)}")

    def print_stale(self, source: str, target: str) -> None:
        print(f"STALE: {target} does not match {source}")

    def print_results(self, results: dict[str, str]) -> None:
        """Print one line per workflow, then counts by status."""
        print("\nRESULTS")
        for workflow, status in results.items():
            print(f"  {workflow}: {status.upper()}")
        counts = Counter(results.values())
        print(", ".join(f"{n} {status}" for status, n in sorted(counts.items())))

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        print(f"\nERROR: {title}", file=sys.stderr)
        print(f"{message}", file=sys.stderr)
        if details:
            for detail in details:
                print(f"  {detail}", file=sys.stderr)
        if suggestion:
            print(f"\n{suggestion}", file=sys.stderr)

    def print_findings(self, source: str, err: UnauthorizedExpressionError) -> None:
        """Print every unauthorized expression found in one input."""
        self.print_error(
            "Unauthorized expressions",
            f"{source}: {len(err.findings)} expression(s) may not be interpolated",
            details=[f.format() for f in err.findings],
            suggestion="Use needs.<job>.outputs.<name>, steps.<id>.outputs.<name>, inputs, env "
            "or an allow-listed github.* value instead.",
        )

    def print_exception(self, exc: Exception) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            traceback.print_exc()
        else:
            print(f"Error: {exc}", file=sys.stderr)

    def print_info(self, message: str) -> None:
        """Print informational message."""
        print(message)


# Global console instance (will be initialized by CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
