"""
Progress reporting for milhouse.

The core never prints. Phase controllers and the stream driver report
through a Reporter passed in by the caller; the CLI passes a
ConsoleReporter, tests use the silent base class.
"""

import sys
from typing import TextIO


class Reporter:
    """Silent reporter. Subclass and override what you want to show."""

    def header(self, title: str) -> None:
        pass

    def iteration_header(self, iteration: int, total: int) -> None:
        pass

    def agent_header(self, phase: str, detail: str) -> None:
        pass

    def agent_text(self, text: str, tool_count: int) -> None:
        pass

    def working_on(self, record_id: str) -> None:
        pass

    def token_usage(self, input_tokens: int, output_tokens: int, total: int, ceiling: int) -> None:
        pass

    def signal(self, kind: str, detail: str = "") -> None:
        pass

    def info(self, message: str) -> None:
        pass

    def warning(self, message: str) -> None:
        pass

    def error(self, message: str) -> None:
        pass

    def summary(self, open_count: int, active: int, pending: int, complete: int) -> None:
        pass


class ConsoleReporter(Reporter):
    """Plain-text reporter for the terminal."""

    def __init__(self, out: TextIO = None, err: TextIO = None):
        self.out = out or sys.stdout
        self.err = err or sys.stderr

    def _print(self, text: str = "", end: str = "\n") -> None:
        print(text, end=end, file=self.out, flush=True)

    def header(self, title: str) -> None:
        self._print()
        self._print("=" * 60)
        self._print(title)
        self._print("=" * 60)

    def iteration_header(self, iteration: int, total: int) -> None:
        self.header(f"Iteration {iteration}/{total}")

    def agent_header(self, phase: str, detail: str) -> None:
        self._print(f"[{phase}] {detail}")

    def agent_text(self, text: str, tool_count: int) -> None:
        prefix = f"({tool_count} tools) " if tool_count else ""
        self._print(f"{prefix}{text}", end="" if text.endswith("\n") else "\n")

    def working_on(self, record_id: str) -> None:
        self._print(f">>> WORKING ON: {record_id}")

    def token_usage(self, input_tokens: int, output_tokens: int, total: int, ceiling: int) -> None:
        pct = (total / ceiling * 100) if ceiling else 0
        self._print(f"Tokens: {total:,}/{ceiling:,} ({pct:.0f}%)  in={input_tokens:,} out={output_tokens:,}")

    def signal(self, kind: str, detail: str = "") -> None:
        self._print(f"Signal: {kind}" + (f" {detail}" if detail else ""))

    def info(self, message: str) -> None:
        self._print(message)

    def warning(self, message: str) -> None:
        print(f"WARNING: {message}", file=self.err, flush=True)

    def error(self, message: str) -> None:
        print(f"ERROR: {message}", file=self.err, flush=True)

    def summary(self, open_count: int, active: int, pending: int, complete: int) -> None:
        total = open_count + active + pending + complete
        self._print(
            f"Open: {open_count}  Active: {active}  Pending: {pending}  "
            f"Complete: {complete}  (total {total})"
        )
