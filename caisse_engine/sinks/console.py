"""Console sink for debugging and development."""

import sys
from typing import Any, TextIO

from caisse_engine.models.events import ContractEvent
from caisse_engine.sinks.serialization import to_json


class ConsoleSink:
    """Output notifications and schedules to console (stdout) for debugging."""

    def __init__(
        self,
        pretty: bool = True,
        max_records: int | None = None,
        stream: TextIO | None = None,
    ) -> None:
        """Initialize console sink.

        Parameters
        ----------
        pretty : bool
            Pretty-print JSON output.
        max_records : int | None
            Maximum records to print per batch (None for all).
        stream : TextIO | None
            Output stream; defaults to ``sys.stdout``.
        """
        self.pretty = pretty
        self.max_records = max_records
        self.stream = stream
        self.events: list[ContractEvent] = []
        self._counts: dict[str, int] = {}

    def _print(self, text: str) -> None:
        print(text, file=self.stream or sys.stdout)

    def notify(self, event_type: str, subject: str, payload: dict[str, Any]) -> None:
        """Print a notification envelope."""
        event = ContractEvent.create(event_type, subject, payload)
        self.events.append(event)
        self._print(to_json(event, pretty=self.pretty))
        self._counts[event_type] = self._counts.get(event_type, 0) + 1

    def write_batch(self, title: str, records: list[Any]) -> None:
        """Write a batch of records (schedule rows, refunds) to console."""
        self._print(f"\n{'='*60}")
        self._print(f"{title} ({len(records)} records)")
        self._print("=" * 60)

        display_records = records[: self.max_records] if self.max_records else records

        for record in display_records:
            self._print(to_json(record, pretty=self.pretty))

        if self.max_records and len(records) > self.max_records:
            self._print(f"... and {len(records) - self.max_records} more records")

        self._counts[title] = self._counts.get(title, 0) + len(records)

    def close(self) -> None:
        """Print summary and close."""
        self._print(f"\n{'='*60}")
        self._print("Console Sink Summary")
        self._print("=" * 60)
        for name, count in self._counts.items():
            self._print(f"  {name}: {count}")
