"""
Synchronized terminal output for decoded records.

Each record is written as one unit: its diagnostics block goes to the
diagnostics stream (stderr) and its payload to the payload stream
(stdout), both under a single lock. Records from concurrently consumed
partitions therefore never interleave.

Output is plain text with no ANSI colors: JSON payloads are indented but
not syntax-highlighted, so the streams can be piped or redirected as-is.
"""

import sys
import threading
from contextlib import contextmanager
from typing import BinaryIO, Iterator, List, Optional, Sequence, TextIO

from kafka_tail.schemas.records import DecodedRecord

# Column layout for the diagnostics block
MIN_CELL_WIDTH = 6
CELL_PADDING = 3


def _tabulate(rows: Sequence[Sequence[str]]) -> List[str]:
    """
    Align cells into columns.

    Every cell but the last in a row is padded to the widest cell of its
    column, so the last cell of each row is free-form.
    """
    widths: List[int] = []
    for row in rows:
        for i, cell in enumerate(row[:-1]):
            width = max(len(cell) + CELL_PADDING, MIN_CELL_WIDTH)
            if i == len(widths):
                widths.append(width)
            else:
                widths[i] = max(widths[i], width)

    lines = []
    for row in rows:
        cells = [cell.ljust(widths[i]) for i, cell in enumerate(row[:-1])]
        cells.append(row[-1])
        lines.append("".join(cells).rstrip())
    return lines


def render_errors(record: DecodedRecord) -> str:
    return "".join(f"{error}\n" for error in record.errors)


def render_diagnostics(record: DecodedRecord) -> str:
    """
    Render the diagnostics block for a record.

    Order: decode errors, headers, key, partition, offset, timestamp.
    """
    lines: List[str] = []

    if record.headers:
        lines.append("Headers:")
        lines.extend(
            _tabulate(
                [
                    ["", f"Key: {hdr_key}", f"Value: {hdr_value}"]
                    for hdr_key, hdr_value in record.headers
                ]
            )
        )

    fields = []
    if record.key is not None:
        fields.append(["Key:", record.key])
    fields.extend(
        [
            ["Partition:", str(record.partition)],
            ["Offset:", str(record.offset)],
            ["Timestamp:", str(record.timestamp)],
        ]
    )
    lines.extend(_tabulate(fields))

    return render_errors(record) + "".join(f"{line}\n" for line in lines)


class SynchronizedSink:
    """
    Writes decoded records to the diagnostics and payload streams.

    Safe to call from several threads: rendering happens outside the lock,
    the two stream writes happen inside it.

    Usage:
        >>> sink = SynchronizedSink()
        >>> sink.write(decoded_record)
    """

    def __init__(
        self,
        diagnostics: Optional[TextIO] = None,
        payload: Optional[BinaryIO] = None,
        raw: bool = False,
    ):
        """
        Args:
            diagnostics: Text stream for diagnostics (default: stderr)
            payload: Binary stream for payloads (default: stdout)
            raw: Only write decode errors to the diagnostics stream
        """
        self.diagnostics = diagnostics if diagnostics is not None else sys.stderr
        self.payload = payload if payload is not None else sys.stdout.buffer
        self.raw = raw
        self._lock = threading.Lock()

    @contextmanager
    def locked(self) -> Iterator[None]:
        """Hold the output lock for the duration of the block."""
        with self._lock:
            yield

    def write(self, record: DecodedRecord) -> None:
        block = render_errors(record) if self.raw else render_diagnostics(record)

        with self.locked():
            if block:
                self.diagnostics.write(block)
                self.diagnostics.flush()
            self.payload.write(record.value + b"\n")
            self.payload.flush()
