"""
Tests for SynchronizedSink.

Covers block rendering, raw mode, and that concurrent writers never
interleave their diagnostics/payload pairs.
"""

import io
import threading
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import List, Tuple

import pytest

from kafka_tail.schemas.records import DecodedRecord
from kafka_tail.sink import SynchronizedSink, render_diagnostics

TIMESTAMP = datetime(2024, 12, 25, 10, 30, 0, tzinfo=timezone.utc)


def make_decoded(partition: int, offset: int, **kwargs) -> DecodedRecord:
    return DecodedRecord(
        partition=partition, offset=offset, timestamp=TIMESTAMP, **kwargs
    )


class TestRenderDiagnostics:
    """Test the diagnostics block layout."""

    def test_minimal_block(self):
        block = render_diagnostics(make_decoded(2, 17))

        assert block.splitlines() == [
            "Partition:   2",
            "Offset:      17",
            f"Timestamp:   {TIMESTAMP}",
        ]

    def test_full_block_order(self):
        record = make_decoded(
            0,
            5,
            key='{"id": 1}',
            headers=(("content-type", "json"), ("seq", "12345")),
            errors=("could not decode Avro data: boom",),
        )

        lines = render_diagnostics(record).splitlines()

        assert lines[0] == "could not decode Avro data: boom"
        assert lines[1] == "Headers:"
        assert lines[2].split() == ["Key:", "content-type", "Value:", "json"]
        assert lines[3].split() == ["Key:", "seq", "Value:", "12345"]
        assert lines[4].startswith("Key:") and lines[4].endswith('{"id": 1}')
        assert lines[5].split() == ["Partition:", "0"]
        assert lines[6].split() == ["Offset:", "5"]
        assert lines[7].startswith("Timestamp:")

    def test_header_values_are_aligned(self):
        record = make_decoded(0, 0, headers=(("a", "1"), ("longer-key", "2")))

        lines = render_diagnostics(record).splitlines()[1:3]

        assert lines[0].index("Value:") == lines[1].index("Value:")

    def test_field_values_are_aligned(self):
        lines = render_diagnostics(make_decoded(0, 0, key="k")).splitlines()

        columns = {line.index(line.split()[1]) for line in lines}
        assert len(columns) == 1


class TestSynchronizedSinkWrite:
    """Test what goes to each stream."""

    def test_write_splits_streams(self, diagnostics_stream, payload_stream):
        sink = SynchronizedSink(diagnostics_stream, payload_stream)

        sink.write(make_decoded(1, 9, value=b'{"a": 1}'))

        assert "Partition:   1" in diagnostics_stream.getvalue()
        assert payload_stream.getvalue() == b'{"a": 1}\n'

    def test_raw_mode_writes_payload_only(self, diagnostics_stream, payload_stream):
        sink = SynchronizedSink(diagnostics_stream, payload_stream, raw=True)

        sink.write(make_decoded(1, 9, key="k", value=b"raw"))

        assert diagnostics_stream.getvalue() == ""
        assert payload_stream.getvalue() == b"raw\n"

    def test_raw_mode_still_reports_decode_errors(
        self, diagnostics_stream, payload_stream
    ):
        sink = SynchronizedSink(diagnostics_stream, payload_stream, raw=True)

        sink.write(make_decoded(0, 0, value=b"x", errors=("could not decode Avro data: e",)))

        assert diagnostics_stream.getvalue() == "could not decode Avro data: e\n"
        assert payload_stream.getvalue() == b"x\n"

    def test_output_is_not_colorized(self, diagnostics_stream, payload_stream):
        sink = SynchronizedSink(diagnostics_stream, payload_stream)

        sink.write(
            make_decoded(0, 1, key="k", headers=(("h", "v"),), value=b'{\n  "a": 1\n}')
        )

        assert "\x1b[" not in diagnostics_stream.getvalue()
        assert b"\x1b[" not in payload_stream.getvalue()

    def test_lock_released_when_write_fails(self, diagnostics_stream):
        class BrokenPayload(io.BytesIO):
            def __init__(self):
                super().__init__()
                self.fail = True

            def write(self, data):
                if self.fail:
                    self.fail = False
                    raise BrokenPipeError("reader went away")
                return super().write(data)

        payload = BrokenPayload()
        sink = SynchronizedSink(diagnostics_stream, payload)

        with pytest.raises(BrokenPipeError):
            sink.write(make_decoded(0, 0, value=b"first"))

        sink.write(make_decoded(0, 1, value=b"second"))
        assert payload.getvalue() == b"second\n"


class EventLog:
    """Shared log of stream writes across both streams."""

    def __init__(self):
        self.events: List[Tuple[str, str]] = []
        self._guard = threading.Lock()

    def add(self, stream: str, text: str) -> None:
        with self._guard:
            self.events.append((stream, text))


class SlowTextStream:
    """Text stream that yields the CPU mid-write to provoke interleaving."""

    def __init__(self, log: EventLog):
        self.log = log

    def write(self, text: str) -> None:
        time.sleep(0.001)
        self.log.add("diagnostics", text)

    def flush(self) -> None:
        time.sleep(0.001)


class SlowBinaryStream:
    def __init__(self, log: EventLog):
        self.log = log

    def write(self, data: bytes) -> None:
        time.sleep(0.001)
        self.log.add("payload", data.decode())

    def flush(self) -> None:
        pass


class IntervalRecordingSink(SynchronizedSink):
    """Sink that records when each critical section starts and ends."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.intervals: List[Tuple[float, float]] = []

    @contextmanager
    def locked(self):
        with super().locked():
            acquired = time.perf_counter()
            try:
                yield
            finally:
                self.intervals.append((acquired, time.perf_counter()))


class TestConcurrentWrites:
    """Records written from several threads never interleave."""

    PARTITIONS = 4
    RECORDS_PER_PARTITION = 15

    def _write_all(self, sink: SynchronizedSink) -> None:
        def worker(partition: int) -> None:
            for offset in range(self.RECORDS_PER_PARTITION):
                sink.write(
                    make_decoded(partition, offset, value=f"p{partition}-o{offset}".encode())
                )

        threads = [
            threading.Thread(target=worker, args=(p,)) for p in range(self.PARTITIONS)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

    def test_diagnostics_and_payload_stay_paired(self):
        log = EventLog()
        sink = SynchronizedSink(SlowTextStream(log), SlowBinaryStream(log))

        self._write_all(sink)

        events = log.events
        assert len(events) == 2 * self.PARTITIONS * self.RECORDS_PER_PARTITION
        for (diag_stream, diag), (payload_stream, payload) in zip(
            events[0::2], events[1::2]
        ):
            assert diag_stream == "diagnostics"
            assert payload_stream == "payload"
            partition = diag.split("Partition:")[1].split()[0]
            offset = diag.split("Offset:")[1].split()[0]
            assert payload == f"p{partition}-o{offset}\n"

    def test_per_partition_order_preserved(self):
        log = EventLog()
        sink = SynchronizedSink(SlowTextStream(log), SlowBinaryStream(log))

        self._write_all(sink)

        payloads = [text.strip() for stream, text in log.events if stream == "payload"]
        for partition in range(self.PARTITIONS):
            offsets = [
                int(p.split("-o")[1]) for p in payloads if p.startswith(f"p{partition}-")
            ]
            assert offsets == list(range(self.RECORDS_PER_PARTITION))

    def test_critical_sections_do_not_overlap(self):
        log = EventLog()
        sink = IntervalRecordingSink(SlowTextStream(log), SlowBinaryStream(log))

        self._write_all(sink)

        intervals = sorted(sink.intervals)
        assert len(intervals) == self.PARTITIONS * self.RECORDS_PER_PARTITION
        for (_, previous_end), (next_start, _) in zip(intervals, intervals[1:]):
            assert previous_end <= next_start
