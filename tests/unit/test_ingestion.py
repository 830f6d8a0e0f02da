"""
Unit tests for concurrent flow ingestion.

All tests run against an in-memory flow source; no network access.
"""

import threading
import time
from concurrent.futures import wait as futures_wait
from unittest.mock import patch

import pytest

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from config.settings import IngestionConfig
from flow_asymmetry.data.ingestion import FlowIngestor
from flow_asymmetry.data.models import AnchorRole
from flow_asymmetry.exceptions import (
    IngestionError,
    MalformedRecordError,
    TransientSourceError,
)


def row(counterpart_id, magnitude_in=None, magnitude_out=None, name=None):
    return {
        "counterpart_id": counterpart_id,
        "counterpart_name": name,
        "magnitude_in": magnitude_in,
        "magnitude_out": magnitude_out,
    }


class FakeSource:
    """Flow source answering from a dict of (anchor, role) -> rows or exception."""

    def __init__(self, responses, delays=None):
        self.responses = responses
        self.delays = delays or {}
        self.calls = []
        self.lock = threading.Lock()

    def query(self, anchor_id, anchor_role, year):
        with self.lock:
            self.calls.append((anchor_id, anchor_role, year))
        key = (anchor_id, anchor_role)
        if key in self.delays:
            time.sleep(self.delays[key])
        response = self.responses.get(key, [])
        if isinstance(response, list) and response and isinstance(response[0], Exception):
            # A list of exceptions is consumed one per call
            with self.lock:
                error = response.pop(0)
            raise error
        if isinstance(response, Exception):
            raise response
        return response


def fast_config(**overrides):
    settings = dict(
        max_concurrency=4,
        max_retries=3,
        backoff_base=0.0,
        backoff_max=0.0,
        ingestion_timeout=30,
        include_non_primary=False,
    )
    settings.update(overrides)
    return IngestionConfig(**settings)


D = AnchorRole.DESTINATION
O = AnchorRole.ORIGIN


class TestRoleRelabeling:
    """Rows are oriented from the anchor's perspective."""

    def test_destination_query_yields_inbound_edges(self):
        source = FakeSource({("48453", D): [row("48201", magnitude_in=500, magnitude_out=None)]})
        result = FlowIngestor(source, config=fast_config()).ingest(["48453"], year=2022)

        assert len(result.edges) == 1
        edge = result.edges[0]
        assert (edge.origin_id, edge.destination_id) == ("48201", "48453")
        assert edge.magnitude == 500
        assert edge.source.anchor_role is D
        assert edge.source.year == 2022

    def test_origin_query_yields_outbound_edges(self):
        source = FakeSource({("48453", O): [row("48201", magnitude_in=999, magnitude_out=320)]})
        result = FlowIngestor(source, config=fast_config()).ingest(["48453"], roles=(O,), year=2022)

        edge = result.edges[0]
        assert (edge.origin_id, edge.destination_id) == ("48453", "48201")
        assert edge.magnitude == 320

    def test_missing_outbound_is_not_assumed(self):
        """A null MOVEDOUT column is dropped, not treated as zero."""
        source = FakeSource({("48453", O): [
            row("48201", magnitude_in=500, magnitude_out=None),
            row("48029", magnitude_in=10, magnitude_out=40),
        ]})
        result = FlowIngestor(source, config=fast_config()).ingest(["48453"], roles=(O,), year=2022)

        assert [e.destination_id for e in result.edges] == ["48029"]
        assert result.manifest.dropped_rows["missing_magnitude"] == 1

    def test_both_roles_issue_two_queries(self):
        source = FakeSource({
            ("48453", D): [row("48201", magnitude_in=500)],
            ("48453", O): [row("48201", magnitude_out=300)],
        })
        FlowIngestor(source, config=fast_config()).ingest(["48453"], roles=(D, O), year=2022)
        assert sorted((c[0], c[1].value) for c in source.calls) == [
            ("48453", "destination"), ("48453", "origin"),
        ]


class TestRowFiltering:
    """Per-row failures are dropped and tallied, never fatal."""

    def test_drop_reasons(self):
        source = FakeSource({("48453", D): [
            row("48201", magnitude_in=500),
            row("006", magnitude_in=1200),
            row("EUR", magnitude_in=80),
            row("48029", magnitude_in=0),
            row("48113", magnitude_in="n/a"),
            row("", magnitude_in=10),
            "not a row",
            row("48491", magnitude_in=float("nan")),
        ]})
        result = FlowIngestor(source, config=fast_config()).ingest(["48453"], year=2022)

        assert sorted(e.origin_id for e in result.edges) == ["06", "48201"]
        dropped = result.manifest.dropped_rows
        assert dropped["non_primary_counterpart"] == 1
        assert dropped["non_positive_magnitude"] == 1
        assert dropped["malformed_row"] == 3
        assert dropped["missing_magnitude"] == 1

    def test_include_non_primary(self):
        source = FakeSource({("48453", D): [row("EUR", magnitude_in=80)]})
        config = fast_config(include_non_primary=True)
        result = FlowIngestor(source, config=config).ingest(["48453"], year=2022)
        assert result.edges[0].origin_id == "EUR"


class TestPartialFailure:
    """Empty, malformed and failing anchors are skipped, not fatal."""

    def test_empty_response_is_skipped(self):
        """An anchor returning nothing is recorded and the batch continues."""
        source = FakeSource({
            ("48453", D): [row("48201", magnitude_in=500)],
            ("48491", D): [],
        })
        result = FlowIngestor(source, config=fast_config()).ingest(["48453", "48491"], year=2022)

        assert result.succeeded == ["48453"]
        assert all(e.destination_id == "48453" for e in result.edges)
        assert len(result.manifest.skipped_anchors) == 1
        skipped = result.manifest.skipped_anchors[0]
        assert skipped.anchor_id == "48491"
        assert skipped.reason == "no_data"

    def test_malformed_response_is_no_data(self):
        source = FakeSource({
            ("48453", D): [row("48201", magnitude_in=500)],
            ("48491", D): MalformedRecordError("bad table"),
        })
        result = FlowIngestor(source, config=fast_config()).ingest(["48453", "48491"], year=2022)
        assert result.manifest.skipped_by_reason() == {"no_data": 1}

    def test_unexpected_exception_marks_anchor_failed(self):
        source = FakeSource({
            ("48453", D): [row("48201", magnitude_in=500)],
            ("48491", D): RuntimeError("boom"),
        })
        result = FlowIngestor(source, config=fast_config()).ingest(["48453", "48491"], year=2022)
        assert result.manifest.skipped_by_reason() == {"failed": 1}

    def test_invalid_anchor_is_skipped(self):
        source = FakeSource({("48453", D): [row("48201", magnitude_in=500)]})
        result = FlowIngestor(source, config=fast_config()).ingest(["48453", "ASI"], year=2022)
        assert result.manifest.skipped_by_reason() == {"invalid_anchor": 1}
        assert [c[0] for c in source.calls] == ["48453"]

    def test_total_failure_is_fatal(self):
        source = FakeSource({("48453", D): [], ("48491", D): []})
        with pytest.raises(IngestionError) as exc_info:
            FlowIngestor(source, config=fast_config()).ingest(["48453", "48491"], year=2022)
        assert len(exc_info.value.manifest.skipped_anchors) == 2


class TestRetries:
    """Transient failures are retried with backoff up to a ceiling."""

    def test_recovers_after_transient_errors(self):
        source = FakeSource({("48453", D): [TransientSourceError("503"), TransientSourceError("429")]})
        # After the two errors are consumed the anchor answers with rows
        rows = [row("48201", magnitude_in=500)]
        original = source.query

        def query(anchor_id, anchor_role, year):
            result = original(anchor_id, anchor_role, year)
            return result or rows

        source.query = query
        result = FlowIngestor(source, config=fast_config()).ingest(["48453"], year=2022)

        assert len(source.calls) == 3
        assert result.anchor_results[0].attempts == 3
        assert result.succeeded == ["48453"]

    def test_gives_up_after_max_retries(self):
        source = FakeSource({
            ("48453", D): [row("48201", magnitude_in=500)],
            ("48491", D): TransientSourceError("503"),
        })
        config = fast_config(max_retries=2)
        result = FlowIngestor(source, config=config).ingest(["48453", "48491"], year=2022)

        failed = [s for s in result.manifest.skipped_anchors if s.reason == "failed"]
        assert len(failed) == 1
        assert failed[0].attempts == 3
        assert sum(1 for c in source.calls if c[0] == "48491") == 3


class TestConcurrency:
    """Concurrency limit, timeout and cancellation."""

    def test_respects_concurrency_limit(self):
        active = {"now": 0, "peak": 0}
        lock = threading.Lock()

        class CountingSource:
            def query(self, anchor_id, anchor_role, year):
                with lock:
                    active["now"] += 1
                    active["peak"] = max(active["peak"], active["now"])
                time.sleep(0.02)
                with lock:
                    active["now"] -= 1
                return [row("48201", magnitude_in=10)]

        anchors = [f"48{i:03d}" for i in range(1, 40, 2)]
        FlowIngestor(CountingSource(), config=fast_config(max_concurrency=3)).ingest(anchors, year=2022)
        assert active["peak"] <= 3

    def test_timeout_keeps_completed_anchors(self):
        source = FakeSource(
            {
                ("48453", D): [row("48201", magnitude_in=500)],
                ("48491", D): [row("48201", magnitude_in=70)],
            },
            delays={("48491", D): 2.0},
        )
        config = fast_config(ingestion_timeout=0.5)
        result = FlowIngestor(source, config=config).ingest(["48453", "48491"], year=2022)

        assert result.succeeded == ["48453"]
        assert result.manifest.skipped_by_reason() == {"timeout": 1}
        assert not result.cancelled

    def test_cancel_keeps_completed_anchors(self):
        started = threading.Event()

        class SlowSource:
            def query(self, anchor_id, anchor_role, year):
                if anchor_id == "48453":
                    return [row("48201", magnitude_in=500)]
                started.set()
                raise TransientSourceError("503")

        config = fast_config(max_concurrency=2, backoff_base=5.0, backoff_max=5.0)
        ingestor = FlowIngestor(SlowSource(), config=config)

        def cancel_when_retrying():
            started.wait(5)
            time.sleep(0.1)
            ingestor.cancel()

        canceller = threading.Thread(target=cancel_when_retrying)
        canceller.start()
        result = ingestor.ingest(["48453", "48491"], year=2022)
        canceller.join()

        assert result.succeeded == ["48453"]
        assert result.cancelled
        assert result.manifest.skipped_by_reason() == {"cancelled": 1}

    def test_interrupt_keeps_anchors_finished_during_wait(self):
        source = FakeSource({
            ("48453", D): [row("48201", magnitude_in=500)],
            ("48201", D): [row("48453", magnitude_in=300)],
        })

        def interrupted_wait(fs, timeout=None, return_when=None):
            # Let every query finish, then interrupt before wait() returns
            futures_wait(fs, timeout=5)
            raise KeyboardInterrupt

        with patch("flow_asymmetry.data.ingestion.wait", side_effect=interrupted_wait):
            result = FlowIngestor(source, config=fast_config()).ingest(["48453", "48201"], year=2022)

        assert sorted(result.succeeded) == ["48201", "48453"]
        assert result.manifest.skipped_by_reason() == {}
        assert not result.cancelled
        assert len(result.edges) == 2

    def test_duplicate_anchors_query_once(self):
        source = FakeSource({("48453", D): [row("48201", magnitude_in=500)]})
        FlowIngestor(source, config=fast_config()).ingest(["48453", "48453"], year=2022)
        assert len(source.calls) == 1
