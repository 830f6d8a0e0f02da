"""
Unit tests for flow table assembly and reconciliation.
"""

import numpy as np
import pytest

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from config.settings import AssemblyConfig
from flow_asymmetry.data.assembly import FlowTable, FlowTableAssembler
from flow_asymmetry.data.manifest import RunManifest
from flow_asymmetry.data.models import (
    AnchorRole,
    FlowEdge,
    ObservedDirection,
    RawFlowEdge,
    SourceTag,
)


def raw(origin, destination, magnitude, anchor=None, role=AnchorRole.DESTINATION):
    if anchor is None:
        anchor = destination if role is AnchorRole.DESTINATION else origin
    return RawFlowEdge(origin, destination, magnitude, SourceTag(anchor, role, 2022))


class TestScenarioD:
    """A->B seen as 50 from A's outbound query and 52 from B's inbound query."""

    def setup_method(self):
        self.manifest = RunManifest()
        assembler = FlowTableAssembler(AssemblyConfig(), manifest=self.manifest)
        self.table = assembler.assemble([
            raw("48453", "48201", 50, role=AnchorRole.ORIGIN),
            raw("48453", "48201", 52, role=AnchorRole.DESTINATION),
        ])

    def test_destination_observation_wins(self):
        edge = self.table.get("48453", "48201")
        assert edge.magnitude == 52
        assert edge.observed_direction is ObservedDirection.BOTH
        assert len(edge.sources) == 2

    def test_reconciliation_note_recorded(self):
        assert len(self.manifest.reconciliations) == 1
        note = self.manifest.reconciliations[0]
        assert note.kept_magnitude == 52
        assert note.discarded_magnitude == 50
        assert note.kept_source == "destination:48201@2022"
        assert note.discarded_source == "origin:48453@2022"

    def test_order_does_not_matter(self):
        reversed_table = FlowTableAssembler(AssemblyConfig()).assemble([
            raw("48453", "48201", 52, role=AnchorRole.DESTINATION),
            raw("48453", "48201", 50, role=AnchorRole.ORIGIN),
        ])
        assert reversed_table.get("48453", "48201").magnitude == 52


class TestReconciliation:
    """Agreement, authority and same-role duplicates."""

    def test_agreement_within_tolerance_has_no_note(self):
        manifest = RunManifest()
        table = FlowTableAssembler(AssemblyConfig(), manifest=manifest).assemble([
            raw("48453", "48201", 100, role=AnchorRole.ORIGIN),
            raw("48453", "48201", 101, role=AnchorRole.DESTINATION),
        ])
        assert table.get("48453", "48201").magnitude == 101
        assert manifest.reconciliations == []

    def test_origin_authority_when_configured(self):
        config = AssemblyConfig(authoritative_role="origin")
        table = FlowTableAssembler(config).assemble([
            raw("48453", "48201", 50, role=AnchorRole.ORIGIN),
            raw("48453", "48201", 52, role=AnchorRole.DESTINATION),
        ])
        assert table.get("48453", "48201").magnitude == 50

    def test_zero_tolerance_notes_any_difference(self):
        manifest = RunManifest()
        FlowTableAssembler(AssemblyConfig(reconciliation_tolerance=0.0), manifest=manifest).assemble([
            raw("48453", "48201", 100, role=AnchorRole.ORIGIN),
            raw("48453", "48201", 101, role=AnchorRole.DESTINATION),
        ])
        assert len(manifest.reconciliations) == 1

    def test_same_role_conflict_keeps_largest(self):
        manifest = RunManifest()
        table = FlowTableAssembler(AssemblyConfig(), manifest=manifest).assemble([
            raw("48453", "48201", 40, anchor="48201"),
            raw("48453", "48201", 90, anchor="48"),
        ])
        assert table.get("48453", "48201").magnitude == 90
        assert table.get("48453", "48201").observed_direction is ObservedDirection.INBOUND
        assert len(manifest.reconciliations) == 1

    def test_exact_duplicates_collapse(self):
        manifest = RunManifest()
        table = FlowTableAssembler(AssemblyConfig(), manifest=manifest).assemble([
            raw("48453", "48201", 40),
            raw("48453", "48201", 40),
        ])
        assert len(table) == 1
        assert manifest.reconciliations == []

    def test_single_direction_tagging(self):
        table = FlowTableAssembler(AssemblyConfig()).assemble([
            raw("48453", "48201", 40, role=AnchorRole.DESTINATION),
            raw("48453", "48029", 10, role=AnchorRole.ORIGIN),
        ])
        assert table.get("48453", "48201").observed_direction is ObservedDirection.INBOUND
        assert table.get("48453", "48029").observed_direction is ObservedDirection.OUTBOUND
        assert table.direction_coverage() == {"inbound": 1, "outbound": 1}


class TestDroppedRows:
    """Self-loops, missing and non-positive magnitudes never reach the table."""

    def test_drops_are_counted(self):
        manifest = RunManifest()
        table = FlowTableAssembler(AssemblyConfig(), manifest=manifest).assemble([
            raw("48453", "48201", 40),
            raw("48453", "48029", 0),
            raw("48453", "48113", -5),
            raw("48453", "48491", None),
            raw("48453", "48085", float("nan")),
        ])
        assert len(table) == 1
        assert manifest.dropped_rows["non_positive_magnitude"] == 2
        assert manifest.dropped_rows["missing_magnitude"] == 2

    def test_self_loops_dropped(self):
        manifest = RunManifest()
        table = FlowTableAssembler(AssemblyConfig(), manifest=manifest).assemble([
            raw("48453", "48453", 40),
            raw("48453", "48201", 25),
        ])
        assert len(table) == 1
        assert table.get("48453", "48453") is None
        assert table.group_total("48453") == 25
        assert manifest.dropped_rows["self_loop"] == 1


class TestFlowTable:
    """Indexing and conservation."""

    def make_table(self):
        rng = np.random.default_rng(3)
        edges = []
        for i in range(12):
            origin = f"48{i:03d}"
            for j in rng.choice(50, size=rng.integers(1, 8), replace=False):
                edges.append(raw(origin, f"06{j:03d}", float(rng.integers(1, 500))))
        return FlowTableAssembler(AssemblyConfig()).assemble(edges)

    def test_conservation(self):
        """Group totals sum to the table total."""
        table = self.make_table()
        group_sum = sum(table.group_total(o) for o in table.origins)
        assert group_sum == pytest.approx(table.total_magnitude())
        assert sum(len(table.group(o)) for o in table.origins) == len(table)

    def test_groups_are_sorted(self):
        table = self.make_table()
        for origin in table.origins:
            destinations = [e.destination_id for e in table.group(origin)]
            assert destinations == sorted(destinations)

    def test_lookup(self):
        table = FlowTable([FlowEdge("48453", "48201", 10.0, ObservedDirection.INBOUND)])
        assert ("48453", "48201") in table
        assert ("48201", "48453") not in table
        assert table.group("99999") == []
        assert table.weights("48453").tolist() == [10.0]

    def test_duplicate_edge_rejected(self):
        edge = FlowEdge("48453", "48201", 10.0, ObservedDirection.INBOUND)
        table = FlowTable([edge])
        with pytest.raises(ValueError):
            table.add(edge)

    def test_to_frame(self):
        table = FlowTable([FlowEdge("48453", "48201", 10.0, ObservedDirection.BOTH)])
        frame = table.to_frame()
        assert list(frame["observed_direction"]) == ["both"]
