"""
Tests for reconcile.py - Merging report facts into marker state.

These tests verify:
- Promotion of pending markers (coordinate + type match, first match only)
- Materialization and idempotent re-delivery
- Tombstone permanence
- Order independence of bulk reconciliation
- Fingerprint-scoped cleanup and the drift repair pass
- Re-derivation from the document
"""

import itertools
import pytest

from rmap.adapters.map_surface import InMemoryMapSurface
from rmap.core.models import Marker, MarkerState, MarkerStateError, ReportFact, ReportType
from rmap.domain.document import ReportDocument
from rmap.domain.reconcile import (
    Reconciler, IGNORED_DUPLICATE, IGNORED_TOMBSTONED, MATERIALIZED, PROMOTED
)


def make_reconciler(nodes=None):
    return Reconciler(InMemoryMapSurface(), ReportDocument(nodes))


def fact(rid, lat, lng, rtype="checkpoint", inserted_at=None):
    return ReportFact(id=rid, lat=lat, lng=lng, type=ReportType.coerce(rtype), inserted_at=inserted_at)


class TestPromotion:
    """Pending -> durable promotion."""

    def test_promotes_matching_pending(self):
        """A fact near a pending marker of the same type promotes it."""
        r = make_reconciler()
        pending = r.create_pending(40.0, -75.0, "checkpoint", "F1")

        outcome = r.reconcile(fact("101", 40.0001, -75.0001))

        assert outcome == PROMOTED
        assert len(r.ephemeral) == 0
        assert r.durable.ids() == ["101"]
        assert r.durable.get("101") is pending
        assert pending.state == MarkerState.PERMANENT

    def test_marker_is_mutated_in_place(self):
        """Promotion restyles the same layer instead of adding a new one."""
        r = make_reconciler()
        pending = r.create_pending(40.0, -75.0, "checkpoint", "F1")
        assert pending.handle.icon.color == "#fbbf24"
        assert "Submitting" in pending.handle.caption

        r.reconcile(fact("101", 40.0001, -75.0001))

        assert len(r.surface) == 1
        assert pending.handle.icon.color == "#ef4444"
        assert "Reported" in pending.handle.caption
        assert pending.handle.report_id == "101"

    def test_only_first_pending_is_consumed(self):
        """One fact promotes only the oldest matching pending marker."""
        r = make_reconciler()
        first = r.create_pending(40.0, -75.0, "raid", "F1")
        second = r.create_pending(40.0, -75.0, "raid", "F1")

        r.reconcile(fact("5", 40.0, -75.0, "raid"))

        assert r.durable.get("5") is first
        assert r.ephemeral.entries() == [second]
        assert second.state == MarkerState.PENDING

    def test_type_mismatch_materializes(self):
        """A different type at the same spot gets its own marker."""
        r = make_reconciler()
        r.create_pending(40.0, -75.0, "patrol", "F1")

        assert r.reconcile(fact("7", 40.0, -75.0, "raid")) == MATERIALIZED
        assert len(r.ephemeral) == 1
        assert len(r.surface) == 2

    def test_outside_tolerance_materializes(self):
        """A fact outside the tolerance window does not promote."""
        r = make_reconciler()
        r.create_pending(40.0, -75.0, "checkpoint", "F1")

        assert r.reconcile(fact("8", 40.002, -75.0)) == MATERIALIZED
        assert len(r.ephemeral) == 1

    def test_redelivery_is_ignored(self):
        """The same id delivered twice keeps one marker."""
        r = make_reconciler()
        assert r.reconcile(fact("9", 41.0, -80.0)) == MATERIALIZED
        assert r.reconcile(fact(9, 41.0, -80.0)) == IGNORED_DUPLICATE
        assert len(r.surface) == 1


class TestTombstones:
    """Removed ids never come back."""

    def test_remove_unknown_id_blocks_future_insert(self):
        """Removing an id before it arrives still blocks it."""
        r = make_reconciler()
        assert r.remove("7") is False

        assert r.reconcile(fact(7, 40.0, -75.0)) == IGNORED_TOMBSTONED
        assert "7" not in r.durable
        assert len(r.surface) == 0

    def test_remove_existing_marker(self):
        """Removal takes the layer off and the id stays blocked."""
        r = make_reconciler()
        r.reconcile(fact("3", 40.0, -75.0))
        marker = r.durable.get("3")

        assert r.remove(3) is True
        assert len(r.surface) == 0
        assert marker.state == MarkerState.REMOVED
        assert r.reconcile(fact("3", 40.0, -75.0)) == IGNORED_TOMBSTONED
        assert len(r.durable) == 0

    def test_removed_fact_leaves_nearby_pending_alone(self):
        """A fact for a removed id is a no-op, even next to a pending marker."""
        r = make_reconciler()
        pending = r.create_pending(40.0, -75.0, "checkpoint", "F1")
        r.remove("55")

        assert r.reconcile(fact("55", 40.0, -75.0)) == IGNORED_TOMBSTONED
        assert r.ephemeral.entries() == [pending]
        assert pending.state == MarkerState.PENDING
        assert len(r.surface) == 1
        assert "55" not in r.durable


class TestReconcileAll:
    """Bulk reconciliation."""

    FACTS = [
        fact("1", 40.0, -75.0),
        fact("2", 40.0003, -75.0002),
        fact("3", 35.0, -90.0, "raid"),
        fact("4", 33.0, -100.0, "detention"),
    ]

    def test_order_independent(self):
        """Every arrival order ends in the same durable index."""
        snapshots = []
        for perm in itertools.permutations(self.FACTS):
            r = make_reconciler()
            r.create_pending(40.0001, -75.0001, "checkpoint", "F1")
            r.reconcile_all(perm)
            snapshots.append(r.durable.snapshot())
            assert len(r.ephemeral) == 0

        assert all(s == snapshots[0] for s in snapshots)
        assert sorted(snapshots[0]) == ["1", "2", "3", "4"]

    def test_duplicate_ids_resolve_the_same_way(self):
        """For repeated ids the latest inserted_at wins in any order."""
        from datetime import datetime, timezone
        older = fact("1", 40.0, -75.0, inserted_at=datetime(2026, 1, 1, tzinfo=timezone.utc))
        newer = fact("1", 41.0, -76.0, inserted_at=datetime(2026, 1, 2, tzinfo=timezone.utc))

        a = make_reconciler()
        a.reconcile_all([older, newer])
        b = make_reconciler()
        b.reconcile_all([newer, older])

        assert a.durable.snapshot() == b.durable.snapshot() == {"1": (41.0, -76.0, "checkpoint")}

    def test_returns_outcome_per_id(self):
        """Each id reports what happened to it."""
        r = make_reconciler()
        r.remove("2")
        outcomes = r.reconcile_all(self.FACTS)
        assert outcomes["2"] == IGNORED_TOMBSTONED
        assert outcomes["1"] == MATERIALIZED


class TestFingerprintCleanup:
    """Fingerprint-scoped cleanup."""

    def test_cleanup_ephemeral_is_isolated(self):
        """Other fingerprints keep their pending markers."""
        r = make_reconciler()
        r.create_pending(40.0, -75.0, "checkpoint", "F1")
        other = r.create_pending(41.0, -76.0, "patrol", "F2")

        assert r.cleanup_ephemeral("F1") == 1

        assert r.ephemeral.entries() == [other]
        assert other.state == MarkerState.PENDING
        assert r.surface.layers() == [other.handle]
        assert r.ephemeral.fingerprints() == ["F2"]

    def test_cleanup_unknown_fingerprint_is_noop(self):
        """An unknown fingerprint removes nothing."""
        r = make_reconciler()
        r.create_pending(40.0, -75.0, "checkpoint", "F1")
        assert r.cleanup_ephemeral("nobody") == 0
        assert len(r.ephemeral) == 1

    def test_cleanup_all_removes_ids_and_document_nodes(self):
        """Listed ids leave the index, the document and the surface."""
        nodes = [fact("5", 40.0, -75.0), fact("6", 41.0, -76.0), fact("7", 42.0, -77.0)]
        r = make_reconciler(nodes)
        r.reconcile_all(r.document.nodes())
        r.create_pending(30.0, -90.0, "raid", "F1")

        removed = r.cleanup_all("F1", [5, "6"])

        assert removed == 3
        assert r.durable.ids() == ["7"]
        assert r.document.ids() == ["7"]
        assert "5" in r.tombstones and "6" in r.tombstones
        assert len(r.ephemeral) == 0
        assert len(r.surface) == 1

    def test_drift_repair_removes_untracked_layer(self):
        """A layer the index lost track of is still removed."""
        r = make_reconciler()
        r.reconcile(fact("9", 40.0, -75.0))
        # index loses the entry while the layer stays on the surface
        r.durable.pop("9")
        assert len(r.surface) == 1

        removed = r.cleanup_all("F1", ["9"])

        assert removed == 1
        assert len(r.surface) == 0


class TestRederive:
    """cleanup_completed -> rebuild from the document."""

    def test_rebuilds_durable_index_and_keeps_pending(self):
        """Only document-backed markers survive; pending ones stay."""
        r = make_reconciler([fact("1", 40.0, -75.0), fact("2", 41.0, -76.0)])
        r.reconcile_all(r.document.nodes())
        r.reconcile(fact("3", 42.0, -77.0))
        pending = r.create_pending(30.0, -90.0, "raid", "F1")

        r.rederive()

        assert r.durable.ids() == ["1", "2"]
        assert r.ephemeral.entries() == [pending]
        assert len(r.surface) == 3

    def test_rederive_respects_tombstones(self):
        """Removed ids are not rebuilt from the document."""
        r = make_reconciler([fact("1", 40.0, -75.0), fact("2", 41.0, -76.0)])
        r.reconcile_all(r.document.nodes())
        r.remove("2")

        r.rederive()

        assert r.durable.ids() == ["1"]

    def test_rederive_keeps_pending_next_to_removed_node(self):
        """Replaying a tombstoned document node does not touch a fresh submission."""
        r = make_reconciler([fact("55", 40.0, -75.0)])
        r.reconcile_all(r.document.nodes())
        r.remove("55")
        pending = r.create_pending(40.0002, -75.0002, "checkpoint", "F1")

        r.rederive()

        assert r.ephemeral.entries() == [pending]
        assert pending.state == MarkerState.PENDING
        assert r.surface.has_layer(pending.handle)
        assert len(r.durable) == 0


class TestMarkerLifecycle:
    """State machine guards."""

    def test_removed_is_terminal(self):
        """Nothing leaves REMOVED."""
        m = Marker(handle=None, lat=0.0, lng=0.0, type=ReportType.OTHER)
        m.advance(MarkerState.REMOVED)
        with pytest.raises(MarkerStateError):
            m.advance(MarkerState.PERMANENT)

    def test_permanent_cannot_go_back_to_pending(self):
        """A confirmed marker is never pending again."""
        m = Marker(handle=None, lat=0.0, lng=0.0, type=ReportType.OTHER)
        m.advance(MarkerState.PERMANENT)
        with pytest.raises(MarkerStateError):
            m.advance(MarkerState.PENDING)
