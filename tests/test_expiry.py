"""
Tests for expiry.py - Periodic eviction of old reports.
"""

import asyncio
from datetime import datetime, timedelta, timezone

from rmap.adapters.map_surface import InMemoryMapSurface
from rmap.core.models import ReportFact, ReportType
from rmap.domain.document import ReportDocument
from rmap.domain.expiry import ExpirySweeper, expired_ids, sweep
from rmap.domain.reconcile import Reconciler

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)
LIFETIME = timedelta(hours=4)


def node(rid, inserted_at):
    return ReportFact(id=rid, lat=40.0, lng=-75.0, type=ReportType.PATROL, inserted_at=inserted_at)


def make(nodes):
    r = Reconciler(InMemoryMapSurface(), ReportDocument(nodes))
    r.reconcile_all(r.document.nodes())
    return r


class TestSweep:
    """Tests for the expiry sweep."""

    def test_boundary(self):
        """Exactly lifetime old stays; one second more goes."""
        r = make([
            node("old", NOW - LIFETIME - timedelta(seconds=1)),
            node("fresh", NOW - timedelta(hours=3, minutes=59, seconds=59)),
            node("edge", NOW - LIFETIME),
        ])

        assert sweep(r, NOW) == ["old"]
        assert r.durable.ids() == ["edge", "fresh"]
        assert "old" not in r.document
        assert "old" in r.tombstones

    def test_tracked_marker_without_document_node(self):
        """Markers known only to the index expire too."""
        r = make([])
        r.reconcile(node("42", NOW - timedelta(hours=5)))
        assert expired_ids(r, NOW) == ["42"]
        sweep(r, NOW)
        assert len(r.durable) == 0
        assert len(r.surface) == 0

    def test_missing_timestamp_never_expires(self):
        """Reports without inserted_at are never swept."""
        r = make([node("1", None)])
        assert sweep(r, NOW + timedelta(days=30)) == []
        assert r.durable.ids() == ["1"]

    def test_evicted_report_is_not_resurrected(self):
        """An expired id stays blocked."""
        r = make([node("old", NOW - timedelta(hours=5))])
        sweep(r, NOW)
        r.reconcile(node("old", NOW - timedelta(hours=5)))
        assert len(r.durable) == 0


class TestExpirySweeper:
    """Tests for the background sweep task."""

    def test_runs_on_interval(self):
        """The sweeper evicts on its own and stops cleanly."""
        r = make([node("old", NOW - timedelta(hours=5))])
        sweeper = ExpirySweeper(r, interval_s=0.01, clock=lambda: NOW)

        async def scenario():
            sweeper.start()
            assert sweeper.running
            await asyncio.sleep(0.05)
            sweeper.stop()

        asyncio.run(scenario())
        assert len(r.durable) == 0
        assert not sweeper.running
