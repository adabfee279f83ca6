"""Tests for the AlertStore.

Runs against the in-memory document store from conftest.
"""

from dataclasses import replace
from datetime import timedelta

import pytest

from alertflow.core.alert import Alert
from alertflow.core.errors import DocumentNotFoundError, StorageError, ValidationError
from alertflow.shell.alert_store import AlertStore


@pytest.fixture
def alert_store(document_store, clock):
    return AlertStore(document_store, clock=clock)


def make_alert(clock, alert_id, severity="medium", created_offset_hours=0, validity_hours=24):
    created = clock.now + timedelta(hours=created_offset_hours)
    return Alert(
        id=alert_id,
        disaster_type="earthquake",
        location=f"Location {alert_id}",
        date="2025-06-04",
        time="14:30:00",
        magnitude="5.0",
        severity=severity,
        created_at=created,
        expires_at=created + timedelta(hours=validity_hours),
        latitude=37.77,
        longitude=-122.41,
    )


class TestStoreBatch:
    """Tests for store_batch()."""

    def test_stores_under_alert_id(self, alert_store, document_store, clock):
        alerts = [make_alert(clock, "a1"), make_alert(clock, "a2")]

        ids = alert_store.store_batch(alerts)

        assert ids == ["a1", "a2"]
        assert set(document_store.collections["alerts"]) == {"a1", "a2"}
        assert alert_store.get_alert("a1") == alerts[0]

    def test_failure_leaves_nothing_written(self, alert_store, document_store, clock):
        document_store.failing.add("add_many")

        with pytest.raises(StorageError):
            alert_store.store_batch([make_alert(clock, "a1")])

        assert document_store.collections.get("alerts", {}) == {}

    def test_get_missing_alert(self, alert_store):
        assert alert_store.get_alert("nope") is None


class TestListActive:
    """Tests for list_active() and list_active_by_severity()."""

    def test_excludes_expired_and_inactive(self, alert_store, clock):
        fresh = make_alert(clock, "fresh")
        expired = make_alert(clock, "expired", created_offset_hours=-30)
        alert_store.store_batch([fresh, expired])

        inactive = make_alert(clock, "inactive")
        alert_store.store_batch([replace(inactive, is_active=False)])

        assert [a.id for a in alert_store.list_active()] == ["fresh"]

    def test_ordered_by_expiry_then_creation_desc(self, alert_store, clock):
        older = make_alert(clock, "older", created_offset_hours=-2)
        newer = make_alert(clock, "newer", created_offset_hours=-1)
        long_lived = make_alert(clock, "long", created_offset_hours=-3, validity_hours=48)
        alert_store.store_batch([older, newer, long_lived])

        assert [a.id for a in alert_store.list_active()] == ["long", "newer", "older"]

    def test_limit(self, alert_store, clock):
        alert_store.store_batch([make_alert(clock, f"a{i}") for i in range(5)])
        assert len(alert_store.list_active(limit=3)) == 3

    def test_by_severity(self, alert_store, clock):
        alert_store.store_batch([
            make_alert(clock, "m", severity="medium"),
            make_alert(clock, "c", severity="critical"),
        ])

        assert [a.id for a in alert_store.list_active_by_severity("critical")] == ["c"]

    def test_unknown_severity_rejected(self, alert_store):
        with pytest.raises(ValidationError):
            alert_store.list_active_by_severity("severe")

    def test_query_failure(self, alert_store, document_store):
        document_store.failing.add("query")

        with pytest.raises(StorageError):
            alert_store.list_active()


class TestMarkNotified:
    """Tests for mark_notified()."""

    def test_sets_flag_and_time(self, alert_store, clock):
        alert_store.store_batch([make_alert(clock, "a1")])

        alert_store.mark_notified("a1", sent=True)

        stored = alert_store.get_alert("a1")
        assert stored.notification_sent is True
        assert stored.notification_sent_at == clock.now

    def test_idempotent(self, alert_store, clock):
        alert_store.store_batch([make_alert(clock, "a1")])

        alert_store.mark_notified("a1")
        alert_store.mark_notified("a1")

        assert alert_store.get_alert("a1").notification_sent is True

    def test_not_sent(self, alert_store, clock):
        alert_store.store_batch([make_alert(clock, "a1")])

        alert_store.mark_notified("a1", sent=False)

        stored = alert_store.get_alert("a1")
        assert stored.notification_sent is False
        assert stored.notification_sent_at is None

    def test_unknown_alert(self, alert_store):
        with pytest.raises(DocumentNotFoundError):
            alert_store.mark_notified("missing")


class TestSweepExpired:
    """Tests for sweep_expired()."""

    def test_deactivates_only_expired(self, alert_store, document_store, clock):
        alert_store.store_batch([
            make_alert(clock, "old1", created_offset_hours=-25),
            make_alert(clock, "old2", created_offset_hours=-48),
            make_alert(clock, "fresh"),
        ])

        assert alert_store.sweep_expired() == 2

        docs = document_store.collections["alerts"]
        assert docs["old1"]["isActive"] is False
        assert docs["old1"]["deactivatedAt"] == clock.now
        assert docs["fresh"]["isActive"] is True

    def test_expiry_boundary_is_swept(self, alert_store, clock):
        """An alert expiring exactly now is expired."""
        alert_store.store_batch([make_alert(clock, "edge", created_offset_hours=-24)])
        assert alert_store.sweep_expired() == 1

    def test_second_sweep_returns_zero(self, alert_store, document_store, clock):
        alert_store.store_batch([make_alert(clock, "old", created_offset_hours=-25)])

        assert alert_store.sweep_expired() == 1
        deactivated_at = document_store.collections["alerts"]["old"]["deactivatedAt"]

        clock.now += timedelta(minutes=5)
        assert alert_store.sweep_expired() == 0
        assert document_store.collections["alerts"]["old"]["isActive"] is False
        assert document_store.collections["alerts"]["old"]["deactivatedAt"] == deactivated_at

    def test_nothing_to_sweep_skips_update(self, alert_store, document_store):
        assert alert_store.sweep_expired() == 0
        assert "update_many" not in document_store.calls

    def test_update_failure(self, alert_store, document_store, clock):
        alert_store.store_batch([make_alert(clock, "old", created_offset_hours=-25)])
        document_store.failing.add("update_many")

        with pytest.raises(StorageError):
            alert_store.sweep_expired()
