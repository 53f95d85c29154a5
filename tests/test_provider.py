"""Tests for the reconciler dispatch."""

import pytest
from prometheus_client import REGISTRY

import provider
from models import ConflictError, Kind, Notification
from provider import RECONCILERS, Provider


def _total(kind, status):
    return (
        REGISTRY.get_sample_value(
            "gateway_operator_reconcile_total", {"kind": kind, "status": status}
        )
        or 0.0
    )


class TestProvider:
    """Tests for Provider class."""

    def test_every_kind_has_a_reconciler(self):
        assert set(RECONCILERS) == set(Kind)

    def test_dispatches_by_kind(self, monkeypatch):
        calls = []
        monkeypatch.setitem(
            provider.RECONCILERS, Kind.NAMESPACE, lambda ctx, n: calls.append((ctx, n))
        )
        notification = Notification(Kind.NAMESPACE, None, "ns1")
        before = _total("Namespace", "success")

        Provider("ctx").reconcile(notification)

        assert calls == [("ctx", notification)]
        assert _total("Namespace", "success") == before + 1

    def test_errors_propagate(self, monkeypatch):
        def reconcile(ctx, notification):
            raise ConflictError("changed")

        monkeypatch.setitem(provider.RECONCILERS, Kind.DEPLOYMENT, reconcile)
        before = _total("Deployment", "conflict")

        with pytest.raises(ConflictError):
            Provider("ctx").reconcile(Notification(Kind.DEPLOYMENT, "ns1", "d1"))

        assert _total("Deployment", "conflict") == before + 1
