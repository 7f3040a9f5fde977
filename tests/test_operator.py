import logging

import kopf
import pytest

from datacenter_operator import operator
from datacenter_operator.config import settings
from datacenter_operator.errors import ConflictError, TransportError
from datacenter_operator.models import Scheme


@pytest.fixture
def wired(monkeypatch, store, recorder):
    monkeypatch.setattr(operator, "_store", store)
    monkeypatch.setattr(operator, "_recorder", recorder)
    return store, recorder


def _reconcile(body):
    meta = body["metadata"]
    return operator.reconcile_datacenter(
        name=meta["name"], namespace=meta["namespace"], body=body,
        logger=logging.getLogger("test-operator"),
    )


def test_reconcile_assembles_context(wired, make_dc):
    store, recorder = wired
    body = make_dc(auth={"insecure": {}})
    store.add(body)

    result = _reconcile(body)

    assert result["managementApiProtocol"] == "http"
    assert result["lastRollingRestart"]
    assert len(store.patch_calls) == 1
    assert [e[:2] for e in recorder.events] == [("Normal", "ContextReady")]


def test_deleted_datacenter_is_ignored(wired, make_dc):
    store, recorder = wired

    assert _reconcile(make_dc()) is None
    assert recorder.events == []


@pytest.mark.parametrize("error", [
    TransportError("get", "connection refused"),
    ConflictError("get", "modified"),
])
def test_retryable_errors_become_temporary(wired, make_dc, error):
    store, recorder = wired
    store.add(make_dc())
    store.get_error = error

    with pytest.raises(kopf.TemporaryError) as excinfo:
        _reconcile(make_dc())

    assert excinfo.value.delay == settings.RETRY_DELAY
    assert recorder.events[0][:2] == ("Warning", "ReconcileFailed")


def test_configuration_errors_are_permanent(wired, make_dc):
    store, recorder = wired
    body = make_dc(auth={"insecure": {}, "manual": {"clientSecretName": "mgmt-tls"}})
    store.add(body)

    with pytest.raises(kopf.PermanentError):
        _reconcile(body)

    assert recorder.events[0][:2] == ("Warning", "ReconcileFailed")


def test_unregistered_kind_is_permanent(wired, make_dc, monkeypatch):
    store, recorder = wired
    store.add(make_dc())
    monkeypatch.setattr(operator, "SCHEME", Scheme())

    with pytest.raises(kopf.PermanentError, match="scheme lookup"):
        _reconcile(make_dc())

    assert recorder.events[0][:2] == ("Warning", "ReconcileFailed")


def test_missing_tls_secret_is_permanent(wired, make_dc):
    store, _ = wired
    body = make_dc(auth={"manual": {"clientSecretName": "absent"}})
    store.add(body)

    with pytest.raises(kopf.PermanentError, match="absent"):
        _reconcile(body)


def test_configure_applies_settings(monkeypatch):
    started = []
    monkeypatch.setattr(operator, "start_http_server", started.append)
    kopf_settings = kopf.OperatorSettings()

    operator.configure(settings=kopf_settings)

    assert kopf_settings.posting.enabled is True
    assert kopf_settings.execution.max_workers == settings.MAX_WORKERS
    assert started == ([settings.METRICS_PORT] if settings.METRICS_PORT else [])
