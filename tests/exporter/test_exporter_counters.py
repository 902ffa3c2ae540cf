import threading
import time

import pytest
import requests
from prometheus_client import REGISTRY

from sidecar.admin.server import AdminServer
from sidecar.exporter import exporter
from sidecar.system.logrotate import LogRotater


def _value(name, labels=None):
    return REGISTRY.get_sample_value(name, labels or {}) or 0.0


def test_record_admin_request_labels():
    before_ok = _value("sidecar_admin_requests_total", {"signal": "kill", "outcome": "ok"})
    before_failed = _value("sidecar_admin_requests_total", {"signal": "kill", "outcome": "failed"})
    exporter.record_admin_request("kill", ok=True)
    exporter.record_admin_request(" KILL ", ok=False)
    assert _value("sidecar_admin_requests_total", {"signal": "kill", "outcome": "ok"}) == before_ok + 1
    assert _value("sidecar_admin_requests_total", {"signal": "kill", "outcome": "failed"}) == before_failed + 1


def test_record_removed_ignores_zero():
    before = _value("sidecar_log_files_removed_total")
    exporter.record_removed(0)
    exporter.record_removed(3)
    assert _value("sidecar_log_files_removed_total") == before + 3


def test_rotation_counters_follow_rotater(fake_fs):
    """Rotação bem-sucedida e falha incrementam contadores distintos."""
    ok_before = _value("sidecar_log_rotations_total")
    err_before = _value("sidecar_log_rotation_errors_total")
    fake_fs.add("/logs/a.log")
    fake_fs.add("/logs/b.log")
    fake_fs.errors[("rename", "/logs/b.log")] = OSError("busy")

    r = LogRotater(lambda: None, fs=fake_fs)
    r.rotate_and_cleanup("/logs/a.log")
    with pytest.raises(OSError):
        r.rotate_and_cleanup("/logs/b.log")

    assert _value("sidecar_log_rotations_total") == ok_before + 1
    assert _value("sidecar_log_rotation_errors_total") == err_before + 1


def test_admin_server_counts_outcomes(fake_proc):
    labels_ok = {"signal": "hangup", "outcome": "ok"}
    labels_failed = {"signal": "quit", "outcome": "failed"}
    ok_before = _value("sidecar_admin_requests_total", labels_ok)
    failed_before = _value("sidecar_admin_requests_total", labels_failed)
    fake_proc.errors["quit"] = RuntimeError("gone")

    admin = AdminServer(fake_proc, ip="127.0.0.1", port=0)
    t = threading.Thread(target=admin.start, daemon=True)
    t.start()
    deadline = time.monotonic() + 5
    while not admin.is_listening() and time.monotonic() < deadline:
        time.sleep(0.01)
    try:
        base = f"http://{admin.addr()}"
        requests.get(base + "/admin/reload", timeout=5)
        requests.get(base + "/admin/quit", timeout=5)
    finally:
        admin.close()
        t.join(timeout=5)

    assert _value("sidecar_admin_requests_total", labels_ok) == ok_before + 1
    assert _value("sidecar_admin_requests_total", labels_failed) == failed_before + 1


def test_start_exporter_only_once(monkeypatch):
    calls = []
    monkeypatch.setattr(exporter, "start_http_server", lambda port, addr: calls.append((port, addr)))
    monkeypatch.setattr(exporter, "_server_started", False)
    monkeypatch.setenv("SIDECAR_EXPORTER_PORT", "9999")
    exporter.start_exporter()
    exporter.start_exporter(port=1234)
    assert calls == [(9999, "127.0.0.1")]


def test_start_exporter_bad_env_port_uses_default(monkeypatch):
    calls = []
    monkeypatch.setattr(exporter, "start_http_server", lambda port, addr: calls.append((port, addr)))
    monkeypatch.setattr(exporter, "_server_started", False)
    monkeypatch.setenv("SIDECAR_EXPORTER_PORT", "notaport")
    exporter.start_exporter(addr="0.0.0.0")
    assert calls == [(9102, "0.0.0.0")]
