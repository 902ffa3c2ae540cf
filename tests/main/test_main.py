import json
import logging

import pytest

import sidecar.main as main_mod
from sidecar.config.settings import ENV_KEYS


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("SIDECAR_ENV_FILE", str(tmp_path / "none.env"))


@pytest.fixture
def restore_logging(monkeypatch):
    """Isola handlers do logger root e o excepthook entre testes."""
    root = logging.getLogger()
    saved = list(root.handlers)
    monkeypatch.setattr(main_mod.sys, "excepthook", main_mod.sys.excepthook)
    yield root
    for h in list(root.handlers):
        if h not in saved:
            root.removeHandler(h)
            h.close()


def test_main_passes_validated_settings(monkeypatch):
    got = {}

    def fake_run(settings):
        got.update(settings)
        return 0

    monkeypatch.setattr(main_mod, "_run", fake_run)
    code = main_mod.main(["--port", "9001", "--log-file", "/l/a.log", "--", "nginx", "-g", "daemon off;"])
    assert code == 0
    assert got["port"] == 9001
    assert got["log_files"] == ["/l/a.log"]
    assert got["command"] == ["nginx", "-g", "daemon off;"]


def test_main_bad_config_returns_2(monkeypatch, capsys):
    """Configuração inválida não arranca nada e sai com código 2."""
    monkeypatch.setattr(main_mod, "_run", lambda s: pytest.fail("não devia correr"))
    code = main_mod.main(["--logrotate-keep", "0", "--", "nginx"])
    assert code == 2
    assert "keep count must be at least 1" in capsys.readouterr().err


def test_main_missing_command_returns_2(monkeypatch, capsys):
    monkeypatch.setattr(main_mod, "_run", lambda s: pytest.fail("não devia correr"))
    assert main_mod.main([]) == 2


def test_main_propagates_run_exit_code(monkeypatch):
    monkeypatch.setattr(main_mod, "_run", lambda s: 1)
    assert main_mod.main(["--", "nginx"]) == 1


def test_main_keyboard_interrupt_returns_130(monkeypatch):
    def interrupted(settings):
        raise KeyboardInterrupt

    monkeypatch.setattr(main_mod, "_run", interrupted)
    assert main_mod.main(["--", "nginx"]) == 130


def test_main_starts_exporter_when_enabled(monkeypatch):
    from sidecar.exporter import exporter

    calls = []
    monkeypatch.setattr(exporter, "start_exporter", lambda port, addr: calls.append((port, addr)))
    monkeypatch.setattr(main_mod, "_run", lambda s: 0)
    monkeypatch.setenv("SIDECAR_EXPORTER_PORT", "9300")
    assert main_mod.main(["--exporter", "--", "nginx"]) == 0
    assert calls == [(9300, "127.0.0.1")]


def test_main_log_root_installs_handlers(monkeypatch, tmp_path, restore_logging):
    monkeypatch.setattr(main_mod, "_run", lambda s: 0)
    assert main_mod.main(["--log-root", str(tmp_path), "-v", "--", "nginx"]) == 0
    debug_path = main_mod.get_debug_file_path(tmp_path)
    bases = {getattr(h, "baseFilename", None) for h in restore_logging.handlers}
    assert str(debug_path) in bases
    assert str(debug_path.with_suffix(".jsonl")) in bases
    assert main_mod.sys.excepthook.__name__ == "_exc_hook"


def test_setup_debug_file_handler_is_idempotent(tmp_path, restore_logging):
    main_mod._setup_debug_file_handler(tmp_path)
    count = len(restore_logging.handlers)
    main_mod._setup_debug_file_handler(tmp_path)
    assert len(restore_logging.handlers) == count


def test_json_formatter_includes_exception():
    fmt = main_mod._JSONFormatter()
    try:
        raise ValueError("boom")
    except ValueError:
        import sys

        record = logging.LogRecord("sidecar", logging.ERROR, __file__, 1, "falhou %s", ("x",), sys.exc_info())
    obj = json.loads(fmt.format(record))
    assert obj["msg"] == "falhou x"
    assert obj["level"] == "ERROR"
    assert "ValueError: boom" in obj["exc"]
