# conftest.py
# Configuração global para pytest: adiciona 'src' ao sys.path e define fakes
# partilhados (filesystem em memória e processo supervisionado simulado).
import os
import stat as _stat
import sys
from pathlib import Path
from types import SimpleNamespace

import pytest

SRC_PATH = Path(__file__).parent / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))


class FakeFileSystem:
    """Filesystem em memória com injeção de erros por operação/caminho."""

    def __init__(self):
        self.files = {}  # caminho -> tamanho
        self.dirs = {}  # diretório -> nomes extra que são diretórios
        self.errors = {}  # (operação, caminho) -> exceção
        self.calls = []

    def add(self, path, size=1):
        self.files[path] = size

    def _maybe_fail(self, op, path):
        self.calls.append((op, path))
        exc = self.errors.get((op, path))
        if exc is not None:
            raise exc

    def stat(self, path):
        self._maybe_fail("stat", path)
        if path not in self.files:
            raise FileNotFoundError(2, "No such file or directory", path)
        size = self.files[path]
        return os.stat_result((_stat.S_IFREG | 0o644, 0, 0, 1, 0, 0, size, 0, 0, 0))

    def rename(self, src, dst):
        self._maybe_fail("rename", src)
        self.files[dst] = self.files.pop(src)

    def create(self, path, mode=0o666):
        self._maybe_fail("create", path)
        self.files.setdefault(path, 0)

    def filter_dir(self, dirname, predicate):
        self._maybe_fail("filter_dir", dirname)
        entries = [
            SimpleNamespace(name=os.path.basename(p), is_file=lambda: True)
            for p in self.files
            if os.path.dirname(p) == dirname
        ]
        entries += [SimpleNamespace(name=n, is_file=lambda: False) for n in self.dirs.get(dirname, [])]
        return [e.name for e in entries if predicate(e)]

    def remove(self, path):
        self._maybe_fail("remove", path)
        if path not in self.files:
            raise FileNotFoundError(2, "No such file or directory", path)
        del self.files[path]


class FakeProc:
    """Supervisor simulado: conta chamadas e levanta o erro configurado."""

    def __init__(self, errors=None):
        self.errors = errors or {}
        self.calls = []

    def _call(self, name):
        self.calls.append(name)
        err = self.errors.get(name)
        if err is not None:
            raise err

    def kill(self):
        self._call("kill")

    def quit(self):
        self._call("quit")

    def hangup(self):
        self._call("hangup")

    def usr1(self):
        self._call("usr1")


@pytest.fixture
def fake_fs():
    return FakeFileSystem()


@pytest.fixture
def fake_proc():
    return FakeProc()
