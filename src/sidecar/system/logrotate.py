"""Subsistema de rotação de logs do processo supervisionado.

``LogRotater`` rotaciona um ou mais ficheiros de log (por caminho) numa
grade de relógio fixa: renomeia o ficheiro atual para
``<stem>.<yyyyMMdd-HHmmss><ext>``, recria um ficheiro vazio no caminho
original, remove rotações antigas além de ``keep_count`` e chama o hook de
reabertura uma vez por tick para que o processo passe a escrever no novo
ficheiro.
"""

from typing import Callable, List, Optional
import logging
import os
import threading

from ..exporter import exporter
from .filesystem import FileSystem, OSFileSystem, DirEntry, LOG_FILE_MODE
from .time_helpers import delay_for_next, format_rotated_suffix, parse_rotated_suffix

logger = logging.getLogger(__name__)

# Invocado após cada tick de rotação; tipicamente reabre os logs do processo.
ReopenLogsFunc = Callable[[], None]

DEFAULT_FREQUENCY_SEC = 24 * 3600
DEFAULT_KEEP_COUNT = 10


class RotationError(OSError):
    """Falha ao rotacionar ``pathname``.

    ``rotated`` indica se o ficheiro antigo já tinha sido movido quando a
    falha ocorreu (ex.: recriação do ficheiro vazio falhou).
    """

    def __init__(self, pathname: str, message: str, rotated: bool = False):
        super().__init__(f"{pathname}: {message}")
        self.pathname = pathname
        self.rotated = rotated


class RotaterStoppedError(RuntimeError):
    """Registo de caminho após ``stop_all``."""


def rotated_name(pathname: str, suffix: Optional[str] = None) -> str:
    """Nome do ficheiro rotacionado: remove a extensão, acrescenta o timestamp UTC e repõe a extensão."""
    stem, ext = os.path.splitext(pathname)
    if suffix is None:
        suffix = format_rotated_suffix()
    return f"{stem}.{suffix}{ext}"


class LogRotater:
    """Rotaciona ficheiros de log registados numa frequência configurada.

    A validação dos limites (frequência >= 1 minuto, keep >= 1) é feita na
    configuração, antes do arranque; o construtor aceita qualquer valor
    positivo para facilitar testes com ticks curtos.
    """

    def __init__(
        self,
        reopen_logs: ReopenLogsFunc,
        frequency: float = DEFAULT_FREQUENCY_SEC,
        keep_count: int = DEFAULT_KEEP_COUNT,
        fs: Optional[FileSystem] = None,
    ):
        if frequency <= 0:
            raise ValueError("frequency deve ser > 0")
        if keep_count < 1:
            raise ValueError("keep_count deve ser >= 1")
        self.frequency = float(frequency)
        self.keep_count = int(keep_count)
        self.reopen_logs = reopen_logs
        self.fs: FileSystem = fs if fs is not None else OSFileSystem()

        self._paths: List[str] = []
        self._paths_lock = threading.Lock()
        self._start_lock = threading.Lock()
        self._loop_started = False
        self._thread: Optional[threading.Thread] = None
        self._quit = threading.Event()
        self._stopped = False

    # ========================
    # 1. API pública
    # ========================

    def register_and_start(self, pathname: str) -> None:
        """Rotaciona ``pathname`` já, regista-o e garante o loop em background.

        Um ficheiro ainda inexistente não é erro. Levanta ``RotationError``
        quando a rotação imediata falha e ``RotaterStoppedError`` quando o
        rotater já foi parado.
        """
        if self._stopped or self._quit.is_set():
            raise RotaterStoppedError("cannot restart stopped LogRotater")

        logger.info("adding %s to log rotation", pathname)

        self.rotate_and_cleanup(pathname)
        self._add_path(pathname)
        self._ensure_loop()

    def stop_all(self) -> None:
        """Pede o fim do loop; nunca bloqueia, mesmo sem loop iniciado."""
        self._quit.set()

    def is_stopped(self) -> bool:
        return self._stopped

    def pathnames(self) -> List[str]:
        """Cópia dos caminhos registados, na ordem de inserção."""
        with self._paths_lock:
            return list(self._paths)

    # ========================
    # 2. Loop em background
    # ========================

    def _add_path(self, pathname: str) -> None:
        with self._paths_lock:
            self._paths.append(pathname)

    def _ensure_loop(self) -> None:
        with self._start_lock:
            if self._loop_started:
                return
            self._loop_started = True
            self._thread = threading.Thread(target=self._rotate_loop, name="sidecar-logrotate", daemon=True)
            self._thread.start()

    def _rotate_loop(self) -> None:
        try:
            while not self._quit.wait(timeout=delay_for_next(self.frequency)):
                self._tick()
        finally:
            self._stopped = True
            logger.debug("log rotation loop stopped")

    def _tick(self) -> None:
        """Um passo do loop: rotaciona todos os caminhos e chama o hook uma vez."""
        # snapshot fora do I/O para não bloquear registos concorrentes
        for pathname in self.pathnames():
            try:
                self.rotate_and_cleanup(pathname)
            except OSError:
                # já registado em rotate_and_cleanup; segue para o próximo
                continue
            except Exception as exc:
                logger.error("erro inesperado ao rotacionar %s: %s", pathname, exc, exc_info=True)
        try:
            self.reopen_logs()
        except Exception as exc:
            exporter.record_reopen_failure()
            logger.error("failed to reopen logs: %s", exc)

    # ========================
    # 3. Rotação e limpeza
    # ========================

    def rotate_and_cleanup(self, pathname: str) -> bool:
        """Chama ``rotate`` e depois ``cleanup``; só propaga falhas de ``rotate``."""
        try:
            rotated = self.rotate(pathname)
        except RotationError as exc:
            exporter.record_rotation(ok=False)
            logger.error("error rotating %s: %s", pathname, exc)
            raise

        if rotated:
            exporter.record_rotation(ok=True)
            try:
                removed = self.cleanup(pathname)
                exporter.record_removed(len(removed))
            except OSError as exc:
                logger.error("error cleaning up %s: %s", pathname, exc)
        return rotated

    def rotate(self, pathname: str) -> bool:
        """Move ``pathname`` para o nome rotacionado e recria um ficheiro vazio.

        Retorna False (sem erro) quando o ficheiro não existe ou está vazio.
        """
        try:
            st = self.fs.stat(pathname)
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise RotationError(pathname, f"stat failed: {exc}") from exc

        if st.st_size == 0:
            return False

        new_pathname = rotated_name(pathname)
        try:
            self.fs.rename(pathname, new_pathname)
        except OSError as exc:
            raise RotationError(pathname, f"rename failed: {exc}") from exc

        try:
            self.fs.create(pathname, LOG_FILE_MODE)
        except OSError as exc:
            raise RotationError(pathname, f"recreate failed: {exc}", rotated=True) from exc

        logger.info("rotated %s to %s", pathname, new_pathname)
        return True

    def cleanup(self, pathname: str) -> List[str]:
        """Remove rotações de ``pathname`` além das ``keep_count`` mais recentes.

        Tenta remover todos os excedentes e, no fim, levanta o primeiro erro
        encontrado. Retorna os caminhos removidos com sucesso.

        Para um caminho sem extensão (``/var/log/app``) as rotações têm a
        forma ``app.<timestamp>``; o sufixo é comparado diretamente em vez de
        passar por ``splitext``, que o trataria como extensão.
        """
        stem, ext = os.path.splitext(pathname)
        prefix = os.path.basename(stem) + "."
        dirname = os.path.dirname(stem)

        def _matches(entry: DirEntry) -> bool:
            if not entry.is_file():
                return False
            if not ext:
                if not entry.name.startswith(prefix):
                    return False
                return parse_rotated_suffix(entry.name[len(prefix) :]) is not None
            this_stem, this_ext = os.path.splitext(entry.name)
            if this_ext != ext or not this_stem.startswith(prefix):
                return False
            return parse_rotated_suffix(this_stem[len(prefix) :]) is not None

        files = self.fs.filter_dir(dirname, _matches)
        if len(files) <= self.keep_count:
            return []

        files.sort(reverse=True)

        removed: List[str] = []
        first_error: Optional[OSError] = None
        for extra in files[self.keep_count :]:
            target = os.path.join(dirname, extra)
            try:
                self.fs.remove(target)
                removed.append(target)
                logger.debug("removed old log %s", target)
            except OSError as exc:
                logger.warning("falha ao remover %s: %s", target, exc)
                if first_error is None:
                    first_error = exc

        if first_error is not None:
            raise first_error
        return removed
