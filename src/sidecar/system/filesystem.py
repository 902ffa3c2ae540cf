# vulture: ignore
"""Capacidade mínima de filesystem usada pela rotação de logs.

A rotação depende apenas de ``stat``, ``rename``, ``create``, ``filter_dir``
e ``remove``. Isolar estas operações permite testar o algoritmo com um
filesystem falso, sem tocar no disco.
"""

from pathlib import Path
from typing import Callable, List, Protocol
import logging
import os

logger = logging.getLogger(__name__)

# modo usado ao recriar o ficheiro de log (sujeito a umask)
LOG_FILE_MODE = 0o666


class DirEntry(Protocol):
    """Entrada de diretório vista pelo filtro de ``filter_dir``."""

    name: str

    def is_file(self) -> bool: ...


DirEntryFilter = Callable[[DirEntry], bool]


class FileSystem(Protocol):
    """Interface estreita consumida por ``LogRotater``."""

    def stat(self, path: str) -> os.stat_result: ...

    def rename(self, src: str, dst: str) -> None: ...

    def create(self, path: str, mode: int = LOG_FILE_MODE) -> None: ...

    def filter_dir(self, dirname: str, predicate: DirEntryFilter) -> List[str]: ...

    def remove(self, path: str) -> None: ...


class OSFileSystem:
    """Implementação real sobre o módulo ``os``."""

    def stat(self, path: str) -> os.stat_result:
        return os.stat(path)

    def rename(self, src: str, dst: str) -> None:
        os.rename(src, dst)

    def create(self, path: str, mode: int = LOG_FILE_MODE) -> None:
        """Cria (ou reabre) ``path`` em modo append, sem truncar conteúdo existente."""
        fd = os.open(path, os.O_CREAT | os.O_WRONLY | os.O_APPEND, mode)
        os.close(fd)

    def filter_dir(self, dirname: str, predicate: DirEntryFilter) -> List[str]:
        """Lista os nomes das entradas de ``dirname`` aceites por ``predicate``."""
        names: List[str] = []
        with os.scandir(dirname or ".") as it:
            for entry in it:
                try:
                    if predicate(entry):
                        names.append(entry.name)
                except OSError as exc:
                    # entrada removida entre o scandir e o is_file
                    logger.debug("filter_dir: ignorando %s: %s", entry.path, exc)
        return names

    def remove(self, path: str) -> None:
        Path(path).unlink()
