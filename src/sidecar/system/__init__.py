"""Pacote system: filesystem, rotação de logs e supervisão do processo.

Re-exports úteis para os módulos de orquestração.
"""

from .logrotate import LogRotater, RotationError, RotaterStoppedError
from .process import ManagedProcess, ProcessError, ProcessExitError

__all__ = [
    "LogRotater",
    "RotationError",
    "RotaterStoppedError",
    "ManagedProcess",
    "ProcessError",
    "ProcessExitError",
]
