"""Pacote core: orquestração principal do sidecar.

Contém o runner e o parsing de argumentos.
"""

from .core import run, exit_status

__all__ = ["run", "exit_status"]
