"""Pacote admin: superfície HTTP de controlo do processo supervisionado.

Um ``AdminServer`` pode ser construído diretamente ou a partir das
configurações validadas em ``sidecar.config.settings``.
"""

from .server import AdminServer, AdminServerError, RequestedSignal

__all__ = ["AdminServer", "AdminServerError", "RequestedSignal"]
