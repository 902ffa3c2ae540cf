"""Sidecar admin para um processo servidor supervisionado.

Expõe uma porta HTTP para recarregar, encerrar ou matar o processo e
rotaciona periodicamente os seus ficheiros de log.
"""

__version__ = "0.1.0"
