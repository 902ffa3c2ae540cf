"""Pacote exporter: contadores Prometheus do sidecar.

Re-exports para ``from sidecar.exporter import start_exporter``.
"""

from .exporter import start_exporter, record_admin_request, record_rotation  # re-export

__all__ = ["start_exporter", "record_admin_request", "record_rotation"]
