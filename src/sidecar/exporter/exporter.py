"""
Utilitários para exportação de métricas do sidecar no padrão Prometheus.

Os contadores são registados no registry padrão do ``prometheus_client`` na
importação do módulo; os subsistemas apenas chamam os helpers ``record_*``.
O endpoint de scrape é opcional e corre numa porta separada da porta admin.
"""

import logging
import os

from prometheus_client import Counter, start_http_server

logger = logging.getLogger(__name__)

_server_started = False

ADMIN_REQUESTS = Counter(
    "sidecar_admin_requests",
    "Pedidos recebidos pela superfície admin, por sinal e resultado",
    ["signal", "outcome"],
)
LOG_ROTATIONS = Counter("sidecar_log_rotations", "Ficheiros de log rotacionados")
LOG_ROTATION_ERRORS = Counter("sidecar_log_rotation_errors", "Falhas ao rotacionar ficheiros de log")
LOG_FILES_REMOVED = Counter("sidecar_log_files_removed", "Ficheiros rotacionados removidos pela retenção")
LOG_REOPEN_FAILURES = Counter("sidecar_log_reopen_failures", "Falhas do hook de reabertura de logs")


def _sanitize_label(value: str) -> str:
    """Normaliza valores de label para minúsculas sem espaços."""
    return str(value).strip().lower().replace(" ", "_") or "unknown"


def record_admin_request(signal: str, ok: bool) -> None:
    """Conta um pedido admin atendido (``outcome`` = ok/failed)."""
    try:
        ADMIN_REQUESTS.labels(signal=_sanitize_label(signal), outcome="ok" if ok else "failed").inc()
    except Exception as exc:
        logger.debug("record_admin_request falhou: %s", exc, exc_info=True)


def record_rotation(ok: bool) -> None:
    """Conta uma rotação efetiva ou uma falha de rotação."""
    (LOG_ROTATIONS if ok else LOG_ROTATION_ERRORS).inc()


def record_removed(count: int) -> None:
    if count > 0:
        LOG_FILES_REMOVED.inc(count)


def record_reopen_failure() -> None:
    LOG_REOPEN_FAILURES.inc()


def start_exporter(port: int | None = None, addr: str = "127.0.0.1") -> None:
    """Inicia o servidor HTTP do Prometheus no endereço e porta informados.

    A porta pode vir da variável de ambiente ``SIDECAR_EXPORTER_PORT`` quando
    ``port`` for None. Chamadas repetidas são ignoradas.
    """
    global _server_started
    if _server_started:
        logger.debug("prometheus exporter already started")
        return

    if port is None:
        try:
            port = int(os.getenv("SIDECAR_EXPORTER_PORT", "9102"))
        except (TypeError, ValueError):
            port = 9102

    start_http_server(port, addr)
    _server_started = True
    logger.info("Prometheus exporter iniciado em %s:%d", addr, port)
