"""Core do sidecar: liga configuração, rotação de logs, processo e servidor admin.

Ordem de arranque: regista os ficheiros de log no ``LogRotater`` (uma rotação
imediata por ficheiro), cria o processo supervisionado e o ``AdminServer``,
arranca o processo e bloqueia no servidor admin. O servidor é fechado pelo
callback de saída do processo; o código de saída final ignora término por
sinais pedidos via superfície admin.
"""

import logging
import signal
import threading
from typing import Callable, Optional

from ..admin.server import AdminServer, AdminServerError, RequestedSignal
from ..system.logrotate import LogRotater, RotaterStoppedError
from ..system.process import ManagedProcess, ProcessError, ProcessExitError

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_BAD_INPUT = 2

# sinal pedido via admin -> sinal de término esperado
_EXPECTED_EXIT_SIGNALS = {
    RequestedSignal.KILL: signal.SIGKILL,
    RequestedSignal.QUIT: signal.SIGQUIT,
}


# ========================
# 1. Loop principal do sidecar
# ========================


# Função principal do módulo; executa o processo e bloqueia no servidor admin
def run(
    settings: dict,
    make_process: Callable[..., ManagedProcess] = ManagedProcess,
    make_admin: Callable[..., AdminServer] = AdminServer,
    make_rotater: Callable[..., LogRotater] = LogRotater,
) -> int:
    """Executa o sidecar até o processo supervisionado terminar.

    Parâmetros:
        settings: dicionário já validado por ``validate_settings``.
        make_process/make_admin/make_rotater: fábricas substituíveis em testes.

    Retorna o código de saída do programa.
    """
    holder: dict = {"proc": None, "admin": None, "error": None}
    exited = threading.Event()

    def reopen() -> None:
        proc = holder["proc"]
        if proc is None:
            raise ProcessError("no running process")
        proc.usr1()

    def on_exit(err: Optional[BaseException]) -> None:
        holder["error"] = err
        admin = holder["admin"]
        try:
            if admin is not None:
                admin.close()
        finally:
            exited.set()

    rotater = make_rotater(
        reopen,
        frequency=settings["logrotate_frequency"],
        keep_count=settings["logrotate_keep"],
    )
    try:
        for pathname in settings.get("log_files", []):
            try:
                rotater.register_and_start(pathname)
            except (OSError, RotaterStoppedError) as exc:
                logger.error("não foi possível rotacionar %s: %s", pathname, exc)
                return EXIT_ERROR

        proc = make_process(settings["command"], on_exit=on_exit)
        admin = make_admin(proc, ip=settings["ip"], port=settings["port"])
        holder["admin"] = admin

        try:
            proc.start()
        except ProcessError as exc:
            logger.error("falha ao iniciar o processo: %s", exc)
            return EXIT_ERROR
        holder["proc"] = proc

        try:
            return _serve_until_exit(proc, admin, holder, exited)
        finally:
            _kill_if_running(proc)
    finally:
        rotater.stop_all()


def _serve_until_exit(proc, admin, holder: dict, exited: threading.Event) -> int:
    """Bloqueia no servidor admin e traduz a saída do processo num código."""
    try:
        admin.start()
    except (OSError, AdminServerError) as exc:
        # on_exit pode fechar o servidor antes de ele arrancar
        if not proc.completed():
            logger.error("admin server failed to start: %s", exc)
            return EXIT_ERROR
        logger.debug("admin server não arrancou porque o processo já terminou: %s", exc)

    exited.wait()
    return exit_status(holder["error"], admin.last_requested_signal())


def exit_status(err: Optional[BaseException], last: RequestedSignal) -> int:
    """Código de saída a partir do erro de saída do processo.

    Término por SIGKILL/SIGQUIT é ignorado quando foi pedido via admin.
    """
    if err is None:
        return EXIT_OK
    expected = _EXPECTED_EXIT_SIGNALS.get(last)
    if expected is not None and isinstance(err, ProcessExitError) and err.signal == expected:
        logger.info("processo terminou por %s pedido via admin", expected.name)
        return EXIT_OK
    logger.error("processo terminou com erro: %s", err)
    return EXIT_ERROR


def _kill_if_running(proc) -> None:
    if proc.completed():
        return
    try:
        proc.kill()
    except ProcessError as exc:
        logger.debug("kill final ignorado: %s", exc)
