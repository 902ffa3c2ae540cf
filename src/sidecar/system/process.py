"""Supervisão do processo externo (ex.: nginx em modo não-daemon).

``ManagedProcess`` arranca o comando como subprocesso, entrega os sinais de
ciclo de vida (kill, quit, hangup, usr1) via ``psutil`` e notifica o resto do
sistema quando o processo termina, através do callback ``on_exit``.
"""

from typing import Callable, List, Optional, Sequence
import logging
import signal
import subprocess
import threading

import psutil

logger = logging.getLogger(__name__)

# Recebe None em saída limpa, ou a exceção que descreve a falha.
OnExitFunc = Callable[[Optional[BaseException]], None]


class ProcessError(RuntimeError):
    """Falha ao controlar o processo supervisionado."""


class ProcessExitError(ProcessError):
    """O processo terminou com código diferente de zero ou por sinal."""

    def __init__(self, returncode: int):
        self.returncode = returncode
        self.signal: Optional[signal.Signals] = None
        if returncode < 0:
            try:
                self.signal = signal.Signals(-returncode)
            except ValueError:
                self.signal = None
        super().__init__(_describe_exit(returncode, self.signal))


def _describe_exit(returncode: int, sig: Optional[signal.Signals]) -> str:
    if sig is not None:
        return f"signal: {sig.name[3:].lower()}"
    if returncode < 0:
        return f"signal: {-returncode}"
    return f"exit status {returncode}"


class ManagedProcess:
    """Processo filho com sinais de ciclo de vida e notificação de saída."""

    def __init__(self, args: Sequence[str], on_exit: Optional[OnExitFunc] = None):
        if not args:
            raise ValueError("comando do processo não pode ser vazio")
        self.args: List[str] = list(args)
        self.on_exit = on_exit
        self._popen: Optional[subprocess.Popen] = None
        self._proc: Optional[psutil.Process] = None
        self._lock = threading.Lock()
        self._done = threading.Event()
        self._waiter: Optional[threading.Thread] = None
        self.returncode: Optional[int] = None

    def start(self) -> None:
        """Arranca o processo e a thread que aguarda a sua saída."""
        with self._lock:
            if self._popen is not None:
                raise ProcessError("process already started")
            try:
                self._popen = subprocess.Popen(self.args)
            except OSError as exc:
                raise ProcessError(f"failed to start {self.args[0]}: {exc}") from exc
            self._proc = psutil.Process(self._popen.pid)
        logger.info("started %s (pid %d)", self.args[0], self._popen.pid)
        self._waiter = threading.Thread(target=self._wait_exit, name="sidecar-proc-wait", daemon=True)
        self._waiter.start()

    def _wait_exit(self) -> None:
        assert self._popen is not None
        code = self._popen.wait()
        self.returncode = code
        err: Optional[BaseException] = ProcessExitError(code) if code != 0 else None
        if err is None:
            logger.info("%s exited normally", self.args[0])
        else:
            logger.warning("%s exited: %s", self.args[0], err)
        self._done.set()
        if self.on_exit is not None:
            try:
                self.on_exit(err)
            except Exception as exc:
                logger.error("on_exit callback failed: %s", exc, exc_info=True)

    # ========================
    # Sinais
    # ========================

    def _send(self, sig: signal.Signals) -> None:
        if self._proc is None:
            raise ProcessError("process not started")
        if self._done.is_set():
            raise ProcessError("process already exited")
        try:
            self._proc.send_signal(sig)
        except psutil.NoSuchProcess as exc:
            raise ProcessError("process already exited") from exc
        except psutil.Error as exc:
            raise ProcessError(f"failed to send {sig.name}: {exc}") from exc
        logger.info("sent %s to pid %d", sig.name, self._proc.pid)

    def kill(self) -> None:
        self._send(signal.SIGKILL)

    def quit(self) -> None:
        """SIGQUIT: encerramento gracioso (nginx)."""
        self._send(signal.SIGQUIT)

    def hangup(self) -> None:
        """SIGHUP: recarrega a configuração."""
        self._send(signal.SIGHUP)

    def usr1(self) -> None:
        """SIGUSR1: reabre ficheiros de log."""
        self._send(signal.SIGUSR1)

    # ========================
    # Estado
    # ========================

    @property
    def pid(self) -> Optional[int]:
        return self._popen.pid if self._popen is not None else None

    def completed(self) -> bool:
        return self._done.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Aguarda a saída do processo; retorna True se terminou dentro do timeout."""
        return self._done.wait(timeout)
