"""Servidor HTTP admin que controla o processo supervisionado.

Responde apenas a três caminhos, todos via GET:

- ``/admin/kill``   -> ``kill()``   (término imediato)
- ``/admin/quit``   -> ``quit()``   (encerramento gracioso)
- ``/admin/reload`` -> ``hangup()`` (recarga de configuração)

Qualquer outro caminho ou método responde ``404 NOT FOUND``. O servidor
termina quando ``close()`` é chamado, tipicamente pelo callback de saída do
processo supervisionado.
"""

from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Optional, Protocol
import enum
import logging
import socket
import threading

from ..exporter import exporter

logger = logging.getLogger(__name__)

DEFAULT_LISTEN_IP = "127.0.0.1"
DEFAULT_LISTEN_PORT = 9000
# timeout (s) de leitura/escrita de cada ligação admin
REQUEST_TIMEOUT_SEC = 10


class RequestedSignal(enum.Enum):
    NONE = "none"
    KILL = "kill"
    QUIT = "quit"
    HANGUP = "hangup"


class ManagedProc(Protocol):
    """Operações do supervisor de processo consumidas pelo servidor admin."""

    def kill(self) -> None: ...

    def quit(self) -> None: ...

    def hangup(self) -> None: ...


class AdminServerError(RuntimeError):
    """Uso inválido do ciclo de vida do servidor admin."""


# caminho -> (sinal registado, nome do método no supervisor)
ROUTES = {
    "/admin/kill": (RequestedSignal.KILL, "kill"),
    "/admin/quit": (RequestedSignal.QUIT, "quit"),
    "/admin/reload": (RequestedSignal.HANGUP, "hangup"),
}


class AdminHandler(BaseHTTPRequestHandler):
    """Handler HTTP da superfície admin."""

    server: "_AdminHTTPServer"
    timeout = REQUEST_TIMEOUT_SEC

    def do_GET(self):
        """Despacha GETs para a rota exata; caminhos desconhecidos recebem 404."""
        route = ROUTES.get(self.path)
        if route is None:
            self._not_found()
            return
        requested, op_name = route
        self.server.admin._dispatch(self, requested, op_name)

    def _not_found(self):
        self._reply(404, "NOT FOUND\n")

    do_HEAD = _not_found
    do_POST = _not_found
    do_PUT = _not_found
    do_DELETE = _not_found
    do_PATCH = _not_found
    do_OPTIONS = _not_found

    def __getattr__(self, name):
        # verbos sem do_* explícito (ex.: FOO) dependem deste hook para
        # responder 404 em vez do 501 do http.server
        if name.startswith("do_"):
            return self._not_found
        raise AttributeError(name)

    def _reply(self, status: int, body: str) -> None:
        payload = body.encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "text/plain")
        self.send_header("Content-Length", str(len(payload)))
        self.end_headers()
        if self.command != "HEAD":
            self.wfile.write(payload)

    def log_message(self, format, *args):
        """Encaminha o access log do http.server para o logger em DEBUG."""
        logger.debug("%s - %s", self.address_string(), format % args)


class _AdminHTTPServer(ThreadingHTTPServer):
    """ThreadingHTTPServer que carrega a referência ao ``AdminServer``."""

    daemon_threads = True

    def __init__(self, server_address, RequestHandlerClass, admin: "AdminServer"):
        if ":" in server_address[0]:
            self.address_family = socket.AF_INET6
        super().__init__(server_address, RequestHandlerClass)
        self.admin = admin

    def handle_error(self, request, client_address):
        """Envia erros de handler (ex.: BrokenPipeError) para o logging em vez do stderr."""
        logger.debug("erro ao tratar pedido de %s", client_address, exc_info=True)


class AdminServer:
    """Servidor HTTP que envolve um processo supervisionado.

    Estados: NotStarted -> Listening -> Closed (terminal). ``start()`` e
    ``close()`` partilham um lock que cobre apenas o bind e o teardown do
    listener; o lock é libertado antes do ``serve_forever`` bloqueante.
    """

    def __init__(self, managed_proc: ManagedProc, ip: str = DEFAULT_LISTEN_IP, port: int = DEFAULT_LISTEN_PORT):
        self.managed_proc = managed_proc
        self.host_port = (ip, int(port))
        self._last_requested_signal = RequestedSignal.NONE
        self._server: Optional[_AdminHTTPServer] = None
        self._closed = False
        self._close_lock = threading.Lock()

    def start(self) -> None:
        """Faz o bind do endereço e serve pedidos até ``close()``; bloqueante."""
        with self._close_lock:
            if self._closed:
                raise AdminServerError("already closed")
            if self._server is not None:
                raise AdminServerError("already listening")
            # bind acontece no construtor; OSError (ex.: porta em uso) propaga
            server = _AdminHTTPServer(self.host_port, AdminHandler, self)
            self._server = server

        logger.info("admin server listening on %s", self.addr())
        try:
            server.serve_forever(poll_interval=0.1)
        finally:
            server.server_close()

    def close(self) -> None:
        """Para o listener. Idempotente; depois disto ``start()`` falha."""
        with self._close_lock:
            self._closed = True
            server = self._server
            if server is None:
                return
            self._server = None
            server.shutdown()
            server.server_close()
        logger.info("admin server closed")

    def is_listening(self) -> bool:
        return self._server is not None

    def addr(self) -> str:
        """``host:port`` efetivo do listener, ou string vazia se não estiver a escutar."""
        server = self._server
        if server is None:
            return ""
        host, port = server.server_address[:2]
        if ":" in host:
            return f"[{host}]:{port}"
        return f"{host}:{port}"

    def last_requested_signal(self) -> RequestedSignal:
        return self._last_requested_signal

    def _dispatch(self, handler: AdminHandler, requested: RequestedSignal, op_name: str) -> None:
        # registado antes de tentar a operação: reflete a intenção mesmo em falha
        self._last_requested_signal = requested
        try:
            getattr(self.managed_proc, op_name)()
        except Exception as exc:
            logger.error("admin %s failed: %s", requested.value, exc)
            exporter.record_admin_request(requested.value, ok=False)
            handler._reply(500, f"FAILED: {exc}\n")
            return
        exporter.record_admin_request(requested.value, ok=True)
        handler._reply(200, "OK\n")
