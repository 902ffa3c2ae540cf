"""Ponto de entrada do sidecar admin.

Este módulo realiza a inicialização da aplicação: parsing de argumentos CLI,
validação das configurações, configuração de logging, exporter opcional e
arranque do runner. A lógica de runtime fica em `core` para facilitar testes
e reutilização.
"""

import json as _json
import logging as _logging
import sys
from datetime import date
from pathlib import Path

from .config.settings import ConfigError
from .core.args import parse_args, build_settings
from .core.core import run, EXIT_BAD_INPUT

_run = run

DEBUG_LOG_BASENAME = "sidecar-debug"


def main(argv: list[str] | None = None) -> int:
    """Inicializa a aplicação e executa o processo supervisionado.

    Args:
        argv: Lista de argumentos (usada em testes). Quando ``None`` a função
            utiliza os argumentos de linha de comando do processo.

    Returns:
        Código de saída do programa.

    """
    args = parse_args(argv)
    try:
        settings = build_settings(args)
    except ConfigError as exc:
        print(f"process-sidecar: {exc}", file=sys.stderr)
        return EXIT_BAD_INPUT

    level = getattr(_logging, settings.get("log_level", "INFO"), _logging.INFO)
    _logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    if settings.get("log_root"):
        try:
            _setup_debug_file_handler(Path(settings["log_root"]))
        except OSError as exc:
            _logging.getLogger(__name__).warning("falha ao configurar debug file handler: %s", exc)

    if settings.get("exporter_enable"):
        from .exporter.exporter import start_exporter

        try:
            start_exporter(port=settings["exporter_port"], addr=settings["exporter_addr"])
        except OSError as exc:
            _logging.getLogger(__name__).warning("falha ao iniciar exporter Prometheus: %s", exc)

    try:
        return _run(settings)
    except KeyboardInterrupt:
        _logging.getLogger(__name__).info("Recebido KeyboardInterrupt, saindo...")
        return 130


def get_debug_file_path(root: Path) -> Path:
    """Retorna o caminho do debug log diário do sidecar dentro de ``root``."""
    return root / f"{DEBUG_LOG_BASENAME}-{date.today().isoformat()}.log"


def _setup_debug_file_handler(root: Path) -> None:
    """Instala handlers de ficheiro para debug e hook global de exceções.

    Adiciona ao logger root um handler legível por humanos (texto) e um
    JSONL (uma linha de JSON por evento). Evita duplicar handlers quando já
    existem handlers de ficheiro com os mesmos caminhos. Também instala um
    ``sys.excepthook`` que envia exceções não tratadas para o logger root.
    """
    root.mkdir(parents=True, exist_ok=True)
    debug_path = get_debug_file_path(root)

    fh = _logging.FileHandler(str(debug_path), encoding="utf-8")
    fh.setLevel(_logging.DEBUG)
    fh.setFormatter(_logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))

    jfh = _logging.FileHandler(str(debug_path.with_suffix(".jsonl")), encoding="utf-8")
    jfh.setLevel(_logging.DEBUG)
    jfh.setFormatter(_JSONFormatter())

    root_logger = _logging.getLogger()
    if _has_existing_file_handler(root_logger, fh, jfh):
        fh.close()
        jfh.close()
    else:
        root_logger.addHandler(fh)
        root_logger.addHandler(jfh)

    def _exc_hook(exc_type, exc_value, exc_tb):
        try:
            root_logger.error("Unhandled exception", exc_info=(exc_type, exc_value, exc_tb))
        except Exception:
            sys.__excepthook__(exc_type, exc_value, exc_tb)

    sys.excepthook = _exc_hook


class _JSONFormatter(_logging.Formatter):
    def format(self, record):
        obj = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "name": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            obj["exc"] = self.formatException(record.exc_info)
        return _json.dumps(obj, ensure_ascii=False)


def _has_existing_file_handler(root, fh, jfh) -> bool:
    bases = (getattr(fh, "baseFilename", None), getattr(jfh, "baseFilename", None))
    for h in root.handlers:
        if isinstance(h, _logging.FileHandler) and getattr(h, "baseFilename", None) in bases:
            return True
    return False


if __name__ == "__main__":
    sys.exit(main())
