"""Parser de argumentos do sidecar.

Este módulo fornece um parser simples que expõe:
- endereço do servidor admin (--ip / --port)
- política de rotação (--logrotate-frequency / --logrotate-keep)
- ficheiros de log do processo (--log-file, repetível)
- verbosidade (-v) e opções de logging (nível e diretório raiz)
- o comando do processo supervisionado, depois de ``--``

Precedência: CLI > ENV/.env > default. ``build_settings`` devolve o
dicionário já validado consumido por ``sidecar.core.core.run``.
"""

import argparse
import logging
from typing import Sequence

from ..config.settings import load_settings, validate_settings

# ========================
# 0. Configuração do parser e argumentos padrão
# ========================


# Função principal do módulo; cria e retorna o ArgumentParser configurado
def configure_argparser() -> argparse.ArgumentParser:
    """Cria e retorna ArgumentParser configurado para o sidecar."""
    parser = argparse.ArgumentParser(
        prog="process-sidecar",
        usage="%(prog)s [OPTIONS] -- command [args...]",
        description=(
            "Executa o processo em primeiro plano e expõe uma porta admin "
            "(/admin/reload, /admin/quit, /admin/kill) para controlá-lo, "
            "rotacionando os seus ficheiros de log."
        ),
    )

    parser.add_argument("--ip", default=None, help="IP onde o servidor admin escuta (default 127.0.0.1)")
    parser.add_argument("--port", type=int, default=None, help="Porta do servidor admin (default 9000)")
    parser.add_argument(
        "--logrotate-frequency",
        dest="logrotate_frequency",
        default=None,
        help="Frequência da rotação dos logs (ex.: 24h, 30m). Mínimo 1 minuto.",
    )
    parser.add_argument(
        "--logrotate-keep",
        dest="logrotate_keep",
        type=int,
        default=None,
        help="Número de logs antigos mantidos após a rotação. Mínimo 1.",
    )
    parser.add_argument(
        "--log-file",
        dest="log_files",
        action="append",
        default=None,
        help="Ficheiro de log do processo a rotacionar (pode repetir)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Aumenta a verbosidade (-v, -vv)",
    )
    parser.add_argument(
        "--log-root",
        dest="log_root",
        type=str,
        default=None,
        help="Diretório para o debug log do próprio sidecar (substitui SIDECAR_LOG_ROOT)",
    )
    parser.add_argument(
        "--log-level",
        dest="log_level",
        type=str,
        default=None,
        help="Nível de logging (DEBUG/INFO/WARNING/ERROR). Se ausente, definido por -v",
    )
    parser.add_argument(
        "--exporter",
        dest="exporter_enable",
        action="store_true",
        default=None,
        help="Ativa o endpoint Prometheus (porta em SIDECAR_EXPORTER_PORT)",
    )

    return parser


# ========================
# 1. Funções auxiliares para análise e validação de argumentos
# ========================


def split_command(argv: Sequence[str]) -> tuple[list[str], list[str]]:
    """Separa as opções do sidecar do comando do processo no primeiro ``--``."""
    args = list(argv)
    if "--" in args:
        idx = args.index("--")
        return args[:idx], args[idx + 1 :]
    return args, []


# Auxilia sidecar.main; criado para analisar argv
def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Analisa argv e retorna Namespace com ``command`` separado."""
    import sys

    if argv is None:
        argv = sys.argv[1:]
    opts, command = split_command(argv)
    ns = configure_argparser().parse_args(opts)
    ns.command = command
    return ns


# CLI > ENV > default; valores None na CLI não sobrescrevem
_OVERRIDABLE = (
    "ip",
    "port",
    "logrotate_frequency",
    "logrotate_keep",
    "log_files",
    "log_root",
    "exporter_enable",
)


def build_settings(args: argparse.Namespace, env_path=None) -> dict:
    """Combina settings do ambiente com a CLI e valida o resultado.

    Levanta ``ConfigError`` quando algum valor é inválido.
    """
    settings = load_settings(env_path)
    for key in _OVERRIDABLE:
        val = getattr(args, key, None)
        if val is not None:
            settings[key] = val
    command = getattr(args, "command", None)
    if command:
        settings["command"] = list(command)
    if getattr(args, "log_level", None) or getattr(args, "verbose", 0):
        settings["log_level"] = get_log_config(args)["level"]
    validated = validate_settings(settings)
    logging.getLogger(__name__).debug("settings efetivos: %s", validated)
    return validated


# ========================
# 2. Função auxiliar para configuração de logging
# ========================


# Auxilia sidecar.main; criado para extrair configuração de logging dos argumentos
def get_log_config(args: argparse.Namespace) -> dict:
    """Retorna dict com configuração de logging ('level' e 'root')."""
    if getattr(args, "log_level", None):
        level = str(args.log_level).upper()
    else:
        v = getattr(args, "verbose", 0) or 0
        if v >= 2:
            level = "DEBUG"
        elif v == 1:
            level = "INFO"
        else:
            level = "WARNING"

    return {"level": level, "root": getattr(args, "log_root", None)}
