"""Configurações do sidecar admin.

Este módulo centraliza o endereço do servidor admin, a política de rotação de
logs e as opções de logging/exporter. Carrega valores a partir de
``DEFAULT_SETTINGS`` e permite overrides via arquivo ``.env`` ou variáveis de
ambiente (prefixo ``SIDECAR_*``). As funções públicas principais são:

- ``load_settings()`` -> dicionário com as configurações efetivas (não validadas).
- ``validate_settings()`` -> normaliza tipos e aplica os limites mínimos.

A validação acontece antes do arranque; um valor inválido impede o sidecar
de correr (``ConfigError``).
"""

import ipaddress
import os
import shlex
from pathlib import Path

from ..system.time_helpers import parse_duration

# ========================
# Constantes e padrões globais
# ========================

MIN_LOGROTATE_FREQUENCY_SEC = 60
MIN_LOGROTATE_KEEP = 1

DEFAULT_SETTINGS = {
    "ip": "127.0.0.1",
    "port": 9000,
    "logrotate_frequency": 24 * 3600,
    "logrotate_keep": 10,
    "log_files": [],
    "command": [],
    "log_level": "INFO",
    "log_root": None,
    "exporter_enable": False,
    "exporter_port": 9102,
    "exporter_addr": "127.0.0.1",
}

# chave de ambiente -> chave de settings
ENV_KEYS = {
    "SIDECAR_ADMIN_IP": "ip",
    "SIDECAR_ADMIN_PORT": "port",
    "SIDECAR_LOGROTATE_FREQUENCY": "logrotate_frequency",
    "SIDECAR_LOGROTATE_KEEP": "logrotate_keep",
    "SIDECAR_LOG_FILES": "log_files",
    "SIDECAR_LOG_LEVEL": "log_level",
    "SIDECAR_LOG_ROOT": "log_root",
    "SIDECAR_EXPORTER_ENABLE": "exporter_enable",
    "SIDECAR_EXPORTER_PORT": "exporter_port",
    "SIDECAR_EXPORTER_ADDR": "exporter_addr",
    "SIDECAR_COMMAND": "command",
}

_TRUTHY = ("1", "true", "yes", "on")


class ConfigError(ValueError):
    """Configuração inválida detetada antes do arranque."""


# ========================
# 1. Carregamento das configurações
# ========================


# Função principal do módulo; carrega todas as configurações do ambiente
def load_settings(env_path: Path | str | None = None) -> dict:
    """Carrega configurações combinando DEFAULTS + .env + ambiente.

    As variáveis em ambiente sobrescrevem valores do arquivo `.env`. O
    resultado ainda não está validado; use ``validate_settings``.
    """
    import logging

    logger = logging.getLogger(__name__)

    settings = {k: (list(v) if isinstance(v, list) else v) for k, v in DEFAULT_SETTINGS.items()}

    if env_path is None:
        env_path = os.getenv("SIDECAR_ENV_FILE", str(Path.cwd() / ".env"))
    env_items = _merge_env_items(Path(env_path), logger)
    _apply_env_overrides(env_items, settings)
    return settings


# ========================
# 2. Funções auxiliares para ambiente e overrides
# ========================


# Auxilia load_settings; criado para centralizar leitura do .env
def _read_env_file(path: Path | str) -> dict:
    """Lê um arquivo `.env` e devolve um dicionário chave->valor.

    Linhas vazias e comentários (começando com '#') são ignorados.
    """
    import logging

    logger = logging.getLogger(__name__)
    result: dict[str, str] = {}
    p = Path(path)
    if not p.exists():
        return result
    try:
        with p.open("r", encoding="utf-8") as fh:
            for line in fh:
                line = line.strip()
                if not line or line.startswith("#"):
                    continue
                if "=" not in line:
                    continue
                key, val = line.split("=", 1)
                key = key.strip()
                val = val.strip().strip('"').strip("'")
                result[key] = val
    except OSError as exc:
        logger.debug("Falha ao ler .env em %s: %s", p, exc)
        return {}
    return result


# Auxilia load_settings; criado para unir variáveis do ambiente e .env
def _merge_env_items(env_path: Path, logger) -> dict:
    """Retorna um mapeamento combinado de `.env` e env vars do processo.

    As variáveis do processo sobrescrevem o arquivo `.env`.
    """
    env_items = _read_env_file(env_path)
    if env_items == {} and env_path.exists():
        logger.warning("Erro ou ficheiro .env vazio em %s", env_path)
    env_items.update(os.environ)
    return env_items


def _apply_env_overrides(env_items: dict, settings: dict) -> None:
    """Copia as chaves ``SIDECAR_*`` conhecidas para ``settings`` (valores crus)."""
    for env_key, key in ENV_KEYS.items():
        raw = env_items.get(env_key)
        if raw is None:
            continue
        if key == "log_files":
            settings[key] = [p.strip() for p in str(raw).split(",") if p.strip()]
        elif key == "command":
            settings[key] = shlex.split(str(raw))
        elif key == "exporter_enable":
            settings[key] = str(raw).strip().lower() in _TRUTHY
        else:
            settings[key] = raw


# ========================
# 3. Validação e normalização
# ========================


def _coerce_int(key: str, raw) -> int:
    if isinstance(raw, bool):
        raise ConfigError(f"{key} deve ser um inteiro: {raw!r}")
    try:
        return int(str(raw).strip())
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{key} deve ser um inteiro: {raw!r}") from exc


def _validate_ip(key: str, raw) -> str:
    ip = str(raw or "").strip()
    try:
        ipaddress.ip_address(ip)
    except ValueError as exc:
        raise ConfigError(f"invalid ip address ({key}): {ip}") from exc
    return ip


def _validate_port(key: str, raw) -> int:
    port = _coerce_int(key, raw)
    if port <= 0 or port > 65535:
        raise ConfigError(f"invalid port ({key}): {port}")
    return port


# Função principal de validação; normaliza e valida configurações
def validate_settings(settings: dict) -> dict:
    """Normaliza e valida o dicionário de configurações.

    Converte tipos, aplica os mínimos de rotação (frequência >= 1 minuto,
    keep >= 1), valida endereço/porta do servidor admin e exige um comando
    para o processo supervisionado. Levanta ``ConfigError`` no primeiro valor
    inválido.
    """
    import logging

    logger = logging.getLogger(__name__)
    if not isinstance(settings, dict):
        raise TypeError("settings deve ser um dict")

    out = dict(settings)
    out["ip"] = _validate_ip("ip", out.get("ip"))
    out["port"] = _validate_port("port", out.get("port"))

    try:
        frequency = parse_duration(out.get("logrotate_frequency"))
    except ValueError as exc:
        raise ConfigError(f"log rotation frequency inválida: {out.get('logrotate_frequency')!r}") from exc
    if frequency < MIN_LOGROTATE_FREQUENCY_SEC:
        raise ConfigError("log rotation frequency must be at least 1 minute")
    out["logrotate_frequency"] = frequency

    keep = _coerce_int("logrotate_keep", out.get("logrotate_keep"))
    if keep < MIN_LOGROTATE_KEEP:
        raise ConfigError("log rotation keep count must be at least 1")
    out["logrotate_keep"] = keep

    log_files = out.get("log_files") or []
    if isinstance(log_files, str):
        log_files = [p.strip() for p in log_files.split(",") if p.strip()]
    out["log_files"] = [str(p) for p in log_files]

    command = out.get("command") or []
    if not command:
        raise ConfigError("nenhum comando informado para o processo supervisionado")
    out["command"] = [str(c) for c in command]

    out["log_level"] = str(out.get("log_level") or "INFO").upper()
    enable = out.get("exporter_enable")
    if isinstance(enable, str):
        enable = enable.strip().lower() in _TRUTHY
    out["exporter_enable"] = bool(enable)
    if out["exporter_enable"]:
        out["exporter_addr"] = _validate_ip("exporter_addr", out.get("exporter_addr"))
        out["exporter_port"] = _validate_port("exporter_port", out.get("exporter_port"))

    logger.debug("Configurações validadas e normalizadas")
    return out
