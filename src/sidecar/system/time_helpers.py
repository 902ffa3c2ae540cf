"""Helpers de tempo usados pela rotação de logs e pela configuração.

Contém o cálculo do próximo tick alinhado ao relógio, o formato do sufixo
dos ficheiros rotacionados e o parser de durações no estilo ``24h``/``10m``.
"""

from datetime import datetime, timezone
from typing import Optional
import logging
import re
import time

logger = logging.getLogger(__name__)

# yyyyMMdd-HHmmss; ordenável lexicograficamente
SUFFIX_FORMAT = "%Y%m%d-%H%M%S"

_SUFFIX_RE = re.compile(r"^\d{8}-\d{6}$")

_DURATION_UNITS = {
    "ms": 0.001,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART_RE = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")


def delay_for_next(frequency: float, now_ns: Optional[int] = None) -> float:
    """Retorna os segundos até o próximo tick alinhado à grade de ``frequency``.

    Os ticks caem sempre nos múltiplos de ``frequency`` contados a partir da
    época UTC (ex.: no topo de cada hora para frequência horária), e não
    ``frequency`` depois do arranque do processo. O resultado fica em
    ``[0, frequency)``.
    """
    freq_ns = int(round(frequency * 1_000_000_000))
    if freq_ns <= 0:
        raise ValueError("frequency deve ser > 0")
    if now_ns is None:
        now_ns = time.time_ns()
    offset = now_ns % freq_ns
    return ((freq_ns - offset) % freq_ns) / 1_000_000_000


def format_rotated_suffix(dt: Optional[datetime] = None) -> str:
    """Formata o instante (UTC agora por omissão) como sufixo de rotação."""
    if dt is None:
        dt = datetime.now(timezone.utc)
    elif dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc)
    return dt.strftime(SUFFIX_FORMAT)


def parse_rotated_suffix(s: str) -> Optional[datetime]:
    """Converte um sufixo ``yyyyMMdd-HHmmss`` em datetime UTC, ou None se inválido."""
    if not isinstance(s, str) or not _SUFFIX_RE.match(s):
        return None
    try:
        return datetime.strptime(s, SUFFIX_FORMAT).replace(tzinfo=timezone.utc)
    except ValueError:
        return None


def parse_duration(value) -> float:
    """Converte uma duração em segundos.

    Aceita números (segundos), strings numéricas e o formato composto
    ``1h30m``, ``10m``, ``90s``, ``250ms``. Levanta ValueError quando não
    for possível interpretar o valor.
    """
    if isinstance(value, bool):
        raise ValueError(f"duração inválida: {value!r}")
    if isinstance(value, (int, float)):
        return float(value)
    if not isinstance(value, str):
        raise ValueError(f"duração inválida: {value!r}")
    t = value.strip().lower()
    if not t:
        raise ValueError("duração vazia")
    try:
        return float(t)
    except ValueError:
        pass

    pos = 0
    total = 0.0
    for match in _DURATION_PART_RE.finditer(t):
        if match.start() != pos:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    if pos != len(t) or pos == 0:
        raise ValueError(f"duração inválida: {value!r}")
    return total


def format_duration(seconds: float) -> str:
    """Representação curta de uma duração (ex.: ``24h``, ``90s``); usada em logs."""
    secs = float(seconds)
    if secs >= 3600 and secs % 3600 == 0:
        return f"{int(secs // 3600)}h"
    if secs >= 60 and secs % 60 == 0:
        return f"{int(secs // 60)}m"
    if secs == int(secs):
        return f"{int(secs)}s"
    return f"{secs}s"
