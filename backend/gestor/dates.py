"""
Módulo de Normalização de Datas

Converte datas vindas de células de CSV/planilha (texto livre, em formatos
variados) em uma data de calendário canônica (ano, mês, dia).

Formatos aceitos, nesta ordem:
1. ISO: 2026-01-09, 2026-01-09T08:03:00.000Z, 2026-01-09 08:03
2. Trio numérico dia-primeiro (padrão BR): 09/01/2026, 09-01-2026 08:03
   (se o primeiro token tiver 4 dígitos, o trio é lido como ano-primeiro)
3. Trio com mês por extenso/abreviado: 09/jan/2026, 9 fev 2026
4. Parse genérico (pandas); se falhar, None.

A serialização para armazenamento é sempre montada por string
(YYYY-MM-DDT00:00:00.000Z), nunca convertendo uma data local para UTC:
essa conversão desloca 01/01 para 31/12 em fusos negativos (ex.: Brasil).
"""

from __future__ import annotations

import logging
import re
import unicodedata
import warnings
from datetime import date, datetime, timezone
from typing import NamedTuple, Optional

import pandas as pd

logger = logging.getLogger(__name__)


# Abreviações de meses (pt-BR, com aliases em inglês)
MONTH_ABBR_TO_NUM = {
    "jan": 1, "fev": 2, "mar": 3, "abr": 4, "mai": 5, "jun": 6,
    "jul": 7, "ago": 8, "set": 9, "out": 10, "nov": 11, "dez": 12,
    "feb": 2, "apr": 4, "may": 5, "aug": 8, "sep": 9, "oct": 10, "dec": 12,
}

STORAGE_TIME_SUFFIX = "T00:00:00.000Z"

_ISO_RE = re.compile(r'^(\d{4})-(\d{2})-(\d{2})(?:[T ].*)?$')
_TRIPLET_RE = re.compile(
    r'^(\d{1,4})\s*[-/. ]\s*(\d{1,2}|[^\W\d_]{3,})\.?\s*[-/. ]\s*(\d{1,4})(?:(?:\s+|T|,\s*).*)?$'
)
_HAS_YEAR_RE = re.compile(r'\d{4}')


class NormalizedDate(NamedTuple):
    year: int
    month: int
    day: int

    def iso(self) -> str:
        return f"{self.year:04d}-{self.month:02d}-{self.day:02d}"

    def storage_string(self) -> str:
        return self.iso() + STORAGE_TIME_SUFFIX

    def month_key(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"


def _build(year: int, month: int, day: int) -> Optional[NormalizedDate]:
    if not (1 <= month <= 12 and 1 <= day <= 31):
        return None
    if year < 100:
        year += 2000
    if not (1000 <= year <= 9999):
        return None
    return NormalizedDate(year, month, day)


def _month_number(token: str) -> Optional[int]:
    if token.isdigit():
        return int(token)
    s = unicodedata.normalize('NFKD', token.strip().lower())
    s = ''.join(c for c in s if not unicodedata.combining(c))
    return MONTH_ABBR_TO_NUM.get(s[:3])


def _from_triplet(first: str, middle: str, last: str) -> Optional[NormalizedDate]:
    month = _month_number(middle)
    if month is None:
        return None
    if len(first) == 4:
        # ano-primeiro (2026/01/09)
        if len(last) > 2:
            return None
        return _build(int(first), month, int(last))
    # dia-primeiro (09/01/2026)
    if len(first) > 2 or len(last) not in (2, 4):
        return None
    return _build(int(last), month, int(first))


def _parse_generic(text: str) -> Optional[NormalizedDate]:
    # Sem um ano de 4 dígitos o parser completa a data com "hoje"
    if not _HAS_YEAR_RE.search(text):
        return None
    try:
        with warnings.catch_warnings():
            warnings.simplefilter("ignore")
            ts = pd.to_datetime(text, dayfirst=True, errors="coerce")
    except (ValueError, TypeError, OverflowError):
        return None
    if ts is None or pd.isna(ts):
        return None
    return _build(ts.year, ts.month, ts.day)


def _is_missing(value) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return False
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def normalize(value) -> Optional[NormalizedDate]:
    """
    Resolve uma data heterogênea para (ano, mês, dia).

    Args:
        value: Texto da célula, ou date/datetime/Timestamp já tipado.

    Retorna:
        NormalizedDate, ou None se a entrada não for reconhecida.
    """
    if _is_missing(value):
        return None
    if isinstance(value, (datetime, date)):
        return _build(value.year, value.month, value.day)

    text = str(value).strip().lstrip('\ufeff')
    if not text:
        return None

    # Ano-primeiro rejeitado não cai no parse genérico: o pandas trocaria dia e mês
    m = _ISO_RE.match(text)
    if m:
        return _build(int(m.group(1)), int(m.group(2)), int(m.group(3)))

    m = _TRIPLET_RE.match(text)
    if m:
        nd = _from_triplet(m.group(1), m.group(2), m.group(3))
        if nd or len(m.group(1)) == 4:
            return nd

    return _parse_generic(text)


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec='milliseconds').replace('+00:00', 'Z')


def to_storage_string(value) -> str:
    """
    Converte a data para a string gravada no banco.

    ISO com hora é mantido como veio; os demais formatos viram
    YYYY-MM-DDT00:00:00.000Z. Entrada inválida vira o instante atual (UTC),
    com aviso no log.
    """
    if isinstance(value, str):
        text = value.strip().lstrip('\ufeff')
        if 'T' in text and _ISO_RE.match(text) and normalize(text):
            return text

    nd = normalize(value)
    if nd:
        return nd.storage_string()

    logger.warning(f"⚠️ Data não reconhecida ({value!r}); usando data/hora atual")
    return _utc_now_iso()


def date_key(value) -> Optional[str]:
    """Chave YYYY-MM-DD para comparação só por data (sem hora/fuso)."""
    nd = normalize(value)
    return nd.iso() if nd else None


def month_key(value) -> Optional[str]:
    nd = normalize(value)
    return nd.month_key() if nd else None


def month_index(value) -> Optional[int]:
    """
    Índice do mês (0-11).

    Para textos ISO o mês é lido direto da substring: converter
    "2026-01-01T00:00:00.000Z" para data local no Brasil daria dezembro.
    """
    if isinstance(value, str):
        m = _ISO_RE.match(value.strip().lstrip('\ufeff'))
        if m and 1 <= int(m.group(2)) <= 12:
            return int(m.group(2)) - 1
    nd = normalize(value)
    return nd.month - 1 if nd else None
