"""
Módulo de Agregação (estatísticas para os gráficos)

Funções puras sobre listas de registros já normalizados (Ticket/Chamado ou
dicionários com os mesmos campos). Nenhuma função faz I/O ou levanta erro
para entradas vazias: o resultado é sempre uma lista (possivelmente vazia).

Cada estatística devolve "buckets" no formato {"name": str, "value": int},
ordenados por contagem decrescente; empates mantêm a ordem em que o valor
apareceu pela primeira vez.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from datetime import date, datetime
from typing import Callable, Dict, Iterable, List, Optional, Union

from gestor import config
from gestor.dates import date_key, month_index, month_key

FieldSpec = Union[str, Callable[[object], object]]

MONTH_NAMES = ["Jan", "Fev", "Mar", "Abr", "Mai", "Jun", "Jul", "Ago", "Set", "Out", "Nov", "Dez"]

STATUS_SENTINEL = "Sem Status"
PLACEHOLDER_VALUES = {"-"}

TOP_CATEGORIES = 5
TOP_REQUESTERS = 5
TOP_FUNCTIONALITIES = 10


def _getter(field: FieldSpec) -> Callable[[object], object]:
    if callable(field):
        return field

    def get(record):
        if isinstance(record, Mapping):
            return record.get(field)
        return getattr(record, field, None)

    return get


def _clean(value) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _bound_key(bound) -> Optional[str]:
    if bound is None or bound == "":
        return None
    if isinstance(bound, (datetime, date)):
        return f"{bound.year:04d}-{bound.month:02d}-{bound.day:02d}"
    return date_key(bound)


def filter_by_date_range(records: Iterable, start=None, end=None, field: FieldSpec = "opened_at") -> list:
    """
    Filtra registros pelo intervalo [start, end], inclusivo nas duas pontas.

    A comparação é feita entre strings YYYY-MM-DD (só a parte da data),
    sem timestamps: assim a hora e o fuso não excluem registros da borda.
    Sem nenhum limite, devolve todos os registros.
    """
    records = list(records)
    start_key = _bound_key(start)
    end_key = _bound_key(end)
    if start_key is None and end_key is None:
        return records

    get = _getter(field)
    result = []
    for record in records:
        key = date_key(get(record))
        if key is None:
            continue
        if start_key and key < start_key:
            continue
        if end_key and key > end_key:
            continue
        result.append(record)
    return result


def group_by_field(
    records: Iterable,
    field: FieldSpec,
    top_n: Optional[int] = None,
    exclude_names: Optional[Iterable[str]] = None,
    strip_prefix: Optional[str] = None,
    blank_label: Optional[str] = None,
) -> List[Dict]:
    """
    Conta registros por valor do campo.

    Args:
        records: Registros normalizados.
        field: Nome do campo ou função extratora.
        top_n: Mantém só os N maiores (None = todos).
        exclude_names: Valores ignorados (comparação sem diferenciar maiúsculas).
        strip_prefix: Regex removida do início do valor (ex.: prefixo do fornecedor).
        blank_label: Rótulo para valores vazios; se None, vazios são ignorados.

    Retorna:
        Lista de {"name", "value"} em ordem decrescente de contagem.
    """
    get = _getter(field)
    excluded = {n.strip().casefold() for n in (exclude_names or ()) if n}
    prefix_re = re.compile(strip_prefix, re.IGNORECASE) if strip_prefix else None

    counts: Dict[str, int] = {}
    for record in records:
        value = _clean(get(record))
        if prefix_re and value:
            value = prefix_re.sub('', value, count=1).strip()
        if not value or value in PLACEHOLDER_VALUES:
            if blank_label is None:
                continue
            value = blank_label
        if value.casefold() in excluded:
            continue
        counts[value] = counts.get(value, 0) + 1

    # sorted() é estável: empates ficam na ordem de primeira ocorrência
    buckets = sorted(
        ({"name": name, "value": value} for name, value in counts.items()),
        key=lambda b: b["value"],
        reverse=True,
    )
    if top_n is not None:
        buckets = buckets[:top_n]
    return buckets


def origin_stats(tickets: Iterable) -> List[Dict]:
    return group_by_field(tickets, "origin")


def category_stats(tickets: Iterable, prefix_pattern: Optional[str] = None) -> List[Dict]:
    """Top 5 categorias, sem o prefixo do fornecedor (ex.: 'SAJMP > ')."""
    pattern = prefix_pattern if prefix_pattern is not None else config.get_category_prefix_pattern()
    return group_by_field(tickets, "category", top_n=TOP_CATEGORIES, strip_prefix=pattern)


def requester_stats(tickets: Iterable, excluded: Optional[Iterable[str]] = None) -> List[Dict]:
    """Top 5 requerentes, ocultando contas internas."""
    names = excluded if excluded is not None else config.get_excluded_requesters()
    return group_by_field(tickets, "requester", top_n=TOP_REQUESTERS, exclude_names=names)


def status_stats(chamados: Iterable) -> List[Dict]:
    return group_by_field(chamados, "status", blank_label=STATUS_SENTINEL)


def functionality_stats(chamados: Iterable) -> List[Dict]:
    return group_by_field(chamados, "feature", top_n=TOP_FUNCTIONALITIES)


def monthly_histogram(records: Iterable, field: FieldSpec = "opened_at") -> List[Dict]:
    """
    Histograma de 12 meses (Jan..Dez), sempre com 12 buckets na ordem fixa.
    O mês vem da substring da data ISO sempre que possível.
    """
    get = _getter(field)
    counts = [0] * 12
    for record in records:
        idx = month_index(get(record))
        if idx is not None:
            counts[idx] += 1
    return [{"name": MONTH_NAMES[i], "value": counts[i]} for i in range(12)]


def available_months(records: Iterable, field: FieldSpec = "opened_at") -> List[str]:
    """Meses (YYYY-MM) presentes nos registros, do mais recente ao mais antigo."""
    get = _getter(field)
    months = {key for key in (month_key(get(r)) for r in records) if key}
    return sorted(months, reverse=True)


def dashboard_summary(
    tickets: Iterable,
    chamados: Iterable,
    start=None,
    end=None,
    excluded_requesters: Optional[Iterable[str]] = None,
    category_prefix: Optional[str] = None,
    history_tickets: Optional[Iterable] = None,
) -> Dict:
    """
    Monta todas as estatísticas do dashboard de um time.

    O histórico anual usa history_tickets (todos os tickets do time) quando
    informado, independente do filtro de período.
    """
    tickets = list(tickets)
    chamados = list(chamados)
    filtered_tickets = filter_by_date_range(tickets, start, end, field="opened_at")
    filtered_chamados = filter_by_date_range(chamados, start, end, field="created_at")
    history_source = list(history_tickets) if history_tickets is not None else tickets

    return {
        "totals": {
            "tickets": len(filtered_tickets),
            "chamados": len(filtered_chamados),
        },
        "origin": origin_stats(filtered_tickets),
        "category": category_stats(filtered_tickets, category_prefix),
        "requester": requester_stats(filtered_tickets, excluded_requesters),
        "status": status_stats(filtered_chamados),
        "functionality": functionality_stats(filtered_chamados),
        "history": monthly_histogram(history_source, "opened_at"),
        "chamados_history": monthly_histogram(filtered_chamados, "created_at"),
    }
