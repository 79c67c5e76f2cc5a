"""
Módulo de Importação de Arquivos (CSV e Planilhas)

Este módulo lê as exportações mensais enviadas pelos times e as converte nos
formatos canônicos do projeto:
- CSV do help-desk  -> Ticket
- Planilha (.xlsx/.xls) de chamados -> Chamado

Principais Funções:
- Leitura tolerante (separador, encoding, BOM no cabeçalho).
- Mapeamento de colunas sem diferenciar maiúsculas/acentos.
- Normalização das datas uma única vez, na entrada.
"""

import hashlib
import logging
import unicodedata
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional

import pandas as pd

from gestor.dates import normalize, to_storage_string
from gestor.models import Chamado, Ticket

logger = logging.getLogger(__name__)

KIND_TICKETS = "tickets"
KIND_CHAMADOS = "chamados"

CSV_EXTENSIONS = {".csv", ".txt"}
EXCEL_EXTENSIONS = {".xlsx", ".xlsm", ".xls"}

# Campo canônico -> nomes de coluna aceitos (em ordem de preferência)
TICKET_COLUMNS = {
    "id": ["ID", "id", "originalId"],
    "title": ["Título", "titulo"],
    "status": ["Status"],
    "opened_at": ["Data de abertura", "dataAbertura"],
    "requester": ["Requerente - Requerente", "Requerente", "requerente"],
    "technician": ["Atribuído - Técnico", "Técnico", "tecnico"],
    "category": ["Categoria"],
    "origin": ["Origem da requisição", "Origem", "origem"],
    "location": ["Localização", "localizacao"],
}

CHAMADO_COLUMNS = {
    "number": ["Nº Chamado", "N° Chamado", "No Chamado", "Numero", "Número", "numeroChamado"],
    "summary": ["Resumo"],
    "created_at": ["Criado"],
    "deadline": ["Fim do prazo", "fimDoPrazo"],
    "adjusted_deadline": ["Prazo Ajustado", "prazoAjustado"],
    "status": ["Status do chamado", "Status", "statusChamado"],
    "reporter": ["Relator"],
    "module": ["Módulo", "Modulo"],
    "feature": ["Funcionalidade"],
}

DEFAULT_TITLE = "Sem Título"


def get_file_hash(file_path):
    """
    Calcula o hash SHA-256 de um arquivo.
    Gravado no histórico de uploads para rastrear reimportações.
    """
    sha256_hash = hashlib.sha256()
    with open(file_path, "rb") as f:
        for byte_block in iter(lambda: f.read(4096), b""):
            sha256_hash.update(byte_block)
    return sha256_hash.hexdigest()


def normalize_header(name) -> str:
    """Normaliza nomes de coluna (BOM, acentos, maiúsculas, espaços)."""
    s = str(name or '').replace('\ufeff', '').strip().lower()
    s = ''.join(c for c in unicodedata.normalize('NFKD', s) if not unicodedata.combining(c))
    s = s.replace('°', 'o').replace('º', 'o')
    return ' '.join(s.split())


def detect_kind(filename: str) -> str:
    """Tipo de importação pela extensão: CSV = tickets, planilha = chamados."""
    suffix = Path(filename or '').suffix.lower()
    if suffix in CSV_EXTENSIONS:
        return KIND_TICKETS
    if suffix in EXCEL_EXTENSIONS:
        return KIND_CHAMADOS
    raise ValueError(f"Extensão de arquivo não suportada: '{suffix or filename}'")


def read_table(file_path) -> List[Dict[str, str]]:
    """
    Lê um CSV ou planilha e devolve as linhas como dicionários de strings
    (RawRecord). Colunas e células são mantidas como vieram no arquivo.
    """
    path = Path(file_path)
    suffix = path.suffix.lower()

    if suffix in CSV_EXTENSIONS:
        df = _read_csv(path)
    elif suffix in EXCEL_EXTENSIONS:
        engine = "xlrd" if suffix == ".xls" else "openpyxl"
        try:
            df = pd.read_excel(path, sheet_name=0, dtype=str, keep_default_na=False, engine=engine)
        except Exception as e:
            raise ValueError(f"Erro ao processar a planilha: {e}") from e
    else:
        raise ValueError(f"Extensão de arquivo não suportada: '{suffix}'")

    df.columns = [str(c).strip() for c in df.columns]
    # Linhas totalmente vazias (greedy)
    df = df[~(df.apply(lambda col: col.astype(str).str.strip()) == "").all(axis=1)]
    return df.to_dict(orient="records")


def _read_csv(path: Path) -> pd.DataFrame:
    last_error = None
    for encoding in ("utf-8-sig", "latin-1"):
        try:
            return pd.read_csv(
                path, sep=None, engine="python", dtype=str,
                keep_default_na=False, encoding=encoding,
            )
        except UnicodeDecodeError as e:
            last_error = e
            continue
        except pd.errors.EmptyDataError:
            return pd.DataFrame()
        except Exception as e:
            raise ValueError(f"Erro ao ler o CSV: {e}") from e
    raise ValueError(f"Erro ao ler o CSV: {last_error}")


class _ColumnResolver:
    """Resolve o valor de um campo canônico numa linha com cabeçalhos variados."""

    def __init__(self, columns: Mapping[str, List[str]]):
        self._candidates = {
            field: [normalize_header(c) for c in names] for field, names in columns.items()
        }

    def row_getter(self, row: Mapping[str, object]):
        by_norm = {}
        for key, value in row.items():
            by_norm.setdefault(normalize_header(key), value)

        def get(field: str) -> str:
            for cand in self._candidates[field]:
                value = by_norm.get(cand)
                if value is None:
                    continue
                text = _cell_text(value)
                if text:
                    return text
            return ""

        return get


def _cell_text(value) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        try:
            if pd.isna(value):
                return ""
        except (TypeError, ValueError):
            pass
    text = str(value).strip()
    return "" if text.lower() in ("nan", "none", "undefined") else text


_TICKET_RESOLVER = _ColumnResolver(TICKET_COLUMNS)
_CHAMADO_RESOLVER = _ColumnResolver(CHAMADO_COLUMNS)


def normalize_tickets(rows: Iterable[Mapping[str, object]]) -> List[Ticket]:
    """Converte linhas do CSV em Tickets. Linhas sem ID são descartadas."""
    tickets = []
    stats = {'linhas': 0, 'sem_id': 0, 'data_invalida': 0}
    for row in rows:
        stats['linhas'] += 1
        get = _TICKET_RESOLVER.row_getter(row)
        ticket_id = get("id")
        if not ticket_id:
            stats['sem_id'] += 1
            continue
        opened_raw = get("opened_at")
        if normalize(opened_raw) is None:
            stats['data_invalida'] += 1
        tickets.append(Ticket(
            id=ticket_id,
            title=get("title") or DEFAULT_TITLE,
            status=get("status"),
            opened_at=to_storage_string(opened_raw),
            requester=get("requester"),
            technician=get("technician"),
            category=get("category"),
            origin=get("origin"),
            location=get("location"),
        ))

    logger.info(f"📊 Tickets: {len(tickets)} válidos de {stats['linhas']} linhas "
                f"(sem ID: {stats['sem_id']}, data inválida: {stats['data_invalida']})")
    if stats['linhas'] and not tickets:
        logger.warning("⚠️ Nenhuma linha passou pelo filtro de ID; verifique o cabeçalho do CSV")
    return tickets


def normalize_chamados(rows: Iterable[Mapping[str, object]]) -> List[Chamado]:
    """Converte linhas da planilha em Chamados. Linhas sem número são descartadas."""
    chamados = []
    stats = {'linhas': 0, 'sem_numero': 0, 'data_invalida': 0}
    for row in rows:
        stats['linhas'] += 1
        get = _CHAMADO_RESOLVER.row_getter(row)
        number = get("number")
        if not number:
            stats['sem_numero'] += 1
            continue
        created_raw = get("created_at")
        if normalize(created_raw) is None:
            stats['data_invalida'] += 1
        chamados.append(Chamado(
            number=number,
            summary=get("summary"),
            created_at=to_storage_string(created_raw),
            deadline=get("deadline"),
            adjusted_deadline=get("adjusted_deadline"),
            status=get("status"),
            reporter=get("reporter"),
            module=get("module"),
            feature=get("feature"),
        ))

    logger.info(f"📊 Chamados: {len(chamados)} válidos de {stats['linhas']} linhas "
                f"(sem número: {stats['sem_numero']}, data inválida: {stats['data_invalida']})")
    return chamados


def normalize_records(rows: Iterable[Mapping[str, object]], kind: str) -> list:
    if kind == KIND_TICKETS:
        return normalize_tickets(rows)
    if kind == KIND_CHAMADOS:
        return normalize_chamados(rows)
    raise ValueError(f"Tipo inválido: '{kind}'. Use 'tickets' ou 'chamados'.")


def import_file(file_path, kind: Optional[str] = None) -> list:
    """
    Lê e normaliza um arquivo exportado.

    Args:
        file_path: Caminho do CSV/planilha.
        kind: 'tickets' ou 'chamados'; se None, deduzido pela extensão.

    Retorna:
        Lista de Ticket ou Chamado.
    """
    kind = kind or detect_kind(str(file_path))
    rows = read_table(file_path)
    logger.info(f"🔍 {Path(file_path).name}: {len(rows)} linhas lidas como '{kind}'")
    if kind == KIND_CHAMADOS and not rows:
        raise ValueError("A planilha está vazia.")
    return normalize_records(rows, kind)
