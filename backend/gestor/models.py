# gestor/models.py
# Formatos canônicos dos registros importados.

from dataclasses import asdict, dataclass


@dataclass(frozen=True)
class Ticket:
    """
    Chamado de suporte vindo da exportação CSV do help-desk.
    Gerado uma única vez na fronteira de importação; a agregação
    nunca precisa procurar nomes de coluna alternativos.
    """
    id: str
    title: str
    status: str
    opened_at: str
    requester: str = ""
    technician: str = ""
    category: str = ""
    origin: str = ""
    location: str = ""

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class Chamado:
    """Incidente vindo da planilha (prazos + taxonomia módulo/funcionalidade)."""
    number: str
    summary: str
    created_at: str
    deadline: str = ""
    adjusted_deadline: str = ""
    status: str = ""
    reporter: str = ""
    module: str = ""
    feature: str = ""

    def to_dict(self) -> dict:
        return asdict(self)
