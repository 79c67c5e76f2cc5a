"""gestor.config

Configurações e helpers compartilhados do Gestor Dashboard.

Motivação:
- Centralizar a resolução de caminhos (raiz do projeto, DB, uploads)
- Carregar o .env uma única vez
- Expor os parâmetros de negócio (requerentes ocultos, prefixo de categoria)

Observação:
- Todas as leituras de ambiente são feitas em funções, para que os testes
  possam alterar variáveis com monkeypatch sem recarregar o módulo.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from dotenv import load_dotenv


LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# Contas internas/de serviço que não devem aparecer no ranking de requerentes
DEFAULT_EXCLUDED_REQUESTERS = (
    'BRUNA CAROLINE CASTOR DA SILVA',
    'FABRICIO ANDRE BONIFÁCIO CUNHA',
    'MATEUS PEREIRA REIS',
    'Thiago Silva da Rocha',
    'Jan Roberto de Souza Ramos',
    'IAN CADORI DE SIQUEIRA',
)

# Prefixo do fornecedor nas categorias exportadas (ex.: "SAJMP > Protocolo")
DEFAULT_CATEGORY_PREFIX_PATTERN = r'^SAJMP\s*>\s*'


def find_project_root() -> Path:
    """Localiza a raiz do projeto subindo na árvore de diretórios."""
    here = Path(__file__).resolve()
    for parent in [here] + list(here.parents):
        if (parent / "pyproject.toml").exists() and (parent / "backend").exists():
            return parent
        if (parent / ".env").exists():
            return parent
    # Fallback: gestor/ -> backend/ -> raiz
    return here.parents[2]


def load_env() -> None:
    """Carrega o .env da raiz do projeto (se existir)."""
    env_path = find_project_root() / ".env"
    if env_path.exists():
        load_dotenv(dotenv_path=str(env_path))


def get_db_path() -> Path:
    """Retorna o caminho do SQLite do projeto.

    Prioridade:
    1) GESTOR_DB_PATH
    2) DB_PATH (genérico)
    3) backend/data/gestor.db (padrão)
    """
    env = os.getenv("GESTOR_DB_PATH") or os.getenv("DB_PATH")
    if env:
        return Path(env)
    return find_project_root() / "backend" / "data" / "gestor.db"


def get_jwt_secret() -> str:
    return os.getenv("JWT_SECRET", "segredo-super-seguro")


def get_jwt_expiration_hours() -> int:
    try:
        return int(os.getenv("JWT_EXPIRATION_HOURS", "24"))
    except ValueError:
        return 24


def get_excluded_requesters() -> tuple[str, ...]:
    """Nomes ocultos no ranking de requerentes.

    EXCLUDED_REQUESTERS aceita uma lista separada por ';'. Se a variável existir
    (mesmo vazia), substitui a lista padrão.
    """
    raw = os.getenv("EXCLUDED_REQUESTERS")
    if raw is None:
        return DEFAULT_EXCLUDED_REQUESTERS
    return tuple(n.strip() for n in raw.split(';') if n.strip())


def get_category_prefix_pattern() -> str:
    return os.getenv("CATEGORY_PREFIX_PATTERN") or DEFAULT_CATEGORY_PREFIX_PATTERN


def configure_logging() -> None:
    """Configura o logging raiz no formato padrão do projeto."""
    level_name = (os.getenv("LOG_LEVEL") or "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format=LOG_FORMAT,
    )
