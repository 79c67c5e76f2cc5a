"""
Módulo de Persistência (SQLite)

Repositório explícito para usuários/times, tickets, chamados, indicadores
manuais por mês e histórico de uploads. O repositório é instanciado com o
caminho do banco e injetado na aplicação; as funções de agregação não
conhecem o armazenamento.

Os filtros por mês usam prefixo da data gravada (YYYY-MM), que é sempre
serializada como YYYY-MM-DD... pelo normalizador de datas.
"""

import logging
import os
import sqlite3
import uuid
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from gestor.auth import hash_password
from gestor.models import Chamado, Ticket

logger = logging.getLogger(__name__)

ROLE_MANAGER = 'MANAGER'
ROLE_TEAM = 'TEAM'

MAX_RECORDS = 2000

_TICKET_COLUMNS = ('original_id', 'titulo', 'status', 'data_abertura', 'requerente',
                   'tecnico', 'categoria', 'origem', 'localizacao')
_CHAMADO_COLUMNS = ('numero_chamado', 'resumo', 'criado', 'fim_do_prazo', 'prazo_ajustado',
                    'status_chamado', 'relator', 'modulo', 'funcionalidade')


def _ticket_from_row(row) -> Ticket:
    return Ticket(
        id=row['original_id'], title=row['titulo'], status=row['status'],
        opened_at=row['data_abertura'], requester=row['requerente'], technician=row['tecnico'],
        category=row['categoria'], origin=row['origem'], location=row['localizacao'],
    )


def _chamado_from_row(row) -> Chamado:
    return Chamado(
        number=row['numero_chamado'], summary=row['resumo'], created_at=row['criado'],
        deadline=row['fim_do_prazo'], adjusted_deadline=row['prazo_ajustado'],
        status=row['status_chamado'], reporter=row['relator'], module=row['modulo'],
        feature=row['funcionalidade'],
    )


def _public_user(row) -> Optional[Dict]:
    if not row:
        return None
    return {
        "id": row['id'],
        "name": row['name'],
        "email": row['email'],
        "role": row['role'],
        "created_at": row['created_at'],
    }


class Repository:
    """Acesso ao SQLite do projeto (uma conexão por operação)."""

    def __init__(self, db_path):
        self.db_path = Path(db_path)

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------
    def init_db(self):
        os.makedirs(self.db_path.parent, exist_ok=True)
        conn = self._connect()
        cursor = conn.cursor()

        # Usuários: gestores e times
        cursor.execute('''
            CREATE TABLE IF NOT EXISTS users (
                id TEXT PRIMARY KEY,
                name TEXT,
                email TEXT UNIQUE NOT NULL,
                password TEXT NOT NULL,
                role TEXT NOT NULL DEFAULT 'TEAM',
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        ''')

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS tickets (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL,
                original_id TEXT,
                titulo TEXT,
                status TEXT,
                data_abertura TEXT,
                requerente TEXT,
                tecnico TEXT,
                categoria TEXT,
                origem TEXT,
                localizacao TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                FOREIGN KEY (user_id) REFERENCES users(id)
            )
        ''')

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS chamados (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL,
                numero_chamado TEXT,
                resumo TEXT,
                criado TEXT,
                fim_do_prazo TEXT,
                prazo_ajustado TEXT,
                status_chamado TEXT,
                relator TEXT,
                modulo TEXT,
                funcionalidade TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                FOREIGN KEY (user_id) REFERENCES users(id)
            )
        ''')

        # Indicadores digitados manualmente (satisfação, manuais enviados)
        cursor.execute('''
            CREATE TABLE IF NOT EXISTS monthly_data (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL,
                month TEXT NOT NULL,
                satisfaction TEXT,
                manuals TEXT,
                updated_at TIMESTAMP,
                UNIQUE(user_id, month),
                FOREIGN KEY (user_id) REFERENCES users(id)
            )
        ''')

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS upload_history (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL,
                kind TEXT,
                month TEXT,
                count INTEGER,
                file_hash TEXT,
                timestamp TIMESTAMP,
                FOREIGN KEY (user_id) REFERENCES users(id)
            )
        ''')

        cursor.execute('CREATE INDEX IF NOT EXISTS idx_tickets_user_data ON tickets(user_id, data_abertura)')
        cursor.execute('CREATE INDEX IF NOT EXISTS idx_chamados_user_criado ON chamados(user_id, criado)')

        conn.commit()
        conn.close()

        # Gestor padrão via variáveis de ambiente (e-mail em minúsculas, como nas rotas)
        manager_email = (os.getenv('MANAGER_EMAIL') or '').strip().lower()
        manager_password = os.getenv('MANAGER_PASSWORD')
        if manager_email and manager_password and not self.get_user_by_email(manager_email):
            self.create_user(
                os.getenv('MANAGER_NAME') or manager_email.split('@')[0],
                manager_email, manager_password, role=ROLE_MANAGER,
            )
            logger.info(f"✅ Gestor '{manager_email}' criado com sucesso!")

    # ------------------------------------------------------------------
    # Usuários / Times
    # ------------------------------------------------------------------
    def create_user(self, name, email, password, role=ROLE_TEAM) -> Optional[Dict]:
        """Cria usuário com senha em bcrypt. Retorna None se o e-mail já existir."""
        user_id = str(uuid.uuid4())
        try:
            conn = self._connect()
            with conn:
                conn.execute(
                    'INSERT INTO users (id, name, email, password, role) VALUES (?, ?, ?, ?, ?)',
                    (user_id, name, email, hash_password(password), role),
                )
            conn.close()
        except sqlite3.IntegrityError:
            return None
        return self.get_user_by_id(user_id)

    def get_user_by_id(self, user_id) -> Optional[Dict]:
        conn = self._connect()
        row = conn.execute(
            'SELECT id, name, email, role, created_at FROM users WHERE id = ?', (str(user_id),)
        ).fetchone()
        conn.close()
        return _public_user(row)

    def get_user_by_email(self, email) -> Optional[Dict]:
        conn = self._connect()
        row = conn.execute(
            'SELECT id, name, email, role, created_at FROM users WHERE email = ?', (email,)
        ).fetchone()
        conn.close()
        return _public_user(row)

    def get_credentials(self, email) -> Optional[Dict]:
        """Retorna id, role e hash da senha (uso interno da autenticação)."""
        conn = self._connect()
        row = conn.execute(
            'SELECT id, name, email, password, role FROM users WHERE email = ?', (email,)
        ).fetchone()
        conn.close()
        return dict(row) if row else None

    def set_password_hash(self, user_id, hashed_password):
        conn = self._connect()
        with conn:
            conn.execute('UPDATE users SET password = ? WHERE id = ?', (hashed_password, str(user_id)))
        conn.close()

    def has_manager(self) -> bool:
        conn = self._connect()
        n = conn.execute('SELECT COUNT(*) FROM users WHERE role = ?', (ROLE_MANAGER,)).fetchone()[0]
        conn.close()
        return n > 0

    def list_teams(self) -> List[Dict]:
        """Lista os times com a quantidade de tickets importados."""
        conn = self._connect()
        rows = conn.execute('''
            SELECT u.id, u.name, u.email, u.role, u.created_at,
                   (SELECT COUNT(*) FROM tickets t WHERE t.user_id = u.id) AS ticket_count
            FROM users u
            WHERE u.role = ?
            ORDER BY u.name COLLATE NOCASE
        ''', (ROLE_TEAM,)).fetchall()
        conn.close()
        teams = []
        for row in rows:
            team = _public_user(row)
            team["ticket_count"] = row['ticket_count']
            teams.append(team)
        return teams

    def get_team(self, team_id) -> Optional[Dict]:
        user = self.get_user_by_id(team_id)
        if not user or user['role'] != ROLE_TEAM:
            return None
        return user

    def update_team(self, team_id, name=None, email=None, password=None):
        """
        Atualiza campos informados do time.

        Retorna:
            dict atualizado, None se o time não existir, ou False se o e-mail
            já estiver em uso por outro usuário.
        """
        if not self.get_team(team_id):
            return None
        updates, params = [], []
        if name:
            updates.append('name = ?')
            params.append(name)
        if email:
            updates.append('email = ?')
            params.append(email)
        if password:
            updates.append('password = ?')
            params.append(hash_password(password))
        if updates:
            try:
                conn = self._connect()
                with conn:
                    conn.execute(f"UPDATE users SET {', '.join(updates)} WHERE id = ?", (*params, str(team_id)))
                conn.close()
            except sqlite3.IntegrityError:
                return False
        return self.get_team(team_id)

    def delete_team(self, team_id) -> bool:
        """Apaga o time e todos os seus dados numa única transação."""
        conn = self._connect()
        try:
            cursor = conn.cursor()
            cursor.execute("BEGIN")
            cursor.execute('DELETE FROM tickets WHERE user_id = ?', (str(team_id),))
            cursor.execute('DELETE FROM chamados WHERE user_id = ?', (str(team_id),))
            cursor.execute('DELETE FROM monthly_data WHERE user_id = ?', (str(team_id),))
            cursor.execute('DELETE FROM upload_history WHERE user_id = ?', (str(team_id),))
            cursor.execute('DELETE FROM users WHERE id = ? AND role = ?', (str(team_id), ROLE_TEAM))
            deleted = cursor.rowcount > 0
            if deleted:
                conn.commit()
            else:
                conn.rollback()
            return deleted
        except sqlite3.Error:
            conn.rollback()
            raise
        finally:
            conn.close()

    # ------------------------------------------------------------------
    # Tickets / Chamados
    # ------------------------------------------------------------------
    def replace_tickets(self, team_id, tickets: Iterable[Ticket], month: Optional[str] = None) -> int:
        """Substitui os tickets do time (do mês, se informado) pelos novos."""
        rows = [(str(team_id), t.id, t.title, t.status, t.opened_at, t.requester,
                 t.technician, t.category, t.origin, t.location) for t in tickets]
        return self._replace('tickets', 'data_abertura', _TICKET_COLUMNS, team_id, rows, month)

    def replace_chamados(self, team_id, chamados: Iterable[Chamado], month: Optional[str] = None) -> int:
        """Substitui os chamados do time (do mês, se informado) pelos novos."""
        rows = [(str(team_id), c.number, c.summary, c.created_at, c.deadline, c.adjusted_deadline,
                 c.status, c.reporter, c.module, c.feature) for c in chamados]
        return self._replace('chamados', 'criado', _CHAMADO_COLUMNS, team_id, rows, month)

    def _replace(self, table, date_column, columns, team_id, rows, month) -> int:
        conn = self._connect()
        try:
            cursor = conn.cursor()
            cursor.execute("BEGIN")
            if month:
                cursor.execute(
                    f"DELETE FROM {table} WHERE user_id = ? AND {date_column} LIKE ? || '%'",
                    (str(team_id), month),
                )
            else:
                cursor.execute(f"DELETE FROM {table} WHERE user_id = ?", (str(team_id),))
            removed = cursor.rowcount
            placeholders = ','.join('?' * (len(columns) + 1))
            cursor.executemany(
                f"INSERT INTO {table} (user_id, {', '.join(columns)}) VALUES ({placeholders})",
                rows,
            )
            conn.commit()
        except sqlite3.Error:
            conn.rollback()
            raise
        finally:
            conn.close()
        logger.info(f"[TEAM {team_id}] {table}: {removed} removidos, {len(rows)} inseridos (mês: {month or 'todos'})")
        return len(rows)

    def list_tickets(self, team_id, month: Optional[str] = None, limit: Optional[int] = MAX_RECORDS) -> List[Ticket]:
        rows = self._select('tickets', 'data_abertura', team_id, month, limit)
        return [_ticket_from_row(r) for r in rows]

    def list_chamados(self, team_id, month: Optional[str] = None, limit: Optional[int] = MAX_RECORDS) -> List[Chamado]:
        rows = self._select('chamados', 'criado', team_id, month, limit)
        return [_chamado_from_row(r) for r in rows]

    def _select(self, table, date_column, team_id, month, limit):
        sql = f"SELECT * FROM {table} WHERE user_id = ?"
        params = [str(team_id)]
        if month:
            sql += f" AND {date_column} LIKE ? || '%'"
            params.append(month)
        sql += " ORDER BY id"
        if limit:
            sql += " LIMIT ?"
            params.append(int(limit))
        conn = self._connect()
        rows = conn.execute(sql, params).fetchall()
        conn.close()
        return rows

    def count_tickets(self, team_id) -> int:
        conn = self._connect()
        n = conn.execute('SELECT COUNT(*) FROM tickets WHERE user_id = ?', (str(team_id),)).fetchone()[0]
        conn.close()
        return int(n or 0)

    # ------------------------------------------------------------------
    # Indicadores manuais / Reset mensal
    # ------------------------------------------------------------------
    def get_manual_stats(self, team_id, month) -> Optional[Dict]:
        conn = self._connect()
        row = conn.execute(
            'SELECT satisfaction, manuals FROM monthly_data WHERE user_id = ? AND month = ?',
            (str(team_id), month),
        ).fetchone()
        conn.close()
        return {"satisfaction": row['satisfaction'], "manuals": row['manuals']} if row else None

    def save_manual_stats(self, team_id, month, satisfaction, manuals) -> Dict:
        now = datetime.now().isoformat()
        conn = self._connect()
        with conn:
            conn.execute('''
                INSERT INTO monthly_data (user_id, month, satisfaction, manuals, updated_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(user_id, month) DO UPDATE SET
                    satisfaction = excluded.satisfaction,
                    manuals = excluded.manuals,
                    updated_at = excluded.updated_at
            ''', (str(team_id), month, satisfaction, manuals, now))
        conn.close()
        return {"month": month, "satisfaction": satisfaction, "manuals": manuals}

    def reset_month(self, team_id, month) -> Dict[str, int]:
        """Apaga tickets, chamados e indicadores manuais do mês (YYYY-MM)."""
        conn = self._connect()
        try:
            cursor = conn.cursor()
            cursor.execute("BEGIN")
            cursor.execute("DELETE FROM tickets WHERE user_id = ? AND data_abertura LIKE ? || '%'", (str(team_id), month))
            tickets = cursor.rowcount
            cursor.execute("DELETE FROM chamados WHERE user_id = ? AND criado LIKE ? || '%'", (str(team_id), month))
            chamados = cursor.rowcount
            cursor.execute('DELETE FROM monthly_data WHERE user_id = ? AND month = ?', (str(team_id), month))
            conn.commit()
        except sqlite3.Error:
            conn.rollback()
            raise
        finally:
            conn.close()
        logger.info(f"[TEAM {team_id}] Dados de {month} limpos ({tickets} tickets, {chamados} chamados)")
        return {"tickets": tickets, "chamados": chamados}

    def list_record_dates(self, team_id) -> List[str]:
        """Todas as datas gravadas (tickets + chamados), para montar a lista de meses."""
        conn = self._connect()
        rows = conn.execute('''
            SELECT data_abertura AS d FROM tickets WHERE user_id = ?
            UNION ALL
            SELECT criado AS d FROM chamados WHERE user_id = ?
        ''', (str(team_id), str(team_id))).fetchall()
        conn.close()
        return [r['d'] for r in rows if r['d']]

    # ------------------------------------------------------------------
    # Histórico de uploads
    # ------------------------------------------------------------------
    def save_upload_history(self, team_id, kind, month, count, file_hash=None):
        conn = self._connect()
        with conn:
            conn.execute('''
                INSERT INTO upload_history (user_id, kind, month, count, file_hash, timestamp)
                VALUES (?, ?, ?, ?, ?, ?)
            ''', (str(team_id), kind, month, count, file_hash, datetime.now().isoformat()))
        conn.close()

    def list_upload_history(self, team_id) -> List[Dict]:
        conn = self._connect()
        rows = conn.execute('''
            SELECT kind, month, count, file_hash, timestamp
            FROM upload_history WHERE user_id = ? ORDER BY id DESC
        ''', (str(team_id),)).fetchall()
        conn.close()
        return [dict(r) for r in rows]
