import logging
import os
import re
import uuid
from pathlib import Path

from flask import Blueprint, Flask, current_app, jsonify, request
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from gestor import config
from gestor.aggregator import available_months, dashboard_summary
from gestor.auth import authenticate_user, create_token, token_from_header, verify_token
from gestor.database import ROLE_MANAGER, Repository
from gestor.importer import (
    KIND_CHAMADOS, KIND_TICKETS, detect_kind, get_file_hash, import_file, normalize_records,
)

logger = logging.getLogger(__name__)

MONTH_RE = re.compile(r'^\d{4}-(0[1-9]|1[0-2])$')

api = Blueprint('api', __name__, url_prefix='/api')


# -------------------------------------------------------
# AJUDA: Funções utilitárias (repositório e autenticação)
# -------------------------------------------------------
def get_repository() -> Repository:
    return current_app.config['REPOSITORY']


def get_current_user_from_request():
    """Retorna o usuário atual (id, name, email, role) a partir do token JWT."""
    identity = verify_token(token_from_header(request.headers.get("Authorization")))
    if not identity:
        return None
    return get_repository().get_user_by_id(identity["user_id"])


def is_manager(user) -> bool:
    return bool(user) and user.get('role') == ROLE_MANAGER


def can_access_team(user, team_id) -> bool:
    """Gestor acessa qualquer time; um time só acessa os próprios dados."""
    return is_manager(user) or (bool(user) and str(user.get('id')) == str(team_id))


def valid_month(month) -> bool:
    return bool(month) and bool(MONTH_RE.match(month))


def _team_guard(team_id):
    """Retorna (user, team, erro). Se erro não for None, a rota deve devolvê-lo."""
    user = get_current_user_from_request()
    if not user:
        return None, None, (jsonify({"success": False, "error": "Usuário não autenticado"}), 401)
    if not can_access_team(user, team_id):
        return user, None, (jsonify({"success": False, "error": "Acesso negado"}), 403)
    team = get_repository().get_team(team_id)
    if not team:
        return user, None, (jsonify({"success": False, "error": "Time não encontrado"}), 404)
    return user, team, None


# -------------------------------------------------------
# Rotas públicas
# -------------------------------------------------------
@api.get('/ping')
def api_ping():
    return jsonify({'ok': True})


@api.get('/setup/status')
def setup_status():
    return jsonify({"configured": get_repository().has_manager()})


@api.post('/setup')
def setup_manager():
    """Cria o primeiro gestor. Só é permitido enquanto nenhum gestor existir."""
    repo = get_repository()
    if repo.has_manager():
        return jsonify({"success": False, "error": "Gestor já configurado"}), 403

    data = request.get_json(silent=True) or {}
    name = (data.get('name') or '').strip()
    email = (data.get('email') or '').strip().lower()
    password = data.get('password') or ''
    if not email or not password:
        return jsonify({"success": False, "error": "E-mail e senha são obrigatórios"}), 400

    user = repo.create_user(name or email.split('@')[0], email, password, role=ROLE_MANAGER)
    if not user:
        return jsonify({"success": False, "error": "Este e-mail já está em uso"}), 409
    logger.info(f"✅ Gestor inicial '{email}' configurado")
    return jsonify({"success": True, "user": user}), 201


@api.post('/login')
def login():
    data = request.get_json(silent=True) or {}
    email = (data.get('email') or '').strip().lower()
    password = data.get('password') or ''
    user = authenticate_user(get_repository(), email, password)
    if user:
        return jsonify({"success": True, "token": create_token(user), "user": user})
    return jsonify({"success": False, "error": "Credenciais inválidas"}), 401


@api.get('/me')
def user_me():
    user = get_current_user_from_request()
    if not user:
        return jsonify({"error": "Usuário não autenticado"}), 401
    return jsonify(user)


# -------------------------------------------------------
# Gestão de times (somente gestor)
# -------------------------------------------------------
@api.get('/teams')
def list_teams():
    user = get_current_user_from_request()
    if not user:
        return jsonify({"success": False, "error": "Usuário não autenticado"}), 401
    if not is_manager(user):
        return jsonify({"success": False, "error": "Acesso negado"}), 403
    return jsonify(get_repository().list_teams())


@api.post('/teams')
def create_team():
    user = get_current_user_from_request()
    if not user:
        return jsonify({"success": False, "error": "Usuário não autenticado"}), 401
    if not is_manager(user):
        return jsonify({"success": False, "error": "Acesso negado"}), 403

    data = request.get_json(silent=True) or {}
    name = (data.get('name') or '').strip()
    email = (data.get('email') or '').strip().lower()
    password = data.get('password') or ''
    if not email or not password:
        return jsonify({"success": False, "error": "E-mail e senha são obrigatórios"}), 400

    team = get_repository().create_user(name or email.split('@')[0], email, password)
    if not team:
        return jsonify({"success": False, "error": "Este e-mail já está em uso"}), 409
    return jsonify(team), 201


@api.put('/teams/<team_id>')
def update_team(team_id):
    user = get_current_user_from_request()
    if not user:
        return jsonify({"success": False, "error": "Usuário não autenticado"}), 401
    if not is_manager(user):
        return jsonify({"success": False, "error": "Acesso negado"}), 403

    data = request.get_json(silent=True) or {}
    email = (data.get('email') or '').strip().lower() or None
    result = get_repository().update_team(
        team_id, name=(data.get('name') or '').strip() or None, email=email, password=data.get('password') or None,
    )
    if result is None:
        return jsonify({"success": False, "error": "Time não encontrado"}), 404
    if result is False:
        return jsonify({"success": False, "error": "E-mail já em uso"}), 409
    return jsonify(result)


@api.delete('/teams/<team_id>')
def delete_team(team_id):
    user = get_current_user_from_request()
    if not user:
        return jsonify({"success": False, "error": "Usuário não autenticado"}), 401
    if not is_manager(user):
        return jsonify({"success": False, "error": "Acesso negado"}), 403
    if not get_repository().delete_team(team_id):
        return jsonify({"success": False, "error": "Time não encontrado"}), 404
    return jsonify({"success": True})


# -------------------------------------------------------
# Dados do time (gestor ou o próprio time)
# -------------------------------------------------------
@api.get('/teams/<team_id>/dashboard')
def team_dashboard(team_id):
    _, team, error = _team_guard(team_id)
    if error:
        return error

    month = (request.args.get('month') or '').strip() or None
    if month and not valid_month(month):
        return jsonify({"success": False, "error": "Mês inválido (use YYYY-MM)"}), 400
    start = request.args.get('start') or None
    end = request.args.get('end') or None

    repo = get_repository()
    tickets = repo.list_tickets(team_id, month)
    chamados = repo.list_chamados(team_id, month)
    # Histórico anual: todos os tickets do time, independente do mês escolhido
    all_tickets = repo.list_tickets(team_id, limit=None)

    stats = dashboard_summary(tickets, chamados, start=start, end=end, history_tickets=all_tickets)
    months = available_months(repo.list_record_dates(team_id), field=lambda d: d)

    return jsonify({
        "team": team,
        "tickets": [t.to_dict() for t in tickets],
        "chamados": [c.to_dict() for c in chamados],
        "manual_stats": repo.get_manual_stats(team_id, month) if month else None,
        "available_months": months,
        "stats": stats,
    })


@api.post('/teams/<team_id>/manual-stats')
def save_manual_stats(team_id):
    _, _, error = _team_guard(team_id)
    if error:
        return error

    data = request.get_json(silent=True) or {}
    month = (data.get('month') or '').strip()
    if not valid_month(month):
        return jsonify({"success": False, "error": "Mês é obrigatório (YYYY-MM)"}), 400
    satisfaction = str(data.get('satisfaction', '0') or '0')
    manuals = str(data.get('manuals', '0') or '0')
    saved = get_repository().save_manual_stats(team_id, month, satisfaction, manuals)
    return jsonify(saved)


@api.post('/teams/<team_id>/upload')
def upload_data(team_id):
    _, _, error = _team_guard(team_id)
    if error:
        return error

    repo = get_repository()
    file = request.files.get('file')
    file_hash = None

    if file:
        kind = (request.form.get('type') or '').strip() or None
        month = (request.form.get('month') or '').strip() or None
        upload_dir = Path(current_app.config['UPLOAD_DIR'])
        upload_dir.mkdir(parents=True, exist_ok=True)
        temp_path = upload_dir / f"temp_{uuid.uuid4().hex}{Path(file.filename or '').suffix.lower()}"
        try:
            file.save(str(temp_path))
            kind = kind or detect_kind(file.filename or '')
            file_hash = get_file_hash(temp_path)
            records = import_file(temp_path, kind)
        except ValueError as e:
            return jsonify({"success": False, "error": str(e)}), 400
        finally:
            temp_path.unlink(missing_ok=True)
    else:
        data = request.get_json(silent=True) or {}
        kind = data.get('type')
        month = (data.get('month') or '').strip() or None
        rows = data.get('data')
        if not isinstance(rows, list) or not all(isinstance(r, dict) for r in rows):
            return jsonify({"success": False, "error": "Formato de dados inválido"}), 400
        try:
            records = normalize_records(rows, kind)
        except ValueError as e:
            return jsonify({"success": False, "error": str(e)}), 400

    if month and not valid_month(month):
        return jsonify({"success": False, "error": "Mês inválido (use YYYY-MM)"}), 400

    logger.info(f"[Upload] Time {team_id}: {len(records)} {kind} (mês: {month or 'todos'})")
    if kind == KIND_TICKETS:
        count = repo.replace_tickets(team_id, records, month)
    elif kind == KIND_CHAMADOS:
        count = repo.replace_chamados(team_id, records, month)
    else:
        return jsonify({"success": False, "error": "Tipo inválido. Use 'tickets' ou 'chamados'."}), 400

    repo.save_upload_history(team_id, kind, month, count, file_hash)
    return jsonify({"success": True, "type": kind, "count": count})


@api.delete('/teams/<team_id>/data')
def reset_team_data(team_id):
    _, _, error = _team_guard(team_id)
    if error:
        return error

    month = (request.args.get('month') or '').strip()
    if not valid_month(month):
        return jsonify({"success": False, "error": "Mês é obrigatório para limpeza de dados."}), 400
    removed = get_repository().reset_month(team_id, month)
    return jsonify({"success": True, "removed": removed, "message": f"Dados de {month} limpos com sucesso."})


@api.get('/teams/<team_id>/uploads')
def upload_history(team_id):
    _, _, error = _team_guard(team_id)
    if error:
        return error
    return jsonify(get_repository().list_upload_history(team_id))


@api.errorhandler(Exception)
def handle_unexpected_error(e):
    if isinstance(e, HTTPException):
        return e
    logger.exception(f"❌ Erro inesperado em {request.method} {request.path}")
    return jsonify({"success": False, "error": "Erro interno do servidor"}), 500


def create_app(repository: Repository = None) -> Flask:
    config.load_env()

    app = Flask(__name__)
    # CORS: o frontend roda em outra porta e envia o header Authorization (JWT).
    CORS(
        app,
        resources={r"/api/*": {"origins": "*"}},
        allow_headers=["Content-Type", "Authorization"],
        expose_headers=["Content-Type", "Authorization"],
        methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    )

    if repository is None:
        repository = Repository(config.get_db_path())
    repository.init_db()
    app.config['REPOSITORY'] = repository
    app.config['UPLOAD_DIR'] = os.getenv('UPLOAD_DIR') or str(repository.db_path.parent / 'uploads')

    # Preflight OPTIONS responde 204 antes da autenticação; o Flask-CORS anexa os headers.
    @app.before_request
    def _handle_preflight_options():
        if request.method == 'OPTIONS':
            return ('', 204)

    app.register_blueprint(api)
    return app


if __name__ == '__main__':
    config.load_env()
    config.configure_logging()
    create_app().run(host='0.0.0.0', port=int(os.getenv('PORT', '5000')))
