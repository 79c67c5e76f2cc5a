"""
Módulo de Autenticação e Segurança

Gerencia hash de senhas (bcrypt), verificação de credenciais e emissão/
validação de tokens JWT. Para o restante da aplicação, o provedor de
identidade é opaco: recebe um token e devolve {user_id, role}.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

import bcrypt
import jwt

from gestor import config

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"


def hash_password(password: str) -> str:
    """
    Cria um hash seguro da senha usando o algoritmo bcrypt.

    Argumentos:
        password (str): Senha em texto plano.

    Retorna:
        str: Hash seguro da senha.
    """
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, hashed_password: str) -> bool:
    """
    Verifica se uma senha em texto plano corresponde ao hash armazenado.

    Retorna:
        bool: True se a senha estiver correta, False caso contrário.
    """
    try:
        return bcrypt.checkpw(password.encode('utf-8'), hashed_password.encode('utf-8'))
    except (ValueError, TypeError) as e:
        logger.warning(f"Erro ao verificar senha: {e}")
        return False


def authenticate_user(repository, email: str, password: str) -> Optional[Dict]:
    """
    Autentica um usuário pelo e-mail e senha.
    Senhas legadas (texto plano, da versão sem backend) são migradas para
    bcrypt no primeiro login bem-sucedido.

    Retorna:
        dict | None: {id, name, email, role} se autenticado, senão None.
    """
    if not email or not password:
        return None
    creds = repository.get_credentials(email)
    if not creds:
        return None

    stored = creds['password']
    if isinstance(stored, str) and stored.startswith("$2"):
        ok = verify_password(password, stored)
    else:
        ok = (password == stored)
        if ok:
            logger.info(f"🔒 Atualizando senha do usuário {email} para bcrypt...")
            repository.set_password_hash(creds['id'], hash_password(password))

    if not ok:
        return None
    return {
        "id": creds['id'],
        "name": creds['name'],
        "email": creds['email'],
        "role": creds['role'],
    }


def create_token(user: Dict) -> str:
    payload = {
        "user_id": user["id"],
        "role": user["role"],
        "exp": datetime.now(timezone.utc) + timedelta(hours=config.get_jwt_expiration_hours()),
    }
    return jwt.encode(payload, config.get_jwt_secret(), algorithm=JWT_ALGORITHM)


def verify_token(token: str) -> Optional[Dict]:
    """Valida o token e devolve {user_id, role}, ou None se inválido/expirado."""
    if not token:
        return None
    try:
        payload = jwt.decode(token, config.get_jwt_secret(), algorithms=[JWT_ALGORITHM])
    except jwt.PyJWTError as e:
        logger.info(f"Token rejeitado: {e}")
        return None
    user_id = payload.get("user_id")
    if not user_id:
        return None
    return {"user_id": str(user_id), "role": payload.get("role")}


def token_from_header(header_value: Optional[str]) -> Optional[str]:
    auth = header_value or ""
    if not auth.lower().startswith("bearer "):
        return None
    return auth[7:].strip() or None
