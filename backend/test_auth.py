"""
Testes de validação do sistema de autenticação
"""
from gestor.auth import (
    authenticate_user, create_token, hash_password, token_from_header, verify_password, verify_token,
)


def test_hash_password():
    """Testa se o hash está funcionando"""
    password = "minha_senha_secreta"
    hashed = hash_password(password)

    assert hashed != password, "❌ Hash não deve ser igual à senha!"
    assert hashed.startswith('$2b$'), "❌ Hash deve começar com $2b$"


def test_verify_password():
    """Testa se a verificação está funcionando"""
    hashed = hash_password("teste123")

    assert verify_password("teste123", hashed), "❌ Senha correta não foi aceita!"
    assert not verify_password("senha_errada", hashed), "❌ Senha incorreta foi aceita!"
    assert not verify_password("teste123", "hash-corrompido")


def test_register_and_login(repo):
    """Testa registro e login completo"""
    repo.create_user("Time Teste", "teste@empresa.com", "senha_forte_123")

    user = authenticate_user(repo, "teste@empresa.com", "senha_forte_123")
    assert user is not None
    assert user["email"] == "teste@empresa.com"
    assert user["role"] == "TEAM"

    assert authenticate_user(repo, "teste@empresa.com", "senha_errada") is None
    assert authenticate_user(repo, "ninguem@empresa.com", "x") is None


def test_senha_legada_migra_para_bcrypt(repo):
    """Senha em texto plano (versão antiga) é aceita uma vez e regravada em bcrypt"""
    team = repo.create_user("Legado", "legado@empresa.com", "qualquer")
    repo.set_password_hash(team["id"], "senha_antiga")

    assert authenticate_user(repo, "legado@empresa.com", "senha_antiga") is not None
    assert repo.get_credentials("legado@empresa.com")["password"].startswith("$2")
    assert authenticate_user(repo, "legado@empresa.com", "senha_antiga") is not None


def test_token_ida_e_volta(monkeypatch):
    monkeypatch.setenv("JWT_SECRET", "segredo-de-teste")
    token = create_token({"id": "abc-123", "role": "MANAGER"})
    assert verify_token(token) == {"user_id": "abc-123", "role": "MANAGER"}


def test_token_invalido_ou_expirado(monkeypatch):
    monkeypatch.setenv("JWT_SECRET", "segredo-de-teste")
    assert verify_token("nao-e-um-jwt") is None
    assert verify_token(None) is None

    monkeypatch.setenv("JWT_EXPIRATION_HOURS", "-1")
    assert verify_token(create_token({"id": "abc", "role": "TEAM"})) is None

    monkeypatch.setenv("JWT_EXPIRATION_HOURS", "24")
    token = create_token({"id": "abc", "role": "TEAM"})
    monkeypatch.setenv("JWT_SECRET", "outro-segredo")
    assert verify_token(token) is None


def test_token_from_header():
    assert token_from_header("Bearer abc.def") == "abc.def"
    assert token_from_header("bearer xyz") == "xyz"
    assert token_from_header("Basic abc") is None
    assert token_from_header(None) is None
