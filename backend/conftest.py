import pytest

from app import create_app
from gestor.database import Repository


@pytest.fixture
def repo(tmp_path, monkeypatch):
    """Repositório SQLite descartável, sem gestor pré-cadastrado."""
    monkeypatch.delenv('MANAGER_EMAIL', raising=False)
    monkeypatch.delenv('MANAGER_PASSWORD', raising=False)
    repository = Repository(tmp_path / 'gestor.db')
    repository.init_db()
    return repository


@pytest.fixture
def client(repo, monkeypatch, tmp_path):
    monkeypatch.setenv('JWT_SECRET', 'segredo-de-teste')
    monkeypatch.setenv('UPLOAD_DIR', str(tmp_path / 'uploads'))
    app = create_app(repo)
    app.config['TESTING'] = True
    return app.test_client()
