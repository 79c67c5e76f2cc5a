"""
Testes de importação de CSV (tickets) e planilhas (chamados)
"""
import pandas as pd
import pytest

from gestor.importer import (
    KIND_CHAMADOS, KIND_TICKETS, detect_kind, get_file_hash, import_file,
    normalize_chamados, normalize_header, normalize_tickets, read_table,
)

CSV_HEADER = "ID;Título;Status;Data de abertura;Requerente - Requerente;Atribuído - Técnico;Categoria;Localização;Origem da requisição"


def _write_csv(path, lines, encoding="utf-8-sig"):
    path.write_text("\n".join(lines) + "\n", encoding=encoding)
    return path


def test_normalize_header_tolera_bom_acentos_e_caixa():
    assert normalize_header("\ufeffID") == "id"
    assert normalize_header("  Título ") == "titulo"
    assert normalize_header("Nº Chamado") == normalize_header("N° Chamado") == "no chamado"
    assert normalize_header("Origem  da Requisição") == "origem da requisicao"


def test_detect_kind_pela_extensao():
    assert detect_kind("export.csv") == KIND_TICKETS
    assert detect_kind("Chamados.XLSX") == KIND_CHAMADOS
    with pytest.raises(ValueError):
        detect_kind("relatorio.pdf")


def test_importa_csv_de_tickets(tmp_path):
    path = _write_csv(tmp_path / "tickets.csv", [
        CSV_HEADER,
        "101;Impressora travada;Novo;09/01/2026 08:03;Ana Lima;João;SAJMP > Impressão;Sede;WhatsApp",
        "102;;Fechado;2026-01-15;Carlos;João;Rede;Sede;Email",
        ";Linha sem ID;Novo;10/01/2026;X;Y;Z;W;Email",
        "103;Sem data;Novo;Indefinido;Ana Lima;João;Rede;Sede;CAU",
    ])

    tickets = import_file(path)
    assert [t.id for t in tickets] == ["101", "102", "103"]

    first = tickets[0]
    assert first.title == "Impressora travada"
    assert first.opened_at == "2026-01-09T00:00:00.000Z"
    assert first.requester == "Ana Lima"
    assert first.technician == "João"
    assert first.category == "SAJMP > Impressão"
    assert first.origin == "WhatsApp"
    assert first.location == "Sede"

    assert tickets[1].title == "Sem Título"
    assert tickets[1].opened_at == "2026-01-15T00:00:00.000Z"
    # data inválida cai no fallback de "agora", ainda em formato ISO
    assert tickets[2].opened_at.endswith("Z")


def test_csv_com_virgula_e_latin1(tmp_path):
    path = _write_csv(tmp_path / "tickets.csv", [
        "ID,Título,Status,Data de abertura,Categoria",
        "7,Configuração,Novo,31/01/2026,Rede",
    ], encoding="latin-1")
    tickets = import_file(path, KIND_TICKETS)
    assert len(tickets) == 1
    assert tickets[0].title == "Configuração"
    assert tickets[0].opened_at == "2026-01-31T00:00:00.000Z"


def test_linhas_vazias_sao_ignoradas(tmp_path):
    path = _write_csv(tmp_path / "tickets.csv", [CSV_HEADER, "", "1;A;Novo;01/02/2026;;;;;", ";;;;;;;;"])
    rows = read_table(path)
    assert len(rows) == 1


def test_aliases_camel_case():
    rows = [{"id": "9", "titulo": "T", "status": "Novo", "dataAbertura": "2026-03-01",
             "requerente": "Ana", "tecnico": "Bia", "origem": "CAU"}]
    ticket = normalize_tickets(rows)[0]
    assert ticket.opened_at == "2026-03-01T00:00:00.000Z"
    assert ticket.requester == "Ana"
    assert ticket.technician == "Bia"
    assert ticket.origin == "CAU"


def test_importa_planilha_de_chamados(tmp_path):
    path = tmp_path / "chamados.xlsx"
    df = pd.DataFrame([
        {"Nº Chamado": "C-1", "Resumo": "Erro no login", "Criado": "09/01/2026 10:00",
         "Fim do prazo": "12/01/2026", "Prazo Ajustado": "", "Status do chamado": "Aberto",
         "Relator": "Ana", "Módulo": "Portal", "Funcionalidade": "Login"},
        {"Nº Chamado": "C-2", "Resumo": "Lentidão", "Criado": "2026-02-03",
         "Fim do prazo": "", "Prazo Ajustado": "", "Status do chamado": "",
         "Relator": "Bia", "Módulo": "Portal", "Funcionalidade": ""},
        {"Nº Chamado": "", "Resumo": "sem número", "Criado": "", "Fim do prazo": "",
         "Prazo Ajustado": "", "Status do chamado": "", "Relator": "", "Módulo": "", "Funcionalidade": ""},
    ])
    df.to_excel(path, index=False, engine="openpyxl")

    chamados = import_file(path)
    assert [c.number for c in chamados] == ["C-1", "C-2"]
    assert chamados[0].created_at == "2026-01-09T00:00:00.000Z"
    assert chamados[0].deadline == "12/01/2026"
    assert chamados[0].status == "Aberto"
    assert chamados[0].module == "Portal"
    assert chamados[0].feature == "Login"
    assert chamados[1].created_at == "2026-02-03T00:00:00.000Z"
    assert chamados[1].status == ""


def test_planilha_vazia_e_erro(tmp_path):
    path = tmp_path / "vazia.xlsx"
    pd.DataFrame(columns=["Nº Chamado", "Resumo", "Criado"]).to_excel(path, index=False, engine="openpyxl")
    with pytest.raises(ValueError):
        import_file(path)


def test_chamados_com_cabecalhos_alternativos():
    rows = [{"Numero": "55", "Resumo": "X", "Criado": "1 fev 2026", "Status": "Resolvido", "Modulo": "RH"}]
    chamado = normalize_chamados(rows)[0]
    assert chamado.number == "55"
    assert chamado.created_at == "2026-02-01T00:00:00.000Z"
    assert chamado.status == "Resolvido"
    assert chamado.module == "RH"


def test_hash_do_arquivo(tmp_path):
    a = _write_csv(tmp_path / "a.csv", ["ID", "1"])
    b = _write_csv(tmp_path / "b.csv", ["ID", "1"])
    assert get_file_hash(a) == get_file_hash(b)
    assert len(get_file_hash(a)) == 64


def test_planilha_xls_usa_xlrd(tmp_path, monkeypatch):
    """Arquivos .xls (Excel 97-2003) são lidos com o engine xlrd"""
    engines = []

    def fake_read_excel(path, **kwargs):
        engines.append(kwargs.get("engine"))
        return pd.DataFrame([{"Nº Chamado": "X-1", "Criado": "05/03/2026"}])

    monkeypatch.setattr(pd, "read_excel", fake_read_excel)
    path = tmp_path / "chamados.xls"
    path.write_bytes(b"")

    chamados = import_file(path)
    assert engines == ["xlrd"]
    assert chamados[0].number == "X-1"
    assert chamados[0].created_at == "2026-03-05T00:00:00.000Z"
