from __future__ import annotations

from src.vectorstore.milvus import build_filter_expr, quote_value


def test_quote_value_escapes_quotes_and_backslashes() -> None:
    assert quote_value('say "hi"') == '"say \\"hi\\""'
    assert quote_value("a\\b") == '"a\\\\b"'


def test_filter_combines_tenant_and_documents() -> None:
    expr = build_filter_expr(document_ids=["b", "a", "b"], tenant_id="acme")
    assert expr == '(tenant_id == "acme") and (document_id in ["a", "b"])'


def test_filter_is_none_without_scope() -> None:
    assert build_filter_expr() is None
    assert build_filter_expr(document_ids=[], tenant_id="*") is None


def test_filter_documents_only() -> None:
    assert build_filter_expr(document_ids=["x"]) == '(document_id in ["x"])'


def test_filter_keeps_tenant_case() -> None:
    assert build_filter_expr(tenant_id="T2") == '(tenant_id == "T2")'
    assert build_filter_expr(tenant_id="") == '(tenant_id == "")'
