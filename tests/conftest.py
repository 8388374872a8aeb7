"""Shared fixtures: a mock-mode client over the sample SalesDB catalog."""

from __future__ import annotations

import pytest

from analysis import IndexAnalyzer
from utils.sqlserver_client import SqlServerClient, default_mock_catalog


@pytest.fixture
def mock_catalog() -> dict:
    return default_mock_catalog()


@pytest.fixture
def mock_client(mock_catalog: dict) -> SqlServerClient:
    client = SqlServerClient(mock_mode=True, mock_catalog=mock_catalog)
    yield client
    client.close_all()


@pytest.fixture
def analyzer(mock_client: SqlServerClient) -> IndexAnalyzer:
    return IndexAnalyzer(mock_client)


@pytest.fixture
def sales_report(analyzer: IndexAnalyzer):
    """Full LIMITED report of SalesDB."""
    return analyzer.analyze_indexes("SalesDB")


def executed_queries(client: SqlServerClient) -> list[tuple[str, tuple]]:
    """Every (query, params) pair the mock connections received, in order."""
    executed = []
    for conn in client._connections.values():
        executed.extend(conn.executed)
    return executed
