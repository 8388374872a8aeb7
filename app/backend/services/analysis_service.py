"""Analysis Service: shared SQL Server client and cached index reports."""

import logging
import threading
import time

from analysis import IndexAnalyzer
from config.settings import ConnectionSettings, MOCK_MODE, REPORT_CACHE_TTL_SECONDS
from utils.sqlserver_client import SqlServerClient

logger = logging.getLogger("index_analysis_app.analysis")

_client = None
_client_lock = threading.Lock()

# Simple TTL cache
_cache: dict = {}
_cache_time: dict = {}
_cache_lock = threading.Lock()


def get_client() -> SqlServerClient:
    global _client
    with _client_lock:
        if _client is None:
            _client = SqlServerClient(ConnectionSettings.from_env(), mock_mode=MOCK_MODE)
            logger.info(f"SQL Server client initialized (mock_mode={MOCK_MODE})")
        return _client


def set_client(client) -> None:
    """Replace the shared client and drop cached reports."""
    global _client
    _client = client
    clear_cache()


def clear_cache() -> None:
    with _cache_lock:
        _cache.clear()
        _cache_time.clear()


def get_cached(key: str, fetch_func, ttl: int = 60):
    """Simple TTL cache wrapper."""
    now = time.time()
    with _cache_lock:
        if key in _cache and (now - _cache_time.get(key, 0)) < ttl:
            return _cache[key]
    data = fetch_func()
    with _cache_lock:
        _evict_expired(now, ttl)
        _cache[key] = data
        _cache_time[key] = now
    return data


def _evict_expired(now: float, ttl: int) -> None:
    for stale in [k for k, t in _cache_time.items() if now - t >= ttl]:
        _cache.pop(stale, None)
        _cache_time.pop(stale, None)


def analyze(database: str, table: str = None, index: str = None, detail_level: str = "LIMITED") -> dict:
    """Run (or reuse) an index analysis and return the report as a dict."""
    def fetch():
        report = IndexAnalyzer(get_client()).analyze_indexes(
            database, table=table, index=index, detail_level=detail_level,
        )
        return report.to_dict()

    key = f"analysis:{database}:{table or '*'}:{index or '*'}:{(detail_level or 'LIMITED').upper()}".lower()
    return get_cached(key, fetch, ttl=REPORT_CACHE_TTL_SECONDS)
