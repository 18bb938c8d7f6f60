import hashlib
import logging
import os
from typing import Awaitable, Optional

from athenaquery.util.env import get_env_bool

logger = logging.getLogger(__name__)


def _otel_exporter_configured() -> bool:
    if get_env_bool("OTEL_DISABLE_EXPORTER", False):
        return False
    if (os.getenv("OTEL_TRACES_EXPORTER") or "").strip().lower() == "none":
        return False
    endpoint = (os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT") or "").strip()
    traces_endpoint = (os.getenv("OTEL_EXPORTER_OTLP_TRACES_ENDPOINT") or "").strip()
    return bool(endpoint or traces_endpoint)


def trace_enabled() -> bool:
    """Return True when query tracing is enabled or OTEL exporter defaults apply."""
    raw = os.getenv("ATHENA_TRACE_QUERIES")
    if raw is not None:
        try:
            return get_env_bool("ATHENA_TRACE_QUERIES", False) is True
        except ValueError:
            logger.warning("Invalid ATHENA_TRACE_QUERIES value '%s'; tracing disabled.", raw)
            return False
    return _otel_exporter_configured()


def _hash_sql(sql: str) -> str:
    return hashlib.sha256(sql.encode("utf-8")).hexdigest()


async def trace_query_operation(
    name: str,
    operation: Awaitable,
    sql: Optional[str] = None,
    execution_id: Optional[str] = None,
    provider: str = "athena",
    execution_model: str = "async",
):
    """Await ``operation`` inside an OTEL span when tracing is enabled."""
    if not trace_enabled():
        return await operation

    from opentelemetry import trace

    tracer = trace.get_tracer("athenaquery")
    with tracer.start_as_current_span(name) as span:
        span.set_attribute("db.provider", provider)
        span.set_attribute("db.execution_model", execution_model)
        if sql:
            span.set_attribute("db.statement_hash", _hash_sql(sql))
        if execution_id:
            span.set_attribute("db.execution_id", execution_id)
        try:
            result = await operation
            span.set_attribute("db.status", "ok")
            return result
        except Exception:
            span.set_attribute("db.status", "error")
            raise
