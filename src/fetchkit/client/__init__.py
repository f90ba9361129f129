"""Client layer for fetchkit.

* :class:`AsyncClient` -- the application-facing facade.
* :class:`RequestOrchestrator` -- the per-call state machine (cache,
  transport race, classification, retry).
* :class:`RequestDeduper` -- shares identical in-flight calls.

Example::

    from fetchkit.client import AsyncClient

    async with AsyncClient() as client:
        data = await client.get("https://api.example.com/users")
"""

from fetchkit.client.async_client import AsyncClient
from fetchkit.client.dedupe import RequestDeduper
from fetchkit.client.orchestrator import ExecutionPlan, RequestOrchestrator

__all__ = ["AsyncClient", "ExecutionPlan", "RequestDeduper", "RequestOrchestrator"]
