"""Transport adapters.

* :class:`Adapter` -- abstract base every transport implements.
* :class:`HttpxAdapter` -- the default, on :class:`httpx.AsyncClient`.
* :class:`AdapterRegistry` -- named adapters with one active at a time.
"""

from fetchkit.adapters.base import Adapter, AdapterRequest, AdapterResponse
from fetchkit.adapters.httpx_adapter import HttpxAdapter, extract_response_data
from fetchkit.adapters.registry import AdapterRegistry

__all__ = [
    "Adapter",
    "AdapterRegistry",
    "AdapterRequest",
    "AdapterResponse",
    "HttpxAdapter",
    "extract_response_data",
]
