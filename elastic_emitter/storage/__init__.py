# ==============================================
# STORAGE (Elasticsearch)
# ==============================================
#
# This package handles everything between an accepted record
# and the search backend: buffering, the client and the
# index template.
#
# Modules:
# --------
# - bulk_buffer.py     → NDJSON line-pair buffer for the _bulk API
# - search_backend.py  → Elasticsearch client, bulk writes, template bootstrap
# - index_template.py  → Template body built from schema/api_index_template.json
#
# ==============================================

from .bulk_buffer import BulkBuffer
from .search_backend import SearchBackend, BulkResult, build_es_client
from .index_template import build_index_template

__all__ = [
    "BulkBuffer",
    "SearchBackend",
    "BulkResult",
    "build_es_client",
    "build_index_template",
]
