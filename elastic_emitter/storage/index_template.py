import copy
import json
from pathlib import Path
from typing import Optional


SCHEMA_PATH = Path(__file__).resolve().parent.parent / "schema" / "api_index_template.json"

_schema_cache: Optional[dict] = None


def load_schema() -> dict:
    global _schema_cache
    if _schema_cache is None:
        with SCHEMA_PATH.open("r", encoding="utf-8") as f:
            _schema_cache = json.load(f)
    return copy.deepcopy(_schema_cache)


def template_name(index_prefix: str) -> str:
    """api- -> api, logs_ -> logs. Falls back to "api" for a prefix of only separators."""
    return index_prefix.rstrip("-_.") or "api"


def build_index_template(index_prefix: str) -> dict:
    """
    Composable index template covering every daily index of the prefix.

    Returns the keyword arguments for indices.put_index_template().
    """
    body = load_schema()
    body["index_patterns"] = [f"{index_prefix}*"]
    body["name"] = template_name(index_prefix)
    return body
