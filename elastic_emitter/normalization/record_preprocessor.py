from collections.abc import MutableMapping
from typing import Optional

from .type_coercion import TypeCoercer


class RecordPreprocessor:
    """
    Coerces custom attributes of a record in place.

    ``attrs`` values become strings and ``attrsint`` values become numbers,
    so the search backend sees a single type per attribute across records.
    """

    def __init__(self, type_coercer: Optional[TypeCoercer] = None):
        self.type_coercer = type_coercer or TypeCoercer()

    def preprocess(self, record: dict) -> None:
        attrs = record.get("attrs")
        if isinstance(attrs, MutableMapping):
            for name in list(attrs):
                attrs[name] = self.type_coercer.string_value(attrs[name])

        attrs_int = record.get("attrsint")
        if isinstance(attrs_int, MutableMapping):
            for name in list(attrs_int):
                attrs_int[name] = self.type_coercer.num_value(attrs_int[name])

