# ==============================================
# NORMALIZATION
# ==============================================
#
# This package handles cleaning request/response records
# BEFORE they are serialized into the bulk buffer.
#
# Modules:
# --------
# - type_coercion.py       → Deterministic string/number coercion, timestamp parsing
# - record_preprocessor.py → In-place coercion of a record's attrs / attrsint
#
# ==============================================

from .type_coercion import TypeCoercer
from .record_preprocessor import RecordPreprocessor

__all__ = ["TypeCoercer", "RecordPreprocessor"]
