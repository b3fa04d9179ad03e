"""Schema detection: value-based type inference, key candidates, declared schemas."""

from reportstudio.analysis.typing.config import TypeInferenceConfig, load_type_inference_config
from reportstudio.analysis.typing.inference import (
    SchemaMismatch,
    SchemaReconciliation,
    coerce_records,
    coerce_value,
    detect_primary_keys,
    detect_schema,
    infer_column_type,
    reconcile_schema,
)

__all__ = [
    "TypeInferenceConfig",
    "load_type_inference_config",
    "SchemaMismatch",
    "SchemaReconciliation",
    "coerce_records",
    "coerce_value",
    "detect_primary_keys",
    "detect_schema",
    "infer_column_type",
    "reconcile_schema",
]
