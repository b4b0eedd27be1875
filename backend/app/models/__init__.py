from app.models.enums import PERIOD_PRIORITY, FieldGroup, FieldKind, PeriodType
from app.models.target import TARGET_INPUT_COLUMNS, TargetRecord

__all__ = [
    "PERIOD_PRIORITY",
    "FieldGroup",
    "FieldKind",
    "PeriodType",
    "TARGET_INPUT_COLUMNS",
    "TargetRecord",
]
