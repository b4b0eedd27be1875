import enum


class PeriodType(str, enum.Enum):
    weekly = "weekly"
    monthly = "monthly"
    yearly = "yearly"


# higher priority targets block saving lower ones over the same range
PERIOD_PRIORITY: dict[PeriodType, int] = {
    PeriodType.yearly: 3,
    PeriodType.monthly: 2,
    PeriodType.weekly: 1,
}


class FieldKind(str, enum.Enum):
    input = "input"
    calculated = "calculated"


class FieldGroup(str, enum.Enum):
    funnel_rate = "funnel_rate"
    budget = "budget"
    budget_target = "budget_target"
