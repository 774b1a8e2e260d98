"""Pure valuation domain logic: enums, metric math, formulas and effect composition."""

from .effects import AppliedEffect, EffectPoint, apply_effect_operator, interpolate_effect
from .enums import (
    DataDomain,
    EffectOperator,
    EffectStage,
    FormulaId,
    InsightStatus,
    MethodStatus,
    ScopeMode,
    ScopeType,
)
from .formulas import pick_primary_value, recompute_derived_outputs, resolve_formula_id
