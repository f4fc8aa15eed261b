"""Plan compilation: composition primitives and the blueprint compiler."""

from .compiler import PlanCompiler, make_plan_v2
from .compose import parallelize_plans, sequentialize_plans

__all__ = [
    "PlanCompiler",
    "make_plan_v2",
    "parallelize_plans",
    "sequentialize_plans",
]
