"""
Plan composition primitives.

Both functions return new plans and leave their inputs untouched; the empty
plan is the identity element of each.
"""

from lakeplan.models.plan import PipelinePlan, PipelineStage


def parallelize_plans(*plans: PipelinePlan) -> PipelinePlan:
    """Run plans side by side.

    Stage ``i`` of the result is the union of stage ``i`` of every input, so
    each input keeps its own ordering while different inputs are free to
    interleave. The result has as many stages as the longest input.
    """
    merged: list[PipelineStage] = []
    for plan in plans:
        for index, stage in enumerate(plan):
            if len(merged) <= index:
                merged.append(PipelineStage())
            merged[index].extend(list(stage))
    return PipelinePlan(merged)


def sequentialize_plans(*plans: PipelinePlan) -> PipelinePlan:
    """Run plans one after another.

    Every stage of a later plan is appended after every stage of the earlier
    ones, so nothing in a later plan starts before the earlier plans finished.
    """
    return PipelinePlan([PipelineStage(list(stage)) for plan in plans for stage in plan])
