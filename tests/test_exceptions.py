"""Tests for the domain exception hierarchy."""

import pytest

from lakeplan.exceptions import (
    BlueprintRunningError,
    BusinessRuleViolationError,
    DatabaseError,
    EmptyScopesError,
    EntityNotFoundError,
    InvalidPlanError,
    LakeplanError,
    MissingCapabilityError,
    NoTasksError,
    PersistError,
    PipelineNotFoundError,
    PlanCompileError,
    PluginNotFoundError,
)


@pytest.mark.parametrize(
    ("error", "bases"),
    [
        (PluginNotFoundError("jira"), (PlanCompileError, EntityNotFoundError)),
        (MissingCapabilityError("dora", "X"), (PlanCompileError,)),
        (EmptyScopesError(2), (PlanCompileError,)),
        (BlueprintRunningError(1), (BusinessRuleViolationError,)),
        (NoTasksError(), (BusinessRuleViolationError,)),
        (PersistError("Create pipeline failed"), (DatabaseError,)),
        (PipelineNotFoundError(5), (EntityNotFoundError,)),
        (InvalidPlanError("gap"), (ValueError,)),
    ],
)
def test_hierarchy(error, bases):
    assert isinstance(error, LakeplanError)
    for base in bases:
        assert isinstance(error, base)


def test_messages():
    assert str(EmptyScopesError(2)) == "connections[2].scopes is empty"
    assert str(BlueprintRunningError(4)) == "The blueprint 4 is running"
    assert str(NoTasksError()) == "No task to run"
    assert str(PipelineNotFoundError(5)) == "Pipeline with ID 5 not found"


def test_with_context():
    error = PlanCompileError("compile failed").with_context("connections[0]: plugin github timed out")
    assert isinstance(error, PlanCompileError)
    assert str(error) == "connections[0]: plugin github timed out"
