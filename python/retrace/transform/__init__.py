from retrace.transform.steps import (
    AddMarkStep,
    RemoveMarkStep,
    ReplaceAroundStep,
    ReplaceStep,
    SetNodeMarkupStep,
    Step,
    StepResult,
)
from retrace.transform.transform import Transform

__all__ = [
    "AddMarkStep",
    "RemoveMarkStep",
    "ReplaceAroundStep",
    "ReplaceStep",
    "SetNodeMarkupStep",
    "Step",
    "StepResult",
    "Transform",
]
