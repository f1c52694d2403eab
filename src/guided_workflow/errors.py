"""Exception taxonomy shared across the workflow interpreter.

Answer validation failures are not exceptions: they are reported back to the
caller on the UI descriptor so the same question can be re-posed.
"""

from __future__ import annotations


class WorkflowConfigError(ValueError):
    """A workflow authoring or host configuration defect.

    These are detected when the workflow is loaded and are fatal for the process.
    """


class ExpressionError(WorkflowConfigError):
    """A condition does not match the supported expression grammar."""


class UnknownRulesetError(WorkflowConfigError):
    """A compute directive names a ruleset that was never registered."""


class IllegalTransitionError(ValueError):
    """The session phase does not allow the requested advance."""
