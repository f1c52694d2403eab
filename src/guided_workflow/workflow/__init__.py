"""Declarative workflow interpreter.

This package provides first-class types for:
- Workflow definitions (steps, questions, transitions, advisories)
- A condition evaluator that never executes code
- Named ruleset plugins for computed classifications
- Guidance lookup for contextual help
- The step advance state machine and its summaries

Every advance call is a pure function of the workflow, the session state and
the submitted answer, so sessions can be persisted and resumed anywhere.
"""

__all__: list[str] = []
