"""Guided Workflow.

A declarative workflow interpreter that drives a multi-turn question/answer
session toward a terminal outcome:
- versioned YAML workflow definitions validated at load time
- conditional questions, advisories and transitions
- pluggable rulesets for computed classifications
- guidance lookup from a document store
- a CLI and a REST API host
"""

__version__ = "0.1.0"

from guided_workflow.config import WorkflowSettings

__all__ = ["__version__", "WorkflowSettings"]
