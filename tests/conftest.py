"""Test configuration and fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest

from guided_workflow.config import WorkflowSettings
from guided_workflow.workflow.rulesets import RulesetRegistry, default_rulesets

REPO_ROOT = Path(__file__).resolve().parents[1]


@pytest.fixture
def sample_workflow_path() -> Path:
    """Provide the bundled battery export workflow."""
    return REPO_ROOT / "workflows" / "export_batteries_MY_to_HK_v1.yaml"


@pytest.fixture
def knowledge_dir() -> Path:
    """Provide the bundled knowledge documents."""
    return REPO_ROOT / "knowledge"


@pytest.fixture
def rulesets() -> RulesetRegistry:
    """Provide the built-in rulesets plus a stub used by synthetic workflows."""
    registry = default_rulesets()
    registry.register("stub_profile", lambda inputs: {"un": "UN3480", "pi": "PI965"})
    return registry


@pytest.fixture
def settings(tmp_path: Path, sample_workflow_path: Path, knowledge_dir: Path) -> WorkflowSettings:
    """Provide settings isolated from the developer's environment and .env."""
    return WorkflowSettings(
        _env_file=None,
        workflow_path=sample_workflow_path,
        knowledge_dir=knowledge_dir,
        guidance_base_url="",
        session_state_path=tmp_path / "sessions",
        log_level="DEBUG",
    )
