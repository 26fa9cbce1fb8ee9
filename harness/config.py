"""Guard configuration with YAML support."""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import Field

from guard_core.budget import CorrectionBudget, DEFAULT_PER_UNIT_MAX
from guard_core.orchestrator import DEFAULT_STACK_TRACE_LIMIT
from guard_core.schemas import BaseSchema, LLMProviderConfig
from sanitizer import Sanitizer
from sanitizer.hoister import DEFAULT_MAX_ITERATIONS
from validator import StaticValidator


class GuardConfig(BaseSchema):
    # Correction budget; session_max defaults to unit_count * per_unit_max
    unit_count: int = Field(default=1, ge=0)
    session_max: int | None = Field(default=None, ge=0)
    per_unit_max: int = Field(default=DEFAULT_PER_UNIT_MAX, ge=0)

    stack_trace_limit: int = Field(default=DEFAULT_STACK_TRACE_LIMIT, gt=0)
    hoist_max_iterations: int = Field(default=DEFAULT_MAX_ITERATIONS, gt=0)
    extra_globals: list[str] = Field(default_factory=list)

    llm_provider: LLMProviderConfig | None = None
    log_level: str = "INFO"

    def build_budget(self) -> CorrectionBudget:
        budget = CorrectionBudget(per_unit_max=self.per_unit_max)
        budget.init_session(unit_count=self.unit_count, session_max=self.session_max)
        return budget

    def build_sanitizer(self) -> Sanitizer:
        return Sanitizer(hoist_max_iterations=self.hoist_max_iterations)

    def build_validator(self) -> StaticValidator:
        return StaticValidator(extra_globals=self.extra_globals)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def load_config(yaml_path: str | Path) -> GuardConfig:
    """Load guard configuration from a YAML file.

    Raises:
        FileNotFoundError: If the YAML file doesn't exist
        ValueError: If the YAML is empty or does not describe a valid config
    """
    yaml_path = Path(yaml_path)

    if not yaml_path.exists():
        raise FileNotFoundError(f"Config file not found: {yaml_path}")

    with open(yaml_path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)

    if not data:
        raise ValueError(f"Empty or invalid YAML file: {yaml_path}")

    try:
        return GuardConfig.from_dict(data)
    except Exception as e:
        raise ValueError(f"Invalid configuration in {yaml_path}: {e}") from e


def save_config(config: GuardConfig, yaml_path: str | Path) -> None:
    yaml_path = Path(yaml_path)
    yaml_path.parent.mkdir(parents=True, exist_ok=True)

    data = config.model_dump(mode="json", exclude_none=True)
    with open(yaml_path, "w", encoding="utf-8") as f:
        yaml.dump(data, f, default_flow_style=False, sort_keys=False, indent=2)
