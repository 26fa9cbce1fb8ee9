from __future__ import annotations

import hashlib
from collections.abc import Mapping, Sequence
from enum import Enum
from typing import Literal, TypeVar

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


TBaseSchema = TypeVar("TBaseSchema", bound="BaseSchema")


class BaseSchema(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def to_json(self) -> str:
        return self.model_dump_json()

    def to_dict(self) -> dict[str, object]:
        return self.model_dump()

    @classmethod
    def from_json(cls: type[TBaseSchema], data: str) -> TBaseSchema:
        return cls.model_validate_json(data)

    @classmethod
    def from_dict(cls: type[TBaseSchema], data: Mapping[str, object]) -> TBaseSchema:
        return cls.model_validate(data)


class UnitState(str, Enum):
    UNVALIDATED = "unvalidated"
    VALID = "valid"
    CORRECTING = "correcting"
    GIVEN_UP = "given_up"


class ControlParam(BaseSchema):
    name: str
    kind: Literal["slider", "toggle", "button"] = Field(
        default="slider",
        validation_alias=AliasChoices("kind", "controlType", "control_type"),
    )
    label: str | None = None
    min: float | None = None
    max: float | None = None
    step: float | None = None
    default_value: float = Field(
        default=0.0,
        validation_alias=AliasChoices("default_value", "defaultValue"),
    )


class UnitDescriptor(BaseSchema):
    source_text: str = Field(validation_alias=AliasChoices("source_text", "sourceText", "code"))
    parameters: list[ControlParam] = Field(
        default_factory=list,
        validation_alias=AliasChoices("parameters", "params"),
    )


def code_identity(code: str, revision: int = 0) -> str:
    digest = hashlib.sha256(code.encode("utf-8")).hexdigest()[:16]
    return f"{digest}-r{revision}"


class GeneratedModule(BaseSchema):
    """One immutable version of a unit's generated code."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    unit_id: str
    version: str
    revision: int = Field(default=0, ge=0)
    raw_code: str
    sanitized_code: str = ""
    parameters: list[ControlParam] = Field(default_factory=list)
    state: UnitState = UnitState.UNVALIDATED

    @classmethod
    def create(
        cls,
        unit_id: str,
        raw_code: str,
        parameters: Sequence[ControlParam] | None = None,
        revision: int = 0,
    ) -> "GeneratedModule":
        return cls(
            unit_id=unit_id,
            version=code_identity(raw_code, revision),
            revision=revision,
            raw_code=raw_code,
            parameters=list(parameters or []),
        )

    @classmethod
    def from_descriptor(cls, unit_id: str, descriptor: UnitDescriptor) -> "GeneratedModule":
        return cls.create(unit_id, descriptor.source_text, descriptor.parameters)

    def revise(
        self,
        raw_code: str,
        sanitized_code: str,
        parameters: Sequence[ControlParam] | None = None,
        state: UnitState = UnitState.VALID,
    ) -> "GeneratedModule":
        revision = self.revision + 1
        return self.model_copy(
            update={
                "version": code_identity(raw_code, revision),
                "revision": revision,
                "raw_code": raw_code,
                "sanitized_code": sanitized_code,
                "parameters": list(parameters) if parameters is not None else list(self.parameters),
                "state": state,
            }
        )

    def with_state(self, state: UnitState) -> "GeneratedModule":
        return self.model_copy(update={"state": state})


IssueKind = Literal["undefined-identifier", "tdz", "syntax"]


class ValidationIssue(BaseSchema):
    kind: IssueKind
    identifier_name: str | None = None
    line: int = 0
    column: int = 0
    message: str

    def describe(self) -> str:
        return f"Line {self.line}: {self.message}"


class ValidationResult(BaseSchema):
    valid: bool
    errors: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[str] | None = None

    def error_summary(self, separator: str = "\n") -> str:
        return separator.join(error.describe() for error in self.errors)


class FixRecord(BaseSchema):
    category: str
    description: str


class SanitizeResult(BaseSchema):
    sanitized_text: str
    fixes_applied: list[FixRecord] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class CodeEdit(BaseSchema):
    search_text: str = Field(validation_alias=AliasChoices("search_text", "searchText", "old_code"))
    replace_text: str = Field(validation_alias=AliasChoices("replace_text", "replaceText", "new_code"))


class PatchResponse(BaseSchema):
    explanation: str = ""
    edits: list[CodeEdit] = Field(default_factory=list)
    parameters: list[ControlParam] | None = Field(
        default=None,
        validation_alias=AliasChoices("parameters", "params"),
    )


class CorrectionRequest(BaseSchema):
    unit_id: str
    prior_code: str
    parameters: list[ControlParam] = Field(default_factory=list)
    error_message: str
    stack_trace: str | None = None
    static_warnings: list[str] | None = None
    failed_edits: list[CodeEdit] | None = None


class CorrectionAttempt(BaseSchema):
    unit_id: str
    prior_code: str
    error_message: str
    stack_trace: str | None = None
    static_warnings: list[str] | None = None
    edits: list[CodeEdit] = Field(default_factory=list)
    explanation: str = ""
    success: bool = False
    retried: bool = False
    stale: bool = False
    failure_type: str | None = None
    failure_message: str | None = None


class UnitStatus(BaseSchema):
    unit_id: str
    state: UnitState
    version: str
    sanitized_code: str
    pending: bool = False
    fallback_visible: bool = False
    diagnostic: str | None = None


class LLMProviderConfig(BaseSchema):
    provider_id: str
    provider_type: str
    base_url: str | None = None
    model_name: str
    api_key: str | None = None
    max_retries: int = 3
    timeout_seconds: int = 30
