import pytest
from pydantic import ValidationError

from guard_core.schemas import (
    CodeEdit,
    ControlParam,
    GeneratedModule,
    UnitDescriptor,
    UnitState,
    ValidationIssue,
    ValidationResult,
    code_identity,
)


def test_module_create_and_serialize() -> None:
    module = GeneratedModule.create("u1", "return null;", [ControlParam(name="speed", max=10)])

    restored = GeneratedModule.from_json(module.to_json())

    assert restored == module
    assert module.version == code_identity("return null;")
    assert module.state == UnitState.UNVALIDATED


def test_module_is_immutable() -> None:
    module = GeneratedModule.create("u1", "return null;")

    with pytest.raises(ValidationError):
        module.raw_code = "changed"


def test_revise_produces_new_identity() -> None:
    module = GeneratedModule.create("u1", "return null;", [ControlParam(name="speed")])
    revised = module.revise("return 1;", "return 1;")

    assert revised.version != module.version
    assert revised.revision == 1
    assert revised.state == UnitState.VALID
    assert [param.name for param in revised.parameters] == ["speed"]
    assert module.raw_code == "return null;"


def test_same_code_at_a_later_revision_is_a_new_version() -> None:
    assert code_identity("x", 0) != code_identity("x", 1)


def test_descriptor_accepts_wire_names() -> None:
    descriptor = UnitDescriptor.from_dict(
        {
            "code": "return null;",
            "params": [{"name": "on", "controlType": "toggle", "defaultValue": 1}],
        }
    )
    module = GeneratedModule.from_descriptor("u2", descriptor)

    assert module.raw_code == "return null;"
    assert module.parameters[0].kind == "toggle"
    assert module.parameters[0].default_value == 1.0


def test_control_kind_is_restricted() -> None:
    with pytest.raises(ValidationError):
        ControlParam(name="x", kind="dial")


def test_code_edit_aliases() -> None:
    assert CodeEdit.from_dict({"old_code": "a", "new_code": "b"}) == CodeEdit(search_text="a", replace_text="b")
    assert CodeEdit.from_dict({"searchText": "a", "replaceText": "b"}).search_text == "a"


def test_validation_summary() -> None:
    result = ValidationResult(
        valid=False,
        errors=[
            ValidationIssue(kind="undefined-identifier", identifier_name="a", line=2, message="'a' is not defined"),
            ValidationIssue(kind="undefined-identifier", identifier_name="b", line=5, message="'b' is not defined"),
        ],
    )

    assert result.error_summary() == "Line 2: 'a' is not defined\nLine 5: 'b' is not defined"
    assert result.error_summary("; ") == "Line 2: 'a' is not defined; Line 5: 'b' is not defined"
