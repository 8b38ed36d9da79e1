from __future__ import annotations

import pytest
from pydantic import ValidationError

from shiftsync.client import ENTITY_KINDS
from shiftsync.domain.registry import ENTITY_TAGS, get_kind, ordered_tags
from shiftsync.models import User
from shiftsync.schemas_entities import (
    AssignedShiftRecord,
    DailyTimeRecordRecord,
    EmployeeRecord,
    TheoreticalShiftPatternRecord,
    UserRecord,
    describe_validation_error,
)
from shiftsync.security import verify_password


def test_client_and_server_agree_on_entity_kinds() -> None:
    assert ENTITY_KINDS == ENTITY_TAGS


def test_ordered_tags_puts_unknown_kinds_last() -> None:
    assert ordered_tags(["bogus", "shift_reports", "employees"]) == [
        "employees",
        "shift_reports",
        "bogus",
    ]


def test_employee_accepts_camel_case_wire_shape() -> None:
    rec = EmployeeRecord.model_validate(
        {
            "id": "E1",
            "name": "Ana",
            "lastModified": 1000,
            "syncStatus": "pending",
            "isActive": False,
            "someClientOnlyField": 1,
        }
    )
    assert rec.last_modified == 1000
    assert rec.is_active is False
    # Names containing "Error" are ordinary names.
    assert EmployeeRecord.model_validate(
        {"id": "E2", "name": "Errol Error", "lastModified": 1}
    ).name == "Errol Error"


@pytest.mark.parametrize(
    "raw, fragment",
    [
        ({"id": "E1", "name": "   ", "lastModified": 1}, "name must not be blank"),
        ({"id": "", "name": "Ana", "lastModified": 1}, "id"),
        ({"id": "E1", "name": "Ana", "lastModified": -1}, "lastModified"),
        ({"id": "E1", "name": "Ana"}, "lastModified"),
    ],
)
def test_employee_rejections_are_described(raw: dict, fragment: str) -> None:
    with pytest.raises(ValidationError) as excinfo:
        EmployeeRecord.model_validate(raw)
    assert fragment in describe_validation_error(excinfo.value)


def test_daily_time_record_rules() -> None:
    base = {"id": "D1", "lastModified": 1, "employeeId": "E1", "date": "2024-03-01"}
    ok = DailyTimeRecordRecord.model_validate(
        {**base, "entrada": "2024-03-01T08:00", "salida": "SIN REGISTRO"}
    )
    assert ok.salida == "SIN REGISTRO"

    with pytest.raises(ValidationError):
        DailyTimeRecordRecord.model_validate({**base, "date": "01/03/2024"})
    with pytest.raises(ValidationError):
        DailyTimeRecordRecord.model_validate({**base, "entrada": "8am"})
    with pytest.raises(ValidationError):
        DailyTimeRecordRecord.model_validate(
            {**base, "entradaTimestamp": 2000, "salidaTimestamp": 1000}
        )


def test_shift_pattern_schedules_must_fit_cycle() -> None:
    base = {"id": "P1", "lastModified": 1, "name": "4x4", "cycleLengthDays": 2}
    TheoreticalShiftPatternRecord.model_validate(
        {**base, "dailySchedules": [{"dayIndex": 0}, {"dayIndex": 1}]}
    )
    with pytest.raises(ValidationError):
        TheoreticalShiftPatternRecord.model_validate(
            {**base, "dailySchedules": [{"dayIndex": 0}, {"dayIndex": 1}, {"dayIndex": 0}]}
        )
    with pytest.raises(ValidationError):
        TheoreticalShiftPatternRecord.model_validate({**base, "dailySchedules": [{"dayIndex": 5}]})


def test_assigned_shift_range_order() -> None:
    base = {"id": "A1", "lastModified": 1, "employeeId": "E1", "shiftPatternId": "P1"}
    AssignedShiftRecord.model_validate({**base, "startDate": "2024-01-01", "endDate": None})
    with pytest.raises(ValidationError):
        AssignedShiftRecord.model_validate(
            {**base, "startDate": "2024-02-01", "endDate": "2024-01-31"}
        )


def test_user_password_is_write_only() -> None:
    kind = get_kind("users")
    assert kind is not None
    rec = UserRecord.model_validate(
        {"id": "U1", "lastModified": 1, "username": "ana", "password": "pw123456"}
    )
    values = kind.row_values(rec)
    assert "password" not in values
    assert verify_password("pw123456", str(values["password_hash"]))

    row = User(**values)
    wire = kind.serialize(row)
    assert wire["username"] == "ana"
    assert "password" not in wire
    assert "passwordHash" not in wire
    assert wire["lastModified"] == 1
