import re

import pytest

from utils.error_handlers import ValidationError
from utils.validators import (
    generate_event_id, validate_class_param, validate_course_code,
    validate_event, validate_instructor, validate_section,
)


def test_generate_event_id_format():
    assert re.match(r'^event-\d{13}-[0-9a-f]{7}$', generate_event_id())
    assert generate_event_id() != generate_event_id()


def test_validate_event_accepts_packed_and_clock_times():
    event = validate_event({"title": " Study ", "startTime": "09:30", "endTime": 1045, "day": 10})
    assert event.title == "Study"
    assert (event.start_time, event.end_time) == (930, 1045)
    assert event.day == 10
    assert event.id.startswith("event-")


def test_validate_event_keeps_untimed_sentinels():
    event = validate_event({"id": "x", "title": "TBA", "startTime": -1, "endTime": 0, "day": 2})
    assert (event.start_time, event.end_time) == (-1, 0)
    assert event.id == "x"


def test_validate_event_reports_each_field():
    with pytest.raises(ValidationError) as exc:
        validate_event({"title": "", "startTime": 1375, "day": 0})
    assert set(exc.value.errors) == {"title", "startTime", "endTime", "day"}


def test_validate_event_rejects_bits_outside_weekdays():
    with pytest.raises(ValidationError) as exc:
        validate_event({"title": "x", "startTime": 900, "endTime": 1000, "day": 1 | 2})
    assert "day" in exc.value.errors


def test_validate_event_update_requires_id():
    with pytest.raises(ValidationError) as exc:
        validate_event({"title": "x", "startTime": 900, "endTime": 1000, "day": 2}, require_id=True)
    assert list(exc.value.errors) == ["id"]


def test_course_code():
    assert validate_course_code("csc 116") == (True, {"code": "CSC", "name": "116"})
    assert validate_course_code("C116")[0] is False
    assert validate_course_code("CSC11")[0] is False


def test_section():
    assert validate_section("001") == (True, {"section": "001"})
    assert validate_section("601l") == (True, {"section": "601L"})
    assert validate_section("")[0] is True
    assert validate_section("1")[0] is False


def test_instructor():
    assert validate_instructor("Kim, Lee") == (True, {"instructor": "Kim,Lee"})
    assert validate_instructor("")[0] is True
    assert validate_instructor("Kim")[0] is False


def test_validate_class_param():
    param = validate_class_param({"course": "CSC116", "section": "001", "instructor": "Kim, Lee"}, "c1")
    assert param.to_dict() == {"id": "c1", "code": "CSC", "name": "116", "section": "001", "instructor": "Kim,Lee"}

    with pytest.raises(ValidationError) as exc:
        validate_class_param({"code": "CSC", "name": "1", "section": "9"}, "c1")
    assert set(exc.value.errors) == {"code", "section"}


def test_class_field_validators_reject_non_strings():
    assert validate_course_code(116) == (False, {})
    assert validate_section(1) == (False, {})
    assert validate_instructor(["Kim", "Lee"]) == (False, {})
    assert validate_section(None) == (True, {"section": ""})


def test_validate_class_param_non_string_section():
    with pytest.raises(ValidationError) as exc:
        validate_class_param({"course": "CSC116", "section": 1, "instructor": 5}, "c1")
    assert set(exc.value.errors) == {"section", "instructor"}
