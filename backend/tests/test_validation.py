from datetime import date

import pytest

from camp_pipeline.services.validation import (
    calculate_source_quality,
    determine_session_status,
    parse_age_range,
    parse_date_range,
    parse_price,
    parse_time_range,
    validate,
)
from conftest import complete_record


def test_complete_record_scores_100():
    result = validate(complete_record())

    assert result.is_complete
    assert result.completeness_score == 100
    assert result.missing_fields == []
    assert result.normalized.start_date == date(2030, 6, 10)
    assert result.normalized.end_date == date(2030, 6, 14)
    assert result.normalized.drop_off_hour == 9
    assert result.normalized.pick_up_hour == 15
    assert result.normalized.price_in_cents == 35000
    assert (result.normalized.min_age, result.normalized.max_age) == (8, 12)


def test_missing_age_and_grade_scores_83():
    record = complete_record()
    del record["age_grade_raw"]

    result = validate(record)

    assert result.completeness_score == 83
    assert result.missing_fields == ["ageOrGrade"]
    assert not result.is_complete


def test_empty_record_scores_zero_with_every_field_missing():
    result = validate({})

    assert result.completeness_score == 0
    assert result.missing_fields == [
        "name", "startDate", "timeWindow", "price", "ageOrGrade", "registrationUrl",
    ]


def test_placeholder_name_counts_as_missing():
    result = validate(complete_record(name="<UNKNOWN>"))

    assert "name" in result.missing_fields
    assert any(e.field == "name" for e in result.errors)


@pytest.mark.parametrize("name", [" tbd ", "N/A", "Unknown"])
def test_bare_placeholder_names_are_missing(name):
    assert "name" in validate(complete_record(name=name)).missing_fields


@pytest.mark.parametrize("name", ["Unknown Worlds Science Camp", "Nullarbor Nature Camp", "TBDance"])
def test_names_containing_placeholder_words_are_kept(name):
    result = validate(complete_record(name=name))

    assert result.is_complete
    assert result.completeness_score == 100
    assert result.normalized.name == name


def test_structured_fields_take_priority_over_raw_text():
    result = validate(complete_record(
        start_date="2030-07-01",
        end_date="2030-07-05",
        drop_off_hour=8,
        pick_up_hour=17,
        price_in_cents=0,
        price_raw="Free",
        min_grade=0,
        max_grade=5,
    ))

    assert result.normalized.start_date == date(2030, 7, 1)
    assert result.normalized.drop_off_hour == 8
    assert result.normalized.pick_up_hour == 17
    assert result.normalized.price_in_cents == 0
    assert result.normalized.min_grade == 0
    assert result.normalized.max_grade == 5
    assert result.completeness_score == 100


def test_invalid_url_is_missing_and_reported():
    result = validate(complete_record(registration_url="not a url"))

    assert result.missing_fields == ["registrationUrl"]
    errors = {e.field: e for e in result.errors}
    assert errors["registrationUrl"].attempted_value == "not a url"


def test_unparseable_raw_text_keeps_attempted_value():
    result = validate(complete_record(price_raw="Call for pricing"))

    assert "price" in result.missing_fields
    price_error = next(e for e in result.errors if e.field == "price")
    assert price_error.attempted_value == "Call for pricing"


def test_long_date_range_is_flagged_but_not_missing():
    result = validate(complete_record(date_raw="June 1 - August 30, 2030"))

    assert "startDate" not in result.missing_fields
    assert any(e.field == "dateRange" for e in result.errors)


def test_generic_location_is_flagged_without_affecting_score():
    result = validate(complete_record(location="Main Location"))

    assert result.completeness_score == 100
    assert any(e.field == "location" for e in result.errors)


@pytest.mark.parametrize("text, expected", [
    ("June 10-14, 2030", (date(2030, 6, 10), date(2030, 6, 14))),
    ("Jun 30 - Jul 3, 2030", (date(2030, 6, 30), date(2030, 7, 3))),
    ("6/10/2030 - 6/14/2030", (date(2030, 6, 10), date(2030, 6, 14))),
    ("2030-06-10 to 2030-06-14", (date(2030, 6, 10), date(2030, 6, 14))),
    ("August 4, 2030", (date(2030, 8, 4), date(2030, 8, 4))),
    ("Summer sometime", None),
])
def test_parse_date_range(text, expected):
    assert parse_date_range(text) == expected


@pytest.mark.parametrize("text, expected", [
    ("9:00 AM - 3:00 PM", (9, 0, 15, 0)),
    ("9am-3pm", (9, 0, 15, 0)),
    ("8:30 a.m. to 12:15 p.m.", (8, 30, 12, 15)),
    ("9-3", (9, 0, 15, 0)),
    ("all day", None),
])
def test_parse_time_range(text, expected):
    assert parse_time_range(text) == expected


@pytest.mark.parametrize("text, expected", [
    ("$350", 35000),
    ("$1,250.50 per week", 125050),
    ("Free!", 0),
    ("TBA", None),
])
def test_parse_price(text, expected):
    assert parse_price(text) == expected


@pytest.mark.parametrize("text, expected", [
    ("Ages 5-12", {"min_age": 5, "max_age": 12}),
    ("6 to 10 years", {"min_age": 6, "max_age": 10}),
    ("5 and up", {"min_age": 5, "max_age": 18}),
    ("Grades K-5", {"min_grade": 0, "max_grade": 5}),
    ("Pre-K - 2", {"min_grade": -1, "max_grade": 2}),
    ("1st-5th grade", {"min_grade": 1, "max_grade": 5}),
    ("everyone welcome", None),
])
def test_parse_age_range(text, expected):
    assert parse_age_range(text) == expected


def test_session_status_rules():
    assert determine_session_status(33) == "pending_review"
    assert determine_session_status(100, 35000, "$350") == "active"
    assert determine_session_status(83, 35000, "$350") == "draft"
    assert determine_session_status(100, 0, "$0") == "draft"
    assert determine_session_status(100, 0, "Free") == "active"


def test_source_quality_tiers():
    assert calculate_source_quality([]) == (0, "low")
    assert calculate_source_quality([100, 83]) == (92, "high")
    assert calculate_source_quality([50, 67]) == (58, "medium")
    assert calculate_source_quality([17, 33]) == (25, "low")
