"""Record validation — completeness scoring for extracted camp sessions.

Every record an extractor returns passes through ``validate`` before it is
written to the catalog. The validator never raises on bad data: a field that
cannot be parsed is reported in ``missing_fields`` with the raw value kept in
``errors`` so an operator can see what the extractor actually produced.

Usage:
    from camp_pipeline.services.validation import validate

    result = validate({"name": "Robotics Camp", "date_raw": "June 10-14, 2025", ...})
    result.completeness_score  # 0-100
"""

import re
from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Any, Mapping
from urllib.parse import urlparse

# Required fields, in the order they are reported
REQUIRED_FIELDS = (
    "name",
    "startDate",
    "timeWindow",
    "price",
    "ageOrGrade",
    "registrationUrl",
)

MAX_SESSION_DAYS = 21
DEFAULT_MAX_AGE = 18

_PLACEHOLDERS = ("<UNKNOWN>", "UNKNOWN", "TBD", "N/A", "NULL", "UNDEFINED")
_GENERIC_LOCATIONS = {"main location", "tbd", "unknown", "n/a", "online", "various"}

_MONTHS = {
    "january": 1, "february": 2, "march": 3, "april": 4, "may": 5, "june": 6,
    "july": 7, "august": 8, "september": 9, "october": 10, "november": 11, "december": 12,
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "jun": 6, "jul": 7, "aug": 8,
    "sep": 9, "sept": 9, "oct": 10, "nov": 11, "dec": 12,
}

_DASH = r"(?:-|–|—|to|through|thru)"


@dataclass
class FieldError:
    field: str
    error: str
    attempted_value: str | None = None


@dataclass
class NormalizedRecord:
    name: str | None = None
    description: str | None = None
    category: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    date_raw: str | None = None
    drop_off_hour: int | None = None
    drop_off_minute: int | None = None
    pick_up_hour: int | None = None
    pick_up_minute: int | None = None
    time_raw: str | None = None
    price_in_cents: int | None = None
    price_raw: str | None = None
    min_age: int | None = None
    max_age: int | None = None
    min_grade: int | None = None
    max_grade: int | None = None
    age_grade_raw: str | None = None
    location: str | None = None
    registration_url: str | None = None
    image_urls: list[str] = field(default_factory=list)
    is_available: bool | None = None
    source_session_id: str | None = None


@dataclass
class Validation:
    is_complete: bool
    completeness_score: int
    missing_fields: list[str]
    errors: list[FieldError]
    normalized: NormalizedRecord

    def errors_as_dicts(self) -> list[dict]:
        return [asdict(e) for e in self.errors]


def validate(record: Mapping[str, Any]) -> Validation:
    """Validate one extracted record and compute its completeness score."""
    missing: list[str] = []
    errors: list[FieldError] = []
    out = NormalizedRecord(
        description=_clean_str(record.get("description")),
        category=_clean_str(record.get("category")),
        date_raw=_clean_str(record.get("date_raw")),
        time_raw=_clean_str(record.get("time_raw")),
        price_raw=_clean_str(record.get("price_raw")),
        age_grade_raw=_clean_str(record.get("age_grade_raw")),
        location=_clean_str(record.get("location")),
        image_urls=[u for u in (record.get("image_urls") or []) if isinstance(u, str) and u.strip()],
        is_available=record.get("is_available") if isinstance(record.get("is_available"), bool) else None,
        source_session_id=_clean_str(record.get("source_session_id")),
    )

    # name
    name = _clean_str(record.get("name"))
    if name and name.upper() not in _PLACEHOLDERS:
        out.name = name
    else:
        missing.append("name")
        if name:
            errors.append(FieldError("name", "Name is a placeholder value", name))

    # startDate (endDate is parsed alongside but is not required)
    _resolve_dates(record, out, missing, errors)

    # timeWindow
    _resolve_time_window(record, out, missing, errors)

    # price: 0 is valid (free camps)
    price = _as_int(record.get("price_in_cents"))
    if price is not None and price >= 0:
        out.price_in_cents = price
    else:
        parsed = parse_price(out.price_raw) if out.price_raw else None
        if parsed is not None:
            out.price_in_cents = parsed
        else:
            missing.append("price")
            attempted = out.price_raw or _raw_text(record.get("price_in_cents"))
            if attempted:
                errors.append(FieldError("price", "Could not parse price", attempted))

    # ageOrGrade: either an age range or a grade range satisfies it
    _resolve_age_grade(record, out, missing, errors)

    # registrationUrl
    url = _clean_str(record.get("registration_url"))
    if url and _is_http_url(url):
        out.registration_url = url
    else:
        missing.append("registrationUrl")
        if url:
            errors.append(FieldError("registrationUrl", "Registration URL is not a valid HTTP/HTTPS URL", url))

    # location is not required, but generic values are worth flagging
    if out.location:
        _check_location(out.location, errors)

    parsed_count = len(REQUIRED_FIELDS) - len(missing)
    score = int(round(parsed_count * 100 / len(REQUIRED_FIELDS)))
    ordered_missing = [f for f in REQUIRED_FIELDS if f in missing]

    return Validation(
        is_complete=not ordered_missing,
        completeness_score=score,
        missing_fields=ordered_missing,
        errors=errors,
        normalized=out,
    )


def determine_session_status(
    completeness_score: int,
    price_in_cents: int | None = None,
    price_raw: str | None = None,
) -> str:
    """Pick the catalog status for a session.

    A $0 price without the word "free" in the raw text is most likely a parse
    failure, so such sessions stay in draft even when otherwise complete.
    """
    if completeness_score < 50:
        return "pending_review"
    if price_in_cents == 0 and not (price_raw and re.search(r"\bfree\b", price_raw, re.IGNORECASE)):
        return "draft"
    if completeness_score == 100:
        return "active"
    return "draft"


def calculate_source_quality(scores: list[int]) -> tuple[int, str]:
    """Average completeness across a source's records, with its quality tier."""
    if not scores:
        return 0, "low"
    average = sum(scores) / len(scores)
    if average >= 80:
        tier = "high"
    elif average >= 50:
        tier = "medium"
    else:
        tier = "low"
    return int(round(average)), tier


# ---------------------------------------------------------------------------
# Field resolution
# ---------------------------------------------------------------------------


def _resolve_dates(record, out: NormalizedRecord, missing: list, errors: list) -> None:
    start_raw = record.get("start_date")
    end_raw = record.get("end_date")

    start = _as_date(start_raw)
    end = _as_date(end_raw)

    if start_raw and start is None and not _is_placeholder(str(start_raw)):
        errors.append(FieldError("startDate", "Invalid date format (expected YYYY-MM-DD)", _raw_text(start_raw)))
    if end_raw and end is None and not _is_placeholder(str(end_raw)):
        errors.append(FieldError("endDate", "Invalid date format (expected YYYY-MM-DD)", _raw_text(end_raw)))

    if (start is None or end is None) and out.date_raw:
        parsed = parse_date_range(out.date_raw)
        if parsed:
            start = start or parsed[0]
            end = end or parsed[1]

    if start is None:
        missing.append("startDate")
        if out.date_raw:
            errors.append(FieldError("startDate", "Could not parse start date from raw text", out.date_raw))
        return

    out.start_date = start
    out.end_date = end

    if end is not None:
        span = (end - start).days
        if span < 0:
            errors.append(FieldError("dateRange", "End date is before start date", f"{start} to {end}"))
        elif span > MAX_SESSION_DAYS:
            errors.append(FieldError(
                "dateRange",
                f"Session spans {span} days - likely a program overview, not an individual session "
                f"(max {MAX_SESSION_DAYS} days)",
                f"{start} to {end}",
            ))


def _resolve_time_window(record, out: NormalizedRecord, missing: list, errors: list) -> None:
    drop_off = _as_int(record.get("drop_off_hour"))
    pick_up = _as_int(record.get("pick_up_hour"))

    if drop_off is not None and pick_up is not None:
        bad = [(f, v) for f, v in (("dropOffTime", drop_off), ("pickUpTime", pick_up)) if not 0 <= v <= 23]
        if not bad:
            out.drop_off_hour = drop_off
            out.drop_off_minute = _as_int(record.get("drop_off_minute")) or 0
            out.pick_up_hour = pick_up
            out.pick_up_minute = _as_int(record.get("pick_up_minute")) or 0
            return
        for field_name, value in bad:
            errors.append(FieldError(field_name, "Invalid hour (expected 0-23)", str(value)))

    if out.time_raw:
        parsed = parse_time_range(out.time_raw)
        if parsed:
            out.drop_off_hour, out.drop_off_minute, out.pick_up_hour, out.pick_up_minute = parsed
            return
        errors.append(FieldError("timeWindow", "Could not parse time range from raw text", out.time_raw))

    missing.append("timeWindow")


def _resolve_age_grade(record, out: NormalizedRecord, missing: list, errors: list) -> None:
    ages = (_as_int(record.get("min_age")), _as_int(record.get("max_age")))
    grades = (_as_int(record.get("min_grade")), _as_int(record.get("max_grade")))

    if any(v is not None for v in ages) or any(v is not None for v in grades):
        out.min_age, out.max_age = ages
        out.min_grade, out.max_grade = grades
        return

    parsed = parse_age_range(out.age_grade_raw) if out.age_grade_raw else None
    if parsed:
        out.min_age = parsed.get("min_age")
        out.max_age = parsed.get("max_age")
        out.min_grade = parsed.get("min_grade")
        out.max_grade = parsed.get("max_grade")
        return

    missing.append("ageOrGrade")
    if out.age_grade_raw:
        errors.append(FieldError("ageOrGrade", "Could not parse age/grade from raw text", out.age_grade_raw))


def _check_location(location: str, errors: list) -> None:
    has_address = re.search(r"\d+\s+[A-Za-z]", location) is not None
    if location.lower() in _GENERIC_LOCATIONS or (not has_address and len(location) < 20):
        errors.append(FieldError(
            "location",
            "Location appears incomplete or generic - should include street address",
            location,
        ))

    comma_count = location.count(",")
    if comma_count >= 3 and len(location) > 100:
        errors.append(FieldError(
            "location",
            f"Location appears to be a list of {comma_count + 1} venues - should be a single location",
            location[:100] + "...",
        ))


# ---------------------------------------------------------------------------
# Raw text parsers
# ---------------------------------------------------------------------------


def parse_date_range(text: str) -> tuple[date, date] | None:
    """Parse a start/end date pair from free text.

    Handles "June 10-14, 2025", "Jun 30 - Jul 3, 2025", "6/10/2025 - 6/14/2025",
    "2025-06-10 to 2025-06-14" and single dates such as "June 10, 2025".
    """
    if not text:
        return None
    normalized = text.lower().strip()

    # 2025-06-10 [to 2025-06-14]
    iso = re.findall(r"\d{4}-\d{2}-\d{2}", normalized)
    if iso:
        start = _as_date(iso[0])
        end = _as_date(iso[1]) if len(iso) > 1 else start
        return (start, end) if start and end else None

    # 6/10/2025 - 6/14/2025
    match = re.search(
        rf"(\d{{1,2}})/(\d{{1,2}})/(\d{{4}})\s*{_DASH}\s*(\d{{1,2}})/(\d{{1,2}})/(\d{{4}})", normalized
    )
    if match:
        m1, d1, y1, m2, d2, y2 = (int(g) for g in match.groups())
        return _date_pair((y1, m1, d1), (y2, m2, d2))

    # Jun 30 - Jul 3, 2025
    match = re.search(
        rf"([a-z]+)\.?\s+(\d{{1,2}})(?:st|nd|rd|th)?\s*{_DASH}\s*([a-z]+)\.?\s+(\d{{1,2}})(?:st|nd|rd|th)?,?\s*(\d{{4}})",
        normalized,
    )
    if match and match.group(1) in _MONTHS and match.group(3) in _MONTHS:
        year = int(match.group(5))
        return _date_pair(
            (year, _MONTHS[match.group(1)], int(match.group(2))),
            (year, _MONTHS[match.group(3)], int(match.group(4))),
        )

    # June 10-14, 2025
    match = re.search(
        rf"([a-z]+)\.?\s+(\d{{1,2}})(?:st|nd|rd|th)?\s*{_DASH}\s*(\d{{1,2}})(?:st|nd|rd|th)?,?\s*(\d{{4}})",
        normalized,
    )
    if match and match.group(1) in _MONTHS:
        year, month = int(match.group(4)), _MONTHS[match.group(1)]
        return _date_pair((year, month, int(match.group(2))), (year, month, int(match.group(3))))

    # June 10, 2025
    match = re.search(r"([a-z]+)\.?\s+(\d{1,2})(?:st|nd|rd|th)?,?\s*(\d{4})", normalized)
    if match and match.group(1) in _MONTHS:
        day = (int(match.group(3)), _MONTHS[match.group(1)], int(match.group(2)))
        return _date_pair(day, day)

    return None


def parse_time_range(text: str) -> tuple[int, int, int, int] | None:
    """Parse "9:00 AM - 3:00 PM" / "9am-3pm" into (drop_off_h, drop_off_m, pick_up_h, pick_up_m)."""
    if not text:
        return None
    match = re.search(
        r"(\d{1,2})(?::(\d{2}))?\s*(am|pm|a\.m\.|p\.m\.)?\s*(?:-|–|—|to)\s*(\d{1,2})(?::(\d{2}))?\s*(am|pm|a\.m\.|p\.m\.)?",
        text,
        re.IGNORECASE,
    )
    if not match:
        return None

    drop_off_hour = int(match.group(1))
    drop_off_minute = int(match.group(2) or 0)
    drop_off_period = (match.group(3) or "").lower().replace(".", "")
    pick_up_hour = int(match.group(4))
    pick_up_minute = int(match.group(5) or 0)
    pick_up_period = (match.group(6) or "").lower().replace(".", "")

    drop_off_hour = _to_24h(drop_off_hour, drop_off_period)
    pick_up_hour = _to_24h(pick_up_hour, pick_up_period)

    # Without am/pm a small pick-up hour is an afternoon time ("9-3")
    if not pick_up_period and pick_up_hour < 6:
        pick_up_hour += 12

    if not (0 <= drop_off_hour <= 23 and 0 <= pick_up_hour <= 23):
        return None
    if not (0 <= drop_off_minute <= 59 and 0 <= pick_up_minute <= 59):
        return None
    return drop_off_hour, drop_off_minute, pick_up_hour, pick_up_minute


def parse_price(text: str) -> int | None:
    """Parse "$350", "$1,250.50" or "Free" into integer cents."""
    if not text:
        return None
    if re.search(r"\bfree\b", text, re.IGNORECASE):
        return 0
    match = re.search(r"\$?\s*(\d[\d,]*)(?:\.(\d{1,2}))?", text)
    if not match:
        return None
    dollars = int(match.group(1).replace(",", ""))
    cents = int(match.group(2).ljust(2, "0")) if match.group(2) else 0
    return dollars * 100 + cents


def parse_age_range(text: str) -> dict[str, int] | None:
    """Parse an age or grade requirement.

    Grade text ("Grades K-5", "1st-5th grade", "K-8") yields min/max grade with
    K = 0 and Pre-K = -1. Age text ("Ages 5-12", "6 to 10 years", "5 and up")
    yields min/max age.
    """
    if not text:
        return None
    normalized = text.lower().strip()
    grade_token = r"(pre-?k|k|\d{1,2})(?:st|nd|rd|th)?"

    grade_patterns = (
        rf"grades?\s*{grade_token}\s*{_DASH}\s*{grade_token}",
        rf"{grade_token}\s*{_DASH}\s*{grade_token}\s*grades?",
        rf"\b(pre-?k|k)\s*{_DASH}\s*{grade_token}",
        rf"(\d{{1,2}})(?:st|nd|rd|th)\s*{_DASH}\s*(\d{{1,2}})(?:st|nd|rd|th)",
    )
    for pattern in grade_patterns:
        match = re.search(pattern, normalized)
        if match:
            return {"min_grade": _grade_value(match.group(1)), "max_grade": _grade_value(match.group(2))}

    match = re.search(rf"(\d{{1,2}})\s*{_DASH}\s*(\d{{1,2}})", normalized)
    if match:
        return {"min_age": int(match.group(1)), "max_age": int(match.group(2))}

    match = re.search(r"(\d{1,2})\s*(?:\+|and\s*up|and\s*older)", normalized)
    if match:
        return {"min_age": int(match.group(1)), "max_age": DEFAULT_MAX_AGE}

    return None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _clean_str(value) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _raw_text(value) -> str | None:
    return None if value is None else str(value)


def _is_placeholder(value: str) -> bool:
    upper = value.upper()
    return any(p in upper for p in _PLACEHOLDERS)


def _as_int(value) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    if isinstance(value, str) and re.fullmatch(r"\s*-?\d+\s*", value):
        return int(value)
    return None


def _as_date(value) -> date | None:
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not re.fullmatch(r"\d{4}-\d{2}-\d{2}", value.strip()):
        return None
    try:
        return date.fromisoformat(value.strip())
    except ValueError:
        return None


def _date_pair(start: tuple[int, int, int], end: tuple[int, int, int]) -> tuple[date, date] | None:
    try:
        return date(*start), date(*end)
    except ValueError:
        return None


def _to_24h(hour: int, period: str) -> int:
    if period == "pm" and hour != 12:
        return hour + 12
    if period == "am" and hour == 12:
        return 0
    return hour


def _grade_value(token: str) -> int:
    if token in ("pre-k", "prek"):
        return -1
    if token == "k":
        return 0
    return int(token)


def _is_http_url(value: str) -> bool:
    parsed = urlparse(value)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)
