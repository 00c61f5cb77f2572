from datetime import datetime

import pytest

from normalize.bmkg_time import WIB, parse_bmkg_datetime, resolve_event_datetime


def test_parse_localized_datetime() -> None:
    parsed = parse_bmkg_datetime("21 Okt 2025, 15:57:01 WIB")
    assert (parsed.date, parsed.time) == ("2025-10-21", "15:57:01")
    assert parsed.fell_back is False


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("1 Mei 2024, 00:00:05 WIB", ("2024-05-01", "00:00:05")),
        ("09 Agu 2023, 23:59:59 WITA", ("2023-08-09", "23:59:59")),
        ("31 Des 2022, 12:00:00 WIT", ("2022-12-31", "12:00:00")),
        ("05 Oct 2025, 07:08:09", ("2025-10-05", "07:08:09")),
        ("12 Jun 2025", ("2025-06-12", "00:00:00")),
    ],
)
def test_parse_month_variants(value, expected) -> None:
    parsed = parse_bmkg_datetime(value)
    assert (parsed.date, parsed.time) == expected
    assert parsed.fell_back is False


def test_parse_iso_converts_to_wib() -> None:
    parsed = parse_bmkg_datetime("2025-10-21T08:57:01+00:00")
    assert (parsed.date, parsed.time) == ("2025-10-21", "15:57:01")


def test_not_a_date_falls_back_to_now() -> None:
    parsed = parse_bmkg_datetime("not-a-date")
    assert parsed.fell_back is True
    assert parsed.date == datetime.now(tz=WIB).strftime("%Y-%m-%d")
    datetime.strptime(parsed.time, "%H:%M:%S")


@pytest.mark.parametrize("value", [None, "", "32 Okt 2025, 10:00:00 WIB", "21 Xyz 2025"])
def test_fallback_uses_supplied_clock(value) -> None:
    now = datetime(2025, 1, 2, 3, 4, 5, tzinfo=WIB)
    parsed = parse_bmkg_datetime(value, now=now)
    assert (parsed.date, parsed.time, parsed.fell_back) == ("2025-01-02", "03:04:05", True)


def test_fallback_is_logged(caplog) -> None:
    with caplog.at_level("WARNING", logger="normalize.bmkg_time"):
        parse_bmkg_datetime("not-a-date")
    assert "fallback" in caplog.text


def test_resolve_prefers_utc_timestamp() -> None:
    parsed = resolve_event_datetime("2025-10-21T08:57:01+00:00", "1 Jan 2020, 00:00:00 WIB")
    assert (parsed.date, parsed.time) == ("2025-10-21", "15:57:01")


def test_resolve_uses_local_when_utc_is_broken() -> None:
    parsed = resolve_event_datetime("garbage", "21 Okt 2025, 15:57:01 WIB")
    assert (parsed.date, parsed.time, parsed.fell_back) == ("2025-10-21", "15:57:01", False)
