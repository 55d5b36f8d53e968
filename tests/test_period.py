from datetime import datetime, timedelta, timezone

from services.period import period_key


def test_period_key_is_year_month():
    assert period_key(datetime(2025, 3, 1)) == "2025-03"


def test_same_month_same_key():
    assert period_key(datetime(2025, 3, 1, 0, 0)) == period_key(datetime(2025, 3, 31, 23, 59, 59))


def test_month_is_zero_padded():
    assert period_key(datetime(2024, 11, 5)) == "2024-11"
    assert period_key(datetime(2025, 1, 5)) == "2025-01"


def test_aware_instants_are_converted_to_utc():
    # 2025-03-31 23:30 at UTC-2 is 2025-04-01 01:30 UTC
    instant = datetime(2025, 3, 31, 23, 30, tzinfo=timezone(timedelta(hours=-2)))
    assert period_key(instant) == "2025-04"
