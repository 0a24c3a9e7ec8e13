from datetime import datetime, timedelta, timezone

from statehouse.clock import Clock, FakeClock, RealClock

START = datetime(2026, 5, 13, 9, 0, 0, tzinfo=timezone.utc)


def test_fake_clock_starts_at_given_time():
    clock = FakeClock(START)
    assert clock.now() == START


def test_fake_clock_advance():
    clock = FakeClock(START)
    clock.advance(timedelta(seconds=31))
    assert clock.now() == START + timedelta(seconds=31)
    clock.advance(timedelta(minutes=1))
    assert clock.now() == START + timedelta(seconds=91)


def test_fake_clock_set_rewinds_and_normalises_to_utc():
    clock = FakeClock(START)
    clock.advance(timedelta(hours=5))
    other = datetime(2026, 5, 13, 11, 0, 0, tzinfo=timezone(timedelta(hours=2)))
    clock.set(other)
    assert clock.now() == START
    assert clock.now().utcoffset() == timedelta(0)


def test_fake_clock_naive_start_is_treated_as_utc():
    clock = FakeClock(datetime(2026, 5, 13, 9, 0, 0))
    assert clock.now() == START


def test_real_clock_is_utc_and_current():
    before = datetime.now(timezone.utc)
    got = RealClock().now()
    after = datetime.now(timezone.utc)
    assert got.utcoffset() == timedelta(0)
    assert before <= got <= after


def test_clocks_usable_through_protocol():
    clocks: list[Clock] = [FakeClock(START), RealClock()]
    readings = [clock.now() for clock in clocks]
    assert readings[0] == START
    assert all(r.utcoffset() == timedelta(0) for r in readings)
    assert readings[1] > START - timedelta(days=36500)