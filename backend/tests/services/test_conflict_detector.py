"""Tests for conflict detection, warnings and slot suggestions."""

from __future__ import annotations

import uuid
from datetime import date, time, timedelta

import pytest

from castle_bookings.core.settings import BookingRules
from castle_bookings.models.booking import BookingStatus
from castle_bookings.services.conflict_detector import (
    BookingWindow,
    ConflictType,
    available_slots,
    booking_warnings,
    find_conflicts,
    suggest_alternative_slots,
    validate_booking,
)
from castle_bookings.services.errors import BookingValidationError

DAY = date(2024, 6, 1)  # a Saturday
WEEKDAY = date(2024, 6, 4)
RULES = BookingRules()


def _window(
    castle: str,
    start: str,
    end: str,
    *,
    day: date = DAY,
    status: BookingStatus = BookingStatus.CONFIRMED,
    ref: str | None = None,
) -> BookingWindow:
    return BookingWindow(
        id=uuid.uuid4(),
        booking_ref=ref,
        castle_name=castle,
        event_date=day,
        start_time=time.fromisoformat(start),
        end_time=time.fromisoformat(end),
        status=status,
    )


def test_same_castle_overlap_is_blocking() -> None:
    existing = _window("CastleA", "10:00", "14:00", ref="TS240601001")
    candidate = _window("CastleA", "13:00", "16:00", status=BookingStatus.PENDING)

    conflicts = find_conflicts(candidate, [existing])

    assert len(conflicts) == 1
    assert conflicts[0].conflict_type is ConflictType.SAME_RESOURCE
    assert conflicts[0].blocking
    assert conflicts[0].booking_ref == "TS240601001"
    assert conflicts[0].message == "CastleA is already booked for 10:00 - 14:00 on this date"


def test_other_castle_overlap_is_informational() -> None:
    existing = _window("CastleA", "10:00", "14:00")
    candidate = _window("CastleB", "13:00", "16:00")

    conflicts = find_conflicts(candidate, [existing])

    assert [c.conflict_type for c in conflicts] == [ConflictType.TIME_OVERLAP]
    assert not conflicts[0].blocking
    assert conflicts[0].message == "Time overlap with existing booking: CastleA (10:00 - 14:00)"


def test_both_conflict_types_are_reported_together() -> None:
    same = _window("CastleA", "10:00", "14:00")
    other = _window("CastleB", "12:00", "15:00")
    candidate = _window("CastleA", "13:00", "16:00")

    result = validate_booking(
        candidate, [same, other], total_pence=10000, deposit_pence=5000, rules=RULES, today=DAY
    )

    assert {c.conflict_type for c in result.conflicts} == {
        ConflictType.SAME_RESOURCE,
        ConflictType.TIME_OVERLAP,
    }
    assert [c.castle_name for c in result.blocking_conflicts] == ["CastleA"]
    assert not result.is_valid


def test_castle_names_compare_case_insensitively() -> None:
    existing = _window("castlea ", "10:00", "14:00")
    candidate = _window("CastleA", "11:00", "12:00")
    assert find_conflicts(candidate, [existing])[0].blocking


def test_buffer_catches_back_to_back_bookings() -> None:
    existing = _window("CastleA", "10:00", "12:00")
    candidate = _window("CastleA", "12:00", "14:00")
    assert find_conflicts(candidate, [existing], buffer=timedelta(0)) == []
    assert len(find_conflicts(candidate, [existing])) == 1


def test_cancelled_expired_other_days_and_self_are_ignored() -> None:
    candidate = _window("CastleA", "10:00", "14:00")
    existing = [
        _window("CastleA", "10:00", "14:00", status=BookingStatus.CANCELLED),
        _window("CastleA", "10:00", "14:00", status=BookingStatus.EXPIRED),
        _window("CastleA", "10:00", "14:00", day=DAY + timedelta(days=1)),
    ]
    itself = _window("CastleA", "10:00", "14:00")
    existing.append(itself)

    assert find_conflicts(candidate, existing, exclude_id=itself.id) == []


def test_completed_bookings_still_occupy_their_window() -> None:
    existing = _window("CastleA", "10:00", "14:00", status=BookingStatus.COMPLETED)
    candidate = _window("CastleA", "11:00", "13:00")
    assert len(find_conflicts(candidate, [existing])) == 1


def test_invalid_existing_window_is_skipped() -> None:
    broken = _window("CastleA", "15:00", "11:00")
    candidate = _window("CastleA", "10:00", "14:00")
    assert find_conflicts(candidate, [broken]) == []


def test_invalid_candidate_raises_validation_error() -> None:
    candidate = _window("CastleA", "14:00", "10:00")
    with pytest.raises(BookingValidationError) as excinfo:
        find_conflicts(candidate, [])
    assert excinfo.value.errors == {"end_time": "End time must be after start time"}


def test_deposit_above_total_fails_validation() -> None:
    candidate = _window("CastleA", "10:00", "14:00", day=WEEKDAY)
    result = validate_booking(
        candidate, [], total_pence=10000, deposit_pence=12000, rules=RULES, today=DAY
    )
    assert result.errors["deposit"] == "Deposit cannot exceed total price"
    assert not result.is_valid


def test_negative_amounts_fail_validation() -> None:
    candidate = _window("CastleA", "10:00", "14:00", day=WEEKDAY)
    result = validate_booking(
        candidate, [], total_pence=-1, deposit_pence=-1, rules=RULES, today=DAY
    )
    assert result.errors == {
        "total_price": "Total price cannot be negative",
        "deposit": "Deposit cannot be negative",
    }


def test_duration_limits_apply() -> None:
    short = _window("CastleA", "10:00", "11:00", day=WEEKDAY)
    result = validate_booking(short, [], total_pence=0, deposit_pence=0, rules=RULES, today=DAY)
    assert result.errors == {"end_time": "Minimum booking duration is 2 hours"}


def test_warnings_are_advisory() -> None:
    candidate = _window("CastleA", "07:00", "21:00", day=DAY)
    warnings = booking_warnings(
        candidate, total_pence=10000, deposit_pence=1000, rules=RULES, today=DAY
    )
    assert warnings == [
        "Early morning booking: Consider if setup time is adequate",
        "Late evening booking: Consider noise restrictions and lighting",
        "Weekend booking: Expect higher demand and potential delays",
        "Short-notice booking: Confirm availability and setup logistics",
        "Extended booking duration: Ensure adequate supervision and breaks",
        "Low deposit ratio: Consider requiring higher deposit for booking security",
    ]


def test_quiet_weekday_booking_has_no_warnings() -> None:
    candidate = _window("CastleA", "10:00", "14:00", day=WEEKDAY)
    assert (
        booking_warnings(
            candidate,
            total_pence=10000,
            deposit_pence=5000,
            rules=RULES,
            today=WEEKDAY - timedelta(days=14),
        )
        == []
    )


def test_available_slots_skip_busy_window_with_buffer() -> None:
    existing = [_window("CastleA", "12:00", "14:00")]
    slots = available_slots(DAY, "CastleA", existing, duration_hours=2)

    starts = [start for start, _ in slots]
    # 08:00-10:00 ... 18:00-20:00 hourly; busy 11:30-14:30 once buffered.
    assert starts == [time(8), time(9), time(15), time(16), time(17), time(18)]
    assert slots[0] == (time(8), time(10))


def test_available_slots_ignore_other_castles() -> None:
    existing = [_window("CastleB", "08:00", "20:00")]
    assert len(available_slots(DAY, "CastleA", existing, duration_hours=4)) == 9


def test_suggest_alternatives_keeps_candidate_length() -> None:
    existing = [_window("CastleA", "10:00", "14:00")]
    candidate = _window("CastleA", "11:00", "15:00")

    suggestions = suggest_alternative_slots(candidate, existing)

    assert suggestions
    for start, end in suggestions:
        assert (end.hour - start.hour) == 4
        assert start >= time(14, 30) or end <= time(9, 30)
