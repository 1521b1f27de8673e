from datetime import date

import pytest

from app.core.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from app.db.models import CalendarBlock
from app.schemas.booking import BookingCreate
from app.services.calendar_service import CalendarService

from conftest import NOW, caller_for


def test_create_block(db, provider):
    block = CalendarService.create_block(
        db, caller_for(provider), date(2030, 2, 1), date(2030, 2, 3), reason="  maintenance ", now=NOW
    )
    assert block.uuid
    assert block.reason == "maintenance"
    assert CalendarService.list_blocks(db, caller_for(provider)) == [block]


def test_block_today_allowed(db, provider):
    block = CalendarService.create_block(db, caller_for(provider), date(2030, 1, 10), date(2030, 1, 10), now=NOW)
    assert block.start_date == date(2030, 1, 10)


@pytest.mark.parametrize("start,end,code", [
    (date(2030, 2, 5), date(2030, 2, 1), "ValidationError"),
    (date(2030, 1, 9), date(2030, 1, 11), "ValidationError"),
    (date(2030, 2, 1), date(2030, 2, 11), "BLOCK_TOO_LONG"),
])
def test_rejects_bad_ranges(db, provider, start, end, code):
    with pytest.raises(ValidationError) as exc:
        CalendarService.create_block(db, caller_for(provider), start, end, now=NOW)
    assert exc.value.code == code
    assert db.query(CalendarBlock).count() == 0


def test_ten_days_is_the_limit(db, provider):
    CalendarService.create_block(db, caller_for(provider), date(2030, 2, 1), date(2030, 2, 10), now=NOW)


def test_cannot_block_over_booking(db, provider, requested_booking):
    with pytest.raises(ConflictError) as exc:
        CalendarService.create_block(db, caller_for(provider), date(2030, 1, 21), date(2030, 1, 23), now=NOW)
    assert exc.value.code == "OVERLAPS_BOOKING"
    assert exc.value.details["booking_ref"] == requested_booking.uuid


def test_cannot_overlap_block(db, provider):
    CalendarService.create_block(db, caller_for(provider), date(2030, 2, 1), date(2030, 2, 3), now=NOW)
    with pytest.raises(ConflictError) as exc:
        CalendarService.create_block(db, caller_for(provider), date(2030, 2, 3), date(2030, 2, 5), now=NOW)
    assert exc.value.code == "OVERLAPS_BLOCK"


def test_admin_has_no_calendar(db, admin):
    with pytest.raises(ForbiddenError):
        CalendarService.create_block(db, admin, date(2030, 2, 1), date(2030, 2, 3), now=NOW)


def test_block_prevents_new_bookings(db, booking_service, provider, requester, product):
    CalendarService.create_block(db, caller_for(provider), date(2030, 2, 1), date(2030, 2, 3), now=NOW)
    with pytest.raises(ConflictError) as exc:
        booking_service.create_booking(
            db,
            caller_for(requester),
            BookingCreate(product_ref=product.uuid, start_date=date(2030, 2, 3), end_date=date(2030, 2, 4)),
            now=NOW,
        )
    assert exc.value.code == "DATES_UNAVAILABLE"


def test_delete_block(db, provider, requester):
    block = CalendarService.create_block(db, caller_for(provider), date(2030, 2, 1), date(2030, 2, 3), now=NOW)

    with pytest.raises(NotFoundError):
        CalendarService.delete_block(db, caller_for(requester), block.uuid)

    CalendarService.delete_block(db, caller_for(provider), block.uuid)
    assert CalendarService.list_blocks(db, caller_for(provider)) == []


def test_list_blocks_sorted_per_vendor(db, provider, requester):
    later = CalendarService.create_block(db, caller_for(provider), date(2030, 3, 1), date(2030, 3, 2), now=NOW)
    earlier = CalendarService.create_block(db, caller_for(provider), date(2030, 2, 1), date(2030, 2, 2), now=NOW)
    CalendarService.create_block(db, caller_for(requester), date(2030, 2, 1), date(2030, 2, 2), now=NOW)

    assert [b.uuid for b in CalendarService.list_blocks(db, caller_for(provider))] == [earlier.uuid, later.uuid]
