import pytest
from datetime import timedelta

from conftest import NOW, COURSE_CODE
from models import Unit
from order_lifecycle import OrderLifecycle
from progression_ledger import ProgressionLedger
from entry_router import (
    EntryRouter, LessonRef, ResumeLesson, PaymentStep, CreateOrderStep, decide_destination
)
from engine_errors import NotFound


@pytest.fixture
def lifecycle():
    return OrderLifecycle(pay_deadline_hours=72)


@pytest.fixture
def router(lifecycle):
    return EntryRouter(lifecycle)


# ==================== PURE DECISION ====================

def test_ownership_beats_pending_order():
    destination = decide_destination(True, 'ORDER1', None, LessonRef(1, 1))
    assert destination == ResumeLesson(LessonRef(1, 1))


def test_last_watched_preferred_over_first_lesson():
    destination = decide_destination(True, None, LessonRef(2, 5), LessonRef(1, 1))
    assert destination.lesson == LessonRef(2, 5)


def test_pending_order_leads_to_payment():
    assert decide_destination(False, 'ORDER1', None, None) == PaymentStep('ORDER1')


def test_nothing_leads_to_create_order():
    assert decide_destination(False, None, None, None) == CreateOrderStep()


def test_owned_course_without_units():
    destination = decide_destination(True, None, None, None)
    assert destination.lesson == LessonRef(None, None)


# ==================== STORAGE-BACKED ====================

def test_owner_resumes_first_lesson(router, user, course):
    OrderLifecycle.grant_mock_purchase(user.id, COURSE_CODE, NOW)
    first = Unit.query.filter_by(course_code=COURSE_CODE, title='Welcome').first()

    destination = router.resolve(user.id, COURSE_CODE, NOW)

    assert isinstance(destination, ResumeLesson)
    assert destination.lesson == LessonRef(first.section_id, first.id)


def test_owner_resumes_last_watched(router, user, course, paid_unit):
    OrderLifecycle.grant_mock_purchase(user.id, COURSE_CODE, NOW)
    ProgressionLedger.record_watch_position(user.id, paid_unit, 42, NOW)

    destination = router.resolve(user.id, COURSE_CODE, NOW)

    assert destination.lesson.unit_id == paid_unit.id


def test_owner_with_lingering_order_still_resumes(router, lifecycle, user, course):
    order = lifecycle.create(user.id, COURSE_CODE, now=NOW)
    lifecycle.pay(order.order_no, now=NOW)

    assert isinstance(router.resolve(user.id, COURSE_CODE, NOW), ResumeLesson)


def test_pending_order_routes_to_payment(router, lifecycle, user, course):
    order = lifecycle.create(user.id, COURSE_CODE, now=NOW)

    destination = router.resolve(user.id, COURSE_CODE, NOW + timedelta(hours=1))

    assert destination == PaymentStep(order.order_no)


def test_expired_order_routes_to_create(router, lifecycle, user, course):
    lifecycle.create(user.id, COURSE_CODE, now=NOW)

    destination = router.resolve(user.id, COURSE_CODE, NOW + timedelta(days=5))

    assert destination == CreateOrderStep()


def test_cancelled_order_routes_to_create(router, lifecycle, user, course):
    order = lifecycle.create(user.id, COURSE_CODE, now=NOW)
    lifecycle.cancel(order.order_no, now=NOW)

    assert router.resolve(user.id, COURSE_CODE, NOW) == CreateOrderStep()


def test_anonymous_routes_to_create(router, course):
    assert router.resolve(None, COURSE_CODE, NOW) == CreateOrderStep()


def test_unknown_course(router, user):
    with pytest.raises(NotFound):
        router.resolve(user.id, 'no-such-course', NOW)
