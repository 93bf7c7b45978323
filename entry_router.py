"""
Entry Router for the Course Storefront
Picks where a user lands when opening a course: their lesson, the
payment step of a live order, or the order-creation step
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union

from models import Course, Ownership, LessonProgress
from order_lifecycle import OrderLifecycle
from engine_errors import NotFound

logger = logging.getLogger('EntryRouter')


@dataclass(frozen=True)
class LessonRef:
    section_id: Optional[int]
    unit_id: Optional[int]


@dataclass(frozen=True)
class ResumeLesson:
    lesson: LessonRef
    kind: str = 'resume_lesson'

    def to_dict(self):
        return {
            'kind': self.kind,
            'section_id': self.lesson.section_id,
            'unit_id': self.lesson.unit_id
        }


@dataclass(frozen=True)
class PaymentStep:
    order_no: str
    kind: str = 'payment_step'

    def to_dict(self):
        return {'kind': self.kind, 'order_no': self.order_no}


@dataclass(frozen=True)
class CreateOrderStep:
    kind: str = 'create_order_step'

    def to_dict(self):
        return {'kind': self.kind}


Destination = Union[ResumeLesson, PaymentStep, CreateOrderStep]


def decide_destination(owns_course: bool, active_order_no: Optional[str],
                       last_watched: Optional[LessonRef],
                       first_lesson: Optional[LessonRef]) -> Destination:
    """
    Ownership wins over any pending order, so a paying customer is never
    sent back through checkout.
    """
    if owns_course:
        return ResumeLesson(last_watched or first_lesson or LessonRef(None, None))
    if active_order_no:
        return PaymentStep(active_order_no)
    return CreateOrderStep()


class EntryRouter:
    """Gathers the facts for decide_destination from storage"""

    def __init__(self, lifecycle: Optional[OrderLifecycle] = None):
        self.lifecycle = lifecycle or OrderLifecycle()

    @staticmethod
    def first_lesson(course: Course) -> Optional[LessonRef]:
        units = course.ordered_units()
        if not units:
            return None
        return LessonRef(units[0].section_id, units[0].id)

    @staticmethod
    def last_watched(user_id, course_code: str) -> Optional[LessonRef]:
        progress = LessonProgress.last_watched(user_id, course_code)
        if not progress or not progress.unit:
            return None
        return LessonRef(progress.unit.section_id, progress.unit_id)

    def resolve(self, user_id, course_code: str, now: Optional[datetime] = None) -> Destination:
        now = now or datetime.utcnow()

        course = Course.query.filter_by(code=course_code).first()
        if not course:
            raise NotFound('Course not found', course_code=course_code)

        owns = Ownership.is_owned(user_id, course_code)
        if owns:
            destination = decide_destination(
                True, None, self.last_watched(user_id, course_code), self.first_lesson(course)
            )
        else:
            active = self.lifecycle.find_active_order(user_id, course_code, now)
            destination = decide_destination(False, active.order_no if active else None, None, None)

        logger.debug(f"Entry for user {user_id} into {course_code}: {destination.kind}")
        return destination
