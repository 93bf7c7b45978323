"""
Progression Ledger for the Course Storefront
Grants unit XP exactly once per (user, unit) and derives the new level
"""

import logging
from datetime import datetime
from typing import Dict, NamedTuple, Optional

from sqlalchemy.exc import IntegrityError, OperationalError

from models import db, User, Unit, UnitCompletion, LessonProgress, Ownership
from leveling_table import LevelingTable, LevelInfo
from entitlement_evaluator import EntitlementEvaluator
from engine_errors import AlreadyCompleted, Forbidden, NotFound, TransientStorageError

logger = logging.getLogger('ProgressionLedger')


class CompletionResult(NamedTuple):
    new_total_xp: int
    new_weekly_xp: int
    new_level: int
    xp_earned: int
    level_info: LevelInfo

    def to_dict(self) -> Dict:
        return {
            'total_xp': self.new_total_xp,
            'weekly_xp': self.new_weekly_xp,
            'level': self.new_level,
            'xp_earned': self.xp_earned,
            'level_progress': LevelingTable.get_level_progress(self.new_total_xp)
        }


class ProgressionLedger:
    """Unit completion, course progress and XP bookkeeping"""

    @staticmethod
    def complete_unit(user_id, unit: Unit, owns_course: bool, is_authenticated: bool,
                      now: Optional[datetime] = None) -> CompletionResult:
        """
        Record a completion and grant unit.xp_reward.

        The completion insert and the XP increment share one transaction.
        The unique (user_id, unit_id) constraint is the idempotence guard:
        a duplicate insert rolls everything back and raises AlreadyCompleted.

        Raises:
            Forbidden: entitlement re-check failed or no user to credit
            AlreadyCompleted: XP for this unit was granted before
            NotFound: the user record is missing
        """
        now = now or datetime.utcnow()

        if user_id is None or not EntitlementEvaluator.can_complete(is_authenticated, owns_course, unit):
            logger.warning(f"Completion forbidden: user {user_id} -> unit {unit.id}")
            raise Forbidden(unit_id=unit.id)

        reward = unit.xp_reward or 0

        try:
            db.session.add(UnitCompletion(
                user_id=user_id,
                unit_id=unit.id,
                xp_earned=reward,
                completed_at=now
            ))
            db.session.flush()
        except IntegrityError:
            db.session.rollback()
            logger.info(f"Unit {unit.id} already completed by user {user_id}")
            raise AlreadyCompleted(unit_id=unit.id)
        except OperationalError:
            db.session.rollback()
            logger.error(f"Completion insert failed: user {user_id}, unit {unit.id}", exc_info=True)
            raise TransientStorageError()

        try:
            updated = User.query.filter_by(id=user_id).update({
                User.total_xp: User.total_xp + reward,
                User.weekly_xp: User.weekly_xp + reward
            }, synchronize_session=False)
            if updated != 1:
                db.session.rollback()
                raise NotFound('User not found', user_id=user_id)

            total_xp, weekly_xp = db.session.query(User.total_xp, User.weekly_xp)\
                                            .filter(User.id == user_id).one()
            db.session.commit()
        except (IntegrityError, OperationalError):
            db.session.rollback()
            logger.error(f"XP grant failed: user {user_id}, unit {unit.id}", exc_info=True)
            raise TransientStorageError()

        info = LevelingTable.level_info(total_xp)
        logger.info(f"Unit {unit.id} completed by user {user_id}: +{reward} XP "
                    f"(total {total_xp}, level {info.level})")

        return CompletionResult(total_xp, weekly_xp, info.level, reward, info)

    @staticmethod
    def complete_for_user(user: Optional[User], unit: Unit,
                          now: Optional[datetime] = None) -> CompletionResult:
        """Resolve the caller's facts, then complete"""
        if user is None:
            return ProgressionLedger.complete_unit(None, unit, False, False, now)
        owns = Ownership.is_owned(user.id, unit.course_code)
        return ProgressionLedger.complete_unit(user.id, unit, owns, True, now)

    @staticmethod
    def is_completed(user_id, unit_id) -> bool:
        if user_id is None:
            return False
        return UnitCompletion.query.filter_by(user_id=user_id, unit_id=unit_id).first() is not None

    @staticmethod
    def completed_unit_ids(user_id, course_code: str) -> set:
        if user_id is None:
            return set()
        rows = db.session.query(UnitCompletion.unit_id).join(
            Unit, Unit.id == UnitCompletion.unit_id
        ).filter(
            UnitCompletion.user_id == user_id,
            Unit.course_code == course_code
        ).all()
        return {row[0] for row in rows}

    @staticmethod
    def course_progress(user_id, course) -> Dict:
        """Completed / total units for a course"""
        total = Unit.query.filter_by(course_code=course.code).count()
        completed = len(ProgressionLedger.completed_unit_ids(user_id, course.code))
        return {
            'course_code': course.code,
            'completed_units': completed,
            'total_units': total,
            'progress_percent': int(completed / total * 100) if total else 0
        }

    # ==================== WATCH PROGRESS ====================

    @staticmethod
    def record_watch_position(user_id, unit: Unit, position_seconds: int,
                              now: Optional[datetime] = None) -> LessonProgress:
        """Upsert the watch position that drives the last-watched lookup"""
        now = now or datetime.utcnow()
        position_seconds = max(0, int(position_seconds or 0))

        progress = LessonProgress.query.filter_by(user_id=user_id, unit_id=unit.id).first()
        if not progress:
            progress = LessonProgress(user_id=user_id, unit_id=unit.id, course_code=unit.course_code)
            db.session.add(progress)

        progress.last_position_seconds = position_seconds
        progress.updated_at = now

        try:
            db.session.commit()
        except (IntegrityError, OperationalError):
            db.session.rollback()
            logger.error(f"Watch position update failed: user {user_id}, unit {unit.id}", exc_info=True)
            raise TransientStorageError()
        return progress

    # ==================== RESETS ====================

    @staticmethod
    def reset_weekly_xp() -> int:
        """Zero every user's weekly XP; returns the number of rows touched"""
        count = User.query.filter(User.weekly_xp != 0).update(
            {User.weekly_xp: 0}, synchronize_session=False
        )
        db.session.commit()
        logger.info(f"Weekly XP reset for {count} users")
        return count

    @staticmethod
    def reset_user(user_id) -> None:
        """Development reset: completions, watch progress, XP and ownerships"""
        UnitCompletion.query.filter_by(user_id=user_id).delete(synchronize_session=False)
        LessonProgress.query.filter_by(user_id=user_id).delete(synchronize_session=False)
        Ownership.query.filter_by(user_id=user_id).delete(synchronize_session=False)
        User.query.filter_by(id=user_id).update(
            {User.total_xp: 0, User.weekly_xp: 0}, synchronize_session=False
        )
        db.session.commit()
        logger.warning(f"Progress reset for user {user_id}")
