"""
Order Lifecycle for the Course Storefront
pending -> paid | cancelled, with deadline-based (derived) expiry
"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from sqlalchemy.exc import IntegrityError, OperationalError

from models import (
    db, Course, Order, Ownership,
    ORDER_STATUS_PENDING, ORDER_STATUS_PAID, ORDER_STATUS_CANCELLED, ORDER_MEMO_LAPSED
)
from engine_errors import (
    AlreadyOwned, AlreadyTerminal, DuplicateActiveOrder, Expired, NotFound,
    TransientStorageError
)

logger = logging.getLogger('OrderLifecycle')

DEFAULT_PAY_DEADLINE_HOURS = 72


def generate_order_no(now: datetime) -> str:
    """Date prefix plus random suffix, e.g. 20251017A1B2C3D4E5"""
    return f"{now:%Y%m%d}{uuid.uuid4().hex[:10].upper()}"


class OrderLifecycle:
    """Order state machine plus active-order selection"""

    def __init__(self, pay_deadline_hours: int = DEFAULT_PAY_DEADLINE_HOURS):
        self.pay_deadline = timedelta(hours=pay_deadline_hours)

    @classmethod
    def from_config(cls, config) -> 'OrderLifecycle':
        return cls(int(config.get('ORDER_PAY_DEADLINE_HOURS', DEFAULT_PAY_DEADLINE_HOURS)))

    # ==================== READS ====================

    @staticmethod
    def find_active_order(user_id, course_code: str, now: datetime) -> Optional[Order]:
        """Most recent pending order for the pair that is not past its deadline"""
        if user_id is None:
            return None
        return Order.query.filter(
            Order.user_id == user_id,
            Order.course_code == course_code,
            Order.status == ORDER_STATUS_PENDING,
            Order.pay_deadline >= now
        ).order_by(Order.created_at.desc(), Order.id.desc()).first()

    @staticmethod
    def get_order(order_no: str, user_id=None) -> Order:
        """Fetch an order; orders of other users look like missing ones"""
        order = Order.query.filter_by(order_no=order_no).first()
        if not order or (user_id is not None and order.user_id != user_id):
            raise NotFound('Order not found', order_no=order_no)
        return order

    @staticmethod
    def list_user_orders(user_id) -> List[Order]:
        return Order.query.filter_by(user_id=user_id)\
                          .order_by(Order.created_at.desc(), Order.id.desc()).all()

    # ==================== TRANSITIONS ====================

    def create(self, user_id, course_code: str, amount: Optional[int] = None,
               now: Optional[datetime] = None) -> Order:
        """Create a pending order, or return the live one that already exists"""
        order, _ = self.open_order(user_id, course_code, amount, now)
        return order

    def open_order(self, user_id, course_code: str, amount: Optional[int] = None,
                   now: Optional[datetime] = None) -> Tuple[Order, bool]:
        """
        Same as create() but also reports whether a new order was inserted.

        Raises:
            NotFound: unknown course
            AlreadyOwned: the user already owns the course
        """
        now = now or datetime.utcnow()

        course = Course.query.filter_by(code=course_code, is_published=True).first()
        if not course:
            raise NotFound('Course not found', course_code=course_code)

        if Ownership.is_owned(user_id, course_code):
            logger.warning(f"Order rejected: user {user_id} already owns {course_code}")
            raise AlreadyOwned(course_code=course_code)

        try:
            return self._insert_pending(user_id, course, amount, now), True
        except DuplicateActiveOrder as e:
            logger.info(f"Reusing pending order {e.order.order_no} for user {user_id}")
            return e.order, False

    def _insert_pending(self, user_id, course: Course, amount, now: datetime) -> Order:
        active = self.find_active_order(user_id, course.code, now)
        if active:
            raise DuplicateActiveOrder(active)

        # Expired pending rows would otherwise hold the one-pending index
        Order.query.filter(
            Order.user_id == user_id,
            Order.course_code == course.code,
            Order.status == ORDER_STATUS_PENDING,
            Order.pay_deadline < now
        ).update({
            Order.status: ORDER_STATUS_CANCELLED,
            Order.cancelled_at: now,
            Order.memo: ORDER_MEMO_LAPSED
        }, synchronize_session=False)

        order = Order(
            order_no=generate_order_no(now),
            user_id=user_id,
            course_code=course.code,
            amount=course.price if amount is None else amount,
            status=ORDER_STATUS_PENDING,
            pay_deadline=now + self.pay_deadline,
            created_at=now
        )
        db.session.add(order)

        try:
            db.session.commit()
        except IntegrityError:
            # Lost the race against a concurrent create for the same pair
            db.session.rollback()
            winner = self.find_active_order(user_id, course.code, now)
            if winner:
                raise DuplicateActiveOrder(winner)
            logger.error(f"Order insert conflict for user {user_id}, {course.code}", exc_info=True)
            raise TransientStorageError()
        except OperationalError:
            db.session.rollback()
            logger.error(f"Order insert failed for user {user_id}, {course.code}", exc_info=True)
            raise TransientStorageError()

        logger.info(f"Order {order.order_no} created: user {user_id}, {course.code}, amount {order.amount}")
        return order

    def pay(self, order_no: str, now: Optional[datetime] = None, user_id=None) -> Order:
        """
        Mark a pending order paid and grant course ownership in one transaction.

        The status flip is a single conditional UPDATE on status and deadline,
        so a payment racing the deadline cannot land after it.

        Raises:
            NotFound, AlreadyTerminal, Expired, AlreadyOwned
        """
        now = now or datetime.utcnow()

        query = Order.query.filter(
            Order.order_no == order_no,
            Order.status == ORDER_STATUS_PENDING,
            Order.pay_deadline >= now
        )
        if user_id is not None:
            query = query.filter(Order.user_id == user_id)

        try:
            updated = query.update({
                Order.status: ORDER_STATUS_PAID,
                Order.paid_at: now,
                Order.updated_at: now
            }, synchronize_session=False)

            if updated != 1:
                db.session.rollback()
                raise self._rejection(order_no, now, user_id, 'pay')

            order = Order.query.filter_by(order_no=order_no).populate_existing().first()

            if Ownership.is_owned(order.user_id, order.course_code):
                db.session.rollback()
                logger.warning(f"Payment rejected: user {order.user_id} already owns {order.course_code}")
                raise AlreadyOwned(course_code=order.course_code)

            db.session.add(Ownership(
                user_id=order.user_id,
                course_code=order.course_code,
                source='order',
                order_no=order.order_no,
                granted_at=now
            ))
            db.session.commit()
        except (IntegrityError, OperationalError):
            db.session.rollback()
            logger.error(f"Payment of order {order_no} failed", exc_info=True)
            raise TransientStorageError()

        logger.info(f"Order {order_no} paid; ownership of {order.course_code} granted to user {order.user_id}")
        return order

    def cancel(self, order_no: str, now: Optional[datetime] = None, user_id=None) -> Order:
        """Cancel a pending order (expired ones included). No ownership effect."""
        now = now or datetime.utcnow()

        query = Order.query.filter(
            Order.order_no == order_no,
            Order.status == ORDER_STATUS_PENDING
        )
        if user_id is not None:
            query = query.filter(Order.user_id == user_id)

        try:
            updated = query.update({
                Order.status: ORDER_STATUS_CANCELLED,
                Order.cancelled_at: now,
                Order.updated_at: now
            }, synchronize_session=False)

            if updated != 1:
                db.session.rollback()
                raise self._rejection(order_no, now, user_id, 'cancel')

            db.session.commit()
        except OperationalError:
            db.session.rollback()
            logger.error(f"Cancelling order {order_no} failed", exc_info=True)
            raise TransientStorageError()

        logger.info(f"Order {order_no} cancelled")
        return Order.query.filter_by(order_no=order_no).populate_existing().first()

    @staticmethod
    def _rejection(order_no: str, now: datetime, user_id, action: str):
        """Explain why a conditional transition touched no row"""
        order = Order.query.filter_by(order_no=order_no).first()
        if not order or (user_id is not None and order.user_id != user_id):
            return NotFound('Order not found', order_no=order_no)
        # Swept orders are cancelled in storage but still expired to the caller
        if order.is_expired(now):
            logger.warning(f"Cannot {action} order {order_no}: deadline {order.pay_deadline.isoformat()} passed")
            return Expired(order_no=order_no, pay_deadline=order.pay_deadline.isoformat())
        if order.is_terminal:
            logger.warning(f"Cannot {action} order {order_no}: already {order.status}")
            return AlreadyTerminal(order_no=order_no, status=order.status)
        return TransientStorageError()

    # ==================== DIRECT GRANTS ====================

    @staticmethod
    def grant_mock_purchase(user_id, course_code: str, now: Optional[datetime] = None) -> Ownership:
        """Grant ownership without an order (mock checkout path)"""
        now = now or datetime.utcnow()

        if not Course.query.filter_by(code=course_code, is_published=True).first():
            raise NotFound('Course not found', course_code=course_code)
        if Ownership.is_owned(user_id, course_code):
            raise AlreadyOwned(course_code=course_code)

        ownership = Ownership(user_id=user_id, course_code=course_code, source='mock', granted_at=now)
        db.session.add(ownership)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise AlreadyOwned(course_code=course_code)

        logger.info(f"Mock purchase: user {user_id} now owns {course_code}")
        return ownership
