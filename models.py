"""
SQLAlchemy ORM Models for the Course Storefront
Users, catalog content, ownership, orders and progression records
"""

from flask_sqlalchemy import SQLAlchemy
from datetime import datetime

from leveling_table import LevelingTable

db = SQLAlchemy()


ORDER_STATUS_PENDING = 'pending'
ORDER_STATUS_PAID = 'paid'
ORDER_STATUS_CANCELLED = 'cancelled'

# Set on pending orders that were closed because their deadline passed
ORDER_MEMO_LAPSED = 'Payment deadline passed'


# ==================== USER MODELS ====================

class User(db.Model):
    """User accounts with XP tracking"""
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    external_id = db.Column(db.String(64), unique=True, nullable=False, index=True)
    username = db.Column(db.String(50), unique=True, nullable=False, index=True)
    email = db.Column(db.String(255), unique=True, nullable=True)

    # Profile
    nickname = db.Column(db.String(100))
    avatar_url = db.Column(db.String(500))

    # Identity provider (google, facebook, dev)
    provider = db.Column(db.String(20), default='dev', nullable=False)

    # Gamification
    total_xp = db.Column(db.Integer, default=0, nullable=False)
    weekly_xp = db.Column(db.Integer, default=0, nullable=False)

    is_active = db.Column(db.Boolean, default=True)

    # Timestamps
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    ownerships = db.relationship('Ownership', backref='user', lazy='dynamic')
    orders = db.relationship('Order', backref='user', lazy='dynamic')
    completions = db.relationship('UnitCompletion', backref='user', lazy='dynamic')

    @property
    def level(self):
        """Level is always derived from total XP"""
        return LevelingTable.level_for(self.total_xp or 0)

    def to_dict(self, include_email=False):
        """Convert to dictionary for JSON response"""
        data = {
            'id': self.id,
            'external_id': self.external_id,
            'username': self.username,
            'nickname': self.nickname,
            'avatar_url': self.avatar_url,
            'total_xp': self.total_xp or 0,
            'weekly_xp': self.weekly_xp or 0,
            'level': self.level,
            'created_at': self.created_at.isoformat() if self.created_at else None
        }
        if include_email:
            data['email'] = self.email
        return data


# ==================== CONTENT MODELS ====================

class Course(db.Model):
    """Purchasable course (journey), identified by its code"""
    __tablename__ = 'courses'

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(100), unique=True, nullable=False, index=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    teacher_name = db.Column(db.String(100))
    thumbnail_url = db.Column(db.String(500))

    # Pricing (TWD, whole units)
    price = db.Column(db.Integer, default=0, nullable=False)
    original_price = db.Column(db.Integer, default=0, nullable=False)

    is_published = db.Column(db.Boolean, default=True)
    order_index = db.Column(db.Integer, default=0)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    # Relationships
    sections = db.relationship('Section', backref='course', lazy='dynamic',
                               order_by='Section.order_index',
                               cascade='all, delete-orphan')

    def ordered_units(self):
        """Units in reading order: section first, then unit order"""
        return Unit.query.join(Section).filter(
            Section.course_id == self.id
        ).order_by(Section.order_index, Unit.order_index, Unit.id).all()

    def to_dict(self):
        return {
            'id': self.id,
            'code': self.code,
            'title': self.title,
            'description': self.description,
            'teacher_name': self.teacher_name,
            'thumbnail_url': self.thumbnail_url,
            'price': self.price,
            'original_price': self.original_price,
            'sections_count': self.sections.count()
        }


class Section(db.Model):
    """Ordered chapter grouping units within a course"""
    __tablename__ = 'sections'

    id = db.Column(db.Integer, primary_key=True)
    course_id = db.Column(db.Integer, db.ForeignKey('courses.id'), nullable=False)
    title = db.Column(db.String(200), nullable=False)
    order_index = db.Column(db.Integer, default=0, nullable=False)

    units = db.relationship('Unit', backref='section', lazy='dynamic',
                            order_by='Unit.order_index',
                            cascade='all, delete-orphan')

    def to_dict(self):
        return {
            'id': self.id,
            'title': self.title,
            'order_index': self.order_index
        }


class Unit(db.Model):
    """A single lesson; free preview units bypass ownership"""
    __tablename__ = 'units'

    id = db.Column(db.Integer, primary_key=True)
    section_id = db.Column(db.Integer, db.ForeignKey('sections.id'), nullable=False)
    course_code = db.Column(db.String(100), db.ForeignKey('courses.code'), nullable=False, index=True)

    title = db.Column(db.String(200), nullable=False)
    unit_type = db.Column(db.String(20), default='video')  # video, scroll, google-form
    video_url = db.Column(db.String(500))
    video_length = db.Column(db.String(20))

    is_free_preview = db.Column(db.Boolean, default=False, nullable=False)
    xp_reward = db.Column(db.Integer, default=0, nullable=False)
    order_index = db.Column(db.Integer, default=0, nullable=False)

    __table_args__ = (db.CheckConstraint('xp_reward >= 0', name='ck_units_xp_reward'),)

    def to_dict(self, include_media=False):
        data = {
            'id': self.id,
            'section_id': self.section_id,
            'course_code': self.course_code,
            'title': self.title,
            'type': self.unit_type,
            'video_length': self.video_length,
            'is_free_preview': self.is_free_preview,
            'xp_reward': self.xp_reward,
            'order_index': self.order_index
        }
        if include_media:
            data['video_url'] = self.video_url
        return data


# ==================== OWNERSHIP & ORDER MODELS ====================

class Ownership(db.Model):
    """Durable course entitlement granted by a paid order or mock purchase"""
    __tablename__ = 'ownerships'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    course_code = db.Column(db.String(100), db.ForeignKey('courses.code'), nullable=False)
    source = db.Column(db.String(20), default='order', nullable=False)  # order, mock
    order_no = db.Column(db.String(40), nullable=True)

    granted_at = db.Column(db.DateTime, default=datetime.utcnow)

    __table_args__ = (db.UniqueConstraint('user_id', 'course_code', name='uq_ownership_user_course'),)

    @staticmethod
    def is_owned(user_id, course_code):
        if user_id is None:
            return False
        return db.session.query(
            Ownership.query.filter_by(user_id=user_id, course_code=course_code).exists()
        ).scalar()

    def to_dict(self):
        return {
            'course_code': self.course_code,
            'source': self.source,
            'order_no': self.order_no,
            'granted_at': self.granted_at.isoformat() if self.granted_at else None
        }


class Order(db.Model):
    """Course order; pending until paid or cancelled, expiry is derived"""
    __tablename__ = 'orders'

    id = db.Column(db.Integer, primary_key=True)
    order_no = db.Column(db.String(40), unique=True, nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    course_code = db.Column(db.String(100), db.ForeignKey('courses.code'), nullable=False)

    amount = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(20), default=ORDER_STATUS_PENDING, nullable=False)
    memo = db.Column(db.String(200))

    pay_deadline = db.Column(db.DateTime, nullable=False)
    paid_at = db.Column(db.DateTime, nullable=True)
    cancelled_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    course = db.relationship('Course')

    # One live pending order per (user, course)
    __table_args__ = (
        db.Index(
            'uq_orders_one_pending', 'user_id', 'course_code', unique=True,
            sqlite_where=db.text("status = 'pending'"),
            postgresql_where=db.text("status = 'pending'")
        ),
    )

    @property
    def is_terminal(self):
        return self.status in (ORDER_STATUS_PAID, ORDER_STATUS_CANCELLED)

    @property
    def lapsed(self):
        """Closed by the deadline sweep rather than by the user"""
        return self.status == ORDER_STATUS_CANCELLED and self.memo == ORDER_MEMO_LAPSED

    def is_expired(self, now):
        """
        Past the deadline and never paid. The deadline instant itself is
        still payable. Swept orders stay expired after being closed.
        """
        if self.lapsed:
            return True
        return self.status == ORDER_STATUS_PENDING and now > self.pay_deadline

    def to_dict(self, now=None):
        now = now or datetime.utcnow()
        return {
            'order_no': self.order_no,
            'user_id': self.user_id,
            'course_code': self.course_code,
            'course_title': self.course.title if self.course else None,
            'amount': self.amount,
            'status': self.status,
            'is_expired': self.is_expired(now),
            'memo': self.memo,
            'pay_deadline': self.pay_deadline.isoformat() if self.pay_deadline else None,
            'paid_at': self.paid_at.isoformat() if self.paid_at else None,
            'created_at': self.created_at.isoformat() if self.created_at else None
        }


# ==================== PROGRESS MODELS ====================

class UnitCompletion(db.Model):
    """Write-once completion record; its existence means XP was granted"""
    __tablename__ = 'unit_completions'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    unit_id = db.Column(db.Integer, db.ForeignKey('units.id'), nullable=False)
    xp_earned = db.Column(db.Integer, default=0, nullable=False)
    completed_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (db.UniqueConstraint('user_id', 'unit_id', name='uq_completion_user_unit'),)


class LessonProgress(db.Model):
    """Watch position per unit, used for the last-watched lookup"""
    __tablename__ = 'lesson_progress'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    unit_id = db.Column(db.Integer, db.ForeignKey('units.id'), nullable=False)
    course_code = db.Column(db.String(100), nullable=False, index=True)

    last_position_seconds = db.Column(db.Integer, default=0, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    unit = db.relationship('Unit')

    __table_args__ = (db.UniqueConstraint('user_id', 'unit_id', name='uq_progress_user_unit'),)

    @staticmethod
    def last_watched(user_id, course_code):
        """Most recently touched unit for the user in this course"""
        if user_id is None:
            return None
        return LessonProgress.query.filter_by(
            user_id=user_id, course_code=course_code
        ).order_by(LessonProgress.updated_at.desc(), LessonProgress.id.desc()).first()

    def to_dict(self):
        return {
            'unit_id': self.unit_id,
            'section_id': self.unit.section_id if self.unit else None,
            'course_code': self.course_code,
            'last_position_seconds': self.last_position_seconds,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None
        }
