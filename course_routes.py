"""
Course & Unit API Routes for the Course Storefront
Catalog browsing, unit access, completion and watch progress
"""

from flask import Blueprint, jsonify, request, current_app
from datetime import datetime

from models import db, Course, Unit, Ownership, LessonProgress
from auth_routes import get_current_user, require_auth, require_dev_mode
from entitlement_evaluator import EntitlementEvaluator
from progression_ledger import ProgressionLedger
from order_lifecycle import OrderLifecycle
from entry_router import EntryRouter
from engine_errors import NotFound

course_bp = Blueprint('courses', __name__, url_prefix='/api')


def _get_course_or_404(course_code):
    course = Course.query.filter_by(code=course_code, is_published=True).first()
    if not course:
        raise NotFound('Course not found', course_code=course_code)
    return course


def _get_unit_or_404(unit_id):
    unit = Unit.query.get(unit_id)
    if not unit:
        raise NotFound('Unit not found', unit_id=unit_id)
    return unit


# ==================== CATALOG ====================

@course_bp.route('/courses', methods=['GET'])
def list_courses():
    """
    GET /api/courses
    Published courses, flagged with ownership for logged-in users
    """
    user = get_current_user()
    courses = Course.query.filter_by(is_published=True).order_by(Course.order_index, Course.id).all()

    owned = set()
    if user:
        owned = {o.course_code for o in Ownership.query.filter_by(user_id=user.id).all()}

    result = []
    for course in courses:
        data = course.to_dict()
        data['is_owned'] = course.code in owned
        data['total_units'] = Unit.query.filter_by(course_code=course.code).count()
        result.append(data)

    return jsonify({'success': True, 'courses': result})


@course_bp.route('/courses/<course_code>', methods=['GET'])
def get_course(course_code):
    """
    GET /api/courses/<code>
    Course detail with sections and per-unit access flags
    """
    user = get_current_user()
    course = _get_course_or_404(course_code)

    owns = Ownership.is_owned(user.id, course.code) if user else False
    completed = ProgressionLedger.completed_unit_ids(user.id if user else None, course.code)

    sections = []
    for section in course.sections:
        section_data = section.to_dict()
        section_data['units'] = []
        for unit in section.units:
            unit_data = unit.to_dict()
            unit_data['can_access'] = EntitlementEvaluator.can_view(user is not None, owns, unit)
            unit_data['is_completed'] = unit.id in completed
            section_data['units'].append(unit_data)
        sections.append(section_data)

    data = course.to_dict()
    data['is_owned'] = owns
    data['sections'] = sections

    return jsonify({'success': True, 'course': data})


# ==================== UNITS ====================

@course_bp.route('/units/<int:unit_id>', methods=['GET'])
def get_unit(unit_id):
    """
    GET /api/units/<id>
    Unit detail; media is only returned when the caller may view it
    """
    user = get_current_user()
    unit = _get_unit_or_404(unit_id)

    if not EntitlementEvaluator.evaluate_for_user(user, unit):
        return jsonify({
            'success': False,
            'error': 'forbidden',
            'message': 'Purchase the course to unlock this unit',
            'unit': unit.to_dict()
        }), 403

    user_id = user.id if user else None
    progress = LessonProgress.query.filter_by(user_id=user_id, unit_id=unit.id).first() if user else None

    data = unit.to_dict(include_media=True)
    data['can_access'] = True
    data['is_completed'] = ProgressionLedger.is_completed(user_id, unit.id)
    data['last_position_seconds'] = progress.last_position_seconds if progress else 0

    return jsonify({'success': True, 'unit': data})


@course_bp.route('/units/<int:unit_id>/complete', methods=['POST'])
@require_auth
def complete_unit(unit_id):
    """
    POST /api/units/<id>/complete
    Complete a unit and earn its XP (once)
    """
    user = request.current_user
    unit = _get_unit_or_404(unit_id)

    result = ProgressionLedger.complete_for_user(user, unit, datetime.utcnow())

    return jsonify({
        'success': True,
        'user': {'id': user.id, **result.to_dict()},
        'unit': {'unit_id': unit.id, 'is_completed': True}
    })


@course_bp.route('/units/<int:unit_id>/progress', methods=['POST'])
def update_unit_progress(unit_id):
    """
    POST /api/units/<id>/progress
    Save the watch position; anonymous callers are acknowledged but not stored

    Request body:
    {
        "last_position_seconds": 120
    }
    """
    data = request.get_json(silent=True) or {}
    position = data.get('last_position_seconds', 0)

    user = get_current_user()
    unit = _get_unit_or_404(unit_id)

    if not user:
        return jsonify({'success': True, 'unit_id': unit.id, 'last_position_seconds': 0, 'saved': False})

    if not EntitlementEvaluator.evaluate_for_user(user, unit):
        return jsonify({'success': False, 'error': 'forbidden'}), 403

    progress = ProgressionLedger.record_watch_position(user.id, unit, position, datetime.utcnow())

    return jsonify({
        'success': True,
        'unit_id': unit.id,
        'last_position_seconds': progress.last_position_seconds,
        'saved': True
    })


# ==================== COURSE PROGRESS ====================

@course_bp.route('/courses/<course_code>/last-watched', methods=['GET'])
def get_last_watched(course_code):
    """
    GET /api/courses/<code>/last-watched
    Most recently watched unit, or null
    """
    user = get_current_user()
    _get_course_or_404(course_code)

    progress = LessonProgress.last_watched(user.id, course_code) if user else None
    return jsonify({'success': True, 'last_watched': progress.to_dict() if progress else None})


@course_bp.route('/courses/<course_code>/progress', methods=['GET'])
@require_auth
def get_course_progress(course_code):
    """
    GET /api/courses/<code>/progress
    Completed units versus total
    """
    course = _get_course_or_404(course_code)
    progress = ProgressionLedger.course_progress(request.current_user.id, course)
    return jsonify({'success': True, 'progress': progress})


# ==================== ENTRY & PURCHASE ====================

@course_bp.route('/courses/<course_code>/entry', methods=['GET'])
def get_course_entry(course_code):
    """
    GET /api/courses/<code>/entry
    Where the caller should land: resume lesson, payment step, or create order
    """
    user = get_current_user()
    _get_course_or_404(course_code)

    router = EntryRouter(OrderLifecycle.from_config(current_app.config))
    destination = router.resolve(user.id if user else None, course_code, datetime.utcnow())

    return jsonify({'success': True, 'destination': destination.to_dict()})


@course_bp.route('/courses/<course_code>/purchase/mock', methods=['POST'])
@require_auth
def mock_purchase(course_code):
    """
    POST /api/courses/<code>/purchase/mock
    Grant ownership without payment (test environments only)
    """
    if not current_app.config.get('ENABLE_MOCK_PURCHASE'):
        return jsonify({'success': False, 'error': 'Mock purchase disabled'}), 404

    course = _get_course_or_404(course_code)
    ownership = OrderLifecycle.grant_mock_purchase(request.current_user.id, course.code, datetime.utcnow())

    return jsonify({
        'success': True,
        'course': course.to_dict(),
        'ownership': ownership.to_dict()
    })


# ==================== DEV RESET ====================

@course_bp.route('/users/me/reset', methods=['POST'])
@require_dev_mode
@require_auth
def reset_my_progress():
    """
    POST /api/users/me/reset
    Wipe the caller's completions, watch progress, XP and ownerships
    """
    user = request.current_user
    ProgressionLedger.reset_user(user.id)
    db.session.refresh(user)

    return jsonify({'success': True, 'user': user.to_dict()})
