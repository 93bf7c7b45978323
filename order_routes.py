"""
Order API Routes for the Course Storefront
Create, pay and cancel course orders
"""

from flask import Blueprint, jsonify, request, current_app
from datetime import datetime

from auth_routes import require_auth
from order_lifecycle import OrderLifecycle

order_bp = Blueprint('orders', __name__, url_prefix='/api')


def _lifecycle():
    return OrderLifecycle.from_config(current_app.config)


@order_bp.route('/orders', methods=['POST'])
@require_auth
def create_order():
    """
    POST /api/orders
    Create a pending order, or get back the live one for this course

    Request body:
    {
        "course_code": "software-design-pattern"
    }
    """
    data = request.get_json(silent=True) or {}
    course_code = (data.get('course_code') or '').strip()

    if not course_code:
        return jsonify({'success': False, 'error': 'course_code is required'}), 400

    now = datetime.utcnow()
    order, created = _lifecycle().open_order(request.current_user.id, course_code, now=now)

    return jsonify({
        'success': True,
        'created': created,
        'order': order.to_dict(now)
    }), 201 if created else 200


@order_bp.route('/orders/<order_no>', methods=['GET'])
@require_auth
def get_order(order_no):
    """
    GET /api/orders/<order_no>
    """
    order = OrderLifecycle.get_order(order_no, user_id=request.current_user.id)
    return jsonify({'success': True, 'order': order.to_dict(datetime.utcnow())})


@order_bp.route('/orders/<order_no>/pay', methods=['POST'])
@require_auth
def pay_order(order_no):
    """
    POST /api/orders/<order_no>/pay
    Record a confirmed payment; unlocks the course
    """
    now = datetime.utcnow()
    order = _lifecycle().pay(order_no, now=now, user_id=request.current_user.id)

    return jsonify({
        'success': True,
        'message': 'Payment completed',
        'order': order.to_dict(now)
    })


@order_bp.route('/orders/<order_no>/cancel', methods=['POST'])
@require_auth
def cancel_order(order_no):
    """
    POST /api/orders/<order_no>/cancel
    """
    now = datetime.utcnow()
    order = _lifecycle().cancel(order_no, now=now, user_id=request.current_user.id)

    return jsonify({'success': True, 'order': order.to_dict(now)})


@order_bp.route('/users/me/orders', methods=['GET'])
@require_auth
def list_my_orders():
    """
    GET /api/users/me/orders
    Order history, newest first
    """
    now = datetime.utcnow()
    orders = OrderLifecycle.list_user_orders(request.current_user.id)

    return jsonify({
        'success': True,
        'orders': [o.to_dict(now) for o in orders]
    })
