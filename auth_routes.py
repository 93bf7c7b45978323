"""
Authentication Routes for the Course Storefront
JWT session helpers plus the development one-click login
"""

from flask import Blueprint, jsonify, request, current_app
from functools import wraps
from datetime import datetime, timedelta
import jwt
import logging
from sqlalchemy.exc import OperationalError

from models import db, User
from leveling_table import LevelingTable
from engine_errors import TransientStorageError

logger = logging.getLogger('Auth')

# Create Blueprint
auth_bp = Blueprint('auth', __name__, url_prefix='/api/auth')

JWT_ALGORITHM = 'HS256'
JWT_EXPIRATION_HOURS = 24 * 7  # 7 days
TOKEN_COOKIE = 'token'

# Column sizes on User
PROFILE_NICKNAME_MAX = 100
PROFILE_AVATAR_URL_MAX = 500


# ==================== JWT HELPERS ====================

def generate_token(user_id):
    """Generate a JWT token for a user"""
    payload = {
        'user_id': user_id,
        'iat': datetime.utcnow(),
        'exp': datetime.utcnow() + timedelta(hours=JWT_EXPIRATION_HOURS)
    }
    return jwt.encode(payload, current_app.config['JWT_SECRET'], algorithm=JWT_ALGORITHM)


def decode_token(token):
    """Decode and validate a JWT token"""
    try:
        payload = jwt.decode(token, current_app.config['JWT_SECRET'], algorithms=[JWT_ALGORITHM])
        return payload
    except jwt.ExpiredSignatureError:
        return {'error': 'Token expired'}
    except jwt.InvalidTokenError:
        return {'error': 'Invalid token'}


def get_token_from_request():
    """Bearer header first, then the httpOnly session cookie"""
    auth_header = request.headers.get('Authorization', '')
    if auth_header.startswith('Bearer '):
        return auth_header[7:]
    return request.cookies.get(TOKEN_COOKIE)


def get_current_user():
    """The authenticated user, or None for anonymous sessions"""
    token = get_token_from_request()
    if not token:
        return None

    payload = decode_token(token)
    if 'error' in payload:
        return None

    user = User.query.get(payload.get('user_id'))
    if not user or not user.is_active:
        return None
    return user


# ==================== DECORATORS ====================

def require_auth(f):
    """Decorator to require authentication for a route"""
    @wraps(f)
    def decorated(*args, **kwargs):
        token = get_token_from_request()

        if not token:
            return jsonify({
                'success': False,
                'error': 'Authentication required',
                'message': 'Please login to access this resource'
            }), 401

        payload = decode_token(token)

        if 'error' in payload:
            return jsonify({
                'success': False,
                'error': payload['error'],
                'message': 'Please login again'
            }), 401

        user = User.query.get(payload.get('user_id'))
        if not user or not user.is_active:
            return jsonify({
                'success': False,
                'error': 'User not found or inactive'
            }), 401

        request.current_user = user

        return f(*args, **kwargs)
    return decorated


def require_dev_mode(f):
    """Routes that only exist in development and test environments"""
    @wraps(f)
    def decorated(*args, **kwargs):
        if not current_app.config.get('ENABLE_DEV_LOGIN'):
            return jsonify({'success': False, 'error': 'Resource not found'}), 404
        return f(*args, **kwargs)
    return decorated


# ==================== AUTH ROUTES ====================

@auth_bp.route('/dev-login', methods=['POST'])
@require_dev_mode
def dev_login():
    """
    POST /api/auth/dev-login
    Log in as a seeded user without an identity provider

    Request body:
    {
        "external_id": "seed-user-1"
    }
    """
    data = request.json or {}
    external_id = (data.get('external_id') or '').strip()

    if not external_id:
        return jsonify({'success': False, 'error': 'external_id is required'}), 400

    user = User.query.filter_by(external_id=external_id).first()
    if not user or not user.is_active:
        return jsonify({'success': False, 'error': 'User not found'}), 404

    token = generate_token(user.id)
    logger.info(f"Dev login for {external_id}")

    response = jsonify({
        'success': True,
        'token': token,
        'user': user.to_dict(include_email=True)
    })
    response.set_cookie(TOKEN_COOKIE, token, httponly=True, samesite='Lax',
                        max_age=JWT_EXPIRATION_HOURS * 3600)
    return response


@auth_bp.route('/me', methods=['GET'])
@require_auth
def get_me():
    """
    GET /api/auth/me
    Current user with level progress
    """
    user = request.current_user
    return jsonify({
        'success': True,
        'user': user.to_dict(include_email=True),
        'level_progress': LevelingTable.get_level_progress(user.total_xp or 0)
    })


@auth_bp.route('/profile', methods=['PATCH'])
@require_auth
def update_profile():
    """
    PATCH /api/auth/profile
    Update nickname and avatar; email comes from the identity provider

    Request body:
    {
        "nickname": "Learner One",
        "avatar_url": "https://..."
    }
    """
    data = request.get_json(silent=True) or {}
    user = request.current_user

    if 'nickname' in data:
        nickname = (data['nickname'] or '').strip()
        if len(nickname) > PROFILE_NICKNAME_MAX:
            return jsonify({
                'success': False,
                'error': f'Nickname must be at most {PROFILE_NICKNAME_MAX} characters'
            }), 400
        user.nickname = nickname or None

    if 'avatar_url' in data:
        avatar_url = (data['avatar_url'] or '').strip()
        if len(avatar_url) > PROFILE_AVATAR_URL_MAX:
            return jsonify({'success': False, 'error': 'Avatar URL is too long'}), 400
        user.avatar_url = avatar_url or None

    try:
        db.session.commit()
    except OperationalError:
        db.session.rollback()
        logger.error(f"Profile update failed for user {user.id}", exc_info=True)
        raise TransientStorageError()

    logger.info(f"Profile updated for user {user.id}")
    return jsonify({
        'success': True,
        'message': 'Profile updated successfully',
        'user': user.to_dict(include_email=True)
    })


@auth_bp.route('/logout', methods=['POST'])
def logout():
    """
    POST /api/auth/logout
    Tokens are stateless; dropping the cookie ends the session
    """
    response = jsonify({'success': True, 'message': 'Logged out'})
    response.delete_cookie(TOKEN_COOKIE)
    return response
