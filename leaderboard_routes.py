"""
Leaderboard API Routes for the Course Storefront
Total and weekly XP rankings plus the weekly reset hook
"""

from flask import Blueprint, jsonify, request, current_app
from datetime import datetime, timedelta

from models import User
from auth_routes import require_auth
from leveling_table import LevelingTable
from progression_ledger import ProgressionLedger

leaderboard_bp = Blueprint('leaderboard', __name__, url_prefix='/api/leaderboard')

MAX_PAGE_SIZE = 100


def get_current_week_start():
    """Get the start of the current week (Monday)"""
    today = datetime.utcnow().date()
    return today - timedelta(days=today.weekday())


def _entry(rank, user, xp):
    info = LevelingTable.level_info(user.total_xp or 0)
    return {
        'rank': rank,
        'user': {
            'id': user.id,
            'username': user.username,
            'nickname': user.nickname,
            'avatar_url': user.avatar_url
        },
        'xp': xp,
        'level': info.level,
        'progress_percent': info.progress_percent
    }


def _page_args(default_limit):
    limit = request.args.get('limit', default_limit, type=int)
    offset = request.args.get('offset', 0, type=int)
    return max(1, min(limit, MAX_PAGE_SIZE)), max(0, offset)


# ==================== API ENDPOINTS ====================

@leaderboard_bp.route('/total', methods=['GET'])
def get_total_leaderboard():
    """
    GET /api/leaderboard/total?limit=20&offset=0
    All-time ranking by total XP, public
    """
    limit, offset = _page_args(20)

    query = User.query.filter_by(is_active=True)
    total = query.count()
    users = query.order_by(User.total_xp.desc(), User.id).offset(offset).limit(limit).all()

    leaderboard = [
        _entry(offset + idx, user, user.total_xp or 0)
        for idx, user in enumerate(users, 1)
    ]

    return jsonify({
        'success': True,
        'leaderboard': leaderboard,
        'total': total,
        'has_more': offset + len(leaderboard) < total
    })


@leaderboard_bp.route('/weekly', methods=['GET'])
@require_auth
def get_weekly_leaderboard():
    """
    GET /api/leaderboard/weekly?limit=50
    This week's ranking by weekly XP, with the caller's own rank
    """
    limit, _ = _page_args(50)
    current_user = request.current_user

    users = User.query.filter(User.is_active == True, User.weekly_xp > 0)\
                      .order_by(User.weekly_xp.desc(), User.id).limit(limit).all()

    leaderboard = [_entry(idx, user, user.weekly_xp) for idx, user in enumerate(users, 1)]

    ahead = User.query.filter(User.is_active == True, User.weekly_xp > (current_user.weekly_xp or 0)).count()

    return jsonify({
        'success': True,
        'week_start': get_current_week_start().isoformat(),
        'leaderboard': leaderboard,
        'me': {
            'rank': ahead + 1,
            'weekly_xp': current_user.weekly_xp or 0
        }
    })


# ==================== ADMIN/CRON ENDPOINTS ====================

@leaderboard_bp.route('/reset-weekly', methods=['POST'])
def reset_weekly():
    """
    Weekly reset endpoint - called by a cron job at the week boundary
    """
    admin_key = request.headers.get('X-Admin-Key')
    expected_key = current_app.config.get('ADMIN_CRON_KEY')

    if not expected_key or admin_key != expected_key:
        return jsonify({'error': 'Unauthorized'}), 401

    count = ProgressionLedger.reset_weekly_xp()

    return jsonify({
        'success': True,
        'message': 'Weekly reset completed',
        'users_reset': count
    })
