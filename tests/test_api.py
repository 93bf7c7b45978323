from datetime import datetime, timedelta

from conftest import COURSE_CODE, make_auth_header
from models import db, Order, Ownership, User


def test_dev_login_returns_token(client, user):
    """Dev login issues a token and sets the session cookie"""
    response = client.post('/api/auth/dev-login', json={'external_id': 'seed-user-1'})

    assert response.status_code == 200
    assert response.json['success'] is True
    assert 'token' in response.json
    assert 'token=' in response.headers.get('Set-Cookie', '')


def test_dev_login_unknown_user(client, user):
    response = client.post('/api/auth/dev-login', json={'external_id': 'nobody'})
    assert response.status_code == 404


def test_me_requires_auth(client, course):
    response = client.get('/api/auth/me')
    assert response.status_code == 401
    assert response.json['success'] is False


def test_me_includes_level_progress(client, auth_header):
    response = client.get('/api/auth/me', headers=auth_header)

    assert response.status_code == 200
    assert response.json['level_progress']['level'] == 1
    assert response.json['level_progress']['xp_for_next_level'] == 200


def test_list_courses_flags_ownership(client, user, auth_header):
    client.post(f'/api/courses/{COURSE_CODE}/purchase/mock', headers=auth_header)

    response = client.get('/api/courses', headers=auth_header)

    assert response.status_code == 200
    owned = {c['code']: c['is_owned'] for c in response.json['courses']}
    assert owned[COURSE_CODE] is True
    assert owned['ai-x-bdd'] is False


def test_course_detail_anonymous_access_flags(client, course):
    response = client.get(f'/api/courses/{COURSE_CODE}')

    assert response.status_code == 200
    units = [u for s in response.json['course']['sections'] for u in s['units']]
    access = {u['title']: u['can_access'] for u in units}
    assert access['Welcome'] is True
    assert access['Strategy'] is False


def test_unknown_course_is_404(client, course):
    response = client.get('/api/courses/no-such-course')
    assert response.status_code == 404
    assert response.json['error'] == 'not_found'


def test_paid_unit_forbidden_for_anonymous(client, paid_unit):
    response = client.get(f'/api/units/{paid_unit.id}')

    assert response.status_code == 403
    assert 'video_url' not in response.json['unit']


def test_preview_unit_open_for_anonymous(client, preview_unit):
    response = client.get(f'/api/units/{preview_unit.id}')

    assert response.status_code == 200
    assert response.json['unit']['can_access'] is True


def test_complete_unit_once(client, user, auth_header, preview_unit):
    first = client.post(f'/api/units/{preview_unit.id}/complete', headers=auth_header)
    second = client.post(f'/api/units/{preview_unit.id}/complete', headers=auth_header)

    assert first.status_code == 200
    assert first.json['user']['xp_earned'] == 200
    assert first.json['user']['level'] == 2
    assert second.status_code == 409
    assert second.json['error'] == 'already_completed'

    db.session.expire_all()
    assert User.query.get(user.id).total_xp == 200


def test_complete_paid_unit_forbidden(client, auth_header, paid_unit):
    response = client.post(f'/api/units/{paid_unit.id}/complete', headers=auth_header)

    assert response.status_code == 403
    assert response.json['error'] == 'forbidden'


def test_complete_requires_login(client, preview_unit):
    response = client.post(f'/api/units/{preview_unit.id}/complete')
    assert response.status_code == 401


def test_order_flow(client, user, auth_header, course):
    """Create -> idempotent create -> pay -> owned -> resume"""
    created = client.post('/api/orders', json={'course_code': COURSE_CODE}, headers=auth_header)
    assert created.status_code == 201
    order_no = created.json['order']['order_no']

    again = client.post('/api/orders', json={'course_code': COURSE_CODE}, headers=auth_header)
    assert again.status_code == 200
    assert again.json['order']['order_no'] == order_no

    entry = client.get(f'/api/courses/{COURSE_CODE}/entry', headers=auth_header)
    assert entry.json['destination'] == {'kind': 'payment_step', 'order_no': order_no}

    paid = client.post(f'/api/orders/{order_no}/pay', headers=auth_header)
    assert paid.status_code == 200
    assert paid.json['order']['status'] == 'paid'

    entry = client.get(f'/api/courses/{COURSE_CODE}/entry', headers=auth_header)
    assert entry.json['destination']['kind'] == 'resume_lesson'

    rejected = client.post('/api/orders', json={'course_code': COURSE_CODE}, headers=auth_header)
    assert rejected.status_code == 409
    assert rejected.json['error'] == 'already_owned'


def test_pay_expired_order_via_api(client, user, auth_header, course):
    created = client.post('/api/orders', json={'course_code': COURSE_CODE}, headers=auth_header)
    order_no = created.json['order']['order_no']

    order = Order.query.filter_by(order_no=order_no).first()
    order.pay_deadline = datetime.utcnow() - timedelta(minutes=1)
    db.session.commit()

    response = client.post(f'/api/orders/{order_no}/pay', headers=auth_header)

    assert response.status_code == 410
    assert response.json['error'] == 'expired'
    assert not Ownership.is_owned(user.id, COURSE_CODE)


def test_cancel_order_via_api(client, auth_header, course):
    created = client.post('/api/orders', json={'course_code': COURSE_CODE}, headers=auth_header)
    order_no = created.json['order']['order_no']

    response = client.post(f'/api/orders/{order_no}/cancel', headers=auth_header)
    assert response.json['order']['status'] == 'cancelled'

    entry = client.get(f'/api/courses/{COURSE_CODE}/entry', headers=auth_header)
    assert entry.json['destination'] == {'kind': 'create_order_step'}


def test_other_users_order_is_hidden(client, auth_header, other_user, course):
    created = client.post('/api/orders', json={'course_code': COURSE_CODE}, headers=auth_header)
    order_no = created.json['order']['order_no']

    response = client.get(f'/api/orders/{order_no}', headers=make_auth_header(other_user))
    assert response.status_code == 404


def test_create_order_requires_course_code(client, auth_header):
    response = client.post('/api/orders', json={}, headers=auth_header)
    assert response.status_code == 400


def test_my_orders(client, auth_header, course):
    client.post('/api/orders', json={'course_code': COURSE_CODE}, headers=auth_header)
    client.post('/api/orders', json={'course_code': 'ai-x-bdd'}, headers=auth_header)

    response = client.get('/api/users/me/orders', headers=auth_header)

    assert response.status_code == 200
    assert len(response.json['orders']) == 2


def test_watch_progress_and_last_watched(client, auth_header, preview_unit):
    response = client.post(f'/api/units/{preview_unit.id}/progress',
                           json={'last_position_seconds': 75}, headers=auth_header)
    assert response.json['saved'] is True

    last = client.get(f'/api/courses/{COURSE_CODE}/last-watched', headers=auth_header)
    assert last.json['last_watched']['unit_id'] == preview_unit.id
    assert last.json['last_watched']['last_position_seconds'] == 75


def test_anonymous_watch_progress_not_saved(client, preview_unit):
    response = client.post(f'/api/units/{preview_unit.id}/progress', json={'last_position_seconds': 75})

    assert response.status_code == 200
    assert response.json['saved'] is False


def test_total_leaderboard_pagination(client, auth_header, preview_unit):
    client.post(f'/api/units/{preview_unit.id}/complete', headers=auth_header)

    response = client.get('/api/leaderboard/total?limit=1')

    assert response.status_code == 200
    assert response.json['total'] == 2
    assert response.json['has_more'] is True
    top = response.json['leaderboard'][0]
    assert top['rank'] == 1
    assert top['xp'] == 200
    assert top['level'] == 2


def test_weekly_leaderboard_and_reset(client, auth_header, preview_unit):
    client.post(f'/api/units/{preview_unit.id}/complete', headers=auth_header)

    weekly = client.get('/api/leaderboard/weekly', headers=auth_header)
    assert weekly.json['me'] == {'rank': 1, 'weekly_xp': 200}

    denied = client.post('/api/leaderboard/reset-weekly')
    assert denied.status_code == 401

    reset = client.post('/api/leaderboard/reset-weekly', headers={'X-Admin-Key': 'test-cron-key'})
    assert reset.json['users_reset'] == 1

    weekly = client.get('/api/leaderboard/weekly', headers=auth_header)
    assert weekly.json['leaderboard'] == []


def test_dev_reset(client, auth_header, preview_unit):
    client.post(f'/api/courses/{COURSE_CODE}/purchase/mock', headers=auth_header)
    client.post(f'/api/units/{preview_unit.id}/complete', headers=auth_header)

    response = client.post('/api/users/me/reset', headers=auth_header)

    assert response.status_code == 200
    assert response.json['user']['total_xp'] == 0
    progress = client.get(f'/api/courses/{COURSE_CODE}/progress', headers=auth_header)
    assert progress.json['progress']['completed_units'] == 0


def test_update_profile(client, user, auth_header):
    response = client.patch('/api/auth/profile',
                            json={'nickname': '  Pattern Fan ', 'avatar_url': 'https://example.com/a.png',
                                  'email': 'changed@example.com'},
                            headers=auth_header)

    assert response.status_code == 200
    assert response.json['user']['nickname'] == 'Pattern Fan'
    assert response.json['user']['avatar_url'] == 'https://example.com/a.png'
    assert response.json['user']['email'] == 'learner1@example.com'


def test_update_profile_rejects_long_nickname(client, auth_header):
    response = client.patch('/api/auth/profile', json={'nickname': 'x' * 101}, headers=auth_header)
    assert response.status_code == 400


def test_update_profile_requires_auth(client, course):
    response = client.patch('/api/auth/profile', json={'nickname': 'anon'})
    assert response.status_code == 401


def test_order_for_unpublished_course_is_404(client, auth_header, course):
    course.is_published = False
    db.session.commit()

    response = client.post('/api/orders', json={'course_code': COURSE_CODE}, headers=auth_header)

    assert response.status_code == 404
    assert Order.query.count() == 0
