from app import seed_super_admin
from models import Profile
from conftest import create_profile, login


def test_citizen_sign_up_and_login(client):
    response = client.post('/auth/sign-up', json={
        'email': 'Asha@Example.com',
        'password': 'secret123',
        'full_name': 'Asha Rao',
        'user_type': 'citizen',
    })
    assert response.status_code == 201
    assert response.json['requires_approval'] is False
    assert response.json['user']['email'] == 'asha@example.com'
    assert 'password_hash' not in response.json['user']

    response = login(client, 'asha@example.com')
    assert response.status_code == 200
    assert response.json['redirect'] == '/report'

    me = client.get('/api/me')
    assert me.json['user']['full_name'] == 'Asha Rao'


def test_sign_up_validation(client):
    base = {'email': 'a@example.com', 'password': 'secret123', 'full_name': 'A', 'user_type': 'citizen'}

    assert client.post('/auth/sign-up', json=dict(base, email='not-an-email')).status_code == 400
    assert client.post('/auth/sign-up', json=dict(base, password='123')).status_code == 400
    assert client.post('/auth/sign-up', json=dict(base, full_name='')).status_code == 400
    assert client.post('/auth/sign-up', json=dict(base, user_type='super_admin')).status_code == 400

    assert client.post('/auth/sign-up', json=base).status_code == 201
    duplicate = client.post('/auth/sign-up', json=base)
    assert duplicate.status_code == 409
    assert duplicate.json['success'] is False


def test_government_account_waits_for_approval(client):
    response = client.post('/auth/sign-up', json={
        'email': 'officer@city.gov',
        'password': 'secret123',
        'full_name': 'Officer Singh',
        'user_type': 'government',
        'organization': 'Roads Department',
    })
    assert response.status_code == 201
    assert response.json['requires_approval'] is True
    assert response.json['user']['organization'] == 'Roads Department'

    response = login(client, 'officer@city.gov')
    assert response.status_code == 403
    assert 'pending admin approval' in response.json['message']
    assert client.get('/api/me').status_code == 401


def test_wrong_password(client):
    create_profile('citizen@example.com')
    assert login(client, 'citizen@example.com', 'wrong-password').status_code == 401
    assert login(client, 'nobody@example.com').status_code == 401


def test_role_based_redirects(client, official_id, admin_id):
    assert login(client, 'official@city.gov').json['redirect'] == '/dashboard'
    assert login(client, 'admin@samadhan.org').json['redirect'] == '/admin'


def test_logout(citizen):
    assert citizen.get('/api/me').status_code == 200
    citizen.post('/auth/logout')
    assert citizen.get('/api/me').status_code == 401


def test_admin_setup_only_once(client):
    payload = {'email': 'root@samadhan.org', 'password': 'secret123', 'full_name': 'Root'}
    response = client.post('/admin/setup', json=payload)
    assert response.status_code == 201

    response = login(client, 'root@samadhan.org')
    assert response.json['user']['user_type'] == 'super_admin'
    assert response.json['redirect'] == '/admin'

    again = client.post('/admin/setup', json=dict(payload, email='other@samadhan.org'))
    assert again.status_code == 403


def test_unknown_route_is_json(client):
    response = client.get('/no-such-page')
    assert response.status_code == 404
    assert response.json['success'] is False


def test_session_holds_only_the_user_id(client, official_id):
    login(client, 'official@city.gov')
    with client.session_transaction() as sess:
        assert set(sess.keys()) == {'user_id'}


def test_non_object_json_is_a_client_error(client):
    assert client.post('/auth/sign-up', json=['x']).status_code == 400
    assert client.post('/auth/login', json=['x']).status_code == 401
    assert client.post('/auth/sign-up', json={
        'email': 'asha@example.com', 'password': 'secret123', 'full_name': 7, 'user_type': 'citizen',
    }).status_code == 400


def test_super_admin_seeded_from_environment(app, monkeypatch):
    monkeypatch.setenv('SUPER_ADMIN_EMAIL', 'Root@Samadhan.org')
    monkeypatch.setenv('SUPER_ADMIN_PASSWORD', 'secret123')

    with app.app_context():
        admin = seed_super_admin()
        assert admin.email == 'root@samadhan.org'
        assert admin.user_type == 'super_admin'
        assert admin.approval_status == 'approved'

        monkeypatch.setenv('SUPER_ADMIN_EMAIL', 'second@samadhan.org')
        assert seed_super_admin() is None
        assert Profile.query.filter_by(user_type='super_admin').count() == 1

    assert login(app.test_client(), 'root@samadhan.org').json['redirect'] == '/admin'


def test_seeding_needs_email_and_password(app, monkeypatch):
    monkeypatch.setenv('SUPER_ADMIN_EMAIL', 'root@samadhan.org')
    monkeypatch.delenv('SUPER_ADMIN_PASSWORD', raising=False)

    with app.app_context():
        assert seed_super_admin() is None
        assert Profile.query.count() == 0
