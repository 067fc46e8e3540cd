import os
import tempfile
from io import BytesIO

# The app module reads its configuration at import time
TEST_DIR = tempfile.mkdtemp(prefix='samadhan-tests-')
os.environ['DATABASE_URL'] = 'sqlite:///' + os.path.join(TEST_DIR, 'samadhan-test.db')
os.environ['UPLOAD_FOLDER'] = os.path.join(TEST_DIR, 'uploads')
os.environ['SESSION_SECRET'] = 'test-secret'
os.environ.pop('SUPER_ADMIN_EMAIL', None)
os.environ.pop('RESOLUTION_MATCH_THRESHOLD_M', None)

import pytest
from PIL import Image

from app import app as flask_app, db
from models import Profile

# San Francisco, used as the reported location in most tests
ISSUE_LAT = 37.7749
ISSUE_LNG = -122.4194


@pytest.fixture(autouse=True)
def app():
    flask_app.config['TESTING'] = True
    with flask_app.app_context():
        db.drop_all()
        db.create_all()
    yield flask_app
    with flask_app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def make_image(size=(64, 64), fmt='PNG'):
    buffer = BytesIO()
    Image.new('RGB', size, color=(120, 120, 120)).save(buffer, format=fmt)
    buffer.seek(0)
    return buffer


def create_profile(email, user_type='citizen', approval_status='approved', password='secret123',
                   full_name=None, organization=None):
    with flask_app.app_context():
        profile = Profile(
            email=email,
            full_name=full_name or email.split('@')[0].title(),
            user_type=user_type,
            organization=organization,
            approval_status=approval_status,
        )
        profile.set_password(password)
        db.session.add(profile)
        db.session.commit()
        return profile.id


def login(client, email, password='secret123'):
    return client.post('/auth/login', json={'email': email, 'password': password})


def report_issue(client, title='Large pothole on Main Street', category='pothole',
                 latitude=ISSUE_LAT, longitude=ISSUE_LNG, **extra):
    data = {
        'title': title,
        'description': 'Deep enough to damage tyres',
        'category': category,
        'latitude': str(latitude),
        'longitude': str(longitude),
        'photo': (make_image(), 'pothole.png'),
    }
    data.update(extra)
    return client.post('/report', data=data, content_type='multipart/form-data')


@pytest.fixture
def citizen(client):
    create_profile('citizen@example.com')
    login(client, 'citizen@example.com')
    return client


@pytest.fixture
def official_id():
    return create_profile('official@city.gov', user_type='government', organization='Public Works')


@pytest.fixture
def admin_id():
    return create_profile('admin@samadhan.org', user_type='admin')
