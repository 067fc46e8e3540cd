import json
from datetime import datetime, timezone
from werkzeug.security import generate_password_hash, check_password_hash
from app import db
from geolocation import Location, verify

USER_TYPES = ['citizen', 'government', 'admin', 'super_admin']
STAFF_TYPES = ['government', 'admin', 'super_admin']
ADMIN_TYPES = ['admin', 'super_admin']
APPROVAL_STATUSES = ['pending', 'approved', 'rejected']

CATEGORIES = ['pothole', 'streetlight', 'sidewalk', 'traffic_sign', 'drainage', 'other']
STATUSES = ['reported', 'in_progress', 'resolved', 'rejected']
PRIORITIES = ['low', 'medium', 'high', 'urgent']


def utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


def isoformat(value):
    return value.isoformat() if value else None


class Profile(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(120), unique=True, nullable=False)
    password_hash = db.Column(db.String(256), nullable=False)
    full_name = db.Column(db.String(120), nullable=False)
    user_type = db.Column(db.String(20), default='citizen')  # citizen, government, admin, super_admin
    organization = db.Column(db.String(120))
    approval_status = db.Column(db.String(20), default='approved')  # pending, approved, rejected
    rejection_reason = db.Column(db.Text)
    approved_by = db.Column(db.Integer, db.ForeignKey('profile.id'))
    approved_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    notifications = db.relationship('Notification', backref='recipient', lazy=True,
                                    cascade='all, delete-orphan')

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        return check_password_hash(self.password_hash, password)

    @property
    def is_staff(self):
        return self.user_type in STAFF_TYPES

    @property
    def is_admin(self):
        return self.user_type in ADMIN_TYPES

    def can_sign_in(self):
        """Government accounts need admin approval before they can sign in"""
        if self.user_type == 'government':
            return self.approval_status == 'approved'
        return True

    def home_endpoint(self):
        """Where the user lands after signing in"""
        if self.is_admin:
            return 'admin_overview'
        if self.user_type == 'government':
            return 'dashboard'
        return 'report'

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'full_name': self.full_name,
            'user_type': self.user_type,
            'organization': self.organization,
            'approval_status': self.approval_status,
            'rejection_reason': self.rejection_reason,
            'approved_by': self.approved_by,
            'approved_at': isoformat(self.approved_at),
            'created_at': isoformat(self.created_at),
            'updated_at': isoformat(self.updated_at),
        }


class Issue(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default='')
    category = db.Column(db.String(50), nullable=False)  # pothole, streetlight, sidewalk, traffic_sign, drainage, other
    status = db.Column(db.String(20), default='reported')  # reported, in_progress, resolved, rejected
    priority = db.Column(db.String(20), default='medium')  # low, medium, high, urgent
    latitude = db.Column(db.Float, nullable=False)
    longitude = db.Column(db.Float, nullable=False)
    address = db.Column(db.String(255))
    photo_url = db.Column(db.String(255))
    photo_filename = db.Column(db.String(200))
    reporter_id = db.Column(db.Integer, db.ForeignKey('profile.id'))
    assigned_to = db.Column(db.Integer, db.ForeignKey('profile.id'))
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow)
    resolved_at = db.Column(db.DateTime)

    # Relationships
    reporter = db.relationship('Profile', foreign_keys=[reporter_id], backref='issues')
    assignee = db.relationship('Profile', foreign_keys=[assigned_to])
    responses = db.relationship('IssueResponse', backref='issue', lazy=True,
                                cascade='all, delete-orphan',
                                order_by='IssueResponse.created_at')
    # Not delete-orphan: account notifications carry no issue
    notifications = db.relationship('Notification', backref='issue', lazy=True, cascade='all')

    @property
    def location(self):
        return Location(self.latitude, self.longitude)

    def verify_response_location(self, response_location, threshold_meters):
        """Check how close a response was made to where the issue was reported"""
        return verify(self.location, response_location, threshold_meters)

    def to_dict(self):
        return {
            'id': self.id,
            'title': self.title,
            'description': self.description,
            'category': self.category,
            'status': self.status,
            'priority': self.priority,
            'latitude': self.latitude,
            'longitude': self.longitude,
            'address': self.address,
            'photo_url': self.photo_url,
            'reporter_id': self.reporter_id,
            'reporter_name': self.reporter.full_name if self.reporter else None,
            'assigned_to': self.assigned_to,
            'created_at': isoformat(self.created_at),
            'updated_at': isoformat(self.updated_at),
            'resolved_at': isoformat(self.resolved_at),
        }


class IssueResponse(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    issue_id = db.Column(db.Integer, db.ForeignKey('issue.id'), nullable=False)
    responder_id = db.Column(db.Integer, db.ForeignKey('profile.id'))
    response_type = db.Column(db.String(20), nullable=False)  # status_update, resolution
    message = db.Column(db.Text, nullable=False)
    photo_url = db.Column(db.String(255))
    photo_filename = db.Column(db.String(200))
    latitude = db.Column(db.Float)
    longitude = db.Column(db.Float)
    distance_meters = db.Column(db.Float)
    location_verified = db.Column(db.Boolean, default=False)
    created_at = db.Column(db.DateTime, default=utcnow)

    responder = db.relationship('Profile')

    def to_dict(self):
        return {
            'id': self.id,
            'issue_id': self.issue_id,
            'responder_id': self.responder_id,
            'responder_name': self.responder.full_name if self.responder else None,
            'response_type': self.response_type,
            'message': self.message,
            'photo_url': self.photo_url,
            'latitude': self.latitude,
            'longitude': self.longitude,
            'distance_meters': self.distance_meters,
            'location_verified': self.location_verified,
            'created_at': isoformat(self.created_at),
        }


class Notification(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    recipient_id = db.Column(db.Integer, db.ForeignKey('profile.id'), nullable=False)
    issue_id = db.Column(db.Integer, db.ForeignKey('issue.id'))
    title = db.Column(db.String(120), nullable=False)
    message = db.Column(db.String(255), nullable=False)
    type = db.Column(db.String(20), default='info')  # info, success, warning
    read = db.Column(db.Boolean, default=False)
    created_at = db.Column(db.DateTime, default=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'issue_id': self.issue_id,
            'title': self.title,
            'message': self.message,
            'type': self.type,
            'read': self.read,
            'created_at': isoformat(self.created_at),
        }


class AdminAction(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    admin_id = db.Column(db.Integer, db.ForeignKey('profile.id'))
    action_type = db.Column(db.String(30), nullable=False)
    target_id = db.Column(db.Integer)
    details = db.Column(db.Text)  # JSON
    created_at = db.Column(db.DateTime, default=utcnow)

    def get_details(self):
        return json.loads(self.details) if self.details else {}
