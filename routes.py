import os
import json
import logging
from math import ceil
from functools import wraps
from flask import request, session, jsonify, url_for, send_from_directory, g, Response
from sqlalchemy import or_
from werkzeug.exceptions import HTTPException
from app import app, db
from models import (Profile, Issue, IssueResponse, Notification, AdminAction, utcnow,
                    USER_TYPES, APPROVAL_STATUSES, CATEGORIES, STATUSES, PRIORITIES, STAFF_TYPES)
from geolocation import Location, is_valid, verify
from storage import allowed_file, save_photo, delete_photo
from notifications import notify_new_issue, notify_status_change, notify_approval
import analytics

MIN_PASSWORD_LENGTH = 6
SIGN_UP_TYPES = ['citizen', 'government']


def get_payload():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) and data else request.form


def get_text(payload, key):
    """A text field from the payload, '' when missing or not a string"""
    value = payload.get(key)
    return value if isinstance(value, str) else ''


def failure(message, status_code=400):
    return jsonify({'success': False, 'message': message}), status_code


def get_current_user():
    if 'user_id' not in session:
        return None
    return db.session.get(Profile, session['user_id'])


def login_required(view_func):
    @wraps(view_func)
    def wrapped_view(*args, **kwargs):
        user = get_current_user()
        if user is None:
            return failure('Please sign in first.', 401)
        g.user = user
        return view_func(*args, **kwargs)
    return wrapped_view


def staff_required(view_func):
    """Restrict a route to approved government officials and admins"""
    @wraps(view_func)
    def wrapped_view(*args, **kwargs):
        user = get_current_user()
        if user is None:
            return failure('Please sign in first.', 401)
        if not user.is_staff or not user.can_sign_in():
            return failure('Access denied', 403)
        g.user = user
        return view_func(*args, **kwargs)
    return wrapped_view


def admin_required(view_func):
    @wraps(view_func)
    def wrapped_view(*args, **kwargs):
        user = get_current_user()
        if user is None:
            return failure('Please sign in first.', 401)
        if not user.is_admin:
            return failure('Access denied! Admin privileges required.', 403)
        g.user = user
        return view_func(*args, **kwargs)
    return wrapped_view


def parse_location(values, lat_key='latitude', lng_key='longitude'):
    """Build a Location from request values, None if missing or invalid"""
    try:
        location = Location(float(values.get(lat_key)), float(values.get(lng_key)))
    except (TypeError, ValueError):
        return None
    return location if is_valid(location) else None


def has_location(values, lat_key='latitude', lng_key='longitude'):
    return values.get(lat_key) not in (None, '') or values.get(lng_key) not in (None, '')


def search_issues(query, q):
    if not q:
        return query
    pattern = f"%{q}%"
    return query.filter(or_(
        Issue.title.ilike(pattern),
        Issue.description.ilike(pattern),
        Issue.address.ilike(pattern),
        Issue.category.ilike(pattern),
    ))


def log_admin_action(admin, action_type, target_id, details):
    action = AdminAction(
        admin_id=admin.id,
        action_type=action_type,
        target_id=target_id,
        details=json.dumps(details, default=str),
    )
    db.session.add(action)
    logging.info(f"Admin {admin.email}: {action_type} on {target_id}")
    return action


def csv_response(rows, filename):
    return Response(
        analytics.to_csv(rows),
        mimetype='text/csv',
        headers={'Content-Disposition': f'attachment; filename={filename}'},
    )


@app.errorhandler(HTTPException)
def handle_http_error(e):
    return failure(e.description, e.code)


@app.route("/status")
def status():
    return {
        "status": "Backend is running",
        "database": "Active",
    }


# Authentication

@app.route('/auth/sign-up', methods=['POST'])
def sign_up():
    payload = get_payload()
    email = get_text(payload, 'email').strip().lower()
    password = get_text(payload, 'password')
    full_name = get_text(payload, 'full_name').strip()
    user_type = get_text(payload, 'user_type')
    organization = get_text(payload, 'organization').strip() or None

    if '@' not in email:
        return failure('Please enter a valid email address.')
    if len(password) < MIN_PASSWORD_LENGTH:
        return failure(f'Password must be at least {MIN_PASSWORD_LENGTH} characters.')
    if not full_name:
        return failure('Please enter your full name.')
    if user_type not in SIGN_UP_TYPES:
        return failure('Please select your account type')
    if Profile.query.filter_by(email=email).first():
        return failure('An account with this email already exists.', 409)

    profile = Profile(
        email=email,
        full_name=full_name,
        user_type=user_type,
        organization=organization if user_type == 'government' else None,
        approval_status='pending' if user_type == 'government' else 'approved',
    )
    profile.set_password(password)
    db.session.add(profile)
    db.session.commit()
    logging.info(f"Created new {user_type} user: {email}")

    return jsonify({
        'success': True,
        'message': 'Account created successfully.',
        'requires_approval': profile.approval_status == 'pending',
        'user': profile.to_dict(),
    }), 201


@app.route('/auth/login', methods=['POST'])
def login():
    payload = get_payload()
    email = get_text(payload, 'email').strip().lower()
    password = get_text(payload, 'password')

    profile = Profile.query.filter_by(email=email).first()
    if profile is None or not profile.check_password(password):
        return failure('Invalid login credentials', 401)

    if not profile.can_sign_in():
        return failure('Your government account is pending admin approval. '
                       'Please wait for approval before accessing the system.', 403)

    session.clear()
    session['user_id'] = profile.id
    logging.info(f"User signed in: {email}")

    return jsonify({'success': True, 'user': profile.to_dict(), 'redirect': url_for(profile.home_endpoint())})


@app.route('/auth/logout', methods=['GET', 'POST'])
def logout():
    session.clear()
    return jsonify({'success': True, 'redirect': url_for('login')})


@app.route('/admin/setup', methods=['POST'])
def admin_setup():
    """Create the first super admin; closed once one exists"""
    if Profile.query.filter_by(user_type='super_admin').count() > 0:
        return failure('A super admin already exists.', 403)

    payload = get_payload()
    email = get_text(payload, 'email').strip().lower()
    password = get_text(payload, 'password')
    full_name = get_text(payload, 'full_name').strip()

    if '@' not in email or len(password) < MIN_PASSWORD_LENGTH or not full_name:
        return failure('Email, full name and a password of at least '
                       f'{MIN_PASSWORD_LENGTH} characters are required.')
    if Profile.query.filter_by(email=email).first():
        return failure('An account with this email already exists.', 409)

    admin = Profile(
        email=email,
        full_name=full_name,
        user_type='super_admin',
        organization='Samadhan Administration',
        approval_status='approved',
        approved_at=utcnow(),
    )
    admin.set_password(password)
    db.session.add(admin)
    db.session.commit()
    logging.info(f"Super admin created: {email}")

    return jsonify({'success': True, 'message': 'Admin Created Successfully', 'redirect': url_for('login')}), 201


@app.route('/api/me')
@login_required
def me():
    return jsonify({'success': True, 'user': g.user.to_dict()})


# Citizen reporting

@app.route('/report', methods=['GET', 'POST'])
@login_required
def report():
    user = g.user
    if request.method == 'GET':
        issues = Issue.query.filter_by(reporter_id=user.id).order_by(Issue.created_at.desc()).all()
        return jsonify({'user': user.to_dict(), 'issues': [issue.to_dict() for issue in issues]})

    return submit_issue_logic(user)


def submit_issue_logic(user):
    form = request.form
    title = (form.get('title') or '').strip()
    category = form.get('category') or ''
    priority = form.get('priority') or 'medium'

    if not title:
        return failure('Please enter a title for the issue.')
    if category not in CATEGORIES:
        return failure('Please select a valid category.')
    if priority not in PRIORITIES:
        return failure('Please select a valid priority.')

    location = parse_location(form)
    if location is None:
        return failure('Invalid location data. Please get your location again.')

    # Handle file upload
    if 'photo' not in request.files:
        return failure('No photo uploaded!')

    file = request.files['photo']
    if file.filename == '':
        return failure('No photo selected!')
    if not allowed_file(file.filename):
        return failure('Invalid file type. Please upload a valid image.')

    photo_url, filename = save_photo(file)

    issue = Issue(
        title=title,
        description=(form.get('description') or '').strip(),
        category=category,
        priority=priority,
        latitude=location.latitude,
        longitude=location.longitude,
        address=(form.get('address') or '').strip() or f"{location.latitude:.6f}, {location.longitude:.6f}",
        photo_url=photo_url,
        photo_filename=filename,
        reporter_id=user.id,
    )
    db.session.add(issue)
    db.session.flush()
    notify_new_issue(issue)
    db.session.commit()
    logging.info(f"Issue {issue.id} reported by {user.email}: {title}")

    return jsonify({'success': True, 'message': 'Issue reported successfully!', 'issue': issue.to_dict()}), 201


@app.route('/uploads/<path:filename>')
def uploaded_file(filename):
    return send_from_directory(os.path.abspath(app.config['UPLOAD_FOLDER']), filename)


# Issue access

@app.route('/api/issues')
@login_required
def list_issues():
    query = Issue.query
    if not g.user.is_staff:
        query = query.filter_by(reporter_id=g.user.id)

    status = request.args.get('status')
    if status and status != 'all':
        query = query.filter_by(status=status)

    category = request.args.get('category')
    if category and category != 'all':
        query = query.filter_by(category=category)

    query = search_issues(query, request.args.get('q', '').strip())
    issues = query.order_by(Issue.created_at.desc(), Issue.id.desc()).all()

    return jsonify({'total': len(issues), 'issues': [issue.to_dict() for issue in issues]})


@app.route('/api/issues/<int:issue_id>')
@login_required
def issue_detail(issue_id):
    issue = db.get_or_404(Issue, issue_id)
    if not g.user.is_staff and issue.reporter_id != g.user.id:
        return failure('Access denied', 403)

    data = issue.to_dict()
    data['responses'] = [response.to_dict() for response in issue.responses]
    return jsonify(data)


# Government responses

@app.route('/dashboard')
@staff_required
def dashboard():
    issues = Issue.query.order_by(Issue.created_at.desc(), Issue.id.desc()).all()
    return jsonify({
        'user': g.user.to_dict(),
        'stats': analytics.status_counts(issues),
        'recent_issues': [issue.to_dict() for issue in issues[:10]],
    })


@app.route('/api/issues/<int:issue_id>/respond', methods=['POST'])
@staff_required
def respond_to_issue(issue_id):
    user = g.user
    issue = db.get_or_404(Issue, issue_id)
    form = request.form

    new_status = form.get('status') or issue.status
    message = (form.get('message') or '').strip()

    if new_status not in STATUSES:
        return failure('Please select a valid status.')
    if not message:
        return failure('Please enter a response message')

    location = None
    if has_location(form):
        location = parse_location(form)
        if location is None:
            return failure('Invalid location coordinates received')

    if new_status == 'resolved' and location is None:
        return failure('Please verify your location for resolution responses')

    verification = None
    if location is not None:
        verification = issue.verify_response_location(location, app.config['RESOLUTION_MATCH_THRESHOLD_M'])
        if new_status == 'resolved' and not verification['match']:
            logging.warning(f"Resolution of issue {issue.id} by {user.email} refused: "
                            f"{verification['formatted']} from the reported location")
            return jsonify({
                'success': False,
                'message': f"Response location is {verification['formatted']} from the original issue location.",
                'verification': verification,
            }), 422

    photo_url = photo_filename = None
    file = request.files.get('photo')
    if file and file.filename:
        if not allowed_file(file.filename):
            return failure('Invalid file type. Please upload a valid image.')
        photo_url, photo_filename = save_photo(file)

    response = IssueResponse(
        issue=issue,
        responder_id=user.id,
        response_type='resolution' if new_status == 'resolved' else 'status_update',
        message=message,
        photo_url=photo_url,
        photo_filename=photo_filename,
        latitude=location.latitude if location else None,
        longitude=location.longitude if location else None,
        distance_meters=verification['distance'] if verification else None,
        location_verified=bool(verification and verification['match']),
    )
    db.session.add(response)

    old_status = issue.status
    issue.status = new_status
    issue.assigned_to = user.id
    issue.updated_at = utcnow()
    issue.resolved_at = utcnow() if new_status == 'resolved' else None

    notify_status_change(issue, old_status)
    db.session.commit()
    logging.info(f"Issue {issue.id} moved {old_status} -> {new_status} by {user.email}")

    return jsonify({
        'success': True,
        'issue': issue.to_dict(),
        'response': response.to_dict(),
        'verification': verification,
    })


@app.route('/api/location/verify')
@login_required
def verify_location():
    original = parse_location(request.args, 'orig_lat', 'orig_lng')
    current = parse_location(request.args, 'lat', 'lng')
    if original is None or current is None:
        return failure('Invalid location coordinates received')

    threshold = request.args.get('threshold', app.config['RESOLUTION_MATCH_THRESHOLD_M'], type=float)
    return jsonify(verify(original, current, threshold))


@app.route('/api/dashboard/stats')
@login_required
def dashboard_stats():
    return jsonify(analytics.status_counts(Issue.query.all()))


# Notifications

@app.route('/api/notifications')
@login_required
def list_notifications():
    notifications = Notification.query.filter_by(recipient_id=g.user.id).order_by(
        Notification.created_at.desc(), Notification.id.desc()).all()
    return jsonify({
        'notifications': [notification.to_dict() for notification in notifications],
        'unread_count': sum(1 for notification in notifications if not notification.read),
    })


@app.route('/api/notifications/<int:notification_id>/read', methods=['POST'])
@login_required
def mark_notification_read(notification_id):
    notification = Notification.query.filter_by(id=notification_id, recipient_id=g.user.id).first_or_404()
    notification.read = True
    db.session.commit()
    return jsonify({'success': True})


@app.route('/api/notifications/read-all', methods=['POST'])
@login_required
def mark_all_notifications_read():
    Notification.query.filter_by(recipient_id=g.user.id, read=False).update({'read': True})
    db.session.commit()
    return jsonify({'success': True})


# Administration

@app.route('/admin')
@admin_required
def admin_overview():
    issues = Issue.query.order_by(Issue.created_at.desc(), Issue.id.desc()).all()
    return jsonify({
        'user': g.user.to_dict(),
        'stats': analytics.status_counts(issues),
        'active_users': Profile.query.count(),
        'issues_this_week': analytics.issues_this_week(issues, utcnow()),
        'pending_approvals': Profile.query.filter_by(user_type='government', approval_status='pending').count(),
        'recent_issues': [issue.to_dict() for issue in issues[:5]],
    })


@app.route('/api/admin/analytics')
@admin_required
def admin_analytics():
    issues = Issue.query.all()
    return jsonify({
        'total': len(issues),
        'resolution_rate': analytics.resolution_rate(issues),
        'average_resolution_hours': analytics.average_resolution_hours(issues),
        'by_category': analytics.issues_by_category(issues),
        'by_priority': analytics.issues_by_priority(issues),
        'monthly_trends': analytics.monthly_trends(issues, utcnow()),
    })


def filtered_users():
    query = Profile.query

    user_type = request.args.get('user_type')
    if user_type and user_type != 'all':
        query = query.filter_by(user_type=user_type)

    approval_status = request.args.get('approval_status')
    if approval_status and approval_status != 'all':
        query = query.filter_by(approval_status=approval_status)

    q = request.args.get('q', '').strip()
    if q:
        pattern = f"%{q}%"
        query = query.filter(or_(
            Profile.full_name.ilike(pattern),
            Profile.email.ilike(pattern),
            Profile.organization.ilike(pattern),
        ))

    return query.order_by(Profile.created_at.desc(), Profile.id.desc()).all()


@app.route('/api/admin/users')
@admin_required
def admin_users():
    users = filtered_users()
    return jsonify({'total': len(users), 'users': [user.to_dict() for user in users]})


@app.route('/api/admin/users/<int:user_id>/approval', methods=['POST'])
@admin_required
def update_user_approval(user_id):
    admin = g.user
    profile = db.get_or_404(Profile, user_id)
    payload = get_payload()
    status = get_text(payload, 'status')

    if profile.user_type == 'super_admin' and admin.user_type != 'super_admin':
        return failure('Only a super admin can change a super admin.', 403)
    if profile.user_type != 'government':
        return failure('Only government accounts go through approval.')
    if status not in ('approved', 'rejected'):
        return failure('Approval status must be approved or rejected.')

    profile.approval_status = status
    profile.approved_by = admin.id
    profile.approved_at = utcnow() if status == 'approved' else None
    profile.rejection_reason = (get_text(payload, 'reason').strip() or None) if status == 'rejected' else None

    log_admin_action(admin, 'approve_user' if status == 'approved' else 'reject_user', profile.id,
                     {'approval_status': status, 'reason': profile.rejection_reason})
    notify_approval(profile)
    db.session.commit()

    return jsonify({'success': True, 'user': profile.to_dict()})


@app.route('/api/admin/users/<int:user_id>', methods=['POST'])
@admin_required
def update_user(user_id):
    admin = g.user
    profile = db.get_or_404(Profile, user_id)
    payload = get_payload()

    if profile.user_type == 'super_admin' and admin.user_type != 'super_admin':
        return failure('Only a super admin can edit a super admin.', 403)

    updates = {}
    for field in ('full_name', 'organization', 'user_type', 'approval_status', 'rejection_reason'):
        if field in payload:
            value = payload.get(field)
            if value is not None and not isinstance(value, str):
                return failure(f'{field} must be text.')
            updates[field] = value or None

    if 'full_name' in updates and not updates['full_name']:
        return failure('Full name cannot be empty.')
    if 'user_type' in updates:
        if updates['user_type'] not in USER_TYPES:
            return failure('Invalid user type.')
        if updates['user_type'] == 'super_admin' and admin.user_type != 'super_admin':
            return failure('Only a super admin can grant super admin rights.', 403)
    if 'approval_status' in updates and updates['approval_status'] not in APPROVAL_STATUSES:
        return failure('Invalid approval status.')

    for field, value in updates.items():
        setattr(profile, field, value)

    log_admin_action(admin, 'update_user', profile.id, updates)
    db.session.commit()

    return jsonify({'success': True, 'user': profile.to_dict()})


@app.route('/api/admin/users/<int:user_id>', methods=['DELETE'])
@admin_required
def delete_user(user_id):
    admin = g.user
    profile = db.get_or_404(Profile, user_id)

    if profile.user_type == 'super_admin':
        return failure('Super admin accounts cannot be deleted.', 403)
    if profile.id == admin.id:
        return failure('You cannot delete your own account.')

    log_admin_action(admin, 'delete_user', profile.id, {'deleted_user': profile.to_dict()})

    # Keep the issues and responses, drop the links to the deleted profile
    Issue.query.filter_by(assigned_to=profile.id).update({'assigned_to': None})
    IssueResponse.query.filter_by(responder_id=profile.id).update({'responder_id': None})
    Profile.query.filter_by(approved_by=profile.id).update({'approved_by': None})
    AdminAction.query.filter_by(admin_id=profile.id).update({'admin_id': None})

    db.session.delete(profile)
    db.session.commit()

    return jsonify({'success': True})


@app.route('/api/admin/issues')
@admin_required
def admin_issues():
    query = search_issues(Issue.query, request.args.get('q', '').strip())
    per_page = max(1, request.args.get('per_page', 10, type=int))
    total = query.count()
    pages = max(1, ceil(total / per_page))
    page = min(max(1, request.args.get('page', 1, type=int)), pages)

    issues = query.order_by(Issue.created_at.desc(), Issue.id.desc()).offset((page - 1) * per_page).limit(per_page).all()

    return jsonify({
        'total': total,
        'pages': pages,
        'page': page,
        'per_page': per_page,
        'issues': [issue.to_dict() for issue in issues],
    })


@app.route('/api/admin/issues/<int:issue_id>', methods=['POST'])
@admin_required
def update_issue(issue_id):
    admin = g.user
    issue = db.get_or_404(Issue, issue_id)
    payload = get_payload()

    updates = {}
    for field in ('title', 'description', 'category', 'priority', 'status', 'assigned_to'):
        if field in payload:
            updates[field] = payload.get(field)

    for field in ('title', 'description', 'category', 'priority', 'status'):
        if field in updates and not isinstance(updates[field], str):
            return failure(f'{field} must be text.')

    if 'title' in updates and not updates['title'].strip():
        return failure('Title cannot be empty.')
    if 'category' in updates and updates['category'] not in CATEGORIES:
        return failure('Please select a valid category.')
    if 'priority' in updates and updates['priority'] not in PRIORITIES:
        return failure('Please select a valid priority.')
    if 'status' in updates and updates['status'] not in STATUSES:
        return failure('Please select a valid status.')
    if 'assigned_to' in updates:
        if updates['assigned_to'] in (None, ''):
            updates['assigned_to'] = None
        else:
            try:
                assignee = db.session.get(Profile, int(updates['assigned_to']))
            except (TypeError, ValueError):
                assignee = None
            if assignee is None or assignee.user_type not in STAFF_TYPES:
                return failure('Issues can only be assigned to government officials or admins.')
            updates['assigned_to'] = assignee.id

    old_status = issue.status
    for field, value in updates.items():
        setattr(issue, field, value)
    issue.updated_at = utcnow()
    if issue.status != old_status:
        issue.resolved_at = utcnow() if issue.status == 'resolved' else None
        notify_status_change(issue, old_status)

    log_admin_action(admin, 'update_issue', issue.id, updates)
    db.session.commit()

    return jsonify({'success': True, 'issue': issue.to_dict()})


@app.route('/api/admin/issues/<int:issue_id>', methods=['DELETE'])
@admin_required
def delete_issue(issue_id):
    admin = g.user
    issue = db.get_or_404(Issue, issue_id)

    filenames = [issue.photo_filename] + [r.photo_filename for r in issue.responses]
    log_admin_action(admin, 'delete_issue', issue.id, {'title': issue.title})
    db.session.delete(issue)
    db.session.commit()

    # Files go only once the rows are gone
    for filename in filenames:
        delete_photo(filename)

    return jsonify({'success': True})


@app.route('/api/admin/export/users.csv')
@admin_required
def export_users():
    return csv_response([user.to_dict() for user in filtered_users()], 'users_export.csv')


@app.route('/api/admin/export/issues.csv')
@admin_required
def export_issues():
    query = search_issues(Issue.query, request.args.get('q', '').strip())
    issues = query.order_by(Issue.created_at.desc(), Issue.id.desc()).all()
    return csv_response([issue.to_dict() for issue in issues], 'issues_export.csv')
