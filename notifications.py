import logging
from app import db
from models import Profile, Notification


def notify(recipient, title, message, notification_type='info', issue=None):
    notification = Notification(
        recipient=recipient,
        issue=issue,
        title=title,
        message=message[:255],
        type=notification_type,
    )
    db.session.add(notification)
    return notification


def notify_new_issue(issue):
    """Tell every approved government official about a freshly reported issue"""
    officials = Profile.query.filter_by(user_type='government', approval_status='approved').all()
    for official in officials:
        notify(official, 'New Issue Reported', f"{issue.title} - {issue.category}", 'info', issue)
    logging.info(f"Issue {issue.id} announced to {len(officials)} officials")
    return len(officials)


def notify_status_change(issue, old_status):
    """Tell the reporter that an official moved their issue to another status"""
    if issue.reporter is None or old_status == issue.status:
        return None

    if issue.status == 'resolved':
        notification_type = 'success'
    elif issue.status == 'rejected':
        notification_type = 'warning'
    else:
        notification_type = 'info'

    return notify(
        issue.reporter,
        'Issue Status Updated',
        f"{issue.title} is now {issue.status.replace('_', ' ')}",
        notification_type,
        issue,
    )


def notify_approval(profile):
    if profile.approval_status == 'approved':
        return notify(profile, 'Account Approved', 'Your government account has been approved.', 'success')
    message = 'Your government account registration was rejected.'
    if profile.rejection_reason:
        message = f"{message} Reason: {profile.rejection_reason}"
    return notify(profile, 'Account Rejected', message, 'warning')
