import csv
import io
from datetime import timedelta

from models import STATUSES, PRIORITIES


def status_counts(issues):
    counts = {'total': 0}
    counts.update({status: 0 for status in STATUSES})
    for issue in issues:
        counts['total'] += 1
        if issue.status in counts:
            counts[issue.status] += 1
    return counts


def resolution_rate(issues):
    """Percentage of issues that have been resolved"""
    if not issues:
        return 0.0
    resolved = sum(1 for issue in issues if issue.status == 'resolved')
    return resolved / len(issues) * 100


def average_resolution_hours(issues):
    hours = [
        (issue.resolved_at - issue.created_at).total_seconds() / 3600
        for issue in issues
        if issue.resolved_at and issue.created_at
    ]
    if not hours:
        return 0.0
    return sum(hours) / len(hours)


def issues_by_category(issues):
    counts = {}
    for issue in issues:
        counts[issue.category] = counts.get(issue.category, 0) + 1

    total = len(issues)
    breakdown = [
        {
            'category': category,
            'count': count,
            'percentage': count / total * 100 if total else 0.0,
        }
        for category, count in counts.items()
    ]
    return sorted(breakdown, key=lambda row: row['count'], reverse=True)


def issues_by_priority(issues):
    counts = {}
    for issue in issues:
        counts[issue.priority] = counts.get(issue.priority, 0) + 1
    return [{'priority': priority, 'count': counts.get(priority, 0)} for priority in reversed(PRIORITIES)]


def monthly_trends(issues, today):
    """Reported and resolved counts for the last four calendar months, oldest first"""
    months = []
    first = today.replace(day=1)
    for _ in range(4):
        months.insert(0, first)
        first = (first - timedelta(days=1)).replace(day=1)

    trends = []
    for month in months:
        month_issues = [
            issue for issue in issues
            if issue.created_at
            and issue.created_at.year == month.year
            and issue.created_at.month == month.month
        ]
        trends.append({
            'month': 'Current' if month == months[-1] else month.strftime('%B'),
            'issues': len(month_issues),
            'resolved': sum(1 for issue in month_issues if issue.status == 'resolved'),
        })
    return trends


def issues_this_week(issues, now):
    week_ago = now - timedelta(days=7)
    return sum(1 for issue in issues if issue.created_at and issue.created_at >= week_ago)


def to_csv(rows):
    """Render a list of dicts as CSV text, header taken from the first row"""
    if not rows:
        return ''
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=list(rows[0].keys()), lineterminator='\n',
                            extrasaction='ignore')
    writer.writeheader()
    for row in rows:
        writer.writerow({key: '' if value is None else value for key, value in row.items()})
    return buffer.getvalue()
