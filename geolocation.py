from collections import namedtuple
from math import radians, sin, cos, atan2, sqrt, floor, isfinite

EARTH_RADIUS_M = 6371000  # Radius of earth in meters
DEFAULT_MATCH_THRESHOLD_M = 50

Location = namedtuple('Location', ['latitude', 'longitude'])
AccuracyTier = namedtuple('AccuracyTier', ['level', 'description', 'color'])

EXCELLENT = AccuracyTier('excellent', 'Exact location match', 'text-green-600')
GOOD = AccuracyTier('good', 'Very close to original location', 'text-blue-600')
FAIR = AccuracyTier('fair', 'Close to original location', 'text-yellow-600')
POOR = AccuracyTier('poor', 'Far from original location', 'text-red-600')

# Checked in order, upper bounds inclusive
ACCURACY_TIERS = [
    (10, EXCELLENT),
    (25, GOOD),
    (50, FAIR),
]


def distance_meters(a, b):
    """Great-circle distance in meters between two locations (Haversine).

    Coordinates are not validated here. NaN propagates into the result and
    infinities raise ValueError from the math module, so call is_valid()
    on anything that came from a device or a form first.
    """
    lat1 = radians(a.latitude)
    lat2 = radians(b.latitude)
    dlat = radians(b.latitude - a.latitude)
    dlng = radians(b.longitude - a.longitude)

    h = sin(dlat / 2) ** 2 + cos(lat1) * cos(lat2) * sin(dlng / 2) ** 2
    # rounding can push h just past 1 for antipodal points
    h = min(h, 1.0)
    c = 2 * atan2(sqrt(h), sqrt(1 - h))

    return EARTH_RADIUS_M * c


def is_valid(loc):
    """Check that a location has finite coordinates inside the lat/lng ranges"""
    for value in (loc.latitude, loc.longitude):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return False
        if not isfinite(value):
            return False
    return -90 <= loc.latitude <= 90 and -180 <= loc.longitude <= 180


def classify(distance):
    for upper_bound, tier in ACCURACY_TIERS:
        if distance <= upper_bound:
            return tier
    return POOR


def is_match(original, response, threshold_meters=DEFAULT_MATCH_THRESHOLD_M):
    """True when the response was made within threshold_meters of the original"""
    return distance_meters(original, response) <= threshold_meters


def format_distance(meters):
    if meters < 1000:
        # half up, so 0.5 -> "1m"
        return f"{floor(meters + 0.5)}m"
    return f"{meters / 1000:.1f}km"


def verify(original, response, threshold_meters=DEFAULT_MATCH_THRESHOLD_M):
    """Full verdict for a response location, as shown next to a resolution"""
    distance = distance_meters(original, response)
    tier = classify(distance)
    return {
        'distance': distance,
        'formatted': format_distance(distance),
        'tier': tier._asdict(),
        'match': distance <= threshold_meters,
        'threshold': threshold_meters,
    }
