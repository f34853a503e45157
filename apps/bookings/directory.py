"""
Hospital directory filtering for the first wizard step.

Type and speciality are also sent to the hospital service as query filters;
name search and the distance ceiling are applied here on the fetched page.
"""
import re

_NUMBER_RE = re.compile(r'([\d.]+)')

DISTANCE_CHOICES = [
    ('any', 'Any distance'),
    ('1', 'Within 1 mile'),
    ('5', 'Within 5 miles'),
    ('10', 'Within 10 miles'),
    ('25', 'Within 25 miles'),
]


def parse_distance(distance):
    """
    Numeric distance from 3.2 or '3.2 miles away'.
    Returns None when there is no number to read.
    """
    if isinstance(distance, (int, float)):
        return float(distance)
    match = _NUMBER_RE.search(str(distance or ''))
    if not match:
        return None
    try:
        return float(match.group(1))
    except ValueError:
        return None


def distance_label(distance) -> str:
    if isinstance(distance, (int, float)):
        return f"{distance} miles away"
    return str(distance or '')


def filter_hospitals(hospitals, search='', max_distance=None, speciality=None, hospital_type=None):
    """Apply the directory filters; empty / 'any' values mean no filter."""
    needle = (search or '').strip().lower()
    results = []
    for hospital in hospitals:
        if needle and needle not in hospital['name'].lower():
            continue
        if max_distance is not None:
            distance = parse_distance(hospital.get('distance'))
            if distance is None or distance > max_distance:
                continue
        if speciality and speciality != 'any' and speciality not in hospital.get('specialities', []):
            continue
        if hospital_type and hospital_type != 'all' and hospital.get('type') != hospital_type:
            continue
        results.append(hospital)
    return results


def speciality_options(hospitals) -> list:
    return sorted({s for h in hospitals for s in h.get('specialities', []) if s})
