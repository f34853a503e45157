"""
Convert hospital API payloads into the plain dicts the booking flow stores.

The API is a document store: ids arrive as `_id` (sometimes `id`), references
to parents may be either an id string or an embedded object, and optional
fields are simply absent. Everything returned here is JSON-serialisable so it
can live in the Django session untouched.
"""


def _id_of(value) -> str:
    """Return the id of an API document or of an embedded reference."""
    if isinstance(value, dict):
        return str(value.get('_id') or value.get('id') or '')
    if value is None:
        return ''
    return str(value)


def normalize_hospital(data: dict) -> dict:
    return {
        'id': _id_of(data),
        'name': data.get('name', ''),
        'address': data.get('address', ''),
        'phone': data.get('phone', ''),
        'image': data.get('image', ''),
        'distance': data.get('distance', ''),
        'specialities': list(data.get('specialities') or []),
        'type': data.get('type', ''),
    }


def normalize_service(data: dict) -> dict:
    return {
        'id': _id_of(data),
        'title': data.get('title', ''),
        'description': data.get('description', ''),
    }


def normalize_department(data: dict) -> dict:
    return {
        'id': _id_of(data),
        'name': data.get('name', ''),
        'slug': data.get('slug', ''),
        'services': [normalize_service(s) for s in data.get('services') or []],
    }


def normalize_doctor(data: dict) -> dict:
    specialization = data.get('specialization', '')
    return {
        'id': _id_of(data),
        'name': data.get('name', ''),
        'title': data.get('title') or specialization,
        'specialization': specialization,
        'rating': data.get('rating') or 0,
        'review_count': data.get('reviewCount') or 0,
        'bio': data.get('bio', ''),
        'department_id': _id_of(data.get('departmentId')),
    }


def normalize_patient(data: dict) -> dict:
    first = data.get('firstName', '')
    last = data.get('lastName', '')
    return {
        'id': _id_of(data),
        'mrn': data.get('mrn', ''),
        'name': f"{first} {last}".strip(),
    }


def normalize_pagination(data: dict, item_count: int) -> dict:
    """Fill in a pagination block; older API builds omit it entirely."""
    data = data or {}
    return {
        'total': data.get('total', item_count),
        'page': data.get('page', 1),
        'limit': data.get('limit', item_count),
        'pages': data.get('pages', 1),
    }
