"""CSV mapping for contact import/export"""
from .models import Contact

CONTACT_CSV_HEADERS = ['name', 'email', 'phone', 'company', 'role', 'address', 'city', 'state', 'gstin', 'notes']

VALID_ROLES = {choice for choice, _ in Contact.ROLE_CHOICES}


def map_contact_row(row):
    name = row.get('name', '')
    if not name:
        raise ValueError('name is required')
    role = (row.get('role') or 'customer').lower()
    if role not in VALID_ROLES:
        raise ValueError(f"role must be one of {', '.join(sorted(VALID_ROLES))}, got '{row.get('role')}'")
    email = row.get('email', '')
    if email and '@' not in email:
        raise ValueError(f"invalid email '{email}'")
    gstin = row.get('gstin', '').upper()
    if gstin and len(gstin) != 15:
        raise ValueError('gstin must be 15 characters')
    return {
        'name': name,
        'email': email,
        'phone': row.get('phone', ''),
        'company': row.get('company', ''),
        'role': role,
        'address': row.get('address', ''),
        'city': row.get('city', ''),
        'state': row.get('state', ''),
        'gstin': gstin,
        'notes': row.get('notes', ''),
    }


def save_imported_contact(data):
    """Update the contact with the same phone (or same name when no phone) or create a new one"""
    existing = None
    if data['phone']:
        existing = Contact.objects.filter(phone=data['phone']).first()
    if existing is None:
        existing = Contact.objects.filter(name__iexact=data['name'], phone=data['phone']).first()
    if existing is None:
        return Contact.objects.create(**data), True
    for field, value in data.items():
        if value:
            setattr(existing, field, value)
    existing.save()
    return existing, False
