# utils.py
"""
Small helpers shared by the organization and invitation services.
"""

import re
import secrets
import unicodedata

_NON_SLUG_CHARS = re.compile(r'[^a-z0-9\s-]')
_SEPARATORS = re.compile(r'[\s_-]+')


def slugify(text: str) -> str:
    """
    Lowercase ASCII slug for an organization name.

    Accents are folded ("Immobilière Thiès" -> "immobiliere-thies").
    """
    folded = unicodedata.normalize('NFKD', text or '').encode('ascii', 'ignore').decode('ascii')
    slug = _NON_SLUG_CHARS.sub('', folded.lower().strip())
    return _SEPARATORS.sub('-', slug).strip('-')


def generate_unique_slug(name: str, slug_taken=None) -> str:
    """
    Slug for a new organization, suffixed -1, -2, ... until unused.

    Args:
        name: Organization name
        slug_taken: Predicate telling whether a slug is already used
                    (defaults to a lookup on Organization.slug)

    Returns:
        A slug no existing organization uses
    """
    if slug_taken is None:
        from models import Organization

        def slug_taken(candidate):
            return Organization.query.filter_by(slug=candidate).first() is not None

    base = slugify(name) or 'organization'
    candidate, suffix = base, 0
    while slug_taken(candidate):
        suffix += 1
        candidate = f"{base}-{suffix}"
    return candidate


def generate_invitation_token() -> str:
    """64 hex characters from 32 random bytes."""
    return secrets.token_hex(32)


def normalize_email(email: str) -> str:
    return (email or '').strip().lower()
