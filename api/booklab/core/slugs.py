import re

SLUG_RE = re.compile(r"^[a-z0-9][a-z0-9._-]{0,127}$")
RESERVED_OWNER_SLUGS = {"new", "repositories", "healthz", "account"}


def normalize_slug(raw_slug: str) -> str:
    """Lower-case and trim a slug; invalid slugs raise ValueError."""
    slug = raw_slug.strip().lower()
    if not SLUG_RE.match(slug):
        raise ValueError("slug must be 1-128 chars of a-z, 0-9, '.', '_' or '-' and start with a letter or digit")
    if slug.endswith(".") or ".." in slug:
        raise ValueError("slug must not end with '.' or contain '..'")
    return slug


def normalize_owner_slug(raw_slug: str) -> str:
    slug = normalize_slug(raw_slug)
    if slug in RESERVED_OWNER_SLUGS:
        raise ValueError(f"slug '{slug}' is reserved")
    return slug
