"""Constants shared by the guest API, the signed-URL issuer and the image resolver.

Single source of truth for the images bucket layout, token header name and the
signed URL / resolver cache lifetimes so they can be changed in one place.
"""

# Header a guest may use instead of the ?token= query parameter.
ACCESS_TOKEN_HEADER = "x-access-token"

# Signed download URLs issued for private images are valid for exactly 1 hour.
SIGNED_URL_EXPIRES = 3600

# Resolver keeps a signed URL for 55 minutes (inside the 1 hour validity) and
# reuses it only while more than 5 minutes of that remain.
RESOLVER_CACHE_TTL = 55 * 60
RESOLVER_SAFETY_MARGIN = 5 * 60

# Every new space starts with one page.
WELCOME_PAGE_TITLE = "Welcome"

# Image uploads: {owner_id}/{uuid}{ext}
ALLOWED_IMAGE_EXTS = frozenset({".jpg", ".jpeg", ".png", ".gif", ".webp"})
MAX_IMAGE_BYTES = 10 * 1024 * 1024
