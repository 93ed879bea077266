"""Environment configuration for the hostguide API, issuer function and resolver.

Read once at import. ``API_ENV`` is validated here so a typo fails fast instead of
silently running with production defaults.
"""

import os

_VALID_ENVS = {"dev", "stg", "prod"}

API_ENV: str = os.environ.get("API_ENV", "prod")

if API_ENV not in _VALID_ENVS:
    raise RuntimeError(
        f"Invalid API_ENV={API_ENV!r}. Must be one of {sorted(_VALID_ENVS)}."
    )

# ---------------------------------------------------------------------------
# Owner auth service (GoTrue-compatible: GET /auth/v1/user with a bearer token)
# ---------------------------------------------------------------------------

AUTH_BASE_URL: str = os.environ.get("HOSTGUIDE_AUTH_URL", "http://localhost:9999").rstrip("/")
AUTH_API_KEY: str = os.environ.get("HOSTGUIDE_AUTH_API_KEY", "")

# ---------------------------------------------------------------------------
# Spaces / pages store
# ---------------------------------------------------------------------------

STORE_BACKEND: str = os.environ.get("HOSTGUIDE_STORE", "local")
LOCAL_STORE_PATH: str = os.environ.get("HOSTGUIDE_LOCAL_STORE_PATH", "hostguide-data.json")
DATABASE_URL: str = os.environ.get("HOSTGUIDE_DATABASE_URL", "sqlite:///hostguide.db")

# ---------------------------------------------------------------------------
# Object store and public URLs
# ---------------------------------------------------------------------------

IMAGES_BUCKET: str = os.environ.get("HOSTGUIDE_IMAGES_BUCKET", "page-images")
AWS_REGION: str = os.environ.get("AWS_REGION", "us-east-1")

PUBLIC_BASE_URL: str = os.environ.get("HOSTGUIDE_PUBLIC_BASE_URL", "http://localhost:8080").rstrip("/")
STORAGE_URL_PREFIX: str = os.environ.get(
    "HOSTGUIDE_STORAGE_URL_PREFIX",
    f"{PUBLIC_BASE_URL}/storage/v1/object/{IMAGES_BUCKET}/",
)
ISSUER_URL: str = os.environ.get(
    "HOSTGUIDE_ISSUER_URL",
    f"{PUBLIC_BASE_URL}/functions/v1/get-image",
)
