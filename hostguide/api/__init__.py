import logging

import httpx
from botocore.exceptions import BotoCoreError, ClientError
from fastapi import APIRouter, Body, Depends, File, Request, UploadFile
from fastapi.responses import JSONResponse, Response
from fastapi.security import HTTPAuthorizationCredentials

from hostguide import config
from hostguide.api import auth
from hostguide.api.auth import bearer_scheme, get_current_user
from hostguide.backends import Space, SpaceBackend
from hostguide.client.image_resolver import SignedUrlResolver
from hostguide.client.render import render_markdown
from hostguide.images import new_image_path, s3_client
from hostguide.shared import MAX_IMAGE_BYTES

_log = logging.getLogger(__name__)

ACCESS_REQUIRED = "Access required"


def get_backend(request: Request) -> SpaceBackend:
    return request.app.state.backend


def get_resolver(request: Request) -> SignedUrlResolver:
    return request.app.state.resolver


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


def _owned_space(backend: SpaceBackend, space_id: str, user: dict) -> Space | None:
    """The space if it exists and belongs to ``user``; foreign spaces look missing."""
    space = backend.get_space(space_id)
    if space is None or space.owner_id != user["id"]:
        return None
    return space


def public_url(space: Space) -> str:
    return f"{config.PUBLIC_BASE_URL}/view/{space.access_token}"


def create_public_router() -> APIRouter:
    """Create the **unprotected** router: health check, login/logout proxies, guest view."""
    router = APIRouter(tags=["public"])

    @router.get("/ping")
    def ping():
        _log.info("api ping")
        return {"status": "ok", "source": "hostguide"}

    @router.post("/login")
    def login(body: dict = Body(...)):
        """Proxy password login to the auth service. Returns its session on success."""
        _log.info("login attempt")
        try:
            resp = auth.login(body)
        except httpx.HTTPError as exc:
            _log.warning(f"Auth service login request failed: {exc}")
            return _error("Login service unavailable", 502)
        try:
            payload = resp.json()
        except ValueError:
            payload = {"error": "Login failed"}
        return JSONResponse(payload, status_code=resp.status_code)

    @router.post("/logout")
    def logout(credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme)):
        """Revoke upstream and evict the token from the local cache."""
        _log.info("logout request")
        if credentials is None:
            return _error("Missing bearer token", 401)
        try:
            resp = auth.logout(credentials.credentials)
        except httpx.HTTPError as exc:
            _log.warning(f"Auth service logout request failed: {exc}")
            return _error("Logout service unavailable", 502)
        if resp.status_code >= 400:
            return _error("Logout failed", resp.status_code)
        return Response(status_code=204)

    @router.get("/view/{token}")
    def view_space(token: str, backend: SpaceBackend = Depends(get_backend)):
        """Guest view: the space whose access token matches. Same 404 for bad and unknown tokens."""
        space = backend.find_space_by_token(token.strip())
        if space is None:
            return _error(ACCESS_REQUIRED, 404)
        return {
            "space": space.to_public_dict(),
            "pages": [p.to_dict() for p in space.pages],
        }

    @router.get("/view/{token}/pages/{page_id}")
    def view_page(
        token: str,
        page_id: str,
        backend: SpaceBackend = Depends(get_backend),
        resolver: SignedUrlResolver = Depends(get_resolver),
    ):
        """One page, content ready for display (private images signed, unsafe URLs removed)."""
        space = backend.find_space_by_token(token.strip())
        if space is None:
            return _error(ACCESS_REQUIRED, 404)
        page = next((p for p in space.pages if p.id == page_id), None)
        if page is None:
            return _error(ACCESS_REQUIRED, 404)
        data = page.to_dict()
        data["content"] = render_markdown(page.content, space.access_token, resolver)
        return {"page": data}

    return router


def create_router() -> APIRouter:
    """Create the owner API router (all routes require auth)."""
    router = APIRouter(dependencies=[Depends(get_current_user)], tags=["owner"])

    # ── spaces ───────────────────────────────────────────────────────────

    @router.get("/spaces")
    def list_spaces(user: dict = Depends(get_current_user), backend: SpaceBackend = Depends(get_backend)):
        return [s.to_dict() for s in backend.list_spaces(user["id"])]

    @router.post("/spaces", status_code=201)
    def create_space(
        body: dict = Body(...),
        user: dict = Depends(get_current_user),
        backend: SpaceBackend = Depends(get_backend),
    ):
        _log.info(f"create space owner={user['id']}")
        try:
            space = backend.create_space(
                user["id"],
                body.get("name") or "",
                description=body.get("description") or "",
                address=body.get("address"),
                contact=body.get("contact"),
            )
        except ValueError as e:
            return _error(str(e), 400)
        return JSONResponse(space.to_dict(), status_code=201)

    @router.get("/spaces/{space_id}")
    def get_space(space_id: str, user: dict = Depends(get_current_user), backend: SpaceBackend = Depends(get_backend)):
        space = _owned_space(backend, space_id, user)
        if space is None:
            return _error("Space not found", 404)
        return space.to_dict()

    @router.patch("/spaces/{space_id}")
    def update_space(
        space_id: str,
        body: dict = Body(...),
        user: dict = Depends(get_current_user),
        backend: SpaceBackend = Depends(get_backend),
    ):
        if _owned_space(backend, space_id, user) is None:
            return _error("Space not found", 404)
        try:
            space = backend.update_space(space_id, **body)
        except ValueError as e:
            return _error(str(e), 400)
        if space is None:
            return _error("Space not found", 404)
        return space.to_dict()

    @router.delete("/spaces/{space_id}")
    def delete_space(space_id: str, user: dict = Depends(get_current_user), backend: SpaceBackend = Depends(get_backend)):
        if _owned_space(backend, space_id, user) is None:
            return _error("Space not found", 404)
        _log.info(f"delete space {space_id=} owner={user['id']}")
        backend.delete_space(space_id)
        return Response(status_code=204)

    @router.get("/spaces/{space_id}/share")
    def share_space(space_id: str, user: dict = Depends(get_current_user), backend: SpaceBackend = Depends(get_backend)):
        """Public link for the space (what the printed QR code encodes)."""
        space = _owned_space(backend, space_id, user)
        if space is None:
            return _error("Space not found", 404)
        return {"public_url": public_url(space), "access_token": space.access_token}

    # ── pages ────────────────────────────────────────────────────────────

    @router.get("/spaces/{space_id}/pages")
    def list_pages(space_id: str, user: dict = Depends(get_current_user), backend: SpaceBackend = Depends(get_backend)):
        if _owned_space(backend, space_id, user) is None:
            return _error("Space not found", 404)
        return [p.to_dict() for p in backend.list_pages(space_id)]

    @router.post("/spaces/{space_id}/pages", status_code=201)
    def create_page(
        space_id: str,
        body: dict = Body(...),
        user: dict = Depends(get_current_user),
        backend: SpaceBackend = Depends(get_backend),
    ):
        if _owned_space(backend, space_id, user) is None:
            return _error("Space not found", 404)
        try:
            page = backend.create_page(
                space_id,
                body.get("title") or "",
                content=body.get("content") or "",
                sort_order=body.get("sort_order"),
            )
        except ValueError as e:
            return _error(str(e), 400)
        if page is None:
            return _error("Space not found", 404)
        return JSONResponse(page.to_dict(), status_code=201)

    def _owned_page(backend: SpaceBackend, space_id: str, page_id: str, user: dict):
        if _owned_space(backend, space_id, user) is None:
            return None
        page = backend.get_page(page_id)
        if page is None or page.space_id != space_id:
            return None
        return page

    @router.get("/spaces/{space_id}/pages/{page_id}")
    def get_page(
        space_id: str,
        page_id: str,
        user: dict = Depends(get_current_user),
        backend: SpaceBackend = Depends(get_backend),
    ):
        page = _owned_page(backend, space_id, page_id, user)
        if page is None:
            return _error("Page not found", 404)
        return page.to_dict()

    @router.patch("/spaces/{space_id}/pages/{page_id}")
    def update_page(
        space_id: str,
        page_id: str,
        body: dict = Body(...),
        user: dict = Depends(get_current_user),
        backend: SpaceBackend = Depends(get_backend),
    ):
        if _owned_page(backend, space_id, page_id, user) is None:
            return _error("Page not found", 404)
        try:
            page = backend.update_page(page_id, **body)
        except ValueError as e:
            return _error(str(e), 400)
        if page is None:
            return _error("Page not found", 404)
        return page.to_dict()

    @router.delete("/spaces/{space_id}/pages/{page_id}")
    def delete_page(
        space_id: str,
        page_id: str,
        user: dict = Depends(get_current_user),
        backend: SpaceBackend = Depends(get_backend),
    ):
        if _owned_page(backend, space_id, page_id, user) is None:
            return _error("Page not found", 404)
        backend.delete_page(page_id)
        return Response(status_code=204)

    # ── images ───────────────────────────────────────────────────────────

    @router.post("/images", status_code=201)
    def upload_image(file: UploadFile = File(...), user: dict = Depends(get_current_user)):
        """Store an image under the caller's prefix; returns the reference to embed in markdown."""
        try:
            image_path = new_image_path(user["id"], file.filename or "")
        except ValueError as e:
            return _error(str(e), 400)
        data = file.file.read(MAX_IMAGE_BYTES + 1)
        if not data:
            return _error("Empty file", 400)
        if len(data) > MAX_IMAGE_BYTES:
            return _error("Image too large", 413)
        _log.info(f"image upload key={image_path.key} size={len(data)}")
        try:
            s3_client().put_object(
                Bucket=config.IMAGES_BUCKET,
                Key=image_path.key,
                Body=data,
                ContentType=file.content_type or "application/octet-stream",
            )
        except (ClientError, BotoCoreError):
            _log.exception("Image upload failed")
            return _error("Image storage unavailable", 503)
        return JSONResponse(
            {"path": image_path.key, "url": f"{config.STORAGE_URL_PREFIX}{image_path.key}"},
            status_code=201,
        )

    return router
