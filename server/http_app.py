# server/http_app.py
from __future__ import annotations

import logging
from typing import Optional
from fastapi import FastAPI, File, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.concurrency import run_in_threadpool

from app.config import Settings
from app.di import Container, build_container
from app.errors import AccessError
from app.logging import configure_logging
from app.services.access import Operation

from server.tools.auth import LoginIn, PermissionIn
from server.tools.files import CreateIn

logger = logging.getLogger(__name__)


# ---------- Session token ----------

def _bearer(req: Request) -> Optional[str]:
    auth = req.headers.get("authorization", "")
    if not auth.startswith("Bearer "):
        return None
    return auth.split(" ", 1)[1].strip() or None


def _error(status: int, message: str) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status)


def _install_error_handlers(app: FastAPI) -> None:
    # Core errors carry their own status: 400 / 401 / 403 / 500
    @app.exception_handler(AccessError)
    async def access_error(request: Request, exc: AccessError):
        return _error(exc.status_code, exc.message)

    @app.exception_handler(FileNotFoundError)
    async def not_found(request: Request, exc: FileNotFoundError):
        return _error(404, str(exc) or "file not found")

    @app.exception_handler(IsADirectoryError)
    @app.exception_handler(NotADirectoryError)
    @app.exception_handler(ValueError)
    async def bad_request(request: Request, exc: Exception):
        return _error(400, str(exc))

    @app.exception_handler(RequestValidationError)
    async def invalid_body(request: Request, exc: RequestValidationError):
        return _error(400, "invalid request body")


def create_app(container: Container | None = None) -> FastAPI:
    if container is None:
        settings = Settings()
        configure_logging(settings.LOG_LEVEL)
        container = build_container(settings)
    settings = container.settings
    access = container.access
    fs = container.fs_service

    app = FastAPI(title="treeshare", version="0.1.0")
    app.state.container = container
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )
    _install_error_handlers(app)

    # ---------- Sessions ----------

    @app.post("/api/login")
    def login(body: LoginIn):
        token = access.login(body.username, body.password)
        return {"token": token, "username": body.username}

    @app.post("/api/logout")
    def logout(request: Request):
        access.logout(_bearer(request))
        return {"status": "ok"}

    # ---------- Files ----------

    @app.get("/api/tree")
    def tree(request: Request, path: str = ""):
        grant = access.authorize(_bearer(request), path, Operation.LIST)
        return fs.tree(grant.path)

    @app.get("/api/file")
    def read_file(request: Request, path: str = ""):
        grant = access.authorize(_bearer(request), path, Operation.READ)
        return fs.read_file(grant.path)

    @app.put("/api/file")
    async def write_file(request: Request, path: str = ""):
        grant = await run_in_threadpool(access.authorize, _bearer(request), path, Operation.WRITE)
        body = await request.body()
        await run_in_threadpool(fs.write_text, grant.path, body)
        return {"status": "ok"}

    @app.delete("/api/file")
    def delete_file(request: Request, path: str = ""):
        if not path.strip():
            raise ValueError("cannot delete root directory")
        grant = access.authorize(_bearer(request), path, Operation.DELETE)
        return {"status": fs.delete(grant.path)}

    @app.post("/api/create")
    def create(request: Request, body: CreateIn):
        grant = access.authorize(_bearer(request), body.parent, Operation.CREATE)
        created = fs.create(grant.path, body.name, body.type, body.content)
        return {"status": "created", "path": created}

    @app.get("/api/raw")
    def raw(request: Request, path: str = "", token: Optional[str] = None):
        # <img src> cannot send headers, so the token may ride in the query
        grant = access.authorize(_bearer(request) or token, path, Operation.READ)
        return FileResponse(fs.raw_path(grant.path))

    @app.post("/api/upload")
    def upload(request: Request, path: str = "", file: UploadFile = File(...)):
        grant = access.authorize(_bearer(request), path, Operation.UPLOAD)
        created = fs.upload(grant.path, file.filename, file.file)
        return {"status": "uploaded", "path": created}

    # ---------- Permissions ----------

    @app.get("/api/permissions")
    def list_permissions(request: Request):
        return {"permissions": sorted(access.list_permissions(_bearer(request)))}

    @app.post("/api/permissions")
    def add_permission(request: Request, body: PermissionIn):
        access.add_permission(_bearer(request), body.path.strip())
        return {"status": "ok"}

    @app.delete("/api/permissions")
    def remove_permission(request: Request, path: str = "", all: bool = False):
        if all:
            access.clear_permissions(_bearer(request))
        elif path.strip():
            access.remove_permission(_bearer(request), path.strip())
        else:
            raise ValueError("path is required")
        return {"status": "ok"}

    if settings.STATIC_DIR.is_dir():
        app.mount("/", StaticFiles(directory=settings.STATIC_DIR, html=True), name="spa")

    logger.info("serving %s (state: %s)", container.root, settings.STATE_DIR)
    return app


def main() -> None:
    import uvicorn

    settings = Settings()
    configure_logging(settings.LOG_LEVEL)
    uvicorn.run(
        "server.http_app:create_app",
        factory=True,
        host=settings.HTTP_HOST,
        port=settings.HTTP_PORT,
        reload=False,
    )


if __name__ == "__main__":
    main()
