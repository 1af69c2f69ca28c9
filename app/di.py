# app/di.py
from dataclasses import dataclass
from pathlib import Path
from app.config import Settings
from app.services.access import AccessController
from app.services.filesystem import FileSystemService
from app.services.permissions import PermissionStore
from app.services.sessions import TOKEN_FACTORIES, SessionStore
from app.services.users import UserStore
from app.services.validator import JsonValidatorService

PERMISSIONS_FILE = ".permissions"
USERS_FILE = "user.json"

@dataclass
class Container:
    settings: Settings
    root: Path
    fs_service: FileSystemService
    permission_store: PermissionStore
    user_store: UserStore
    session_store: SessionStore
    access: AccessController

def build_container(settings: Settings | None = None) -> Container:
    """
    Construct every store once, load them from disk and wire them together.
    One container per process (or per test); nothing here is global.
    """
    s = settings or Settings()

    fs = FileSystemService(
        s.DATA_DIR,
        writable_extensions=s.writable_extensions,
        max_upload_bytes=s.MAX_UPLOAD_BYTES,
    )
    root = fs.root

    s.STATE_DIR.mkdir(parents=True, exist_ok=True)

    permissions = PermissionStore(s.STATE_DIR / PERMISSIONS_FILE, prefix_only=s.PERMISSION_PREFIX_ONLY)
    permissions.load()

    sessions = SessionStore(
        token_factory=TOKEN_FACTORIES[s.SESSION_TOKEN_MODE],
        idle_timeout_sec=s.SESSION_IDLE_TIMEOUT_SEC,
    )

    users = UserStore(
        s.STATE_DIR / USERS_FILE,
        on_external_change=sessions.clear_all_sessions,
        validator=JsonValidatorService(),
    )
    users.load()
    users.ensure_default_admin(
        s.DEFAULT_ADMIN_USERNAME, s.DEFAULT_ADMIN_PASSWORD, fatal=s.BOOTSTRAP_FAILURE_FATAL
    )

    access = AccessController(
        root,
        users,
        permissions,
        sessions,
        permissions_enabled=s.PERMISSIONS_ENABLED,
        sessions_enabled=s.SESSION_AUTH_ENABLED,
    )

    return Container(s, root, fs, permissions, users, sessions, access)
