# app/services/access.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Set

from app.errors import Forbidden, Unauthorized
from app.logging import log_access
from app.services.paths import resolve_path, to_relative
from app.services.permissions import PermissionStore
from app.services.sessions import SessionStore
from app.services.users import UserStore

logger = logging.getLogger(__name__)


class Operation(str, Enum):
    LIST = "list"
    READ = "read"
    WRITE = "write"
    CREATE = "create"
    DELETE = "delete"
    UPLOAD = "upload"


@dataclass(frozen=True)
class AccessGrant:
    path: Path          # contained absolute path
    relative: str       # normalized offset from root, "" for root
    operation: Operation
    principal: Optional[str] = None


class AccessController:
    """
    The one question every file operation asks before touching disk:
    may this token perform this operation on this path?

    Checks run in a fixed order:
      1. containment (InvalidPath), always
      2. permission prefix on the normalized relative path (Forbidden), if enabled
      3. session (Unauthorized), if enabled
    """

    def __init__(
        self,
        root: Path,
        users: UserStore,
        permissions: PermissionStore,
        sessions: SessionStore,
        *,
        permissions_enabled: bool = False,
        sessions_enabled: bool = True,
    ):
        self.root = Path(root)
        self.users = users
        self.permissions = permissions
        self.sessions = sessions
        self.permissions_enabled = permissions_enabled
        self.sessions_enabled = sessions_enabled

    def authorize(self, token: Optional[str], rel_path: str, operation: Operation) -> AccessGrant:
        resolved = resolve_path(self.root, rel_path)
        relative = to_relative(self.root, resolved)

        if self.permissions_enabled and not self._permitted(resolved, relative):
            log_access(logger, operation.value, None, relative, "forbidden")
            raise Forbidden("permission denied", relative)

        principal = None
        if self.sessions_enabled:
            session = self.sessions.touch(token)
            if session is None:
                log_access(logger, operation.value, None, relative, "unauthorized")
                raise Unauthorized("unauthorized", relative)
            principal = session.username

        log_access(logger, operation.value, principal, relative, "allowed")
        return AccessGrant(resolved, relative, operation, principal)

    def _permitted(self, resolved: Path, relative: str) -> bool:
        if not self.permissions.has(relative):
            return False
        # an in-root symlink must not widen a grant: the target needs one too
        real = resolved.resolve()
        real_root = self.root.resolve()
        if real != real_root and real_root not in real.parents:
            # outside root, FileSystemService refuses it with InvalidPath
            return True
        real_relative = to_relative(real_root, real)
        return real_relative == relative or self.permissions.has(real_relative)

    def require_session(self, token: Optional[str]) -> str:
        """
        Session check for operations that are not path scoped.
        Always enforced, even with SESSION_AUTH_ENABLED off: permission
        administration must never be anonymous.
        """
        session = self.sessions.touch(token)
        if session is None:
            raise Unauthorized("unauthorized")
        return session.username

    # ---------- Login / logout ----------

    def login(self, username: str, password: str) -> str:
        if not self.users.authenticate(username, password):
            logger.warning("login failed for %r", username)
            raise Unauthorized("invalid username or password")
        return self.sessions.create_session(username)

    def logout(self, token: Optional[str]) -> bool:
        if not token:
            return False
        return self.sessions.remove_session(token)

    # ---------- Permission administration ----------

    def list_permissions(self, token: Optional[str]) -> Set[str]:
        self.require_session(token)
        return self.permissions.list()

    def add_permission(self, token: Optional[str], path: str) -> None:
        principal = self.require_session(token)
        self.permissions.add(path)
        log_access(logger, "grant", principal, path, "allowed")

    def remove_permission(self, token: Optional[str], path: str) -> None:
        principal = self.require_session(token)
        self.permissions.remove(path)
        log_access(logger, "revoke", principal, path, "allowed")

    def clear_permissions(self, token: Optional[str]) -> None:
        principal = self.require_session(token)
        self.permissions.clear_all()
        log_access(logger, "revoke_all", principal, "*", "allowed")
