# server/registry.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Type
from pydantic import BaseModel

from app.di import Container
from app.logging import log_tool_call
from app.services.access import Operation

from server.tools.files import TreeIn, FileReadIn, FileWriteIn, FileDeleteIn, CreateToolIn
from server.tools.auth import LoginIn, LogoutIn, PermissionToolIn, PermissionListIn

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    input_model: Type[BaseModel]
    handler: Callable[[BaseModel], Any]


class ToolHandlers:
    """
    Named handlers for each tool (no lambdas).
    Every file tool goes through the AccessController before the service.
    """
    def __init__(self, container: Container):
        self.container = container
        self.access = container.access
        self.fs = container.fs_service

    # ---- Sessions
    def login(self, args: LoginIn) -> dict:
        token = self.access.login(args.username, args.password)
        return {"token": token, "username": args.username}

    def logout(self, args: LogoutIn) -> dict:
        return {"status": "ok" if self.access.logout(args.token) else "no-session"}

    # ---- Filesystem
    def fs_tree(self, args: TreeIn) -> dict:
        grant = self.access.authorize(args.token, args.path, Operation.LIST)
        return self.fs.tree(grant.path)

    def fs_read(self, args: FileReadIn) -> dict:
        grant = self.access.authorize(args.token, args.path, Operation.READ)
        return self.fs.read_file(grant.path)

    def fs_write(self, args: FileWriteIn) -> dict:
        grant = self.access.authorize(args.token, args.path, Operation.WRITE)
        return {"status": self.fs.write_text(grant.path, args.content.encode("utf-8"))}

    def fs_delete(self, args: FileDeleteIn) -> dict:
        if not args.path.strip():
            raise ValueError("cannot delete root directory")
        grant = self.access.authorize(args.token, args.path, Operation.DELETE)
        return {"status": self.fs.delete(grant.path)}

    def fs_create(self, args: CreateToolIn) -> dict:
        grant = self.access.authorize(args.token, args.parent, Operation.CREATE)
        path = self.fs.create(grant.path, args.name, args.type, args.content)
        return {"status": "created", "path": path}

    # ---- Permissions
    def permission_list(self, args: PermissionListIn) -> dict:
        return {"permissions": sorted(self.access.list_permissions(args.token))}

    def permission_add(self, args: PermissionToolIn) -> dict:
        self.access.add_permission(args.token, args.path.strip())
        return {"status": "ok"}

    def permission_remove(self, args: PermissionToolIn) -> dict:
        self.access.remove_permission(args.token, args.path.strip())
        return {"status": "ok"}


def _schema_from_model(model: Type[BaseModel]) -> Dict[str, Any]:
    return model.model_json_schema()


def build_tool_registry(container: Container) -> Dict[str, ToolSpec]:
    """
    Build a registry once at startup from the given container.
    The stdio host reads from this registry to expose tools.
    """
    handlers = ToolHandlers(container)

    specs = [
        ToolSpec("login", "Authenticate and return a session token", LoginIn, handlers.login),
        ToolSpec("logout", "Drop a session", LogoutIn, handlers.logout),
        ToolSpec("fs_tree", "Directory tree under the served root", TreeIn, handlers.fs_tree),
        ToolSpec("fs_read", "Read a file under the served root", FileReadIn, handlers.fs_read),
        ToolSpec("fs_write", "Overwrite a writable (markdown) file", FileWriteIn, handlers.fs_write),
        ToolSpec("fs_delete", "Delete a file or directory", FileDeleteIn, handlers.fs_delete),
        ToolSpec("fs_create", "Create a file or directory", CreateToolIn, handlers.fs_create),
        ToolSpec("permission_list", "List permitted path prefixes", PermissionListIn,
                 handlers.permission_list),
        ToolSpec("permission_add", "Permit a path prefix", PermissionToolIn, handlers.permission_add),
        ToolSpec("permission_remove", "Revoke a path prefix", PermissionToolIn,
                 handlers.permission_remove),
    ]
    return {spec.name: spec for spec in specs}


def list_tools_payload(registry: Dict[str, ToolSpec]) -> Dict[str, Any]:
    tools = []
    for spec in registry.values():
        tools.append({
            "name": spec.name,
            "description": spec.description,
            "inputSchema": _schema_from_model(spec.input_model),
        })
    return {"tools": tools}


def dispatch_tool_call(registry: Dict[str, ToolSpec], name: str, arguments: Dict[str, Any]) -> Any:
    """
    Validate args with the tool's Pydantic model, then invoke the named handler.
    """
    if name not in registry:
        raise KeyError(f"Tool not found: {name}")
    spec = registry[name]
    log_tool_call(logger, name, arguments)
    args_obj = spec.input_model(**arguments)
    return spec.handler(args_obj)


def register_into_fastmcp(mcp, registry: Dict[str, ToolSpec]) -> None:
    """
    Register all registry tools into a FastMCP stdio host.
    """
    for spec in registry.values():
        # Create a local closure so each handler binds to its spec
        def make_tool(spec: ToolSpec):
            def tool_handler(input: spec.input_model):  # type: ignore[valid-type]
                log_tool_call(logger, spec.name, input.model_dump())
                return spec.handler(input)
            tool_handler.__name__ = spec.name
            return tool_handler

        mcp.tool(name=spec.name, description=spec.description)(make_tool(spec))
