# server/tools/files.py
from typing import Optional
from pydantic import BaseModel, Field


class SessionIn(BaseModel):
    token: Optional[str] = Field(None, description="Session token from login")


class TreeIn(SessionIn):
    path: str = Field("", description="Relative path under the served root")


class FileReadIn(SessionIn):
    path: str = Field(..., description="Relative path under the served root")


class FileWriteIn(SessionIn):
    path: str = Field(..., description="Relative path of a writable (markdown) file")
    content: str = Field(..., description="UTF-8 text content to write")


class FileDeleteIn(SessionIn):
    path: str = Field(..., description="Relative path to delete (recursively)")


class CreateIn(BaseModel):
    parent: str = Field("", description="Relative path of the parent directory")
    name: str = Field(..., description="Single path component to create")
    type: str = Field(..., description="'file' or 'dir'")
    content: str = Field("", description="Initial content for a file")


class CreateToolIn(CreateIn, SessionIn):
    pass
