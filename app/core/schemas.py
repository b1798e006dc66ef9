from typing import Optional

from pydantic import BaseModel


class UserRef(BaseModel):
    """Minimal user reference embedded in other responses."""

    id: int
    name: str
    email: Optional[str] = None

    class Config:
        from_attributes = True


class DepartmentRef(BaseModel):
    id: int
    name: str

    class Config:
        from_attributes = True


class ClassRef(BaseModel):
    id: int
    name: str

    class Config:
        from_attributes = True


class MessageResponse(BaseModel):
    message: str
