from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class UploadOut(BaseModel):
    token: str


class CheckOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    exists: bool
    filename: Optional[str] = None
    created_at: Optional[str] = Field(default=None, alias="createdAt")
    message: Optional[str] = None


class DeleteOut(BaseModel):
    ok: bool = True


class ErrorOut(BaseModel):
    error: str


class HealthOut(BaseModel):
    status: str
    backend: str
    store: dict
