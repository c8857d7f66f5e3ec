from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class Token(BaseModel):
    access_token: str
    expires_at: datetime
    issued_at: datetime


class User(BaseModel):
    id: int
    name: str
    email: str
    created_at: datetime
    updated_at: datetime


class RegisterInput(BaseModel):
    name: str = ""
    email: str = ""
    password: str = ""


class LoginInput(BaseModel):
    email: str = ""
    password: str = ""


class ChangePasswordInput(BaseModel):
    current_password: str = ""
    new_password: str = ""


class AddApostilaInput(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    # The client generates the apostila id and sends it as "data".
    id: str = Field(alias="data")


class EditedApostilaData(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    html: str = Field("", alias="file")


class EditedApostilaInput(BaseModel):
    data: EditedApostilaData


class RenderPDFData(BaseModel):
    html: str
    filename: Optional[str] = None


class RenderPDFInput(BaseModel):
    data: RenderPDFData


class Apostila(BaseModel):
    id: UUID
    user_id: int
    edited_raw_html: str = ""
    created_at: datetime
    edited_at: Optional[datetime] = None


class EditedApostilaHTML(BaseModel):
    file: str = ""


class MessageResponse(BaseModel):
    message: str
