from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, EmailStr, Field


class RegisterIn(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8, max_length=72)
    name: Optional[str] = Field(default=None, max_length=120)


class LoginIn(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8, max_length=72)


class UserOut(BaseModel):
    id: str
    email: EmailStr
    name: Optional[str] = None
    image: Optional[str] = None


class ProfileUpdateIn(BaseModel):
    name: Optional[str] = Field(default=None, max_length=120)
    image: Optional[str] = Field(default=None, max_length=1000)
