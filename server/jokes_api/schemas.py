"""Input validation schemas for the Jokes API."""

from pydantic import BaseModel, Field, field_validator, ValidationInfo
from typing import Optional
from datetime import datetime
import re

from .actor import USER_STATUSES
from .passwords import MAX_PASSWORD_BYTES
from .roles import Role, UnknownRole


# === Shared Validators ===

EMAIL_PATTERN = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')
HTML_TAG_PATTERN = re.compile(r'</?[a-zA-Z][^>]*>')

MIN_PASSWORD_LENGTH = 6
MAX_PASSWORD_LENGTH = MAX_PASSWORD_BYTES  # characters; the byte limit is checked separately


def strip_html_tags(text: str) -> str:
    """Strip HTML tags from text to prevent stored XSS.

    Matches actual HTML tags (e.g. <script>, <img onerror=...>) but preserves
    legitimate angle bracket usage (e.g. "3 < 4", "a < b > c").
    """
    if not text:
        return text
    return HTML_TAG_PATTERN.sub('', text)


def validate_email_format(email: str) -> str:
    """Validate and normalise email address."""
    email = email.strip().lower()
    if not EMAIL_PATTERN.match(email):
        raise ValueError(f'Invalid email format: {email}')
    return email


def validate_iso_date(date_str: str) -> str:
    """Validate ISO 8601 date or datetime string."""
    try:
        datetime.fromisoformat(date_str.replace('Z', '+00:00'))
    except (ValueError, AttributeError):
        raise ValueError('Invalid date format. Use ISO 8601 (YYYY-MM-DD or YYYY-MM-DDTHH:MM:SS)')
    return date_str


def validate_role_names(roles: list[str]) -> list[str]:
    """Canonicalise role names ('user' -> 'client'), dropping duplicates."""
    canonical = []
    for name in roles:
        try:
            value = Role.parse(name).value
        except UnknownRole:
            raise ValueError(f"Invalid role: {name}. Must be one of: {', '.join(Role.values())}")
        if value not in canonical:
            canonical.append(value)
    return canonical


def validate_password_bytes(value: Optional[str]) -> Optional[str]:
    """bcrypt reads at most 72 bytes, so multibyte passwords can exceed it under 72 characters."""
    if value is not None and len(value.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValueError(f"The password may not be greater than {MAX_PASSWORD_BYTES} bytes")
    return value


def validate_confirmation(value: str, info: ValidationInfo) -> str:
    if info.data.get('password') is not None and value != info.data['password']:
        raise ValueError('The password confirmation does not match')
    return value


def validate_rating(value: int) -> int:
    if value not in (1, -1):
        raise ValueError('Rating must be 1 (like) or -1 (dislike)')
    return value


# === Auth Schemas ===

class RegisterRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: str = Field(..., max_length=255)
    password: str = Field(..., min_length=MIN_PASSWORD_LENGTH, max_length=MAX_PASSWORD_LENGTH)
    password_confirmation: str

    @field_validator('password')
    @classmethod
    def check_password_bytes(cls, v):
        return validate_password_bytes(v)

    @field_validator('name')
    @classmethod
    def sanitise_name(cls, v):
        return strip_html_tags(v).strip()

    @field_validator('email')
    @classmethod
    def check_email(cls, v):
        return validate_email_format(v)

    @field_validator('password_confirmation')
    @classmethod
    def check_confirmation(cls, v, info: ValidationInfo):
        return validate_confirmation(v, info)


class LoginRequest(BaseModel):
    email: str = Field(..., max_length=255)
    password: str = Field(..., min_length=1)

    @field_validator('email')
    @classmethod
    def normalise_email(cls, v):
        return v.strip().lower()


class ForgotPasswordRequest(BaseModel):
    email: str = Field(..., max_length=255)

    @field_validator('email')
    @classmethod
    def check_email(cls, v):
        return validate_email_format(v)


class ResetPasswordRequest(BaseModel):
    email: str = Field(..., max_length=255)
    token: str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., min_length=MIN_PASSWORD_LENGTH, max_length=MAX_PASSWORD_LENGTH)
    password_confirmation: str

    @field_validator('password')
    @classmethod
    def check_password_bytes(cls, v):
        return validate_password_bytes(v)

    @field_validator('email')
    @classmethod
    def check_email(cls, v):
        return validate_email_format(v)

    @field_validator('password_confirmation')
    @classmethod
    def check_confirmation(cls, v, info: ValidationInfo):
        return validate_confirmation(v, info)


class PasswordUpdate(BaseModel):
    current_password: str = Field(..., min_length=1)
    password: str = Field(..., min_length=MIN_PASSWORD_LENGTH, max_length=MAX_PASSWORD_LENGTH)
    password_confirmation: str

    @field_validator('password')
    @classmethod
    def check_password_bytes(cls, v):
        return validate_password_bytes(v)

    @field_validator('password_confirmation')
    @classmethod
    def check_confirmation(cls, v, info: ValidationInfo):
        return validate_confirmation(v, info)


# === User Schemas ===

class ProfileUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    given_name: Optional[str] = Field(None, max_length=255)
    family_name: Optional[str] = Field(None, max_length=255)
    email: Optional[str] = Field(None, max_length=255)

    @field_validator('name', 'given_name', 'family_name')
    @classmethod
    def sanitise_text(cls, v):
        return strip_html_tags(v) if v else v

    @field_validator('email')
    @classmethod
    def check_email(cls, v):
        if v:
            return validate_email_format(v)
        return v


class UserCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    given_name: Optional[str] = Field(None, max_length=255)
    family_name: Optional[str] = Field(None, max_length=255)
    email: str = Field(..., max_length=255)
    password: str = Field(..., min_length=MIN_PASSWORD_LENGTH, max_length=MAX_PASSWORD_LENGTH)
    roles: list[str] = Field(default_factory=lambda: [Role.CLIENT.value])
    status: str = "active"

    @field_validator('password')
    @classmethod
    def check_password_bytes(cls, v):
        return validate_password_bytes(v)

    @field_validator('name', 'given_name', 'family_name')
    @classmethod
    def sanitise_text(cls, v):
        return strip_html_tags(v) if v else v

    @field_validator('email')
    @classmethod
    def check_email(cls, v):
        return validate_email_format(v)

    @field_validator('roles')
    @classmethod
    def check_roles(cls, v):
        return validate_role_names(v)

    @field_validator('status')
    @classmethod
    def check_status(cls, v):
        if v not in USER_STATUSES:
            raise ValueError(f"Invalid status. Must be one of: {', '.join(USER_STATUSES)}")
        return v


class UserUpdate(ProfileUpdate):
    password: Optional[str] = Field(None, min_length=MIN_PASSWORD_LENGTH, max_length=MAX_PASSWORD_LENGTH)
    status: Optional[str] = None

    @field_validator('password')
    @classmethod
    def check_password_bytes(cls, v):
        return validate_password_bytes(v)

    @field_validator('status')
    @classmethod
    def check_status(cls, v):
        if v is not None and v not in USER_STATUSES:
            raise ValueError(f"Invalid status. Must be one of: {', '.join(USER_STATUSES)}")
        return v


class RoleAssignment(BaseModel):
    roles: list[str] = Field(..., min_length=1)

    @field_validator('roles')
    @classmethod
    def check_roles(cls, v):
        return validate_role_names(v)


class StatusChange(BaseModel):
    status: str

    @field_validator('status')
    @classmethod
    def check_status(cls, v):
        v = v.strip().lower()
        if v not in USER_STATUSES:
            raise ValueError(f"Invalid status. Must be one of: {', '.join(USER_STATUSES)}")
        return v


# === Joke Schemas ===

class JokeCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    content: str = Field(..., min_length=10, max_length=10000)
    reference: Optional[str] = Field(None, max_length=255)
    published_at: Optional[str] = None
    categories: list[int] = Field(default_factory=list)

    @field_validator('title', 'content', 'reference')
    @classmethod
    def sanitise_text(cls, v):
        return strip_html_tags(v) if v else v

    @field_validator('published_at')
    @classmethod
    def check_published_at(cls, v):
        if v:
            return validate_iso_date(v)
        return v


class JokeUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    content: Optional[str] = Field(None, min_length=10, max_length=10000)
    reference: Optional[str] = Field(None, max_length=255)
    published_at: Optional[str] = None
    categories: Optional[list[int]] = None

    @field_validator('title', 'content', 'reference')
    @classmethod
    def sanitise_text(cls, v):
        return strip_html_tags(v) if v else v

    @field_validator('published_at')
    @classmethod
    def check_published_at(cls, v):
        if v:
            return validate_iso_date(v)
        return v


# === Category Schemas ===

class CategoryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=1000)

    @field_validator('name', 'description')
    @classmethod
    def sanitise_text(cls, v):
        return strip_html_tags(v).strip() if v else v


class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=1000)

    @field_validator('name', 'description')
    @classmethod
    def sanitise_text(cls, v):
        return strip_html_tags(v).strip() if v else v


# === Vote Schemas ===

class VoteRequest(BaseModel):
    rating: int

    @field_validator('rating')
    @classmethod
    def check_rating(cls, v):
        return validate_rating(v)

