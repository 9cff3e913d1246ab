"""Tests for request validation schemas.

Covers:
- Email normalisation and format checks
- Password length bounds and confirmation
- Role name canonicalisation ('user' -> 'client')
- HTML stripping on free text
- Rating limited to +1/-1 before any authorization happens
"""
import pytest
from pydantic import ValidationError

from jokes_api.schemas import (
    CategoryCreate,
    JokeCreate,
    JokeUpdate,
    LoginRequest,
    PasswordUpdate,
    RegisterRequest,
    ResetPasswordRequest,
    RoleAssignment,
    StatusChange,
    UserCreate,
    UserUpdate,
    VoteRequest,
    strip_html_tags,
    validate_iso_date,
)


class TestStripHtmlTags:

    def test_removes_script_tags(self):
        assert strip_html_tags("<script>alert(1)</script>hi") == "alert(1)hi"

    def test_keeps_comparison_operators(self):
        assert strip_html_tags("3 < 4 and 5 > 2") == "3 < 4 and 5 > 2"

    def test_empty_passthrough(self):
        assert strip_html_tags("") == ""
        assert strip_html_tags(None) is None


class TestRegisterRequest:

    def _payload(self, **overrides):
        payload = {
            "name": "Ada",
            "email": "Ada@Example.COM",
            "password": "secret-password",
            "password_confirmation": "secret-password",
        }
        payload.update(overrides)
        return payload

    def test_valid_and_email_normalised(self):
        body = RegisterRequest(**self._payload())
        assert body.email == "ada@example.com"

    def test_confirmation_mismatch(self):
        with pytest.raises(ValidationError, match="confirmation does not match"):
            RegisterRequest(**self._payload(password_confirmation="other-password"))

    def test_password_too_short(self):
        with pytest.raises(ValidationError):
            RegisterRequest(**self._payload(password="abc", password_confirmation="abc"))

    def test_password_over_bcrypt_limit(self):
        long_password = "x" * 73
        with pytest.raises(ValidationError):
            RegisterRequest(**self._payload(password=long_password, password_confirmation=long_password))

    def test_multibyte_password_over_byte_limit(self):
        # 40 characters, 80 bytes
        accented = "é" * 40
        with pytest.raises(ValidationError, match="greater than 72 bytes"):
            RegisterRequest(**self._payload(password=accented, password_confirmation=accented))

    def test_multibyte_password_within_byte_limit(self):
        accented = "é" * 36
        assert RegisterRequest(**self._payload(password=accented, password_confirmation=accented)).password == accented

    def test_invalid_email(self):
        with pytest.raises(ValidationError, match="Invalid email format"):
            RegisterRequest(**self._payload(email="not-an-email"))

    def test_name_html_stripped(self):
        assert RegisterRequest(**self._payload(name="<b>Ada</b>")).name == "Ada"


class TestLoginRequest:

    def test_email_lowercased_without_format_check(self):
        assert LoginRequest(email=" Bob@Example.com ", password="x").email == "bob@example.com"

    def test_empty_password_rejected(self):
        with pytest.raises(ValidationError):
            LoginRequest(email="bob@example.com", password="")


class TestPasswordUpdate:

    def test_confirmation_checked(self):
        with pytest.raises(ValidationError):
            PasswordUpdate(current_password="old", password="new-password", password_confirmation="nope")

    def test_valid(self):
        body = PasswordUpdate(current_password="old", password="new-password", password_confirmation="new-password")
        assert body.password == "new-password"

    @pytest.mark.parametrize("model, fields", [
        (PasswordUpdate, {"current_password": "old"}),
        (ResetPasswordRequest, {"email": "ann@example.com", "token": "t"}),
    ])
    def test_byte_limit_on_password_changes(self, model, fields):
        accented = "é" * 40
        with pytest.raises(ValidationError, match="greater than 72 bytes"):
            model(password=accented, password_confirmation=accented, **fields)


class TestUserSchemas:

    def test_default_role_is_client(self):
        body = UserCreate(name="Ann", email="ann@example.com", password="secret-password")
        assert body.roles == ["client"]
        assert body.status == "active"

    def test_user_alias_canonicalised_and_deduplicated(self):
        body = UserCreate(name="Ann", email="ann@example.com", password="secret-password",
                          roles=["user", "client", "Staff"])
        assert body.roles == ["client", "staff"]

    def test_invalid_role_rejected(self):
        with pytest.raises(ValidationError, match="Invalid role: guest"):
            UserCreate(name="Ann", email="ann@example.com", password="secret-password", roles=["guest"])

    def test_invalid_status_rejected(self):
        with pytest.raises(ValidationError, match="Invalid status"):
            UserCreate(name="Ann", email="ann@example.com", password="secret-password", status="frozen")

    def test_admin_user_payloads_check_password_bytes(self):
        accented = "é" * 40
        with pytest.raises(ValidationError, match="greater than 72 bytes"):
            UserCreate(name="Ann", email="ann@example.com", password=accented)
        with pytest.raises(ValidationError, match="greater than 72 bytes"):
            UserUpdate(password=accented)

    def test_user_update_is_partial(self):
        body = UserUpdate(status="banned")
        assert body.model_dump(exclude_unset=True) == {"status": "banned"}

    def test_role_assignment_needs_a_role(self):
        with pytest.raises(ValidationError):
            RoleAssignment(roles=[])

    def test_status_change_normalised(self):
        assert StatusChange(status=" Suspended ").status == "suspended"

    def test_status_change_rejects_unknown(self):
        with pytest.raises(ValidationError):
            StatusChange(status="deleted")


class TestJokeSchemas:

    def test_valid_joke(self):
        body = JokeCreate(title="Chicken", content="Why did the chicken cross the road?", categories=[1, 2])
        assert body.categories == [1, 2]
        assert body.reference is None

    def test_content_minimum_length(self):
        with pytest.raises(ValidationError):
            JokeCreate(title="Short", content="too short")

    def test_title_required(self):
        with pytest.raises(ValidationError):
            JokeCreate(title="", content="Why did the chicken cross the road?")

    def test_html_stripped(self):
        body = JokeCreate(title="<i>Chicken</i>", content="<p>Why did the chicken cross?</p>")
        assert body.title == "Chicken"
        assert body.content == "Why did the chicken cross?"

    def test_published_at_must_be_iso(self):
        with pytest.raises(ValidationError, match="Invalid date format"):
            JokeCreate(title="Chicken", content="Why did the chicken cross?", published_at="yesterday")

    def test_published_at_accepts_zulu(self):
        assert validate_iso_date("2024-05-01T10:00:00Z") == "2024-05-01T10:00:00Z"

    def test_update_only_carries_given_fields(self):
        body = JokeUpdate(title="New title")
        assert body.model_dump(exclude_unset=True) == {"title": "New title"}


class TestCategoryCreate:

    def test_name_trimmed(self):
        assert CategoryCreate(name="  Puns  ").name == "Puns"

    def test_name_required(self):
        with pytest.raises(ValidationError):
            CategoryCreate(name="")


class TestVoteRequest:

    @pytest.mark.parametrize("rating", [1, -1])
    def test_valid_ratings(self, rating):
        assert VoteRequest(rating=rating).rating == rating

    @pytest.mark.parametrize("rating", [0, 2, -2, 5])
    def test_other_ratings_rejected(self, rating):
        with pytest.raises(ValidationError, match="Rating must be 1"):
            VoteRequest(rating=rating)
