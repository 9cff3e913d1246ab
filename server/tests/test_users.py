"""Tests for user administration and own-profile tools.

Covers:
- Profile read/update, password change (revokes tokens), self-deletion
- Staff user management limited to client-level targets
- Delete self-protection and the cross-role ceiling
- Restore, permanent removal and trash listing of accounts
- Role assignment (admin+) and status changes that end sessions
"""
import pytest

from factories import DEFAULT_PASSWORD, add_vote, count_rows, create_joke, create_user
from jokes_api.database import create_user_token, list_user_tokens
from jokes_api.passwords import verify_password
from jokes_api.responses import CONFLICT, FORBIDDEN, NOT_FOUND, VALIDATION_ERROR
from jokes_api.tools.users import (
    assign_roles,
    change_status,
    create_user as create_user_tool,
    delete_profile,
    delete_user,
    force_delete_user,
    get_profile,
    get_user,
    list_deleted_users,
    list_users,
    load_user,
    restore_user,
    update_password,
    update_profile,
    update_user,
)


def _password_hash(cursor, user_id):
    cursor.execute("SELECT password_hash FROM users WHERE id = ?", (user_id,))
    return cursor.fetchone()[0]


class TestProfile:

    def test_profile_lists_permissions(self, cursor, world):
        result = get_profile(cursor, world.owner)
        user = result["user"]
        assert result["message"] == "Profile retrieved"
        assert user["roles"] == ["client"]
        assert "jokes.create" in user["permissions"]
        assert "password_hash" not in user

    def test_update_profile(self, cursor, world):
        result = update_profile(cursor, world.owner, given_name="Ada", family_name="Lovelace")
        assert result["message"] == "Profile updated"
        assert result["user"]["given_name"] == "Ada"
        assert result["user"]["family_name"] == "Lovelace"

    def test_email_taken(self, cursor, world):
        result = update_profile(cursor, world.owner, email=world.other.email)
        assert result["code"] == VALIDATION_ERROR
        assert result["errors"] == {"email": ["The email has already been taken."]}

    def test_change_password_revokes_tokens(self, cursor, world):
        create_user_token(cursor, world.owner.id)
        result = update_password(cursor, world.owner, DEFAULT_PASSWORD, "brand-new-password")
        assert result["message"] == "Password updated successfully. Please log in again."
        assert verify_password("brand-new-password", _password_hash(cursor, world.owner.id))
        assert list_user_tokens(cursor, world.owner.id) == []

    def test_wrong_current_password(self, cursor, world):
        result = update_password(cursor, world.owner, "wrong-password", "brand-new-password")
        assert result["code"] == VALIDATION_ERROR
        assert "current_password" in result["errors"]
        assert verify_password(DEFAULT_PASSWORD, _password_hash(cursor, world.owner.id))

    def test_delete_own_profile(self, cursor, world):
        create_user_token(cursor, world.owner.id)
        assert delete_profile(cursor, world.owner) == {"message": "Profile deleted successfully"}
        assert load_user(cursor, world.owner.id) is None
        assert load_user(cursor, world.owner.id, include_deleted=True)["deleted_at"] is not None
        assert list_user_tokens(cursor, world.owner.id) == []


class TestListUsers:

    def test_staff_lists_users(self, cursor, world):
        result = list_users(cursor, world.staff)
        assert result["message"] == "Users retrieved"
        assert result["users"]["total"] == 5
        assert all("password_hash" not in u for u in result["users"]["data"])

    def test_client_forbidden(self, cursor, world):
        result = list_users(cursor, world.owner)
        assert result["code"] == FORBIDDEN
        assert result["message"] == "Unauthorized to browse users"

    def test_filters(self, cursor, world):
        create_user(cursor, "client", status="banned", name="Mallory")
        assert [u["name"] for u in list_users(cursor, world.staff, status="banned")["users"]["data"]] == ["Mallory"]
        assert list_users(cursor, world.staff, role="user")["users"]["total"] == 3
        assert list_users(cursor, world.staff, q="Mallory")["users"]["total"] == 1

    def test_invalid_filters(self, cursor, world):
        assert list_users(cursor, world.staff, status="frozen")["code"] == VALIDATION_ERROR
        assert list_users(cursor, world.staff, role="guest")["code"] == VALIDATION_ERROR

    def test_deleted_users_hidden(self, cursor, world):
        delete_user(cursor, world.staff, world.other.id)
        assert list_users(cursor, world.staff)["users"]["total"] == 4


class TestCreateUser:

    def test_staff_creates_client(self, cursor, world):
        result = create_user_tool(cursor, world.staff, "Carol", "carol@example.com", "secret-password")
        assert result["message"] == "User created"
        assert result["user"]["roles"] == ["client"]

    def test_staff_cannot_create_staff(self, cursor, world):
        result = create_user_tool(cursor, world.staff, "Carol", "carol@example.com", "secret-password",
                                  roles=["staff"])
        assert result["code"] == FORBIDDEN
        assert result["message"] == "Unauthorized to create users with these roles"
        assert count_rows(cursor, "users", "email = ?", ("carol@example.com",)) == 0

    def test_client_cannot_create(self, cursor, world):
        result = create_user_tool(cursor, world.owner, "Carol", "carol@example.com", "secret-password")
        assert result["code"] == FORBIDDEN
        assert result["message"] == "Unauthorized to create users"

    def test_admin_creates_superuser(self, cursor, world):
        result = create_user_tool(cursor, world.admin, "Root", "root@example.com", "secret-password",
                                  roles=["superuser"])
        assert result["user"]["roles"] == ["superuser"]

    def test_duplicate_email(self, cursor, world):
        result = create_user_tool(cursor, world.admin, "Dup", world.owner.email, "secret-password")
        assert result["errors"] == {"email": ["The email has already been taken."]}

    def test_invalid_role(self, cursor, world):
        result = create_user_tool(cursor, world.admin, "X", "x@example.com", "secret-password", roles=["guest"])
        assert result["code"] == VALIDATION_ERROR


class TestGetAndUpdateUser:

    def test_staff_reads_user(self, cursor, world):
        result = get_user(cursor, world.staff, world.owner.id)
        assert result["user"]["email"] == world.owner.email
        assert "permissions" in result["user"]

    def test_missing_user(self, cursor, world):
        assert get_user(cursor, world.staff, 999)["code"] == NOT_FOUND

    def test_staff_updates_client(self, cursor, world):
        result = update_user(cursor, world.staff, world.owner.id, name="Renamed")
        assert result["message"] == "User updated"
        assert result["user"]["name"] == "Renamed"

    def test_staff_cannot_update_admin(self, cursor, world):
        result = update_user(cursor, world.staff, world.admin.id, name="Renamed")
        assert result["code"] == FORBIDDEN
        assert result["message"] == "Unauthorized to update this user"

    def test_client_updates_only_self(self, cursor, world):
        assert update_user(cursor, world.owner, world.owner.id, name="Me")["user"]["name"] == "Me"
        assert update_user(cursor, world.owner, world.other.id, name="You")["code"] == FORBIDDEN

    def test_client_cannot_change_own_status(self, cursor, world):
        result = update_user(cursor, world.owner, world.owner.id, status="banned")
        assert result["code"] == FORBIDDEN
        assert load_user(cursor, world.owner.id)["status"] == "active"

    def test_password_change_revokes_tokens(self, cursor, world):
        create_user_token(cursor, world.owner.id)
        update_user(cursor, world.admin, world.owner.id, password="reset-by-admin")
        assert list_user_tokens(cursor, world.owner.id) == []
        assert verify_password("reset-by-admin", _password_hash(cursor, world.owner.id))

    @pytest.mark.parametrize("role", ["client", "staff", "admin"])
    def test_own_password_needs_the_change_password_path(self, cursor, world, role):
        actor = create_user(cursor, role)
        create_user_token(cursor, actor.id)

        result = update_user(cursor, actor, actor.id, password="taken-over-password")

        assert result["code"] == FORBIDDEN
        assert result["message"] == "Use the change password endpoint to change your own password"
        assert verify_password(DEFAULT_PASSWORD, _password_hash(cursor, actor.id))
        assert len(list_user_tokens(cursor, actor.id)) == 1

    def test_explicit_none_clears_given_name(self, cursor, world):
        update_user(cursor, world.staff, world.owner.id, given_name="Ada", family_name="Lovelace")
        result = update_user(cursor, world.staff, world.owner.id, given_name=None)
        assert result["user"]["given_name"] is None
        assert result["user"]["family_name"] == "Lovelace"

    def test_suspending_via_update_revokes_tokens(self, cursor, world):
        create_user_token(cursor, world.owner.id)
        result = update_user(cursor, world.staff, world.owner.id, status="suspended")
        assert result["user"]["status"] == "suspended"
        assert list_user_tokens(cursor, world.owner.id) == []


class TestDeleteUser:

    @pytest.mark.parametrize("role", ["staff", "admin", "superuser"])
    def test_self_deletion_forbidden(self, cursor, world, role):
        actor = getattr(world, role)
        result = delete_user(cursor, actor, actor.id)
        assert result["code"] == FORBIDDEN
        assert load_user(cursor, actor.id) is not None

    def test_staff_deletes_client_and_revokes_tokens(self, cursor, world):
        create_user_token(cursor, world.owner.id)
        joke_id = create_joke(cursor, world.owner, [world.puns])
        add_vote(cursor, world.owner, joke_id)

        assert delete_user(cursor, world.staff, world.owner.id) == {"message": "User deleted"}
        assert load_user(cursor, world.owner.id) is None
        assert list_user_tokens(cursor, world.owner.id) == []
        # Soft delete keeps the user's content
        assert count_rows(cursor, "jokes", "user_id = ?", (world.owner.id,)) == 1
        assert count_rows(cursor, "votes", "user_id = ?", (world.owner.id,)) == 1

    @pytest.mark.parametrize("actor_role, target_role", [
        ("staff", "staff"),
        ("staff", "admin"),
        ("staff", "superuser"),
        ("admin", "admin"),
        ("admin", "superuser"),
    ])
    def test_delete_ceiling(self, cursor, world, actor_role, target_role):
        target = create_user(cursor, target_role)
        result = delete_user(cursor, getattr(world, actor_role), target.id)
        assert result["code"] == FORBIDDEN

    def test_admin_deletes_staff(self, cursor, world):
        assert delete_user(cursor, world.admin, world.staff.id)["message"] == "User deleted"

    def test_superuser_deletes_other_superuser(self, cursor, world):
        target = create_user(cursor, "superuser")
        assert delete_user(cursor, world.superuser, target.id)["message"] == "User deleted"

    def test_client_forbidden(self, cursor, world):
        assert delete_user(cursor, world.owner, world.other.id)["code"] == FORBIDDEN

    def test_missing_user(self, cursor, world):
        assert delete_user(cursor, world.admin, 999)["code"] == NOT_FOUND


class TestUserLifecycle:

    def test_staff_restores_client(self, cursor, world):
        create_user_token(cursor, world.owner.id)
        delete_user(cursor, world.staff, world.owner.id)

        result = restore_user(cursor, world.staff, world.owner.id)

        assert result["message"] == "User restored"
        assert result["user"]["roles"] == ["client"]
        assert load_user(cursor, world.owner.id) is not None
        # Sessions ended by the delete stay ended
        assert list_user_tokens(cursor, world.owner.id) == []

    def test_restore_active_user_is_conflict(self, cursor, world):
        result = restore_user(cursor, world.staff, world.owner.id)
        assert result["code"] == CONFLICT
        assert result["message"] == "User is not deleted"

    def test_restore_ceiling(self, cursor, world):
        target = create_user(cursor, "admin")
        delete_user(cursor, world.superuser, target.id)
        assert restore_user(cursor, world.staff, target.id)["code"] == FORBIDDEN
        assert restore_user(cursor, world.admin, target.id)["code"] == FORBIDDEN
        assert restore_user(cursor, world.superuser, target.id)["message"] == "User restored"

    def test_client_cannot_restore(self, cursor, world):
        delete_user(cursor, world.staff, world.other.id)
        assert restore_user(cursor, world.owner, world.other.id)["code"] == FORBIDDEN

    def test_restore_missing_user(self, cursor, world):
        assert restore_user(cursor, world.staff, 999)["code"] == NOT_FOUND

    def test_admin_force_deletes_user(self, cursor, world):
        joke_id = create_joke(cursor, world.owner, [world.puns])
        add_vote(cursor, world.owner, joke_id)
        create_user_token(cursor, world.owner.id)
        cursor.execute(
            "INSERT INTO password_reset_tokens (email, token_hash, created_at) VALUES (?, 'x', '2024-01-01T00:00:00+00:00')",
            (world.owner.email,),
        )

        result = force_delete_user(cursor, world.admin, world.owner.id)

        assert result == {"message": "User permanently removed"}
        assert count_rows(cursor, "users", "id = ?", (world.owner.id,)) == 0
        assert count_rows(cursor, "user_roles", "user_id = ?", (world.owner.id,)) == 0
        assert count_rows(cursor, "personal_access_tokens", "user_id = ?", (world.owner.id,)) == 0
        assert count_rows(cursor, "votes", "user_id = ?", (world.owner.id,)) == 0
        assert count_rows(cursor, "password_reset_tokens", "email = ?", (world.owner.email,)) == 0
        # Jokes survive without an owner
        assert count_rows(cursor, "jokes", "id = ? AND user_id IS NULL", (joke_id,)) == 1

    def test_force_delete_of_soft_deleted_user(self, cursor, world):
        delete_user(cursor, world.staff, world.other.id)
        assert force_delete_user(cursor, world.admin, world.other.id)["message"] == "User permanently removed"

    def test_staff_cannot_force_delete(self, cursor, world):
        result = force_delete_user(cursor, world.staff, world.owner.id)
        assert result["code"] == FORBIDDEN
        assert result["message"] == "Unauthorized to permanently delete this user"

    @pytest.mark.parametrize("target_role", ["admin", "superuser"])
    def test_admin_force_delete_ceiling(self, cursor, world, target_role):
        target = create_user(cursor, target_role)
        assert force_delete_user(cursor, world.admin, target.id)["code"] == FORBIDDEN

    @pytest.mark.parametrize("role", ["admin", "superuser"])
    def test_cannot_force_delete_self(self, cursor, world, role):
        actor = getattr(world, role)
        assert force_delete_user(cursor, actor, actor.id)["code"] == FORBIDDEN

    def test_trash_listing(self, cursor, world):
        delete_user(cursor, world.staff, world.other.id)

        result = list_deleted_users(cursor, world.staff)

        assert result["message"] == "Deleted users retrieved"
        assert [user["id"] for user in result["users"]["data"]] == [world.other.id]
        assert "password_hash" not in result["users"]["data"][0]

    def test_client_cannot_list_trash(self, cursor, world):
        assert list_deleted_users(cursor, world.owner)["code"] == FORBIDDEN


class TestRolesAndStatus:

    def test_admin_assigns_roles(self, cursor, world):
        result = assign_roles(cursor, world.admin, world.owner.id, ["user", "staff"])
        assert result["message"] == "Roles assigned successfully"
        assert result["user"]["roles"] == ["client", "staff"]

    def test_assignment_replaces_roles(self, cursor, world):
        assign_roles(cursor, world.admin, world.staff.id, ["client"])
        assert load_user(cursor, world.staff.id)["roles"] == ["client"]

    def test_staff_cannot_assign_roles(self, cursor, world):
        result = assign_roles(cursor, world.staff, world.owner.id, ["admin"])
        assert result["code"] == FORBIDDEN
        assert result["message"] == "Unauthorized to assign roles"

    def test_empty_and_unknown_roles(self, cursor, world):
        assert assign_roles(cursor, world.admin, world.owner.id, [])["code"] == VALIDATION_ERROR
        assert assign_roles(cursor, world.admin, world.owner.id, ["guest"])["code"] == VALIDATION_ERROR

    def test_ban_revokes_tokens(self, cursor, world):
        create_user_token(cursor, world.owner.id)
        result = change_status(cursor, world.staff, world.owner.id, "banned")
        assert result["message"] == "User status updated successfully"
        assert result["user"]["status"] == "banned"
        assert list_user_tokens(cursor, world.owner.id) == []

    def test_reactivation_keeps_tokens(self, cursor, world):
        create_user_token(cursor, world.owner.id)
        change_status(cursor, world.staff, world.owner.id, "active")
        assert len(list_user_tokens(cursor, world.owner.id)) == 1

    def test_client_cannot_change_status(self, cursor, world):
        assert change_status(cursor, world.owner, world.other.id, "banned")["code"] == FORBIDDEN

    def test_invalid_status(self, cursor, world):
        assert change_status(cursor, world.staff, world.owner.id, "frozen")["code"] == VALIDATION_ERROR
