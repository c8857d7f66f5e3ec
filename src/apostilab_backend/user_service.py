from __future__ import annotations

import logging

from .auth_service import hash_password, verify_password
from .errors import InvalidInputError
from .models import ChangePasswordInput, User
from .users import UserStore

logger = logging.getLogger(__name__)


class UserService:
    """Operations on the authenticated user's own account."""

    def __init__(self, users: UserStore):
        self.users = users

    def get_user(self, user_id: int) -> User:
        return self.users.find_by_id(user_id).to_public()

    def change_password(self, user_id: int, data: ChangePasswordInput) -> None:
        user = self.users.find_by_id(user_id)

        if not verify_password(data.current_password, user.password):
            raise InvalidInputError("current password is incorrect")
        if not data.new_password:
            raise InvalidInputError("new password required")

        self.users.update_password(user_id, hash_password(data.new_password))

    def delete_account(self, user_id: int) -> None:
        self.users.delete(user_id)
