"""
Authentication Module

Resolves the calling user from the X-User-ID header and checks that the
accounts targeted by an import belong to that user.
"""

import logging
import os
from pathlib import Path

import yaml
from fastapi import HTTPException, Header, status
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class User(BaseModel):
    """Authenticated user model."""

    user_id: str
    name: str
    # Accounts the user may import into; empty means no restriction
    accounts: list[str] = Field(default_factory=list)

    def owns_account(self, account_id: str) -> bool:
        return not self.accounts or account_id in self.accounts


DEV_USER = User(user_id="dev", name="Developer")


class UserDirectory:
    """Users allowed to call the API, loaded from users.yaml."""

    def __init__(self, config_path: Path | str | None = None):
        """Initialize the user directory.

        Args:
            config_path: Path to users.yaml
        """
        if config_path is None:
            config_path = Path(__file__).parent.parent.parent / "config" / "users.yaml"

        self.config_path = Path(config_path)
        self.users = self._load_users()

    def _load_users(self) -> dict[str, User]:
        if not self.config_path.exists():
            logger.warning(f"User file not found: {self.config_path}, only the dev user is known")
            return {DEV_USER.user_id: DEV_USER}

        with open(self.config_path) as f:
            data = yaml.safe_load(f) or {}

        users = {}
        for entry in data.get("users", []) or []:
            user_id = str(entry.get("user_id", "")).strip()
            if not user_id:
                continue
            users[user_id] = User(
                user_id=user_id,
                name=entry.get("name", "Unknown"),
                accounts=[str(a) for a in entry.get("accounts", []) or []],
            )

        return users

    def get_user(self, user_id: str) -> User | None:
        return self.users.get(str(user_id))


# Global user directory instance
user_directory = UserDirectory()


async def get_current_user(
    x_user_id: str | None = Header(None, alias="X-User-ID"),
) -> User:
    """Get current authenticated user from request headers.

    Args:
        x_user_id: User id from header

    Returns:
        Authenticated User

    Raises:
        HTTPException: 401 without a header outside development, 403 for
            unknown users
    """
    # Development mode: requests without a header act as the dev user
    if not x_user_id and os.getenv("ENVIRONMENT", "development") == "development":
        return DEV_USER

    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-ID header",
        )

    user = user_directory.get_user(x_user_id)

    if not user:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User not authorized",
        )

    return user


def require_account(user: User, account_id: str) -> None:
    """Reject imports into an account the user does not own.

    Raises:
        HTTPException: 403 if the account is not one of the user's
    """
    if not user.owns_account(account_id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Account {account_id} does not belong to user {user.user_id}",
        )
