"""
Authentication Module

Provides X-User-ID header authentication against config/portal_acl.yaml.
"""

import logging
from functools import lru_cache
from pathlib import Path

import yaml
from fastapi import Depends, Header, HTTPException, status
from pydantic import BaseModel

from ..config import DEFAULT_CONFIG_DIR, PortalSettings, load_settings

logger = logging.getLogger(__name__)

CITIZEN_ROLE = "citizen"


class User(BaseModel):
    """Authenticated user model."""

    user_id: str
    name: str
    role: str
    permissions: list[str]


class AuthConfig:
    """Authentication configuration loaded from portal_acl.yaml."""

    def __init__(self, config_path: Path | str | None = None):
        """Initialize auth config.

        Args:
            config_path: Path to portal_acl.yaml
        """
        if config_path is None:
            config_path = DEFAULT_CONFIG_DIR / "portal_acl.yaml"

        self.config_path = Path(config_path)
        self._load_config()

    def _load_config(self) -> None:
        """Load configuration from YAML."""
        if self.config_path.exists():
            with open(self.config_path) as f:
                self.config = yaml.safe_load(f) or {}
        else:
            logger.warning(f"ACL file not found: {self.config_path}, only citizen access is available")
            self.config = {
                "users": [],
                "permissions": {
                    "admin": ["*"],
                    CITIZEN_ROLE: ["pay"],
                },
            }

    def permissions_for(self, role: str) -> list[str]:
        return self.config.get("permissions", {}).get(role, [])

    def get_user(self, user_id: str) -> User:
        """Get user by ID. Unlisted users are citizens.

        Args:
            user_id: Value of the X-User-ID header

        Returns:
            User object
        """
        for user_data in self.config.get("users", []):
            if str(user_data.get("user_id")) == str(user_id):
                role = user_data.get("role", CITIZEN_ROLE)
                return User(
                    user_id=str(user_id),
                    name=user_data.get("name", "Unknown"),
                    role=role,
                    permissions=self.permissions_for(role),
                )

        return User(
            user_id=str(user_id),
            name="Citizen",
            role=CITIZEN_ROLE,
            permissions=self.permissions_for(CITIZEN_ROLE),
        )

    def has_permission(self, user: User, permission: str) -> bool:
        if "*" in user.permissions:
            return True

        return permission in user.permissions


@lru_cache
def get_settings() -> PortalSettings:
    """Portal settings dependency."""
    return load_settings()


@lru_cache
def get_auth_config() -> AuthConfig:
    return AuthConfig()


async def get_current_user(
    x_user_id: str | None = Header(None, alias="X-User-ID"),
    settings: PortalSettings = Depends(get_settings),
    auth_config: AuthConfig = Depends(get_auth_config),
) -> User:
    """Get current authenticated user from request headers.

    Args:
        x_user_id: User ID from header
        settings: Portal settings
        auth_config: Loaded ACL

    Returns:
        Authenticated User

    Raises:
        HTTPException: If the header is missing outside development
    """
    if not x_user_id:
        if settings.is_development:
            return User(
                user_id="dev",
                name="Developer",
                role="admin",
                permissions=["*"],
            )

        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-ID header",
        )

    return auth_config.get_user(x_user_id)


def require_permission(permission: str):
    """Dependency factory for permission checks.

    Args:
        permission: Required permission

    Returns:
        Dependency function
    """
    async def check_permission(
        user: User = Depends(get_current_user),
        auth_config: AuthConfig = Depends(get_auth_config),
    ) -> User:
        if not auth_config.has_permission(user, permission):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Permission '{permission}' required",
            )
        return user

    return check_permission


# Common permission dependencies
require_view = require_permission("view")
require_pay = require_permission("pay")
require_assess = require_permission("assess")
require_approve = require_permission("approve")
require_configure = require_permission("configure")
require_reconcile = require_permission("reconcile")
