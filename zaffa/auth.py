"""Login, registration and password reset against the booking sheet."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .cache import LocalCache
from .config import AuthConfig
from .sheet import SheetClient, SheetError

logger = logging.getLogger(__name__)

MSG_MISSING_CREDENTIALS = "Please enter the username and password."
MSG_MISSING_FIELDS = "Please fill in all fields."
MSG_PASSWORD_MISMATCH = "The password and its confirmation do not match."
MSG_PASSWORD_TOO_SHORT = "The password must be at least {n} characters long."
MSG_BAD_CREDENTIALS = "Incorrect username or password. Attempt {n} of {max}."
MSG_RESET_REQUIRED = "Too many failed attempts. Please reset your password."
MSG_LOGIN_ERROR = "An error occurred while logging in. Please try again."
MSG_REGISTER_ERROR = "An error occurred while creating the account."
MSG_RESET_ERROR = "An error occurred while resetting the password."
MSG_RESET_DONE = "Password changed. You can now log in."


class AuthStatus(Enum):
    SUCCESS = "success"
    INVALID = "invalid"  # rejected locally, nothing was sent
    DENIED = "denied"
    RESET_REQUIRED = "reset_required"
    ERROR = "error"


@dataclass
class AuthResult:
    status: AuthStatus
    message: str | None = None
    username: str | None = None
    is_admin: bool = False
    prefetched: list[dict[str, Any]] | None = None

    @property
    def ok(self) -> bool:
        return self.status == AuthStatus.SUCCESS


class AuthService:
    """Identity handling for one client.

    Only the username and role are persisted; the password never leaves
    the call that uses it.
    """

    def __init__(
        self,
        client: SheetClient,
        cache: LocalCache,
        config: AuthConfig | None = None,
        prefetch: bool = True,
    ):
        self.client = client
        self.cache = cache
        self.config = config or AuthConfig()
        self.prefetch_on_login = prefetch
        self.failed_attempts = 0

    async def login(self, username: str, password: str) -> AuthResult:
        username, password = username.strip(), password.strip()
        if not username or not password:
            return AuthResult(AuthStatus.INVALID, MSG_MISSING_CREDENTIALS)

        if (
            self.config.admin_enabled
            and username == self.config.admin_username
            and password == self.config.admin_password
        ):
            self.cache.set_identity(username, is_admin=True)
            self.failed_attempts = 0
            logger.info("Administrator logged in")
            return AuthResult(
                AuthStatus.SUCCESS,
                username=username,
                is_admin=True,
                prefetched=await self.prefetch(),
            )

        try:
            result = await self.client.authenticate(username, password)
        except SheetError as e:
            logger.error(f"Login error: {e}")
            return AuthResult(AuthStatus.ERROR, MSG_LOGIN_ERROR)

        if result.get("status") != "success":
            self.failed_attempts += 1
            logger.info(f"Login rejected for {username} ({self.failed_attempts})")
            if self.failed_attempts >= self.config.max_login_attempts:
                return AuthResult(AuthStatus.RESET_REQUIRED, MSG_RESET_REQUIRED)
            return AuthResult(
                AuthStatus.DENIED,
                MSG_BAD_CREDENTIALS.format(
                    n=self.failed_attempts, max=self.config.max_login_attempts
                ),
            )

        return await self._logged_in(username)

    async def register(
        self, username: str, password: str, confirm_password: str
    ) -> AuthResult:
        """Create an account and log straight into it."""
        username = username.strip()
        if problem := self._check_new_password(username, password, confirm_password):
            return AuthResult(AuthStatus.INVALID, problem)

        try:
            result = await self.client.register(username, password.strip())
        except SheetError as e:
            logger.error(f"Registration error: {e}")
            return AuthResult(AuthStatus.ERROR, MSG_REGISTER_ERROR)

        if result.get("status") != "success":
            return AuthResult(AuthStatus.DENIED, result.get("message") or MSG_REGISTER_ERROR)

        logger.info(f"Registered {username}")
        return await self._logged_in(username)

    async def reset_password(
        self, username: str, password: str, confirm_password: str
    ) -> AuthResult:
        username = username.strip()
        if problem := self._check_new_password(username, password, confirm_password):
            return AuthResult(AuthStatus.INVALID, problem)

        try:
            result = await self.client.reset_password(username, password.strip())
        except SheetError as e:
            logger.error(f"Password reset error: {e}")
            return AuthResult(AuthStatus.ERROR, MSG_RESET_ERROR)

        if result.get("status") != "success":
            return AuthResult(AuthStatus.DENIED, result.get("message") or MSG_RESET_ERROR)

        self.failed_attempts = 0
        return AuthResult(AuthStatus.SUCCESS, MSG_RESET_DONE, username=username)

    def logout(self) -> None:
        self.cache.clear_identity()
        logger.info("Logged out")

    async def prefetch(self) -> list[dict[str, Any]] | None:
        """Fetch every row ahead of the first view; best effort."""
        if not self.prefetch_on_login:
            return None
        try:
            rows = await self.client.fetch_playlists()
        except SheetError as e:
            logger.warning(f"Prefetch failed: {e}")
            return None
        logger.debug(f"Prefetched {len(rows)} rows")
        return rows

    async def _logged_in(self, username: str) -> AuthResult:
        self.cache.set_identity(username, is_admin=False)
        self.failed_attempts = 0
        return AuthResult(
            AuthStatus.SUCCESS, username=username, prefetched=await self.prefetch()
        )

    def _check_new_password(
        self, username: str, password: str, confirm_password: str
    ) -> str | None:
        password, confirm_password = password.strip(), confirm_password.strip()
        if not username or not password or not confirm_password:
            return MSG_MISSING_FIELDS
        if password != confirm_password:
            return MSG_PASSWORD_MISMATCH
        if len(password) < self.config.min_password_length:
            return MSG_PASSWORD_TOO_SHORT.format(n=self.config.min_password_length)
        return None
