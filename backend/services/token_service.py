"""Access/refresh token lifecycle.

Access tokens are stateless: signature and expiry are all that is checked.
Refresh tokens are stateful: a presented token is accepted only while it is
byte-for-byte the value stored on the user, and every successful use replaces
that value, so each refresh token can be exchanged exactly once.
"""
import logging
from typing import Any, Dict, NamedTuple, Optional

from core.exceptions import ApiError, internal_error, unauthorized
from core.security import TokenConfig, create_access_token, create_refresh_token, decode_refresh_token
from db.user_store import UserStore

logger = logging.getLogger(__name__)

REUSED_TOKEN_MESSAGE = "Refresh token is expired or used"


class TokenPair(NamedTuple):
    access_token: str
    refresh_token: str


class TokenService:
    def __init__(self, store: UserStore, config: TokenConfig):
        self.store = store
        self.config = config

    def _mint(self, user: Dict[str, Any]) -> TokenPair:
        return TokenPair(
            access_token=create_access_token(user, self.config),
            refresh_token=create_refresh_token(user["_id"], self.config),
        )

    async def issue(self, user_id: Any) -> TokenPair:
        """Mint a new pair and make its refresh token the only valid one"""
        try:
            user = await self.store.find_by_id(user_id)
            if user is None:
                raise internal_error("Something went wrong while generating refresh and access token")
            pair = self._mint(user)
            if not await self.store.set_refresh_token(user["_id"], pair.refresh_token):
                raise internal_error("Something went wrong while generating refresh and access token")
            return pair
        except ApiError:
            raise
        except Exception as e:
            logger.error(f"Error issuing tokens for user {user_id}: {e}")
            raise internal_error("Something went wrong while generating refresh and access token")

    async def rotate(self, presented: Optional[str]) -> TokenPair:
        """Exchange a refresh token for a new pair, consuming it"""
        if not presented:
            raise unauthorized("Unauthorized request")
        payload = decode_refresh_token(presented, self.config)

        user = await self.store.find_by_id(payload["sub"], include_sensitive=True)
        if user is None:
            raise unauthorized("Invalid refresh token")
        if presented != user.get("refreshToken"):
            logger.warning(f"Stale refresh token presented for user {user['_id']}")
            raise unauthorized(REUSED_TOKEN_MESSAGE)

        pair = self._mint(user)
        # Compare-and-swap: a concurrent rotation that already replaced the token wins
        swapped = await self.store.set_refresh_token(user["_id"], pair.refresh_token, expected=presented)
        if not swapped:
            logger.warning(f"Concurrent refresh token rotation lost for user {user['_id']}")
            raise unauthorized(REUSED_TOKEN_MESSAGE)
        return pair

    async def revoke(self, user_id: Any) -> None:
        """Forget the stored refresh token; outstanding refresh tokens die with it"""
        await self.store.clear_refresh_token(user_id)
        logger.info(f"Refresh token revoked for user {user_id}")
