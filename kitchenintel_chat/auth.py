"""Auth token lookup shared with the REST views of the dashboard."""
import logging
from typing import Dict, Optional

from kitchenintel_chat.storage import ChatStorage, StorageError, TOKEN_KEY

logger = logging.getLogger(__name__)


def get_current_token(storage: ChatStorage) -> Optional[str]:
    """Return the stored auth token, or None when logged out."""
    try:
        token = storage.get_item(TOKEN_KEY)
    except StorageError as e:
        logger.warning(f"[AUTH] Could not read auth token: {e}")
        return None
    return token or None


async def get_current_token_async(storage: ChatStorage) -> Optional[str]:
    """Return the stored auth token, or None when logged out (async version)."""
    try:
        token = await storage.get_item_async(TOKEN_KEY)
    except StorageError as e:
        logger.warning(f"[AUTH] Could not read auth token: {e}")
        return None
    return token or None


def auth_headers(token: Optional[str]) -> Dict[str, str]:
    """HTTP headers authenticating a request with the backend's token scheme."""
    if not token:
        return {}
    return {"Authorization": f"Token {token}"}
