"""Dead-token reaper - deletes tokens the gateway reported as unregistered."""
import logging
from typing import Iterable

from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError

from .. import database
from ..models import PushToken
from ..utils.db_utils import retry_on_lock
from .targeting import chunked

logger = logging.getLogger(__name__)

# Keeps each DELETE ... IN (...) well inside driver parameter limits
DELETE_CHUNK_SIZE = 500


class TokenReaper:
    """Best-effort batch cleanup of dead tokens."""
    
    async def reap(self, token_ids: Iterable[str]) -> int:
        """Delete the given token rows in one transaction.
        
        Ids that are already gone are ignored, so reaping the same list twice
        is harmless. Failures are logged and never raised.
        
        Returns:
            Number of rows actually deleted
        """
        ids = list(dict.fromkeys(token_id for token_id in token_ids if token_id))
        if not ids:
            return 0
        
        async def _delete() -> int:
            async with database.async_session() as session:
                deleted = 0
                for chunk in chunked(ids, DELETE_CHUNK_SIZE):
                    result = await session.execute(
                        delete(PushToken).where(PushToken.id.in_(chunk))
                    )
                    deleted += result.rowcount or 0
                await session.commit()
                return deleted
        
        try:
            deleted = await retry_on_lock(_delete)
        except SQLAlchemyError as e:
            logger.error(f"[Cleanup] Failed to delete {len(ids)} dead tokens: {e}")
            return 0
        
        logger.info(f"[Cleanup] Deleted {deleted} of {len(ids)} dead tokens")
        return deleted


# Global instance
token_reaper = TokenReaper()
