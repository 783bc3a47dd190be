"""
Repository pattern for data access.

Loads and saves the usage store as a whole. Load never fails outward: a store
that cannot be read is deleted and replaced by a fresh one.
"""

import logging
import os
from pathlib import Path
from typing import Optional, Union

from .codec import decode_store, encode_store
from .models import UsageStore

logger = logging.getLogger(__name__)


class UsageStoreRepository:
    """Repository for the persisted usage store.

    Every operation reads or writes the whole file; there is no in-memory
    cache shared between calls.
    """

    def __init__(self, store_path: Union[str, Path], installation_id: str):
        """Initialize the repository.

        Args:
            store_path: Path to the JSON store file
            installation_id: Identifier assigned to stores that have none

        Raises:
            ValueError: If installation_id is missing/empty
        """
        if not installation_id or not installation_id.strip():
            raise ValueError("installation_id is required and cannot be empty")

        self.store_path = Path(store_path)
        self.installation_id = installation_id

    def load(self) -> UsageStore:
        """Load the store from disk, or create a fresh one.

        A legacy-format store is migrated and saved back immediately. Any
        read or parse failure deletes the file and starts from empty.

        Returns:
            The loaded store, with its installation id populated
        """
        result: Optional[UsageStore] = None
        if self.store_path.exists():
            logger.debug("Loading usage store: %s", self.store_path)
            try:
                decoded = decode_store(self.store_path.read_text(encoding="utf-8"))
                result = decoded.store
                if decoded.migrated:
                    self.save(result)
            except Exception:
                logger.warning(
                    "Error loading usage store %s; deleting file", self.store_path, exc_info=True
                )
                self._delete_quietly()

        if result is None:
            result = UsageStore()

        if not result.model.guid:
            result.model.guid = self.installation_id

        return result

    def save(self, store: UsageStore) -> None:
        """Write the store to disk, replacing the previous file.

        Failures are logged and swallowed; the next load-mutate-save cycle
        starts again from whatever is on disk.

        Args:
            store: The store to persist
        """
        logger.debug("Saving usage store: %s", self.store_path)
        temp_path = self.store_path.with_name(self.store_path.name + ".tmp")
        try:
            text = encode_store(store)
            self.store_path.parent.mkdir(parents=True, exist_ok=True)
            temp_path.write_text(text, encoding="utf-8")
            os.replace(temp_path, self.store_path)
        except Exception:
            logger.error("Error saving usage store: %s", self.store_path, exc_info=True)

    def delete(self) -> bool:
        """Delete the backing file.

        Returns:
            True if a file was removed
        """
        if not self.store_path.exists():
            return False
        self.store_path.unlink()
        return True

    def _delete_quietly(self) -> None:
        try:
            self.store_path.unlink()
        except OSError as e:
            logger.debug("Could not delete usage store %s: %s", self.store_path, e)
