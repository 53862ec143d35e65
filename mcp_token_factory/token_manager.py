import json
import threading
import time
from pathlib import Path
from typing import Dict, Optional, Union

from pydantic import ValidationError

from mcp_token_factory.errors import StaleFactoryStateError, TokenNotFoundError
from mcp_token_factory.schemas import FactoryState, TokenRecord
from mcp.server.fastmcp.utilities.logging import get_logger

logger = get_logger(__name__)

FACTORY_STATE_FILE = "factory.json"
TOKEN_FILE_SUFFIX = ".json"


class JsonTokenStore:
    """
    Token record store backed by one JSON file per token plus a factory state file.

    Records are cached in memory and reloaded when a file in the store directory changes on
    disk. The factory token counter is only advanced through compare_and_increment, which is
    serialized with a lock so concurrent token creations cannot reuse an id.
    """

    def __init__(self, store_dir: Union[str, Path], authority: str, cache_duration: float = 300):
        self.store_dir = Path(store_dir)
        self.authority = authority
        self.cache_duration = cache_duration
        self._records: Dict[int, TokenRecord] = {}
        self._cache_timestamp: float = 0
        self._lock = threading.Lock()

    # --- Loading ---

    def load_tokens_from_files(self) -> Dict[int, TokenRecord]:
        """
        Loads token records from the store directory. Uses the in-memory cache when it is
        younger than cache_duration and no record file was modified since it was filled.

        Returns:
            A dictionary mapping token_id to the validated TokenRecord.
        """
        current_time = time.time()
        if self._cache_timestamp and current_time - self._cache_timestamp < self.cache_duration:
            if not self._files_modified_since(self._cache_timestamp):
                logger.debug("Using cached token records")
                return self._records.copy()

        loaded: Dict[int, TokenRecord] = {}
        if not self.store_dir.is_dir():
            logger.warning(f"Token store directory not found: {self.store_dir}. No tokens loaded.")
            self._records = loaded
            self._cache_timestamp = current_time
            return loaded

        logger.info(f"Loading token records from: {self.store_dir.resolve()}")
        for file_path in self._record_files():
            try:
                with open(file_path, "r") as f:
                    record = TokenRecord.model_validate(json.load(f))
            except json.JSONDecodeError:
                logger.error(f"Error decoding JSON from file: {file_path}")
                continue
            except ValidationError as e:
                logger.error(f"Invalid token record in file {file_path}: {e}")
                continue

            if str(record.token_id) != file_path.stem:
                logger.warning(f"Token ID mismatch in {file_path}: expected '{file_path.stem}', "
                               f"found '{record.token_id}'. Skipping.")
                continue
            loaded[record.token_id] = record

        logger.info(f"Finished loading token records. Total loaded: {len(loaded)}")
        self._records = loaded
        self._cache_timestamp = current_time
        return loaded.copy()

    def clear_cache(self) -> None:
        """Clears the record cache to force a reload on next access."""
        self._cache_timestamp = 0
        logger.debug("Token record cache cleared")

    def _record_files(self):
        return sorted(p for p in self.store_dir.glob(f"*{TOKEN_FILE_SUFFIX}") if p.name != FACTORY_STATE_FILE)

    def _files_modified_since(self, timestamp: float) -> bool:
        if not self.store_dir.is_dir():
            return False
        return any(p.stat().st_mtime > timestamp for p in self._record_files())

    # --- TokenStore ---

    def get(self, token_id: int) -> TokenRecord:
        record = self.find(token_id)
        if record is None:
            raise TokenNotFoundError(f"Token {token_id} not found")
        return record

    def find(self, token_id: int) -> Optional[TokenRecord]:
        """Retrieves a copy of a token record by its id, or None."""
        record = self.load_tokens_from_files().get(token_id)
        return record.model_copy(deep=True) if record is not None else None

    def put(self, record: TokenRecord) -> None:
        """Persists a token record, overwriting any previous version."""
        self.store_dir.mkdir(parents=True, exist_ok=True)
        file_path = self.store_dir / f"{record.token_id}{TOKEN_FILE_SUFFIX}"
        self._write_json(file_path, record.model_dump(mode="json"))
        self._records[record.token_id] = record.model_copy(deep=True)
        logger.info(f"Saved token record {record.token_id} to {file_path}")

    def factory_state(self) -> FactoryState:
        file_path = self.store_dir / FACTORY_STATE_FILE
        if not file_path.exists():
            return FactoryState(authority=self.authority)
        with open(file_path, "r") as f:
            return FactoryState.model_validate(json.load(f))

    def compare_and_increment(self, expected: int) -> int:
        """Advances the token counter from `expected` to `expected + 1` and returns the new value."""
        with self._lock:
            state = self.factory_state()
            if state.token_count != expected:
                raise StaleFactoryStateError(
                    f"Factory token count is {state.token_count}, expected {expected}"
                )
            state.token_count = expected + 1
            self.store_dir.mkdir(parents=True, exist_ok=True)
            self._write_json(self.store_dir / FACTORY_STATE_FILE, state.model_dump(mode="json"))
            logger.debug(f"Factory token count advanced to {state.token_count}")
            return state.token_count

    @staticmethod
    def _write_json(file_path: Path, data: dict) -> None:
        tmp_path = file_path.with_suffix(file_path.suffix + ".tmp")
        with open(tmp_path, "w") as f:
            json.dump(data, f, indent=4)
        tmp_path.replace(file_path)
