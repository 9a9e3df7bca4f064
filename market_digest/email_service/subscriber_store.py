"""
Module for persisting newsletter subscribers.

The whole collection is the unit of persistence: every mutation reads the full
list, applies the change and writes the full list back. Stores do no locking;
callers keep to a single writer.
"""

import asyncio
import copy
import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, List, Sequence, TypeVar, Union

from ..errors import StorageError, ValidationError
from .models import Subscriber

logger = logging.getLogger(__name__)

T = TypeVar('T')


class SubscriberStore(ABC):
    """
    Repository of subscriber records.

    Implementations persist the complete collection on every save.
    """

    @abstractmethod
    async def load(self) -> List[Subscriber]:
        """
        Load every stored subscriber.

        Returns:
            List of subscribers in stored order, empty if nothing was saved yet

        Raises:
            StorageError: If the stored data cannot be read
        """

    @abstractmethod
    async def save(self, subscribers: Sequence[Subscriber]) -> None:
        """
        Replace the stored collection.

        Raises:
            StorageError: If the collection cannot be written
        """

    async def mutate(self, change: Callable[[List[Subscriber]], T]) -> T:
        """
        Read the whole collection, apply a change and write it back.

        Nothing is written if `change` raises.

        Args:
            change: Callable that edits the list in place and returns a result

        Returns:
            Whatever `change` returned
        """
        subscribers = await self.load()
        result = change(subscribers)
        await self.save(subscribers)
        return result


class JsonFileSubscriberStore(SubscriberStore):
    """Subscriber store backed by a single JSON file."""

    def __init__(self, subscribers_file: Union[str, Path]):
        self.subscribers_file = Path(subscribers_file)

    async def load(self) -> List[Subscriber]:
        return await asyncio.to_thread(self._read)

    async def save(self, subscribers: Sequence[Subscriber]) -> None:
        payload = [s.to_dict() for s in subscribers]
        await asyncio.to_thread(self._write, payload)

    def _read(self) -> List[Subscriber]:
        if not self.subscribers_file.exists():
            logger.info(f"Subscribers file not found, starting empty: {self.subscribers_file}")
            return []
        try:
            with open(self.subscribers_file, 'r', encoding='utf-8') as f:
                raw = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Could not read subscribers from {self.subscribers_file}: {e}") from e

        if not isinstance(raw, list):
            raise StorageError(f"Subscribers file {self.subscribers_file} does not hold a list")
        try:
            subscribers = [Subscriber.from_dict(item) for item in raw]
        except (KeyError, TypeError, ValueError, ValidationError) as e:
            raise StorageError(f"Malformed subscriber record in {self.subscribers_file}: {e}") from e

        logger.debug(f"Loaded {len(subscribers)} subscribers from {self.subscribers_file}")
        return subscribers

    def _write(self, payload: list) -> None:
        tmp_path = None
        try:
            self.subscribers_file.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                prefix='.subscribers-', suffix='.tmp', dir=self.subscribers_file.parent
            )
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(payload, f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.subscribers_file)
            tmp_path = None
        except OSError as e:
            raise StorageError(f"Could not save subscribers to {self.subscribers_file}: {e}") from e
        finally:
            if tmp_path is not None and os.path.exists(tmp_path):
                os.unlink(tmp_path)

        logger.info(f"Saved {len(payload)} subscribers to {self.subscribers_file}")


class InMemorySubscriberStore(SubscriberStore):
    """Store that keeps the collection in process memory."""

    def __init__(self, subscribers: Sequence[Subscriber] = ()):
        self._subscribers = copy.deepcopy(list(subscribers))
        self.save_count = 0

    async def load(self) -> List[Subscriber]:
        await asyncio.sleep(0)
        return copy.deepcopy(self._subscribers)

    async def save(self, subscribers: Sequence[Subscriber]) -> None:
        await asyncio.sleep(0)
        self._subscribers = copy.deepcopy(list(subscribers))
        self.save_count += 1
