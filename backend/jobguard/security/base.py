"""
Common plumbing for the Redis-backed security components.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Callable, Optional, TypeVar

from pydantic import BaseModel, ValidationError

from jobguard.config import SecurityConfig
from jobguard.store.base import KeyValueStore

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class StoreBackedService:
    """
    Base for components whose state lives entirely in the key-value store.

    `clock` returns epoch seconds; tests substitute a controllable one.
    """

    def __init__(
        self,
        store: KeyValueStore,
        config: Optional[SecurityConfig] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.config = config or SecurityConfig()
        self._clock = clock

    def now_ms(self) -> int:
        return int(self._clock() * 1000)

    def now(self) -> datetime:
        return datetime.fromtimestamp(self._clock(), tz=timezone.utc)


def parse_record(model: type[ModelT], raw: Optional[str], source: str) -> Optional[ModelT]:
    """
    Decode a stored JSON record.
    Unparseable payloads (e.g. written by an incompatible version) are logged
    and treated as absent.
    """
    if raw is None:
        return None
    try:
        return model.model_validate_json(raw)
    except ValidationError as exc:
        logger.warning(
            f"Ignoring malformed {model.__name__} at {source}: "
            f"{exc.error_count()} validation error(s)"
        )
        return None
