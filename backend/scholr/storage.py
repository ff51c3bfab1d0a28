from __future__ import annotations
import json
import logging
from typing import Any, Callable, Optional

from sqlalchemy.orm import Session

from .models import StorageItem

logger = logging.getLogger(__name__)


class LocalStorage:
	"""String key/value store with the semantics of browser ``localStorage``.

	Each call opens its own session from ``session_factory`` and commits
	before returning; concurrent writers to one key are last-write-wins.
	"""

	def __init__(self, session_factory: Callable[[], Session]) -> None:
		self._session_factory = session_factory

	def get_item(self, key: str) -> Optional[str]:
		with self._session_factory() as db:
			row = db.get(StorageItem, key)
			return row.value if row is not None else None

	def set_item(self, key: str, value: str) -> None:
		with self._session_factory() as db:
			row = db.get(StorageItem, key)
			if row is None:
				row = StorageItem(key=key, value=value)
			else:
				row.value = value
			db.add(row)
			db.commit()

	def remove_item(self, key: str) -> None:
		with self._session_factory() as db:
			row = db.get(StorageItem, key)
			if row is not None:
				db.delete(row)
				db.commit()

	def get_json(self, key: str, default: Any = None) -> Any:
		raw = self.get_item(key)
		if raw is None:
			return default
		try:
			return json.loads(raw)
		except ValueError:
			logger.warning("Discarding unreadable value stored under %s", key)
			self.remove_item(key)
			return default

	def set_json(self, key: str, value: Any) -> None:
		self.set_item(key, json.dumps(value))
