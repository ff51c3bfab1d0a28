from __future__ import annotations
import logging
import time
import uuid
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from .schemas import Bookmark, BookmarkType, StudyNote
from .storage import LocalStorage

logger = logging.getLogger(__name__)

STORAGE_KEY_BOOKMARKS = "scholr_bookmarks"


def _now_ms() -> int:
	return int(time.time() * 1000)


class BookmarkStore:
	"""Per-user saved notes and sections, kept in one persisted blob.

	The blob maps user id to that user's bookmarks, newest first.
	"""

	def __init__(self, storage: LocalStorage, *, clock: Callable[[], int] = _now_ms) -> None:
		self.storage = storage
		self._clock = clock

	def _load_all(self) -> Dict[str, List[Dict[str, Any]]]:
		data = self.storage.get_json(STORAGE_KEY_BOOKMARKS, {})
		return data if isinstance(data, dict) else {}

	def _save_all(self, data: Dict[str, List[Dict[str, Any]]]) -> None:
		self.storage.set_json(STORAGE_KEY_BOOKMARKS, data)

	def list(self, user_id: str) -> List[Bookmark]:
		bookmarks: List[Bookmark] = []
		for record in self._load_all().get(user_id) or []:
			try:
				bookmarks.append(Bookmark.model_validate(record))
			except ValidationError as err:
				logger.warning("Skipping unreadable bookmark for %s: %s", user_id, err)
		return bookmarks

	def find(self, user_id: str, type: BookmarkType, topic: str, section_index: Optional[int] = None) -> Optional[Bookmark]:
		for bookmark in self.list(user_id):
			if bookmark.type == type and bookmark.note_data.topic == topic and bookmark.section_index == section_index:
				return bookmark
		return None

	def add(
		self,
		user_id: str,
		note: StudyNote,
		type: BookmarkType,
		section_index: Optional[int] = None,
	) -> Bookmark:
		"""Save ``note`` (or one of its sections) for ``user_id``.

		Adding a (type, topic, section) combination that is already saved
		writes nothing and returns the stored bookmark.
		"""
		if type == BookmarkType.SECTION:
			if section_index is None or not 0 <= section_index < len(note.sections):
				raise ValueError(f"section_index {section_index!r} is out of range for {note.topic!r}")
			title = note.sections[section_index].heading
			subtitle = f"From: {note.topic}"
		else:
			section_index = None
			title = note.topic
			subtitle = f"{note.class_level} • {note.subject}"

		existing = self.find(user_id, type, note.topic, section_index)
		if existing is not None:
			return existing

		timestamp = self._clock()
		bookmark = Bookmark(
			id=f"bm_{timestamp}_{uuid.uuid4().hex[:6]}",
			user_id=user_id,
			type=type,
			title=title,
			subtitle=subtitle,
			timestamp=timestamp,
			note_data=note,
			section_index=section_index,
		)
		data = self._load_all()
		records = data.get(user_id) or []
		records.insert(0, bookmark.model_dump(mode="json", by_alias=True))
		data[user_id] = records
		self._save_all(data)
		return bookmark

	def remove(self, user_id: str, bookmark_id: str) -> None:
		data = self._load_all()
		records = data.get(user_id)
		if not records:
			return
		kept = [r for r in records if r.get("id") != bookmark_id]
		if len(kept) != len(records):
			data[user_id] = kept
			self._save_all(data)

	def is_bookmarked(self, user_id: str, topic: str, section_index: Optional[int] = None) -> bool:
		return any(
			b.note_data.topic == topic and b.section_index == section_index
			for b in self.list(user_id)
		)
