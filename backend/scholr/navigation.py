"""View model driving every screen transition of the study app.

There is one ``NavigationStateMachine`` per UI flow. Transitions that wait
on Gemini (chapter lists, note generation) take a generation token for
their slot before awaiting; when the call completes the result is applied
only if no newer selection has taken the slot in the meantime. Moving to any
view other than Notes, or picking another subject, drops a pending notes
request.
"""
from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional, Protocol

from .schemas import ChapterCategory, ClassLevel, StudyNote, Subject, View, ViewState

logger = logging.getLogger(__name__)

CHAPTERS_ERROR = "Could not load chapters automatically. Please type your topic below."
NOTES_ERROR = "Failed to generate notes. Please try a different topic or check your connection."

_CHAPTERS = "chapters"
_NOTES = "notes"


class ContentSource(Protocol):
	async def get_chapters(self, class_level: ClassLevel, subject: Subject) -> List[ChapterCategory]: ...

	async def generate_notes(self, class_level: ClassLevel, subject: Subject, topic: str) -> StudyNote: ...


def _enum_or_none(enum_cls, value: str):
	try:
		return enum_cls(value)
	except ValueError:
		return None


class NavigationStateMachine:
	def __init__(self, content: ContentSource) -> None:
		self.content = content
		self.state = ViewState()
		self.error: Optional[str] = None
		self.loading = False
		self._tokens: Dict[str, int] = {_CHAPTERS: 0, _NOTES: 0}
		# Note parked while the user visits the tutor or the library from Notes
		self._parked_notes: Optional[StudyNote] = None
		self._notes_origin: Optional[View] = None

	# -- helpers -----------------------------------------------------------

	def _take_token(self, slot: str) -> int:
		self._tokens[slot] += 1
		return self._tokens[slot]

	def _is_current(self, slot: str, token: int) -> bool:
		return self._tokens[slot] == token

	def _drop_pending_notes(self) -> None:
		self._take_token(_NOTES)
		self.loading = False

	def _invalidate_pending(self) -> None:
		for slot in self._tokens:
			self._tokens[slot] += 1
		self.loading = False

	def _set(self, **changes: Any) -> ViewState:
		self.state = ViewState(**{**dict(self.state), **changes})
		return self.state

	def _go(self, view: View, *, previous: Optional[View] = None, **changes: Any) -> ViewState:
		current = self.state.current_view
		if current == View.NOTES and view != View.NOTES and self.state.notes_data is not None:
			self._parked_notes = self.state.notes_data
		if view != View.NOTES:
			changes["notes_data"] = None
			# A notes request still in flight must not pull the user back into Notes
			self._drop_pending_notes()
		changes["previous_view"] = previous if previous is not None else current
		return self._set(current_view=view, **changes)

	def snapshot(self) -> Dict[str, Any]:
		return {"state": self.state, "error": self.error, "loading": self.loading}

	# -- one-shot handoffs --------------------------------------------------

	def consume_tutor_query(self) -> Optional[str]:
		query = self.state.tutor_initial_query
		if query is not None:
			self._set(tutor_initial_query=None)
		return query

	def consume_target_section(self) -> Optional[int]:
		index = self.state.target_section_index
		if index is not None:
			self._set(target_section_index=None)
		return index

	# -- entry points from the landing page and header ----------------------

	def start_class_selection(self) -> ViewState:
		self.error = None
		return self._go(View.CLASS_SELECT)

	def start_tutor(self) -> ViewState:
		return self._go(View.AI_TUTOR, tutor_initial_query=None)

	def start_syllabus(self) -> ViewState:
		return self._go(View.SYLLABUS_ANALYSIS)

	def open_bookmarks(self) -> ViewState:
		return self._go(View.BOOKMARKS)

	# -- selection flow -----------------------------------------------------

	def select_class(self, level: ClassLevel) -> ViewState:
		self._invalidate_pending()
		self._parked_notes = None
		self.error = None
		return self._go(
			View.SUBJECT_SELECT,
			selected_class=level,
			selected_subject=None,
			selected_topic=None,
			available_chapters=None,
			is_loading_chapters=False,
			target_section_index=None,
		)

	async def select_subject(self, subject: Subject) -> ViewState:
		class_level = self.state.selected_class
		if class_level is None:
			return self.state
		token = self._take_token(_CHAPTERS)
		self._drop_pending_notes()
		self.error = None
		self._go(
			View.TOPIC_SELECT,
			selected_subject=subject,
			selected_topic=None,
			is_loading_chapters=True,
			available_chapters=[],
		)
		try:
			categories = await self.content.get_chapters(class_level, subject)
		except Exception as err:
			logger.warning("Chapter list for %s %s unavailable: %s", class_level.value, subject.value, err)
			if self._is_current(_CHAPTERS, token):
				self.error = CHAPTERS_ERROR
				self._set(is_loading_chapters=False)
			return self.state
		if not self._is_current(_CHAPTERS, token):
			logger.debug("Discarding stale chapter list for %s %s", class_level.value, subject.value)
			return self.state
		return self._set(available_chapters=categories, is_loading_chapters=False)

	async def generate_notes_for_topic(self, topic: str) -> ViewState:
		class_level = self.state.selected_class
		subject = self.state.selected_subject
		topic = (topic or "").strip()
		if class_level is None or subject is None or not topic:
			return self.state
		token = self._take_token(_NOTES)
		self.loading = True
		self.error = None
		try:
			notes = await self.content.generate_notes(class_level, subject, topic)
		except Exception as err:
			logger.warning("Note generation for %r failed: %s", topic, err)
			if self._is_current(_NOTES, token):
				self.loading = False
				self.error = NOTES_ERROR
			return self.state
		if not self._is_current(_NOTES, token):
			return self.state
		self.loading = False
		self._parked_notes = None
		self._notes_origin = View.TOPIC_SELECT
		return self._go(
			View.NOTES,
			previous=View.TOPIC_SELECT,
			notes_data=notes,
			selected_topic=topic,
			target_section_index=None,
		)

	def open_bookmark(self, note: StudyNote, section_index: Optional[int] = None) -> ViewState:
		self._invalidate_pending()
		self.error = None
		self._parked_notes = None
		self._notes_origin = View.BOOKMARKS
		# Class and subject are copied from the note as stored, unchecked against the catalog
		class_level = _enum_or_none(ClassLevel, note.class_level)
		subject = _enum_or_none(Subject, note.subject) if class_level is not None else None
		self.state = ViewState(
			current_view=View.NOTES,
			previous_view=View.BOOKMARKS,
			notes_data=note,
			selected_class=class_level,
			selected_subject=subject,
			selected_topic=note.topic,
			target_section_index=section_index,
		)
		return self.state

	def ask_tutor(self, text: str) -> ViewState:
		return self._go(View.AI_TUTOR, tutor_initial_query=text)

	# -- leaving ------------------------------------------------------------

	def back(self) -> ViewState:
		current = self.state.current_view
		if current == View.NOTES:
			target = View.BOOKMARKS if self._notes_origin == View.BOOKMARKS else View.TOPIC_SELECT
		else:
			target = self.state.previous_view or View.LANDING
		changes: Dict[str, Any] = {}
		if current == View.AI_TUTOR:
			changes["tutor_initial_query"] = None
		if target == View.NOTES:
			if self._parked_notes is not None:
				changes["notes_data"] = self._parked_notes
				self._parked_notes = None
			else:
				target = View.TOPIC_SELECT if self.state.selected_subject is not None else View.LANDING
		return self._go(target, **changes)

	def reset_home(self) -> ViewState:
		self._invalidate_pending()
		self._parked_notes = None
		self._notes_origin = None
		self.error = None
		self.state = ViewState()
		return self.state
