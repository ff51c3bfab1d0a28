from __future__ import annotations
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class ClassLevel(str, Enum):
	CLASS_8 = "Class 8"
	CLASS_9 = "Class 9"
	CLASS_10 = "Class 10"
	CLASS_11 = "Class 11"
	CLASS_12 = "Class 12"


class Subject(str, Enum):
	MATH = "Mathematics"
	SCIENCE = "Science"
	SOCIAL_SCIENCE = "Social Science"
	ENGLISH = "English"
	PHYSICS = "Physics"
	CHEMISTRY = "Chemistry"
	BIOLOGY = "Biology"
	ACCOUNTANCY = "Accountancy"
	ECONOMICS = "Economics"
	BUSINESS_STUDIES = "Business Studies"
	COMPUTER_SCIENCE = "Computer Science"


_SENIOR_SUBJECTS = [
	Subject.PHYSICS, Subject.CHEMISTRY, Subject.MATH, Subject.BIOLOGY, Subject.ENGLISH,
	Subject.COMPUTER_SCIENCE, Subject.ECONOMICS, Subject.ACCOUNTANCY, Subject.BUSINESS_STUDIES,
]

SUBJECTS_BY_CLASS: Dict[ClassLevel, List[Subject]] = {
	ClassLevel.CLASS_8: [Subject.MATH, Subject.SCIENCE, Subject.SOCIAL_SCIENCE, Subject.ENGLISH],
	ClassLevel.CLASS_9: [Subject.MATH, Subject.SCIENCE, Subject.SOCIAL_SCIENCE, Subject.ENGLISH],
	ClassLevel.CLASS_10: [Subject.MATH, Subject.SCIENCE, Subject.SOCIAL_SCIENCE, Subject.ENGLISH, Subject.COMPUTER_SCIENCE],
	ClassLevel.CLASS_11: list(_SENIOR_SUBJECTS),
	ClassLevel.CLASS_12: list(_SENIOR_SUBJECTS),
}


class View(str, Enum):
	LANDING = "landing"
	CLASS_SELECT = "class-select"
	SUBJECT_SELECT = "subject-select"
	TOPIC_SELECT = "topic-select"
	NOTES = "notes"
	AI_TUTOR = "ai-tutor"
	SYLLABUS_ANALYSIS = "syllabus-analysis"
	BOOKMARKS = "bookmarks"


class CamelModel(BaseModel):
	# Wire format (frontend and Gemini schema) is camelCase
	model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class NoteSection(CamelModel):
	model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

	heading: str
	content_points: List[str]
	bullet_points: Optional[List[str]] = None
	important_terms: Optional[List[str]] = None
	image_description: Optional[str] = None


class SolvedQuestion(CamelModel):
	model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

	question: str
	solution: str


class StudyNote(CamelModel):
	model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

	topic: str
	subject: str
	class_level: str
	introduction: str
	sections: List[NoteSection]
	summary: str
	exam_tips: List[str]
	solved_questions: List[SolvedQuestion]
	common_mistakes: List[str]
	real_world_applications: List[str]


class ChapterCategory(CamelModel):
	category: str
	chapters: List[str] = Field(default_factory=list)


class ChatRole(str, Enum):
	USER = "user"
	MODEL = "model"


class ChatMessage(CamelModel):
	role: ChatRole
	text: str


class AuthProvider(str, Enum):
	GOOGLE = "google"
	EMAIL = "email"
	ANONYMOUS = "anonymous"


class User(CamelModel):
	id: str
	name: str
	email: str = ""
	avatar: Optional[str] = None
	provider: AuthProvider


class BookmarkType(str, Enum):
	TOPIC = "topic"
	SECTION = "section"


class Bookmark(CamelModel):
	id: str
	user_id: str
	type: BookmarkType
	title: str
	subtitle: str
	timestamp: int
	note_data: StudyNote
	section_index: Optional[int] = None

	@model_validator(mode="after")
	def _section_index_matches_type(self) -> "Bookmark":
		if (self.type == BookmarkType.SECTION) != (self.section_index is not None):
			raise ValueError("section_index must be set exactly for section bookmarks")
		return self


class ViewState(CamelModel):
	current_view: View = View.LANDING
	previous_view: Optional[View] = None
	selected_class: Optional[ClassLevel] = None
	selected_subject: Optional[Subject] = None
	selected_topic: Optional[str] = None
	notes_data: Optional[StudyNote] = None
	available_chapters: Optional[List[ChapterCategory]] = None
	is_loading_chapters: bool = False
	tutor_initial_query: Optional[str] = None
	target_section_index: Optional[int] = None

	@model_validator(mode="after")
	def _check_invariants(self) -> "ViewState":
		if self.selected_subject is not None and self.selected_class is None:
			raise ValueError("selected_subject requires selected_class")
		if self.notes_data is not None and self.current_view != View.NOTES:
			raise ValueError("notes_data is only held while the notes view is active")
		return self
