from __future__ import annotations
import base64
import json
import logging
import re
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

from pydantic import ValidationError

from .errors import ConfigurationMissing, EmptyAnalysis, EmptyResponse, HighTraffic, MalformedResponse, TransientRateLimit
from .gemini_client import ChatSession, GeminiClient, response_inline_data
from .retry import is_rate_limited, is_transient, retry_api
from .schemas import ChapterCategory, ClassLevel, StudyNote, Subject
from .settings import Settings, settings as default_settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

_SUPERSCRIPTS = str.maketrans("0123456789+-", "⁰¹²³⁴⁵⁶⁷⁸⁹⁺⁻")
_CARET_EXPONENT = re.compile(r"\^([0-9+\-]+)")


def replace_superscripts(text: str) -> str:
	"""Rewrite caret exponents (``x^2``, ``10^-6``) as Unicode superscripts."""
	return _CARET_EXPONENT.sub(lambda m: m.group(1).translate(_SUPERSCRIPTS), text)


_STRING_LIST = {"type": "ARRAY", "items": {"type": "STRING"}}

NOTE_SCHEMA: Dict[str, Any] = {
	"type": "OBJECT",
	"properties": {
		"topic": {"type": "STRING", "description": "The specific topic name"},
		"subject": {"type": "STRING", "description": "The subject name"},
		"classLevel": {"type": "STRING", "description": "The class level"},
		"introduction": {"type": "STRING", "description": "A comprehensive and engaging introduction to the topic."},
		"sections": {
			"type": "ARRAY",
			"items": {
				"type": "OBJECT",
				"properties": {
					"heading": {"type": "STRING"},
					"contentPoints": {
						**_STRING_LIST,
						"description": "Detailed knowledge points. Break down the concept into 4-6 distinct, detailed points. Each point must be 2-3 sentences long.",
					},
					"bulletPoints": {**_STRING_LIST, "description": "Short, punchy key takeaways for this section."},
					"importantTerms": {**_STRING_LIST, "description": "Definitions or important keywords."},
					"imageDescription": {
						"type": "STRING",
						"description": "A highly descriptive visual prompt to generate an educational diagram or illustration for this specific section.",
					},
				},
				"required": ["heading", "contentPoints", "bulletPoints"],
			},
		},
		"summary": {"type": "STRING", "description": "A detailed summary of the entire topic."},
		"examTips": {**_STRING_LIST, "description": "Specific strategies to answer questions on this topic."},
		"solvedQuestions": {
			"type": "ARRAY",
			"items": {
				"type": "OBJECT",
				"properties": {
					"question": {"type": "STRING", "description": "A challenging exam-style question."},
					"solution": {"type": "STRING", "description": "A step-by-step detailed solution to the question."},
				},
				"required": ["question", "solution"],
			},
		},
		"commonMistakes": {**_STRING_LIST, "description": "Common errors or misconceptions students have about this topic."},
		"realWorldApplications": {**_STRING_LIST, "description": "How this topic is applied in real life."},
	},
	"required": [
		"topic", "subject", "classLevel", "introduction", "sections", "summary",
		"examTips", "solvedQuestions", "commonMistakes", "realWorldApplications",
	],
}

CHAPTERS_SCHEMA: Dict[str, Any] = {
	"type": "OBJECT",
	"properties": {
		"categories": {
			"type": "ARRAY",
			"items": {
				"type": "OBJECT",
				"properties": {
					"category": {"type": "STRING"},
					"chapters": _STRING_LIST,
				},
				"required": ["category", "chapters"],
			},
		},
	},
}

NOTES_SYSTEM_INSTRUCTION = (
	"You are Scholr, a world-class AI educator. You provide deep, comprehensive educational material "
	"formatted as clean, readable points. You always use Unicode superscripts (², ³, ⁻¹) for math."
)

TUTOR_SYSTEM_INSTRUCTION = (
	"You are the 'Scholr AI Tutor'. You are a friendly, encouraging, and highly knowledgeable tutor for "
	"CBSE students (Class 8-12). Answer questions clearly, use simple examples, and keep definitions "
	"aligned with NCERT standards. IMPORTANT: Always use Unicode superscripts (e.g. x², cm³) instead of "
	"carets for exponents."
)

SYLLABUS_PROMPT = (
	"You are a strategic academic advisor. Analyze this syllabus/document. "
	"1) Identify the most critical, high-weightage topics. "
	"2) Create a concise, strategic study plan to help the student ACE their exam (score 100%). "
	"3) Give 3 specific 'Pro Tips'. "
	"Format the output in clean Markdown using **bold** for importance and bullet points."
)


def _notes_prompt(class_level: str, subject: str, topic: str) -> str:
	return (
		f"You are an elite academic tutor for CBSE NCERT {class_level} {subject}.\n"
		f"Create a MASTER CLASS STUDY NOTE for: \"{topic}\".\n\n"
		"CRITICAL:\n"
		"1. SUPERSCRIPTS: Use Unicode (x², cm³, 10⁻⁶) for all math/units. NO carets (^).\n"
		"2. FORMAT: Structured \"Content Points\" (2-3 sentences each). NO long paragraphs.\n"
		"3. DEPTH: Exhaustive, textbook-quality, 100% NCERT aligned.\n"
		"4. STRUCTURE:\n"
		"   - 5-7 distinct sections.\n"
		"   - \"Solved Questions\" (3-5 complex exam problems with step-by-step solutions).\n"
		"   - \"Common Mistakes\".\n"
		"   - \"Real World Applications\".\n"
		"5. VISUALS: specific, clear image prompts."
	)


def _chapters_prompt(class_level: str, subject: str) -> str:
	return (
		f"List all official NCERT chapter names for {class_level} {subject}.\n"
		"Categorize them strictly:\n"
		"- Science (8-10): Physics, Chemistry, Biology.\n"
		"- Social Science: History, Geography, Political Science, Economics.\n"
		"- Others: Single 'Chapters' category.\n"
		"Format: JSON { \"categories\": [{ \"category\": \"...\", \"chapters\": [\"...\"] }] }"
	)


def _label(value: Any) -> str:
	return value.value if isinstance(value, (ClassLevel, Subject)) else str(value)


def parse_study_note(text: str) -> StudyNote:
	try:
		data = json.loads(replace_superscripts(text))
		return StudyNote.model_validate(data)
	except (ValueError, ValidationError) as err:
		raise MalformedResponse() from err


def parse_chapters(text: str) -> List[ChapterCategory]:
	try:
		data = json.loads(text)
		if not isinstance(data, dict):
			raise ValueError("expected a JSON object")
		return [ChapterCategory.model_validate(c) for c in data.get("categories") or []]
	except (ValueError, ValidationError) as err:
		raise MalformedResponse() from err


class ContentService:
	"""Builds each Gemini request, runs it through the backoff helper and
	turns the answer into typed study content."""

	def __init__(
		self,
		client: GeminiClient,
		config: Optional[Settings] = None,
		*,
		sleep: Optional[Callable[[float], Awaitable[None]]] = None,
	) -> None:
		config = config or default_settings
		self.client = client
		self.retries = config.retry_max_retries
		self.delay = config.retry_initial_delay_seconds
		self.max_delay = config.retry_max_delay_seconds
		self._sleep = sleep

	async def _call(self, operation: Callable[[], Awaitable[T]]) -> T:
		kwargs: Dict[str, Any] = {"max_delay": self.max_delay}
		if self._sleep is not None:
			kwargs["sleep"] = self._sleep
		try:
			return await retry_api(operation, self.retries, self.delay, **kwargs)
		except Exception as err:
			if is_transient(err):
				raise TransientRateLimit() from err
			raise

	async def generate_notes(self, class_level: ClassLevel, subject: Subject, topic: str) -> StudyNote:
		prompt = _notes_prompt(_label(class_level), _label(subject), topic)

		async def operation() -> StudyNote:
			text = await self.client.generate(
				prompt,
				system_instruction=NOTES_SYSTEM_INSTRUCTION,
				response_schema=NOTE_SCHEMA,
			)
			if not text:
				raise EmptyResponse()
			return parse_study_note(text)

		return await self._call(operation)

	async def get_chapters(self, class_level: ClassLevel, subject: Subject) -> List[ChapterCategory]:
		prompt = _chapters_prompt(_label(class_level), _label(subject))

		async def operation() -> List[ChapterCategory]:
			text = await self.client.generate(prompt, response_schema=CHAPTERS_SCHEMA)
			if not text:
				return []
			return parse_chapters(text)

		return await self._call(operation)

	def get_tutor_chat(self) -> ChatSession:
		return self.client.start_chat(system_instruction=TUTOR_SYSTEM_INSTRUCTION)

	async def analyze_syllabus(self, document: bytes, mime_type: str) -> str:
		parts = [
			{"inlineData": {"mimeType": mime_type, "data": base64.b64encode(document).decode("ascii")}},
			{"text": SYLLABUS_PROMPT},
		]

		async def operation() -> str:
			text = await self.client.generate_multimodal(parts)
			if not text:
				raise EmptyAnalysis()
			return text

		try:
			return await self._call(operation)
		except TransientRateLimit as err:
			logger.error("Analysis failed after retries: %s", err.__cause__)
			if err.__cause__ is not None and is_rate_limited(err.__cause__):
				raise HighTraffic() from err.__cause__
			raise

	async def generate_image(self, image_prompt: str) -> Optional[str]:
		"""Best-effort diagram for a note section; None when nothing usable comes back."""
		contents = [{"role": "user", "parts": [{"text": f"Educational diagram: {image_prompt}. Clean, white background, high definition."}]}]
		try:
			data = await self.client.generate_content(
				contents,
				model=self.client.image_model,
				generation_config={"imageConfig": {"aspectRatio": "16:9"}},
			)
		except Exception as err:
			logger.warning("Error generating image: %s", err)
			return None
		inline = response_inline_data(data)
		if inline is None:
			return None
		return f"data:image/png;base64,{inline['data']}"


class UnconfiguredContent:
	"""Stand-in used when no Gemini key is set: every call reports the missing setup."""

	async def generate_notes(self, class_level: ClassLevel, subject: Subject, topic: str) -> StudyNote:
		raise ConfigurationMissing("GEMINI_API_KEY is not configured")

	async def get_chapters(self, class_level: ClassLevel, subject: Subject) -> List[ChapterCategory]:
		raise ConfigurationMissing("GEMINI_API_KEY is not configured")
