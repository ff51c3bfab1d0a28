from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

import pytest

from scholr.content import (
    CHAPTERS_SCHEMA,
    NOTE_SCHEMA,
    TUTOR_SYSTEM_INSTRUCTION,
    ContentService,
    replace_superscripts,
)
from scholr.errors import EmptyAnalysis, EmptyResponse, HighTraffic, MalformedResponse, TransientRateLimit
from scholr.gemini_client import GeminiAPIError
from scholr.schemas import ClassLevel, Subject
from scholr.settings import Settings


NOTE_JSON = {
    "topic": "Exponents",
    "subject": "Mathematics",
    "classLevel": "Class 8",
    "introduction": "Powers like x^2 and 10^-6 show repeated multiplication.",
    "sections": [
        {
            "heading": "Laws of exponents",
            "contentPoints": ["a^m × a^n = a^(m+n)", "Area is measured in cm^2."],
            "bulletPoints": ["x^0 = 1"],
        }
    ],
    "summary": "Exponents compress repeated multiplication.",
    "examTips": ["Write 10^+3 carefully."],
    "solvedQuestions": [{"question": "Simplify 2^3 × 2^2", "solution": "2^5 = 32"}],
    "commonMistakes": ["Adding bases."],
    "realWorldApplications": ["Scientific notation."],
}


class FakeGemini:
    image_model = "image-model"

    def __init__(self, outputs: Optional[List[Any]] = None) -> None:
        self.outputs = list(outputs or [])
        self.calls: List[Dict[str, Any]] = []
        self.chats: List[Any] = []

    def _next(self) -> Any:
        value = self.outputs.pop(0)
        if isinstance(value, Exception):
            raise value
        return value

    async def generate(self, prompt, *, system_instruction=None, response_schema=None):
        self.calls.append({"prompt": prompt, "system_instruction": system_instruction, "response_schema": response_schema})
        return self._next()

    async def generate_multimodal(self, parts, *, role="user"):
        self.calls.append({"parts": parts})
        return self._next()

    async def generate_content(self, contents, *, model=None, system_instruction=None, generation_config=None):
        self.calls.append({"contents": contents, "model": model, "generation_config": generation_config})
        return self._next()

    def start_chat(self, *, system_instruction=None):
        chat = object()
        self.chats.append((chat, system_instruction))
        return chat


def _service(client: FakeGemini, fake_sleep) -> ContentService:
    return ContentService(client, Settings(_env_file=None), sleep=fake_sleep)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("x^2 + y^-1", "x² + y⁻¹"),
        ("10^-6", "10⁻⁶"),
        ("a^+3b^10", "a⁺³b¹⁰"),
        ("already x² and 10⁻⁶", "already x² and 10⁻⁶"),
        ("caret alone ^ and ^x stay", "caret alone ^ and ^x stay"),
    ],
)
def test_replace_superscripts(raw, expected):
    assert replace_superscripts(raw) == expected


def test_replace_superscripts_is_stable_on_its_own_output():
    once = replace_superscripts("E = mc^2, 1 nm = 10^-9 m")
    assert replace_superscripts(once) == once


def test_note_schema_requires_all_but_optional_section_fields():
    assert set(NOTE_SCHEMA["required"]) == set(NOTE_SCHEMA["properties"])
    section = NOTE_SCHEMA["properties"]["sections"]["items"]
    assert "importantTerms" not in section["required"]
    assert "imageDescription" not in section["required"]


@pytest.mark.asyncio
async def test_generate_notes_rewrites_exponents_and_parses(fake_sleep):
    client = FakeGemini([json.dumps(NOTE_JSON)])

    note = await _service(client, fake_sleep).generate_notes(ClassLevel.CLASS_8, Subject.MATH, "Exponents")

    assert note.introduction == "Powers like x² and 10⁻⁶ show repeated multiplication."
    assert note.sections[0].content_points[1] == "Area is measured in cm²."
    assert note.sections[0].important_terms is None
    assert note.exam_tips == ["Write 10⁺³ carefully."]
    call = client.calls[0]
    assert call["response_schema"] is NOTE_SCHEMA
    assert "Class 8 Mathematics" in call["prompt"]
    assert "\"Exponents\"" in call["prompt"]


@pytest.mark.asyncio
async def test_generate_notes_empty_response(fake_sleep):
    with pytest.raises(EmptyResponse):
        await _service(FakeGemini([None]), fake_sleep).generate_notes(ClassLevel.CLASS_8, Subject.MATH, "Exponents")


@pytest.mark.asyncio
@pytest.mark.parametrize("text", ["not json at all", json.dumps({"topic": "Exponents"}), "[1, 2]"])
async def test_generate_notes_malformed_response(text, fake_sleep):
    client = FakeGemini([text])

    with pytest.raises(MalformedResponse):
        await _service(client, fake_sleep).generate_notes(ClassLevel.CLASS_8, Subject.MATH, "Exponents")
    assert len(client.calls) == 1


@pytest.mark.asyncio
async def test_generate_notes_retries_rate_limits_then_succeeds(fake_sleep):
    client = FakeGemini([GeminiAPIError(429, "RESOURCE_EXHAUSTED"), json.dumps(NOTE_JSON)])

    note = await _service(client, fake_sleep).generate_notes(ClassLevel.CLASS_8, Subject.MATH, "Exponents")

    assert note.topic == "Exponents"
    assert fake_sleep.delays == [2.0]


@pytest.mark.asyncio
async def test_generate_notes_exhausted_retries_raise_transient_rate_limit(fake_sleep):
    client = FakeGemini([GeminiAPIError(503, "UNAVAILABLE")] * 4)

    with pytest.raises(TransientRateLimit):
        await _service(client, fake_sleep).generate_notes(ClassLevel.CLASS_8, Subject.MATH, "Exponents")
    assert len(client.calls) == 4


@pytest.mark.asyncio
async def test_get_chapters_parses_categories(fake_sleep):
    payload = {"categories": [
        {"category": "Physics", "chapters": ["Light", "Electricity"]},
        {"category": "Biology", "chapters": ["Life Processes"]},
    ]}
    client = FakeGemini([json.dumps(payload)])

    categories = await _service(client, fake_sleep).get_chapters(ClassLevel.CLASS_10, Subject.SCIENCE)

    assert [c.category for c in categories] == ["Physics", "Biology"]
    assert categories[0].chapters == ["Light", "Electricity"]
    assert client.calls[0]["response_schema"] is CHAPTERS_SCHEMA
    assert "Class 10 Science" in client.calls[0]["prompt"]


@pytest.mark.asyncio
async def test_get_chapters_without_content_is_empty(fake_sleep):
    service = _service(FakeGemini([None, json.dumps({})]), fake_sleep)

    assert await service.get_chapters(ClassLevel.CLASS_9, Subject.ENGLISH) == []
    assert await service.get_chapters(ClassLevel.CLASS_9, Subject.ENGLISH) == []


@pytest.mark.asyncio
async def test_analyze_syllabus_sends_inline_document(fake_sleep):
    client = FakeGemini(["**Focus** on Algebra"])

    result = await _service(client, fake_sleep).analyze_syllabus(b"%PDF-1.4", "application/pdf")

    assert result == "**Focus** on Algebra"
    inline, prompt = client.calls[0]["parts"]
    assert inline["inlineData"] == {"mimeType": "application/pdf", "data": "JVBERi0xLjQ="}
    assert "strategic academic advisor" in prompt["text"]


@pytest.mark.asyncio
async def test_analyze_syllabus_empty_text(fake_sleep):
    with pytest.raises(EmptyAnalysis):
        await _service(FakeGemini([""]), fake_sleep).analyze_syllabus(b"img", "image/png")


@pytest.mark.asyncio
async def test_analyze_syllabus_rate_limited_becomes_high_traffic(fake_sleep):
    client = FakeGemini([GeminiAPIError(429, "RESOURCE_EXHAUSTED")] * 4)

    with pytest.raises(HighTraffic) as exc_info:
        await _service(client, fake_sleep).analyze_syllabus(b"img", "image/png")

    assert "High traffic" in exc_info.value.message
    assert fake_sleep.delays == [2.0, 4.0, 8.0]


@pytest.mark.asyncio
async def test_analyze_syllabus_overload_stays_transient(fake_sleep):
    client = FakeGemini([GeminiAPIError(503, "UNAVAILABLE")] * 4)

    with pytest.raises(TransientRateLimit) as exc_info:
        await _service(client, fake_sleep).analyze_syllabus(b"img", "image/png")
    assert not isinstance(exc_info.value, HighTraffic)


def test_tutor_chats_are_distinct(fake_sleep):
    client = FakeGemini()
    service = _service(client, fake_sleep)

    first = service.get_tutor_chat()
    second = service.get_tutor_chat()

    assert first is not second
    assert client.chats[0][1] == TUTOR_SYSTEM_INSTRUCTION


@pytest.mark.asyncio
async def test_generate_image_returns_data_url(fake_sleep):
    response = {"candidates": [{"content": {"parts": [{"text": "here"}, {"inlineData": {"mimeType": "image/png", "data": "iVBOR"}}]}}]}
    client = FakeGemini([response])

    image = await _service(client, fake_sleep).generate_image("a prism splitting light")

    assert image == "data:image/png;base64,iVBOR"
    assert client.calls[0]["model"] == "image-model"


@pytest.mark.asyncio
async def test_generate_image_failure_is_none(fake_sleep):
    client = FakeGemini([GeminiAPIError(500, "INTERNAL"), {"candidates": []}])
    service = _service(client, fake_sleep)

    assert await service.generate_image("x") is None
    assert await service.generate_image("x") is None
