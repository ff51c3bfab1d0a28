from __future__ import annotations

import asyncio
import os
from typing import Any, Dict, List, Optional

# Keep the module-level app off the developer's database and services
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.pop("GEMINI_API_KEY", None)
os.environ.pop("SUPABASE_URL", None)

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from scholr.db import Base
from scholr import models  # noqa: F401
from scholr.schemas import ChapterCategory, StudyNote
from scholr.settings import Settings
from scholr.storage import LocalStorage


def make_note(topic: str = "Light", *, class_level: str = "Class 10", subject: str = "Science") -> StudyNote:
    return StudyNote.model_validate({
        "topic": topic,
        "subject": subject,
        "classLevel": class_level,
        "introduction": f"An introduction to {topic}.",
        "sections": [
            {"heading": "Reflection", "contentPoints": ["Light bounces off smooth surfaces."], "bulletPoints": ["Angle i = angle r"]},
            {"heading": "Refraction", "contentPoints": ["Light bends between media."], "bulletPoints": ["n = c / v"]},
        ],
        "summary": "Light reflects and refracts.",
        "examTips": ["Draw ray diagrams neatly."],
        "solvedQuestions": [{"question": "Define refraction.", "solution": "Bending of light."}],
        "commonMistakes": ["Mixing up real and virtual images."],
        "realWorldApplications": ["Spectacles"],
    })


class FakeContent:
    """Scriptable stand-in for ContentService used by the navigation and API tests."""

    def __init__(self) -> None:
        self.chapters: List[ChapterCategory] = [ChapterCategory(category="Physics", chapters=["Light", "Electricity"])]
        self.chapters_error: Optional[Exception] = None
        self.notes_error: Optional[Exception] = None
        self.calls: List[tuple] = []
        self.gates: Dict[str, asyncio.Event] = {}
        self.chat_fragments: List[str] = ["Hi", " there"]

    async def _wait(self, key: str) -> None:
        gate = self.gates.get(key)
        if gate is not None:
            await gate.wait()

    async def get_chapters(self, class_level, subject):
        self.calls.append(("chapters", class_level, subject))
        await self._wait(f"chapters:{subject.value}")
        if self.chapters_error is not None:
            raise self.chapters_error
        return list(self.chapters)

    async def generate_notes(self, class_level, subject, topic):
        self.calls.append(("notes", class_level, subject, topic))
        await self._wait(f"notes:{topic}")
        if self.notes_error is not None:
            raise self.notes_error
        return make_note(topic, class_level=class_level.value, subject=subject.value)

    def get_tutor_chat(self):
        return FakeChat(list(self.chat_fragments))

    async def analyze_syllabus(self, document: bytes, mime_type: str) -> str:
        self.calls.append(("syllabus", len(document), mime_type))
        return "## Study plan"

    async def generate_image(self, prompt: str):
        return None


class FakeChat:
    def __init__(self, fragments: List[str], error: Optional[Exception] = None) -> None:
        self.fragments = fragments
        self.error = error
        self.sent: List[str] = []

    async def send_message_stream(self, message: str):
        self.sent.append(message)
        for fragment in self.fragments:
            yield fragment
        if self.error is not None:
            raise self.error


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)
    yield factory
    engine.dispose()


@pytest.fixture
def storage(session_factory) -> LocalStorage:
    return LocalStorage(session_factory)


@pytest.fixture
def note() -> StudyNote:
    return make_note()


@pytest.fixture
def fake_content() -> FakeContent:
    return FakeContent()


@pytest.fixture
def unconfigured_settings() -> Settings:
    return Settings(_env_file=None, GEMINI_API_KEY=None, SUPABASE_URL=None, SUPABASE_ANON_KEY=None)


@pytest.fixture
def supabase_settings() -> Settings:
    return Settings(
        _env_file=None,
        GEMINI_API_KEY=None,
        SUPABASE_URL="https://demo.supabase.co",
        SUPABASE_ANON_KEY="anon-key",
    )


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def fake_sleep() -> RecordingSleep:
    return RecordingSleep()


def sb_user_payload(user_id: str = "u-1", *, email: str = "asha@example.com", provider: str = "email") -> Dict[str, Any]:
    return {
        "id": user_id,
        "email": email,
        "user_metadata": {"full_name": "Asha"},
        "app_metadata": {"provider": provider},
    }
