from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel

from ..bookmarks import BookmarkStore
from ..navigation import NavigationStateMachine
from ..schemas import ClassLevel, SUBJECTS_BY_CLASS, Subject, User
from .auth import get_current_user
from .bookmarks import get_bookmarks


router = APIRouter(prefix="/view", tags=["view"])


class ClassRequest(BaseModel):
    class_level: ClassLevel


class SubjectRequest(BaseModel):
    subject: Subject


class TopicRequest(BaseModel):
    topic: str


class OpenBookmarkRequest(BaseModel):
    bookmark_id: str


class AskTutorRequest(BaseModel):
    text: str


def get_navigation(request: Request) -> NavigationStateMachine:
    return request.app.state.navigation


@router.get("")
def current(nav: NavigationStateMachine = Depends(get_navigation)):
    return nav.snapshot()


@router.post("/start")
def start_learning(nav: NavigationStateMachine = Depends(get_navigation)):
    nav.start_class_selection()
    return nav.snapshot()


@router.post("/tutor")
def start_tutor(nav: NavigationStateMachine = Depends(get_navigation)):
    nav.start_tutor()
    return nav.snapshot()


@router.post("/syllabus")
def start_syllabus(nav: NavigationStateMachine = Depends(get_navigation)):
    nav.start_syllabus()
    return nav.snapshot()


@router.post("/bookmarks")
def open_library(user: User = Depends(get_current_user), nav: NavigationStateMachine = Depends(get_navigation)):
    nav.open_bookmarks()
    return nav.snapshot()


@router.post("/class")
def select_class(req: ClassRequest, nav: NavigationStateMachine = Depends(get_navigation)):
    nav.select_class(req.class_level)
    return nav.snapshot()


@router.post("/subject")
async def select_subject(req: SubjectRequest, nav: NavigationStateMachine = Depends(get_navigation)):
    class_level = nav.state.selected_class
    if class_level is None:
        raise HTTPException(status_code=409, detail="Select a class first")
    if req.subject not in SUBJECTS_BY_CLASS[class_level]:
        raise HTTPException(status_code=400, detail=f"{req.subject.value} is not offered for {class_level.value}")
    await nav.select_subject(req.subject)
    return nav.snapshot()


@router.post("/topic")
async def generate_notes(req: TopicRequest, nav: NavigationStateMachine = Depends(get_navigation)):
    if nav.state.selected_subject is None:
        raise HTTPException(status_code=409, detail="Select a subject first")
    if not req.topic.strip():
        raise HTTPException(status_code=400, detail="topic is required")
    await nav.generate_notes_for_topic(req.topic)
    return nav.snapshot()


@router.post("/open-bookmark")
def open_bookmark(
    req: OpenBookmarkRequest,
    user: User = Depends(get_current_user),
    store: BookmarkStore = Depends(get_bookmarks),
    nav: NavigationStateMachine = Depends(get_navigation),
):
    bookmark = next((b for b in store.list(user.id) if b.id == req.bookmark_id), None)
    if bookmark is None:
        raise HTTPException(status_code=404, detail="Bookmark not found")
    nav.open_bookmark(bookmark.note_data, bookmark.section_index)
    return nav.snapshot()


@router.post("/ask-tutor")
def ask_tutor(req: AskTutorRequest, nav: NavigationStateMachine = Depends(get_navigation)):
    nav.ask_tutor(req.text)
    return nav.snapshot()


@router.post("/target-section")
def consume_target_section(nav: NavigationStateMachine = Depends(get_navigation)):
    # One-shot: the notes view scrolls once, later reads get null
    index: Optional[int] = nav.consume_target_section()
    return {"section_index": index}


@router.post("/back")
def back(nav: NavigationStateMachine = Depends(get_navigation)):
    nav.back()
    return nav.snapshot()


@router.post("/home")
def reset_home(nav: NavigationStateMachine = Depends(get_navigation)):
    nav.reset_home()
    return nav.snapshot()
