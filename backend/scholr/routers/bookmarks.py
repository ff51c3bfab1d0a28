from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel

from ..bookmarks import BookmarkStore
from ..schemas import Bookmark, BookmarkType, StudyNote, User
from .auth import get_current_user

router = APIRouter(prefix="/bookmarks", tags=["bookmarks"])


class AddBookmarkRequest(BaseModel):
	note: StudyNote
	type: BookmarkType = BookmarkType.TOPIC
	section_index: Optional[int] = None


def get_bookmarks(request: Request) -> BookmarkStore:
	return request.app.state.bookmarks


@router.get("", response_model=List[Bookmark])
def list_bookmarks(user: User = Depends(get_current_user), store: BookmarkStore = Depends(get_bookmarks)):
	return store.list(user.id)


@router.post("", response_model=Bookmark, status_code=201)
def add_bookmark(req: AddBookmarkRequest, user: User = Depends(get_current_user), store: BookmarkStore = Depends(get_bookmarks)):
	try:
		return store.add(user.id, req.note, req.type, req.section_index)
	except ValueError as e:
		raise HTTPException(status_code=400, detail=str(e))


@router.get("/check")
def check_bookmark(
	topic: str,
	section_index: Optional[int] = None,
	user: User = Depends(get_current_user),
	store: BookmarkStore = Depends(get_bookmarks),
):
	return {"bookmarked": store.is_bookmarked(user.id, topic, section_index)}


@router.delete("/{bookmark_id}")
def remove_bookmark(bookmark_id: str, user: User = Depends(get_current_user), store: BookmarkStore = Depends(get_bookmarks)):
	store.remove(user.id, bookmark_id)
	return {"ok": True}
