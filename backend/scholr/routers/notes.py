from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel

from ..content import ContentService
from ..errors import ConfigurationMissing
from ..schemas import SUBJECTS_BY_CLASS, ChapterCategory, ClassLevel, StudyNote, Subject

router = APIRouter(prefix="/notes", tags=["notes"])


class ChaptersRequest(BaseModel):
	class_level: ClassLevel
	subject: Subject


class GenerateNotesRequest(ChaptersRequest):
	topic: str


class ImageRequest(BaseModel):
	prompt: str


class ImageResponse(BaseModel):
	image: Optional[str] = None


def get_content(request: Request) -> ContentService:
	content = request.app.state.content
	if content is None:
		raise ConfigurationMissing("GEMINI_API_KEY is not configured")
	return content


def _check_offered(class_level: ClassLevel, subject: Subject) -> None:
	if subject not in SUBJECTS_BY_CLASS[class_level]:
		raise HTTPException(status_code=400, detail=f"{subject.value} is not offered for {class_level.value}")


@router.post("/chapters", response_model=List[ChapterCategory])
async def chapters(req: ChaptersRequest, content: ContentService = Depends(get_content)):
	_check_offered(req.class_level, req.subject)
	return await content.get_chapters(req.class_level, req.subject)


@router.post("/generate", response_model=StudyNote)
async def generate(req: GenerateNotesRequest, content: ContentService = Depends(get_content)):
	_check_offered(req.class_level, req.subject)
	topic = req.topic.strip()
	if not topic:
		raise HTTPException(status_code=400, detail="topic is required")
	return await content.generate_notes(req.class_level, req.subject, topic)


@router.post("/image", response_model=ImageResponse)
async def image(req: ImageRequest, content: ContentService = Depends(get_content)):
	prompt = req.prompt.strip()
	if not prompt:
		raise HTTPException(status_code=400, detail="prompt is required")
	return ImageResponse(image=await content.generate_image(prompt))
