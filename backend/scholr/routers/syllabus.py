from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from pydantic import BaseModel

from ..content import ContentService
from .notes import get_content

router = APIRouter(prefix="/syllabus", tags=["syllabus"])

# Gemini rejects inline-data requests over 20 MB (base64 adds a third)
MAX_UPLOAD_BYTES = 15 * 1024 * 1024


class AnalysisResponse(BaseModel):
	analysis: str


def _accepted(mime_type: str) -> bool:
	return mime_type == "application/pdf" or mime_type.startswith("image/")


@router.post("/analyze", response_model=AnalysisResponse)
async def analyze(file: UploadFile = File(...), content: ContentService = Depends(get_content)):
	mime_type = file.content_type or ""
	if not _accepted(mime_type):
		raise HTTPException(status_code=400, detail="Please upload a PDF or an image file.")
	document = await file.read()
	if not document:
		raise HTTPException(status_code=400, detail="The uploaded file is empty.")
	if len(document) > MAX_UPLOAD_BYTES:
		raise HTTPException(status_code=413, detail="The uploaded file is too large.")
	return AnalysisResponse(analysis=await content.analyze_syllabus(document, mime_type))
