from __future__ import annotations
from typing import List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from pydantic import BaseModel, ConfigDict, Field

from ..documents import DocumentError, extract_pdf_text
from ..models import User
from ..tutor.ai import AIClient, AIClientError, GeminiTutorAI
from .auth import get_current_user

router = APIRouter(prefix="/api/ai", tags=["ai"])


def get_tutor_ai() -> AIClient:
	return GeminiTutorAI()


class _DocRequest(BaseModel):
	model_config = ConfigDict(populate_by_name=True)

	doc_text: Optional[str] = Field(default=None, alias="docText")


class QuizRequest(_DocRequest):
	pass


class AnswerRequest(_DocRequest):
	question: Optional[str] = None


class EvalRequest(_DocRequest):
	question: Optional[str] = None
	answer: Optional[str] = None
	keywords: Optional[List[str]] = None


def _clean(value: Optional[str]) -> str:
	return (value or "").strip()


@router.post("/quiz")
async def quiz(req: QuizRequest, user: User = Depends(get_current_user), ai: AIClient = Depends(get_tutor_ai)):
	doc_text = _clean(req.doc_text)
	if not doc_text:
		raise HTTPException(status_code=400, detail="docText is required")
	try:
		questions = await ai.generate_questions(doc_text)
	except AIClientError as err:
		raise HTTPException(status_code=err.status_code, detail=str(err))
	return {"questions": [q.to_dict() for q in questions[:5]]}


@router.post("/answer")
async def answer(req: AnswerRequest, user: User = Depends(get_current_user), ai: AIClient = Depends(get_tutor_ai)):
	doc_text = _clean(req.doc_text)
	question = _clean(req.question)
	if not doc_text or not question:
		raise HTTPException(status_code=400, detail="docText and question are required")
	try:
		text = await ai.answer(doc_text, question)
	except AIClientError as err:
		raise HTTPException(status_code=err.status_code, detail=str(err))
	return {"answer": text or "No answer."}


@router.post("/eval")
async def evaluate(req: EvalRequest, user: User = Depends(get_current_user), ai: AIClient = Depends(get_tutor_ai)):
	doc_text = _clean(req.doc_text)
	question = _clean(req.question)
	student_answer = _clean(req.answer)
	if not doc_text or not question or not student_answer:
		raise HTTPException(status_code=400, detail="docText, question, and answer are required")
	keywords = [str(k) for k in (req.keywords or []) if str(k).strip()]
	try:
		feedback = await ai.evaluate(doc_text, question, keywords, student_answer)
	except AIClientError as err:
		raise HTTPException(status_code=err.status_code, detail=str(err))
	return {"feedback": feedback or ""}


@router.post("/document")
async def document(file: UploadFile = File(...), user: User = Depends(get_current_user)):
	content = await file.read()
	try:
		doc = extract_pdf_text(content)
	except DocumentError as e:
		raise HTTPException(status_code=400, detail=str(e))
	return {"text": doc.text, "pages": doc.pages, "filename": file.filename}
