# app/api/routes/comments.py
from fastapi import APIRouter, status

from ..deps import CurrentUser, DBDep
from app.schemas.comments import CommentCreate, CommentOut
from app.services import workflow

router = APIRouter()


@router.post("/{ticket_id}/comments", response_model=CommentOut, status_code=status.HTTP_201_CREATED)
async def add_comment(ticket_id: int, payload: CommentCreate, db: DBDep, current: CurrentUser):
    ev = await workflow.add_comment(db, ticket_id, current, payload.body)
    return CommentOut.model_validate(ev)


@router.get("/{ticket_id}/comments", response_model=list[CommentOut])
async def list_comments(ticket_id: int, db: DBDep, current: CurrentUser):
    t = await workflow.get_ticket_for(db, ticket_id, current)
    return [CommentOut.model_validate(ev) for ev in t.events if ev.action == "comment"]
