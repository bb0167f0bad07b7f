"""
RPC procedures used by the frontend (auth.*, the post.* and todo.* demos).

Every procedure sits behind a same-origin check for state-changing methods.
AuthError raised here is rendered by the app-level handler as
{"error": {"code", "message"}} with the matching HTTP status.
"""
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from auth import change_password_flow, get_identity_provider, sign_in_flow
from cognito import IdentityProvider
from database import get_db
from models import Post, Todo
from schemas import (
    AppSession,
    ChangePasswordInput,
    CreatePostInput,
    CreateTodoInput,
    SignInInput,
    TodoIdInput,
)
from security import is_same_origin
from session import SessionStore, get_session, get_session_store, require_session


def verify_same_origin(request: Request) -> None:
    """Reject cross-site POSTs: Origin or Referer must match Host."""
    if not is_same_origin(request.method, request.headers):
        raise HTTPException(status_code=403, detail="CSRF validation failed")


router = APIRouter(prefix="/api/trpc", dependencies=[Depends(verify_same_origin)])


@router.post("/auth.signIn")
def rpc_sign_in(
    body: SignInInput,
    provider: IdentityProvider = Depends(get_identity_provider),
    store: SessionStore = Depends(get_session_store),
):
    return sign_in_flow(provider, store, str(body.username), body.password)


@router.post("/auth.changePassword")
def rpc_change_password(
    body: ChangePasswordInput,
    provider: IdentityProvider = Depends(get_identity_provider),
    store: SessionStore = Depends(get_session_store),
):
    return change_password_flow(
        provider, store, body.session, body.new_password, body.username
    )


@router.post("/auth.signOut")
def rpc_sign_out(store: SessionStore = Depends(get_session_store)):
    store.clear()
    return {"success": True}


@router.get("/auth.getSession")
def rpc_get_session(session: AppSession | None = Depends(get_session)):
    return session.model_dump() if session else None


@router.get("/post.hello")
def post_hello(text: str = ""):
    return {"greeting": f"Hello {text}"}


@router.post("/post.create")
def post_create(
    body: CreatePostInput,
    session: AppSession = Depends(require_session),
    db: Session = Depends(get_db),
):
    post = Post(name=body.name, created_by_id=session.user.id)
    db.add(post)
    db.commit()
    db.refresh(post)
    return post.to_dict()


@router.get("/post.getLatest")
def post_get_latest(
    session: AppSession = Depends(require_session),
    db: Session = Depends(get_db),
):
    post = (
        db.query(Post)
        .filter(Post.created_by_id == session.user.id)
        .order_by(Post.created_at.desc(), Post.id.desc())
        .first()
    )
    return post.to_dict() if post else None


@router.get("/post.getSecretMessage")
def post_get_secret_message(session: AppSession = Depends(require_session)):
    return "you can now see this secret message!"


# Public todo list demo; no session required


def _get_todo(db: Session, todo_id: int) -> Todo:
    todo = db.get(Todo, todo_id)
    if todo is None:
        raise HTTPException(status_code=404, detail="Todo not found")
    return todo


@router.get("/todo.list")
def todo_list(db: Session = Depends(get_db)):
    todos = db.query(Todo).order_by(Todo.created_at, Todo.id).all()
    return [todo.to_dict() for todo in todos]


@router.post("/todo.create")
def todo_create(body: CreateTodoInput, db: Session = Depends(get_db)):
    todo = Todo(title=body.title)
    db.add(todo)
    db.commit()
    db.refresh(todo)
    return todo.to_dict()


@router.post("/todo.toggle")
def todo_toggle(body: TodoIdInput, db: Session = Depends(get_db)):
    todo = _get_todo(db, body.id)
    todo.completed = not todo.completed
    db.commit()
    db.refresh(todo)
    return todo.to_dict()


@router.post("/todo.delete")
def todo_delete(body: TodoIdInput, db: Session = Depends(get_db)):
    """Deleting an id that does not exist is not an error."""
    db.query(Todo).filter(Todo.id == body.id).delete()
    db.commit()
    return {"success": True}
