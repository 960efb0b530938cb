"""
want_to_watch.py

API endpoints for the current user's want-to-watch list.
"""
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.models import User
from app.schemas import WantToWatchCreate, WantToWatchSchema
from app.services.library_store import LibraryStore
from .deps import get_current_user

router = APIRouter()


@router.get("", response_model=List[WantToWatchSchema])
def list_want_to_watch(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return LibraryStore(db).list_want_to_watch(user.id)


@router.post("")
def add_want_to_watch(body: WantToWatchCreate, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Add a movie to the list; adding it twice keeps the first entry."""
    entry = LibraryStore(db).add_want_to_watch(
        user.id,
        body.movie_id,
        priority=body.priority,
        notes=body.notes,
        movie_title=body.movie_title,
        poster_path=body.poster_path,
        release_date=body.release_date,
    )
    return {
        "success": True,
        "message": "Added to want-to-watch list",
        "item": WantToWatchSchema.model_validate(entry),
    }


@router.get("/{movie_id}")
def get_want_to_watch(movie_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    entry = LibraryStore(db).get_want_to_watch(user.id, movie_id)
    return {
        "in_list": entry is not None,
        "item": WantToWatchSchema.model_validate(entry) if entry else None,
    }


@router.delete("/{movie_id}")
def remove_want_to_watch(movie_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    LibraryStore(db).remove_want_to_watch(user.id, movie_id)
    return {"success": True, "message": "Removed from want-to-watch list"}
