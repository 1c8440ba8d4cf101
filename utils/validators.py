import re
from fastapi import HTTPException, status
from sqlalchemy.orm import Session

_NON_SLUG = re.compile(r"[^a-z0-9]+")


def slugify(name: str) -> str:
    """"La Soufra!" -> "la-soufra"."""
    return _NON_SLUG.sub("-", name.lower()).strip("-")


def validate_slug_uniqueness(db: Session, model, slug: str, exclude_id: int = None):
    """Validate that no other row of ``model`` already uses the slug"""
    query = db.query(model).filter(model.slug == slug)
    if exclude_id is not None:
        query = query.filter(model.id != exclude_id)
    if query.first():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"{model.__name__} with this name already exists"
        )
