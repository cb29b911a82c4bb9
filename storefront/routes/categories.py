import uuid

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.orm import Session

from storefront.database import get_db
from storefront.errors import NotFoundError, ValidationError
from storefront.models import Category, Product, Role, User
from storefront.security import require_roles

router = APIRouter(tags=["categories"])

staff_only = require_roles(Role.manager, Role.admin)


class CategoryPayload(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)

    @field_validator("name", mode="before")
    @classmethod
    def normalize_name(cls, value):
        return value.strip().lower() if isinstance(value, str) else value


def serialize_category(c: Category) -> dict:
    return {
        "id": str(c.id),
        "name": c.name,
        "added_by": {
            "user_id": str(c.added_by_id) if c.added_by_id else None,
            "role": c.added_by_role,
        },
        "last_updated_by": (
            {"user_id": str(c.last_updated_by_id), "role": c.last_updated_by_role}
            if c.last_updated_by_id
            else None
        ),
        "created_at": c.created_at,
        "updated_at": c.updated_at,
    }


def _get_category_or_404(db: Session, category_id: uuid.UUID) -> Category:
    category = db.query(Category).filter(Category.id == category_id).first()
    if not category:
        raise NotFoundError("Category not found")
    return category


def _ensure_name_free(db: Session, name: str, exclude_id=None) -> None:
    query = db.query(Category).filter(Category.name == name)
    if exclude_id:
        query = query.filter(Category.id != exclude_id)
    if query.first():
        raise ValidationError(f"Category '{name}' already exists")


# =====================================================
# STAFF: ADD / UPDATE / DELETE
# =====================================================

@router.post("/category", status_code=status.HTTP_201_CREATED)
def add_category(
    payload: CategoryPayload,
    db: Session = Depends(get_db),
    user: User = Depends(staff_only),
):
    _ensure_name_free(db, payload.name)

    category = Category(name=payload.name, added_by_id=user.id, added_by_role=user.role)
    db.add(category)
    db.commit()
    db.refresh(category)

    return {
        "success": True,
        "message": "Category successfully added",
        "category": serialize_category(category),
    }


@router.put("/category/{category_id}")
def update_category(
    category_id: uuid.UUID,
    payload: CategoryPayload,
    db: Session = Depends(get_db),
    user: User = Depends(staff_only),
):
    category = _get_category_or_404(db, category_id)
    _ensure_name_free(db, payload.name, exclude_id=category.id)

    category.name = payload.name
    category.last_updated_by_id = user.id
    category.last_updated_by_role = user.role
    db.commit()
    db.refresh(category)

    return {
        "success": True,
        "message": "Category successfully updated",
        "category": serialize_category(category),
    }


@router.delete("/category/{category_id}", dependencies=[Depends(staff_only)])
def delete_category(category_id: uuid.UUID, db: Session = Depends(get_db)):
    category = _get_category_or_404(db, category_id)

    in_use = db.query(Product.id).filter(Product.category_id == category.id).first()
    if in_use:
        raise ValidationError("Category still has products")

    db.delete(category)
    db.commit()

    return {"success": True, "message": "Category successfully deleted"}


# =====================================================
# PUBLIC
# =====================================================

@router.get("/category/{category_id}")
def get_category(category_id: uuid.UUID, db: Session = Depends(get_db)):
    return {
        "success": True,
        "message": "Category successfully fetched",
        "category": serialize_category(_get_category_or_404(db, category_id)),
    }


@router.get("/categories")
def get_all_categories(db: Session = Depends(get_db)):
    categories = db.query(Category).order_by(Category.name).all()
    if not categories:
        raise NotFoundError("No category found")

    return {
        "success": True,
        "message": "All categories successfully fetched",
        "categories": [serialize_category(c) for c in categories],
    }
