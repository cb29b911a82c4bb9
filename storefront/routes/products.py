import logging
import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile, status
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, field_validator
from sqlalchemy.orm import Session

from storefront.cloudinary_client import CloudinaryStorage, get_storage
from storefront.config import Settings, get_settings
from storefront.database import get_db
from storefront.errors import ExternalServiceError, NotFoundError, ValidationError
from storefront.models import Category, Product, ProductPhoto, Review, Role, User
from storefront.security import get_current_user, require_roles
from storefront.uploads.service import discard_uploads, handle_photo_set
from storefront.where_clause import WhereClause, parse_query_params

router = APIRouter(tags=["products"])

logger = logging.getLogger(__name__)

staff_only = require_roles(Role.manager, Role.admin)

MIN_PRICE = 50


# =====================================================
# SCHEMAS
# =====================================================

def _lower_strip(value):
    return value.strip().lower() if isinstance(value, str) else value


class ProductFields(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    price: Optional[float] = Field(None, ge=MIN_PRICE)
    description: Optional[str] = Field(None, min_length=1, max_length=250)
    brand: Optional[str] = Field(None, min_length=1, max_length=50)
    stock: Optional[int] = Field(None, ge=0)
    category: Optional[uuid.UUID] = None

    @field_validator("name", "description", "brand", mode="before")
    @classmethod
    def normalize_text(cls, value):
        return _lower_strip(value)

    @field_validator("price", mode="after")
    @classmethod
    def round_price(cls, value):
        return round(value) if value is not None else value


class ReviewPayload(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = Field(None, max_length=500)

    @field_validator("comment", mode="before")
    @classmethod
    def normalize_comment(cls, value):
        return _lower_strip(value)


def _parse_fields(raw: dict, required: bool) -> dict:
    provided = {k: v for k, v in raw.items() if v is not None and v != ""}

    if required:
        missing = [k for k in ProductFields.model_fields if k not in provided]
        if missing:
            raise ValidationError(f"Please provide all the details (missing: {', '.join(missing)})")

    try:
        fields = ProductFields.model_validate(provided)
    except PydanticValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ()))
        raise ValidationError(f"{field}: {first.get('msg')}")

    return fields.model_dump(exclude_none=True)


# =====================================================
# HELPERS
# =====================================================

def serialize_review(r: Review) -> dict:
    return {
        "id": str(r.id),
        "user_id": str(r.user_id) if r.user_id else None,
        "name": r.name,
        "comment": r.comment,
        "rating": r.rating,
        "created_at": r.created_at,
        "updated_at": r.updated_at,
    }


def serialize_product(p: Product) -> dict:
    return {
        "id": str(p.id),
        "name": p.name,
        "price": p.price,
        "description": p.description,
        "brand": p.brand,
        "stock": p.stock,
        "sold_units": p.sold_units,
        "ratings": p.ratings,
        "number_of_reviews": len(p.reviews),
        "category": str(p.category_id),
        "photos": [{"id": ph.public_id, "url": ph.url} for ph in p.photos],
        "added_by": {
            "user_id": str(p.added_by_id) if p.added_by_id else None,
            "role": p.added_by_role,
        },
        "last_updated_by": (
            {"user_id": str(p.last_updated_by_id), "role": p.last_updated_by_role}
            if p.last_updated_by_id
            else None
        ),
        "created_at": p.created_at,
        "updated_at": p.updated_at,
    }


def refresh_ratings(product: Product) -> None:
    ratings = [r.rating for r in product.reviews]
    product.ratings = round(sum(ratings) / len(ratings), 1) if ratings else 0


def _get_product_or_404(db: Session, product_id: uuid.UUID) -> Product:
    product = db.query(Product).filter(Product.id == product_id).first()
    if not product:
        raise NotFoundError("Product not found")
    return product


def _ensure_category(db: Session, category_id: uuid.UUID) -> None:
    if not db.query(Category.id).filter(Category.id == category_id).first():
        raise NotFoundError("Category not found")


def _find_review(product: Product, user: User) -> Optional[Review]:
    return next((r for r in product.reviews if r.user_id == user.id), None)


def _delete_photos(storage: CloudinaryStorage, photos: list[ProductPhoto]) -> None:
    for photo in photos:
        storage.delete_image(photo.public_id)


# =====================================================
# STAFF: ADD PRODUCT
# =====================================================

@router.post("/product", status_code=status.HTTP_201_CREATED)
def add_product(
    name: Optional[str] = Form(None),
    price: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    brand: Optional[str] = Form(None),
    stock: Optional[str] = Form(None),
    category: Optional[str] = Form(None),
    photos: Optional[List[UploadFile]] = File(None),
    db: Session = Depends(get_db),
    storage: CloudinaryStorage = Depends(get_storage),
    user: User = Depends(staff_only),
):
    fields = _parse_fields(
        {
            "name": name,
            "price": price,
            "description": description,
            "brand": brand,
            "stock": stock,
            "category": category,
        },
        required=True,
    )
    _ensure_category(db, fields["category"])

    product_id = uuid.uuid4()
    uploaded = handle_photo_set(storage, photos or [], folder="products", owner_id=str(product_id))

    product = Product(
        id=product_id,
        name=fields["name"],
        price=fields["price"],
        description=fields["description"],
        brand=fields["brand"],
        stock=fields["stock"],
        category_id=fields["category"],
        added_by_id=user.id,
        added_by_role=user.role,
        photos=[
            ProductPhoto(public_id=p["id"], url=p["url"], position=i)
            for i, p in enumerate(uploaded)
        ],
    )
    db.add(product)
    db.commit()
    db.refresh(product)

    logger.info("Product added | product_id=%s | by=%s", product.id, user.id)

    return {
        "success": True,
        "message": "Product successfully added",
        "product": serialize_product(product),
    }


# =====================================================
# PUBLIC: LIST / GET
# =====================================================

@router.get("/products")
def get_all_products(
    request: Request,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    params = parse_query_params(request.query_params.multi_items())

    clause = (
        WhereClause(
            db.query(Product).order_by(Product.created_at.desc(), Product.id),
            Product,
            params,
            aliases={"category": "category_id"},
        )
        .search()
        .pagination(settings.results_per_page)
        .filter()
    )
    products = clause.all()

    if not products:
        raise NotFoundError("No product found")

    return {
        "success": True,
        "message": "All products successfully fetched",
        "count": len(products),
        "total": clause.count(),
        "products": [serialize_product(p) for p in products],
    }


@router.get("/product/{product_id}")
def get_product(product_id: uuid.UUID, db: Session = Depends(get_db)):
    return {
        "success": True,
        "message": "Product successfully fetched",
        "product": serialize_product(_get_product_or_404(db, product_id)),
    }


# =====================================================
# STAFF: UPDATE / DELETE
# =====================================================

@router.put("/product/{product_id}")
def update_product(
    product_id: uuid.UUID,
    name: Optional[str] = Form(None),
    price: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    brand: Optional[str] = Form(None),
    stock: Optional[str] = Form(None),
    category: Optional[str] = Form(None),
    photos: Optional[List[UploadFile]] = File(None),
    db: Session = Depends(get_db),
    storage: CloudinaryStorage = Depends(get_storage),
    user: User = Depends(staff_only),
):
    product = _get_product_or_404(db, product_id)

    fields = _parse_fields(
        {
            "name": name,
            "price": price,
            "description": description,
            "brand": brand,
            "stock": stock,
            "category": category,
        },
        required=False,
    )
    if not fields and not photos:
        raise ValidationError("Nothing to update")

    if "category" in fields:
        _ensure_category(db, fields["category"])
        product.category_id = fields.pop("category")

    for field, value in fields.items():
        setattr(product, field, value)

    if photos:
        uploaded = handle_photo_set(storage, photos, folder="products", owner_id=str(product.id))
        try:
            _delete_photos(storage, product.photos)
        except ExternalServiceError:
            discard_uploads(storage, uploaded)
            raise
        product.photos = [
            ProductPhoto(public_id=p["id"], url=p["url"], position=i)
            for i, p in enumerate(uploaded)
        ]

    product.last_updated_by_id = user.id
    product.last_updated_by_role = user.role
    db.commit()
    db.refresh(product)

    return {
        "success": True,
        "message": "Product successfully updated",
        "product": serialize_product(product),
    }


@router.delete("/product/{product_id}", dependencies=[Depends(staff_only)])
def delete_product(
    product_id: uuid.UUID,
    db: Session = Depends(get_db),
    storage: CloudinaryStorage = Depends(get_storage),
):
    product = _get_product_or_404(db, product_id)

    _delete_photos(storage, product.photos)
    db.delete(product)
    db.commit()

    return {"success": True, "message": "Product successfully deleted"}


# =====================================================
# REVIEWS
# =====================================================

@router.get("/product/{product_id}/reviews")
def get_reviews(product_id: uuid.UUID, db: Session = Depends(get_db)):
    product = _get_product_or_404(db, product_id)
    return {
        "success": True,
        "message": "Reviews successfully fetched",
        "ratings": product.ratings,
        "reviews": [serialize_review(r) for r in product.reviews],
    }


@router.put("/product/{product_id}/review/add")
def add_review(
    product_id: uuid.UUID,
    payload: ReviewPayload,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    product = _get_product_or_404(db, product_id)

    # One review per user per product
    if _find_review(product, user):
        raise ValidationError("You already reviewed this product")

    product.reviews.append(
        Review(
            user_id=user.id,
            name=f"{user.firstname} {user.lastname}",
            comment=payload.comment,
            rating=payload.rating,
        )
    )
    refresh_ratings(product)
    db.commit()
    db.refresh(product)

    return {
        "success": True,
        "message": "Review successfully added",
        "product": serialize_product(product),
    }


@router.put("/product/{product_id}/review/update")
def update_review(
    product_id: uuid.UUID,
    payload: ReviewPayload,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    product = _get_product_or_404(db, product_id)

    review = _find_review(product, user)
    if not review:
        raise NotFoundError("Review not found")

    review.rating = payload.rating
    review.comment = payload.comment
    refresh_ratings(product)
    db.commit()
    db.refresh(product)

    return {
        "success": True,
        "message": "Review successfully updated",
        "product": serialize_product(product),
    }


@router.delete("/product/{product_id}/review")
def delete_review(
    product_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    product = _get_product_or_404(db, product_id)

    review = _find_review(product, user)
    if not review:
        raise NotFoundError("Review not found")

    product.reviews.remove(review)
    refresh_ratings(product)
    db.commit()
    db.refresh(product)

    return {
        "success": True,
        "message": "Review successfully deleted",
        "product": serialize_product(product),
    }
