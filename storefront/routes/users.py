import logging
import uuid
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, File, Request, Response, UploadFile, status
from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator
from sqlalchemy.orm import Session

from storefront.cloudinary_client import CloudinaryStorage, get_storage
from storefront.config import Settings, get_settings
from storefront.database import get_db
from storefront.errors import (
    AuthenticationError,
    ExternalServiceError,
    NotFoundError,
    ValidationError,
)
from storefront.models import Role, User
from storefront.security import (
    clear_forgot_password_token,
    compare_password,
    create_token,
    digest_reset_token,
    generate_forgot_password_token,
    get_current_user,
    hash_password_if_changed,
    require_roles,
)
from storefront.uploads.service import discard_uploads, handle_upload
from storefront.utils.cookies import clear_token_cookie, set_token_cookie
from storefront.utils.email import Mailer, get_mailer
from storefront.utils.validators import PHONE_PATTERN, check_phone, check_strong_password

router = APIRouter(tags=["users"])

logger = logging.getLogger(__name__)


# =====================================================
# SCHEMAS
# =====================================================

class NameFields(BaseModel):
    @field_validator("firstname", "lastname", mode="before", check_fields=False)
    @classmethod
    def normalize_name(cls, value):
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator("email", mode="after", check_fields=False)
    @classmethod
    def normalize_email(cls, value):
        return value.lower() if value else value

    @field_validator("phone_no", mode="after", check_fields=False)
    @classmethod
    def validate_phone(cls, value):
        return check_phone(value) if value is not None else value


class SignupPayload(NameFields):
    firstname: str = Field(..., min_length=1, max_length=50)
    lastname: str = Field(..., min_length=1, max_length=50)
    email: EmailStr
    phone_no: str
    password: str
    confirm_password: str

    @field_validator("password")
    @classmethod
    def strong_password(cls, value):
        return check_strong_password(value)

    @model_validator(mode="after")
    def passwords_match(self):
        if self.password != self.confirm_password:
            raise ValueError("Password and confirm_password don't match")
        return self


class LoginPayload(BaseModel):
    login: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class ForgotPasswordPayload(BaseModel):
    email: EmailStr


class ResetPasswordPayload(BaseModel):
    password: str
    confirm_password: str

    @field_validator("password")
    @classmethod
    def strong_password(cls, value):
        return check_strong_password(value)

    @model_validator(mode="after")
    def passwords_match(self):
        if self.password != self.confirm_password:
            raise ValueError("Password and confirm_password don't match")
        return self


class ChangePasswordPayload(BaseModel):
    old_password: str = Field(..., min_length=1)
    new_password: str

    @field_validator("new_password")
    @classmethod
    def strong_password(cls, value):
        return check_strong_password(value)


class ProfileUpdate(NameFields):
    firstname: str | None = Field(None, min_length=1, max_length=50)
    lastname: str | None = Field(None, min_length=1, max_length=50)
    email: EmailStr | None = None
    phone_no: str | None = None


class AdminUserUpdate(ProfileUpdate):
    role: Role | None = None


# =====================================================
# HELPERS
# =====================================================

def serialize_user(u: User) -> dict:
    return {
        "id": str(u.id),
        "firstname": u.firstname,
        "lastname": u.lastname,
        "email": u.email,
        "phone_no": u.phone_no,
        "role": u.role,
        "photo": {"id": u.photo_id, "url": u.photo_url} if u.photo_url else None,
        "created_at": u.created_at,
        "updated_at": u.updated_at,
    }


def _ensure_unique(db: Session, email: str | None, phone_no: str | None, exclude_id=None):
    if email:
        query = db.query(User).filter(User.email == email)
        if exclude_id:
            query = query.filter(User.id != exclude_id)
        if query.first():
            raise ValidationError("Email already registered")
    if phone_no:
        query = db.query(User).filter(User.phone_no == phone_no)
        if exclude_id:
            query = query.filter(User.id != exclude_id)
        if query.first():
            raise ValidationError("Phone no. already registered")


def _apply_profile_update(db: Session, user: User, payload: ProfileUpdate) -> None:
    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    _ensure_unique(db, changes.get("email"), changes.get("phone_no"), exclude_id=user.id)
    for field, value in changes.items():
        setattr(user, field, value.value if isinstance(value, Role) else value)


def _get_user_or_404(db: Session, user_id: uuid.UUID) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFoundError("User not found")
    return user


def _delete_photo(storage: CloudinaryStorage, user: User) -> None:
    if user.photo_id:
        storage.delete_image(user.photo_id)
        user.photo_id = None
        user.photo_url = None


# =====================================================
# SIGNUP / LOGIN / LOGOUT
# =====================================================

@router.post("/signup", status_code=status.HTTP_201_CREATED)
def signup(payload: SignupPayload, db: Session = Depends(get_db)):
    _ensure_unique(db, payload.email, payload.phone_no)

    user = User(
        firstname=payload.firstname,
        lastname=payload.lastname,
        email=payload.email,
        phone_no=payload.phone_no,
        role=Role.user.value,
    )
    hash_password_if_changed(user, payload.password)

    db.add(user)
    db.commit()
    db.refresh(user)

    logger.info("User signed up | user_id=%s", user.id)

    return {
        "success": True,
        "message": "Signup success",
        "user": serialize_user(user),
    }


@router.post("/login")
def login(
    payload: LoginPayload,
    response: Response,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    identifier = payload.login.strip()

    if "@" in identifier:
        user = db.query(User).filter(User.email == identifier.lower()).first()
    elif PHONE_PATTERN.match(identifier):
        user = db.query(User).filter(User.phone_no == identifier).first()
    else:
        raise ValidationError("Please provide a valid email or phone number")

    if not user:
        raise NotFoundError("User not registered")

    if not compare_password(user, payload.password):
        raise AuthenticationError("Incorrect password")

    set_token_cookie(response, create_token(user, settings), settings)

    return {
        "success": True,
        "message": "Login success",
        "user": serialize_user(user),
    }


@router.get("/logout")
def logout(response: Response, settings: Settings = Depends(get_settings)):
    clear_token_cookie(response, settings)
    return {"success": True, "message": "Logout success"}


# =====================================================
# PASSWORD RESET
# =====================================================

@router.post("/password/forgot")
def forgot_password(
    payload: ForgotPasswordPayload,
    request: Request,
    db: Session = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
):
    user = db.query(User).filter(User.email == payload.email.lower()).first()
    if not user:
        raise NotFoundError("User not found")

    token = generate_forgot_password_token(user)
    db.commit()

    reset_url = f"{str(request.base_url).rstrip('/')}/api/v1/password/reset/{token}"

    sent = mailer.send(
        to_email=user.email,
        subject="Password reset email",
        text_content=f"Click on this link to reset your password: {reset_url}",
    )

    if not sent:
        clear_forgot_password_token(user)
        db.commit()
        raise ExternalServiceError("mail", "Unable to send email")

    return {
        "success": True,
        "message": f"Reset password email is successfully sent to {user.email}",
    }


@router.put("/password/reset/{reset_token}")
def reset_password(
    reset_token: str,
    payload: ResetPasswordPayload,
    response: Response,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    user = (
        db.query(User)
        .filter(
            User.forgot_password_token == digest_reset_token(reset_token),
            User.forgot_password_expiry > datetime.now(timezone.utc),
        )
        .first()
    )
    if not user:
        raise ValidationError("Password reset token is invalid or expired")

    hash_password_if_changed(user, payload.password)
    clear_forgot_password_token(user)
    db.commit()

    set_token_cookie(response, create_token(user, settings), settings)

    return {"success": True, "message": "Password reset successful"}


@router.put("/password/change")
def change_password(
    payload: ChangePasswordPayload,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    if not compare_password(user, payload.old_password):
        raise ValidationError("Old password is incorrect")

    hash_password_if_changed(user, payload.new_password)
    db.commit()

    return {"success": True, "message": "Password successfully changed"}


# =====================================================
# PROFILE
# =====================================================

@router.get("/profile")
def get_profile(user: User = Depends(get_current_user)):
    return {
        "success": True,
        "message": "Profile successfully fetched",
        "user": serialize_user(user),
    }


@router.put("/profile")
def update_profile(
    payload: ProfileUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    _apply_profile_update(db, user, payload)
    db.commit()
    db.refresh(user)

    return {
        "success": True,
        "message": "Profile successfully updated",
        "user": serialize_user(user),
    }


@router.put("/profile/photo")
def update_profile_photo(
    photo: UploadFile = File(...),
    db: Session = Depends(get_db),
    storage: CloudinaryStorage = Depends(get_storage),
    user: User = Depends(get_current_user),
):
    uploaded = handle_upload(storage, photo, folder="users", owner_id=str(user.id))

    try:
        _delete_photo(storage, user)
    except ExternalServiceError:
        discard_uploads(storage, [uploaded])
        raise

    user.photo_id = uploaded["id"]
    user.photo_url = uploaded["url"]
    db.commit()
    db.refresh(user)

    return {
        "success": True,
        "message": "Profile photo successfully updated",
        "user": serialize_user(user),
    }


@router.delete("/profile")
def delete_profile(
    response: Response,
    db: Session = Depends(get_db),
    storage: CloudinaryStorage = Depends(get_storage),
    settings: Settings = Depends(get_settings),
    user: User = Depends(get_current_user),
):
    _delete_photo(storage, user)
    db.delete(user)
    db.commit()

    clear_token_cookie(response, settings)

    return {"success": True, "message": "Profile successfully deleted"}


# =====================================================
# ADMIN
# =====================================================

@router.get("/admin/users", dependencies=[Depends(require_roles(Role.admin))])
def admin_get_users(db: Session = Depends(get_db)):
    users = db.query(User).order_by(User.created_at.desc()).all()
    return {
        "success": True,
        "message": "All users successfully fetched",
        "users": [serialize_user(u) for u in users],
    }


@router.get("/admin/user/{user_id}", dependencies=[Depends(require_roles(Role.admin))])
def admin_get_user(user_id: uuid.UUID, db: Session = Depends(get_db)):
    return {
        "success": True,
        "message": "User successfully fetched",
        "user": serialize_user(_get_user_or_404(db, user_id)),
    }


@router.put("/admin/user/{user_id}", dependencies=[Depends(require_roles(Role.admin))])
def admin_update_user(
    user_id: uuid.UUID,
    payload: AdminUserUpdate,
    db: Session = Depends(get_db),
):
    user = _get_user_or_404(db, user_id)
    _apply_profile_update(db, user, payload)
    db.commit()
    db.refresh(user)

    return {
        "success": True,
        "message": "User successfully updated",
        "user": serialize_user(user),
    }


@router.delete("/admin/user/{user_id}", dependencies=[Depends(require_roles(Role.admin))])
def admin_delete_user(
    user_id: uuid.UUID,
    db: Session = Depends(get_db),
    storage: CloudinaryStorage = Depends(get_storage),
):
    user = _get_user_or_404(db, user_id)
    _delete_photo(storage, user)
    db.delete(user)
    db.commit()

    return {"success": True, "message": "User successfully deleted"}


# =====================================================
# MANAGER
# =====================================================

@router.get("/manager/users", dependencies=[Depends(require_roles(Role.manager))])
def manager_get_users(db: Session = Depends(get_db)):
    users = (
        db.query(User)
        .filter(User.role == Role.user.value)
        .order_by(User.created_at.desc())
        .all()
    )
    return {
        "success": True,
        "message": "All users successfully fetched",
        "users": [serialize_user(u) for u in users],
    }
