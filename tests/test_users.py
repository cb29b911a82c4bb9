import re

from storefront.models import Role, User
from storefront.security import TOKEN_COOKIE, compare_password

from tests.conftest import PASSWORD

API = "/api/v1"


def _signup_body(**overrides):
    body = {
        "firstname": "  Asha ",
        "lastname": "Rao",
        "email": "Asha@Example.com",
        "phone_no": "9123456789",
        "password": PASSWORD,
        "confirm_password": PASSWORD,
    }
    body.update(overrides)
    return body


# =====================================================
# SIGNUP / LOGIN / LOGOUT
# =====================================================

def test_signup_stores_hashed_password_and_normalizes(client, db):
    res = client.post(f"{API}/signup", json=_signup_body())

    assert res.status_code == 201
    data = res.json()
    assert data["success"] is True
    assert data["user"]["firstname"] == "asha"
    assert data["user"]["email"] == "asha@example.com"
    assert data["user"]["role"] == "user"
    assert "hashed_password" not in data["user"]

    user = db.query(User).filter(User.email == "asha@example.com").one()
    assert user.hashed_password != PASSWORD
    assert compare_password(user, PASSWORD)


def test_signup_rejects_duplicate_email(client, customer):
    res = client.post(f"{API}/signup", json=_signup_body(email=customer.email))

    assert res.status_code == 400
    assert res.json() == {"success": False, "message": "Email already registered"}


def test_signup_rejects_weak_password(client):
    res = client.post(f"{API}/signup", json=_signup_body(password="abc", confirm_password="abc"))

    assert res.status_code == 400
    assert res.json()["success"] is False
    assert "password" in res.json()["message"]


def test_signup_rejects_mismatched_confirmation(client):
    res = client.post(f"{API}/signup", json=_signup_body(confirm_password="Other@123"))

    assert res.status_code == 400


def test_login_with_email_sets_token_cookie(client, customer):
    res = client.post(f"{API}/login", json={"login": customer.email, "password": PASSWORD})

    assert res.status_code == 200
    assert res.json()["user"]["id"] == str(customer.id)
    assert TOKEN_COOKIE in res.cookies
    assert "httponly" in res.headers["set-cookie"].lower()

    # cookie alone authenticates
    profile = client.get(f"{API}/profile")
    assert profile.status_code == 200
    assert profile.json()["user"]["email"] == customer.email


def test_login_with_phone(client, customer):
    res = client.post(f"{API}/login", json={"login": customer.phone_no, "password": PASSWORD})

    assert res.status_code == 200


def test_login_wrong_password(client, customer):
    res = client.post(f"{API}/login", json={"login": customer.email, "password": "Wrong@123"})

    assert res.status_code == 401
    assert res.json() == {"success": False, "message": "Incorrect password"}


def test_login_with_overlong_wrong_password(client, customer):
    res = client.post(f"{API}/login", json={"login": customer.email, "password": "A1@" + "x" * 80})

    assert res.status_code == 401
    assert res.json()["message"] == "Incorrect password"


def test_login_unknown_user(client):
    res = client.post(f"{API}/login", json={"login": "ghost@example.com", "password": PASSWORD})

    assert res.status_code == 404
    assert res.json()["message"] == "User not registered"


def test_logout_clears_cookie(client, customer):
    client.post(f"{API}/login", json={"login": customer.email, "password": PASSWORD})

    res = client.get(f"{API}/logout")

    assert res.status_code == 200
    assert client.get(f"{API}/profile").status_code == 401


def test_protected_route_without_token(client):
    res = client.get(f"{API}/profile")

    assert res.status_code == 401
    assert res.json() == {"success": False, "message": "User not logged in"}


def test_protected_route_with_garbage_token(client):
    res = client.get(f"{API}/profile", headers={"Authorization": "Bearer nope"})

    assert res.status_code == 401
    assert res.json()["message"] == "Token invalid or expired"


# =====================================================
# PASSWORDS
# =====================================================

def test_forgot_and_reset_password(client, db, customer, mailer):
    res = client.post(f"{API}/password/forgot", json={"email": customer.email})

    assert res.status_code == 200
    assert len(mailer.sent) == 1
    token = re.search(r"/password/reset/([0-9a-f]+)", mailer.sent[0]["text"]).group(1)

    res = client.put(
        f"{API}/password/reset/{token}",
        json={"password": "Newpass@1", "confirm_password": "Newpass@1"},
    )
    assert res.status_code == 200
    assert TOKEN_COOKIE in res.cookies

    db.refresh(customer)
    assert compare_password(customer, "Newpass@1")
    assert customer.forgot_password_token is None

    # token is single use
    res = client.put(
        f"{API}/password/reset/{token}",
        json={"password": "Newpass@2", "confirm_password": "Newpass@2"},
    )
    assert res.status_code == 400


def test_forgot_password_mail_failure_clears_token(client, db, customer, mailer):
    mailer.succeed = False

    res = client.post(f"{API}/password/forgot", json={"email": customer.email})

    assert res.status_code == 500
    assert res.json() == {"success": False, "message": "Unable to send email"}

    db.refresh(customer)
    assert customer.forgot_password_token is None
    assert customer.forgot_password_expiry is None


def test_forgot_password_unknown_email(client):
    res = client.post(f"{API}/password/forgot", json={"email": "ghost@example.com"})

    assert res.status_code == 404


def test_change_password(client, db, customer, auth):
    res = client.put(
        f"{API}/password/change",
        json={"old_password": PASSWORD, "new_password": "Changed@9"},
        headers=auth(customer),
    )
    assert res.status_code == 200

    db.refresh(customer)
    assert compare_password(customer, "Changed@9")


def test_change_password_wrong_old_password(client, customer, auth):
    res = client.put(
        f"{API}/password/change",
        json={"old_password": "Nope@1234", "new_password": "Changed@9"},
        headers=auth(customer),
    )

    assert res.status_code == 400


# =====================================================
# PROFILE
# =====================================================

def test_update_profile(client, customer, auth):
    res = client.put(f"{API}/profile", json={"firstname": "Ravi"}, headers=auth(customer))

    assert res.status_code == 200
    assert res.json()["user"]["firstname"] == "ravi"


def test_update_profile_phone_taken(client, customer, make_user, auth):
    other = make_user()

    res = client.put(f"{API}/profile", json={"phone_no": other.phone_no}, headers=auth(customer))

    assert res.status_code == 400


def test_update_profile_photo_replaces_old_one(client, db, customer, auth, storage):
    files = {"photo": ("me.png", b"\x89PNG fake", "image/png")}

    first = client.put(f"{API}/profile/photo", files=files, headers=auth(customer))
    second = client.put(f"{API}/profile/photo", files=files, headers=auth(customer))

    assert first.status_code == 200
    assert second.status_code == 200
    assert storage.deleted == [first.json()["user"]["photo"]["id"]]
    assert second.json()["user"]["photo"]["url"].startswith("https://")


def test_update_profile_photo_discards_new_upload_when_old_delete_fails(client, db, customer, auth, storage):
    files = {"photo": ("me.png", b"\x89PNG fake", "image/png")}
    first = client.put(f"{API}/profile/photo", files=files, headers=auth(customer))
    old_id = first.json()["user"]["photo"]["id"]
    storage.fail_deletes.add(old_id)

    res = client.put(f"{API}/profile/photo", files=files, headers=auth(customer))

    assert res.status_code == 500
    assert storage.deleted == [storage.uploaded[-1]]
    assert storage.uploaded[-1] != old_id
    db.expire_all()
    assert db.get(User, customer.id).photo_id == old_id


def test_update_profile_photo_rejects_non_image(client, customer, auth):
    files = {"photo": ("notes.txt", b"hello", "text/plain")}

    res = client.put(f"{API}/profile/photo", files=files, headers=auth(customer))

    assert res.status_code == 400


def test_delete_profile(client, db, customer, auth):
    res = client.delete(f"{API}/profile", headers=auth(customer))

    assert res.status_code == 200
    db.expire_all()
    assert db.get(User, customer.id) is None


# =====================================================
# ADMIN / MANAGER
# =====================================================

def test_admin_lists_and_updates_users(client, admin, customer, auth):
    res = client.get(f"{API}/admin/users", headers=auth(admin))
    assert res.status_code == 200
    assert len(res.json()["users"]) == 2

    res = client.put(
        f"{API}/admin/user/{customer.id}",
        json={"role": "manager"},
        headers=auth(admin),
    )
    assert res.status_code == 200
    assert res.json()["user"]["role"] == "manager"


def test_admin_get_unknown_user(client, admin, auth):
    res = client.get(
        f"{API}/admin/user/00000000-0000-0000-0000-000000000000", headers=auth(admin)
    )

    assert res.status_code == 404


def test_admin_get_user_malformed_id(client, admin, auth):
    res = client.get(f"{API}/admin/user/not-a-uuid", headers=auth(admin))

    assert res.status_code == 400


def test_admin_deletes_user(client, db, admin, customer, auth):
    res = client.delete(f"{API}/admin/user/{customer.id}", headers=auth(admin))

    assert res.status_code == 200
    db.expire_all()
    assert db.get(User, customer.id) is None


def test_manager_sees_only_plain_users(client, manager, customer, admin, auth):
    res = client.get(f"{API}/manager/users", headers=auth(manager))

    assert res.status_code == 200
    roles = {u["role"] for u in res.json()["users"]}
    assert roles == {Role.user.value}
