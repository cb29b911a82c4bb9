import uuid

import pytest

from storefront.models import Role

API = "/api/v1"

SOME_ID = str(uuid.uuid4())

# (method, path, json body, roles that must be turned away)
GATED = [
    ("get", "/admin/users", None, [Role.user, Role.manager]),
    ("get", f"/admin/user/{SOME_ID}", None, [Role.user, Role.manager]),
    ("put", f"/admin/user/{SOME_ID}", {"role": "admin"}, [Role.user, Role.manager]),
    ("delete", f"/admin/user/{SOME_ID}", None, [Role.user, Role.manager]),
    ("get", "/manager/users", None, [Role.user, Role.admin]),
    ("post", "/category", {"name": "bags"}, [Role.user]),
    ("put", f"/category/{SOME_ID}", {"name": "bags"}, [Role.user]),
    ("delete", f"/category/{SOME_ID}", None, [Role.user]),
    ("delete", f"/product/{SOME_ID}", None, [Role.user]),
    ("post", "/coupon", {"code": "SAVE2024", "discount": 10}, [Role.user]),
    ("get", "/coupons", None, [Role.user]),
    ("put", f"/coupon/{SOME_ID}/deactivate", None, [Role.user]),
    ("delete", f"/coupon/{SOME_ID}", None, [Role.user]),
    ("get", "/admin/orders", None, [Role.user, Role.manager]),
    ("put", f"/admin/order/{SOME_ID}", {"status": "shipped"}, [Role.user, Role.manager]),
    ("delete", f"/admin/order/{SOME_ID}", None, [Role.user, Role.manager]),
]

CASES = [
    pytest.param(method, path, body, role, id=f"{method}-{path}-{role.value}")
    for method, path, body, roles in GATED
    for role in roles
]


@pytest.mark.parametrize("method,path,body,role", CASES)
def test_disallowed_role_gets_403(client, make_user, auth, method, path, body, role):
    user = make_user(role)
    kwargs = {"headers": auth(user)}
    if body is not None:
        kwargs["json"] = body

    res = client.request(method.upper(), f"{API}{path}", **kwargs)

    assert res.status_code == 403
    assert res.json() == {
        "success": False,
        "message": "Not allowed to access this resource",
    }


@pytest.mark.parametrize("method,path,body", [(m, p, b) for m, p, b, _ in GATED])
def test_anonymous_gets_401(client, method, path, body):
    kwargs = {"json": body} if body is not None else {}

    res = client.request(method.upper(), f"{API}{path}", **kwargs)

    assert res.status_code == 401


def test_staff_product_upload_rejects_customer(client, customer, auth):
    res = client.post(f"{API}/product", data={"name": "x"}, headers=auth(customer))

    assert res.status_code == 403
