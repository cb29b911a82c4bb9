API = "/api/v1"


def test_create_and_list_coupons(client, manager, auth):
    res = client.post(
        f"{API}/coupon", json={"code": "DIWALI25", "discount": 25}, headers=auth(manager)
    )

    assert res.status_code == 201
    assert res.json()["coupon"]["is_active"] is True

    listing = client.get(f"{API}/coupons", headers=auth(manager))
    assert [c["code"] for c in listing.json()["coupons"]] == ["DIWALI25"]


def test_duplicate_coupon_code(client, admin, auth, make_coupon):
    make_coupon(code="DIWALI25")

    res = client.post(
        f"{API}/coupon", json={"code": "DIWALI25", "discount": 5}, headers=auth(admin)
    )

    assert res.status_code == 400


def test_coupon_code_must_be_upper_alphanumeric(client, admin, auth):
    for code in ("short", "lower123", "TOOLONGCODE1"):
        res = client.post(f"{API}/coupon", json={"code": code, "discount": 5}, headers=auth(admin))
        assert res.status_code == 400, code


def test_coupon_discount_range(client, admin, auth):
    res = client.post(
        f"{API}/coupon", json={"code": "BIGSAVE1", "discount": 150}, headers=auth(admin)
    )

    assert res.status_code == 400


def test_no_coupons(client, admin, auth):
    assert client.get(f"{API}/coupons", headers=auth(admin)).status_code == 404


def test_deactivate_and_delete(client, admin, auth, make_coupon):
    coupon = make_coupon()

    res = client.put(f"{API}/coupon/{coupon.id}/deactivate", headers=auth(admin))
    assert res.status_code == 200
    assert res.json()["coupon"]["is_active"] is False

    res = client.delete(f"{API}/coupon/{coupon.id}", headers=auth(admin))
    assert res.status_code == 200

    res = client.delete(f"{API}/coupon/{coupon.id}", headers=auth(admin))
    assert res.status_code == 404
