API = "/api/v1"


def test_list_categories_empty(client):
    res = client.get(f"{API}/categories")

    assert res.status_code == 404
    assert res.json()["message"] == "No category found"


def test_manager_adds_category_with_audit_fields(client, manager, auth):
    res = client.post(f"{API}/category", json={"name": "  Watches "}, headers=auth(manager))

    assert res.status_code == 201
    category = res.json()["category"]
    assert category["name"] == "watches"
    assert category["added_by"] == {"user_id": str(manager.id), "role": "manager"}
    assert category["last_updated_by"] is None


def test_duplicate_category_rejected(client, admin, auth, category):
    res = client.post(f"{API}/category", json={"name": "SHOES"}, headers=auth(admin))

    assert res.status_code == 400


def test_update_category_records_updater(client, admin, manager, auth, category):
    res = client.put(
        f"{API}/category/{category.id}", json={"name": "sneakers"}, headers=auth(manager)
    )

    assert res.status_code == 200
    body = res.json()["category"]
    assert body["name"] == "sneakers"
    assert body["added_by"]["user_id"] == str(admin.id)
    assert body["last_updated_by"] == {"user_id": str(manager.id), "role": "manager"}


def test_get_category_public(client, category):
    res = client.get(f"{API}/category/{category.id}")

    assert res.status_code == 200
    assert res.json()["category"]["name"] == "shoes"

    listing = client.get(f"{API}/categories")
    assert [c["name"] for c in listing.json()["categories"]] == ["shoes"]


def test_delete_category_with_products_refused(client, admin, auth, category, make_product):
    make_product()

    res = client.delete(f"{API}/category/{category.id}", headers=auth(admin))

    assert res.status_code == 400


def test_delete_empty_category(client, admin, auth, category):
    res = client.delete(f"{API}/category/{category.id}", headers=auth(admin))

    assert res.status_code == 200
    assert client.get(f"{API}/category/{category.id}").status_code == 404
