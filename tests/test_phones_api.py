from fastapi.testclient import TestClient

from conftest import MemoryStorage, make_phone
from main import app, get_storage


def create(client, **overrides):
    res = client.post("/api/phones", json=make_phone(**overrides))
    assert res.status_code == 201, res.text
    return res.json()


def test_list_empty(client):
    res = client.get("/api/phones")
    assert res.status_code == 200
    assert res.json() == []


def test_create_and_read(admin_client):
    phone = create(admin_client)
    assert phone["id"]
    assert phone["addedDate"]
    assert phone["ouPrice"] == 580000
    assert phone["frontCamera"] == 12
    assert phone["os"] is None

    res = admin_client.get(f"/api/phones/{phone['id']}")
    assert res.status_code == 200
    assert res.json() == phone
    assert admin_client.get("/api/phones").json() == [phone]


def test_reads_need_no_session(admin_client, client):
    phone = create(admin_client)
    admin_client.post("/api/auth/logout")
    assert client.get(f"/api/phones/{phone['id']}").status_code == 200


def test_get_unknown_phone(client):
    res = client.get("/api/phones/does-not-exist")
    assert res.status_code == 404
    assert res.json() == {"detail": "Phone not found"}


def test_create_validation(admin_client, store):
    bad_payloads = [
        make_phone(images=[]),
        make_phone(ram="lots"),
        {k: v for k, v in make_phone().items() if k != "ouPrice"},
        make_phone(marketPrice=-1),
    ]
    for payload in bad_payloads:
        res = admin_client.post("/api/phones", json=payload)
        assert res.status_code == 400
        assert isinstance(res.json()["detail"], list)
    assert store.phones == {}


def test_partial_update(admin_client):
    phone = create(admin_client)
    res = admin_client.put(f"/api/phones/{phone['id']}", json={"ouPrice": 550000, "os": "Android 14"})
    assert res.status_code == 200
    updated = res.json()
    assert updated["ouPrice"] == 550000
    assert updated["os"] == "Android 14"
    assert updated["name"] == phone["name"]
    assert updated["addedDate"] == phone["addedDate"]


def test_update_can_clear_nullable_fields(admin_client):
    phone = create(admin_client, sim="Dual SIM")
    res = admin_client.put(f"/api/phones/{phone['id']}", json={"sim": None})
    assert res.status_code == 200
    assert res.json()["sim"] is None


def test_update_rejects_null_required_field(admin_client):
    phone = create(admin_client)
    res = admin_client.put(f"/api/phones/{phone['id']}", json={"name": None})
    assert res.status_code == 400
    res = admin_client.put(f"/api/phones/{phone['id']}", json={"images": []})
    assert res.status_code == 400


def test_update_unknown(admin_client):
    assert admin_client.put("/api/phones/nope", json={"name": "X"}).status_code == 404


def test_empty_update_returns_phone(admin_client):
    phone = create(admin_client)
    res = admin_client.put(f"/api/phones/{phone['id']}", json={})
    assert res.status_code == 200
    assert res.json() == phone


def test_delete(admin_client):
    phone = create(admin_client)
    res = admin_client.delete(f"/api/phones/{phone['id']}")
    assert res.status_code == 200
    assert admin_client.get(f"/api/phones/{phone['id']}").status_code == 404
    assert admin_client.delete(f"/api/phones/{phone['id']}").status_code == 404


def test_list_with_filters(admin_client):
    create(admin_client, name="Galaxy S23", brand="Samsung", ram=8, ouPrice=100000)
    create(admin_client, name="iPhone 14", brand="Apple", ram=6, ouPrice=50000)
    create(admin_client, name="Galaxy A54", brand="Samsung", ram=8, ouPrice=75000)

    res = admin_client.get("/api/phones", params={"search": "galaxy", "sortBy": "price_asc"})
    assert [p["name"] for p in res.json()] == ["Galaxy A54", "Galaxy S23"]

    res = admin_client.get("/api/phones", params={"brand": "Apple"})
    assert [p["name"] for p in res.json()] == ["iPhone 14"]

    res = admin_client.get("/api/phones", params={"maxPrice": 80000, "sortBy": "price_desc"})
    assert [p["ouPrice"] for p in res.json()] == [75000, 50000]

    res = admin_client.get("/api/phones", params={"minRam": 7})
    assert {p["name"] for p in res.json()} == {"Galaxy S23", "Galaxy A54"}


def test_invalid_sort_order(client):
    assert client.get("/api/phones", params={"sortBy": "cheapest"}).status_code == 400


def test_similar(admin_client):
    s23 = create(admin_client, name="Galaxy S23", brand="Samsung")
    create(admin_client, name="iPhone 14", brand="Apple")
    a54 = create(admin_client, name="Galaxy A54", brand="Samsung")

    res = admin_client.get(f"/api/phones/{s23['id']}/similar")
    assert [p["id"] for p in res.json()] == [a54["id"]]
    assert admin_client.get("/api/phones/nope/similar").status_code == 404


def test_stats(admin_client):
    create(admin_client, brand="Samsung", marketPrice=100000, ouPrice=80000)
    create(admin_client, brand="Apple", marketPrice=200000, ouPrice=150000)
    res = admin_client.get("/api/admin/stats")
    assert res.status_code == 200
    assert res.json() == {
        "totalPhones": 2,
        "inventoryValue": 230000,
        "potentialProfit": 70000,
        "uniqueBrands": 2,
    }


def test_settings(admin_client, client):
    assert client.get("/api/settings").json() == {}

    res = admin_client.put(
        "/api/settings",
        json={"storeName": "O&U Gadgets", "publicCatalog": False, "maxItems": 12},
    )
    assert res.status_code == 200
    assert res.json() == {"storeName": "O&U Gadgets", "publicCatalog": "false", "maxItems": "12"}

    res = admin_client.put("/api/settings", json={"publicCatalog": True})
    assert res.json()["publicCatalog"] == "true"
    assert res.json()["storeName"] == "O&U Gadgets"
    assert admin_client.get("/api/settings").json()["publicCatalog"] == "true"


def test_settings_rejects_non_object(admin_client):
    assert admin_client.put("/api/settings", json=["storeName"]).status_code == 400


class FailingStorage(MemoryStorage):
    async def list_phones(self):
        raise RuntimeError("connection reset by peer")


def test_unexpected_errors_are_generic_500():
    app.dependency_overrides[get_storage] = FailingStorage
    try:
        res = TestClient(app, raise_server_exceptions=False).get("/api/phones")
    finally:
        app.dependency_overrides.clear()
    assert res.status_code == 500
    assert res.json() == {"detail": "Internal server error"}
    assert "connection reset" not in res.text
