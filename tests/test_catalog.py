from conftest import make_cylinder

SUPPLIER = {
    "name": "Lake Gas",
    "contactPerson": "Mariam",
    "phone": "+255744444444",
    "email": "sales@lakegas.example.com",
    "address": "Mwanza",
}


def test_health(client):
    assert client.get("/health").json()["status"] == "OK"


def test_supplier_and_cylinder_flow(client, auth_headers):
    supplier = client.post("/api/suppliers", json=SUPPLIER, headers=auth_headers)
    assert supplier.status_code == 201
    supplier_id = supplier.json()["id"]
    assert supplier.json()["isActive"] is True

    cylinder = client.post("/api/gas-cylinders", json={
        "name": "Lake Gas 6kg",
        "weight": 6,
        "price": 23000,
        "supplierId": supplier_id,
        "stockQuantity": 12,
    }, headers=auth_headers)
    assert cylinder.status_code == 201
    assert cylinder.json()["supplier"]["id"] == supplier_id
    assert cylinder.json()["stockQuantity"] == 12

    listed = client.get("/api/suppliers").json()
    assert listed[0]["gasCylinders"][0]["name"] == "Lake Gas 6kg"
    assert client.get(f"/api/suppliers/{supplier_id}").json()["name"] == "Lake Gas"
    assert client.get("/api/suppliers/missing").status_code == 404


def test_cylinder_needs_existing_supplier(client, auth_headers):
    response = client.post("/api/gas-cylinders", json={
        "name": "Ghost 6kg", "weight": 6, "price": 1, "supplierId": "missing",
    }, headers=auth_headers)

    assert response.status_code == 400
    assert response.json()["detail"] == "Supplier not found"


def test_catalogue_writes_require_token(client, cylinder):
    assert client.post("/api/suppliers", json=SUPPLIER).status_code == 401
    assert client.delete(f"/api/gas-cylinders/{cylinder.id}").status_code == 401


def test_list_cylinders_sorted_by_weight_and_available_only(client, db, cylinder):
    make_cylinder(db, supplier=cylinder.supplier, name="Taifa 6kg", weight=6)
    make_cylinder(db, supplier=cylinder.supplier, name="Taifa 38kg", weight=38, is_available=False)

    names = [item["name"] for item in client.get("/api/gas-cylinders").json()]

    assert names == ["Taifa 6kg", "Taifa Gas 15kg"]


def test_update_and_delete_cylinder(client, auth_headers, cylinder):
    url = f"/api/gas-cylinders/{cylinder.id}"

    updated = client.put(url, json={"price": 52000, "stockQuantity": 20}, headers=auth_headers)
    assert updated.status_code == 200
    assert updated.json()["price"] == 52000
    assert updated.json()["stockQuantity"] == 20
    assert updated.json()["name"] == "Taifa Gas 15kg"

    assert client.put(url, json={"stockQuantity": -1}, headers=auth_headers).status_code == 400
    assert client.put("/api/gas-cylinders/missing", json={"price": 1}, headers=auth_headers).status_code == 404

    assert client.delete(url, headers=auth_headers).status_code == 200
    assert client.get(url).json()["isAvailable"] is False
    assert client.get("/api/gas-cylinders").json() == []


def test_update_cylinder_rejects_null_for_required_fields(client, auth_headers, cylinder):
    url = f"/api/gas-cylinders/{cylinder.id}"

    response = client.put(url, json={"name": None}, headers=auth_headers)
    assert response.status_code == 400
    assert response.json()["detail"].startswith("name")
    assert client.put(url, json={"price": None, "stockQuantity": None}, headers=auth_headers).status_code == 400
    assert client.get(url).json()["name"] == "Taifa Gas 15kg"
