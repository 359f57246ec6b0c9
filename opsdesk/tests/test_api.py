"""
API endpoint tests for all routes.
Uses in-memory SQLite + dependency-overridden FastAPI test client.
"""
from datetime import datetime

from sqlalchemy import select

from opsdesk.models.order import Order
from opsdesk.models.organization import Organization
from opsdesk.models.client import Client


PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


async def _create_order(client, seed_data, **overrides):
    payload = {
        "client_id": seed_data["client_id"],
        "description": "Office deep clean",
        "services": [{"service_id": seed_data["service_id"], "quantity": 2}],
        "workers": [{"worker_id": seed_data["ama_id"], "project_id": seed_data["cleaning_id"]}],
    }
    payload.update(overrides)
    r = await client.post("/api/orders/", json=payload)
    assert r.status_code == 200, r.text
    return r.json()


async def _pay(client, order_id, amount, method="cash", order_type="service_order"):
    return await client.post("/api/payments/", json={
        "order_id": order_id,
        "order_type": order_type,
        "amount": amount,
        "payment_method": method,
    })


# ===================== HEALTH / ROOT =====================


async def test_root(client):
    r = await client.get("/")
    assert r.status_code == 200
    assert r.json()["status"] == "running"


async def test_health(client):
    r = await client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "healthy"


# ===================== AUTH =====================


async def test_login_success(unauth_client, seed_data):
    r = await unauth_client.post(
        "/api/auth/login",
        data={"username": "test@opsdesk.local", "password": "testpass123"},
    )
    assert r.status_code == 200
    assert "access_token" in r.json()


async def test_login_wrong_password(unauth_client, seed_data):
    r = await unauth_client.post(
        "/api/auth/login",
        data={"username": "test@opsdesk.local", "password": "wrong"},
    )
    assert r.status_code == 401


async def test_register_with_new_organization(unauth_client, db_session, seed_data):
    r = await unauth_client.post(
        "/api/auth/register",
        json={
            "email": "owner@newco.com",
            "full_name": "New Owner",
            "password": "pass123",
            "organization_name": "New Co",
            "currency": "EUR",
        },
    )
    assert r.status_code == 200
    data = r.json()
    assert data["is_admin"] is True
    assert data["organization"]["name"] == "New Co"
    assert data["organization"]["currency"] == "EUR"
    assert data["organization_id"] != seed_data["org_id"]


async def test_register_joins_default_organization(unauth_client, db_session, seed_data):
    r = await unauth_client.post(
        "/api/auth/register",
        json={"email": "staff@opsdesk.local", "password": "pass123"},
    )
    assert r.status_code == 200
    assert r.json()["is_admin"] is False

    result = await db_session.execute(select(Organization).where(Organization.name == "My Business"))
    assert result.scalar_one().id == r.json()["organization_id"]


async def test_register_duplicate_email(unauth_client, seed_data):
    r = await unauth_client.post(
        "/api/auth/register",
        json={"email": "test@opsdesk.local", "full_name": "Dup", "password": "pass123"},
    )
    assert r.status_code == 400


async def test_get_me(client):
    r = await client.get("/api/auth/me")
    assert r.status_code == 200
    data = r.json()
    assert data["email"] == "test@opsdesk.local"
    assert data["organization"]["currency"] == "GHS"


async def test_protected_route_no_token(unauth_client, seed_data):
    r = await unauth_client.get("/api/auth/me")
    assert r.status_code == 401


async def test_protected_business_route_no_token(unauth_client, seed_data):
    r = await unauth_client.get("/api/orders/")
    assert r.status_code == 401


# ===================== CLIENTS =====================


async def test_list_clients(client, seed_data):
    r = await client.get("/api/clients/")
    assert r.status_code == 200
    names = [c["name"] for c in r.json()]
    assert names == ["Jane Client"]


async def test_search_clients(client, seed_data):
    await client.post("/api/clients/", json={"name": "Kwame Asante"})
    r = await client.get("/api/clients/", params={"search": "kwame"})
    assert [c["name"] for c in r.json()] == ["Kwame Asante"]


async def test_create_client(client, seed_data):
    r = await client.post("/api/clients/", json={
        "name": "Esi Owusu",
        "email": "esi@example.com",
        "phone": "0201112222",
        "date_of_birth": "1990-05-17",
    })
    assert r.status_code == 200
    data = r.json()
    assert data["name"] == "Esi Owusu"
    assert data["date_of_birth"] == "1990-05-17"
    assert data["combined_summary"] == {"total": 0, "outstanding": 0, "paid": 0}


async def test_create_client_duplicate_name(client, seed_data):
    r = await client.post("/api/clients/", json={"name": "jane client"})
    assert r.status_code == 409


async def test_update_client(client, seed_data):
    r = await client.put(f"/api/clients/{seed_data['client_id']}", json={"address": "12 Ring Road"})
    assert r.status_code == 200
    assert r.json()["address"] == "12 Ring Road"
    assert r.json()["name"] == "Jane Client"


async def test_get_client_not_found(client):
    r = await client.get("/api/clients/99999")
    assert r.status_code == 404


async def test_client_balance_breakdown(client, seed_data):
    order = await _create_order(client, seed_data, initial_payment={"amount": 100, "payment_method": "cash"})
    sale = await client.post("/api/sales-orders/", json={
        "client_id": seed_data["client_id"],
        "items": [{"product_id": seed_data["product_id"], "quantity": 2}],
    })
    assert sale.status_code == 200

    r = await client.get(f"/api/clients/{seed_data['client_id']}")
    assert r.status_code == 200
    data = r.json()
    assert data["orders_summary"] == {"total": 300, "outstanding": 200, "paid": 100}
    assert data["sales_orders_summary"] == {"total": 50, "outstanding": 50, "paid": 0}
    assert data["combined_summary"] == {"total": 350, "outstanding": 250, "paid": 100}
    assert data["total_balance"] == 250
    assert data["total_spent"] == 350
    assert data["orders"][0]["order_number"] == order["order_number"]


async def test_delete_client_with_orders(client, seed_data):
    await _create_order(client, seed_data)
    r = await client.delete(f"/api/clients/{seed_data['client_id']}")
    assert r.status_code == 409


async def test_delete_client(client, db_session, seed_data):
    created = await client.post("/api/clients/", json={"name": "Temporary"})
    r = await client.delete(f"/api/clients/{created.json()['id']}")
    assert r.status_code == 200
    result = await db_session.execute(select(Client).where(Client.name == "Temporary"))
    assert result.scalar_one_or_none() is None


async def test_client_text_custom_field(client, seed_data):
    r = await client.post(
        f"/api/clients/{seed_data['client_id']}/custom-fields",
        json={"title": "Gate code", "value": "4455"},
    )
    assert r.status_code == 200
    field = r.json()
    assert field["type"] == "text"
    assert field["url"] is None

    r = await client.get(f"/api/clients/{seed_data['client_id']}")
    assert [f["title"] for f in r.json()["custom_fields"]] == ["Gate code"]

    r = await client.delete(f"/api/clients/{seed_data['client_id']}/custom-fields/{field['id']}")
    assert r.status_code == 200
    r = await client.get(f"/api/clients/{seed_data['client_id']}")
    assert r.json()["custom_fields"] == []


async def test_client_file_custom_field_download(client, seed_data, upload_dir):
    r = await client.post(
        f"/api/clients/{seed_data['client_id']}/custom-fields/file",
        data={"title": "Contract"},
        files={"file": ("contract.txt", b"signed", "text/plain")},
    )
    assert r.status_code == 200
    field = r.json()
    assert field["type"] == "file"
    assert field["url"].startswith(f"/api/files/client-fields/{seed_data['client_id']}/")

    r = await client.get(field["url"])
    assert r.status_code == 200
    assert r.content == b"signed"


async def test_client_file_custom_field_rejects_type(client, seed_data, upload_dir):
    r = await client.post(
        f"/api/clients/{seed_data['client_id']}/custom-fields/file",
        data={"title": "Script"},
        files={"file": ("run.exe", b"MZ", "application/octet-stream")},
    )
    assert r.status_code == 400


async def test_client_image(client, seed_data, upload_dir):
    r = await client.post(
        f"/api/clients/{seed_data['client_id']}/image",
        files={"file": ("avatar.png", PNG_BYTES, "image/png")},
    )
    assert r.status_code == 200
    image_url = r.json()["image_url"]
    assert image_url.startswith("/api/files/profiles/")

    r = await client.delete(f"/api/clients/{seed_data['client_id']}/image")
    assert r.status_code == 200
    assert r.json()["image_url"] is None
    assert (await client.get(image_url)).status_code == 404


# ===================== FILES =====================


async def test_file_download_requires_auth(unauth_client, seed_data):
    r = await unauth_client.get("/api/files/profiles/1/x.png")
    assert r.status_code == 401


async def test_file_download_rejects_traversal(client, upload_dir):
    r = await client.get("/api/files/..%2F..%2Fetc%2Fpasswd")
    assert r.status_code in (400, 404)


# ===================== WORKERS =====================


async def test_list_workers(client, seed_data):
    r = await client.get("/api/workers/")
    assert r.status_code == 200
    workers = {w["name"]: w for w in r.json()}
    assert set(workers) == {"Ama Mensah", "Kofi Boateng"}
    assert workers["Ama Mensah"]["project_rates"][0]["rate"] == 40


async def test_create_worker_duplicate_name(client, seed_data):
    r = await client.post("/api/workers/", json={"name": "ama mensah"})
    assert r.status_code == 409


async def test_set_and_remove_worker_rate(client, seed_data):
    worker_id = seed_data["ama_id"]
    r = await client.put(f"/api/workers/{worker_id}/rates", json={
        "project_id": seed_data["painting_id"], "rate": 90,
    })
    assert r.status_code == 200
    rates = {p["project_name"]: p["rate"] for p in r.json()["project_rates"]}
    assert rates == {"Cleaning": 40, "Painting": 90}

    r = await client.put(f"/api/workers/{worker_id}/rates", json={
        "project_id": seed_data["painting_id"], "rate": 95,
    })
    rates = {p["project_name"]: p["rate"] for p in r.json()["project_rates"]}
    assert rates["Painting"] == 95

    r = await client.delete(f"/api/workers/{worker_id}/rates/{seed_data['painting_id']}")
    assert r.status_code == 200
    assert [p["project_name"] for p in r.json()["project_rates"]] == ["Cleaning"]


async def test_negative_worker_rate(client, seed_data):
    r = await client.put(f"/api/workers/{seed_data['ama_id']}/rates", json={
        "project_id": seed_data["painting_id"], "rate": -1,
    })
    assert r.status_code == 400


async def test_worker_details(client, seed_data):
    order = await _create_order(client, seed_data)
    task_id = order["tasks"][0]["id"]
    await client.put(f"/api/tasks/{task_id}/status", json={"status": "completed"})
    await client.post(f"/api/tasks/{task_id}/deductions", json={"amount": 5, "reason": "Late"})

    r = await client.get(f"/api/workers/{seed_data['ama_id']}/details", params={"period": "week"})
    assert r.status_code == 200
    data = r.json()
    assert data["worker"]["name"] == "Ama Mensah"
    assert len(data["tasks"]) == 1
    stats = data["stats"]
    assert stats["all_time"] == 1
    assert stats["weekly"] == 1
    assert stats["daily"] == 1
    assert stats["total_earnings"] == 40
    assert stats["completed_earnings"] == 35
    assert stats["total_deductions"] == 5


async def test_delete_worker_assigned_to_order(client, seed_data):
    await _create_order(client, seed_data)
    r = await client.delete(f"/api/workers/{seed_data['ama_id']}")
    assert r.status_code == 409


async def test_delete_worker(client, seed_data):
    r = await client.delete(f"/api/workers/{seed_data['kofi_id']}")
    assert r.status_code == 200
    r = await client.get(f"/api/workers/{seed_data['kofi_id']}")
    assert r.status_code == 404


# ===================== PROJECTS / SERVICES =====================


async def test_create_project(client, seed_data):
    r = await client.post("/api/projects/", json={"name": "Gardening", "base_price": 80})
    assert r.status_code == 200
    assert r.json()["status"] == "active"


async def test_delete_project_in_use(client, seed_data):
    await _create_order(client, seed_data)
    r = await client.delete(f"/api/projects/{seed_data['cleaning_id']}")
    assert r.status_code == 409


async def test_delete_unused_project(client, seed_data):
    r = await client.delete(f"/api/projects/{seed_data['painting_id']}")
    assert r.status_code == 200


async def test_service_crud(client, seed_data):
    r = await client.post("/api/services/", json={"name": "Window wash", "price": 60})
    assert r.status_code == 200
    service_id = r.json()["id"]

    r = await client.put(f"/api/services/{service_id}", json={"price": 65})
    assert r.json()["price"] == 65

    r = await client.delete(f"/api/services/{service_id}")
    assert r.status_code == 200


async def test_delete_service_in_use(client, seed_data):
    await _create_order(client, seed_data)
    r = await client.delete(f"/api/services/{seed_data['service_id']}")
    assert r.status_code == 409


# ===================== CATEGORIES / PRODUCTS =====================


async def test_list_categories(client, seed_data):
    r = await client.get("/api/categories/")
    assert r.status_code == 200
    assert r.json()[0]["name"] == "Supplies"
    assert r.json()[0]["product_count"] == 1


async def test_rename_category_updates_products(client, seed_data):
    r = await client.put(f"/api/categories/{seed_data['category_id']}", json={"name": "Cleaning supplies"})
    assert r.status_code == 200
    r = await client.get(f"/api/products/{seed_data['product_id']}")
    assert r.json()["category"] == "Cleaning supplies"


async def test_delete_category_with_products(client, seed_data):
    r = await client.delete(f"/api/categories/{seed_data['category_id']}")
    assert r.status_code == 409


async def test_create_product_unknown_category(client, seed_data):
    r = await client.post("/api/products/", json={"name": "Bucket", "category": "Tools"})
    assert r.status_code == 400


async def test_create_product(client, seed_data):
    r = await client.post("/api/products/", json={
        "name": "Bucket", "category": "Supplies", "unit_price": 12.5, "stock_quantity": 4,
    })
    assert r.status_code == 200
    assert r.json()["unit_price"] == 12.5


async def test_low_stock_filter(client, seed_data):
    r = await client.get("/api/products/", params={"low_stock": True})
    assert r.json() == []

    r = await client.put(f"/api/products/{seed_data['product_id']}/stock", json={"stock_quantity": 1})
    assert r.status_code == 200
    assert r.json()["low_stock"] is True

    r = await client.get("/api/products/", params={"low_stock": True})
    assert [p["name"] for p in r.json()] == ["Mop"]


async def test_negative_stock_rejected(client, seed_data):
    r = await client.put(f"/api/products/{seed_data['product_id']}/stock", json={"stock_quantity": -3})
    assert r.status_code == 400


# ===================== ORDERS =====================


async def test_create_order(client, seed_data):
    order = await _create_order(client, seed_data)
    today = datetime.utcnow().strftime("%Y%m%d")
    assert order["order_number"] == f"ORD-{today}-0001"
    assert order["status"] == "pending"
    assert order["total_amount"] == 300
    assert order["outstanding_balance"] == 300
    assert order["payment_status"] == "unpaid"
    assert order["services"][0]["line_total"] == 300
    assert order["workers"][0]["worker_name"] == "Ama Mensah"

    assert len(order["tasks"]) == 1
    task = order["tasks"][0]
    assert task["worker_id"] == seed_data["ama_id"]
    assert task["status"] == "pending"
    assert task["amount"] == 40


async def test_get_order_after_create(client, seed_data):
    order = await _create_order(client, seed_data)
    r = await client.get(f"/api/orders/{order['id']}")
    assert r.status_code == 200
    data = r.json()
    assert data["client_name"] == "Jane Client"
    assert data["tasks"][0]["order_number"] == order["order_number"]
    assert data["tasks"][0]["worker_name"] == "Ama Mensah"
    assert data["services"][0]["service_name"] == "Deep clean"


async def test_create_order_rejects_non_positive_initial_payment(client, seed_data, db_session):
    for amount in (-50, 0):
        r = await client.post("/api/orders/", json={
            "client_id": seed_data["client_id"],
            "services": [{"service_id": seed_data["service_id"], "quantity": 1}],
            "initial_payment": {"amount": amount, "payment_method": "cash"},
        })
        assert r.status_code == 400
        assert "greater than 0" in r.json()["detail"]
    result = await db_session.execute(select(Order))
    assert result.scalars().all() == []


async def test_order_numbers_increase(client, seed_data):
    first = await _create_order(client, seed_data)
    second = await _create_order(client, seed_data)
    assert first["order_number"].endswith("-0001")
    assert second["order_number"].endswith("-0002")


async def test_create_order_with_initial_payment(client, seed_data):
    order = await _create_order(
        client, seed_data,
        initial_payment={"amount": 100, "payment_method": "mobile_money", "payment_reference": "MM-1"},
    )
    assert order["outstanding_balance"] == 200
    assert order["payment_status"] == "partially_paid"
    assert len(order["payments"]) == 1
    assert order["payments"][0]["payment_reference"] == "MM-1"


async def test_create_order_payment_over_total(client, db_session, seed_data):
    r = await client.post("/api/orders/", json={
        "client_id": seed_data["client_id"],
        "total_amount": 50,
        "initial_payment": {"amount": 80, "payment_method": "cash"},
    })
    assert r.status_code == 400
    result = await db_session.execute(select(Order))
    assert result.scalars().all() == []


async def test_create_order_unknown_client(client, seed_data):
    r = await client.post("/api/orders/", json={"client_id": 99999})
    assert r.status_code == 404


async def test_create_order_duplicate_worker(client, seed_data):
    pair = {"worker_id": seed_data["ama_id"], "project_id": seed_data["cleaning_id"]}
    r = await client.post("/api/orders/", json={
        "client_id": seed_data["client_id"], "workers": [pair, pair],
    })
    assert r.status_code == 400


async def test_create_order_with_explicit_total_and_custom_fields(client, seed_data):
    field = await client.post(
        f"/api/clients/{seed_data['client_id']}/custom-fields",
        json={"title": "Gate code", "value": "4455"},
    )
    order = await _create_order(
        client, seed_data,
        total_amount=275,
        custom_fields=[
            {"id": field.json()["id"]},
            {"title": "Floor", "value": "3rd"},
            {"title": "Empty"},
        ],
    )
    assert order["total_amount"] == 275
    fields = {f["title"]: f["value"] for f in order["custom_fields"]}
    assert fields == {"Gate code": "4455", "Floor": "3rd"}


async def test_list_orders_filters(client, seed_data):
    await _create_order(client, seed_data)
    await _create_order(client, seed_data, initial_payment={"amount": 300, "payment_method": "cash"})

    r = await client.get("/api/orders/", params={"payment_status": "paid"})
    assert len(r.json()) == 1

    r = await client.get("/api/orders/", params={"search": "jane"})
    assert len(r.json()) == 2

    r = await client.get("/api/orders/", params={"period": "today"})
    assert len(r.json()) == 2


async def test_update_order_status(client, seed_data):
    order = await _create_order(client, seed_data)
    r = await client.put(f"/api/orders/{order['id']}/status", json={"status": "in_progress"})
    assert r.status_code == 200
    assert r.json()["status"] == "in_progress"


async def test_status_endpoint_refuses_cancel(client, seed_data):
    order = await _create_order(client, seed_data)
    r = await client.put(f"/api/orders/{order['id']}/status", json={"status": "cancelled"})
    assert r.status_code == 400


async def test_assign_worker_creates_task(client, seed_data):
    order = await _create_order(client, seed_data)
    r = await client.post(f"/api/orders/{order['id']}/workers", json={
        "worker_id": seed_data["kofi_id"], "project_id": seed_data["cleaning_id"],
    })
    assert r.status_code == 200
    tasks = {t["worker_id"]: t for t in r.json()["tasks"]}
    assert tasks[seed_data["kofi_id"]]["amount"] == 35

    r = await client.post(f"/api/orders/{order['id']}/workers", json={
        "worker_id": seed_data["kofi_id"], "project_id": seed_data["cleaning_id"],
    })
    assert r.status_code == 409


async def test_assign_worker_without_rate(client, seed_data):
    order = await _create_order(client, seed_data)
    r = await client.post(f"/api/orders/{order['id']}/workers", json={
        "worker_id": seed_data["kofi_id"], "project_id": seed_data["painting_id"],
    })
    tasks = {t["project_id"]: t for t in r.json()["tasks"]}
    assert tasks[seed_data["painting_id"]]["amount"] == 0


async def test_update_order_worker_status(client, seed_data):
    order = await _create_order(client, seed_data)
    ow_id = order["workers"][0]["id"]
    r = await client.put(f"/api/orders/{order['id']}/workers/{ow_id}", json={"status": "on_site"})
    assert r.status_code == 200
    assert r.json()["status"] == "on_site"


async def test_cancel_order(client, seed_data):
    order = await _create_order(client, seed_data, initial_payment={"amount": 100, "payment_method": "cash"})
    r = await client.post(f"/api/orders/{order['id']}/cancel", json={"reason": "Client moved"})
    assert r.status_code == 200
    assert r.json() == {"order_id": order["id"], "tasks_cancelled": 1, "payments_cancelled": 1}

    r = await client.get(f"/api/orders/{order['id']}")
    data = r.json()
    assert data["status"] == "cancelled"
    assert data["cancellation_reason"] == "Client moved"
    assert data["cancelled_by"] is not None
    assert all(t["status"] == "cancelled" for t in data["tasks"])
    assert all(p["status"] == "cancelled" for p in data["payments"])


async def test_cancel_order_keeps_tasks(client, seed_data):
    order = await _create_order(client, seed_data)
    r = await client.post(f"/api/orders/{order['id']}/cancel", json={"cancel_worker_tasks": False})
    assert r.json()["tasks_cancelled"] == 0

    r = await client.get("/api/tasks/", params={"order_id": order["id"]})
    assert [t["status"] for t in r.json()] == ["pending"]


async def test_cancelled_order_is_terminal(client, seed_data):
    order = await _create_order(client, seed_data)
    await client.post(f"/api/orders/{order['id']}/cancel", json={})

    assert (await client.post(f"/api/orders/{order['id']}/cancel", json={})).status_code == 409
    r = await client.put(f"/api/orders/{order['id']}/status", json={"status": "pending"})
    assert r.status_code == 409
    r = await client.put(f"/api/orders/{order['id']}", json={"description": "changed"})
    assert r.status_code == 409
    r = await client.post(f"/api/orders/{order['id']}/workers", json={
        "worker_id": seed_data["kofi_id"], "project_id": seed_data["cleaning_id"],
    })
    assert r.status_code == 400


async def test_order_receipt(client, seed_data):
    order = await _create_order(client, seed_data, initial_payment={"amount": 120, "payment_method": "cash"})
    r = await client.get(f"/api/orders/{order['id']}/receipt")
    assert r.status_code == 200
    data = r.json()
    assert data["organization_name"] == "Acme Home Services"
    assert data["currency"] == "GHS"
    assert data["lines"][0]["service"] == "Deep clean"
    assert data["amount_paid"] == 120
    assert data["outstanding_balance"] == 180


async def test_get_order_not_found(client):
    r = await client.get("/api/orders/99999")
    assert r.status_code == 404


# ===================== PAYMENTS =====================


async def test_record_payment(client, seed_data):
    order = await _create_order(client, seed_data)
    r = await _pay(client, order["id"], 120.5, method="bank_transfer")
    assert r.status_code == 200
    data = r.json()
    assert data["amount"] == 120.5
    assert data["outstanding_balance"] == 179.5
    assert data["payment_status"] == "partially_paid"
    assert data["reference_type"] == "service_order"
    assert data["reference_id"] == order["id"]


async def test_record_payment_settles_order(client, seed_data):
    order = await _create_order(client, seed_data)
    r = await _pay(client, order["id"], 300)
    assert r.json()["outstanding_balance"] == 0
    assert r.json()["payment_status"] == "paid"

    r = await _pay(client, order["id"], 1)
    assert r.status_code == 400


async def test_record_payment_over_balance(client, seed_data):
    order = await _create_order(client, seed_data)
    r = await _pay(client, order["id"], 300.01)
    assert r.status_code == 400

    r = await client.get(f"/api/orders/{order['id']}")
    assert r.json()["outstanding_balance"] == 300
    assert r.json()["payments"] == []


async def test_record_payment_invalid_values(client, seed_data):
    order = await _create_order(client, seed_data)
    assert (await _pay(client, order["id"], 0)).status_code == 400
    assert (await _pay(client, order["id"], -5)).status_code == 400
    assert (await _pay(client, order["id"], 10, method="cheque")).status_code == 400


async def test_record_payment_sub_cent_amount(client, seed_data):
    order = await _create_order(client, seed_data)
    r = await _pay(client, order["id"], 0.004)
    assert r.status_code == 400
    assert "greater than 0" in r.json()["detail"]

    r = await client.get(f"/api/orders/{order['id']}")
    assert r.json()["outstanding_balance"] == 300
    assert r.json()["payments"] == []


async def test_record_payment_unknown_order(client, seed_data):
    r = await _pay(client, 99999, 10)
    assert r.status_code == 404


async def test_record_payment_on_cancelled_order(client, seed_data):
    order = await _create_order(client, seed_data)
    await client.post(f"/api/orders/{order['id']}/cancel", json={})
    r = await _pay(client, order["id"], 10)
    assert r.status_code == 400


async def test_record_payment_on_sales_order(client, seed_data):
    sale = await client.post("/api/sales-orders/", json={
        "items": [{"product_id": seed_data["product_id"], "quantity": 2}],
    })
    r = await _pay(client, sale.json()["id"], 50, order_type="sales_order")
    assert r.status_code == 200
    assert r.json()["payment_status"] == "paid"
    assert r.json()["reference_type"] == "sales_order"


async def test_list_payments(client, seed_data):
    order = await _create_order(client, seed_data)
    await _pay(client, order["id"], 50)
    await _pay(client, order["id"], 25, method="mobile_money")

    r = await client.get("/api/payments/", params={"period": "today"})
    assert r.status_code == 200
    assert sorted(p["amount"] for p in r.json()) == [25, 50]
    assert r.json()[0]["client_name"] == "Jane Client"


async def test_outstanding_items(client, seed_data):
    order = await _create_order(client, seed_data)
    paid = await _create_order(client, seed_data, initial_payment={"amount": 300, "payment_method": "cash"})
    await client.post("/api/sales-orders/", json={
        "items": [{"product_id": seed_data["product_id"], "quantity": 1}],
    })

    r = await client.get("/api/payments/outstanding")
    items = r.json()
    numbers = {i["number"] for i in items}
    assert order["order_number"] in numbers
    assert paid["order_number"] not in numbers
    assert {i["type"] for i in items} == {"service_order", "sales_order"}

    r = await client.get("/api/payments/outstanding", params={"search": order["order_number"]})
    assert [i["id"] for i in r.json()] == [order["id"]]


# ===================== SALES ORDERS =====================


async def test_create_sales_order(client, seed_data):
    r = await client.post("/api/sales-orders/", json={
        "client_id": seed_data["client_id"],
        "notes": "Walk-in",
        "items": [
            {"product_id": seed_data["product_id"], "quantity": 3},
            {"name": "Delivery", "quantity": 1, "unit_price": 10},
        ],
        "initial_payment": {"amount": 40, "payment_method": "cash"},
    })
    assert r.status_code == 200
    data = r.json()
    assert data["order_number"] == f"AHS-{datetime.utcnow():%Y%m}-1001"
    assert data["total_amount"] == 85
    assert data["outstanding_balance"] == 45
    assert data["payment_status"] == "partially_paid"
    assert [i["is_custom_item"] for i in data["items"]] == [False, True]

    r = await client.get(f"/api/products/{seed_data['product_id']}")
    assert r.json()["stock_quantity"] == 7


async def test_sales_order_numbers_increase(client, seed_data):
    item = {"items": [{"name": "Bag", "quantity": 1, "unit_price": 2}]}
    first = (await client.post("/api/sales-orders/", json=item)).json()
    second = (await client.post("/api/sales-orders/", json=item)).json()
    assert first["order_number"].endswith("-1001")
    assert second["order_number"].endswith("-1002")


async def test_sales_order_insufficient_stock(client, seed_data):
    r = await client.post("/api/sales-orders/", json={
        "items": [{"product_id": seed_data["product_id"], "quantity": 11}],
    })
    assert r.status_code == 400
    r = await client.get(f"/api/products/{seed_data['product_id']}")
    assert r.json()["stock_quantity"] == 10


async def test_sales_order_requires_items(client, seed_data):
    r = await client.post("/api/sales-orders/", json={"items": []})
    assert r.status_code == 400


async def test_sales_order_rejects_non_positive_initial_payment(client, seed_data):
    r = await client.post("/api/sales-orders/", json={
        "items": [{"product_id": seed_data["product_id"], "quantity": 2}],
        "initial_payment": {"amount": 0, "payment_method": "cash"},
    })
    assert r.status_code == 400
    r = await client.get(f"/api/products/{seed_data['product_id']}")
    assert r.json()["stock_quantity"] == 10
    assert (await client.get("/api/sales-orders/")).json() == []


async def test_delete_sales_order_restores_stock(client, seed_data):
    sale = await client.post("/api/sales-orders/", json={
        "items": [{"product_id": seed_data["product_id"], "quantity": 4}],
    })
    r = await client.delete(f"/api/sales-orders/{sale.json()['id']}")
    assert r.status_code == 200

    r = await client.get(f"/api/products/{seed_data['product_id']}")
    assert r.json()["stock_quantity"] == 10
    assert (await client.get(f"/api/sales-orders/{sale.json()['id']}")).status_code == 404


async def test_delete_product_keeps_sales_items(client, seed_data):
    sale = await client.post("/api/sales-orders/", json={
        "items": [{"product_id": seed_data["product_id"], "quantity": 1}],
    })
    r = await client.delete(f"/api/products/{seed_data['product_id']}")
    assert r.status_code == 200

    r = await client.get(f"/api/sales-orders/{sale.json()['id']}")
    item = r.json()["items"][0]
    assert item["product_id"] is None
    assert item["is_custom_item"] is True
    assert item["name"] == "Mop"


async def test_recalculate_sales_order(client, seed_data):
    sale = await client.post("/api/sales-orders/", json={
        "items": [{"name": "Bag", "quantity": 2, "unit_price": 7.5}],
        "initial_payment": {"amount": 5, "payment_method": "cash"},
    })
    r = await client.post(f"/api/sales-orders/{sale.json()['id']}/recalculate")
    assert r.status_code == 200
    assert r.json()["total_amount"] == 15
    assert r.json()["outstanding_balance"] == 10


# ===================== TASKS =====================


async def test_create_standalone_task(client, seed_data):
    r = await client.post("/api/tasks/", json={
        "worker_id": seed_data["kofi_id"],
        "project_id": seed_data["cleaning_id"],
        "description": "Restock van",
    })
    assert r.status_code == 200
    data = r.json()
    assert data["amount"] == 35
    assert data["order_id"] is None
    assert data["status"] == "pending"


async def test_task_status_transitions(client, seed_data):
    order = await _create_order(client, seed_data)
    task_id = order["tasks"][0]["id"]

    r = await client.put(f"/api/tasks/{task_id}/status", json={"status": "delayed"})
    assert r.status_code == 400

    r = await client.put(f"/api/tasks/{task_id}/status", json={
        "status": "delayed", "delay_reason": "Rain",
    })
    assert r.status_code == 200
    assert r.json()["delay_reason"] == "Rain"

    r = await client.put(f"/api/tasks/{task_id}/status", json={"status": "completed"})
    assert r.json()["status"] == "completed"
    assert r.json()["completed_at"] is not None


async def test_cancelled_task_is_terminal(client, seed_data):
    order = await _create_order(client, seed_data)
    await client.post(f"/api/orders/{order['id']}/cancel", json={})
    task_id = order["tasks"][0]["id"]
    r = await client.put(f"/api/tasks/{task_id}/status", json={"status": "in_progress"})
    assert r.status_code == 409


async def test_task_deductions(client, seed_data):
    order = await _create_order(client, seed_data)
    task_id = order["tasks"][0]["id"]

    r = await client.post(f"/api/tasks/{task_id}/deductions", json={"amount": 50, "reason": "Too much"})
    assert r.status_code == 400

    r = await client.post(f"/api/tasks/{task_id}/deductions", json={"amount": 10, "reason": "Broken vase"})
    assert r.status_code == 200
    assert r.json()["deductions_total"] == 10
    assert r.json()["net_amount"] == 30

    deduction_id = r.json()["deductions"][0]["id"]
    r = await client.delete(f"/api/tasks/{task_id}/deductions/{deduction_id}")
    assert r.status_code == 200
    assert r.json()["net_amount"] == 40


async def test_deductions_cannot_exceed_task_amount_together(client, seed_data):
    order = await _create_order(client, seed_data)
    task_id = order["tasks"][0]["id"]

    r = await client.post(f"/api/tasks/{task_id}/deductions", json={"amount": 40, "reason": "No show"})
    assert r.status_code == 200
    assert r.json()["net_amount"] == 0

    r = await client.post(f"/api/tasks/{task_id}/deductions", json={"amount": 40, "reason": "No show again"})
    assert r.status_code == 400
    assert "exceed" in r.json()["detail"]

    r = await client.post(f"/api/tasks/{task_id}/deductions", json={"amount": 0.01, "reason": "Rounding"})
    assert r.status_code == 400

    r = await client.get(f"/api/tasks/{task_id}")
    assert r.json()["deductions_total"] == 40
    assert r.json()["net_amount"] == 0


async def test_list_tasks_by_worker(client, seed_data):
    await _create_order(client, seed_data)
    r = await client.get("/api/tasks/", params={"worker_id": seed_data["kofi_id"]})
    assert r.json() == []
    r = await client.get("/api/tasks/", params={"worker_id": seed_data["ama_id"], "status": "pending"})
    assert len(r.json()) == 1


# ===================== DASHBOARD =====================


async def test_dashboard(client, seed_data):
    await _create_order(client, seed_data, initial_payment={"amount": 100, "payment_method": "cash"})
    await client.post("/api/sales-orders/", json={
        "items": [{"product_id": seed_data["product_id"], "quantity": 2}],
    })

    r = await client.get("/api/dashboard/")
    assert r.status_code == 200
    data = r.json()
    assert data["active_orders"] == 1
    assert data["revenue_today"] == 100
    assert data["outstanding_amount"] == 250
    assert data["currency"] == "GHS"
    assert len(data["daily_revenue"]) == 30
    assert data["daily_revenue"][-1] == {"date": datetime.utcnow().date().isoformat(), "value": 100}


async def test_dashboard_completions(client, seed_data):
    order = await _create_order(client, seed_data)
    await client.put(f"/api/tasks/{order['tasks'][0]['id']}/status", json={"status": "completed"})
    await client.put(f"/api/orders/{order['id']}/status", json={"status": "completed"})

    data = (await client.get("/api/dashboard/")).json()
    assert data["active_orders"] == 0
    assert data["tasks_completed_today"] == 1
    assert data["orders_completed_today"] == 1


async def test_order_stats(client, seed_data):
    await _create_order(client, seed_data)
    cancelled = await _create_order(client, seed_data)
    await client.post(f"/api/orders/{cancelled['id']}/cancel", json={})

    r = await client.get("/api/dashboard/order-stats")
    data = r.json()
    assert data["by_status"]["pending"] == 1
    assert data["by_status"]["cancelled"] == 1
    assert data["by_status"]["draft"] == 0
    assert data["total_this_month"] == 2
    assert data["daily_orders"][-1]["count"] == 2


# ===================== FINANCIAL =====================


async def test_financial_summary(client, seed_data):
    order = await _create_order(client, seed_data)
    await _pay(client, order["id"], 100)
    await _pay(client, order["id"], 50, method="mobile_money")

    r = await client.get("/api/financial/", params={"period": "today"})
    assert r.status_code == 200
    data = r.json()
    assert data["total_collected"] == 150
    assert data["payment_count"] == 2
    assert data["by_method"]["cash"] == {"amount": 100, "count": 1}
    assert data["by_method"]["mobile_money"] == {"amount": 50, "count": 1}
    assert data["by_method"]["bank_transfer"] == {"amount": 0, "count": 0}


async def test_financial_excludes_cancelled(client, seed_data):
    order = await _create_order(client, seed_data, initial_payment={"amount": 100, "payment_method": "cash"})
    await client.post(f"/api/orders/{order['id']}/cancel", json={})

    data = (await client.get("/api/financial/")).json()
    assert data["total_collected"] == 0
    assert len(data["payments"]) == 1
    assert data["payments"][0]["counted"] is False
    assert data["payments"][0]["order_status"] == "cancelled"


async def test_financial_custom_period_requires_dates(client, seed_data):
    r = await client.get("/api/financial/", params={"period": "custom"})
    assert r.status_code == 400

    today = datetime.utcnow().date().isoformat()
    r = await client.get("/api/financial/", params={
        "period": "custom", "start_date": today, "end_date": today,
    })
    assert r.status_code == 200


# ===================== REPORTS =====================


async def test_worker_report(client, seed_data):
    order = await _create_order(client, seed_data)
    await client.put(f"/api/tasks/{order['tasks'][0]['id']}/status", json={"status": "completed"})

    r = await client.get(f"/api/reports/workers/{seed_data['ama_id']}", params={"period": "month"})
    assert r.status_code == 200
    data = r.json()
    assert data["worker"] == "Ama Mensah"
    assert data["summary"]["completed_tasks"] == 1
    assert data["summary"]["completed_earnings"] == 40
    assert data["summary"]["completed_earnings_display"] == "GH₵ 40.00"

    r = await client.get(
        f"/api/reports/workers/{seed_data['ama_id']}", params={"period": "month", "format": "csv"}
    )
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/csv")
    assert "attachment" in r.headers["content-disposition"]
    assert order["order_number"] in r.text


async def test_payments_export(client, seed_data):
    order = await _create_order(client, seed_data, initial_payment={"amount": 100, "payment_method": "cash"})

    r = await client.get("/api/reports/payments")
    assert r.status_code == 200
    assert order["order_number"] in r.text

    r = await client.get("/api/reports/payments", params={"format": "xlsx"})
    assert r.status_code == 200
    assert r.content[:2] == b"PK"


async def test_orders_export(client, seed_data):
    order = await _create_order(client, seed_data)
    r = await client.get("/api/reports/orders")
    assert r.status_code == 200
    assert order["order_number"] in r.text
    assert "Jane Client" in r.text
