import pytest
from fastapi.testclient import TestClient

import storage
from errors import StorageError
from main import app

HUGE = 10**20


def create_staff(client, first="Anna", last="Bianchi"):
    resp = client.post("/api/staff", json={"first_name": first, "last_name": last})
    assert resp.status_code == 201
    return resp.json()


def create_order(client, **overrides):
    body = {"name": "Flat 3B", "cleaning_date": "2024-06-01", "status": "Pending", "staff_ids": []}
    body.update(overrides)
    resp = client.post("/api/orders", json=body)
    assert resp.status_code == 201, resp.text
    return resp.json()


class TestAuth:
    def test_routes_require_session(self, client):
        for path in ("/api/orders", "/api/staff", "/api/statistics", "/api/calendar/2024/6", "/api/auth/me"):
            resp = client.get(path)
            assert resp.status_code == 401
            assert resp.json()["message"]

    def test_register_login_logout(self, client):
        assert client.post("/api/auth/register", json={"email": "Owner@Example.com", "password": "pw"}).status_code == 201
        assert client.get("/api/auth/me").json()["email"] == "owner@example.com"

        assert client.post("/api/auth/logout").status_code == 204
        assert client.get("/api/auth/me").status_code == 401

        bad = client.post("/api/auth/login", json={"email": "owner@example.com", "password": "nope"})
        assert bad.status_code == 401
        ok = client.post("/api/auth/login", json={"email": "owner@example.com", "password": "pw"})
        assert ok.status_code == 200
        assert client.get("/api/orders").status_code == 200

    def test_duplicate_registration(self, auth_client):
        resp = auth_client.post("/api/auth/register", json={"email": "owner@example.com", "password": "x"})
        assert resp.status_code == 400


class TestOrdersApi:
    def test_anna_scenario(self, auth_client):
        anna = create_staff(auth_client)
        order = create_order(auth_client, staff_ids=[anna["id"]])

        got = auth_client.get(f"/api/orders/{order['id']}")
        assert got.status_code == 200
        assert [e["first_name"] for e in got.json()["employees"]] == ["Anna"]

        body = {"name": "Flat 3B", "cleaning_date": "2024-06-01", "status": "Pending", "staff_ids": []}
        updated = auth_client.put(f"/api/orders/{order['id']}", json=body)
        assert updated.status_code == 200
        assert updated.json()["employees"] == []

    def test_create_defaults_and_price(self, auth_client):
        order = create_order(auth_client, price="49.9", start_time="08:15", notes="")
        assert order["payment_status"] == "Unpaid"
        assert order["price"] == "49.90"
        assert order["start_time"] == "08:15"
        assert order["notes"] is None

    def test_duplicate_staff_ids_collapse(self, auth_client):
        anna = create_staff(auth_client)
        order = create_order(auth_client, staff_ids=[anna["id"], anna["id"]])
        assert len(order["employees"]) == 1

    @pytest.mark.parametrize("override", [
        {"name": ""},
        {"name": "   "},
        {"cleaning_date": "2024-02-30"},
        {"cleaning_date": "01/06/2024"},
        {"start_time": "25:00"},
        {"status": "Lost"},
        {"payment_status": "Maybe"},
        {"price": -1},
        {"staff_ids": ["abc"]},
    ])
    def test_invalid_body_is_400(self, auth_client, override):
        body = {"name": "Flat 3B", "cleaning_date": "2024-06-01", "staff_ids": []}
        body.update(override)
        resp = auth_client.post("/api/orders", json=body)
        assert resp.status_code == 400
        assert resp.json()["message"]

    def test_missing_name_message_names_the_field(self, auth_client):
        resp = auth_client.post("/api/orders", json={"cleaning_date": "2024-06-01"})
        assert resp.status_code == 400
        assert "name" in resp.json()["message"]

    def test_huge_staff_id_is_400(self, auth_client):
        resp = auth_client.post("/api/orders", json={"name": "X", "cleaning_date": "2024-06-01", "staff_ids": [HUGE]})
        assert resp.status_code == 400
        assert "staff_ids" in resp.json()["message"]

    def test_unknown_staff_is_400(self, auth_client):
        resp = auth_client.post("/api/orders", json={"name": "X", "cleaning_date": "2024-06-01", "staff_ids": [999]})
        assert resp.status_code == 400
        assert "999" in resp.json()["message"]

    def test_bad_and_missing_ids(self, auth_client):
        assert auth_client.get("/api/orders/abc").status_code == 400
        assert auth_client.get("/api/orders/12345").status_code == 404
        body = {"name": "X", "cleaning_date": "2024-06-01"}
        assert auth_client.put("/api/orders/12345", json=body).status_code == 404
        assert auth_client.delete("/api/orders/abc").status_code == 400
        assert auth_client.delete("/api/orders/12345").status_code == 404

    def test_delete(self, auth_client):
        order = create_order(auth_client)
        resp = auth_client.delete(f"/api/orders/{order['id']}")
        assert resp.status_code == 204
        assert resp.content == b""
        assert auth_client.get(f"/api/orders/{order['id']}").status_code == 404

    def test_list_sort_and_search_pass_through(self, auth_client):
        create_order(auth_client, name="Zeta", cleaning_date="2024-02-01")
        create_order(auth_client, name="Alpha", cleaning_date="2024-01-01", notes="call Mario first")

        by_date = auth_client.get("/api/orders").json()
        assert [o["name"] for o in by_date] == ["Zeta", "Alpha"]
        by_name = auth_client.get("/api/orders", params={"sortBy": "name"}).json()
        assert [o["name"] for o in by_name] == ["Alpha", "Zeta"]
        found = auth_client.get("/api/orders", params={"search": "mario"}).json()
        assert [o["name"] for o in found] == ["Alpha"]

    def test_other_account_cannot_see_orders(self, auth_client, client):
        order = create_order(auth_client)
        client.post("/api/auth/logout")
        client.post("/api/auth/register", json={"email": "other@example.com", "password": "pw"})
        assert client.get(f"/api/orders/{order['id']}").status_code == 404
        assert client.get("/api/orders").json() == []


class TestStaffApi:
    def test_crud(self, auth_client):
        anna = create_staff(auth_client)
        assert anna["orders"] == []

        order = create_order(auth_client, staff_ids=[anna["id"]])
        got = auth_client.get(f"/api/staff/{anna['id']}").json()
        assert [o["id"] for o in got["orders"]] == [order["id"]]

        renamed = auth_client.put(f"/api/staff/{anna['id']}", json={"first_name": "Annalisa", "last_name": "Bianchi"})
        assert renamed.status_code == 200
        assert auth_client.get(f"/api/orders/{order['id']}").json()["employees"][0]["first_name"] == "Annalisa"

        assert auth_client.delete(f"/api/staff/{anna['id']}").status_code == 204
        assert auth_client.get(f"/api/staff/{anna['id']}").status_code == 404
        assert auth_client.get(f"/api/orders/{order['id']}").json()["employees"] == []

    def test_validation_and_search(self, auth_client):
        assert auth_client.post("/api/staff", json={"first_name": "", "last_name": "X"}).status_code == 400
        assert auth_client.post("/api/staff", json={"first_name": "Solo"}).status_code == 400
        create_staff(auth_client, "Anna", "Bianchi")
        create_staff(auth_client, "Bruno", "Verdi")
        found = auth_client.get("/api/staff", params={"search": "verd"}).json()
        assert [s["first_name"] for s in found] == ["Bruno"]

    def test_missing_staff(self, auth_client):
        assert auth_client.get("/api/staff/777").status_code == 404
        assert auth_client.delete("/api/staff/777").status_code == 404
        assert auth_client.get("/api/staff/x").status_code == 400


class TestIdBounds:
    @pytest.mark.parametrize("method, path", [
        ("get", f"/api/orders/{HUGE}"),
        ("delete", f"/api/orders/{HUGE}"),
        ("get", f"/api/staff/{HUGE}"),
        ("delete", f"/api/staff/{HUGE}"),
        ("get", "/api/orders/0"),
        ("get", "/api/staff/-1"),
    ])
    def test_out_of_range_ids_are_400(self, auth_client, method, path):
        resp = auth_client.request(method, path)
        assert resp.status_code == 400
        assert resp.json()["message"]

    def test_out_of_range_id_on_update_is_400(self, auth_client):
        body = {"name": "X", "cleaning_date": "2024-06-01"}
        assert auth_client.put(f"/api/orders/{HUGE}", json=body).status_code == 400
        resp = auth_client.put(f"/api/staff/{HUGE}", json={"first_name": "A", "last_name": "B"})
        assert resp.status_code == 400


class TestCalendarApi:
    def test_month_and_day(self, auth_client):
        create_order(auth_client, name="last", cleaning_date="2024-12-31")
        create_order(auth_client, name="new year", cleaning_date="2025-01-01")
        create_order(auth_client, name="first", cleaning_date="2024-12-01", start_time="10:00")

        month = auth_client.get("/api/calendar/2024/12").json()
        assert [o["name"] for o in month] == ["first", "last"]
        day = auth_client.get("/api/calendar/2025/1/1").json()
        assert [o["name"] for o in day] == ["new year"]

    @pytest.mark.parametrize("path", [
        "/api/calendar/2024/13",
        "/api/calendar/2024/0",
        "/api/calendar/2024/x",
        "/api/calendar/2024/2/30",
        "/api/calendar/2024/4/31",
        f"/api/calendar/{HUGE}/1",
        f"/api/calendar/2024/1/{HUGE}",
        "/api/calendar/0/1",
        "/api/calendar/10000/1",
    ])
    def test_invalid_parts_are_400(self, auth_client, path):
        resp = auth_client.get(path)
        assert resp.status_code == 400
        assert resp.json()["message"]


class TestStatisticsApi:
    def test_three_orders_same_day(self, auth_client):
        anna = create_staff(auth_client)
        for name in ("a", "b", "c"):
            create_order(auth_client, name=name, cleaning_date="2024-06-01", staff_ids=[anna["id"]])

        stats = auth_client.get("/api/statistics").json()

        assert stats["totalOrders"] == 3
        assert {"date": "2024-06-01", "count": 3} in stats["busiestDays"]
        assert stats["topEmployees"] == [{"id": anna["id"], "name": "Anna Bianchi", "count": 3}]


class TestStorageFailure:
    def test_storage_error_is_generic_500(self, auth_client, monkeypatch):
        def broken(*args, **kwargs):
            raise StorageError("disk I/O error at /var/db")

        monkeypatch.setattr(storage, "statistics", broken)
        resp = auth_client.get("/api/statistics")
        assert resp.status_code == 500
        assert "disk" not in resp.json()["message"]

    def test_unexpected_error_is_generic_json_500(self, client, monkeypatch):
        def broken(*args, **kwargs):
            raise OverflowError("Python int too large to convert to SQLite INTEGER")

        monkeypatch.setattr(storage, "statistics", broken)
        quiet = TestClient(app, raise_server_exceptions=False)
        assert quiet.post("/api/auth/register", json={"email": "q@example.com", "password": "pw"}).status_code == 201

        resp = quiet.get("/api/statistics")

        assert resp.status_code == 500
        assert resp.headers["content-type"].startswith("application/json")
        assert resp.json() == {"message": StorageError.public_message}
