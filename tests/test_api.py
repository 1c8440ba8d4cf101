import time

import pytest
from starlette.websockets import WebSocketDisconnect

from models.user import UserRole
from services.change_feed import order_feed
from utils.auth import SECRET_KEY, create_access_token


def order_payload(coffee, **overrides):
    payload = {
        "order_type": "dine_in",
        "table_number": "12",
        "items": [{"menu_item_id": coffee.id, "name": "Coffee", "quantity": 2, "price": 300}],
    }
    payload.update(overrides)
    return payload


# ---- auth ----

def test_super_admin_can_sign_in(client, super_admin):
    response = client.post("/api/v1/users/login", json={"email": "admin@soufra.io", "password": "secret123"})
    assert response.status_code == 200
    assert response.json()["token_type"] == "bearer"


def test_wrong_password_is_rejected(client, super_admin):
    response = client.post("/api/v1/users/login", json={"email": "admin@soufra.io", "password": "nope"})
    assert response.status_code == 401


@pytest.mark.parametrize("role", [UserRole.OWNER, UserRole.STAFF, UserRole.CUSTOMER])
def test_other_roles_are_denied_at_sign_in(client, user_factory, role):
    user_factory(f"{role.value}@soufra.io", role)
    response = client.post("/api/v1/users/login", json={"email": f"{role.value}@soufra.io", "password": "secret123"})
    assert response.status_code == 403
    assert response.json()["detail"] == "access denied"
    assert "access_token" not in response.json()


def test_other_roles_are_denied_on_dashboard_routes(client, user_factory):
    staff = user_factory("staff@soufra.io", UserRole.STAFF)
    token = create_access_token({"sub": staff.email, "role": staff.role.value})
    response = client.get("/api/v1/restaurants", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 403


def test_register_without_admin_secret_is_denied(client):
    response = client.post("/api/v1/users/register", json={"email": "new@soufra.io", "password": "secret123"})
    assert response.status_code == 403


def test_register_with_admin_secret(client):
    response = client.post(
        "/api/v1/users/register",
        params={"admin_secret": SECRET_KEY},
        json={"email": "boss@soufra.io", "password": "secret123"},
    )
    assert response.status_code == 201
    assert response.json()["role"] == "super_admin"


def test_me(client, admin_headers):
    response = client.get("/api/v1/users/me", headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["email"] == "admin@soufra.io"


# ---- restaurants ----

def test_restaurant_slug_and_lookup(client, admin_headers):
    response = client.post("/api/v1/restaurants", json={"name": "Chez  Léa & Co!"}, headers=admin_headers)
    assert response.status_code == 201
    slug = response.json()["slug"]
    assert slug == "chez-l-a-co"

    assert client.get(f"/api/v1/restaurants/by-slug/{slug}", headers=admin_headers).json()["id"] == response.json()["id"]
    duplicate = client.post("/api/v1/restaurants", json={"name": "chez lÉa co"}, headers=admin_headers)
    assert duplicate.status_code == 409


def test_restaurants_sorted_by_name(client, admin_headers):
    for name in ("Zaytoun", "Aleppo Kitchen"):
        client.post("/api/v1/restaurants", json={"name": name}, headers=admin_headers)
    names = [r["name"] for r in client.get("/api/v1/restaurants", headers=admin_headers).json()]
    assert names == ["Aleppo Kitchen", "Zaytoun"]


# ---- menu ----

def test_categories_nest_items_in_sort_order(client, admin_headers, restaurant):
    base = f"/api/v1/restaurants/{restaurant.id}"
    drinks = client.post(f"{base}/categories", json={"name": "Drinks", "sort_order": 2}, headers=admin_headers).json()
    client.post(f"{base}/categories", json={"name": "Starters", "sort_order": 1}, headers=admin_headers)
    client.post(
        f"{base}/menu-items",
        json={"name": "Lemonade", "price": 400, "category_id": drinks["id"]},
        headers=admin_headers,
    )
    categories = client.get(f"{base}/categories", headers=admin_headers).json()
    assert [c["name"] for c in categories] == ["Starters", "Drinks"]
    assert [i["name"] for i in categories[1]["menu_items"]] == ["Lemonade"]


def test_set_menu_item_round_trip(client, admin_headers, restaurant, category, coffee, lunch_options):
    base = f"/api/v1/restaurants/{restaurant.id}"
    lunch_options[0]["choices"][0]["item_id"] = coffee.id
    response = client.post(
        f"{base}/menu-items",
        json={
            "name": "Brunch",
            "price": 1800,
            "item_type": "set_menu",
            "category_id": category.id,
            "options": lunch_options,
        },
        headers=admin_headers,
    )
    assert response.status_code == 201
    item = response.json()
    assert [g["name"] for g in item["options"]] == ["Starter", "Dessert"]

    preview = client.post(f"{base}/menu-items/{item['id']}/price", json={"selections": {"g1": "c2"}}, headers=admin_headers)
    assert preview.json()["unit_price"] == 2300
    missing = client.post(f"{base}/menu-items/{item['id']}/price", json={"selections": {}}, headers=admin_headers)
    assert missing.status_code == 400


def test_linked_choice_must_exist(client, admin_headers, restaurant, category, lunch_options):
    lunch_options[0]["choices"][0]["item_id"] = 4242
    response = client.post(
        f"/api/v1/restaurants/{restaurant.id}/menu-items",
        json={"name": "Brunch", "price": 1800, "item_type": "set_menu", "category_id": category.id, "options": lunch_options},
        headers=admin_headers,
    )
    assert response.status_code == 400


def test_invalid_option_group_is_rejected(client, admin_headers, restaurant, category):
    response = client.post(
        f"/api/v1/restaurants/{restaurant.id}/menu-items",
        json={
            "name": "Broken",
            "price": 100,
            "item_type": "set_menu",
            "category_id": category.id,
            "options": [{"name": "G", "min_selection": 2, "max_selection": 1, "choices": []}],
        },
        headers=admin_headers,
    )
    assert response.status_code == 422


def test_toggle_availability(client, admin_headers, restaurant, coffee):
    url = f"/api/v1/restaurants/{restaurant.id}/menu-items/{coffee.id}/availability"
    response = client.patch(url, json={"is_available": False}, headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["is_available"] is False


def test_switching_to_single_clears_options(client, admin_headers, restaurant, lunch_formula):
    url = f"/api/v1/restaurants/{restaurant.id}/menu-items/{lunch_formula.id}"
    response = client.put(url, json={"item_type": "single"}, headers=admin_headers)
    assert response.json()["options"] == []


# ---- orders ----

def test_order_lifecycle(client, admin_headers, restaurant, coffee):
    base = f"/api/v1/restaurants/{restaurant.id}/orders"
    created = client.post(base, json=order_payload(coffee), headers=admin_headers)
    assert created.status_code == 201
    order = created.json()
    assert order["status"] == "pending"
    assert order["total_amount"] == 600

    next_status = client.get(f"{base}/{order['id']}/next-status", headers=admin_headers).json()
    assert next_status["next_status"] == "confirmed"
    assert next_status["allowed_statuses"][-1] == "cancelled"

    advanced = client.post(f"{base}/{order['id']}/advance", headers=admin_headers)
    assert advanced.json()["status"] == "confirmed"

    updated = client.put(
        f"{base}/{order['id']}",
        json={"status": "served", "items": [{"name": "Tea", "quantity": 1, "price": 250}]},
        headers=admin_headers,
    ).json()
    assert [i["name"] for i in updated["order_items"]] == ["Tea"]
    assert updated["total_amount"] == 250

    assert client.post(f"{base}/{order['id']}/advance", headers=admin_headers).status_code == 409
    assert client.delete(f"{base}/{order['id']}", headers=admin_headers).status_code == 204
    assert client.get(f"{base}/{order['id']}", headers=admin_headers).status_code == 404


def test_take_out_is_stored_as_take_away(client, admin_headers, restaurant, coffee):
    response = client.post(
        f"/api/v1/restaurants/{restaurant.id}/orders",
        json=order_payload(coffee, order_type="take_out"),
        headers=admin_headers,
    )
    assert response.json()["order_type"] == "take_away"
    assert response.json()["table_number"] is None


def test_order_needs_items(client, admin_headers, restaurant, coffee):
    response = client.post(
        f"/api/v1/restaurants/{restaurant.id}/orders",
        json=order_payload(coffee, items=[]),
        headers=admin_headers,
    )
    assert response.status_code == 422


def test_advance_missing_order(client, admin_headers, restaurant):
    response = client.post(f"/api/v1/restaurants/{restaurant.id}/orders/999/advance", headers=admin_headers)
    assert response.status_code == 404


def test_set_contents_endpoint(client, admin_headers, restaurant, coffee):
    payload = order_payload(coffee, items=[{
        "name": "Formula",
        "quantity": 1,
        "price": 2000,
        "selected_options": [
            {"group_name": "Drink", "name": "Coffee", "choice_name": "Coffee", "price": 0, "item_id": coffee.id},
        ],
    }])
    order = client.post(f"/api/v1/restaurants/{restaurant.id}/orders", json=payload, headers=admin_headers).json()
    line_id = order["order_items"][0]["id"]
    contents = client.get(
        f"/api/v1/restaurants/{restaurant.id}/orders/{order['id']}/items/{line_id}/set-contents",
        headers=admin_headers,
    ).json()
    assert contents == [{
        "group_name": "Drink",
        "choice_name": "Coffee",
        "item_id": coffee.id,
        "description": "Double espresso",
        "steps": None,
    }]


# ---- live feed ----

def test_websocket_requires_super_admin(client, restaurant):
    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect(f"/api/v1/notifications/ws/{restaurant.id}?token=bogus") as ws:
            ws.receive_json()


def test_websocket_streams_order_inserts(client, admin_headers, restaurant, coffee):
    token = admin_headers["Authorization"].split()[1]
    with client.websocket_connect(f"/api/v1/notifications/ws/{restaurant.id}?token={token}") as ws:
        assert ws.receive_json() == {"event": "subscribed", "restaurant_id": restaurant.id}
        created = client.post(f"/api/v1/restaurants/{restaurant.id}/orders", json=order_payload(coffee), headers=admin_headers)
        message = ws.receive_json()
    assert message["event"] == "order_change"
    assert message["type"] == "INSERT"
    assert message["new"]["id"] == created.json()["id"]


def test_websocket_disconnect_releases_subscription(client, admin_headers, restaurant):
    token = admin_headers["Authorization"].split()[1]
    with client.websocket_connect(f"/api/v1/notifications/ws/{restaurant.id}?token={token}") as ws:
        ws.receive_json()
        assert order_feed.subscriber_count(restaurant.id) == 1
    for _ in range(100):
        if order_feed.subscriber_count(restaurant.id) == 0:
            break
        time.sleep(0.01)
    assert order_feed.subscriber_count(restaurant.id) == 0
