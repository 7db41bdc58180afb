"""
Tests for admin endpoints.
"""
from datetime import date
from app.core.cache import get_cache
from app.core.utils import MAX_PAGE
from app.models.transaction import Transaction
from app.models.user import User


def test_non_admin_is_forbidden(client, user_headers, readonly_headers, admin):
    routes = [
        ("get", "/api/admin/users"),
        ("get", "/api/admin/stats"),
        ("put", f"/api/admin/users/{admin.id}/role"),
        ("delete", f"/api/admin/users/{admin.id}"),
    ]
    for headers in (user_headers, readonly_headers):
        for method, url in routes:
            kwargs = {"json": {"role": "user"}} if method == "put" else {}
            response = getattr(client, method)(url, headers=headers, **kwargs)
            assert response.status_code == 403, url
            assert response.json()["message"] == "Insufficient permissions"


def test_admin_requires_auth(client):
    assert client.get("/api/admin/users").status_code == 401


def test_list_users(client, user, other_user, admin_headers, categories):
    client.post(
        "/api/transactions",
        json={"amount": 10, "description": "Snack", "type": "expense",
              "category_id": categories["Food & Dining"], "date": "2024-05-01"},
        headers=admin_headers
    )

    response = client.get("/api/admin/users", headers=admin_headers)
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["pagination"]["limit"] == 20
    assert data["pagination"]["total_count"] == 3
    counts = {u["email"]: u["transaction_count"] for u in data["users"]}
    assert counts["admin@example.com"] == 1
    assert counts["user@example.com"] == 0
    assert all("hashed_password" not in u for u in data["users"])


def test_list_users_filters(client, user, readonly, admin_headers):
    data = client.get("/api/admin/users?role=read-only", headers=admin_headers).json()["data"]
    assert [u["email"] for u in data["users"]] == ["readonly@example.com"]

    data = client.get("/api/admin/users?search=REGULAR", headers=admin_headers).json()["data"]
    assert [u["email"] for u in data["users"]] == ["user@example.com"]

    data = client.get("/api/admin/users?limit=1000", headers=admin_headers).json()["data"]
    assert data["pagination"]["limit"] == 100

    data = client.get("/api/admin/users", params={"search": "_"}, headers=admin_headers).json()["data"]
    assert data["users"] == []

    response = client.get("/api/admin/users?page=100000000000000000000", headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["data"]["pagination"]["current_page"] == MAX_PAGE


def test_update_role(client, user, user_headers, admin_headers):
    response = client.put(f"/api/admin/users/{user.id}/role", json={"role": "read-only"}, headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["data"]["user"]["role"] == "read-only"

    # The new role applies on the next request
    response = client.post(
        "/api/transactions",
        json={"amount": 1, "description": "x", "type": "expense", "category_id": 1, "date": "2024-01-01"},
        headers=user_headers
    )
    assert response.status_code == 403


def test_update_role_rejects_invalid_role(client, user, admin_headers):
    response = client.put(f"/api/admin/users/{user.id}/role", json={"role": "superuser"}, headers=admin_headers)
    assert response.status_code == 400


def test_update_own_role(client, admin, admin_headers):
    response = client.put(f"/api/admin/users/{admin.id}/role", json={"role": "user"}, headers=admin_headers)
    assert response.status_code == 400
    assert response.json()["message"] == "Cannot change your own role"


def test_update_role_unknown_user(client, admin_headers):
    response = client.put("/api/admin/users/9999/role", json={"role": "user"}, headers=admin_headers)
    assert response.status_code == 404


def test_delete_own_account(client, admin, admin_headers):
    response = client.delete(f"/api/admin/users/{admin.id}", headers=admin_headers)
    assert response.status_code == 400
    assert response.json()["message"] == "Cannot delete your own account"


def test_delete_unknown_user(client, admin_headers):
    assert client.delete("/api/admin/users/9999", headers=admin_headers).status_code == 404


def test_delete_user_removes_transactions_and_cache(client, db, user, user_headers, admin_headers, categories):
    client.post(
        "/api/transactions",
        json={"amount": 10, "description": "Snack", "type": "expense",
              "category_id": categories["Food & Dining"], "date": "2024-05-01"},
        headers=user_headers
    )
    client.get("/api/transactions", headers=user_headers)
    assert any(k.startswith(f"transactions:{user.id}:") for k in get_cache().keys())

    user_id = user.id
    response = client.delete(f"/api/admin/users/{user_id}", headers=admin_headers)
    assert response.status_code == 200

    db.expire_all()
    assert db.query(User).filter(User.id == user_id).first() is None
    assert db.query(Transaction).filter(Transaction.user_id == user_id).count() == 0
    assert not any(k.startswith(f"transactions:{user_id}:") for k in get_cache().keys())

    # The deleted user's token no longer resolves
    response = client.get("/api/auth/me", headers=user_headers)
    assert response.json()["message"] == "Invalid token - user not found"


def test_system_stats(client, user, user_headers, readonly, admin_headers, categories):
    today = date.today().isoformat()
    for amount, kind, category in ((100, "expense", "Shopping"), (2500, "income", "Salary")):
        client.post(
            "/api/transactions",
            json={"amount": amount, "description": "Stat", "type": kind,
                  "category_id": categories[category], "date": today},
            headers=user_headers
        )

    response = client.get("/api/admin/stats", headers=admin_headers)
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["user_stats"] == {"admin": 1, "user": 1, "read-only": 1}
    assert data["transaction_stats"]["income"] == {"count": 1, "total": 2500}
    assert data["transaction_stats"]["expense"] == {"count": 1, "total": 100}
    assert data["recent_activity"][0]["user_email"] == "user@example.com"
    assert data["recent_activity"][0]["transaction_count"] == 2
    kinds = {(t["month"], t["type"]) for t in data["monthly_trends"]}
    assert (today[:7], "income") in kinds
