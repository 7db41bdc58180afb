"""
Tests for transaction endpoints.
"""
import pytest
from app.core.utils import MAX_PAGE
from app.models.transaction import Transaction


def create_transaction(client, headers, category_id, **overrides):
    payload = {
        "amount": 42.5,
        "description": "Groceries",
        "type": "expense",
        "category_id": category_id,
        "date": "2024-01-10",
    }
    payload.update(overrides)
    return client.post("/api/transactions", json=payload, headers=headers)


def test_create_transaction(client, user, user_headers, categories):
    response = create_transaction(client, user_headers, categories["Food & Dining"])
    assert response.status_code == 201
    data = response.json()["data"]
    assert data["user_id"] == user.id
    assert data["amount"] == 42.5
    assert data["category_name"] == "Food & Dining"
    assert data["category_color"] == "#ef4444"


def test_create_rejects_kind_mismatch(client, db, user_headers, categories):
    response = create_transaction(client, user_headers, categories["Salary"], type="expense")
    assert response.status_code == 400
    assert response.json()["message"] == "Category type does not match transaction type"
    assert db.query(Transaction).count() == 0


def test_create_rejects_unknown_category(client, db, user_headers, categories):
    response = create_transaction(client, user_headers, 9999)
    assert response.status_code == 400
    assert response.json()["message"] == "Invalid category ID"
    assert db.query(Transaction).count() == 0


@pytest.mark.parametrize("field,value", [
    ("amount", 0),
    ("amount", -5),
    ("description", "   "),
    ("type", "transfer"),
    ("date", "not-a-date"),
])
def test_create_validation(client, user_headers, categories, field, value):
    response = create_transaction(client, user_headers, categories["Food & Dining"], **{field: value})
    assert response.status_code == 400
    assert response.json()["errors"][0]["field"] == field


def test_readonly_cannot_create(client, readonly_headers, categories):
    response = create_transaction(client, readonly_headers, categories["Food & Dining"])
    assert response.status_code == 403
    assert response.json()["message"] == "Insufficient permissions"


def test_list_pagination_clamps(client, user_headers, categories):
    for i in range(3):
        create_transaction(client, user_headers, categories["Food & Dining"], description=f"Item {i}")

    response = client.get("/api/transactions?limit=0&page=-4", headers=user_headers)
    assert response.status_code == 200
    pagination = response.json()["data"]["pagination"]
    assert pagination["current_page"] == 1
    assert pagination["limit"] == 1
    assert pagination["total_count"] == 3
    assert pagination["total_pages"] == 3
    assert pagination["has_next_page"] is True
    assert pagination["has_prev_page"] is False

    response = client.get("/api/transactions?limit=500", headers=user_headers)
    assert response.json()["data"]["pagination"]["limit"] == 100

    response = client.get("/api/transactions?page=100000000000000000000", headers=user_headers)
    assert response.status_code == 200
    pagination = response.json()["data"]["pagination"]
    assert pagination["current_page"] == MAX_PAGE
    assert response.json()["data"]["transactions"] == []


def test_list_filters_and_sorting(client, user_headers, categories):
    create_transaction(client, user_headers, categories["Food & Dining"], amount=10, description="Coffee beans", date="2024-01-05")
    create_transaction(client, user_headers, categories["Shopping"], amount=99, description="Shoes", date="2024-02-01")
    create_transaction(client, user_headers, categories["Salary"], amount=2000, type="income", description="January pay", date="2024-01-31")

    response = client.get("/api/transactions?type=expense&sort_by=amount&sort_order=asc", headers=user_headers)
    amounts = [t["amount"] for t in response.json()["data"]["transactions"]]
    assert amounts == [10, 99]

    response = client.get("/api/transactions?search=COFFEE", headers=user_headers)
    assert [t["description"] for t in response.json()["data"]["transactions"]] == ["Coffee beans"]

    response = client.get(
        "/api/transactions?start_date=2024-01-01&end_date=2024-01-31", headers=user_headers
    )
    assert response.json()["data"]["pagination"]["total_count"] == 2

    response = client.get(f"/api/transactions?category={categories['Shopping']}", headers=user_headers)
    assert [t["description"] for t in response.json()["data"]["transactions"]] == ["Shoes"]

    # Unsupported sort values fall back to date desc
    response = client.get("/api/transactions?sort_by=password&sort_order=sideways", headers=user_headers)
    dates = [t["date"] for t in response.json()["data"]["transactions"]]
    assert dates == ["2024-02-01", "2024-01-31", "2024-01-05"]


def test_list_is_scoped_to_owner(client, user_headers, other_headers, categories):
    create_transaction(client, user_headers, categories["Food & Dining"])
    create_transaction(client, other_headers, categories["Food & Dining"])

    response = client.get("/api/transactions", headers=user_headers)
    assert response.json()["data"]["pagination"]["total_count"] == 1


def test_user_id_override_is_admin_only(client, other_user, user_headers, other_headers, admin_headers, categories):
    create_transaction(client, other_headers, categories["Food & Dining"])

    response = client.get(f"/api/transactions?user_id={other_user.id}", headers=user_headers)
    assert response.json()["data"]["pagination"]["total_count"] == 0

    response = client.get(f"/api/transactions?user_id={other_user.id}", headers=admin_headers)
    assert response.json()["data"]["pagination"]["total_count"] == 1


def test_get_transaction(client, user_headers, categories):
    created = create_transaction(client, user_headers, categories["Food & Dining"]).json()["data"]
    response = client.get(f"/api/transactions/{created['id']}", headers=user_headers)
    assert response.status_code == 200
    assert response.json()["data"]["description"] == "Groceries"


def test_get_missing_transaction(client, user_headers):
    response = client.get("/api/transactions/12345", headers=user_headers)
    assert response.status_code == 404
    assert response.json()["message"] == "Transaction not found"


def test_cross_owner_access_is_not_found(client, db, user_headers, other_headers, readonly_headers, categories):
    created = create_transaction(client, other_headers, categories["Food & Dining"]).json()["data"]
    url = f"/api/transactions/{created['id']}"

    assert client.get(url, headers=user_headers).status_code == 404
    assert client.put(url, json={"amount": 1}, headers=user_headers).status_code == 404
    assert client.delete(url, headers=user_headers).status_code == 404
    assert client.get(url, headers=readonly_headers).status_code == 404
    assert client.put(url, json={"amount": 1}, headers=readonly_headers).status_code == 403
    assert client.delete(url, headers=readonly_headers).status_code == 403

    stored = db.query(Transaction).filter(Transaction.id == created["id"]).first()
    assert float(stored.amount) == 42.5


def test_admin_reaches_any_transaction(client, admin_headers, other_headers, categories):
    created = create_transaction(client, other_headers, categories["Food & Dining"]).json()["data"]
    url = f"/api/transactions/{created['id']}"

    assert client.get(url, headers=admin_headers).status_code == 200
    response = client.put(url, json={"description": "Fixed by admin"}, headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["data"]["description"] == "Fixed by admin"
    assert client.delete(url, headers=admin_headers).status_code == 200


def test_update_validates_merged_values(client, db, user_headers, categories):
    created = create_transaction(client, user_headers, categories["Food & Dining"]).json()["data"]
    url = f"/api/transactions/{created['id']}"

    # Switching only the type would leave an expense category on an income row
    response = client.put(url, json={"type": "income"}, headers=user_headers)
    assert response.status_code == 400
    assert response.json()["message"] == "Category type does not match transaction type"
    stored = db.query(Transaction).filter(Transaction.id == created["id"]).first()
    assert stored.type.value == "expense"

    response = client.put(
        url,
        json={"type": "income", "category_id": categories["Salary"], "amount": 1500},
        headers=user_headers
    )
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["type"] == "income"
    assert data["category_name"] == "Salary"
    assert data["amount"] == 1500


def test_delete_transaction(client, user_headers, categories):
    created = create_transaction(client, user_headers, categories["Food & Dining"]).json()["data"]
    url = f"/api/transactions/{created['id']}"

    response = client.delete(url, headers=user_headers)
    assert response.status_code == 200
    assert client.get(url, headers=user_headers).status_code == 404


def test_writes_are_visible_immediately(client, user_headers, categories):
    """Listing after each write never serves a stale page."""
    assert client.get("/api/transactions", headers=user_headers).json()["data"]["transactions"] == []

    created = create_transaction(client, user_headers, categories["Food & Dining"]).json()["data"]
    listed = client.get("/api/transactions", headers=user_headers).json()["data"]["transactions"]
    assert [t["id"] for t in listed] == [created["id"]]

    client.put(f"/api/transactions/{created['id']}", json={"amount": 7.25}, headers=user_headers)
    listed = client.get("/api/transactions", headers=user_headers).json()["data"]["transactions"]
    assert listed[0]["amount"] == 7.25

    client.delete(f"/api/transactions/{created['id']}", headers=user_headers)
    listed = client.get("/api/transactions", headers=user_headers).json()["data"]["transactions"]
    assert listed == []


def test_summary_example(client, admin_headers, user_headers):
    category = client.post(
        "/api/categories",
        json={"name": "Salary", "type": "income"},
        headers=admin_headers
    ).json()["data"]
    create_transaction(
        client, user_headers, category["id"],
        amount=1000, type="income", description="Paycheck", date="2024-01-15"
    )

    response = client.get(
        "/api/transactions/summary?start_date=2024-01-01&end_date=2024-01-31",
        headers=user_headers
    )
    assert response.status_code == 200
    assert response.json()["data"] == {
        "income": {"count": 1, "total": 1000},
        "expense": {"count": 0, "total": 0},
        "balance": 1000,
    }


def test_summary_refreshes_after_write(client, user_headers, categories):
    client.get("/api/transactions/summary", headers=user_headers)
    create_transaction(client, user_headers, categories["Food & Dining"], amount=20)

    summary = client.get("/api/transactions/summary", headers=user_headers).json()["data"]
    assert summary["expense"] == {"count": 1, "total": 20}
    assert summary["balance"] == -20


def test_export_csv(client, user_headers, other_headers, categories):
    create_transaction(client, user_headers, categories["Food & Dining"], description="Lunch, with friends")
    create_transaction(client, other_headers, categories["Shopping"], description="Not mine")

    response = client.get("/api/transactions/export?format=csv", headers=user_headers)
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert "attachment" in response.headers["content-disposition"]

    lines = response.text.strip().splitlines()
    assert lines[0] == "id,date,type,category,description,amount"
    assert len(lines) == 2
    assert '"Lunch, with friends"' in lines[1]
    assert lines[1].endswith(",42.50")


def test_export_rejects_unknown_format(client, user_headers):
    response = client.get("/api/transactions/export?format=xlsx", headers=user_headers)
    assert response.status_code == 400


def test_search_matches_wildcards_literally(client, user_headers, categories):
    food = categories["Food & Dining"]
    create_transaction(client, user_headers, food, description="50% off lunch")
    create_transaction(client, user_headers, food, description="500 bonus snacks")
    create_transaction(client, user_headers, food, description="meal_deal")
    create_transaction(client, user_headers, food, description="meal deal")

    response = client.get("/api/transactions", params={"search": "50%"}, headers=user_headers)
    assert [t["description"] for t in response.json()["data"]["transactions"]] == ["50% off lunch"]

    response = client.get("/api/transactions", params={"search": "meal_"}, headers=user_headers)
    assert [t["description"] for t in response.json()["data"]["transactions"]] == ["meal_deal"]
