"""
Tests for the HTTP routes and the error mapping.
"""
import jwt
import pytest
from decimal import Decimal
from unittest.mock import patch
from fastapi.testclient import TestClient

from split_ledger.core.config import settings
from split_ledger.core.exceptions import StoreUnavailable
from split_ledger.db.database import get_db
from split_ledger.main import app
from split_ledger.models.groups import Group, GroupMember
from split_ledger.services.ledger_store import SqlLedgerStore


def auth_headers(user_id: str) -> dict:
    token = jwt.encode({"user_id": user_id}, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
    return {"access-token": f"Bearer {token}"}


@pytest.fixture
def client(db_session, group):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def expense_body(**overrides):
    body = {
        "amount": "90.00",
        "description": "Groceries",
        "category": "food",
        "expense_date": "2024-03-15",
    }
    body.update(overrides)
    return body


@pytest.mark.integration
class TestExpenseRoutes:

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "healthy"}

    @patch("split_ledger.main.close_rabbitmq_producer")
    def test_shutdown_closes_alert_producer(self, mock_close):
        with TestClient(app) as client:
            assert client.get("/").status_code == 200
            mock_close.assert_not_called()

        mock_close.assert_called_once_with()

    def test_create_equal_expense(self, client):
        response = client.post("/expenses/groups/g1", json=expense_body(), headers=auth_headers("alice"))

        assert response.status_code == 201
        data = response.json()
        assert data["paid_by"] == "alice"
        assert data["category"] == "food"
        assert Decimal(data["amount"]) == Decimal("90.00")
        assert {s["user_id"]: Decimal(s["share_amount"]) for s in data["shares"]} == {
            "alice": Decimal("30.00"), "bob": Decimal("30.00"), "carol": Decimal("30.00")
        }

    def test_create_custom_expense(self, client):
        body = expense_body(split_type="custom", custom_splits=[
            {"user_id": "bob", "share_amount": "50.00"},
            {"user_id": "carol", "share_amount": "40.00"},
        ])

        response = client.post("/expenses/groups/g1", json=body, headers=auth_headers("alice"))

        assert response.status_code == 201
        assert len(response.json()["shares"]) == 2

    def test_custom_mismatch_is_rejected(self, client):
        body = expense_body(split_type="custom", custom_splits=[
            {"user_id": "bob", "share_amount": "50.00"},
            {"user_id": "carol", "share_amount": "39.00"},
        ])

        response = client.post("/expenses/groups/g1", json=body, headers=auth_headers("alice"))

        assert response.status_code == 400
        assert response.json()["error"] == "split_mismatch"
        listing = client.get("/expenses/groups/g1", headers=auth_headers("alice"))
        assert listing.json() == []

    def test_custom_split_requires_entries(self, client):
        response = client.post(
            "/expenses/groups/g1", json=expense_body(split_type="custom"), headers=auth_headers("alice")
        )
        assert response.status_code == 422

    @pytest.mark.parametrize("amount", ["0", "-5.00", "1.234"])
    def test_invalid_amount_is_rejected(self, client, amount):
        response = client.post("/expenses/groups/g1", json=expense_body(amount=amount), headers=auth_headers("alice"))
        assert response.status_code == 422

    def test_unknown_category_is_rejected(self, client):
        response = client.post(
            "/expenses/groups/g1", json=expense_body(category="gambling"), headers=auth_headers("alice")
        )
        assert response.status_code == 422

    def test_non_member_cannot_record(self, client):
        response = client.post("/expenses/groups/g1", json=expense_body(), headers=auth_headers("mallory"))

        assert response.status_code == 403
        assert response.json()["error"] == "not_group_member"

    def test_invalid_token(self, client):
        response = client.post("/expenses/groups/g1", json=expense_body(), headers={"access-token": "nope"})
        assert response.status_code == 401

    def test_store_failure_is_retryable(self, client):
        with patch.object(SqlLedgerStore, "insert_shares", side_effect=StoreUnavailable("down")):
            response = client.post("/expenses/groups/g1", json=expense_body(), headers=auth_headers("alice"))

        assert response.status_code == 503
        assert response.json()["retryable"] is True
        assert client.get("/expenses/groups/g1", headers=auth_headers("alice")).json() == []

    @patch("split_ledger.services.expense_service.report_compensation_failure")
    def test_compensation_failure_is_not_retryable(self, mock_report, client):
        with patch.object(SqlLedgerStore, "insert_shares", side_effect=StoreUnavailable("down")), \
                patch.object(SqlLedgerStore, "delete_expense", side_effect=StoreUnavailable("still down")):
            response = client.post("/expenses/groups/g1", json=expense_body(), headers=auth_headers("alice"))

        assert response.status_code == 500
        data = response.json()
        assert data["error"] == "compensation_failed"
        assert data["retryable"] is False
        assert data["expense_id"]
        mock_report.assert_called_once()

    def test_get_expense_details(self, client):
        created = client.post("/expenses/groups/g1", json=expense_body(), headers=auth_headers("alice")).json()

        response = client.get(f"/expenses/{created['id']}", headers=auth_headers("bob"))

        assert response.status_code == 200
        assert response.json()["id"] == created["id"]
        assert len(response.json()["shares"]) == 3

    def test_get_missing_expense(self, client):
        assert client.get("/expenses/missing", headers=auth_headers("alice")).status_code == 404

    def test_recorded_expense_does_not_depend_on_share_read(self, client):
        with patch.object(SqlLedgerStore, "select_shares", side_effect=StoreUnavailable("replica lag")):
            response = client.post("/expenses/groups/g1", json=expense_body(), headers=auth_headers("alice"))

        assert response.status_code == 201
        assert len(response.json()["shares"]) == 3
        listing = client.get("/expenses/groups/g1", headers=auth_headers("alice")).json()
        assert [item["id"] for item in listing] == [response.json()["id"]]

    def test_my_expenses(self, client, db_session):
        db_session.add(Group(id="g2", name="Flat"))
        db_session.add(GroupMember(group_id="g2", user_id="bob", display_name="Bob"))
        db_session.add(GroupMember(group_id="g2", user_id="dave", display_name="Dave"))
        db_session.commit()
        trip = client.post("/expenses/groups/g1", json=expense_body(), headers=auth_headers("alice")).json()
        rent = client.post("/expenses/groups/g2", json=expense_body(amount="40.00"), headers=auth_headers("dave")).json()

        mine = client.get("/expenses/mine", headers=auth_headers("bob")).json()
        assert {item["id"] for item in mine} == {trip["id"], rent["id"]}

        theirs = client.get("/expenses/mine", headers=auth_headers("carol")).json()
        assert [item["id"] for item in theirs] == [trip["id"]]

    def test_my_expenses_without_groups(self, client):
        response = client.get("/expenses/mine", headers=auth_headers("mallory"))
        assert response.status_code == 200
        assert response.json() == []


@pytest.mark.integration
class TestSettlementRoutes:

    def test_balances_and_optimize(self, client):
        client.post("/expenses/groups/g1", json=expense_body(amount="30.00"), headers=auth_headers("alice"))

        balances = client.get("/settlements/groups/g1/balances", headers=auth_headers("bob")).json()
        assert {row["user_id"]: Decimal(row["net_balance"]) for row in balances} == {
            "alice": Decimal("20.00"), "bob": Decimal("-10.00"), "carol": Decimal("-10.00")
        }

        settlements = client.get("/settlements/groups/g1/optimize", headers=auth_headers("bob")).json()
        assert [(s["from_user_id"], s["to_user_id"], Decimal(s["amount"])) for s in settlements] == [
            ("bob", "alice", Decimal("10.00")),
            ("carol", "alice", Decimal("10.00")),
        ]

    def test_debt_summary(self, client):
        client.post("/expenses/groups/g1", json=expense_body(amount="30.00"), headers=auth_headers("alice"))

        rows = client.get("/settlements/groups/g1/debts", headers=auth_headers("carol")).json()

        alice = next(row for row in rows if row["user_id"] == "alice")
        assert Decimal(alice["total_paid"]) == Decimal("30.00")
        assert Decimal(alice["total_owed"]) == Decimal("10.00")

    def test_non_member_cannot_view(self, client):
        response = client.get("/settlements/groups/g1/optimize", headers=auth_headers("mallory"))
        assert response.status_code == 403
