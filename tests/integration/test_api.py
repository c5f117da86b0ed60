"""Integration tests for API endpoints"""

import pytest
from fastapi.testclient import TestClient


@pytest.fixture
def configured_user(client: TestClient) -> str:
    """user_1 with salary, 10% tax and mutual fund / US stock allocations"""
    client.post("/v1/salary", json={"user_id": "user_1", "monthly_amount": 100000, "effective_from": "2025-01-01"})
    client.put("/v1/tax-rule", json={"user_id": "user_1", "mode": "PERCENTAGE", "percentage": 10})
    client.put(
        "/v1/allocations",
        json={"user_id": "user_1", "bucket": "MUTUAL_FUND", "allocation_type": "PERCENTAGE", "percent": 10},
    )
    client.put(
        "/v1/allocations",
        json={"user_id": "user_1", "bucket": "US_STOCK", "allocation_type": "AMOUNT", "fixed_amount": 20000},
    )
    return "user_1"


def create_loan(client: TestClient, **overrides) -> dict:
    body = {
        "user_id": "user_1",
        "name": "Car loan",
        "principal": 120000,
        "annual_rate": 12,
        "recurrence": "MONTHLY",
        "start_date": "2025-01-10",
        "tenure": 12,
    }
    body.update(overrides)
    return client.post("/v1/loans", json=body)


def test_health_endpoint(client: TestClient):
    """Test health check endpoint"""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_metrics_endpoint(client: TestClient):
    """Test Prometheus metrics endpoint"""
    response = client.get("/metrics")
    assert response.status_code == 200
    assert "finledger_plan_executions_total" in response.text
    assert "finledger_period_close_total" in response.text


def test_request_id_header(client: TestClient):
    response = client.get("/health")
    assert len(response.headers["X-Request-ID"]) == 36


def test_request_id_header_echoed(client: TestClient):
    response = client.get("/health", headers={"X-Request-ID": "batch-2025-03-15"})
    assert response.headers["X-Request-ID"] == "batch-2025-03-15"


def test_metrics_labelled_by_route_template(client: TestClient):
    client.get("/v1/loans/missing-loan", params={"user_id": "user_1"})

    text = client.get("/metrics").text
    assert 'endpoint="/v1/loans/{loan_id}"' in text
    assert "missing-loan" not in text


class TestLoans:
    def test_create_loan_returns_schedule(self, client: TestClient):
        response = create_loan(client)

        assert response.status_code == 201
        data = response.json()
        assert data["installment_amount"] == pytest.approx(10661.85)
        assert len(data["installments"]) == 12
        assert data["installments"][0]["due_date"] == "2025-02-10"
        assert data["outstanding"] == 120000

    def test_invalid_loan_rejected(self, client: TestClient):
        response = create_loan(client, recurrence="CUSTOM")

        assert response.status_code == 422

    def test_pay_then_pay_again(self, client: TestClient):
        loan_id = create_loan(client).json()["id"]
        payment = {"user_id": "user_1", "paid_amount": 10661.85, "paid_date": "2025-02-10", "payment_method": "UPI"}

        first = client.post(f"/v1/loans/{loan_id}/installments/1/payment", json=payment)
        second = client.post(f"/v1/loans/{loan_id}/installments/1/payment", json=payment)

        assert first.status_code == 200
        assert first.json()["installments"][0]["is_paid"] is True
        assert first.json()["outstanding"] == pytest.approx(110538.15)
        assert second.status_code == 409

    def test_unknown_loan(self, client: TestClient):
        response = client.get("/v1/loans/missing", params={"user_id": "user_1"})

        assert response.status_code == 404

    def test_loan_in_closed_month_conflicts(self, client: TestClient):
        client.post("/v1/snapshots/2025/2/close", params={"user_id": "user_1"})

        response = create_loan(client, start_date="2025-02-10")

        assert response.status_code == 409
        assert "closed" in response.json()["detail"]


class TestPlans:
    def test_plan_within_allocation(self, client: TestClient, configured_user: str):
        response = client.post(
            "/v1/plans",
            json={
                "user_id": configured_user,
                "name": "Bluechip SIP",
                "amount": 5000,
                "recurrence": "MONTHLY",
                "start_date": "2025-01-15",
                "bucket": "MUTUAL_FUND",
                "symbol": "120503",
            },
        )

        assert response.status_code == 201
        assert response.json()["symbol"] == "120503"
        listed = client.get("/v1/plans", params={"user_id": configured_user}).json()
        assert [p["name"] for p in listed] == ["Bluechip SIP"]

    def test_plan_over_allocation_rejected(self, client: TestClient, configured_user: str):
        response = client.post(
            "/v1/plans",
            json={
                "user_id": configured_user,
                "name": "Too big",
                "amount": 9500,
                "recurrence": "MONTHLY",
                "start_date": "2025-01-15",
                "bucket": "MUTUAL_FUND",
                "symbol": "120503",
            },
        )

        assert response.status_code == 422
        detail = response.json()["detail"]
        assert detail["budget"] == 9000
        assert detail["available"] == 9000

    def test_plan_without_allocation_rule(self, client: TestClient, configured_user: str):
        response = client.post(
            "/v1/plans",
            json={
                "user_id": configured_user,
                "name": "Crypto",
                "amount": 1000,
                "recurrence": "MONTHLY",
                "start_date": "2025-01-15",
                "bucket": "CRYPTO",
                "symbol": "bitcoin",
            },
        )

        assert response.status_code == 400

    def test_custom_plan_needs_day(self, client: TestClient, configured_user: str):
        response = client.post(
            "/v1/plans",
            json={
                "user_id": configured_user,
                "name": "Custom",
                "amount": 1000,
                "recurrence": "CUSTOM",
                "start_date": "2025-01-15",
            },
        )

        assert response.status_code == 422

    def test_allocation_dry_run(self, client: TestClient, configured_user: str):
        response = client.post(
            "/v1/allocations/check", json={"user_id": configured_user, "bucket": "MUTUAL_FUND", "proposed": 4000}
        )

        assert response.status_code == 200
        assert response.json()["remaining"] == pytest.approx(5000)


class TestPurchases:
    def test_purchase_updates_holding(self, client: TestClient, configured_user: str):
        body = {"user_id": configured_user, "bucket": "MUTUAL_FUND", "symbol": "120503", "quantity": 10, "price": 40}

        client.post("/v1/purchases", json=body)
        response = client.post("/v1/purchases", json={**body, "price": 60})

        assert response.status_code == 201
        data = response.json()
        assert data["quantity"] == 20
        assert data["avg_cost"] == pytest.approx(50)
        assert data["current_value"] == pytest.approx(1000)

    def test_future_purchase_rejected(self, client: TestClient, configured_user: str):
        response = client.post(
            "/v1/purchases",
            json={
                "user_id": configured_user,
                "bucket": "MUTUAL_FUND",
                "symbol": "120503",
                "quantity": 1,
                "price": 40,
                "purchase_date": "2025-04-01",
            },
        )

        assert response.status_code == 422


class TestBorrowedFunds:
    def test_borrow_and_return(self, client: TestClient):
        fund = client.post(
            "/v1/borrowed-funds",
            json={"user_id": "user_1", "lender_name": "Asha", "amount": 10000, "borrowed_date": "2025-03-01"},
        ).json()

        partial = client.post(f"/v1/borrowed-funds/{fund['id']}/returns", json={"user_id": "user_1", "amount": 4000})
        full = client.post(f"/v1/borrowed-funds/{fund['id']}/returns", json={"user_id": "user_1", "amount": 6000})
        extra = client.post(f"/v1/borrowed-funds/{fund['id']}/returns", json={"user_id": "user_1", "amount": 1})

        assert partial.json()["remaining"] == 6000
        assert full.json()["is_fully_returned"] is True
        assert full.json()["actual_return_date"] == "2025-03-15"
        assert extra.status_code == 409


class TestSnapshots:
    def test_live_then_closed(self, client: TestClient, configured_user: str):
        client.post(
            "/v1/expenses",
            json={
                "user_id": configured_user,
                "expense_date": "2025-02-05",
                "amount": 30000,
                "category": "NEEDS",
                "expense_type": "EXPECTED",
            },
        )

        live = client.get("/v1/snapshots/2025/2", params={"user_id": configured_user}).json()
        closed = client.post("/v1/snapshots/2025/2/close", params={"user_id": configured_user}).json()
        again = client.post("/v1/snapshots/2025/2/close", params={"user_id": configured_user}).json()

        assert live["is_closed"] is False
        assert live["surplus_amount"] == pytest.approx(60000)
        assert closed["outcome"] == "created"
        assert closed["snapshot"]["is_closed"] is True
        assert again["outcome"] == "skipped"
        assert again["snapshot"]["closed_at"] == client.get(
            "/v1/snapshots/2025/2", params={"user_id": configured_user}
        ).json()["closed_at"]

    def test_expense_in_closed_month_conflicts(self, client: TestClient, configured_user: str):
        client.post("/v1/snapshots/2025/2/close", params={"user_id": configured_user})

        response = client.post(
            "/v1/expenses",
            json={
                "user_id": configured_user,
                "expense_date": "2025-02-05",
                "amount": 100,
                "category": "AVOID",
                "expense_type": "UNEXPECTED",
            },
        )

        assert response.status_code == 409

    def test_invalid_month(self, client: TestClient):
        response = client.get("/v1/snapshots/2025/13", params={"user_id": "user_1"})

        assert response.status_code == 422


class TestCron:
    def test_requires_secret(self, client: TestClient):
        assert client.post("/v1/cron/plan-execution").status_code == 401
        assert client.post("/v1/cron/month-close", headers={"Authorization": "Bearer wrong"}).status_code == 401

    def test_plan_execution_batch(self, client: TestClient, cron_headers: dict, configured_user: str):
        client.post(
            "/v1/plans",
            json={
                "user_id": configured_user,
                "name": "Bluechip SIP",
                "amount": 5000,
                "recurrence": "MONTHLY",
                "start_date": "2025-01-15",
                "bucket": "MUTUAL_FUND",
                "symbol": "120503",
            },
        )

        first = client.post("/v1/cron/plan-execution", headers=cron_headers).json()
        second = client.post("/v1/cron/plan-execution", headers=cron_headers).json()

        assert first["run_date"] == "2025-03-15"
        assert (first["executed"], first["skipped"]) == (1, 0)
        assert (second["executed"], second["skipped"]) == (0, 1)
        history = client.get("/v1/plans/executions", params={"user_id": configured_user}).json()
        assert len(history["executions"]) == 1
        assert history["executions"][0]["quantity"] == pytest.approx(100)

    def test_month_close_defaults_to_previous_month(self, client: TestClient, cron_headers: dict, configured_user: str):
        response = client.post("/v1/cron/month-close", headers=cron_headers)

        assert response.status_code == 200
        data = response.json()
        assert (data["year"], data["month"]) == (2025, 2)
        assert data["created"] == 1

    def test_month_close_needs_both_year_and_month(self, client: TestClient, cron_headers: dict):
        response = client.post("/v1/cron/month-close", params={"year": 2025}, headers=cron_headers)

        assert response.status_code == 422
