"""
API Flow Tests.

Owner dispatch through driver pickup, ordered delivery, trip completion and
settlement over HTTP, plus the error envelope and auth checks.
"""

from datetime import timedelta
from decimal import Decimal

from haulcore.app.core.jwt import create_access_token
from haulcore.app.models.load_enums import LoadStatus
from haulcore.app.models.trip_enums import TripStatus

OWNER = {"role": "OWNER", "driver_id": None}


async def dispatch_trip(client, owner_headers, count=2):
    """Owner posts ``count`` loads and puts them on one trip in delivery order."""
    load_ids = []
    for position in range(1, count + 1):
        response = await client.post("/v1/owner/loads", headers=owner_headers, json={
            "contract_balance_due": "500",
            "customer_name": f"Customer {position}",
            "delivery_city": "Boise",
            "delivery_state": "ID",
        })
        assert response.status_code == 201
        load_ids.append(response.json()["id"])

    response = await client.post("/v1/owner/trips", headers=owner_headers, json={"driver_id": 10, "trip_number": "T-100"})
    assert response.status_code == 201
    trip_id = response.json()["id"]

    for position, load_id in enumerate(load_ids, start=1):
        response = await client.post(
            f"/v1/owner/trips/{trip_id}/loads", headers=owner_headers,
            json={"load_id": load_id, "delivery_order": position},
        )
        assert response.status_code == 201
        assert response.json()["sequence_index"] == position

    return trip_id, load_ids


async def pick_up(client, headers, load_id, ending_volume="300"):
    assert (await client.post(f"/v1/driver/loads/{load_id}/accept", headers=headers)).status_code == 200
    response = await client.post(
        f"/v1/driver/loads/{load_id}/start-loading", headers=headers, json={"starting_volume": "0"}
    )
    assert response.status_code == 200
    response = await client.post(
        f"/v1/driver/loads/{load_id}/finish-loading", headers=headers, json={"ending_volume": ending_volume}
    )
    assert response.status_code == 200
    assert response.json()["status"] == LoadStatus.LOADED.value


async def test_health_check(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert "X-Correlation-ID" in response.headers


async def test_full_trip_over_http(client, auth_headers, notifier):
    owner_headers = auth_headers(**OWNER)
    driver_headers = auth_headers()
    trip_id, (first, second) = await dispatch_trip(client, owner_headers)

    response = await client.post(f"/v1/driver/trips/{trip_id}/start", headers=driver_headers, json={"odometer_start": "1000"})
    assert response.status_code == 200
    assert response.json()["status"] == TripStatus.ACTIVE.value

    await pick_up(client, driver_headers, first)
    await pick_up(client, driver_headers, second, ending_volume="250")

    # Second delivery cannot jump the queue
    response = await client.post(f"/v1/driver/loads/{second}/start-delivery", headers=driver_headers)
    assert response.status_code == 409
    body = response.json()
    assert body["error_code"] == "ERR_DELIVERY_ORDER_001"
    assert body["details"]["blocking_load_id"] == first
    assert body["message"] == "Complete delivery #1 (Customer 1) first"

    response = await client.get(f"/v1/driver/loads/{second}/delivery-check", headers=driver_headers)
    assert response.json()["allowed"] is False
    assert response.json()["blocking_load"]["display_name"] == "Customer 1"

    response = await client.post(
        f"/v1/driver/loads/{first}/start-delivery", headers=driver_headers,
        json={"collected_amount": "500", "payment_method": "cash"},
    )
    assert response.status_code == 200
    assert Decimal(response.json()["remaining_balance"]) == Decimal("0")
    assert (await client.post(f"/v1/driver/loads/{first}/complete-delivery", headers=driver_headers)).status_code == 200

    response = await client.get(f"/v1/driver/trips/{trip_id}", headers=driver_headers)
    assert response.json()["current_delivery_index"] == 2

    response = await client.post(
        f"/v1/driver/loads/{second}/start-delivery", headers=driver_headers,
        json={"collected_amount": "200", "payment_method": "zelle"},
    )
    assert response.status_code == 200
    assert (await client.post(f"/v1/driver/loads/{second}/complete-delivery", headers=driver_headers)).status_code == 200

    response = await client.get(f"/v1/driver/loads/{second}/balance", headers=driver_headers)
    assert response.json()["agrees"] is True
    assert Decimal(response.json()["remaining_balance"]) == Decimal("300")

    response = await client.post(
        f"/v1/driver/trips/{trip_id}/expenses", headers=driver_headers,
        json={"category": "fuel", "amount": "150", "paid_by": "driver_personal"},
    )
    assert response.status_code == 201
    assert response.json()["reimbursable"] is True

    response = await client.post(f"/v1/driver/trips/{trip_id}/complete", headers=driver_headers, json={"odometer_end": "1400"})
    assert response.status_code == 200
    assert response.json()["status"] == TripStatus.COMPLETED.value

    response = await client.post(f"/v1/owner/trips/{trip_id}/settle", headers=owner_headers)
    assert response.status_code == 200
    settlement = response.json()
    assert Decimal(settlement["total_miles"]) == Decimal("400")
    assert Decimal(settlement["total_volume"]) == Decimal("550")
    assert Decimal(settlement["total_collected"]) == Decimal("700")
    assert Decimal(settlement["total_expenses"]) == Decimal("150")
    assert Decimal(settlement["reimbursable_expenses"]) == Decimal("150")
    assert Decimal(settlement["net_amount"]) == Decimal("550")
    assert [item["category"] for item in settlement["line_items"]] == ["collection", "collection", "expense"]

    response = await client.get(f"/v1/owner/trips/{trip_id}", headers=owner_headers)
    detail = response.json()
    assert detail["trip"]["status"] == TripStatus.SETTLED.value
    assert [load["id"] for load in detail["loads"]] == [first, second]
    assert detail["settlement"]["id"] == settlement["id"]

    assert "trip_settled" in notifier.kinds()


async def test_completion_blocked_by_undelivered_load(client, auth_headers):
    owner_headers = auth_headers(**OWNER)
    driver_headers = auth_headers()
    trip_id, _ = await dispatch_trip(client, owner_headers, count=1)
    await client.post(f"/v1/driver/trips/{trip_id}/start", headers=driver_headers, json={"odometer_start": "10"})

    response = await client.post(f"/v1/driver/trips/{trip_id}/complete", headers=driver_headers, json={"odometer_end": "oops"})

    assert response.status_code == 409
    assert response.json()["error_code"] == "ERR_TRIP_INCOMPLETE_001"
    assert response.json()["details"]["undelivered_count"] == 1


async def test_bad_odometer_is_a_domain_validation_error(client, auth_headers):
    trip_id, _ = await dispatch_trip(client, auth_headers(**OWNER), count=0)

    response = await client.post(f"/v1/driver/trips/{trip_id}/start", headers=auth_headers(), json={"odometer_start": "abc"})

    assert response.status_code == 422
    assert response.json()["error_code"] == "ERR_VALIDATION_001"
    assert response.json()["details"]["field"] == "odometer_start"


async def test_invalid_transition_is_conflict(client, auth_headers):
    _, (load_id,) = await dispatch_trip(client, auth_headers(**OWNER), count=1)

    response = await client.post(f"/v1/driver/loads/{load_id}/complete-delivery", headers=auth_headers())

    assert response.status_code == 409
    assert response.json()["error_code"] == "ERR_TRANSITION_001"
    assert response.json()["details"]["current_status"] == "pending"


async def test_other_company_sees_not_found(client, auth_headers):
    _, (load_id,) = await dispatch_trip(client, auth_headers(**OWNER), count=1)

    response = await client.post(
        f"/v1/driver/loads/{load_id}/accept", headers=auth_headers(company_id=2, driver_id=77)
    )

    assert response.status_code == 404
    assert response.json()["error_code"] == "ERR_NOT_FOUND_001"


async def test_expense_two_phase_delete_over_http(client, auth_headers):
    trip_id, _ = await dispatch_trip(client, auth_headers(**OWNER), count=0)
    headers = auth_headers()
    expense = (await client.post(
        f"/v1/driver/trips/{trip_id}/expenses", headers=headers,
        json={"category": "tolls", "amount": "12.50", "paid_by": "company_card"},
    )).json()

    response = await client.post(f"/v1/driver/trips/expenses/{expense['id']}/delete", headers=headers)
    assert response.status_code == 200
    assert (await client.get(f"/v1/driver/trips/{trip_id}/expenses", headers=headers)).json() == []

    response = await client.post(f"/v1/driver/trips/expenses/{expense['id']}/commit-delete", headers=headers)
    assert response.status_code == 204
    listed = await client.get(f"/v1/driver/trips/{trip_id}/expenses?include_pending=true", headers=headers)
    assert listed.json() == []


async def test_request_body_validation(client, auth_headers):
    trip_id, _ = await dispatch_trip(client, auth_headers(**OWNER), count=0)

    response = await client.post(
        f"/v1/driver/trips/{trip_id}/expenses", headers=auth_headers(),
        json={"category": "fuel", "amount": "0", "paid_by": "company_card"},
    )

    assert response.status_code == 422
    assert response.json()["error_code"] == "ERR_VALIDATION"


async def test_owner_cancels_load(client, auth_headers):
    owner_headers = auth_headers(**OWNER)
    _, (load_id,) = await dispatch_trip(client, owner_headers, count=1)

    response = await client.post(f"/v1/owner/loads/{load_id}/cancel", headers=owner_headers, json={"reason": "Customer postponed"})

    assert response.status_code == 200
    assert response.json()["status"] == LoadStatus.CANCELLED.value
    audit = await client.get(f"/v1/owner/audit?entity_type=load&entity_id={load_id}", headers=owner_headers)
    assert [entry["action"] for entry in audit.json()] == ["LOAD_POSTED", "LOAD_CANCELLED"]
    assert audit.json()[1]["metadata"] == {"reason": "Customer postponed"}


async def test_missing_settlement_is_not_found(client, auth_headers):
    owner_headers = auth_headers(**OWNER)
    trip_id, _ = await dispatch_trip(client, owner_headers, count=0)

    response = await client.get(f"/v1/owner/trips/{trip_id}/settlement", headers=owner_headers)

    assert response.status_code == 404


async def test_driver_cannot_use_owner_routes(client, auth_headers):
    response = await client.post("/v1/owner/trips", headers=auth_headers(), json={"driver_id": 10})

    assert response.status_code == 403
    assert response.json()["message"] == "Owner access required"


async def test_owner_token_cannot_use_driver_routes(client, auth_headers):
    response = await client.get("/v1/driver/trips/1", headers=auth_headers(**OWNER))

    assert response.status_code == 403


async def test_garbage_token_rejected(client):
    response = await client.get("/v1/driver/loads/1", headers={"Authorization": "Bearer not-a-jwt"})

    assert response.status_code == 401
    assert response.json()["error_code"] == "ERR_UNAUTHORIZED"


async def test_expired_token_rejected(client):
    token = create_access_token(
        {"sub": "driver-10", "driver_id": 10, "company_id": 1, "role": "DRIVER"},
        expires_delta=timedelta(minutes=-5),
    )

    response = await client.get("/v1/driver/loads/1", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401


async def test_token_without_company_rejected(client):
    token = create_access_token({"sub": "driver-10", "driver_id": 10, "role": "DRIVER"})

    response = await client.get("/v1/driver/loads/1", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401
    assert response.json()["message"] == "Token carries no company"


async def test_missing_token_rejected(client):
    response = await client.get("/v1/driver/loads/1")

    # HTTPBearer answers 403 on older FastAPI releases and 401 on newer ones
    assert response.status_code in (401, 403)
