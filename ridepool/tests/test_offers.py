"""
Integration tests for offers and ride requests.

Covers payment caps, owner-only edits, delete-vs-cancel semantics and
the masking of hidden driver fields.
"""

import pytest
from sqlalchemy import select, func

from ridepool.app.core.dependencies import Identity
from ridepool.app.core.exceptions import ValidationError
from ridepool.app.models.offer import Offer
from ridepool.app.schemas.listing import OfferCreate
from ridepool.app.services.listing_store import resolve_contact


@pytest.mark.asyncio
async def test_create_offer_routes_each_leg(client, driver, event_id, geo):
    response = await client.post(
        "/v1/offers",
        json={
            "event_id": event_id,
            "total_seats": 3,
            "legs": [
                {"direction": "GOING", "address": "Driver home", "departure_time": "18:30:00"},
                {"direction": "RETURN", "address": "Driver home"},
            ],
        },
        headers=driver["headers"],
    )

    assert response.status_code == 201
    offer = response.json()
    assert offer["kind"] == "offer"
    assert offer["status"] == "ACTIVE"
    assert offer["available_seats"] == 3
    assert offer["driver_name"] == "Dana Driver"
    assert offer["payment_mode"] == "NOT_REQUIRED"
    assert offer["price_cap"] == 5.0

    legs = {leg["direction"]: leg for leg in offer["legs"]}
    assert legs["GOING"]["distance_km"] == pytest.approx(10.0, abs=0.05)
    # Going legs end at the venue, return legs start there
    assert legs["GOING"]["polyline"][-1] == [32.0, 34.8]
    assert legs["RETURN"]["polyline"][0] == [32.0, 34.8]


@pytest.mark.asyncio
async def test_payment_is_capped_by_route_distance(client, create_offer, driver, event_id, geo):
    geo.distance_km = 10.0

    too_much = await client.post(
        "/v1/offers",
        json={
            "event_id": event_id,
            "total_seats": 2,
            "legs": [{"direction": "GOING", "address": "Driver home"}],
            "payment": {"mode": "OPTIONAL", "amount": 6},
        },
        headers=driver["headers"],
    )
    assert too_much.status_code == 400
    assert too_much.json()["error_code"] == "ERR_PAYMENT_001"
    assert too_much.json()["details"]["cap"] == 5.0

    at_cap = await create_offer(total_seats=2, payment={"mode": "OPTIONAL", "amount": 5})
    assert at_cap["payment_amount"] == 5
    assert at_cap["price_cap"] == 5.0


@pytest.mark.asyncio
async def test_obligatory_payment_needs_method(client, driver, event_id, geo):
    geo.distance_km = 20.0
    response = await client.post(
        "/v1/offers",
        json={
            "event_id": event_id,
            "total_seats": 2,
            "legs": [{"direction": "GOING", "address": "Driver home"}],
            "payment": {"mode": "OBLIGATORY", "amount": 8},
        },
        headers=driver["headers"],
    )
    assert response.status_code == 400
    assert response.json()["error_code"] == "ERR_PAYMENT_001"


@pytest.mark.asyncio
async def test_offer_for_unknown_event(client, driver):
    response = await client.post(
        "/v1/offers",
        json={"event_id": 404, "total_seats": 2, "legs": [{"direction": "GOING", "address": "Driver home"}]},
        headers=driver["headers"],
    )
    assert response.status_code == 404
    assert response.json()["error_code"] == "ERR_NOT_FOUND_001"


@pytest.mark.asyncio
async def test_offer_payload_validation(client, driver, event_id):
    response = await client.post(
        "/v1/offers",
        json={
            "event_id": event_id,
            "total_seats": 0,
            "legs": [{"direction": "GOING", "address": "Driver home"}],
        },
        headers=driver["headers"],
    )
    assert response.status_code == 422
    assert response.json()["error_code"] == "ERR_VALIDATION"

    response = await client.post(
        "/v1/offers",
        json={
            "event_id": event_id,
            "total_seats": 2,
            "legs": [
                {"direction": "GOING", "address": "Driver home"},
                {"direction": "GOING", "address": "Halfway"},
            ],
        },
        headers=driver["headers"],
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_create_requires_authentication(client, event_id):
    response = await client.post(
        "/v1/offers",
        json={"event_id": event_id, "total_seats": 2, "legs": [{"direction": "GOING", "address": "Driver home"}]},
    )
    assert response.status_code == 401
    assert response.json()["error_code"] == "ERR_AUTH_001"


def test_contact_details_must_resolve():
    record = OfferCreate(event_id=1, total_seats=2, legs=[{"direction": "GOING", "address": "Driver home"}])

    with pytest.raises(ValidationError):
        resolve_contact(record, Identity(account_id=1, name="", phone="0501111111"))
    with pytest.raises(ValidationError):
        resolve_contact(record, Identity(account_id=1, name="Dana", phone=""))

    record.phone = "0509999999"
    assert resolve_contact(record, Identity(account_id=1, name="Dana", phone="0501111111")) == (
        "Dana", "0509999999", None
    )


@pytest.mark.asyncio
async def test_hidden_fields_are_masked_for_others(client, driver, passenger, event_id, create_offer):
    await create_offer(total_seats=2, hide_phone=True, hide_email=True)

    public = (await client.get(f"/v1/events/{event_id}/offers")).json()["offers"][0]
    assert public["driver_name"] == "Dana Driver"
    assert public["driver_phone"] is None
    assert public["driver_email"] is None

    other = (await client.get(f"/v1/events/{event_id}/offers", headers=passenger["headers"])).json()["offers"][0]
    assert other["driver_phone"] is None

    own = (await client.get(f"/v1/events/{event_id}/offers", headers=driver["headers"])).json()["offers"][0]
    assert own["driver_phone"] == "0501111111"
    assert own["driver_email"] == "dana@example.com"


@pytest.mark.asyncio
async def test_list_filters(client, event_id, create_offer):
    await create_offer(total_seats=2)
    await create_offer(total_seats=4, preference="FEMALE")

    everything = (await client.get(f"/v1/events/{event_id}/offers")).json()
    assert everything["total"] == 2

    roomy = (await client.get(f"/v1/events/{event_id}/offers", params={"min_seats": 3})).json()
    assert [o["total_seats"] for o in roomy["offers"]] == [4]

    women = (await client.get(f"/v1/events/{event_id}/offers", params={"preference": "FEMALE"})).json()
    assert women["total"] == 1

    returning = (await client.get(f"/v1/events/{event_id}/offers", params={"direction": "RETURN"})).json()
    assert returning["total"] == 0


@pytest.mark.asyncio
async def test_only_owner_updates(client, passenger, create_offer):
    offer = await create_offer(total_seats=2)

    response = await client.put(f"/v1/offers/{offer['id']}", json={"notes": "Hijacked"}, headers=passenger["headers"])
    assert response.status_code == 403
    assert response.json()["error_code"] == "ERR_PERM_001"


@pytest.mark.asyncio
async def test_null_for_required_offer_field_is_rejected(client, driver, create_offer):
    offer = await create_offer(total_seats=2, notes="Blue car")

    for field in ("name", "preference", "total_seats", "hide_phone"):
        response = await client.put(f"/v1/offers/{offer['id']}", json={field: None}, headers=driver["headers"])
        assert response.status_code == 422, field
        assert response.json()["error_code"] == "ERR_VALIDATION"

    # Clearable fields still accept null
    cleared = await client.put(
        f"/v1/offers/{offer['id']}", json={"notes": None, "email": None}, headers=driver["headers"]
    )
    assert cleared.status_code == 200
    assert cleared.json()["description"] is None
    assert cleared.json()["driver_email"] is None
    assert cleared.json()["driver_name"] == "Dana Driver"


@pytest.mark.asyncio
async def test_null_for_required_ride_request_field_is_rejected(client, passenger, event_id):
    created = (await client.post("/v1/requests", json={"event_id": event_id}, headers=passenger["headers"])).json()

    for field in ("passenger_count", "name", "trip_type"):
        response = await client.put(f"/v1/requests/{created['id']}", json={field: None}, headers=passenger["headers"])
        assert response.status_code == 422, field

    cleared = await client.put(f"/v1/requests/{created['id']}", json={"notes": None}, headers=passenger["headers"])
    assert cleared.status_code == 200
    assert cleared.json()["passenger_count"] == 1


@pytest.mark.asyncio
async def test_total_seats_cannot_drop_below_confirmed(client, driver, passenger, create_offer, submit_join):
    offer = await create_offer(total_seats=3)
    jr = (await submit_join(offer["id"], passenger, passenger_count=2)).json()
    await client.post(f"/v1/join-requests/{jr['id']}/accept", headers=driver["headers"])

    shrink = await client.put(f"/v1/offers/{offer['id']}", json={"total_seats": 1}, headers=driver["headers"])
    assert shrink.status_code == 409
    assert shrink.json()["error_code"] == "ERR_CAPACITY_001"

    grow = await client.put(
        f"/v1/offers/{offer['id']}",
        json={"total_seats": 5, "notes": "Bigger car"},
        headers=driver["headers"],
    )
    assert grow.status_code == 200
    assert grow.json()["total_seats"] == 5
    assert grow.json()["available_seats"] == 3
    assert grow.json()["description"] == "Bigger car"


@pytest.mark.asyncio
async def test_update_revalidates_payment_and_legs(client, driver, create_offer, geo):
    geo.distance_km = 10.0
    offer = await create_offer(total_seats=2, payment={"mode": "OPTIONAL", "amount": 5})

    geo.distance_km = 4.0
    response = await client.put(
        f"/v1/offers/{offer['id']}",
        json={"legs": [{"direction": "GOING", "address": "Halfway"}]},
        headers=driver["headers"],
    )
    assert response.status_code == 400
    assert response.json()["error_code"] == "ERR_PAYMENT_001"

    response = await client.put(
        f"/v1/offers/{offer['id']}",
        json={
            "legs": [{"direction": "GOING", "address": "Halfway"}],
            "payment": {"mode": "OPTIONAL", "amount": 2},
        },
        headers=driver["headers"],
    )
    assert response.status_code == 200
    body = response.json()
    assert body["price_cap"] == 2.0
    assert body["legs"][0]["address"] == "Halfway"
    assert len(body["legs"]) == 1


@pytest.mark.asyncio
async def test_delete_without_join_requests_removes_offer(client, db_session, driver, event_id, create_offer):
    offer = await create_offer(total_seats=2)

    response = await client.delete(f"/v1/offers/{offer['id']}", headers=driver["headers"])
    assert response.status_code == 200
    assert response.json()["deleted"] is True

    count = (await db_session.execute(select(func.count(Offer.id)))).scalar()
    assert count == 0


@pytest.mark.asyncio
async def test_delete_with_open_join_requests_cancels(
    client, driver, passenger, passenger_b, event_id, create_offer, submit_join
):
    offer = await create_offer(total_seats=3)
    confirmed = (await submit_join(offer["id"], passenger)).json()
    pending = (await submit_join(offer["id"], passenger_b)).json()
    await client.post(f"/v1/join-requests/{confirmed['id']}/accept", headers=driver["headers"])

    response = await client.delete(f"/v1/offers/{offer['id']}", headers=driver["headers"])
    assert response.status_code == 200
    assert response.json() == {"id": offer["id"], "deleted": False, "status": "CANCELLED"}

    # Cancelled offers leave the public list but stay in the driver's history
    listed = (await client.get(f"/v1/events/{event_id}/offers")).json()
    assert listed["total"] == 0
    mine = (await client.get("/v1/me/offers", headers=driver["headers"])).json()
    assert mine["offers"][0]["status"] == "CANCELLED"

    a = (await client.get("/v1/me/join-requests", headers=passenger["headers"])).json()["requests"][0]
    b = (await client.get("/v1/me/join-requests", headers=passenger_b["headers"])).json()["requests"][0]
    assert a["id"] == confirmed["id"] and a["status"] == "CONFIRMED"
    assert b["id"] == pending["id"] and b["status"] == "CANCELLED"


@pytest.mark.asyncio
async def test_ride_request_lifecycle(client, driver, passenger, event_id, create_offer, submit_join):
    created = await client.post(
        "/v1/requests",
        json={"event_id": event_id, "trip_type": "BOTH", "pickup_lat": 32.05, "pickup_lng": 34.81},
        headers=passenger["headers"],
    )
    assert created.status_code == 201
    ride_request = created.json()
    assert ride_request["kind"] == "request"
    assert ride_request["passenger_name"] == "Avi Passenger"
    assert ride_request["status"] == "ACTIVE"

    going = (await client.get(f"/v1/events/{event_id}/requests", params={"trip_type": "GOING"})).json()
    assert going["total"] == 1

    forbidden = await client.put(
        f"/v1/requests/{ride_request['id']}", json={"passenger_count": 3}, headers=driver["headers"]
    )
    assert forbidden.status_code == 403

    updated = await client.put(
        f"/v1/requests/{ride_request['id']}",
        json={"passenger_count": 3, "pickup_address": "Halfway"},
        headers=passenger["headers"],
    )
    assert updated.status_code == 200
    assert updated.json()["passenger_count"] == 3
    assert updated.json()["pickup_lat"] == 32.045

    # Linked to a pending join request: kept as cancelled history
    offer = await create_offer(total_seats=3)
    await submit_join(offer["id"], passenger, passenger_count=None, ride_request_id=ride_request["id"])
    deleted = await client.delete(f"/v1/requests/{ride_request['id']}", headers=passenger["headers"])
    assert deleted.json() == {"id": ride_request["id"], "deleted": False, "status": "CANCELLED"}

    other = await client.post("/v1/requests", json={"event_id": event_id}, headers=passenger["headers"])
    deleted = await client.delete(f"/v1/requests/{other.json()['id']}", headers=passenger["headers"])
    assert deleted.json()["deleted"] is True


@pytest.mark.asyncio
async def test_listings_endpoint_dispatches_on_kind(client, passenger, driver, event_id):
    request = await client.post(
        "/v1/listings",
        json={"kind": "request", "event_id": event_id, "passenger_count": 2},
        headers=passenger["headers"],
    )
    assert request.status_code == 201
    assert request.json()["kind"] == "request"
    assert request.json()["passenger_count"] == 2

    offer = await client.post(
        "/v1/listings",
        json={
            "kind": "offer",
            "event_id": event_id,
            "total_seats": 2,
            "legs": [{"direction": "GOING", "address": "Driver home"}],
        },
        headers=driver["headers"],
    )
    assert offer.status_code == 201
    assert offer.json()["kind"] == "offer"
    assert offer.json()["available_seats"] == 2

    unknown = await client.post(
        "/v1/listings", json={"kind": "parcel", "event_id": event_id}, headers=driver["headers"]
    )
    assert unknown.status_code == 422
