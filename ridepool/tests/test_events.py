"""
Integration tests for the event registry.
"""

import asyncio

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from ridepool.app.domain.matching.capacity import offer_locks


async def create_event(client, who, **overrides):
    payload = {
        "name": "Wedding",
        "event_date": "2026-09-10",
        "event_time": "19:00:00",
        "destination_address": "Venue",
    }
    payload.update(overrides)
    return await client.post("/v1/events", json=payload, headers=who["headers"])


@pytest.mark.asyncio
async def test_create_and_lookup_public_event(client, driver, passenger):
    created = await create_event(client, driver)
    assert created.status_code == 201
    event = created.json()
    assert len(event["event_code"]) == 6
    assert event["destination_lat"] == 32.0
    assert event["organizer_account_id"] == driver["account_id"]

    # Codes are case-insensitive and need no login
    found = await client.get(f"/v1/events/{event['event_code'].lower()}")
    assert found.status_code == 200
    assert found.json()["id"] == event["id"]
    assert "access_code" not in found.json()

    missing = await client.get("/v1/events/ZZZZZZ")
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_explicit_coordinates_skip_geocoding(client, driver, geo):
    created = await create_event(
        client, driver, destination_address="Somewhere unknown", destination_lat=31.5, destination_lng=35.0
    )
    assert created.status_code == 201
    assert created.json()["destination_lat"] == 31.5
    assert not [call for call in geo.calls if call[0] == "geocode"]


@pytest.mark.asyncio
async def test_private_event_needs_access_code(client, driver, passenger):
    missing_code = await create_event(client, driver, is_private=True)
    assert missing_code.status_code == 422

    created = await create_event(client, driver, is_private=True, access_code="letmein")
    assert created.status_code == 201
    code = created.json()["event_code"]
    assert created.json()["access_code"] == "letmein"

    denied = await client.get(f"/v1/events/{code}", headers=passenger["headers"])
    assert denied.status_code == 403

    wrong = await client.get(f"/v1/events/{code}", params={"access_code": "nope"})
    assert wrong.status_code == 403

    allowed = await client.get(f"/v1/events/{code}", params={"access_code": "letmein"})
    assert allowed.status_code == 200

    organizer = await client.get(f"/v1/events/{code}", headers=driver["headers"])
    assert organizer.status_code == 200


@pytest.mark.asyncio
async def test_only_organizer_updates(client, driver, passenger):
    event = (await create_event(client, driver)).json()

    denied = await client.put(f"/v1/events/{event['id']}", json={"name": "Mine now"}, headers=passenger["headers"])
    assert denied.status_code == 403

    updated = await client.put(
        f"/v1/events/{event['id']}",
        json={"name": "Wedding (moved)", "destination_address": "Halfway"},
        headers=driver["headers"],
    )
    assert updated.status_code == 200
    assert updated.json()["name"] == "Wedding (moved)"
    assert updated.json()["destination_lat"] == 32.045

    private = await client.put(f"/v1/events/{event['id']}", json={"is_private": True}, headers=driver["headers"])
    assert private.status_code == 400

    nulled = await client.put(f"/v1/events/{event['id']}", json={"event_date": None}, headers=driver["headers"])
    assert nulled.status_code == 422


@pytest.mark.asyncio
async def test_unresolvable_destination_is_retryable(client, driver, geo):
    geo.fail = True
    response = await create_event(client, driver)

    assert response.status_code == 503
    assert response.json()["error_code"] == "ERR_EXTERNAL_001"
    assert response.json()["details"]["retryable"] is True


@pytest.mark.asyncio
async def test_delete_event_cascades(client, driver, passenger, passenger_b, event_id, create_offer, submit_join):
    offer = await create_offer(total_seats=3)
    confirmed = (await submit_join(offer["id"], passenger, passenger_count=2)).json()
    await submit_join(offer["id"], passenger_b)
    await client.post(f"/v1/join-requests/{confirmed['id']}/accept", headers=driver["headers"])
    await client.post("/v1/requests", json={"event_id": event_id}, headers=passenger_b["headers"])

    denied = await client.delete(f"/v1/events/{event_id}", headers=passenger["headers"])
    assert denied.status_code == 403

    response = await client.delete(f"/v1/events/{event_id}", headers=driver["headers"])
    assert response.status_code == 200
    assert response.json()["status"] == "CANCELLED"

    # Everything under the event is invalidated
    mine = (await client.get("/v1/me/offers", headers=driver["headers"])).json()["offers"][0]
    assert mine["status"] == "CANCELLED"
    assert mine["available_seats"] == 3

    for who in (passenger, passenger_b):
        join_requests = (await client.get("/v1/me/join-requests", headers=who["headers"])).json()
        assert {jr["status"] for jr in join_requests["requests"]} == {"CANCELLED"}
        assert join_requests["requests"][0]["cancel_reason"] == "Event cancelled"

    requests = (await client.get("/v1/me/requests", headers=passenger_b["headers"])).json()
    assert requests["requests"][0]["status"] == "CANCELLED"

    listing = await client.get(f"/v1/events/{event_id}/offers")
    assert listing.status_code == 400

    new_offer = await client.post(
        "/v1/offers",
        json={"event_id": event_id, "total_seats": 2, "legs": [{"direction": "GOING", "address": "Driver home"}]},
        headers=driver["headers"],
    )
    assert new_offer.status_code == 400


@pytest.mark.asyncio
async def test_event_stats(client, driver, passenger, passenger_b, event_id, create_offer, submit_join):
    offer = await create_offer(total_seats=3)
    await create_offer(total_seats=2)
    confirmed = (await submit_join(offer["id"], passenger, passenger_count=2)).json()
    await submit_join(offer["id"], passenger_b)
    await client.post(f"/v1/join-requests/{confirmed['id']}/accept", headers=driver["headers"])
    await client.post("/v1/requests", json={"event_id": event_id}, headers=passenger_b["headers"])

    denied = await client.get(f"/v1/events/{event_id}/stats", headers=passenger["headers"])
    assert denied.status_code == 403

    stats = (await client.get(f"/v1/events/{event_id}/stats", headers=driver["headers"])).json()
    assert stats == {
        "event_id": event_id,
        "active_offers": 2,
        "active_requests": 1,
        "total_seats": 5,
        "available_seats": 3,
        "confirmed_passengers": 2,
        "pending_join_requests": 1,
        "matched_requests": 0,
    }


@pytest.mark.asyncio
async def test_delete_event_closes_bookings_on_withdrawn_offers(client, driver, passenger, event_id, create_offer, submit_join):
    offer = await create_offer(total_seats=3)
    jr = (await submit_join(offer["id"], passenger, passenger_count=2)).json()
    await client.post(f"/v1/join-requests/{jr['id']}/accept", headers=driver["headers"])

    # Withdrawn offer keeps the confirmed passenger as history
    withdrawn = await client.delete(f"/v1/offers/{offer['id']}", headers=driver["headers"])
    assert withdrawn.json()["deleted"] is False
    kept = (await client.get("/v1/me/join-requests", headers=passenger["headers"])).json()["requests"][0]
    assert kept["status"] == "CONFIRMED"

    response = await client.delete(f"/v1/events/{event_id}", headers=driver["headers"])
    assert response.status_code == 200

    closed = (await client.get("/v1/me/join-requests", headers=passenger["headers"])).json()["requests"][0]
    assert closed["status"] == "CANCELLED"
    assert closed["cancel_reason"] == "Event cancelled"

    mine = (await client.get("/v1/me/offers", headers=driver["headers"])).json()["offers"][0]
    assert mine["status"] == "CANCELLED"
    assert mine["available_seats"] == 3


@pytest.mark.asyncio
async def test_delete_event_waits_for_offer_lock(client, driver, event_id, create_offer):
    offer = await create_offer(total_seats=2)

    async with offer_locks.hold(offer["id"]):
        pending = asyncio.create_task(client.delete(f"/v1/events/{event_id}", headers=driver["headers"]))
        await asyncio.sleep(0.05)
        assert not pending.done()

    response = await pending
    assert response.status_code == 200
    assert len(offer_locks) == 0


@pytest.mark.asyncio
async def test_delete_event_commits_while_holding_offer_locks(client, driver, event_id, create_offer, monkeypatch):
    await create_offer(total_seats=2)
    await create_offer(total_seats=3)

    locks_at_commit = []
    original_commit = AsyncSession.commit

    async def recording_commit(session):
        locks_at_commit.append(len(offer_locks))
        await original_commit(session)

    monkeypatch.setattr(AsyncSession, "commit", recording_commit)

    response = await client.delete(f"/v1/events/{event_id}", headers=driver["headers"])
    assert response.status_code == 200
    assert locks_at_commit[-1] == 2
    assert len(offer_locks) == 0


@pytest.mark.asyncio
async def test_organizer_participant_views(client, driver, passenger, passenger_b, event_id, create_offer, submit_join):
    hidden = await create_offer(total_seats=3, hide_phone=True)
    removed = await create_offer(total_seats=2)
    await client.delete(f"/v1/offers/{removed['id']}", headers=driver["headers"])

    ride_request = (await client.post(
        "/v1/requests", json={"event_id": event_id, "pickup_address": "Halfway"}, headers=passenger["headers"]
    )).json()
    await client.post("/v1/requests", json={"event_id": event_id}, headers=passenger_b["headers"])

    jr = (await submit_join(hidden["id"], passenger, passenger_count=None, ride_request_id=ride_request["id"])).json()
    await client.post(f"/v1/join-requests/{jr['id']}/accept", headers=driver["headers"])
    await submit_join(hidden["id"], passenger_b)

    for path in ("drivers", "passengers", "matches"):
        denied = await client.get(f"/v1/events/{event_id}/{path}", headers=passenger["headers"])
        assert denied.status_code == 403, path

    drivers = (await client.get(f"/v1/events/{event_id}/drivers", headers=driver["headers"])).json()
    assert drivers["total"] == 1
    assert drivers["drivers"][0]["id"] == hidden["id"]
    assert drivers["drivers"][0]["driver_phone"] == "0501111111"

    passengers = (await client.get(f"/v1/events/{event_id}/passengers", headers=driver["headers"])).json()
    assert passengers["total"] == 2
    matched = {p["passenger_name"]: p["matched"] for p in passengers["passengers"]}
    assert matched == {"Avi Passenger": True, "Bela Passenger": False}

    matches = (await client.get(f"/v1/events/{event_id}/matches", headers=driver["headers"])).json()
    assert matches["total"] == 2
    assert {m["status"] for m in matches["matches"]} == {"CONFIRMED", "PENDING"}
    assert {m["driver_name"] for m in matches["matches"]} == {"Dana Driver"}
