"""
Locust Load Test Suite

Tokens are minted locally with the API's SECRET_KEY (no login endpoint in
the carpool core), so run with the same environment as the server.

Run scenarios:
  locust -f locustfile.py --tags concurrency  # Last-seat race
  locust -f locustfile.py --tags throughput   # Summary cache
  locust -f locustfile.py --tags edge         # Bad input
  locust -f locustfile.py                     # All tests
"""

import itertools
import random
from datetime import datetime, timezone, timedelta

from locust import HttpUser, task, between, tag, events

from carpool.core.security import create_access_token

# Shared state
OUTING_IDS = []
OFFER_IDS = []
RACE_OFFER_ID = None
RACE_SEATS = 4

ORGANIZER_ID = 1
RACE_DRIVER_ID = 2
_member_ids = itertools.count(1000)


def headers_for(user_id: int) -> dict:
    return {"Authorization": f"Bearer {create_access_token(data={'sub': str(user_id)})}"}


def departure_in(days: int) -> str:
    return (datetime.now(timezone.utc) + timedelta(days=days, hours=-1)).isoformat()


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    """Setup: one outing with a small car everyone fights over."""
    print("\n" + "=" * 60)
    print("SETUP: Creating last-seat race outing...")
    print("=" * 60)


class ConcurrencyUser(HttpUser):
    """
    TEST 1: Concurrency - 100 passengers -> 4 seats

    Run: locust -f locustfile.py --tags concurrency -u 100 -r 50 --run-time 30s

    After test, verify:
      SELECT confirmed_count, seats_total FROM trip_offers WHERE id = X;
      SELECT COUNT(*) FROM bookings WHERE trip_offer_id = X AND status = 'confirmed';
    Both counts must match and be <= 4
    """
    wait_time = between(0, 0.1)

    def on_start(self):
        self.headers = headers_for(next(_member_ids))

        if RACE_OFFER_ID:
            return

        resp = self.client.post(
            "/api/v1/outings/",
            json={"title": "Race outing", "starts_at": departure_in(30)},
            headers=headers_for(ORGANIZER_ID),
        )
        if resp.status_code != 201:
            return
        outing_id = resp.json()["id"]

        resp = self.client.post(
            "/api/v1/trip-offers/",
            json={
                "outing_id": outing_id,
                "seats_total": RACE_SEATS,
                "meeting_point": "Harbour car park",
                "departure_time": departure_in(30),
            },
            headers=headers_for(RACE_DRIVER_ID),
        )
        if resp.status_code == 201:
            globals()["RACE_OFFER_ID"] = resp.json()["id"]
            print(f"\nCreated trip offer {RACE_OFFER_ID} with {RACE_SEATS} seats\n")

    @tag("concurrency")
    @task
    def book_last_seats(self):
        """All passengers fight for the same few seats."""
        if not RACE_OFFER_ID:
            return

        with self.client.post(
            "/api/v1/bookings/",
            json={"trip_offer_id": RACE_OFFER_ID},
            headers=self.headers,
            catch_response=True,
        ) as resp:
            if resp.status_code == 201:
                resp.success()
            elif resp.status_code == 409 and resp.json().get("error") in ("trip_full", "already_booked"):
                resp.success()  # Expected: car full or seat already held
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class ThroughputUser(HttpUser):
    """
    TEST 2: Throughput - Summary cache effectiveness

    Run twice:
      1. With Redis: locust -f locustfile.py --tags throughput -u 100 -r 20 --run-time 60s
      2. Without Redis: REDIS_ENABLED=false, run again

    Compare avg response time, requests/sec and P95/P99 latency.
    """
    wait_time = between(0.1, 0.5)

    @tag("throughput", "read")
    @task(10)
    def carpool_summary_cached(self):
        """Hammer the cached endpoint."""
        if not OUTING_IDS:
            return
        ids = random.sample(OUTING_IDS, min(len(OUTING_IDS), 10))
        self.client.get(
            "/api/v1/outings/carpool-summary",
            params=[("outing_ids", i) for i in ids],
            name="/api/v1/outings/carpool-summary [cached]",
        )

    @tag("throughput", "read")
    @task(3)
    def list_trip_offers(self):
        if OUTING_IDS:
            outing_id = random.choice(OUTING_IDS)
            self.client.get(
                f"/api/v1/outings/{outing_id}/trip-offers",
                name="/api/v1/outings/{id}/trip-offers",
            )

    @tag("throughput")
    @task(1)
    def health_check(self):
        self.client.get("/health")


class EdgeCaseUser(HttpUser):
    """
    TEST 3: Edge cases - Bad input handling

    Run: locust -f locustfile.py --tags edge -u 20 -r 5 --run-time 30s

    System should NOT crash, return proper error codes.
    """
    wait_time = between(0.5, 1.5)

    def on_start(self):
        self.headers = headers_for(next(_member_ids))

    @tag("edge")
    @task
    def unknown_trip(self):
        with self.client.post(
            "/api/v1/bookings/",
            json={"trip_offer_id": 999999},
            headers=self.headers,
            catch_response=True,
        ) as resp:
            if resp.status_code == 404:
                resp.success()
            else:
                resp.failure(f"Expected 404, got {resp.status_code}")

    @tag("edge")
    @task
    def zero_seat_offer(self):
        with self.client.post(
            "/api/v1/trip-offers/",
            json={
                "outing_id": 1,
                "seats_total": 0,
                "meeting_point": "Nowhere",
                "departure_time": departure_in(5),
            },
            headers=self.headers,
            catch_response=True,
        ) as resp:
            if resp.status_code == 422:
                resp.success()
            else:
                resp.failure(f"Expected 422, got {resp.status_code}")

    @tag("edge")
    @task
    def malformed_json(self):
        with self.client.post(
            "/api/v1/bookings/",
            data="not json at all",
            headers=self.headers,
            catch_response=True,
        ) as resp:
            if resp.status_code in [400, 422]:
                resp.success()
            else:
                resp.failure(f"Expected 400/422, got {resp.status_code}")

    @tag("edge")
    @task
    def missing_auth(self):
        with self.client.post(
            "/api/v1/bookings/",
            json={"trip_offer_id": 1},
            catch_response=True,
        ) as resp:
            if resp.status_code == 401:
                resp.success()
            else:
                resp.failure(f"Expected 401, got {resp.status_code}")


class RealisticUser(HttpUser):
    """
    TEST 4: Realistic mixed workload

    Run: locust -f locustfile.py -u 200 -r 20 --run-time 120s

    Mostly browsing, some bookings and cancellations, rare new trips.
    """
    wait_time = between(1, 3)

    def on_start(self):
        self.user_id = next(_member_ids)
        self.headers = headers_for(self.user_id)
        self.booking_ids = []

    @task(30)
    def browse_trips(self):
        if OUTING_IDS:
            self.client.get(
                f"/api/v1/outings/{random.choice(OUTING_IDS)}/trip-offers",
                name="/api/v1/outings/{id}/trip-offers",
            )

    @task(10)
    def book_seat(self):
        if not OFFER_IDS:
            return
        resp = self.client.post(
            "/api/v1/bookings/",
            json={"trip_offer_id": random.choice(OFFER_IDS)},
            headers=self.headers,
            name="/api/v1/bookings/",
        )
        if resp.status_code == 201:
            self.booking_ids.append(resp.json()["id"])

    @task(4)
    def cancel_booking(self):
        if self.booking_ids:
            booking_id = self.booking_ids.pop()
            self.client.delete(
                f"/api/v1/bookings/{booking_id}",
                headers=self.headers,
                name="/api/v1/bookings/{id}",
            )

    @task(2)
    def organise_outing_with_trip(self):
        resp = self.client.post(
            "/api/v1/outings/",
            json={"title": f"Outing {random.randint(1, 10000)}", "starts_at": departure_in(random.randint(2, 60))},
            headers=self.headers,
        )
        if resp.status_code != 201:
            return
        outing = resp.json()
        OUTING_IDS.append(outing["id"])

        resp = self.client.post(
            "/api/v1/trip-offers/",
            json={
                "outing_id": outing["id"],
                "seats_total": random.randint(1, 8),
                "meeting_point": "Club house",
                "departure_time": outing["starts_at"],
            },
            headers=self.headers,
        )
        if resp.status_code == 201:
            OFFER_IDS.append(resp.json()["id"])
