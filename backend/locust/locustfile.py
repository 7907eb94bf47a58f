"""
Locust Load Test Suite

Run scenarios:
  locust -f locustfile.py --tags contention  # Many sessions, few seats
  locust -f locustfile.py --tags cap         # Hold cap per session
  locust -f locustfile.py --tags throughput  # Seat map listing cache
  locust -f locustfile.py --tags edge        # Bad input
  locust -f locustfile.py                    # All tests

The seat catalog is loaded outside the API. Seat ids are discovered from
GET /api/seats on start.
"""

import random
from locust import HttpUser, task, between, tag, events

# Shared state
SEAT_IDS = []
HOT_SEATS = []


def new_session(client):
    resp = client.post("/api/seats/session", name="/api/seats/session")
    if resp.status_code == 201:
        return resp.json()["sessionId"]
    return None


def discover_seats(client):
    if SEAT_IDS:
        return
    resp = client.get("/api/seats?page=1&limit=100", name="/api/seats [discover]")
    if resp.status_code == 200:
        SEAT_IDS.extend(seat["id"] for seat in resp.json()["data"])
        HOT_SEATS.extend(SEAT_IDS[:5])
        print(f"\n✓ Discovered {len(SEAT_IDS)} seats, {len(HOT_SEATS)} hot\n")


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    print("\n" + "="*60)
    print("SETUP: Seat hold contention run")
    print("="*60)


@events.test_stop.add_listener
def on_test_stop(environment, **kwargs):
    print("\nAfter test, verify the holder invariant:")
    print("  SELECT COUNT(*) FROM seats WHERE (status = 'held') <> (held_by IS NOT NULL);")
    print("Should be 0\n")


class ContentionUser(HttpUser):
    """
    TEST 1: Contention - every user fights for the same 5 seats

    Run: locust -f locustfile.py --tags contention -u 100 -r 50 --run-time 30s

    Each hot seat should have at most one holder at any instant:
      SELECT id, COUNT(DISTINCT held_by) FROM seats WHERE status = 'held' GROUP BY id;
    """
    wait_time = between(0, 0.1)

    def on_start(self):
        discover_seats(self.client)
        self.session_id = new_session(self.client)
        self.headers = {"x-session-id": self.session_id} if self.session_id else {}
        self.held = []

    @tag("contention")
    @task(5)
    def hold_hot_seat(self):
        if not HOT_SEATS or not self.headers:
            return

        seat_id = random.choice(HOT_SEATS)
        with self.client.post("/api/seats/hold",
            json={"seatId": seat_id},
            headers=self.headers,
            name="/api/seats/hold [hot]",
            catch_response=True
        ) as resp:
            if resp.status_code == 200:
                self.held.append(seat_id)
                resp.success()
            elif resp.status_code == 409:
                resp.success()  # Expected: someone else holds it
            else:
                resp.failure(f"Unexpected: {resp.status_code}")

    @tag("contention")
    @task(3)
    def release_held_seat(self):
        if not self.held:
            return

        seat_id = self.held.pop()
        with self.client.post("/api/seats/release",
            json={"seatId": seat_id},
            headers=self.headers,
            name="/api/seats/release",
            catch_response=True
        ) as resp:
            if resp.status_code in [200, 403]:
                resp.success()  # 403: swept or sold meanwhile
            else:
                resp.failure(f"Unexpected: {resp.status_code}")

    @tag("contention")
    @task(1)
    def complete_held_seats(self):
        if not self.held:
            return

        with self.client.post("/api/seats/complete",
            json={"seatIds": list(self.held)},
            headers=self.headers,
            name="/api/seats/complete",
            catch_response=True
        ) as resp:
            if resp.status_code in [200, 400]:
                resp.success()  # 400: a hold expired before checkout
            else:
                resp.failure(f"Unexpected: {resp.status_code}")
        self.held = []


class CapUser(HttpUser):
    """
    TEST 2: Hold cap - one session grabs as many seats as it can

    Run: locust -f locustfile.py --tags cap -u 20 -r 10 --run-time 30s

    No session should ever hold more than 8:
      SELECT held_by, COUNT(*) FROM seats WHERE status = 'held' GROUP BY held_by HAVING COUNT(*) > 8;
    """
    wait_time = between(0, 0.05)

    def on_start(self):
        discover_seats(self.client)
        self.session_id = new_session(self.client)
        self.headers = {"x-session-id": self.session_id} if self.session_id else {}

    @tag("cap")
    @task
    def hold_any_seat(self):
        if not SEAT_IDS or not self.headers:
            return

        with self.client.post("/api/seats/hold",
            json={"seatId": random.choice(SEAT_IDS)},
            headers=self.headers,
            name="/api/seats/hold [cap]",
            catch_response=True
        ) as resp:
            if resp.status_code in [200, 409]:
                resp.success()
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class ThroughputUser(HttpUser):
    """
    TEST 3: Throughput - seat map cache effectiveness

    Run twice:
      1. With Redis: locust -f locustfile.py --tags throughput -u 100 -r 20 --run-time 60s
      2. With REDIS_ENABLED=false, run again

    Compare avg response time, requests/sec and P95/P99 latency.
    """
    wait_time = between(0.1, 0.5)

    @tag("throughput", "read")
    @task(10)
    def list_seats(self):
        page = random.randint(1, 5)
        self.client.get(f"/api/seats?page={page}&limit=20",
            name="/api/seats [cached]")

    @tag("throughput")
    @task(1)
    def health_check(self):
        self.client.get("/health")


class EdgeCaseUser(HttpUser):
    """
    TEST 4: Edge cases - bad input handling

    Run: locust -f locustfile.py --tags edge -u 20 -r 5 --run-time 30s

    System should NOT crash, return proper error codes.
    """
    wait_time = between(0.5, 1.5)

    @tag("edge")
    @task
    def unknown_seat(self):
        with self.client.post("/api/seats/hold",
            json={"seatId": "no-such-seat", "sessionId": "edge"},
            catch_response=True
        ) as resp:
            if resp.status_code == 404:
                resp.success()
            else:
                resp.failure(f"Expected 404, got {resp.status_code}")

    @tag("edge")
    @task
    def missing_session(self):
        with self.client.post("/api/seats/hold",
            json={"seatId": "A-1-1"},
            catch_response=True
        ) as resp:
            if resp.status_code == 400:
                resp.success()
            else:
                resp.failure(f"Expected 400, got {resp.status_code}")

    @tag("edge")
    @task
    def empty_complete(self):
        with self.client.post("/api/seats/complete",
            json={"seatIds": [], "sessionId": "edge"},
            catch_response=True
        ) as resp:
            if resp.status_code == 400:
                resp.success()
            else:
                resp.failure(f"Expected 400, got {resp.status_code}")

    @tag("edge")
    @task
    def oversized_page(self):
        with self.client.get("/api/seats?limit=100000",
            catch_response=True
        ) as resp:
            if resp.status_code == 400:
                resp.success()
            else:
                resp.failure(f"Expected 400, got {resp.status_code}")

    @tag("edge")
    @task
    def malformed_json(self):
        with self.client.post("/api/seats/hold",
            data="not json at all",
            headers={"Content-Type": "application/json"},
            catch_response=True
        ) as resp:
            if resp.status_code == 400:
                resp.success()
            else:
                resp.failure(f"Expected 400, got {resp.status_code}")
