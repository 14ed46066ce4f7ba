"""
Locust load tests for the seat booking path.

Run scenarios:
  locust -f locustfile.py --tags contention   # many students, one seat
  locust -f locustfile.py --tags browse       # cached hall listing
  locust -f locustfile.py --tags edge         # bad input
  locust -f locustfile.py                     # everything
"""

import random
import uuid
from datetime import date, timedelta

from locust import HttpUser, between, events, tag, task

PASSWORD = "loadtest123"

# Shared state filled by the first merchant
HALL = {"id": None, "seat_ids": []}


def random_email(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:10]}@load.test"


def register_and_login(client, role: str = "student") -> dict:
    email = random_email(role)
    client.post(
        "/api/v1/auth/register",
        json={"email": email, "full_name": f"Load {role}", "password": PASSWORD, "role": role},
    )
    resp = client.post("/api/v1/auth/login", json={"email": email, "password": PASSWORD})
    if resp.status_code != 200:
        return {}
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}


def stay(offset_days: int = 3, length: int = 7) -> dict:
    start = date.today() + timedelta(days=offset_days)
    return {
        "start_date": start.isoformat(),
        "end_date": (start + timedelta(days=length - 1)).isoformat(),
    }


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    print("\n" + "=" * 60)
    print("Seat booking load test: the first merchant creates the contested hall")
    print("=" * 60)


class MerchantSetupUser(HttpUser):
    """Creates one small hall that every student fights over."""

    fixed_count = 1
    wait_time = between(5, 10)

    def on_start(self):
        self.headers = register_and_login(self.client, "merchant")
        if HALL["id"] is None and self.headers:
            resp = self.client.post(
                "/api/v1/study-halls/",
                json={
                    "name": "Contention Hall",
                    "location": "Load Test City",
                    "rows": 1,
                    "seats_per_row": 5,
                    "daily_price": "300",
                    "weekly_price": "1800",
                    "monthly_price": "6000",
                },
                headers=self.headers,
            )
            if resp.status_code == 201:
                body = resp.json()
                HALL["id"] = body["id"]
                HALL["seat_ids"] = [seat["id"] for seat in body["seats"]]
                print(f"\nCreated hall {HALL['id']} with {len(HALL['seat_ids'])} seats\n")

    @task
    def occupancy(self):
        if HALL["id"] and self.headers:
            self.client.get(
                f"/api/v1/study-halls/{HALL['id']}/occupancy",
                headers=self.headers,
                name="/api/v1/study-halls/{id}/occupancy",
            )


class ContentionUser(HttpUser):
    """
    Every student books seat one for the same week.

    Run: locust -f locustfile.py --tags contention -u 100 -r 50 --run-time 30s

    Afterwards exactly one blocking booking may exist for the seat:
      SELECT COUNT(*) FROM bookings
      WHERE seat_id = X AND status IN ('pending', 'confirmed', 'active');
    """

    wait_time = between(0, 0.1)

    def on_start(self):
        self.headers = register_and_login(self.client)

    @tag("contention")
    @task
    def book_contested_seat(self):
        if not HALL["seat_ids"] or not self.headers:
            return
        with self.client.post(
            "/api/v1/bookings/",
            json={
                "study_hall_id": HALL["id"],
                "seat_id": HALL["seat_ids"][0],
                "payment_method": "offline",
                **stay(),
            },
            headers=self.headers,
            catch_response=True,
            name="/api/v1/bookings/ [contested]",
        ) as resp:
            if resp.status_code in (201, 409):
                resp.success()
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class BrowseUser(HttpUser):
    """
    Hammer the cached hall listing.

    Run once with Redis and once without, then compare latency percentiles.
    """

    wait_time = between(0.1, 0.5)

    @tag("browse")
    @task(10)
    def list_halls(self):
        page = random.randint(1, 3)
        self.client.get(
            f"/api/v1/study-halls/?page={page}&page_size=20",
            name="/api/v1/study-halls/ [cached]",
        )

    @tag("browse")
    @task(3)
    def hall_availability(self):
        if HALL["id"]:
            params = stay(offset_days=random.randint(1, 30))
            self.client.get(
                f"/api/v1/study-halls/{HALL['id']}/availability",
                params=params,
                name="/api/v1/study-halls/{id}/availability",
            )

    @tag("browse")
    @task(1)
    def health_check(self):
        self.client.get("/health")


class EdgeCaseUser(HttpUser):
    """The API must answer bad input with 4xx, never crash."""

    wait_time = between(0.5, 1.5)

    def on_start(self):
        self.headers = register_and_login(self.client)

    def _expect(self, resp, codes):
        if resp.status_code in codes:
            resp.success()
        else:
            resp.failure(f"Expected {codes}, got {resp.status_code}")

    @tag("edge")
    @task
    def unknown_hall(self):
        with self.client.post(
            "/api/v1/bookings/",
            json={"study_hall_id": 999999, "seat_id": 1, "payment_method": "offline", **stay()},
            headers=self.headers,
            catch_response=True,
        ) as resp:
            self._expect(resp, (404,))

    @tag("edge")
    @task
    def reversed_dates(self):
        payload = {
            "study_hall_id": HALL["id"] or 1,
            "seat_id": 1,
            "start_date": (date.today() + timedelta(days=5)).isoformat(),
            "end_date": date.today().isoformat(),
        }
        with self.client.post(
            "/api/v1/bookings/", json=payload, headers=self.headers, catch_response=True
        ) as resp:
            self._expect(resp, (400, 422))

    @tag("edge")
    @task
    def past_start(self):
        if not HALL["seat_ids"]:
            return
        start = date.today() - timedelta(days=3)
        with self.client.post(
            "/api/v1/bookings/",
            json={
                "study_hall_id": HALL["id"],
                "seat_id": HALL["seat_ids"][-1],
                "payment_method": "offline",
                "start_date": start.isoformat(),
                "end_date": date.today().isoformat(),
            },
            headers=self.headers,
            catch_response=True,
        ) as resp:
            self._expect(resp, (400,))

    @tag("edge")
    @task
    def malformed_json(self):
        with self.client.post(
            "/api/v1/bookings/", data="not json at all", headers=self.headers, catch_response=True
        ) as resp:
            self._expect(resp, (400, 422))

    @tag("edge")
    @task
    def missing_auth(self):
        with self.client.post(
            "/api/v1/bookings/",
            json={"study_hall_id": 1, "seat_id": 1, **stay()},
            catch_response=True,
        ) as resp:
            self._expect(resp, (401,))
