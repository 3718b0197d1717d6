"""
Shared helpers for Murmur examples.

Handles the health check and account setup so each example can focus on
its own conversation flow.
"""

import sys
import uuid

import httpx

BASE = "http://localhost:8000/api/v1"


def check_backend() -> None:
    """Verify the backend is reachable and its database is up."""
    try:
        resp = httpx.get(f"{BASE}/health", timeout=5)
    except httpx.ConnectError:
        print(f"ERROR: Backend not reachable at {BASE}")
        print("Start it with:  murmur-server   (or: uvicorn murmur.main:app --reload)")
        sys.exit(1)

    if resp.status_code != 200:
        print(f"ERROR: Health check returned {resp.status_code}")
        sys.exit(1)

    health = resp.json()
    print("Backend health:")
    print(f"  Database: {'✓' if health['database'] == 'ok' else '✗'}")
    print(f"  Live topics: {health['live_topics']}")

    if health["database"] != "ok":
        print("\nERROR: Database is not reachable. Check MURMUR_DATABASE_URL.")
        sys.exit(1)


def signup(name: str, run_id: str) -> dict:
    """Create a throwaway account and return {"user", "client"}.

    Uses a unique email per run so examples can be re-run.
    """
    resp = httpx.post(
        f"{BASE}/auth/signup",
        json={
            "name": name,
            "email": f"{name.lower()}-{run_id}@example.com",
            "password": "demo-password-123",
        },
        timeout=10,
    )
    if resp.status_code != 201:
        print(f"ERROR: Signup failed: {resp.status_code} {resp.text}")
        sys.exit(1)

    data = resp.json()
    client = httpx.Client(
        base_url=BASE,
        timeout=10,
        headers={"Authorization": f"Bearer {data['access_token']}"},
    )
    return {"user": data["user"], "client": client}


def new_run_id() -> str:
    return uuid.uuid4().hex[:6]
