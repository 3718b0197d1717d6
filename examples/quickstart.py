#!/usr/bin/env python3
"""
Murmur Quickstart: direct chat, group chat and history in one script.

Signs up three users → opens a direct conversation → sends messages →
creates a group → manages members → reads history.
Run with: python examples/quickstart.py

Requires: pip install httpx
Backend must be running: http://localhost:8000
"""

from _common import check_backend, new_run_id, signup


def main():
    check_backend()
    run_id = new_run_id()

    # ── Accounts ──────────────────────────────────────────────────
    print("\n1. Signing up Ada, Ben and Cy...")
    ada, ben, cy = (signup(name, run_id) for name in ("Ada", "Ben", "Cy"))
    for person in (ada, ben, cy):
        print(f"   {person['user']['name']} ({person['user']['id'][:8]}...)")

    # ── Direct conversation ───────────────────────────────────────
    print("\n2. Ada opens a direct conversation with Ben...")
    resp = ada["client"].post("/conversations/direct", json={"user_id": ben["user"]["id"]})
    assert resp.status_code == 200, f"Failed: {resp.text}"
    direct = resp.json()

    # Opening it again from Ben's side returns the same conversation
    resp = ben["client"].post("/conversations/direct", json={"user_id": ada["user"]["id"]})
    assert resp.json()["id"] == direct["id"]
    print(f"   Conversation {direct['id'][:8]}... (shared by both)")

    print("\n3. Exchanging messages...")
    for sender, text in ((ada, "hi Ben!"), (ben, "hey Ada"), (ada, "lunch?")):
        resp = sender["client"].post(
            f"/conversations/{direct['id']}/messages", json={"content": text}
        )
        assert resp.status_code == 201, f"Failed: {resp.text}"
        print(f"   {sender['user']['name']}: {text}")

    # ── Group ─────────────────────────────────────────────────────
    print("\n4. Ada creates a group with Ben and Cy...")
    resp = ada["client"].post("/conversations/groups", json={
        "name": "Lunch crew",
        "user_ids": [ben["user"]["id"], cy["user"]["id"]],
    })
    assert resp.status_code == 201, f"Failed: {resp.text}"
    group = resp.json()
    print(f"   Group: {group['name']} admins: {[a['name'] for a in group['admins']]}")

    print("\n5. Ben (not an admin) tries to remove Cy...")
    resp = ben["client"].delete(f"/conversations/{group['id']}/members/{cy['user']['id']}")
    print(f"   → {resp.status_code} {resp.json()['kind']}")

    print("\n6. Ada makes Ben an admin, then Ben renames the group...")
    ada["client"].post(f"/conversations/{group['id']}/admins", json={"user_id": ben["user"]["id"]})
    resp = ben["client"].patch(f"/conversations/{group['id']}", json={"name": "Lunch club"})
    print(f"   Renamed to: {resp.json()['name']}")

    # ── History ───────────────────────────────────────────────────
    print("\n7. Ben's conversations, most recent first:")
    for conv in ben["client"].get("/conversations").json():
        latest = (conv["latest_message"] or {}).get("content", "—")
        kind = "group" if conv["is_group"] else "direct"
        print(f"   [{kind}] {conv['name'] or 'Ada'}, latest: {latest}")

    print("\n8. Direct history as Ben sees it:")
    for m in ben["client"].get(f"/conversations/{direct['id']}/messages").json():
        print(f"   {m['sender']['name']}: {m['content']}")

    print("\n✓ Done! Watch live delivery with a WebSocket client on "
          f"ws://localhost:8000/ws/conversations/{direct['id']}?token=<access token>")


if __name__ == "__main__":
    main()
