"""Murmur CLI — talk to a running Murmur server from the terminal.

Usage:
    murmur signup "Ada" ada@example.com              # prompts for a password
    murmur login ada@example.com                      # prints an access token
    export MURMUR_TOKEN=...
    murmur users lin                                  # search for peers
    murmur open <user-id>                             # direct conversation
    murmur chats                                      # your conversations
    murmur messages <conversation-id>                 # history
    murmur send <conversation-id> "hello there"       # send a message
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import json
import os
import sys
from typing import Optional

import click
import httpx

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

DEFAULT_API_URL = "http://localhost:8000"


def _api_url() -> str:
    return os.environ.get("MURMUR_API_URL", DEFAULT_API_URL).rstrip("/")


def _client(token: Optional[str] = None) -> httpx.AsyncClient:
    """Build an async HTTP client pointed at the Murmur backend."""
    headers = {"Authorization": f"Bearer {token}"} if token else {}
    return httpx.AsyncClient(base_url=_api_url(), headers=headers, timeout=30.0)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run(coro):
    """Run an async coroutine from a synchronous click handler.

    Inside an already-running loop (e.g. a test runner) the coroutine is
    offloaded to a worker thread with its own loop.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)
    else:
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
            return pool.submit(asyncio.run, coro).result()


def _token(token: Optional[str]) -> str:
    tok = token or os.environ.get("MURMUR_TOKEN")
    if not tok:
        click.secho(
            "Error: --token required (or set MURMUR_TOKEN env var)",
            fg="red",
            err=True,
        )
        sys.exit(1)
    return tok


def _check(r: httpx.Response) -> dict | list:
    """Return the JSON body, or print the server's error and exit."""
    if r.is_success:
        return r.json()
    try:
        body = r.json()
        detail = body.get("detail", r.text)
        kind = body.get("kind", "error")
    except (json.JSONDecodeError, AttributeError):
        detail, kind = r.text, "error"
    click.secho(f"Error ({r.status_code} {kind}): {detail}", fg="red", err=True)
    sys.exit(1)


def _print_table(rows: list[dict], columns: list[tuple[str, str, int]]):
    """Print a simple ASCII table. columns: (header, dict_key, width)."""
    header = "  ".join(h.ljust(w) for h, _, w in columns)
    click.secho(header, bold=True)
    click.echo("-" * len(header))
    for row in rows:
        line = "  ".join(str(row.get(k) or "—")[:w].ljust(w) for _, k, w in columns)
        click.echo(line)


def _conversation_title(conv: dict, me: Optional[str] = None) -> str:
    if conv.get("is_group"):
        return conv.get("name") or "(unnamed group)"
    others = [u["name"] for u in conv.get("users", []) if u["id"] != me]
    return ", ".join(others) or "(direct)"


token_option = click.option(
    "--token", envvar="MURMUR_TOKEN", help="Access token (or set MURMUR_TOKEN)"
)


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version="0.1.0", prog_name="murmur")
def main():
    """Murmur — real-time chat from the command line."""


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------


@main.command()
@click.argument("name")
@click.argument("email")
@click.password_option()
def signup(name: str, email: str, password: str):
    """Create an account and print its access token."""
    async def _impl():
        async with _client() as c:
            r = await c.post(
                "/api/v1/auth/signup",
                json={"name": name, "email": email, "password": password},
            )
            data = _check(r)
        click.secho(f"Signed up as {data['user']['name']} ({data['user']['id']})", fg="green")
        click.echo(data["access_token"])

    _run(_impl())


@main.command()
@click.argument("email")
@click.option("--password", prompt=True, hide_input=True)
def login(email: str, password: str):
    """Log in and print an access token."""
    async def _impl():
        async with _client() as c:
            r = await c.post(
                "/api/v1/auth/login", json={"email": email, "password": password}
            )
            data = _check(r)
        click.secho(f"Logged in as {data['user']['name']}", fg="green", err=True)
        click.echo(data["access_token"])

    _run(_impl())


# ---------------------------------------------------------------------------
# Users + conversations
# ---------------------------------------------------------------------------


@main.command()
@click.argument("search", default="")
@token_option
def users(search: str, token: Optional[str]):
    """Search users by name or email."""
    async def _impl():
        async with _client(_token(token)) as c:
            rows = _check(await c.get("/api/v1/users", params={"search": search}))
        if not rows:
            click.echo("No users found.")
            return
        _print_table(rows, [("ID", "id", 36), ("NAME", "name", 20), ("EMAIL", "email", 30)])

    _run(_impl())


@main.command()
@token_option
def chats(token: Optional[str]):
    """List your conversations, most recent first."""
    async def _impl():
        async with _client(_token(token)) as c:
            me = _check(await c.get("/api/v1/auth/me"))
            convs = _check(await c.get("/api/v1/conversations"))
        if not convs:
            click.echo("No conversations yet.")
            return
        rows = []
        for conv in convs:
            latest = conv.get("latest_message") or {}
            rows.append({
                "id": conv["id"],
                "title": _conversation_title(conv, me["id"]),
                "kind": "group" if conv["is_group"] else "direct",
                "latest": latest.get("content"),
            })
        _print_table(rows, [
            ("ID", "id", 36), ("TITLE", "title", 24),
            ("KIND", "kind", 6), ("LATEST", "latest", 30),
        ])

    _run(_impl())


@main.command("open")
@click.argument("user_id")
@token_option
def open_direct(user_id: str, token: Optional[str]):
    """Open (or create) the direct conversation with USER_ID."""
    async def _impl():
        async with _client(_token(token)) as c:
            conv = _check(await c.post(
                "/api/v1/conversations/direct", json={"user_id": user_id}
            ))
        click.echo(conv["id"])

    _run(_impl())


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


@main.command()
@click.argument("conversation_id")
@click.option("--limit", default=50, show_default=True)
@token_option
def messages(conversation_id: str, limit: int, token: Optional[str]):
    """Show a conversation's message history, oldest first."""
    async def _impl():
        async with _client(_token(token)) as c:
            rows = _check(await c.get(
                f"/api/v1/conversations/{conversation_id}/messages",
                params={"limit": limit},
            ))
        for m in rows:
            sender = click.style(m["sender"]["name"], bold=True)
            click.echo(f"[{m['created_at'][:19]}] {sender}: {m['content']}")

    _run(_impl())


@main.command()
@click.argument("conversation_id")
@click.argument("content")
@token_option
def send(conversation_id: str, content: str, token: Optional[str]):
    """Send CONTENT to a conversation."""
    async def _impl():
        async with _client(_token(token)) as c:
            m = _check(await c.post(
                f"/api/v1/conversations/{conversation_id}/messages",
                json={"content": content},
            ))
        click.secho(f"Sent message #{m['id']}", fg="green")

    _run(_impl())


if __name__ == "__main__":
    main()
