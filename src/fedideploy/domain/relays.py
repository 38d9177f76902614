"""Relay subscriptions inserted straight into Mastodon's ``relays`` table.

Mastodon exposes no admin API for relays, so the entries are written with
SQL. The column layout below matches the ``relays`` table of the Mastodon
4.x schema; other major versions are a compatibility risk and are reported
as a warning by the bootstrap sequencer.
"""

from __future__ import annotations

from enum import IntEnum

from pydantic import BaseModel

RELAY_BASE_URL = "https://relay.fedi.buzz/instance"

# Mastodon major version whose ``relays`` schema the SQL below targets.
RELAY_SCHEMA_MAJOR = "4"


class RelayState(IntEnum):
    """Mastodon ``Relay#state`` enum values."""

    PENDING = 1
    ACCEPTED = 2
    REJECTED = 3


class RelayEntry(BaseModel):
    """One row of the ``relays`` table."""

    model_config = {"frozen": True}

    inbox_url: str
    follow_activity_id: str | None = None
    state: RelayState = RelayState.ACCEPTED


_RELAY_INSTANCES: tuple[str, ...] = (
    "fediscience.org",
    "mas.to",
    "indieweb.social",
    "wetdry.world",
    "good.news",
    "mastodon.online",
    "mastodon.social",
    "universeodon.com",
    "tapbots.social",
    "infosec.exchange",
    "mediapart.social",
    "journa.host",
    "ard.social",
    "w3c.social",
    "edi.social",
    "mstdn.social",
    "twit.social",
    "qoto.org",
)

DEFAULT_RELAYS: tuple[RelayEntry, ...] = tuple(
    RelayEntry(inbox_url=f"{RELAY_BASE_URL}/{host}") for host in _RELAY_INSTANCES
)


def relays_from_urls(urls: list[str]) -> tuple[RelayEntry, ...]:
    """Build accepted relay entries from explicit inbox URLs."""
    return tuple(RelayEntry(inbox_url=url) for url in urls)


def _quote(value: str | None) -> str:
    if value is None:
        return "NULL"
    return "'" + value.replace("'", "''") + "'"


def build_insert_sql(entries: tuple[RelayEntry, ...]) -> str:
    """Build an INSERT that skips inbox URLs already present.

    Reruns are therefore safe: existing rows are left untouched.
    """
    rows = ",\n".join(
        f"  ({_quote(e.inbox_url)}, {_quote(e.follow_activity_id)}, {int(e.state)})"
        for e in entries
    )
    return (
        "INSERT INTO relays (inbox_url, follow_activity_id, created_at, updated_at, state)\n"
        "SELECT v.inbox_url, v.follow_activity_id, NOW(), NOW(), v.state\n"
        "FROM (VALUES\n"
        f"{rows}\n"
        ") AS v(inbox_url, follow_activity_id, state)\n"
        "WHERE NOT EXISTS (SELECT 1 FROM relays r WHERE r.inbox_url = v.inbox_url);"
    )


def build_verify_sql(entries: tuple[RelayEntry, ...]) -> str:
    """Count how many of *entries* are present with their expected state."""
    conditions = " OR ".join(
        f"(inbox_url = {_quote(e.inbox_url)} AND state = {int(e.state)})" for e in entries
    )
    return f"SELECT count(*) FROM relays WHERE {conditions};"


def schema_is_supported(mastodon_version: str) -> bool:
    """Whether *mastodon_version* (e.g. ``v4.2.10``) is on the tested schema line."""
    return mastodon_version.lstrip("v").split(".", 1)[0] == RELAY_SCHEMA_MAJOR
