"""Follow targets and per-handle outcomes for the federation bootstrap.

Targets are transient: nothing about them is persisted between runs.
"""

from __future__ import annotations

import re
from enum import StrEnum

from pydantic import BaseModel

_HANDLE_RE = re.compile(r"^@?(?P<user>[A-Za-z0-9_.-]+)@(?P<domain>[A-Za-z0-9.-]+\.[A-Za-z0-9-]+)$")


class FollowStatus(StrEnum):
    """Result of one follow attempt."""

    FOLLOWED = "followed"
    SKIPPED = "skipped"
    FAILED = "failed"


class FollowTarget(BaseModel):
    """A remote account handle ``user@domain``."""

    model_config = {"frozen": True}

    user: str
    domain: str

    @property
    def handle(self) -> str:
        return f"{self.user}@{self.domain}"

    @classmethod
    def parse(cls, handle: str) -> FollowTarget:
        """Parse ``user@domain`` (a leading ``@`` is tolerated)."""
        match = _HANDLE_RE.match(handle.strip())
        if match is None:
            msg = f"Invalid account handle: {handle!r} (expected user@domain)"
            raise ValueError(msg)
        return cls(user=match["user"], domain=match["domain"])


class FollowOutcome(BaseModel):
    """What happened to one target."""

    model_config = {"frozen": True}

    handle: str
    status: FollowStatus
    account_id: str | None = None
    detail: str = ""


DEFAULT_FOLLOW_HANDLES: tuple[str, ...] = (
    "mastodon@mastodon.social",
    "georgetakei@universeodon.com",
    "rbreich@masto.ai",
    "FediTips@social.growyourown.services",
    "_kokt@simkey.net",
    "ProPublica@newsie.social",
    "APoD@botsin.space",
    "stephenfry@mastodonapp.uk",
    "gretathunberg@mastodon.nu",
    "EUCommission@ec.social-network.europa.eu",
    "molly0xfff@hachyderm.io",
    "auschwitzmuseum@mastodon.world",
    "ralphruthe@troet.cafe",
    "SwiftOnSecurity@infosec.exchange",
    "afelia@chaos.social",
    "MarcElias@mas.to",
    "primalmotion@antisocial.ly",
    "erictopol@mstdn.social",
    "pluralistic@mamot.fr",
    "internetarchive@mastodon.archive.org",
    "tagesschau@ard.social",
    "ct_bergstrom@fediscience.org",
    "omakano@omaka.nr1a.inc",
    "kuketzblog@social.tchncs.de",
    "viticci@macstories.net",
    "freemo@qoto.org",
    "timnitGebru@dair-community.social",
    "ralf@rottmann.social",
    "aral@mastodon.ar.al",
    "mattblaze@federate.social",
    "Mozilla@mozilla.social",
    "foone@digipres.club",
    "tapbots@tapbots.social",
    "bfdi@social.bund.de",
    "socraticethics@mastodon.online",
    "zdfmagazin@edi.social",
    "gossithedog@cyberplace.social",
    "davidallengreen@mastodon.green",
    "LinusTorvalds@social.kernel.org",
    "jamesgunn@c.im",
    "chiefTwit@twit.social",
    "fsf@hostux.social",
    "kachelmannwetter@meteo.social",
    "kev@fosstodon.org",
    "rober@masto.es",
    "MeanwhileinCanada@ohai.social",
    "tony@mastodon.tonywebster.com",
    "igd_news@kolektiva.social",
    "MicroSFF@mastodon.art",
    "kde@floss.social",
    "wikipedia@wikis.world",
    "openculture@toot.community",
    "cstross@wandering.shop",
    "UN_NERV@unnerv.jp",
    "NanoRaptor@bitbang.social",
    "a_watch@bewegung.social",
    "benjaminwittes@thecooltable.wtf",
    "mfowler@toot.thoughtworks.com",
    "Vivaldi@vivaldi.net",
    "Shine_McShine@paquita.masto.host",
    "BBCRD@social.bbc",
    "simon@simonwillison.net",
    "filippodb@mastodon.uno",
    "grumpygamer@mastodon.gamedev.place",
    "xkcd@mastodon.xyz",
    "timkmak@journa.host",
    "yourshot@acg.mn",
    "luckytran@med-mastodon.com",
    "linuzifer@23.social",
    "jsnell@zeppelin.flights",
    "medium@me.dm",
    "anneroth@systemli.social",
    "matrix@mastodon.matrix.org",
    "timbray@cosocial.ca",
    "TexasObserver@texasobserver.social",
    "taz@squeet.me",
    "themarkup@mastodon.themarkup.org",
    "heisec@social.heise.de",
    "parents4future@climatejustice.global",
    "year_progress@techhub.social",
    "alex@cybervillains.com",
    "SDF@mastodon.sdf.org",
    "matthew_d_green@ioc.exchange",
    "cabel@panic.com",
    "NPR@press.coop",
    "ulrichkelber@bonn.social",
)
