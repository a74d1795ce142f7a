"""SiteLock declarative backend.

Instead of deciding per request, this backend compiles the enabled,
currently locked sites into :class:`Directive` objects and installs them
on the platform's directive table in one batch.  From then on the
platform matches and redirects by itself; the table never updates on its
own, so :meth:`DeclarativeBackend.refresh` must run after every site-list
change and every grant, revoke or expiry.

Compilation
-----------
Within a site, a matching allow rule always wins (see
:mod:`sitelock.matching.evaluator`), so a site blocks a URL exactly when
at least one block pattern matches and no allow pattern does.  Each site
therefore becomes a single redirect directive:

* ``regex_filter`` -- union of the site's block patterns;
* ``excluded_regex_filters`` -- one entry per allow pattern.

Directive priority decreases with the site's position in the list, which
reproduces "first matching site wins".  The redirect is a substitution:
the platform replaces ``\\0`` with the whole matched URL, percent-encoded,
so the blocked page receives the original ``url`` next to ``siteId``.

Patterns are translated to regular expressions over the canonical URL
(lower-case scheme and host, ``/`` for an empty path):

===================  ==========================================
Pattern              Host expression
===================  ==========================================
``reddit.com``       ``(?:www\\.)?reddit\\.com``
``*.reddit.com``     ``(?:[^/?#:@]*\\.)?reddit\\.com``
``*reddit*``         ``(?:www\\.)?[^/?#:@]*reddit[^/?#:@]*``
===================  ==========================================

followed by an optional port and the path expression.  A host part that
spells out a port (``reddit.com:8080``) is rejected with
:class:`~sitelock.core.errors.InvalidPattern`: the matcher compares
hosts without their port, so such a pattern never matches there either.
"""
from __future__ import annotations

import logging
import re
from collections.abc import Callable, Sequence
from functools import lru_cache
from typing import TYPE_CHECKING, ClassVar, Literal
from urllib.parse import urlsplit, urlunsplit

from pydantic import BaseModel, ConfigDict, Field

from sitelock.core.errors import InvalidPattern
from sitelock.core.types import (
    Clock,
    RequestContext,
    Site,
    SiteId,
    Verdict,
    utcnow,
)
from sitelock.enforcement.base import BaseBackend, Decision
from sitelock.matching.patterns import split_pattern
from sitelock.matching.urls import encode_component, is_internal_url

if TYPE_CHECKING:
    from sitelock.core.config import SiteLockConfig
    from sitelock.core.interfaces import DirectiveTable, SiteStore, TabController
    from sitelock.unlock.ledger import UnlockLedger

logger = logging.getLogger(__name__)

_URL_PREFIX = r"[a-z][a-z0-9+.\-]*://(?:[^/?#@]*@)?"
_PORT = r"(?::\d+)?"
_HOST_STAR = r"[^/?#:@]*"
_PATH_STAR = r"[^?#]*"
_QUERY_TAIL = r"(?:[?#].*)?"

MATCH_PLACEHOLDER = "\\0"
"""Whole-match reference inside ``DirectiveAction.regex_substitution``."""


# ---------------------------------------------------------------------------
# Directive models
# ---------------------------------------------------------------------------

class DirectiveCondition(BaseModel):
    """When a directive applies."""

    model_config = ConfigDict(strict=True, frozen=True)

    regex_filter: str
    excluded_regex_filters: tuple[str, ...] = ()
    resource_types: tuple[str, ...] = ("main_frame",)
    is_url_filter_case_sensitive: bool = False


class DirectiveAction(BaseModel):
    """What the platform does when a directive applies.

    ``regex_substitution`` is the redirect target; :data:`MATCH_PLACEHOLDER`
    stands for the matched URL.
    """

    model_config = ConfigDict(strict=True, frozen=True)

    type: Literal["redirect"] = "redirect"
    regex_substitution: str


class Directive(BaseModel):
    """One installed match/redirect rule."""

    model_config = ConfigDict(strict=True, frozen=True)

    id: int = Field(ge=1)
    priority: int = Field(ge=1)
    site_id: SiteId
    action: DirectiveAction
    condition: DirectiveCondition

    def matches(self, url: str, resource_type: str = "main_frame") -> bool:
        """Evaluate the condition the way the platform does."""
        if resource_type not in self.condition.resource_types:
            return False
        canonical = canonical_url(url)
        if canonical is None:
            return False
        flags = 0 if self.condition.is_url_filter_case_sensitive else re.IGNORECASE
        if not _compile(self.condition.regex_filter, flags).search(canonical):
            return False
        return not any(
            _compile(excluded, flags).search(canonical)
            for excluded in self.condition.excluded_regex_filters
        )

    def redirect_target(self, url: str) -> str:
        """Expand the substitution for *url* the way the platform does."""
        return self.action.regex_substitution.replace(MATCH_PLACEHOLDER, encode_component(url))


@lru_cache(maxsize=1024)
def _compile(regex: str, flags: int) -> re.Pattern[str]:
    return re.compile(regex, flags)


def canonical_url(url: str) -> str | None:
    """Return *url* with lower-case scheme and host and a non-empty path.

    Returns ``None`` for URLs without a scheme or host.
    """
    try:
        parts = urlsplit(url.strip())
    except ValueError:
        return None
    if not parts.scheme or not parts.netloc:
        return None
    return urlunsplit(
        (parts.scheme.lower(), parts.netloc.lower(), parts.path or "/", parts.query, parts.fragment)
    )


# ---------------------------------------------------------------------------
# Compiler
# ---------------------------------------------------------------------------

def _glob(text: str, star: str) -> str:
    return star.join(re.escape(part) for part in text.split("*"))


def _host_regex(host_pattern: str) -> str:
    if ":" in host_pattern:
        raise InvalidPattern(
            "Host part must not carry a port", details={"host": host_pattern}
        )
    if host_pattern.startswith("*."):
        domain = host_pattern[2:]
        if not domain:
            raise InvalidPattern("Wildcard without a domain", details={"host": host_pattern})
        return rf"(?:{_HOST_STAR}\.)?{re.escape(domain)}"
    if not host_pattern:
        raise InvalidPattern("Empty host", details={"host": host_pattern})
    return rf"(?:www\.)?{_glob(host_pattern, _HOST_STAR)}"


def _path_regex(path_pattern: str | None) -> str:
    if path_pattern is None:
        return r"(?:[/?#].*)?"
    if "*" in path_pattern:
        return _glob(path_pattern, _PATH_STAR) + _QUERY_TAIL
    clean = path_pattern.removesuffix("/")
    return rf"{re.escape(clean)}(?:/{_PATH_STAR})?{_QUERY_TAIL}"


def pattern_to_regex(pattern: str) -> str:
    """Translate a rule pattern into an anchored URL regular expression.

    Raises
    ------
    InvalidPattern
        For patterns that can never match (empty host, a port).
    """
    host_pattern, path_pattern = split_pattern(pattern)
    host = _host_regex(host_pattern)
    return f"^{_URL_PREFIX}{host}{_PORT}{_path_regex(path_pattern)}$"


def compile_site(
    site: Site,
    *,
    directive_id: int,
    priority: int,
    config: SiteLockConfig,
) -> Directive | None:
    """Compile *site* into one directive, or ``None`` if it blocks nothing.

    Rules whose pattern cannot match are left out.
    """
    blocks: list[str] = []
    allows: list[str] = []
    for rule in site.rules:
        try:
            regex = pattern_to_regex(rule.pattern)
        except InvalidPattern as exc:
            logger.debug("Skipping rule %r of site %s: %s", rule.pattern, site.id, exc.message)
            continue
        (allows if rule.allow else blocks).append(regex)
    if not blocks:
        return None

    union = blocks[0] if len(blocks) == 1 else "|".join(f"(?:{b})" for b in blocks)
    return Directive(
        id=directive_id,
        priority=priority,
        site_id=site.id,
        action=DirectiveAction(
            regex_substitution=(
                f"{config.blocked_page_url}?url={MATCH_PLACEHOLDER}"
                f"&siteId={encode_component(site.id)}"
            ),
        ),
        condition=DirectiveCondition(
            regex_filter=union,
            excluded_regex_filters=tuple(allows),
        ),
    )


def compile_directives(
    sites: Sequence[Site],
    config: SiteLockConfig,
    *,
    is_unlocked: Callable[[str], bool] = lambda _site_id: False,
) -> list[Directive]:
    """Compile every enabled, locked site into prioritised directives.

    The result is ordered by descending priority and truncated to
    ``config.max_directives`` entries.
    """
    directives: list[Directive] = []
    next_id = config.directive_id_start
    total = len(sites)
    for index, site in enumerate(sites):
        if not site.enabled or is_unlocked(site.id):
            continue
        directive = compile_site(
            site,
            directive_id=next_id,
            priority=total - index,
            config=config,
        )
        if directive is None:
            continue
        directives.append(directive)
        next_id += 1

    if len(directives) > config.max_directives:
        logger.warning(
            "Compiled %d directives, platform accepts %d; dropping the lowest priority ones",
            len(directives),
            config.max_directives,
        )
        directives = directives[: config.max_directives]
    return directives


# ---------------------------------------------------------------------------
# Backend
# ---------------------------------------------------------------------------

class DeclarativeBackend(BaseBackend):
    """Pre-compiled match/redirect directives installed on the platform.

    Parameters
    ----------
    table:
        The platform directive table, or ``None`` when the platform has
        none (enforcement is then disabled).
    """

    name: ClassVar[str] = "declarative"

    def __init__(
        self,
        store: SiteStore,
        ledger: UnlockLedger,
        tabs: TabController,
        config: SiteLockConfig,
        table: DirectiveTable | None = None,
        clock: Clock = utcnow,
    ) -> None:
        super().__init__(store, ledger, tabs, config, clock)
        self._table = table
        self._refresh_generation = 0

    async def initialize(self) -> None:
        """Compile and install the first directive batch."""
        if self._table is None:
            logger.warning("Directive table unavailable; blocking disabled")
        await self.refresh()
        logger.info(
            "Declarative backend ready with %d directives", len(self.snapshot.directives)
        )

    async def refresh(self) -> None:
        """Recompile all directives and replace the installed batch.

        A refresh overtaken by a newer one is dropped, so an older batch
        never replaces a newer one: the table applies replacements in the
        order they are requested, and only the newest refresh publishes
        its snapshot.
        """
        self._refresh_generation += 1
        generation = self._refresh_generation
        sites = await self._store.get_sites()
        if generation != self._refresh_generation:
            return

        directives = compile_directives(sites, self._config, is_unlocked=self._ledger.is_unlocked)
        if self._table is not None:
            await self._table.replace_directives(directives)
            if generation != self._refresh_generation:
                return
        self._snapshot = self._next_snapshot(sites, directives)
        logger.info("Installed %d directives", len(directives))

    async def _after_ledger_change(self) -> None:
        await self.refresh()

    def decide(self, url: str, context: RequestContext | None = None) -> Decision:
        """Return the verdict the installed directives produce for *url*.

        The platform redirects on its own, so no deferred side effects are
        attached.  Without a directive table nothing is enforced.
        """
        ctx = context or RequestContext()
        if self._table is None:
            return Decision.allow()
        if ctx.frame_id != 0 or is_internal_url(url, self._config):
            return Decision.allow()
        for directive in self.snapshot.directives:
            if directive.matches(url, ctx.resource_type):
                return Decision(
                    verdict=Verdict.BLOCK,
                    site_id=directive.site_id,
                    redirect_url=directive.redirect_target(url),
                )
        return Decision.allow()
