"""
Outcome Classifier
==================
Maps probe responses and render/transform failures onto exactly one
terminal outcome per URL.

Rules:

- Probe status outside 2xx                → ``Invalid``
- 2xx probe that followed a redirect      → ``Redirect``
- Clean probe                             → render; ``Success`` unless a
                                            later step throws
- Failure after a clean probe             → re-probe; ``Invalid`` /
                                            ``Redirect`` if the re-probe
                                            says so, ``Error`` otherwise

``Invalid`` and ``Redirect`` are decided from probe responses only.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union
from urllib.parse import urlparse

from .proxy import ProxyTarget, origin_of, to_remote_url
from .renderer import ProbeResult, RenderedDocument

logger = logging.getLogger(__name__)


class OutcomeKind(str, Enum):
    SUCCESS = "Success"
    REDIRECT = "Redirect"
    INVALID = "Invalid"
    ERROR = "Error"


@dataclass(frozen=True)
class Success:
    document: RenderedDocument
    kind = OutcomeKind.SUCCESS

    @property
    def status_text(self) -> str:
        return "Success"


@dataclass(frozen=True)
class Redirect:
    final_url: str
    kind = OutcomeKind.REDIRECT

    @property
    def status_text(self) -> str:
        return "Redirect"


@dataclass(frozen=True)
class Invalid:
    http_status: int
    kind = OutcomeKind.INVALID

    @property
    def status_text(self) -> str:
        return f"Invalid: {self.http_status}"


@dataclass(frozen=True)
class Error:
    message: str
    kind = OutcomeKind.ERROR

    @property
    def status_text(self) -> str:
        return f"Error: {self.message}"


PageOutcome = Union[Success, Redirect, Invalid, Error]


def status_kind(status_text: str) -> OutcomeKind:
    """Recover the outcome kind from a report status string."""
    head = status_text.split(":", 1)[0].strip()
    return OutcomeKind(head)


def redirect_target(final_url: str, target: ProxyTarget, origin_param: str) -> str:
    """
    Where a redirect landed, expressed for the report.

    A redirect that stayed on the proxy origin is rewritten back to the
    remote origin (the proxy followed a same-site redirect); any other
    final URL is reported verbatim.
    """
    parsed = urlparse(final_url)
    try:
        on_proxy = bool(parsed.hostname) and origin_of(parsed) == target.proxy_origin
    except ValueError:
        on_proxy = False
    if on_proxy:
        return to_remote_url(final_url, target.remote_origin, strip_param=origin_param)
    return final_url


def classify_probe(
    probe: ProbeResult,
    target: ProxyTarget,
    origin_param: str = "host",
) -> Optional[PageOutcome]:
    """
    Classify the existence check.

    Returns ``Invalid`` or ``Redirect`` when the probe settles the
    outcome, or ``None`` when the page should be rendered.
    """
    if not probe.ok:
        logger.debug(f"[PROBE] {target.remote_url} -> HTTP {probe.status}")
        return Invalid(probe.status)
    if probe.redirected:
        final = redirect_target(probe.final_url or target.proxy_url, target, origin_param)
        logger.debug(f"[PROBE] {target.remote_url} redirected to {final}")
        return Redirect(final)
    return None


def classify_failure(
    exc: BaseException,
    reprobe: Optional[ProbeResult],
    target: ProxyTarget,
    origin_param: str = "host",
) -> PageOutcome:
    """
    Classify a failure that happened after a clean probe.

    *reprobe* is the secondary probe response, or ``None`` if it could
    not be obtained.  A page that turned invalid or started redirecting
    in the meantime is reported as such; anything else is an ``Error``
    carrying the original message.
    """
    if reprobe is not None:
        outcome = classify_probe(reprobe, target, origin_param)
        if outcome is not None:
            return outcome
    return Error(error_message(exc))


def error_message(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__
