"""
Access dispatcher — picks the response strategy once every gate has passed.

States: Redirect, PasswordGate, WarningGate, Iframe, Proxy.

Entry state comes from the link's access mode, with one override applied
before anything else: a link with a password hash always enters
PasswordGate. A verified password hands control to the state the link's
mode would otherwise select.

Each handler returns either a terminal Outcome or the next state. Outcomes
say whether the visit counts (counters/history updated before responding):
prompts and interstitials do not count, everything that reaches the
destination does.
"""

from dataclasses import dataclass
from enum import Enum

from app.core.passwords import verify_password
from app.models.link import AccessMode, LinkRecord


class AccessState(str, Enum):
    REDIRECT = "redirect"
    PASSWORD_GATE = "password_gate"
    WARNING_GATE = "warning_gate"
    IFRAME = "iframe"
    PROXY = "proxy"


class Page(str, Enum):
    PASSWORD_PROMPT = "password_prompt"
    WARNING = "warning"
    IFRAME = "iframe"


@dataclass(frozen=True)
class RedirectTo:
    url: str
    status_code: int = 302
    counts_visit: bool = True


@dataclass(frozen=True)
class RenderPage:
    page: Page
    counts_visit: bool = False
    error: str | None = None
    status_code: int = 200


@dataclass(frozen=True)
class ForwardTo:
    url: str
    counts_visit: bool = True


Outcome = RedirectTo | RenderPage | ForwardTo

MODE_STATES = {
    AccessMode.REDIRECT: AccessState.REDIRECT,
    # password mode without a hash has nothing to verify
    AccessMode.PASSWORD: AccessState.REDIRECT,
    AccessMode.WARNING: AccessState.WARNING_GATE,
    AccessMode.IFRAME: AccessState.IFRAME,
    AccessMode.PROXY: AccessState.PROXY,
}

TRUTHY = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class DispatchInput:
    password: str | None = None
    confirmed: bool = False

    @classmethod
    def from_query(cls, query: dict[str, str]) -> "DispatchInput":
        return cls(
            password=query.get("password") or None,
            confirmed=(query.get("confirmed") or "").lower() in TRUTHY,
        )


def mode_state(link: LinkRecord) -> AccessState:
    return MODE_STATES[link.access_mode]


def entry_state(link: LinkRecord) -> AccessState:
    if link.password_hash:
        return AccessState.PASSWORD_GATE
    return mode_state(link)


def _password_gate(link: LinkRecord, inp: DispatchInput) -> Outcome | AccessState:
    if not inp.password:
        return RenderPage(Page.PASSWORD_PROMPT)
    if not verify_password(inp.password, link.password_hash):
        return RenderPage(Page.PASSWORD_PROMPT, error="Incorrect password, please try again", status_code=401)
    return mode_state(link)


def _warning_gate(link: LinkRecord, inp: DispatchInput) -> Outcome | AccessState:
    if not inp.confirmed:
        return RenderPage(Page.WARNING)
    return AccessState.REDIRECT


def _iframe(link: LinkRecord, inp: DispatchInput) -> Outcome | AccessState:
    return RenderPage(Page.IFRAME, counts_visit=True)


def _proxy(link: LinkRecord, inp: DispatchInput) -> Outcome | AccessState:
    return ForwardTo(link.target_url)


def _redirect(link: LinkRecord, inp: DispatchInput) -> Outcome | AccessState:
    return RedirectTo(link.target_url)


HANDLERS = {
    AccessState.PASSWORD_GATE: _password_gate,
    AccessState.WARNING_GATE: _warning_gate,
    AccessState.IFRAME: _iframe,
    AccessState.PROXY: _proxy,
    AccessState.REDIRECT: _redirect,
}


def dispatch(link: LinkRecord, inp: DispatchInput) -> Outcome:
    state = entry_state(link)
    visited: set[AccessState] = set()
    while True:
        if state in visited:
            raise RuntimeError(f"dispatch loop at {state.value} for {link.short_key}")
        visited.add(state)
        result = HANDLERS[state](link, inp)
        if isinstance(result, AccessState):
            state = result
            continue
        return result
