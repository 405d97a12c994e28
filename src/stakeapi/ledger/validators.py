from __future__ import annotations

"""Ledger-side checks for pool registration fields.

These are exactly the constraints the ledger places on its own types and no
stricter: DNS names are ASCII text of at most 64 bytes, metadata URLs are text
of at most 64 UTF-8 bytes, pool margins are rationals in [0, 1], ports fit a
Word16, and coin amounts fit a Word64. Hostname or URL syntax is not checked;
the chain accepts registrations whose relay names and URLs are not well formed.
"""

from dataclasses import dataclass
from fractions import Fraction
from typing import Optional

DNS_NAME_MAX_LENGTH = 64
URL_MAX_LENGTH = 64
PORT_MAX = 65535
COIN_MAX = 2**64 - 1


@dataclass(frozen=True)
class DnsName:
    text: str


@dataclass(frozen=True)
class Url:
    text: str


@dataclass(frozen=True)
class UnitInterval:
    value: Fraction


def text_to_dns(text: str) -> Optional[DnsName]:
    # Relay names travel as raw bytes on the domain side; only ASCII maps back unchanged.
    if not isinstance(text, str) or not text.isascii() or len(text) > DNS_NAME_MAX_LENGTH:
        return None
    return DnsName(text)


def text_to_url(text: str) -> Optional[Url]:
    if not isinstance(text, str):
        return None
    try:
        n = len(text.encode("utf-8"))
    except UnicodeEncodeError:
        return None
    if n > URL_MAX_LENGTH:
        return None
    return Url(text)


def bound_rational(r: Fraction) -> Optional[UnitInterval]:
    if isinstance(r, int) and not isinstance(r, bool):
        r = Fraction(r)
    if not isinstance(r, Fraction):
        return None
    if r < 0 or r > 1:
        return None
    return UnitInterval(r)


def is_port(v: object) -> bool:
    return isinstance(v, int) and not isinstance(v, bool) and 0 <= v <= PORT_MAX


def is_coin(v: object) -> bool:
    return isinstance(v, int) and not isinstance(v, bool) and 0 <= v <= COIN_MAX
