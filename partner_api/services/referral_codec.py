# partner_api/services/referral_codec.py
"""
Referral link encoding.

Two formats are in circulation and both must stay decodable:

* direct links for offers owned by a root company::

      <ownCode>-<8 random alnum>-<3 char base36 time suffix>

* hierarchical links for inherited offers::

      <parentCode>-<childCode>-<TYPE>-<11 random alnum>

``TYPE`` is a tag from a closed vocabulary.  New links carry ``LONG`` or
``CERT``; the legacy tags ``TFA``, ``TFA_ROMANIA`` and ``CERTIFICATION`` are
still recognised on decode.
"""
from __future__ import annotations

import secrets
import string
import time
from dataclasses import dataclass
from typing import Dict, List, Optional

from partner_api.core.exceptions import ValidationError
from partner_api.models.enums import OfferType

_ALPHABET = string.ascii_uppercase + string.digits
_BASE36 = string.digits + string.ascii_uppercase

DIRECT_RANDOM_LENGTH = 8
DIRECT_TIME_SUFFIX_LENGTH = 3
CHILD_HASH_LENGTH = 11

TYPE_TAGS: Dict[OfferType, str] = {
    OfferType.LONG_PROGRAM: "LONG",
    OfferType.CERTIFICATION: "CERT",
}

# tag -> offer type, including tags no longer issued
_TAG_TO_TYPE: Dict[str, OfferType] = {
    "LONG": OfferType.LONG_PROGRAM,
    "CERT": OfferType.CERTIFICATION,
    "TFA": OfferType.LONG_PROGRAM,
    "TFA_ROMANIA": OfferType.LONG_PROGRAM,
    "CERTIFICATION": OfferType.CERTIFICATION,
}

KNOWN_TYPE_TAGS = frozenset(_TAG_TO_TYPE)


@dataclass(frozen=True)
class ReferralLink:
    parent_code: str
    child_code: Optional[str]
    type_tag: Optional[str]
    hash: str
    is_hierarchical: bool

    @property
    def offer_type(self) -> Optional[OfferType]:
        if self.type_tag is None:
            return None
        return _TAG_TO_TYPE.get(self.type_tag)


def _random_token(length: int) -> str:
    return "".join(secrets.choice(_ALPHABET) for _ in range(length))


def _base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def _time_suffix(now_ms: Optional[int] = None) -> str:
    ms = int(time.time() * 1000) if now_ms is None else now_ms
    return _base36(ms)[-DIRECT_TIME_SUFFIX_LENGTH:].rjust(DIRECT_TIME_SUFFIX_LENGTH, "0")


def _check_code(value: Optional[str], field: str, *, allow_dash: bool) -> str:
    code = (value or "").strip()
    if not code:
        raise ValidationError(
            message=f"{field} is required to build a referral link",
            code="invalid_company_code",
            details={"field": field},
        )
    if not allow_dash and "-" in code:
        raise ValidationError(
            message=f"{field} must not contain '-'",
            code="invalid_company_code",
            details={"field": field, "value": code},
        )
    if any(part.upper() in KNOWN_TYPE_TAGS for part in code.split("-")):
        raise ValidationError(
            message=f"{field} collides with a referral type tag",
            code="invalid_company_code",
            details={"field": field, "value": code},
        )
    return code


def type_tag_for(offer_type: str) -> str:
    try:
        return TYPE_TAGS[OfferType(offer_type)]
    except ValueError:
        raise ValidationError(
            message="Unsupported offer type",
            code="invalid_offer_type",
            details={"field": "offer_type", "value": offer_type},
        ) from None


def encode_direct_link(own_code: str, *, now_ms: Optional[int] = None) -> str:
    code = _check_code(own_code, "own_code", allow_dash=False)
    return f"{code}-{_random_token(DIRECT_RANDOM_LENGTH)}-{_time_suffix(now_ms)}"


def encode_child_link(parent_code: str, child_code: str, offer_type: str) -> str:
    parent = _check_code(parent_code, "parent_code", allow_dash=False)
    child = _check_code(child_code, "child_code", allow_dash=True)
    tag = type_tag_for(offer_type)
    return f"{parent}-{child}-{tag}-{_random_token(CHILD_HASH_LENGTH)}"


def _find_type_index(segments: List[str]) -> int:
    # a tag in segment 0 is found here and then read positionally
    for index in range(len(segments)):
        if segments[index] in KNOWN_TYPE_TAGS:
            return index
    return -1


def decode(link: str) -> ReferralLink:
    """Decode a referral link into its structural parts.

    Never raises: unrecognised shapes degrade to the positional reading, and
    a link without any dash decodes to an opaque code with an empty hash.
    """
    value = (link or "").strip()
    segments = value.split("-")
    type_index = _find_type_index(segments)

    if type_index >= 2:
        return ReferralLink(
            parent_code=segments[0],
            child_code="-".join(segments[1:type_index]),
            type_tag=segments[type_index],
            hash="-".join(segments[type_index + 1:]),
            is_hierarchical=True,
        )

    if type_index == 1:
        return ReferralLink(
            parent_code=segments[0],
            child_code=None,
            type_tag=segments[1],
            hash="-".join(segments[2:]),
            is_hierarchical=False,
        )

    if len(segments) >= 3:
        return ReferralLink(
            parent_code=segments[0],
            child_code=segments[1],
            type_tag=None,
            hash="-".join(segments[2:]),
            is_hierarchical=True,
        )

    if len(segments) == 2:
        return ReferralLink(
            parent_code=segments[0],
            child_code=None,
            type_tag=None,
            hash=segments[1],
            is_hierarchical=False,
        )

    return ReferralLink(
        parent_code=value,
        child_code=None,
        type_tag=None,
        hash="",
        is_hierarchical=False,
    )


def prefix_candidates(link: str) -> List[str]:
    """Every dash-delimited prefix of ``link``, longest first."""
    segments = (link or "").strip().split("-")
    return ["-".join(segments[:n]) for n in range(len(segments) - 1, 0, -1)]
