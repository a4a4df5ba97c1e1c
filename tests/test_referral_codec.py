import re

import pytest

from partner_api.core.exceptions import ValidationError
from partner_api.models.enums import OfferType
from partner_api.services.referral_codec import (
    decode,
    encode_child_link,
    encode_direct_link,
    prefix_candidates,
)


def test_encode_direct_link_shape():
    link = encode_direct_link("ACME01")
    assert re.fullmatch(r"ACME01-[A-Z0-9]{8}-[0-9A-Z]{3}", link)


def test_direct_link_time_suffix_is_base36_of_epoch_ms():
    # 1700000000000 ms in base 36 is "LOYW3V28", last three "V28"
    link = encode_direct_link("ACME01", now_ms=1700000000000)
    assert link.endswith("-V28")


def test_encode_child_link_shape():
    link = encode_child_link("ACME01", "SOUTH02", "certification")
    assert re.fullmatch(r"ACME01-SOUTH02-CERT-[A-Z0-9]{11}", link)


def test_encode_child_link_long_program_tag():
    assert encode_child_link("ACME01", "SOUTH02", "long-program").split("-")[2] == "LONG"


def test_child_link_round_trip():
    link = encode_child_link("ACME01", "SOUTH02", "certification")
    decoded = decode(link)
    assert decoded.parent_code == "ACME01"
    assert decoded.child_code == "SOUTH02"
    assert decoded.type_tag == "CERT"
    assert decoded.offer_type is OfferType.CERTIFICATION
    assert decoded.is_hierarchical is True
    assert len(decoded.hash) == 11
    assert link.endswith(decoded.hash)


def test_child_code_with_dashes_round_trip():
    link = encode_child_link("ACME01", "SOUTH-EAST", "long-program")
    decoded = decode(link)
    assert decoded.child_code == "SOUTH-EAST"
    assert decoded.offer_type is OfferType.LONG_PROGRAM


def test_decode_legacy_tags():
    decoded = decode("ACME01-SOUTH02-TFA-ABCDEF12345")
    assert decoded.offer_type is OfferType.LONG_PROGRAM
    assert decoded.child_code == "SOUTH02"

    decoded = decode("ACME01-SOUTH02-CERTIFICATION-ABCDEF12345")
    assert decoded.offer_type is OfferType.CERTIFICATION

    decoded = decode("ACME01-SOUTH02-TFA_ROMANIA-ABCDEF12345")
    assert decoded.offer_type is OfferType.LONG_PROGRAM


def test_decode_type_directly_after_code_is_direct():
    decoded = decode("ACME01-CERT-XYZ123")
    assert decoded.is_hierarchical is False
    assert decoded.parent_code == "ACME01"
    assert decoded.child_code is None
    assert decoded.type_tag == "CERT"
    assert decoded.hash == "XYZ123"


def test_decode_positional_three_segments_is_hierarchical():
    decoded = decode("ACME01-SOUTH02-HASH99")
    assert decoded.is_hierarchical is True
    assert decoded.parent_code == "ACME01"
    assert decoded.child_code == "SOUTH02"
    assert decoded.type_tag is None
    assert decoded.offer_type is None
    assert decoded.hash == "HASH99"


def test_decode_two_segments_is_direct():
    decoded = decode("ACME01-HASH99")
    assert decoded.is_hierarchical is False
    assert decoded.parent_code == "ACME01"
    assert decoded.hash == "HASH99"


def test_decode_opaque_code():
    decoded = decode("  ACME01  ")
    assert decoded.parent_code == "ACME01"
    assert decoded.hash == ""
    assert decoded.is_hierarchical is False


def test_decode_tag_in_first_segment_is_not_a_type():
    decoded = decode("CERT-ABC")
    assert decoded.parent_code == "CERT"
    assert decoded.type_tag is None
    assert decoded.hash == "ABC"


def test_decode_tag_in_first_segment_falls_back_to_positions():
    decoded = decode("CERT-SOUTH-LONG-HASH")
    assert decoded.parent_code == "CERT"
    assert decoded.child_code == "SOUTH"
    assert decoded.type_tag is None
    assert decoded.hash == "LONG-HASH"
    assert decoded.is_hierarchical is True


@pytest.mark.parametrize("parent", ["", "  ", "AC-ME"])
def test_encode_rejects_bad_parent_codes(parent):
    with pytest.raises(ValidationError) as ei:
        encode_child_link(parent, "SOUTH02", "certification")
    assert ei.value.code == "invalid_company_code"


def test_encode_rejects_codes_colliding_with_tags():
    with pytest.raises(ValidationError):
        encode_child_link("ACME01", "SOUTH-CERT", "certification")
    with pytest.raises(ValidationError):
        encode_direct_link("CERT")


def test_encode_rejects_unknown_offer_type():
    with pytest.raises(ValidationError) as ei:
        encode_child_link("ACME01", "SOUTH02", "webinar")
    assert ei.value.details["field"] == "offer_type"


def test_prefix_candidates_longest_first():
    assert prefix_candidates("ACME01-SOUTH02-CERT-HASH") == [
        "ACME01-SOUTH02-CERT",
        "ACME01-SOUTH02",
        "ACME01",
    ]
    assert prefix_candidates("ACME01") == []
