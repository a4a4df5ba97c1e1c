import pytest

from partner_api.core.exceptions import NotFoundError
from partner_api.services.offer_inheritance import OfferInheritanceEngine
from partner_api.services.referral_resolver import (
    STAGE_DECODED,
    STAGE_DEGRADED,
    STAGE_EXACT,
    ReferralLinkResolver,
)

LINK = "ACME01-SOUTH02-CERT-AB12CD34EFG"


@pytest.fixture
async def acme(make_company, make_offer):
    root = await make_company("ACME01")
    original = await make_offer(root, link="ACME01-AB12CD34EFG")
    return root, original


@pytest.mark.asyncio
async def test_decoded_link_attributes_actual_child(db_session, acme, make_company):
    root, original = acme
    south = await make_company("SOUTH02", parent=root)

    resolution = await ReferralLinkResolver(db_session).resolve(LINK)
    assert resolution.offer.id == original.id
    assert resolution.source_company.id == south.id
    assert resolution.attributed_company_id == south.id
    assert resolution.stage == STAGE_DECODED
    assert resolution.is_inherited is False
    assert [c.code for c in resolution.attribution_chain] == ["ACME01", "SOUTH02"]


@pytest.mark.asyncio
async def test_spoofed_child_degrades_to_parent_offer(db_session, acme, make_company):
    root, original = acme
    # SOUTH02 exists but belongs to another tree
    stranger = await make_company("ELSEWHERE")
    await make_company("SOUTH02", parent=stranger)

    resolution = await ReferralLinkResolver(db_session).resolve(LINK)
    assert resolution.offer.id == original.id
    assert resolution.source_company is None
    assert resolution.attributed_company_id == root.id
    assert resolution.stage == STAGE_DEGRADED
    assert [c.code for c in resolution.attribution_chain] == ["ACME01"]


@pytest.mark.asyncio
async def test_exact_match_wins_over_decoding(db_session, acme, make_company, make_offer):
    root, original = acme
    south = await make_company("SOUTH02", parent=root)
    copy = await make_offer(
        south,
        link=LINK,
        is_inherited=True,
        parent_offer_id=original.id,
    )

    resolution = await ReferralLinkResolver(db_session).resolve(LINK)
    assert resolution.stage == STAGE_EXACT
    assert resolution.offer.id == copy.id
    assert resolution.is_inherited is True
    assert resolution.source_company.id == south.id


@pytest.mark.asyncio
async def test_exact_match_on_direct_link(db_session, acme):
    root, original = acme
    resolution = await ReferralLinkResolver(db_session).resolve(original.referral_link)
    assert resolution.stage == STAGE_EXACT
    assert resolution.offer.id == original.id
    assert resolution.source_company is None
    assert resolution.attributed_company_id == root.id


@pytest.mark.asyncio
async def test_generated_copy_links_resolve_exactly(db_session, acme, make_company):
    root, original = acme
    south = await make_company("SOUTH-EAST", parent=root)
    await OfferInheritanceEngine(db_session).create_inherited_offers(root.id, south.id)
    [copy] = await OfferInheritanceEngine(db_session).inherited_copies(original.id)

    resolution = await ReferralLinkResolver(db_session).resolve(copy.referral_link)
    assert resolution.offer.id == copy.id
    assert resolution.source_company.id == south.id


@pytest.mark.asyncio
async def test_inactive_offer_is_not_an_exact_match(db_session, make_company, make_offer):
    root = await make_company("ACME01")
    offer = await make_offer(root, is_active=False)

    with pytest.raises(NotFoundError) as ei:
        await ReferralLinkResolver(db_session).resolve(offer.referral_link)
    assert ei.value.details["reason"] == "no_matching_offer"


@pytest.mark.asyncio
async def test_type_tag_must_match(db_session, acme, make_company):
    root, _ = acme
    await make_company("SOUTH02", parent=root)

    with pytest.raises(NotFoundError):
        await ReferralLinkResolver(db_session).resolve("ACME01-SOUTH02-LONG-AB12CD34EFG")


@pytest.mark.asyncio
async def test_unknown_parent_code(db_session, acme):
    with pytest.raises(NotFoundError) as ei:
        await ReferralLinkResolver(db_session).resolve("NOPE-SOUTH02-CERT-AB12CD34EFG")
    assert ei.value.code == "referral_link_not_found"
    assert ei.value.details["reason"] == "unknown_parent_code"


@pytest.mark.asyncio
@pytest.mark.parametrize("link", ["", "   ", "ACME01"])
async def test_links_without_hash_are_not_found(db_session, acme, link):
    with pytest.raises(NotFoundError):
        await ReferralLinkResolver(db_session).resolve(link)


@pytest.mark.asyncio
async def test_hash_wildcards_are_literal(db_session, acme, make_company):
    root, _ = acme
    await make_company("SOUTH02", parent=root)

    with pytest.raises(NotFoundError):
        await ReferralLinkResolver(db_session).resolve("ACME01-SOUTH02-CERT-%")
