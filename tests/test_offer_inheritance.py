from decimal import Decimal

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from partner_api.core.exceptions import ConflictError, NotFoundError
from partner_api.models import Offer
from partner_api.services.offer_inheritance import OfferInheritanceEngine, generate_unique_link
from partner_api.services.referral_codec import decode


async def offers_of(session, company):
    result = await session.execute(select(Offer).where(Offer.company_id == company.id).order_by(Offer.id))
    return list(result.scalars().all())


@pytest.fixture
async def family(make_company):
    root = await make_company("ACME01", is_premium=True)
    south = await make_company("SOUTH02", parent=root)
    north = await make_company("NORTH03", parent=root)
    return root, south, north


@pytest.mark.asyncio
async def test_copies_carry_terms_and_hierarchical_link(db_session, family, make_offer):
    root, south, _ = family
    original = await make_offer(root, custom_payment_plan=[{"amount": 250}, {"amount": 250}])

    created = await OfferInheritanceEngine(db_session).create_inherited_offers(root.id, south.id)
    assert created == 1

    [copy] = await offers_of(db_session, south)
    assert copy.is_inherited is True
    assert copy.is_active is True
    assert copy.parent_offer_id == original.id
    assert copy.name == original.name
    assert copy.offer_type == "certification"
    assert Decimal(copy.total_amount) == Decimal("500")
    assert copy.custom_payment_plan == [{"amount": 250}, {"amount": 250}]

    decoded = decode(copy.referral_link)
    assert decoded.parent_code == "ACME01"
    assert decoded.child_code == "SOUTH02"
    assert decoded.type_tag == "CERT"


@pytest.mark.asyncio
async def test_create_is_idempotent(db_session, family, make_offer):
    root, south, _ = family
    await make_offer(root)
    await make_offer(root, offer_type="long-program", name="Long program")
    engine = OfferInheritanceEngine(db_session)

    assert await engine.create_inherited_offers(root.id, south.id) == 2
    links = [o.referral_link for o in await offers_of(db_session, south)]

    assert await engine.create_inherited_offers(root.id, south.id) == 0
    assert [o.referral_link for o in await offers_of(db_session, south)] == links


@pytest.mark.asyncio
async def test_inactive_and_inherited_offers_are_not_copied(db_session, family, make_offer):
    root, south, _ = family
    await make_offer(root, is_active=False)

    assert await OfferInheritanceEngine(db_session).create_inherited_offers(root.id, south.id) == 0
    assert await offers_of(db_session, south) == []


@pytest.mark.asyncio
async def test_deactivated_copy_is_not_recreated(db_session, family, make_offer):
    root, south, _ = family
    await make_offer(root)
    engine = OfferInheritanceEngine(db_session)
    await engine.create_inherited_offers(root.id, south.id)

    [copy] = await offers_of(db_session, south)
    await engine.deactivate_inherited_offer(south.id, copy.id)

    assert await engine.create_inherited_offers(root.id, south.id) == 0
    [still] = await offers_of(db_session, south)
    assert still.id == copy.id
    assert still.is_active is False


@pytest.mark.asyncio
async def test_sync_covers_every_child(db_session, family, make_offer):
    root, south, north = family
    await make_offer(root)

    report = await OfferInheritanceEngine(db_session).sync_inherited_offers(root.id)
    assert report.created == {south.id: 1, north.id: 1}
    assert report.warnings == []
    assert report.total_created == 2

    again = await OfferInheritanceEngine(db_session).sync_inherited_offers(root.id)
    assert again.total_created == 0


@pytest.mark.asyncio
async def test_sync_is_single_level(db_session, family, make_offer, make_company):
    root, south, _ = family
    depot = await make_company("DEPOT04", parent=south)
    await make_offer(root)

    await OfferInheritanceEngine(db_session).sync_inherited_offers(root.id)
    assert await offers_of(db_session, depot) == []


@pytest.mark.asyncio
async def test_failing_child_does_not_stop_siblings(db_session, family, make_offer, make_company):
    root, south, north = family
    # a child code containing a type tag cannot be encoded into a link
    broken = await make_company("BAD-CERT", parent=root)
    await make_offer(root)

    report = await OfferInheritanceEngine(db_session).sync_inherited_offers(root.id)
    assert report.created == {south.id: 1, north.id: 1}
    assert len(report.warnings) == 1
    assert f"company {broken.id}" in report.warnings[0]
    assert await offers_of(db_session, broken) == []


@pytest.mark.asyncio
async def test_insert_race_is_retried_once(db_session, family, make_offer, monkeypatch):
    root, south, _ = family
    await make_offer(root)
    engine = OfferInheritanceEngine(db_session)
    real_copy = engine._copy_missing_offers
    calls = []

    async def flaky(parent, child):
        calls.append(child.id)
        if len(calls) == 1:
            raise IntegrityError("INSERT INTO partner_offers", {}, Exception("duplicate key"))
        return await real_copy(parent, child)

    monkeypatch.setattr(engine, "_copy_missing_offers", flaky)
    assert await engine.create_inherited_offers(root.id, south.id) == 1
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_repeated_insert_race_is_a_conflict(db_session, family, make_offer, monkeypatch):
    root, south, _ = family
    await make_offer(root)
    engine = OfferInheritanceEngine(db_session)

    async def always_racing(parent, child):
        raise IntegrityError("INSERT INTO partner_offers", {}, Exception("duplicate key"))

    monkeypatch.setattr(engine, "_copy_missing_offers", always_racing)
    with pytest.raises(ConflictError) as ei:
        await engine.create_inherited_offers(root.id, south.id)
    assert ei.value.code == "inheritance_conflict"


@pytest.mark.asyncio
async def test_unique_link_generation_gives_up(db_session, family, make_offer):
    root, _, _ = family
    taken = await make_offer(root)

    with pytest.raises(ConflictError) as ei:
        await generate_unique_link(db_session, lambda: taken.referral_link, max_attempts=3)
    assert ei.value.code == "referral_link_exhausted"


@pytest.mark.asyncio
async def test_propagate_terms_keeps_links(db_session, family, make_offer):
    root, south, north = family
    original = await make_offer(root)
    engine = OfferInheritanceEngine(db_session)
    await engine.sync_inherited_offers(root.id)
    before = {o.id: o.referral_link for o in await engine.inherited_copies(original.id)}

    original.total_amount = Decimal("650.00")
    original.installments = 2
    assert await engine.propagate_terms(original) == 2
    await db_session.commit()

    for copy in await engine.inherited_copies(original.id):
        assert Decimal(copy.total_amount) == Decimal("650")
        assert copy.installments == 2
        assert copy.referral_link == before[copy.id]


@pytest.mark.asyncio
async def test_retire_deletes_unused_family(db_session, family, make_offer):
    root, south, _ = family
    original = await make_offer(root)
    engine = OfferInheritanceEngine(db_session)
    await engine.create_inherited_offers(root.id, south.id)

    assert await engine.retire_offer(original) == "deleted"
    await db_session.commit()
    assert await offers_of(db_session, root) == []
    assert await offers_of(db_session, south) == []


@pytest.mark.asyncio
async def test_retire_deactivates_when_copies_were_used(db_session, family, make_offer, make_registration):
    root, south, _ = family
    original = await make_offer(root)
    engine = OfferInheritanceEngine(db_session)
    await engine.create_inherited_offers(root.id, south.id)
    [copy] = await offers_of(db_session, south)
    await make_registration(copy)

    assert await engine.retire_offer(original) == "deactivated"
    await db_session.commit()
    assert original.is_active is False
    [copy] = await offers_of(db_session, south)
    assert copy.is_active is False


@pytest.mark.asyncio
async def test_deactivate_rejects_confirmed_registrations(db_session, family, make_offer, make_registration):
    root, south, _ = family
    await make_offer(root)
    engine = OfferInheritanceEngine(db_session)
    await engine.create_inherited_offers(root.id, south.id)
    [copy] = await offers_of(db_session, south)
    await make_registration(copy, status="CONFIRMED")

    with pytest.raises(ConflictError) as ei:
        await engine.deactivate_inherited_offer(south.id, copy.id)
    assert ei.value.code == "offer_in_use"


@pytest.mark.asyncio
async def test_deactivate_only_touches_own_inherited_offers(db_session, family, make_offer):
    root, south, _ = family
    original = await make_offer(root)

    with pytest.raises(NotFoundError) as ei:
        await OfferInheritanceEngine(db_session).deactivate_inherited_offer(south.id, original.id)
    assert ei.value.code == "inherited_offer_not_found"


@pytest.mark.asyncio
async def test_heal_child_fills_gaps(db_session, family, make_offer):
    root, south, _ = family
    await make_offer(root)
    engine = OfferInheritanceEngine(db_session)

    assert await engine.heal_child(south) == 1
    assert await engine.heal_child(south) == 0
    assert await engine.heal_child(root) == 0


@pytest.mark.asyncio
async def test_overview_groups_copies_by_original(db_session, family, make_offer):
    root, south, north = family
    original = await make_offer(root)
    engine = OfferInheritanceEngine(db_session)
    await engine.sync_inherited_offers(root.id)

    overview = await engine.overview(root.id)
    assert [o.id for o in overview.original_offers] == [original.id]
    assert overview.inherited_offers == []
    assert sorted(c.company.code for c in overview.copies[original.id]) == ["NORTH03", "SOUTH02"]

    child_view = await engine.overview(south.id)
    assert len(child_view.inherited_offers) == 1
    assert child_view.original_offers == []
