import datetime as dt
import json

import pytest
from fastapi import HTTPException
from sqlalchemy import update

from propertyhub.filters import build_filter
from propertyhub.listings import query_listings
from propertyhub.models import ModerationLog, Property
from propertyhub.writes import (
    canonicalize_taxonomy,
    create_property,
    free_listing_limits,
    parse_bool,
    parse_json_field,
    record_view,
    set_approval,
    set_free_listing_limits,
    update_property,
)


def _body(**overrides):
    body = {"title": "Corner shop", "price": "2500000", "propertyType": "commercial", "priceType": "sale"}
    body.update(overrides)
    return body


def test_parse_json_field_variants():
    assert parse_json_field('{"sector": "S1"}', {}) == {"sector": "S1"}
    assert parse_json_field(json.dumps(json.dumps({"sector": "S1"})), {}) == {"sector": "S1"}
    assert parse_json_field({"sector": "S1"}, {}) == {"sector": "S1"}
    assert parse_json_field("not json", {}) == {}
    assert parse_json_field('["lift"]', {}) == {}
    assert parse_json_field("", []) == []


def test_parse_bool():
    assert parse_bool("true") and parse_bool("1") and parse_bool(True)
    assert not parse_bool("false")
    assert parse_bool(None, default=True)


def test_canonicalize_tab_input(db_session, taxonomy):
    t = canonicalize_taxonomy(db_session, property_type="buy", sub_category="commercial", mini_slug="retail-shop")
    assert t.property_type == "commercial"
    assert t.price_type == "sale"
    assert t.sub_category == "shop-spaces"
    assert t.mini_subcategory_id == taxonomy["commercial"]["minis"]["retail-shop"]


def test_canonicalize_pg_defaults_to_rent(db_session, taxonomy):
    t = canonicalize_taxonomy(db_session, property_type="Co Living")
    assert (t.property_type, t.price_type) == ("pg", "rent")


def test_canonicalize_unresolved_mini_keeps_subcategory(db_session, taxonomy):
    t = canonicalize_taxonomy(db_session, property_type="commercial", price_type="sale", sub_category="Shop Spaces", mini_slug="kiosk")
    assert t.sub_category == "shop-spaces"
    assert t.mini_subcategory_id is None


def test_write_then_read_round_trip(db_session, taxonomy, owner, admin_user):
    p = create_property(
        db_session,
        owner=owner,
        body={
            "title": "Retail shop on main road",
            "price": "2500000",
            "propertyType": "buy",
            "subCategory": "commercial",
            "miniSubcategory": "retail-shop",
            "location": json.dumps({"sector": "Sector 21", "city": "Gurgaon"}),
            "specifications": {"area": "450", "parking": "yes"},
        },
    )
    db_session.commit()

    assert p.property_type == "commercial"
    assert p.price_type == "sale"
    assert p.sub_category == "shop-spaces"
    assert p.mini_subcategory_id == taxonomy["commercial"]["minis"]["retail-shop"]
    assert (p.status, p.approval_status) == ("inactive", "pending")
    assert p.sector_slug == "sector-21"
    assert p.area_sqft == 450 and p.parking is True

    # Not public until approved.
    query = {"category": "commercial", "miniSubcategory": "retail-shop"}
    assert query_listings(db_session, build_filter(db_session, query))[1] == 0

    set_approval(db_session, admin=admin_user, property_id=p.id, approval_status="approved")
    db_session.commit()

    for q in (query, {"category": "buy", "subCategory": "commercial"}, {"category": "buy"}):
        rows, total = query_listings(db_session, build_filter(db_session, q))
        assert total == 1 and rows[0].id == p.id, q


@pytest.mark.parametrize(
    "overrides,detail",
    [
        ({"title": "  "}, "Title is required"),
        ({"price": ""}, "Price is required"),
        ({"price": "lots"}, "Invalid price"),
        ({"priceType": "barter"}, "priceType must be sale or rent"),
        ({"propertyType": "buy"}, "propertyType is required"),
    ],
)
def test_create_validation(db_session, taxonomy, owner, overrides, detail):
    with pytest.raises(HTTPException) as err:
        create_property(db_session, owner=owner, body=_body(**overrides))
    assert err.value.status_code == 400
    assert err.value.detail == detail


def test_edit_demotes_approved_listing(db_session, taxonomy, owner, make_property):
    p = make_property(title="Old title")
    update_property(db_session, actor=owner, property_id=str(p.id), body={"title": "New title"})
    db_session.commit()

    assert p.title == "New title"
    assert (p.status, p.approval_status) == ("inactive", "pending")
    assert db_session.query(ModerationLog).filter_by(entity_id=p.id, action="update").count() == 1


def test_edit_requires_owner(db_session, taxonomy, other_user, make_property):
    p = make_property()
    with pytest.raises(HTTPException) as err:
        update_property(db_session, actor=other_user, property_id=p.id, body={"title": "Mine now"})
    assert err.value.status_code == 403


def test_edit_moving_subcategory_clears_mini(db_session, taxonomy, owner, make_property):
    p = make_property(sub_category="shop-spaces", mini_subcategory_id=taxonomy["commercial"]["minis"]["retail-shop"])
    update_property(db_session, actor=owner, property_id=p.id, body={"subCategory": "office-spaces"})
    assert p.sub_category == "office-spaces"
    assert p.mini_subcategory_id is None


def test_edit_with_mini_backfills_subcategory(db_session, taxonomy, owner, make_property):
    p = make_property(sub_category="", property_type="commercial")
    update_property(db_session, actor=owner, property_id=p.id, body={"miniSubcategorySlug": "showroom"})
    assert p.sub_category == "shop-spaces"
    assert p.mini_subcategory_id == taxonomy["commercial"]["minis"]["showroom"]


def test_edit_with_tab_matches_create(db_session, taxonomy, owner, make_property):
    p = make_property(price_type="sale", sub_category="shop-spaces")
    body = {"propertyType": "rent", "subCategory": "commercial"}
    update_property(db_session, actor=owner, property_id=p.id, body=body)

    created = canonicalize_taxonomy(db_session, property_type="rent", sub_category="commercial")
    assert (p.property_type, p.price_type) == (created.property_type, created.price_type) == ("commercial", "rent")


def test_edit_tab_only_keeps_stored_property_type(db_session, taxonomy, owner, make_property):
    p = make_property(price_type="sale")
    update_property(db_session, actor=owner, property_id=p.id, body={"propertyType": "rent"})
    assert (p.property_type, p.price_type) == ("commercial", "rent")


def test_edit_without_taxonomy_keeps_price_type(db_session, taxonomy, owner, make_property):
    p = make_property(property_type="pg", price_type="sale")
    update_property(db_session, actor=owner, property_id=p.id, body={"title": "Renamed"})
    assert (p.property_type, p.price_type) == ("pg", "sale")


@pytest.mark.parametrize("price", ["1e30", "99999999999999999999999"])
def test_create_rejects_out_of_range_price(db_session, taxonomy, owner, price):
    with pytest.raises(HTTPException) as err:
        create_property(db_session, owner=owner, body=_body(price=price))
    assert err.value.status_code == 400
    assert err.value.detail == "Invalid price"


def test_create_drops_out_of_range_specifications(db_session, taxonomy, owner):
    p = create_property(db_session, owner=owner, body=_body(specifications={"bedrooms": "1e40", "bathrooms": "2"}))
    db_session.commit()
    assert p.bedrooms is None
    assert p.bathrooms == 2


def test_free_post_quota(db_session, taxonomy, owner, monkeypatch):
    monkeypatch.setenv("FREE_POST_LIMIT", "2")
    for i in range(2):
        create_property(db_session, owner=owner, body=_body(title=f"free {i}"))

    with pytest.raises(HTTPException) as err:
        create_property(db_session, owner=owner, body=_body(title="one too many"))
    assert err.value.status_code == 403
    assert err.value.detail == "Free listing limit reached: 2 free posts allowed per 30 days."

    packaged = create_property(db_session, owner=owner, body=_body(title="packaged", packageId="gold"))
    assert packaged.approval_status == "pending_approval"
    assert packaged.premium is True


def test_free_post_quota_rolling_window(db_session, taxonomy, owner, make_property, monkeypatch):
    monkeypatch.setenv("FREE_POST_LIMIT", "1")
    old = dt.datetime.now(dt.timezone.utc) - dt.timedelta(days=45)
    make_property(title="last month", created_at=old)
    make_property(title="empty package id", package_id="", created_at=old)

    p = create_property(db_session, owner=owner, body=_body())
    assert p.id is not None


def test_free_listing_limit_precedence(db_session, owner, monkeypatch):
    monkeypatch.setenv("FREE_POST_LIMIT", "3")
    monkeypatch.setenv("FREE_POST_PERIOD_DAYS", "14")
    assert free_listing_limits(db_session, owner) == (3, 14)

    set_free_listing_limits(db_session, limit=1, period_days=7)
    assert free_listing_limits(db_session, owner) == (1, 7)

    owner.free_listing_limit = 10
    assert free_listing_limits(db_session, owner) == (10, 7)


def test_approval_and_rejection(db_session, taxonomy, admin_user, make_property):
    p = make_property(status="inactive", approval_status="pending")

    set_approval(db_session, admin=admin_user, property_id=p.id, approval_status="Approved")
    assert (p.status, p.approval_status, p.approved_by) == ("active", "approved", admin_user.id)

    set_approval(db_session, admin=admin_user, property_id=p.id, approval_status="rejected", rejection_reason="Blurry photos")
    assert (p.status, p.approval_status, p.rejection_reason) == ("inactive", "rejected", "Blurry photos")

    with pytest.raises(HTTPException) as err:
        set_approval(db_session, admin=admin_user, property_id=p.id, approval_status="maybe")
    assert err.value.status_code == 400


def test_record_view_increments_in_database(db_session, taxonomy, make_property):
    p = make_property(views=5)
    # Views counted by another session since this object was loaded.
    db_session.execute(
        update(Property).where(Property.id == p.id).values(views=9).execution_options(synchronize_session=False)
    )
    assert p.views == 5

    record_view(db_session, p)
    assert p.views == 10
