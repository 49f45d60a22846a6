import pytest

from propertyhub.slugs import (
    canonical_price_type,
    canonical_property_type,
    is_top_tab,
    normalize_slug,
    pick_first,
    property_group_for,
)


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("  Retail Shop ", "retail-shop"),
        ("Shop & Office!!", "shop-office"),
        ("--Sector   21--", "sector-21"),
        ("CO_LIVING", "coliving"),
        ("", ""),
        (None, ""),
        (42, "42"),
    ],
)
def test_normalize_slug(raw, expected):
    assert normalize_slug(raw) == expected


@pytest.mark.parametrize("raw", ["Retail Shop", " a  b ", "x--y", "!!!", "Déjà Vu", "2 BHK / Flat"])
def test_normalize_slug_is_idempotent(raw):
    once = normalize_slug(raw)
    assert normalize_slug(once) == once


def test_canonical_property_type_aliases():
    assert canonical_property_type("Co Living") == "pg"
    assert canonical_property_type("farm") == "agricultural"
    assert canonical_property_type("Shop") == "commercial"
    assert canonical_property_type("apartment") == "flat"
    # Unknown values pass through normalized.
    assert canonical_property_type("Penthouse") == "penthouse"


def test_canonical_price_type_aliases():
    assert canonical_price_type("buy") == "sale"
    assert canonical_price_type("Lease") == "rent"
    assert canonical_price_type("pg") == "rent"
    assert canonical_price_type("") == ""


def test_property_group_for():
    assert property_group_for("commercial") == "commercial"
    assert property_group_for("warehouse") == "commercial"
    assert property_group_for("shop-spaces") == ""


def test_is_top_tab():
    assert is_top_tab("Buy")
    assert is_top_tab("lease")
    assert not is_top_tab("commercial")


def test_pick_first_skips_blank_values():
    source = {"subCategory": "  ", "subcategory": None, "sub": "shop-spaces", "subCat": "other"}
    assert pick_first(source, ("subCategory", "subcategory", "sub", "subCat")) == "shop-spaces"
    assert pick_first(source, ("missing",)) is None
