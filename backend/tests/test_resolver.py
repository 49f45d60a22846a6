from sqlalchemy import event

from propertyhub.resolver import (
    candidate_parent_categories,
    resolve_mini_by_slug_loose,
    resolve_mini_subcategory_id,
)


def test_candidates_put_property_type_first():
    assert candidate_parent_categories(category_slug="buy", property_type="commercial", price_type="sale") == [
        "commercial",
        "buy",
    ]


def test_candidates_rent_fallback():
    assert candidate_parent_categories(category_slug="commercial", price_type="lease") == ["commercial", "rent"]


def test_candidates_without_fallback():
    assert candidate_parent_categories(category_slug="rent", property_type="shop", include_fallback=False) == [
        "commercial"
    ]


def test_exact_path_prefers_property_type(db_session, taxonomy):
    got = resolve_mini_subcategory_id(
        db_session, "retail-shop", "shop-spaces", category_slug="buy", property_type="commercial", price_type="sale"
    )
    assert got == taxonomy["commercial"]["minis"]["retail-shop"]


def test_exact_path_ignores_missing_tab_category(db_session, taxonomy):
    got = resolve_mini_subcategory_id(
        db_session, "Retail Shop", "Shop Spaces", category_slug="lease", property_type="commercial"
    )
    assert got == taxonomy["commercial"]["minis"]["retail-shop"]


def test_exact_path_without_category_slug(db_session, taxonomy):
    got = resolve_mini_subcategory_id(db_session, "retail-shop", "shop-spaces", property_type="commercial")
    assert got == taxonomy["commercial"]["minis"]["retail-shop"]
    assert candidate_parent_categories(property_type="commercial") == ["commercial", "buy"]


def test_exact_path_uses_rent_tab_for_duplicate_slug(db_session, taxonomy):
    got = resolve_mini_subcategory_id(db_session, "office", "office-spaces", category_slug="rent", price_type="rent")
    assert got == taxonomy["rent"]["minis"]["office"]


def test_exact_path_unknown_subcategory(db_session, taxonomy):
    assert resolve_mini_subcategory_id(db_session, "retail-shop", "no-such-sub", property_type="commercial") is None


def test_exact_path_blank_inputs_do_not_query(db_session, taxonomy):
    statements = []

    def _count(*args, **kwargs):
        statements.append(args)

    event.listen(db_session.get_bind(), "before_cursor_execute", _count)
    try:
        assert resolve_mini_subcategory_id(db_session, "", "shop-spaces") is None
        assert resolve_mini_subcategory_id(db_session, "retail-shop", "  ") is None
    finally:
        event.remove(db_session.get_bind(), "before_cursor_execute", _count)
    assert statements == []


def test_loose_ambiguous_slug_needs_hint(db_session, taxonomy):
    assert resolve_mini_by_slug_loose(db_session, "office") is None
    assert resolve_mini_by_slug_loose(db_session, "office", category_slug="commercial") == (
        taxonomy["commercial"]["minis"]["office"]
    )
    # "office" as a property type aliases to the commercial group.
    assert resolve_mini_by_slug_loose(db_session, "office", property_type="office") == (
        taxonomy["commercial"]["minis"]["office"]
    )


def test_loose_unique_slug_resolves_globally(db_session, taxonomy):
    assert resolve_mini_by_slug_loose(db_session, "villa") == taxonomy["residential"]["minis"]["villa"]


def test_loose_unknown_slug(db_session, taxonomy):
    assert resolve_mini_by_slug_loose(db_session, "castle", category_slug="commercial") is None
