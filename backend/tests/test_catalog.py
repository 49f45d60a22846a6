from propertyhub.catalog import DEFAULT_TAXONOMY, seed_default_taxonomy
from propertyhub.models import Category
from propertyhub.resolver import resolve_mini_by_slug_loose, resolve_mini_subcategory_id


def test_seed_default_taxonomy_once(db_session):
    assert seed_default_taxonomy(db_session) is True
    db_session.commit()
    assert db_session.query(Category).count() == len(DEFAULT_TAXONOMY)

    assert seed_default_taxonomy(db_session) is False
    assert db_session.query(Category).count() == len(DEFAULT_TAXONOMY)


def test_seeded_tree_resolves(db_session):
    seed_default_taxonomy(db_session)
    db_session.commit()

    exact = resolve_mini_subcategory_id(db_session, "retail-shop", "shop-spaces", category_slug="buy", property_type="commercial")
    assert exact is not None
    assert resolve_mini_by_slug_loose(db_session, "retail-shop", category_slug="commercial") == exact


def test_seed_skipped_when_categories_exist(db_session, taxonomy):
    assert seed_default_taxonomy(db_session) is False
