from decimal import Decimal

from conftest import make_product
from sqlalchemy.exc import OperationalError

from stocksync.config import MatchingOptions
from stocksync.extraction import ErpRecord, InventoryRecord
from stocksync.matching.engine import ERP_STRATEGIES, INVENTORY_STRATEGIES, MatchingEngine, ProductAction
from stocksync.models import STATUS_CREATED, STATUS_UPDATED, Product
from stocksync.repository import ProductRepository


def _engine(session, **options) -> MatchingEngine:
    return MatchingEngine(ProductRepository(session), MatchingOptions(**options))


def test_strategy_order_is_data():
    assert [name for name, _ in ERP_STRATEGIES] == ["internal_id", "primary_code", "secondary_code"]
    assert [name for name, _ in INVENTORY_STRATEGIES] == ["ext_id", "sku"]


def test_new_erp_record_creates_product(session):
    result = _engine(session).process_erp_record(
        ErpRecord(internal_id="100", sku="ABC", name="Widget", quantity=Decimal("5.5"))
    )

    assert result.success
    assert result.action == ProductAction.CREATED
    assert result.match_type == "none"
    product = result.product
    assert product.internal_id == "100"
    assert product.sku == "ABC"
    assert product.legacy_source_id == "ABC"
    assert product.source_quantity == Decimal("5.5")
    assert product.last_sync_status == STATUS_CREATED


def test_internal_id_match_takes_precedence(session):
    product = make_product(session, internal_id="100", sku="OLD")

    result = _engine(session).process_erp_record(ErpRecord(internal_id="100", sku="NEW", name="Renamed"))

    assert result.action == ProductAction.UPDATED
    assert result.match_type == "internal_id"
    assert result.product.id == product.id
    assert product.sku == "NEW"
    assert product.name == "Renamed"
    assert product.last_sync_status == STATUS_UPDATED


def test_code_match_skips_products_with_internal_id(session):
    existing = make_product(session, internal_id="X", sku="S", name="Original")

    result = _engine(session).process_erp_record(ErpRecord(internal_id="Y", sku="S", name="Other"))

    assert result.action == ProductAction.CREATED
    assert result.product.id != existing.id
    session.refresh(existing)
    assert existing.internal_id == "X"
    assert existing.sku == "S"
    assert existing.name == "Original"
    # The sku stays with its holder; the new product records the conflict.
    assert result.product.sku is None
    assert "already assigned" in result.product.last_sync_error


def test_secondary_code_matches_barcode(session):
    product = make_product(session, barcode="5200000000011")

    result = _engine(session).process_erp_record(ErpRecord(internal_id="7", sku="NOPE", barcode="5200000000011"))

    assert result.match_type == "secondary_code"
    assert result.product.id == product.id
    assert product.internal_id == "7"


def test_primary_code_can_match_a_barcode_column(session):
    product = make_product(session, barcode="B-1")

    result = _engine(session).process_erp_record(ErpRecord(internal_id="8", sku="B-1"))

    assert result.match_type == "primary_code"
    assert result.product.id == product.id


def test_cross_source_merge_preserves_extension_link(session):
    engine = _engine(session)
    first = engine.process_inventory_record(InventoryRecord(ext_id="4001", name="Ext name", sku="Z1", quantity=3))
    assert first.action == ProductAction.CREATED
    assert first.product.source_quantity == Decimal("0")
    assert first.product.ext_quantity == 3

    second = engine.process_erp_record(ErpRecord(internal_id="55", sku="Z1", name="ERP name", quantity=Decimal("9")))

    assert second.action == ProductAction.UPDATED
    assert second.match_type == "primary_code"
    assert second.product.id == first.product.id
    assert second.product.internal_id == "55"
    assert second.product.name == "ERP name"
    assert second.product.inventory_ext_id == "4001"
    assert session.query(Product).count() == 1


def test_unparseable_quantity_keeps_previous_value(session):
    product = make_product(session, internal_id="100", sku="ABC", source_quantity=Decimal("4"))

    _engine(session).process_erp_record(ErpRecord(internal_id="100", sku="ABC", quantity=None))

    assert product.source_quantity == Decimal("4")


def test_create_missing_disabled_skips(session):
    result = _engine(session, create_missing=False).process_erp_record(ErpRecord(internal_id="1", sku="A"))

    assert result.action == ProductAction.SKIPPED
    assert result.product is None
    assert session.query(Product).count() == 0


def test_update_existing_disabled_leaves_product_untouched(session):
    product = make_product(session, internal_id="1", sku="A", name="Keep")

    result = _engine(session, update_existing=False).process_erp_record(ErpRecord(internal_id="1", sku="A", name="New"))

    assert result.action == ProductAction.SKIPPED
    assert product.name == "Keep"


def test_inventory_record_matches_by_ext_id_then_sku(session):
    by_ext = make_product(session, internal_id="1", sku="A", inventory_ext_id="10")
    by_sku = make_product(session, internal_id="2", sku="B")
    engine = _engine(session)

    first = engine.process_inventory_record(InventoryRecord(ext_id="10", sku="A", quantity=4))
    second = engine.process_inventory_record(InventoryRecord(ext_id="11", sku="B", quantity=2))

    assert first.match_type == "ext_id"
    assert first.product.id == by_ext.id
    assert by_ext.ext_quantity == 4
    assert second.match_type == "sku"
    assert second.product.id == by_sku.id
    assert by_sku.inventory_ext_id == "11"
    assert by_sku.ext_quantity == 2


def test_inventory_match_backfills_only_empty_fields(session):
    product = make_product(session, internal_id="1", sku="A", name="ERP name")

    _engine(session).process_inventory_record(InventoryRecord(ext_id="12", name="Ext name", sku="A", quantity=1))

    assert product.name == "ERP name"


def test_empty_codes_are_stored_as_null(session):
    result = _engine(session).process_erp_record(ErpRecord(internal_id="1", sku="", barcode=" "))
    other = _engine(session).process_erp_record(ErpRecord(internal_id="2", sku=""))

    assert result.product.sku is None
    assert result.product.barcode is None
    assert other.success


def _fail_first_commit(monkeypatch, repo: ProductRepository) -> None:
    real_commit = repo.commit
    calls = []

    def commit() -> None:
        calls.append(1)
        if len(calls) == 1:
            raise OperationalError("COMMIT", {}, Exception("disk I/O error"))
        real_commit()

    monkeypatch.setattr(repo, "commit", commit)


def test_erp_record_database_error_is_isolated(session, monkeypatch):
    engine = _engine(session)
    _fail_first_commit(monkeypatch, engine.repo)

    failed = engine.process_erp_record(ErpRecord(internal_id="100", sku="ABC", name="Widget"))
    created = engine.process_erp_record(ErpRecord(internal_id="200", sku="DEF", name="Gadget"))

    assert failed.success is False
    assert failed.action == ProductAction.ERROR
    assert failed.product is None
    assert "disk I/O error" in failed.error
    assert created.success
    assert created.action == ProductAction.CREATED
    assert [product.internal_id for product in session.query(Product).all()] == ["200"]


def test_inventory_record_database_error_is_isolated(session, monkeypatch):
    engine = _engine(session)
    _fail_first_commit(monkeypatch, engine.repo)

    failed = engine.process_inventory_record(InventoryRecord(ext_id="10", sku="A", quantity=4))
    created = engine.process_inventory_record(InventoryRecord(ext_id="11", sku="B", quantity=2))

    assert failed.success is False
    assert failed.action == ProductAction.ERROR
    assert "disk I/O error" in failed.error
    assert created.action == ProductAction.CREATED
    assert [product.inventory_ext_id for product in session.query(Product).all()] == ["11"]
