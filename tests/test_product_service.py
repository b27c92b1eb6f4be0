import uuid

import pytest

from storefront.data.redis_client import (
    ALL_PRODUCTS_KEY,
    name_products_key,
    product_key,
    seller_products_key,
    type_products_key,
)
from storefront.domain.errors import (
    InsufficientStockError,
    ProductNotFoundError,
    ProductNotOwnedError,
)
from storefront.domain.schemas import ProductIn, StockItem
from storefront.services.product_service import ProductService
from storefront.tasks import cache_purge


def payload(**overrides):
    data = dict(name="Desk Lamp", price=1999, stock=5, discount=0, type="Lighting", description="")
    data.update(overrides)
    return ProductIn(**data)


@pytest.fixture()
def service(db, redis_client, task_stores):
    return ProductService(db, redis_client, background_purge=True)


class TestCatalog:
    def test_create_then_read(self, service, seller_id):
        created = service.create_product(seller_id, payload())

        product = service.get_product(created.id)

        assert product == created
        assert product.seller_id == seller_id
        assert product.type == "Lighting"

    def test_create_invalidates_listings(self, service, redis_client, seller_id):
        service.create_product(seller_id, payload(name="First"))
        assert len(service.list_products()) == 1
        assert len(service.list_by_seller(seller_id)) == 1

        service.create_product(seller_id, payload(name="Second"))

        assert not redis_client.exists(ALL_PRODUCTS_KEY)
        assert len(service.list_products()) == 2
        assert len(service.list_by_seller(seller_id)) == 2

    def test_update_is_never_stale(self, service, seller_id):
        created = service.create_product(seller_id, payload(price=1000))
        service.get_product(created.id)

        service.update_product(created.id, payload(price=1500), seller_id, "user")

        assert service.get_product(created.id).price == 1500

    def test_update_moves_product_between_type_listings(self, service, seller_id):
        created = service.create_product(seller_id, payload(type="Lighting"))
        assert len(service.list_by_type("Lighting")) == 1

        service.update_product(created.id, payload(type="Furniture"), seller_id, "user")

        assert service.list_by_type("Lighting") == []
        assert [p.id for p in service.list_by_type("Furniture")] == [created.id]

    def test_only_the_owner_may_update(self, service, seller_id):
        created = service.create_product(seller_id, payload())

        with pytest.raises(ProductNotOwnedError):
            service.update_product(created.id, payload(price=1), uuid.uuid4(), "user")

    def test_admin_may_update_any_product(self, service, seller_id):
        created = service.create_product(seller_id, payload())

        updated = service.update_product(created.id, payload(price=42), uuid.uuid4(), "admin")

        assert updated.price == 42

    def test_delete_is_soft_and_hides_the_product(self, service, seller_id):
        created = service.create_product(seller_id, payload())
        service.get_product(created.id)
        service.list_products()

        deleted = service.delete_product(created.id, seller_id, "user")

        assert deleted.deleted_at is not None
        with pytest.raises(ProductNotFoundError):
            service.get_product(created.id)
        assert service.list_products() == []

    def test_search_by_name(self, service, seller_id):
        service.create_product(seller_id, payload(name="Desk Lamp"))
        service.create_product(seller_id, payload(name="Floor Lamp"))
        service.create_product(seller_id, payload(name="Office Chair"))

        assert [p.name for p in service.search_by_name("lamp")] == ["Desk Lamp", "Floor Lamp"]

    def test_update_drops_cached_name_searches(self, service, redis_client, seller_id):
        created = service.create_product(seller_id, payload(name="Desk Lamp", price=1000))
        assert [p.price for p in service.search_by_name("lamp")] == [1000]
        assert redis_client.exists(name_products_key("lamp"))

        service.update_product(created.id, payload(name="Desk Lamp", price=1500), seller_id, "user")

        assert not redis_client.exists(name_products_key("lamp"))
        assert [p.price for p in service.search_by_name("lamp")] == [1500]

    def test_delete_drops_cached_name_searches(self, service, seller_id):
        created = service.create_product(seller_id, payload(name="Desk Lamp"))
        assert len(service.search_by_name("lamp")) == 1

        service.delete_product(created.id, seller_id, "user")

        assert service.search_by_name("lamp") == []

    def test_purge_queue_failure_does_not_fail_the_write(self, db, redis_client, seller_id, monkeypatch):
        class DeadBroker:
            def delay(self, *args):
                raise ConnectionError("broker down")

        monkeypatch.setattr(cache_purge, "purge_product_caches", DeadBroker())
        service = ProductService(db, redis_client, background_purge=True)

        created = service.create_product(seller_id, payload())

        assert service.get_product(created.id) == created

    def test_get_products_batch(self, service, seller_id):
        a = service.create_product(seller_id, payload(name="Alpha"))
        b = service.create_product(seller_id, payload(name="Bravo"))

        assert [p.id for p in service.get_products([b.id, uuid.uuid4(), a.id])] == [b.id, a.id]


class TestStock:
    def test_decrease_and_increase(self, service, seller_id):
        a = service.create_product(seller_id, payload(name="Alpha", stock=5))
        b = service.create_product(seller_id, payload(name="Bravo", stock=5))

        service.decrease_stock([StockItem(product_id=a.id, quantity=2), StockItem(product_id=b.id, quantity=5)])
        service.increase_stock([StockItem(product_id=b.id, quantity=1)])

        assert service.get_product(a.id).stock == 3
        assert service.get_product(b.id).stock == 1

    def test_decrease_batch_is_all_or_nothing(self, service, seller_id):
        a = service.create_product(seller_id, payload(name="Alpha", stock=5))
        b = service.create_product(seller_id, payload(name="Bravo", stock=1))

        with pytest.raises(InsufficientStockError):
            service.decrease_stock([StockItem(product_id=a.id, quantity=2), StockItem(product_id=b.id, quantity=2)])

        assert service.get_product(a.id).stock == 5
        assert service.get_product(b.id).stock == 1

    def test_increase_unknown_product(self, service):
        with pytest.raises(ProductNotFoundError):
            service.increase_stock([StockItem(product_id=uuid.uuid4(), quantity=1)])

    def test_stock_change_purges_listing_keys(self, service, redis_client, seller_id):
        created = service.create_product(seller_id, payload(stock=5))
        service.get_product(created.id)
        service.list_by_seller(seller_id)
        service.list_by_type("Lighting")

        service.decrease_stock([StockItem(product_id=created.id, quantity=1)])

        assert not redis_client.exists(product_key(created.id))
        assert not redis_client.exists(seller_products_key(seller_id))
        assert not redis_client.exists(type_products_key("Lighting"))
        assert service.list_by_seller(seller_id)[0].stock == 4


def test_reset_caches(service, seller_id, redis_client):
    created = service.create_product(seller_id, payload())
    service.get_product(created.id)
    service.list_products()

    assert service.reset_caches() == 2
    assert redis_client.keys("product*") == []
