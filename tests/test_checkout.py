import uuid

import pytest
from sqlalchemy import update

from storefront.data.models.product import ProductModel
from storefront.data.redis_client import (
    checkout_lock_key,
    product_key,
    seller_products_key,
    type_products_key,
)
from storefront.domain.errors import (
    CartAlreadyCheckedOutError,
    CartEmptyError,
    EventPublishError,
    ForbiddenError,
    InfrastructureError,
    InsufficientStockError,
    OrderNotFoundError,
)
from storefront.repos.order_repo import OrderRepo
from storefront.repos.product_repo import ProductRepo
from storefront.services.cart_service import CartService
from storefront.services.cart_store import CartStore
from storefront.services.checkout_service import CheckoutService
from storefront.services.order_service import OrderService
from storefront.services.product_cache import ProductCache


@pytest.fixture()
def store(redis_client):
    return CartStore(redis_client)


@pytest.fixture()
def cart_service(store, redis_client, db, accounts):
    return CartService(store, ProductCache(redis_client, ProductRepo(db)), accounts)


@pytest.fixture()
def checkout(db, cart_service, store, notifier):
    return CheckoutService(db, cart_service, store, cart_service.products, notifier)


@pytest.fixture()
def user_id():
    return uuid.uuid4()


def stock_of(db, product_id):
    return ProductRepo(db)._refreshed(product_id).stock


class TestCheckout:
    def test_order_is_created_from_the_cart(self, checkout, cart_service, db, notifier, make_product, user_id):
        row = make_product(price=100, stock=10)
        cart_service.add_item(user_id, row.id, 3)
        cart_service.add_item(user_id, row.id, 4)

        order = checkout.checkout(user_id)

        assert order.user_id == user_id
        assert order.status == "Pending"
        assert order.total_amount == 700
        [item] = order.items
        assert item.product_id == row.id
        assert item.quantity == 7
        assert item.price == 100
        assert stock_of(db, row.id) == 3
        assert cart_service.get_cart(user_id).items == []

        [event] = notifier.events
        assert event.order_id == str(order.id)
        assert event.user_id == str(user_id)
        assert event.total_amount == 700
        assert event.product_ids == [str(row.id)]
        assert event.quantities == {str(row.id): 7}

    def test_several_lines(self, checkout, cart_service, db, make_product, user_id):
        a = make_product(name="Alpha", price=250, stock=5)
        b = make_product(name="Bravo", price=1000, stock=2)
        cart_service.add_item(user_id, a.id, 2)
        cart_service.add_item(user_id, b.id, 2)

        order = checkout.checkout(user_id)

        assert order.total_amount == 2 * 250 + 2 * 1000
        assert {i.product_id: i.quantity for i in order.items} == {a.id: 2, b.id: 2}
        assert stock_of(db, a.id) == 3
        assert stock_of(db, b.id) == 0

    def test_product_cache_is_invalidated(self, checkout, cart_service, redis_client, make_product, user_id):
        row = make_product(stock=10)
        cart_service.add_item(user_id, row.id, 2)
        assert redis_client.exists(product_key(row.id))

        checkout.checkout(user_id)

        assert not redis_client.exists(product_key(row.id))
        assert cart_service.products.get(row.id).stock == 8

    def test_empty_cart(self, checkout, db, notifier, user_id):
        with pytest.raises(CartEmptyError):
            checkout.checkout(user_id)

        assert OrderRepo(db).count_orders() == 0
        assert notifier.events == []

    def test_insufficient_stock_rolls_everything_back(self, checkout, cart_service, db, make_product, user_id):
        a = make_product(name="Alpha", stock=5)
        b = make_product(name="Bravo", stock=10)
        cart_service.add_item(user_id, a.id, 2)
        cart_service.add_item(user_id, b.id, 3)
        # someone else bought most of Bravo in the meantime
        db.execute(update(ProductModel).where(ProductModel.id == b.id).values(stock=1))
        db.commit()

        with pytest.raises(InsufficientStockError) as exc:
            checkout.checkout(user_id)

        assert "Bravo" in str(exc.value)
        assert OrderRepo(db).count_orders() == 0
        assert stock_of(db, a.id) == 5
        assert stock_of(db, b.id) == 1
        assert cart_service.get_cart(user_id).total_items == 2

    def test_publish_failure_keeps_the_order(self, checkout, cart_service, db, notifier, make_product, user_id):
        row = make_product(stock=10)
        cart_service.add_item(user_id, row.id, 2)
        notifier.fail_with = ConnectionError("broker down")

        with pytest.raises(EventPublishError) as exc:
            checkout.checkout(user_id)

        order = exc.value.order
        assert "failed to publish event" in str(exc.value)
        assert OrderService(db).get_order(order.id, user_id).total_amount == order.total_amount
        assert stock_of(db, row.id) == 8
        assert cart_service.get_cart(user_id).items == []

    def test_cart_clear_failure_does_not_undo_the_order(self, db, cart_service, notifier, redis_client, make_product, user_id):
        class StuckStore(CartStore):
            def remove(self, user_id, product_id):
                raise InfrastructureError("cart store unavailable")

        checkout = CheckoutService(db, cart_service, StuckStore(redis_client), cart_service.products, notifier)
        row = make_product(stock=10)
        cart_service.add_item(user_id, row.id, 2)

        order = checkout.checkout(user_id)

        assert OrderRepo(db).count_orders(user_id) == 1
        assert stock_of(db, row.id) == 8
        assert len(notifier.events) == 1
        assert order.items[0].quantity == 2

    def test_seller_and_type_listings_are_invalidated(
        self, checkout, cart_service, redis_client, make_product, seller_id, user_id
    ):
        row = make_product(stock=10, type="Gadget")
        cart_service.products.get_by_seller(seller_id)
        cart_service.products.get_by_type("Gadget")
        cart_service.add_item(user_id, row.id, 3)

        checkout.checkout(user_id)

        assert not redis_client.exists(seller_products_key(seller_id))
        assert not redis_client.exists(type_products_key("Gadget"))
        assert cart_service.products.get_by_seller(seller_id)[0].stock == 7
        assert cart_service.products.get_by_type("Gadget")[0].stock == 7

    def test_unresolvable_line_is_left_in_the_cart(
        self, checkout, cart_service, store, db, make_product, user_id
    ):
        sold = make_product(name="Alpha", price=100, stock=5)
        orphan = make_product(name="Orphan", price=100, stock=5, seller=uuid.uuid4())
        cart_service.add_item(user_id, sold.id, 1)
        store.add_or_accumulate(user_id, orphan.id, 2)

        order = checkout.checkout(user_id)

        assert [i.product_id for i in order.items] == [sold.id]
        assert order.total_amount == 100
        assert stock_of(db, orphan.id) == 5
        assert list(store.get_all(user_id)) == [orphan.id]
        assert store.get(user_id, orphan.id).quantity == 2

    def test_interrupt_mid_transaction_rolls_back(
        self, checkout, cart_service, db, make_product, monkeypatch, user_id
    ):
        a = make_product(name="Alpha", stock=5)
        b = make_product(name="Bravo", stock=5)
        cart_service.add_item(user_id, a.id, 1)
        cart_service.add_item(user_id, b.id, 1)
        real_decrease = checkout.products.decrease_stock
        calls = []

        def interrupted(product_id, quantity):
            calls.append(product_id)
            if len(calls) == 2:
                raise KeyboardInterrupt
            return real_decrease(product_id, quantity)

        monkeypatch.setattr(checkout.products, "decrease_stock", interrupted)

        with pytest.raises(KeyboardInterrupt):
            checkout.checkout(user_id)

        assert OrderRepo(db).count_orders() == 0
        assert stock_of(db, a.id) == 5
        assert stock_of(db, b.id) == 5
        assert cart_service.get_cart(user_id).total_items == 2

    def test_second_checkout_of_same_cart_is_empty(self, checkout, cart_service, make_product, user_id):
        row = make_product(stock=10)
        cart_service.add_item(user_id, row.id, 1)
        checkout.checkout(user_id)

        with pytest.raises(CartEmptyError):
            checkout.checkout(user_id)


class TestCheckoutLock:
    def test_concurrent_checkout_is_rejected(self, checkout, cart_service, redis_client, db, notifier, make_product, user_id):
        row = make_product(stock=10)
        cart_service.add_item(user_id, row.id, 2)
        redis_client.set(checkout_lock_key(user_id), "another-request", ex=30)

        with pytest.raises(CartAlreadyCheckedOutError):
            checkout.checkout(user_id)

        assert OrderRepo(db).count_orders() == 0
        assert stock_of(db, row.id) == 10
        assert notifier.events == []
        assert cart_service.get_cart(user_id).total_items == 1
        # the other holder's lock is untouched
        assert redis_client.get(checkout_lock_key(user_id)) == "another-request"

    def test_lock_is_released_after_success(self, checkout, cart_service, redis_client, make_product, user_id):
        row = make_product(stock=10)
        cart_service.add_item(user_id, row.id, 1)

        checkout.checkout(user_id)

        assert not redis_client.exists(checkout_lock_key(user_id))

    def test_lock_is_released_after_failure(self, checkout, redis_client, user_id):
        with pytest.raises(CartEmptyError):
            checkout.checkout(user_id)

        assert not redis_client.exists(checkout_lock_key(user_id))

    def test_lock_expires_on_its_own(self, db, cart_service, store, notifier, redis_client, make_product, user_id):
        checkout = CheckoutService(db, cart_service, store, cart_service.products, notifier, lock_ttl=7)
        seen = []
        real_place = checkout._place_order

        def place(uid, lines):
            seen.append(redis_client.ttl(checkout_lock_key(uid)))
            return real_place(uid, lines)

        checkout._place_order = place
        row = make_product(stock=10)
        cart_service.add_item(user_id, row.id, 1)

        checkout.checkout(user_id)

        assert 0 < seen[0] <= 7

    def test_lock_taken_over_after_expiry_is_not_released(self, checkout, redis_client, user_id):
        token = checkout.locks.acquire_checkout_lock(user_id, 30)
        redis_client.set(checkout_lock_key(user_id), "new-holder", ex=30)

        assert checkout.locks.release_checkout_lock(user_id, token) is False
        assert redis_client.get(checkout_lock_key(user_id)) == "new-holder"

    def test_redis_down_is_an_infrastructure_error(self, checkout, redis_server, db, user_id):
        redis_server.connected = False

        with pytest.raises(InfrastructureError):
            checkout.checkout(user_id)

        assert OrderRepo(db).count_orders() == 0


class TestOrderService:
    def test_owner_can_read(self, checkout, cart_service, db, make_product, user_id):
        row = make_product()
        cart_service.add_item(user_id, row.id, 1)
        placed = checkout.checkout(user_id)

        order = OrderService(db).get_order(placed.id, user_id)

        assert order.id == placed.id
        assert [i.product_id for i in order.items] == [row.id]

    def test_other_user_is_forbidden(self, checkout, cart_service, db, make_product, user_id):
        row = make_product()
        cart_service.add_item(user_id, row.id, 1)
        placed = checkout.checkout(user_id)

        with pytest.raises(ForbiddenError):
            OrderService(db).get_order(placed.id, uuid.uuid4())

    def test_unknown_order(self, db, user_id):
        with pytest.raises(OrderNotFoundError):
            OrderService(db).get_order(uuid.uuid4(), user_id)
