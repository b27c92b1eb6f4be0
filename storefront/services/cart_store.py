# storefront/services/cart_store.py
import functools
from datetime import datetime, timezone
from typing import Callable, Dict
from uuid import UUID

import redis
from pydantic import ValidationError
from sqlalchemy.orm import Session

from storefront.data.redis_client import cart_key
from storefront.domain.errors import CartItemNotFoundError, InfrastructureError
from storefront.domain.schemas import CartEntry
from storefront.repos.cart_backup_repo import CartBackupRepo
from storefront.tasks import cart_backup
from storefront.utils.retry import redis_retry
from storefront.utils.settings import CART_TTL_SECONDS
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


def _surfaced(op):
    # redis failures on the cart are infrastructure errors for the caller
    @functools.wraps(op)
    def wrapper(self, *args, **kwargs):
        try:
            return op(self, *args, **kwargs)
        except redis.RedisError as e:
            self.log.error(f"Cart store {op.__name__} failed: {e}")
            raise InfrastructureError(f"cart store unavailable: {e}") from e

    return wrapper


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # some drivers hand back naive timestamps; cart entries are always aware
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


def next_entry(quantity: int, description: str, existing: CartEntry | None) -> CartEntry:
    """New value for a field; keeps created_at, checked and (if none given) description."""
    now = _now()
    if existing is None:
        return CartEntry(quantity=quantity, description=description, created_at=now, updated_at=now)
    return CartEntry(
        quantity=quantity,
        description=description or existing.description,
        checked=existing.checked,
        created_at=existing.created_at,
        updated_at=now,
    )


class CartStore:
    """
    Per-user cart as a redis hash: cart:{user_id} -> {product_id: CartEntry json}.

    The hash is the only source of truth for what is in the cart. Every
    successful mutation refreshes the 24h expiry on the whole hash and,
    when backup is on, queues a Celery task that mirrors the change into
    the relational ``cart`` table. The mirror is never read here except
    by restore_from_backup().
    """

    def __init__(
        self,
        redis_client: redis.Redis,
        backup: bool = False,
        session_factory: Callable[[], Session] | None = None,
        ttl: int = CART_TTL_SECONDS,
        log=None,
    ):
        self.redis = redis_client
        self.backup = backup
        self.session_factory = session_factory
        self.ttl = ttl
        self.log = log or logger

    # =====================================================
    # QUERY
    # =====================================================
    @_surfaced
    @redis_retry()
    def get_all(self, user_id: UUID) -> Dict[UUID, CartEntry]:
        key = cart_key(user_id)
        try:
            raw = self.redis.hgetall(key)
        except UnicodeDecodeError:
            self.log.warning(f"Cart {key} holds a non UTF-8 value, reading fields one by one")
            raw = self._fields_one_by_one(key)

        entries: Dict[UUID, CartEntry] = {}
        for field, value in raw.items():
            if value is None:
                continue
            try:
                entries[UUID(field)] = CartEntry.model_validate_json(value)
            except (ValueError, ValidationError) as e:
                self.log.warning(f"Skipping unreadable cart item {field} for user {user_id}: {e}")
        return entries

    def _fields_one_by_one(self, key: str) -> Dict[str, str | None]:
        values: Dict[str, str | None] = {}
        for field in self.redis.hkeys(key):
            try:
                values[field] = self.redis.hget(key, field)
            except UnicodeDecodeError:
                self.log.warning(f"Skipping non UTF-8 cart item {field} in {key}")
        return values

    @_surfaced
    @redis_retry()
    def get(self, user_id: UUID, product_id: UUID) -> CartEntry:
        try:
            raw = self.redis.hget(cart_key(user_id), str(product_id))
        except UnicodeDecodeError as e:
            self.log.warning(f"Non UTF-8 cart item {product_id} for user {user_id}")
            raise CartItemNotFoundError(user_id, product_id) from e
        if raw is None:
            raise CartItemNotFoundError(user_id, product_id)
        try:
            return CartEntry.model_validate_json(raw)
        except ValidationError as e:
            self.log.warning(f"Unreadable cart item {product_id} for user {user_id}: {e}")
            raise CartItemNotFoundError(user_id, product_id) from e

    # =====================================================
    # COMMANDS
    # =====================================================
    @_surfaced
    def add_or_accumulate(
        self, user_id: UUID, product_id: UUID, delta: int, description: str = ""
    ) -> CartEntry | None:
        """
        quantity = existing + delta. A result <= 0 deletes the field.
        Returns the stored entry, or None when the item was removed.
        """
        return self._mutate(user_id, product_id, lambda current: current + delta, description)

    @_surfaced
    @redis_retry()
    def set_quantity(
        self, user_id: UUID, product_id: UUID, quantity: int, description: str = ""
    ) -> CartEntry | None:
        return self._mutate(user_id, product_id, lambda _current: quantity, description)

    @_surfaced
    @redis_retry()
    def set_checked(self, user_id: UUID, product_id: UUID, checked: bool) -> CartEntry:
        key = cart_key(user_id)
        field = str(product_id)

        def txn(pipe):
            existing = self._read_field(pipe, key, field)
            if existing is None:
                raise CartItemNotFoundError(user_id, product_id)
            entry = existing.model_copy(update={"checked": checked, "updated_at": _now()})
            pipe.multi()
            pipe.hset(key, field, entry.model_dump_json())
            pipe.expire(key, self.ttl)
            return entry

        return self.redis.transaction(txn, key, value_from_callable=True)

    @_surfaced
    @redis_retry()
    def remove(self, user_id: UUID, product_id: UUID) -> bool:
        """Absent field is not an error. Returns whether something was deleted."""
        removed = self.redis.hdel(cart_key(user_id), str(product_id))
        self._schedule(cart_backup.delete_cart_backup_item, str(user_id), str(product_id))
        self.log.info(f"User {user_id} removed product {product_id} from cart")
        return bool(removed)

    @_surfaced
    @redis_retry()
    def clear(self, user_id: UUID) -> None:
        self.redis.delete(cart_key(user_id))
        self._schedule(cart_backup.clear_cart_backup, str(user_id))

    def _mutate(
        self,
        user_id: UUID,
        product_id: UUID,
        quantity_from: Callable[[int], int],
        description: str,
    ) -> CartEntry | None:
        key = cart_key(user_id)
        field = str(product_id)

        # WATCH/MULTI: another writer touching the hash between our HGET
        # and EXEC makes redis-py re-run txn with the fresh value
        def txn(pipe):
            existing = self._read_field(pipe, key, field)
            quantity = quantity_from(existing.quantity if existing else 0)
            pipe.multi()
            if quantity <= 0:
                pipe.hdel(key, field)
                pipe.expire(key, self.ttl)
                return None
            entry = next_entry(quantity, description, existing)
            pipe.hset(key, field, entry.model_dump_json())
            pipe.expire(key, self.ttl)
            return entry

        entry = self.redis.transaction(txn, key, value_from_callable=True)

        if entry is None:
            self._schedule(cart_backup.delete_cart_backup_item, str(user_id), field)
            self.log.info(f"User {user_id} cart item {product_id} dropped (quantity <= 0)")
        else:
            self._schedule(
                cart_backup.backup_cart_item,
                str(user_id),
                field,
                entry.quantity,
                entry.description,
            )
            self.log.info(f"User {user_id} cart item {product_id} now has quantity {entry.quantity}")
        return entry

    def _read_field(self, pipe, key: str, field: str) -> CartEntry | None:
        try:
            raw = pipe.hget(key, field)
        except UnicodeDecodeError:
            self.log.warning(f"Overwriting non UTF-8 cart item {field} in {key}")
            return None
        if raw is None:
            return None
        try:
            return CartEntry.model_validate_json(raw)
        except ValidationError as e:
            self.log.warning(f"Overwriting unreadable cart item: {e}")
            return None

    # =====================================================
    # BACKUP (best-effort mirror)
    # =====================================================
    def _schedule(self, task, *args) -> None:
        if not self.backup:
            return
        try:
            task.delay(*args)
        except Exception as e:
            # broker down: the redis write already happened, the mirror just lags
            self.log.warning(f"Failed to queue {task.name} for {args}: {e}")

    @_surfaced
    def restore_from_backup(self, user_id: UUID) -> int:
        """
        Disaster recovery: copy mirror rows back into the hash. Fields that
        already exist in redis win over the mirror. Returns rows restored.
        """
        if self.session_factory is None:
            return 0
        db = self.session_factory()
        try:
            rows = CartBackupRepo(db).get_items(user_id)
        finally:
            db.close()

        key = cart_key(user_id)
        pipe = self.redis.pipeline(transaction=True)
        for row in rows:
            if row.quantity <= 0:
                continue
            entry = CartEntry(
                quantity=row.quantity,
                description=row.description or "",
                created_at=_as_utc(row.created_at),
                updated_at=_as_utc(row.updated_at),
            )
            pipe.hsetnx(key, str(row.product_id), entry.model_dump_json())
        pipe.expire(key, self.ttl)
        results = pipe.execute()
        restored = sum(1 for r in results[:-1] if r)
        self.log.info(f"Restored {restored} of {len(rows)} cart items for user {user_id} from backup")
        return restored
