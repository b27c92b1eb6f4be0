# storefront/tasks/cart_backup.py
from uuid import UUID

from celery.exceptions import SoftTimeLimitExceeded

from storefront.celery_worker import celery_app
from storefront.data.database import SessionLocal
from storefront.repos.cart_backup_repo import CartBackupRepo
from storefront.utils.settings import BACKUP_TIMEOUT_SECONDS
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

# mirror writes are best-effort: failures are logged, never retried
_limits = dict(
    ignore_result=True,
    soft_time_limit=BACKUP_TIMEOUT_SECONDS,
    time_limit=BACKUP_TIMEOUT_SECONDS + 5,
)


@celery_app.task(name="storefront.tasks.cart_backup.backup_cart_item", **_limits)
def backup_cart_item(user_id: str, product_id: str, quantity: int, description: str = ""):
    db = SessionLocal()
    try:
        CartBackupRepo(db).upsert_item(UUID(user_id), UUID(product_id), quantity, description)
    except SoftTimeLimitExceeded:
        db.rollback()
        logger.error(f"cart backup timed out (user: {user_id}, product: {product_id})")
    except Exception as e:
        db.rollback()
        logger.error(f"failed to backup cart item to DB (user: {user_id}, product: {product_id}): {e}")
    finally:
        db.close()


@celery_app.task(name="storefront.tasks.cart_backup.delete_cart_backup_item", **_limits)
def delete_cart_backup_item(user_id: str, product_id: str):
    db = SessionLocal()
    try:
        CartBackupRepo(db).delete_item(UUID(user_id), UUID(product_id))
    except SoftTimeLimitExceeded:
        db.rollback()
        logger.error(f"cart backup delete timed out (user: {user_id}, product: {product_id})")
    except Exception as e:
        db.rollback()
        logger.warning(f"failed to delete cart backup row (user: {user_id}, product: {product_id}): {e}")
    finally:
        db.close()


@celery_app.task(name="storefront.tasks.cart_backup.clear_cart_backup", **_limits)
def clear_cart_backup(user_id: str):
    db = SessionLocal()
    try:
        removed = CartBackupRepo(db).delete_all(UUID(user_id))
        logger.info(f"Cleared {removed} cart backup rows for user {user_id}")
    except SoftTimeLimitExceeded:
        db.rollback()
        logger.error(f"cart backup clear timed out for user {user_id}")
    except Exception as e:
        db.rollback()
        logger.warning(f"failed to clear cart backup rows for user {user_id}: {e}")
    finally:
        db.close()
