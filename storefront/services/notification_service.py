# storefront/services/notification_service.py
from storefront.celery_worker import celery_app
from storefront.domain.schemas import OrderCreatedEvent
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

ORDER_CREATED_TASK = "storefront.events.order_created"


class NotificationService:
    """
    Event sink for domain events. Publishing hands the event to the Celery
    broker and returns; delivery to consumers is at-most-buffered. Broker
    errors propagate so the caller can report them.
    """

    def __init__(self, app=None, log=None):
        self.app = app or celery_app
        self.log = log or logger

    def publish_order_created(self, event: OrderCreatedEvent) -> None:
        payload = event.model_dump(mode="json")
        self.app.send_task(ORDER_CREATED_TASK, args=[payload])
        self.log.info(f"OrderCreated event published for order {event.order_id}")


@celery_app.task(name=ORDER_CREATED_TASK)
def order_created_task(payload: dict):
    """
    Consumer side. A real deployment fans this out to inventory, mail and
    analytics; here it only validates and logs.
    """
    event = OrderCreatedEvent.model_validate(payload)
    logger.info(
        f"[ORDER CREATED] order {event.order_id} for user {event.user_id}: "
        f"{len(event.product_ids)} products, total {event.total_amount}"
    )
    return {"order_id": event.order_id, "status": "received"}
