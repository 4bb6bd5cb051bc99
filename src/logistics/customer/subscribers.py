"""Customer profile upsert on order placement."""

import structlog
from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

from logistics.customer.customer import Customer, customer_key
from logistics.domain import logistics
from logistics.order.events import OrderPlaced
from logistics.utils.side_effects import best_effort

logger = structlog.get_logger(__name__)


@logistics.event_handler(part_of=Customer, stream_category="logistics::order")
class CustomerProfileHandler:
    @handle(OrderPlaced)
    def on_order_placed(self, event: OrderPlaced) -> None:
        with best_effort("customer.upsert", order_id=event.order_id, merchant_id=event.merchant_id):
            repo = current_domain.repository_for(Customer)
            try:
                customer = repo.get(customer_key(event.merchant_id, event.customer_phone))
            except ObjectNotFoundError:
                customer = Customer.first_seen(event.merchant_id, event.customer_phone, event.customer_name)
                logger.info("Customer profile created", merchant_id=event.merchant_id, order_id=event.order_id)

            customer.record_order(
                order_id=event.order_id,
                payment_mode=event.payment_mode,
                order_value=event.order_value,
                placed_at=event.placed_at,
                name=event.customer_name,
                city=event.delivery_city,
                pincode=event.delivery_pincode,
            )
            repo.add(customer)
