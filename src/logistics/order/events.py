"""Domain events for the Order aggregate."""

from protean.fields import DateTime, Float, Identifier, String

from logistics.domain import logistics


@logistics.event(part_of="Order")
class OrderPlaced:
    """An order was accepted and persisted for a merchant."""

    __version__ = 1

    order_id = String(required=True)
    merchant_id = Identifier(required=True)
    reference_id = String()
    payment_mode = String(required=True)
    order_value = Float(required=True)
    shipping_charge = Float(required=True)
    cod_amount = Float()
    customer_name = String()
    customer_phone = String(required=True)
    delivery_city = String()
    delivery_pincode = String(required=True)
    placed_at = DateTime(required=True)


@logistics.event(part_of="Order")
class OrderDispatched:
    """The courier confirmed the shipment and returned a waybill."""

    __version__ = 1

    order_id = String(required=True)
    merchant_id = Identifier(required=True)
    waybill = String(required=True)
    dispatched_at = DateTime(required=True)


@logistics.event(part_of="Order")
class OrderStatusChanged:
    """The order moved along its lifecycle."""

    __version__ = 1

    order_id = String(required=True)
    merchant_id = Identifier(required=True)
    from_status = String(required=True)
    to_status = String(required=True)
    remarks = String()
    actor = String()
    changed_at = DateTime(required=True)


@logistics.event(part_of="Order")
class OrderCancelled:
    """The order reached the cancelled state."""

    __version__ = 1

    order_id = String(required=True)
    merchant_id = Identifier(required=True)
    waybill = String()
    previous_status = String(required=True)
    status_type = String(required=True)
    reason = String()
    shipping_charge = Float()
    cancelled_at = DateTime(required=True)


@logistics.event(part_of="Order")
class OrderCancellationPending:
    """The courier did not confirm a cancellation; the order is awaiting a retry."""

    __version__ = 1

    order_id = String(required=True)
    merchant_id = Identifier(required=True)
    waybill = String(required=True)
    remark = String()
    requested_at = DateTime(required=True)
