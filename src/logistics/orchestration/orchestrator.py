"""Fulfillment orchestrator — sequences gate, courier, order and ledger.

Creation:   serviceability gate → courier create → waybill on the order →
            persist → wallet debit
Cancel:     courier cancel → order cancelled → refund credit

Nothing is persisted until the courier confirmed the shipment with a
usable waybill. Customer statistics, billing and notifications are not
done here; event handlers pick them up from the events the order and the
ledger raise.
"""

from datetime import UTC, datetime

import structlog
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.utils.globals import current_domain

from logistics.courier import get_courier
from logistics.courier.port import CourierPort, TrackingResult, build_shipment_payload
from logistics.errors import (
    CourierProviderError,
    InsufficientBalanceError,
    LogisticsError,
    WalletConcurrencyError,
)
from logistics.orchestration import bulk
from logistics.orchestration.commands import CreateShipmentOrder
from logistics.orchestration.results import (
    BulkResult,
    CancellationOutcome,
    CancellationResult,
    MultiPackageResult,
    OrderResult,
    OverallResult,
    PackageOutcome,
    PackageResult,
    PickupScheduleResult,
)
from logistics.order.order import ChargeStatus, Order, OrderStatus, PaymentMode, generate_order_id
from logistics.order.tracking import UpdateShipmentStatus
from logistics.serviceability.gate import ServiceabilityGate
from logistics.utils.money import round2
from logistics.utils.side_effects import best_effort
from logistics.wallet.ledger import WalletLedger
from logistics.wallet.transaction import TransactionCategory, WalletTransaction
from logistics.warehouse.warehouse import find_warehouse

logger = structlog.get_logger(__name__)

_ADDRESS_FIELDS = ("full_address", "city", "state", "pincode", "phone")


class FulfillmentOrchestrator:
    def __init__(
        self,
        courier: CourierPort,
        ledger: WalletLedger,
        gate: ServiceabilityGate,
        waybill_prefetch: bool = True,
    ) -> None:
        self.courier = courier
        self.ledger = ledger
        self.gate = gate
        self.waybill_prefetch = waybill_prefetch

    def _orders(self):
        return current_domain.repository_for(Order)

    # -------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------
    def get_order(self, merchant_id: str, order_id: str) -> Order:
        """The merchant's order. Other merchants' orders do not exist for the caller."""
        order = self._orders().get(order_id)
        if order.merchant_id != merchant_id:
            raise ObjectNotFoundError(f"Order {order_id} does not exist")
        return order

    def list_orders(self, merchant_id: str, status: str | None = None) -> list[Order]:
        criteria = {"merchant_id": merchant_id}
        if status:
            criteria["status"] = status
        results = self._orders()._dao.query.filter(**criteria).all()
        return sorted(results.items, key=lambda o: o.created_at, reverse=True)

    # -------------------------------------------------------------------
    # Creation
    # -------------------------------------------------------------------
    def create_order(self, command: CreateShipmentOrder) -> OrderResult:
        """Create one single-package order."""
        order = self._build_order(command, order_id=command.order_id or generate_order_id())
        return self._place(order, generate_awb=command.generate_awb, actor=command.actor)

    def create_multi_package_order(self, command: CreateShipmentOrder) -> MultiPackageResult:
        """Fan one multi-box request out into independent per-box orders.

        Shipping charge and weight are per box. Order value and COD amount are
        split across boxes in whole paise, the last box taking the remainder.
        A COD order must collect at least 0.01 per box.
        """
        package = command.package
        payment = command.payment
        boxes = int(package.get("number_of_boxes") or 1)
        if payment.get("mode") == PaymentMode.COD.value and _to_paise(payment.get("cod_amount")) < boxes:
            raise ValidationError(
                {"cod_amount": [f"COD amount must be at least {boxes / 100:.2f} to split across {boxes} boxes"]}
            )
        parent_id = command.order_id or generate_order_id()

        results: list[PackageResult] = []
        halted = None
        for box in range(1, boxes + 1):
            child_id = f"{parent_id}-{box}"
            if halted:
                results.append(
                    PackageResult(
                        box_number=box,
                        order_id=child_id,
                        outcome=PackageOutcome.SKIPPED.value,
                        error=halted,
                        error_type=InsufficientBalanceError.__name__,
                    )
                )
                continue

            try:
                order = self._build_order(
                    command,
                    order_id=child_id,
                    package={**package, "number_of_boxes": 1},
                    payment=_split_payment(payment, box, boxes),
                    reference_id=f"{command.reference_id}-{box}" if command.reference_id else None,
                )
                placed = self._place(order, generate_awb=command.generate_awb, actor=command.actor)
            except InsufficientBalanceError as exc:
                halted = exc.message
                results.append(_failed_box(box, child_id, exc))
            except (LogisticsError, ValidationError) as exc:
                results.append(_failed_box(box, child_id, exc))
            else:
                results.append(
                    PackageResult(
                        box_number=box,
                        order_id=child_id,
                        outcome=PackageOutcome.SUCCESS.value,
                        waybill=placed.waybill,
                    )
                )

        successes = sum(1 for r in results if r.outcome == PackageOutcome.SUCCESS.value)
        if successes == boxes:
            overall = OverallResult.ALL_SUCCESS
        elif successes == 0:
            overall = OverallResult.ALL_FAILED
        else:
            overall = OverallResult.PARTIAL_SUCCESS

        logger.info(
            "Multi-package order processed",
            parent_order_id=parent_id,
            boxes=boxes,
            successes=successes,
            overall=overall.value,
        )
        return MultiPackageResult(parent_order_id=parent_id, overall=overall.value, packages=results)

    def generate_awb(self, merchant_id: str, order_id: str, actor: str = "merchant") -> OrderResult:
        """Deferred dispatch of a saved ``new`` order."""
        order = self.get_order(merchant_id, order_id)
        if order.waybill:
            raise ValidationError({"waybill": [f"Order {order_id} already has waybill {order.waybill}"]})
        if order.current_status != OrderStatus.NEW:
            raise ValidationError({"status": [f"Cannot generate a waybill for an order in {order.status}"]})

        unpaid = order.charge_status == ChargeStatus.UNPAID.value
        if unpaid:
            self.ledger.ensure_sufficient(merchant_id, order.shipping_charge)

        self._dispatch(order, actor=actor)
        self._orders().add(order)
        logger.info("Waybill generated for saved order", order_id=order_id, waybill=order.waybill)

        if unpaid:
            self._charge(order)
        return OrderResult.from_order(self._orders().get(order_id))

    def _build_order(
        self,
        command: CreateShipmentOrder,
        order_id: str,
        package: dict | None = None,
        payment: dict | None = None,
        reference_id: str | None = None,
    ) -> Order:
        reference_id = reference_id if reference_id is not None else command.reference_id
        pickup_address = self._resolve_pickup(command.merchant_id, command.warehouse_id, command.pickup_address)
        self._assert_reference_unique(command.merchant_id, reference_id)
        self._assert_order_id_free(order_id)

        return Order.create(
            order_id=order_id,
            merchant_id=command.merchant_id,
            reference_id=reference_id,
            warehouse_id=command.warehouse_id,
            pickup_address=pickup_address,
            delivery_address=command.delivery_address,
            package=package if package is not None else command.package,
            payment=payment if payment is not None else command.payment,
            zone=command.zone,
            actor=command.actor,
        )

    def _resolve_pickup(self, merchant_id: str, warehouse_id: str | None, address: dict | None) -> dict:
        if warehouse_id:
            return find_warehouse(merchant_id, warehouse_id).pickup_address()
        if not address:
            raise ValidationError({"pickup_address": ["A warehouse or a pickup address is required"]})
        missing = [name for name in _ADDRESS_FIELDS if not address.get(name)]
        if missing:
            raise ValidationError({"pickup_address": [f"Missing fields: {', '.join(missing)}"]})
        return address

    def _assert_reference_unique(self, merchant_id: str, reference_id: str | None) -> None:
        if not reference_id:
            return
        existing = self._orders()._dao.query.filter(merchant_id=merchant_id, reference_id=reference_id).all()
        if existing.items:
            raise ValidationError({"reference_id": [f"Reference {reference_id} is already used by another order"]})

    def _assert_order_id_free(self, order_id: str) -> None:
        try:
            self._orders().get(order_id)
        except ObjectNotFoundError:
            return
        raise ValidationError({"order_id": [f"Order {order_id} already exists"]})

    def _place(self, order: Order, generate_awb: bool, actor: str) -> OrderResult:
        """Pre-flight the wallet, dispatch if asked, then persist and charge."""
        self.ledger.ensure_sufficient(order.merchant_id, order.shipping_charge)
        if generate_awb:
            self._dispatch(order, actor=actor)

        self._orders().add(order)
        logger.info(
            "Order persisted",
            order_id=order.order_id,
            merchant_id=order.merchant_id,
            status=order.status,
            waybill=order.waybill,
        )
        self._charge(order)
        return OrderResult.from_order(self._orders().get(order.order_id))

    def _dispatch(self, order: Order, actor: str = "system") -> None:
        """Gate, courier create and waybill assignment. Mutates ``order`` in memory only."""
        self.gate.check_serviceable(
            order.pickup_address.pincode,
            order.delivery_address.pincode,
            order.payment.mode,
        )

        waybill = self._prefetch_waybill(order.order_id) if self.waybill_prefetch else None
        result = self.courier.create_shipment(build_shipment_payload(order, waybill))
        if not result.success:
            logger.warning("Courier rejected shipment", order_id=order.order_id, error=result.error)
            raise CourierProviderError(f"Courier rejected the shipment: {result.error}", retryable=False)
        if not result.confirmed:
            logger.error("Courier reported success without a waybill", order_id=order.order_id)
            raise CourierProviderError("Courier confirmed the shipment without a usable waybill")

        order.assign_waybill(result.waybill, provider_status=result.provider_status, actor=actor)

    def _prefetch_waybill(self, order_id: str) -> str | None:
        try:
            waybills = self.courier.allocate_waybills(1)
        except CourierProviderError as exc:
            logger.info("Waybill prefetch failed, courier will allocate", order_id=order_id, error=exc.message)
            return None
        return waybills[0] if waybills else None

    def _charge(self, order: Order) -> WalletTransaction | None:
        """Debit the shipping charge for a persisted order.

        The pre-flight check already passed. If a concurrent debit drained
        the wallet in between, the order stays persisted and unpaid.
        """
        try:
            txn = self.ledger.debit(
                order.merchant_id,
                order.shipping_charge,
                order_id=order.order_id,
                category=TransactionCategory.SHIPPING_CHARGE,
                description=f"Shipping charge for order {order.order_id}",
            )
        except (InsufficientBalanceError, WalletConcurrencyError) as exc:
            logger.error(
                "Shipping charge debit failed, order left unpaid",
                order_id=order.order_id,
                merchant_id=order.merchant_id,
                error=exc.message,
            )
            return None
        if txn is None:
            return None

        # Billing handlers may have written to the order during the debit.
        persisted = self._orders().get(order.order_id)
        persisted.record_charge(txn.transaction_id)
        self._orders().add(persisted)
        return txn

    # -------------------------------------------------------------------
    # Cancellation
    # -------------------------------------------------------------------
    def cancel_order(
        self,
        merchant_id: str,
        order_id: str,
        reason: str | None = None,
        actor: str = "merchant",
    ) -> CancellationResult:
        order = self.get_order(merchant_id, order_id)

        if order.current_status == OrderStatus.CANCELLED:
            refund = self._refund(order)
            return self._cancellation_result(order, CancellationOutcome.ALREADY_CANCELLED, refund)
        if not order.is_cancellable:
            raise ValidationError({"status": [f"Cannot cancel an order in {order.status}"]})

        remark = None
        if order.waybill:
            response = self.courier.cancel_shipment(order.waybill)
            if not response.success:
                logger.warning("Courier refused cancellation", order_id=order_id, error=response.error)
                raise CourierProviderError(
                    f"Courier refused the cancellation: {response.error or response.remark}",
                    retryable=False,
                )
            if not response.confirmed:
                order.mark_cancellation_pending(remark=response.remark, reason=reason)
                self._orders().add(order)
                logger.warning(
                    "Courier cancellation unconfirmed, left pending",
                    order_id=order_id,
                    waybill=order.waybill,
                    remark=response.remark,
                )
                return self._cancellation_result(order, CancellationOutcome.PENDING, remark=response.remark)
            remark = response.remark

        order.cancel(reason=reason, actor=actor, remark=remark)
        self._orders().add(order)
        logger.info("Order cancelled", order_id=order_id, status_type=order.cancellation.status_type)

        refund = self._refund(order)
        return self._cancellation_result(self._orders().get(order_id), CancellationOutcome.CANCELLED, refund)

    def _refund(self, order: Order) -> WalletTransaction | None:
        """Credit the shipping charge back, at most once per order."""
        if order.charge_status != ChargeStatus.DEBITED.value or round2(order.shipping_charge) <= 0:
            return None

        refund = self.ledger.refund_once(
            order.merchant_id,
            order.order_id,
            order.shipping_charge,
            description=f"Refund for cancelled order {order.order_id}",
        )

        persisted = self._orders().get(order.order_id)
        persisted.record_refund(refund.transaction_id)
        self._orders().add(persisted)
        return refund

    @staticmethod
    def _cancellation_result(
        order: Order,
        outcome: CancellationOutcome,
        refund: WalletTransaction | None = None,
        remark: str | None = None,
    ) -> CancellationResult:
        cancellation = order.cancellation
        return CancellationResult(
            order_id=order.order_id,
            outcome=outcome.value,
            status=order.status,
            status_type=cancellation.status_type if cancellation else None,
            remark=remark or (cancellation.remark if cancellation else None),
            refund_transaction_id=refund.transaction_id if refund else None,
            refund_amount=refund.amount if refund else 0.0,
        )

    # -------------------------------------------------------------------
    # Pickup, tracking and labels
    # -------------------------------------------------------------------
    def schedule_pickup(
        self,
        merchant_id: str,
        order_ids: list[str],
        pickup_date: str,
        pickup_time: str,
        location: str | None = None,
        actor: str = "merchant",
    ) -> PickupScheduleResult:
        ready, rejected = [], []
        for order_id in order_ids:
            try:
                order = self.get_order(merchant_id, order_id)
            except ObjectNotFoundError:
                rejected.append({"order_id": order_id, "error": "Order not found"})
                continue
            if order.current_status != OrderStatus.READY_TO_SHIP:
                rejected.append({"order_id": order_id, "error": f"Order is {order.status}, not ready_to_ship"})
                continue
            ready.append(order)

        if not ready:
            raise ValidationError({"order_ids": ["None of the orders is ready to ship"]})

        location = location or ready[0].pickup_address.name or ready[0].warehouse_id
        result = self.courier.schedule_pickup(location, pickup_date, pickup_time, expected_count=len(ready))
        if not result.success:
            raise CourierProviderError(f"Courier could not schedule the pickup: {result.error}")

        for order in ready:
            order.schedule_pickup(result.pickup_id, actor=actor)
            self._orders().add(order)

        logger.info(
            "Pickup scheduled",
            merchant_id=merchant_id,
            pickup_id=result.pickup_id,
            orders=len(ready),
            pickup_date=pickup_date,
        )
        return PickupScheduleResult(
            pickup_id=result.pickup_id,
            scheduled=[o.order_id for o in ready],
            rejected=rejected,
        )

    def track_order(self, merchant_id: str, order_id: str, sync_status: bool = True) -> TrackingResult:
        """Courier scan history. The latest courier status is applied to the order."""
        order = self.get_order(merchant_id, order_id)
        if not order.waybill:
            raise ValidationError({"waybill": [f"Order {order_id} has no waybill yet"]})

        tracking = self.courier.track_shipment(order.waybill, order.reference_id)
        if sync_status and tracking.success and tracking.status and not order.is_terminal:
            with best_effort("tracking.sync", order_id=order_id, waybill=order.waybill):
                current_domain.process(
                    UpdateShipmentStatus(
                        waybill=order.waybill,
                        courier_status=tracking.status,
                        status_type=tracking.status_type,
                        merchant_id=merchant_id,
                        remarks="Synced from courier tracking",
                    ),
                    asynchronous=False,
                )
        return tracking

    def render_label(self, merchant_id: str, order_id: str) -> dict:
        order = self.get_order(merchant_id, order_id)
        if not order.waybill:
            raise ValidationError({"waybill": [f"Order {order_id} has no waybill yet"]})

        label = {
            "waybill": order.waybill,
            "order_id": order.order_id,
            "reference_id": order.reference_id,
            "consignee": order.delivery_address.name,
            "address": order.delivery_address.full_address,
            "city": order.delivery_address.city,
            "state": order.delivery_address.state,
            "pin": order.delivery_address.pincode,
            "phone": order.delivery_address.phone,
            "return_address": order.pickup_address.full_address,
            "return_pin": order.pickup_address.pincode,
            "payment_mode": order.payment.mode,
            "cod_amount": order.payment.cod_amount,
            "weight_kg": order.package.weight_kg,
            "dimensions_cm": [order.package.length_cm, order.package.width_cm, order.package.height_cm],
            "printed_at": datetime.now(UTC).isoformat(),
        }
        courier_fields = self.courier.render_label(order.waybill)
        label.update({k: v for k, v in courier_fields.items() if v is not None and k not in label})
        return label

    # -------------------------------------------------------------------
    # Bulk
    # -------------------------------------------------------------------
    def bulk_generate_awb(self, merchant_id: str, order_ids: list[str], actor: str = "merchant") -> BulkResult:
        return bulk.run_each(
            "generate_awb",
            order_ids,
            lambda order_id: self.generate_awb(merchant_id, order_id, actor=actor).to_dict(),
        )

    def bulk_cancel(
        self,
        merchant_id: str,
        order_ids: list[str],
        reason: str | None = None,
        actor: str = "merchant",
    ) -> BulkResult:
        return bulk.run_each(
            "cancel",
            order_ids,
            lambda order_id: self.cancel_order(merchant_id, order_id, reason=reason, actor=actor).to_dict(),
        )

    def bulk_request_pickup(
        self,
        merchant_id: str,
        order_ids: list[str],
        pickup_date: str,
        pickup_time: str,
        location: str | None = None,
        actor: str = "merchant",
    ) -> BulkResult:
        return bulk.pickup_results(
            order_ids,
            lambda: self.schedule_pickup(merchant_id, order_ids, pickup_date, pickup_time, location, actor=actor),
        )


def _to_paise(amount: float | None) -> int:
    return int(round(round2(amount) * 100))


def _split_payment(payment: dict, box: int, boxes: int) -> dict:
    split = dict(payment)
    for key in ("order_value", "cod_amount"):
        share, remainder = divmod(_to_paise(payment.get(key)), boxes)
        split[key] = round2((share + remainder) / 100 if box == boxes else share / 100)
    return split


def _failed_box(box: int, order_id: str, exc: Exception) -> PackageResult:
    message = exc.message if isinstance(exc, LogisticsError) else str(exc)
    return PackageResult(
        box_number=box,
        order_id=order_id,
        outcome=PackageOutcome.FAILED.value,
        error=message,
        error_type=type(exc).__name__,
    )


def create_orchestrator(courier: CourierPort | None = None) -> FulfillmentOrchestrator:
    """Default wiring: the configured courier, a ledger and a gate over the same courier."""
    courier = courier or get_courier()
    return FulfillmentOrchestrator(courier=courier, ledger=WalletLedger(), gate=ServiceabilityGate(courier))
