"""
Booking payments through Razorpay.

The gateway is called over its REST API with ``httpx`` and HTTP Basic
authentication (key id and key secret).  Amounts travel to the gateway
as integer paise; everything stored locally is in rupees.

The usual flow is:

1. ``create_order`` registers an order for the booking total and the
   client opens Razorpay Checkout with it.
2. Checkout returns ``order_id``, ``payment_id`` and a signature which
   the client posts to ``verify_payment``.  A valid signature marks the
   booking as paid and confirms it if it was still pending.
3. Razorpay also posts webhooks; ``handle_webhook`` applies the same
   updates so a payment is recorded even if the client never calls
   ``verify_payment``.

Without credentials every gateway operation raises
``ServiceUnavailableError`` (HTTP 503).
"""

import hashlib
import hmac
import json
import logging
import sqlite3
from typing import Any, Dict, List, Optional

import httpx

from home_services_api.app.core.config import settings
from home_services_api.app.core.db import from_db_datetime, get_connection, to_db_datetime, utcnow
from home_services_api.app.core.exceptions import (
    NotFoundError,
    PaymentGatewayError,
    PermissionDeniedError,
    ServiceUnavailableError,
)
from home_services_api.app.schemas.booking import BookingRead
from home_services_api.app.schemas.common import Pagination
from home_services_api.app.schemas.payment import (
    OrderRead,
    PaymentLinkRead,
    RefundRead,
    TransactionRead,
    VerifyPaymentRequest,
)
from home_services_api.app.services.audit_service import AuditService
from home_services_api.app.services.booking_service import BookingService, calculate_refund, round_half_up
from home_services_api.app.services.notification_service import NotificationService
from home_services_api.app.services.settings_service import SettingsService

logger = logging.getLogger(__name__)

PAYABLE_STATUSES = ("pending", "confirmed")
MAX_TRANSACTIONS_PAGE = 50


def to_paise(amount: float) -> int:
    return int(round_half_up(amount * 100))


def compute_signature(secret: str, message: bytes) -> str:
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


class PaymentService:
    """Service wrapping the Razorpay order, payment and refund APIs."""

    # ------------------------------------------------------------------
    # Gateway plumbing
    # ------------------------------------------------------------------

    @staticmethod
    def is_configured() -> bool:
        return bool(settings.razorpay_key_id and settings.razorpay_key_secret)

    @classmethod
    def _ensure_configured(cls) -> None:
        if not cls.is_configured():
            raise ServiceUnavailableError("Payment gateway is not configured")

    @classmethod
    def _razorpay_request(cls, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Call the Razorpay REST API and return the decoded JSON body.

        Raises ``PaymentGatewayError`` when the request fails or Razorpay
        answers with an error.
        """
        cls._ensure_configured()
        url = f"{settings.razorpay_api_url.rstrip('/')}/{path.lstrip('/')}"
        try:
            response = httpx.request(
                method,
                url,
                json=payload,
                auth=(settings.razorpay_key_id, settings.razorpay_key_secret),
                timeout=30,
            )
        except httpx.HTTPError as exc:
            logger.error("Razorpay %s %s failed: %s", method, path, exc)
            raise PaymentGatewayError("Payment gateway request failed") from exc
        if response.status_code >= 400:
            try:
                description = response.json().get("error", {}).get("description")
            except ValueError:
                description = None
            logger.error("Razorpay %s %s returned %s: %s", method, path, response.status_code, response.text)
            raise PaymentGatewayError(description or "Payment gateway rejected the request")
        return response.json()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _fetch_booking(cursor: sqlite3.Cursor, booking_id: int) -> sqlite3.Row:
        row = cursor.execute(
            "SELECT b.*, s.name AS service_name FROM bookings b JOIN services s ON s.id = b.service_id "
            "WHERE b.id = ?",
            (booking_id,),
        ).fetchone()
        if not row:
            raise NotFoundError(f"Booking {booking_id} not found")
        return row

    @classmethod
    def _fetch_own_booking(cls, cursor: sqlite3.Cursor, booking_id: int, user_id: int) -> sqlite3.Row:
        row = cls._fetch_booking(cursor, booking_id)
        if row["customer_id"] != user_id:
            raise PermissionDeniedError("Not authorized to pay for this booking")
        return row

    @staticmethod
    def _ensure_payable(booking: sqlite3.Row) -> None:
        if booking["status"] not in PAYABLE_STATUSES:
            raise ValueError(f"Cannot pay for a booking that is {booking['status']}")
        if booking["payment_status"] == "paid":
            raise ValueError("Booking is already paid")

    @staticmethod
    def _mark_paid(
        cursor: sqlite3.Cursor,
        booking: sqlite3.Row,
        payment_id: str,
        amount: float,
        method: Optional[str],
        changed_by: Optional[int],
    ) -> None:
        """Record a captured payment on the booking and confirm it if still pending."""
        now = to_db_datetime(utcnow())
        cursor.execute(
            """
            UPDATE bookings
            SET payment_status = 'paid', payment_method = 'razorpay', transaction_id = ?, paid_amount = ?,
                paid_at = ?, updated_at = ?
            WHERE id = ?
            """,
            (payment_id, amount, now, now, booking["id"]),
        )
        cursor.execute(
            "UPDATE payments SET status = 'captured', gateway_payment_id = ?, method = ?, updated_at = ? "
            "WHERE booking_id = ? AND status IN ('created', 'failed')",
            (payment_id, method, now, booking["id"]),
        )
        if booking["status"] == "pending":
            cursor.execute("UPDATE bookings SET status = 'confirmed' WHERE id = ?", (booking["id"],))
            BookingService._record_history(cursor, booking["id"], "confirmed", changed_by, "Payment completed")

    # ------------------------------------------------------------------
    # Orders and verification
    # ------------------------------------------------------------------

    @classmethod
    async def create_order(cls, booking_id: int, user_id: int) -> OrderRead:
        """Register a Razorpay order for the full booking total."""
        cls._ensure_configured()
        conn = get_connection()
        try:
            cursor = conn.cursor()
            booking = cls._fetch_own_booking(cursor, booking_id, user_id)
            cls._ensure_payable(booking)
            amount = to_paise(booking["total_amount"])
            order = cls._razorpay_request(
                "POST",
                "/orders",
                {
                    "amount": amount,
                    "currency": settings.currency,
                    "receipt": booking["booking_number"],
                    "notes": {"booking_id": str(booking_id), "customer_id": str(user_id)},
                },
            )
            cursor.execute(
                "INSERT INTO payments (booking_id, user_id, order_id, amount, currency) VALUES (?, ?, ?, ?, ?)",
                (booking_id, user_id, order["id"], booking["total_amount"], settings.currency),
            )
            conn.commit()
        finally:
            conn.close()
        logger.info("Razorpay order %s created for booking %s", order["id"], booking_id)
        await AuditService.log(user_id, "create_order", "payment", booking_id, details={"order_id": order["id"]})
        return OrderRead(
            order_id=order["id"],
            amount=amount,
            currency=settings.currency,
            key_id=settings.razorpay_key_id,
            booking_id=booking_id,
            booking_number=booking["booking_number"],
        )

    @classmethod
    def verify_signature(cls, order_id: str, payment_id: str, signature: str) -> bool:
        expected = compute_signature(settings.razorpay_key_secret, f"{order_id}|{payment_id}".encode())
        return hmac.compare_digest(expected, signature)

    @classmethod
    async def verify_payment(cls, data: VerifyPaymentRequest, user: Dict[str, Any]) -> BookingRead:
        """Check the Checkout signature, then record the payment on the booking.

        The order must have been created for this booking and the payment
        id must not already be recorded on another booking.  Raises
        ``ValueError`` for a signature mismatch, a foreign order or a
        payment that Razorpay does not report as captured or authorized.
        """
        cls._ensure_configured()
        if not cls.verify_signature(data.razorpay_order_id, data.razorpay_payment_id, data.razorpay_signature):
            logger.warning("Invalid payment signature for booking %s", data.booking_id)
            raise ValueError("Invalid payment signature")
        conn = get_connection()
        try:
            cursor = conn.cursor()
            booking = cls._fetch_own_booking(cursor, data.booking_id, user["user_id"])
            cls._ensure_payable(booking)
            order = cursor.execute(
                "SELECT booking_id, status FROM payments WHERE order_id = ?", (data.razorpay_order_id,)
            ).fetchone()
            # A failed attempt may be retried on the same order.
            if not order or order["booking_id"] != data.booking_id or order["status"] not in ("created", "failed"):
                raise ValueError("Order does not belong to this booking")
            used = cursor.execute(
                "SELECT id FROM bookings WHERE transaction_id = ? AND id != ?",
                (data.razorpay_payment_id, data.booking_id),
            ).fetchone()
            if used:
                raise ValueError("Payment has already been recorded")
            payment = cls._razorpay_request("GET", f"/payments/{data.razorpay_payment_id}")
            if payment.get("status") not in ("captured", "authorized"):
                raise ValueError(f"Payment is {payment.get('status', 'unknown')}")
            amount = payment.get("amount", to_paise(booking["total_amount"])) / 100
            cls._mark_paid(cursor, booking, data.razorpay_payment_id, amount, payment.get("method"), user["user_id"])
            conn.commit()
        finally:
            conn.close()
        logger.info("Payment %s verified for booking %s", data.razorpay_payment_id, data.booking_id)
        await AuditService.log(
            user["user_id"], "verify_payment", "payment", data.booking_id,
            details={"payment_id": data.razorpay_payment_id, "amount": amount},
        )
        await NotificationService.notify_template(
            user["user_id"], "payment", "success", {"amount": amount, "booking_id": data.booking_id}
        )
        return await BookingService.get_booking(data.booking_id, user)

    @classmethod
    async def create_payment_link(cls, booking_id: int, user_id: int) -> PaymentLinkRead:
        """Create a hosted Razorpay payment link for the booking total."""
        cls._ensure_configured()
        conn = get_connection()
        try:
            cursor = conn.cursor()
            booking = cls._fetch_own_booking(cursor, booking_id, user_id)
            cls._ensure_payable(booking)
            customer = cursor.execute("SELECT name, email, phone FROM users WHERE id = ?", (user_id,)).fetchone()
            link = cls._razorpay_request(
                "POST",
                "/payment_links",
                {
                    "amount": to_paise(booking["total_amount"]),
                    "currency": settings.currency,
                    "description": f"Payment for {booking['service_name']} ({booking['booking_number']})",
                    "reference_id": booking["booking_number"],
                    "customer": {"name": customer["name"], "email": customer["email"], "contact": customer["phone"]},
                    "notify": {"sms": True, "email": True},
                    "callback_url": f"{settings.frontend_url}/bookings/{booking_id}/payment-success",
                    "callback_method": "get",
                    "notes": {"booking_id": str(booking_id)},
                },
            )
            cursor.execute(
                "INSERT INTO payments (booking_id, user_id, payment_link_id, amount, currency) VALUES (?, ?, ?, ?, ?)",
                (booking_id, user_id, link["id"], booking["total_amount"], settings.currency),
            )
            conn.commit()
        finally:
            conn.close()
        await AuditService.log(user_id, "create_payment_link", "payment", booking_id, details={"link_id": link["id"]})
        return PaymentLinkRead(
            payment_link_id=link["id"],
            short_url=link["short_url"],
            amount=booking["total_amount"],
            booking_id=booking_id,
        )

    # ------------------------------------------------------------------
    # Refunds
    # ------------------------------------------------------------------

    @classmethod
    async def refund_payment(cls, booking_id: int, user: Dict[str, Any], reason: Optional[str] = None) -> RefundRead:
        """Refund the cancellation amount of a cancelled, paid booking.

        The refunded amount is the one fixed at cancellation time; it is
        recomputed from the cancellation date when missing.
        """
        cls._ensure_configured()
        conn = get_connection()
        try:
            cursor = conn.cursor()
            booking = cls._fetch_booking(cursor, booking_id)
            BookingService._relation(cursor, booking, user)
            if booking["status"] != "cancelled":
                raise ValueError("Only cancelled bookings can be refunded")
            if booking["payment_status"] in ("refunded", "partially_refunded"):
                raise ValueError("Booking has already been refunded")
            if booking["payment_status"] != "paid" or not booking["transaction_id"]:
                raise ValueError("Booking has not been paid")
            amount = booking["cancellation_refund_amount"]
            if amount is None:
                amount = calculate_refund(
                    booking["total_amount"],
                    from_db_datetime(booking["scheduled_date"]),
                    from_db_datetime(booking["cancellation_date"]),
                )
            amount = min(amount, booking["paid_amount"] or booking["total_amount"])
            if amount <= 0:
                raise ValueError("No refund is due for this booking")
            refund = cls._razorpay_request(
                "POST",
                f"/payments/{booking['transaction_id']}/refund",
                {"amount": to_paise(amount), "notes": {"booking_id": str(booking_id), "reason": reason or ""}},
            )
            payment_status = "refunded" if amount >= booking["total_amount"] else "partially_refunded"
            now = to_db_datetime(utcnow())
            cursor.execute(
                """
                UPDATE bookings
                SET payment_status = ?, refund_transaction_id = ?, refund_amount = ?, refunded_at = ?, updated_at = ?
                WHERE id = ?
                """,
                (payment_status, refund["id"], amount, now, now, booking_id),
            )
            cursor.execute(
                "UPDATE payments SET status = 'refunded', updated_at = ? WHERE booking_id = ? AND status = 'captured'",
                (now, booking_id),
            )
            conn.commit()
        finally:
            conn.close()
        logger.info("Refund %s of %s issued for booking %s", refund["id"], amount, booking_id)
        await AuditService.log(
            user["user_id"], "refund", "payment", booking_id, details={"refund_id": refund["id"], "amount": amount}
        )
        await NotificationService.notify_template(
            booking["customer_id"], "payment", "refunded", {"amount": amount, "booking_id": booking_id}
        )
        return RefundRead(booking_id=booking_id, refund_id=refund["id"], refund_amount=amount,
                          payment_status=payment_status)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @classmethod
    async def list_transactions(
        cls,
        user_id: int,
        page: int = 1,
        limit: int = 10,
        status: Optional[str] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Payment data of the user's own bookings, newest first."""
        limit = min(limit, MAX_TRANSACTIONS_PAGE)
        where_clauses: List[str] = ["b.customer_id = ?"]
        params: List[Any] = [user_id]
        if status:
            where_clauses.append("b.payment_status = ?")
            params.append(status)
        if start_date:
            where_clauses.append("b.created_at >= ?")
            params.append(start_date)
        if end_date:
            where_clauses.append("b.created_at < date(?, '+1 day')")
            params.append(end_date)
        where_sql = " WHERE " + " AND ".join(where_clauses)
        conn = get_connection()
        try:
            cursor = conn.cursor()
            total = cursor.execute(f"SELECT COUNT(*) FROM bookings b{where_sql}", tuple(params)).fetchone()[0]
            rows = cursor.execute(
                f"""
                SELECT b.id AS booking_id, b.booking_number, s.name AS service_name, b.total_amount,
                       b.payment_status, b.payment_method, b.transaction_id, b.paid_amount, b.paid_at,
                       b.refund_amount, b.refunded_at, b.created_at
                FROM bookings b JOIN services s ON s.id = b.service_id
                {where_sql}
                ORDER BY b.created_at DESC, b.id DESC LIMIT ? OFFSET ?
                """,
                tuple(params + [limit, (page - 1) * limit]),
            ).fetchall()
        finally:
            conn.close()
        return {
            "items": [TransactionRead(**dict(row)) for row in rows],
            "pagination": Pagination.build(page, limit, total),
        }

    @classmethod
    async def get_admin_stats(cls) -> Dict[str, Any]:
        fee_percentage = float(await SettingsService.get_value("platform_fee_percentage", 10.0))
        conn = get_connection()
        try:
            cursor = conn.cursor()
            by_status = cursor.execute(
                "SELECT payment_status, COUNT(*) AS count, COALESCE(SUM(total_amount), 0) AS amount "
                "FROM bookings GROUP BY payment_status"
            ).fetchall()
            totals = cursor.execute(
                "SELECT COALESCE(SUM(paid_amount), 0) AS collected, COALESCE(SUM(refund_amount), 0) AS refunded "
                "FROM bookings WHERE paid_at IS NOT NULL"
            ).fetchone()
            by_method = cursor.execute(
                "SELECT COALESCE(method, 'unknown') AS method, COUNT(*) AS count, COALESCE(SUM(amount), 0) AS amount "
                "FROM payments WHERE status IN ('captured', 'refunded') GROUP BY method"
            ).fetchall()
            monthly = cursor.execute(
                """
                SELECT substr(paid_at, 1, 7) AS month, COUNT(*) AS payments, SUM(paid_amount) AS amount
                FROM bookings
                WHERE paid_at IS NOT NULL AND paid_at >= date('now', 'start of month', '-11 months')
                GROUP BY month ORDER BY month
                """
            ).fetchall()
        finally:
            conn.close()
        net = totals["collected"] - totals["refunded"]
        return {
            "by_status": {row["payment_status"]: {"count": row["count"], "amount": row["amount"]} for row in by_status},
            "total_collected": totals["collected"],
            "total_refunded": totals["refunded"],
            "net_revenue": net,
            "platform_fee_percentage": fee_percentage,
            "platform_earnings": round(net * fee_percentage / 100, 2),
            "by_method": [dict(row) for row in by_method],
            "monthly": [dict(row) for row in monthly],
        }

    # ------------------------------------------------------------------
    # Webhooks
    # ------------------------------------------------------------------

    @classmethod
    async def handle_webhook(cls, body: bytes, signature: Optional[str]) -> Dict[str, str]:
        """Verify and apply a Razorpay webhook.

        Handles ``payment.captured``, ``payment.failed`` and
        ``refund.processed``; other events are acknowledged and ignored.
        """
        if not settings.razorpay_webhook_secret:
            raise ServiceUnavailableError("Webhook secret is not configured")
        expected = compute_signature(settings.razorpay_webhook_secret, body)
        if not signature or not hmac.compare_digest(expected, signature):
            logger.warning("Rejected Razorpay webhook with an invalid signature")
            raise ValueError("Invalid webhook signature")
        try:
            event = json.loads(body)
        except ValueError as exc:
            raise ValueError("Invalid webhook payload") from exc
        if not isinstance(event, dict):
            raise ValueError("Invalid webhook payload")
        event_type = event.get("event", "")
        payload = event.get("payload", {})
        if not isinstance(event_type, str) or not isinstance(payload, dict):
            raise ValueError("Invalid webhook payload")
        logger.info("Razorpay webhook received: %s", event_type)
        if event_type == "payment.captured":
            await cls._on_payment_captured(cls._webhook_entity(payload, "payment"))
        elif event_type == "payment.failed":
            await cls._on_payment_failed(cls._webhook_entity(payload, "payment"))
        elif event_type == "refund.processed":
            await cls._on_refund_processed(cls._webhook_entity(payload, "refund"))
        return {"status": "ok", "event": event_type}

    @staticmethod
    def _webhook_entity(payload: Dict[str, Any], kind: str) -> Dict[str, Any]:
        wrapper = payload.get(kind)
        entity = wrapper.get("entity") if isinstance(wrapper, dict) else None
        if not isinstance(entity, dict) or "id" not in entity:
            raise ValueError("Invalid webhook payload")
        return entity

    @staticmethod
    def _booking_for_order(cursor: sqlite3.Cursor, order_id: Optional[str]) -> Optional[sqlite3.Row]:
        if not order_id:
            return None
        return cursor.execute(
            "SELECT b.* FROM payments p JOIN bookings b ON b.id = p.booking_id WHERE p.order_id = ?",
            (order_id,),
        ).fetchone()

    @classmethod
    async def _on_payment_captured(cls, entity: Dict[str, Any]) -> None:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            booking = cls._booking_for_order(cursor, entity.get("order_id"))
            if not booking or booking["payment_status"] == "paid":
                return
            amount = entity.get("amount", 0) / 100
            cls._mark_paid(cursor, booking, entity["id"], amount, entity.get("method"), None)
            conn.commit()
        finally:
            conn.close()
        await AuditService.log(None, "payment_captured", "payment", booking["id"], details={"payment_id": entity["id"]})
        await NotificationService.notify_template(
            booking["customer_id"], "payment", "success", {"amount": amount, "booking_id": booking["id"]}
        )

    @classmethod
    async def _on_payment_failed(cls, entity: Dict[str, Any]) -> None:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            booking = cls._booking_for_order(cursor, entity.get("order_id"))
            if not booking or booking["payment_status"] == "paid":
                return
            now = to_db_datetime(utcnow())
            cursor.execute(
                "UPDATE bookings SET payment_status = 'failed', updated_at = ? WHERE id = ?", (now, booking["id"])
            )
            cursor.execute(
                "UPDATE payments SET status = 'failed', gateway_payment_id = ?, updated_at = ? WHERE order_id = ?",
                (entity.get("id"), now, entity.get("order_id")),
            )
            conn.commit()
        finally:
            conn.close()
        await NotificationService.notify_template(
            booking["customer_id"],
            "payment",
            "failed",
            {"amount": entity.get("amount", 0) / 100, "booking_id": booking["id"]},
            priority="high",
        )

    @classmethod
    async def _on_refund_processed(cls, entity: Dict[str, Any]) -> None:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            booking = cursor.execute(
                "SELECT * FROM bookings WHERE transaction_id = ?", (entity.get("payment_id"),)
            ).fetchone()
            if not booking or booking["refund_transaction_id"]:
                return
            amount = entity.get("amount", 0) / 100
            now = to_db_datetime(utcnow())
            cursor.execute(
                """
                UPDATE bookings
                SET payment_status = ?, refund_transaction_id = ?, refund_amount = ?, refunded_at = ?, updated_at = ?
                WHERE id = ?
                """,
                (
                    "refunded" if amount >= booking["total_amount"] else "partially_refunded",
                    entity["id"],
                    amount,
                    now,
                    now,
                    booking["id"],
                ),
            )
            conn.commit()
        finally:
            conn.close()
        await AuditService.log(None, "refund_processed", "payment", booking["id"], details={"refund_id": entity["id"]})
