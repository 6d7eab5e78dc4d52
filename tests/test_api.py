"""
HTTP surface: routing, auth, camelCase bodies and error rendering.
Business rules are covered in the service tests; these check the wiring.
"""

from unittest.mock import patch

from fastapi.concurrency import run_in_threadpool

from icebath.core.exceptions import InvalidInput
from .factories import (
    CHECKOUT_SESSION_ID,
    PAYMENT_INTENT_ID,
    SESSION_DAY,
    SUNDAY,
    auth_headers,
    booking_payload,
    make_admin,
    make_booking,
    make_credit,
    make_customer,
    make_gift_card,
    make_membership,
    make_slot,
    make_token,
)

API = "/api/v1"


# ---------------------------------------------------------------------------
# POST /bookings
# ---------------------------------------------------------------------------


class TestCreateBooking:
    def test_token_booking(self, client, db, email_sender):
        make_token(db, remaining=2)
        slot = make_slot(db)
        resp = client.post(f"{API}/bookings", json=booking_payload(slot, paymentMode="token"))
        assert resp.status_code == 201
        body = resp.json()
        assert body["bookingReference"].startswith("IB-")
        assert body["paymentStatus"] == "paid"
        assert body["finalAmount"] == 0
        assert body["tokensRemaining"] == 1
        assert body["emailSent"] is True
        assert body["redirectUrl"] is None

    def test_card_booking_returns_checkout_url(self, client, db):
        slot = make_slot(db)
        resp = client.post(f"{API}/bookings", json=booking_payload(slot, guestCount=2))
        assert resp.status_code == 201
        body = resp.json()
        assert body["paymentStatus"] == "pending"
        assert body["finalAmount"] == 3600
        assert body["redirectUrl"].endswith(CHECKOUT_SESSION_ID)

    def test_partial_credit_for_signed_in_customer(self, client, db):
        make_credit(db, 1500)
        slot = make_slot(db)
        resp = client.post(
            f"{API}/bookings",
            json=booking_payload(slot, applyCredit=True),
            headers=auth_headers(make_customer()),
        )
        assert resp.status_code == 201
        assert resp.json()["creditsUsed"] == 1500
        assert resp.json()["finalAmount"] == 300

    def test_full_slot_is_a_conflict(self, client, db):
        slot = make_slot(db)
        make_booking(db, slot, guest_count=4)
        resp = client.post(f"{API}/bookings", json=booking_payload(slot, guestCount=2))
        assert resp.status_code == 409
        body = resp.json()
        assert body["error"] == "conflict"
        assert body["message"] == "Not enough space - only 1 spaces remaining"
        assert body["details"] == {"available": 1, "requested": 2}

    def test_membership_needs_sign_in(self, client, db):
        slot = make_slot(db)
        resp = client.post(f"{API}/bookings", json=booking_payload(slot, paymentMode="membership"))
        assert resp.status_code == 401
        assert resp.json()["error"] == "unauthorized"

    def test_member_with_paying_guests(self, client, db):
        make_membership(db, sessions_remaining=2)
        slot = make_slot(db)
        resp = client.post(
            f"{API}/bookings",
            json=booking_payload(slot, paymentMode="membership", payingGuestCount=1),
            headers=auth_headers(make_customer()),
        )
        assert resp.status_code == 201
        body = resp.json()
        assert (body["paymentStatus"], body["finalAmount"]) == ("pending", 1800)
        assert body["sessionsRemaining"] == 1
        assert body["redirectUrl"].endswith(CHECKOUT_SESSION_ID)

    def test_no_tokens_is_payment_required(self, client, db):
        slot = make_slot(db)
        resp = client.post(f"{API}/bookings", json=booking_payload(slot, paymentMode="token"))
        assert resp.status_code == 402
        assert resp.json()["error"] == "insufficient_funds"

    def test_bad_body(self, client, db):
        slot = make_slot(db)
        resp = client.post(f"{API}/bookings", json=booking_payload(slot, guestCount=9))
        assert resp.status_code == 422

    def test_bad_token_is_rejected(self, client, db):
        slot = make_slot(db)
        resp = client.post(
            f"{API}/bookings",
            json=booking_payload(slot),
            headers={"Authorization": "Bearer not-a-jwt"},
        )
        assert resp.status_code == 401


# ---------------------------------------------------------------------------
# Cancel / verify / read
# ---------------------------------------------------------------------------


class TestBookingActions:
    def test_cancel_token_booking(self, client, db):
        slot = make_slot(db)
        booking = make_booking(db, slot, payment_method="token", final_amount=0, discount_amount=1800)
        resp = client.post(f"{API}/bookings/{booking.id}/cancel", headers=auth_headers(make_customer()))
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["tokenRefunded"] is True
        assert body["slotsFreed"] == 1

    def test_verify_payment(self, client, db):
        slot = make_slot(db)
        booking = make_booking(db, slot, payment_status="pending", booking_status="pending",
                               stripe_session_id=CHECKOUT_SESSION_ID)
        resp = client.post(f"{API}/bookings/{booking.id}/verify-payment")
        assert resp.status_code == 200
        assert resp.json()["status"] == "payment_confirmed"

        resp = client.post(f"{API}/bookings/{booking.id}/verify-payment")
        assert resp.json()["status"] == "already_paid"

    def test_get_booking_is_owner_only(self, client, db):
        slot = make_slot(db)
        booking = make_booking(db, slot)
        resp = client.get(f"{API}/bookings/{booking.id}", headers=auth_headers(make_customer()))
        assert resp.status_code == 200
        assert resp.json()["bookingReference"] == booking.booking_reference
        assert client.get(f"{API}/bookings/{booking.id}").status_code == 401


# ---------------------------------------------------------------------------
# Time slots
# ---------------------------------------------------------------------------


class TestTimeSlots:
    def test_day_listing_shows_live_availability(self, client):
        resp = client.get(f"{API}/time-slots", params={"date": SESSION_DAY.isoformat()})
        assert resp.status_code == 200
        slots = resp.json()["timeSlots"]
        assert len(slots) == 13
        assert slots[0]["slotTime"] == "07:00:00"
        assert all(s["availableSeats"] == 5 for s in slots)

    def test_booked_slot_reports_remaining_seats(self, client, db):
        slot = make_slot(db)
        make_booking(db, slot, guest_count=3)
        slots = client.get(f"{API}/time-slots", params={"date": SESSION_DAY.isoformat()}).json()["timeSlots"]
        nine = next(s for s in slots if s["slotTime"] == "09:00:00")
        assert nine["availableSeats"] == 2
        assert nine["bookedCount"] == 3

    def test_closed_day_is_empty(self, client):
        resp = client.get(f"{API}/time-slots", params={"date": SUNDAY.isoformat()})
        assert resp.status_code == 200
        assert resp.json()["timeSlots"] == []


# ---------------------------------------------------------------------------
# Gift cards & entitlements
# ---------------------------------------------------------------------------


class TestCustomerEndpoints:
    def test_redeem_then_see_credit(self, client, db):
        make_gift_card(db, amount=2500)
        headers = auth_headers(make_customer())
        resp = client.post(f"{API}/gift-cards/redeem", json={"giftCode": "gift-abcd1234"}, headers=headers)
        assert resp.status_code == 200
        assert resp.json()["creditAmount"] == 2500

        summary = client.get(f"{API}/me/entitlements", headers=headers).json()
        assert summary["totalCredit"] == 2500
        assert summary["totalTokens"] == 0
        assert summary["membership"] is None
        assert summary["usedFreeSessionToday"] is False

    def test_buy_gift_card(self, client, db, gateway):
        resp = client.post(f"{API}/gift-cards", json={
            "purchaserName": "Alex",
            "purchaserEmail": "Alex@Example.com",
            "recipientEmail": "",
            "amount": 2500,
        })
        assert resp.status_code == 201
        body = resp.json()
        assert body["amount"] == 2500
        assert body["redirectUrl"].endswith(CHECKOUT_SESSION_ID)
        assert gateway.create_checkout_session.call_args.kwargs["customer_email"] == "alex@example.com"

    def test_gift_card_amount_out_of_range(self, client):
        resp = client.post(f"{API}/gift-cards", json={
            "purchaserName": "Alex", "purchaserEmail": "alex@example.com", "amount": 500,
        })
        assert resp.status_code == 422
        assert resp.json()["details"] == {"min": 1000, "max": 50000}

    def test_redeem_requires_sign_in(self, client, db):
        resp = client.post(f"{API}/gift-cards/redeem", json={"giftCode": "X"})
        assert resp.status_code == 401

    def test_my_bookings(self, client, db):
        slot = make_slot(db)
        make_booking(db, slot)
        body = client.get(f"{API}/me/bookings", headers=auth_headers(make_customer())).json()
        assert body["total"] == 1
        assert body["totalPages"] == 1


# ---------------------------------------------------------------------------
# Stripe webhook
# ---------------------------------------------------------------------------


class TestStripeWebhook:
    def event(self, slot):
        return {
            "type": "checkout.session.completed",
            "data": {"object": {
                "id": CHECKOUT_SESSION_ID,
                "metadata": {"type": "booking", "time_slot_id": str(slot.id)},
            }},
        }

    def test_completed_checkout_confirms_booking(self, client, db, gateway, email_sender):
        slot = make_slot(db)
        booking = make_booking(db, slot, payment_status="pending", booking_status="pending",
                               stripe_session_id=CHECKOUT_SESSION_ID)
        gateway.construct_event.return_value = self.event(slot)

        resp = client.post(f"{API}/webhooks/stripe", content=b"{}", headers={"Stripe-Signature": "t=1,v1=abc"})
        assert resp.status_code == 200
        db.refresh(booking)
        assert booking.payment_status == "paid"
        email_sender.send.assert_called_once()

        # Stripe retries are harmless
        client.post(f"{API}/webhooks/stripe", content=b"{}", headers={"Stripe-Signature": "t=1,v1=abc"})
        email_sender.send.assert_called_once()
        db.refresh(slot)
        assert slot.booked_count == 1

    def test_late_payment_for_a_full_slot_is_refunded(self, client, db, gateway, email_sender):
        slot = make_slot(db)
        booking = make_booking(db, slot, guest_count=2, payment_status="cancelled", booking_status="cancelled",
                               stripe_session_id=CHECKOUT_SESSION_ID, hold_seats=False)
        make_booking(db, slot, guest_count=5)
        gateway.construct_event.return_value = self.event(slot)

        resp = client.post(f"{API}/webhooks/stripe", content=b"{}", headers={"Stripe-Signature": "t=1,v1=abc"})
        assert resp.status_code == 200
        gateway.refund.assert_called_once_with(PAYMENT_INTENT_ID, None)
        email_sender.send.assert_not_called()
        db.refresh(booking)
        assert (booking.payment_status, booking.booking_status) == ("refunded", "cancelled")
        db.refresh(slot)
        assert slot.booked_count == 5

    def test_event_is_processed_off_the_event_loop(self, client, db, gateway):
        gateway.construct_event.return_value = {"type": "invoice.paid", "data": {"object": {}}}
        with patch("icebath.api.v1.public.webhooks.run_in_threadpool", wraps=run_in_threadpool) as pool:
            resp = client.post(f"{API}/webhooks/stripe", content=b"{}", headers={"Stripe-Signature": "sig"})
        assert resp.json() == {"received": True}
        assert pool.call_args.args[0].__name__ == "_process_event"
        gateway.construct_event.assert_called_once_with(b"{}", "sig")

    def test_completed_gift_card_purchase_is_marked_paid(self, client, db, gateway, email_sender):
        card = make_gift_card(db, payment_status="pending")
        card.stripe_session_id = "cs_test_gift"
        db.commit()
        gateway.construct_event.return_value = {
            "type": "checkout.session.completed",
            "data": {"object": {"id": "cs_test_gift", "metadata": {"type": "gift_card"}}},
        }

        resp = client.post(f"{API}/webhooks/stripe", content=b"{}", headers={"Stripe-Signature": "sig"})
        assert resp.status_code == 200
        db.refresh(card)
        assert card.payment_status == "paid"
        email_sender.send.assert_called_once()
        assert email_sender.send.call_args.args[0] == "alex@example.com"

        # Redelivery sends no second code
        client.post(f"{API}/webhooks/stripe", content=b"{}", headers={"Stripe-Signature": "sig"})
        email_sender.send.assert_called_once()

    def test_bad_signature(self, client, gateway):
        gateway.construct_event.side_effect = InvalidInput("Invalid webhook signature")
        resp = client.post(f"{API}/webhooks/stripe", content=b"{}", headers={"Stripe-Signature": "bad"})
        assert resp.status_code == 422

    def test_other_events_are_acknowledged(self, client, gateway):
        gateway.construct_event.return_value = {"type": "invoice.paid", "data": {"object": {}}}
        resp = client.post(f"{API}/webhooks/stripe", content=b"{}", headers={"Stripe-Signature": "sig"})
        assert resp.json() == {"received": True}


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------


class TestAdmin:
    def test_customers_cannot_see_admin_routes(self, client):
        resp = client.get(f"{API}/admin/bookings", headers=auth_headers(make_customer()))
        assert resp.status_code == 404

    def test_list_and_filter_bookings(self, client, db):
        slot = make_slot(db)
        make_booking(db, slot)
        make_booking(db, slot, payment_method="token", final_amount=0)
        headers = auth_headers(make_admin())

        assert client.get(f"{API}/admin/bookings", headers=headers).json()["total"] == 2
        body = client.get(f"{API}/admin/bookings", params={"payment_method": "token"}, headers=headers).json()
        assert body["total"] == 1
        assert body["data"][0]["paymentMethod"] == "token"

    def test_refund(self, client, db, gateway):
        slot = make_slot(db)
        booking = make_booking(db, slot, stripe_session_id=CHECKOUT_SESSION_ID)
        resp = client.post(
            f"{API}/admin/bookings/{booking.id}/refund",
            json={"refundType": "partial"},
            headers=auth_headers(make_admin()),
        )
        assert resp.status_code == 200
        assert resp.json()["refundStatus"] == "partial_refund"

    def test_generate_slots(self, client):
        headers = auth_headers(make_admin())
        payload = {"dateFrom": "2026-06-01", "dateTo": "2026-06-07"}
        resp = client.post(f"{API}/admin/time-slots/generate", json=payload, headers=headers)
        assert resp.status_code == 201
        assert resp.json() == {"created": 78, "skipped": 0}

        again = client.post(f"{API}/admin/time-slots/generate", json=payload, headers=headers)
        assert again.json() == {"created": 0, "skipped": 78}

    def test_generate_rejects_reversed_range(self, client):
        resp = client.post(
            f"{API}/admin/time-slots/generate",
            json={"dateFrom": "2026-06-07", "dateTo": "2026-06-01"},
            headers=auth_headers(make_admin()),
        )
        assert resp.status_code == 422
