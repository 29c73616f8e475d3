"""
Tests for payment requests (money "pulls").

These tests verify:
  - Creating a request moves no money
  - Approval pays the requester from the target in one unit, described
    as "Payment for: <reason>"
  - Reject and cancel are terminal and move no money
  - A request can be acted on exactly once; later actions get 409
  - A failed approval (insufficient funds) leaves the request pending
  - Two approvals racing each other: exactly one succeeds
"""

import pytest

from bank_ledger.exceptions import AlreadyProcessedError, InsufficientFundsError
from bank_ledger.models.payment_request import PaymentRequestStatus
from bank_ledger.services import auth_service


async def _balance(client, member) -> int:
    response = await client.get("/account/balance", headers=member.headers)
    return response.json()["balance_cents"]


async def _request(client, requester, target, amount=5000, reason="lunch", message=None):
    response = await client.post(
        "/payment-requests",
        headers=requester.headers,
        json={"to": target.username, "amount_cents": amount, "reason": reason, "message": message},
    )
    assert response.status_code == 201, response.text
    return response.json()


class TestCreatePaymentRequest:
    """Tests for POST /payment-requests and GET /payment-requests."""

    async def test_create_moves_no_money(self, client, member_factory):
        alice = await member_factory("alice")
        bob = await member_factory("bob")

        data = await _request(client, alice, bob, message="from Tuesday")
        assert data["status"] == "pending"
        assert data["from_username"] == "alice"
        assert data["to_username"] == "bob"
        assert data["amount_cents"] == 5000
        assert data["message"] == "from Tuesday"

        assert await _balance(client, alice) == 100000
        assert await _balance(client, bob) == 100000

    async def test_create_by_account_number(self, client, member_factory):
        alice = await member_factory("alice")
        bob = await member_factory("bob")

        response = await client.post(
            "/payment-requests",
            headers=alice.headers,
            json={"to": bob.account_number, "amount_cents": 100, "reason": "coffee"},
        )
        assert response.status_code == 201
        assert response.json()["to_username"] == "bob"

    async def test_listed_for_both_parties(self, client, member_factory):
        alice = await member_factory("alice")
        bob = await member_factory("bob")
        created = await _request(client, alice, bob)

        alice_view = (await client.get("/payment-requests", headers=alice.headers)).json()
        bob_view = (await client.get("/payment-requests", headers=bob.headers)).json()

        assert [pr["id"] for pr in alice_view["outgoing"]] == [created["id"]]
        assert alice_view["incoming"] == []
        assert [pr["id"] for pr in bob_view["incoming"]] == [created["id"]]
        assert bob_view["outgoing"] == []

    async def test_request_from_self_rejected(self, client, member_factory):
        alice = await member_factory("alice")
        response = await client.post(
            "/payment-requests",
            headers=alice.headers,
            json={"to": alice.username, "amount_cents": 100, "reason": "me"},
        )
        assert response.status_code == 409

    async def test_unknown_target_rejected(self, client, member_factory):
        alice = await member_factory("alice")
        response = await client.post(
            "/payment-requests",
            headers=alice.headers,
            json={"to": "nobody", "amount_cents": 100, "reason": "ghost"},
        )
        assert response.status_code == 404

    @pytest.mark.parametrize(
        "body",
        [
            {"amount_cents": 0, "reason": "zero"},
            {"amount_cents": -100, "reason": "negative"},
            {"amount_cents": 100, "reason": ""},
        ],
    )
    async def test_invalid_request_rejected(self, client, member_factory, body):
        alice = await member_factory("alice")
        bob = await member_factory("bob")
        response = await client.post(
            "/payment-requests", headers=alice.headers, json={"to": bob.username, **body}
        )
        assert response.status_code == 422


class TestApprove:
    """Tests for POST /payment-requests/{id}/approve."""

    async def test_lunch_scenario(self, client, member_factory):
        """Bob asks Alice for 50.00 for lunch; Alice approves."""
        alice = await member_factory("alice")
        bob = await member_factory("bob")
        created = await _request(client, bob, alice, amount=5000, reason="lunch")

        response = await client.post(
            f"/payment-requests/{created['id']}/approve", headers=alice.headers
        )
        assert response.status_code == 200
        data = response.json()
        assert data["payment_request"]["status"] == "approved"
        assert data["transaction"]["type"] == "transfer"
        assert data["transaction"]["from_username"] == "alice"
        assert data["transaction"]["to_username"] == "bob"
        assert data["transaction"]["amount_cents"] == 5000
        assert data["transaction"]["description"] == "Payment for: lunch"

        assert await _balance(client, alice) == 95000
        assert await _balance(client, bob) == 105000

    async def test_double_approve_conflicts(self, client, member_factory):
        alice = await member_factory("alice")
        bob = await member_factory("bob")
        created = await _request(client, bob, alice)

        first = await client.post(f"/payment-requests/{created['id']}/approve", headers=alice.headers)
        second = await client.post(f"/payment-requests/{created['id']}/approve", headers=alice.headers)

        assert first.status_code == 200
        assert second.status_code == 409
        assert second.json()["error_type"] == "already_processed"
        assert await _balance(client, alice) == 95000

    async def test_insufficient_funds_leaves_request_pending(self, client, member_factory):
        alice = await member_factory("alice")
        bob = await member_factory("bob")
        created = await _request(client, bob, alice, amount=150_000, reason="car")

        response = await client.post(
            f"/payment-requests/{created['id']}/approve", headers=alice.headers
        )
        assert response.status_code == 422
        assert response.json()["error_type"] == "insufficient_funds"

        bob_view = (await client.get("/payment-requests", headers=bob.headers)).json()
        assert bob_view["outgoing"][0]["status"] == "pending"
        assert await _balance(client, alice) == 100000
        assert await _balance(client, bob) == 100000

        # Once funded, the same request can still be approved
        carol = await member_factory("carol")
        await client.post(
            "/transfers", headers=carol.headers, json={"to": alice.username, "amount_cents": 50_000}
        )
        retry = await client.post(
            f"/payment-requests/{created['id']}/approve", headers=alice.headers
        )
        assert retry.status_code == 200

    async def test_unknown_request(self, client, member_factory):
        alice = await member_factory("alice")
        response = await client.post("/payment-requests/999/approve", headers=alice.headers)
        assert response.status_code == 404


class TestRejectAndCancel:
    """Tests for reject (by the target) and cancel (by the requester)."""

    async def test_reject(self, client, member_factory):
        alice = await member_factory("alice")
        bob = await member_factory("bob")
        created = await _request(client, bob, alice)

        response = await client.post(
            f"/payment-requests/{created['id']}/reject", headers=alice.headers
        )
        assert response.status_code == 200
        assert response.json()["status"] == "rejected"
        assert await _balance(client, alice) == 100000

    async def test_cancel(self, client, member_factory):
        alice = await member_factory("alice")
        bob = await member_factory("bob")
        created = await _request(client, bob, alice)

        response = await client.post(
            f"/payment-requests/{created['id']}/cancel", headers=bob.headers
        )
        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"

    @pytest.mark.parametrize("first_action", ["reject", "cancel"])
    async def test_terminal_states_are_final(self, client, member_factory, first_action):
        alice = await member_factory("alice")
        bob = await member_factory("bob")
        created = await _request(client, bob, alice)
        actor = {"reject": alice, "cancel": bob}

        first = await client.post(
            f"/payment-requests/{created['id']}/{first_action}", headers=actor[first_action].headers
        )
        assert first.status_code == 200

        approve = await client.post(
            f"/payment-requests/{created['id']}/approve", headers=alice.headers
        )
        assert approve.status_code == 409
        for action in ("reject", "cancel"):
            again = await client.post(
                f"/payment-requests/{created['id']}/{action}", headers=actor[action].headers
            )
            assert again.status_code == 409
        assert await _balance(client, alice) == 100000


class TestConcurrentApproval:
    """
    Exactly-once approval.

    Two sessions both see the request as pending. The first approval
    claims it; the second's conditional update matches no row and it
    reports AlreadyProcessedError instead of paying twice.
    """

    async def test_stale_second_approval_loses(self, session_factory, ledger, reserve):
        async with session_factory() as setup:
            alice, _ = await auth_service.signup(setup, ledger, "alice", "a@example.com", "SecurePass123!")
            bob, _ = await auth_service.signup(setup, ledger, "bob", "b@example.com", "SecurePass123!")
            request = await ledger.create_payment_request(setup, bob.id, alice.username, 5000, "lunch")
            alice_id, bob_id, request_id = alice.id, bob.id, request.id

        async with session_factory() as first, session_factory() as second:
            # Both sessions observe the request while it is still pending
            seen_first = await ledger.get_payment_request(first, request_id)
            seen_second = await ledger.get_payment_request(second, request_id)
            assert seen_first.status == seen_second.status == PaymentRequestStatus.PENDING

            await ledger.approve_payment_request(first, request_id, alice_id)
            with pytest.raises(AlreadyProcessedError):
                await ledger.approve_payment_request(second, request_id, alice_id)

        async with session_factory() as check:
            assert await ledger.get_balance(check, alice_id) == 95_000
            assert await ledger.get_balance(check, bob_id) == 105_000
            assert len(await ledger.list_transactions(check, alice_id)) == 2

    async def test_reject_after_failed_approval(self, session_factory, ledger, reserve):
        """After an insufficient-funds failure, a reject still wins cleanly."""
        async with session_factory() as db:
            alice, _ = await auth_service.signup(db, ledger, "alice", "a@example.com", "SecurePass123!")
            bob, _ = await auth_service.signup(db, ledger, "bob", "b@example.com", "SecurePass123!")
            request = await ledger.create_payment_request(db, bob.id, alice.username, 500_000, "boat")
            alice_id, request_id = alice.id, request.id

        async with session_factory() as db:
            with pytest.raises(InsufficientFundsError):
                await ledger.approve_payment_request(db, request_id, alice_id)

        async with session_factory() as db:
            rejected = await ledger.reject_payment_request(db, request_id, alice_id)
            assert rejected.status == PaymentRequestStatus.REJECTED
            with pytest.raises(AlreadyProcessedError):
                await ledger.approve_payment_request(db, request_id, alice_id)
