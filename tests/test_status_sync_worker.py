"""
Tests for the stale deposit sync worker.
"""
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from pawapay_marketplace.api.dependencies import Services
from pawapay_marketplace.core.exceptions import GatewayError
from pawapay_marketplace.workers import sync_stale_deposits


def _later(hours: int = 1) -> datetime:
    return datetime.now(timezone.utc) + timedelta(hours=hours)


async def _run(services: Services, now: Any = None) -> dict:
    return await sync_stale_deposits(
        services.payments,
        services.client,
        services.payment_reconciler,
        stale_minutes=30,
        now=now or _later(),
    )


class TestStatusSyncWorker:
    """Test suite for sync_stale_deposits."""

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_recovers_lost_callback(
        self, services: Services, seed: Any, fake_gateway: Any
    ) -> None:
        """Test a completed deposit whose callback never arrived."""
        await seed.order("ord_lost")
        await seed.pending_payment("dep-lost", "ord_lost")
        fake_gateway.deposits["dep-lost"] = {"depositId": "dep-lost", "status": "COMPLETED"}

        counts = await _run(services)

        assert counts == {"checked": 1, "applied": 1, "unchanged": 0, "not_found": 0, "failed": 0}
        payment = await services.payments.get_by_deposit_id("dep-lost")
        assert payment.internal_status == "completed"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_recent_deposits_are_left_alone(
        self, services: Services, seed: Any, fake_gateway: Any
    ) -> None:
        await seed.pending_payment("dep-new", "ord_new")

        counts = await _run(services, now=datetime.now(timezone.utc))

        assert counts["checked"] == 0
        assert fake_gateway.calls("GET", "/v2/deposits/dep-new") == []

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_terminal_deposits_are_skipped(self, services: Services, seed: Any) -> None:
        await seed.pending_payment("dep-done", "ord_done", internal_status="completed")
        await seed.pending_payment("dep-dead", "ord_dead", internal_status="failed")

        counts = await _run(services)

        assert counts["checked"] == 0

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_unknown_upstream(self, services: Services, seed: Any) -> None:
        await seed.pending_payment("dep-ghost", "ord_ghost")

        counts = await _run(services)

        assert counts["not_found"] == 1
        payment = await services.payments.get_by_deposit_id("dep-ghost")
        assert payment.internal_status == "pending"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_still_processing_is_unchanged(
        self, services: Services, seed: Any, fake_gateway: Any
    ) -> None:
        await seed.pending_payment(
            "dep-slow", "ord_slow", internal_status="in_reconciliation"
        )
        fake_gateway.deposits["dep-slow"] = {"depositId": "dep-slow", "status": "PROCESSING"}

        counts = await _run(services)

        assert counts["unchanged"] == 1
        assert counts["applied"] == 0

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_failure_is_isolated(
        self, services: Services, seed: Any, fake_gateway: Any, mocker: Any
    ) -> None:
        """Test one gateway error does not stop the run."""
        await seed.order("ord_ok")
        await seed.pending_payment("dep-broken", "ord_broken")
        await seed.pending_payment("dep-ok", "ord_ok")
        fake_gateway.deposits["dep-ok"] = {"depositId": "dep-ok", "status": "FAILED"}

        real_check = services.client.check_deposit_status

        async def flaky(deposit_id: str) -> Any:
            if deposit_id == "dep-broken":
                raise GatewayError("timeout")
            return await real_check(deposit_id)

        mocker.patch.object(services.client, "check_deposit_status", side_effect=flaky)

        counts = await _run(services)

        assert counts["checked"] == 2
        assert counts["failed"] == 1
        assert counts["applied"] == 1
        assert (await services.payments.get_by_deposit_id("dep-ok")).internal_status == "failed"
