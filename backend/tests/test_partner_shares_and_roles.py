from decimal import Decimal

import pytest

from lexledger.services.capabilities import Capabilities
from lexledger.services.errors import PartnerShareError
from lexledger.services.money import Money
from lexledger.services.partner_share_service import PartnerShare, calculate_partner_shares, share_amount
from lexledger.services.workflow import StepRunner, StepStatus


# ========================================
# PARTNER SHARES
# ========================================

def test_shares_are_independent_percentages():
    split = calculate_partner_shares(Money("1000", "INR"), [
        PartnerShare(user_id=1, percentage=Decimal("60")),
        PartnerShare(user_id=2, percentage=Decimal("50")),
    ])

    assert [row.amount for row in split.rows] == [Money("600", "INR"), Money("500", "INR")]
    assert split.total_percentage == Decimal("110")
    assert split.total_amount == Money("1100", "INR")
    assert split.is_complete is False


def test_complete_allocation():
    split = calculate_partner_shares(Money("999", "USD"), [
        PartnerShare(user_id=1, percentage=Decimal("33.5")),
        PartnerShare(user_id=2, percentage=Decimal("66.5")),
    ])
    assert split.is_complete
    assert split.total_amount == Money("999", "USD")


def test_no_shares():
    split = calculate_partner_shares(Money("1000", "INR"), [])
    assert split.rows == []
    assert split.total_amount.is_zero


def test_share_out_of_range_is_rejected():
    with pytest.raises(PartnerShareError):
        calculate_partner_shares(Money("1000", "INR"), [PartnerShare(user_id=1, percentage=Decimal("120"))])


def test_share_amount():
    assert share_amount(Money("250", "EUR"), "10") == Money("25", "EUR")


# ========================================
# CAPABILITIES
# ========================================

def test_role_capabilities():
    assert Capabilities.for_role("Partner").can_approve_timesheets()
    assert Capabilities.for_role("super admin").can_approve_timesheets()
    assert not Capabilities.for_role("associate").can_approve_timesheets()
    assert Capabilities.for_role("accountant").can_manage_invoices()
    assert not Capabilities.for_role("accountant").can_approve_timesheets()
    assert not Capabilities.for_role(None).can_manage_invoices()


# ========================================
# MULTI-STEP SAVES
# ========================================

async def test_failed_step_skips_dependents_but_not_others():
    saved = []

    async def save_client(outputs):
        saved.append("client")
        return {"id": 7}

    async def bad_contact(outputs):
        raise ValueError("duplicate email")

    async def good_contact(outputs):
        saved.append(("contact", outputs["client"]["id"]))
        return "ok"

    async def follow_up(outputs):
        return "never"

    report = await (
        StepRunner()
        .add("client", save_client)
        .add("contact_1", bad_contact, depends_on=("client",))
        .add("contact_2", good_contact, depends_on=("client",))
        .add("notify", follow_up, depends_on=("contact_1",))
        .run()
    )

    statuses = {r.name: r.status for r in report.results}
    assert statuses == {
        "client": StepStatus.SUCCEEDED,
        "contact_1": StepStatus.FAILED,
        "contact_2": StepStatus.SUCCEEDED,
        "notify": StepStatus.SKIPPED,
    }
    assert saved == ["client", ("contact", 7)]
    assert not report.succeeded
    assert [f.error for f in report.failures] == ["duplicate email"]
    assert report.result_of("client") == {"id": 7}


async def test_all_steps_succeed():
    async def step(outputs):
        return len(outputs)

    report = await StepRunner().add("a", step).add("b", step).run()
    assert report.succeeded
    assert report.result_of("b") == 1
