"""Expense writes keep monthly report totals and membership in step."""

from __future__ import annotations

import random
from datetime import date

import pytest

from conftest import ADMIN, ALICE, BOB, TODAY
from tripcost.core.errors import AuthorizationError, NotFoundError, ValidationError
from tripcost.models.constants import ExpenseStatus, ReportStatus
from tripcost.models.expense import ExpenseIn, ExpenseUpdateIn
from tripcost.models.report import StatusChangeIn
from tripcost.services.periods import period_of


def _expense(category_id, distance, rate, day, **extra):
    return ExpenseIn(
        category_id=category_id, distance=distance, rate=rate, journey_date=day, **extra
    )


def _report(db, owner, month, year):
    return db.find_report(owner, month, year)


def test_create_opens_draft_report(db, coordinator, category_id):
    result = coordinator.create(ALICE, _expense(category_id, 100, 0.5, date(2024, 1, 10)))

    assert result.expense.total_cost == 50.0
    assert result.expense.status is ExpenseStatus.PENDING
    assert result.budget_alerts is None
    report = _report(db, "alice", 1, 2024)
    assert report["status"] == ReportStatus.DRAFT.value
    assert report["total_distance"] == 100.0
    assert report["total_expense_amount"] == 50.0
    assert report["pending_amount"] == 50.0
    assert db.report_expense_ids(report["id"]) == [result.expense.id]


def test_total_cost_is_derived_from_distance_and_rate(coordinator, category_id):
    result = coordinator.create(
        ALICE, _expense(category_id, 12.345, 0.33, date(2024, 1, 3), total_cost=4.07)
    )
    assert result.expense.total_cost == 4.07


def test_sub_precision_distance_does_not_drift_report_totals(
    db, coordinator, workflow, category_id
):
    ids = [
        coordinator.create(ALICE, _expense(category_id, 1.0004, 1, date(2024, 5, 2))).expense.id
        for _ in range(20)
    ]
    assert {db.get_expense(expense_id)["distance"] for expense_id in ids} == {1.0}

    report = _report(db, "alice", 5, 2024)
    check = workflow.check_consistency(ADMIN, report["id"])
    assert check.consistent
    assert check.stored_distance == check.computed_distance == 20.0

    coordinator.update(ALICE, ids[0], ExpenseUpdateIn(distance=2.0004))
    assert db.get_expense(ids[0])["distance"] == 2.0
    assert _report(db, "alice", 5, 2024)["total_distance"] == 21.0


def test_expenses_of_one_month_share_a_report(db, coordinator, category_id):
    first = coordinator.create(ALICE, _expense(category_id, 10, 1, date(2024, 3, 1)))
    second = coordinator.create(ALICE, _expense(category_id, 20, 2, date(2024, 3, 31)))
    other_owner = coordinator.create(BOB, _expense(category_id, 5, 1, date(2024, 3, 2)))

    report = _report(db, "alice", 3, 2024)
    assert report["total_distance"] == 30.0
    assert report["total_expense_amount"] == 50.0
    assert db.report_expense_ids(report["id"]) == [first.expense.id, second.expense.id]
    assert _report(db, "bob", 3, 2024)["total_expense_amount"] == 5.0
    assert other_owner.expense.owner_id == "bob"


def test_update_within_month_applies_delta(db, coordinator, category_id):
    created = coordinator.create(ALICE, _expense(category_id, 100, 1, date(2024, 1, 10)))
    coordinator.create(ALICE, _expense(category_id, 10, 1, date(2024, 1, 11)))

    updated = coordinator.update(
        ALICE, created.expense.id, ExpenseUpdateIn(distance=200, rate=0.5)
    )

    assert updated.expense.total_cost == 100.0
    report = _report(db, "alice", 1, 2024)
    assert report["total_distance"] == 210.0
    assert report["total_expense_amount"] == 110.0


def test_move_to_another_month_deletes_emptied_report(db, coordinator, category_id):
    created = coordinator.create(ALICE, _expense(category_id, 100, 1, date(2024, 1, 10)))

    coordinator.update(
        ALICE, created.expense.id, ExpenseUpdateIn(journey_date=date(2024, 2, 5))
    )

    assert _report(db, "alice", 1, 2024) is None
    feb = _report(db, "alice", 2, 2024)
    assert feb["total_expense_amount"] == 100.0
    assert db.report_expense_ids(feb["id"]) == [created.expense.id]


def test_move_with_new_amount_uses_old_and_new_contributions(db, coordinator, category_id):
    moving = coordinator.create(ALICE, _expense(category_id, 100, 1, date(2024, 1, 10)))
    staying = coordinator.create(ALICE, _expense(category_id, 40, 1, date(2024, 1, 12)))
    coordinator.create(ALICE, _expense(category_id, 5, 1, date(2024, 2, 1)))

    coordinator.update(
        ALICE,
        moving.expense.id,
        ExpenseUpdateIn(journey_date=date(2024, 2, 20), distance=30),
    )

    jan = _report(db, "alice", 1, 2024)
    feb = _report(db, "alice", 2, 2024)
    assert jan["total_expense_amount"] == 40.0
    assert db.report_expense_ids(jan["id"]) == [staying.expense.id]
    assert feb["total_distance"] == 35.0
    assert feb["total_expense_amount"] == 35.0


def test_delete_last_expense_deletes_report(db, coordinator, category_id):
    created = coordinator.create(ALICE, _expense(category_id, 100, 1, date(2024, 1, 10)))
    report_id = _report(db, "alice", 1, 2024)["id"]

    coordinator.delete(ALICE, created.expense.id)

    assert db.get_expense(created.expense.id) is None
    assert db.get_report(report_id) is None


def test_delete_subtracts_from_report(db, coordinator, category_id):
    keep = coordinator.create(ALICE, _expense(category_id, 10, 2, date(2024, 5, 1)))
    drop = coordinator.create(ALICE, _expense(category_id, 7.5, 2, date(2024, 5, 2)))

    coordinator.delete(ALICE, drop.expense.id)

    report = _report(db, "alice", 5, 2024)
    assert report["total_distance"] == 10.0
    assert report["total_expense_amount"] == 20.0
    assert db.report_expense_ids(report["id"]) == [keep.expense.id]


def test_new_expense_reverts_submitted_report(db, coordinator, workflow, category_id):
    coordinator.create(ALICE, _expense(category_id, 10, 1, date(2024, 1, 10)))
    report_id = _report(db, "alice", 1, 2024)["id"]
    workflow.submit(ALICE, report_id)

    coordinator.create(ALICE, _expense(category_id, 5, 1, date(2024, 1, 11)))

    report = db.get_report(report_id)
    assert report["status"] == ReportStatus.DRAFT.value
    assert report["comments"] == (
        f"Report reverted to draft due to new expense added on {TODAY.isoformat()}"
    )


def test_demotion_notes_are_appended(db, coordinator, workflow, category_id):
    created = coordinator.create(ALICE, _expense(category_id, 10, 1, date(2024, 1, 10)))
    report_id = _report(db, "alice", 1, 2024)["id"]
    workflow.submit(ALICE, report_id)
    coordinator.update(ALICE, created.expense.id, ExpenseUpdateIn(distance=11))
    workflow.submit(ALICE, report_id)
    coordinator.update(ALICE, created.expense.id, ExpenseUpdateIn(distance=12))

    comments = db.get_report(report_id)["comments"].split("\n")
    assert len(comments) == 2
    assert all(line.startswith("Report reverted to draft due to expense update") for line in comments)


def test_approved_report_with_reimbursement_is_flagged(db, coordinator, workflow, category_id):
    created = coordinator.create(ALICE, _expense(category_id, 100, 1, date(2024, 1, 10)))
    report_id = _report(db, "alice", 1, 2024)["id"]
    workflow.submit(ALICE, report_id)
    workflow.approve(ADMIN, report_id, reimbursed_amount=80)

    coordinator.update(ALICE, created.expense.id, ExpenseUpdateIn(distance=150))

    report = db.get_report(report_id)
    assert report["status"] == ReportStatus.DRAFT.value
    assert report["reimbursement_review_required"] == 1
    assert report["reimbursed_amount"] == 80.0
    assert report["total_expense_amount"] == 150.0
    assert report["pending_amount"] == 70.0


def test_notes_only_update_keeps_status(db, coordinator, workflow, category_id):
    created = coordinator.create(ALICE, _expense(category_id, 10, 1, date(2024, 1, 10)))
    report_id = _report(db, "alice", 1, 2024)["id"]
    workflow.submit(ALICE, report_id)
    version = db.get_report(report_id)["version"]

    coordinator.update(ALICE, created.expense.id, ExpenseUpdateIn(notes="client visit"))

    report = db.get_report(report_id)
    assert report["status"] == ReportStatus.SUBMITTED.value
    assert report["version"] == version


def test_rejected_report_is_not_demoted(db, coordinator, workflow, category_id):
    created = coordinator.create(ALICE, _expense(category_id, 10, 1, date(2024, 1, 10)))
    report_id = _report(db, "alice", 1, 2024)["id"]
    workflow.submit(ALICE, report_id)
    workflow.reject(ADMIN, report_id, "missing receipts")

    coordinator.update(ALICE, created.expense.id, ExpenseUpdateIn(distance=20))

    report = db.get_report(report_id)
    assert report["status"] == ReportStatus.REJECTED.value
    assert report["total_expense_amount"] == 20.0


def test_other_user_cannot_touch_expense(coordinator, category_id):
    created = coordinator.create(ALICE, _expense(category_id, 10, 1, date(2024, 1, 10)))

    with pytest.raises(AuthorizationError):
        coordinator.update(BOB, created.expense.id, ExpenseUpdateIn(distance=20))
    with pytest.raises(AuthorizationError):
        coordinator.delete(BOB, created.expense.id)

    coordinator.update(ADMIN, created.expense.id, ExpenseUpdateIn(notes="checked"))


def test_only_admin_changes_expense_status(coordinator, category_id):
    created = coordinator.create(ALICE, _expense(category_id, 10, 1, date(2024, 1, 10)))

    with pytest.raises(AuthorizationError):
        coordinator.update(
            ALICE, created.expense.id, ExpenseUpdateIn(status=ExpenseStatus.APPROVED)
        )
    result = coordinator.update(
        ADMIN, created.expense.id, ExpenseUpdateIn(status=ExpenseStatus.APPROVED)
    )
    assert result.expense.status is ExpenseStatus.APPROVED
    assert result.expense.updated_by == ADMIN.user_id


def test_future_journey_date_is_rejected(db, coordinator, category_id):
    with pytest.raises(ValidationError):
        coordinator.create(ALICE, _expense(category_id, 10, 1, date(2025, 1, 2)))
    assert db.list_expenses() == []


def test_null_required_field_is_rejected(coordinator, category_id):
    created = coordinator.create(ALICE, _expense(category_id, 10, 1, date(2024, 1, 10)))
    with pytest.raises(ValidationError):
        coordinator.update(ALICE, created.expense.id, ExpenseUpdateIn(distance=None))


def test_unknown_category_rolls_back(db, coordinator, category_id):
    with pytest.raises(NotFoundError):
        coordinator.create(ALICE, _expense(category_id + 99, 10, 1, date(2024, 1, 10)))
    assert db.list_expenses() == []
    assert db.list_reports() == []


def test_missing_expense(coordinator):
    with pytest.raises(NotFoundError):
        coordinator.delete(ALICE, 404)


def _assert_aggregates_consistent(db, workflow):
    expenses = db.list_expenses()
    for expense in expenses:
        report = db.report_for_expense(expense["id"])
        assert report is not None
        assert (report["month"], report["year"]) == period_of(
            date.fromisoformat(expense["journey_date"])
        )
        assert report["owner_id"] == expense["owner_id"]
    for report in db.list_reports():
        assert db.report_expense_ids(report["id"])
        assert workflow.check_consistency(ADMIN, report["id"]).consistent


def test_random_mutation_sequence_keeps_aggregates_consistent(
    db, coordinator, workflow, category_id
):
    rng = random.Random(20240117)
    owners = [ALICE, BOB]
    live = {}

    for _ in range(80):
        op = rng.choice(["create", "create", "update", "move", "delete", "submit"])
        day = date(2024, rng.randint(1, 4), rng.randint(1, 28))
        if op == "create" or not live:
            owner = rng.choice(owners)
            result = coordinator.create(
                owner,
                _expense(
                    category_id,
                    rng.choice([12.5, 40, 7.25, 133.333]),
                    rng.choice([0.3, 0.45, 1.1]),
                    day,
                ),
            )
            live[result.expense.id] = owner
        elif op == "update":
            expense_id = rng.choice(sorted(live))
            coordinator.update(
                live[expense_id],
                expense_id,
                ExpenseUpdateIn(distance=rng.choice([1.5, 22, 64.125])),
            )
        elif op == "move":
            expense_id = rng.choice(sorted(live))
            coordinator.update(live[expense_id], expense_id, ExpenseUpdateIn(journey_date=day))
        elif op == "delete":
            expense_id = rng.choice(sorted(live))
            coordinator.delete(live.pop(expense_id), expense_id)
        else:
            drafts = [r for r in db.list_reports() if r["status"] == ReportStatus.DRAFT.value]
            if drafts:
                report = rng.choice(drafts)
                owner = ALICE if report["owner_id"] == "alice" else BOB
                workflow.change_status(
                    owner, report["id"], StatusChangeIn(status=ReportStatus.SUBMITTED)
                )
        _assert_aggregates_consistent(db, workflow)
