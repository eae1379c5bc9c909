"""Tests for the debt lifecycle: create, update, close, delete, list and summary."""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import func, update
from sqlmodel import Session, select

from debt_tracker.core.errors import (
    DebtClosedError,
    ForbiddenError,
    ImmutableFieldError,
    InvalidAmortizationError,
    NotFoundError,
    ValidationError,
    WriteConflictError,
)
from debt_tracker.models.debt import Debt, Installment
from debt_tracker.models.enums import InstallmentStatus, PaymentMethod, TransactionType
from debt_tracker.models.transaction import Transaction
from debt_tracker.schemas.debt import DebtCreate, DebtUpdate
from debt_tracker.services import debts as debt_service
from debt_tracker.services.debts import (
    close_debt,
    create_debt,
    debt_summary,
    delete_debt,
    get_debt,
    list_debts,
    update_debt,
)
from debt_tracker.services.payments import make_payment


def _entries(session, debt_id, type=None):
    query = select(Transaction).where(Transaction.debt_id == debt_id)
    if type:
        query = query.where(Transaction.type == type)
    return session.exec(query.order_by(Transaction.id)).all()


def _count(session, model, debt_id):
    return session.exec(select(func.count()).select_from(model).where(model.debt_id == debt_id)).one()


class TestCreateDebt:

    def test_scenario_with_remainder_in_last_installment(self, session, owner, debt):
        assert debt.id is not None
        assert debt.user_id == owner.id
        assert debt.is_open is True
        assert debt.total_paid_amount == Decimal("0")
        assert len(debt.payment_schedule) == 20
        assert [i.due_amount for i in debt.payment_schedule[:19]] == [Decimal("2000")] * 19
        assert debt.payment_schedule[-1].due_amount == Decimal("12000")
        assert debt.payment_schedule[0].due_date == date(2030, 1, 15)
        assert all(i.status == InstallmentStatus.upcoming for i in debt.payment_schedule)

    def test_loan_entry_is_recorded(self, session, debt):
        entries = _entries(session, debt.id)

        assert len(entries) == 1
        loan = entries[0]
        assert loan.type == TransactionType.loan
        assert loan.amount == Decimal("50000")
        assert loan.description == "Desembolso inicial del préstamo de Banco de Bogotá"
        assert loan.bank_reference.startswith("LOAN-")
        assert loan.transaction_date.date() == date(2030, 1, 15)

    def test_bank_name_is_trimmed(self, session, owner, scenario_a):
        debt = create_debt(session, owner.id, scenario_a.model_copy(update={"bank_name": "  Davivienda "}))

        assert debt.bank_name == "Davivienda"

    @pytest.mark.parametrize(
        "changes",
        [
            {"bank_name": None},
            {"bank_name": "   "},
            {"total_loan_amount": None},
            {"total_loan_amount": Decimal("0")},
            {"monthly_amortization": Decimal("-10")},
            {"monthly_amortization": Decimal("2000.001")},
            {"months_to_pay": 0},
            {"first_payment_month_offset": 12},
            {"due_date": None},
        ],
    )
    def test_invalid_input(self, session, owner, scenario_a, changes):
        with pytest.raises(ValidationError):
            create_debt(session, owner.id, scenario_a.model_copy(update=changes))

        assert session.exec(select(func.count()).select_from(Debt)).one() == 0

    def test_amortization_too_high(self, session, owner, scenario_a):
        with pytest.raises(InvalidAmortizationError):
            create_debt(session, owner.id, scenario_a.model_copy(update={"monthly_amortization": Decimal("2700")}))

        assert session.exec(select(func.count()).select_from(Transaction)).one() == 0


class TestUpdateDebt:

    def test_months_change_regenerates_schedule(self, session, owner, debt):
        updated = update_debt(session, debt.id, owner.id, DebtUpdate(months_to_pay=25))

        assert updated.months_to_pay == 25
        assert len(updated.payment_schedule) == 25
        assert updated.payment_schedule[-1].due_amount == Decimal("2000")
        assert _count(session, Installment, debt.id) == 25

    def test_amortization_change_keeps_paid_installments(self, session, owner, debt):
        make_payment(session, debt.id, owner.id, 0, Decimal("2000"), "REF1")
        paid_id = debt.payment_schedule[0].id

        updated = update_debt(session, debt.id, owner.id, DebtUpdate(monthly_amortization=Decimal("2500")))

        schedule = updated.payment_schedule
        assert len(schedule) == 20
        assert schedule[0].id == paid_id
        assert schedule[0].status == InstallmentStatus.paid
        assert schedule[0].bank_reference == "REF1"
        assert schedule[0].due_amount == Decimal("2000")
        assert [i.due_amount for i in schedule[1:19]] == [Decimal("2500")] * 18
        # 48000 pendientes: 18 x 2500 = 45000, la última absorbe 3000
        assert schedule[-1].due_amount == Decimal("3000")
        assert updated.total_paid_amount == Decimal("2000")

        entry = _entries(session, debt.id, TransactionType.update)[0]
        assert entry.amount == Decimal("2500")
        assert entry.payment_method == PaymentMethod.system
        assert "2000" in entry.description and "2500" in entry.description

    @pytest.mark.parametrize(
        "changes",
        [
            {"total_loan_amount": Decimal("60000")},
            {"months_to_pay": 24},
            {"first_payment_month_offset": 1},
            {"loan_start_date": date(2030, 2, 1)},
        ],
    )
    def test_locked_fields_after_payment(self, session, owner, debt, changes):
        make_payment(session, debt.id, owner.id, 0, Decimal("2000"), "REF1")

        with pytest.raises(ImmutableFieldError):
            update_debt(session, debt.id, owner.id, DebtUpdate(**changes))

        assert _entries(session, debt.id, TransactionType.update) == []

    def test_invalid_amortization_leaves_debt_untouched(self, session, owner, debt):
        with pytest.raises(InvalidAmortizationError):
            update_debt(session, debt.id, owner.id, DebtUpdate(monthly_amortization=Decimal("3000")))

        session.expire_all()
        debt = session.get(Debt, debt.id)
        assert debt.monthly_amortization == Decimal("2000")
        assert debt.payment_schedule[-1].due_amount == Decimal("12000")
        assert _entries(session, debt.id, TransactionType.update) == []

    def test_bank_name_change_keeps_schedule(self, session, owner, debt):
        ids = [i.id for i in debt.payment_schedule]

        updated = update_debt(session, debt.id, owner.id, DebtUpdate(bank_name="Banco Popular"))

        assert updated.bank_name == "Banco Popular"
        assert [i.id for i in updated.payment_schedule] == ids
        entry = _entries(session, debt.id, TransactionType.update)[0]
        assert entry.amount == Decimal("2000")
        assert entry.description == "Actualización de los datos de la deuda"

    def test_empty_update(self, session, owner, debt):
        with pytest.raises(ValidationError):
            update_debt(session, debt.id, owner.id, DebtUpdate())

    def test_null_value(self, session, owner, debt):
        with pytest.raises(ValidationError):
            update_debt(session, debt.id, owner.id, DebtUpdate(bank_name=None))

    def test_other_owner(self, session, other_user, debt):
        with pytest.raises(ForbiddenError):
            update_debt(session, debt.id, other_user.id, DebtUpdate(bank_name="Ajeno"))


class TestCloseDebt:

    @pytest.mark.parametrize("remarks", [None, "", "   "])
    def test_remarks_required(self, session, owner, debt, remarks):
        with pytest.raises(ValidationError):
            close_debt(session, debt.id, owner.id, remarks)

        assert session.get(Debt, debt.id).is_open is True

    def test_close_records_remaining_balance(self, session, owner, debt):
        make_payment(session, debt.id, owner.id, 0, Decimal("2000"), "REF1")

        closed = close_debt(session, debt.id, owner.id, "settled early")

        assert closed.is_open is False
        entry = _entries(session, debt.id, TransactionType.close)[0]
        assert entry.amount == Decimal("48000")
        assert entry.description == "settled early"
        assert entry.payment_method == PaymentMethod.system
        assert entry.bank_reference.startswith("CLOSE-")

    def test_closing_twice(self, session, owner, debt):
        close_debt(session, debt.id, owner.id, "settled early")

        with pytest.raises(DebtClosedError):
            close_debt(session, debt.id, owner.id, "otra vez")

        assert len(_entries(session, debt.id, TransactionType.close)) == 1

    def test_closed_debt_is_not_overdue(self, session, owner):
        debt = create_debt(
            session,
            owner.id,
            DebtCreate(
                bank_name="Banco Viejo",
                total_loan_amount=Decimal("900"),
                loan_start_date=date(2020, 1, 1),
                months_to_pay=3,
                monthly_amortization=Decimal("300"),
                due_date=date(2020, 4, 1),
                first_payment_month_offset=0,
            ),
        )
        assert debt.is_overdue

        closed = close_debt(session, debt.id, owner.id, "Condonada")

        assert closed.is_overdue is False


class TestDeleteDebt:

    def test_cascade_removes_schedule_and_ledger(self, session, owner, debt):
        make_payment(session, debt.id, owner.id, 0, Decimal("2000"), "REF1")
        debt_id = debt.id

        delete_debt(session, debt_id, owner.id)

        assert session.get(Debt, debt_id) is None
        assert _count(session, Installment, debt_id) == 0
        assert _count(session, Transaction, debt_id) == 0

    def test_paid_debt_deletion_logs_warning(self, session, owner, debt, caplog):
        make_payment(session, debt.id, owner.id, 0, Decimal("2000"), "REF1")

        with caplog.at_level("WARNING", logger="debt_tracker"):
            delete_debt(session, debt.id, owner.id)

        assert any(r.levelname == "WARNING" and r.action == "debt.delete" for r in caplog.records)

    def test_missing_and_foreign(self, session, owner, other_user, debt):
        with pytest.raises(NotFoundError):
            delete_debt(session, 12345, owner.id)
        with pytest.raises(ForbiddenError):
            delete_debt(session, debt.id, other_user.id)

        assert session.get(Debt, debt.id) is not None


class TestQueries:

    @pytest.fixture
    def debts(self, session, owner, other_user, scenario_a):
        created = [
            create_debt(session, owner.id, scenario_a.model_copy(update={"bank_name": name, "total_loan_amount": amount}))
            for name, amount in [
                ("Bancolombia", Decimal("50000")),
                ("Banco de Bogotá", Decimal("60000")),
                ("Davivienda", Decimal("70000")),
            ]
        ]
        close_debt(session, created[2].id, owner.id, "Pagada con prima")
        create_debt(session, other_user.id, scenario_a)
        return created

    def test_list_only_owner_debts_with_stats(self, session, owner, debts):
        result = list_debts(session, owner.id)

        assert result["total"] == 3
        assert len(result["items"]) == 3
        assert result["stats"]["open"] == {"count": 2, "total_amount": 110000.0}
        assert result["stats"]["closed"] == {"count": 1, "total_amount": 70000.0}

    def test_filters(self, session, owner, debts):
        assert [d.bank_name for d in list_debts(session, owner.id, status="closed")["items"]] == ["Davivienda"]
        assert list_debts(session, owner.id, status="open")["total"] == 2
        assert list_debts(session, owner.id, bank_name="bogot")["total"] == 1

    def test_sort_and_pagination(self, session, owner, debts):
        first = list_debts(session, owner.id, sort_by="total_loan_amount", sort_order="asc", page_size=2)
        second = list_debts(session, owner.id, sort_by="total_loan_amount", sort_order="asc", page=2, page_size=2)

        assert [d.bank_name for d in first["items"]] == ["Bancolombia", "Banco de Bogotá"]
        assert [d.bank_name for d in second["items"]] == ["Davivienda"]
        assert first["total"] == second["total"] == 3

    @pytest.mark.parametrize(
        "kwargs",
        [{"status": "pending"}, {"sort_by": "user_id"}, {"sort_order": "up"}],
    )
    def test_invalid_list_arguments(self, session, owner, kwargs):
        with pytest.raises(ValidationError):
            list_debts(session, owner.id, **kwargs)

    def test_get_debt_checks_owner(self, session, owner, other_user, debt):
        assert get_debt(session, debt.id, owner.id).id == debt.id
        with pytest.raises(ForbiddenError):
            get_debt(session, debt.id, other_user.id)
        with pytest.raises(NotFoundError):
            get_debt(session, 999, owner.id)

    def test_summary(self, session, owner, debt):
        make_payment(session, debt.id, owner.id, 0, Decimal("2000"), "REF1")
        make_payment(session, debt.id, owner.id, 1, Decimal("2000"), "REF2")

        summary = debt_summary(session, debt.id, owner.id)

        analytics = summary["analytics"]
        assert analytics["total_payments"] == 20
        assert analytics["paid_payments"] == 2
        assert analytics["upcoming_payments"] == 18
        assert analytics["overdue_payments"] == 0
        assert analytics["completion_percentage"] == 10
        assert analytics["remaining_balance"] == 46000.0
        assert analytics["next_payment_due"] == date(2030, 3, 15)

        groups = {g["type"]: g for g in summary["transactions"]}
        assert groups["loan"]["count"] == 1
        assert groups["payment"]["count"] == 2
        assert groups["payment"]["total_amount"] == 4000.0
        assert [t.payment_schedule_index for t in groups["payment"]["transactions"]] == [0, 1]


class TestConcurrentPayments:
    """Otra sesión paga mientras esta sesión tiene la deuda en memoria."""

    def _pay_elsewhere(self, engine, debt_id, user_id, index, amount, reference):
        with Session(engine) as other:
            make_payment(other, debt_id, user_id, index, Decimal(amount), reference)

    def test_update_keeps_installment_paid_meanwhile(self, session, engine, owner, debt):
        assert debt.payment_schedule[0].status == InstallmentStatus.upcoming
        self._pay_elsewhere(engine, debt.id, owner.id, 0, "2000", "REF1")

        updated = update_debt(session, debt.id, owner.id, DebtUpdate(monthly_amortization=Decimal("1000")))

        paid = [i for i in updated.payment_schedule if i.status == InstallmentStatus.paid]
        assert [(i.position, i.bank_reference) for i in paid] == [(0, "REF1")]
        assert sum((i.due_amount for i in paid), Decimal("0")) == updated.total_paid_amount == Decimal("2000")
        assert sum((i.due_amount for i in updated.payment_schedule), Decimal("0")) == Decimal("50000")
        # 48000 pendientes: 18 x 1000 = 18000, la última absorbe 30000
        assert updated.payment_schedule[-1].due_amount == Decimal("30000")

    def test_update_sees_lock_from_payment_made_meanwhile(self, session, engine, owner, debt):
        assert debt.total_paid_amount == Decimal("0")
        self._pay_elsewhere(engine, debt.id, owner.id, 0, "2000", "REF1")

        with pytest.raises(ImmutableFieldError):
            update_debt(session, debt.id, owner.id, DebtUpdate(months_to_pay=24))

        session.expire_all()
        assert session.get(Debt, debt.id).months_to_pay == 20
        assert _entries(session, debt.id, TransactionType.update) == []

    def test_update_aborts_when_total_changes_inside_unit(self, session, owner, debt, monkeypatch):
        original = debt_service._regenerated_schedule
        calls = []

        def regenerate_then_interfere(debt, changes):
            schedule = original(debt, changes)
            calls.append(debt.id)
            if len(calls) == 2:
                # Otro escritor suma un pago entre la relectura y el UPDATE
                session.execute(
                    update(Debt)
                    .where(Debt.id == debt.id)
                    .values(total_paid_amount=Decimal("2000"))
                    .execution_options(synchronize_session=False)
                )
            return schedule

        monkeypatch.setattr(debt_service, "_regenerated_schedule", regenerate_then_interfere)

        with pytest.raises(WriteConflictError):
            update_debt(session, debt.id, owner.id, DebtUpdate(monthly_amortization=Decimal("2500")))

        session.expire_all()
        debt = session.get(Debt, debt.id)
        assert debt.total_paid_amount == Decimal("0")
        assert debt.monthly_amortization == Decimal("2000")
        assert _count(session, Installment, debt.id) == 20

    def test_close_uses_committed_remaining_balance(self, session, engine, owner, debt):
        assert debt.remaining_balance == Decimal("50000")
        self._pay_elsewhere(engine, debt.id, owner.id, 0, "2000", "REF1")

        closed = close_debt(session, debt.id, owner.id, "settled early")

        assert closed.is_open is False
        entry = _entries(session, debt.id, TransactionType.close)[0]
        assert entry.amount == closed.remaining_balance == Decimal("48000")

    def test_close_after_final_payment_elsewhere(self, session, engine, owner, scenario_a):
        debt = create_debt(
            session,
            owner.id,
            scenario_a.model_copy(
                update={"total_loan_amount": Decimal("3000"), "months_to_pay": 2, "monthly_amortization": Decimal("1000")}
            ),
        )
        assert debt.is_open is True
        self._pay_elsewhere(engine, debt.id, owner.id, 0, "1000", "A")
        self._pay_elsewhere(engine, debt.id, owner.id, 1, "2000", "B")

        with pytest.raises(DebtClosedError):
            close_debt(session, debt.id, owner.id, "settled early")

        assert _entries(session, debt.id, TransactionType.close) == []
