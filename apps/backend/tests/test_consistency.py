from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

import pytest

from finapp import models
from finapp.errors import Conflict, NotFound, StoreFailure, ValidationError


RENT = {"description": "Rent", "amount": Decimal("1200.00"), "type": models.FlowType.EXPENSE}
PHONE = {"description": "Phone", "amount": Decimal("150.00"), "type": models.FlowType.EXPENSE}


@pytest.fixture
def series(service, user):
    """A template on Jan 15 with instances for Jan, Feb and Mar 2025."""
    template, first = service.create_recurring(user.id, RENT, date(2025, 1, 15))
    feb = service.ensure_materialized(user.id, 2, 2025)[0]
    mar = service.ensure_materialized(user.id, 3, 2025)[0]
    return template, [first, feb, mar]


@pytest.fixture
def parcels(service, user):
    return service.create_installments(user.id, PHONE, date(2025, 1, 31), 3)


class TestUpdate:
    def test_single_update_touches_only_that_row(self, service, user, series):
        template, instances = series
        updated = service.update(instances[1].id, user.id, {"amount": Decimal("1300.00")})

        assert updated.amount == Decimal("1300.00")
        assert updated.role == models.TransactionRole.INSTANCE
        assert service.get(user.id, instances[2].id).amount == Decimal("1200.00")
        assert service.get(user.id, template.id).amount == Decimal("1200.00")

    def test_series_update_propagates_fields_but_not_dates(self, service, user, series):
        template, instances = series
        dates = {i.id: i.occurred_at for i in instances}
        service.update(
            instances[2].id,
            user.id,
            {"amount": Decimal("1250.00"), "category": "Housing"},
            date(2025, 3, 20),
            apply_to_series=True,
        )

        tpl = service.get(user.id, template.id)
        assert tpl.amount == Decimal("1250.00")
        assert tpl.category == "Housing"
        assert tpl.recurring_day == 20
        assert tpl.occurred_at == datetime(2025, 3, 20, 12, 0)
        assert tpl.is_recurring_template is True

        for original in instances:
            row = service.get(user.id, original.id)
            assert row.amount == Decimal("1250.00")
            assert row.category == "Housing"
            assert row.occurred_at == dates[original.id]
            assert row.is_recurring_template is False

    def test_future_instances_follow_new_anchor_day(self, service, user, series):
        template, _ = series
        service.update(template.id, user.id, {}, date(2025, 1, 5), apply_to_series=True)
        apr = service.ensure_materialized(user.id, 4, 2025)
        assert apr[0].occurred_at.date() == date(2025, 4, 5)

    def test_single_date_change_on_template_moves_anchor(self, service, user, series):
        template, _ = series
        service.update(template.id, user.id, {}, date(2025, 1, 28))
        assert service.get(user.id, template.id).recurring_day == 28

    def test_role_fields_in_changes_are_ignored(self, service, user, series):
        _, instances = series
        updated = service.update(
            instances[0].id,
            user.id,
            {
                "is_recurring_template": True,
                "recurring_parent_id": None,
                "is_installment": True,
                "description": "Rent (new)",
            },
        )
        assert updated.description == "Rent (new)"
        assert updated.is_recurring_template is False
        assert updated.is_installment is False
        assert updated.recurring_parent_id is not None

    def test_concurrent_update_is_refused(self, service, user, series, update_locks):
        _, instances = series
        key = service.coordinator.lock_key(user.id, instances[0].id)
        assert update_locks.try_acquire(key)
        try:
            with pytest.raises(Conflict):
                service.update(instances[0].id, user.id, {"amount": Decimal("1")})
        finally:
            update_locks.release(key)
        assert service.get(user.id, instances[0].id).amount == Decimal("1200.00")

    def test_update_lock_is_released_after_failure(self, service, user, update_locks):
        with pytest.raises(NotFound):
            service.update(9999, user.id, {"amount": Decimal("1")})
        assert len(update_locks) == 0

    def test_other_users_row_is_not_found(self, service, user, series, db_session):
        other = models.User(email="other@example.com")
        db_session.add(other)
        db_session.commit()
        _, instances = series
        with pytest.raises(NotFound):
            service.update(instances[0].id, other.id, {"amount": Decimal("1")})

    def test_installment_group_update(self, service, user, parcels):
        dates = [p.occurred_at for p in parcels]
        service.update(
            parcels[1].id,
            user.id,
            {"amount": Decimal("160.00"), "description": "Phone X (2/3)"},
            date(2025, 3, 1),
            apply_to_series=True,
        )
        rows = [service.get(user.id, p.id) for p in parcels]
        assert [r.amount for r in rows] == [Decimal("160.00")] * 3
        assert [r.description for r in rows] == ["Phone X (1/3)", "Phone X (2/3)", "Phone X (3/3)"]
        assert rows[0].occurred_at == dates[0] == datetime(2025, 1, 31, 12, 0)
        assert rows[1].occurred_at == datetime(2025, 3, 1, 12, 0)
        assert rows[2].occurred_at == dates[2] == datetime(2025, 3, 31, 12, 0)
        assert all(r.installment_parent_id == parcels[0].id for r in rows[1:])

    def test_series_flag_on_plain_row_is_a_single_update(self, service, user):
        tx = service.create_plain(user.id, RENT, date(2025, 1, 2))
        updated = service.update(tx.id, user.id, {"notes": "paid"}, apply_to_series=True)
        assert updated.notes == "paid"
        assert updated.role == models.TransactionRole.PLAIN


class TestDelete:
    def test_delete_single_row(self, service, user, series):
        _, instances = series
        service.delete(instances[1].id, user.id)
        with pytest.raises(NotFound):
            service.get(user.id, instances[1].id)
        assert service.get(user.id, instances[2].id) is not None

    def test_delete_missing_row(self, service, user):
        with pytest.raises(NotFound):
            service.delete(12345, user.id)

    def test_delete_series_from_instance(self, service, user, series, db_session):
        template, instances = series
        assert service.delete_series(instances[1].id, user.id) == len(instances) + 1
        assert db_session.query(models.Transaction).count() == 0

    def test_delete_series_from_template(self, service, user, series):
        template, instances = series
        assert service.delete_series(template.id, user.id) == 4

    def test_delete_series_needs_a_series(self, service, user):
        tx = service.create_plain(user.id, RENT, date(2025, 1, 2))
        with pytest.raises(ValidationError):
            service.delete_series(tx.id, user.id)

    def test_delete_series_reports_partial_count(self, service, user, series, monkeypatch):
        template, instances = series

        def broken_delete(row):
            raise StoreFailure(f"cannot delete {row.id}")

        monkeypatch.setattr(service.coordinator.store, "delete_one", broken_delete)
        with pytest.raises(StoreFailure) as excinfo:
            service.delete_series(template.id, user.id)
        assert excinfo.value.deleted_count == len(instances)

    def test_delete_installment_group_from_any_parcel(self, service, user, parcels, db_session):
        service.create_plain(user.id, RENT, date(2025, 1, 2))
        assert service.delete_installment_group(parcels[2].id, user.id) == 3
        remaining = db_session.query(models.Transaction).all()
        assert [r.description for r in remaining] == ["Rent"]

    def test_delete_installment_group_needs_a_parcel(self, service, user, series):
        template, _ = series
        with pytest.raises(ValidationError):
            service.delete_installment_group(template.id, user.id)
