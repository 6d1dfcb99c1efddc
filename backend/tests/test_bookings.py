"""Tests for reservation CRUD, concurrency control and lifecycle."""

import threading
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, update
from sqlalchemy.orm import sessionmaker

from reservation_engine.core.config import settings
from reservation_engine.core.errors import (
    BusinessRuleError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from reservation_engine.core.validators import RequestContext
from reservation_engine.db.base import Base
from reservation_engine.db.session import configure_sqlite
from reservation_engine.models import Reservation, ReservationAudit
from reservation_engine.models.audit import AuditAction
from reservation_engine.services.audit_service import AuditService
from reservation_engine.services.change_notifier import ChangeNotifier
from reservation_engine.services.field_definition_service import FieldDefinitionService
from reservation_engine.services.reservation_service import ReservationFilters, ReservationService

from conftest import make_payload

BOOKINGS = "/api/v1/bookings"


def _create(client: TestClient, **overrides) -> dict:
    response = client.post(BOOKINGS, json=make_payload(**overrides))
    assert response.status_code == 201, response.text
    return response.json()["data"]


def _audit_actions(db_session, reservation_id: int) -> list:
    rows = (
        db_session.query(ReservationAudit)
        .filter(ReservationAudit.booking_id == reservation_id)
        .order_by(ReservationAudit.id)
        .all()
    )
    return [row.action for row in rows]


class TestCreateReservation:
    """Creating reservations through the service."""

    def test_create_normalizes_and_audits(self, db_session, service, ctx):
        record = service.create(make_payload(), ctx)

        assert record.id is not None
        assert record.channel == "웹"
        assert record.platform_name == "KLOOK"
        assert record.email == "minsu.kim@example.com"
        assert record.english_first_name == "Minsu"
        assert record.guest_count == 2
        assert float(record.adult_unit_price) == 50.0
        assert record.lock_version == 1
        assert record.extras == {}
        assert record.flags == {"missing": [], "ambiguous": []}

        entries = db_session.query(ReservationAudit).filter_by(booking_id=record.id).all()
        assert len(entries) == 1
        assert entries[0].action == AuditAction.CREATE
        assert entries[0].actor == "tester"
        assert entries[0].request_id == "req_test"
        assert entries[0].current_values["reservation_number"] == "R100"

    def test_duplicate_number_and_channel(self, service, ctx):
        first = service.create(make_payload(), ctx)
        with pytest.raises(ConflictError) as exc:
            service.create(make_payload(channel="웹"), ctx)
        assert exc.value.error_code == "DUPLICATE_RESERVATION"
        assert exc.value.details == {"existing_id": first.id}

    def test_same_number_on_other_channel_allowed(self, service, ctx):
        service.create(make_payload(), ctx)
        other = service.create(make_payload(channel="phone"), ctx)
        assert other.channel == "전화"

    def test_validation_failure_writes_nothing(self, db_session, service, ctx):
        with pytest.raises(ValidationError) as exc:
            service.create(make_payload(total_amount="-5", people_adult=0, people_child=0, guest_count=0), ctx)
        fields = {issue["field"] for issue in exc.value.details}
        assert "total_amount" in fields
        assert db_session.query(Reservation).count() == 0
        assert db_session.query(ReservationAudit).count() == 0

    def test_extras_limited_to_active_definitions(self, service, ctx, field_defs):
        record = service.create(make_payload(extras={
            "pickup_location": " Lotte Hotel ",
            "shuttle_seats": "2",
            "mystery": "dropped",
        }), ctx)
        assert record.extras == {"pickup_location": "Lotte Hotel", "shuttle_seats": 2.0}

    def test_invalid_extra_rejected(self, service, ctx, field_defs):
        with pytest.raises(ValidationError) as exc:
            service.create(make_payload(extras={"meal_plan": "dinner"}), ctx)
        assert exc.value.details[0]["field"] == "extras.meal_plan"
        assert exc.value.details[0]["code"] == "enum"

    def test_quality_flags_do_not_block(self, service, ctx):
        record = service.create(make_payload(product_name="TBD", korean_name=""), ctx)
        assert record.flags == {"missing": ["korean_name"], "ambiguous": ["product_name"]}

    def test_duplicate_source_text(self, service, ctx):
        first = service.create(make_payload(_raw_text="Booking R100 for Kim"), ctx)
        assert first.origin_hash is not None
        with pytest.raises(ConflictError) as exc:
            service.create(make_payload(reservation_number="R101", _raw_text="  Booking R100 for Kim "), ctx)
        assert exc.value.error_code == "DUPLICATE_IMPORT"
        assert exc.value.details == {"existing_id": first.id}

    def test_events_published_after_commit(self, service, ctx, notifier):
        record = service.create(make_payload(), ctx)
        events = notifier.recent()
        assert [event.event_type for event in events] == ["booking.create"]
        assert events[0].booking_ids == [record.id]
        assert events[0].request_id == "req_test"


class TestUpdateReservation:
    """Partial updates, optimistic concurrency and diffs."""

    def test_update_returns_diff_and_bumps_version(self, service, ctx, reservation):
        record, diff = service.update(reservation.id, {"total_amount": 150}, ctx, expected_version=1)
        assert record.lock_version == 2
        assert diff == {
            "adult_unit_price": {"old": 50.0, "new": 75.0},
            "total_amount": {"old": 100.0, "new": 150.0},
        }

    def test_explicit_unit_price_kept(self, service, ctx, reservation):
        record, diff = service.update(reservation.id, {"total_amount": 150, "adult_unit_price": 60}, ctx)
        assert float(record.adult_unit_price) == 60.0
        assert diff["adult_unit_price"] == {"old": 50.0, "new": 60.0}

    def test_stale_version_rejected(self, db_session, service, ctx, reservation):
        service.update(reservation.id, {"memo": "first"}, ctx, expected_version=1)
        with pytest.raises(ConflictError) as exc:
            service.update(reservation.id, {"memo": "second"}, ctx, expected_version=1)
        assert exc.value.error_code == "CONFLICT_VERSION"
        assert exc.value.details == {"current_version": 2, "provided_version": 1}
        assert service.get(reservation.id).memo == "first"
        assert _audit_actions(db_session, reservation.id) == ["create", "update"]

    def test_lost_race_detected_by_conditional_write(self, db_session, service, ctx, reservation):
        record = service.lock_for_update(reservation.id)
        # Another writer bumps the version after our read
        db_session.execute(
            update(Reservation)
            .where(Reservation.id == reservation.id)
            .values(lock_version=Reservation.lock_version + 1)
            .execution_options(synchronize_session=False)
        )
        with pytest.raises(ConflictError) as exc:
            service.apply_change(record, {"memo": "late"}, AuditAction.UPDATE, ctx)
        assert exc.value.error_code == "CONFLICT_VERSION"
        assert exc.value.details == {"current_version": 2, "provided_version": 1}
        db_session.rollback()

    def test_concurrent_updates_with_same_version(self, tmp_path):
        engine = create_engine(
            f"sqlite:///{tmp_path / 'race.db'}",
            connect_args={"check_same_thread": False, "timeout": 30},
        )
        configure_sqlite(engine)
        Base.metadata.create_all(bind=engine)
        SessionFactory = sessionmaker(autoflush=False, bind=engine)
        try:
            with SessionFactory() as session:
                record = ReservationService(session, notifier=ChangeNotifier()).create(
                    make_payload(), RequestContext(actor="setup"),
                )
                reservation_id = record.id

            barrier = threading.Barrier(2)
            outcomes = []

            def edit(actor):
                with SessionFactory() as session:
                    editor = ReservationService(session, notifier=ChangeNotifier())
                    barrier.wait()
                    try:
                        editor.update(reservation_id, {"memo": actor}, RequestContext(actor=actor), expected_version=1)
                        outcomes.append("ok")
                    except ConflictError as e:
                        outcomes.append(e.error_code)

            threads = [threading.Thread(target=edit, args=(actor,)) for actor in ("alice", "bob")]
            for thread in threads:
                thread.start()
            for thread in threads:
                thread.join(timeout=60)

            assert sorted(outcomes) == ["CONFLICT_VERSION", "ok"]
            with SessionFactory() as session:
                assert session.get(Reservation, reservation_id).lock_version == 2
                assert _audit_actions(session, reservation_id) == ["create", "update"]
        finally:
            engine.dispose()

    def test_timestamp_precondition(self, service, ctx, reservation):
        with pytest.raises(ConflictError) as exc:
            service.update(reservation.id, {"memo": "x"}, ctx,
                           if_unmodified_since=datetime(2001, 1, 1, tzinfo=timezone.utc))
        assert exc.value.error_code == "CONFLICT_TIMESTAMP"

        future = datetime.now(timezone.utc) + timedelta(days=1)
        record, _ = service.update(reservation.id, {"memo": "x"}, ctx, if_unmodified_since=future)
        assert record.memo == "x"

    def test_update_validation_failure_leaves_record(self, service, ctx, reservation):
        with pytest.raises(ValidationError):
            service.update(reservation.id, {"usage_time": "7:65", "quantity": 0}, ctx)
        assert service.get(reservation.id).lock_version == 1

    def test_extras_deep_merged(self, service, ctx, field_defs):
        created = service.create(make_payload(extras={"pickup_location": "Hotel A", "meal_plan": "breakfast"}), ctx)
        record, diff = service.update(created.id, {"extras": {"meal_plan": "full"}}, ctx)
        assert record.extras == {"pickup_location": "Hotel A", "meal_plan": "full"}
        assert diff == {"extras.meal_plan": {"old": "breakfast", "new": "full"}}

    def test_deactivated_extras_dropped_on_next_write(self, db_session, service, ctx, field_defs):
        created = service.create(make_payload(extras={"pickup_location": "Hotel A", "meal_plan": "breakfast"}), ctx)
        FieldDefinitionService(db_session).deactivate("meal_plan")
        record, diff = service.update(created.id, {"memo": "note"}, ctx)
        assert record.extras == {"pickup_location": "Hotel A"}
        assert diff["extras.meal_plan"] == {"old": "breakfast", "new": None}

    def test_renumber_into_duplicate_rejected(self, service, ctx, reservation):
        other = service.create(make_payload(reservation_number="R200"), ctx)
        with pytest.raises(ConflictError) as exc:
            service.update(other.id, {"reservation_number": "R100"}, ctx)
        assert exc.value.error_code == "DUPLICATE_RESERVATION"
        assert exc.value.details == {"existing_id": reservation.id}

    def test_update_status(self, service, ctx, reservation):
        record, diff = service.update_status(reservation.id, payment_status="paid", review_status="reviewed", context=ctx)
        assert record.payment_status == "confirmed"
        assert record.review_status == "reviewed"
        assert set(diff) == {"payment_status", "review_status"}

    def test_update_status_rejects_unknown(self, service, ctx, reservation):
        with pytest.raises(ValidationError) as exc:
            service.update_status(reservation.id, review_status="archived", context=ctx)
        assert exc.value.details[0]["field"] == "review_status"
        with pytest.raises(ValidationError):
            service.update_status(reservation.id, context=ctx)

    def test_missing_reservation(self, service, ctx):
        with pytest.raises(NotFoundError):
            service.update(999, {"memo": "x"}, ctx)


class TestLifecycle:
    """Cancel, soft delete, hard delete and restore."""

    def test_cancel_then_cancel_again(self, service, ctx, reservation):
        record = service.cancel(reservation.id, reason="Guest request", context=ctx)
        assert record.payment_status == "cancelled"
        assert record.review_status == "cancelled"
        with pytest.raises(BusinessRuleError) as exc:
            service.cancel(reservation.id, context=ctx)
        assert exc.value.error_code == "ALREADY_CANCELLED"

    def test_status_writes_refresh_quality_flags(self, db_session, service, ctx, reservation):
        assert reservation.flags["missing"] == []
        FieldDefinitionService(db_session).create({"key": "visa_number", "label": "Visa number", "required": True})

        record = service.cancel(reservation.id, context=ctx)
        assert record.flags["missing"] == ["extras.visa_number"]

        FieldDefinitionService(db_session).deactivate("visa_number")
        record = service.restore(reservation.id, context=ctx)
        assert record.flags["missing"] == []

    def test_soft_delete_hides_record_keeps_history(self, db_session, service, ctx, reservation):
        service.soft_delete(reservation.id, reason="Test booking", context=ctx)
        with pytest.raises(NotFoundError):
            service.get(reservation.id)
        rows, total = service.list()
        assert total == 0 and rows == []
        assert AuditService(db_session).count_for(reservation.id) == 2

    def test_soft_deleted_number_can_be_reused(self, service, ctx, reservation):
        service.soft_delete(reservation.id, context=ctx)
        replacement = service.create(make_payload(), ctx)
        assert replacement.id != reservation.id

    def test_hard_delete_disabled_by_default(self, service, ctx, reservation):
        with pytest.raises(ForbiddenError) as exc:
            service.hard_delete(reservation.id, context=ctx)
        assert exc.value.error_code == "HARD_DELETE_DISABLED"

    def test_hard_delete_keeps_audit_trail(self, db_session, service, ctx, reservation, monkeypatch):
        monkeypatch.setattr(settings, "allow_hard_delete", True)
        reservation_id = reservation.id
        snapshot = service.hard_delete(reservation_id, reason="GDPR request", context=ctx)
        assert snapshot["id"] == reservation_id
        assert db_session.query(Reservation).filter_by(id=reservation_id).first() is None

        entries = db_session.query(ReservationAudit).filter_by(booking_id=reservation_id).order_by(ReservationAudit.id).all()
        assert [entry.action for entry in entries] == ["create", "delete"]
        assert entries[-1].reason == "[hard delete] GDPR request"

    def test_restore_cancelled(self, service, ctx, reservation):
        service.cancel(reservation.id, context=ctx)
        eligibility = service.restore_eligibility(reservation.id)
        assert eligibility["can_restore"] is True
        assert eligibility["time_info"]["window_hours"] == settings.restore_window_hours

        record = service.restore(reservation.id, new_status="confirmed", context=ctx)
        assert record.payment_status == "confirmed"
        assert record.review_status == "needs_review"
        assert record.lock_version == 3

    def test_restore_deleted(self, service, ctx, reservation):
        service.soft_delete(reservation.id, context=ctx)
        record = service.restore(reservation.id, context=ctx)
        assert record.is_deleted is False
        assert record.deleted_at is None
        assert record.payment_status == "pending"
        assert service.get(reservation.id).id == reservation.id

    def test_restore_blocked_when_number_reused(self, service, ctx, reservation):
        service.soft_delete(reservation.id, context=ctx)
        service.create(make_payload(), ctx)
        with pytest.raises(ConflictError) as exc:
            service.restore(reservation.id, context=ctx)
        assert exc.value.error_code == "DUPLICATE_RESERVATION"

    def test_restore_live_record_refused(self, service, ctx, reservation):
        assert service.restore_eligibility(reservation.id)["can_restore"] is False
        with pytest.raises(BusinessRuleError) as exc:
            service.restore(reservation.id, context=ctx)
        assert exc.value.error_code == "NOT_RESTORABLE"

    def test_restore_window_expired(self, db_session, service, ctx, reservation):
        service.cancel(reservation.id, context=ctx)
        db_session.execute(
            update(Reservation)
            .where(Reservation.id == reservation.id)
            .values(updated_at=datetime.now(timezone.utc) - timedelta(hours=settings.restore_window_hours + 2))
        )
        db_session.commit()

        eligibility = service.restore_eligibility(reservation.id)
        assert eligibility["can_restore"] is False
        assert eligibility["time_info"]["within_window"] is False
        with pytest.raises(ForbiddenError) as exc:
            service.restore(reservation.id, context=ctx)
        assert exc.value.error_code == "RESTORE_WINDOW_EXPIRED"

    def test_restore_invalid_status(self, service, ctx, reservation):
        service.cancel(reservation.id, context=ctx)
        with pytest.raises(ValidationError):
            service.restore(reservation.id, new_status="cancelled", context=ctx)

    def test_one_audit_entry_per_mutation(self, db_session, service, ctx, reservation):
        service.update(reservation.id, {"memo": "call guest"}, ctx)
        service.cancel(reservation.id, context=ctx)
        service.restore(reservation.id, context=ctx)
        service.soft_delete(reservation.id, context=ctx)
        assert _audit_actions(db_session, reservation.id) == ["create", "update", "cancel", "restore", "delete"]


class TestListAndStatistics:
    """Listing filters, pagination and aggregate counts."""

    @pytest.fixture
    def bookings(self, service, ctx):
        return [
            service.create(make_payload(reservation_number="R1", usage_date="2026-11-01",
                                        payment_status="paid", total_amount="100"), ctx),
            service.create(make_payload(reservation_number="R2", usage_date="2026-11-05",
                                        korean_name="이영희", total_amount="300"), ctx),
            service.create(make_payload(reservation_number="R3", usage_date="2026-12-01",
                                        platform_name="viator", payment_status="paid", total_amount="200"), ctx),
        ]

    def test_default_order_newest_first(self, service, bookings):
        rows, total = service.list()
        assert total == 3
        assert [row.reservation_number for row in rows] == ["R3", "R2", "R1"]

    def test_filters(self, service, bookings):
        rows, total = service.list(ReservationFilters(status="confirmed"))
        assert total == 2
        rows, _ = service.list(ReservationFilters(q="이영희"))
        assert [row.reservation_number for row in rows] == ["R2"]
        rows, _ = service.list(ReservationFilters(platform="VIATOR"))
        assert [row.reservation_number for row in rows] == ["R3"]
        rows, _ = service.list(ReservationFilters(date_from="2026-11-02", date_to="2026-11-30"))
        assert [row.reservation_number for row in rows] == ["R2"]

    def test_sort_and_page(self, service, bookings):
        rows, total = service.list(page=2, page_size=2, sort="total_amount", order="asc")
        assert total == 3
        assert [row.reservation_number for row in rows] == ["R2"]

    def test_statistics(self, service, ctx, bookings):
        service.cancel(bookings[1].id, context=ctx)
        stats = service.statistics()
        assert stats["total_reservations"] == 3
        assert stats["by_payment_status"]["confirmed"] == 2
        assert stats["cancelled"] == 1
        assert stats["needs_review"] == 2
        assert stats["total_revenue"] == 300.0
        assert stats["average_amount"] == 150.0


class TestBookingAPI:
    """HTTP surface of the reservation store."""

    def test_create_returns_201(self, client: TestClient):
        data = _create(client)
        assert data["reservation_number"] == "R100"
        assert data["channel"] == "웹"
        assert data["lock_version"] == 1
        assert data["usage_date"] == "2026-11-03"

    def test_create_duplicate_returns_409(self, client: TestClient):
        first = _create(client)
        response = client.post(BOOKINGS, json=make_payload(channel="웹"))
        assert response.status_code == 409
        body = response.json()
        assert body["success"] is False
        assert body["error_code"] == "DUPLICATE_RESERVATION"
        assert body["details"]["existing_id"] == first["id"]

    def test_create_invalid_returns_400(self, client: TestClient):
        response = client.post(BOOKINGS, json=make_payload(total_amount="-5"))
        assert response.status_code == 400
        body = response.json()
        assert body["error_code"] == "VALIDATION_ERROR"
        assert [error["field"] for error in body["errors"]] == ["total_amount"]

    @pytest.mark.parametrize("amount", ["12345678901", "1e30"])
    def test_create_amount_too_large_returns_400(self, client: TestClient, amount):
        response = client.post(BOOKINGS, json=make_payload(total_amount=amount))
        assert response.status_code == 400
        errors = response.json()["errors"]
        assert [(error["field"], error["code"]) for error in errors] == [("total_amount", "range")]

    def test_create_requires_object_body(self, client: TestClient):
        response = client.post(BOOKINGS, json=["not", "an", "object"])
        assert response.status_code == 400

    def test_get_detail(self, client: TestClient, field_defs):
        created = _create(client, extras={"pickup_location": "Hotel A", "unknown": "x"})
        response = client.get(f"{BOOKINGS}/{created['id']}")
        assert response.status_code == 200
        detail = response.json()["data"]
        assert detail["reservation"]["extras"] == {"pickup_location": "Hotel A"}
        assert [d["key"] for d in detail["field_definitions"]][:2] == ["pickup_location", "shuttle_seats"]
        assert [entry["action"] for entry in detail["audit_history"]] == ["create"]
        assert detail["metadata"]["lock_version"] == 1
        assert detail["metadata"]["audit_count"] == 1
        assert detail["metadata"]["needs_review"] is True
        assert detail["metadata"]["is_editable"] is True

    def test_get_missing_and_invalid_id(self, client: TestClient):
        assert client.get(f"{BOOKINGS}/999").status_code == 404
        assert client.get(f"{BOOKINGS}/0").status_code == 400

    def test_patch_with_lock_version(self, client: TestClient):
        created = _create(client)
        response = client.patch(f"{BOOKINGS}/{created['id']}", json={
            "total_amount": 150, "_lock_version": 1, "_reason": "Price correction",
        })
        assert response.status_code == 200, response.text
        body = response.json()
        assert body["lock_version"] == 2
        assert body["changes"] == {
            "adult_unit_price": {"old": 50.0, "new": 75.0},
            "total_amount": {"old": 100.0, "new": 150.0},
        }
        assert body["data"]["total_amount"] == 150.0

        audits = client.get(f"{BOOKINGS}/{created['id']}/audits").json()["data"]
        assert audits[0]["action"] == "update"
        assert audits[0]["reason"] == "Price correction"

    def test_patch_stale_version_returns_409(self, client: TestClient):
        created = _create(client)
        client.patch(f"{BOOKINGS}/{created['id']}", json={"memo": "a", "_lock_version": 1})
        response = client.patch(f"{BOOKINGS}/{created['id']}", json={"memo": "b", "_lock_version": 1})
        assert response.status_code == 409
        body = response.json()
        assert body["error_code"] == "CONFLICT_VERSION"
        assert body["details"] == {"current_version": 2, "provided_version": 1}

    def test_patch_bad_lock_version_returns_400(self, client: TestClient):
        created = _create(client)
        response = client.patch(f"{BOOKINGS}/{created['id']}", json={"memo": "a", "_lock_version": "abc"})
        assert response.status_code == 400

    def test_patch_if_unmodified_since(self, client: TestClient):
        created = _create(client)
        response = client.patch(
            f"{BOOKINGS}/{created['id']}",
            json={"memo": "late"},
            headers={"If-Unmodified-Since": "Mon, 01 Jan 2001 00:00:00 GMT"},
        )
        assert response.status_code == 409
        assert response.json()["error_code"] == "CONFLICT_TIMESTAMP"

        response = client.patch(
            f"{BOOKINGS}/{created['id']}",
            json={"memo": "ok"},
            headers={"If-Unmodified-Since": "Fri, 01 Jan 2100 00:00:00 GMT"},
        )
        assert response.status_code == 200

    def test_patch_status(self, client: TestClient):
        created = _create(client)
        response = client.patch(f"{BOOKINGS}/{created['id']}/status", json={"payment_status": "paid"})
        assert response.status_code == 200
        assert response.json()["data"]["payment_status"] == "confirmed"
        assert response.json()["changes"]["payment_status"] == {"old": "pending", "new": "confirmed"}

    def test_cancel_delete_restore_flow(self, client: TestClient):
        created = _create(client)
        url = f"{BOOKINGS}/{created['id']}"

        assert client.post(f"{url}/cancel", json={"reason": "Guest request"}).status_code == 200
        response = client.post(f"{url}/cancel")
        assert response.status_code == 422
        assert response.json()["error_code"] == "ALREADY_CANCELLED"

        response = client.post(f"{url}/restore", json={"new_status": "confirmed"})
        assert response.status_code == 200
        assert response.json()["data"]["payment_status"] == "confirmed"

        assert client.delete(url).status_code == 200
        assert client.get(url).status_code == 404
        assert client.get(BOOKINGS).json()["pagination"]["total_count"] == 0

        eligibility = client.get(f"{url}/restore-eligibility").json()["data"]
        assert eligibility["can_restore"] is True
        assert eligibility["current_status"]["is_deleted"] is True

        audits = client.get(f"{url}/audits").json()
        assert [entry["action"] for entry in audits["data"]] == ["delete", "restore", "cancel", "create"]
        assert audits["pagination"]["total_count"] == 4

    def test_restore_rejects_unknown_status(self, client: TestClient):
        created = _create(client)
        client.post(f"{BOOKINGS}/{created['id']}/cancel")
        response = client.post(f"{BOOKINGS}/{created['id']}/restore", json={"new_status": "cancelled"})
        assert response.status_code == 400

    def test_hard_delete(self, client: TestClient, monkeypatch):
        created = _create(client)
        url = f"{BOOKINGS}/{created['id']}"
        response = client.request("DELETE", url, json={"hard_delete": True})
        assert response.status_code == 403
        assert response.json()["error_code"] == "HARD_DELETE_DISABLED"

        monkeypatch.setattr(settings, "allow_hard_delete", True)
        response = client.request("DELETE", url, json={"hard_delete": True, "reason": "duplicate"})
        assert response.status_code == 200
        assert client.get(f"{url}/restore-eligibility").status_code == 404
        audits = client.get(f"{url}/audits").json()["data"]
        assert [entry["action"] for entry in audits] == ["delete", "create"]

    def test_actor_header_recorded(self, client: TestClient):
        response = client.post(BOOKINGS, json=make_payload(), headers={"X-Actor": "alice", "X-Request-ID": "req_abc"})
        assert response.headers["X-Request-ID"] == "req_abc"
        audits = client.get(f"{BOOKINGS}/{response.json()['data']['id']}/audits").json()["data"]
        assert audits[0]["actor"] == "alice"
        assert audits[0]["request_id"] == "req_abc"

    def test_list_filters_and_pagination(self, client: TestClient):
        _create(client, reservation_number="R1", usage_date="2026-11-01")
        _create(client, reservation_number="R2", usage_date="2026-11-05", payment_status="paid")
        _create(client, reservation_number="R3", usage_date="2026-12-01")

        body = client.get(BOOKINGS, params={"page_size": 2}).json()
        assert len(body["data"]) == 2
        assert body["pagination"] == {
            "page": 1, "page_size": 2, "total_count": 3, "total_pages": 2, "has_next": True, "has_prev": False,
        }

        body = client.get(BOOKINGS, params={"from": "2026-11-02", "to": "2026-11-30"}).json()
        assert [row["reservation_number"] for row in body["data"]] == ["R2"]
        assert body["filters"] == {"date_from": "2026-11-02", "date_to": "2026-11-30"}

        body = client.get(BOOKINGS, params={"status": "confirmed"}).json()
        assert [row["reservation_number"] for row in body["data"]] == ["R2"]

        assert client.get(BOOKINGS, params={"from": "garbage"}).status_code == 400

    def test_stats(self, client: TestClient):
        _create(client, reservation_number="R1", payment_status="paid", total_amount="120")
        _create(client, reservation_number="R2")
        data = client.get(f"{BOOKINGS}/stats").json()["data"]
        assert data["total_reservations"] == 2
        assert data["by_payment_status"]["pending"] == 1
        assert data["total_revenue"] == 120.0
