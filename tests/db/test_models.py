"""Tests for ORM defaults and relationships."""

from sqlalchemy import func, select

from lastmile.db.models import (
    FeedWatermark,
    Order,
    OrderStatus,
    ResolutionSource,
    ResolvedAddress,
    RouteCacheEntry,
    TransportCompany,
)


class TestOrder:
    """Tests for the Order model."""

    def test_defaults(self, db_session):
        order = Order(id="X1", raw_address="12 Lê Lợi")
        db_session.add(order)
        db_session.commit()

        assert order.status == OrderStatus.awaiting.value
        assert order.urgency == 0
        assert order.note_analyzed is False
        assert order.created_at is not None
        assert order.resolved is None

    def test_delete_cascades_to_resolved_address(self, db_session, make_order):
        order = make_order("X1", resolved={"district": "Quận 1", "ward": "Phường 1"})
        assert order.resolved.source == ResolutionSource.empty.value

        db_session.delete(order)
        db_session.commit()

        assert db_session.scalar(select(func.count()).select_from(ResolvedAddress)) == 0

    def test_repr(self):
        assert repr(Order(id="X1", status="awaiting")) == "<Order(id='X1', status='awaiting')>"


class TestResolvedAddress:
    """Tests for ResolvedAddress.is_complete."""

    def test_complete(self):
        row = ResolvedAddress(district="Quận 1", ward="Phường 1", distance_km=3.0, travel_minutes=9)
        assert row.is_complete

    def test_missing_route(self):
        row = ResolvedAddress(district="Quận 1", ward="Phường 1", distance_km=3.0)
        assert not row.is_complete

    def test_blank_ward(self):
        row = ResolvedAddress(district="Quận 1", ward="", distance_km=3.0, travel_minutes=9)
        assert not row.is_complete

    def test_zero_distance_counts(self):
        row = ResolvedAddress(district="Quận 1", ward="Phường 1", distance_km=0.0, travel_minutes=0)
        assert row.is_complete


class TestReferenceTables:
    """Tests for carrier, cache and watermark tables."""

    def test_transport_company_ids_follow_insert_order(self, db_session):
        db_session.add_all([TransportCompany(name="Phương Trang"), TransportCompany(name="Thành Bưởi")])
        db_session.commit()

        names = db_session.scalars(select(TransportCompany.name).order_by(TransportCompany.id)).all()
        assert names == ["Phương Trang", "Thành Bưởi"]

    def test_route_cache_merge_replaces_entry(self, db_session):
        db_session.merge(RouteCacheEntry(origin="a", destination="b", distance_km=1.0, travel_minutes=5))
        db_session.commit()
        db_session.merge(RouteCacheEntry(origin="a", destination="b", distance_km=2.0, travel_minutes=7))
        db_session.commit()

        entry = db_session.get(RouteCacheEntry, ("a", "b"))
        assert (entry.distance_km, entry.travel_minutes) == (2.0, 7)

    def test_watermark_defaults(self, db_session):
        db_session.add(FeedWatermark(source="main", digest="abc"))
        db_session.commit()

        watermark = db_session.get(FeedWatermark, "main")
        assert watermark.order_count == 0
        assert watermark.updated_at is not None
