import pytest

from trk.storage.kv import ACTIVE_IDENTITY_KEY, IDENTITIES_KEY, IdentityBook
from trk.storage.remote import InvalidTripError
from trk.utils.validate import Identity, Point, RouteMetadata


def route_points():
    return [
        Point(lat=13.70, lng=-89.20, ts=1_000),
        Point(lat=13.70, lng=-89.20, ts=46_000, is_stationary=True,
              duration_at_stop=45.0, stop_segment_start=True),
        Point(lat=13.71, lng=-89.20, ts=120_000),
    ]


def test_store_overwrites_and_removes(store):
    assert store.get("k") is None
    store.set("k", "one")
    store.set("k", "two")
    assert store.get("k") == "two"
    store.remove("k")
    store.remove("k")
    assert store.get("k") is None


def test_identity_history_is_unique_by_document(store, identity):
    book = IdentityBook(store)
    other = Identity(name="Luis Romero", document_id="09876543-2")

    book.select(identity)
    book.select(other)
    book.select(identity)

    assert book.active() == identity
    assert [i.document_id for i in book.history()] == ["01234567-8", "09876543-2"]
    assert book.find("09876543-2") == other
    assert book.find("nobody") is None


def test_unreadable_identity_data_is_dropped(store):
    store.set(ACTIVE_IDENTITY_KEY, "{not json")
    store.set(IDENTITIES_KEY, '[{"name": ""}]')
    book = IdentityBook(store)

    assert book.active() is None
    assert book.history() == []
    assert store.get(ACTIVE_IDENTITY_KEY) is None
    assert store.get(IDENTITIES_KEY) is None


def test_identity_fields_are_trimmed_and_required():
    assert Identity(name="  Ana ", document_id=" 1 ").name == "Ana"
    with pytest.raises(ValueError):
        Identity(name="   ", document_id="1")


def test_route_metadata_normalisation():
    meta = RouteMetadata(route_name=" 101-B ", bus_type="", occupancy=" full ")
    assert meta.route_name == "101-B"
    assert meta.bus_type is None
    assert meta.occupancy == "full"
    with pytest.raises(ValueError):
        RouteMetadata(route_name="  ")


def test_draft_is_overwritten_in_place(dao, identity):
    points = route_points()
    dao.push_draft("d1", identity, points[:1])
    dao.push_draft("d1", identity, points)

    assert dao.get_draft("d1") == points
    assert dao.get_draft("unknown") == []


def test_empty_draft_push_is_ignored(dao, identity):
    dao.push_draft("d1", identity, [])
    assert dao.get_draft("d1") == []


def test_archive_trip_records_summary_and_route(dao, identity):
    points = route_points()
    trip_id = dao.archive_trip(identity, points, RouteMetadata(route_name="44", occupancy="seated"))

    (trip,) = dao.list_trips()
    assert trip.id == trip_id
    assert trip.start_time == 1_000
    assert trip.end_time == 120_000
    assert trip.duration == 119.0
    assert trip.point_count == 3
    assert trip.stop_count == 1
    assert trip.occupancy == "seated"
    assert trip.bus_type is None
    assert trip.is_analyzed is False
    assert dao.fetch_route(trip_id) == points


def test_archive_rejects_empty_trips(dao, identity):
    with pytest.raises(InvalidTripError):
        dao.archive_trip(identity, [], RouteMetadata(route_name="44"))
    with pytest.raises(InvalidTripError):
        dao.archive_trip(None, route_points(), RouteMetadata(route_name="44"))
    assert dao.list_trips() == []


def test_trips_listed_newest_first(dao, identity):
    first = dao.archive_trip(identity, route_points(), RouteMetadata(route_name="1"))
    second = dao.archive_trip(identity, route_points(), RouteMetadata(route_name="2"))

    assert [t.id for t in dao.list_trips()] == [second, first]


def test_unknown_route_is_empty(dao):
    assert dao.fetch_route("missing") == []
