from pymongo.errors import PyMongoError

from database import DocumentStore
from results import Err, ErrorKind, Ok


class BrokenCollection:
    def __getattr__(self, name):
        def fail(*args, **kwargs):
            raise PyMongoError("connection refused")

        return fail


class BrokenDatabase:
    def __getitem__(self, name):
        return BrokenCollection()


def test_get_missing_document(store):
    result = store.get("carts", "nobody")
    assert isinstance(result, Err)
    assert result.kind == ErrorKind.NOT_FOUND


def test_put_replaces_whole_document(store):
    store.put("carts", "u1", {"items": [1, 2], "note": "old"})
    store.put("carts", "u1", {"items": [3]})

    doc = store.get("carts", "u1").value

    assert doc == {"_id": "u1", "items": [3]}


def test_patch_sets_fields_and_reports_missing(store):
    store.put("orders", "o1", {"status": "PENDING", "total": 10})

    assert store.patch("orders", "o1", {"status": "SHIPPED"}) == Ok("o1")
    assert store.get("orders", "o1").value["status"] == "SHIPPED"
    assert store.get("orders", "o1").value["total"] == 10
    assert store.patch("orders", "missing", {"status": "SHIPPED"}).kind == ErrorKind.NOT_FOUND


def test_add_generates_string_ids(store):
    first = store.add("reviews", {"rating": 5}).value
    second = store.add("reviews", {"rating": 4}).value

    assert isinstance(first, str) and first != second
    assert store.get("reviews", first).value["rating"] == 5


def test_find_sort_limit_and_count(store):
    for price in (30, 10, 20):
        store.add("products", {"price": price, "brand": "Acme"})

    found = store.find("products", {"brand": "Acme"}, sort=[("price", 1)], limit=2).value

    assert [doc["price"] for doc in found] == [10, 20]
    assert store.count("products", {"brand": "Acme"}).value == 3


def test_delete(store):
    doc_id = store.add("notifications", {"user_id": "u1"}).value
    assert store.delete("notifications", doc_id) == Ok(doc_id)
    assert store.delete("notifications", doc_id).kind == ErrorKind.NOT_FOUND


def test_driver_errors_become_remote_failures():
    broken = DocumentStore(BrokenDatabase())

    for result in (
        broken.get("carts", "u1"),
        broken.put("carts", "u1", {}),
        broken.patch("carts", "u1", {"a": 1}),
        broken.add("carts", {}),
        broken.find("carts"),
        broken.count("carts"),
    ):
        assert result == Err(ErrorKind.REMOTE_FAILURE, "connection refused")
