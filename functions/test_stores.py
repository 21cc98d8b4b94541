import unittest
from unittest.mock import MagicMock

from google.api_core.exceptions import NotFound

from stores import (
    BatchCapacityError,
    BatchOperation,
    BlobNotFoundError,
    FirebaseStorageBlobStore,
    FirestoreDocumentStore,
    parse_blob_reference,
)


def make_snapshot(path, data):
    snap = MagicMock()
    snap.reference.path = path
    snap.to_dict.return_value = data
    return snap


class TestFirestoreDocumentStore(unittest.TestCase):

    def setUp(self):
        self.db = MagicMock()
        self.store = FirestoreDocumentStore(client=self.db)

    def test_query_with_field(self):
        where = self.db.collection.return_value.where
        where.return_value.stream.return_value = [make_snapshot("receipts/r1", {"userId": "u1"})]

        docs = self.store.query("receipts", "userId", "u1")

        self.db.collection.assert_called_once_with("receipts")
        where.assert_called_once_with("userId", "==", "u1")
        self.assertEqual(len(docs), 1)
        self.assertEqual(docs[0].id, "r1")
        self.assertEqual(docs[0].collection, "receipts")
        self.assertEqual(docs[0].data, {"userId": "u1"})

    def test_query_whole_collection(self):
        coll = self.db.collection.return_value
        coll.stream.return_value = [make_snapshot("users/u1/activity/a1", None)]

        docs = self.store.query("users/u1/activity")

        coll.where.assert_not_called()
        self.assertEqual(docs[0].data, {})
        self.assertEqual(docs[0].collection, "users/u1/activity")

    def test_query_rejects_unknown_operator(self):
        with self.assertRaises(ValueError):
            self.store.query("receipts", "userId", "u1", op="in")

    def test_commit_batch(self):
        batch = self.db.batch.return_value
        self.store.commit_batch(
            [
                BatchOperation.delete("notifications/n1"),
                BatchOperation.update("receipts/r1", {"userName": "Deleted User"}),
            ]
        )

        self.assertEqual(batch.delete.call_count, 1)
        batch.update.assert_called_once_with(self.db.document.return_value, {"userName": "Deleted User"})
        batch.commit.assert_called_once()

    def test_commit_batch_over_capacity(self):
        operations = [BatchOperation.delete(f"n/{i}") for i in range(4)]
        with self.assertRaises(BatchCapacityError):
            self.store.commit_batch(operations, max_batch_size=3)
        self.db.batch.assert_not_called()

    def test_commit_empty_batch_is_noop(self):
        self.store.commit_batch([])
        self.db.batch.assert_not_called()

    def test_get_missing_document(self):
        self.db.document.return_value.get.return_value.exists = False
        self.assertIsNone(self.store.get("users/u1"))

    def test_get_existing_document(self):
        snap = self.db.document.return_value.get.return_value
        snap.exists = True
        snap.to_dict.return_value = {"name": "Ann"}
        self.assertEqual(self.store.get("users/u1"), {"name": "Ann"})

    def test_delete(self):
        self.store.delete("users/u1")
        self.db.document.assert_called_once_with("users/u1")
        self.db.document.return_value.delete.assert_called_once()

    def test_listen_wraps_snapshots(self):
        query = self.db.collection.return_value.where.return_value
        received = []

        unsubscribe = self.store.listen("notifications", "userId", "u1", received.append)
        on_snapshot = query.on_snapshot.call_args[0][0]
        on_snapshot([make_snapshot("notifications/n1", {"userId": "u1"})], [], None)

        self.assertEqual(received[0][0].path, "notifications/n1")
        self.assertIs(unsubscribe, query.on_snapshot.return_value.unsubscribe)


class TestParseBlobReference(unittest.TestCase):

    def test_gs_url(self):
        self.assertEqual(
            parse_blob_reference("gs://demo.appspot.com/profile_photos/u1.jpg"),
            ("demo.appspot.com", "profile_photos/u1.jpg"),
        )

    def test_firebase_download_url(self):
        url = (
            "https://firebasestorage.googleapis.com/v0/b/demo.appspot.com/o/"
            "profile_photos%2Fu1.jpg?alt=media&token=abc"
        )
        self.assertEqual(parse_blob_reference(url), ("demo.appspot.com", "profile_photos/u1.jpg"))

    def test_storage_googleapis_url(self):
        self.assertEqual(
            parse_blob_reference("https://storage.googleapis.com/demo/a/b.png"),
            ("demo", "a/b.png"),
        )

    def test_bare_path_uses_default_bucket(self):
        self.assertEqual(parse_blob_reference("photos/u1.jpg", "demo"), ("demo", "photos/u1.jpg"))

    def test_invalid_references(self):
        for ref in ["", "photos/u1.jpg", "ftp://host/x", "https://example.com/x.jpg"]:
            with self.assertRaises(ValueError):
                parse_blob_reference(ref)


class TestFirebaseStorageBlobStore(unittest.TestCase):

    def test_delete(self):
        factory = MagicMock()
        blob_store = FirebaseStorageBlobStore(default_bucket="demo", bucket_factory=factory)

        blob_store.delete("gs://other/photos/u1.jpg")

        factory.assert_called_once_with("other")
        factory.return_value.blob.assert_called_once_with("photos/u1.jpg")
        factory.return_value.blob.return_value.delete.assert_called_once()

    def test_missing_blob(self):
        factory = MagicMock()
        factory.return_value.blob.return_value.delete.side_effect = NotFound("gone")
        blob_store = FirebaseStorageBlobStore(default_bucket="demo", bucket_factory=factory)

        with self.assertRaises(BlobNotFoundError):
            blob_store.delete("photos/u1.jpg")


if __name__ == "__main__":
    unittest.main()
