import unittest

from bson import ObjectId
from fastapi.testclient import TestClient

from storybook_backend.main import app
from storybook_backend.tests.fake_mongo import install_fake_database, uninstall_fake_database


class BooksApiTests(unittest.TestCase):
    def setUp(self):
        self.db = install_fake_database()
        self.client = TestClient(app)

    def tearDown(self):
        uninstall_fake_database()

    def test_create_get_update_book(self):
        created = self.client.post("/api/books/", json={"title": "Moon Walk", "author": "Ann"})
        self.assertEqual(created.status_code, 201)
        book = created.json()
        self.assertEqual(book["status"], "draft")

        fetched = self.client.get(f"/api/books/{book['id']}")
        self.assertEqual(fetched.status_code, 200)
        self.assertEqual(fetched.json()["title"], "Moon Walk")

        updated = self.client.put(f"/api/books/{book['id']}", json={"status": "published"})
        self.assertEqual(updated.status_code, 200)
        self.assertEqual(updated.json()["status"], "published")
        self.assertEqual(updated.json()["author"], "Ann")

    def test_list_filters_by_status(self):
        self.client.post("/api/books/", json={"title": "Draft"})
        self.client.post("/api/books/", json={"title": "Live", "status": "published"})

        response = self.client.get("/api/books/", params={"status": "published"})

        self.assertEqual(response.status_code, 200)
        self.assertEqual([b["title"] for b in response.json()], ["Live"])

    def test_get_missing_and_malformed_book(self):
        self.assertEqual(self.client.get(f"/api/books/{ObjectId()}").status_code, 404)
        self.assertEqual(self.client.get("/api/books/xyz").status_code, 400)

    def test_update_without_fields_returns_400(self):
        book = self.client.post("/api/books/", json={"title": "Empty"}).json()
        self.assertEqual(self.client.put(f"/api/books/{book['id']}", json={}).status_code, 400)

    def test_delete_book_removes_its_pages(self):
        book = self.client.post("/api/books/", json={"title": "Short"}).json()
        other = self.client.post("/api/books/", json={"title": "Other"}).json()
        for number in (1, 2):
            self.client.post("/api/pages/", json={"book_id": book["id"], "page_number": number})
        self.client.post("/api/pages/", json={"book_id": other["id"], "page_number": 1})

        response = self.client.delete(f"/api/books/{book['id']}")

        self.assertEqual(response.status_code, 204)
        self.assertEqual(self.client.get(f"/api/pages/book/{book['id']}").json(), [])
        self.assertEqual(len(self.client.get(f"/api/pages/book/{other['id']}").json()), 1)
        self.assertEqual(self.client.delete(f"/api/books/{book['id']}").status_code, 404)

    def test_health_reports_missing_database(self):
        response = self.client.get("/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["database"], "unavailable")


if __name__ == "__main__":
    unittest.main()
