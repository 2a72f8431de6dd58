import os

import pytest
from starlette.datastructures import UploadFile

from app.core.cache import POSTS_TAG
from app.core.config import settings
from app.core.errors import InfrastructureError
from app.crud import post as crud_post
from app.db.models.post import Post, DEFAULT_IMAGE_PATH
from app.services.image_storage import get_image_storage

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


def _create(client, headers, **body):
    return client.post("/posts", json=body, headers=headers)


def _count(db):
    db.expire_all()
    return db.query(Post).count()


class TestCreatePost:
    def test_create_assigns_id_timestamp_and_default_image(self, client, auth_headers):
        response = _create(client, auth_headers, title="A", content="B")
        assert response.status_code == 201
        body = response.json()
        assert body["id"] > 0
        assert body["title"] == "A"
        assert body["content"] == "B"
        assert body["created_at"]
        assert body["image_path"] == DEFAULT_IMAGE_PATH
        assert response.headers["location"] == f"/posts/{body['id']}"

    def test_title_of_25_characters_is_accepted(self, client, auth_headers):
        response = _create(client, auth_headers, title="x" * 25)
        assert response.status_code == 201

    def test_title_of_26_characters_is_rejected(self, client, auth_headers, db):
        response = _create(client, auth_headers, title="x" * 26)
        assert response.status_code == 422
        assert "title" in response.json()["errors"]
        assert _count(db) == 0

    @pytest.mark.parametrize("title", ["", "   "])
    def test_blank_title_leaves_store_unchanged(self, client, auth_headers, db, title):
        _create(client, auth_headers, title="existing")
        before = _count(db)
        response = _create(client, auth_headers, title=title, content="body")
        assert response.status_code == 422
        assert response.json()["errors"]["title"]
        assert _count(db) == before

    def test_missing_title_is_rejected(self, client, auth_headers):
        response = _create(client, auth_headers, content="no title")
        assert response.status_code == 422
        assert "title" in response.json()["errors"]

    def test_malformed_json_is_rejected(self, client, auth_headers):
        response = client.post(
            "/posts", content=b"{not json", headers={**auth_headers, "Content-Type": "application/json"}
        )
        assert response.status_code == 422
        assert "body" in response.json()["errors"]

    def test_requires_bearer_token(self, client, db):
        response = client.post("/posts", json={"title": "A"})
        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Bearer"
        assert _count(db) == 0

    def test_rejects_garbage_token(self, client):
        response = client.post("/posts", json={"title": "A"}, headers={"Authorization": "Bearer not.a.jwt"})
        assert response.status_code == 401

    def test_multipart_with_image_stores_it_at_deterministic_path(self, client, auth_headers):
        response = client.post(
            "/posts",
            data={"title": "Hello World", "content": "with picture"},
            files={"image": ("pic.png", PNG_BYTES, "image/png")},
            headers=auth_headers,
        )
        assert response.status_code == 201
        body = response.json()
        assert body["image_path"] == f"posts/{body['id']}_hello-world.png"
        with open(os.path.join(settings.MEDIA_ROOT, body["image_path"]), "rb") as f:
            assert f.read() == PNG_BYTES

    def test_multipart_without_image_uses_default(self, client, auth_headers):
        response = client.post("/posts", data={"title": "Plain", "content": ""}, headers=auth_headers)
        assert response.status_code == 201
        assert response.json()["image_path"] == DEFAULT_IMAGE_PATH
        assert response.json()["content"] is None

    def test_multipart_rejects_non_image_upload(self, client, auth_headers, db):
        response = client.post(
            "/posts",
            data={"title": "Doc"},
            files={"image": ("notes.txt", b"hello", "text/plain")},
            headers=auth_headers,
        )
        assert response.status_code == 422
        assert "image" in response.json()["errors"]
        assert _count(db) == 0

    def test_multipart_rejects_oversized_image(self, client, auth_headers, monkeypatch):
        monkeypatch.setattr(settings, "MAX_IMAGE_SIZE_MB", 0)
        response = client.post(
            "/posts",
            data={"title": "Big"},
            files={"image": ("pic.png", PNG_BYTES, "image/png")},
            headers=auth_headers,
        )
        assert response.status_code == 422
        assert "image" in response.json()["errors"]

    def test_failed_image_store_rolls_back_insert(self, client, auth_headers, db):
        class BrokenStorage:
            def save(self, *args, **kwargs):
                raise InfrastructureError()

        client.app.dependency_overrides[get_image_storage] = lambda: BrokenStorage()
        response = client.post(
            "/posts",
            data={"title": "Doomed"},
            files={"image": ("pic.png", PNG_BYTES, "image/png")},
            headers=auth_headers,
        )
        assert response.status_code == 500
        assert _count(db) == 0


class TestReadPosts:
    def test_get_by_id(self, client, auth_headers):
        created = _create(client, auth_headers, title="Read me").json()
        response = client.get(f"/posts/{created['id']}")
        assert response.status_code == 200
        assert response.json() == created

    def test_get_missing_returns_404(self, client):
        response = client.get("/posts/999")
        assert response.status_code == 404
        assert response.json()["detail"] == "Post not found"

    def test_list_is_public_and_empty_by_default(self, client):
        response = client.get("/posts")
        assert response.status_code == 200
        assert response.json() == []

    def test_list_search_sort_and_paginate(self, client, auth_headers):
        for title, content in [("Alpha", "one"), ("beta", "two"), ("Gamma", "three"), ("delta", "Two birds")]:
            _create(client, auth_headers, title=title, content=content)

        response = client.get("/posts", params={"search": "TWO", "sort": "title", "order": "desc"})
        assert [p["title"] for p in response.json()] == ["delta", "beta"]

        first = client.get("/posts", params={"page": 1, "page_size": 3}).json()
        second = client.get("/posts", params={"page": 2, "page_size": 3}).json()
        assert [p["title"] for p in first + second] == ["Alpha", "beta", "Gamma", "delta"]

    def test_list_clamps_non_positive_paging(self, client, auth_headers):
        _create(client, auth_headers, title="Only")
        response = client.get("/posts", params={"page": 0, "page_size": -1})
        assert response.status_code == 200
        assert len(response.json()) == 1

    def test_list_rejects_non_integer_page(self, client):
        assert client.get("/posts", params={"page": "abc"}).status_code == 422

    def test_list_is_cached_until_a_mutation(self, client, auth_headers, db):
        _create(client, auth_headers, title="First")
        assert len(client.get("/posts").json()) == 1

        # A write behind the API's back is not seen while the entry is cached
        db.add(Post(title="Sneaky"))
        db.commit()
        assert len(client.get("/posts").json()) == 1

        _create(client, auth_headers, title="Second")
        assert [p["title"] for p in client.get("/posts").json()] == ["First", "Sneaky", "Second"]


class TestUpdatePost:
    def test_update_overwrites_fields_and_keeps_id_and_created_at(self, client, auth_headers):
        created = _create(client, auth_headers, title="Old", content="old body", image_path="custom.jpg").json()
        response = client.put(
            f"/posts/{created['id']}", json={"title": "New", "content": "new body"}, headers=auth_headers
        )
        assert response.status_code == 204
        assert response.content == b""

        updated = client.get(f"/posts/{created['id']}").json()
        assert updated["id"] == created["id"]
        assert updated["created_at"] == created["created_at"]
        assert updated["title"] == "New"
        assert updated["content"] == "new body"
        assert updated["image_path"] == DEFAULT_IMAGE_PATH

    def test_update_with_new_image(self, client, auth_headers):
        created = _create(client, auth_headers, title="Pic").json()
        response = client.put(
            f"/posts/{created['id']}",
            data={"title": "Pic Two"},
            files={"image": ("p.webp", b"RIFFxxxxWEBP", "image/webp")},
            headers=auth_headers,
        )
        assert response.status_code == 204
        updated = client.get(f"/posts/{created['id']}").json()
        assert updated["image_path"] == f"posts/{created['id']}_pic-two.webp"

    def test_update_missing_returns_404_and_store_unchanged(self, client, auth_headers, db):
        _create(client, auth_headers, title="Keep")
        response = client.put("/posts/999", json={"title": "Nope"}, headers=auth_headers)
        assert response.status_code == 404
        db.expire_all()
        assert [p.title for p in db.query(Post).all()] == ["Keep"]

    def test_update_validates_title(self, client, auth_headers):
        created = _create(client, auth_headers, title="Valid").json()
        response = client.put(f"/posts/{created['id']}", json={"title": "y" * 26}, headers=auth_headers)
        assert response.status_code == 422
        assert client.get(f"/posts/{created['id']}").json()["title"] == "Valid"

    def test_update_requires_token(self, client, auth_headers):
        created = _create(client, auth_headers, title="Mine").json()
        assert client.put(f"/posts/{created['id']}", json={"title": "Theirs"}).status_code == 401

    def test_update_invalidates_listing_cache(self, client, auth_headers):
        created = _create(client, auth_headers, title="Before").json()
        assert client.get("/posts").json()[0]["title"] == "Before"
        client.put(f"/posts/{created['id']}", json={"title": "After"}, headers=auth_headers)
        assert client.get("/posts").json()[0]["title"] == "After"


class TestDeletePost:
    def test_delete_removes_post(self, client, auth_headers, db):
        created = _create(client, auth_headers, title="Bye").json()
        assert client.get("/posts").json() != []

        response = client.delete(f"/posts/{created['id']}", headers=auth_headers)
        assert response.status_code == 204
        assert client.get(f"/posts/{created['id']}").status_code == 404
        assert client.get("/posts").json() == []
        assert _count(db) == 0

    def test_delete_missing_returns_404_and_store_unchanged(self, client, auth_headers, db):
        _create(client, auth_headers, title="Stay")
        response = client.delete("/posts/12345", headers=auth_headers)
        assert response.status_code == 404
        assert _count(db) == 1

    def test_delete_requires_token(self, client, auth_headers):
        created = _create(client, auth_headers, title="Guarded").json()
        assert client.delete(f"/posts/{created['id']}").status_code == 401


class TestListingLimits:
    def test_page_beyond_integer_range_returns_empty_page(self, client, auth_headers):
        _create(client, auth_headers, title="One")
        response = client.get("/posts", params={"page": 10**19, "page_size": 10})
        assert response.status_code == 200
        assert response.json() == []

    def test_huge_page_size_is_capped(self, client, auth_headers):
        _create(client, auth_headers, title="One")
        response = client.get("/posts", params={"page": 2, "page_size": 10**19})
        assert response.status_code == 200
        assert response.json() == []

    def test_write_during_a_listing_read_is_not_hidden_by_the_cache(self, client, auth_headers, db, monkeypatch):
        real_get_posts = crud_post.get_posts

        def racing_get_posts(session, params):
            rows = real_get_posts(session, params)
            db.add(Post(title="Raced"))
            db.commit()
            client.app.state.cache.evict_tag(POSTS_TAG)
            return rows

        monkeypatch.setattr(crud_post, "get_posts", racing_get_posts)
        assert client.get("/posts").json() == []
        monkeypatch.setattr(crud_post, "get_posts", real_get_posts)
        assert [p["title"] for p in client.get("/posts").json()] == ["Raced"]

    def test_distinct_searches_do_not_grow_the_cache_without_bound(self, client, monkeypatch):
        cache = client.app.state.cache
        monkeypatch.setattr(cache, "max_entries", 20)
        for i in range(50):
            assert client.get("/posts", params={"search": f"junk{i}"}).status_code == 200
        assert len(cache) == 20


class TestValidationShape:
    def test_bad_query_parameter_uses_field_errors(self, client):
        response = client.get("/posts", params={"page": "abc"})
        assert response.status_code == 422
        body = response.json()
        assert body["detail"] == "Validation failed"
        assert list(body["errors"]) == ["page"]

    def test_bad_path_parameter_uses_field_errors(self, client):
        response = client.get("/posts/not-a-number")
        assert response.status_code == 422
        assert "post_id" in response.json()["errors"]

    def test_bad_register_body_uses_field_errors(self, client):
        response = client.post("/auth/register", json={"email": "nope", "password": "secret123"})
        assert response.status_code == 422
        assert "email" in response.json()["errors"]


class TestImageFiles:
    def _upload(self, client, headers, method, url, title, data=PNG_BYTES):
        return client.request(
            method, url, data={"title": title}, files={"image": ("pic.png", data, "image/png")}, headers=headers
        )

    def test_declared_oversize_is_rejected_before_reading(self, client, auth_headers, monkeypatch):
        async def fail_read(self, size=-1):
            raise AssertionError("upload body was read")

        monkeypatch.setattr(settings, "MAX_IMAGE_SIZE_MB", 0)
        monkeypatch.setattr(UploadFile, "read", fail_read)
        response = self._upload(client, auth_headers, "POST", "/posts", "Big")
        assert response.status_code == 422
        assert "image" in response.json()["errors"]

    def test_retitled_update_removes_previous_image(self, client, auth_headers):
        created = self._upload(client, auth_headers, "POST", "/posts", "First name").json()
        old_file = os.path.join(settings.MEDIA_ROOT, created["image_path"])
        assert os.path.exists(old_file)

        response = self._upload(client, auth_headers, "PUT", f"/posts/{created['id']}", "Second name")
        assert response.status_code == 204
        updated = client.get(f"/posts/{created['id']}").json()
        assert not os.path.exists(old_file)
        assert os.path.exists(os.path.join(settings.MEDIA_ROOT, updated["image_path"]))

    def test_same_title_update_keeps_the_overwritten_image(self, client, auth_headers):
        created = self._upload(client, auth_headers, "POST", "/posts", "Same").json()
        self._upload(client, auth_headers, "PUT", f"/posts/{created['id']}", "Same", data=b"\x89PNGnew")
        with open(os.path.join(settings.MEDIA_ROOT, created["image_path"]), "rb") as f:
            assert f.read() == b"\x89PNGnew"

    def test_delete_removes_image_file(self, client, auth_headers):
        created = self._upload(client, auth_headers, "POST", "/posts", "Doomed pic").json()
        path = os.path.join(settings.MEDIA_ROOT, created["image_path"])
        assert client.delete(f"/posts/{created['id']}", headers=auth_headers).status_code == 204
        assert not os.path.exists(path)
