import pytest

from conftest import PNG_BYTES, auth
from errors import NotFound
from images import ImageStore


def upload(client, token, data=PNG_BYTES, content_type="image/png", name="photo.png"):
    return client.post(
        "/products/upload",
        files={"image": (name, data, content_type)},
        headers=auth(token),
    )


def test_upload_and_serve(client, seller, image_store):
    token, _ = seller
    res = upload(client, token)
    assert res.status_code == 200, res.text
    url = res.json()["url"]
    assert url.startswith("/products/image/") and url.endswith(".png")

    filename = ImageStore.filename_from_url(url)
    assert image_store.exists(filename)

    served = client.get(url)
    assert served.status_code == 200
    assert served.content == PNG_BYTES


def test_upload_requires_auth(client):
    res = client.post("/products/upload", files={"image": ("p.png", PNG_BYTES, "image/png")})
    assert res.status_code == 401


def test_upload_requires_file(client, seller):
    token, _ = seller
    res = client.post("/products/upload", headers=auth(token))
    assert res.status_code == 400
    assert res.json()["error"] == "ValidationError"


def test_upload_rejects_non_images(client, seller):
    token, _ = seller
    res = upload(client, token, data=b"hello", content_type="text/plain", name="notes.txt")
    assert res.status_code == 400
    assert res.json()["message"] == "Only image files are allowed"


def test_upload_rejects_oversize(client, seller):
    token, _ = seller
    res = upload(client, token, data=b"x" * 2048)
    assert res.status_code == 400


def test_unknown_image_is_404(client):
    res = client.get("/products/image/nope.png")
    assert res.status_code == 404
    assert res.json() == {"message": "Image not found", "error": "NotFound"}


def test_delete_image(client, seller):
    token, _ = seller
    url = upload(client, token).json()["url"]
    filename = ImageStore.filename_from_url(url)

    res = client.delete(f"/products/image/{filename}", headers=auth(token))
    assert res.status_code == 200
    assert client.get(url).status_code == 404
    assert client.delete(f"/products/image/{filename}", headers=auth(token)).status_code == 404


def test_upload_records_uploader(client, seller, db):
    token, user = seller
    url = upload(client, token).json()["url"]
    record = db["image"].find_one({"filename": ImageStore.filename_from_url(url)})
    assert str(record["uploader"]) == user["id"]


def test_other_user_cannot_delete_listing_image(client, seller, buyer, create_product):
    s_token, _ = seller
    b_token, _ = buyer
    url = upload(client, s_token).json()["url"]
    create_product(s_token, imageUrl=url)
    filename = ImageStore.filename_from_url(url)

    res = client.delete(f"/products/image/{filename}", headers=auth(b_token))
    assert res.status_code == 403
    assert res.json()["error"] == "Forbidden"
    assert client.get(url).status_code == 200


def test_uploader_cannot_delete_image_used_by_another_seller(client, seller, buyer, create_product):
    s_token, _ = seller
    b_token, _ = buyer
    url = upload(client, s_token).json()["url"]
    create_product(b_token, imageUrl=url)
    filename = ImageStore.filename_from_url(url)

    res = client.delete(f"/products/image/{filename}", headers=auth(s_token))
    assert res.status_code == 403
    assert client.get(url).status_code == 200


def test_uploader_can_delete_image_on_own_listing(client, seller, create_product, db):
    token, _ = seller
    url = upload(client, token).json()["url"]
    create_product(token, imageUrl=url)
    filename = ImageStore.filename_from_url(url)

    assert client.delete(f"/products/image/{filename}", headers=auth(token)).status_code == 200
    assert client.get(url).status_code == 404
    assert db["image"].count_documents({"filename": filename}) == 0


def test_unrecorded_image_cannot_be_deleted(client, seller, image_store):
    token, _ = seller
    image_store.root.mkdir(parents=True)
    (image_store.root / "stray.png").write_bytes(PNG_BYTES)

    res = client.delete("/products/image/stray.png", headers=auth(token))
    assert res.status_code == 403
    assert image_store.exists("stray.png")


@pytest.mark.parametrize("name", ["", "../secret", ".hidden", "a/b.png"])
def test_path_for_refuses_escapes(image_store, name):
    with pytest.raises(NotFound):
        image_store.path_for(name)


@pytest.mark.parametrize("url,expected", [
    ("/products/image/abc.png", "abc.png"),
    ("http://host:8000/products/image/abc.png?x=1", "abc.png"),
    ("https://cdn.example.com/pic.jpg", None),
    ("", None),
    (None, None),
])
def test_filename_from_url(url, expected):
    assert ImageStore.filename_from_url(url) == expected
