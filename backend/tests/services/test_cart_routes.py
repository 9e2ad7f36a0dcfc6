"""Cart Routes - verifies server-side pricing, line merging and whole-cart replacement.

Tests:
    - A user without a cart sees an empty one (no rows created)
    - Lines copy name/image/price from the catalog, never from the client
    - Adding the same product twice merges quantities
    - Products with variants require one; the variant price wins
    - PUT drops invalid lines instead of failing the whole request
    - Quantity updates, removals and clearing
"""

from uuid import uuid4

from sqlalchemy import select, func

from storefront.models.cart import Cart


async def test_empty_cart_creates_nothing(client, buyer_headers, test_db):
    res = await client.get("/api/v1/cart", headers=buyer_headers)

    assert res.json() == {"items": [], "total": 0.0, "item_count": 0}
    count = await test_db.execute(select(func.count()).select_from(Cart))
    assert count.scalar_one() == 0


async def test_cart_requires_session(client):
    res = await client.get("/api/v1/cart")
    assert res.status_code == 401


async def test_add_item_copies_catalog_data(client, buyer_headers, make_product):
    product = await make_product(name="Game Key", price=49.9)

    res = await client.post(
        "/api/v1/cart/items",
        json={"product_id": str(product.id), "quantity": 2, "price": 0.01},
        headers=buyer_headers,
    )

    assert res.status_code == 200
    cart = res.json()
    line = cart["items"][0]
    assert line["product_name"] == "Game Key"
    assert line["product_image"] == "https://img.test/key.png"
    assert line["price"] == 49.9
    assert line["has_variants"] is False
    assert cart["total"] == 99.8
    assert cart["item_count"] == 2


async def test_adding_same_product_merges_quantity(client, buyer_headers, make_product):
    product = await make_product()
    line = {"product_id": str(product.id), "quantity": 1}

    await client.post("/api/v1/cart/items", json=line, headers=buyer_headers)
    res = await client.post("/api/v1/cart/items", json=line, headers=buyer_headers)

    items = res.json()["items"]
    assert len(items) == 1
    assert items[0]["quantity"] == 2


async def test_variant_product_requires_variant(client, buyer_headers, make_product):
    product = await make_product(variants=[{"name": "Monthly", "price": 9.9}])

    missing = await client.post(
        "/api/v1/cart/items", json={"product_id": str(product.id)}, headers=buyer_headers,
    )
    chosen = await client.post(
        "/api/v1/cart/items",
        json={"product_id": str(product.id), "variant_id": str(product.variants[0].id)},
        headers=buyer_headers,
    )

    assert missing.status_code == 400
    assert missing.json()["error"]["code"] == "VARIANT_REQUIRED"
    line = chosen.json()["items"][0]
    assert line["variant_name"] == "Monthly"
    assert line["price"] == 9.9
    assert line["has_variants"] is True


async def test_add_unknown_product_is_404(client, buyer_headers):
    res = await client.post(
        "/api/v1/cart/items", json={"product_id": str(uuid4())}, headers=buyer_headers,
    )
    assert res.status_code == 404


async def test_replace_drops_invalid_lines(client, buyer_headers, make_product):
    product = await make_product(price=10.0)

    res = await client.put(
        "/api/v1/cart",
        json={"items": [
            {"product_id": str(product.id), "quantity": 3},
            {"product_id": str(uuid4()), "quantity": 1},
            {"product_id": "not-a-uuid"},
            {"product_id": str(product.id), "quantity": 0},
        ]},
        headers=buyer_headers,
    )

    assert res.status_code == 200
    cart = res.json()
    assert len(cart["items"]) == 1
    assert cart["items"][0]["quantity"] == 3
    assert cart["total"] == 30.0


async def test_update_and_remove_line(client, buyer_headers, make_product):
    first = await make_product(name="First", price=5.0)
    second = await make_product(name="Second", price=7.0)
    for product in (first, second):
        res = await client.post(
            "/api/v1/cart/items", json={"product_id": str(product.id)}, headers=buyer_headers,
        )
    first_line = res.json()["items"][0]["id"]

    updated = await client.patch(
        f"/api/v1/cart/items/{first_line}", json={"quantity": 4}, headers=buyer_headers,
    )
    assert updated.json()["total"] == 27.0

    removed = await client.delete(f"/api/v1/cart/items/{first_line}", headers=buyer_headers)
    assert [i["product_name"] for i in removed.json()["items"]] == ["Second"]


async def test_update_unknown_line_is_404(client, buyer_headers):
    res = await client.patch(
        f"/api/v1/cart/items/{uuid4()}", json={"quantity": 2}, headers=buyer_headers,
    )
    assert res.status_code == 404


async def test_clear_cart(client, buyer_headers, make_product):
    product = await make_product()
    await client.post(
        "/api/v1/cart/items", json={"product_id": str(product.id)}, headers=buyer_headers,
    )

    res = await client.delete("/api/v1/cart", headers=buyer_headers)

    assert res.json()["items"] == []
    assert (await client.get("/api/v1/cart", headers=buyer_headers)).json()["item_count"] == 0
