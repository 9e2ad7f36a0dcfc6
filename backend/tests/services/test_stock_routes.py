"""Stock Routes - verifies code intake, availability checks, atomic claims and assignment.

Tests:
    - Adding codes skips duplicates (within the request and already stored) and reports them
    - Bulk intake splits newline text and ignores blank lines
    - /stock/check answers 400 with available/requested when short; manual is unlimited
    - A short claim releases what it took and leaves stock untouched
    - Admin assignment claims codes, grants the product and shows up in the owner's view
    - Delivered items cannot be deleted
"""

import pytest
from sqlalchemy import select, func

from storefront.core.domain_types import MANUAL_DELIVERY_STOCK
from storefront.core.errors import InsufficientStockError
from storefront.models.product import Product
from storefront.models.stock_item import StockItem
from storefront.models.user import User
from storefront.services.stock_service import StockService


async def test_add_codes_reports_duplicates(client, admin_headers, make_product, add_stock):
    product = await make_product()
    await add_stock(product, ["OLD-1"])

    res = await client.post(
        "/api/v1/stock",
        json={
            "product_id": str(product.id),
            "codes": ["NEW-1", " NEW-2 ", "NEW-1", "OLD-1", "   "],
        },
        headers=admin_headers,
    )

    assert res.status_code == 201
    assert res.json() == {"added": 2, "duplicates": ["NEW-1", "OLD-1"], "stock": 3}


async def test_each_duplicate_reported_once(client, admin_headers, make_product, add_stock):
    product = await make_product()
    await add_stock(product, ["OLD-1"])

    res = await client.post(
        "/api/v1/stock",
        json={
            "product_id": str(product.id),
            "codes": ["OLD-1", "OLD-1", "NEW-1", "NEW-1", "NEW-1"],
        },
        headers=admin_headers,
    )

    assert res.json() == {"added": 1, "duplicates": ["OLD-1", "NEW-1"], "stock": 2}


async def test_bulk_intake_splits_lines(client, admin_headers, make_product):
    product = await make_product()

    res = await client.post(
        "/api/v1/stock/bulk",
        json={"product_id": str(product.id), "text": "K-1\n\nK-2\r\n  K-3  \n"},
        headers=admin_headers,
    )

    assert res.status_code == 201
    assert res.json()["added"] == 3
    assert res.json()["stock"] == 3


async def test_add_codes_to_variant_product_needs_variant(client, admin_headers, make_product):
    product = await make_product(variants=[{"name": "Monthly", "price": 9.9}])

    res = await client.post(
        "/api/v1/stock",
        json={"product_id": str(product.id), "codes": ["V-1"]},
        headers=admin_headers,
    )

    assert res.status_code == 400
    assert res.json()["error"]["code"] == "VARIANT_REQUIRED"


async def test_check_reports_shortage(client, make_product, add_stock):
    product = await make_product()
    await add_stock(product, ["C-1", "C-2"])

    enough = await client.get(
        "/api/v1/stock/check", params={"product_id": str(product.id), "quantity": 2},
    )
    short = await client.get(
        "/api/v1/stock/check", params={"product_id": str(product.id), "quantity": 3},
    )

    assert enough.status_code == 200
    assert enough.json()["in_stock"] is True
    assert enough.json()["available"] == 2
    assert short.status_code == 400
    assert short.json()["error"]["code"] == "INSUFFICIENT_STOCK"
    assert short.json()["error"]["details"] == {"available": 2, "requested": 3}


async def test_check_manual_product_is_unlimited(client, make_product):
    product = await make_product(delivery_type="manual")

    res = await client.get(
        "/api/v1/stock/check", params={"product_id": str(product.id), "quantity": 500},
    )

    assert res.json()["available"] == MANUAL_DELIVERY_STOCK


async def test_short_claim_releases_everything(test_db, buyer, make_product, add_stock):
    product = await make_product()
    await add_stock(product, ["S-1", "S-2"])

    with pytest.raises(InsufficientStockError) as exc_info:
        await StockService(test_db).claim(product, None, 3, buyer.id)
    await test_db.commit()

    assert exc_info.value.available == 2
    used = await test_db.execute(
        select(func.count()).select_from(StockItem).where(StockItem.is_used.is_(True)),
    )
    assert used.scalar_one() == 0


async def test_claim_marks_items_for_user(test_db, buyer, make_product, add_stock):
    product = await make_product()
    await add_stock(product, ["A-1", "A-2", "A-3"])

    items = await StockService(test_db).claim(product, None, 2, buyer.id)

    assert len(items) == 2
    assert all(i.is_used and i.assigned_to == buyer.id for i in items)
    assert await StockService(test_db).count_unused(product.id, None) == 1


async def test_assign_grants_product_and_lists_codes(
    client, admin_headers, buyer, buyer_headers, make_product, add_stock, reload,
):
    product = await make_product(name="Game Key")
    await add_stock(product, ["G-1", "G-2"])

    res = await client.post(
        "/api/v1/stock/assign",
        json={"user_id": str(buyer.id), "product_id": str(product.id), "quantity": 1},
        headers=admin_headers,
    )

    assert res.status_code == 200
    assert res.json()[0]["assigned_to"] == str(buyer.id)
    assert (await reload(User, buyer.id)).owned_products == [str(product.id)]
    assert (await reload(Product, product.id)).stock == 1

    mine = await client.get("/api/v1/users/me/stock-items", headers=buyer_headers)
    groups = mine.json()["groups"]
    assert groups[0]["product_name"] == "Game Key"
    assert [i["code"] for i in groups[0]["items"]] == [res.json()[0]["code"]]


async def test_assign_more_than_available_changes_nothing(
    client, admin_headers, buyer, make_product, add_stock, test_db,
):
    product = await make_product()
    await add_stock(product, ["X-1"])

    res = await client.post(
        "/api/v1/stock/assign",
        json={"user_id": str(buyer.id), "product_id": str(product.id), "quantity": 2},
        headers=admin_headers,
    )

    assert res.status_code == 400
    unused = await test_db.execute(
        select(func.count()).select_from(StockItem).where(StockItem.is_used.is_(False)),
    )
    assert unused.scalar_one() == 1


async def test_delete_used_item_is_refused(client, admin_headers, buyer, make_product, add_stock):
    product = await make_product()
    await add_stock(product, ["U-1", "U-2"])
    await client.post(
        "/api/v1/stock/assign",
        json={"user_id": str(buyer.id), "product_id": str(product.id), "quantity": 1},
        headers=admin_headers,
    )
    listing = await client.get(
        "/api/v1/stock", params={"product_id": str(product.id)}, headers=admin_headers,
    )
    items = {i["is_used"]: i["id"] for i in listing.json()["items"]}

    used = await client.delete(f"/api/v1/stock/{items[True]}", headers=admin_headers)
    unused = await client.delete(f"/api/v1/stock/{items[False]}", headers=admin_headers)

    assert used.status_code == 400
    assert used.json()["error"]["code"] == "STOCK_ITEM_USED"
    assert unused.json() == {"success": True}
    assert (await client.get(f"/api/v1/products/{product.id}")).json()["stock"] == 0


async def test_list_filters_by_usage(client, admin_headers, make_product, add_stock):
    product = await make_product()
    await add_stock(product, ["L-1", "L-2"])

    res = await client.get(
        "/api/v1/stock", params={"is_used": "false"}, headers=admin_headers,
    )

    assert res.json()["pagination"]["total"] == 2
    assert {i["code"] for i in res.json()["items"]} == {"L-1", "L-2"}
