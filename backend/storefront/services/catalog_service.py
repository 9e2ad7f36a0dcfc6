"""Catalog Service - categories and products, with slug handling and cache invalidation.

Invariants:
    - Category name/slug unique (409); slug stored lower-cased
    - A category referenced by any product cannot be deleted (400 CATEGORY_IN_USE)
    - Every category write invalidates core.category_cache.category_cache
    - Product slug derived from the name when omitted, then made unique (-2, -3, ...)
    - Product update replaces the variant list; variants whose id is resent are kept in place
    - Product delete removes its unused stock items; used ones keep the history

Design Decisions:
    - Category list cached as serialized dicts: the cache never holds ORM instances
      bound to a closed session
"""

import logging
from uuid import UUID

from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.category_cache import category_cache
from storefront.core.errors import (
    BusinessRuleError, DuplicateResourceError, ResourceNotFoundError,
)
from storefront.core.slugs import slugify, unique_slug
from storefront.models.category import Category
from storefront.models.product import Product, ProductVariant
from storefront.schemas.catalog import (
    CategoryCreate, CategoryResponse, CategoryUpdate,
    ProductCreate, ProductUpdate, VariantInput,
)
from storefront.services.stock_service import StockService

logger = logging.getLogger(__name__)

_SORT_COLUMNS = {
    "created_at": Product.created_at,
    "name": Product.name,
    "price": Product.price,
}


class CategoryService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_cached(self) -> list[dict]:
        cached = category_cache.get()
        if cached is not None:
            return cached
        result = await self.db.execute(select(Category).order_by(Category.name))
        items = [
            CategoryResponse.model_validate(c).model_dump(mode="json")
            for c in result.scalars().all()
        ]
        category_cache.set(items)
        return items

    async def get(self, category_id: UUID) -> Category:
        category = await self.db.get(Category, category_id)
        if not category:
            raise ResourceNotFoundError("Category", str(category_id))
        return category

    async def get_by_slug(self, slug: str) -> Category:
        result = await self.db.execute(
            select(Category).where(Category.slug == slug.strip().lower()),
        )
        category = result.scalar_one_or_none()
        if not category:
            raise ResourceNotFoundError("Category", slug)
        return category

    async def create(self, body: CategoryCreate) -> Category:
        await self._ensure_unique(body.name, body.slug)
        category = Category(
            name=body.name, slug=body.slug,
            description=body.description.strip(), icon=body.icon,
        )
        self.db.add(category)
        await self.db.commit()
        category_cache.invalidate()
        logger.info(f"Category created: {category.slug}")
        return category

    async def update(self, category_id: UUID, body: CategoryUpdate) -> Category:
        category = await self.get(category_id)
        await self._ensure_unique(body.name, body.slug, exclude=category.id)
        for field_name, value in body.model_dump(exclude_unset=True).items():
            if value is not None:
                setattr(category, field_name, value.strip() if isinstance(value, str) else value)
        await self.db.commit()
        category_cache.invalidate()
        return category

    async def delete(self, category_id: UUID) -> None:
        category = await self.get(category_id)
        in_use = (await self.db.execute(
            select(func.count()).select_from(Product)
            .where(Product.category_id == category.id),
        )).scalar_one()
        if in_use:
            raise BusinessRuleError(
                f"Category is used by {in_use} product(s)", "CATEGORY_IN_USE",
                details={"product_count": in_use},
            )
        await self.db.delete(category)
        await self.db.commit()
        category_cache.invalidate()
        logger.info(f"Category deleted: {category.slug}")

    async def _ensure_unique(
        self, name: str | None, slug: str | None, exclude: UUID | None = None,
    ) -> None:
        for column, value, label in (
            (Category.name, name, "name"), (Category.slug, slug, "slug"),
        ):
            if value is None:
                continue
            query = select(Category.id).where(func.lower(column) == value.strip().lower())
            if exclude is not None:
                query = query.where(Category.id != exclude)
            if (await self.db.execute(query)).first():
                raise DuplicateResourceError("Category", label, value)


class ProductService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.stock = StockService(db)

    async def get(self, product_id: UUID) -> Product:
        return await self.stock.get_product(product_id)

    async def get_by_slug(self, slug: str) -> Product:
        result = await self.db.execute(select(Product).where(Product.slug == slug))
        product = result.scalar_one_or_none()
        if not product:
            raise ResourceNotFoundError("Product", slug)
        return product

    async def list_products(
        self,
        page: int,
        limit: int,
        sort: str = "created_at",
        direction: str = "desc",
        search: str | None = None,
        category: str | None = None,
        featured: bool | None = None,
    ) -> tuple[list[Product], int]:
        conditions = []
        if search:
            pattern = f"%{search.strip().lower()}%"
            conditions.append(or_(
                func.lower(Product.name).like(pattern),
                func.lower(Product.description).like(pattern),
                func.lower(Product.short_description).like(pattern),
                func.lower(Product.slug).like(pattern),
            ))
        if category:
            category_id = await self._resolve_category(category)
            if category_id is None:
                return [], 0
            conditions.append(Product.category_id == category_id)
        if featured is not None:
            conditions.append(Product.featured.is_(featured))

        total = (await self.db.execute(
            select(func.count()).select_from(Product).where(*conditions),
        )).scalar_one()
        column = _SORT_COLUMNS.get(sort, Product.created_at)
        order = column.asc() if direction == "asc" else column.desc()
        result = await self.db.execute(
            select(Product).where(*conditions)
            .order_by(order, Product.id)
            .limit(limit).offset((page - 1) * limit),
        )
        return list(result.scalars().all()), total

    async def _resolve_category(self, ref: str) -> UUID | None:
        try:
            category_id = UUID(ref)
        except ValueError:
            category_id = None
        if category_id is not None and await self.db.get(Category, category_id):
            return category_id
        result = await self.db.execute(
            select(Category.id).where(Category.slug == ref.strip().lower()),
        )
        return result.scalar_one_or_none()

    async def create(self, body: ProductCreate) -> Product:
        if body.category_id:
            await CategoryService(self.db).get(body.category_id)
        product = Product(
            name=body.name.strip(),
            slug=await self._free_slug(body.slug or body.name),
            description=body.description,
            short_description=body.short_description,
            images=list(body.images),
            category_id=body.category_id,
            price=body.price,
            original_price=body.original_price,
            discount_percentage=body.discount_percentage,
            featured=body.featured,
            status=body.status.value if body.status else None,
            delivery_type=body.delivery_type.value,
            variants=[_new_variant(v, i) for i, v in enumerate(body.variants)],
        )
        self.db.add(product)
        await self.db.flush()
        await self.stock.refresh_stock_counts(product)
        await self.db.commit()
        logger.info("Product created", extra={"product_id": product.id})
        return product

    async def update(self, product_id: UUID, body: ProductUpdate) -> Product:
        product = await self.get(product_id)
        data = body.model_dump(exclude_unset=True, exclude={"variants", "slug"})
        if data.get("category_id"):
            await CategoryService(self.db).get(data["category_id"])
        for field_name, value in data.items():
            if field_name in ("name", "description", "images", "delivery_type") and value is None:
                continue
            if hasattr(value, "value"):
                value = value.value
            setattr(product, field_name, value)

        if body.slug is not None:
            wanted = slugify(body.slug)
            if wanted != product.slug:
                taken = await self._slug_taken(wanted, exclude=product.id)
                if taken:
                    raise DuplicateResourceError("Product", "slug", wanted)
                product.slug = wanted

        if body.variants is not None:
            self._replace_variants(product, body.variants)

        await self.db.flush()
        await self.stock.refresh_stock_counts(product)
        await self.db.commit()
        logger.info("Product updated", extra={"product_id": product.id})
        return product

    def _replace_variants(self, product: Product, variants: list[VariantInput]) -> None:
        existing = {str(v.id): v for v in product.variants}
        replacement = []
        for position, data in enumerate(variants):
            current = existing.get(str(data.id)) if data.id else None
            if current is None:
                replacement.append(_new_variant(data, position))
                continue
            current.name = data.name
            current.description = data.description
            current.price = data.price
            current.features = list(data.features)
            current.delivery_type = data.delivery_type.value
            current.position = position
            replacement.append(current)
        product.variants = replacement

    async def delete(self, product_id: UUID) -> None:
        product = await self.get(product_id)
        removed = await self.stock.delete_unused_for_product(product.id)
        await self.db.delete(product)
        await self.db.commit()
        logger.info(
            f"Product deleted ({removed} unused stock items removed)",
            extra={"product_id": product_id},
        )

    async def clone(self, product_id: UUID) -> Product:
        """Copy a product (without stock) under a fresh, unique slug."""
        source = await self.get(product_id)
        product = Product(
            name=f"{source.name} (copy)",
            slug=await self._free_slug(f"{source.slug}-copy"),
            description=source.description,
            short_description=source.short_description,
            images=list(source.images or []),
            category_id=source.category_id,
            price=source.price,
            original_price=source.original_price,
            discount_percentage=source.discount_percentage,
            featured=False,
            status=source.status,
            delivery_type=source.delivery_type,
            variants=[
                ProductVariant(
                    name=v.name, description=v.description, price=v.price,
                    features=list(v.features or []), delivery_type=v.delivery_type,
                    position=v.position,
                )
                for v in source.variants
            ],
        )
        self.db.add(product)
        await self.db.flush()
        await self.stock.refresh_stock_counts(product)
        await self.db.commit()
        logger.info("Product cloned", extra={"product_id": product.id})
        return product

    async def _slug_taken(self, slug: str, exclude: UUID | None = None) -> bool:
        query = select(Product.id).where(Product.slug == slug)
        if exclude is not None:
            query = query.where(Product.id != exclude)
        return (await self.db.execute(query)).first() is not None

    async def _free_slug(self, text: str) -> str:
        base = slugify(text) or "product"
        result = await self.db.execute(
            select(Product.slug).where(
                or_(Product.slug == base, Product.slug.like(f"{base}-%")),
            ),
        )
        return unique_slug(base, set(result.scalars().all()))


def _new_variant(data: VariantInput, position: int) -> ProductVariant:
    return ProductVariant(
        name=data.name.strip(),
        description=data.description,
        price=data.price,
        features=list(data.features),
        delivery_type=data.delivery_type.value,
        position=position,
    )
