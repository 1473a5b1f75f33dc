"""
Product endpoints. Only the discount surface touched by offers is exposed.
"""
from typing import List
from fastapi import APIRouter, Depends, HTTPException, status, Query, Request
from sqlalchemy import select
from sqlalchemy.orm import Session
from storefront.api.deps import get_db
from storefront.models.db import Product
from storefront.models.schemas.products import ProductCreate, ProductRead
from storefront.utils import get_logger, log_business_event

router = APIRouter()
logger = get_logger(__name__)


@router.post(
    "/",
    response_model=ProductRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create product"
)
async def create_product(
    product_data: ProductCreate,
    request: Request,
    db: Session = Depends(get_db)
) -> ProductRead:
    request_id = request.headers.get("X-Request-ID", "unknown")

    if product_data.slug:
        existing = db.scalar(select(Product.id).where(Product.slug == product_data.slug))
        if existing is not None:
            logger.warning(
                "Product creation failed: duplicate slug",
                slug=product_data.slug,
                existing_product_id=existing,
                request_id=request_id
            )
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"Product with slug '{product_data.slug}' already exists"
            )

    product = Product(**product_data.model_dump())
    db.add(product)
    db.commit()
    db.refresh(product)

    log_business_event(
        event_type="product_created",
        details={"product_id": product.id, "name": product.name},
        request_id=request_id
    )
    return ProductRead.model_validate(product)


@router.get(
    "/",
    response_model=List[ProductRead],
    summary="List products"
)
async def list_products(
    limit: int = Query(100, ge=1, le=1000),
    skip: int = Query(0, ge=0),
    db: Session = Depends(get_db)
) -> List[ProductRead]:
    products = db.scalars(select(Product).order_by(Product.id).offset(skip).limit(limit)).all()
    return [ProductRead.model_validate(p) for p in products]


@router.get(
    "/{product_id}",
    response_model=ProductRead,
    summary="Get product"
)
async def get_product(
    product_id: int,
    db: Session = Depends(get_db)
) -> ProductRead:
    product = db.get(Product, product_id)
    if product is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Product with id {product_id} not found"
        )
    return ProductRead.model_validate(product)
