"""Product discount state driven by offer phases.

Each product is updated and committed on its own: one bad reference (missing
product, failing write) is recorded in the report and never blocks the rest
of the batch. Re-applying the same offer is a no-op in effect.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storefront.models.db import Product
from storefront.utils import get_logger

logger = get_logger(__name__)


@dataclass
class MutationReport:
    applied: list[int] = field(default_factory=list)
    skipped: list[int] = field(default_factory=list)
    missing: list[int] = field(default_factory=list)
    failed: list[dict[str, Any]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed

    def as_dict(self) -> dict[str, Any]:
        return {
            "applied": list(self.applied),
            "skipped": list(self.skipped),
            "missing": list(self.missing),
            "failed": list(self.failed),
        }


def _product_id(ref: Mapping[str, Any]) -> Optional[int]:
    raw = ref.get("product")
    try:
        return int(raw) if raw is not None else None
    except (TypeError, ValueError):
        return None


def _mutate_each(session: Session, products: Iterable[Mapping[str, Any]], operation: str, mutate) -> MutationReport:
    """Run ``mutate(product, ref) -> bool`` for each ref, committing per product."""
    report = MutationReport()
    for ref in products:
        product_id = _product_id(ref)
        if product_id is None:
            report.failed.append({"product": ref.get("product"), "error": "invalid product reference"})
            continue
        try:
            product = session.get(Product, product_id)
            if product is None:
                report.missing.append(product_id)
                continue
            if not mutate(product, ref):
                report.skipped.append(product_id)
                continue
            session.commit()
            report.applied.append(product_id)
        except SQLAlchemyError as e:
            session.rollback()
            report.failed.append({"product": product_id, "error": str(e)})
            logger.error("Product discount update failed", operation=operation, product_id=product_id, error=str(e))

    if report.failed or report.missing:
        logger.warning(
            "Product discount update finished with problems",
            operation=operation,
            applied=len(report.applied),
            missing=report.missing,
            failed=len(report.failed),
        )
    else:
        logger.info("Product discount update finished", operation=operation, applied=len(report.applied), skipped=len(report.skipped))
    return report


def apply_offer_start(
    session: Session,
    products: Iterable[Mapping[str, Any]],
    *,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> MutationReport:
    """Activate each product's discount from its offer override.

    Only override fields that are present are written; the offer window is
    recorded on the product when given.
    """
    def _apply(product: Product, ref: Mapping[str, Any]) -> bool:
        if ref.get("offer_discount_type") is not None:
            product.discount_type = int(ref["offer_discount_type"])
        if ref.get("offer_discount_amount") is not None:
            product.discount_amount = ref["offer_discount_amount"]
        if start is not None:
            product.discount_start_date_time = start
        if end is not None:
            product.discount_end_date_time = end
        return True

    return _mutate_each(session, products, "offer_start", _apply)


def apply_offer_end(session: Session, products: Iterable[Mapping[str, Any]]) -> MutationReport:
    """Clear discounts for refs flagged ``reset_discount``; others keep theirs."""
    def _clear(product: Product, ref: Mapping[str, Any]) -> bool:
        if not ref.get("reset_discount"):
            return False
        product.discount_type = None
        product.discount_amount = None
        product.discount_start_date_time = None
        product.discount_end_date_time = None
        return True

    return _mutate_each(session, products, "offer_end", _clear)


def reset_products_on_offer_delete(
    session: Session,
    products: Iterable[Mapping[str, Any]],
    *,
    clear_amounts: bool = False,
) -> MutationReport:
    """Drop the discount window of a deleted offer's products (and type/amount when ``clear_amounts``)."""
    def _reset(product: Product, ref: Mapping[str, Any]) -> bool:
        product.discount_start_date_time = None
        product.discount_end_date_time = None
        if clear_amounts:
            product.discount_type = None
            product.discount_amount = None
        return True

    return _mutate_each(session, products, "offer_delete", _reset)


__all__ = ["MutationReport", "apply_offer_start", "apply_offer_end", "reset_products_on_offer_delete"]
