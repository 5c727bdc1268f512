"""
Multi-Tenant Service: Tenant Validation and Scoping Helpers

WHY: Every engine operation is scoped to one organization. Ids coming from
client input (location, product, customer, drawer) must be validated
against that organization before they are used.

INVARIANTS:
1. A row from another organization is reported exactly like a missing row
   (NotFoundError), so callers cannot probe for foreign ids
2. Services receive org_id explicitly; the HTTP layer takes it from g.org_id
"""

import logging

from ..errors import NotFoundError
from ..extensions import db
from ..models import CashDrawer, Customer, Location, Organization, Product

logger = logging.getLogger(__name__)


def _require_in_org(model, row_id, org_id: int, label: str, *, lock: bool = False):
    if row_id is None:
        raise NotFoundError(f"{label} not found")
    query = db.session.query(model).filter_by(id=row_id)
    if lock:
        query = query.with_for_update().populate_existing()
    row = query.first()
    if row is None or row.org_id != org_id:
        if row is not None:
            logger.warning(
                "Cross-tenant reference denied: %s %s belongs to org %s, not %s",
                label, row_id, row.org_id, org_id,
            )
        raise NotFoundError(f"{label} not found", {f"{model.__tablename__[:-1]}_id": row_id})
    return row


def require_organization(org_id: int) -> Organization:
    org = db.session.get(Organization, org_id)
    if org is None or not org.is_active:
        raise NotFoundError("Organization not found", {"org_id": org_id})
    return org


def require_location_in_org(location_id: int, org_id: int) -> Location:
    return _require_in_org(Location, location_id, org_id, "Location")


def require_product_in_org(product_id: int, org_id: int) -> Product:
    return _require_in_org(Product, product_id, org_id, "Product")


def require_customer_in_org(customer_id: int, org_id: int, *, lock: bool = False) -> Customer:
    return _require_in_org(Customer, customer_id, org_id, "Customer", lock=lock)


def require_drawer_in_org(drawer_id: int, org_id: int) -> CashDrawer:
    return _require_in_org(CashDrawer, drawer_id, org_id, "Cash drawer")
