"""YAML catalog loader."""
import logging
from pathlib import Path
from typing import List, Optional, Union
import yaml
from pydantic import BaseModel

from campusbite.db.models import MenuItem, User, VendorProfile
from campusbite.services.money import to_money
from campusbite.services.persistence.catalog import CatalogPersistenceService

logger = logging.getLogger(__name__)


class CatalogUser(BaseModel):
    id: str
    email: str
    full_name: str
    phone: Optional[str] = None
    role: str = "student"


class CatalogVendor(BaseModel):
    id: str
    business_name: str
    business_phone: Optional[str] = None
    logo_url: Optional[str] = None
    address: str = ""
    delivery_fee: float = 0.0
    minimum_order_amount: float = 0.0
    is_active: bool = True
    is_accepting_orders: bool = True


class CatalogMenuItem(BaseModel):
    id: str
    vendor_id: str
    name: str
    description: Optional[str] = None
    price: float
    image_url: Optional[str] = None
    is_available: bool = True


class Catalog(BaseModel):
    """Seed data: accounts, storefronts and their menus."""

    users: List[CatalogUser] = []
    vendors: List[CatalogVendor] = []
    menu_items: List[CatalogMenuItem] = []


class CatalogLoader:
    """Loads a catalog YAML file into the database."""

    def __init__(self, catalog_file: Union[str, Path]):
        self.catalog_file = Path(catalog_file)

    def read(self) -> Catalog:
        """Parse the YAML file."""
        with open(self.catalog_file, "r") as f:
            data = yaml.safe_load(f) or {}
        return Catalog(**data)

    async def load_into(self, catalog_service: CatalogPersistenceService) -> Catalog:
        """Upsert every user, vendor and menu item from the file."""
        catalog = self.read()
        rows = [User(**user.model_dump()) for user in catalog.users]
        rows += [
            VendorProfile(
                **vendor.model_dump(exclude={"delivery_fee", "minimum_order_amount"}),
                delivery_fee=to_money(vendor.delivery_fee),
                minimum_order_amount=to_money(vendor.minimum_order_amount),
            )
            for vendor in catalog.vendors
        ]
        rows += [
            MenuItem(**item.model_dump(exclude={"price"}), price=to_money(item.price))
            for item in catalog.menu_items
        ]
        await catalog_service.upsert_all(rows)
        logger.info(
            f"[CATALOG] Loaded {len(catalog.users)} users, {len(catalog.vendors)} vendors, "
            f"{len(catalog.menu_items)} menu items from {self.catalog_file}"
        )
        return catalog
