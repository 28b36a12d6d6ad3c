"""
Bank Product Catalog Module

Read-only catalog of the products the bank offers (account types, loan
lines, services). The catalog is reference data: it is seeded once and
only listed afterwards.
"""

from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Dict, List, Optional
from enum import Enum
import uuid

from .storage import StorageInterface, StorageRecord, PRODUCTS_TABLE, parse_datetime
from .logging_config import get_logger


class ProductCategory(Enum):
    """Catalog sections"""
    ACCOUNTS = "accounts"
    LOANS = "loans"
    SERVICES = "services"


@dataclass
class BankProduct(StorageRecord):
    """Catalog entry"""
    product_code: str
    product_name: str
    category: ProductCategory
    requires_approval: bool = False
    description: Optional[str] = None
    active: bool = True

    @classmethod
    def from_dict(cls, data: Dict) -> 'BankProduct':
        return cls(
            id=data['id'],
            created_at=parse_datetime(data['created_at']),
            updated_at=parse_datetime(data['updated_at']),
            product_code=data['product_code'],
            product_name=data['product_name'],
            category=ProductCategory(data['category']),
            requires_approval=data.get('requires_approval', False),
            description=data.get('description'),
            active=data.get('active', True)
        )


# (code, name, category, requires_approval, description)
DEFAULT_PRODUCTS = [
    ("CTA-AHO", "Savings Account", ProductCategory.ACCOUNTS, False, "Standard savings account"),
    ("CTA-CTE", "Checking Account", ProductCategory.ACCOUNTS, False, "Checking account"),
    ("PRE-PER", "Personal Loan", ProductCategory.LOANS, True, "Personal loan"),
    ("PRE-HIP", "Mortgage Loan", ProductCategory.LOANS, True, "Mortgage loan"),
    ("PRE-EMP", "Corporate Loan", ProductCategory.LOANS, True, "Corporate loan"),
]


class ProductCatalog:
    """Lists the bank's products"""

    def __init__(self, storage: StorageInterface):
        self.storage = storage
        self.table_name = PRODUCTS_TABLE
        self.logger = get_logger("bank_ops.products")

    def seed_defaults(self) -> int:
        """
        Insert the default products whose code is not in the catalog yet

        Returns:
            Number of products added
        """
        added = 0
        with self.storage.atomic():
            for code, name, category, requires_approval, description in DEFAULT_PRODUCTS:
                if self.get_product(code):
                    continue
                now = datetime.now(timezone.utc)
                product = BankProduct(
                    id=str(uuid.uuid4()),
                    created_at=now,
                    updated_at=now,
                    product_code=code,
                    product_name=name,
                    category=category,
                    requires_approval=requires_approval,
                    description=description
                )
                self.storage.insert(self.table_name, product.id, product.to_dict())
                added += 1

        if added:
            self.logger.info(f"Seeded {added} bank products")
        return added

    def get_product(self, product_code: str) -> Optional[BankProduct]:
        """Get product by its catalog code"""
        found = self.storage.find(self.table_name, {'product_code': product_code})
        if found:
            return BankProduct.from_dict(found[0])
        return None

    def list_products(self, category: Optional[ProductCategory] = None,
                      active_only: bool = True) -> List[BankProduct]:
        """Products ordered by code"""
        products = [BankProduct.from_dict(d) for d in self.storage.load_all(self.table_name)]
        if category:
            products = [p for p in products if p.category == category]
        if active_only:
            products = [p for p in products if p.active]
        return sorted(products, key=lambda p: p.product_code)
