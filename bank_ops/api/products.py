"""
Bank product catalog endpoints (read only)
"""

from typing import Optional
from fastapi import APIRouter, HTTPException, Depends

from .auth import BankingSystem, get_banking_system
from ..products import ProductCategory


router = APIRouter()


@router.get("")
def list_products(
    category: Optional[ProductCategory] = None,
    system: BankingSystem = Depends(get_banking_system)
):
    """Active products, optionally for one category"""
    return {"products": [p.to_dict() for p in system.products.list_products(category=category)]}


@router.get("/{product_code}")
def get_product(
    product_code: str,
    system: BankingSystem = Depends(get_banking_system)
):
    product = system.products.get_product(product_code)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product.to_dict()
