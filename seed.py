"""
Demo catalogue and the seeding routine behind /api/admin/seed.
"""
from datetime import timedelta
from typing import Dict, List

import structlog

from database import CATEGORIES, PRODUCTS, DocumentStore
from results import Err, Ok, Result
from schemas import Category, Product, utcnow

logger = structlog.get_logger(__name__)

DEMO_CATEGORIES: List[dict] = [
    {"id": "electronics", "name": "Electronics", "description": "Latest gadgets and electronic devices"},
    {"id": "fashion", "name": "Fashion", "description": "Trendy clothing and accessories"},
    {"id": "home", "name": "Home & Garden", "description": "Everything for your home and garden"},
    {"id": "sports", "name": "Sports & Fitness", "description": "Sports equipment and fitness gear"},
    {"id": "books", "name": "Books", "description": "Books, magazines, and educational materials"},
    {"id": "beauty", "name": "Beauty & Health", "description": "Beauty products and health supplements"},
]

DEMO_PRODUCTS: List[dict] = [
    {
        "id": "iphone_15_pro",
        "name": "iPhone 15 Pro",
        "description": "Titanium design, A17 Pro chip, pro camera system",
        "price": 999.0,
        "original_price": 1099.0,
        "discount_percentage": 9,
        "category": "electronics",
        "brand": "Apple",
        "images": [
            "https://images.unsplash.com/photo-1592750475338-74b7b21085ab?w=400",
        ],
        "rating": 4.8,
        "review_count": 1250,
        "stock_quantity": 50,
        "sizes": ["128GB", "256GB", "512GB"],
        "colors": ["Natural Titanium", "Blue Titanium", "Black Titanium"],
        "specifications": {"Display": "6.1-inch Super Retina XDR", "Chip": "A17 Pro"},
        "is_featured": True,
    },
    {
        "id": "galaxy_s24_ultra",
        "name": "Galaxy S24 Ultra",
        "description": "Dynamic AMOLED, built-in S Pen, on-device AI",
        "price": 899.0,
        "original_price": 1199.0,
        "discount_percentage": 25,
        "category": "electronics",
        "brand": "Samsung",
        "images": [
            "https://images.unsplash.com/photo-1610945265064-0e34e5519bbf?w=400",
        ],
        "rating": 4.7,
        "review_count": 890,
        "stock_quantity": 70,
        "sizes": ["256GB", "512GB"],
        "colors": ["Titanium Gray", "Titanium Black"],
        "specifications": {"Display": "6.8-inch QHD+", "Battery": "5000mAh"},
        "is_flash_sale": True,
        "flash_sale_hours": 24,
    },
    {
        "id": "sony_wh1000xm5",
        "name": "Sony WH-1000XM5",
        "description": "Noise-cancelling headphones",
        "price": 349.0,
        "category": "electronics",
        "brand": "Sony",
        "images": [
            "https://images.unsplash.com/photo-1518441902110-9d8f13635159?w=400",
        ],
        "rating": 4.7,
        "review_count": 640,
        "stock_quantity": 100,
        "colors": ["Black", "Silver"],
        "specifications": {"Connectivity": "Bluetooth 5.2", "Battery": "30 hours"},
        "is_featured": True,
    },
    {
        "id": "nike_air_max_270",
        "name": "Nike Air Max 270",
        "description": "Lightweight running shoe with a large Air unit",
        "price": 150.0,
        "category": "fashion",
        "brand": "Nike",
        "images": [
            "https://images.unsplash.com/photo-1542291026-7eec264c27ff?w=400",
        ],
        "rating": 4.5,
        "review_count": 420,
        "stock_quantity": 200,
        "sizes": ["40", "41", "42", "43", "44"],
        "colors": ["Black", "White", "Red"],
        "is_featured": True,
    },
    {
        "id": "zara_wool_coat",
        "name": "Wool Blend Coat",
        "description": "Tailored winter coat",
        "price": 89.0,
        "original_price": 129.0,
        "discount_percentage": 31,
        "category": "fashion",
        "brand": "Zara",
        "images": [
            "https://images.unsplash.com/photo-1544441892-7d2fbe2d8ffd?w=400",
        ],
        "rating": 4.2,
        "review_count": 75,
        "stock_quantity": 120,
        "sizes": ["S", "M", "L"],
        "colors": ["Camel", "Navy"],
    },
    {
        "id": "dyson_v15_detect",
        "name": "Dyson V15 Detect",
        "description": "Cordless vacuum with laser dust detection",
        "price": 649.0,
        "category": "home",
        "brand": "Dyson",
        "images": [
            "https://images.unsplash.com/photo-1558618666-fcd25c85cd64?w=400",
        ],
        "rating": 4.6,
        "review_count": 310,
        "stock_quantity": 0,
        "in_stock": False,
    },
    {
        "id": "yoga_mat_pro",
        "name": "Pro Yoga Mat",
        "description": "6mm non-slip mat",
        "price": 29.99,
        "category": "sports",
        "brand": "Manduka",
        "images": [
            "https://images.unsplash.com/photo-1571019613454-1cb2f99b2d8b?w=400",
        ],
        "rating": 4.4,
        "review_count": 150,
        "stock_quantity": 80,
        "colors": ["Purple", "Black"],
    },
    {
        "id": "atomic_habits",
        "name": "Atomic Habits",
        "description": "An easy and proven way to build good habits",
        "price": 16.99,
        "category": "books",
        "brand": "Avery",
        "images": [
            "https://images.unsplash.com/photo-1481627834876-b7833e8f5570?w=400",
        ],
        "rating": 4.9,
        "review_count": 5100,
        "stock_quantity": 300,
    },
]


def build_products(now=None) -> List[Product]:
    now = now or utcnow()
    categories: Dict[str, Category] = {c["id"]: Category(**c) for c in DEMO_CATEGORIES}
    products = []
    for raw in DEMO_PRODUCTS:
        data = dict(raw)
        data["category"] = categories[data["category"]]
        hours = data.pop("flash_sale_hours", None)
        if hours:
            data["flash_sale_end_time"] = now + timedelta(hours=hours)
        products.append(Product(created_at=now, updated_at=now, **data))
    return products


def seed_catalogue(store: DocumentStore, force: bool = False, now=None) -> Result[Dict[str, int]]:
    """Write the demo catalogue. Without ``force`` an existing catalogue is left alone."""
    if not force:
        existing = store.count(PRODUCTS)
        if isinstance(existing, Err):
            return existing
        if existing.value > 0:
            return Ok({"categories": 0, "products": 0})

    for category in DEMO_CATEGORIES:
        written = store.put(CATEGORIES, category["id"], Category(**category).model_dump())
        if isinstance(written, Err):
            return written

    products = build_products(now)
    for product in products:
        written = store.put(PRODUCTS, product.id, product.to_document())
        if isinstance(written, Err):
            return written

    logger.info("seed.done", categories=len(DEMO_CATEGORIES), products=len(products))
    return Ok({"categories": len(DEMO_CATEGORIES), "products": len(products)})
