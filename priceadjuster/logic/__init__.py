"""Pricing decision logic."""

from __future__ import annotations

import pathlib
from dataclasses import dataclass
from decimal import Decimal

import yaml

CATEGORIES_PATH = pathlib.Path(__file__).with_name("categories.yml")
DEFAULT_BUCKET = "default"


@dataclass(slots=True, frozen=True)
class CategoryBucket:
    name: str
    keywords: tuple[str, ...]
    markup_min: Decimal
    markup_max: Decimal


def load_category_buckets(path: pathlib.Path = CATEGORIES_PATH) -> list[CategoryBucket]:
    data = yaml.safe_load(path.read_text())
    buckets = [
        CategoryBucket(
            name=item["name"],
            keywords=tuple(str(k).lower() for k in item.get("keywords") or ()),
            markup_min=Decimal(str(item["markup"]["min"])),
            markup_max=Decimal(str(item["markup"]["max"])),
        )
        for item in data
    ]
    if not any(b.name == DEFAULT_BUCKET for b in buckets):
        raise ValueError(f"{path} must define a '{DEFAULT_BUCKET}' bucket")
    return buckets
