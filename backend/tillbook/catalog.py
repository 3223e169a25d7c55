# Overview: Optional hook into the external catalog service for line-item validation.

"""
The catalog (products, variants, prices) lives outside this service. A host
application may register a lookup so sale lines are checked against it:

    def lookup(variant_id: int, location_id: int) -> int | None:
        # current unit price in cents, or None if the variant is not sold there
        ...

    register_catalog(app, lookup)

With no lookup registered, line items are accepted as submitted.
"""

from __future__ import annotations

from typing import Callable, Optional

from flask import Flask, current_app

PriceLookup = Callable[[int, int], Optional[int]]

_EXTENSION_KEY = "tillbook.catalog"


def register_catalog(app: Flask, lookup: PriceLookup | None) -> None:
    app.extensions[_EXTENSION_KEY] = lookup


def get_catalog() -> PriceLookup | None:
    return current_app.extensions.get(_EXTENSION_KEY)
