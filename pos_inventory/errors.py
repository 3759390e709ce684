"""Error taxonomy for the inventory/costing layer.

An undefined cost (zero purchased volume) is not an error: cost lookups
return ``None`` for it and callers must show it as unknown, never as zero.
"""


class InventoryError(Exception):
    """Base class for every error raised by the inventory layer."""


class ValidationError(InventoryError, ValueError):
    """Malformed identifier, cursor, quantity or direction."""


class InsufficientStockError(ValidationError):
    """An ``out`` movement would take a variant's stock below zero."""

    def __init__(self, variant_id: str, current: int, requested: int):
        self.variant_id = variant_id
        self.current = current
        self.requested = requested
        super().__init__(
            f"Insufficient stock for variant {variant_id}. Current: {current}, requested out: {requested}"
        )


class NotFoundError(InventoryError, LookupError):
    """A referenced product, variant, vendor or movement does not exist."""

    def __init__(self, kind: str, ident: str):
        self.kind = kind
        self.ident = ident
        super().__init__(f"{kind} {ident} not found")


class FetchError(InventoryError):
    """The row store could not serve a read.

    Raised for any failed page during a multi-page fold; the aggregation is
    abandoned rather than returning a partial result.
    """
