"""External collaborators: photo storage and barcode lookup."""

from .storage import BlobStore, S3BlobStore
from .barcode import BarcodeProduct, BarcodeResolver, OpenFoodFactsResolver

__all__ = [
    "BlobStore",
    "S3BlobStore",
    "BarcodeProduct",
    "BarcodeResolver",
    "OpenFoodFactsResolver",
]
