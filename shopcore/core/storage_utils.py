# shopcore/core/storage_utils.py
import logging
import uuid

from supabase import Client

from shopcore.core.config import get_settings
from shopcore.core.errors import BlobStoreError
from shopcore.core.supabase_client import supabase_admin

logger = logging.getLogger(__name__)

ALLOWED_IMAGE_CONTENT_TYPES: dict[str, str] = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
}


def generate_filename(ext: str) -> str:
    """
    Generate a random filename using UUID4.

    Args:
        ext: File extension without dot (e.g. "png", "jpg")

    Returns:
        A filename like "<uuid4>.png"
    """
    return f"{uuid.uuid4()}.{ext}"


def product_prefix(product_id: uuid.UUID) -> str:
    return f"products/{product_id}/images/"


class SupabaseImageStore:
    """
    Product image blobs in a Supabase Storage bucket.

    References returned by `store` are object paths inside the bucket:
        products/<product_id>/images/<uuid>.<ext>

    Every client failure is re-raised as BlobStoreError.
    """

    def __init__(self, client: Client | None = None, bucket: str | None = None):
        self._client = client
        self.bucket = bucket or get_settings().STORAGE_BUCKET

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = supabase_admin()
        return self._client

    def store(self, upload, product_id: uuid.UUID) -> str:
        """
        Upload an image for a product and return its object path.
        """
        ext = ALLOWED_IMAGE_CONTENT_TYPES.get(upload.content_type)
        if ext is None:
            raise BlobStoreError(f"unsupported content type: {upload.content_type}")

        path = product_prefix(product_id) + generate_filename(ext)
        try:
            self.client.storage.from_(self.bucket).upload(
                path,
                upload.data,
                {"content-type": upload.content_type, "upsert": "false"},
            )
        except Exception as exc:
            raise BlobStoreError(f"upload of {path} failed: {exc}") from exc
        logger.debug("stored image %s", path)
        return path

    def delete(self, reference: str, product_id: uuid.UUID) -> None:
        """
        Remove a stored image. The reference must belong to the product.
        """
        if not reference.startswith(product_prefix(product_id)):
            raise BlobStoreError(
                f"{reference} is not stored under product {product_id}"
            )
        try:
            # Supabase Python client expects a list of paths.
            self.client.storage.from_(self.bucket).remove([reference])
        except Exception as exc:
            raise BlobStoreError(f"removal of {reference} failed: {exc}") from exc

    def public_url(self, reference: str) -> str:
        try:
            return self.client.storage.from_(self.bucket).get_public_url(reference)
        except Exception as exc:
            raise BlobStoreError(f"public url for {reference} failed: {exc}") from exc
