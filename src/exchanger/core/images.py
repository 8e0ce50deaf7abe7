"""
Listing image references.

A listing image is either a bare URL or a rich upload record. Older
listings stored bare strings and untagged objects side by side, so every
read goes through :func:`normalize_images`, which turns whatever is
stored into the tagged variants below. New writes always store the
tagged form produced by :func:`dump_images`.
"""
from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Iterable, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from .errors import ValidationError


class PlainImage(BaseModel):
    """An image referenced only by its URL."""

    kind: Literal["plain"] = "plain"
    url: str = Field(..., min_length=1)


class RichImage(BaseModel):
    """An uploaded image with its file metadata."""

    model_config = ConfigDict(populate_by_name=True)

    kind: Literal["rich"] = "rich"
    url: str = Field(..., min_length=1)
    filename: Optional[str] = None
    mimetype: Optional[str] = None
    size: Optional[int] = Field(None, ge=0)
    uploaded_at: datetime = Field(default_factory=datetime.utcnow, alias="uploadedAt")


ListingImage = Annotated[Union[PlainImage, RichImage], Field(discriminator="kind")]

_image_adapter: TypeAdapter = TypeAdapter(ListingImage)


def normalize_image(value: Any) -> Union[PlainImage, RichImage]:
    """Convert one stored or submitted image entry into a tagged variant.

    Strings become :class:`PlainImage`. Objects carrying a ``kind`` are
    validated against that variant; untagged objects are upload records
    and become :class:`RichImage`.

    :raises ValueError: if the entry cannot be interpreted.
    """
    if isinstance(value, (PlainImage, RichImage)):
        return value
    if isinstance(value, str):
        return PlainImage(url=value.strip())
    if isinstance(value, dict):
        if "kind" in value:
            return _image_adapter.validate_python(value)
        return RichImage.model_validate(value)
    raise ValueError(f"unsupported image entry of type {type(value).__name__}")


def normalize_images(values: Optional[Iterable[Any]], strict: bool = False) -> List[Union[PlainImage, RichImage]]:
    """Normalize a sequence of image entries, keeping their order.

    With ``strict`` unset, entries that cannot be interpreted (no usable
    url, unknown shape) are skipped. With ``strict`` set they raise a
    domain :class:`ValidationError`, which is what writes want.
    """
    images: List[Union[PlainImage, RichImage]] = []
    for index, value in enumerate(values or []):
        try:
            images.append(normalize_image(value))
        except (ValueError, PydanticValidationError) as exc:
            if strict:
                raise ValidationError(f"Invalid image at position {index}", position=index) from exc
    return images


def dump_images(values: Optional[Iterable[Any]]) -> List[dict]:
    """Validate submitted images and return their storable JSON form."""
    return [image.model_dump(mode="json", by_alias=True) for image in normalize_images(values, strict=True)]


def image_urls(values: Optional[Iterable[Any]]) -> List[str]:
    """Return the URL of every usable image entry, in order."""
    return [image.url for image in normalize_images(values)]
