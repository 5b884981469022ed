from pydantic import BaseModel, Field, field_validator


class ListingCreate(BaseModel):
    title: str = Field(min_length=1)
    body_html: str = ""
    price: str = Field(min_length=1)
    storefront_user_id: str = Field(min_length=1)

    # metafields in the "custom" namespace
    size: str = Field(min_length=1)
    bedrooms: int
    baths: str = Field(min_length=1)

    @field_validator("title", "price", "storefront_user_id", "size", "baths", mode="before")
    @classmethod
    def _strip(cls, v):
        return v.strip() if isinstance(v, str) else v


class ListingUpdate(BaseModel):
    title: str = Field(min_length=1)
    body_html: str = ""
    price: str = Field(min_length=1)
    storefront_user_id: str = Field(min_length=1)

    @field_validator("title", "price", "storefront_user_id", mode="before")
    @classmethod
    def _strip(cls, v):
        return v.strip() if isinstance(v, str) else v


class ListingDelete(BaseModel):
    storefront_user_id: str | None = None

    @field_validator("storefront_user_id", mode="before")
    @classmethod
    def _as_text(cls, v):
        # JSON clients sometimes send numeric customer ids
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v.strip() if isinstance(v, str) else v


class ImageOut(BaseModel):
    src: str


class ListingMutationOut(BaseModel):
    message: str
    productId: int | str
    images: list[ImageOut] = Field(default_factory=list)


class ListingCollectionOut(BaseModel):
    # products are passed through as the catalog returns them, plus "metafields"
    products: list[dict]


class ListingDeletedOut(BaseModel):
    message: str
    product_id: int | str
