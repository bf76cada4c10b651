from datetime import datetime
from typing import Annotated, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field

from .textutil import clean_pairs, clean_text, clean_title, is_placeholder_value, uniq_by

OPEN = "open"


class PriceTier(BaseModel):
    model_config = ConfigDict(frozen=True)

    range_label: str = ""
    min: int = Field(ge=0)
    max: Union[int, Literal["open"]] = OPEN   # "open" = no upper bound
    price: str

    @property
    def is_open(self) -> bool:
        return self.max == OPEN


class Pair(BaseModel):
    model_config = ConfigDict(frozen=True)

    label: str
    value: str


class Variation(BaseModel):
    model_config = ConfigDict(frozen=True)

    label: str
    image_url: Optional[str] = None


class Supplier(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: Optional[str] = None
    type: Optional[str] = None
    location: Optional[str] = None
    member_since: Optional[str] = None
    logo: Optional[str] = None
    profile_link: Optional[str] = None
    badges: List[str] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not any([self.name, self.type, self.location, self.member_since,
                        self.logo, self.profile_link, self.badges])


class Rating(BaseModel):
    model_config = ConfigDict(frozen=True)

    value: Optional[float] = None
    count: Optional[int] = None


class ProductDetail(BaseModel):
    """Strict per-page detail emitted at the parser boundary."""
    model_config = ConfigDict(frozen=True)

    title: Optional[str] = None
    price_text: Optional[str] = None
    price_tiers: List[PriceTier] = Field(default_factory=list)
    moq_text: Optional[str] = None
    attributes: List[Pair] = Field(default_factory=list)
    packaging: List[Pair] = Field(default_factory=list)
    variations: List[Variation] = Field(default_factory=list)
    supplier: Optional[Supplier] = None
    gallery: List[str] = Field(default_factory=list)
    hero_image: Optional[str] = None
    rating: Optional[Rating] = None
    sold_count: Optional[int] = None
    protections: List[str] = Field(default_factory=list)
    sample_price: Optional[str] = None
    source_url: Optional[str] = None
    debug_source: Optional[str] = None
    debug: List[str] = Field(default_factory=list)


class NormalizedDetail(ProductDetail):
    """Canonical merged record consumed downstream and persisted as JSON."""
    moq: int = Field(default=1, ge=1)
    synthesized: List[str] = Field(default_factory=list)


class ListingFallback(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: Optional[str] = None
    price_raw: Optional[str] = None
    price_min: Optional[float] = None
    price_max: Optional[float] = None
    currency: Optional[str] = None
    orders_raw: Optional[str] = None
    image: Optional[str] = None


class ListingSummary(BaseModel):
    """One search-result card."""
    title: str = ""
    url: str
    image: str = ""
    price_raw: Optional[str] = None
    moq_text: Optional[str] = None
    store_name: Optional[str] = None
    orders_raw: Optional[str] = None
    platform: Optional[str] = None

    def fallback(self) -> ListingFallback:
        return ListingFallback(
            title=self.title or None,
            price_raw=self.price_raw,
            orders_raw=self.orders_raw,
            image=self.image or None,
        )


class ListingRecord(BaseModel):
    id: str
    url: Optional[str] = None
    title: Optional[str] = None
    price_raw: Optional[str] = None
    price_min: Optional[float] = None
    price_max: Optional[float] = None
    currency: Optional[str] = None
    orders_raw: Optional[str] = None
    image: Optional[str] = None
    detail_json: Optional[dict] = None
    cached_at: Optional[datetime] = None
    scrape_status: Optional[str] = None

    def fallback(self) -> ListingFallback:
        return ListingFallback(
            title=self.title,
            price_raw=self.price_raw,
            price_min=self.price_min,
            price_max=self.price_max,
            currency=self.currency,
            orders_raw=self.orders_raw,
            image=self.image,
        )


# ------------------------------------------------------------------ #
# Per-source raw drafts (mutable while a parser fills them in)
# ------------------------------------------------------------------ #
class _DraftBase(BaseModel):
    source: str = ""
    title: str = ""
    price_text: str = ""
    price_tiers: List[PriceTier] = Field(default_factory=list)
    price_source: Optional[str] = None
    moq_text: Optional[str] = None
    attributes: List[Tuple[str, str]] = Field(default_factory=list)
    packaging: List[Tuple[str, str]] = Field(default_factory=list)
    variations: List[Variation] = Field(default_factory=list)
    supplier: Supplier = Field(default_factory=Supplier)
    gallery: List[str] = Field(default_factory=list)
    hero_image: Optional[str] = None
    rating: Optional[Rating] = None
    sold_count: Optional[int] = None
    source_url: Optional[str] = None
    debug: List[str] = Field(default_factory=list)

    def _common(self) -> dict:
        variations = [v for v in self.variations if v.image_url and not is_placeholder_value(v.label)]
        supplier = self.supplier if not self.supplier.is_empty() else None
        rating = self.rating if self.rating and (self.rating.value or self.rating.count) else None
        return dict(
            title=clean_title(self.title) or None,
            price_text=clean_text(self.price_text) or None,
            price_tiers=list(self.price_tiers),
            moq_text=clean_text(self.moq_text) or None,
            attributes=[Pair(label=k, value=v) for k, v in clean_pairs(self.attributes)][:24],
            packaging=[Pair(label=k, value=v) for k, v in clean_pairs(self.packaging)],
            variations=uniq_by(variations, lambda v: v.image_url or ""),
            supplier=supplier,
            gallery=list(dict.fromkeys(g for g in self.gallery if g))[:10],
            hero_image=self.hero_image or None,
            rating=rating,
            sold_count=self.sold_count,
            source_url=self.source_url,
            debug_source=f"{self.source}:{self.price_source or 'none'}",
            debug=list(self.debug),
        )

    def to_detail(self) -> ProductDetail:
        return ProductDetail(**self._common())


class AlibabaDraft(_DraftBase):
    source: Literal["alibaba"] = "alibaba"
    sample_price: Optional[str] = None
    protections: List[Tuple[str, str]] = Field(default_factory=list)   # (header, body)

    def to_detail(self) -> ProductDetail:
        protections = []
        for header, body in self.protections:
            line = ": ".join(p for p in (clean_text(header), clean_text(body)) if p)
            if line and not is_placeholder_value(line):
                protections.append(line)
        return ProductDetail(
            **self._common(),
            protections=uniq_by(protections, lambda s: s),
            sample_price=clean_text(self.sample_price) or None,
        )


class MadeInChinaDraft(_DraftBase):
    source: Literal["made-in-china"] = "made-in-china"
    member_since: Optional[str] = None

    def to_detail(self) -> ProductDetail:
        fields = self._common()
        if self.member_since:
            supplier = fields["supplier"] or Supplier()
            fields["supplier"] = supplier.model_copy(update={"member_since": clean_text(self.member_since)})
        return ProductDetail(**fields)


class IndiaMartDraft(_DraftBase):
    source: Literal["indiamart"] = "indiamart"


RawDraft = Annotated[
    Union[AlibabaDraft, MadeInChinaDraft, IndiaMartDraft],
    Field(discriminator="source"),
]
