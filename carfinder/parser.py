# carfinder/parser.py
"""Normalization of raw ads into `Listing` records.

Model names come from the ad's structured properties when present,
otherwise from a heuristic over the subject line, e.g.

    "Vendo Honda Civic 2015 4p automático" -> "Honda Civic"
    "Gol 1.0 flex"                         -> "Gol"
"""
import re
from datetime import datetime
from typing import Iterable, Optional

from . import config
from .schemas import AdProperty, Listing, RawAd
from .utils import utcnow

UNKNOWN = "Desconhecido"

NOISE_RE = re.compile(
    r"^(vendo|troco|compro|alugo|financio|repasso|barato|urgente|oportunidade|novo|lindo|top)\s+",
    re.I,
)
YEAR_RE = re.compile(r"^(19|20)\d{2}$")
ENGINE_RE = re.compile(r"^\d\.\d$")
SPEC_RE = re.compile(r"^(4p|2p|flex|auto|manual|aut|mt|at)$", re.I)
PRICE_RE = re.compile(r"\d+(?:\.\d+)?")

MODEL_LABELS = ("modelo", "model")
MILEAGE_LABELS = ("quilômet", "quilomet", "mileage", "km")


def extract_model_from_subject(subject: Optional[str]) -> Optional[str]:
    if not subject:
        return None
    text = NOISE_RE.sub("", subject.strip(), count=1)
    words = [w for w in text.split() if not YEAR_RE.match(w) and not ENGINE_RE.match(w)]
    if not words:
        return None
    # take up to two words, unless the second one is a trim token like "4p" or "flex"
    if len(words) >= 2 and not SPEC_RE.match(words[1]):
        return " ".join(words[:2])
    return words[0]


def _find_property(properties: Iterable[AdProperty], labels) -> Optional[AdProperty]:
    for prop in properties:
        label = prop.label.lower()
        if any(key in label for key in labels):
            return prop
    return None


def extract_mileage(properties: Iterable[AdProperty]) -> Optional[int]:
    prop = _find_property(properties, MILEAGE_LABELS)
    if prop is None:
        return None
    digits = re.sub(r"\D", "", prop.value)
    return int(digits) if digits else None


def absolute_url(url: str, base_url: str = config.SITE_BASE_URL) -> str:
    if url.startswith("http://") or url.startswith("https://"):
        return url
    if not url.startswith("/"):
        url = "/" + url
    return base_url.rstrip("/") + url


def parse_ad(ad: RawAd, search_id: str, base_url: str = config.SITE_BASE_URL,
             collected_at: Optional[datetime] = None) -> Listing:
    model_prop = _find_property(ad.properties, MODEL_LABELS)
    model = model_prop.value if model_prop and model_prop.value else None
    if model is None:
        model = extract_model_from_subject(ad.subject)

    location = ad.location
    return Listing(
        list_id=ad.list_id,
        search_id=search_id,
        subject=ad.subject,
        price=ad.price,
        municipality=location.municipality if location else None,
        neighbourhood=location.neighbourhood if location else None,
        ad_url=absolute_url(ad.url, base_url),
        model=model,
        mileage=extract_mileage(ad.properties),
        date_ts=ad.date,
        thumbnail_url=ad.thumbnail,
        collected_at=collected_at or utcnow(),
    )


def parse_price(price: Optional[str]) -> float:
    """'R$ 10.000,50' -> 10000.5; trailing text after the number is ignored,
    0 when no leading number."""
    if not price:
        return 0.0
    clean = re.sub(r"[R$\s.]", "", price).replace(",", ".")
    m = PRICE_RE.match(clean)
    return float(m.group(0)) if m else 0.0


def extract_brand(model: Optional[str]) -> str:
    if not model or not model.strip():
        return UNKNOWN
    return model.split()[0]
