"""Supply-list domain models: pure Python, no DB or HTTP dependencies."""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import List, Optional

# Catalog link states
UNMATCHED = "unmatched"
MATCHED = "matched"
AMBIGUOUS = "ambiguous"
LINK_STATES = {UNMATCHED, MATCHED, AMBIGUOUS}


@dataclass
class MaterialItem:
    id: str
    name: str
    ordinal: int
    quantity: int = 1
    isbn: Optional[str] = None
    brand: Optional[str] = None
    price: Optional[float] = None
    category: Optional[str] = None
    subject: Optional[str] = None
    description: Optional[str] = None
    mandatory: bool = True
    purchasable: bool = True
    validated: bool = False
    approved: bool = False
    approved_at: Optional[str] = None
    catalog_link_state: str = UNMATCHED
    catalog_ref: Optional[str] = None
    match_score: Optional[float] = None
    created_at: str = ""
    updated_at: Optional[str] = None


@dataclass
class ListVersion:
    version_timestamp: str
    last_modified: Optional[str] = None
    source_document_ref: Optional[str] = None
    items: List[MaterialItem] = field(default_factory=list)


@dataclass
class Course:
    id: str
    name: str = ""
    level: Optional[str] = None
    grade: Optional[str] = None
    year: Optional[int] = None
    school_id: Optional[str] = None
    active: bool = True
    versions: List[ListVersion] = field(default_factory=list)
    revision: Optional[str] = None  # opaque token for compare-and-swap saves


@dataclass
class CatalogEntry:
    id: str
    name: str
    sku: Optional[str] = None
    brand: Optional[str] = None
    price: Optional[float] = None


@dataclass
class MatchResult:
    state: str
    score: float = 0.0
    catalog_ref: Optional[str] = None
    candidates: List[str] = field(default_factory=list)
