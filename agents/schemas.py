"""
Typed records for the three extraction contracts.

Models accept the camelCase keys the extraction model is prompted to emit and
are validated in strict mode: a price sent as "900" is a schema failure, not a
coercion. Optional fields accept null.
"""

from typing import Any, Dict, List, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from core.errors import SchemaValidationError

Number = Union[int, float]


class OracleRecord(BaseModel):
    model_config = ConfigDict(
        strict=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_json_dict(self) -> Dict[str, Any]:
        """camelCase, JSON-safe dict for storage and API responses"""
        return self.model_dump(by_alias=True, mode="json")


# ============== RFP extraction ==============

class RequirementItem(OracleRecord):
    item: str
    quantity: Optional[Number] = None
    specifications: Optional[Dict[str, Any]] = None


class RFPExtraction(OracleRecord):
    title: str
    description: Optional[str] = None
    budget: Optional[Number] = None
    deadline: Optional[str] = None
    requirements: List[RequirementItem] = Field(default_factory=list)
    payment_terms: Optional[str] = None
    warranty_req: Optional[str] = None
    delivery_terms: Optional[str] = None


# ============== Proposal extraction ==============

class LineItem(OracleRecord):
    item: str
    quantity: Optional[Number] = None
    unit_price: Optional[Number] = None
    total_price: Optional[Number] = None
    specifications: Optional[Dict[str, Any]] = None


class ProposalExtraction(OracleRecord):
    total_price: Optional[Number] = None
    currency: Optional[str] = None
    delivery_date: Optional[str] = None
    payment_terms: Optional[str] = None
    warranty: Optional[str] = None
    line_items: Optional[List[LineItem]] = None
    terms: Optional[Dict[str, Any]] = None
    summary: Optional[str] = None


# ============== Comparison ==============

class VendorScore(OracleRecord):
    vendor_id: int
    vendor_name: str
    total_score: float = Field(ge=0, le=100)
    price_score: float = Field(ge=0, le=100)
    terms_score: float = Field(ge=0, le=100)
    completeness_score: float = Field(ge=0, le=100)
    compliance_score: float = Field(ge=0, le=100)


class Recommendation(OracleRecord):
    vendor_id: int
    vendor_name: str
    reasoning: str


class ComparisonResult(OracleRecord):
    scores: List[VendorScore]
    recommendation: Recommendation
    summary: str
    detailed_comparison: str


T = TypeVar("T", bound=OracleRecord)


def validate_record(model: Type[T], data: Any, schema_name: str) -> T:
    """Validate recovered JSON against a record type or raise SchemaValidationError."""
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        raise SchemaValidationError(schema_name, e.errors(include_url=False)) from e
