"""
Request bodies for the HTTP API.

Required fields are Optional here and checked in the routes so that a missing
field produces the API's own 400 message instead of a generic validation error.
"""

from datetime import date
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RFPCreateRequest(CamelModel):
    description: Optional[str] = None


class RFPUpdateRequest(CamelModel):
    title: Optional[str] = None
    description: Optional[str] = None
    budget: Optional[float] = None
    deadline: Optional[date] = None
    requirements: Optional[List[Dict[str, Any]]] = None
    payment_terms: Optional[str] = None
    warranty_req: Optional[str] = None
    delivery_terms: Optional[str] = None
    status: Optional[str] = None


class VendorCreateRequest(CamelModel):
    name: Optional[str] = None
    email: Optional[str] = None
    company: Optional[str] = None


class VendorUpdateRequest(CamelModel):
    name: Optional[str] = None
    email: Optional[str] = None
    company: Optional[str] = None


class SendRFPRequest(CamelModel):
    vendor_ids: Optional[List[int]] = None
