"""
Prompt templates for the procurement extraction agent.
"""

import json
from datetime import date, timedelta
from typing import Any, Dict, List, Optional

RFP_SYSTEM_PROMPT = (
    "You are a precise procurement data extraction assistant. "
    "Return ONLY a valid JSON object, with no markdown and no commentary."
)

PROPOSAL_SYSTEM_PROMPT = (
    "You extract structured proposal data from vendor responses. "
    "Return ONLY a valid JSON object, with no markdown and no commentary."
)

COMPARISON_SYSTEM_PROMPT = (
    "You are a precise procurement analyst who scores and compares vendor proposals. "
    "Return ONLY a valid JSON object, with no markdown and no commentary."
)


def rfp_extraction_prompt(description: str, today: date) -> str:
    example_deadline = (today + timedelta(days=30)).isoformat()
    return f"""Analyze the procurement request below and extract structured fields.

Current date: {today.isoformat()}
Deadline rules:
- "within N days" or "in N days" means current date + N days (e.g. within 30 days -> {example_deadline})
- an explicit calendar date is used as given
- no deadline mentioned -> null

Request:
{description}

Fields:
- title: short title for the procurement
- description: the full request in clean prose
- budget: total budget as a number without currency symbols, or null
- deadline: "YYYY-MM-DD" or null
- requirements: list of {{"item", "quantity", "specifications"}}; quantity is a number,
  specifications an object of key/value pairs (e.g. {{"RAM": "16GB"}})
- paymentTerms: as stated (e.g. "net 30"), or null
- warrantyReq: as stated, or null
- deliveryTerms: as stated, or null

JSON shape:
{{
  "title": "string",
  "description": "string",
  "budget": number | null,
  "deadline": "YYYY-MM-DD" | null,
  "requirements": [{{"item": "string", "quantity": number, "specifications": {{}}}}],
  "paymentTerms": "string" | null,
  "warrantyReq": "string" | null,
  "deliveryTerms": "string" | null
}}"""


def proposal_extraction_prompt(
    email_body: str,
    attachments: Optional[List[Dict[str, str]]],
    rfp_requirements: Optional[List[Dict[str, Any]]],
    received_on: date,
) -> str:
    content = f"Email Body:\n{email_body}\n"
    if attachments:
        content += "\nAttachments:\n"
        for idx, att in enumerate(attachments, start=1):
            content += f"\n--- Attachment {idx}: {att['filename']} ---\n{att['content']}\n"

    requirements_block = ""
    if rfp_requirements:
        requirements_block = (
            "\nOriginal RFP requirements:\n" + json.dumps(rfp_requirements, indent=2) + "\n"
        )

    return f"""Extract the vendor's proposal from the response below.
The response was received on {received_on.isoformat()}; resolve relative delivery
dates ("in 30 days") from that date.

{content}
{requirements_block}
Fields:
- totalPrice: total quoted price as a number without currency symbols, or null
- currency: ISO currency code, "USD" when not stated
- deliveryDate: "YYYY-MM-DD" or null
- paymentTerms: as stated, or null
- warranty: as stated, or null
- lineItems: list of {{"item", "quantity", "unitPrice", "totalPrice", "specifications"}}, or null
- terms: object of any further terms and conditions, or null
- summary: two or three sentence summary of the proposal

Use null for anything not present. Do not invent values.

JSON shape:
{{
  "totalPrice": number | null,
  "currency": "string" | null,
  "deliveryDate": "YYYY-MM-DD" | null,
  "paymentTerms": "string" | null,
  "warranty": "string" | null,
  "lineItems": [{{"item": "string", "quantity": number, "unitPrice": number, "totalPrice": number, "specifications": {{}}}}] | null,
  "terms": {{}} | null,
  "summary": "string" | null
}}"""


def comparison_prompt(rfp: Dict[str, Any], proposals: List[Dict[str, Any]]) -> str:
    return f"""Compare the vendor proposals for this RFP.

RFP:
{json.dumps(rfp, indent=2, default=str)}

Proposals:
{json.dumps(proposals, indent=2, default=str)}

Score every vendor from 0 to 100 on:
1. priceScore: lowest price gets 100, others scaled proportionally
2. termsScore: payment and delivery terms, faster delivery within the deadline scores higher
3. completenessScore: coverage of the RFP's required items and specifications
4. complianceScore: adherence to required warranty, delivery and payment terms

totalScore is the weighted total: price 40%, terms 20%, completeness 25%, compliance 15%.
Recommend one vendor and explain why. Include one score entry per proposal.

JSON shape:
{{
  "scores": [{{"vendorId": number, "vendorName": "string", "totalScore": number,
              "priceScore": number, "termsScore": number,
              "completenessScore": number, "complianceScore": number}}],
  "recommendation": {{"vendorId": number, "vendorName": "string", "reasoning": "string"}},
  "summary": "string",
  "detailedComparison": "string"
}}"""
