# RFPFlow Parsing Layer
# Plain-text extraction from vendor email attachments

from parsing.attachment_extractor import (
    AttachmentExtractor,
    AttachmentKind,
    ExtractedAttachment,
    classify_attachment,
)

__all__ = [
    "AttachmentExtractor",
    "AttachmentKind",
    "ExtractedAttachment",
    "classify_attachment",
]
