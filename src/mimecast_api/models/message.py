"""
Normalized message record produced by archive search and message trace.
"""

from typing import Optional

from pydantic import BaseModel


class MessageSender(BaseModel):
    name: Optional[str] = None
    address: Optional[str] = None
    envelope_address: Optional[str] = None  # SMTP MAIL FROM, trace only

    model_config = {"frozen": True}


class DeliveryOutcome(BaseModel):
    address: str
    status: Optional[str] = None
    detail: Optional[str] = None

    model_config = {"frozen": True}


class ProcessingEvent(BaseModel):
    timestamp: Optional[str] = None
    type: Optional[str] = None
    detail: Optional[str] = None

    model_config = {"frozen": True}


class PolicyMatch(BaseModel):
    name: Optional[str] = None
    type: Optional[str] = None
    action: Optional[str] = None

    model_config = {"frozen": True}


class MessageRecord(BaseModel):
    id: str
    subject: Optional[str] = None
    sender: MessageSender = MessageSender()
    deliveries: tuple[DeliveryOutcome, ...] = ()
    sent: Optional[str] = None
    received: Optional[str] = None
    route: Optional[str] = None
    status: Optional[str] = None
    size: Optional[int] = None
    attachment_count: Optional[int] = None
    processing_events: tuple[ProcessingEvent, ...] = ()
    policy_matches: tuple[PolicyMatch, ...] = ()

    model_config = {"frozen": True}
