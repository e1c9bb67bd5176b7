"""Protocol layer: USB envelopes, command frames, responses and the capture inspector."""

from .framing import Direction, RequestEnvelope, ResponseEnvelope
from .commands import Command, Tag, FELMessage, FESTransmitRequest, format_tags
from .parser import DeviceVerifyResponse, StatusResponse, FESVerifyStatusResponse
