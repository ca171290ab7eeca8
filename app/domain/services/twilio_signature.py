"""
Twilio Signature Verification
Validates that inbound webhooks were signed by Twilio with the account auth token
"""
import logging
from enum import Enum
from typing import Iterable, Mapping, Optional, Tuple, Union

from pydantic import BaseModel
from twilio.request_validator import RequestValidator

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "x-twilio-signature"


class SignatureFailure(str, Enum):
    MISSING_TOKEN = "missing_token"
    MISSING_SIGNATURE = "missing_signature"
    INVALID_SIGNATURE = "invalid_signature"


class SignatureCheck(BaseModel):
    """Verification outcome; reason/detail are for logs only"""
    valid: bool
    reason: Optional[SignatureFailure] = None
    detail: Optional[str] = None


FormItems = Union[Mapping[str, str], Iterable[Tuple[str, str]]]


def first_value_params(items: FormItems) -> dict:
    """
    Collapse form/query items to one value per key.

    Twilio signs one value per parameter; when a key repeats the first
    occurrence is kept.
    """
    pairs = items.items() if isinstance(items, Mapping) else items
    params: dict = {}
    for key, value in pairs:
        if key not in params:
            params[key] = "" if value is None else str(value)
    return params


def verify_twilio_signature(
    auth_token: Optional[str],
    signature: Optional[str],
    url: str,
    params: FormItems,
) -> SignatureCheck:
    """
    Verify a Twilio webhook signature.

    Fails closed: a missing auth token is a failure, never a skip.

    Args:
        auth_token: Twilio auth token (shared secret)
        signature: Value of the X-Twilio-Signature header
        url: Exact externally visible request URL, including query
        params: Submitted form parameters

    Returns:
        SignatureCheck with valid flag and failure reason
    """
    if not auth_token:
        return SignatureCheck(valid=False, reason=SignatureFailure.MISSING_TOKEN)

    if not signature:
        return SignatureCheck(valid=False, reason=SignatureFailure.MISSING_SIGNATURE)

    try:
        validator = RequestValidator(auth_token)
        is_valid = validator.validate(url, first_value_params(params), signature)
    except Exception as e:
        return SignatureCheck(
            valid=False,
            reason=SignatureFailure.INVALID_SIGNATURE,
            detail=str(e)[:200],
        )

    if not is_valid:
        return SignatureCheck(valid=False, reason=SignatureFailure.INVALID_SIGNATURE)

    return SignatureCheck(valid=True)


def compute_twilio_signature(auth_token: str, url: str, params: FormItems) -> str:
    """Signature Twilio would send for this URL and form body"""
    return RequestValidator(auth_token).compute_signature(url, first_value_params(params))
