"""
Identity Resolution

Maps a booking request to the client identity used on the appointment:
an authenticated account, or a guest with validated contact details.
"""

import logging
import re
from dataclasses import dataclass
from typing import Dict, Optional, Union

from pydantic import EmailStr, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from booking_engine.config import settings
from booking_engine.errors import ValidationError
from booking_engine.models.schemas import GuestContact

logger = logging.getLogger(__name__)

PHONE_PATTERN = re.compile(r"^\+?[0-9]{9,15}$")
PHONE_STRIP = re.compile(r"[^0-9+]")

_email_adapter = TypeAdapter(EmailStr)


@dataclass(frozen=True)
class AccountIdentity:
    """A client signed in with a real account."""

    account_id: str

    @property
    def client_id(self) -> str:
        return self.account_id


@dataclass(frozen=True)
class GuestIdentity:
    """A client booking without an account."""

    contact: GuestContact

    @property
    def client_id(self) -> str:
        return settings.guest_client_id


ClientIdentity = Union[AccountIdentity, GuestIdentity]


@dataclass(frozen=True)
class IdentityResolution:
    """
    Outcome of identity resolution.

    ``discarded`` marks spam that must be answered with success while
    nothing is stored.
    """

    identity: Optional[ClientIdentity] = None
    discarded: bool = False


def normalize_phone(phone: str) -> str:
    return PHONE_STRIP.sub("", phone or "")


def validate_guest_contact(
    client_name: Optional[str],
    client_phone: Optional[str],
    client_email: Optional[str] = None,
) -> GuestContact:
    """
    Validate and normalize guest contact fields.

    Raises:
        ValidationError: With one message per invalid field
    """
    errors: Dict[str, str] = {}

    name = (client_name or "").strip()
    if len(name) < 2:
        errors["client_name"] = "Name must have at least 2 characters"
    elif len(name) > 100:
        errors["client_name"] = "Name must have at most 100 characters"

    phone = normalize_phone(client_phone or "")
    if not PHONE_PATTERN.match(phone):
        errors["client_phone"] = "Invalid phone number (9-15 digits)"

    email = (client_email or "").strip() or None
    if email is not None:
        if len(email) > 255:
            errors["client_email"] = "Email must have at most 255 characters"
        else:
            try:
                email = str(_email_adapter.validate_python(email))
            except PydanticValidationError:
                errors["client_email"] = "Invalid email address"

    if errors:
        raise ValidationError(errors)

    return GuestContact(client_name=name, client_phone=phone, client_email=email)


class IdentityResolver:
    """Resolves who a reservation is for before it is committed."""

    def resolve(
        self,
        account_id: Optional[str] = None,
        client_name: Optional[str] = None,
        client_phone: Optional[str] = None,
        client_email: Optional[str] = None,
        honeypot: Optional[str] = None,
    ) -> IdentityResolution:
        """
        Resolve the client identity of a booking request.

        Args:
            account_id: Authenticated account id, if any
            client_name: Guest name
            client_phone: Guest phone
            client_email: Guest email (optional)
            honeypot: Hidden form field humans leave empty

        Returns:
            IdentityResolution

        Raises:
            ValidationError: If the account id or guest fields are invalid
        """
        if honeypot and honeypot.strip():
            logger.info("Honeypot field filled, discarding booking request")
            return IdentityResolution(discarded=True)

        if account_id:
            if account_id == settings.guest_client_id:
                raise ValidationError({"account_id": "Reserved id cannot be used as an account"})
            return IdentityResolution(identity=AccountIdentity(account_id))

        contact = validate_guest_contact(client_name, client_phone, client_email)
        return IdentityResolution(identity=GuestIdentity(contact))
