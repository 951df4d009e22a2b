"""Input validation for user-added endpoints."""

import re
import time

from latmon.models import Endpoint

# Hostname or IPv4: alphanumeric at both ends, dots and hyphens inside
ADDRESS_PATTERN = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9.-]*[a-zA-Z0-9]$|^[a-zA-Z0-9]$")


def validate_endpoint_input(name: str, address: str) -> str | None:
    """Check user input for a custom endpoint.

    Returns:
        A user-facing error message, or None if the input is valid
    """
    if not name or not name.strip():
        return "Name is required"

    if not address or not address.strip():
        return "Address is required"

    if not ADDRESS_PATTERN.match(address.strip()):
        return "Invalid address format"

    return None


def new_custom_endpoint(name: str, address: str, existing_ids=()) -> Endpoint:
    """Build a custom endpoint from validated user input.

    Args:
        name: Display name
        address: Hostname or IP address
        existing_ids: Ids already in use; the generated id avoids them

    Raises:
        ValueError: with a user-facing message if the input is invalid
    """
    error = validate_endpoint_input(name, address)
    if error:
        raise ValueError(error)

    stamp = int(time.time() * 1000)
    endpoint_id = f"custom-{stamp}"
    taken = set(existing_ids)
    while endpoint_id in taken:
        stamp += 1
        endpoint_id = f"custom-{stamp}"

    return Endpoint(
        id=endpoint_id,
        name=name.strip(),
        address=address.strip(),
        favorite=False,
        custom=True,
    )
