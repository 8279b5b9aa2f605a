"""Address validation and formatting helpers."""

from web3 import Web3


def validate_address(address: str) -> tuple[bool, str | None]:
    """
    Validate an EVM address.

    Args:
        address: Address to validate

    Returns:
        Tuple of (is_valid, error_message)

    Examples:
        >>> validate_address("0x1234567890123456789012345678901234567890")
        (True, None)
        >>> validate_address("invalid")
        (False, 'Address must start with 0x')
    """
    if not address or not isinstance(address, str):
        return False, "Address is empty"

    address = address.strip()

    if not address.startswith("0x"):
        return False, "Address must start with 0x"

    if len(address) != 42:
        return False, "Address must be 42 characters"

    if not Web3.is_address(address):
        return False, "Invalid address format"

    return True, None


def normalize_address(address: str) -> str:
    """
    Normalize address to lowercase.

    Raises:
        ValueError: If address is invalid
    """
    is_valid, error = validate_address(address)
    if not is_valid:
        raise ValueError(f"Invalid address {address!r}: {error}")
    return address.strip().lower()


def mask_address(address: str | None) -> str:
    """
    Mask address for logging: 0x1234...5678

    Examples:
        >>> mask_address("0x1234567890abcdef1234567890abcdef12345678")
        '0x1234...5678'
        >>> mask_address(None)
        '***'
    """
    if not address or len(address) < 10:
        return "***"
    return f"{address[:6]}...{address[-4:]}"
