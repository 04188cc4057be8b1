"""
Email address rules for member accounts.

Staff create accounts for walk-in members before the member has given a real
address. Those accounts get a temporary email of the form
``{membership_number}@gmail.com`` which the member later replaces from the
account settings page. This module holds the pattern checks for those
addresses and the mapping from update/reset failures to the text shown to the
member. Nothing in here touches the database or sends mail.
"""

import re
from collections import namedtuple

EMAIL_PATTERN = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')
TEMPORARY_EMAIL_PATTERN = re.compile(r'^(\d+)@gmail\.com$')
TEMPORARY_EMAIL_DOMAIN = 'gmail.com'

REAL_ADDRESS_MESSAGE = "Please use your real email address"
REAL_DOMAIN_MESSAGE = "Please use a real domain"

# Obviously fake addresses, checked against the lowercased new email only
PLACEHOLDER_PATTERNS = [
    (re.compile(r'^test@'), REAL_ADDRESS_MESSAGE),
    (re.compile(r'^fake@'), REAL_ADDRESS_MESSAGE),
    (re.compile(r'^temp@'), REAL_ADDRESS_MESSAGE),
    (re.compile(r'@test\.'), REAL_DOMAIN_MESSAGE),
    (re.compile(r'@fake\.'), REAL_DOMAIN_MESSAGE),
    (re.compile(r'@example\.'), REAL_DOMAIN_MESSAGE),
]

TOO_MANY_REQUESTS_MESSAGE = "Too many requests. Please wait a few minutes before trying again."
EMAIL_IN_USE_MESSAGE = "This email address is already in use. Please choose a different email."

EmailCheck = namedtuple('EmailCheck', ['is_valid', 'message'])


def is_temporary_email(email):
    """Check whether an address is a staff-generated temporary email."""
    if not email:
        return False
    return TEMPORARY_EMAIL_PATTERN.match(email) is not None


def extract_member_id_from_temp_email(email):
    """
    Return the membership number embedded in a temporary email.

    Args:
        email (str): Address to inspect.

    Returns:
        str or None: The digits before ``@gmail.com``, or None when the
        address is not a temporary email.
    """
    if not email:
        return None
    match = TEMPORARY_EMAIL_PATTERN.match(email)
    return match.group(1) if match else None


def temporary_email_for(membership_number):
    return f"{membership_number}@{TEMPORARY_EMAIL_DOMAIN}"


def is_valid_email_format(email):
    return bool(email) and EMAIL_PATTERN.match(email) is not None


def check_email_format(email):
    """
    Validate a candidate new email address as the member types it.

    Args:
        email (str): The new address entered by the member.

    Returns:
        EmailCheck or None: None for empty input, otherwise the verdict and
        the message to show next to the field.
    """
    if not email:
        return None

    if not is_valid_email_format(email):
        return EmailCheck(False, "Invalid email format")

    lowered = email.lower()
    for pattern, message in PLACEHOLDER_PATTERNS:
        if pattern.search(lowered):
            return EmailCheck(False, message)

    return EmailCheck(True, "Valid email format")


def _mentions(message, *fragments):
    return any(fragment in message for fragment in fragments)


def describe_email_update_error(message, temporary):
    """
    Turn an email update failure into the text shown to the member.

    Args:
        message (str): The failure message raised by the update flow.
        temporary (bool): Whether the member was replacing a temporary email.

    Returns:
        str: User-facing error description.
    """
    message = message or ''

    if temporary:
        if _mentions(message, 'extract member ID'):
            return "Could not process temporary email. Please contact support."
        if _mentions(message, 'database'):
            return "Database update failed. Please contact support."
        if _mentions(message, 'already exists', 'taken'):
            return EMAIL_IN_USE_MESSAGE
        return "Failed to update temporary email. Please contact support if the issue persists."

    if _mentions(message, 'invalid'):
        return "The email address format is not accepted. Please use a different email address."
    if _mentions(message, 'already exists', 'taken'):
        return EMAIL_IN_USE_MESSAGE
    if _mentions(message, 'rate limit'):
        return TOO_MANY_REQUESTS_MESSAGE
    if _mentions(message, 'network', 'connection'):
        return "Network error. Please check your connection and try again."
    if message:
        return message
    return "Failed to update email. Please try again."


def describe_password_reset_error(message):
    """Turn a password reset failure into the text shown to the member."""
    message = message or ''

    if _mentions(message, 'rate limit'):
        return TOO_MANY_REQUESTS_MESSAGE
    if _mentions(message, 'not found', 'invalid'):
        return "Email address not found. Please contact support."
    if message:
        return message
    return "Failed to send password reset email. Please try again."
