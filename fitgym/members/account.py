"""
Account settings flows: changing a member's email address and sending
password reset links from the settings page.

There are two ways an email change goes through:

* Regular address: a verification link is mailed to the new address and the
  stored email only changes once the link is followed.
* Temporary address (``{membership_number}@gmail.com``, created by staff at
  the front desk): nobody can receive mail there, so the new address is
  written straight to the member record and a password setup link is mailed
  to it.
"""

from dataclasses import dataclass
from datetime import datetime

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from fitgym import db
from fitgym.audit import audit_log_update, audit_log_authentication
from fitgym.members.email_rules import (
    is_temporary_email, extract_member_id_from_temp_email, is_valid_email_format
)
from fitgym.members.utils import (
    generate_reset_token, send_reset_email, send_password_setup_email,
    generate_email_change_token, verify_email_change_token, send_email_change_email,
    email_in_use, auth_email_on_cooldown
)

EMAIL_TAKEN_MESSAGE = "A member with this email address already exists"
RATE_LIMIT_MESSAGE = "Email rate limit exceeded"


class InvalidEmailRequest(ValueError):
    """Rejected before anything was attempted; the message is shown as is."""


class EmailUpdateError(Exception):
    """The email update failed part way."""


class PasswordResetError(Exception):
    """The password reset email could not be sent."""


@dataclass
class EmailUpdateResult:
    temporary: bool
    new_email: str
    title: str
    description: str


def check_email_request(member, new_email):
    """Reject empty, unchanged or malformed requests with InvalidEmailRequest."""
    if not new_email or new_email == member.email:
        raise InvalidEmailRequest("Please enter a new email address")

    if not is_valid_email_format(new_email):
        raise InvalidEmailRequest("Please enter a valid email address")


def update_member_email(member, new_email):
    """
    Start or complete an email change for a member.

    Args:
        member (Member): The member changing their address.
        new_email (str): The requested address.

    Returns:
        EmailUpdateResult: What happened, with the texts to show the member.

    Raises:
        InvalidEmailRequest: The request was empty, unchanged or malformed.
        EmailUpdateError: The update could not be carried out.
    """
    new_email = (new_email or '').strip()
    check_email_request(member, new_email)

    if is_temporary_email(member.email):
        return _replace_temporary_email(member, new_email)
    return _request_verified_email_change(member, new_email)


def _replace_temporary_email(member, new_email):
    current_app.logger.info(f"Replacing temporary email for member {member.id}")

    temp_member_id = extract_member_id_from_temp_email(member.email)
    if not temp_member_id:
        raise EmailUpdateError("Could not extract member ID from temporary email")
    current_app.logger.debug(f"Membership number from temporary email: {temp_member_id}")

    if email_in_use(new_email, exclude_member_id=member.id):
        raise EmailUpdateError(EMAIL_TAKEN_MESSAGE)

    old_email = member.email
    try:
        member.email = new_email
        member.is_verified = False
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Database update failed replacing temporary email for member {member.id}: {str(e)}")
        raise EmailUpdateError("Failed to update email in database") from e

    audit_log_update('Member', member.id,
                     f'Replaced temporary email {old_email} with {new_email}',
                     {'email': old_email})

    # The new address has no password yet; a failed send is not fatal, the
    # member can still use "Forgot password" from the login page.
    token = generate_reset_token(member)
    if send_password_setup_email(member, token):
        _mark_auth_email_sent(member)
        current_app.logger.info(f"Password setup email sent to {new_email}")
    else:
        current_app.logger.warning(f"Password setup email to {new_email} failed for member {member.id}")

    return EmailUpdateResult(
        temporary=True,
        new_email=new_email,
        title="Email Updated Successfully",
        description=(f"Your email has been updated to {new_email}. A password setup email has been "
                     "sent to your new address. Please check your inbox and follow the instructions "
                     "to complete the setup."),
    )


def _request_verified_email_change(member, new_email):
    current_app.logger.info(f"Requesting verified email change for member {member.id}")

    if email_in_use(new_email, exclude_member_id=member.id):
        raise EmailUpdateError(EMAIL_TAKEN_MESSAGE)

    if auth_email_on_cooldown(member):
        raise EmailUpdateError(RATE_LIMIT_MESSAGE)

    token = generate_email_change_token(member, new_email)
    if not send_email_change_email(member, new_email, token):
        raise EmailUpdateError("Could not send verification email: mail server connection failed")

    _mark_auth_email_sent(member)
    audit_log_update('Member', member.id, f'Email change to {new_email} requested, awaiting verification')

    return EmailUpdateResult(
        temporary=False,
        new_email=new_email,
        title="Verification Email Sent",
        description=(f"A verification email has been sent to {new_email}. Please check your inbox "
                     "and click the verification link to confirm your new email address."),
    )


def confirm_email_change(token):
    """
    Apply an email change once the member follows the verification link.

    Returns:
        Member or None: The updated member, or None when the token is invalid,
        expired, or the address has been taken in the meantime.
    """
    member, new_email = verify_email_change_token(token)
    if member is None:
        return None

    if email_in_use(new_email, exclude_member_id=member.id):
        current_app.logger.warning(f"Email change for member {member.id} refused, {new_email} now in use")
        return None

    old_email = member.email
    try:
        member.email = new_email
        member.is_verified = True
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Error confirming email change for member {member.id}: {str(e)}")
        return None

    audit_log_update('Member', member.id, f'Email changed from {old_email} to {new_email} (verified)',
                     {'email': old_email})
    return member


def send_member_password_reset(member):
    """
    Send a password reset link to the member's current address.

    Returns:
        str: Confirmation text for the member.

    Raises:
        PasswordResetError: No address, too many requests, or the mail failed.
    """
    if not member.email:
        raise PasswordResetError("No email address found for your account")

    if auth_email_on_cooldown(member):
        raise PasswordResetError(RATE_LIMIT_MESSAGE)

    token = generate_reset_token(member)
    if not send_reset_email(member, token):
        audit_log_authentication('PASSWORD_RESET_REQUEST', member.email, False,
                                 {'error': 'Failed to send reset email'})
        raise PasswordResetError("Password reset email could not be delivered")

    _mark_auth_email_sent(member)
    audit_log_authentication('PASSWORD_RESET_REQUEST', member.email, True, {'source': 'settings'})

    return (f"A password reset email has been sent to {member.email}. Please check your inbox "
            "and follow the instructions to reset your password.")


def _mark_auth_email_sent(member):
    member.last_auth_email_at = datetime.utcnow()
    db.session.commit()
