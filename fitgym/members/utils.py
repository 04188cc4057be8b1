# Standard library imports
from datetime import datetime

# Third-party imports
import sqlalchemy as sa
from flask import current_app, url_for
from flask_mail import Message
from itsdangerous import URLSafeTimedSerializer, BadSignature, SignatureExpired

# Local application imports
from fitgym import db, mail

RESET_SALT = 'password-reset-salt'
EMAIL_CHANGE_SALT = 'email-change-salt'


def _serializer():
    return URLSafeTimedSerializer(current_app.config['SECRET_KEY'])


def generate_reset_token(member, email=None):
    """
    Generate a secure reset token for password reset functionality.

    Args:
        member (Member): The member to generate the token for.
        email (str): Address the token is bound to. Defaults to the member's
            current email.

    Returns:
        str: Secure token string that can be used for password reset.
    """
    return _serializer().dumps({'id': member.id, 'email': email or member.email}, salt=RESET_SALT)


def verify_reset_token(token, expiration=None):
    """
    Verify a password reset token and return the associated member.

    The token is only honoured while the member still holds the address it
    was issued for, so a link sent before an email change stops working.

    Returns:
        Member or None: Member if the token is valid, None if invalid/expired.
    """
    from fitgym.models import Member

    if expiration is None:
        expiration = current_app.config.get('PASSWORD_RESET_TOKEN_EXPIRY', 3600)
    try:
        data = _serializer().loads(token, salt=RESET_SALT, max_age=expiration)
    except (BadSignature, SignatureExpired):
        return None

    if not isinstance(data, dict):
        return None
    member = db.session.get(Member, data.get('id'))
    if member is None or member.email != data.get('email'):
        return None
    return member


def generate_email_change_token(member, new_email):
    """Token carried by the verification link sent to a new address."""
    return _serializer().dumps({'id': member.id, 'new_email': new_email}, salt=EMAIL_CHANGE_SALT)


def verify_email_change_token(token, expiration=None):
    """
    Verify an email change token.

    Returns:
        tuple: (Member, new_email) if valid, (None, None) otherwise.
    """
    from fitgym.models import Member

    if expiration is None:
        expiration = current_app.config.get('EMAIL_CHANGE_TOKEN_EXPIRY', 86400)
    try:
        data = _serializer().loads(token, salt=EMAIL_CHANGE_SALT, max_age=expiration)
    except (BadSignature, SignatureExpired):
        return None, None

    if not isinstance(data, dict) or not data.get('new_email'):
        return None, None
    member = db.session.get(Member, data.get('id'))
    if member is None:
        return None, None
    return member, data['new_email']


def _send_member_email(subject, recipient, body):
    """
    Send a plain text email through Flask-Mail.

    Returns:
        bool: True if the message was handed to the mail server.
    """
    sender = (current_app.config.get('MAIL_DEFAULT_SENDER') or
              current_app.config.get('MAIL_USERNAME'))
    if not sender:
        current_app.logger.error("No email sender configured - missing MAIL_DEFAULT_SENDER and MAIL_USERNAME")
        return False

    try:
        msg = Message(subject=subject, recipients=[recipient], sender=sender)
        msg.body = body
        mail.send(msg)
        return True
    except Exception as e:
        current_app.logger.error(f"Error sending '{subject}' email to {recipient}: {str(e)}")
        return False


def send_reset_email(member, token):
    """Send a password reset link to the member's current address."""
    gym_name = current_app.config['GYM_NAME']
    reset_url = url_for('members.auth_reset_password', token=token, _external=True)
    body = f'''Hello {member.firstname},

You have requested to reset your password for your {gym_name} account.

To reset your password, visit the following link:
{reset_url}

This link will expire in 1 hour for security reasons.

If you did not make this request, simply ignore this email and your password will remain unchanged.

Best regards,
The {gym_name} Team
'''
    return _send_member_email(f'Password Reset Request - {gym_name}', member.email, body)


def send_password_setup_email(member, token):
    """Send the first password setup link after a temporary email was replaced."""
    gym_name = current_app.config['GYM_NAME']
    setup_url = url_for('members.auth_reset_password', token=token, _external=True)
    body = f'''Hello {member.firstname},

Your {gym_name} account now uses this email address instead of the temporary one created at the front desk.

To finish setting up your account, choose a password here:
{setup_url}

From now on, sign in with {member.email} and your new password.

Best regards,
The {gym_name} Team
'''
    return _send_member_email(f'Set Up Your Password - {gym_name}', member.email, body)


def send_email_change_email(member, new_email, token):
    """Send the verification link for a requested email change to the new address."""
    gym_name = current_app.config['GYM_NAME']
    confirm_url = url_for('members.auth_confirm_email', token=token, _external=True)
    body = f'''Hello {member.firstname},

We received a request to change the email address on your {gym_name} account to {new_email}.

To confirm this change, visit the following link:
{confirm_url}

Until you confirm, your account keeps using {member.email}.

If you did not make this request, please contact the gym straight away.

Best regards,
The {gym_name} Team
'''
    return _send_member_email(f'Confirm Your New Email - {gym_name}', new_email, body)


def email_in_use(email, exclude_member_id=None):
    """Check whether another member already owns an address (case-insensitive)."""
    from fitgym.models import Member

    query = sa.select(Member.id).where(sa.func.lower(Member.email) == email.lower())
    if exclude_member_id is not None:
        query = query.where(Member.id != exclude_member_id)
    return db.session.scalar(query) is not None


def auth_email_on_cooldown(member):
    """True if a verification or reset email went to this member too recently."""
    cooldown = current_app.config.get('AUTH_EMAIL_COOLDOWN', 60)
    if not cooldown or member.last_auth_email_at is None:
        return False
    return (datetime.utcnow() - member.last_auth_email_at).total_seconds() < cooldown


def get_member_data(member, show_private_data=False):
    """
    Member data for JSON responses.

    Args:
        member: Member object from database
        show_private_data: True for the member themselves and for staff

    Returns:
        Dictionary with member data
    """
    base_data = {
        'id': member.id,
        'membership_number': member.membership_number,
        'firstname': member.firstname,
        'lastname': member.lastname,
        'status': member.status,
        'membership_type': member.membership_type,
    }

    if show_private_data:
        base_data.update({
            'email': member.email,
            'phone': member.phone,
            'is_verified': member.is_verified,
            'has_temporary_email': member.has_temporary_email,
            'is_admin': member.is_admin,
            'lockout': member.lockout,
            'account_reference': member.account_reference,
            'last_login': member.last_login.isoformat() if member.last_login else None,
            'created_at': member.created_at.isoformat() if member.created_at else None,
            'updated_at': member.updated_at.isoformat() if member.updated_at else None,
        })

    return base_data
