# Standard library imports
import re

# Third-party imports
import sqlalchemy as sa
from flask import current_app
from flask_wtf import FlaskForm
from wtforms import (
    StringField, PasswordField, BooleanField, SubmitField, SelectField, IntegerField
)
from wtforms.validators import (
    ValidationError, DataRequired, Email, EqualTo, Length, Optional, NumberRange
)

# Local application imports
from fitgym import db
from fitgym.models import Member
from fitgym.members.email_rules import check_email_format


class PasswordComplexity:
    """
    WTForms validator for password complexity requirements.
    Requires at least 8 characters with uppercase, lowercase, number, and special character.
    """
    def __init__(self, message=None):
        self.message = message

    def __call__(self, form, field):
        password = field.data
        if not password:
            return  # Let DataRequired handle empty passwords

        if len(password) < 8:
            raise ValidationError('Password must be at least 8 characters long')
        if not re.search(r'[A-Z]', password):
            raise ValidationError('Password must contain at least one uppercase letter')
        if not re.search(r'[a-z]', password):
            raise ValidationError('Password must contain at least one lowercase letter')
        if not re.search(r'\d', password):
            raise ValidationError('Password must contain at least one number')
        if not re.search(r'[!@#$%^&*(),.?":{}|<>]', password):
            raise ValidationError('Password must contain at least one special character (!@#$%^&*)')
        if re.search(r'(.)\1{2,}', password):
            raise ValidationError('Password cannot contain the same character repeated more than twice')

        sequences = ['123456789', 'abcdefghijklmnopqrstuvwxyz', 'qwertyuiop']
        for seq in sequences:
            if any(seq[i:i+4] in password.lower() for i in range(len(seq)-3)):
                raise ValidationError('Password cannot contain sequential patterns')


class RealEmailAddress:
    """
    WTForms validator rejecting malformed and obviously fake new addresses
    (test@..., ...@example.com and similar).
    """
    def __call__(self, form, field):
        check = check_email_format(field.data)
        if check is not None and not check.is_valid:
            raise ValidationError(check.message)


def _status_choices():
    return [(status, status) for status in current_app.config['MEMBER_STATUSES']]


def _membership_type_choices():
    return [(kind, kind) for kind in current_app.config['MEMBERSHIP_TYPES']]


class LoginForm(FlaskForm):
    email = StringField('Email', validators=[DataRequired(), Email()])
    password = PasswordField('Password', validators=[DataRequired()])
    remember_me = BooleanField('Remember Me')
    submit = SubmitField('Sign In')


class RequestResetForm(FlaskForm):
    email = StringField('Email', validators=[DataRequired(), Email()])
    submit = SubmitField('Request Password Reset')


class ResetPasswordForm(FlaskForm):
    password = PasswordField('New Password', validators=[DataRequired(), PasswordComplexity()])
    confirm_password = PasswordField('Confirm Password', validators=[DataRequired(), EqualTo('password')])
    submit = SubmitField('Reset Password')


class PasswordChangeForm(FlaskForm):
    current_password = PasswordField('Current Password', validators=[DataRequired()])
    password = PasswordField('New Password', validators=[DataRequired(), PasswordComplexity()])
    confirm_password = PasswordField('Confirm Password', validators=[DataRequired(), EqualTo('password')])
    submit = SubmitField('Change Password')


class EmailUpdateForm(FlaskForm):
    new_email = StringField('New Email Address', validators=[DataRequired(), Length(max=120), RealEmailAddress()])
    submit = SubmitField('Update Email')


class PasswordResetRequestForm(FlaskForm):
    """Settings page button; the reset link always goes to the current address."""
    submit = SubmitField('Change Password')


class EditProfileForm(FlaskForm):
    firstname = StringField('First Name', validators=[DataRequired(), Length(min=1, max=64)])
    lastname = StringField('Last Name', validators=[DataRequired(), Length(min=1, max=64)])
    phone = StringField('Phone Number', validators=[Optional(), Length(max=20)])
    submit = SubmitField('Update Profile')


class StaffMemberForm(FlaskForm):
    """
    Front desk form for creating a member. The email is optional: members
    without one get a temporary {membership_number}@gmail.com address.
    """
    firstname = StringField('First Name', validators=[DataRequired(), Length(min=1, max=64)])
    lastname = StringField('Last Name', validators=[DataRequired(), Length(min=1, max=64)])
    email = StringField('Email', validators=[Optional(), Email(), Length(max=120)])
    phone = StringField('Phone Number', validators=[Optional(), Length(max=20)])
    membership_number = IntegerField('Membership Number', validators=[Optional(), NumberRange(min=1)])
    membership_type = SelectField('Membership Type')
    status = SelectField('Status')
    password = PasswordField('Initial Password', validators=[DataRequired(), PasswordComplexity()])
    submit = SubmitField('Create Member')

    def __init__(self, *args, **kwargs):
        super(StaffMemberForm, self).__init__(*args, **kwargs)
        self.membership_type.choices = _membership_type_choices()
        self.status.choices = _status_choices()

    def validate_email(self, email):
        if not email.data:
            return
        member = db.session.scalar(sa.select(Member).where(
            sa.func.lower(Member.email) == email.data.lower()))
        if member is not None:
            raise ValidationError('Please use a different email address.')

    def validate_membership_number(self, membership_number):
        if membership_number.data is None:
            return
        member = db.session.scalar(sa.select(Member).where(
            Member.membership_number == membership_number.data))
        if member is not None:
            raise ValidationError('That membership number is already in use.')


class EditMemberForm(FlaskForm):
    firstname = StringField('First Name', validators=[DataRequired(), Length(min=1, max=64)])
    lastname = StringField('Last Name', validators=[DataRequired(), Length(min=1, max=64)])
    email = StringField('Email', validators=[DataRequired(), Email(), Length(max=120)])
    phone = StringField('Phone Number', validators=[Optional(), Length(max=20)])
    membership_type = SelectField('Membership Type')
    status = SelectField('Status')
    is_verified = BooleanField('Email verified')
    is_admin = BooleanField('Is Admin')
    lockout = BooleanField('Lock out member (prevent login)', default=False)
    submit_update = SubmitField('Update')
    submit_delete = SubmitField('Delete')

    def __init__(self, original_email, *args, **kwargs):
        super(EditMemberForm, self).__init__(*args, **kwargs)
        self.original_email = original_email
        self.membership_type.choices = _membership_type_choices()
        self.status.choices = _status_choices()

    def validate_email(self, email):
        # Correcting only the letter case keeps the member's own address
        if email.data.lower() != self.original_email.lower():
            member = db.session.scalar(sa.select(Member).where(
                sa.func.lower(Member.email) == email.data.lower()))
            if member is not None:
                raise ValidationError('Please use a different email address.')
