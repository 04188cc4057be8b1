# Member blueprint routes - authentication, account settings and staff
# management of member records

from datetime import datetime
from flask import render_template, redirect, url_for, flash, request, jsonify, current_app, session
from flask_login import login_user, logout_user, current_user, login_required
from flask_paginate import Pagination, get_page_parameter
from urllib.parse import urlsplit
import sqlalchemy as sa
from sqlalchemy.exc import SQLAlchemyError
from fitgym import db, limiter
from fitgym.models import Member
from fitgym.members.forms import (LoginForm, RequestResetForm, ResetPasswordForm,
                                  PasswordChangeForm, EditProfileForm, EmailUpdateForm,
                                  PasswordResetRequestForm, StaffMemberForm, EditMemberForm)
from fitgym.members import bp
from fitgym.members.account import (check_email_request, update_member_email, confirm_email_change,
                                    send_member_password_reset, InvalidEmailRequest,
                                    EmailUpdateError, PasswordResetError)
from fitgym.members.email_rules import (check_email_format, describe_email_update_error,
                                        describe_password_reset_error, temporary_email_for)
from fitgym.members.utils import (generate_reset_token, verify_reset_token, send_reset_email,
                                  email_in_use)
from fitgym.routes import role_required
from fitgym.audit import (audit_log_create, audit_log_update, audit_log_delete,
                          audit_log_authentication, audit_log_security_event)

# =============================================================================
# AUTHENTICATION ROUTES (/auth/*)
# =============================================================================

@bp.route('/auth/login', methods=['GET', 'POST'])
@limiter.limit("10 per minute", methods=['POST'])
def auth_login():
    """
    Member login with email and password
    """
    try:
        if current_user.is_authenticated:
            return redirect(url_for('main.index'))

        form = LoginForm()

        if form.validate_on_submit():
            email = form.email.data.strip()
            member = db.session.scalar(
                sa.select(Member).where(sa.func.lower(Member.email) == email.lower())
            )

            if member and member.check_password(form.password.data):
                if member.lockout:
                    audit_log_security_event('LOGIN_ATTEMPT_LOCKED_ACCOUNT',
                                             f'Login attempt on locked account: {member.email}')
                    flash('Your account has been locked. Please contact the gym.', 'error')
                    return render_template('member_login.html', form=form)

                login_user(member, remember=form.remember_me.data)

                member.last_login = datetime.utcnow()
                db.session.commit()

                audit_log_authentication('LOGIN', member.email, True)

                # Only follow relative next URLs
                next_page = request.args.get('next')
                if not next_page or urlsplit(next_page).netloc != '':
                    next_page = url_for('main.index')

                flash(f'Welcome back, {member.firstname}!', 'success')
                return redirect(next_page)

            audit_log_authentication('LOGIN', email, False)
            flash('Invalid email or password', 'error')

        return render_template('member_login.html', form=form)

    except Exception as e:
        current_app.logger.error(f"Error in login route: {str(e)}")
        flash('An error occurred during login. Please try again.', 'error')
        return render_template('member_login.html', form=LoginForm())


@bp.route('/auth/logout')
@login_required
def auth_logout():
    """
    Member logout with audit logging
    """
    audit_log_authentication('LOGOUT', current_user.email, True)
    logout_user()
    session.pop('email_update', None)

    flash('You have been logged out successfully.', 'info')
    return redirect(url_for('members.auth_login'))


@bp.route('/auth/reset_password', methods=['GET', 'POST'])
@limiter.limit("5 per minute", methods=['POST'])
def auth_reset_password_request():
    """
    Request password reset - send email with reset link
    """
    try:
        if current_user.is_authenticated:
            return redirect(url_for('members.settings'))

        form = RequestResetForm()

        if form.validate_on_submit():
            email = form.email.data.strip()
            member = db.session.scalar(
                sa.select(Member).where(sa.func.lower(Member.email) == email.lower())
            )

            if member:
                token = generate_reset_token(member)
                if send_reset_email(member, token):
                    audit_log_authentication('PASSWORD_RESET_REQUEST', member.email, True)
                else:
                    audit_log_authentication('PASSWORD_RESET_REQUEST', member.email, False,
                                             {'error': 'Failed to send reset email'})
            else:
                audit_log_security_event('PASSWORD_RESET_UNKNOWN_EMAIL',
                                         f'Password reset request for unknown email: {email}')

            # Same message whether or not the address exists
            flash('If that email address is in our system, you will receive password reset instructions shortly.', 'info')
            return redirect(url_for('members.auth_login'))

        return render_template('member_password_reset_request.html', form=form)

    except Exception as e:
        current_app.logger.error(f"Error in reset_password_request route: {str(e)}")
        flash('An error occurred. Please try again.', 'error')
        return render_template('member_password_reset_request.html', form=RequestResetForm())


@bp.route('/auth/reset_password/<token>', methods=['GET', 'POST'])
def auth_reset_password(token):
    """
    Set a new password from a mailed reset or password setup link
    """
    try:
        member = verify_reset_token(token)
        if not member:
            audit_log_security_event('PASSWORD_RESET_INVALID_TOKEN',
                                     'Invalid or expired reset token used',
                                     {'token_prefix': token[:8] + '...' if len(token) >= 8 else token})
            flash('Invalid or expired reset link. Please request a new password reset.', 'error')
            return redirect(url_for('members.auth_reset_password_request'))

        form = ResetPasswordForm()

        if form.validate_on_submit():
            member.set_password(form.password.data)
            # The link was delivered to this address, which proves ownership
            member.is_verified = True
            db.session.commit()

            audit_log_authentication('PASSWORD_RESET', member.email, True,
                                     {'method': 'email_token', 'user_id': member.id})

            if current_user.is_authenticated:
                logout_user()
            flash('Your password has been reset successfully. You can now log in.', 'success')
            return redirect(url_for('members.auth_login'))

        return render_template('member_password_reset.html', form=form, member=member)

    except Exception as e:
        current_app.logger.error(f"Error in reset_password route: {str(e)}")
        flash('An error occurred. Please try again.', 'error')
        return redirect(url_for('members.auth_reset_password_request'))


@bp.route('/auth/confirm_email/<token>')
def auth_confirm_email(token):
    """
    Complete an email change from the verification link sent to the new address
    """
    landing = 'members.settings' if current_user.is_authenticated else 'members.auth_login'
    try:
        member = confirm_email_change(token)
        if not member:
            audit_log_security_event('EMAIL_CHANGE_INVALID_TOKEN',
                                     'Invalid, expired or conflicting email change token used')
            flash('This verification link is invalid or has expired. Please request the change again.', 'error')
            return redirect(url_for(landing))

        session.pop('email_update', None)
        flash(f'Your email address has been changed to {member.email} and verified.', 'success')
        return redirect(url_for(landing))

    except Exception as e:
        current_app.logger.error(f"Error in confirm_email route: {str(e)}")
        flash('An error occurred while confirming your email. Please try again.', 'error')
        return redirect(url_for(landing))


@bp.route('/auth/change_password', methods=['GET', 'POST'])
@login_required
def auth_change_password():
    """
    Change password for a logged-in member
    """
    try:
        form = PasswordChangeForm()

        if form.validate_on_submit():
            if not current_user.check_password(form.current_password.data):
                flash('Current password is incorrect.', 'error')
                return render_template('member_password_change.html', form=form)

            current_user.set_password(form.password.data)
            db.session.commit()

            audit_log_authentication('PASSWORD_CHANGE', current_user.email, True)

            flash('Your password has been changed successfully.', 'success')
            return redirect(url_for('members.settings'))

        return render_template('member_password_change.html', form=form)

    except Exception as e:
        current_app.logger.error(f"Error in change_password route: {str(e)}")
        flash('An error occurred while changing your password.', 'error')
        return redirect(url_for('members.settings'))


@bp.route('/auth/profile', methods=['GET', 'POST'])
@login_required
def auth_profile():
    """
    View and edit name and phone; email changes go through account settings
    """
    try:
        form = EditProfileForm()

        if form.validate_on_submit():
            current_user.firstname = form.firstname.data
            current_user.lastname = form.lastname.data
            current_user.phone = form.phone.data or None
            db.session.commit()

            audit_log_update('Member', current_user.id,
                             f'Updated profile information for {current_user.email}')

            flash('Your profile has been updated successfully.', 'success')
            return redirect(url_for('members.auth_profile'))

        elif request.method == 'GET':
            form.firstname.data = current_user.firstname
            form.lastname.data = current_user.lastname
            form.phone.data = current_user.phone

        return render_template('member_profile_edit.html', form=form)

    except Exception as e:
        current_app.logger.error(f"Error in profile route: {str(e)}")
        flash('An error occurred while loading your profile.', 'error')
        return redirect(url_for('main.index'))


# =============================================================================
# ACCOUNT SETTINGS ROUTES (/settings/*)
# =============================================================================

@bp.route('/settings')
@login_required
def settings():
    """
    Account settings: email address, password reset and account information
    """
    # Outcome of the last email update, shown once
    email_update = session.pop('email_update', None)

    return render_template('member_settings.html',
                           member=current_user,
                           email_form=EmailUpdateForm(),
                           password_form=PasswordResetRequestForm(),
                           email_update=email_update)


@bp.route('/settings/email', methods=['POST'])
@login_required
@limiter.limit("10 per hour")
def settings_update_email():
    """
    Change the member's email address
    """
    form = EmailUpdateForm()
    temporary = current_user.has_temporary_email
    new_email = (form.new_email.data or '').strip()

    try:
        check_email_request(current_user, new_email)
        if not form.validate_on_submit():
            errors = form.new_email.errors or ['Please enter a valid email address']
            raise InvalidEmailRequest(errors[0])

        result = update_member_email(current_user, new_email)

    except InvalidEmailRequest as e:
        flash(str(e), 'error')
        return redirect(url_for('members.settings'))

    except EmailUpdateError as e:
        current_app.logger.error(f"Email update error for member {current_user.id}: {str(e)}")
        session['email_update'] = {'status': 'error', 'temporary': temporary}
        flash(describe_email_update_error(str(e), temporary), 'error')
        return redirect(url_for('members.settings'))

    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Unexpected error updating email for member {current_user.id}: {str(e)}")
        session['email_update'] = {'status': 'error', 'temporary': temporary}
        flash(describe_email_update_error('', temporary), 'error')
        return redirect(url_for('members.settings'))

    session['email_update'] = {
        'status': 'pending',
        'temporary': result.temporary,
        'email': result.new_email,
        'title': result.title,
    }
    flash(result.description, 'success')
    return redirect(url_for('members.settings'))


@bp.route('/settings/password', methods=['POST'])
@login_required
@limiter.limit("5 per hour")
def settings_password_reset():
    """
    Send a password reset link to the member's current address
    """
    form = PasswordResetRequestForm()
    if not form.validate_on_submit():
        flash('Your session has expired. Please try again.', 'error')
        return redirect(url_for('members.settings'))

    try:
        message = send_member_password_reset(current_user)
        flash(message, 'success')
    except PasswordResetError as e:
        current_app.logger.error(f"Password reset error for member {current_user.id}: {str(e)}")
        flash(describe_password_reset_error(str(e)), 'error')
    except Exception as e:
        current_app.logger.error(f"Unexpected password reset error for member {current_user.id}: {str(e)}")
        flash(describe_password_reset_error(''), 'error')

    return redirect(url_for('members.settings'))


# =============================================================================
# STAFF ROUTES (/admin/*)
# =============================================================================

@bp.route('/admin/manage_members')
@login_required
@role_required('Membership Staff')
def admin_manage_members():
    """
    Paginated member list with optional search
    """
    try:
        page = request.args.get(get_page_parameter(), type=int, default=1)
        per_page = current_app.config.get('MEMBERS_PER_PAGE', 20)
        search_term = request.args.get('q', '').strip()

        query = sa.select(Member)
        if search_term:
            query = query.where(sa.or_(
                Member.firstname.ilike(f'%{search_term}%'),
                Member.lastname.ilike(f'%{search_term}%'),
                Member.email.ilike(f'%{search_term}%'),
                sa.cast(Member.membership_number, sa.String).ilike(f'%{search_term}%')
            ))
        query = query.order_by(Member.lastname, Member.firstname)

        total = db.session.scalar(sa.select(sa.func.count()).select_from(query.subquery()))
        members = db.session.scalars(
            query.offset((page - 1) * per_page).limit(per_page)
        ).all()

        pagination = Pagination(page=page, per_page=per_page, total=total,
                                css_framework='bulma', record_name='members')

        return render_template('member_admin_manage.html', members=members,
                               pagination=pagination, total=total, search_term=search_term)

    except Exception as e:
        current_app.logger.error(f"Error in manage_members route: {str(e)}")
        flash('An error occurred while loading the members list.', 'error')
        return redirect(url_for('main.index'))


@bp.route('/admin/create_member', methods=['GET', 'POST'])
@login_required
@role_required('Membership Staff')
def admin_create_member():
    """
    Front desk member creation; members without an email get a temporary one
    """
    try:
        form = StaffMemberForm()

        if form.validate_on_submit():
            membership_number = form.membership_number.data or Member.next_membership_number()
            email = (form.email.data or '').strip() or temporary_email_for(membership_number)

            if email_in_use(email):
                flash(f'The email address {email} is already in use.', 'error')
                return render_template('member_admin_create.html', form=form)

            member = Member(
                membership_number=membership_number,
                email=email,
                firstname=form.firstname.data,
                lastname=form.lastname.data,
                phone=form.phone.data or None,
                membership_type=form.membership_type.data,
                status=form.status.data,
                is_verified=False
            )
            member.set_password(form.password.data)

            db.session.add(member)
            db.session.commit()

            audit_log_create('Member', member.id,
                             f'Created member: {member.full_name} ({member.email})',
                             {'membership_number': membership_number,
                              'temporary_email': member.has_temporary_email})

            if member.has_temporary_email:
                flash(f'Member {member.full_name} created with temporary email {member.email}. '
                      'They can replace it from their account settings.', 'success')
            else:
                flash(f'Member {member.full_name} created successfully.', 'success')
            return redirect(url_for('members.admin_manage_members'))

        elif request.method == 'GET':
            form.membership_number.data = Member.next_membership_number()

        return render_template('member_admin_create.html', form=form)

    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Database error in create_member route: {str(e)}")
        flash('The member could not be saved. Please check the details and try again.', 'error')
        return redirect(url_for('members.admin_manage_members'))


@bp.route('/admin/edit_member/<int:member_id>', methods=['GET', 'POST'])
@login_required
@role_required('Membership Staff')
def admin_edit_member(member_id):
    """
    Edit or delete a member
    """
    try:
        member = db.session.get(Member, member_id)
        if not member:
            flash('Member not found.', 'error')
            return redirect(url_for('members.admin_manage_members'))

        if request.method == 'POST' and 'delete_member' in request.form:
            if member.id == current_user.id:
                flash('You cannot delete your own account.', 'error')
                return redirect(url_for('members.admin_edit_member', member_id=member.id))

            member_name = member.full_name
            db.session.delete(member)
            db.session.commit()

            audit_log_delete('Member', member_id, f'Deleted member: {member_name}')

            flash(f'Member {member_name} has been deleted successfully.', 'success')
            return redirect(url_for('members.admin_manage_members'))

        form = EditMemberForm(member.email, obj=member)

        if form.validate_on_submit():
            old_email = member.email
            member.firstname = form.firstname.data
            member.lastname = form.lastname.data
            member.email = form.email.data.strip()
            member.phone = form.phone.data or None
            member.membership_type = form.membership_type.data
            member.status = form.status.data
            member.is_verified = form.is_verified.data
            member.lockout = form.lockout.data
            # Only admins grant admin rights
            if current_user.is_admin:
                member.is_admin = form.is_admin.data

            db.session.commit()

            changes = {'email': old_email} if old_email != member.email else None
            audit_log_update('Member', member.id, f'Updated member: {member.full_name}', changes)

            flash('Member updated successfully.', 'success')
            return redirect(url_for('members.admin_manage_members'))

        return render_template('member_admin_edit.html', form=form, member=member)

    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Database error in edit_member route: {str(e)}")
        flash('An error occurred while editing the member.', 'error')
        return redirect(url_for('members.admin_manage_members'))


@bp.route('/admin/reset_member_password/<int:member_id>', methods=['GET', 'POST'])
@login_required
@role_required('Membership Staff')
def admin_reset_member_password(member_id):
    """
    Staff sets a member's password directly
    """
    try:
        member = db.session.get(Member, member_id)
        if not member:
            flash('Member not found.', 'error')
            return redirect(url_for('members.admin_manage_members'))

        form = ResetPasswordForm()

        if form.validate_on_submit():
            member.set_password(form.password.data)
            db.session.commit()

            audit_log_authentication('ADMIN_PASSWORD_RESET', member.email, True,
                                     {'staff_user': current_user.email, 'staff_id': current_user.id})

            flash(f'Password reset successfully for {member.full_name}.', 'success')
            return redirect(url_for('members.admin_manage_members'))

        return render_template('member_admin_password_reset.html', form=form, member=member)

    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Error in admin_reset_password route: {str(e)}")
        flash('An error occurred while resetting the password.', 'error')
        return redirect(url_for('members.admin_manage_members'))


# =============================================================================
# API ROUTES (/api/v1/*)
# =============================================================================

@bp.route('/api/v1/validate_email', methods=['GET', 'POST'])
@login_required
@limiter.limit("60 per minute")
def api_validate_email():
    """
    Live validation of a candidate new email address (AJAX endpoint)
    """
    if request.method == 'POST':
        data = request.get_json(silent=True)
        if data is None:
            data = request.form
        elif not isinstance(data, dict):
            return jsonify({'error': 'Expected a JSON object'}), 400
        email = data.get('email', '')
    else:
        email = request.args.get('email', '')

    if email is not None and not isinstance(email, str):
        return jsonify({'error': 'email must be a string'}), 400

    check = check_email_format((email or '').strip())
    if check is None:
        return jsonify({})

    return jsonify({'isValid': check.is_valid, 'message': check.message})
