# JSON API for member records
from flask import jsonify, request, current_app
from flask_login import login_required, current_user
import sqlalchemy as sa
from sqlalchemy.exc import IntegrityError

from fitgym.api import bp
from fitgym import db
from fitgym.models import Member
from fitgym.routes import role_required
from fitgym.members.email_rules import is_valid_email_format, temporary_email_for
from fitgym.members.utils import get_member_data, email_in_use
from fitgym.audit import (audit_log_create, audit_log_update, audit_log_delete,
                          audit_log_security_event, get_model_changes)

# Fields a member may change on their own record; email changes go through
# the verified flow on the settings page
SELF_EDITABLE_FIELDS = ('firstname', 'lastname', 'phone')
STAFF_EDITABLE_FIELDS = SELF_EDITABLE_FIELDS + (
    'email', 'status', 'membership_type', 'is_verified', 'lockout'
)
BOOLEAN_FIELDS = ('is_verified', 'lockout')
REQUIRED_TEXT_FIELDS = ('firstname', 'lastname')


def _error(message, status):
    return jsonify({'success': False, 'error': message}), status


def _can_view(member):
    return current_user.id == member.id or current_user.is_staff()


def _validate_member_fields(data):
    """
    Check submitted member fields.

    Returns:
        tuple: (error message, HTTP status) or (None, None) when valid.
    """
    for field in REQUIRED_TEXT_FIELDS:
        if field in data and not str(data[field] or '').strip():
            return f'{field} cannot be empty', 400

    for field in BOOLEAN_FIELDS:
        if field in data and not isinstance(data[field], bool):
            return f'{field} must be true or false', 400

    if 'email' in data and not is_valid_email_format(str(data['email'] or '').strip()):
        return 'Invalid email address', 400

    if 'status' in data and data['status'] not in current_app.config['MEMBER_STATUSES']:
        return f"status must be one of: {', '.join(current_app.config['MEMBER_STATUSES'])}", 400

    if 'membership_type' in data and data['membership_type'] not in current_app.config['MEMBERSHIP_TYPES']:
        return f"membership_type must be one of: {', '.join(current_app.config['MEMBERSHIP_TYPES'])}", 400

    return None, None


@bp.route('/me')
@login_required
def get_current_member():
    """
    Get the logged in member's own record
    """
    return jsonify({'success': True, 'member': get_member_data(current_user, show_private_data=True)})


@bp.route('/members', methods=['GET'])
@login_required
@role_required('Membership Staff')
def list_members():
    """
    List members, optionally filtered by search term (q) and status
    """
    try:
        search_term = request.args.get('q', '').strip()
        status = request.args.get('status', '').strip()

        query = sa.select(Member)
        if search_term:
            query = query.where(sa.or_(
                Member.firstname.ilike(f'%{search_term}%'),
                Member.lastname.ilike(f'%{search_term}%'),
                Member.email.ilike(f'%{search_term}%')
            ))
        if status:
            query = query.where(Member.status == status)

        members = db.session.scalars(query.order_by(Member.lastname, Member.firstname)).all()
        results = [get_member_data(member, show_private_data=True) for member in members]

        return jsonify({'success': True, 'members': results, 'count': len(results)})

    except Exception as e:
        current_app.logger.error(f"Error in list_members API: {str(e)}")
        return _error('An error occurred while retrieving members', 500)


@bp.route('/members', methods=['POST'])
@login_required
@role_required('Membership Staff')
def create_member():
    """
    Create a member; without an email the member gets a temporary one
    """
    try:
        data = request.get_json(silent=True)
        if not data or not isinstance(data, dict):
            return _error('No JSON data provided', 400)

        missing = [field for field in REQUIRED_TEXT_FIELDS if not str(data.get(field) or '').strip()]
        if missing:
            return _error(f"Missing required fields: {', '.join(missing)}", 400)

        email = str(data.get('email') or '').strip()
        fields = {key: value for key, value in data.items() if key in STAFF_EDITABLE_FIELDS}
        if not email:
            fields.pop('email', None)
        error, status = _validate_member_fields(fields)
        if error:
            return _error(error, status)

        membership_number = data.get('membership_number')
        if membership_number is None:
            membership_number = Member.next_membership_number()
        elif not isinstance(membership_number, int) or isinstance(membership_number, bool) or membership_number < 1:
            return _error('membership_number must be a positive integer', 400)
        elif db.session.scalar(sa.select(Member.id).where(Member.membership_number == membership_number)):
            return _error('That membership number is already in use', 409)

        email = email or temporary_email_for(membership_number)
        if email_in_use(email):
            return _error('A member with this email address already exists', 409)

        member = Member(
            membership_number=membership_number,
            email=email,
            firstname=data['firstname'].strip(),
            lastname=data['lastname'].strip(),
            phone=(data.get('phone') or None),
            status=data.get('status', 'Pending'),
            membership_type=data.get('membership_type', 'Standard'),
            is_verified=bool(data.get('is_verified', False)),
        )
        if data.get('password'):
            member.set_password(data['password'])

        db.session.add(member)
        db.session.commit()

        audit_log_create('Member', member.id, f'Created member via API: {member.full_name} ({member.email})',
                         {'membership_number': membership_number,
                          'temporary_email': member.has_temporary_email})

        return jsonify({'success': True, 'member': get_member_data(member, show_private_data=True)}), 201

    except IntegrityError:
        db.session.rollback()
        return _error('A member with these details already exists', 409)
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Error in create_member API: {str(e)}")
        return _error('An error occurred while creating the member', 500)


@bp.route('/members/<int:member_id>', methods=['GET'])
@login_required
def get_member(member_id):
    """
    Get a member record; members may only read their own
    """
    member = db.session.get(Member, member_id)
    if not member:
        return _error('Member not found', 404)

    if not _can_view(member):
        audit_log_security_event('ACCESS_DENIED', f'Member {current_user.email} attempted to read member {member_id}')
        return _error('Access denied', 403)

    return jsonify({'success': True, 'member': get_member_data(member, show_private_data=True)})


@bp.route('/members/<int:member_id>', methods=['PUT', 'PATCH'])
@login_required
def update_member(member_id):
    """
    Update a member record. Members may edit their own name and phone; staff
    may also change email, status, membership type, verification and lockout.
    """
    try:
        member = db.session.get(Member, member_id)
        if not member:
            return _error('Member not found', 404)

        if not _can_view(member):
            audit_log_security_event('ACCESS_DENIED',
                                     f'Member {current_user.email} attempted to update member {member_id}')
            return _error('Access denied', 403)

        data = request.get_json(silent=True)
        if not data or not isinstance(data, dict):
            return _error('No JSON data provided', 400)

        allowed = STAFF_EDITABLE_FIELDS if current_user.is_staff() else SELF_EDITABLE_FIELDS
        forbidden = sorted(key for key in data if key not in allowed)
        if forbidden:
            return _error(f"Not allowed to update: {', '.join(forbidden)}", 403)

        error, status = _validate_member_fields(data)
        if error:
            return _error(error, status)

        updates = dict(data)
        for field in ('firstname', 'lastname', 'email'):
            if field in updates:
                updates[field] = str(updates[field]).strip()
        if 'phone' in updates:
            updates['phone'] = updates['phone'] or None

        if 'email' in updates and email_in_use(updates['email'], exclude_member_id=member.id):
            return _error('A member with this email address already exists', 409)

        changes = get_model_changes(member, updates)
        for field, value in updates.items():
            setattr(member, field, value)
        db.session.commit()

        audit_log_update('Member', member.id, f'Updated member via API: {member.full_name}', changes)

        return jsonify({'success': True, 'member': get_member_data(member, show_private_data=True)})

    except IntegrityError:
        db.session.rollback()
        return _error('A member with this email address already exists', 409)
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Error in update_member API: {str(e)}")
        return _error('An error occurred while updating the member', 500)


@bp.route('/members/<int:member_id>', methods=['DELETE'])
@login_required
@role_required('Membership Staff')
def delete_member(member_id):
    """
    Delete a member record
    """
    try:
        member = db.session.get(Member, member_id)
        if not member:
            return _error('Member not found', 404)

        if member.id == current_user.id:
            return _error('You cannot delete your own account', 400)

        member_name = member.full_name
        db.session.delete(member)
        db.session.commit()

        audit_log_delete('Member', member_id, f'Deleted member via API: {member_name}')

        return jsonify({'success': True, 'message': f'Member {member_name} deleted'})

    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Error in delete_member API: {str(e)}")
        return _error('An error occurred while deleting the member', 500)
