"""
Integration tests for staff member management routes.
"""
import pytest
import sqlalchemy as sa
from fitgym.models import Member
from tests.fixtures.factories import ActiveMemberFactory, AdminMemberFactory

NEW_PASSWORD = 'Str0ng!Lifts'


def _create_data(**overrides):
    data = {
        'firstname': 'Walk',
        'lastname': 'In',
        'email': '',
        'phone': '',
        'membership_number': '5001',
        'membership_type': 'Standard',
        'status': 'Active',
        'password': NEW_PASSWORD,
    }
    data.update(overrides)
    return data


@pytest.mark.integration
@pytest.mark.admin
class TestManageMembers:

    def test_requires_login(self, client):
        response = client.get('/members/admin/manage_members')

        assert response.status_code == 302
        assert '/members/auth/login' in response.location

    def test_regular_member_is_forbidden(self, authenticated_client):
        response = authenticated_client.get('/members/admin/manage_members')
        assert response.status_code == 403

    def test_staff_can_list_members(self, staff_client, test_member):
        response = staff_client.get('/members/admin/manage_members')

        assert response.status_code == 200
        assert b'Manage Members' in response.data
        assert b'test.user@gmail.com' in response.data

    def test_admin_without_role_can_list_members(self, client, db_session):
        admin = AdminMemberFactory.create(email='owner@gmail.com', password='testpassword123')
        client.post('/members/auth/login', data={'email': admin.email, 'password': 'testpassword123'})

        response = client.get('/members/admin/manage_members')

        assert response.status_code == 200

    def test_search(self, staff_client, db_session):
        ActiveMemberFactory.create(firstname='Zelda', lastname='Quinn', email='zelda@gmail.com')
        ActiveMemberFactory.create(firstname='Arthur', lastname='Brown', email='arthur@gmail.com')

        response = staff_client.get('/members/admin/manage_members?q=zel')

        assert b'zelda@gmail.com' in response.data
        assert b'arthur@gmail.com' not in response.data

    def test_temporary_email_is_flagged(self, staff_client, temp_email_member):
        response = staff_client.get('/members/admin/manage_members')

        assert b'4242@gmail.com' in response.data
        assert b'Temporary' in response.data


@pytest.mark.integration
@pytest.mark.admin
class TestCreateMember:

    def test_form_prefills_next_membership_number(self, staff_client, staff_member):
        response = staff_client.get('/members/admin/create_member')

        assert response.status_code == 200
        expected = str(Member.next_membership_number()).encode()
        assert b'value="' + expected + b'"' in response.data

    def test_create_with_temporary_email(self, staff_client, db_session):
        response = staff_client.post('/members/admin/create_member', data=_create_data(),
                                     follow_redirects=True)

        assert response.status_code == 200
        assert b'created with temporary email 5001@gmail.com' in response.data
        member = db_session.scalar(sa.select(Member).where(Member.membership_number == 5001))
        assert member.email == '5001@gmail.com'
        assert member.has_temporary_email is True
        assert member.is_verified is False
        assert member.check_password(NEW_PASSWORD)

    def test_create_with_real_email(self, staff_client, db_session):
        response = staff_client.post('/members/admin/create_member',
                                     data=_create_data(email='walk.in@gmail.com'),
                                     follow_redirects=True)

        assert b'Member Walk In created successfully.' in response.data
        member = db_session.scalar(sa.select(Member).where(Member.email == 'walk.in@gmail.com'))
        assert member.membership_number == 5001

    def test_create_without_membership_number(self, staff_client, staff_member, db_session):
        expected = Member.next_membership_number()

        staff_client.post('/members/admin/create_member', data=_create_data(membership_number=''))

        member = db_session.scalar(sa.select(Member).where(Member.firstname == 'Walk'))
        assert member.membership_number == expected
        assert member.email == f'{expected}@gmail.com'

    def test_duplicate_email_is_rejected(self, staff_client, test_member, db_session):
        response = staff_client.post('/members/admin/create_member',
                                     data=_create_data(email='test.user@gmail.com'))

        assert response.status_code == 200
        assert b'Please use a different email address.' in response.data
        assert db_session.scalar(sa.select(Member).where(Member.firstname == 'Walk')) is None

    def test_temporary_email_clash_is_rejected(self, staff_client, db_session):
        ActiveMemberFactory.create(email='5001@gmail.com', membership_number=None)

        response = staff_client.post('/members/admin/create_member', data=_create_data())

        assert response.status_code == 200
        assert b'The email address 5001@gmail.com is already in use.' in response.data


@pytest.mark.integration
@pytest.mark.admin
class TestEditMember:

    def _edit_data(self, member, **overrides):
        data = {
            'firstname': member.firstname,
            'lastname': member.lastname,
            'email': member.email,
            'phone': member.phone or '',
            'membership_type': member.membership_type,
            'status': member.status,
        }
        data.update(overrides)
        return data

    def test_edit_form_loads(self, staff_client, test_member):
        response = staff_client.get(f'/members/admin/edit_member/{test_member.id}')

        assert response.status_code == 200
        assert b'Edit Member' in response.data

    def test_update_member(self, staff_client, test_member, db_session):
        data = self._edit_data(test_member, status='Frozen', membership_type='Premium', lockout='y')

        response = staff_client.post(f'/members/admin/edit_member/{test_member.id}', data=data,
                                     follow_redirects=True)

        assert b'Member updated successfully.' in response.data
        db_session.refresh(test_member)
        assert test_member.status == 'Frozen'
        assert test_member.membership_type == 'Premium'
        assert test_member.lockout is True
        assert test_member.is_verified is False

    def test_correct_email_letter_case(self, staff_client, test_member, db_session):
        data = self._edit_data(test_member, email='Test.User@gmail.com')

        response = staff_client.post(f'/members/admin/edit_member/{test_member.id}', data=data,
                                     follow_redirects=True)

        assert b'Member updated successfully.' in response.data
        db_session.refresh(test_member)
        assert test_member.email == 'Test.User@gmail.com'

    def test_staff_cannot_grant_admin(self, staff_client, test_member, db_session):
        data = self._edit_data(test_member, is_admin='y')

        staff_client.post(f'/members/admin/edit_member/{test_member.id}', data=data)

        db_session.refresh(test_member)
        assert test_member.is_admin is False

    def test_admin_can_grant_admin(self, admin_client, test_member, db_session):
        data = self._edit_data(test_member, is_admin='y')

        admin_client.post(f'/members/admin/edit_member/{test_member.id}', data=data)

        db_session.refresh(test_member)
        assert test_member.is_admin is True

    def test_delete_member(self, staff_client, test_member, db_session):
        member_id = test_member.id

        response = staff_client.post(f'/members/admin/edit_member/{member_id}',
                                     data={'delete_member': '1'}, follow_redirects=True)

        assert b'has been deleted successfully' in response.data
        db_session.expire_all()
        assert db_session.get(Member, member_id) is None

    def test_cannot_delete_self(self, staff_client, staff_member, db_session):
        response = staff_client.post(f'/members/admin/edit_member/{staff_member.id}',
                                     data={'delete_member': '1'}, follow_redirects=True)

        assert b'You cannot delete your own account.' in response.data
        assert db_session.get(Member, staff_member.id) is not None

    def test_unknown_member(self, staff_client):
        response = staff_client.get('/members/admin/edit_member/99999', follow_redirects=True)

        assert b'Member not found.' in response.data


@pytest.mark.integration
@pytest.mark.admin
class TestStaffPasswordReset:

    def test_reset_member_password(self, staff_client, test_member, db_session):
        response = staff_client.post(f'/members/admin/reset_member_password/{test_member.id}', data={
            'password': NEW_PASSWORD,
            'confirm_password': NEW_PASSWORD
        }, follow_redirects=True)

        assert b'Password reset successfully for Test User.' in response.data
        db_session.refresh(test_member)
        assert test_member.check_password(NEW_PASSWORD)

    def test_regular_member_is_forbidden(self, authenticated_client, test_member):
        response = authenticated_client.get(f'/members/admin/reset_member_password/{test_member.id}')
        assert response.status_code == 403
