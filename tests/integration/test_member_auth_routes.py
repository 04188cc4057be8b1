"""
Integration tests for member authentication routes.
"""
import pytest
from fitgym import mail
from fitgym.members.utils import generate_reset_token, generate_email_change_token
from tests.conftest import TEST_PASSWORD, login
from tests.fixtures.factories import ActiveMemberFactory

NEW_PASSWORD = 'Str0ng!Lifts'


@pytest.mark.integration
@pytest.mark.auth
class TestLogin:
    """Test cases for login and logout."""

    def test_login_page_loads(self, client):
        response = client.get('/members/auth/login')

        assert response.status_code == 200
        assert b'Sign In' in response.data
        assert b'email' in response.data
        assert b'password' in response.data

    def test_login_success(self, client, test_member):
        response = client.post('/members/auth/login', data={
            'email': 'test.user@gmail.com',
            'password': TEST_PASSWORD
        }, follow_redirects=True)

        assert response.status_code == 200
        assert b'Welcome back, Test!' in response.data
        assert test_member.last_login is not None

    def test_login_email_is_case_insensitive(self, client, test_member):
        response = client.post('/members/auth/login', data={
            'email': 'Test.User@Gmail.com',
            'password': TEST_PASSWORD
        })

        assert response.status_code == 302
        assert response.location.endswith('/')

    def test_login_invalid_credentials(self, client, test_member):
        response = client.post('/members/auth/login', data={
            'email': 'test.user@gmail.com',
            'password': 'wrongpassword'
        })

        assert response.status_code == 200
        assert b'Invalid email or password' in response.data

    def test_login_nonexistent_member(self, client):
        response = client.post('/members/auth/login', data={
            'email': 'nobody@gmail.com',
            'password': 'anypassword'
        })

        assert response.status_code == 200
        assert b'Invalid email or password' in response.data

    def test_login_locked_account(self, client, db_session):
        ActiveMemberFactory.create(email='locked@gmail.com', lockout=True, password=TEST_PASSWORD)

        response = client.post('/members/auth/login', data={
            'email': 'locked@gmail.com',
            'password': TEST_PASSWORD
        })

        assert response.status_code == 200
        assert b'Your account has been locked' in response.data

    def test_login_with_temporary_email(self, client, temp_email_member):
        response = login(client, temp_email_member)

        assert response.status_code == 302

    def test_login_redirects_to_next(self, client, test_member):
        response = client.post('/members/auth/login?next=/members/settings', data={
            'email': 'test.user@gmail.com',
            'password': TEST_PASSWORD
        })

        assert response.status_code == 302
        assert response.location.endswith('/members/settings')

    def test_login_ignores_external_next(self, client, test_member):
        response = client.post('/members/auth/login?next=https://evil.example.com/', data={
            'email': 'test.user@gmail.com',
            'password': TEST_PASSWORD
        })

        assert response.status_code == 302
        assert 'evil.example.com' not in response.location

    def test_logout(self, authenticated_client):
        response = authenticated_client.get('/members/auth/logout', follow_redirects=True)

        assert response.status_code == 200
        assert b'You have been logged out successfully.' in response.data


@pytest.mark.integration
@pytest.mark.auth
class TestPasswordReset:
    """Forgotten password and mailed reset links."""

    def test_reset_request_sends_email(self, client, test_member):
        with mail.record_messages() as outbox:
            response = client.post('/members/auth/reset_password', data={
                'email': 'test.user@gmail.com'
            }, follow_redirects=True)

        assert response.status_code == 200
        assert b'If that email address is in our system' in response.data
        assert len(outbox) == 1
        assert outbox[0].recipients == ['test.user@gmail.com']

    def test_reset_request_unknown_email(self, client, db_session):
        with mail.record_messages() as outbox:
            response = client.post('/members/auth/reset_password', data={
                'email': 'nobody@gmail.com'
            }, follow_redirects=True)

        assert b'If that email address is in our system' in response.data
        assert outbox == []

    def test_reset_with_valid_token(self, app, client, test_member, db_session):
        test_member.is_verified = False
        db_session.commit()
        token = generate_reset_token(test_member)

        response = client.post(f'/members/auth/reset_password/{token}', data={
            'password': NEW_PASSWORD,
            'confirm_password': NEW_PASSWORD
        }, follow_redirects=True)

        assert response.status_code == 200
        assert b'Your password has been reset successfully' in response.data
        db_session.refresh(test_member)
        assert test_member.check_password(NEW_PASSWORD)
        assert test_member.is_verified is True

    def test_reset_form_loads(self, client, test_member):
        token = generate_reset_token(test_member)

        response = client.get(f'/members/auth/reset_password/{token}')

        assert response.status_code == 200
        assert b'Choose a New Password' in response.data

    def test_reset_with_invalid_token(self, client, db_session):
        response = client.get('/members/auth/reset_password/not-a-token', follow_redirects=True)

        assert response.status_code == 200
        assert b'Invalid or expired reset link' in response.data


@pytest.mark.integration
@pytest.mark.auth
class TestConfirmEmail:
    """Verification links for email changes."""

    def test_confirm_email_change(self, client, test_member, db_session):
        token = generate_email_change_token(test_member, 'test.new@gmail.com')

        response = client.get(f'/members/auth/confirm_email/{token}', follow_redirects=True)

        assert response.status_code == 200
        assert b'Your email address has been changed to test.new@gmail.com' in response.data
        db_session.refresh(test_member)
        assert test_member.email == 'test.new@gmail.com'
        assert test_member.is_verified is True

    def test_confirm_email_invalid_token(self, client, test_member):
        response = client.get('/members/auth/confirm_email/garbage', follow_redirects=True)

        assert b'This verification link is invalid or has expired' in response.data
        assert test_member.email == 'test.user@gmail.com'


@pytest.mark.integration
@pytest.mark.auth
class TestPasswordChangeAndProfile:

    def test_change_password(self, authenticated_client, test_member, db_session):
        response = authenticated_client.post('/members/auth/change_password', data={
            'current_password': TEST_PASSWORD,
            'password': NEW_PASSWORD,
            'confirm_password': NEW_PASSWORD
        }, follow_redirects=True)

        assert response.status_code == 200
        assert b'Your password has been changed successfully.' in response.data
        db_session.refresh(test_member)
        assert test_member.check_password(NEW_PASSWORD)

    def test_change_password_wrong_current(self, authenticated_client, test_member):
        response = authenticated_client.post('/members/auth/change_password', data={
            'current_password': 'wrongpassword',
            'password': NEW_PASSWORD,
            'confirm_password': NEW_PASSWORD
        })

        assert response.status_code == 200
        assert b'Current password is incorrect.' in response.data

    def test_profile_update(self, authenticated_client, test_member, db_session):
        response = authenticated_client.post('/members/auth/profile', data={
            'firstname': 'Tess',
            'lastname': 'Userton',
            'phone': '07700900123'
        }, follow_redirects=True)

        assert response.status_code == 200
        assert b'Your profile has been updated successfully.' in response.data
        db_session.refresh(test_member)
        assert test_member.full_name == 'Tess Userton'
        assert test_member.email == 'test.user@gmail.com'

    def test_profile_requires_login(self, client):
        response = client.get('/members/auth/profile')

        assert response.status_code == 302
        assert '/members/auth/login' in response.location
