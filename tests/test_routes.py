"""
Route-level tests: guards, JSON error shapes and the access API.

Each test logs in a single user through FlaskLoginClient.

Run with: python -m pytest tests/test_routes.py -v
"""

import pytest

from models import Profile, Property, Task, Unit, UserInvitation
from services.email_service import mail
from services.security import Capabilities, ObjectType
from services.security.profiles import SYSTEM_ADMIN_PROFILE


@pytest.fixture
def client_for(app):
    def _client_for(user=None):
        if user is None:
            return app.test_client()
        return app.test_client(user=user)
    return _client_for


@pytest.fixture
def add_lots(db):
    def _add_lots(org, count):
        prop = Property(organization_id=org.id, name='Residence Fann')
        db.session.add(prop)
        db.session.flush()
        for i in range(count):
            db.session.add(Unit(property_id=prop.id, name=f'Lot {i + 1}'))
        db.session.commit()
        return prop
    return _add_lots


class TestAuthentication:

    @pytest.mark.parametrize('method, path', [
        ('get', '/api/access'),
        ('post', '/api/security/check'),
        ('get', '/properties'),
        ('post', '/org/setup'),
        ('post', '/subscription/change'),
    ])
    def test_anonymous_requests_are_rejected(self, client_for, method, path):
        response = getattr(client_for(), method)(path)
        assert response.status_code == 401


class TestAccessApi:

    def test_snapshot(self, make_org, make_user, org_profile, client_for):
        org = make_org('starter')
        viewer = make_user(org, org_profile(org, 'Viewer'))

        response = client_for(viewer).get('/api/access')
        assert response.status_code == 200
        access = response.get_json()['access']
        assert access['planName'] == 'starter'
        assert access['profileName'] == 'Viewer'
        assert not access['isOrganizationAdmin']
        assert access['objects']['Property']['allowedActions'] == ['read', 'viewAll']
        assert access['objects']['JournalEntry']['featureEnabled'] is False
        assert set(access['objects']) == {t.value for t in ObjectType}

    def test_security_check(self, make_org, make_user, org_profile, client_for):
        org = make_org('freemium')
        accountant = make_user(org, org_profile(org, 'Accountant'))
        client = client_for(accountant)

        response = client.post('/api/security/check', json={'object_type': 'Payment', 'action': 'create'})
        assert response.status_code == 200
        assert response.get_json()['allowed'] is True

        response = client.post('/api/security/check', json={'object_type': 'JournalEntry', 'action': 'create'})
        body = response.get_json()
        assert response.status_code == 200
        assert body['allowed'] is False
        assert body['reason'] == 'feature_not_available'
        assert body['failedLevel'] == 'plan'
        assert body['planName'] == 'freemium'

    def test_security_check_on_missing_record(self, make_org, make_user, org_profile, client_for):
        org = make_org('starter')
        agent = make_user(org, org_profile(org, 'Agent'))
        response = client_for(agent).post('/api/security/check', json={
            'object_type': 'Task', 'action': 'read', 'object_id': 4242,
        })
        body = response.get_json()
        assert body['allowed'] is False
        assert body['reason'] == 'object_not_found'
        assert body['objectId'] == 4242

    def test_malformed_security_check(self, make_org, make_user, client_for):
        client = client_for(make_user(make_org()))

        response = client.post('/api/security/check', json={'object_type': 'Task'})
        assert response.status_code == 400
        assert response.get_json()['reason'] == 'invalid_request'

        response = client.post('/api/security/check', json={'object_type': 'Spaceship', 'action': 'read'})
        assert response.status_code == 400
        body = response.get_json()
        assert body['reason'] == 'invalid_request'
        assert body['field'] == 'objectType'

    def test_navigation(self, make_org, make_user, org_profile, client_for):
        org = make_org('starter')
        viewer = make_user(org, org_profile(org, 'Viewer'))
        items = {item['key']: item for item in client_for(viewer).get('/api/navigation').get_json()['items']}
        assert items['dashboard']['reason'] == 'always_visible'
        assert items['accounting']['visible'] is False
        assert items['accounting']['reason'] == 'feature_not_available'
        assert items['users']['reason'] == 'object_permission_denied'


class TestPropertyRoutes:

    def test_viewer_cannot_create(self, make_org, make_user, org_profile, client_for):
        org = make_org('starter')
        viewer = make_user(org, org_profile(org, 'Viewer'))
        response = client_for(viewer).post('/properties', json={'name': 'Villa Ngor'})
        assert response.status_code == 403
        body = response.get_json()
        assert body['reason'] == 'permission_denied'
        assert body['error'] == 'You do not have permission to perform this action.'
        assert Property.query.count() == 0

    def test_agent_creates_and_lists(self, make_org, make_user, org_profile, client_for):
        org = make_org('starter')
        agent = make_user(org, org_profile(org, 'Agent'))
        client = client_for(agent)

        response = client.post('/properties', json={'name': 'Villa Ngor', 'address': 'Route de Ngor'})
        assert response.status_code == 201
        assert response.get_json()['property']['createdById'] == agent.id

        names = [p['name'] for p in client.get('/properties').get_json()['properties']]
        assert names == ['Villa Ngor']

    def test_other_org_property_is_forbidden(self, db, make_org, make_user, org_profile, client_for):
        org_a, org_b = make_org('starter'), make_org('starter')
        prop = Property(organization_id=org_b.id, name='Somewhere else')
        db.session.add(prop)
        db.session.commit()
        agent = make_user(org_a, org_profile(org_a, 'Agent'))

        response = client_for(agent).get(f'/properties/{prop.id}')
        assert response.status_code == 403
        assert response.get_json()['reason'] == 'object_permission_denied'

    def test_lot_limit(self, make_org, make_user, org_profile, add_lots, client_for):
        org = make_org('freemium')
        owner = make_user(org, org_profile(org, 'Owner'))
        prop = add_lots(org, 5)

        response = client_for(owner).post(f'/properties/{prop.id}/units', json={'name': 'Lot 6'})
        assert response.status_code == 403
        body = response.get_json()
        assert body['reason'] == 'limit_exceeded'
        assert body['resource'] == 'lots'
        assert body['limit'] == 5
        assert body['error'] == 'Lot limit reached (5 lots). Please upgrade your plan.'
        assert Unit.query.count() == 5

    def test_unit_below_limit(self, make_org, make_user, org_profile, add_lots, client_for):
        org = make_org('freemium')
        owner = make_user(org, org_profile(org, 'Owner'))
        prop = add_lots(org, 4)
        response = client_for(owner).post(f'/properties/{prop.id}/units', json={'name': 'Lot 5'})
        assert response.status_code == 201


class TestTaskRoutes:

    @pytest.fixture
    def own_tasks(self, make_profile):
        def _own_tasks(org):
            return make_profile(org, 'Own Tasks', {
                ObjectType.TASK: Capabilities(can_create=True, can_read=True, can_edit=True),
                ObjectType.USER: Capabilities(can_read=True),
            })
        return _own_tasks

    def test_missing_task_is_404(self, make_org, make_user, own_tasks, client_for):
        org = make_org('starter')
        user = make_user(org, own_tasks(org))
        response = client_for(user).get('/tasks/999')
        assert response.status_code == 404
        assert response.get_json()['reason'] == 'object_not_found'

    def test_someone_elses_task_is_403(self, db, make_org, make_user, own_tasks, client_for):
        org = make_org('starter')
        profile = own_tasks(org)
        author, user = make_user(org, profile), make_user(org, profile)
        task = Task(organization_id=org.id, title='Collect rent', created_by_id=author.id,
                    assigned_to_id=author.id)
        db.session.add(task)
        db.session.commit()

        response = client_for(user).put(f'/tasks/{task.id}', json={'status': 'completed'})
        assert response.status_code == 403
        assert response.get_json()['reason'] == 'object_permission_denied'
        assert db.session.get(Task, task.id).status == 'pending'

    def test_create_update_and_list_own_tasks(self, db, make_org, make_user, own_tasks, client_for):
        org = make_org('starter')
        profile = own_tasks(org)
        user, colleague = make_user(org, profile), make_user(org, profile)
        db.session.add(Task(organization_id=org.id, title='Not mine', created_by_id=colleague.id))
        db.session.commit()
        client = client_for(user)

        response = client.post('/tasks', json={'title': 'Fix the gate'})
        assert response.status_code == 201
        task_id = response.get_json()['task']['id']

        response = client.put(f'/tasks/{task_id}', json={'status': 'in_progress'})
        assert response.get_json()['task']['status'] == 'in_progress'

        response = client.get('/tasks?view=all')
        body = response.get_json()
        assert body['showAll'] is False
        assert [t['title'] for t in body['tasks']] == ['Fix the gate']

    def test_view_all_lists_every_task(self, db, make_org, make_user, org_profile, client_for):
        org = make_org('starter')
        agent = make_user(org, org_profile(org, 'Agent'))
        other = make_user(org)
        db.session.add(Task(organization_id=org.id, title='Not mine', created_by_id=other.id))
        db.session.commit()

        body = client_for(agent).get('/tasks?view=all').get_json()
        assert body['showAll'] is True
        assert len(body['tasks']) == 1

    def test_assignee_must_be_member(self, make_org, make_user, org_profile, client_for):
        org_a, org_b = make_org('starter'), make_org('starter')
        agent = make_user(org_a, org_profile(org_a, 'Agent'))
        outsider = make_user(org_b)
        response = client_for(agent).post('/tasks', json={'title': 'Visit', 'assigned_to_id': outsider.id})
        assert response.status_code == 400


class TestOrganizationRoutes:

    def test_setup(self, make_user, client_for):
        user = make_user(email='founder@acme-properties.com')
        client = client_for(user)

        response = client.post('/org/setup', json={'name': 'Acme Properties', 'plan_name': 'starter'})
        assert response.status_code == 201
        body = response.get_json()
        assert body['organization']['slug'] == 'acme-properties'
        assert body['plan']['planName'] == 'starter'
        assert body['plan']['status'] == 'trialing'

        access = client.get('/api/access').get_json()['access']
        assert access['isOrganizationAdmin'] is True
        assert access['profileName'] == 'Owner'

    def test_setup_without_plan_uses_configured_default(self, app, make_user, client_for):
        app.config['DEFAULT_PLAN_NAME'] = 'starter'
        user = make_user(email='founder@keur-immo.com')

        response = client_for(user).post('/org/setup', json={'name': 'Keur Immo'})
        assert response.status_code == 201
        assert response.get_json()['plan']['planName'] == 'starter'

    def test_setup_rejects_second_organization(self, make_org, make_user, org_profile, client_for):
        org = make_org()
        owner = make_user(org, org_profile(org, 'Owner'))
        response = client_for(owner).post('/org/setup', json={'name': 'Second Org'})
        assert response.status_code == 400
        assert response.get_json()['reason'] == 'profile_error'

    def test_invite_sends_email(self, make_org, make_user, org_profile, client_for):
        org = make_org('starter')
        owner = make_user(org, org_profile(org, 'Owner'))
        agent_profile = org_profile(org, 'Agent')

        with mail.record_messages() as outbox:
            response = client_for(owner).post('/org/members/invite', json={
                'email': 'New.Agent@acme-properties.com',
                'profile_id': agent_profile.id,
            })

        assert response.status_code == 201
        assert response.get_json()['invitation']['email'] == 'new.agent@acme-properties.com'
        assert len(outbox) == 1
        assert outbox[0].recipients == ['new.agent@acme-properties.com']
        invitation = UserInvitation.query.filter_by(organization_id=org.id).one()
        assert invitation.token in outbox[0].body

    def test_invite_over_user_limit(self, make_org, make_user, org_profile, client_for):
        org = make_org('starter')
        owner = make_user(org, org_profile(org, 'Owner'))
        make_user(org, org_profile(org, 'Agent'))

        response = client_for(owner).post('/org/members/invite', json={'email': 'third@acme-properties.com'})
        assert response.status_code == 403
        body = response.get_json()
        assert body['reason'] == 'limit_exceeded'
        assert body['resource'] == 'users'
        assert body['current'] == 2
        assert body['limit'] == 2
        assert UserInvitation.query.count() == 0

    def test_invite_requires_user_create(self, make_org, make_user, org_profile, client_for):
        org = make_org('pro')
        agent = make_user(org, org_profile(org, 'Agent'))
        response = client_for(agent).post('/org/members/invite', json={'email': 'x@acme-properties.com'})
        assert response.status_code == 403

    def test_invalid_invite_email(self, make_org, make_user, org_profile, client_for):
        org = make_org('pro')
        owner = make_user(org, org_profile(org, 'Owner'))
        response = client_for(owner).post('/org/members/invite', json={'email': 'not-an-email'})
        assert response.status_code == 400
        assert 'email' in response.get_json()['errors']

    def test_members_report_invite_capacity(self, make_org, make_user, org_profile, client_for):
        org = make_org('starter')
        owner = make_user(org, org_profile(org, 'Owner'))
        make_user(org, org_profile(org, 'Viewer'))

        body = client_for(owner).get('/org/members').get_json()
        assert len(body['members']) == 2
        assert body['canInvite'] is False
        assert body['inviteLimitMessage'] == 'User limit reached (2 users). Please upgrade your plan.'

    def test_usage(self, make_org, make_user, org_profile, add_lots, client_for):
        org = make_org('freemium')
        owner = make_user(org, org_profile(org, 'Owner'))
        add_lots(org, 4)

        body = client_for(owner).get('/org/usage').get_json()
        assert body['usage']['lots'] == 4
        assert body['limits'] == {'lots': 5, 'users': 1, 'extranetTenants': 5}
        levels = {w['resource']: w['level'] for w in body['warnings']}
        assert levels == {'lots': 'warning', 'users': 'limit_reached'}

    def test_change_member_profile(self, make_org, make_user, org_profile, client_for):
        org = make_org('pro')
        owner = make_user(org, org_profile(org, 'Owner'))
        member = make_user(org, org_profile(org, 'Viewer'))
        agent_profile = org_profile(org, 'Agent')

        response = client_for(owner).post(f'/org/members/{member.id}/profile',
                                          json={'profile_id': agent_profile.id})
        assert response.status_code == 200
        assert response.get_json()['profileName'] == 'Agent'

    def test_cannot_demote_last_admin(self, make_org, make_user, org_profile, client_for):
        org = make_org('pro')
        owner = make_user(org, org_profile(org, 'Owner'))
        response = client_for(owner).post(f'/org/members/{owner.id}/profile',
                                          json={'profile_id': org_profile(org, 'Viewer').id})
        assert response.status_code == 400
        assert response.get_json()['reason'] == 'profile_error'

    def test_non_admin_cannot_promote_themself(self, make_org, make_user, make_profile, org_profile, client_for):
        org = make_org('pro')
        make_user(org, org_profile(org, 'Owner'))
        manager_profile = make_profile(org, 'Manager', {
            ObjectType.USER: Capabilities(can_read=True, can_edit=True, can_view_all=True),
            ObjectType.ORGANIZATION: Capabilities(can_read=True),
        })
        manager = make_user(org, manager_profile)
        client = client_for(manager)

        for profile in (org_profile(org, 'Owner'),
                        Profile.query.filter_by(organization_id=None, name=SYSTEM_ADMIN_PROFILE).first()):
            response = client.post(f'/org/members/{manager.id}/profile', json={'profile_id': profile.id})
            assert response.status_code == 403
            assert response.get_json()['reason'] == 'permission_denied'
        assert manager.profile_id == manager_profile.id


class TestSubscriptionRoutes:

    def test_plans(self, make_user, client_for):
        body = client_for(make_user()).get('/subscription/plans').get_json()
        assert [p['name'] for p in body['plans']] == ['freemium', 'starter', 'pro', 'agency', 'enterprise']
        assert body['plans'][3]['limits']['lots'] == -1

    def test_downgrade_rejected_with_every_error(self, make_org, make_user, org_profile, add_lots, client_for):
        org = make_org('pro')
        owner = make_user(org, org_profile(org, 'Owner'))
        add_lots(org, 6)

        response = client_for(owner).post('/subscription/change', json={'plan_name': 'freemium'})
        assert response.status_code == 403
        body = response.get_json()
        assert body['reason'] == 'plan_change_rejected'
        assert body['errors'] == ['You have 6 lots, but the Freemium plan allows only 5.']
        assert body['currentUsage']['lots'] == 6
        assert body['targetLimits']['lots'] == 5
        assert body['isDowngrade'] is True

    def test_upgrade(self, make_org, make_user, org_profile, client_for):
        org = make_org('starter')
        owner = make_user(org, org_profile(org, 'Owner'))
        client = client_for(owner)

        response = client.post('/subscription/change', json={'plan_name': 'pro'})
        assert response.status_code == 200
        assert response.get_json()['planName'] == 'pro'
        assert 'bank_sync' in client.get('/subscription').get_json()['plan']['features']

    def test_unknown_plan_is_a_form_error(self, make_org, make_user, org_profile, client_for):
        org = make_org('starter')
        owner = make_user(org, org_profile(org, 'Owner'))
        response = client_for(owner).post('/subscription/change', json={'plan_name': 'platinum'})
        assert response.status_code == 400

    def test_only_admins_change_plan(self, make_org, make_user, org_profile, client_for):
        org = make_org('starter')
        agent = make_user(org, org_profile(org, 'Agent'))
        response = client_for(agent).post('/subscription/change', json={'plan_name': 'pro'})
        assert response.status_code == 403
        assert response.get_json()['reason'] == 'permission_denied'

    def test_validate_preview(self, make_org, make_user, org_profile, add_lots, client_for):
        org = make_org('pro')
        owner = make_user(org, org_profile(org, 'Owner'))
        add_lots(org, 31)
        validation = client_for(owner).get('/subscription/validate?plan=starter').get_json()['validation']
        assert validation['allowed'] is False
        assert validation['errors'] == ['You have 31 lots, but the Starter plan allows only 30.']


class TestProfileRoutes:

    def test_global_profile_cannot_be_edited_by_org_admin(self, make_org, make_user, org_profile, client_for):
        org = make_org('pro')
        owner = make_user(org, org_profile(org, 'Owner'))
        global_profile = Profile.query.filter_by(organization_id=None, name=SYSTEM_ADMIN_PROFILE).first()

        response = client_for(owner).put(f'/profiles/{global_profile.id}/permissions/Task',
                                         json={'can_read': True})
        assert response.status_code == 403
        assert response.get_json()['reason'] == 'object_permission_denied'
        assert global_profile.get_permission('Task').can_delete

    def test_org_profile_edit(self, make_org, make_user, org_profile, client_for):
        org = make_org('pro')
        owner = make_user(org, org_profile(org, 'Owner'))
        agent_profile = org_profile(org, 'Agent')

        response = client_for(owner).put(f'/profiles/{agent_profile.id}/permissions/Report', json={
            'can_create': False, 'can_read': True, 'can_edit': True, 'can_delete': False, 'can_view_all': True,
        })
        assert response.status_code == 200
        permission = response.get_json()['permission']
        assert permission['accessLevel'] == 'ReadWrite'
        assert permission['canCreate'] is False
        assert permission['canEdit'] is True

    def test_unknown_object_type(self, make_org, make_user, org_profile, client_for):
        org = make_org('pro')
        owner = make_user(org, org_profile(org, 'Owner'))
        response = client_for(owner).put(f'/profiles/{org_profile(org, "Agent").id}/permissions/Spaceship',
                                         json={'can_read': True})
        assert response.status_code == 400
        assert response.get_json()['reason'] == 'invalid_request'

    def test_last_admin_guard(self, make_org, make_user, org_profile, client_for):
        org = make_org('pro')
        owner_profile = org_profile(org, 'Owner')
        owner = make_user(org, owner_profile)
        response = client_for(owner).put(f'/profiles/{owner_profile.id}/permissions/Organization',
                                         json={'can_read': True})
        assert response.status_code == 400
        assert response.get_json()['reason'] == 'profile_error'

    def test_non_admin_cannot_grant_organization_edit(self, make_org, make_user, make_profile, client_for):
        org = make_org('pro')
        editor_profile = make_profile(org, 'Profile Editor', {
            ObjectType.PROFILE: Capabilities(can_read=True, can_edit=True),
            ObjectType.ORGANIZATION: Capabilities(can_read=True),
        })
        editor = make_user(org, editor_profile)

        response = client_for(editor).put(f'/profiles/{editor_profile.id}/permissions/Organization',
                                          json={'can_read': True, 'can_edit': True})
        assert response.status_code == 403
        assert response.get_json()['failedLevel'] == 'profile'
        assert not editor_profile.get_permission('Organization').can_edit

    def test_profiles_list_and_summary(self, make_org, make_user, org_profile, client_for):
        org = make_org('pro')
        owner = make_user(org, org_profile(org, 'Owner'))
        client = client_for(owner)

        profiles = client.get('/profiles').get_json()['profiles']
        assert {p['name'] for p in profiles} == {'Owner', 'Accountant', 'Agent', 'Viewer', SYSTEM_ADMIN_PROFILE}

        viewer_id = org_profile(org, 'Viewer').id
        summary = client.get(f'/profiles/{viewer_id}/summary').get_json()['summary']
        assert summary['overallAccessLevel'] == 'Read'

    def test_viewer_cannot_list_profiles(self, make_org, make_user, org_profile, client_for):
        org = make_org('pro')
        viewer = make_user(org, org_profile(org, 'Viewer'))
        assert client_for(viewer).get('/profiles').status_code == 403


class TestPlatformAdminRoutes:

    def test_super_admin_reseeds_global_profiles(self, make_user, client_for):
        from services.security import set_object_permission

        global_profile = Profile.query.filter_by(organization_id=None, name=SYSTEM_ADMIN_PROFILE).first()
        set_object_permission(global_profile, ObjectType.TASK, Capabilities(can_read=True), allow_global=True)
        admin = make_user(is_super_admin=True)

        response = client_for(admin).post('/profiles/global/seed')
        assert response.status_code == 200
        assert global_profile.get_permission('Task').access_level == 'All'

    def test_org_admin_cannot_reseed(self, make_org, make_user, org_profile, client_for):
        org = make_org('enterprise')
        owner = make_user(org, org_profile(org, 'Owner'))
        response = client_for(owner).post('/profiles/global/seed')
        assert response.status_code == 403
