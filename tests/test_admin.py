"""
Admin tests: platform stats, user suspension, worker verification,
platform settings and maintenance mode
"""
import json

from models import db, User, Job, JobStatus, Role, AccountStatus, SystemSettings, WorkerStatus
import platform_settings


class TestStats:

    def test_gmv_and_revenue(self, client, admin_headers, worker, job_factory):
        job_factory(status=JobStatus.COMPLETED, worker=worker, amount=350.0)
        job_factory(status=JobStatus.COMPLETED, worker=worker, amount=650.0)
        job_factory(status=JobStatus.COMPLETED_PENDING_PAYMENT, worker=worker, amount=999.0)
        job_factory(status=JobStatus.DISPUTED, worker=worker)

        response = client.get('/api/admin/stats', headers=admin_headers)
        assert response.status_code == 200
        stats = json.loads(response.data)['stats']
        assert stats['total_gmv'] == 1000.0
        assert stats['commission_rate'] == 10.0
        assert stats['total_revenue'] == 100.0
        assert stats['completed_jobs'] == 2
        assert stats['open_disputes'] == 1

    def test_revenue_follows_commission(self, client, admin_headers, worker, job_factory):
        job_factory(status=JobStatus.COMPLETED, worker=worker, amount=1000.0)
        platform_settings.update_settings({'commission_rate': 12.5})
        stats = json.loads(client.get('/api/admin/stats', headers=admin_headers).data)['stats']
        assert stats['total_revenue'] == 125.0

    def test_non_admin(self, client, worker_headers):
        assert client.get('/api/admin/stats', headers=worker_headers).status_code == 403


class TestUsers:

    def test_list_by_role(self, client, admin_headers, customer, worker):
        response = client.get('/api/admin/users?role=worker', headers=admin_headers)
        users = json.loads(response.data)['users']
        assert [u['id'] for u in users] == [worker.id]

    def test_suspend_worker(self, client, admin_headers, headers_for, worker):
        response = client.post('/api/admin/users/{}/suspension'.format(worker.id),
                               headers=admin_headers, json={'suspended': True})
        assert response.status_code == 200
        refreshed = db.session.get(User, worker.id)
        assert refreshed.status == AccountStatus.SUSPENDED
        assert refreshed.worker_status == WorkerStatus.SUSPENDED
        assert refreshed.is_online is False

        blocked = client.get('/api/workers/feed', headers=headers_for(worker))
        assert blocked.status_code == 403

    def test_unsuspend_worker_restores_verified(self, client, admin_headers, worker):
        url = '/api/admin/users/{}/suspension'.format(worker.id)
        client.post(url, headers=admin_headers, json={'suspended': True})
        client.post(url, headers=admin_headers, json={'suspended': False})
        refreshed = db.session.get(User, worker.id)
        assert refreshed.status == AccountStatus.ACTIVE
        assert refreshed.worker_status == WorkerStatus.VERIFIED

    def test_unsuspend_restores_pending_review(self, client, admin_headers, user_factory):
        applicant = user_factory(Role.WORKER, worker_status=WorkerStatus.PENDING_REVIEW, is_online=False)
        url = '/api/admin/users/{}/suspension'.format(applicant.id)
        client.post(url, headers=admin_headers, json={'suspended': True})
        client.post(url, headers=admin_headers, json={'suspended': True})
        client.post(url, headers=admin_headers, json={'suspended': False})

        refreshed = db.session.get(User, applicant.id)
        assert refreshed.status == AccountStatus.ACTIVE
        assert refreshed.worker_status == WorkerStatus.PENDING_REVIEW
        assert refreshed.suspended_worker_status is None

        pending = json.loads(client.get('/api/admin/workers/pending', headers=admin_headers).data)
        assert [w['id'] for w in pending['workers']] == [applicant.id]

    def test_cannot_suspend_self(self, client, admin, admin_headers):
        response = client.post('/api/admin/users/{}/suspension'.format(admin.id),
                               headers=admin_headers, json={'suspended': True})
        assert response.status_code == 400


class TestWorkerVerification:

    def test_submit_then_verify(self, client, headers_for, admin_headers, user_factory):
        rookie = user_factory(Role.WORKER, worker_status=WorkerStatus.UNVERIFIED, is_online=False)
        submitted = client.post('/api/workers/me/verification', headers=headers_for(rookie),
                                json={'documents': ['kyc/aadhaar-front.jpg']})
        assert submitted.status_code == 200
        assert json.loads(submitted.data)['user']['worker_status'] == WorkerStatus.PENDING_REVIEW

        pending = json.loads(client.get('/api/admin/workers/pending', headers=admin_headers).data)
        assert [w['id'] for w in pending['workers']] == [rookie.id]

        verified = client.post('/api/admin/workers/{}/verify'.format(rookie.id), headers=admin_headers)
        assert verified.status_code == 200
        assert db.session.get(User, rookie.id).worker_status == WorkerStatus.VERIFIED

    def test_reject_returns_to_unverified(self, client, admin_headers, user_factory):
        rookie = user_factory(Role.WORKER, worker_status=WorkerStatus.PENDING_REVIEW)
        response = client.post('/api/admin/workers/{}/reject'.format(rookie.id), headers=admin_headers)
        assert response.status_code == 200
        assert db.session.get(User, rookie.id).worker_status == WorkerStatus.UNVERIFIED

    def test_verify_requires_pending(self, client, admin_headers, worker):
        response = client.post('/api/admin/workers/{}/verify'.format(worker.id), headers=admin_headers)
        assert response.status_code == 409

    def test_verified_worker_cannot_resubmit(self, client, worker_headers):
        response = client.post('/api/workers/me/verification', headers=worker_headers,
                               json={'documents': ['kyc/pan.jpg']})
        assert response.status_code == 409


class TestAdminJobs:

    def test_active_jobs(self, client, admin_headers, worker, job_factory):
        accepted = job_factory(status=JobStatus.ACCEPTED, worker=worker)
        disputed = job_factory(status=JobStatus.DISPUTED, worker=worker)
        job_factory(status=JobStatus.SEARCHING)
        job_factory(status=JobStatus.COMPLETED, worker=worker, amount=300.0)

        jobs = json.loads(client.get('/api/admin/jobs/active', headers=admin_headers).data)['jobs']
        assert {j['id'] for j in jobs} == {accepted.id, disputed.id}

    def test_refund_via_endpoint(self, client, admin_headers, worker, job_factory):
        job = job_factory(status=JobStatus.DISPUTED, worker=worker, amount=300.0)
        response = client.post('/api/admin/jobs/{}/resolve'.format(job.id), headers=admin_headers,
                               json={'resolution': 'refund'})
        assert response.status_code == 200
        assert db.session.get(Job, job.id).status == JobStatus.CANCELLED

    def test_unknown_resolution(self, client, admin_headers, worker, job_factory):
        job = job_factory(status=JobStatus.DISPUTED, worker=worker)
        response = client.post('/api/admin/jobs/{}/resolve'.format(job.id), headers=admin_headers,
                               json={'resolution': 'SPLIT'})
        assert response.status_code == 400


class TestSettings:

    def test_defaults(self, client, admin_headers):
        settings = json.loads(client.get('/api/admin/settings', headers=admin_headers).data)['settings']
        assert settings['maintenance_mode'] is False
        assert settings['allow_registration'] is True
        assert settings['commission_rate'] == 10.0

    def test_commission_bounds(self, client, admin_headers):
        response = client.put('/api/admin/settings', headers=admin_headers, json={'commission_rate': 150})
        assert response.status_code == 400
        assert platform_settings.get_settings().commission_rate == 10.0

    def test_ensure_settings_is_idempotent(self, app):
        platform_settings.ensure_settings()
        platform_settings.ensure_settings()
        assert SystemSettings.query.count() == 1

    def test_public_settings(self, client):
        platform_settings.update_settings({'support_phone': '+918000000000'})
        data = json.loads(client.get('/api/settings/public').data)['settings']
        assert data['support_phone'] == '+918000000000'
        assert 'commission_rate' not in data


class TestMaintenanceMode:

    def test_blocks_writes_for_non_admins(self, client, customer_headers, category):
        platform_settings.update_settings({'maintenance_mode': True})
        response = client.post('/api/jobs', headers=customer_headers, json={
            'category_id': category.id, 'location_address': 'Somewhere',
        })
        assert response.status_code == 503
        assert json.loads(response.data)['code'] == 'maintenance'

    def test_reads_and_login_still_work(self, client, customer, customer_headers):
        platform_settings.update_settings({'maintenance_mode': True})
        assert client.get('/api/auth/me', headers=customer_headers).status_code == 200
        login = client.post('/api/auth/login', json={'email': customer.email, 'password': 'Secret123!'})
        assert login.status_code == 200

    def test_admin_can_turn_it_off(self, client, admin_headers):
        platform_settings.update_settings({'maintenance_mode': True})
        response = client.put('/api/admin/settings', headers=admin_headers, json={'maintenance_mode': False})
        assert response.status_code == 200
        assert platform_settings.get_settings().maintenance_mode is False


class TestCli:

    def test_create_admin(self, app):
        runner = app.test_cli_runner()
        result = runner.invoke(args=['create-admin', 'ops@example.com', '--password', 'Secret123!', '--name', 'Ops'])
        assert result.exit_code == 0, result.output
        admin = User.query.filter_by(email='ops@example.com').one()
        assert admin.role == Role.ADMIN
        assert admin.check_password('Secret123!')

    def test_seed_categories(self, app):
        runner = app.test_cli_runner()
        result = runner.invoke(args=['seed-categories'])
        assert result.exit_code == 0, result.output
        assert 'Added 8 categories.' in result.output
