"""
Job chat, in-app notifications and reviews
"""
from datetime import datetime, timezone
import json

import lifecycle
import notifications
from models import db, JobStatus, Message, Notification, Review


class TestChat:

    def test_participants_exchange_messages(self, client, customer_headers, worker_headers, worker, job_factory):
        job = job_factory(status=JobStatus.ACCEPTED, worker=worker)
        url = '/api/jobs/{}/messages'.format(job.id)

        sent = client.post(url, headers=customer_headers, json={'text': 'Gate code is 1234'})
        assert sent.status_code == 201
        client.post(url, headers=worker_headers, json={'message': 'Five minutes away'})

        messages = json.loads(client.get(url, headers=worker_headers).data)['messages']
        assert [m['text'] for m in messages] == ['Gate code is 1234', 'Five minutes away']

    def test_after_cursor(self, client, customer_headers, worker, job_factory):
        job = job_factory(status=JobStatus.ACCEPTED, worker=worker)
        url = '/api/jobs/{}/messages'.format(job.id)
        first = json.loads(client.post(url, headers=customer_headers, json={'text': 'one'}).data)['message']

        messages = json.loads(client.get(url + '?after=' + first['id'], headers=customer_headers).data)['messages']
        assert all(m['id'] != first['id'] for m in messages)

    def test_after_cursor_keeps_same_timestamp_messages(self, client, db_session, customer, worker,
                                                         customer_headers, job_factory):
        job = job_factory(status=JobStatus.ACCEPTED, worker=worker)
        sent_at = datetime(2024, 5, 1, 9, 30, tzinfo=timezone.utc)
        first = Message(id='00000000-0000-0000-0000-000000000001', job_id=job.id,
                        sender_id=customer.id, text='Ring the bell', created_at=sent_at)
        second = Message(id='00000000-0000-0000-0000-000000000002', job_id=job.id,
                         sender_id=worker.id, text='On my way', created_at=sent_at)
        db_session.add_all([first, second])
        db_session.commit()

        url = '/api/jobs/{}/messages?after={}'.format(job.id, first.id)
        messages = json.loads(client.get(url, headers=customer_headers).data)['messages']
        assert [m['text'] for m in messages] == ['On my way']

    def test_outsiders_are_refused(self, client, headers_for, worker, other_worker, job_factory):
        job = job_factory(status=JobStatus.ACCEPTED, worker=worker)
        response = client.get('/api/jobs/{}/messages'.format(job.id), headers=headers_for(other_worker))
        assert response.status_code == 403

    def test_no_chat_before_assignment(self, client, worker_headers, open_job):
        response = client.post('/api/jobs/{}/messages'.format(open_job.id), headers=worker_headers,
                               json={'text': 'Hello?'})
        assert response.status_code == 403

    def test_empty_and_oversized(self, client, customer_headers, worker, job_factory):
        job = job_factory(status=JobStatus.ACCEPTED, worker=worker)
        url = '/api/jobs/{}/messages'.format(job.id)
        assert client.post(url, headers=customer_headers, json={'text': '   '}).status_code == 400
        assert client.post(url, headers=customer_headers, json={'text': 'x' * 2001}).status_code == 400


class TestNotifications:

    def test_accept_notifies_customer(self, customer, worker, open_job):
        lifecycle.accept_job(open_job.id, worker)
        rows = Notification.query.filter_by(user_id=customer.id).all()
        assert [n.title for n in rows] == ['Worker on the way']
        assert rows[0].link == '/jobs/{}'.format(open_job.id)

    def test_unknown_type_falls_back_to_info(self, customer):
        notification = notifications.notify(customer.id, 'Hello', 'World', type='SHOUTING')
        assert notification.type == 'INFO'

    def test_notify_never_raises(self, monkeypatch, customer):
        def broken_commit():
            raise RuntimeError('database is gone')

        monkeypatch.setattr(db.session, 'commit', broken_commit)
        assert notifications.notify(customer.id, 'Hello', 'World') is None

    def test_list_and_mark_read(self, client, customer, customer_headers):
        first = notifications.notify(customer.id, 'One', 'first')
        notifications.notify(customer.id, 'Two', 'second')

        data = json.loads(client.get('/api/notifications', headers=customer_headers).data)
        assert data['unread_count'] == 2

        client.post('/api/notifications/{}/read'.format(first.id), headers=customer_headers)
        data = json.loads(client.get('/api/notifications?unread=1', headers=customer_headers).data)
        assert [n['title'] for n in data['notifications']] == ['Two']

        response = client.post('/api/notifications/read-all', headers=customer_headers)
        assert json.loads(response.data)['updated'] == 1

    def test_cannot_read_someone_elses(self, client, worker, customer_headers):
        other = notifications.notify(worker.id, 'Private', 'not yours')
        response = client.post('/api/notifications/{}/read'.format(other.id), headers=customer_headers)
        assert response.status_code == 404


class TestReviews:

    def test_review_completed_job(self, client, customer_headers, headers_for, worker, job_factory):
        job = job_factory(status=JobStatus.COMPLETED, worker=worker, amount=300.0)
        response = client.post('/api/reviews', headers=customer_headers, json={
            'job_id': job.id, 'rating': 4, 'comment': 'Quick and tidy',
        })
        assert response.status_code == 201

        profile = json.loads(client.get('/api/workers/{}'.format(worker.id), headers=customer_headers).data)
        assert profile['worker']['rating'] == 4.0
        assert profile['worker']['review_count'] == 1
        assert len(profile['reviews']) == 1

    def test_one_review_per_job(self, client, customer_headers, worker, job_factory):
        job = job_factory(status=JobStatus.COMPLETED, worker=worker, amount=300.0)
        payload = {'job_id': job.id, 'rating': 5}
        client.post('/api/reviews', headers=customer_headers, json=payload)
        again = client.post('/api/reviews', headers=customer_headers, json=payload)
        assert again.status_code == 409
        assert Review.query.filter_by(job_id=job.id).count() == 1

    def test_only_completed_jobs(self, client, customer_headers, worker, job_factory):
        job = job_factory(status=JobStatus.IN_PROGRESS, worker=worker)
        response = client.post('/api/reviews', headers=customer_headers, json={'job_id': job.id, 'rating': 5})
        assert response.status_code == 400

    def test_rating_range(self, client, customer_headers, worker, job_factory):
        job = job_factory(status=JobStatus.COMPLETED, worker=worker, amount=300.0)
        response = client.post('/api/reviews', headers=customer_headers, json={'job_id': job.id, 'rating': 6})
        assert response.status_code == 400
