"""
Socket.IO room access and job status fan-out
"""
import pytest

from auth_routes import generate_token
import lifecycle
from models import JobStatus
from socket_events import socketio, job_room, user_room, WORKER_FEED_ROOM, ADMIN_ROOM


@pytest.fixture
def socket_client(app, client):
    def _connect():
        return socketio.test_client(app, flask_test_client=client)
    return _connect


def _events(received, name):
    return [packet['args'][0] for packet in received if packet['name'] == name]


class TestJoin:

    def test_customer_joins_own_job(self, socket_client, customer, open_job):
        sio = socket_client()
        sio.emit('join', {'token': generate_token(customer), 'room': job_room(open_job.id)})
        assert _events(sio.get_received(), 'joined') == [{'room': job_room(open_job.id)}]

    def test_stranger_refused_job_room(self, socket_client, other_worker, worker, job_factory):
        job = job_factory(status=JobStatus.ACCEPTED, worker=worker)
        sio = socket_client()
        sio.emit('join', {'token': generate_token(other_worker), 'room': job_room(job.id)})
        received = sio.get_received()
        assert _events(received, 'joined') == []
        assert len(_events(received, 'error')) == 1

    def test_missing_token_refused(self, socket_client, customer):
        sio = socket_client()
        sio.emit('join', {'room': user_room(customer.id)})
        assert len(_events(sio.get_received(), 'error')) == 1

    def test_only_admins_join_admin_room(self, socket_client, admin, customer):
        sio = socket_client()
        sio.emit('join', {'token': generate_token(customer), 'room': ADMIN_ROOM})
        sio.emit('join', {'token': generate_token(admin), 'room': ADMIN_ROOM})
        received = sio.get_received()
        assert _events(received, 'joined') == [{'room': ADMIN_ROOM}]

    def test_feed_room_needs_verified_worker(self, socket_client, worker, customer):
        sio = socket_client()
        sio.emit('join', {'token': generate_token(customer), 'room': WORKER_FEED_ROOM})
        sio.emit('join', {'token': generate_token(worker), 'room': WORKER_FEED_ROOM})
        assert _events(sio.get_received(), 'joined') == [{'room': WORKER_FEED_ROOM}]


class TestBroadcasts:

    def test_accept_reaches_customer_and_feed(self, socket_client, customer, worker, open_job):
        customer_sio = socket_client()
        customer_sio.emit('join', {'token': generate_token(customer), 'room': user_room(customer.id)})
        feed_sio = socket_client()
        feed_sio.emit('join', {'token': generate_token(worker), 'room': WORKER_FEED_ROOM})
        customer_sio.get_received()
        feed_sio.get_received()

        lifecycle.accept_job(open_job.id, worker)

        statuses = _events(customer_sio.get_received(), 'job:status')
        assert {'job_id': open_job.id, 'status': JobStatus.ACCEPTED} in statuses
        assert _events(feed_sio.get_received(), 'job:taken') == [{'job_id': open_job.id}]

    def test_payloads_carry_no_otp(self, socket_client, customer, category):
        sio = socket_client()
        sio.emit('join', {'token': generate_token(customer), 'room': user_room(customer.id)})
        sio.get_received()
        job = lifecycle.create_job(customer, category.id, '1 Church Street, Bengaluru')
        lifecycle.cancel_job(job.id, customer)
        for payload in _events(sio.get_received(), 'job:status'):
            assert set(payload) == {'job_id', 'status'}
