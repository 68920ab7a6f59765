"""
End-to-end marketplace flow over HTTP: a customer books an electrician,
a newly verified worker takes the job, and payment lands in the worker's
wallet.
"""
import json


def _json(response):
    return json.loads(response.data)


def _auth(token):
    return {'Authorization': 'Bearer ' + token, 'Content-Type': 'application/json'}


def test_booking_to_wallet(client, admin_headers, sign):
    # Catalog
    category = _json(client.post('/api/categories', headers=admin_headers, json={
        'name': 'Electrician', 'base_price': 300, 'description': 'Wiring and repairs',
    }))['category']
    assert category['icon'] == 'zap'

    # Accounts
    customer = _json(client.post('/api/auth/signup', json={
        'email': 'meera@example.com', 'password': 'Secret123!', 'name': 'Meera',
    }))
    worker = _json(client.post('/api/auth/signup', json={
        'email': 'arjun@example.com', 'password': 'Secret123!', 'name': 'Arjun', 'role': 'worker',
    }))
    customer_h = _auth(customer['token'])
    worker_h = _auth(worker['token'])
    worker_id = worker['user']['id']

    # Worker onboarding
    assert client.post('/api/workers/me/verification', headers=worker_h,
                       json={'documents': ['kyc/id.jpg']}).status_code == 200
    assert client.post('/api/admin/workers/{}/verify'.format(worker_id),
                       headers=admin_headers).status_code == 200
    assert client.put('/api/workers/me/profile', headers=worker_h,
                      json={'skills': [category['id']], 'service_radius_km': 15}).status_code == 200
    assert client.put('/api/workers/me/location', headers=worker_h,
                      json={'lat': 12.9716, 'lng': 77.5946}).status_code == 200
    assert client.put('/api/workers/me/availability', headers=worker_h,
                      json={'is_online': True}).status_code == 200

    # Booking
    created = client.post('/api/jobs', headers=customer_h, json={
        'category_id': category['id'],
        'location_address': '22 Residency Road, Bengaluru',
        'location_lat': 12.9680,
        'location_lng': 77.6010,
        'description': 'Power socket sparking',
    })
    assert created.status_code == 201
    job = _json(created)['job']
    otp = job['otp']

    feed = _json(client.get('/api/workers/feed', headers=worker_h))
    assert [j['id'] for j in feed['jobs']] == [job['id']]

    # Work
    accepted = _json(client.post('/api/jobs/{}/accept'.format(job['id']), headers=worker_h))['job']
    assert accepted['worker_id'] == worker_id
    assert _json(client.get('/api/workers/feed', headers=worker_h))['count'] == 0

    # A second verified worker is too late
    rival = _json(client.post('/api/auth/signup', json={
        'email': 'vikram@example.com', 'password': 'Secret123!', 'name': 'Vikram', 'role': 'worker',
    }))
    rival_h = _auth(rival['token'])
    client.post('/api/workers/me/verification', headers=rival_h, json={'documents': ['kyc/id.jpg']})
    client.post('/api/admin/workers/{}/verify'.format(rival['user']['id']), headers=admin_headers)
    late = client.post('/api/jobs/{}/accept'.format(job['id']), headers=rival_h)
    assert late.status_code == 409
    assert _json(late)['code'] == 'already_accepted'

    assert client.post('/api/jobs/{}/arrive'.format(job['id']), headers=worker_h).status_code == 200
    wrong_otp = '0000' if otp != '0000' else '1111'
    refused = client.post('/api/jobs/{}/start'.format(job['id']), headers=worker_h, json={'otp': wrong_otp})
    assert refused.status_code == 400
    assert _json(refused)['code'] == 'invalid_otp'
    assert _json(client.get('/api/jobs/{}'.format(job['id']), headers=customer_h))['job']['status'] == 'ARRIVED'
    assert client.post('/api/jobs/{}/start'.format(job['id']), headers=worker_h,
                       json={'otp': otp}).status_code == 200
    completed = _json(client.post('/api/jobs/{}/complete'.format(job['id']), headers=worker_h,
                                  json={'amount': 350}))['job']
    assert completed['status'] == 'COMPLETED_PENDING_PAYMENT'

    # Payment
    order = _json(client.post('/api/payments/orders', headers=customer_h,
                              json={'job_id': job['id']}))['order']
    assert order['amount_minor'] == 35000

    verified = client.post('/api/payments/verify', headers=customer_h, json={
        'razorpay_order_id': order['order_id'],
        'razorpay_payment_id': 'pay_e2e',
        'razorpay_signature': sign(order['order_id'], 'pay_e2e'),
        'job_id': job['id'],
        'worker_id': worker_id,
        'amount': 350,
    })
    assert verified.status_code == 200
    assert _json(verified)['job']['status'] == 'COMPLETED'

    # Wallet
    wallet = _json(client.get('/api/wallet', headers=worker_h))
    assert wallet['wallet']['balance'] == 350.0
    [credit] = wallet['transactions']
    assert credit['type'] == 'CREDIT'
    assert credit['amount'] == 350.0
    assert credit['reference'] == 'pay_e2e'

    # Review and stats
    assert client.post('/api/reviews', headers=customer_h,
                       json={'job_id': job['id'], 'rating': 5}).status_code == 201
    stats = _json(client.get('/api/admin/stats', headers=admin_headers))['stats']
    assert stats['total_gmv'] == 350.0
    assert stats['total_revenue'] == 35.0
