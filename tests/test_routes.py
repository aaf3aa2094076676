"""HTTP 接口"""
from unittest import mock

from models import TrafficStat, User
from service.traffic.fetcher import NodeTrafficFetcher
from service.traffic.errors import NodeUnreachable
from service.traffic.types import TrafficCounter
from utils.auth import generate_token, parse_proxy_auth
from utils.extensions import db


def _auth(client, auth):
    return client.post('/auth', json={'addr': '203.0.113.7:50000', 'auth': auth, 'tx': 0})


def _add_traffic(app, node_id, username, tx, rx):
    with app.app_context():
        db.session.add(TrafficStat(node_id=node_id, username=username, lifetime_tx=tx, lifetime_rx=rx,  # type: ignore
                                   last_tx=tx, last_rx=rx))
        db.session.commit()


def test_auth_success(client, make_user):
    make_user('alice', password='pa:ss')

    response = _auth(client, 'alice:pa:ss')

    assert response.status_code == 200
    assert response.get_json() == {'ok': True, 'id': 'alice'}


def test_auth_rejections(client, make_user):
    make_user('alice', password='secret')
    make_user('frozen', password='secret', enabled=False)

    assert client.post('/auth', data='not json').status_code == 400
    assert _auth(client, 'no-colon').status_code == 401
    assert _auth(client, 'nobody:secret').status_code == 401
    assert _auth(client, 'alice:wrong').status_code == 401
    assert _auth(client, 'frozen:secret').status_code == 403
    assert _auth(client, 123).status_code == 400
    assert _auth(client, {'user': 'alice'}).status_code == 400
    assert client.post('/auth', json={'addr': '203.0.113.7:50000'}).status_code == 400


def test_auth_enforces_quota(app, client, make_user, make_node):
    make_user('alice', password='secret', traffic_limit=1500)
    node_id = make_node('tokyo')
    _add_traffic(app, node_id, 'alice', 1000, 800)

    response = _auth(client, 'alice:secret')

    assert response.status_code == 403
    assert 'Traffic limit exceeded' in response.get_json()['error']
    with app.app_context():
        assert User.query.filter_by(username='alice').first().enabled is False
    assert _auth(client, 'alice:secret').get_json()['error'] == 'User is disabled'


def test_auth_allows_user_without_auto_disable(app, client, make_user, make_node):
    make_user('alice', password='secret', traffic_limit=100, auto_disable_on_limit=False)
    node_id = make_node('tokyo')
    _add_traffic(app, node_id, 'alice', 1000, 800)

    assert _auth(client, 'alice:secret').status_code == 200


def test_reporting_requires_admin(app, client):
    assert client.get('/api/traffic/aggregated').status_code == 401
    assert client.get('/api/traffic/aggregated',
                      headers={'Authorization': 'Bearer garbage'}).status_code == 401

    with app.app_context():
        token = generate_token('viewer', is_admin=False)
    response = client.get('/api/traffic/aggregated', headers={'Authorization': f'Bearer {token}'})
    assert response.status_code == 403


def test_expired_token_is_rejected(app, client):
    with app.app_context():
        token = generate_token('admin', expires_in=-10)
    response = client.get('/api/traffic/by-node', headers={'Authorization': f'Bearer {token}'})
    assert response.status_code == 401


def test_admin_token_from_cookie(app, client):
    with app.app_context():
        token = generate_token('admin')
    client.set_cookie('access_token', token)

    assert client.get('/api/traffic/aggregated').status_code == 200


def test_traffic_reports(app, client, admin_headers, make_user, make_node):
    user_id = make_user('alice', traffic_limit=10_000)
    tokyo = make_node('tokyo')
    osaka = make_node('osaka')
    _add_traffic(app, tokyo, 'alice', 100, 50)
    _add_traffic(app, osaka, 'alice', 20, 10)
    _add_traffic(app, osaka, 'bob', 1, 2)

    aggregated = client.get('/api/traffic/aggregated', headers=admin_headers).get_json()
    assert aggregated == {'alice': {'tx': 120, 'rx': 60}, 'bob': {'tx': 1, 'rx': 2}}

    by_node = client.get('/api/traffic/by-node', headers=admin_headers).get_json()
    assert [entry['node_name'] for entry in by_node] == ['tokyo', 'osaka', 'osaka']
    assert {'node_id', 'node_name', 'username', 'tx', 'rx', 'updated_at'} <= set(by_node[0])

    usage = client.get(f'/api/users/{user_id}/traffic', headers=admin_headers).get_json()
    assert usage['total'] == 180
    assert usage['traffic_limit'] == 10_000
    assert usage['enabled'] is True

    assert client.get('/api/users/999/traffic', headers=admin_headers).status_code == 404


def test_reset_traffic_endpoint(app, client, admin_headers, make_user, make_node):
    user_id = make_user('alice', traffic_limit=100, enabled=False)
    node_id = make_node('tokyo')
    _add_traffic(app, node_id, 'alice', 100, 100)
    _add_traffic(app, node_id, 'bob', 5, 5)

    response = client.post(f'/api/users/{user_id}/reset-traffic', headers=admin_headers)

    assert response.status_code == 200
    assert response.get_json()['deleted'] == 1
    with app.app_context():
        assert TrafficStat.query.filter_by(username='alice').count() == 0
        assert TrafficStat.query.filter_by(username='bob').count() == 1
        assert User.query.filter_by(username='alice').first().enabled is True

    assert client.post('/api/users/999/reset-traffic', headers=admin_headers).status_code == 404


def test_manual_sync(app, client, admin_headers, make_user, make_node):
    make_user('alice', traffic_limit=1000)
    make_node('tokyo', host='10.0.0.1:8081')
    make_node('osaka', host='10.0.0.2:8081')

    def fake_fetch(self, node):
        if node.name == 'osaka':
            raise NodeUnreachable(node.name, 'connection refused')
        return {'alice': TrafficCounter(600, 600), 'idle': TrafficCounter(0, 0)}

    with mock.patch.object(NodeTrafficFetcher, 'fetch', fake_fetch):
        response = client.post('/api/traffic/sync', headers=admin_headers)

    report = response.get_json()
    assert response.status_code == 200
    assert report['synced_nodes'] == ['tokyo']
    assert list(report['failures']) == ['osaka']
    assert report['updated_records'] == 1
    assert report['disabled_users'] == ['alice']
    with app.app_context():
        assert TrafficStat.query.filter_by(username='idle').count() == 0
        assert User.query.filter_by(username='alice').first().enabled is False


def test_manual_sync_releases_fetcher_connections(client, admin_headers, make_node):
    make_node('tokyo')

    with mock.patch.object(NodeTrafficFetcher, 'fetch', lambda self, node: {}), \
            mock.patch.object(NodeTrafficFetcher, 'close') as close:
        response = client.post('/api/traffic/sync', headers=admin_headers)

    assert response.status_code == 200
    close.assert_called_once()


def test_parse_proxy_auth_rejects_non_strings():
    assert parse_proxy_auth('alice:pa:ss') == ('alice', 'pa:ss')
    assert parse_proxy_auth('no-colon') is None
    assert parse_proxy_auth(None) is None
    assert parse_proxy_auth(123) is None
    assert parse_proxy_auth(['alice:secret']) is None
