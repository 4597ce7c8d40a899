import pytest

CODE = '482913'


@pytest.fixture()
def document(game_config):
    return game_config.build_state(CODE, 1000).to_dict()


def _create(client, document, password='hunter2'):
    return client.put(f'/api/sessions/{CODE}', json=document, headers={'X-Host-Password': password})


def test_health(client):
    res = client.get('/health')
    assert res.status_code == 200
    assert res.get_json()['status'] == 'ok'


def test_create_session_document(client, document):
    res = _create(client, document)
    assert res.status_code == 201
    data = res.get_json()
    assert data['code'] == CODE
    assert data['host_token']

    res = client.get(f'/api/sessions/{CODE}')
    assert res.status_code == 200
    assert res.get_json() == document


def test_get_missing_session(client):
    res = client.get('/api/sessions/111111')
    assert res.status_code == 404


def test_create_requires_password(client, document):
    assert client.put(f'/api/sessions/{CODE}', json=document).status_code == 403
    assert _create(client, document, password='abc').status_code == 403
    assert client.get(f'/api/sessions/{CODE}').status_code == 404


def test_overwrite_requires_host_token(client, document):
    token = _create(client, document).get_json()['host_token']
    document['teamA']['score'] = 5
    document['lastUpdate'] = 2000

    res = client.put(f'/api/sessions/{CODE}', json=document, headers={'X-Host-Token': 'wrong'})
    assert res.status_code == 403
    # The password alone does not overwrite an existing document
    res = client.put(f'/api/sessions/{CODE}', json=document, headers={'X-Host-Password': 'hunter2'})
    assert res.status_code == 403

    res = client.put(f'/api/sessions/{CODE}', json=document, headers={'X-Host-Token': token})
    assert res.status_code == 200
    assert res.get_json()['lastUpdate'] == 2000
    assert client.get(f'/api/sessions/{CODE}').get_json()['teamA']['score'] == 5


def test_rejects_invalid_documents(client, document):
    res = client.put('/api/sessions/12ab56', json=document, headers={'X-Host-Password': 'hunter2'})
    assert res.status_code == 400
    res = client.put(f'/api/sessions/{CODE}', data='not json', headers={'X-Host-Password': 'hunter2'})
    assert res.status_code == 400

    document['gameState']['possession'] = 'teamC'
    res = _create(client, document)
    assert res.status_code == 400
    assert 'possession' in res.get_json()['error']


def test_rejects_code_mismatch(client, document):
    document['code'] = '111111'
    res = _create(client, document)
    assert res.status_code == 400


def test_last_write_wins_by_default(client, document):
    token = _create(client, document).get_json()['host_token']
    document['lastUpdate'] = 500
    res = client.put(f'/api/sessions/{CODE}', json=document, headers={'X-Host-Token': token})
    assert res.status_code == 200


def test_stale_write_rejected_when_enabled(flask_app, client, document):
    flask_app.config['REJECT_STALE_WRITES'] = True
    token = _create(client, document).get_json()['host_token']
    document['lastUpdate'] = 500
    res = client.put(f'/api/sessions/{CODE}', json=document, headers={'X-Host-Token': token})
    assert res.status_code == 409


def test_claim_host_with_password(client, document):
    token = _create(client, document).get_json()['host_token']
    res = client.post(f'/api/sessions/{CODE}/host', json={'password': 'hunter2'})
    assert res.status_code == 200
    assert res.get_json()['host_token'] == token
    assert client.post(f'/api/sessions/{CODE}/host', json={'password': 'nope'}).status_code == 403
    assert client.post('/api/sessions/111111/host', json={'password': 'hunter2'}).status_code == 404


def test_delete_session(client, document):
    token = _create(client, document).get_json()['host_token']
    assert client.delete(f'/api/sessions/{CODE}').status_code == 403
    res = client.delete(f'/api/sessions/{CODE}', headers={'X-Host-Token': token})
    assert res.status_code == 204
    assert client.get(f'/api/sessions/{CODE}').status_code == 404
    assert client.delete(f'/api/sessions/{CODE}', headers={'X-Host-Token': token}).status_code == 404
