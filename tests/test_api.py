import pytest
from conftest import QUIET_CONFIG

from ageforge.api.game import discard_engine, get_running_engine


@pytest.fixture
def session_id(client):
    response = client.post('/api/game/start', json={'label': 'test', 'config': QUIET_CONFIG})
    assert response.status_code == 201
    return response.get_json()['session_id']


def action(client, session_id, action_type, **action_data):
    return client.post('/api/game/action', json={
        'session_id': session_id,
        'action_type': action_type,
        'action_data': action_data,
    })


def test_start_returns_fresh_world(client):
    response = client.post('/api/game/start', json={'config': QUIET_CONFIG})
    data = response.get_json()
    assert response.status_code == 201
    state = data['game_state']
    assert state['tick'] == 0
    assert state['age']['key'] == 'primitive_age'
    assert state['resources']['food']['amount'] == 15


def test_state_of_unknown_session_is_404(client):
    assert client.get('/api/game/state/999').status_code == 404


def test_action_updates_saved_state(client, session_id):
    response = action(client, session_id, 'gather', resource='wood', amount=5)
    assert response.status_code == 200
    assert response.get_json()['result'] == {'success': True, 'added': 5}

    state = client.get(f'/api/game/state/{session_id}').get_json()['game_state']
    assert state['resources']['wood']['amount'] == 17


def test_failed_action_is_rejected_and_logged(client, session_id):
    response = action(client, session_id, 'build', building='altar')
    assert response.status_code == 400
    body = response.get_json()
    assert body['category'] == 'insufficient_resource'
    assert 'cannot afford' in body['error']

    commands = client.get(f'/api/saves/{session_id}/commands').get_json()['commands']
    assert [c['action_type'] for c in commands] == ['start', 'build']
    assert commands[-1]['success'] is False
    assert 'cannot afford' in commands[-1]['message']


def test_unknown_building_is_404_with_category(client, session_id):
    response = action(client, session_id, 'build', building='castel')
    assert response.status_code == 404
    assert response.get_json()['category'] == 'not_found'


def test_action_requires_session_and_type(client, session_id):
    response = client.post('/api/game/action', json={'action_type': 'gather'})
    assert response.status_code == 400
    assert response.get_json()['error'] == 'Missing session_id'
    response = client.post('/api/game/action', json={'session_id': session_id})
    assert response.status_code == 400
    assert action(client, session_id, 'dance').get_json()['category'] == 'invalid_argument'


def test_tick_advances_the_world(client, session_id):
    action(client, session_id, 'gather', resource='wood', amount=38)
    action(client, session_id, 'build', building='hut')
    response = client.post('/api/game/tick', json={'session_id': session_id, 'count': 3})
    data = response.get_json()
    assert data['tick'] == 3
    assert data['game_state']['buildings']['hut']['count'] == 1

    save = client.get(f'/api/saves/{session_id}').get_json()['save']
    assert save['tick'] == 3
    assert save['game_state']['buildings']['hut'] == 1


@pytest.mark.parametrize('count', [0, 1001, 'ten', True])
def test_tick_count_is_validated(client, session_id, count):
    response = client.post('/api/game/tick', json={'session_id': session_id, 'count': count})
    assert response.status_code == 400


def test_clock_start_and_stop(client, session_id):
    response = client.post('/api/game/clock', json={'session_id': session_id, 'running': True})
    assert response.get_json()['running'] is True
    assert get_running_engine(session_id) is not None

    response = client.post('/api/game/clock', json={'session_id': session_id, 'running': False})
    assert response.get_json()['running'] is False
    assert get_running_engine(session_id) is None

    response = client.post('/api/game/clock', json={'session_id': session_id, 'running': 'yes'})
    assert response.status_code == 400


def test_load_replaces_world_from_document(client, session_id):
    other = client.post('/api/game/start', json={'config': QUIET_CONFIG}).get_json()['session_id']
    client.post('/api/game/tick', json={'session_id': other, 'count': 4})
    document = client.get(f'/api/saves/{other}').get_json()['save']['game_state']

    response = client.post('/api/game/load', json={'session_id': session_id, 'game_state': document})
    assert response.status_code == 200
    assert response.get_json()['game_state']['tick'] == 4


def test_bad_save_document_is_a_persistence_failure(client, session_id):
    response = client.post('/api/game/load', json={'session_id': session_id, 'game_state': {'version': 99}})
    assert response.status_code == 500
    assert response.get_json()['category'] == 'persistence'

    state = client.get(f'/api/game/state/{session_id}').get_json()['game_state']
    assert state['tick'] == 0


def test_save_to_file(client, session_id, tmp_path, monkeypatch):
    path = str(tmp_path / 'save.json')
    monkeypatch.setattr('ageforge.config.Config.SAVE_PATH', path)
    response = client.post('/api/game/save', json={'session_id': session_id, 'to_file': True})
    assert response.get_json()['path'] == path
    assert (tmp_path / 'save.json').exists()


def test_list_and_delete_saves(client, session_id):
    client.post('/api/game/start', json={'label': 'second', 'config': QUIET_CONFIG})
    saves = client.get('/api/saves/').get_json()
    assert saves['total'] == 2

    response = client.delete(f'/api/saves/{session_id}')
    assert response.get_json() == {'success': True, 'deleted': session_id}
    assert client.get(f'/api/saves/{session_id}').status_code == 404
    assert client.get('/api/saves/').get_json()['total'] == 1
    discard_engine(session_id)
