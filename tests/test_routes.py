import pytest

from petcare import db
from petcare.models import Pet
from petcare.utils import firebase

AUTH = {'Authorization': 'Bearer good-token'}


@pytest.fixture(autouse=True)
def fake_id_tokens(monkeypatch):
    def verify(token, app=None):
        if token != 'good-token':
            raise ValueError('Token expired')
        return {'uid': 'user-1', 'email': 'owner@example.com'}

    monkeypatch.setattr(firebase, 'verify_id_token', verify)


def test_health_check(client):
    response = client.get('/health')
    assert response.status_code == 200
    assert response.get_json() == {'status': 'healthy', 'store_backend': 'sql'}


class TestDevices:

    def test_requires_bearer_token(self, client):
        assert client.get('/api/devices').status_code == 401
        assert client.get('/api/devices', headers={'Authorization': 'Bearer stale'}).status_code == 401

    def test_register_list_and_delete(self, client):
        response = client.post('/api/devices', json={'token': 'fcm.token/1', 'platform': 'ios'}, headers=AUTH)
        assert response.status_code == 201
        device = response.get_json()['device']
        assert device['id'] == 'fcm_token_1'
        assert device['provider'] == 'fcm'

        listing = client.get('/api/devices', headers=AUTH).get_json()
        assert listing['count'] == 1

        assert client.delete('/api/devices/fcm_token_1', headers=AUTH).status_code == 200
        assert client.get('/api/devices', headers=AUTH).get_json()['count'] == 0

    def test_rejects_missing_token(self, client):
        response = client.post('/api/devices', json={'platform': 'ios'}, headers=AUTH)
        assert response.status_code == 400
        assert response.get_json()['success'] is False

    def test_rejects_blank_token(self, client):
        response = client.post('/api/devices', json={'token': '   '}, headers=AUTH)
        assert response.status_code == 400


class TestAssistant:

    def seed_pet(self, owner_id='user-1'):
        pet = Pet(owner_id=owner_id, name='Mavi', species='cat')
        db.session.add(pet)
        db.session.commit()
        return pet.id

    def test_summary_for_own_pet(self, client):
        pet_id = self.seed_pet()

        response = client.post('/api/ai/summary', json={'petId': pet_id, 'task': 'riskAnalysis'}, headers=AUTH)

        assert response.status_code == 200
        summary = response.get_json()['summary']
        assert summary['source'] == 'local'
        assert summary['title'] == 'Health risk analysis for Mavi'

    def test_other_users_pet_is_not_found(self, client):
        pet_id = self.seed_pet(owner_id='user-2')

        response = client.post('/api/ai/summary', json={'petId': pet_id, 'task': 'vetSummary'}, headers=AUTH)

        assert response.status_code == 404

    def test_unknown_task_is_rejected(self, client):
        response = client.post('/api/ai/summary', json={'petId': 'p', 'task': 'horoscope'}, headers=AUTH)
        assert response.status_code == 400


class TestScheduler:

    def test_status(self, client):
        response = client.get('/api/reminders/scheduler/status')

        body = response.get_json()
        assert response.status_code == 200
        assert body['status']['scheduler_running'] is False
        assert body['status']['due_reminders'] == 0

    def test_trigger_requires_configured_key(self, app, client):
        app.config['SCHEDULER_TRIGGER_KEY'] = 'secret'

        assert client.post('/api/reminders/scheduler/trigger').status_code == 403
        response = client.post('/api/reminders/scheduler/trigger', headers={'X-Scheduler-Key': 'secret'})

        assert response.status_code == 200
        assert response.get_json()['result']['summary']['processed'] == 0

    def test_trigger_is_open_without_key(self, client):
        assert client.post('/api/reminders/scheduler/trigger').status_code == 200
