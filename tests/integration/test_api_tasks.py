"""
Integration tests for the tasks API endpoints.
"""
import pytest


def _create(client, headers, title, stage=None, description='desc'):
    payload = {'title': title, 'description': description}
    if stage:
        payload['stage'] = stage
    response = client.post('/api/tasks', json=payload, headers=headers)
    assert response.status_code == 201, response.get_json()
    return response.get_json()['data']


def _titles(client, headers, stage):
    body = client.get(f'/api/tasks?stage={stage}&per_page=100', headers=headers).get_json()
    return [(task['title'], task['index']) for task in body['data'][stage]['tasks']]


@pytest.mark.integration
class TestTasksAuth:

    def test_requires_token(self, client):
        response = client.get('/api/tasks')
        assert response.status_code == 401
        assert response.get_json() == {
            'success': False,
            'message': 'Unauthenticated.',
            'status_code': 401,
        }

    def test_unknown_route_is_json_404(self, client):
        response = client.get('/api/nope')
        assert response.status_code == 404
        assert response.get_json()['success'] is False


@pytest.mark.integration
class TestCreateTask:

    def test_create_appends_to_backlog(self, client, auth_headers):
        first = _create(client, auth_headers, 'T1')
        second = _create(client, auth_headers, 'T2')

        assert first['stage'] == 'backlog'
        assert first['index'] == 0
        assert second['index'] == 1
        assert second['user']['name'].startswith('Api User')

    def test_create_in_stage(self, client, auth_headers):
        task = _create(client, auth_headers, 'Ship', stage='review')
        assert task['stage'] == 'review'
        assert task['index'] == 0

    def test_validation_errors(self, client, auth_headers):
        response = client.post('/api/tasks', json={'stage': 'archived'}, headers=auth_headers)

        assert response.status_code == 422
        errors = response.get_json()['errors']
        assert set(errors) == {'title', 'description', 'stage'}

    def test_non_json_body(self, client, auth_headers):
        response = client.post('/api/tasks', data='title=x', headers=auth_headers)
        assert response.status_code == 422


@pytest.mark.integration
class TestListTasks:

    def test_grouped_listing_shape(self, client, auth_headers):
        _create(client, auth_headers, 'B1')
        _create(client, auth_headers, 'D1', stage='done')

        response = client.get('/api/tasks', headers=auth_headers)

        assert response.status_code == 200
        data = response.get_json()['data']
        assert list(data) == ['backlog', 'in_progress', 'review', 'done']
        assert data['backlog']['name'] == 'BACKLOG'
        assert data['backlog']['meta'] == {'current_page': 1, 'last_page': 1, 'per_page': 10, 'total': 1}
        assert data['done']['tasks'][0]['title'] == 'D1'

    def test_stage_groups_serialized_in_workflow_order(self, client, auth_headers):
        _create(client, auth_headers, 'B1')

        body = client.get('/api/tasks', headers=auth_headers).get_data(as_text=True)

        offsets = [body.index(f'"{stage}":') for stage in ('backlog', 'in_progress', 'review', 'done')]
        assert offsets == sorted(offsets)

    def test_keyword_and_pagination(self, client, auth_headers):
        for i in range(3):
            _create(client, auth_headers, f'Report {i}')
        _create(client, auth_headers, 'Other')

        body = client.get('/api/tasks?stage=backlog&keyword=report&per_page=2&page=2',
                          headers=auth_headers).get_json()

        backlog = body['data']['backlog']
        assert [t['title'] for t in backlog['tasks']] == ['Report 2']
        assert backlog['meta']['total'] == 3
        assert backlog['meta']['last_page'] == 2

    def test_invalid_stage_filter(self, client, auth_headers):
        response = client.get('/api/tasks?stage=archived', headers=auth_headers)
        assert response.status_code == 422


@pytest.mark.integration
class TestMoveAndUpdate:

    def test_reorder_within_stage(self, client, auth_headers):
        ids = [_create(client, auth_headers, f'T{i}')['id'] for i in range(1, 5)]

        response = client.post(f'/api/tasks/{ids[0]}/move', json={'index': 2}, headers=auth_headers)

        assert response.status_code == 200
        assert response.get_json()['data']['index'] == 2
        assert _titles(client, auth_headers, 'backlog') == [('T2', 0), ('T3', 1), ('T1', 2), ('T4', 3)]

    def test_move_across_stages(self, client, auth_headers):
        ids = [_create(client, auth_headers, f'T{i}')['id'] for i in range(1, 4)]
        _create(client, auth_headers, 'T4', stage='in_progress')
        _create(client, auth_headers, 'T5', stage='in_progress')

        response = client.post(f'/api/tasks/{ids[1]}/move', json={'stage': 'in_progress', 'index': 0},
                               headers=auth_headers)

        assert response.status_code == 200
        assert _titles(client, auth_headers, 'backlog') == [('T1', 0), ('T3', 1)]
        assert _titles(client, auth_headers, 'in_progress') == [('T2', 0), ('T4', 1), ('T5', 2)]

    def test_update_fields_and_stage(self, client, auth_headers):
        task = _create(client, auth_headers, 'Draft')

        response = client.patch(f'/api/tasks/{task["id"]}', json={'title': 'Final', 'stage': 'done'},
                                headers=auth_headers)

        data = response.get_json()['data']
        assert response.status_code == 200
        assert data['title'] == 'Final'
        assert data['stage'] == 'done'
        assert data['index'] == 0

    def test_put_without_move_keeps_index(self, client, auth_headers):
        _create(client, auth_headers, 'A')
        task = _create(client, auth_headers, 'B')

        response = client.put(f'/api/tasks/{task["id"]}', json={'description': 'changed'}, headers=auth_headers)

        assert response.get_json()['data']['index'] == 1
        assert response.get_json()['data']['description'] == 'changed'

    def test_out_of_range_index_is_422(self, client, auth_headers):
        task = _create(client, auth_headers, 'Only')

        response = client.post(f'/api/tasks/{task["id"]}/move', json={'index': 3}, headers=auth_headers)

        assert response.status_code == 422
        assert 'index' in response.get_json()['errors']
        assert _titles(client, auth_headers, 'backlog') == [('Only', 0)]

    @pytest.mark.parametrize('index', [-1, 'first', True, 1.5])
    def test_invalid_index_type(self, client, auth_headers, index):
        task = _create(client, auth_headers, 'Only')
        response = client.post(f'/api/tasks/{task["id"]}/move', json={'index': index}, headers=auth_headers)
        assert response.status_code == 422


@pytest.mark.integration
class TestDeleteTask:

    def test_delete_closes_gap(self, client, auth_headers):
        ids = [_create(client, auth_headers, f'T{i}')['id'] for i in range(1, 4)]

        response = client.delete(f'/api/tasks/{ids[1]}', headers=auth_headers)

        assert response.status_code == 200
        assert response.get_json()['data']['deleted'] is True
        assert _titles(client, auth_headers, 'backlog') == [('T1', 0), ('T3', 1)]

        again = client.delete(f'/api/tasks/{ids[1]}', headers=auth_headers)
        assert again.status_code == 404


@pytest.mark.integration
class TestOwnership:

    def test_cross_owner_access_is_404(self, client, make_api_user):
        owner = make_api_user('Owner')
        intruder = make_api_user('Intruder')
        task = _create(client, owner['headers'], 'Private')
        url = f'/api/tasks/{task["id"]}'

        responses = [
            client.get(url, headers=intruder['headers']),
            client.patch(url, json={'title': 'x'}, headers=intruder['headers']),
            client.post(f'{url}/move', json={'stage': 'done'}, headers=intruder['headers']),
            client.delete(url, headers=intruder['headers']),
        ]

        for response in responses:
            assert response.status_code == 404
            assert response.get_json()['message'] == 'Task not found'

        assert client.get(url, headers=owner['headers']).status_code == 200

    def test_listing_is_scoped_to_owner(self, client, make_api_user):
        owner = make_api_user('Owner')
        other = make_api_user('Other')
        _create(client, owner['headers'], 'Mine')

        body = client.get('/api/tasks', headers=other['headers']).get_json()
        assert all(group['meta']['total'] == 0 for group in body['data'].values())
