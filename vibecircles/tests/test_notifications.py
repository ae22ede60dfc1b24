import pytest


async def _seed(client, make_user):
    target = await make_user()
    for _ in range(3):
        fan = await make_user()
        await client.post(f"/api/follows/{target['id']}", headers=fan['headers'])
    return target


@pytest.mark.asyncio
async def test_list_read_and_delete(client, make_user):
    target = await _seed(client, make_user)

    res = await client.get('/api/notifications/', headers=target['headers'])
    assert res.status_code == 200
    data = res.json()['data']
    assert data['unread_count'] == 3
    assert data['pagination']['limit'] == 20
    first = data['notifications'][0]

    res = await client.put(f"/api/notifications/{first['id']}/read", headers=target['headers'])
    assert res.status_code == 200
    res = await client.get('/api/notifications/', headers=target['headers'])
    assert res.json()['data']['unread_count'] == 2

    res = await client.put('/api/notifications/read-all', headers=target['headers'])
    assert res.status_code == 200
    assert res.json()['data']['updated'] == 2
    res = await client.get('/api/notifications/', headers=target['headers'])
    assert res.json()['data']['unread_count'] == 0

    res = await client.delete(f"/api/notifications/{first['id']}", headers=target['headers'])
    assert res.status_code == 200
    res = await client.get('/api/notifications/', headers=target['headers'])
    assert res.json()['data']['pagination']['total'] == 2


@pytest.mark.asyncio
async def test_cannot_touch_other_users_notifications(client, make_user):
    target = await _seed(client, make_user)
    intruder = await make_user()
    res = await client.get('/api/notifications/', headers=target['headers'])
    note_id = res.json()['data']['notifications'][0]['id']

    res = await client.put(f'/api/notifications/{note_id}/read', headers=intruder['headers'])
    assert res.status_code == 404
    assert res.json()['error'] == 'Notification not found'
    res = await client.delete(f'/api/notifications/{note_id}', headers=intruder['headers'])
    assert res.status_code == 404


@pytest.mark.asyncio
async def test_requires_auth(client):
    assert (await client.get('/api/notifications/')).status_code == 401
