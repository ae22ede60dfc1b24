import pytest


@pytest.mark.asyncio
async def test_follow_and_unfollow(client, make_user):
    a = await make_user()
    b = await make_user()

    res = await client.post(f"/api/follows/{b['id']}", headers=a['headers'])
    assert res.status_code == 201, res.text
    assert res.json()['data']['follower_id'] == a['id']

    dup = await client.post(f"/api/follows/{b['id']}", headers=a['headers'])
    assert dup.status_code == 400
    assert dup.json()['error'] == 'Already following this user'

    followers = await client.get(f"/api/users/{b['id']}/followers")
    assert [u['id'] for u in followers.json()['data']['followers']] == [a['id']]
    following = await client.get(f"/api/users/{a['id']}/following")
    assert [u['id'] for u in following.json()['data']['following']] == [b['id']]

    res = await client.delete(f"/api/follows/{b['id']}", headers=a['headers'])
    assert res.status_code == 200
    again = await client.delete(f"/api/follows/{b['id']}", headers=a['headers'])
    assert again.status_code == 404
    assert again.json()['error'] == 'Not following this user'


@pytest.mark.asyncio
async def test_follow_is_independent_of_friendship(client, make_user):
    a = await make_user()
    b = await make_user()
    await client.post(f"/api/follows/{b['id']}", headers=a['headers'])

    profile = await client.get(f"/api/users/{b['id']}", headers=a['headers'])
    data = profile.json()['data']
    assert data['is_following'] is True
    assert data['relationship'] is None
    assert data['stats']['followers'] == 1
    assert data['stats']['friends'] == 0

    # following is one-way: b does not follow a back
    back = await client.get(f"/api/users/{a['id']}", headers=b['headers'])
    assert back.json()['data']['is_following'] is False


@pytest.mark.asyncio
async def test_follow_self_and_unknown(client, make_user):
    a = await make_user()
    res = await client.post(f"/api/follows/{a['id']}", headers=a['headers'])
    assert res.status_code == 400
    assert res.json()['error'] == 'You cannot follow yourself'

    res = await client.post('/api/follows/4242', headers=a['headers'])
    assert res.status_code == 404


@pytest.mark.asyncio
async def test_block_removes_follows(client, make_user):
    a = await make_user()
    b = await make_user()
    await client.post(f"/api/follows/{b['id']}", headers=a['headers'])
    await client.post(f"/api/relationships/{a['id']}/block", headers=b['headers'])

    followers = await client.get(f"/api/users/{b['id']}/followers")
    assert followers.json()['data']['followers'] == []
    res = await client.post(f"/api/follows/{b['id']}", headers=a['headers'])
    assert res.status_code == 400
    assert res.json()['error'] == 'Cannot follow a blocked user'


@pytest.mark.asyncio
async def test_follow_notifies_target(client, make_user):
    a = await make_user('fan')
    b = await make_user('star')
    await client.post(f"/api/follows/{b['id']}", headers=a['headers'])
    res = await client.get('/api/notifications/', headers=b['headers'])
    notes = res.json()['data']['notifications']
    assert [n['kind'] for n in notes] == ['follow']
    assert notes[0]['message'] == 'fan started following you'
