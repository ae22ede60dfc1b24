import pytest
from sqlalchemy import update

from vibecircles.models.users import User


async def _post(client, user, **body):
    body.setdefault('content', 'hello world')
    res = await client.post('/api/posts/', json=body, headers=user['headers'])
    assert res.status_code == 201, res.text
    return res.json()['data']


async def _befriend(client, a, b):
    await client.post('/api/relationships/', json={'target': b['id']}, headers=a['headers'])
    res = await client.put(f"/api/relationships/{a['id']}", json={'action': 'accept'}, headers=b['headers'])
    assert res.status_code == 200


@pytest.mark.asyncio
async def test_create_and_list(client, make_user):
    a = await make_user('writer')
    post = await _post(client, a, content='first')
    assert post['author']['username'] == 'writer'
    assert post['likes_count'] == 0
    assert post['comments_count'] == 0
    await _post(client, a, content='second')

    res = await client.get('/api/posts/')
    assert res.status_code == 200
    data = res.json()['data']
    assert [p['content'] for p in data['posts']] == ['second', 'first']
    assert data['pagination'] == {'page': 1, 'limit': 10, 'total': 2, 'pages': 1}

    page2 = await client.get('/api/posts/', params={'page': 2, 'limit': 1})
    assert [p['content'] for p in page2.json()['data']['posts']] == ['first']
    assert page2.json()['data']['pagination']['pages'] == 2


@pytest.mark.asyncio
async def test_pagination_bounds(client):
    assert (await client.get('/api/posts/', params={'limit': 101})).status_code == 400
    assert (await client.get('/api/posts/', params={'page': 0})).status_code == 400


@pytest.mark.asyncio
async def test_post_validation(client, make_user):
    a = await make_user()
    res = await client.post('/api/posts/', json={'content': 'x' * 5001}, headers=a['headers'])
    assert res.status_code == 400
    res = await client.post('/api/posts/', json={'content': 'hi', 'privacy': 'secret'}, headers=a['headers'])
    assert res.status_code == 400
    assert res.json()['errors'][0]['field'] == 'privacy'


@pytest.mark.asyncio
async def test_privacy_visibility(client, make_user):
    author = await make_user()
    friend = await make_user()
    stranger = await make_user()
    await _befriend(client, author, friend)

    friends_only = await _post(client, author, content='friends', privacy='friends')
    private = await _post(client, author, content='private', privacy='private')
    await _post(client, author, content='public')

    def contents(res):
        return sorted(p['content'] for p in res.json()['data']['posts'])

    assert contents(await client.get('/api/posts/')) == ['public']
    assert contents(await client.get('/api/posts/', headers=stranger['headers'])) == ['public']
    assert contents(await client.get('/api/posts/', headers=friend['headers'])) == ['friends', 'public']
    assert contents(await client.get('/api/posts/', headers=author['headers'])) == ['friends', 'private', 'public']

    hidden = await client.get(f"/api/posts/{friends_only['id']}", headers=stranger['headers'])
    assert hidden.status_code == 404
    shown = await client.get(f"/api/posts/{friends_only['id']}", headers=friend['headers'])
    assert shown.status_code == 200
    assert (await client.get(f"/api/posts/{private['id']}", headers=friend['headers'])).status_code == 404


@pytest.mark.asyncio
async def test_like_toggle_keeps_counter(client, make_user):
    author = await make_user()
    fan = await make_user()
    post = await _post(client, author)

    res = await client.post(f"/api/posts/{post['id']}/like", headers=fan['headers'])
    assert res.status_code == 200
    assert res.json()['data'] == {'liked': True, 'likes_count': 1}

    detail = await client.get(f"/api/posts/{post['id']}", headers=fan['headers'])
    assert detail.json()['data']['is_liked'] is True
    assert detail.json()['data']['likes_count'] == 1

    res = await client.post(f"/api/posts/{post['id']}/like", headers=fan['headers'])
    assert res.json()['data'] == {'liked': False, 'likes_count': 0}

    listing = await client.get('/api/posts/', headers=fan['headers'])
    assert listing.json()['data']['posts'][0]['is_liked'] is False


@pytest.mark.asyncio
async def test_like_notifies_author_once_per_like(client, make_user):
    author = await make_user()
    fan = await make_user('fan')
    post = await _post(client, author)
    await client.post(f"/api/posts/{post['id']}/like", headers=fan['headers'])
    await client.post(f"/api/posts/{post['id']}/like", headers=fan['headers'])
    # liking your own post does not notify
    await client.post(f"/api/posts/{post['id']}/like", headers=author['headers'])

    res = await client.get('/api/notifications/', headers=author['headers'])
    notes = res.json()['data']['notifications']
    assert [n['kind'] for n in notes] == ['like']
    assert notes[0]['entity_id'] == post['id']


@pytest.mark.asyncio
async def test_comments_on_post(client, make_user):
    author = await make_user()
    reader = await make_user()
    post = await _post(client, author)

    res = await client.post(f"/api/posts/{post['id']}/comments", json={'content': 'nice'}, headers=reader['headers'])
    assert res.status_code == 201, res.text
    comment = res.json()['data']
    reply = await client.post(f"/api/posts/{post['id']}/comments",
                              json={'content': 'thanks', 'parent_id': comment['id']}, headers=author['headers'])
    assert reply.status_code == 201
    assert reply.json()['data']['parent_id'] == comment['id']

    empty = await client.post(f"/api/posts/{post['id']}/comments", json={'content': ''}, headers=reader['headers'])
    assert empty.status_code == 400

    listing = await client.get(f"/api/posts/{post['id']}/comments")
    assert [c['content'] for c in listing.json()['data']['comments']] == ['nice', 'thanks']

    detail = await client.get(f"/api/posts/{post['id']}")
    assert detail.json()['data']['comments_count'] == 2
    assert len(detail.json()['data']['comments']) == 2


@pytest.mark.asyncio
async def test_update_post_ownership(client, make_user):
    author = await make_user()
    other = await make_user()
    post = await _post(client, author)

    res = await client.put(f"/api/posts/{post['id']}", json={'content': 'hacked'}, headers=other['headers'])
    assert res.status_code == 403
    assert res.json()['error'] == 'You can only edit your own posts'

    res = await client.put(f"/api/posts/{post['id']}", json={'content': 'edited'}, headers=author['headers'])
    assert res.status_code == 200
    assert res.json()['data']['content'] == 'edited'
    assert res.json()['data']['updated_at'] is not None


@pytest.mark.asyncio
async def test_soft_deleted_post_is_hidden(client, make_user, db_session):
    author = await make_user()
    other = await make_user()
    admin = await make_user()
    await db_session.execute(update(User).where(User.id == admin['id']).values(role='admin'))
    await db_session.commit()
    post = await _post(client, author)

    denied = await client.delete(f"/api/posts/{post['id']}", headers=other['headers'])
    assert denied.status_code == 403

    res = await client.delete(f"/api/posts/{post['id']}", headers=author['headers'])
    assert res.status_code == 200

    assert (await client.get(f"/api/posts/{post['id']}")).status_code == 404
    assert (await client.get('/api/posts/')).json()['data']['posts'] == []
    user_posts = await client.get(f"/api/users/{author['id']}/posts")
    assert user_posts.json()['data']['posts'] == []
    assert (await client.post(f"/api/posts/{post['id']}/like", headers=other['headers'])).status_code == 404

    forbidden = await client.get(f"/api/posts/{post['id']}", params={'include_deleted': 'true'},
                                 headers=author['headers'])
    assert forbidden.status_code == 403

    privileged = await client.get(f"/api/posts/{post['id']}", params={'include_deleted': 'true'},
                                  headers=admin['headers'])
    assert privileged.status_code == 200
    assert privileged.json()['data']['is_active'] is False


@pytest.mark.asyncio
async def test_group_posts_require_membership(client, make_user):
    owner = await make_user()
    outsider = await make_user()
    group = (await client.post('/api/groups/', json={'name': 'Hikers'}, headers=owner['headers'])).json()['data']

    res = await client.post('/api/posts/', json={'content': 'hi', 'group_id': group['id']},
                            headers=outsider['headers'])
    assert res.status_code == 403
    assert res.json()['error'] == 'You must be a member of the group to post'

    await client.post(f"/api/groups/{group['id']}/join", headers=outsider['headers'])
    res = await client.post('/api/posts/', json={'content': 'hi', 'group_id': group['id']},
                            headers=outsider['headers'])
    assert res.status_code == 201

    listing = await client.get('/api/posts/', params={'group_id': group['id']})
    assert len(listing.json()['data']['posts']) == 1

    detail = await client.get(f"/api/posts/{res.json()['data']['id']}")
    assert detail.json()['data']['group'] == {'id': group['id'], 'name': 'Hikers'}


@pytest.mark.asyncio
async def test_staff_can_moderate_hidden_posts(client, make_user, db_session):
    author = await make_user()
    admin = await make_user()
    moderator = await make_user()
    stranger = await make_user()
    await db_session.execute(update(User).where(User.id == admin['id']).values(role='admin'))
    await db_session.execute(update(User).where(User.id == moderator['id']).values(role='moderator'))
    await db_session.commit()
    friends_only = await _post(client, author, content='friends only', privacy='friends')
    private = await _post(client, author, content='just me', privacy='private')

    # other users still cannot tell the posts exist
    res = await client.put(f"/api/posts/{friends_only['id']}", json={'content': 'x'}, headers=stranger['headers'])
    assert res.status_code == 404
    res = await client.delete(f"/api/posts/{private['id']}", headers=stranger['headers'])
    assert res.status_code == 404

    res = await client.put(f"/api/posts/{friends_only['id']}", json={'content': 'moderated'},
                           headers=admin['headers'])
    assert res.status_code == 200, res.text
    assert res.json()['data']['content'] == 'moderated'

    res = await client.put(f"/api/posts/{private['id']}", json={'content': 'x'}, headers=moderator['headers'])
    assert res.status_code == 404

    res = await client.delete(f"/api/posts/{private['id']}", headers=moderator['headers'])
    assert res.status_code == 200, res.text
    mine = await client.get(f"/api/posts/{private['id']}", headers=author['headers'])
    assert mine.status_code == 404
