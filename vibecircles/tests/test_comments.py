import pytest


async def _setup(client, make_user):
    author = await make_user()
    commenter = await make_user()
    res = await client.post('/api/posts/', json={'content': 'post'}, headers=author['headers'])
    return author, commenter, res.json()['data']


@pytest.mark.asyncio
async def test_comment_lifecycle_moves_counter(client, make_user):
    author, commenter, post = await _setup(client, make_user)

    res = await client.post('/api/comments/', json={'post_id': post['id'], 'content': 'first!'},
                            headers=commenter['headers'])
    assert res.status_code == 201, res.text
    comment = res.json()['data']
    assert comment['author']['id'] == commenter['id']

    detail = await client.get(f"/api/posts/{post['id']}")
    assert detail.json()['data']['comments_count'] == 1

    edited = await client.put(f"/api/comments/{comment['id']}", json={'content': 'edited'},
                              headers=commenter['headers'])
    assert edited.status_code == 200
    assert edited.json()['data']['content'] == 'edited'

    res = await client.delete(f"/api/comments/{comment['id']}", headers=commenter['headers'])
    assert res.status_code == 200

    listing = await client.get(f"/api/comments/post/{post['id']}")
    assert listing.json()['data']['comments'] == []
    assert listing.json()['data']['pagination']['total'] == 0
    detail = await client.get(f"/api/posts/{post['id']}")
    assert detail.json()['data']['comments_count'] == 0
    assert detail.json()['data']['comments'] == []

    # deleted comments stay deleted
    again = await client.delete(f"/api/comments/{comment['id']}", headers=commenter['headers'])
    assert again.status_code == 404
    detail = await client.get(f"/api/posts/{post['id']}")
    assert detail.json()['data']['comments_count'] == 0


@pytest.mark.asyncio
async def test_only_author_edits_or_deletes(client, make_user):
    author, commenter, post = await _setup(client, make_user)
    res = await client.post('/api/comments/', json={'post_id': post['id'], 'content': 'mine'},
                            headers=commenter['headers'])
    comment_id = res.json()['data']['id']

    res = await client.put(f'/api/comments/{comment_id}', json={'content': 'yours'}, headers=author['headers'])
    assert res.status_code == 404
    assert res.json()['error'] == 'Comment not found or not authorized'
    res = await client.delete(f'/api/comments/{comment_id}', headers=author['headers'])
    assert res.status_code == 404


@pytest.mark.asyncio
async def test_comment_validation(client, make_user):
    author, commenter, post = await _setup(client, make_user)
    too_long = await client.post('/api/comments/', json={'post_id': post['id'], 'content': 'x' * 501},
                                 headers=commenter['headers'])
    assert too_long.status_code == 400
    missing_post = await client.post('/api/comments/', json={'post_id': 777, 'content': 'hi'},
                                     headers=commenter['headers'])
    assert missing_post.status_code == 404
    assert missing_post.json()['error'] == 'Post not found'
    bad_parent = await client.post('/api/comments/', json={'post_id': post['id'], 'content': 'hi', 'parent_id': 55},
                                   headers=commenter['headers'])
    assert bad_parent.status_code == 400


@pytest.mark.asyncio
async def test_comment_notifies_post_author(client, make_user):
    author, commenter, post = await _setup(client, make_user)
    await client.post('/api/comments/', json={'post_id': post['id'], 'content': 'hey'}, headers=commenter['headers'])
    res = await client.get('/api/notifications/', headers=author['headers'])
    assert [n['kind'] for n in res.json()['data']['notifications']] == ['comment']
