import pytest

PASSWORD = 'Passw0rd1'


@pytest.mark.asyncio
async def test_register_returns_user_and_token(client):
    res = await client.post('/api/auth/register', json={
        'username': 'alice', 'email': 'Alice@Example.com', 'password': PASSWORD, 'full_name': 'Alice A',
    })
    assert res.status_code == 201, res.text
    body = res.json()
    assert body['success'] is True
    assert body['message'] == 'User registered successfully'
    assert body['data']['user']['email'] == 'alice@example.com'
    assert body['data']['user']['role'] == 'user'
    assert 'hashed_password' not in body['data']['user']
    assert body['data']['token']


@pytest.mark.asyncio
async def test_register_duplicates_rejected(client, make_user):
    await make_user('bob')
    dup_email = await client.post('/api/auth/register', json={
        'username': 'bobby', 'email': 'bob@example.com', 'password': PASSWORD})
    assert dup_email.status_code == 400
    assert dup_email.json() == {'success': False, 'error': 'Email already registered'}

    dup_name = await client.post('/api/auth/register', json={
        'username': 'bob', 'email': 'other@example.com', 'password': PASSWORD})
    assert dup_name.status_code == 400
    assert dup_name.json()['error'] == 'Username already taken'


@pytest.mark.asyncio
async def test_register_validation_envelope(client):
    res = await client.post('/api/auth/register', json={
        'username': 'x', 'email': 'not-an-email', 'password': 'weak'})
    assert res.status_code == 400
    body = res.json()
    assert body['success'] is False
    assert body['message'] == 'Validation failed'
    fields = {e['field'] for e in body['errors']}
    assert {'username', 'email', 'password'} <= fields
    username_err = next(e for e in body['errors'] if e['field'] == 'username')
    assert username_err['value'] == 'x'


@pytest.mark.asyncio
async def test_login_and_me(client, make_user):
    await make_user('carol', full_name='Carol C')
    bad = await client.post('/api/auth/login', json={'email': 'carol@example.com', 'password': 'Wrong1234'})
    assert bad.status_code == 401
    assert bad.json()['error'] == 'Invalid email or password'

    unknown = await client.post('/api/auth/login', json={'email': 'nobody@example.com', 'password': PASSWORD})
    assert unknown.status_code == 401

    ok = await client.post('/api/auth/login', json={'email': 'carol@example.com', 'password': PASSWORD})
    assert ok.status_code == 200, ok.text
    token = ok.json()['data']['token']
    assert ok.json()['data']['user']['last_login'] is not None

    me = await client.get('/api/auth/me', headers={'Authorization': f'Bearer {token}'})
    assert me.status_code == 200
    assert me.json()['data']['user']['username'] == 'carol'
    assert me.json()['data']['stats'] == {'posts': 0, 'friends': 0, 'followers': 0, 'following': 0}


@pytest.mark.asyncio
async def test_cookie_fallback_and_logout(client, make_user):
    await make_user('dana')
    res = await client.post('/api/auth/login', json={'email': 'dana@example.com', 'password': PASSWORD})
    assert res.status_code == 200
    assert 'token' in client.cookies

    me = await client.get('/api/auth/me')
    assert me.status_code == 200
    assert me.json()['data']['user']['username'] == 'dana'

    out = await client.post('/api/auth/logout')
    assert out.status_code == 200
    assert 'token' not in client.cookies
    assert (await client.get('/api/auth/me')).status_code == 401


@pytest.mark.asyncio
async def test_missing_or_invalid_token(client):
    res = await client.get('/api/auth/me')
    assert res.status_code == 401
    assert res.json() == {'success': False, 'error': 'Not authorized to access this route'}

    res = await client.get('/api/auth/me', headers={'Authorization': 'Bearer not-a-jwt'})
    assert res.status_code == 401


@pytest.mark.asyncio
async def test_change_password(client, make_user):
    user = await make_user('erin')
    wrong = await client.put('/api/auth/change-password', headers=user['headers'], json={
        'current_password': 'Nope12345', 'new_password': 'NewPassw0rd'})
    assert wrong.status_code == 401
    assert wrong.json()['error'] == 'Current password is incorrect'

    weak = await client.put('/api/auth/change-password', headers=user['headers'], json={
        'current_password': PASSWORD, 'new_password': 'short'})
    assert weak.status_code == 400

    ok = await client.put('/api/auth/change-password', headers=user['headers'], json={
        'current_password': PASSWORD, 'new_password': 'NewPassw0rd'})
    assert ok.status_code == 200

    login = await client.post('/api/auth/login', json={'email': 'erin@example.com', 'password': 'NewPassw0rd'})
    assert login.status_code == 200


@pytest.mark.asyncio
async def test_password_reset_flow(client, make_user):
    await make_user('frank')
    missing = await client.post('/api/auth/forgot-password', json={'email': 'ghost@example.com'})
    assert missing.status_code == 200
    assert missing.json()['message'] == 'If the email exists, a password reset link has been sent'
    assert 'data' not in missing.json()

    res = await client.post('/api/auth/forgot-password', json={'email': 'frank@example.com'})
    assert res.status_code == 200
    assert res.json()['message'] == missing.json()['message']
    token = res.json()['data']['reset_token']

    bad = await client.post('/api/auth/reset-password', json={'token': 'bogus', 'new_password': 'Rese7Passw0rd'})
    assert bad.status_code == 400
    assert bad.json()['error'] == 'Invalid or expired reset token'

    ok = await client.post('/api/auth/reset-password', json={'token': token, 'new_password': 'Rese7Passw0rd'})
    assert ok.status_code == 200

    # tokens are single use
    again = await client.post('/api/auth/reset-password', json={'token': token, 'new_password': 'Rese7Passw0rd'})
    assert again.status_code == 400

    login = await client.post('/api/auth/login', json={'email': 'frank@example.com', 'password': 'Rese7Passw0rd'})
    assert login.status_code == 200
