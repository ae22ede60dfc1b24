import itertools
import os
import sys
import tempfile
from pathlib import Path

import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Configure test environment before the app reads its settings
_TMP = tempfile.mkdtemp(prefix='vibecircles-tests-')
os.environ['DATABASE_URL'] = f'sqlite+aiosqlite:///{_TMP}/test.db'
os.environ['DATABASE_CREATE_ALL'] = '1'
os.environ['BCRYPT_ROUNDS'] = '4'
os.environ['UPLOAD_DIR'] = os.path.join(_TMP, 'uploads')
os.environ['MAX_FILE_SIZE'] = str(200 * 1024)
os.environ['REDIS_URL'] = ''
os.environ['METRICS_PORT'] = '0'
os.environ['APP_ENV'] = 'test'

# Ensure the package root is on sys.path when pytest changes CWD to this tests dir
HERE = Path(__file__).resolve()
PKG_ROOT = HERE.parents[2]
if str(PKG_ROOT) not in sys.path:
    sys.path.insert(0, str(PKG_ROOT))

from vibecircles.main import app  # noqa: E402

PASSWORD = 'Passw0rd1'


@pytest_asyncio.fixture
async def client():
    """ASGI client over a freshly created schema."""
    async with app.router.lifespan_context(app):
        await app.state.db.drop_all()
        await app.state.db.create_all()
        async with AsyncClient(transport=ASGITransport(app=app), base_url='http://test') as ac:
            yield ac


@pytest_asyncio.fixture
async def db_session(client):
    async with app.state.db.session() as session:
        yield session


@pytest_asyncio.fixture
async def make_user(client):
    """Register a user and return {'id', 'username', 'token', 'headers'}."""
    seq = itertools.count(1)

    async def _make(username=None, **extra):
        n = next(seq)
        username = username or f'user{n}'
        body = {'username': username, 'email': f'{username}@example.com', 'password': PASSWORD}
        body.update(extra)
        res = await client.post('/api/auth/register', json=body)
        assert res.status_code == 201, res.text
        data = res.json()['data']
        # keep requests explicit: no cookie carried over from the last registration
        client.cookies.clear()
        return {
            'id': data['user']['id'],
            'username': username,
            'token': data['token'],
            'headers': {'Authorization': f"Bearer {data['token']}"},
        }

    return _make
