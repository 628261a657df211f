"""TTL cache component and the cached admin directory."""

from portal.models import db
from portal.models.user import PortalUser
from portal.services.cache_service import TTLCache, make_backend
from portal.services.permission import AdminDirectory, get_admin_directory, parse_admin_emails


class FakeClock:
    def __init__(self, now=1_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class TestTTLCache:

    def test_set_then_get(self):
        clock = FakeClock()
        cache = TTLCache(ttl_seconds=60, clock=clock)

        expires_at = cache.set("k", ["a", "b"])

        assert expires_at == 1_060.0
        assert cache.get("k") == (["a", "b"], 1_060.0)

    def test_miss(self):
        assert TTLCache(clock=FakeClock()).get("nope") == (None, None)

    def test_expiry_is_judged_by_clock(self):
        clock = FakeClock()
        cache = TTLCache(ttl_seconds=60, clock=clock)
        cache.set("k", 1)

        clock.advance(59)
        assert cache.get("k")[0] == 1
        clock.advance(1)
        assert cache.get("k") == (None, None)

    def test_invalidate_one_and_all(self):
        cache = TTLCache(clock=FakeClock(), namespace="t")
        cache.set("a", 1)
        cache.set("b", 2)

        cache.invalidate("a")
        assert cache.get("a") == (None, None)
        assert cache.get("b")[0] == 2

        cache.invalidate()
        assert cache.get("b") == (None, None)

    def test_get_or_load_calls_loader_once(self):
        calls = []

        def loader():
            calls.append(1)
            return {"v": 1}

        cache = TTLCache(clock=FakeClock())

        assert cache.get_or_load("k", loader) == {"v": 1}
        assert cache.get_or_load("k", loader) == {"v": 1}
        assert len(calls) == 1

    def test_namespaces_share_backend_safely(self):
        backend = make_backend(None)
        one = TTLCache(clock=FakeClock(), backend=backend, namespace="one")
        two = TTLCache(clock=FakeClock(), backend=backend, namespace="two")
        one.set("k", 1)
        two.set("k", 2)

        one.invalidate()

        assert two.get("k")[0] == 2

    def test_health_check_memory(self):
        assert TTLCache().health_check() == {"status": "ok", "backend": "memory"}


class TestAdminDirectory:

    def test_parse_admin_emails(self):
        assert parse_admin_emails(" A@x.io, b@y.io ,,") == {"a@x.io", "b@y.io"}
        assert parse_admin_emails(None) == set()

    def test_resolves_admin_ids(self):
        directory = get_admin_directory()

        assert directory.is_admin_email("Admin@Portal.test")
        assert not directory.is_admin_email("owner@client.test")
        assert directory.admin_user_ids() == ["admin-1"]

    def test_cached_until_invalidated(self):
        clock = FakeClock()
        directory = AdminDirectory({"admin@portal.test", "ops@portal.test"},
                                   TTLCache(ttl_seconds=300, clock=clock))
        assert directory.admin_user_ids() == ["admin-1"]

        db.session.add(PortalUser(id="ops-1", email="ops@portal.test"))
        db.session.commit()
        assert directory.admin_user_ids() == ["admin-1"]

        directory.invalidate()
        assert directory.admin_user_ids() == ["admin-1", "ops-1"]

    def test_cache_expires(self):
        clock = FakeClock()
        directory = AdminDirectory({"ops@portal.test"}, TTLCache(ttl_seconds=300, clock=clock))
        assert directory.admin_user_ids() == []

        db.session.add(PortalUser(id="ops-1", email="ops@portal.test"))
        db.session.commit()
        clock.advance(301)

        assert directory.admin_user_ids() == ["ops-1"]

    def test_loads_once_per_ttl_window(self, monkeypatch):
        clock = FakeClock()
        directory = AdminDirectory({"ops@portal.test"}, TTLCache(ttl_seconds=300, clock=clock))
        loads = []
        monkeypatch.setattr(directory, "_load_admin_ids", lambda: loads.append(1) or [])

        assert directory.admin_user_ids() == []
        assert directory.admin_user_ids() == []
        assert len(loads) == 1

        clock.advance(301)
        directory.admin_user_ids()
        assert len(loads) == 2
