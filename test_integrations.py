"""
Connection Registry and Credential Security Tests
"""

import threading

import pytest

from conftest import OTHER_TENANT, TENANT
from core.errors import ConfigurationError, ConflictError, NotFoundError
from core.models import ConnectionStatus, ConnectionType, DocType
from core.security import (
    CredentialEncryption,
    InMemoryCredentialStore,
    SqliteCredentialStore,
    generate_encryption_key,
)


@pytest.fixture
def registry(services):
    return services.registry


class TestConnect:

    def test_connect_with_credentials_is_connected(self, registry):
        conn = registry.connect(TENANT, "sage", "Sage", auth_data={"access_token": "t"}, config={"business_id": "b"})

        assert conn.status == ConnectionStatus.CONNECTED
        assert conn.type == ConnectionType.SAGE
        assert conn.config == {"business_id": "b"}
        assert registry.load_credentials(conn.id) == {"access_token": "t"}

    def test_connect_without_credentials_waits_for_auth(self, registry):
        conn = registry.connect(TENANT, "quickbooks", "QuickBooks")
        assert conn.status == ConnectionStatus.PENDING_AUTH
        assert not conn.is_dispatchable

    def test_custom_api_needs_no_credentials(self, registry):
        conn = registry.connect(TENANT, "custom_api", "ERP", config={"base_url": "https://erp.example"})
        assert conn.status == ConnectionStatus.CONNECTED

    def test_failed_credential_save_leaves_pending_auth(self, registry):
        from integrations.registry import ConnectionRegistry

        class BrokenStore(InMemoryCredentialStore):
            def _put(self, connection_id, blob):
                raise OSError("disk full")

        broken = ConnectionRegistry(registry.db_path, BrokenStore(CredentialEncryption(generate_encryption_key())))

        with pytest.raises(OSError):
            broken.connect(TENANT, "xero", "Xero", auth_data={"access_token": "t"})

        conn = registry.get(TENANT)[0]
        assert conn.status == ConnectionStatus.PENDING_AUTH
        assert not conn.is_dispatchable
        assert conn.error_message == "Credentials could not be stored"

        # A later connect with working storage recovers it
        again = registry.connect(TENANT, "xero", "Xero", auth_data={"access_token": "t"})
        assert again.status == ConnectionStatus.CONNECTED
        assert again.error_message is None

    def test_second_connect_while_connected_conflicts(self, registry):
        registry.connect(TENANT, "xero", "Xero", auth_data={"access_token": "t"})
        with pytest.raises(ConflictError):
            registry.connect(TENANT, "xero", "Xero again", auth_data={"access_token": "u"})
        assert registry.load_credentials(registry.get(TENANT)[0].id) == {"access_token": "t"}

    def test_concurrent_connects_one_wins(self, registry):
        results = []

        def worker():
            try:
                results.append(registry.connect(TENANT, "xero", "Xero", auth_data={"access_token": "t"}))
            except ConflictError as e:
                results.append(e)

        threads = [threading.Thread(target=worker) for _ in range(6)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sum(1 for r in results if not isinstance(r, ConflictError)) == 1
        assert len(registry.get(TENANT)) == 1

    def test_reconnect_reuses_row_and_clears_error(self, registry):
        conn = registry.connect(TENANT, "xero", "Xero", auth_data={"access_token": "t"}, config={"a": 1})
        registry.mark_error(conn.id, "401 from provider")

        again = registry.connect(TENANT, "xero", "Xero (renamed)", config={"b": 2})

        assert again.id == conn.id
        assert again.status == ConnectionStatus.CONNECTED
        assert again.error_message is None
        assert again.name == "Xero (renamed)"
        assert again.config == {"a": 1, "b": 2}

    def test_reconnect_after_disconnect_needs_credentials(self, registry):
        conn = registry.connect(TENANT, "xero", "Xero", auth_data={"access_token": "t"})
        registry.disconnect(conn.id)

        again = registry.connect(TENANT, "xero", "Xero")
        assert again.id == conn.id
        assert again.status == ConnectionStatus.PENDING_AUTH

    def test_unknown_type_rejected(self, registry):
        with pytest.raises(ValueError):
            registry.connect(TENANT, "netsuite", "NetSuite")


class TestDisconnect:

    def test_disconnect_drops_credentials(self, registry):
        conn = registry.connect(TENANT, "xero", "Xero", auth_data={"access_token": "t"})

        result = registry.disconnect(conn.id, tenant_id=TENANT)

        assert result.status == ConnectionStatus.DISCONNECTED
        assert registry.load_credentials(conn.id) == {}

    def test_disconnect_is_idempotent(self, registry):
        conn = registry.connect(TENANT, "xero", "Xero", auth_data={"access_token": "t"})
        first = registry.disconnect(conn.id)
        second = registry.disconnect(conn.id)
        assert second == first

    def test_disconnect_other_tenant_not_found(self, registry):
        conn = registry.connect(TENANT, "xero", "Xero", auth_data={"access_token": "t"})
        with pytest.raises(NotFoundError):
            registry.disconnect(conn.id, tenant_id=OTHER_TENANT)
        assert registry.get_connection(conn.id).status == ConnectionStatus.CONNECTED


class TestLookups:

    def test_get_lists_all_statuses(self, registry):
        a = registry.connect(TENANT, "xero", "A", auth_data={"access_token": "t"})
        registry.connect(TENANT, "quickbooks", "B")
        registry.disconnect(a.id)
        registry.connect(OTHER_TENANT, "sage", "C", auth_data={"access_token": "t"})

        connections = registry.get(TENANT)
        assert {c.status for c in connections} == {ConnectionStatus.DISCONNECTED, ConnectionStatus.PENDING_AUTH}

    def test_get_connection_missing(self, registry):
        with pytest.raises(NotFoundError):
            registry.get_connection("missing")

    def test_mark_synced(self, registry):
        conn = registry.connect(TENANT, "xero", "Xero", auth_data={"access_token": "t"})
        registry.mark_synced(conn.id)
        synced = registry.get_connection(conn.id)
        assert synced.last_sync_at is not None
        assert synced.status == ConnectionStatus.CONNECTED


class TestRouting:

    def test_resolve_by_route(self, registry):
        conn = registry.connect(TENANT, "sage", "Sage", auth_data={"access_token": "t"})
        registry.set_route(TENANT, "invoice", "sage")

        assert registry.resolve(TENANT, "invoice").id == conn.id
        assert registry.resolve(TENANT, "credit_note") is None

    def test_pinned_type_wins(self, registry):
        registry.connect(TENANT, "sage", "Sage", auth_data={"access_token": "t"})
        xero = registry.connect(TENANT, "xero", "Xero", auth_data={"access_token": "t"})
        registry.set_route(TENANT, "invoice", "sage")

        assert registry.resolve(TENANT, "invoice", pinned_type="xero").id == xero.id

    def test_route_to_missing_connection(self, registry):
        registry.set_route(TENANT, "invoice", "xero")
        assert registry.resolve(TENANT, "invoice") is None

    def test_set_route_replaces(self, registry):
        registry.set_route(TENANT, "invoice", "xero")
        registry.set_route(TENANT, "invoice", "sage")
        registry.set_route(TENANT, "customer", "sage")

        routes = registry.list_routes(TENANT)
        assert [(r.doc_type, r.connection_type) for r in routes] == [
            (DocType.CUSTOMER, ConnectionType.SAGE),
            (DocType.INVOICE, ConnectionType.SAGE),
        ]
        assert registry.list_routes(OTHER_TENANT) == []


class TestCredentialSecurity:

    def test_round_trip(self):
        enc = CredentialEncryption(generate_encryption_key())
        blob = enc.encrypt({"api_key": "secret"}, binding="conn-1")
        assert "secret" not in blob.ciphertext
        assert enc.decrypt(blob, binding="conn-1") == {"api_key": "secret"}

    def test_blob_bound_to_connection(self):
        enc = CredentialEncryption(generate_encryption_key())
        blob = enc.encrypt({"api_key": "secret"}, binding="conn-1")
        with pytest.raises(ValueError):
            enc.decrypt(blob, binding="conn-2")

    def test_wrong_key(self):
        blob = CredentialEncryption(generate_encryption_key()).encrypt({"a": 1}, binding="c")
        with pytest.raises(ValueError):
            CredentialEncryption(generate_encryption_key()).decrypt(blob, binding="c")

    @pytest.mark.parametrize("key", ["not base64!!", "c2hvcnQ="])
    def test_invalid_key(self, key):
        with pytest.raises(ConfigurationError):
            CredentialEncryption(key)

    def test_sqlite_store_persists_ciphertext_only(self, services, settings):
        from core.db import read_connection

        conn = services.registry.connect(TENANT, "xero", "Xero", auth_data={"access_token": "plain-token"})

        with read_connection(settings.db_path) as db:
            row = db.execute(
                "SELECT ciphertext FROM integration_credentials WHERE connection_id = ?", (conn.id,)
            ).fetchone()
        assert row is not None
        assert "plain-token" not in row["ciphertext"]

        store = SqliteCredentialStore(CredentialEncryption(settings.credentials_encryption_key), settings.db_path)
        assert store.load(conn.id) == {"access_token": "plain-token"}

    def test_in_memory_store(self):
        store = InMemoryCredentialStore(CredentialEncryption(generate_encryption_key()))
        store.save("c1", {"token": "x"})
        assert store.has("c1")
        assert store.load("c1") == {"token": "x"}
        assert store.delete("c1")
        assert store.load("c1") is None
        assert not store.delete("c1")

    def test_rotated_key_is_a_configuration_error(self, services, settings):
        conn = services.registry.connect(TENANT, "xero", "Xero", auth_data={"access_token": "t"})
        rotated = SqliteCredentialStore(CredentialEncryption(generate_encryption_key()), settings.db_path)

        assert rotated.has(conn.id)
        with pytest.raises(ConfigurationError):
            rotated.load(conn.id)
