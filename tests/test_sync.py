"""Tests for loading and saving the registry through the admin API."""

import pytest
from conftest import make_response, make_site

from frpc_sites.api import FrpcAdminClient
from frpc_sites.exceptions import FetchError, NoBaselineError, ReloadError, SaveError
from frpc_sites.sync import ConfigSync
from frpc_sites.transcoder import parse


@pytest.fixture
def sync(registry, settings, mock_session, sample_config):
    mock_session.request.return_value = make_response(text=sample_config)
    client = FrpcAdminClient.from_settings(settings, mock_session)
    return ConfigSync(registry, client)


def saved_body(mock_session) -> str:
    put_calls = [c for c in mock_session.request.call_args_list if c.args[0] == "PUT"]
    assert len(put_calls) == 1
    return put_calls[0].kwargs["data"].decode("utf-8")


class TestLoad:
    """Test ConfigSync.load()."""

    def test_load(self, sync, registry):
        """Sites are grouped from the fetched config"""
        sites = sync.load()

        assert [s.site_code for s in sites] == ["DC001", "DC002", "DC003"]
        assert registry.get_site("E721EE345A01").bind_ports == [18015, 18016]
        assert registry.get_site("E721EE345A03").configs == []
        assert sync.has_baseline
        assert sync.last_sync_time is not None

    def test_load_failure_keeps_registry(self, sync, registry, mock_session):
        """A failed fetch changes nothing"""
        registry.add_site(make_site("AA0000000001", "S001"))
        mock_session.request.return_value = make_response(503, reason="Service Unavailable")

        with pytest.raises(FetchError):
            sync.load()

        assert len(registry) == 1
        assert not sync.has_baseline
        assert sync.last_sync_time is None

    def test_load_empty_config(self, sync, mock_session):
        """An empty file yields no sites"""
        mock_session.request.return_value = make_response(text="")

        assert sync.load() == []
        assert sync.has_baseline


class TestSave:
    """Test ConfigSync.save()."""

    def test_save_without_load(self, sync, mock_session):
        """Saving before loading raises NoBaselineError and sends nothing"""
        with pytest.raises(NoBaselineError):
            sync.save()

        mock_session.request.assert_not_called()

    def test_save_puts_then_reloads(self, sync, mock_session):
        """Save sends the generated text and then triggers a reload"""
        sync.load()
        mock_session.request.reset_mock()
        mock_session.request.return_value = make_response()

        text = sync.save()

        methods = [(c.args[0], c.args[1]) for c in mock_session.request.call_args_list]
        assert methods == [
            ("PUT", "http://127.0.0.1:7400/api/config"),
            ("GET", "http://127.0.0.1:7400/api/reload"),
        ]
        assert saved_body(mock_session) == text

    def test_saved_text_preserves_other_content(self, sync, mock_session):
        """[common], the device registry and other sections are written back"""
        sync.load()
        mock_session.request.return_value = make_response()

        parsed = parse(sync.save())

        assert parsed.common["server_addr"] == "frp.example.com"
        assert [d.site_code for d in parsed.devices] == ["DC001", "DC002", "DC003"]
        assert [s.name for s in parsed.other_sections] == ["web"]
        assert len(parsed.stcp_configs) == 3
        assert parsed.warnings == []

    def test_save_is_idempotent(self, sync, mock_session):
        """Saving unchanged state twice produces identical text"""
        sync.load()
        mock_session.request.return_value = make_response()

        assert sync.save() == sync.save()

    def test_save_assigns_pending_ports(self, sync, registry, mock_session):
        """Proxies added with bind_port 0 get a port before writing"""
        sync.load()
        registry.add_site(make_site("BB0000000001", "N001", (0,)))
        mock_session.request.return_value = make_response()

        text = sync.save()

        assert registry.get_site("BB0000000001").bind_ports == [18000]
        assert "bind_port = 18000" in text
        assert "bind_port = 0" not in text

    def test_save_error_keeps_state(self, sync, registry, mock_session):
        """A failed PUT raises SaveError and skips the reload"""
        sync.load()
        loaded_at = sync.last_sync_time
        mock_session.request.reset_mock()
        mock_session.request.return_value = make_response(500, reason="Internal Server Error")

        with pytest.raises(SaveError):
            sync.save()

        assert mock_session.request.call_count == 1
        assert sync.last_sync_time == loaded_at
        assert len(registry) == 3

    def test_reload_error_after_save(self, sync, mock_session):
        """A failed reload is reported separately from the save"""
        sync.load()
        loaded_at = sync.last_sync_time
        mock_session.request.return_value = None
        mock_session.request.side_effect = [
            make_response(),
            make_response(500, reason="Internal Server Error"),
        ]

        with pytest.raises(ReloadError) as exc_info:
            sync.save()

        assert exc_info.value.status_code == 500
        assert sync.last_sync_time is not None
        assert sync.last_sync_time >= loaded_at
