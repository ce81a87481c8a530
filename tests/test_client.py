"""Tests for the local API transport and the process probe."""

from unittest.mock import MagicMock, patch

import psutil
import pytest
import requests

from matchsight.core.constants import Domain
from matchsight.core.errors import TransportDisconnected, TransportError
from matchsight.infra.process import TargetProbe, TargetStatus, is_process_running
from matchsight.integrations.client import (
    LocalClient,
    Region,
    parse_client_version,
    parse_lockfile,
    parse_region,
    read_lockfile,
)

LOG_LINES = [
    "[2024.01.01-00.00.00:000][  0]LogShooter: CI server version: release-08.11-9-2444158",
    "LogPlatform: GET https://pd.eu.a.pvp.net/account-xp/v1/players/abc",
    "LogPlatform: GET https://glz-eu-1.eu.a.pvp.net/session/v1/sessions/abc",
]


def http_response(status=200, data=None):
    response = MagicMock()
    response.status_code = status
    if data is None:
        response.json.side_effect = ValueError("no body")
    else:
        response.json.return_value = data
    return response


class TestLockfile:
    def test_parse(self):
        lockfile = parse_lockfile("Riot Client:1234:54321:secret:https")
        assert lockfile.port == "54321"
        assert lockfile.base_url == "https://127.0.0.1:54321"
        assert lockfile.auth_header["Authorization"].startswith("Basic ")

    @pytest.mark.parametrize("text", ["", "a:b:c", "name:pid:port:pw:https"])
    def test_malformed(self, text):
        assert parse_lockfile(text) is None

    def test_read_missing(self, tmp_path):
        assert read_lockfile(tmp_path / "lockfile") is None

    def test_read_present(self, tmp_path):
        path = tmp_path / "lockfile"
        path.write_text("Riot Client:1:2999:pw:https")
        assert read_lockfile(path).password == "pw"


class TestClientLog:
    """Tests for region and version discovery."""

    def test_region(self):
        region = parse_region(LOG_LINES)
        assert region == Region("eu", "eu-1", "eu")
        assert region.pd_url == "https://pd.eu.a.pvp.net"
        assert region.glz_url == "https://glz-eu-1.eu.a.pvp.net"
        assert region.shared_url == "https://shared.eu.a.pvp.net"

    def test_pbe_maps_to_na(self):
        lines = ["https://pd.pbe.a.pvp.net/account-xp/v1/players/x", "https://glz-pbe-1.pbe.a.pvp.net/x"]
        assert parse_region(lines) == Region("na", "na-1", "na")

    def test_region_missing(self):
        assert parse_region(["nothing here"]) is None

    def test_client_version(self):
        assert parse_client_version(LOG_LINES) == "release-08.11-shipping-9-2444158"
        assert parse_client_version([]) == ""


@pytest.fixture
def client(tmp_path):
    lockfile = tmp_path / "lockfile"
    lockfile.write_text("Riot Client:1:2999:pw:https")
    log = tmp_path / "ShooterGame.log"
    log.write_text("\n".join(LOG_LINES))
    session = MagicMock()
    return LocalClient(lockfile_path=lockfile, log_path=log, session=session)


class TestLocalClient:
    """Tests for LocalClient requests."""

    def test_descriptor(self, client, tmp_path):
        assert client.descriptor().present
        (tmp_path / "lockfile").unlink()
        assert not client.descriptor().present

    def test_local_request_uses_basic_auth(self, client):
        client._session.request.return_value = http_response(data={"presences": []})

        assert client.presence() == []
        _, kwargs = client._session.request.call_args
        assert client._session.request.call_args[0][1] == "https://127.0.0.1:2999/chat/v4/presences"
        assert kwargs["headers"]["Authorization"].startswith("Basic ")
        assert kwargs["verify"] is False

    def test_presence_failure_returns_none(self, client):
        client._session.request.side_effect = requests.ConnectionError("refused")
        assert client.presence() is None

    def test_remote_request_uses_entitlements(self, client):
        client._session.get.return_value = http_response(
            data={"accessToken": "access", "token": "jwt", "subject": "me"}
        )
        client._session.request.return_value = http_response(data={"MatchID": "m1"})

        assert client.fetch(Domain.GLZ, "/core-game/v1/players/me") == {"MatchID": "m1"}
        args, kwargs = client._session.request.call_args
        assert args[1] == "https://glz-eu-1.eu.a.pvp.net/core-game/v1/players/me"
        assert kwargs["headers"]["Authorization"] == "Bearer access"
        assert kwargs["headers"]["X-Riot-Entitlements-JWT"] == "jwt"
        assert client.subject == "me"

    def test_not_found_body_is_returned(self, client):
        client._session.get.return_value = http_response(data={"accessToken": "a", "subject": "me"})
        client._session.request.return_value = http_response(404, {"errorCode": "RESOURCE_NOT_FOUND"})

        assert client.fetch(Domain.GLZ, "/pregame/v1/players/me") == {"errorCode": "RESOURCE_NOT_FOUND"}

    def test_error_status_raises(self, client):
        client._session.get.return_value = http_response(data={"accessToken": "a", "subject": "me"})
        client._session.request.return_value = http_response(500, {"errorCode": "SERVER_ERROR"})

        with pytest.raises(TransportError) as exc_info:
            client.fetch(Domain.PD, "/mmr/v1/players/me")
        assert exc_info.value.status_code == 500

    def test_bad_claims_refreshes_token(self, client):
        client._session.get.return_value = http_response(data={"accessToken": "a", "subject": "me"})
        client._session.request.side_effect = [
            http_response(400, {"errorCode": "BAD_CLAIMS"}),
            http_response(200, {"ok": True}),
        ]

        assert client.fetch(Domain.PD, "/mmr/v1/players/me") == {"ok": True}
        assert client._session.get.call_count == 2

    def test_timeout_raises_transport_error(self, client):
        client._session.request.side_effect = requests.Timeout("slow")
        with pytest.raises(TransportError, match="timed out"):
            client.fetch(Domain.LOCAL, "/chat/v4/presences", timeout=1)

    def test_missing_lockfile_disconnects(self, client, tmp_path):
        (tmp_path / "lockfile").unlink()
        with pytest.raises(TransportDisconnected):
            client.fetch(Domain.LOCAL, "/chat/v4/presences")


class TestProcessProbe:
    """Tests for the process and lockfile checks."""

    @patch("matchsight.infra.process.psutil.process_iter")
    def test_process_found_case_insensitive(self, mock_iter):
        proc = MagicMock()
        proc.info = {"name": "VALORANT.exe"}
        mock_iter.return_value = [proc]
        assert is_process_running("Valorant.exe")

    @patch("matchsight.infra.process.psutil.process_iter")
    def test_process_missing(self, mock_iter):
        proc = MagicMock()
        proc.info = {"name": "explorer.exe"}
        mock_iter.return_value = [proc]
        assert not is_process_running("Valorant.exe")

    @patch("matchsight.infra.process.psutil.process_iter")
    def test_psutil_error(self, mock_iter):
        mock_iter.side_effect = psutil.Error("denied")
        assert not is_process_running("Valorant.exe")

    def test_probe_combines_signals(self):
        probe = TargetProbe(lambda: False, "Valorant.exe", process_check=lambda name: True)
        status = probe.check()
        assert status == TargetStatus(descriptor_present=False, process_running=True)
        assert status.present
        assert not TargetStatus(False, False).present
