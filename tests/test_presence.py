"""Tests for presence decoding and the push buffer."""

import base64
import json

import pytest

from matchsight.core.errors import DecodeError
from matchsight.core.models import SessionState
from matchsight.live.presence import (
    decode_blob,
    decode_presence,
    game_mode,
    own_presence,
    party_id_for,
    party_members,
    presence_phase,
)
from matchsight.live.push import PRESENCE_EVENT, PRESENCE_URI, PushBuffer

from conftest import ALLY, ENEMY, SELF, encode_presence, presence_entry


class TestDecodePresence:
    """Tests for decode_presence."""

    def test_nested_fields(self):
        blob = encode_presence("INGAME", party_id="p1", queue_id="unrated", level=77)
        private = decode_presence(blob)

        assert private.is_valid
        assert private.phase == "INGAME"
        assert private.state is SessionState.INGAME
        assert private.party_id == "p1"
        assert private.queue_id == "unrated"
        assert private.account_level == 77

    def test_flat_fields(self):
        data = {"isValid": True, "sessionLoopState": "MENUS", "partyId": "p2", "queueId": "", "accountLevel": "12"}
        blob = base64.b64encode(json.dumps(data).encode()).decode()
        private = decode_presence(blob)

        assert private.state is SessionState.MENUS
        assert private.party_id == "p2"
        assert private.queue_id == ""
        assert private.account_level == 12

    def test_incognito_flag(self):
        blob = encode_presence("MENUS", playerPresenceData={"isIncognito": True})
        assert decode_presence(blob).incognito is True

    @pytest.mark.parametrize("blob", [None, "", '{"isValid": true}', "not base64!!", base64.b64encode(b"[1]").decode()])
    def test_unreadable_blobs(self, blob):
        private = decode_presence(blob)
        assert not private.is_valid
        assert private.phase is None
        assert private.raw == {}

    def test_unknown_phase_is_ambiguous(self):
        assert decode_presence(encode_presence("REPLAY")).state is None


class TestDecodeBlob:
    def test_object(self):
        assert decode_blob(encode_presence("MENUS"))["isValid"] is True

    @pytest.mark.parametrize(
        "blob", [None, "", 42, '{"isValid": true}', "not base64!!", base64.b64encode(b"[1]").decode()]
    )
    def test_raises_decode_error(self, blob):
        with pytest.raises(DecodeError):
            decode_blob(blob)


class TestPresencePhase:
    def test_own_entry(self):
        presences = [presence_entry(ALLY, "INGAME"), presence_entry(SELF, "PREGAME")]
        assert presence_phase(presences, SELF) is SessionState.PREGAME

    def test_missing_own_entry(self):
        assert presence_phase([presence_entry(ALLY, "INGAME")], SELF) is None

    def test_other_product_is_ignored(self):
        presences = [{"puuid": SELF, "product": "league_of_legends", "private": encode_presence("INGAME")}]
        assert own_presence(presences, SELF) is None

    def test_empty_private(self):
        assert presence_phase([{"puuid": SELF, "product": "valorant", "private": ""}], SELF) is None


class TestGameMode:
    def test_known_queue(self):
        assert game_mode(decode_presence(encode_presence("MENUS", queue_id="swiftplay"))) == "Swiftplay"

    def test_unknown_queue_is_capitalized(self):
        assert game_mode(decode_presence(encode_presence("MENUS", queue_id="brandnew"))) == "Brandnew"

    def test_custom_game(self):
        blob = encode_presence(
            "PREGAME",
            matchPresenceData={"sessionLoopState": "PREGAME", "queueId": "", "provisioningFlow": "CustomGame"},
        )
        assert game_mode(decode_presence(blob)) == "Custom Game"

    def test_no_presence(self):
        assert game_mode(None) == ""


class TestPartyMembers:
    """Tests for party_members."""

    def test_self_first_then_party(self):
        presences = [
            presence_entry(ALLY, "MENUS", party_id="p1", level=20),
            presence_entry(ENEMY, "MENUS", party_id="p9"),
            presence_entry(SELF, "MENUS", party_id="p1", level=50),
        ]
        members = party_members(SELF, presences)

        assert [m.subject for m in members] == [SELF, ALLY]
        assert members[0].account_level == 50
        assert members[1].party_id == "p1"

    def test_self_without_presence(self):
        members = party_members(SELF, [presence_entry(ALLY, "MENUS")])
        assert [m.subject for m in members] == [SELF]

    def test_party_id_for(self):
        presences = [presence_entry(ALLY, "MENUS", party_id="p7")]
        assert party_id_for(ALLY, presences) == "p7"
        assert party_id_for(SELF, presences) == ""


class TestPushBuffer:
    """Tests for the push buffer fed by the event socket."""

    def frame(self, presences):
        return json.dumps([8, PRESENCE_EVENT, {"uri": PRESENCE_URI, "data": {"presences": presences}}])

    def test_presence_frame_records_phase(self):
        push = PushBuffer()
        state = push.handle_message(self.frame([presence_entry(SELF, "PREGAME")]), SELF)

        assert state is SessionState.PREGAME
        assert push.poll_phase() is SessionState.PREGAME
        assert push.poll_phase() is None

    def test_other_players_ignored(self):
        push = PushBuffer()
        assert push.handle_message(self.frame([presence_entry(ALLY, "INGAME")]), SELF) is None

    def test_other_uri_ignored(self):
        push = PushBuffer()
        message = json.dumps([8, "OnJsonApiEvent_chat_v6_messages", {"uri": "/chat/v6/messages", "data": {}}])
        assert push.handle_message(message, SELF) is None

    def test_garbage_ignored(self):
        push = PushBuffer()
        assert push.handle_message("not json at all", SELF) is None
        assert push.handle_message("", SELF) is None

    def test_other_event_name_ignored(self):
        push = PushBuffer()
        frame = [8, "OnJsonApiEvent", {"uri": PRESENCE_URI, "data": {"presences": [presence_entry(SELF, "INGAME")]}}]
        assert push.handle_message(json.dumps(frame), SELF) is None
        assert push.handle_message(json.dumps({"uri": PRESENCE_URI}), SELF) is None
        assert push.poll_phase() is None

    def test_disconnect_consumed_once(self):
        push = PushBuffer()
        push.report_phase(SessionState.MENUS)
        push.report_disconnect()

        assert push.disconnected
        assert push.poll_phase() is None
        assert push.consume_disconnect() is True
        assert push.consume_disconnect() is False
