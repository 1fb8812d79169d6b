"""
Tests for archgen/server/models.py - stream payload decoding.
"""

import base64
import gzip
import json

import pytest

from archgen.server.models import PayloadError, StreamRequest, decode_stream_payload


def _compress(text):
    return base64.b64encode(gzip.compress(text.encode("utf-8"))).decode("ascii")


class TestDecodeStreamPayload:
    """Tests for decode_stream_payload."""

    def test_message_list(self):
        messages = [{"role": "user", "content": "GCP web app"}]

        assert decode_stream_payload(json.dumps(messages)) == messages

    def test_compressed_payload(self):
        messages = [{"role": "user", "content": "AWS data pipeline"}]

        assert decode_stream_payload(_compress(json.dumps(messages)), is_compressed=True) == messages

    def test_single_message_object_wrapped(self):
        message = {"role": "user", "content": "hi"}

        assert decode_stream_payload(json.dumps(message)) == [message]

    def test_json_string(self):
        assert decode_stream_payload(json.dumps("Build a chat app")) == "Build a chat app"

    def test_plain_text_is_user_message(self):
        assert decode_stream_payload("Build a chat app") == "Build a chat app"

    def test_missing_payload(self):
        with pytest.raises(PayloadError, match="missing payload"):
            decode_stream_payload(None)
        with pytest.raises(PayloadError, match="missing payload"):
            decode_stream_payload("")

    def test_bad_compression(self):
        with pytest.raises(PayloadError, match="Failed to decompress payload"):
            decode_stream_payload("not base64 gzip!", is_compressed=True)

    def test_base64_but_not_gzip(self):
        with pytest.raises(PayloadError, match="Failed to decompress payload"):
            decode_stream_payload(base64.b64encode(b"plain bytes").decode("ascii"), is_compressed=True)

    def test_empty_list_rejected(self):
        with pytest.raises(PayloadError, match="non-empty"):
            decode_stream_payload("[]")

    def test_number_rejected(self):
        with pytest.raises(PayloadError):
            decode_stream_payload("42")

    def test_payload_error_is_value_error(self):
        assert issubclass(PayloadError, ValueError)


class TestStreamRequest:
    """Tests for the POST body model."""

    def test_defaults(self):
        request = StreamRequest(payload="hi")

        assert request.isCompressed is False
        assert request.continuation is None
        assert request.maxTurns is None

    def test_max_turns_bounds(self):
        with pytest.raises(ValueError):
            StreamRequest(payload="hi", maxTurns=0)
