import pytest
from pythonosc.osc_bundle_builder import IMMEDIATELY, OscBundleBuilder
from pythonosc.osc_message_builder import OscMessageBuilder

from qosc.server import codec
from qosc.types import Message, ProtocolError


def _message(address, *args):
    builder = OscMessageBuilder(address=address)
    for arg in args:
        builder.add_arg(arg)
    return builder.build()


def _bundle(*contents):
    builder = OscBundleBuilder(IMMEDIATELY)
    for content in contents:
        builder.add_content(content)
    return builder.build()


class TestDecode:
    def test_plain_message(self):
        msg = codec.decode(_message("/gk/init", 3).dgram)
        assert msg == Message("/gk/init", (3,))

    def test_typed_arguments(self):
        data = codec.encode("/gk/gate", ["RX", [0], [1.5], "tag-1"])
        msg = codec.decode(data)
        assert msg.address == "/gk/gate"
        assert msg.args[0] == "RX"
        assert msg.args[1] == [0]
        assert msg.args[2] == [pytest.approx(1.5)]
        assert msg.args[3] == "tag-1"

    def test_empty_array(self):
        msg = codec.decode(codec.encode("/gk/measure", [[]]))
        assert msg.args == ([],)

    def test_blob(self):
        msg = codec.decode(codec.encode("/gk/measure/reply", [b"\x00\x01\x01"]))
        assert msg.args == (b"\x00\x01\x01",)

    def test_bundle_with_one_message(self):
        msg = codec.decode(_bundle(_message("/gk/reset")).dgram)
        assert msg == Message("/gk/reset", ())

    @pytest.mark.parametrize(
        "data",
        [
            b"",
            b"garbage",
            b"\xff\xfe\x00\x01",
        ],
    )
    def test_garbage_is_protocol_error(self, data):
        with pytest.raises(ProtocolError):
            codec.decode(data)

    def test_empty_bundle(self):
        with pytest.raises(ProtocolError, match="empty bundle"):
            codec.decode(_bundle().dgram)

    def test_multi_message_bundle(self):
        data = _bundle(_message("/gk/init", 1), _message("/gk/reset")).dgram
        with pytest.raises(ProtocolError, match="Multiple messages"):
            codec.decode(data)

    def test_nested_bundle(self):
        data = _bundle(_bundle(_message("/gk/init", 1))).dgram
        with pytest.raises(ProtocolError, match="nested"):
            codec.decode(data)


def test_encode_message_matches_encode():
    msg = Message("/gk/init/reply", ("ok", "t"))
    assert codec.encode_message(msg) == codec.encode("/gk/init/reply", ["ok", "t"])


def test_message_repr_hides_large_blobs():
    msg = Message("/gk/measure/reply", (bytes(64),))
    assert "<blob 64B>" in repr(msg)
