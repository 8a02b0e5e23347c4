# -*- coding: utf-8 -*-
"""
OSC wire codec, delegated to python-osc.

A datagram carries either one OSC message, or a bundle holding exactly one
message. Everything else (garbage bytes, empty bundles, several messages,
nested bundles) is a ProtocolError.
"""

from __future__ import annotations

from typing import Iterable

from pythonosc.osc_bundle import OscBundle
from pythonosc.osc_message import OscMessage
from pythonosc.osc_message_builder import OscMessageBuilder

from qosc.types import Message, OscArg, ProtocolError


def decode(data: bytes) -> Message:
    """Decode one datagram into a Message.

    Raises
    ------
    ProtocolError
        If the bytes are not a single OSC message.
    """
    if not data:
        raise ProtocolError("Received empty datagram.")
    try:
        if OscBundle.dgram_is_bundle(data):
            msg = _single_message(OscBundle(data))
        elif OscMessage.dgram_is_message(data):
            msg = OscMessage(data)
        else:
            raise ProtocolError("Datagram is neither an OSC message nor a bundle.")
    except ProtocolError:
        raise
    except Exception as e:
        raise ProtocolError(f"OSC decode error: {e!r}") from e
    return Message(address=msg.address, args=tuple(msg.params))


def _single_message(bundle: OscBundle) -> OscMessage:
    if bundle.num_contents == 0:
        raise ProtocolError("Received empty bundle.")
    if bundle.num_contents > 1:
        raise ProtocolError("Multiple messages in same bundle.")
    content = bundle.content(0)
    if isinstance(content, OscBundle):
        raise ProtocolError("Received nested bundle.")
    return content


def encode(address: str, args: Iterable[OscArg] = ()) -> bytes:
    """Encode an address and arguments into an OSC message datagram."""
    builder = OscMessageBuilder(address=address)
    for arg in args:
        builder.add_arg(arg)
    return builder.build().dgram


def encode_message(message: Message) -> bytes:
    return encode(message.address, message.args)
