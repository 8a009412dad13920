# This file is part of the python-amf0 library.
# Copyright (C) 2020 dgelessus
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Lesser General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU Lesser General Public License for more details.
#
# You should have received a copy of the GNU Lesser General Public License
# along with this program.  If not, see <https://www.gnu.org/licenses/>.


"""Reading of AMF packets as exchanged by NetConnection remoting (Flash Remoting, "AMF over HTTP").

A packet wraps AMF0 values with routing information:
a list of context headers followed by a list of messages.
Every header value and every message body is decoded in its own session,
so object references never cross from one header or message to another.
"""


import io
import logging
import os
import typing

from . import advanced_repr
from . import stream


__all__ = [
	"PACKET_VERSION_AMF0",
	"PACKET_VERSION_AMF3",
	"UNKNOWN_LENGTH",
	"Header",
	"Message",
	"Packet",
	"read_packet",
	"packet_from_data",
	"packet_from_file",
]


logger = logging.getLogger(__name__)

PACKET_VERSION_AMF0 = 0
# Sent by clients that can handle AMF3.
# The packet structure is the same, only the bodies may switch to AMF3 using the AVM+ marker.
PACKET_VERSION_AMF3 = 3
_SUPPORTED_PACKET_VERSIONS = frozenset({PACKET_VERSION_AMF0, PACKET_VERSION_AMF3})

# Header and message lengths of (U32)-1 mean that the length isn't known.
UNKNOWN_LENGTH = 0xffffffff


def _decode_length(raw_length: int) -> typing.Optional[int]:
	return None if raw_length == UNKNOWN_LENGTH else raw_length


class Header(advanced_repr.AsMultilineStringBase):
	"""A context header of a packet.
	
	:attr:`length` is the byte length of the value as declared in the packet,
	or ``None`` if the sender didn't specify one.
	It is informational only and not checked against the actual value.
	"""
	
	name: str
	must_understand: bool
	length: typing.Optional[int]
	value: stream.Value
	
	def __init__(self, name: str, must_understand: bool, length: typing.Optional[int], value: stream.Value) -> None:
		super().__init__()
		
		self.name = name
		self.must_understand = must_understand
		self.length = length
		self.value = value
	
	def __repr__(self) -> str:
		return f"{type(self).__module__}.{type(self).__qualname__}(name={self.name!r}, must_understand={self.must_understand!r}, length={self.length!r}, value={self.value!r})"
	
	def __eq__(self, other: object) -> bool:
		if not isinstance(other, Header):
			return NotImplemented
		
		return (
			self.name == other.name
			and self.must_understand == other.must_understand
			and self.length == other.length
			and self.value == other.value
		)
	
	def _as_multiline_string_header_(self) -> str:
		header = f"header {self.name!r}"
		if self.must_understand:
			header += " (must understand)"
		return header
	
	def _as_multiline_string_body_(self) -> typing.Iterable[str]:
		yield from advanced_repr.as_multiline_string(self.value)


class Message(advanced_repr.AsMultilineStringBase):
	"""A message of a packet: a body value addressed to a target, with a URI for the response."""
	
	target_uri: str
	response_uri: str
	length: typing.Optional[int]
	body: stream.Value
	
	def __init__(self, target_uri: str, response_uri: str, length: typing.Optional[int], body: stream.Value) -> None:
		super().__init__()
		
		self.target_uri = target_uri
		self.response_uri = response_uri
		self.length = length
		self.body = body
	
	def __repr__(self) -> str:
		return f"{type(self).__module__}.{type(self).__qualname__}(target_uri={self.target_uri!r}, response_uri={self.response_uri!r}, length={self.length!r}, body={self.body!r})"
	
	def __eq__(self, other: object) -> bool:
		if not isinstance(other, Message):
			return NotImplemented
		
		return (
			self.target_uri == other.target_uri
			and self.response_uri == other.response_uri
			and self.length == other.length
			and self.body == other.body
		)
	
	def _as_multiline_string_header_(self) -> str:
		return f"message to {self.target_uri!r} (response to {self.response_uri!r})"
	
	def _as_multiline_string_body_(self) -> typing.Iterable[str]:
		yield from advanced_repr.as_multiline_string(self.body)


class Packet(advanced_repr.AsMultilineStringBase):
	"""A complete AMF packet."""
	
	version: int
	headers: typing.List[Header]
	messages: typing.List[Message]
	
	def __init__(self, version: int, headers: typing.List[Header], messages: typing.List[Message]) -> None:
		super().__init__()
		
		self.version = version
		self.headers = headers
		self.messages = messages
	
	def __repr__(self) -> str:
		return f"{type(self).__module__}.{type(self).__qualname__}(version={self.version!r}, headers={self.headers!r}, messages={self.messages!r})"
	
	def __eq__(self, other: object) -> bool:
		if not isinstance(other, Packet):
			return NotImplemented
		
		return self.version == other.version and self.headers == other.headers and self.messages == other.messages
	
	def _as_multiline_string_header_(self) -> str:
		return f"packet version {self.version}, {len(self.headers)} headers, {len(self.messages)} messages"
	
	def _as_multiline_string_body_(self) -> typing.Iterable[str]:
		for header in self.headers:
			yield from advanced_repr.as_multiline_string(header)
		for message in self.messages:
			yield from advanced_repr.as_multiline_string(message)


def _read_header(reader: stream.AMF0Reader) -> Header:
	source = reader.source
	name = source.read_short_string()
	must_understand = source.read_uint8() != 0
	length = _decode_length(source.read_uint32())
	value = reader.read_value()
	return Header(name, must_understand, length, value)


def _read_message(reader: stream.AMF0Reader) -> Message:
	source = reader.source
	target_uri = source.read_short_string()
	response_uri = source.read_short_string()
	length = _decode_length(source.read_uint32())
	body = reader.read_value()
	return Message(target_uri, response_uri, length, body)


def read_packet(raw: typing.BinaryIO, **kwargs: typing.Any) -> Packet:
	"""Read a complete AMF packet from a raw byte stream.
	
	Keyword arguments are passed on to :class:`~amf0.stream.AMF0Reader`.
	
	:raise amf0.stream.UnsupportedVersionError: If the packet version is neither 0 nor 3.
	:raise amf0.stream.AMF0DecodeError: If any part of the packet is invalid.
	"""
	
	with stream.AMF0Reader(raw, **kwargs) as reader:
		version = reader.source.read_uint16()
		if version not in _SUPPORTED_PACKET_VERSIONS:
			raise stream.UnsupportedVersionError(f"Unsupported AMF packet version: {version}")
		
		header_count = reader.source.read_uint16()
		headers = [_read_header(reader) for _ in range(header_count)]
		message_count = reader.source.read_uint16()
		messages = [_read_message(reader) for _ in range(message_count)]
		
		logger.debug("Read packet version %d with %d headers and %d messages (%d bytes)", version, header_count, message_count, reader.bytes_read)
		return Packet(version, headers, messages)


def packet_from_data(data: bytes, **kwargs: typing.Any) -> Packet:
	"""Read a complete AMF packet from a bytes object."""
	
	return read_packet(io.BytesIO(data), **kwargs)


def packet_from_file(filename: typing.Union[str, bytes, os.PathLike], **kwargs: typing.Any) -> Packet:
	"""Read a complete AMF packet from the file at the given path."""
	
	with open(filename, "rb") as f:
		return read_packet(f, **kwargs)
