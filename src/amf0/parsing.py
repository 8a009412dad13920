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


import os
import typing

from . import stream


__all__ = [
	"ParseResult",
	"parse",
	"parse_from_data",
	"parse_from_file",
	"load_from_stream",
	"load_from_data",
	"load_from_file",
]


class ParseResult(typing.NamedTuple):
	"""Outcome of :func:`parse`.
	
	If :attr:`error` is not ``None``, :attr:`value` is ``None``
	and :attr:`bytes_read` tells how far decoding got before it failed.
	"""
	
	value: typing.Optional[stream.Value]
	bytes_read: int
	error: typing.Optional[stream.AMF0DecodeError]
	
	@property
	def ok(self) -> bool:
		return self.error is None


def _parse_with_reader(reader: stream.AMF0Reader) -> ParseResult:
	try:
		value = reader.read_value()
	except stream.AMF0DecodeError as e:
		return ParseResult(None, reader.bytes_read, e)
	return ParseResult(value, reader.bytes_read, None)


def parse(raw: typing.BinaryIO, **kwargs: typing.Any) -> ParseResult:
	"""Decode one AMF0 value (marker byte and payload) from a raw byte stream.
	
	Decoding errors are returned in the result instead of being raised.
	Keyword arguments are passed on to :class:`~amf0.stream.AMF0Reader`.
	"""
	
	with stream.AMF0Reader(raw, **kwargs) as reader:
		return _parse_with_reader(reader)


def parse_from_data(data: bytes, **kwargs: typing.Any) -> ParseResult:
	"""Decode one AMF0 value from a bytes object."""
	
	with stream.AMF0Reader.from_data(data, **kwargs) as reader:
		return _parse_with_reader(reader)


def parse_from_file(filename: typing.Union[str, bytes, os.PathLike], **kwargs: typing.Any) -> ParseResult:
	"""Decode the first AMF0 value in the given file."""
	
	with stream.AMF0Reader.open(filename, **kwargs) as reader:
		return _parse_with_reader(reader)


def load_from_stream(raw: typing.BinaryIO, **kwargs: typing.Any) -> stream.Value:
	"""Decode one AMF0 value from a raw byte stream.
	
	Unlike :func:`parse`, this raises an :class:`~amf0.stream.AMF0DecodeError` if the data is invalid.
	"""
	
	with stream.AMF0Reader(raw, **kwargs) as reader:
		return reader.read_value()


def load_from_data(data: bytes, **kwargs: typing.Any) -> stream.Value:
	with stream.AMF0Reader.from_data(data, **kwargs) as reader:
		return reader.read_value()


def load_from_file(filename: typing.Union[str, bytes, os.PathLike], **kwargs: typing.Any) -> stream.Value:
	with stream.AMF0Reader.open(filename, **kwargs) as reader:
		return reader.read_value()
