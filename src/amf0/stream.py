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


import enum
import io
import logging
import os
import struct
import types
import typing

from . import advanced_repr


__all__ = [
	"DEFAULT_MAX_DEPTH",
	"AMF0DecodeError",
	"ShortReadError",
	"MalformedStreamError",
	"InvalidReferenceError",
	"UnsupportedTypeError",
	"UnsupportedVersionError",
	"Marker",
	"Payload",
	"Value",
	"ReferenceTable",
	"ByteSource",
	"AMF0Reader",
]


logger = logging.getLogger(__name__)

_UINT16 = struct.Struct(">H")
_UINT32 = struct.Struct(">I")
_DOUBLE = struct.Struct(">d")

# The byte that follows a zero-length property name to mark the end of a property list.
# Together with the two length bytes it forms the 3-byte sequence 00 00 09.
_OBJECT_END = 0x09

DEFAULT_MAX_DEPTH = 256


class AMF0DecodeError(Exception):
	"""Base class for all errors raised while decoding AMF0 data."""


class ShortReadError(AMF0DecodeError, EOFError):
	"""Raised when the underlying stream ended (or failed) before the requested number of bytes could be read."""
	
	requested: int
	received: int
	
	def __init__(self, requested: int, received: int) -> None:
		super().__init__(f"Attempted to read {requested} bytes of data, but only got {received} bytes")
		
		self.requested = requested
		self.received = received


class MalformedStreamError(AMF0DecodeError):
	"""Raised when the AMF0 data violates a structural rule of the format,
	such as a zero-length property name that isn't followed by the object end marker.
	"""


class InvalidReferenceError(AMF0DecodeError):
	"""Raised when a reference points past the end of the current reference table."""
	
	index: int
	table_size: int
	
	def __init__(self, index: int, table_size: int) -> None:
		super().__init__(f"Reference index {index} is out of range (only {table_size} objects have been decoded so far)")
		
		self.index = index
		self.table_size = table_size


class UnsupportedTypeError(AMF0DecodeError):
	"""Raised for markers that the AMF0 format reserves but never defined a payload for
	(movieclip, unsupported, recordset).
	"""
	
	marker: "Marker"
	
	def __init__(self, marker: "Marker") -> None:
		super().__init__(f"Unsupported AMF0 type: {marker.name} ({int(marker):#04x})")
		
		self.marker = marker


class UnsupportedVersionError(AMF0DecodeError):
	"""Raised when the data switches to a newer format version (AMF3), which this library doesn't read."""


class Marker(enum.IntEnum):
	"""The type markers (tags) that prefix every AMF0 value."""
	
	NUMBER = 0x00
	BOOLEAN = 0x01
	STRING = 0x02
	OBJECT = 0x03
	MOVIECLIP = 0x04
	NULL = 0x05
	UNDEFINED = 0x06
	REFERENCE = 0x07
	ECMA_ARRAY = 0x08
	OBJECT_END = 0x09
	STRICT_ARRAY = 0x0a
	DATE = 0x0b
	LONG_STRING = 0x0c
	UNSUPPORTED = 0x0d
	RECORDSET = 0x0e
	XML_DOCUMENT = 0x0f
	TYPED_OBJECT = 0x10
	AVMPLUS_OBJECT = 0x11


# Markers whose payload is a list of named properties.
KEYED_CONTAINER_MARKERS = frozenset({Marker.OBJECT, Marker.ECMA_ARRAY, Marker.TYPED_OBJECT})

_UNSUPPORTED_MARKERS = frozenset({Marker.MOVIECLIP, Marker.UNSUPPORTED, Marker.RECORDSET})


def _marker_name(marker: int) -> str:
	try:
		return Marker(marker).name.lower()
	except ValueError:
		return f"unknown marker {marker:#04x}"


Payload = typing.Union[None, bool, float, str, typing.List["Value"]]


class Value(advanced_repr.AsMultilineStringBase):
	"""A single decoded AMF0 value.
	
	:attr:`marker` is normally a :class:`Marker`,
	but a plain :class:`int` is kept when the value was decoded leniently from an unrecognized marker byte.
	
	The type of :attr:`payload` depends on the marker:
	
	* number and date: :class:`float` (dates are milliseconds since the Unix epoch)
	* boolean: :class:`bool`
	* string, long string, XML document: :class:`str`
	* object, ECMA array, typed object: list of :class:`Value`, each with a :attr:`name`
	* strict array: list of :class:`Value` without names
	* null, undefined and unrecognized markers: ``None``
	
	:attr:`name` is the property name if the value is stored in a property list.
	Typed objects that aren't stored in a property list use their class name as their name.
	The class name of a typed object is always available as :attr:`class_name`.
	
	References never appear in a decoded tree -
	they are replaced with the marker and payload of the value that they refer to.
	The referenced payload object is shared, not copied.
	"""
	
	marker: int
	payload: Payload
	name: typing.Optional[str]
	class_name: typing.Optional[str]
	
	def __init__(self, marker: int, payload: Payload = None, *, name: typing.Optional[str] = None, class_name: typing.Optional[str] = None) -> None:
		super().__init__()
		
		self.marker = marker
		self.payload = payload
		self.name = name
		self.class_name = class_name
	
	@property
	def properties(self) -> typing.List["Value"]:
		"""The payload of a keyed container (object, ECMA array or typed object)."""
		
		if self.marker not in KEYED_CONTAINER_MARKERS:
			raise TypeError(f"A {_marker_name(self.marker)} value has no properties")
		assert isinstance(self.payload, list)
		return self.payload
	
	def get(self, name: str) -> typing.Optional["Value"]:
		"""Look up the first property with the given name, or return ``None`` if there is none.
		
		Property lists may legally contain the same name more than once.
		Use :attr:`properties` to see all of them.
		"""
		
		for prop in self.properties:
			if prop.name == name:
				return prop
		return None
	
	def __repr__(self) -> str:
		if isinstance(self.marker, Marker):
			marker_rep = f"{Marker.__qualname__}.{self.marker.name}"
		else:
			marker_rep = f"{self.marker:#04x}"
		rep = f"{type(self).__module__}.{type(self).__qualname__}({marker_rep}, {self.payload!r}"
		if self.name is not None:
			rep += f", name={self.name!r}"
		if self.class_name is not None:
			rep += f", class_name={self.class_name!r}"
		return rep + ")"
	
	def __eq__(self, other: object) -> bool:
		if not isinstance(other, Value):
			return NotImplemented
		
		return (
			self.marker == other.marker
			and self.name == other.name
			and self.class_name == other.class_name
			and self.payload == other.payload
		)
	
	def _as_multiline_string_header_(self) -> str:
		header = _marker_name(self.marker)
		if self.class_name is not None:
			header += f" of class {self.class_name!r}"
		if self.name is not None and self.name != self.class_name:
			header = f"{self.name!r}: {header}"
		
		if isinstance(self.payload, list):
			if not self.payload:
				header += ", empty"
			elif self.marker == Marker.STRICT_ARRAY:
				header += f", {len(self.payload)} element" + ("" if len(self.payload) == 1 else "s")
			else:
				header += f", {len(self.payload)} propert" + ("y" if len(self.payload) == 1 else "ies")
		elif self.payload is not None:
			header += f" {self.payload!r}"
		
		return header
	
	def _as_multiline_string_body_(self) -> typing.Iterable[str]:
		if isinstance(self.payload, list):
			for element in self.payload:
				yield from advanced_repr.as_multiline_string(element)


class ReferenceTable(object):
	"""The complex values decoded so far in one decode session, in the order in which they were *finished*.
	
	Objects, ECMA arrays and typed objects are registered only after their whole property list has been read,
	so a value can never refer to one of its own containers.
	"""
	
	_values: typing.List[Value]
	
	def __init__(self) -> None:
		super().__init__()
		
		self._values = []
	
	def __len__(self) -> int:
		return len(self._values)
	
	def __repr__(self) -> str:
		return f"<{type(self).__module__}.{type(self).__qualname__} with {len(self)} entries>"
	
	def register(self, value: Value) -> int:
		"""Append a fully decoded value to the table and return its index."""
		
		self._values.append(value)
		index = len(self._values) - 1
		logger.debug("Registered %s as reference #%d", _marker_name(value.marker), index)
		return index
	
	def resolve(self, index: int) -> Value:
		"""Look up the value with the given index.
		
		:raise InvalidReferenceError: If no value with that index has been registered (yet).
		"""
		
		if index < 0 or index >= len(self._values):
			raise InvalidReferenceError(index, len(self._values))
		return self._values[index]


class ByteSource(object):
	"""Reads exact amounts of data from a raw byte stream and counts every byte consumed.
	
	:attr:`bytes_read` also includes the bytes of a read that failed partway,
	so after an error it shows how far decoding got.
	"""
	
	_stream: typing.BinaryIO
	bytes_read: int
	
	def __init__(self, stream: typing.BinaryIO) -> None:
		super().__init__()
		
		self._stream = stream
		self.bytes_read = 0
	
	def read_exact(self, byte_count: int) -> bytes:
		"""Read byte_count bytes from the raw stream and raise an exception if too few bytes are read
		(i. e. if EOF was hit prematurely or the stream failed).
		"""
		
		chunks = []
		remaining = byte_count
		while remaining > 0:
			try:
				chunk = self._stream.read(remaining)
			except OSError as e:
				raise ShortReadError(byte_count, byte_count - remaining) from e
			if not chunk:
				break
			chunks.append(chunk)
			remaining -= len(chunk)
			self.bytes_read += len(chunk)
		
		if remaining > 0:
			raise ShortReadError(byte_count, byte_count - remaining)
		return b"".join(chunks)
	
	def read_uint8(self) -> int:
		(value,) = self.read_exact(1)
		return value
	
	def read_uint16(self) -> int:
		(value,) = _UINT16.unpack(self.read_exact(_UINT16.size))
		return value
	
	def read_uint32(self) -> int:
		(value,) = _UINT32.unpack(self.read_exact(_UINT32.size))
		return value
	
	def read_double(self) -> float:
		(value,) = _DOUBLE.unpack(self.read_exact(_DOUBLE.size))
		return value
	
	def read_utf8(self, length: int) -> str:
		data = self.read_exact(length)
		try:
			return data.decode("utf-8")
		except UnicodeDecodeError as e:
			raise MalformedStreamError(f"String data is not valid UTF-8: {data!r}") from e
	
	def read_short_string(self) -> str:
		"""Read a string with a 2-byte length prefix (used for string values, property names and class names)."""
		
		return self.read_utf8(self.read_uint16())
	
	def read_long_string(self) -> str:
		"""Read a string with a 4-byte length prefix (used for long strings and XML documents)."""
		
		return self.read_utf8(self.read_uint32())


class _DecodeSession(object):
	"""State that lives for exactly one top-level value: its reference table and the current nesting depth."""
	
	references: ReferenceTable
	depth: int
	
	def __init__(self) -> None:
		super().__init__()
		
		self.references = ReferenceTable()
		self.depth = 0


class AMF0Reader(typing.ContextManager["AMF0Reader"], typing.Iterator[Value]):
	"""Decodes AMF0 values from a raw byte stream.
	
	Every top-level value is decoded in its own session with a fresh :class:`ReferenceTable`,
	so references never point into previously read top-level values.
	"""
	
	_close_stream: bool
	_stream: typing.BinaryIO
	_source: ByteSource
	
	strict_markers: bool
	max_depth: int
	
	@classmethod
	def from_data(cls, data: bytes, **kwargs: typing.Any) -> "AMF0Reader":
		"""Create a reader for the given AMF0 data."""
		
		return cls(io.BytesIO(data), close=True, **kwargs)
	
	@classmethod
	def open(cls, filename: typing.Union[str, bytes, os.PathLike], **kwargs: typing.Any) -> "AMF0Reader":
		"""Open the AMF0 file at the given path."""
		
		return cls(open(filename, "rb"), close=True, **kwargs)
	
	def __init__(self, stream: typing.BinaryIO, *, close: bool = False, strict_markers: bool = False, max_depth: int = DEFAULT_MAX_DEPTH) -> None:
		"""Create an :class:`AMF0Reader` that reads data from the given raw byte stream.
		
		:param stream: The raw byte stream from which to read the AMF0 data.
		:param close: Controls whether the raw stream should also be closed when :meth:`close` is called.
			By default this is ``False`` and callers are expected to close the raw stream themselves after closing the :class:`AMF0Reader`.
		:param strict_markers: Controls what happens when a value has a marker byte that AMF0 doesn't define.
			By default such values are decoded as values without payload
			(the marker byte is kept as a plain :class:`int`).
			If this is ``True``, a :class:`MalformedStreamError` is raised instead.
		:param max_depth: How deeply containers may be nested before a :class:`MalformedStreamError` is raised.
		"""
		
		super().__init__()
		
		self._close_stream = close
		self._stream = stream
		self._source = ByteSource(stream)
		
		self.strict_markers = strict_markers
		self.max_depth = max_depth
	
	@property
	def bytes_read(self) -> int:
		"""Total number of bytes consumed from the stream so far, including bytes of any failed read."""
		
		return self._source.bytes_read
	
	def close(self) -> None:
		"""Close this :class:`AMF0Reader`.
		
		If ``close=True`` was passed when this :class:`AMF0Reader` was created, the underlying raw stream's ``close`` method is called as well.
		"""
		
		if self._close_stream:
			self._stream.close()
	
	def __enter__(self) -> "AMF0Reader":
		return self
	
	def __exit__(
		self,
		exc_type: typing.Optional[typing.Type[BaseException]],
		exc_val: typing.Optional[BaseException],
		exc_tb: typing.Optional[types.TracebackType],
	) -> typing.Optional[bool]:
		self.close()
		return None
	
	def __repr__(self) -> str:
		return f"<{type(self).__module__}.{type(self).__qualname__} at {id(self):#x}: {self.bytes_read} bytes read>"
	
	def __iter__(self) -> typing.Iterator[Value]:
		return self
	
	def __next__(self) -> Value:
		"""Read the next top-level value.
		
		Iteration stops when the stream ends right before a marker byte.
		If the stream ends in the middle of a value,
		the :class:`ShortReadError` is raised as usual.
		"""
		
		try:
			marker = self._source.read_uint8()
		except ShortReadError as e:
			if e.received == 0 and e.__cause__ is None:
				raise StopIteration
			raise
		return self.read_value_with_marker(marker)
	
	@property
	def source(self) -> ByteSource:
		"""The :class:`ByteSource` that this reader reads from.
		
		Other readers layered on top of the same stream (such as the packet reader)
		read their own fields through this, so that :attr:`bytes_read` stays accurate.
		"""
		
		return self._source
	
	def read_value(self) -> Value:
		"""Read a marker byte and the value that it introduces."""
		
		return self.read_value_with_marker(self._source.read_uint8())
	
	def read_value_with_marker(self, marker: int) -> Value:
		"""Read the payload of a value whose marker byte has already been read."""
		
		try:
			return self._read_value(_DecodeSession(), marker)
		except RecursionError as e:
			# max_depth was set higher than the interpreter stack allows.
			raise MalformedStreamError(f"Values are nested too deeply to decode (max_depth is {self.max_depth})") from e
	
	def _read_value(self, session: _DecodeSession, marker: int, name: typing.Optional[str] = None) -> Value:
		if marker == Marker.NUMBER:
			return Value(Marker.NUMBER, self._source.read_double(), name=name)
		elif marker == Marker.BOOLEAN:
			return Value(Marker.BOOLEAN, self._source.read_uint8() != 0, name=name)
		elif marker == Marker.STRING:
			return Value(Marker.STRING, self._source.read_short_string(), name=name)
		elif marker in (Marker.LONG_STRING, Marker.XML_DOCUMENT):
			return Value(Marker(marker), self._source.read_long_string(), name=name)
		elif marker in (Marker.NULL, Marker.UNDEFINED):
			return Value(Marker(marker), None, name=name)
		elif marker == Marker.OBJECT:
			value = Value(Marker.OBJECT, self._read_properties(session), name=name)
			session.references.register(value)
			return value
		elif marker == Marker.ECMA_ARRAY:
			# The associative count is only a hint.
			# The object end marker is what actually ends the array.
			self._source.read_uint32()
			value = Value(Marker.ECMA_ARRAY, self._read_properties(session), name=name)
			session.references.register(value)
			return value
		elif marker == Marker.TYPED_OBJECT:
			class_name = self._source.read_short_string()
			properties = self._read_properties(session)
			value = Value(Marker.TYPED_OBJECT, properties, name=class_name if name is None else name, class_name=class_name)
			session.references.register(value)
			return value
		elif marker == Marker.STRICT_ARRAY:
			return Value(Marker.STRICT_ARRAY, self._read_strict_array_elements(session), name=name)
		elif marker == Marker.DATE:
			# The time zone field is reserved and must be present, but its value is meaningless.
			self._source.read_exact(2)
			return Value(Marker.DATE, self._source.read_double(), name=name)
		elif marker == Marker.REFERENCE:
			target = session.references.resolve(self._source.read_uint16())
			return Value(
				target.marker,
				target.payload,
				name=target.class_name if name is None else name,
				class_name=target.class_name,
			)
		elif marker in _UNSUPPORTED_MARKERS:
			raise UnsupportedTypeError(Marker(marker))
		elif marker == Marker.AVMPLUS_OBJECT:
			raise UnsupportedVersionError("The data switches to AMF3 encoding, which is not supported")
		elif self.strict_markers:
			raise MalformedStreamError(f"Invalid AMF0 marker: {marker:#04x}")
		else:
			logger.warning("Unknown marker %#04x decoded as a value without payload", marker)
			return Value(marker, None, name=name)
	
	def _enter_container(self, session: _DecodeSession) -> None:
		session.depth += 1
		if session.depth > self.max_depth:
			raise MalformedStreamError(f"Values are nested more than {self.max_depth} levels deep")
	
	def _read_properties(self, session: _DecodeSession) -> typing.List[Value]:
		"""Read a property list up to and including the object end marker.
		
		Property names may repeat.
		All properties are kept, in stream order.
		"""
		
		self._enter_container(session)
		properties = []
		while True:
			name = self._source.read_short_string()
			if not name:
				end = self._source.read_uint8()
				if end != _OBJECT_END:
					raise MalformedStreamError(f"Empty property name must be followed by the object end marker ({_OBJECT_END:#04x}), not {end:#04x}")
				break
			
			properties.append(self._read_value(session, self._source.read_uint8(), name))
		
		session.depth -= 1
		return properties
	
	def _read_strict_array_elements(self, session: _DecodeSession) -> typing.List[Value]:
		"""Read the elements of a strict array.
		
		All elements share the single marker stored after the element count,
		so the elements themselves carry no marker byte.
		"""
		
		self._enter_container(session)
		count = self._source.read_uint32()
		element_marker = self._source.read_uint8()
		elements = []
		for _ in range(count):
			elements.append(self._read_value(session, element_marker))
		session.depth -= 1
		return elements
