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


import io
import os
import struct
import tempfile
import unittest

import amf0
import amf0.parsing
import amf0.stream
from amf0.stream import Marker, Value

from builders import obj, reference, string, u32


class ParseTests(unittest.TestCase):
	def test_number(self) -> None:
		result = amf0.parsing.parse_from_data(b"\x00" + struct.pack(">d", 3.14))
		self.assertTrue(result.ok)
		self.assertEqual(result.value, Value(Marker.NUMBER, 3.14))
		self.assertEqual(result.bytes_read, 9)
		self.assertIsNone(result.error)
	
	def test_string(self) -> None:
		result = amf0.parsing.parse_from_data(b"\x02\x00\x05hello")
		self.assertEqual(result.value, Value(Marker.STRING, "hello"))
		self.assertEqual(result.bytes_read, 8)
	
	def test_object(self) -> None:
		data = b"\x03\x00\x01a\x00" + struct.pack(">d", 1.0) + b"\x00\x00\x09"
		result = amf0.parsing.parse_from_data(data)
		self.assertEqual(result.value, Value(Marker.OBJECT, [Value(Marker.NUMBER, 1.0, name="a")]))
		self.assertEqual(result.bytes_read, len(data))
	
	def test_invalid_reference(self) -> None:
		value, bytes_read, error = amf0.parsing.parse_from_data(b"\x07\x00\x00")
		self.assertIsNone(value)
		self.assertEqual(bytes_read, 3)
		self.assertIsInstance(error, amf0.stream.InvalidReferenceError)
	
	def test_empty_input(self) -> None:
		result = amf0.parsing.parse_from_data(b"")
		self.assertFalse(result.ok)
		self.assertIsInstance(result.error, amf0.stream.ShortReadError)
		self.assertEqual(result.bytes_read, 0)
	
	def test_truncated_input_reports_progress(self) -> None:
		result = amf0.parsing.parse_from_data(b"\x02\x00\x05he")
		self.assertIsInstance(result.error, amf0.stream.ShortReadError)
		self.assertEqual(result.bytes_read, 5)
	
	def test_only_one_value_is_read(self) -> None:
		raw = io.BytesIO(string("a") + string("b"))
		result = amf0.parsing.parse(raw)
		self.assertEqual(result.value, Value(Marker.STRING, "a"))
		self.assertEqual(result.bytes_read, 4)
		self.assertFalse(raw.closed)
		self.assertEqual(raw.read(), string("b"))
	
	def test_each_call_has_own_reference_table(self) -> None:
		raw = io.BytesIO(obj() + reference(0))
		self.assertTrue(amf0.parsing.parse(raw).ok)
		result = amf0.parsing.parse(raw)
		self.assertIsInstance(result.error, amf0.stream.InvalidReferenceError)
		self.assertEqual(result.bytes_read, 3)
	
	def test_options_are_passed_on(self) -> None:
		self.assertTrue(amf0.parsing.parse_from_data(b"\x30").ok)
		result = amf0.parsing.parse_from_data(b"\x30", strict_markers=True)
		self.assertIsInstance(result.error, amf0.stream.MalformedStreamError)
		self.assertEqual(result.bytes_read, 1)
	
	def test_deep_nesting_with_huge_max_depth(self) -> None:
		data = b"\x0a" + (u32(1) + b"\x0a") * 3000 + u32(0) + b"\x00"
		result = amf0.parsing.parse_from_data(data, max_depth=100000)
		self.assertIsNone(result.value)
		self.assertIsInstance(result.error, amf0.stream.MalformedStreamError)
		self.assertGreater(result.bytes_read, 0)


class LoadTests(unittest.TestCase):
	def test_load_from_data(self) -> None:
		self.assertEqual(amf0.load_from_data(string("x")), Value(Marker.STRING, "x"))
	
	def test_load_raises(self) -> None:
		with self.assertRaises(amf0.stream.UnsupportedTypeError):
			amf0.load_from_data(b"\x0d")
		with self.assertRaises(amf0.stream.InvalidReferenceError):
			amf0.load_from_stream(io.BytesIO(reference(3)))


class FileTests(unittest.TestCase):
	def setUp(self) -> None:
		fd, self.path = tempfile.mkstemp(suffix=".amf")
		with os.fdopen(fd, "wb") as f:
			f.write(obj(("name", string("value"))))
	
	def tearDown(self) -> None:
		os.remove(self.path)
	
	def test_parse_from_file(self) -> None:
		result = amf0.parsing.parse_from_file(self.path)
		self.assertTrue(result.ok)
		self.assertEqual(result.value.get("name").payload, "value")
	
	def test_load_from_file(self) -> None:
		value = amf0.parsing.load_from_file(self.path)
		self.assertEqual(value, Value(Marker.OBJECT, [Value(Marker.STRING, "value", name="name")]))


if __name__ == "__main__":
	unittest.main()
