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


"""Helpers for building AMF0 test data by hand."""


import struct


OBJECT_END = b"\x00\x00\x09"


def u16(n: int) -> bytes:
	return struct.pack(">H", n)


def u32(n: int) -> bytes:
	return struct.pack(">I", n)


def key(s: str) -> bytes:
	encoded = s.encode("utf-8")
	return u16(len(encoded)) + encoded


def number(x: float) -> bytes:
	return b"\x00" + struct.pack(">d", x)


def boolean(b: bool) -> bytes:
	return b"\x01" + (b"\x01" if b else b"\x00")


def string(s: str) -> bytes:
	return b"\x02" + key(s)


def long_string(s: str, marker: bytes = b"\x0c") -> bytes:
	encoded = s.encode("utf-8")
	return marker + u32(len(encoded)) + encoded


def properties(*props: "tuple[str, bytes]") -> bytes:
	return b"".join(key(name) + value for name, value in props) + OBJECT_END


def obj(*props: "tuple[str, bytes]") -> bytes:
	return b"\x03" + properties(*props)


def ecma_array(*props: "tuple[str, bytes]", count: int = -1) -> bytes:
	return b"\x08" + u32(len(props) if count < 0 else count) + properties(*props)


def typed_obj(class_name: str, *props: "tuple[str, bytes]") -> bytes:
	return b"\x10" + key(class_name) + properties(*props)


def reference(index: int) -> bytes:
	return b"\x07" + u16(index)


def date(millis: float, timezone: int = 0) -> bytes:
	return b"\x0b" + u16(timezone) + struct.pack(">d", millis)
