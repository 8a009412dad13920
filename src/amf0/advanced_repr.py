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


import contextvars
import typing


__all__ = [
	"prefix_lines",
	"AsMultilineStringBase",
	"as_multiline_string",
]


def prefix_lines(
	lines: typing.Iterable[str],
	*,
	first: str = "",
) -> typing.Iterable[str]:
	"""Add ``first`` in front of the first line, leaving the following lines unchanged."""
	
	it = iter(lines)
	
	for line in it:
		yield first + line
		break
	else:
		if first:
			yield first
	
	yield from it


# Identities of all bodies rendered so far within the outermost as_multiline_string call.
# Decoded references share their payload with the referenced value,
# so a payload that shows up a second time is a backreference.
_rendered_bodies: "contextvars.ContextVar[typing.Set[int]]" = contextvars.ContextVar("_rendered_bodies")


class AsMultilineStringBase(object):
	"""Mixin for objects that render themselves as an indented tree of lines.
	
	Subclasses implement :meth:`_as_multiline_string_header_` (a one-line summary)
	and :meth:`_as_multiline_string_body_` (the nested lines, indented by one tab when rendered).
	"""
	
	def _as_multiline_string_header_(self) -> str:
		raise NotImplementedError()
	
	def _as_multiline_string_body_(self) -> typing.Iterable[str]:
		raise NotImplementedError()
	
	def _as_multiline_string_identity_(self) -> typing.Optional[int]:
		"""Identity used to detect repeated bodies, or ``None`` to always render the body.
		
		By default this is the identity of a list payload,
		since that is what decoded references share.
		"""
		
		payload = getattr(self, "payload", None)
		if isinstance(payload, list) and payload:
			return id(payload)
		else:
			return None
	
	def _as_multiline_string_(self) -> typing.Iterable[str]:
		header = self._as_multiline_string_header_()
		identity = self._as_multiline_string_identity_()
		rendered = _rendered_bodies.get()
		
		if identity is not None and identity in rendered:
			yield header + " (backreference)"
			return
		elif identity is not None:
			rendered.add(identity)
		
		body = list(self._as_multiline_string_body_())
		if body:
			yield header + ":"
			for line in body:
				yield "\t" + line
		else:
			yield header
	
	def __str__(self) -> str:
		return "\n".join(as_multiline_string(self))


def as_multiline_string(obj: object, *, prefix: str = "") -> typing.Iterable[str]:
	"""Render an object as a list of lines (without line terminators).
	
	Objects that don't derive from :class:`AsMultilineStringBase` are rendered using :class:`str`.
	Within one outermost call,
	every shared body is rendered in full only the first time it's encountered.
	"""
	
	try:
		_rendered_bodies.get()
	except LookupError:
		token = _rendered_bodies.set(set())
	else:
		token = None
	
	try:
		if isinstance(obj, AsMultilineStringBase):
			lines = list(obj._as_multiline_string_())
		else:
			lines = str(obj).splitlines()
	finally:
		if token is not None:
			_rendered_bodies.reset(token)
	
	return list(prefix_lines(lines, first=prefix))
