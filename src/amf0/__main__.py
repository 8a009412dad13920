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


import argparse
import contextlib
import logging
import sys
import typing


from . import __version__
from . import advanced_repr
from . import netconnection
from . import stream


def make_subcommand_parser(subs: typing.Any, name: str, *, help: str, description: str, **kwargs: typing.Any) -> argparse.ArgumentParser:
	"""Add a subcommand parser with some slightly modified defaults to a subcommand set.
	
	This function is used to ensure that all subcommands use the same base configuration for their ArgumentParser.
	"""
	
	ap = subs.add_parser(
		name,
		formatter_class=argparse.RawDescriptionHelpFormatter,
		help=help,
		description=description,
		allow_abbrev=False,
		add_help=False,
		**kwargs,
	)
	
	ap.add_argument("--help", action="help", help="Display this help message and exit.")
	ap.add_argument("--strict", action="store_true", help="Treat unknown type markers as errors instead of decoding them as empty values.")
	ap.add_argument("file", help="The file to read, or - for stdin.")
	
	return ap


def open_input_file(file: str) -> typing.ContextManager[typing.BinaryIO]:
	if file == "-":
		# Leave stdin open for whoever else might use it.
		return contextlib.nullcontext(sys.stdin.buffer)
	else:
		return open(file, "rb")


def dump_values(reader: stream.AMF0Reader) -> typing.Iterable[str]:
	for i, value in enumerate(reader):
		yield from advanced_repr.as_multiline_string(value, prefix=f"#{i}: ")
	yield ""
	yield f"{reader.bytes_read} bytes read"


def do_read(ns: argparse.Namespace) -> typing.NoReturn:
	with open_input_file(ns.file) as f, stream.AMF0Reader(f, strict_markers=ns.strict) as reader:
		try:
			for line in dump_values(reader):
				print(line)
		except stream.AMF0DecodeError as e:
			print(f"Error after {reader.bytes_read} bytes: {e}", file=sys.stderr)
			sys.exit(1)
	
	sys.exit(0)


def do_packet(ns: argparse.Namespace) -> typing.NoReturn:
	with open_input_file(ns.file) as f:
		try:
			packet = netconnection.read_packet(f, strict_markers=ns.strict)
		except stream.AMF0DecodeError as e:
			print(f"Error: {e}", file=sys.stderr)
			sys.exit(1)
	
	for line in advanced_repr.as_multiline_string(packet):
		print(line)
	
	sys.exit(0)


def main() -> typing.NoReturn:
	"""Main function of the CLI.
	
	This function is a valid setuptools entry point.
	Arguments are passed in sys.argv,
	and every execution path ends with a sys.exit call.
	"""
	
	ap = argparse.ArgumentParser(
		formatter_class=argparse.RawDescriptionHelpFormatter,
		description="""
%(prog)s is a tool for dumping data in Action Message Format version 0 (AMF0),
the serialization format used by Flash remoting, RTMP commands, FLV script
data and local shared objects.
""",
		allow_abbrev=False,
		add_help=False,
	)
	
	ap.add_argument("--help", action="help", help="Display this help message and exit.")
	ap.add_argument("--version", action="version", version=__version__, help="Display version information and exit.")
	ap.add_argument("--verbose", action="store_true", help="Log debugging information to stderr.")
	
	subs = ap.add_subparsers(
		dest="subcommand",
		metavar="SUBCOMMAND",
	)
	
	make_subcommand_parser(
		subs,
		"read",
		help="Read and display a sequence of AMF0 values.",
		description="""
Read and display a sequence of AMF0 values.

Values are read one after another until the end of the input. Each value has
its own reference table. References are resolved, and the values that they
refer to are displayed in full only the first time and marked as
backreferences afterwards.
""",
	)
	
	make_subcommand_parser(
		subs,
		"packet",
		help="Read and display an AMF packet (Flash remoting message).",
		description="""
Read and display an AMF packet, as sent by NetConnection remoting calls.

The packet's headers and messages are displayed together with their decoded
AMF0 values.
""",
	)
	
	ns = ap.parse_args()
	
	if ns.verbose:
		logging.basicConfig(level=logging.DEBUG, format="%(levelname)s:%(name)s: %(message)s")
	
	if ns.subcommand is None:
		print("Missing subcommand", file=sys.stderr)
		sys.exit(2)
	elif ns.subcommand == "read":
		do_read(ns)
	elif ns.subcommand == "packet":
		do_packet(ns)
	else:
		print(f"Unknown subcommand: {ns.subcommand!r}", file=sys.stderr)
		sys.exit(2)


if __name__ == "__main__":
	sys.exit(main())
