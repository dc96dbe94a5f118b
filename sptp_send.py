#!/usr/bin/env python3
"""
Send a file (or stdin) as one SPTP payload over TCP or UDP, or write the
framed messages to a file.
"""
from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import sys
from typing import Tuple

import yaml

from payload_writer import new_writer_with_options
from sptp_protocol import SPTPError
from sptp_sinks import open_sink
from writer_options import WriterOptions, load_options, normalize_options, options_from_env


def host_port(value: str) -> Tuple[str, int]:
    host, sep, port = value.rpartition(":")
    if not sep or not host:
        raise argparse.ArgumentTypeError(f"expected host:port, got {value!r}")
    try:
        port_num = int(port)
    except ValueError:
        raise argparse.ArgumentTypeError(f"bad port in {value!r}") from None
    if not 0 < port_num < 65536:
        raise argparse.ArgumentTypeError(f"port out of range in {value!r}")
    return host, port_num


def build_options(args) -> WriterOptions:
    opts = load_options(args.options) if args.options else WriterOptions()
    opts = options_from_env(base=opts)
    if args.gzip_level is not None:
        opts = dataclasses.replace(opts, gzip_level=args.gzip_level)
    if args.chunk_threshold is not None:
        opts = dataclasses.replace(opts, chunk_threshold=args.chunk_threshold)
    return opts


def read_input(path: str) -> bytes:
    if path == "-":
        return sys.stdin.buffer.read()
    with open(path, "rb") as f:
        return f.read()


def send(payload: bytes, opts: WriterOptions, args) -> int:
    if args.output:
        with open(args.output, "ab") as f:
            writer = new_writer_with_options(f, opts, strict=args.strict)
            return writer.write(payload)

    host, port = args.connect
    sink, sock = open_sink(host, port, udp=args.udp)
    try:
        writer = new_writer_with_options(sink, opts, strict=args.strict)
        return writer.write(payload)
    finally:
        sock.close()


def main(argv=None) -> int:
    ap = argparse.ArgumentParser()
    target = ap.add_mutually_exclusive_group(required=True)
    target.add_argument("--connect", type=host_port, help="receiver host:port")
    target.add_argument("--output", help="append framed messages to this file")
    ap.add_argument("--udp", action="store_true", help="send each message as a UDP datagram")
    ap.add_argument("--input", default="-", help="payload file, '-' for stdin")
    ap.add_argument("--options", help="YAML options file")
    ap.add_argument("--gzip-level", type=int, default=None)
    ap.add_argument("--chunk-threshold", type=int, default=None)
    ap.add_argument("--strict", action="store_true", help="reject invalid options instead of clamping")
    args = ap.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")

    try:
        opts = normalize_options(build_options(args), strict=args.strict)
        payload = read_input(args.input)
        n = send(payload, opts, args)
    except (SPTPError, OSError, yaml.YAMLError) as e:
        logging.error(json.dumps({"event": "send_failed", "error": type(e).__name__, "detail": str(e)}))
        return 1

    logging.info(json.dumps({"event": "sent", "bytes": n, "target": args.output or "%s:%d" % args.connect,
                             "gzip_level": opts.gzip_level, "chunk_threshold": opts.chunk_threshold}))
    return 0


if __name__ == "__main__":
    sys.exit(main())
