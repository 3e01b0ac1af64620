#!/usr/bin/env python3
"""
Kontecst File Proxy CLI

Architecture:
    kontecst-proxy serve                              # Run the HTTP proxy
    kontecst-proxy genkey                             # Print a new ENCRYPTION_KEY
    kontecst-proxy put <pkg> <version> <file> [--public] [--name N]
    kontecst-proxy get <pkg> <version> <filename> [-o OUT]
    kontecst-proxy ls <pkg> <version>
    kontecst-proxy rm <pkg> <version> <filename>

Storage commands use STORAGE_PATH and ENCRYPTION_KEY from the environment
and operate on the envelope files directly, without access checks.
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from shared.config import get_settings
from shared.errors import FileProxyError
from shared.security.startup_checks import load_encryption_config
from shared.storage.encryption import FileEncryption, generate_key_hex
from shared.storage.file_store import EncryptedFileStore


def _open_store() -> EncryptedFileStore:
    settings = get_settings()
    encryption = FileEncryption(load_encryption_config(settings))
    return EncryptedFileStore(settings.storage_path, encryption)


def cmd_serve(args) -> int:
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "src.main:create_app",
        factory=True,
        host=args.host or settings.host,
        port=args.port or settings.port,
        log_config=None,
    )
    return 0


def cmd_genkey(args) -> int:
    print(generate_key_hex())
    return 0


def cmd_put(args) -> int:
    source = Path(args.path)
    metadata = _open_store().store(
        args.package_id,
        args.version,
        args.name or source.name,
        source.read_bytes(),
        is_public=args.public,
    )
    print(json.dumps(metadata.to_json_dict(), indent=2))
    return 0


def cmd_get(args) -> int:
    stored = _open_store().retrieve(args.package_id, args.version, args.filename)
    if stored is None:
        print(f"Not found: {args.package_id}/{args.version}/{args.filename}", file=sys.stderr)
        return 1

    if args.output:
        Path(args.output).write_bytes(stored.content)
    else:
        sys.stdout.buffer.write(stored.content)
        sys.stdout.buffer.flush()
    return 0


def cmd_ls(args) -> int:
    files = _open_store().list_files(args.package_id, args.version)
    print(json.dumps({"files": [m.to_json_dict() for m in files]}, indent=2))
    return 0


def cmd_rm(args) -> int:
    removed = _open_store().delete(args.package_id, args.version, args.filename)
    print("deleted" if removed else "not found")
    return 0 if removed else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kontecst-proxy",
        description="Kontecst encrypted file proxy",
        epilog="Run 'kontecst-proxy <command> --help' for command-specific options",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the HTTP proxy")
    serve.add_argument("--host", help="Bind address (default: HOST)")
    serve.add_argument("--port", type=int, help="Port (default: PORT)")
    serve.set_defaults(func=cmd_serve)

    genkey = subparsers.add_parser("genkey", help="Print a new random 64-hex-character key")
    genkey.set_defaults(func=cmd_genkey)

    put = subparsers.add_parser("put", help="Encrypt and store a local file")
    put.add_argument("package_id")
    put.add_argument("version")
    put.add_argument("path", help="Local file to store")
    put.add_argument("--name", help="Stored filename (default: basename of path)")
    put.add_argument("--public", action="store_true", help="Mark the file as public")
    put.set_defaults(func=cmd_put)

    get = subparsers.add_parser("get", help="Decrypt a stored file")
    get.add_argument("package_id")
    get.add_argument("version")
    get.add_argument("filename")
    get.add_argument("--output", "-o", help="Write to this path instead of stdout")
    get.set_defaults(func=cmd_get)

    ls = subparsers.add_parser("ls", help="List metadata of a package version")
    ls.add_argument("package_id")
    ls.add_argument("version")
    ls.set_defaults(func=cmd_ls)

    rm = subparsers.add_parser("rm", help="Delete a stored file")
    rm.add_argument("package_id")
    rm.add_argument("version")
    rm.add_argument("filename")
    rm.set_defaults(func=cmd_rm)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point"""
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    try:
        return args.func(args)
    except FileProxyError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
