"""Command-line front end for Lockbox.

Usage:
    lockbox keygen data.key --backend sodium
    lockbox ssh-keygen ./alice --password
    lockbox encrypt-file report.csv report.csv.enc --key data.key
    lockbox decrypt-file report.csv.enc report.csv --key data.key
    lockbox encrypt-file msg.txt msg.enc --pub ./bob --priv ./alice
"""

from __future__ import annotations

import argparse
import getpass
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from lockbox.core.convenience import decrypt_file, encrypt_file
from lockbox.core.exceptions import LockboxError
from lockbox.frontend.cli.logging_config import configure_logging
from lockbox.security.keyfiles import ssh_keygen
from lockbox.security.keys import CipherKey, key_openssl, key_sodium, keygen, keypair_openssl

logger = logging.getLogger(__name__)

_SYMMETRIC = {"sodium": key_sodium, "openssl": key_openssl}


def _write_private(path: Path, data: bytes) -> None:
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
    with os.fdopen(fd, "wb") as f:
        f.write(data)


def _key_from_args(args: argparse.Namespace) -> CipherKey:
    if args.key is not None:
        raw = Path(args.key).read_bytes()
        return _SYMMETRIC[args.backend](raw)
    password = getpass.getpass("Private key password: ") if args.ask_password else None
    return keypair_openssl(args.pub, args.priv, password=password)


def cmd_keygen(args: argparse.Namespace) -> int:
    out = Path(args.out)
    if out.exists():
        raise LockboxError(f"refusing to overwrite existing file: {out}")
    _write_private(out, keygen(args.backend))
    print(f"Wrote {args.backend} key to {out}")
    return 0


def cmd_ssh_keygen(args: argparse.Namespace) -> int:
    password = None
    if args.password:
        password = getpass.getpass("Key password: ")
        if password != getpass.getpass("Confirm password: "):
            raise LockboxError("passwords do not match")
    directory = ssh_keygen(args.directory, password=password or None)
    print(f"Wrote id_rsa and id_rsa.pub to {directory}")
    return 0


def cmd_encrypt_file(args: argparse.Namespace) -> int:
    target = encrypt_file(args.src, _key_from_args(args), dest=args.dest)
    logger.info("Encrypted %s to %s", args.src, target)
    return 0


def cmd_decrypt_file(args: argparse.Namespace) -> int:
    target = decrypt_file(args.src, _key_from_args(args), dest=args.dest)
    logger.info("Decrypted %s to %s", args.src, target)
    return 0


def _add_key_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("src", help="Input file")
    parser.add_argument("dest", nargs="?", default=None, help="Output file (default: overwrite input)")
    group = parser.add_mutually_exclusive_group()
    group.add_argument("--key", default=None, help="File holding a raw symmetric key")
    group.add_argument(
        "--pub",
        default=None,
        help="Other party's RSA public key file or directory (default: $USER_PUBKEY or ~/.ssh)",
    )
    parser.add_argument(
        "--priv",
        default=None,
        help="Our RSA private key file or directory (default: $USER_KEY or ~/.ssh)",
    )
    parser.add_argument(
        "--backend",
        choices=sorted(_SYMMETRIC),
        default="sodium",
        help="Backend of the --key file (default: sodium)",
    )
    parser.add_argument(
        "--ask-password",
        action="store_true",
        help="Prompt for the RSA private key password",
    )


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="lockbox", description="Encrypt and decrypt files with Lockbox keys.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("keygen", help="Generate a raw symmetric key file")
    p.add_argument("out", help="Path of the key file to create")
    p.add_argument("--backend", choices=sorted(_SYMMETRIC), default="sodium")
    p.set_defaults(func=cmd_keygen)

    p = sub.add_parser("ssh-keygen", help="Generate an RSA key pair (id_rsa, id_rsa.pub)")
    p.add_argument("directory", help="Directory to write the key pair into")
    p.add_argument("--password", action="store_true", help="Prompt for a password to protect id_rsa")
    p.set_defaults(func=cmd_ssh_keygen)

    p = sub.add_parser("encrypt-file", help="Encrypt a file")
    _add_key_arguments(p)
    p.set_defaults(func=cmd_encrypt_file)

    p = sub.add_parser("decrypt-file", help="Decrypt a file")
    _add_key_arguments(p)
    p.set_defaults(func=cmd_decrypt_file)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = _build_arg_parser()
    args = parser.parse_args(argv)
    configure_logging(logging.DEBUG if args.verbose else logging.WARNING)

    try:
        return args.func(args)
    except (LockboxError, OSError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":  # pragma: no cover - CLI entry
    sys.exit(main())
