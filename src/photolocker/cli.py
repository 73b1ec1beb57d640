"""CLI entry point for PhotoLocker."""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from photolocker import metrics
from photolocker.cipher import AEADCipher, EncryptionEnvelope, self_test
from photolocker.client import ObjectStoreClient
from photolocker.config import PhotoLockerConfig, load_config
from photolocker.errors import PhotoLockerError
from photolocker.kdf import RECOMMENDED_PASSPHRASE_LENGTH, assess_passphrase, generate_passphrase
from photolocker.logging_config import configure_logging
from photolocker.signing import RequestSigner

logger = logging.getLogger("photolocker")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Args:
        argv: Argument list to parse. Defaults to sys.argv[1:].

    Returns:
        Parsed argument namespace.
    """
    parser = argparse.ArgumentParser(
        prog="photolocker",
        description="PhotoLocker - encrypted photo storage on S3-compatible stores",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("photolocker.yaml"),
        help="Path to YAML configuration file (default: photolocker.yaml)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (overrides config, default: INFO)",
    )
    parser.add_argument(
        "--log-format",
        type=str,
        default=None,
        choices=["text", "json"],
        help="Log format: 'text' (human-readable) or 'json' (structured)",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    presign = sub.add_parser("presign", help="Print a presigned URL for an object")
    presign.add_argument("key", help="Object key, without the path prefix")
    presign.add_argument("--method", default="GET", help="HTTP method (default: GET)")
    presign.add_argument(
        "--expires", type=int, default=None, help="Lifetime in seconds (1-604800)"
    )

    sign = sub.add_parser("sign-headers", help="Print signed headers for a request")
    sign.add_argument("path", help="Raw request path, e.g. /my-bucket")
    sign.add_argument("--method", default="GET", help="HTTP method (default: GET)")

    sub.add_parser("sse-headers", help="Print the customer-key (SSE-C) headers")

    encrypt = sub.add_parser("encrypt", help="Encrypt a file into an envelope JSON file")
    encrypt.add_argument("input", type=Path)
    encrypt.add_argument("output", type=Path)

    decrypt = sub.add_parser("decrypt", help="Decrypt an envelope JSON file")
    decrypt.add_argument("input", type=Path)
    decrypt.add_argument("output", type=Path)

    ls = sub.add_parser("list", help="List stored objects")
    ls.add_argument("prefix", nargs="?", default="", help="Prefix below path_prefix")
    ls.add_argument("--max-keys", type=int, default=1000)

    passphrase = sub.add_parser("passphrase", help="Generate a random passphrase")
    passphrase.add_argument(
        "--length",
        type=int,
        default=RECOMMENDED_PASSPHRASE_LENGTH,
        help=f"Passphrase length (default: {RECOMMENDED_PASSPHRASE_LENGTH})",
    )

    sub.add_parser("selftest", help="Run the encryption self-test")
    return parser.parse_args(argv)


def _print_json(data: object) -> None:
    print(json.dumps(data, indent=2))


def _cmd_presign(config: PhotoLockerConfig, args: argparse.Namespace) -> None:
    with RequestSigner(config.store) as signer:
        key = config.store.path_prefix + args.key
        print(signer.presign_url(args.method, key, args.expires))


def _cmd_sign_headers(config: PhotoLockerConfig, args: argparse.Namespace) -> None:
    with RequestSigner(config.store) as signer:
        signed = signer.sign_headers(args.method, args.path)
        _print_json({"url": signed.url, "headers": signed.headers})


def _cmd_sse_headers(config: PhotoLockerConfig, args: argparse.Namespace) -> None:
    with RequestSigner(config.store) as signer:
        _print_json(signer.customer_key_headers())


def _cmd_encrypt(config: PhotoLockerConfig, args: argparse.Namespace) -> None:
    envelope = AEADCipher(config.store).seal(args.input.read_bytes())
    args.output.write_text(envelope.to_json())
    logger.info("Encrypted %s -> %s", args.input, args.output)


def _cmd_decrypt(config: PhotoLockerConfig, args: argparse.Namespace) -> None:
    envelope = EncryptionEnvelope.from_json(args.input.read_text())
    args.output.write_bytes(AEADCipher(config.store).open(envelope))
    logger.info("Decrypted %s -> %s", args.input, args.output)


async def _list(config: PhotoLockerConfig, prefix: str, max_keys: int) -> None:
    async with ObjectStoreClient(config.store) as client:
        for obj in await client.list_objects(prefix, max_keys):
            modified = obj.last_modified.isoformat() if obj.last_modified else "-"
            print(f"{modified}\t{obj.size}\t{obj.key}")


def _cmd_list(config: PhotoLockerConfig, args: argparse.Namespace) -> None:
    asyncio.run(_list(config, args.prefix, args.max_keys))


_CONFIG_COMMANDS = {
    "presign": _cmd_presign,
    "sign-headers": _cmd_sign_headers,
    "sse-headers": _cmd_sse_headers,
    "encrypt": _cmd_encrypt,
    "decrypt": _cmd_decrypt,
    "list": _cmd_list,
}


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the PhotoLocker CLI.

    ``passphrase`` and ``selftest`` run without a configuration file; every
    other command loads it first and masks its secrets in all log output.
    Prometheus counters are enabled for every command.

    Args:
        argv: Argument list to parse. Defaults to sys.argv[1:].
    """
    args = parse_args(argv)

    # Use a basic stderr logger until the config (and its secrets) is known
    logging.basicConfig(level=logging.INFO, stream=sys.stderr)
    metrics.init_metrics()

    if args.command == "passphrase":
        configure_logging(level=args.log_level or "INFO", fmt=args.log_format or "text")
        try:
            value = generate_passphrase(args.length)
        except ValueError as exc:
            logger.error("Cannot generate passphrase: %s", exc)
            sys.exit(1)
        print(value)
        logger.info("Generated a %s passphrase", assess_passphrase(value).strength)
        return

    if args.command == "selftest":
        configure_logging(level=args.log_level or "INFO", fmt=args.log_format or "text")
        if not self_test():
            sys.exit(1)
        print("ok")
        return

    try:
        config = load_config(args.config)
    except FileNotFoundError:
        logger.error("Config file not found: %s", args.config)
        sys.exit(1)
    except Exception as exc:
        logger.error("Failed to load config: %s", exc)
        sys.exit(1)

    configure_logging(
        level=args.log_level or config.logging.level,
        fmt=args.log_format or config.logging.format,
        secrets=(config.store.secret_access_key, config.store.encryption_passphrase),
    )

    try:
        _CONFIG_COMMANDS[args.command](config, args)
    except PhotoLockerError as exc:
        logger.error("%s: %s", exc.code, exc.message)
        sys.exit(1)
    except OSError as exc:
        logger.error("I/O error: %s", exc)
        sys.exit(1)


if __name__ == "__main__":
    main()
