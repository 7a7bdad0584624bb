"""
badgeforge Command Line Interface.

Provides commands for issuing signed badge images, verifying and extracting
embedded credentials, and generating issuer key pairs.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from badgeforge import config
from badgeforge.credential import private_key_path
from badgeforge.descriptors import load_descriptor
from badgeforge.errors import BadgeError
from badgeforge.keys import KeyAlgorithm, generate_keypair, load_public_key
from badgeforge.pipeline import IssueRequest, extract_credential, issue_badge
from badgeforge.proof import ProofStrategy, SigningScope
from badgeforge.verifier import verify_credential


def setup_logging(verbose: bool = False) -> None:
    """Configure logging based on verbosity."""
    level = logging.DEBUG if verbose else getattr(logging, config.LOG_LEVEL.upper(), logging.WARNING)
    logging.basicConfig(
        level=level,
        format='%(levelname)s: %(message)s'
    )


def _read_message(path: Optional[str]) -> Optional[bytes]:
    return Path(path).read_bytes() if path else None


def cmd_issue(args: argparse.Namespace) -> int:
    """Embed a signed credential into a badge image."""
    if not args.image:
        print("This program requires the --image option to specify the badge image.", file=sys.stderr)
        return 1

    if not args.organization:
        print("This program requires the --organization option to specify the file with", file=sys.stderr)
        print("your organizational metadata.", file=sys.stderr)
        return 1

    if not args.recipient:
        print("This program requires the --recipient option to specify the file with", file=sys.stderr)
        print("the badge and recipient metadata.", file=sys.stderr)
        return 1

    try:
        organization = load_descriptor(args.organization)
        recipient = load_descriptor(args.recipient)

        if not args.key and private_key_path(organization) is None:
            print("This program requires the --key option (or issuer.private_key in the", file=sys.stderr)
            print("organization file) to specify the signing key.", file=sys.stderr)
            return 1

        if args.public_key:
            issuer = organization.get("issuer")
            if not isinstance(issuer, dict):
                print("The --public-key option needs an issuer mapping in the organization file.", file=sys.stderr)
                return 1
            issuer["public_key"] = args.public_key

        request = IssueRequest(
            image_path=args.image,
            organization=organization,
            recipient=recipient,
            output_path=args.badge,
            key_path=args.key,
            strategy=args.strategy,
            scope=args.scope,
            message=_read_message(args.message),
            keyword=args.keyword,
            chunk_type=args.chunk_type,
        )
        result = issue_badge(request)

        print(f"✅ Badge written to {result.output_path}")
        return 0

    except (BadgeError, ValueError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_verify(args: argparse.Namespace) -> int:
    """Verify the credential embedded in a badge."""
    try:
        document = extract_credential(args.badge, keyword=args.keyword)
        public_key = load_public_key(args.public_key) if args.public_key else None
        verify_credential(document, public_key=public_key, message=_read_message(args.message))

        if args.json:
            print(json.dumps({"valid": True, "issuer": document["issuer"].get("id"),
                              "proof": document["proof"]}, indent=2))
        else:
            print("✅ VALID")
            print(f"   Issuer: {document['issuer'].get('id')}")
            print(f"   Name:   {document.get('name')}")
            print(f"   Proof:  {document['proof'].get('type')}")
        return 0

    except BadgeError as e:
        if args.json:
            print(json.dumps({"valid": False, "error": str(e)}))
        else:
            print(f"❌ INVALID: {e}")
        return 1
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_extract(args: argparse.Namespace) -> int:
    """Print the credential embedded in a badge."""
    try:
        document = extract_credential(args.badge, keyword=args.keyword)
        print(json.dumps(document, indent=2, ensure_ascii=False))
        return 0
    except (BadgeError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_init(args: argparse.Namespace) -> int:
    """Generate an issuer key pair."""
    try:
        private_path, public_path = generate_keypair(args.out, KeyAlgorithm(args.algorithm))
    except OSError as e:
        print(f"Error generating keys: {e}", file=sys.stderr)
        return 1

    print("🔑 NEW ISSUER KEY PAIR GENERATED\n")
    print(f"Private key (keep secret): {private_path}")
    print(f"Public key:                {public_path}")
    return 0


def cmd_config(args: argparse.Namespace) -> int:
    """Show the effective configuration."""
    config.print_config()
    return 0


def main(argv: Optional[list] = None) -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        prog='badgeforge',
        description='Issue verifiable Open Badge credentials embedded in PNG images'
    )
    parser.add_argument('-v', '--verbose', action='store_true', help='Enable verbose output')

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    # issue command
    p_issue = subparsers.add_parser('issue', help='Embed a signed credential into a badge image')
    p_issue.add_argument('-i', '--image', help='The badge image (PNG)')
    p_issue.add_argument('-o', '--organization', help='The file containing the organization metadata (YAML/JSON)')
    p_issue.add_argument('-r', '--recipient', help='The file containing the badge and recipient metadata')
    p_issue.add_argument('-b', '--badge', help='The name for the output badge (default: final-<image>)')
    p_issue.add_argument('-k', '--key', help='Private key PEM (default: issuer.private_key)')
    p_issue.add_argument('--public-key', help='Public key PEM to inline as issuer.public_key')
    p_issue.add_argument('--strategy', default=config.DEFAULT_STRATEGY,
                         choices=[s.value for s in ProofStrategy], help='Proof strategy')
    p_issue.add_argument('--scope', default=config.DEFAULT_SCOPE,
                         choices=[s.value for s in SigningScope], help='Sign the document or a detached message')
    p_issue.add_argument('--message', help='Detached message file (for --scope message)')
    p_issue.add_argument('--keyword', default=config.CHUNK_KEYWORD, help='Text chunk keyword')
    p_issue.add_argument('--chunk-type', default=config.CHUNK_TYPE, choices=['iTXt', 'tEXt'],
                         help='Text chunk type')

    # verify command
    p_verify = subparsers.add_parser('verify', help='Verify the credential in a badge')
    p_verify.add_argument('badge', help='The badge image')
    p_verify.add_argument('--public-key', help='Public key PEM (default: issuer.public_key)')
    p_verify.add_argument('--message', help='Detached message file')
    p_verify.add_argument('--keyword', default=config.CHUNK_KEYWORD, help='Text chunk keyword')
    p_verify.add_argument('--json', action='store_true', help='Output as JSON')

    # extract command
    p_extract = subparsers.add_parser('extract', help='Print the credential in a badge')
    p_extract.add_argument('badge', help='The badge image')
    p_extract.add_argument('--keyword', default=config.CHUNK_KEYWORD, help='Text chunk keyword')

    # init command
    p_init = subparsers.add_parser('init', help='Generate an issuer key pair')
    p_init.add_argument('--algorithm', default=KeyAlgorithm.ED25519.value,
                        choices=[a.value for a in KeyAlgorithm], help='Key algorithm')
    p_init.add_argument('--out', default='.', help='Directory for private.pem and public.pem')

    # config command
    subparsers.add_parser('config', help='Show the effective configuration')

    args = parser.parse_args(argv)

    setup_logging(args.verbose if hasattr(args, 'verbose') else False)

    if args.command == 'issue':
        return cmd_issue(args)
    elif args.command == 'verify':
        return cmd_verify(args)
    elif args.command == 'extract':
        return cmd_extract(args)
    elif args.command == 'init':
        return cmd_init(args)
    elif args.command == 'config':
        return cmd_config(args)
    else:
        parser.print_help()
        return 0


if __name__ == '__main__':
    sys.exit(main())
