"""
DRSAP - Command line entry point.

Packets are printed to stdout and read from arguments, so any transport
(chat window, e-mail, copy and paste) can carry them.
"""

import argparse
import getpass
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from . import __version__, crypto
from .config import Config
from .constants import (
    CONFIG_FILENAME,
    CONTACTS_FILENAME,
    IDENTITY_FILENAME,
    LOG_DATE_FORMAT,
    LOG_FORMAT,
    PASSWORD_ENV_VAR,
    RSA_KEY_SIZE,
)
from .contact import ContactManager
from .errors import DrsapError, ErrorCode, IdentityError
from .handshake import HandshakeState
from .identity import Identity, IdentityManager
from .messenger import Messenger
from .protocol import PacketType

logger = logging.getLogger(__name__)

console = Console()
err_console = Console(stderr=True)


def setup_logging(level: str = "INFO", console_logging: bool = True,
                  log_file: Optional[str] = None) -> None:
    """Configure the root logger once for command line use."""
    handlers: List[logging.Handler] = []
    if console_logging:
        console_handler = RichHandler(console=err_console, show_path=False, rich_tracebacks=True)
        console_handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
        handlers.append(console_handler)
    if log_file:
        file_handler = logging.FileHandler(Path(log_file).expanduser(), encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT, LOG_DATE_FORMAT))
        handlers.append(file_handler)
    if not handlers:
        handlers.append(logging.NullHandler())
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        handlers=handlers,
        force=True,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='drsap',
        description='DRSAP - store-and-forward end-to-end encryption',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  drsap init --username alice         # Create an identity
  drsap handshake bob                 # Print a handshake packet for bob
  drsap receive bob "<packet>"        # Apply a packet received from bob
  drsap encrypt bob "hello"           # Print an envelope for bob
  drsap decrypt "<envelope>"          # Decrypt an envelope
        """
    )
    parser.add_argument('--version', action='version', version=f'DRSAP {__version__}')
    parser.add_argument(
        '--data-dir',
        type=str,
        default=None,
        help='Directory holding identity, contacts and config.toml (default: ~/.drsap)'
    )
    parser.add_argument(
        '--password',
        type=str,
        default=None,
        help=f'Identity password (default: ${PASSWORD_ENV_VAR}, else prompt)'
    )
    parser.add_argument('--debug', action='store_true', help='Enable debug logging')

    subparsers = parser.add_subparsers(dest='command', required=True)

    keygen = subparsers.add_parser('keygen', help='Print a new key pair without storing it')
    keygen.add_argument('--key-size', type=int, default=None, help='RSA modulus size in bits')

    init = subparsers.add_parser('init', help='Create or import the local identity')
    init.add_argument('--username', required=True)
    init.add_argument('--key-size', type=int, default=None, help='RSA modulus size in bits')
    init.add_argument('--public-key', type=Path, default=None, help='Import this public key PEM')
    init.add_argument('--private-key', type=Path, default=None, help='Import this private key PEM')

    subparsers.add_parser('whoami', help='Show the local identity')

    handshake = subparsers.add_parser('handshake', help='Print a handshake packet for a peer')
    handshake.add_argument('peer')

    receive = subparsers.add_parser('receive', help='Apply a packet received from a peer')
    receive.add_argument('peer')
    receive.add_argument('packet')

    encrypt = subparsers.add_parser('encrypt', help='Encrypt a message for a peer')
    encrypt.add_argument('peer')
    encrypt.add_argument('message')
    encrypt.add_argument(
        '--require-ack',
        action='store_true',
        help='Refuse unless the peer acknowledged our handshake'
    )

    decrypt = subparsers.add_parser('decrypt', help='Decrypt an envelope')
    decrypt.add_argument('envelope')

    subparsers.add_parser('contacts', help='List contacts')
    return parser


def _resolve_password(args: argparse.Namespace) -> str:
    if args.password is not None:
        return args.password
    env_password = os.environ.get(PASSWORD_ENV_VAR)
    if env_password is not None:
        return env_password
    return getpass.getpass('Identity password: ')


def _load_identity(data_dir: Path, args: argparse.Namespace) -> Identity:
    manager = IdentityManager(data_dir / IDENTITY_FILENAME)
    if not manager.identity_exists():
        raise IdentityError(
            ErrorCode.E301_IDENTITY_NOT_FOUND,
            "No identity found. Run 'drsap init' first.",
            {"path": manager.identity_file},
        )
    identity = manager.load_identity(_resolve_password(args))
    if identity is None:
        raise IdentityError(ErrorCode.E303_IDENTITY_LOAD_FAILED, "Incorrect password or corrupted identity")
    return identity


def _cmd_keygen(args: argparse.Namespace, config: Config) -> int:
    key_size = args.key_size or config.get('crypto', 'rsa_key_size', RSA_KEY_SIZE)
    public_key, private_key = crypto.generate_key_pair(key_size)
    console.print(public_key, end='', markup=False, highlight=False)
    console.print(private_key, end='', markup=False, highlight=False)
    return 0


def _cmd_init(args: argparse.Namespace, config: Config, data_dir: Path) -> int:
    manager = IdentityManager(data_dir / IDENTITY_FILENAME)
    password = _resolve_password(args)

    if args.public_key or args.private_key:
        if not (args.public_key and args.private_key):
            console.print('[red]--public-key and --private-key must be given together[/red]')
            return 2
        identity = manager.import_identity(
            args.username,
            args.public_key.read_text(encoding='utf-8'),
            args.private_key.read_text(encoding='utf-8'),
            password,
        )
    else:
        key_size = args.key_size or config.get('crypto', 'rsa_key_size', RSA_KEY_SIZE)
        identity = manager.create_identity(args.username, password, key_size)

    # Envelope slot width follows the configured modulus, so keep it in step
    if identity.key_size != config.get('crypto', 'rsa_key_size', RSA_KEY_SIZE):
        config.set('crypto', 'rsa_key_size', identity.key_size)
        config.save()
        logger.info(f"Saved rsa_key_size = {identity.key_size} to {config.config_path}")

    console.print(f'[green]Identity created[/green] for [bold]{escape(identity.username)}[/bold]')
    console.print(f'Fingerprint: {identity.fingerprint}')
    return 0


def _cmd_whoami(identity: Identity) -> int:
    table = Table(show_header=False)
    table.add_row('Username', escape(identity.username))
    table.add_row('UID', identity.uid)
    table.add_row('Key size', f'{identity.key_size} bits')
    table.add_row('Fingerprint', identity.fingerprint)
    table.add_row('Created', identity.created_at)
    console.print(table)
    return 0


def _cmd_contacts(contacts: ContactManager, messenger: Messenger) -> int:
    table = Table(title='Contacts')
    table.add_column('Peer')
    table.add_column('State')
    table.add_column('Handshake')
    table.add_column('Fingerprint')

    colors = {
        HandshakeState.ACKNOWLEDGED: 'green',
        HandshakeState.PENDING: 'yellow',
        HandshakeState.UNKNOWN: 'red',
    }
    for peer_id, contact in sorted(contacts.get_all().items()):
        state = messenger.state(peer_id)
        if contact.public_key and crypto.validate_public_key(contact.public_key):
            fingerprint = crypto.generate_fingerprint(contact.public_key)[:16]
        else:
            fingerprint = '-'
        table.add_row(
            escape(peer_id),
            f'[{colors[state]}]{state.value}[/{colors[state]}]',
            str(contact.timestamp),
            fingerprint,
        )
    console.print(table)
    return 0


def _cmd_receive(args: argparse.Namespace, messenger: Messenger) -> int:
    result = messenger.receive(args.packet, args.peer)
    if result.packet_type is PacketType.UNKNOWN:
        console.print('[red]Unrecognised packet[/red]')
        return 1

    if result.packet_type is PacketType.ENVELOPE:
        if result.message is None:
            console.print('[red]Envelope is not addressed to this identity[/red]')
            return 1
        console.print(result.message, markup=False, highlight=False)
        return 0

    status = 'accepted' if result.accepted else 'ignored'
    console.print(f'{result.packet_type.value} from {escape(args.peer)}: {status}')
    if result.reply:
        console.print(f'Send this back to {escape(args.peer)}:')
        console.print(result.reply, markup=False, highlight=False, soft_wrap=True)
    return 0


def _cmd_encrypt(args: argparse.Namespace, messenger: Messenger) -> int:
    if args.require_ack and not messenger.is_trusted(args.peer):
        console.print(f'[red]{escape(args.peer)} has not acknowledged our handshake[/red]')
        return 1

    envelope = messenger.encrypt(args.message, args.peer)
    if envelope is None:
        if messenger.state(args.peer) is HandshakeState.UNKNOWN:
            console.print(f'[red]No public key for {escape(args.peer)}; exchange handshakes first[/red]')
        else:
            console.print(
                f'[red]Cannot encrypt for {escape(args.peer)}; '
                f'check that both sides use the same crypto.rsa_key_size[/red]'
            )
        return 1
    console.print(envelope, markup=False, highlight=False, soft_wrap=True)
    return 0


def _cmd_decrypt(args: argparse.Namespace, messenger: Messenger) -> int:
    message = messenger.decrypt(args.envelope)
    if message is None:
        console.print('[red]Envelope is not addressed to this identity[/red]')
        return 1
    console.print(message, markup=False, highlight=False)
    return 0


def run(argv: Optional[List[str]] = None) -> int:
    """Parse ``argv`` and run one command. Returns the exit code."""
    args = build_parser().parse_args(argv)

    if args.data_dir:
        data_dir = Path(args.data_dir).expanduser().resolve()
        config = Config(data_dir / CONFIG_FILENAME)
    else:
        config = Config()
        data_dir = config.data_dir

    level = 'DEBUG' if args.debug else config.get('logging', 'level', 'INFO')
    setup_logging(
        level,
        config.get("logging", "console_logging", True),
        config.get("logging", "file") or None,
    )

    try:
        if args.command == 'keygen':
            return _cmd_keygen(args, config)

        data_dir.mkdir(parents=True, exist_ok=True)
        if args.command == 'init':
            return _cmd_init(args, config, data_dir)

        identity = _load_identity(data_dir, args)
        if args.command == 'whoami':
            return _cmd_whoami(identity)

        contacts = ContactManager(data_dir / CONTACTS_FILENAME)
        messenger = Messenger(identity, contacts, config)
        if identity.key_size != messenger.protocol.key_size:
            err_console.print(
                f"[yellow]Warning:[/yellow] identity key is {identity.key_size} bits but "
                f"crypto.rsa_key_size is {messenger.protocol.key_size}; envelopes will fail",
                highlight=False,
            )

        if args.command == 'contacts':
            return _cmd_contacts(contacts, messenger)
        if args.command == 'handshake':
            console.print(messenger.handshake(args.peer), markup=False, highlight=False, soft_wrap=True)
            return 0
        if args.command == 'receive':
            return _cmd_receive(args, messenger)
        if args.command == 'encrypt':
            return _cmd_encrypt(args, messenger)
        if args.command == 'decrypt':
            return _cmd_decrypt(args, messenger)
    except DrsapError as e:
        logger.debug('Command failed', exc_info=True)
        err_console.print(f"[red]Error:[/red] {escape(str(e))}", highlight=False)
        return 1

    return 2


def main() -> None:
    """Console script entry point."""
    sys.exit(run())


if __name__ == '__main__':
    main()
